"""Data structures for solver configuration and results.

Structure:
- QDParameters: Input configuration (logged to MLflow at start)
- QDMetrics: Output results (logged to MLflow at end)
- GroupFields: Per-group flux and current fields
- TimeSeries: Per-step history
"""

from dataclasses import dataclass, asdict, field
from typing import List

import numpy as np
import pandas as pd

from .boundary import BoundaryConditions
from .exceptions import ConfigurationError


def _check_choice(name, value, choices):
    value = str(value).strip().lower()
    if value not in choices:
        raise ConfigurationError(f"Unknown {name} '{value}'. Expected one of {list(choices)}")
    return value


# ========================================================
# Parameters (Input Configuration)
# ========================================================


@dataclass
class QDParameters:
    """Quasidiffusion solver parameters."""

    steady_state: bool = True
    linear_solver: str = "iterative"  # direct | iterative
    preconditioner: str = "diagonal"  # diagonal | ilu
    backend: str = "scipy"  # scipy | petsc
    source_mode: str = "multigroup"  # multigroup | grey
    solve_type: str = "MGQD"  # MGQD | TQD
    north: str = "flux"
    south: str = "flux"
    east: str = "flux"
    west: str = "reflecting"
    tolerance: float = 1e-10
    max_iterations_factor: int = 2
    ilu_drop_tol: float = 1e-4

    def __post_init__(self):
        self.linear_solver = _check_choice("linear solver", self.linear_solver, ("direct", "iterative"))
        preconditioner = str(self.preconditioner).strip().lower()
        self.preconditioner = "diagonal" if preconditioner == "diag" else preconditioner
        _check_choice("preconditioner", self.preconditioner, ("diagonal", "ilu"))
        self.backend = _check_choice("backend", self.backend, ("scipy", "petsc"))
        self.source_mode = _check_choice("source mode", self.source_mode, ("multigroup", "grey"))
        # Resolving here surfaces bad boundary strings at construction
        self.boundary_conditions()

    def boundary_conditions(self) -> BoundaryConditions:
        return BoundaryConditions.resolve(
            north=self.north,
            south=self.south,
            east=self.east,
            west=self.west,
            solve_type=self.solve_type,
        )

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])

    def to_mlflow(self):
        return {k: str(v) for k, v in asdict(self).items()}


# ========================================================
# Metrics (Output Results)
# ========================================================


@dataclass
class QDMetrics:
    """Solver metrics accumulated over a run."""

    solves: int = 0
    fallbacks: int = 0
    direct_solves: int = 0
    time_steps: int = 0
    final_relative_residual: float = float("inf")
    max_balance_residual: float = float("inf")
    wall_time_seconds: float = 0.0

    def to_dataframe(self):
        return pd.DataFrame([asdict(self)])

    def to_mlflow(self):
        return {k: float(v) for k, v in asdict(self).items()}


# ========================================================
# Fields (Spatial Solution Data)
# ========================================================


@dataclass
class GroupFields:
    """Flux and current fields of one energy group.

    Cell fields are (n_z, n_r); radial-face fields (n_z, n_r + 1); axial-face
    fields (n_z + 1, n_r).
    """

    flux: np.ndarray
    flux_radial: np.ndarray
    flux_axial: np.ndarray
    current_radial: np.ndarray
    current_axial: np.ndarray

    @classmethod
    def allocate(cls, n_z, n_r, value=0.0):
        return cls(
            flux=np.full((n_z, n_r), value),
            flux_radial=np.full((n_z, n_r + 1), value),
            flux_axial=np.full((n_z + 1, n_r), value),
            current_radial=np.zeros((n_z, n_r + 1)),
            current_axial=np.zeros((n_z + 1, n_r)),
        )

    def copy(self):
        return GroupFields(**{k: v.copy() for k, v in asdict(self).items()})

    def to_dataframe(self, mesh=None, group=0) -> pd.DataFrame:
        """One row per cell with the cell flux and its four face currents."""
        n_z, n_r = self.flux.shape
        iz, ir = np.meshgrid(np.arange(n_z), np.arange(n_r), indexing="ij")
        data = {
            "group": np.full(n_z * n_r, group),
            "iR": ir.ravel(),
            "iZ": iz.ravel(),
            "flux": self.flux.ravel(),
            "current_west": self.current_radial[:, :-1].ravel(),
            "current_east": self.current_radial[:, 1:].ravel(),
            "current_north": self.current_axial[:-1, :].ravel(),
            "current_south": self.current_axial[1:, :].ravel(),
        }
        if mesh is not None:
            data["r"] = np.broadcast_to(mesh.r_mid, (n_z, n_r)).ravel()
            data["z"] = np.broadcast_to(mesh.z_avg[:, None], (n_z, n_r)).ravel()
        return pd.DataFrame(data)


# ========================================================
# Time Series (Per-step History)
# ========================================================


@dataclass
class TimeSeries:
    """History with one value per accepted solve."""

    time: List[float] = field(default_factory=list)
    relative_residual: List[float] = field(default_factory=list)
    total_flux: List[float] = field(default_factory=list)
    method: List[str] = field(default_factory=list)

    def append(self, time, relative_residual, total_flux, method):
        self.time.append(float(time))
        self.relative_residual.append(float(relative_residual))
        self.total_flux.append(float(total_flux))
        self.method.append(method)

    def __len__(self):
        return len(self.time)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(asdict(self))

    def to_mlflow_batch(self):
        """Metric entities for ``MlflowClient.log_batch``."""
        from mlflow.entities import Metric

        batch = []
        for step, (res, total) in enumerate(zip(self.relative_residual, self.total_flux)):
            batch.append(Metric("relative_residual", res, 0, step))
            batch.append(Metric("total_flux", total, 0, step))
        return batch
