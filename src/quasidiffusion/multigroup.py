"""Multigroup quasidiffusion coupling layer.

Orchestrates one assemble -> solve -> back-calculate -> extract cycle per
time value (or once for a steady state) over all energy groups. The system
is solved jointly for every group, so all groups are assembled before the
solve.
"""

import logging
import time

import mlflow
import numpy as np

from .assembly import QDAssembler
from .back_calculation import BackCalculation
from .boundary import BoundaryData
from .datastructures import GroupFields, QDMetrics, QDParameters, TimeSeries
from .eddington import EddingtonField
from .layout import UnknownLayout
from .linear_solvers import SolverStrategy
from .metrics import balance_residuals, relative_residual
from .state import SolverState

log = logging.getLogger(__name__)


class MultiGroupQD:
    """Multigroup QD solver on an RZ mesh.

    Parameters
    ----------
    mesh : RZMesh
        Geometry provider; ``mesh.dts`` drives ``solve_transient``.
    materials : GroupConstants
        Per-cell group constants.
    params : QDParameters, optional
        Parameters object. If not provided, kwargs are used to create params.
    **kwargs
        Configuration passed to ``QDParameters`` if params is None.
    """

    Parameters = QDParameters

    def __init__(self, mesh, materials, params=None, **kwargs):
        if params is None:
            params = self.Parameters(**kwargs)
        assert materials.shape == mesh.shape, f"materials shape {materials.shape} != mesh shape {mesh.shape}"

        self.params = params
        self.mesh = mesh
        self.materials = materials
        self.boundary_conditions = params.boundary_conditions()

        self.layout = UnknownLayout(mesh.n_r, mesh.n_z, materials.n_groups)
        self.state = SolverState.allocate(self.layout)
        self.assembler = QDAssembler(
            mesh,
            materials,
            self.boundary_conditions,
            steady_state=params.steady_state,
            source_mode=params.source_mode,
        )
        self.back_calc = BackCalculation(mesh, materials, steady_state=params.steady_state)
        self.strategy = SolverStrategy.from_parameters(params)

        self.fields = [GroupFields.allocate(mesh.n_z, mesh.n_r) for _ in range(self.n_groups)]
        self.previous_fields = None
        self.metrics = QDMetrics()
        self.time_series = TimeSeries()
        self.time = 0.0

        log.info(
            f"MultiGroupQD: {self.n_groups} groups on {mesh}, {self.layout.n_unknowns} unknowns, "
            f"BCs={self.boundary_conditions}"
        )

    @property
    def n_groups(self):
        return self.layout.n_groups

    # ========================================================================
    # Inputs from neighbouring modules
    # ========================================================================

    def set_eddington(self, group, field: EddingtonField):
        """Replace the Eddington factors of ``group`` (once per outer iteration)."""
        field.check_shape(self.mesh.n_z, self.mesh.n_r)
        self.state.eddington[group] = field

    def set_boundary_data(self, group, data: BoundaryData):
        data.check_shape(self.mesh.n_z, self.mesh.n_r)
        self.state.boundary_data[group] = data

    def set_grey_source(self, source):
        """Collapsed source used when ``source_mode == "grey"``."""
        source.check_shape(self.mesh.n_z, self.mesh.n_r, self.n_groups)
        self.state.grey_source = source

    def set_initial_condition(self, fields=None):
        """Load past-solution vectors from per-group fields.

        Without ``fields`` the current ``self.fields`` are used.
        """
        fields = self.fields if fields is None else fields
        assert len(fields) == self.n_groups, f"expected {self.n_groups} group fields, got {len(fields)}"
        for g, f in enumerate(fields):
            self.layout.pack_flux(self.state.x_past, g, f.flux, f.flux_radial, f.flux_axial)
            self.layout.pack_current(self.state.curr_past, g, f.current_radial, f.current_axial)
        self.state.x[:] = self.state.x_past
        self.state.current[:] = self.state.curr_past
        self.fields = [f.copy() for f in fields]

    # ========================================================================
    # Cycle stages
    # ========================================================================

    def build_linear_system(self, dt=None):
        return self.assembler.assemble(self.state, dt)

    def solve_linear_system(self):
        """Solve the assembled system; raises ``SolverFailure`` on fatal failure."""
        if self.state.A is None:
            raise RuntimeError("Linear system has not been assembled")
        x = self.strategy.solve(self.state.A, self.state.b)
        self.state.x[:] = x

        self.metrics.solves += 1
        self.metrics.fallbacks += self.strategy.fallbacks
        if self.strategy.method == "direct":
            self.metrics.direct_solves += 1
        return self.state.x

    def build_back_calc_system(self, dt=None):
        return self.back_calc.assemble(self.state, dt)

    def back_calculate_current(self):
        self.state.current[:] = self.back_calc.back_calculate(self.state)
        return self.state.current

    def extract_fields(self):
        """Copy the flat solution into per-group fields, keeping the previous ones."""
        self.previous_fields = [f.copy() for f in self.fields]
        fields = []
        for g in range(self.n_groups):
            flux, flux_r, flux_z = self.layout.split_flux(self.state.x, g)
            curr_r, curr_z = self.layout.split_current(self.state.current, g)
            fields.append(
                GroupFields(
                    flux=flux.copy(),
                    flux_radial=flux_r.copy(),
                    flux_axial=flux_z.copy(),
                    current_radial=curr_r.copy(),
                    current_axial=curr_z.copy(),
                )
            )
        self.fields = fields
        return fields

    # ========================================================================
    # Driving
    # ========================================================================

    def step(self, dt=None):
        """One assemble/solve/back-calculate/extract cycle.

        Past-solution vectors are only updated once the solve succeeded.
        """
        if not self.params.steady_state and dt is None:
            raise ValueError("Transient step requires dt")

        self.build_linear_system(dt)
        self.solve_linear_system()
        self.build_back_calc_system(dt)
        self.back_calculate_current()

        res = relative_residual(self.state.A, self.state.x, self.state.b)
        balance = balance_residuals(
            self.mesh,
            self.materials,
            self.layout,
            self.state.x,
            self.state.current,
            steady_state=self.params.steady_state,
            x_past=self.state.x_past,
            dt=dt,
            grey_source=self.state.grey_source if self.params.source_mode == "grey" else None,
        )

        self.state.accept()
        self.extract_fields()

        if dt is not None and not self.params.steady_state:
            self.time += dt
            self.metrics.time_steps += 1
        self.metrics.final_relative_residual = res
        self.metrics.max_balance_residual = float(np.max(np.abs(balance)))

        total_flux = float(sum(np.sum(f.flux * self.mesh.volumes) for f in self.fields))
        self.time_series.append(self.time, res, total_flux, self.strategy.method)
        if mlflow.active_run():
            mlflow.log_metrics({"relative_residual": res, "total_flux": total_flux}, step=len(self.time_series) - 1)

        log.info(
            f"t={self.time:.4e}: solved with {self.strategy.method}, rel. residual={res:.3e}, "
            f"max balance residual={self.metrics.max_balance_residual:.3e}"
        )
        return self.fields

    def solve_steady_state(self):
        if not self.params.steady_state:
            raise ValueError("Solver was configured for transients; set steady_state=True")
        return self.step()

    def solve_transient(self, dts=None):
        """Step through ``dts`` (default: ``mesh.dts``)."""
        if self.params.steady_state:
            raise ValueError("Solver was configured for steady state; set steady_state=False")
        dts = self.mesh.dts if dts is None else dts
        if len(dts) == 0:
            raise ValueError("No time steps given")
        for dt in dts:
            self.step(dt)
        return self.fields

    def solve(self):
        """Run the configured regime and record wall time."""
        time_start = time.time()
        if self.params.steady_state:
            self.solve_steady_state()
        else:
            self.solve_transient()
        self.metrics.wall_time_seconds = time.time() - time_start
        log.info(f"Finished in {self.metrics.wall_time_seconds:.2f} s ({self.metrics.solves} solves)")
        return self.fields

    # ========================================================================
    # Outputs to neighbouring modules
    # ========================================================================

    def scalar_flux(self, iZ, iR):
        """Group-summed cell flux at (iZ, iR)."""
        return float(sum(f.flux[iZ, iR] for f in self.fields))

    def scalar_flux_field(self):
        return np.sum([f.flux for f in self.fields], axis=0)

    def fields_dataframe(self):
        import pandas as pd

        return pd.concat([f.to_dataframe(self.mesh, group=g) for g, f in enumerate(self.fields)], ignore_index=True)

    def save(self, filepath):
        """Save params, metrics, time series and fields to an HDF5 file."""
        from pathlib import Path

        import pandas as pd

        filepath = Path(filepath)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with pd.HDFStore(filepath, mode="w", complevel=5) as store:
            store["params"] = self.params.to_dataframe()
            store["metrics"] = self.metrics.to_dataframe()
            store["time_series"] = self.time_series.to_dataframe()
            store["fields"] = self.fields_dataframe()
