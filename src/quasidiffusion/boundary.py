"""Boundary-condition modes and the per-face data they consume.

Each outer face family (north, south, east) asserts one of three closures:

- FLUX: face flux equals a Dirichlet value.
- REFLECTING: the face current relation with unit coefficient equals zero.
- GOLDIN: current - ratio * flux = inward_current - ratio * inward_flux.

The west face family lies on the symmetry axis and always asserts the
reflecting current relation.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from .exceptions import ConfigurationError

FACES = ("north", "south", "east", "west")


class BoundaryMode(Enum):
    FLUX = "flux"
    REFLECTING = "reflecting"
    GOLDIN = "goldin"


_MODE_ALIASES = {
    "flux": BoundaryMode.FLUX,
    "dirichlet": BoundaryMode.FLUX,
    "reflecting": BoundaryMode.REFLECTING,
    "reflective": BoundaryMode.REFLECTING,
    "current": BoundaryMode.REFLECTING,
    "goldin": BoundaryMode.GOLDIN,
}


def parse_boundary_mode(value) -> BoundaryMode:
    """Map a configuration string (case-insensitive) to a ``BoundaryMode``."""
    if isinstance(value, BoundaryMode):
        return value
    try:
        return _MODE_ALIASES[str(value).strip().lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown boundary mode '{value}'. Expected one of {sorted(_MODE_ALIASES)}"
        ) from None


@dataclass(frozen=True)
class BoundaryConditions:
    """Resolved boundary mode per face family, immutable for the run."""

    north: BoundaryMode = BoundaryMode.FLUX
    south: BoundaryMode = BoundaryMode.FLUX
    east: BoundaryMode = BoundaryMode.FLUX
    west: BoundaryMode = BoundaryMode.REFLECTING

    @classmethod
    def resolve(cls, north="flux", south="flux", east="flux", west="reflecting", solve_type="MGQD"):
        """Resolve configuration strings once.

        ``solve_type == "TQD"`` (transport-coupled QD) promotes every outer
        flux face to Goldin; reflecting faces stay reflecting.
        """
        modes = {
            "north": parse_boundary_mode(north),
            "south": parse_boundary_mode(south),
            "east": parse_boundary_mode(east),
        }

        solve_type = str(solve_type).strip().upper()
        if solve_type not in ("MGQD", "TQD"):
            raise ConfigurationError(f"Unknown solve type '{solve_type}'. Expected 'MGQD' or 'TQD'")
        if solve_type == "TQD":
            modes = {k: BoundaryMode.GOLDIN if m is BoundaryMode.FLUX else m for k, m in modes.items()}

        if parse_boundary_mode(west) is BoundaryMode.FLUX:
            raise ConfigurationError("The axis (west) boundary only supports a current-type condition")

        return cls(**modes, west=BoundaryMode.REFLECTING)

    def mode(self, face) -> BoundaryMode:
        return getattr(self, face)

    @property
    def uses_goldin(self):
        return any(self.mode(f) is BoundaryMode.GOLDIN for f in FACES)


@dataclass
class GoldinData:
    """Goldin closure data for one face family (arrays along the face)."""

    ratio: np.ndarray
    inward_current: np.ndarray
    inward_flux: np.ndarray
    abs_current: np.ndarray

    @classmethod
    def zeros(cls, n):
        return cls(np.zeros(n), np.zeros(n), np.zeros(n), np.zeros(n))


@dataclass
class BoundaryData:
    """Per-group boundary values, refreshed once per outer iteration.

    North/south arrays run along the radial index (length n_r); east/west
    arrays along the axial index (length n_z).
    """

    north_flux: np.ndarray
    south_flux: np.ndarray
    east_flux: np.ndarray
    west_flux: np.ndarray
    north_goldin: GoldinData
    south_goldin: GoldinData
    east_goldin: GoldinData

    @classmethod
    def default(cls, n_z, n_r, flux_value=1.0):
        """Unit Dirichlet fluxes and zero Goldin data."""
        return cls(
            north_flux=np.full(n_r, flux_value),
            south_flux=np.full(n_r, flux_value),
            east_flux=np.full(n_z, flux_value),
            west_flux=np.full(n_z, flux_value),
            north_goldin=GoldinData.zeros(n_r),
            south_goldin=GoldinData.zeros(n_r),
            east_goldin=GoldinData.zeros(n_z),
        )

    def check_shape(self, n_z, n_r):
        assert self.north_flux.shape == (n_r,) and self.south_flux.shape == (n_r,), "north/south flux BC length != n_r"
        assert self.east_flux.shape == (n_z,) and self.west_flux.shape == (n_z,), "east/west flux BC length != n_z"
        for data, n in ((self.north_goldin, n_r), (self.south_goldin, n_r), (self.east_goldin, n_z)):
            assert data.ratio.shape == (n,), "Goldin data length mismatch"
