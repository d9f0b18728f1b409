"""
RZMesh: structured 2D axisymmetric (radial-axial) mesh.

Indexing Conventions:
- Cells are addressed by (iR, iZ). iR = 0 touches the symmetry axis (west),
  iR = n_r - 1 touches the outer radius (east).
- iZ = 0 is the north (top) boundary row, iZ = n_z - 1 the south (bottom) row.
  Axial edges therefore increase from north to south.
- Cell-based arrays are shaped (n_z, n_r); radial-face arrays (n_z, n_r + 1);
  axial-face arrays (n_z + 1, n_r).

Geometry (per cell, rDown/rUp and zDown/zUp its edges):
- volume          = pi (rUp^2 - rDown^2)(zUp - zDown)
- north/south area = pi (rUp^2 - rDown^2)
- east area        = 2 pi rUp (zUp - zDown)
- west area        = 2 pi rDown (zUp - zDown)
- volume-averaged radius = (2/3)(rUp^3 - rDown^3)/(rUp^2 - rDown^2)
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class CellGeometry:
    """Geometric scalars of one mesh cell."""

    volume: float
    west_area: float
    east_area: float
    north_area: float
    south_area: float
    r_down: float
    r_up: float
    r_avg: float
    z_down: float
    z_up: float
    z_avg: float


class RZMesh:
    def __init__(self, r_edges, z_edges, dts=()):
        r_edges = np.asarray(r_edges, dtype=np.float64)
        z_edges = np.asarray(z_edges, dtype=np.float64)

        if r_edges.ndim != 1 or r_edges.size < 2:
            raise ValueError("r_edges must be a 1D array with at least two edges")
        if z_edges.ndim != 1 or z_edges.size < 2:
            raise ValueError("z_edges must be a 1D array with at least two edges")
        if r_edges[0] != 0.0:
            raise ValueError(f"Radial mesh must start on the axis, got r0={r_edges[0]}")
        if np.any(np.diff(r_edges) <= 0) or np.any(np.diff(z_edges) <= 0):
            raise ValueError("Mesh edges must be strictly increasing")

        self.r_edges = r_edges
        self.z_edges = z_edges
        self.n_r = r_edges.size - 1
        self.n_z = z_edges.size - 1
        self.dts = [float(dt) for dt in dts]

        # --- Cell centres ---
        self.r_mid = 0.5 * (r_edges[:-1] + r_edges[1:])
        self.z_avg = 0.5 * (z_edges[:-1] + z_edges[1:])
        self.dr = np.diff(r_edges)
        self.dz = np.diff(z_edges)

        # --- Precomputed metrics, shaped (n_z, n_r) ---
        r_down, r_up = r_edges[:-1], r_edges[1:]
        annulus = np.pi * (r_up**2 - r_down**2)
        self.volumes = np.outer(self.dz, annulus)
        self.axial_areas = np.tile(annulus, (self.n_z, 1))
        self.east_areas = 2.0 * np.pi * np.outer(self.dz, r_up)
        self.west_areas = 2.0 * np.pi * np.outer(self.dz, r_down)
        self.vol_avg_r = (2.0 / 3.0) * (r_up**3 - r_down**3) / (r_up**2 - r_down**2)

    @classmethod
    def uniform(cls, radius, height, n_r, n_z, dt=None, n_steps=0):
        """Equally spaced mesh on [0, radius] x [0, height]."""
        dts = [dt] * n_steps if dt is not None else []
        return cls(np.linspace(0.0, radius, n_r + 1), np.linspace(0.0, height, n_z + 1), dts)

    @property
    def shape(self):
        return (self.n_z, self.n_r)

    def cell_geometry(self, iR, iZ) -> CellGeometry:
        """Return the geometric scalars of cell (iR, iZ)."""
        assert 0 <= iR < self.n_r and 0 <= iZ < self.n_z, f"cell ({iR}, {iZ}) outside mesh"
        return CellGeometry(
            volume=self.volumes[iZ, iR],
            west_area=self.west_areas[iZ, iR],
            east_area=self.east_areas[iZ, iR],
            north_area=self.axial_areas[iZ, iR],
            south_area=self.axial_areas[iZ, iR],
            r_down=self.r_edges[iR],
            r_up=self.r_edges[iR + 1],
            r_avg=self.vol_avg_r[iR],
            z_down=self.z_edges[iZ],
            z_up=self.z_edges[iZ + 1],
            z_avg=self.z_avg[iZ],
        )

    def __repr__(self):
        return f"RZMesh(n_r={self.n_r}, n_z={self.n_z}, R={self.r_edges[-1]:g}, Z={self.z_edges[-1] - self.z_edges[0]:g})"
