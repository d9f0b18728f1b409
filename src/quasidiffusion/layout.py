"""
Global unknown indexing for the multigroup quasidiffusion system.

Per energy group the flux system holds ``3 nR nZ + nZ + nR`` unknowns:

    [ cell fluxes (nR nZ) | radial-face fluxes ((nR+1) nZ) | axial-face fluxes (nR (nZ+1)) ]

and the companion current system holds ``2 nR nZ + nZ + nR`` unknowns:

    [ radial-face currents ((nR+1) nZ) | axial-face currents (nR (nZ+1)) ]

Radial faces are numbered ``iZ (nR+1) + iR`` (face iR is the west face of
cell iR), axial faces ``iZ nR + iR`` (face iZ is the north face of cell iZ).
A face shared by two cells therefore maps to one global index.
"""

from enum import IntEnum

import numpy as np


class Role(IntEnum):
    """Unknown role of a cell; indexes the tuple returned by ``indices``."""

    CF = 0  # cell-average flux
    WF = 1
    EF = 2
    NF = 3
    SF = 4
    WC = 5  # face currents
    EC = 6
    NC = 7
    SC = 8


class UnknownLayout:
    def __init__(self, n_r: int, n_z: int, n_groups: int = 1):
        if n_r < 1 or n_z < 1 or n_groups < 1:
            raise ValueError(f"Invalid layout sizes n_r={n_r}, n_z={n_z}, n_groups={n_groups}")
        self.n_r = n_r
        self.n_z = n_z
        self.n_groups = n_groups

        self.n_cells = n_r * n_z
        self.n_radial_faces = (n_r + 1) * n_z
        self.n_axial_faces = n_r * (n_z + 1)

        self.n_group_unknowns = 3 * n_r * n_z + n_z + n_r
        self.n_group_current_unknowns = 2 * n_r * n_z + n_z + n_r
        self.n_unknowns = n_groups * self.n_group_unknowns
        self.n_current_unknowns = n_groups * self.n_group_current_unknowns

    # ---------------------------------------------------------------------
    # Per-group local offsets
    # ---------------------------------------------------------------------

    def _cell(self, iR, iZ):
        return iZ * self.n_r + iR

    def _radial_face(self, iR_face, iZ):
        return iZ * (self.n_r + 1) + iR_face

    def _axial_face(self, iR, iZ_face):
        return iZ_face * self.n_r + iR

    def check_cell(self, iR, iZ, group=0):
        assert 0 <= iR < self.n_r, f"radial index {iR} outside [0, {self.n_r})"
        assert 0 <= iZ < self.n_z, f"axial index {iZ} outside [0, {self.n_z})"
        assert 0 <= group < self.n_groups, f"group {group} outside [0, {self.n_groups})"

    # ---------------------------------------------------------------------
    # Global indices
    # ---------------------------------------------------------------------

    def indices(self, iR, iZ, group=0):
        """Return the nine global indices of cell (iR, iZ), ordered by ``Role``.

        Flux roles index the flux system; current roles index the current
        (back-calculation) system.
        """
        self.check_cell(iR, iZ, group)
        off = group * self.n_group_unknowns
        rad = off + self.n_cells
        ax = rad + self.n_radial_faces
        c_off = group * self.n_group_current_unknowns
        c_ax = c_off + self.n_radial_faces
        return (
            off + self._cell(iR, iZ),
            rad + self._radial_face(iR, iZ),
            rad + self._radial_face(iR + 1, iZ),
            ax + self._axial_face(iR, iZ),
            ax + self._axial_face(iR, iZ + 1),
            c_off + self._radial_face(iR, iZ),
            c_off + self._radial_face(iR + 1, iZ),
            c_ax + self._axial_face(iR, iZ),
            c_ax + self._axial_face(iR, iZ + 1),
        )

    def index(self, iR, iZ, role: Role, group=0) -> int:
        return self.indices(iR, iZ, group)[role]

    # ---------------------------------------------------------------------
    # Vector <-> field views
    # ---------------------------------------------------------------------

    def group_slice(self, group):
        start = group * self.n_group_unknowns
        return slice(start, start + self.n_group_unknowns)

    def group_current_slice(self, group):
        start = group * self.n_group_current_unknowns
        return slice(start, start + self.n_group_current_unknowns)

    def split_flux(self, x, group):
        """Split a flux vector into (cell, radial-face, axial-face) arrays."""
        xg = np.asarray(x)[self.group_slice(group)]
        cells = xg[: self.n_cells].reshape(self.n_z, self.n_r)
        radial = xg[self.n_cells : self.n_cells + self.n_radial_faces].reshape(self.n_z, self.n_r + 1)
        axial = xg[self.n_cells + self.n_radial_faces :].reshape(self.n_z + 1, self.n_r)
        return cells, radial, axial

    def split_current(self, curr, group):
        """Split a current vector into (radial-face, axial-face) arrays."""
        cg = np.asarray(curr)[self.group_current_slice(group)]
        radial = cg[: self.n_radial_faces].reshape(self.n_z, self.n_r + 1)
        axial = cg[self.n_radial_faces :].reshape(self.n_z + 1, self.n_r)
        return radial, axial

    def pack_flux(self, x, group, cells, radial, axial):
        """Write group fields into the flat flux vector ``x`` in place."""
        xg = x[self.group_slice(group)]
        xg[: self.n_cells] = np.ravel(cells)
        xg[self.n_cells : self.n_cells + self.n_radial_faces] = np.ravel(radial)
        xg[self.n_cells + self.n_radial_faces :] = np.ravel(axial)

    def pack_current(self, curr, group, radial, axial):
        cg = curr[self.group_current_slice(group)]
        cg[: self.n_radial_faces] = np.ravel(radial)
        cg[self.n_radial_faces :] = np.ravel(axial)

    def __repr__(self):
        return f"UnknownLayout(n_r={self.n_r}, n_z={self.n_z}, n_groups={self.n_groups})"
