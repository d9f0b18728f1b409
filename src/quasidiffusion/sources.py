"""Grey-group source collapse and external source coupling.

The per-cell loops here write one disjoint slot per cell into dense staging
arrays, so numba runs them over ``prange`` workers. Merging into sparse
storage happens afterwards on the calling thread.
"""

from dataclasses import dataclass

import numpy as np
from numba import njit, prange
from scipy.sparse import coo_matrix

ZERO_FLUX_BIAS = 1e-25


# =============================================================
# Staging kernels
# =============================================================


@njit(cache=True, parallel=True)
def stage_grey_group_rhs(volumes, upscatter, chi_p, fission_coeff, inv_keff, grey_flux, chi_d, dnp_source):
    """Right-hand-side contribution of the collapsed source for one group.

    Returns a dense (n_z, n_r) array of
    ``V ((upscatter + chi_p F / keff) phi_grey + chi_d S_dnp)``.
    """
    n_z, n_r = volumes.shape
    staged = np.zeros((n_z, n_r))
    for k in prange(n_z * n_r):
        iz = k // n_r
        ir = k - iz * n_r
        staged[iz, ir] = volumes[iz, ir] * (
            (upscatter[iz, ir] + chi_p[iz, ir] * fission_coeff[iz, ir] * inv_keff) * grey_flux[iz, ir]
            + chi_d[iz, ir] * dnp_source[iz, ir]
        )
    return staged


@njit(cache=True, parallel=True)
def stage_flux_source_entries(rows, flux_columns, coeff):
    """Triplets folding ``-coeff * sum_g phi_g`` into ``rows``.

    ``rows`` and ``coeff`` are flat per-cell arrays; ``flux_columns`` is
    (n_cells, n_groups) and holds the cell-flux index of each group. Cell k
    owns slots [k G, (k + 1) G).
    """
    n_cells, n_groups = flux_columns.shape
    n = n_cells * n_groups
    row = np.empty(n, dtype=np.int64)
    col = np.empty(n, dtype=np.int64)
    data = np.empty(n, dtype=np.float64)
    for k in prange(n_cells):
        for g in range(n_groups):
            slot = k * n_groups + g
            row[slot] = rows[k]
            col[slot] = flux_columns[k, g]
            data[slot] = -coeff[k]
    return row, col, data


# =============================================================
# Grey-group collapsed source
# =============================================================


@dataclass
class GreyGroupSource:
    """Collapsed one-group data replacing the explicit multigroup sum.

    ``upscatter`` is (n_z, n_r, n_groups); the other arrays are (n_z, n_r).
    """

    grey_flux: np.ndarray
    upscatter: np.ndarray
    fission_coeff: np.ndarray
    dnp_source: np.ndarray
    keff: float = 1.0

    def check_shape(self, n_z, n_r, n_groups):
        assert self.grey_flux.shape == (n_z, n_r), f"grey flux shape {self.grey_flux.shape} != {(n_z, n_r)}"
        assert self.upscatter.shape == (n_z, n_r, n_groups), "upscatter coefficient shape mismatch"
        assert self.fission_coeff.shape == (n_z, n_r), "fission coefficient shape mismatch"
        assert self.dnp_source.shape == (n_z, n_r), "precursor source shape mismatch"

    def stage_rhs(self, mesh, materials, group, steady_state):
        """Dense (n_z, n_r) right-hand-side contribution for ``group``."""
        inv_keff = 1.0 / self.keff if steady_state else 1.0
        return stage_grey_group_rhs(
            np.ascontiguousarray(mesh.volumes),
            np.ascontiguousarray(self.upscatter[:, :, group]),
            np.ascontiguousarray(materials.chi_p[:, :, group]),
            np.ascontiguousarray(self.fission_coeff),
            inv_keff,
            np.ascontiguousarray(self.grey_flux),
            np.ascontiguousarray(materials.chi_d[:, :, group]),
            np.ascontiguousarray(self.dnp_source),
        )


def collapse_grey_group_source(group_fields, materials, dnp_source=None, keff=1.0):
    """Collapse a multigroup flux solution into a ``GreyGroupSource``.

    Grey flux is the group sum. The upscatter coefficient of group g carries
    scattering from every higher group, the fission coefficient the total
    fission production, both per unit grey flux.
    """
    flux = np.stack([f.flux for f in group_fields], axis=-1)
    n_z, n_r, n_groups = flux.shape
    assert n_groups == materials.n_groups, "field count does not match group count"

    grey = flux.sum(axis=-1)
    denom = np.where(grey == 0.0, ZERO_FLUX_BIAS, grey)

    upscatter_mask = np.tril(np.ones((n_groups, n_groups)), k=-1)  # from > to
    upscatter = np.einsum("zrpg,zrp,pg->zrg", materials.sig_s, flux, upscatter_mask)
    fission = np.sum(materials.nu * materials.sig_f * flux, axis=-1)

    if dnp_source is None:
        dnp_source = np.zeros((n_z, n_r))

    return GreyGroupSource(
        grey_flux=grey,
        upscatter=upscatter / denom[:, :, None],
        fission_coeff=fission / denom,
        dnp_source=np.asarray(dnp_source, dtype=np.float64),
        keff=keff,
    )


# =============================================================
# Coupling to neighbouring physics
# =============================================================


class FluxSourceCoupling:
    """Source ``coeff(z, r) * phi(z, r)`` owed to another physics module.

    ``rows`` names, for each cell, the equation row of the receiving system;
    ``coeff`` the per-cell coefficient (e.g. ``dt * omega * sig_f`` for a
    fission heat source). ``phi`` is the scalar flux summed over groups.
    """

    def __init__(self, rows, coeff):
        self.rows = np.asarray(rows, dtype=np.int64)
        self.coeff = np.asarray(coeff, dtype=np.float64)
        if self.rows.shape != self.coeff.shape or self.rows.ndim != 2:
            raise ValueError(f"rows {self.rows.shape} and coeff {self.coeff.shape} must be equal 2D shapes")

    def flux_columns(self, layout, column_offset=0):
        n_z, n_r = self.rows.shape
        assert (n_z, n_r) == (layout.n_z, layout.n_r), "coupling shape does not match layout"
        cols = np.empty((n_z * n_r, layout.n_groups), dtype=np.int64)
        for g in range(layout.n_groups):
            start = column_offset + g * layout.n_group_unknowns
            cols[:, g] = start + np.arange(n_z * n_r)
        return cols

    def matrix_entries(self, layout, column_offset=0):
        """Implicit form: (row, col, data) triplets coupling rows to QD cell fluxes."""
        return stage_flux_source_entries(
            self.rows.ravel(), self.flux_columns(layout, column_offset), self.coeff.ravel()
        )

    def as_matrix(self, shape, layout, column_offset=0):
        """Implicit form merged into a sparse matrix of the receiving system's shape."""
        row, col, data = self.matrix_entries(layout, column_offset)
        return coo_matrix((data, (row, col)), shape=shape).tocsr()

    def rhs_contribution(self, scalar_flux, size):
        """Explicit form: dense vector with ``coeff * phi`` folded into ``rows``."""
        scalar_flux = np.asarray(scalar_flux, dtype=np.float64)
        assert scalar_flux.shape == self.coeff.shape, "scalar flux shape mismatch"
        rhs = np.zeros(size)
        np.add.at(rhs, self.rows.ravel(), (self.coeff * scalar_flux).ravel())
        return rhs
