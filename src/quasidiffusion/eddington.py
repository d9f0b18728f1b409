"""Eddington tensor fields and the axis integrating factor."""

from dataclasses import dataclass

import numpy as np

from .materials import face_average


@dataclass
class EddingtonField:
    """Eddington factors of one energy group.

    Cell values are shaped (n_z, n_r); radial-face values (n_z, n_r + 1);
    axial-face values (n_z + 1, n_r). Held fixed for the duration of one
    linear solve.
    """

    err: np.ndarray
    ezz: np.ndarray
    erz: np.ndarray
    err_radial: np.ndarray
    ezz_radial: np.ndarray
    erz_radial: np.ndarray
    err_axial: np.ndarray
    ezz_axial: np.ndarray
    erz_axial: np.ndarray

    @property
    def shape(self):
        return self.err.shape

    @classmethod
    def diffusion_limit(cls, n_z, n_r):
        """Isotropic closure: Err = Ezz = 1/3, Erz = 0 everywhere."""
        third = 1.0 / 3.0
        return cls(
            err=np.full((n_z, n_r), third),
            ezz=np.full((n_z, n_r), third),
            erz=np.zeros((n_z, n_r)),
            err_radial=np.full((n_z, n_r + 1), third),
            ezz_radial=np.full((n_z, n_r + 1), third),
            erz_radial=np.zeros((n_z, n_r + 1)),
            err_axial=np.full((n_z + 1, n_r), third),
            ezz_axial=np.full((n_z + 1, n_r), third),
            erz_axial=np.zeros((n_z + 1, n_r)),
        )

    @classmethod
    def from_cell_values(cls, mesh, err, ezz, erz):
        """Build face values from cell values.

        Err and Ezz are harmonic-averaged between neighbours; Erz, which may
        vanish or change sign, is arithmetic-averaged. Both are weighted by
        cell volume.
        """
        err = np.asarray(err, dtype=np.float64)
        ezz = np.asarray(ezz, dtype=np.float64)
        erz = np.asarray(erz, dtype=np.float64)
        assert err.shape == mesh.shape, f"Eddington shape {err.shape} does not match mesh {mesh.shape}"
        assert ezz.shape == err.shape and erz.shape == err.shape

        vol = mesh.volumes
        return cls(
            err=err.copy(),
            ezz=ezz.copy(),
            erz=erz.copy(),
            err_radial=face_average(err, vol, axis=1),
            ezz_radial=face_average(ezz, vol, axis=1),
            erz_radial=face_average(erz, vol, axis=1, harmonic=False),
            err_axial=face_average(err, vol, axis=0),
            ezz_axial=face_average(ezz, vol, axis=0),
            erz_axial=face_average(erz, vol, axis=0, harmonic=False),
        )

    def check_shape(self, n_z, n_r):
        assert self.err.shape == (n_z, n_r), f"Eddington cell shape {self.err.shape} != {(n_z, n_r)}"
        assert self.err_radial.shape == (n_z, n_r + 1), "Eddington radial-face shape mismatch"
        assert self.err_axial.shape == (n_z + 1, n_r), "Eddington axial-face shape mismatch"


def integrating_factor(field: EddingtonField, iR, iZ, r_down, r_up, r_eval):
    """Integrating factor h(r) of cell (iR, iZ) evaluated at ``r_eval``.

    With G = 1 + (Err + Ezz - 1)/Err, off-axis cells use h = r^G. The axis
    cell uses h = exp(g0 r^p/p + g1 r^(p+1)/(p+1)) with p = 2, which stays
    finite at r = 0. In the diffusion limit G = 0 and h = 1.
    """
    err = field.err[iZ, iR]
    if err == 0.0:
        raise ValueError(f"Err vanishes in cell ({iR}, {iZ}); integrating factor undefined")
    G = 1.0 + (err + field.ezz[iZ, iR] - 1.0) / err

    if iR == 0:
        p = 2
        r_avg = (2.0 / 3.0) * (r_up**3 - r_down**3) / (r_up**2 - r_down**2)
        ratio = (r_up ** (p + 1) - r_avg ** (p + 1)) / (r_avg**p - r_up**p)
        g1 = G / (r_avg**p * (r_avg + ratio))
        g0 = g1 * ratio
        return np.exp(g0 * r_eval**p / p + g1 * r_eval ** (p + 1) / (p + 1))

    return r_eval**G
