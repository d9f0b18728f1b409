"""Per-cell, per-group nuclear data consumed by the assembler."""

from dataclasses import dataclass

import numpy as np


def face_average(cell_values, weights, axis, harmonic=True):
    """Volume-weighted average of neighbouring cells onto the faces along ``axis``.

    Interior faces receive ``(w1 + w2) / (w1/s1 + w2/s2)`` (harmonic) or
    ``(w1 s1 + w2 s2) / (w1 + w2)`` (arithmetic); boundary faces take the
    adjacent cell value. Extra trailing axes (energy groups) broadcast.
    """
    values = np.moveaxis(np.asarray(cell_values, dtype=np.float64), axis, 0)
    w = np.moveaxis(np.asarray(weights, dtype=np.float64), axis, 0)
    w = w.reshape(w.shape + (1,) * (values.ndim - w.ndim))

    n = values.shape[0]
    faces = np.empty((n + 1,) + values.shape[1:])
    faces[0] = values[0]
    faces[-1] = values[-1]
    w1, w2 = w[:-1], w[1:]
    if harmonic:
        faces[1:-1] = (w1 + w2) / (w1 / values[:-1] + w2 / values[1:])
    else:
        faces[1:-1] = (w1 * values[:-1] + w2 * values[1:]) / (w1 + w2)
    return np.moveaxis(faces, 0, axis)


@dataclass
class GroupConstants:
    """Cross sections, spectra and sources, shaped (n_z, n_r, n_groups).

    ``sig_s`` is shaped (n_z, n_r, n_groups, n_groups) and indexed
    ``[iZ, iR, from_group, to_group]``.
    """

    sig_t: np.ndarray
    sig_s: np.ndarray
    nu: np.ndarray
    sig_f: np.ndarray
    chi_p: np.ndarray
    chi_d: np.ndarray
    velocity: np.ndarray
    q: np.ndarray

    def __post_init__(self):
        for name in ("sig_t", "sig_s", "nu", "sig_f", "chi_p", "chi_d", "velocity", "q"):
            setattr(self, name, np.asarray(getattr(self, name), dtype=np.float64))

        n_z, n_r, n_g = self.sig_t.shape
        for name in ("nu", "sig_f", "chi_p", "chi_d", "velocity", "q"):
            shape = getattr(self, name).shape
            if shape != (n_z, n_r, n_g):
                raise ValueError(f"{name} has shape {shape}, expected {(n_z, n_r, n_g)}")
        if self.sig_s.shape != (n_z, n_r, n_g, n_g):
            raise ValueError(f"sig_s has shape {self.sig_s.shape}, expected {(n_z, n_r, n_g, n_g)}")

    @property
    def shape(self):
        return self.sig_t.shape[:2]

    @property
    def n_groups(self):
        return self.sig_t.shape[2]

    @classmethod
    def uniform(
        cls,
        n_z,
        n_r,
        sig_t,
        sig_s=None,
        nu=None,
        sig_f=None,
        chi_p=None,
        chi_d=None,
        velocity=None,
        q=None,
    ):
        """Spatially uniform data from per-group values.

        ``sig_s`` is a (G, G) matrix ``[from, to]``; all other arguments are
        length-G sequences. Missing values default to zero, except velocity
        (1.0) and chi_p (all fission neutrons born in group 0).
        """
        sig_t = np.atleast_1d(np.asarray(sig_t, dtype=np.float64))
        n_g = sig_t.size

        def per_group(values, default):
            if values is None:
                values = default
            values = np.broadcast_to(np.asarray(values, dtype=np.float64), (n_g,))
            return np.broadcast_to(values, (n_z, n_r, n_g)).copy()

        chi_default = np.zeros(n_g)
        chi_default[0] = 1.0
        sig_s = np.zeros((n_g, n_g)) if sig_s is None else np.asarray(sig_s, dtype=np.float64).reshape(n_g, n_g)

        return cls(
            sig_t=per_group(sig_t, 0.0),
            sig_s=np.broadcast_to(sig_s, (n_z, n_r, n_g, n_g)).copy(),
            nu=per_group(nu, 0.0),
            sig_f=per_group(sig_f, 0.0),
            chi_p=per_group(chi_p, chi_default),
            chi_d=per_group(chi_d, 0.0),
            velocity=per_group(velocity, 1.0),
            q=per_group(q, 0.0),
        )

    # ---------------------------------------------------------------------
    # Face-averaged total cross sections (steady-state current relations)
    # ---------------------------------------------------------------------

    def radial_face_sig_t(self, mesh):
        """Total cross section on radial faces, shaped (n_z, n_r + 1, n_groups)."""
        return face_average(self.sig_t, mesh.volumes, axis=1)

    def axial_face_sig_t(self, mesh):
        """Total cross section on axial faces, shaped (n_z + 1, n_r, n_groups)."""
        return face_average(self.sig_t, mesh.volumes, axis=0)
