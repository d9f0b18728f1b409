"""Residual diagnostics for assembled and solved QD systems."""

from __future__ import annotations

import numpy as np


def relative_residual(A, x: np.ndarray, b: np.ndarray) -> float:
    """||b - A x|| / ||b||, or the absolute residual when b vanishes."""
    r = np.linalg.norm(b - A @ x)
    b_norm = np.linalg.norm(b)
    return float(r / b_norm) if b_norm > 0 else float(r)


def cell_leakage(mesh, layout, current: np.ndarray, group: int) -> np.ndarray:
    """Net outward leakage of every cell, shaped (n_z, n_r)."""
    jr, ja = layout.split_current(current, group)
    return (
        mesh.east_areas * jr[:, 1:]
        - mesh.west_areas * jr[:, :-1]
        + mesh.axial_areas * (ja[1:, :] - ja[:-1, :])
    )


def balance_residuals(
    mesh,
    materials,
    layout,
    x: np.ndarray,
    current: np.ndarray,
    steady_state: bool = True,
    x_past: np.ndarray | None = None,
    dt: float | None = None,
    grey_source=None,
) -> np.ndarray:
    """Zeroth-moment residual of every cell using reconstructed currents.

    Returns an array shaped (n_groups, n_z, n_r). Zero (to round-off) when
    the currents are consistent with the flux solution.
    """
    n_groups = layout.n_groups
    vol = mesh.volumes
    phi = np.stack([layout.split_flux(x, g)[0] for g in range(n_groups)], axis=-1)
    if not steady_state:
        phi_past = np.stack([layout.split_flux(x_past, g)[0] for g in range(n_groups)], axis=-1)

    residuals = np.zeros((n_groups, layout.n_z, layout.n_r))
    for g in range(n_groups):
        removal = materials.sig_t[:, :, g] * phi[:, :, g]
        rhs = materials.q[:, :, g].copy()
        if not steady_state:
            rate = 1.0 / (materials.velocity[:, :, g] * dt)
            removal += rate * phi[:, :, g]
            rhs += rate * phi_past[:, :, g]

        if grey_source is None:
            production = (
                materials.sig_s[:, :, :, g]
                + materials.chi_p[:, :, g, None] * materials.nu * materials.sig_f
            )
            inscatter = np.sum(production * phi, axis=-1)
            staged = 0.0
        else:
            inscatter = np.sum(materials.sig_s[:, :, : g + 1, g] * phi[:, :, : g + 1], axis=-1)
            staged = grey_source.stage_rhs(mesh, materials, g, steady_state)

        residuals[g] = vol * (removal - inscatter - rhs) - staged + cell_leakage(mesh, layout, current, g)
    return residuals
