"""Scipy-based linear solvers: preconditioned BiCGSTAB and SuperLU."""

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.linalg import LinearOperator, bicgstab, spilu, splu


def diagonal_preconditioner(A_csr: csr_matrix) -> LinearOperator:
    """Jacobi preconditioner; rows with a zero diagonal are left unscaled."""
    diag = A_csr.diagonal()
    inv = np.ones_like(diag)
    nonzero = diag != 0.0
    inv[nonzero] = 1.0 / diag[nonzero]
    return LinearOperator(A_csr.shape, matvec=lambda v: inv * v, dtype=A_csr.dtype)


def ilu_preconditioner(A_csr: csr_matrix, drop_tol=1e-4) -> LinearOperator:
    """Incomplete LU with threshold dropping.

    Raises RuntimeError if the factorization breaks down (e.g. singular A).
    """
    ilu = spilu(A_csr.tocsc(), drop_tol=drop_tol)
    return LinearOperator(A_csr.shape, matvec=ilu.solve, dtype=A_csr.dtype)


def scipy_solver(
    A_csr: csr_matrix,
    b_np: np.ndarray,
    M=None,
    tolerance=1e-10,
    max_iterations=1000,
):
    """Solve A x = b using scipy BiCGSTAB.

    Parameters
    ----------
    A_csr : csr_matrix
        Sparse matrix in CSR format.
    b_np : np.ndarray
        Right-hand side vector.
    M : LinearOperator, optional
        Preconditioner approximating A^{-1}.
    tolerance : float, optional
        Relative residual tolerance (default: 1e-10).
    max_iterations : int, optional
        Maximum iterations (default: 1000).

    Returns
    -------
    x_np : np.ndarray
        Solution vector.
    M : LinearOperator or None
        Preconditioner (returned for reuse).

    Raises
    ------
    RuntimeError
        On breakdown, non-convergence or a non-finite result.
    """
    x, info = bicgstab(A_csr, b_np, rtol=tolerance, atol=0, maxiter=max_iterations, M=M)

    if info > 0:
        raise RuntimeError(f"BiCGSTAB did not converge in {info} iterations")
    if info < 0:
        raise RuntimeError(f"BiCGSTAB failed (info={info})")
    if not np.all(np.isfinite(x)):
        raise RuntimeError("BiCGSTAB produced a non-finite solution")

    return x, M


def scipy_direct_solver(A_csr: csr_matrix, b_np: np.ndarray):
    """Solve A x = b with a SuperLU factorization.

    Raises
    ------
    RuntimeError
        If A is singular or the result is not finite.
    """
    lu = splu(A_csr.tocsc())
    x = lu.solve(np.asarray(b_np, dtype=np.float64))
    if not np.all(np.isfinite(x)):
        raise RuntimeError("SuperLU produced a non-finite solution")
    return x
