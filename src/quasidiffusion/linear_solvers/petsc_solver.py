"""PETSc-based linear solver (KSP) for the QD system."""

import numpy as np
from scipy.sparse import csr_matrix
from petsc4py import PETSc


def petsc_solver(
    A_csr: csr_matrix,
    b_np: np.ndarray,
    ksp=None,
    tolerance=1e-10,
    max_iterations=1000,
    solver_type="bcgs",
    preconditioner="jacobi",
):
    """Solve A x = b using PETSc with optional KSP reuse.

    Parameters
    ----------
    A_csr : csr_matrix
        Sparse matrix in CSR format.
    b_np : np.ndarray
        Right-hand side vector.
    ksp : PETSc.KSP, optional
        Reusable KSP solver object. If None, a new KSP is created.
    tolerance : float, optional
        Relative convergence tolerance (default: 1e-10).
    max_iterations : int, optional
        Maximum number of iterations (default: 1000).
    solver_type : str, optional
        PETSc KSP type: "bcgs" for iterative solves, "preonly" with
        preconditioner "lu" for a direct factorization.
    preconditioner : str, optional
        PETSc PC type ("jacobi", "ilu", "lu").

    Returns
    -------
    x_np : np.ndarray
        Solution vector x.
    ksp : PETSc.KSP
        KSP solver (returned for reuse).
    """
    n = A_csr.shape[0]
    A_csr = csr_matrix(A_csr)
    A_csr.sort_indices()

    A_petsc = PETSc.Mat().createAIJ(
        size=A_csr.shape,
        csr=(A_csr.indptr.astype(PETSc.IntType), A_csr.indices.astype(PETSc.IntType), A_csr.data),
    )
    A_petsc.assemble()

    b_petsc = PETSc.Vec().createWithArray(np.ascontiguousarray(b_np, dtype=PETSc.ScalarType))
    x_petsc = PETSc.Vec().createSeq(n)

    if ksp is None:
        ksp = PETSc.KSP().create()
        ksp.setOperators(A_petsc)
        ksp.setType(solver_type)
        ksp.setTolerances(rtol=float(tolerance), atol=0, max_it=max_iterations)
        pc = ksp.getPC()
        pc.setType(preconditioner)
        ksp.setFromOptions()
    else:
        ksp.setOperators(A_petsc)

    try:
        ksp.solve(b_petsc, x_petsc)
        reason = ksp.getConvergedReason()
        if reason <= 0:
            raise RuntimeError(
                f"PETSc did not converge. Reason: {reason}, "
                f"Iterations: {ksp.getIterationNumber()}"
            )
        x_np = x_petsc.getArray().copy()
    finally:
        A_petsc.destroy()
        b_petsc.destroy()
        x_petsc.destroy()

    if not np.all(np.isfinite(x_np)):
        raise RuntimeError("PETSc produced a non-finite solution")

    return x_np, ksp
