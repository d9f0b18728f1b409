"""Solve strategy with ordered fallback between linear solvers.

Iterative solves try the configured preconditioner first and fall back
cheap -> expensive -> direct:

    diagonal:  BiCGSTAB + Jacobi  ->  BiCGSTAB + ILU  ->  direct LU
    ilu:       BiCGSTAB + ILU     ->  direct LU

A direct solve runs LU only. Only failure of the last method is fatal and
raises ``SolverFailure``; an unconverged vector is never returned.
"""

import logging
from enum import Enum

import numpy as np

from ..exceptions import ConfigurationError, SolverFailure
from .scipy_solver import diagonal_preconditioner, ilu_preconditioner, scipy_direct_solver, scipy_solver

log = logging.getLogger(__name__)


class SolveStatus(Enum):
    NOT_SOLVED = "not_solved"
    SOLVED = "solved"
    FAILED = "failed"


class SolverStrategy:
    """Blocking solve of the assembled QD system.

    Parameters
    ----------
    linear_solver : str
        ``"direct"`` or ``"iterative"``.
    preconditioner : str
        ``"diagonal"`` or ``"ilu"``; first preconditioner tried.
    backend : str
        ``"scipy"`` or ``"petsc"``.
    tolerance : float
        Relative residual tolerance of the iterative methods.
    max_iterations_factor : int
        Iteration cap as a multiple of the system size.
    ilu_drop_tol : float
        Drop tolerance of the incomplete factorization.
    """

    def __init__(
        self,
        linear_solver="iterative",
        preconditioner="diagonal",
        backend="scipy",
        tolerance=1e-10,
        max_iterations_factor=2,
        ilu_drop_tol=1e-4,
    ):
        if linear_solver not in ("direct", "iterative"):
            raise ConfigurationError(f"Unknown linear solver '{linear_solver}'")
        if preconditioner not in ("diagonal", "ilu"):
            raise ConfigurationError(f"Unknown preconditioner '{preconditioner}'")
        if backend not in ("scipy", "petsc"):
            raise ConfigurationError(f"Unknown backend '{backend}'")

        self.linear_solver = linear_solver
        self.preconditioner = preconditioner
        self.backend = backend
        self.tolerance = tolerance
        self.max_iterations_factor = max_iterations_factor
        self.ilu_drop_tol = ilu_drop_tol

        self.status = SolveStatus.NOT_SOLVED
        self.method = None
        self.attempts = []

    @classmethod
    def from_parameters(cls, params):
        return cls(
            linear_solver=params.linear_solver,
            preconditioner=params.preconditioner,
            backend=params.backend,
            tolerance=params.tolerance,
            max_iterations_factor=params.max_iterations_factor,
            ilu_drop_tol=params.ilu_drop_tol,
        )

    @property
    def methods(self):
        """Ordered method names tried by ``solve``."""
        if self.linear_solver == "direct":
            return ["direct"]
        if self.preconditioner == "ilu":
            return ["ilu", "direct"]
        return ["diagonal", "ilu", "direct"]

    # ------------------------------------------------------------------
    # Individual methods
    # ------------------------------------------------------------------

    def _run(self, method, A, b):
        max_iterations = max(self.max_iterations_factor * A.shape[0], 10)
        if self.backend == "petsc":
            from .petsc_solver import petsc_solver

            solver_type, pc = {"diagonal": ("bcgs", "jacobi"), "ilu": ("bcgs", "ilu"), "direct": ("preonly", "lu")}[method]
            x, ksp = petsc_solver(
                A, b, tolerance=self.tolerance, max_iterations=max_iterations, solver_type=solver_type, preconditioner=pc
            )
            ksp.destroy()
            return x

        if method == "direct":
            return scipy_direct_solver(A, b)
        if method == "ilu":
            M = ilu_preconditioner(A, drop_tol=self.ilu_drop_tol)
        else:
            M = diagonal_preconditioner(A)
        x, _ = scipy_solver(A, b, M=M, tolerance=self.tolerance, max_iterations=max_iterations)
        return x

    # ------------------------------------------------------------------
    # Fallback chain
    # ------------------------------------------------------------------

    def solve(self, A, b):
        """Solve A x = b, returning x or raising ``SolverFailure``."""
        self.status = SolveStatus.NOT_SOLVED
        self.method = None
        self.attempts = []

        b = np.asarray(b, dtype=np.float64)
        assert A.shape[0] == A.shape[1] == b.shape[0], f"system shape {A.shape} does not match rhs {b.shape}"

        methods = self.methods
        for i, method in enumerate(methods):
            try:
                x = self._run(method, A, b)
            except RuntimeError as exc:
                self.attempts.append((method, str(exc)))
                if i + 1 < len(methods):
                    log.warning(f"{method} solve failed ({exc}); falling back to {methods[i + 1]}")
                continue

            self.attempts.append((method, "ok"))
            self.status = SolveStatus.SOLVED
            self.method = method
            log.debug(f"Linear solve succeeded with {method} ({self.backend})")
            return x

        self.status = SolveStatus.FAILED
        log.error(f"All linear solve methods failed: {self.attempts}")
        raise SolverFailure(f"Linear solve failed after trying {methods}", self.attempts)

    @property
    def fallbacks(self):
        """Number of failed attempts in the last ``solve``."""
        return sum(1 for _, outcome in self.attempts if outcome != "ok")
