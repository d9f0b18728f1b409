"""Linear solvers for the QD system."""

from .scipy_solver import diagonal_preconditioner, ilu_preconditioner, scipy_direct_solver, scipy_solver
from .strategy import SolverStrategy, SolveStatus

__all__ = [
    "diagonal_preconditioner",
    "ilu_preconditioner",
    "scipy_direct_solver",
    "scipy_solver",
    "SolverStrategy",
    "SolveStatus",
]
