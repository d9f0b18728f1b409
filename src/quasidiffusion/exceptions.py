"""Error types raised by the quasidiffusion solver."""


class ConfigurationError(ValueError):
    """Unrecognised or inconsistent solver configuration."""


class SolverFailure(RuntimeError):
    """Every method in the linear-solver fallback chain failed.

    Parameters
    ----------
    message : str
        Human readable description.
    attempts : list of tuple
        ``(method, reason)`` pairs in the order they were tried.
    """

    def __init__(self, message, attempts=None):
        super().__init__(message)
        self.attempts = list(attempts or [])
