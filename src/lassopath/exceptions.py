"""Exceptions raised while computing a regularization path."""


class LassoPathError(Exception):
    """Base class for every error raised by lassopath."""


class DegenerateProblemError(LassoPathError, ValueError):
    """lambda_max is not positive, so no geometric schedule exists."""

    def __init__(self, lam_max: float):
        super().__init__(f"lambda_max must be positive to build a schedule, got {lam_max!r}")
        self.lam_max = lam_max


class DimensionMismatchError(LassoPathError, ValueError):
    """Vectors or descriptor lists do not match the matrix shape."""


class SolverFailureError(LassoPathError):
    """The engine returned a non-success status and the path is set to fail fast."""

    def __init__(self, step: int, lam: float, status):
        super().__init__(f"Solver failed at step {step} (lambda = {lam:.6e}) with status {status.value!r}")
        self.step = step
        self.lam = lam
        self.status = status
