"""
path.py
=======

Lasso regularization path with warm starts and early stopping.

For a geometric sequence of penalties ``lambda_0 = lambda_max > ... > lambda_min``
solve

    minimize (1/2) ||A x - b||^2 + lambda ||x||_1

by handing the separable form of the problem to a solver engine, carrying x and
y over from one lambda to the next, and stopping as soon as two successive
solutions agree to a relative tolerance.

Building blocks
---------------
- :func:`lambda_max`: smallest lambda for which x = 0 is optimal, ``||A^T b||_inf``.
- :class:`LambdaSchedule`: lazy, restartable log-spaced schedule.
- :func:`max_diff`, :func:`abs_sum`, :func:`has_converged`: early-stop test.
- :class:`ProblemState`: A, b, x, y and the row / column descriptors.
- :class:`LassoPath`: the driver.
"""

from __future__ import annotations

import functools
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import scipy.sparse as sparse

from lassopath.additional_functions.problem_gen import check_csr
from lassopath.engines import ADMMEngine, SolverEngine, SolveStatus
from lassopath.exceptions import DegenerateProblemError, DimensionMismatchError, SolverFailureError
from lassopath.functions import FunctionDescriptor, build_descriptors, set_penalty

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Small utilities
# -----------------------------------------------------------------------------

_indent = threading.local()


def time_it(func):
    """Decorator logging execution time with indentation for nested calls.

    The nesting depth is kept per thread, so decorated calls from a thread pool
    indent independently.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        level = getattr(_indent, "level", 0)
        _indent.level = level + 1
        tabs = "\t" * level
        t0 = time.perf_counter()
        logger.info("%sExecuting <%s>", tabs, func.__qualname__)
        try:
            return func(*args, **kwargs)
        finally:
            dt = time.perf_counter() - t0
            logger.info("%sFunction <%s> execution time : %.3f seconds", tabs, func.__qualname__, dt)
            _indent.level = level
    return wrapper


def as_csr(A) -> sparse.csr_matrix:
    """Return A as a validated CSR matrix (dense input is converted)."""
    if not (sparse.issparse(A) and A.format == "csr"):
        A = sparse.csr_matrix(A, dtype=float)
    return check_csr(A)


# -----------------------------------------------------------------------------
# lambda_max and the schedule
# -----------------------------------------------------------------------------

def lambda_max(A, b: np.ndarray) -> float:
    """Largest entry of ``|A^T b|``; 0.0 for an empty A, an all-zero b or no columns."""
    A = as_csr(A)
    b = np.asarray(b, dtype=float).ravel()
    if b.shape != (A.shape[0],):
        raise DimensionMismatchError(f"b has length {b.size}, expected {A.shape[0]} rows")
    if A.shape[1] == 0 or A.nnz == 0:
        return 0.0
    u = A.T @ b
    return float(np.max(np.abs(u)))


class LambdaSchedule:
    """Log-spaced penalties from ``lam_max`` down to ``min_ratio * lam_max``.

    Every entry is computed from its index alone, so iterating twice yields the
    same sequence and nothing depends on the solver output::

        lambda_i = exp((log(lam_max) * (n - 1 - i) + log(min_ratio * lam_max) * i) / (n - 1))
    """

    def __init__(self, lam_max: float, n_lambda: int = 100, min_ratio: float = 1e-2):
        if not lam_max > 0:
            raise DegenerateProblemError(lam_max)
        if n_lambda < 1:
            raise ValueError(f"n_lambda must be >= 1, got {n_lambda!r}")
        if not 0 < min_ratio < 1:
            raise ValueError(f"min_ratio must lie in (0, 1), got {min_ratio!r}")
        self.lam_max = float(lam_max)
        self.n_lambda = int(n_lambda)
        self.min_ratio = float(min_ratio)
        self._log_hi = math.log(self.lam_max)
        self._log_lo = math.log(self.min_ratio * self.lam_max)

    def __len__(self) -> int:
        return self.n_lambda

    def __getitem__(self, i: int) -> float:
        if not 0 <= i < self.n_lambda:
            raise IndexError(f"step {i} out of range for a schedule of {self.n_lambda}")
        if self.n_lambda == 1:
            return self.lam_max
        n = self.n_lambda
        return math.exp((self._log_hi * (n - 1 - i) + self._log_lo * i) / (n - 1))

    def __iter__(self) -> Iterator[Tuple[int, float]]:
        return ((i, self[i]) for i in range(self.n_lambda))


def lambda_grid(lam_max: float, n_lambda: int = 100, min_ratio: float = 1e-2) -> np.ndarray:
    """The whole schedule as an array."""
    return np.array([lam for _, lam in LambdaSchedule(lam_max, n_lambda, min_ratio)])


# -----------------------------------------------------------------------------
# Early-stop test
# -----------------------------------------------------------------------------

def max_diff(x: np.ndarray, x_prev: np.ndarray) -> float:
    """``max_j |x_j - x_prev_j|`` (0.0 for empty vectors)."""
    x = np.asarray(x, dtype=float)
    if x.size == 0:
        return 0.0
    return float(np.max(np.abs(x - np.asarray(x_prev, dtype=float))))


def abs_sum(x: np.ndarray) -> float:
    return float(np.sum(np.abs(x)))


def has_converged(x: np.ndarray, x_prev: np.ndarray, tol: float = 1e-3) -> bool:
    """True when ``max_diff(x, x_prev) <= tol * abs_sum(x)``.

    Non-strict, so two identical zero vectors count as converged.
    """
    return max_diff(x, x_prev) <= tol * abs_sum(x)


# -----------------------------------------------------------------------------
# Problem state and results
# -----------------------------------------------------------------------------

class ProblemState:
    """Matrix, observations, descriptors and the warm-start buffers x and y."""

    def __init__(
        self,
        A,
        b: np.ndarray,
        f: Optional[Sequence[FunctionDescriptor]] = None,
        g: Optional[Sequence[FunctionDescriptor]] = None,
        x: Optional[np.ndarray] = None,
        y: Optional[np.ndarray] = None,
    ):
        self.A = as_csr(A)
        m, n = self.A.shape
        self.b = np.asarray(b, dtype=float).ravel()
        if self.b.shape != (m,):
            raise DimensionMismatchError(f"b has length {self.b.size}, expected {m} rows")

        if f is None or g is None:
            default_f, default_g = build_descriptors(self.b, n)
            f = default_f if f is None else f
            g = default_g if g is None else g
        self.f = list(f)
        self.g = list(g)
        if len(self.f) != m:
            raise DimensionMismatchError(f"{len(self.f)} row descriptors for {m} rows")
        if len(self.g) != n:
            raise DimensionMismatchError(f"{len(self.g)} column descriptors for {n} columns")

        self.x = np.zeros(n) if x is None else np.asarray(x, dtype=float).copy()
        self.y = np.zeros(m) if y is None else np.asarray(y, dtype=float).copy()
        if self.x.shape != (n,) or self.y.shape != (m,):
            raise DimensionMismatchError(f"x / y must have shapes ({n},) / ({m},)")

    @property
    def shape(self) -> Tuple[int, int]:
        return self.A.shape

    def reset(self) -> None:
        """Drop the warm start."""
        m, n = self.A.shape
        self.x = np.zeros(n)
        self.y = np.zeros(m)


class PathState(Enum):
    NOT_STARTED = "not_started"
    STEPPING = "stepping"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"
    TIMED_OUT = "timed_out"
    DEGENERATE = "degenerate"


@dataclass(frozen=True)
class PathPoint:
    step: int
    lam: float
    x: np.ndarray
    status: SolveStatus
    iterations: int = 0


@dataclass
class PathResult:
    points: List[PathPoint]
    state: PathState
    lam_max: float
    lambdas: np.ndarray
    elapsed: float
    x: np.ndarray
    y: Optional[np.ndarray] = field(repr=False, default=None)

    @property
    def n_steps(self) -> int:
        return len(self.points)

    @property
    def failed_steps(self) -> List[int]:
        return [p.step for p in self.points if not p.status.ok]

    def coef_path(self) -> np.ndarray:
        """Coefficients along the path, shape (n_features, n_steps)."""
        if not self.points:
            return np.zeros((self.x.size, 0))
        return np.column_stack([p.x for p in self.points])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "step": [p.step for p in self.points],
                "lambda": [p.lam for p in self.points],
                "nnz": [int(np.count_nonzero(p.x)) for p in self.points],
                "l1_norm": [abs_sum(p.x) for p in self.points],
                "status": [p.status.value for p in self.points],
                "iterations": [p.iterations for p in self.points],
            }
        )

    def plot_path(self, ax=None):
        """Coefficient traces against log10(lambda)."""
        if ax is None:
            _, ax = plt.subplots(figsize=(8, 6))
        if self.points:
            log_lams = np.log10([p.lam for p in self.points])
            ax.plot(log_lams, self.coef_path().T)
            ax.invert_xaxis()
        ax.set_xlabel("log10(lambda)")
        ax.set_ylabel("Coefficients")
        ax.set_title(f"Lasso path ({self.state.value}, {self.n_steps} steps)")
        return ax


# -----------------------------------------------------------------------------
# Driver
# -----------------------------------------------------------------------------

_FAILURE_POLICIES = ("continue", "raise")


@dataclass(frozen=True)
class PathConfig:
    n_lambda: int = 100
    lambda_min_ratio: float = 1e-2
    tol: float = 1e-3
    warm_start: bool = True
    early_stop: bool = True
    on_solver_failure: str = "continue"
    max_time: Optional[float] = None
    max_steps: Optional[int] = None


class LassoPath:
    """Warm-started Lasso path over a pluggable solver engine.

    Parameters
    ----------
    engine:
        Any object with ``solve(A, f, g, x0, y0) -> SolveResult``. Defaults to
        :class:`~lassopath.engines.ADMMEngine`.
    n_lambda:
        Length of the schedule.
    lambda_min_ratio:
        Last lambda as a fraction of lambda_max.
    tol:
        Relative tolerance of the early-stop test.
    warm_start:
        If False, x and y are reset to zero before every solve.
    early_stop:
        If False, the whole schedule is run.
    on_solver_failure:
        ``"continue"`` keeps whatever the engine returned and records the status;
        ``"raise"`` raises :class:`~lassopath.exceptions.SolverFailureError`.
    max_time:
        Deadline in seconds for the whole path, checked after each step.
    max_steps:
        Run only the first ``max_steps`` entries of the schedule.
    """

    def __init__(
        self,
        engine: Optional[SolverEngine] = None,
        n_lambda: int = 100,
        lambda_min_ratio: float = 1e-2,
        tol: float = 1e-3,
        warm_start: bool = True,
        early_stop: bool = True,
        on_solver_failure: str = "continue",
        max_time: Optional[float] = None,
        max_steps: Optional[int] = None,
    ):
        if n_lambda < 1:
            raise ValueError(f"n_lambda must be >= 1, got {n_lambda!r}")
        if not 0 < lambda_min_ratio < 1:
            raise ValueError(f"lambda_min_ratio must lie in (0, 1), got {lambda_min_ratio!r}")
        if tol < 0:
            raise ValueError(f"tol must be non-negative, got {tol!r}")
        if on_solver_failure not in _FAILURE_POLICIES:
            raise ValueError(f"on_solver_failure must be one of {_FAILURE_POLICIES}, got {on_solver_failure!r}")
        if max_time is not None and max_time < 0:
            raise ValueError(f"max_time must be non-negative, got {max_time!r}")
        if max_steps is not None and max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {max_steps!r}")

        self.engine = engine if engine is not None else ADMMEngine()
        self.cfg = PathConfig(
            n_lambda=int(n_lambda),
            lambda_min_ratio=float(lambda_min_ratio),
            tol=float(tol),
            warm_start=bool(warm_start),
            early_stop=bool(early_stop),
            on_solver_failure=on_solver_failure,
            max_time=max_time,
            max_steps=max_steps,
        )
        self.state = PathState.NOT_STARTED
        self.result_: Optional[PathResult] = None

    @time_it
    def fit(self, A, b) -> PathResult:
        """Run the path on ``(A, b)`` and return the computed points."""
        problem = ProblemState(A, b)
        self.result_ = self.run(problem)
        return self.result_

    def run(self, problem: ProblemState, lam_max: Optional[float] = None) -> PathResult:
        """Run the path on an existing :class:`ProblemState`, updating its x and y in place.

        ``lam_max`` pins the top of the schedule (e.g. to the full-data value when
        running on a cross-validation fold); by default it is computed from the problem.
        """
        cfg = self.cfg
        n = problem.shape[1]
        t0 = time.perf_counter()

        if lam_max is None:
            lam_max = lambda_max(problem.A, problem.b)
        if lam_max <= 0:
            logger.warning("lambda_max is %r: returning the zero solution without solving", lam_max)
            problem.reset()
            self.state = PathState.DEGENERATE
            return PathResult(
                points=[], state=self.state, lam_max=0.0, lambdas=np.empty(0),
                elapsed=time.perf_counter() - t0, x=problem.x, y=problem.y,
            )

        schedule = LambdaSchedule(lam_max, cfg.n_lambda, cfg.lambda_min_ratio)
        logger.info("lambda_max = %.6e, %d lambdas down to %.6e", lam_max, len(schedule), schedule[len(schedule) - 1])

        # sentinel: the first comparison can never report convergence
        x_last = np.full(n, np.finfo(float).max)
        points: List[PathPoint] = []
        self.state = PathState.STEPPING

        for step, lam in schedule:
            if cfg.max_steps is not None and step >= cfg.max_steps:
                break

            set_penalty(problem.g, lam)
            if not cfg.warm_start:
                problem.reset()

            result = self.engine.solve(problem.A, problem.f, problem.g, problem.x, problem.y)
            if not result.status.ok:
                if cfg.on_solver_failure == "raise":
                    raise SolverFailureError(step, lam, result.status)
                logger.warning("Step %d (lambda = %.6e): solver returned %s, keeping its iterate", step, lam, result.status.value)

            problem.x, problem.y = result.x, result.y
            points.append(PathPoint(step, lam, problem.x.copy(), result.status, result.iterations))
            logger.debug(
                "Step %d: lambda = %.6e, nnz = %d, iterations = %d",
                step, lam, np.count_nonzero(problem.x), result.iterations,
            )

            # an all-zero plateau right below lambda_max is not a converged path
            if cfg.early_stop and abs_sum(problem.x) > 0 and has_converged(problem.x, x_last, cfg.tol):
                self.state = PathState.CONVERGED
                break
            if cfg.max_time is not None and time.perf_counter() - t0 >= cfg.max_time:
                logger.warning("Path deadline of %.3f seconds reached after step %d", cfg.max_time, step)
                self.state = PathState.TIMED_OUT
                break
            # engines may write x in place
            x_last = problem.x.copy()

        if self.state is PathState.STEPPING:
            self.state = PathState.EXHAUSTED

        elapsed = time.perf_counter() - t0
        logger.info("Path %s after %d steps in %.3f seconds", self.state.value, len(points), elapsed)
        return PathResult(
            points=points,
            state=self.state,
            lam_max=lam_max,
            lambdas=np.array([lam for _, lam in schedule]),
            elapsed=elapsed,
            x=problem.x,
            y=problem.y,
        )
