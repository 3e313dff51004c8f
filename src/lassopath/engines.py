"""
engines.py
==========

Convex solver engines driven by the path driver.

An engine solves the graph-form problem

    minimize  sum_i f_i(y_i) + sum_j g_j(x_j)   subject to  y = A x

described by a sparse matrix and two lists of
:class:`~lassopath.functions.FunctionDescriptor`. The driver hands over the
previous solution as an explicit initial guess and receives the final state in
a :class:`SolveResult`; engines never mutate the arrays they are given.

Anything tied to the *structure* of the problem (a factorization of A, a
compiled CVXPy problem) is cached inside the engine, so a sequence of calls
that only changes descriptor scales pays the setup cost once.

Two engines are provided:

- :class:`ADMMEngine`: proximal graph-form splitting with a cached sparse LU
  factorization of ``I + A^T A``.
- :class:`CvxpyEngine`: a CVXPy problem whose column scales are a
  ``cp.Parameter``, re-solved with ``warm_start``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Sequence, Tuple

import cvxpy as cp
import numpy as np
import scipy.sparse as sparse
from scipy.sparse.linalg import splu

from lassopath.functions import KIND_CODES, FunctionDescriptor, FunctionKind, as_arrays, prox

logger = logging.getLogger(__name__)


class SolveStatus(Enum):
    SUCCESS = "success"
    MAX_ITER = "max_iter"
    INACCURATE = "inaccurate"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is SolveStatus.SUCCESS


@dataclass(frozen=True)
class SolveResult:
    x: np.ndarray
    y: np.ndarray
    status: SolveStatus
    iterations: int = 0


class SolverEngine(Protocol):
    """Anything with a blocking ``solve`` returning the final (x, y) and a status."""

    def solve(
        self,
        A: sparse.csr_matrix,
        f: Sequence[FunctionDescriptor],
        g: Sequence[FunctionDescriptor],
        x0: np.ndarray,
        y0: np.ndarray,
    ) -> SolveResult:
        ...


# -----------------------------------------------------------------------------
# ADMM (graph form)
# -----------------------------------------------------------------------------

class ADMMEngine:
    """Graph-form ADMM.

    Parameters
    ----------
    rho:
        ADMM penalty parameter.
    abs_tol, rel_tol:
        Absolute / relative tolerances on the primal and dual residuals.
    max_iter:
        Iteration cap; hitting it returns ``SolveStatus.MAX_ITER``.

    Notes
    -----
    Dual variables start at zero on every call. The initial guess only seeds the
    primal iterate, which is enough to cut iterations when lambda moves a little.
    The returned ``x`` is the proximal iterate, so coefficients killed by the
    soft threshold are exactly zero.
    """

    def __init__(self, rho: float = 1.0, abs_tol: float = 1e-4, rel_tol: float = 1e-3, max_iter: int = 2500):
        if rho <= 0:
            raise ValueError(f"rho must be positive, got {rho!r}")
        if abs_tol < 0 or rel_tol < 0:
            raise ValueError("Tolerances must be non-negative.")
        if max_iter < 1:
            raise ValueError(f"max_iter must be >= 1, got {max_iter!r}")
        self.rho = float(rho)
        self.abs_tol = float(abs_tol)
        self.rel_tol = float(rel_tol)
        self.max_iter = int(max_iter)

        self._A = None
        self._At = None
        self._lu = None

    def _factorize(self, A: sparse.csr_matrix) -> None:
        """Factor ``I + A^T A`` once per matrix."""
        if self._A is A:
            return
        n = A.shape[1]
        self._At = A.T.tocsr()
        M = (sparse.identity(n, format="csc") + (self._At @ A)).tocsc()
        self._lu = splu(M)
        self._A = A
        logger.debug("ADMMEngine: factorized %d x %d system (nnz = %d)", n, n, M.nnz)

    def _project(self, c: np.ndarray, d: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Projection of (c, d) onto {(x, y) : y = A x}."""
        x = self._lu.solve(c + self._At @ d)
        return x, self._A @ x

    def solve(self, A, f, g, x0, y0) -> SolveResult:
        self._factorize(A)
        m, n = A.shape

        kf, cf, of = as_arrays(f)
        kg, cg, og = as_arrays(g)
        rho = self.rho

        x = np.array(x0, dtype=float, copy=True)
        y = np.array(y0, dtype=float, copy=True)
        x_tilde = np.zeros(n)
        y_tilde = np.zeros(m)
        x_half = x
        sqrt_dim = np.sqrt(m + n)

        status = SolveStatus.MAX_ITER
        k = 0
        for k in range(1, self.max_iter + 1):
            x_half = prox(kg, cg, og, x - x_tilde, rho)
            y_half = prox(kf, cf, of, y - y_tilde, rho)

            x_old, y_old = x, y
            x, y = self._project(x_half + x_tilde, y_half + y_tilde)

            x_tilde += x_half - x
            y_tilde += y_half - y

            r_norm = np.sqrt(np.sum((x_half - x) ** 2) + np.sum((y_half - y) ** 2))
            s_norm = rho * np.sqrt(np.sum((x - x_old) ** 2) + np.sum((y - y_old) ** 2))
            eps_pri = sqrt_dim * self.abs_tol + self.rel_tol * max(
                np.sqrt(np.sum(x_half ** 2) + np.sum(y_half ** 2)),
                np.sqrt(np.sum(x ** 2) + np.sum(y ** 2)),
            )
            eps_dual = sqrt_dim * self.abs_tol + self.rel_tol * rho * np.sqrt(
                np.sum(x_tilde ** 2) + np.sum(y_tilde ** 2)
            )

            if not (np.isfinite(r_norm) and np.isfinite(s_norm)):
                status = SolveStatus.FAILED
                break
            if r_norm <= eps_pri and s_norm <= eps_dual:
                status = SolveStatus.SUCCESS
                break

        logger.debug("ADMMEngine: %s after %d iterations", status.value, k)
        return SolveResult(x=x_half, y=A @ x_half, status=status, iterations=k)


# -----------------------------------------------------------------------------
# CVXPy
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class SolverConfig:
    solver: str = "CLARABEL"
    warm_start: bool = True
    verbose: bool = False


def solve_problem(prob: cp.Problem, cfg: SolverConfig) -> None:
    """Solve a CVXPy problem with configured solver."""
    prob.solve(solver=getattr(cp, cfg.solver), warm_start=cfg.warm_start, verbose=cfg.verbose)


_CVXPY_STATUS = {
    cp.OPTIMAL: SolveStatus.SUCCESS,
    cp.OPTIMAL_INACCURATE: SolveStatus.INACCURATE,
    "user_limit": SolveStatus.MAX_ITER,
}


def _separable_terms(kinds, scales, offsets, v: cp.Expression) -> Tuple[list, list]:
    """Objective terms and constraints for ``sum_k scales_k * h_k(v_k - offsets_k)``.

    ``scales`` may be a numpy array or a ``cp.Parameter`` of matching length.
    """
    terms, constraints = [], []
    for kind in FunctionKind:
        idx = np.flatnonzero(kinds == KIND_CODES[kind])
        if idx.size == 0 or kind is FunctionKind.ZERO:
            continue
        u = v[idx] - offsets[idx]
        if kind is FunctionKind.SQUARE:
            terms.append(0.5 * cp.sum(cp.multiply(scales[idx], cp.square(u))))
        elif kind is FunctionKind.ABS:
            terms.append(cp.sum(cp.multiply(scales[idx], cp.abs(u))))
        elif kind is FunctionKind.IND_GE0:
            constraints.append(u >= 0)
    return terms, constraints


class CvxpyEngine:
    """Solve each step with CVXPy, keeping one compiled problem per structure.

    The column scales live in a non-negative ``cp.Parameter``, so moving along a
    lambda path only updates a parameter value and lets the backend warm start.
    """

    def __init__(self, solver: str = "CLARABEL", warm_start: bool = True, verbose: bool = False):
        if not hasattr(cp, solver):
            raise ValueError(f"Unknown CVXPy solver: {solver!r}")
        self.cfg = SolverConfig(solver=solver, warm_start=warm_start, verbose=verbose)
        self._key = None
        self._cache: Optional[Tuple[cp.Problem, cp.Variable, cp.Parameter]] = None

    def _get_problem(self, A, f, g) -> Tuple[cp.Problem, cp.Variable, cp.Parameter]:
        """Cache the problem on (matrix, row descriptors, column kinds and offsets)."""
        kf, cf, of = as_arrays(f)
        kg, _, og = as_arrays(g)
        key = (id(A), kf.tobytes(), cf.tobytes(), of.tobytes(), kg.tobytes(), og.tobytes())
        if key == self._key:
            return self._cache

        n = A.shape[1]
        x = cp.Variable(n)
        col_scale = cp.Parameter(n, nonneg=True, name="col_scale")

        row_terms, row_cons = _separable_terms(kf, cf, of, cp.Constant(A) @ x)
        col_terms, col_cons = _separable_terms(kg, col_scale, og, x)
        objective = cp.Minimize(sum(row_terms + col_terms, cp.Constant(0.0)))
        prob = cp.Problem(objective, row_cons + col_cons)

        self._key = key
        self._cache = (prob, x, col_scale)
        logger.debug("CvxpyEngine: built problem with %d rows and %d columns", A.shape[0], n)
        return self._cache

    def solve(self, A, f, g, x0, y0) -> SolveResult:
        prob, x, col_scale = self._get_problem(A, f, g)
        _, cg, _ = as_arrays(g)
        col_scale.value = cg
        x.value = np.array(x0, dtype=float, copy=True)

        try:
            solve_problem(prob, self.cfg)
        except cp.SolverError as exc:
            logger.warning("CvxpyEngine: %s failed: %s", self.cfg.solver, exc)
            return SolveResult(x=np.array(x0, dtype=float), y=np.array(y0, dtype=float), status=SolveStatus.FAILED)

        status = _CVXPY_STATUS.get(prob.status, SolveStatus.FAILED)
        if x.value is None:
            return SolveResult(x=np.array(x0, dtype=float), y=np.array(y0, dtype=float), status=SolveStatus.FAILED)

        x_sol = np.asarray(x.value, dtype=float).copy()
        iterations = prob.solver_stats.num_iters if prob.solver_stats is not None else None
        return SolveResult(x=x_sol, y=A @ x_sol, status=status, iterations=int(iterations or 0))
