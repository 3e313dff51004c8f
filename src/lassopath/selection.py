"""
selection.py
============

K-fold cross-validation along the Lasso path.

Every fold runs the full schedule (no early stop) built from the *full-data*
lambda_max, so all folds share the same lambdas and their errors can be
averaged pointwise. The lambda with the lowest mean test error is kept and its
coefficients are read off a final path on the full data.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from sklearn.model_selection import KFold

from lassopath.engines import ADMMEngine, SolverEngine
from lassopath.path import LassoPath, PathResult, ProblemState, as_csr, lambda_grid, lambda_max, time_it

logger = logging.getLogger(__name__)


def mean_squared_error(A, x: np.ndarray, b: np.ndarray) -> float:
    """Mean of ``(A x - b)^2`` over the rows; 0.0 when there are no rows."""
    if A.shape[0] == 0:
        return 0.0
    return float(np.mean((A @ x - b) ** 2))


@dataclass(frozen=True)
class CVConfig:
    n_lambda: int = 100
    lambda_min_ratio: float = 1e-2
    n_k_fold: int = 5
    random_state: Optional[int] = 0
    warm_start: bool = True
    n_jobs: int = 1


class LassoPathCV:
    """Pick lambda on the path by K-fold cross-validated mean squared error.

    Parameters
    ----------
    n_lambda, lambda_min_ratio:
        Schedule, as in :class:`~lassopath.path.LassoPath`.
    n_k_fold:
        Number of folds.
    random_state:
        Seed of the fold shuffling.
    engine_factory:
        Callable returning a fresh engine. Engines cache per-matrix setup, so each
        fold (and the final refit) gets its own. Defaults to :class:`ADMMEngine`.
    n_jobs:
        Number of threads across folds.
    """

    def __init__(
        self,
        n_lambda: int = 100,
        lambda_min_ratio: float = 1e-2,
        n_k_fold: int = 5,
        random_state: Optional[int] = 0,
        engine_factory: Optional[Callable[[], SolverEngine]] = None,
        warm_start: bool = True,
        n_jobs: int = 1,
    ):
        if n_k_fold < 2:
            raise ValueError(f"n_k_fold must be >= 2, got {n_k_fold!r}")
        self.cfg = CVConfig(
            n_lambda=int(n_lambda),
            lambda_min_ratio=float(lambda_min_ratio),
            n_k_fold=int(n_k_fold),
            random_state=random_state,
            warm_start=bool(warm_start),
            n_jobs=int(n_jobs) if n_jobs is not None else 1,
        )
        self.engine_factory = engine_factory if engine_factory is not None else ADMMEngine

        self.lambda_curve: Optional[pd.DataFrame] = None
        self.best_lambda_: Optional[float] = None
        self.coef_: Optional[np.ndarray] = None
        self.path_: Optional[PathResult] = None

    def _path(self) -> LassoPath:
        return LassoPath(
            engine=self.engine_factory(),
            n_lambda=self.cfg.n_lambda,
            lambda_min_ratio=self.cfg.lambda_min_ratio,
            warm_start=self.cfg.warm_start,
            early_stop=False,
        )

    def _cv_fold_errors(self, A, b, train_idx: np.ndarray, test_idx: np.ndarray, lam_max: float) -> Tuple[np.ndarray, np.ndarray]:
        """(train_mse, test_mse) per lambda for one fold."""
        A_train, b_train = A[train_idx], b[train_idx]
        A_test, b_test = A[test_idx], b[test_idx]

        result = self._path().run(ProblemState(A_train, b_train), lam_max=lam_max)
        train_mse = np.array([mean_squared_error(A_train, p.x, b_train) for p in result.points])
        test_mse = np.array([mean_squared_error(A_test, p.x, b_test) for p in result.points])
        return train_mse, test_mse

    @time_it
    def fit(self, A, b):
        A = as_csr(A)
        b = np.asarray(b, dtype=float).ravel()
        n = A.shape[1]

        lam_max = lambda_max(A, b)
        if lam_max <= 0:
            logger.warning("lambda_max is %r: every lambda gives the zero solution", lam_max)
            self.best_lambda_ = 0.0
            self.coef_ = np.zeros(n)
            self.lambda_curve = self._init_results_table(0)
            return self

        lambdas = lambda_grid(lam_max, self.cfg.n_lambda, self.cfg.lambda_min_ratio)
        cv_splits: List[Tuple[np.ndarray, np.ndarray]] = list(
            KFold(n_splits=self.cfg.n_k_fold, shuffle=True, random_state=self.cfg.random_state).split(np.arange(A.shape[0]))
        )

        if self.cfg.n_jobs > 1:
            with ThreadPoolExecutor(max_workers=self.cfg.n_jobs) as ex:
                futs = [ex.submit(self._cv_fold_errors, A, b, train_idx, test_idx, lam_max) for train_idx, test_idx in cv_splits]
                fold_errors = [f.result() for f in futs]
        else:
            fold_errors = [self._cv_fold_errors(A, b, train_idx, test_idx, lam_max) for train_idx, test_idx in cv_splits]

        err_train = np.mean([tr for tr, _ in fold_errors], axis=0)
        err_test = np.mean([te for _, te in fold_errors], axis=0)

        # Final path on full data
        self.path_ = self._path().fit(A, b)

        results = self._init_results_table(len(lambdas))
        results["lambda"] = lambdas
        results["mse_cv_train"] = err_train
        results["mse_cv_test"] = err_test
        results["nnz"] = [int(np.count_nonzero(p.x)) for p in self.path_.points]
        self.lambda_curve = results

        best = int(np.argmin(err_test))
        self.best_lambda_ = float(lambdas[best])
        self.coef_ = self.path_.points[best].x
        logger.info("Best lambda = %.6e (step %d, cv test mse = %.6e)", self.best_lambda_, best, err_test[best])
        return self

    def _init_results_table(self, n_rows: int) -> pd.DataFrame:
        return pd.DataFrame(
            columns=["lambda", "mse_cv_train", "mse_cv_test", "nnz"],
            data=np.empty((n_rows, 4), dtype=object),
        )

    def predict(self, A) -> np.ndarray:
        if self.coef_ is None:
            raise ValueError("LassoPathCV is not fitted yet; call fit first.")
        return as_csr(A) @ self.coef_

    def plot_curve(self, ax=None):
        """Train / test cross-validated error against log10(lambda)."""
        if ax is None:
            _, ax = plt.subplots(figsize=(8, 6))
        curve = self.lambda_curve
        log_lams = np.log10(curve["lambda"].astype(float))
        ax.plot(log_lams, curve["mse_cv_train"].astype(float), label="train")
        ax.plot(log_lams, curve["mse_cv_test"].astype(float), label="test")
        if self.best_lambda_:
            ax.axvline(np.log10(self.best_lambda_), color="grey", linestyle="--", label="best lambda")
        ax.invert_xaxis()
        ax.set_xlabel("log10(lambda)")
        ax.set_ylabel("Mean squared error (cv)")
        ax.legend()
        return ax
