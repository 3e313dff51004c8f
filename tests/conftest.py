import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from lassopath.additional_functions.problem_gen import generate


@pytest.fixture
def small_problem():
    """Well-posed 60 x 12 problem with a sparse ground truth."""
    rng = np.random.default_rng(3)
    A, _ = generate(60, 12, 400, seed=rng)
    x_true = np.zeros(12)
    x_true[[1, 4, 9]] = [2.0, -1.5, 1.0]
    b = A @ x_true + 0.1 * rng.standard_normal(60)
    return A, b
