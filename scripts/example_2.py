# Cross-validated choice of lambda along the path.

import logging

import matplotlib.pyplot as plt
import numpy as np

from lassopath.additional_functions.problem_gen import generate
from lassopath.selection import LassoPathCV


logging.basicConfig(format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO)

rng = np.random.default_rng(42)
m, n = 400, 60
A, _ = generate(m, n, m * n // 4, seed=rng)

# sparse ground truth + noise
x_true = np.zeros(n)
x_true[rng.choice(n, size=6, replace=False)] = rng.normal(0, 3, size=6)
b = A @ x_true + 0.5 * rng.standard_normal(m)

cv = LassoPathCV(n_lambda=30, n_k_fold=5, random_state=0, n_jobs=4)
cv.fit(A, b)
print(cv.lambda_curve)
print(f"Best lambda : {cv.best_lambda_:.4f}")
print(f"Support found : {np.flatnonzero(cv.coef_)}")
print(f"True support  : {np.flatnonzero(x_true)}")

cv.plot_curve()
plt.show()
