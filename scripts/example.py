# Lasso path benchmark on a random sparse problem, with both engines.

import logging

import matplotlib.pyplot as plt

from lassopath.additional_functions.problem_gen import generate_problem
from lassopath.engines import ADMMEngine, CvxpyEngine
from lassopath.path import LassoPath


logging.basicConfig(format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO)

m, n, nnz = 1000, 200, 10000
A, b = generate_problem(m, n, nnz, seed=0)
print(f"Problem: {m} x {n}, {A.nnz} nonzeros")

path = LassoPath(engine=ADMMEngine(), n_lambda=100)
result = path.fit(A, b)
print(result.to_frame().tail(10))
print(f"ADMM: {result.state.value} after {result.n_steps} steps, {result.elapsed:.3f} s")

# Same path without warm start: same end point, more work per step
cold = LassoPath(engine=ADMMEngine(), n_lambda=100, warm_start=False).fit(A, b)
print(f"ADMM (cold start): {cold.state.value} after {cold.n_steps} steps, {cold.elapsed:.3f} s")
print(f"Total ADMM iterations warm / cold : {result.to_frame()['iterations'].sum()} / {cold.to_frame()['iterations'].sum()}")

# CVXPy engine, lambda as a Parameter
result_cvx = LassoPath(engine=CvxpyEngine(solver="CLARABEL"), n_lambda=20, on_solver_failure="raise").fit(A, b)
print(f"CVXPy: {result_cvx.state.value} after {result_cvx.n_steps} steps, {result_cvx.elapsed:.3f} s")

result.plot_path()
plt.show()
