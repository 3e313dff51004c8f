import numpy as np
import pytest
import scipy.sparse as sparse

from lassopath.additional_functions.problem_gen import check_csr, generate, generate_problem


def test_generate_shape_and_values() -> None:
    A, nnz = generate(100, 50, 300, value_range=(-1.0, 1.0), seed=0)
    assert A.shape == (100, 50)
    assert A.format == "csr"
    assert nnz == A.nnz
    assert 0 < nnz <= 300
    assert A.data.min() >= -1.0 and A.data.max() < 1.0


def test_generate_is_reproducible() -> None:
    A1, _ = generate(30, 20, 100, seed=7)
    A2, _ = generate(30, 20, 100, seed=np.random.default_rng(7))
    assert (A1 != A2).nnz == 0


def test_generate_caps_at_dense() -> None:
    A, nnz = generate(3, 4, 1000, seed=1)
    assert nnz <= 12


def test_generate_empty() -> None:
    A, nnz = generate(5, 5, 0, seed=0)
    assert nnz == 0
    assert A.shape == (5, 5)


def test_generate_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError):
        generate(-1, 5, 10)
    with pytest.raises(ValueError):
        generate(5, 5, 10, value_range=(1.0, -1.0))


def test_generate_problem_observations() -> None:
    A, b = generate_problem(200, 40, 800, seed=3)
    assert A.shape == (200, 40)
    assert b.shape == (200,)
    # b = 4 * N(0, 1)
    assert 2.0 < b.std() < 6.0


def test_check_csr_accepts_valid_matrix() -> None:
    A = sparse.csr_matrix(np.array([[0.0, 1.0], [2.0, 0.0], [0.0, 0.0]]))
    assert check_csr(A) is A


def test_check_csr_rejects_other_formats() -> None:
    with pytest.raises(ValueError):
        check_csr(sparse.csc_matrix(np.eye(2)))
    with pytest.raises(ValueError):
        check_csr(np.eye(2))


def test_check_csr_rejects_out_of_range_column() -> None:
    A = sparse.csr_matrix(np.array([[0.0, 1.0], [2.0, 0.0]]))
    A.indices[0] = 5
    with pytest.raises(ValueError):
        check_csr(A)


def test_check_csr_rejects_decreasing_row_pointer() -> None:
    A = sparse.csr_matrix(np.array([[1.0, 1.0], [0.0, 0.0], [1.0, 0.0]]))
    A.indptr[1] = 3
    with pytest.raises(ValueError):
        check_csr(A)
