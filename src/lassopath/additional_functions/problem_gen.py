"""Random sparse test problems and compressed-row helpers."""

import numpy as np
import scipy.sparse as sparse


def _as_generator(seed):
    """Accept an int, None or an existing numpy Generator."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def check_csr(A):
    """
    Validate the compressed-row invariants of a sparse matrix.

    Parameters
    ----------
    A : scipy.sparse.csr_matrix
        Matrix to check.

    Raises
    ------
    ValueError
        If the row pointer is not a non-decreasing sequence running from 0 to nnz,
        or if a column index falls outside [0, n).

    """
    if not sparse.issparse(A) or A.format != "csr":
        raise ValueError(f"Expected a CSR matrix, got {type(A).__name__}")

    m, n = A.shape
    indptr, indices = A.indptr, A.indices

    if len(indptr) != m + 1:
        raise ValueError(f"Row pointer must have length {m + 1}, got {len(indptr)}")
    if indptr[0] != 0 or indptr[-1] != len(indices) or len(indices) != len(A.data):
        raise ValueError("Row pointer must start at 0 and end at nnz")
    if np.any(np.diff(indptr) < 0):
        raise ValueError("Row pointer must be non-decreasing")
    if len(indices) and (indices.min() < 0 or indices.max() >= n):
        raise ValueError(f"Column indices must lie in [0, {n})")
    return A


def generate(rows, cols, approx_nnz, value_range=(-1.0, 1.0), seed=None):
    """
    Draw a random sparse matrix with roughly ``approx_nnz`` nonzeros.

    Positions are drawn uniformly with replacement and duplicates are merged, so
    the actual count can fall short of the request. Values are uniform on
    ``value_range``.

    Parameters
    ----------
    rows, cols : int
        Matrix shape.
    approx_nnz : int
        Requested number of nonzeros.
    value_range : tuple of float
        Half-open interval the values are drawn from.
    seed : int, numpy.random.Generator or None
        Source of randomness.

    Returns
    -------
    A : scipy.sparse.csr_matrix
        The matrix, with sorted column indices in each row.
    nnz : int
        Actual number of stored entries. Callers should trust this, not ``approx_nnz``.

    """
    if rows < 0 or cols < 0 or approx_nnz < 0:
        raise ValueError("rows, cols and approx_nnz must be non-negative")
    low, high = value_range
    if high < low:
        raise ValueError(f"Invalid value range {value_range!r}")

    rng = _as_generator(seed)
    size = rows * cols
    draws = min(int(approx_nnz), size)

    flat = np.unique(rng.integers(0, size, size=draws)) if draws else np.empty(0, dtype=np.int64)
    row_ind, col_ind = np.divmod(flat, cols) if cols else (flat, flat)
    values = rng.uniform(low, high, size=flat.size)

    A = sparse.csr_matrix((values, (row_ind, col_ind)), shape=(rows, cols))
    A.sort_indices()
    return check_csr(A), int(A.nnz)


def generate_problem(m, n, approx_nnz, seed=None):
    """Lasso benchmark instance: A from :func:`generate` on [-1, 1] and ``b = 4 * N(0, 1)``."""
    rng = _as_generator(seed)
    A, _ = generate(m, n, approx_nnz, (-1.0, 1.0), seed=rng)
    b = 4.0 * rng.standard_normal(m)
    return A, b
