"""Synthetic sampling patterns for tests and the GPU gate"""
import numpy as np

from sddmmflow.errors import InputError
from sddmmflow.sparse import SparseMatrixView


def _from_row_lengths(num_rows, num_cols, lengths, rng):
    indptr = np.zeros(num_rows + 1, dtype=np.int64)
    np.cumsum(lengths, out=indptr[1:])
    indices = np.empty(int(indptr[-1]), dtype=np.int64)
    for r in range(num_rows):
        n = int(lengths[r])
        if n:
            cols = rng.choice(num_cols, size=n, replace=False)
            indices[indptr[r]:indptr[r + 1]] = np.sort(cols)
    return SparseMatrixView.from_csr(num_rows, num_cols, indptr, indices)


def uniform(num_rows: int, num_cols: int, density: float, seed: int = 0) -> SparseMatrixView:
    """Each position sampled independently with probability ``density``"""
    if not 0.0 <= density <= 1.0:
        raise InputError(f"density must be in [0, 1] (got {density})")
    rng = np.random.default_rng(seed)
    lengths = rng.binomial(num_cols, density, size=num_rows)
    return _from_row_lengths(num_rows, num_cols, lengths, rng)


def skewed(num_rows: int, num_cols: int, nnz: int, alpha: float = 1.5, seed: int = 0) -> SparseMatrixView:
    """
    Power-law row lengths: a few very long rows and many short or empty ones.

    Row r gets weight (r + 1) ** -alpha before shuffling, lengths are capped
    at ``num_cols`` so the total can come out below ``nnz``.
    """
    if nnz < 0:
        raise InputError(f"nnz must be >= 0 (got {nnz})")
    rng = np.random.default_rng(seed)
    if num_rows == 0 or num_cols == 0:
        return empty(num_rows, num_cols)
    weights = (np.arange(num_rows, dtype=np.float64) + 1.0) ** -alpha
    rng.shuffle(weights)
    lengths = rng.multinomial(nnz, weights / weights.sum())
    lengths = np.minimum(lengths, num_cols)
    return _from_row_lengths(num_rows, num_cols, lengths, rng)


def dense_row(num_rows: int, num_cols: int, row: int = 0) -> SparseMatrixView:
    """Every column of a single row sampled, all other rows empty"""
    if not 0 <= row < num_rows:
        raise InputError(f"row {row} outside [0, {num_rows})")
    indptr = np.zeros(num_rows + 1, dtype=np.int64)
    indptr[row + 1:] = num_cols
    return SparseMatrixView.from_csr(num_rows, num_cols, indptr, np.arange(num_cols))


def empty(num_rows: int, num_cols: int) -> SparseMatrixView:
    return SparseMatrixView.from_csr(
        num_rows, num_cols, np.zeros(num_rows + 1, dtype=np.int64), np.zeros(0, dtype=np.int64)
    )
