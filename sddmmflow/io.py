"""Sparse pattern loading (.npz in the indptr/indices layout, Matrix Market)"""
from pathlib import Path

import numpy as np
import scipy.io

from sddmmflow.errors import InputError
from sddmmflow.sparse import SparseMatrixView


def load_npz(path) -> SparseMatrixView:
    """
    Load an ``.npz`` holding ``shape`` = [M, N, nnz], ``indptr`` and ``indices``.
    """
    try:
        data = np.load(path)
    except (OSError, ValueError) as e:
        raise InputError(f"{path}: cannot read npz ({e})") from e
    if not isinstance(data, np.lib.npyio.NpzFile):
        raise InputError(f"{path}: not an npz archive (holds a single {type(data).__name__})")

    try:
        with data:
            shape = data["shape"]
            indptr = data["indptr"]
            indices = data["indices"]
    except KeyError as e:
        raise InputError(f"{path}: missing array {e}") from e
    except (OSError, ValueError) as e:
        raise InputError(f"{path}: cannot read npz ({e})") from e

    if shape.size < 2:
        raise InputError(f"{path}: shape must hold at least [M, N] (got {shape.tolist()})")
    M, N = int(shape[0]), int(shape[1])
    if shape.size > 2 and int(shape[2]) != indices.size:
        raise InputError(f"{path}: shape says nnz={int(shape[2])} but indices has {indices.size}")
    return SparseMatrixView.from_csr(M, N, indptr, indices)


def load_mtx(path) -> SparseMatrixView:
    try:
        matrix = scipy.io.mmread(str(path))
    except (OSError, ValueError) as e:
        raise InputError(f"{path}: cannot read Matrix Market file ({e})") from e
    if not hasattr(matrix, "tocsr"):
        raise InputError(f"{path}: Matrix Market file is dense, expected coordinate format")
    csr = matrix.tocsr()
    csr.sort_indices()
    return SparseMatrixView.from_scipy(csr)


def load_matrix(path) -> SparseMatrixView:
    """Dispatch on file extension"""
    path = Path(path)
    if not path.exists():
        raise InputError(f"matrix file not found: {path}")
    suffix = path.suffix.lower()
    if suffix == ".npz":
        return load_npz(path)
    if suffix == ".mtx":
        return load_mtx(path)
    raise InputError(f"unsupported matrix format {suffix!r} (expected .npz or .mtx)")


def save_npz(view: SparseMatrixView, path) -> None:
    np.savez(
        path,
        shape=np.array([view.num_rows, view.num_cols, view.nnz], dtype=np.int32),
        indptr=view.indptr.cpu().numpy(),
        indices=view.indices.cpu().numpy(),
    )
