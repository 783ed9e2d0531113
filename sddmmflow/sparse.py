"""Immutable CSR/COO view of an SDDMM sampling pattern"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import torch

from sddmmflow.errors import DimensionMismatch, OutOfRange

_INDEX_DTYPE = torch.int32


def expand_indptr(indptr: torch.Tensor) -> torch.Tensor:
    """Expand CSR row pointers into one row id per nonzero (the COO row array)"""
    num_rows = indptr.numel() - 1
    lengths = (indptr[1:] - indptr[:-1]).to(torch.int64)
    rows = torch.arange(num_rows, dtype=_INDEX_DTYPE, device=indptr.device)
    return torch.repeat_interleave(rows, lengths)


def _as_index_tensor(x, name: str) -> torch.Tensor:
    if isinstance(x, torch.Tensor):
        t = x.detach()
    else:
        t = torch.as_tensor(np.asarray(x, dtype=np.int64))
    if t.dim() != 1:
        raise DimensionMismatch(f"{name} must be 1D (got {t.dim()}D)")
    if t.dtype.is_floating_point or t.dtype == torch.bool:
        raise DimensionMismatch(f"{name} must be an integer array (got {t.dtype})")
    return t


@dataclass(frozen=True, eq=False)
class SparseMatrixView:
    """
    Sparsity pattern S (M x N) in CSR form plus the derived COO row array.

    Built through :meth:`from_csr`, which validates the pattern once so the
    kernels can index without bounds checks. Duplicate columns within a row
    are kept as independent entries.
    """
    num_rows: int
    num_cols: int
    indptr: torch.Tensor
    indices: torch.Tensor
    row: torch.Tensor

    @classmethod
    def from_csr(cls, num_rows: int, num_cols: int, indptr, indices) -> "SparseMatrixView":
        num_rows = int(num_rows)
        num_cols = int(num_cols)
        if num_rows < 0 or num_cols < 0:
            raise DimensionMismatch(f"shape must be non-negative (got {num_rows} x {num_cols})")

        indptr = _as_index_tensor(indptr, "indptr")
        indices = _as_index_tensor(indices, "indices")
        nnz = indices.numel()

        if indptr.numel() != num_rows + 1:
            raise DimensionMismatch(
                f"indptr must have M+1={num_rows + 1} entries (got {indptr.numel()})"
            )
        ptr64 = indptr.to(torch.int64).cpu()
        if int(ptr64[0]) != 0:
            raise DimensionMismatch(f"indptr[0] must be 0 (got {int(ptr64[0])})")
        if int(ptr64[-1]) != nnz:
            raise DimensionMismatch(f"indptr[M] must equal nnz={nnz} (got {int(ptr64[-1])})")
        if num_rows > 0 and bool((ptr64[1:] < ptr64[:-1]).any()):
            raise DimensionMismatch("indptr must be non-decreasing")

        if nnz > 0:
            idx64 = indices.to(torch.int64)
            lo = int(idx64.min())
            hi = int(idx64.max())
            if lo < 0 or hi >= num_cols:
                bad = lo if lo < 0 else hi
                raise OutOfRange(f"column index {bad} outside [0, {num_cols})")

        if nnz > torch.iinfo(_INDEX_DTYPE).max:
            raise DimensionMismatch(f"nnz={nnz} exceeds 32-bit index range")

        indptr = indptr.to(_INDEX_DTYPE).contiguous()
        indices = indices.to(_INDEX_DTYPE).contiguous()
        return cls(num_rows, num_cols, indptr, indices, expand_indptr(indptr).contiguous())

    @classmethod
    def from_scipy(cls, matrix) -> "SparseMatrixView":
        """Pattern of any scipy.sparse matrix; stored values are discarded"""
        csr = matrix.tocsr()
        return cls.from_csr(csr.shape[0], csr.shape[1], csr.indptr, csr.indices)

    @property
    def nnz(self) -> int:
        return self.indices.numel()

    @property
    def shape(self):
        return (self.num_rows, self.num_cols)

    @property
    def device(self) -> torch.device:
        return self.indices.device

    @property
    def sparsity(self) -> float:
        """Fraction of positions sampled, nnz / (M * N)"""
        total = self.num_rows * self.num_cols
        return self.nnz / total if total else 0.0

    def row_lengths(self) -> torch.Tensor:
        return (self.indptr[1:] - self.indptr[:-1]).to(torch.int64)

    def to(self, device) -> "SparseMatrixView":
        device = torch.device(device)
        if device == self.device:
            return self
        return SparseMatrixView(
            self.num_rows,
            self.num_cols,
            self.indptr.to(device),
            self.indices.to(device),
            self.row.to(device),
        )

    def __repr__(self) -> str:
        return (
            f"SparseMatrixView(shape=({self.num_rows}, {self.num_cols}), nnz={self.nnz}, "
            f"device={self.device})"
        )
