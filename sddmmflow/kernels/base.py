from __future__ import annotations

from typing import Callable, Optional

import torch

from sddmmflow.config import KernelConfig
from sddmmflow.errors import DimensionMismatch
from sddmmflow.sparse import SparseMatrixView

Launcher = Callable[[], torch.Tensor]


def check_operands(view: SparseMatrixView, A: torch.Tensor, B: torch.Tensor, k: Optional[int] = None) -> int:
    """Validate A (M x K) and B (N x K) against the view, return K"""
    if A.dim() != 2 or B.dim() != 2:
        raise DimensionMismatch(f"A and B must be 2D (got {A.dim()}D and {B.dim()}D)")
    if A.shape[0] != view.num_rows:
        raise DimensionMismatch(f"A has {A.shape[0]} rows, pattern has M={view.num_rows}")
    if B.shape[0] != view.num_cols:
        raise DimensionMismatch(f"B has {B.shape[0]} rows, pattern has N={view.num_cols}")
    if A.shape[1] != B.shape[1]:
        raise DimensionMismatch(f"inner dimensions differ: A is {tuple(A.shape)}, B is {tuple(B.shape)}")
    if k is not None and A.shape[1] != k:
        raise DimensionMismatch(f"K={k} but operands have inner dimension {A.shape[1]}")
    if view.row.numel() != view.nnz:
        raise DimensionMismatch(f"row array has {view.row.numel()} entries, nnz={view.nnz}")
    if A.dtype != B.dtype:
        raise DimensionMismatch(f"A and B dtypes differ ({A.dtype} vs {B.dtype})")
    if A.device != B.device:
        raise DimensionMismatch(f"A and B live on different devices ({A.device} vs {B.device})")
    return int(A.shape[1])


class SDDMMKernel:
    """
    One execution strategy for C[p] = dot(A[row[p]], B[col[p]]).

    ``bind`` does the per-problem setup once and returns a launcher that
    allocates a fresh output and runs the strategy, so the benchmark can
    time the launcher alone.
    """

    name = "base"
    label = "SDDMM"

    def __init__(self, config: KernelConfig = KernelConfig()):
        self.config = config

    def supports(self, device: torch.device, dtype: Optional[torch.dtype] = None) -> bool:
        return True

    def bind(
        self,
        view: SparseMatrixView,
        A: torch.Tensor,
        B: torch.Tensor,
        values: Optional[torch.Tensor] = None,
        k: Optional[int] = None,
    ) -> Launcher:
        k = check_operands(view, A, B, k)
        view = view.to(A.device)
        A = A.contiguous()
        B = B.contiguous()
        return self._bind(view, A, B, k, values)

    def _bind(self, view, A, B, k, values) -> Launcher:
        raise NotImplementedError

    def compute(self, view: SparseMatrixView, A: torch.Tensor, B: torch.Tensor, k: Optional[int] = None) -> torch.Tensor:
        return self.bind(view, A, B, k=k)()

    __call__ = compute

    def extra_repr(self) -> str:
        return ""

    def __repr__(self) -> str:
        extra = self.extra_repr()
        return f"{self.__class__.__name__}({extra})"
