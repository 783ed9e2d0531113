from .base import SDDMMKernel, check_operands
from .coo import EdgeParallelKernel
from .csr import RowParallelKernel
from .vendor import CuSparseKernel

__all__ = ["SDDMMKernel", "check_operands", "RowParallelKernel", "EdgeParallelKernel", "CuSparseKernel"]
