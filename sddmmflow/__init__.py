"""sddmmflow: Sampled dense-dense matrix multiplication kernels and benchmarks"""

from sddmmflow.errors import (
    SDDMMError,
    InputError,
    DimensionMismatch,
    OutOfRange,
    AllocationFailure,
    NumericMismatch,
)
from sddmmflow.config import BenchConfig, KernelConfig
from sddmmflow.sparse import SparseMatrixView
from sddmmflow.reference import ReferenceEngine
from sddmmflow.kernels import SDDMMKernel, RowParallelKernel, EdgeParallelKernel, CuSparseKernel
from sddmmflow.strategies import STRATEGIES, get_kernel, compute_sampled_product
from sddmmflow.bench import SDDMMBenchmark, BenchResult, run_benchmark
from sddmmflow.io import load_matrix, save_npz

__version__ = "0.1.0"

__all__ = [
    'SDDMMError',
    'InputError',
    'DimensionMismatch',
    'OutOfRange',
    'AllocationFailure',
    'NumericMismatch',
    'BenchConfig',
    'KernelConfig',
    'SparseMatrixView',
    'ReferenceEngine',
    'SDDMMKernel',
    'RowParallelKernel',
    'EdgeParallelKernel',
    'CuSparseKernel',
    'STRATEGIES',
    'get_kernel',
    'compute_sampled_product',
    'SDDMMBenchmark',
    'BenchResult',
    'run_benchmark',
    'load_matrix',
    'save_npz',
]
