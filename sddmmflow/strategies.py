"""Strategy registry: tag -> SDDMMKernel implementation"""
from sddmmflow.config import KernelConfig
from sddmmflow.errors import InputError
from sddmmflow.kernels import CuSparseKernel, EdgeParallelKernel, RowParallelKernel, SDDMMKernel
from sddmmflow.reference import ReferenceEngine

STRATEGIES = {
    ReferenceEngine.name: ReferenceEngine,
    CuSparseKernel.name: CuSparseKernel,
    RowParallelKernel.name: RowParallelKernel,
    EdgeParallelKernel.name: EdgeParallelKernel,
}

# benchmarked by default, in report order
DEFAULT_STRATEGIES = ("cusparse", "csr", "coo")


def get_kernel(tag: str, config: KernelConfig = KernelConfig()) -> SDDMMKernel:
    try:
        cls = STRATEGIES[tag]
    except KeyError:
        raise InputError(f"unknown strategy {tag!r} (choose from {', '.join(STRATEGIES)})") from None
    return cls(config)


def compute_sampled_product(view, A, B, strategy: str = "csr", k=None, config: KernelConfig = KernelConfig()):
    """C = (A @ B^T) sampled at the nonzeros of ``view``, in ``view.indices`` order"""
    return get_kernel(strategy, config).compute(view, A, B, k=k)
