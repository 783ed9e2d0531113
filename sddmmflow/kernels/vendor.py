"""Vendor-library baseline: torch.sparse.sampled_addmm (cuSPARSE SDDMM on CUDA)"""
import torch

from sddmmflow.kernels.base import SDDMMKernel


class CuSparseKernel(SDDMMKernel):
    """
    Runs ``alpha * (A @ B^T) * spy(S) + beta * S`` with alpha=1, beta=0, so the
    sparse matrix's own values never reach the result. The sparse descriptor
    is built once in ``bind``; the library sizes its scratch buffer itself.
    """

    name = "cusparse"
    label = "cuSPARSE"

    def supports(self, device, dtype=None) -> bool:
        # sampled_addmm has no half-precision implementation
        if dtype in (torch.float16, torch.bfloat16):
            return False
        device = torch.device(device)
        if device.type == "cuda":
            return torch.cuda.is_available()
        return device.type == "cpu"

    def _bind(self, view, A, B, k, values):
        if values is None:
            values = torch.rand(view.nnz, dtype=A.dtype, device=A.device)
        else:
            values = values.to(device=A.device, dtype=A.dtype)
        indptr, indices = view.indptr, view.indices
        if not A.is_cuda:
            indptr, indices = indptr.long(), indices.long()
        S = torch.sparse_csr_tensor(
            indptr, indices, values, size=view.shape, dtype=A.dtype, device=A.device
        )
        Bt = B.t()

        def run():
            if view.nnz == 0:
                return torch.empty(0, dtype=A.dtype, device=A.device)
            return torch.sparse.sampled_addmm(S, A, Bt, beta=0.0, alpha=1.0).values()

        return run
