"""Sequential SDDMM oracle"""
import numpy as np
import torch

from sddmmflow.kernels.base import SDDMMKernel


def _host_array(x: torch.Tensor) -> np.ndarray:
    x = x.detach().cpu()
    if x.dtype == torch.bfloat16:
        x = x.float()
    return x.numpy()


def sddmm_reference_host(rows: np.ndarray, cols: np.ndarray, A: np.ndarray, B: np.ndarray) -> np.ndarray:
    """
    C[p] = sum_t A[rows[p], t] * B[cols[p], t], accumulated for t = 0..K-1
    in ascending order with at least float32 precision.
    """
    acc_dtype = np.promote_types(A.dtype, np.float32)
    out = np.zeros(rows.shape[0], dtype=acc_dtype)
    for t in range(A.shape[1]):
        out += A[rows, t].astype(acc_dtype) * B[cols, t].astype(acc_dtype)
    return out


class ReferenceEngine(SDDMMKernel):
    """
    Acceptance baseline. Runs on the host regardless of where the operands
    live and returns C on the operands' device with their dtype.
    """

    name = "reference"
    label = "Reference"

    def _bind(self, view, A, B, k, values):
        rows = view.row.cpu().numpy().astype(np.int64)
        cols = view.indices.cpu().numpy().astype(np.int64)
        a = _host_array(A)
        b = _host_array(B)

        def run():
            out = sddmm_reference_host(rows, cols, a, b)
            return torch.from_numpy(out).to(device=A.device, dtype=A.dtype)

        return run
