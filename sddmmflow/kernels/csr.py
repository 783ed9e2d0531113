"""Row-parallel SDDMM over the CSR layout"""
import torch
import triton
import triton.language as tl

from sddmmflow.kernels.base import SDDMMKernel


@triton.jit
def sddmm_csr_kernel(
    indptr_ptr, indices_ptr,
    a_ptr, b_ptr, out_ptr,
    K, stride_am, stride_bn,
    BLOCK_NZ: tl.constexpr,
    BLOCK_K: tl.constexpr,
):
    # one program per row; A[row] slices are re-read from cache for each nonzero block
    row = tl.program_id(0)
    row_start = tl.load(indptr_ptr + row)
    row_end = tl.load(indptr_ptr + row + 1)

    offs_k = tl.arange(0, BLOCK_K)
    a_row = a_ptr + row.to(tl.int64) * stride_am

    for nz in range(row_start, row_end, BLOCK_NZ):
        offs_nz = nz + tl.arange(0, BLOCK_NZ)
        nz_mask = offs_nz < row_end
        cols = tl.load(indices_ptr + offs_nz, mask=nz_mask, other=0).to(tl.int64)

        acc = tl.zeros([BLOCK_NZ], dtype=tl.float32)
        for k0 in range(0, K, BLOCK_K):
            k_idx = k0 + offs_k
            k_mask = k_idx < K
            a = tl.load(a_row + k_idx, mask=k_mask, other=0.0).to(tl.float32)
            b = tl.load(
                b_ptr + cols[:, None] * stride_bn + k_idx[None, :],
                mask=nz_mask[:, None] & k_mask[None, :],
                other=0.0,
            ).to(tl.float32)
            # tree reduction across the K lanes
            acc += tl.sum(b * a[None, :], axis=1)

        tl.store(out_ptr + offs_nz, acc.to(out_ptr.dtype.element_ty), mask=nz_mask)


def sddmm_csr_torch(indptr, indices, A, B, chunk):
    """
    Host rendition of the row decomposition: each row of A is read once and
    broadcast over that row's nonzeros, rows are taken in groups of at most
    ``chunk`` nonzeros.
    """
    nnz = indices.numel()
    out = torch.empty(nnz, dtype=A.dtype, device=A.device)
    if nnz == 0:
        return out

    acc_dtype = torch.promote_types(A.dtype, torch.float32)
    ptr = indptr.to(torch.int64).cpu()
    lengths = ptr[1:] - ptr[:-1]
    num_rows = lengths.numel()

    r0 = 0
    while r0 < num_rows:
        # grow the group until it holds `chunk` nonzeros (at least one row)
        r1 = int(torch.searchsorted(ptr, int(ptr[r0]) + chunk, right=True)) - 1
        r1 = min(max(r1, r0 + 1), num_rows)
        lo, hi = int(ptr[r0]), int(ptr[r1])
        if hi > lo:
            a_rows = A[r0:r1].to(acc_dtype)
            a_rep = torch.repeat_interleave(a_rows, lengths[r0:r1].to(A.device), dim=0)
            cols = indices[lo:hi].to(torch.int64)
            b_rows = B.index_select(0, cols).to(acc_dtype)
            out[lo:hi] = (a_rep * b_rows).sum(dim=1).to(A.dtype)
        r0 = r1
    return out


class RowParallelKernel(SDDMMKernel):
    """
    CSR strategy: one work unit per row walks that row's nonzeros, with the
    K-length dot product split over BLOCK_K cooperating lanes. Rows of very
    different length leave some units idle while others finish; empty rows
    launch a unit that writes nothing.
    """

    name = "csr"
    label = "SDDMM-csr"

    def extra_repr(self) -> str:
        cfg = self.config
        return f"block_nz={cfg.block_nz}, block_k={cfg.block_k}, num_warps={cfg.num_warps}"

    def _bind(self, view, A, B, k, values):
        cfg = self.config
        indptr, indices = view.indptr, view.indices
        nnz, num_rows = view.nnz, view.num_rows

        if not A.is_cuda:
            return lambda: sddmm_csr_torch(indptr, indices, A, B, cfg.cpu_chunk)

        def run():
            out = torch.empty(nnz, dtype=A.dtype, device=A.device)
            if nnz == 0:
                return out
            sddmm_csr_kernel[(num_rows,)](
                indptr, indices,
                A, B, out,
                k, A.stride(0), B.stride(0),
                BLOCK_NZ=cfg.block_nz,
                BLOCK_K=cfg.block_k,
                num_warps=cfg.num_warps,
            )
            return out

        return run
