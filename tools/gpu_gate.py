#!/usr/bin/env python3
"""
GPU Gate: release sanity on a real GPU.

Runs:
1) Correctness of every strategy vs the reference on uniform, skewed,
   dense-row and empty patterns
2) Cold-cache (flushed) timing must not beat warm-cache timing

Exit code != 0 if something regresses.
"""
import argparse

import torch

from sddmmflow import patterns
from sddmmflow.bench import SDDMMBenchmark, compare
from sddmmflow.config import BenchConfig
from sddmmflow.reference import ReferenceEngine
from sddmmflow.strategies import get_kernel

torch.backends.cuda.matmul.allow_tf32 = False


def _assert_cuda():
    assert torch.cuda.is_available(), "CUDA not available"
    name = torch.cuda.get_device_name(0)
    cc = torch.cuda.get_device_capability(0)
    print(f"GPU: {name}  CC: {cc}")


def _patterns(M, N, density):
    return [
        ("uniform", patterns.uniform(M, N, density, seed=1)),
        ("skewed", patterns.skewed(M, N, int(M * N * density), alpha=1.5, seed=2)),
        ("dense-row", patterns.dense_row(M, N, row=M // 2)),
        ("empty", patterns.empty(M, N)),
    ]


def _mean_ms(view, k, flush, iters, warmup):
    cfg = BenchConfig(k=k, warmup_iters=warmup, repeat_iters=iters, flush_cache=flush,
                      validate=False, device="cuda")
    bench = SDDMMBenchmark(view, cfg, verbose=False).load()
    return bench.run("csr").time_ms


def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--M", type=int, default=4096)
    ap.add_argument("--N", type=int, default=4096)
    ap.add_argument("--density", type=float, default=0.01)
    ap.add_argument("--Ks", type=str, default="1,32,128")
    ap.add_argument("--strategies", type=str, default="cusparse,csr,coo")
    ap.add_argument("--rtol", type=float, default=1e-4)
    ap.add_argument("--atol", type=float, default=1e-4)
    ap.add_argument("--iters", type=int, default=50)
    ap.add_argument("--warmup", type=int, default=10)
    args = ap.parse_args()

    _assert_cuda()
    Ks = [int(x) for x in args.Ks.split(",")]
    tags = args.strategies.split(",")
    reference = ReferenceEngine()

    failures = 0
    print("\n=== Correctness (vs reference) ===")
    for pname, view in _patterns(args.M, args.N, args.density):
        view = view.to("cuda")
        for K in Ks:
            gen = torch.Generator().manual_seed(K)
            A = torch.rand(args.M, K, generator=gen).cuda()
            B = torch.rand(args.N, K, generator=gen).cuda()
            C_ref = reference.compute(view, A, B)
            for tag in tags:
                C = get_kernel(tag).compute(view, A, B)
                ok, err = compare(C, C_ref, args.rtol, args.atol)
                status = "ok" if ok else "FAIL"
                print(f" {pname:>9} K={K:<4} {tag:>8}: max abs err {err:.3e}  {status}")
                if not ok:
                    failures += 1

    print("\n=== Cache flush monotonicity (csr) ===")
    view = patterns.uniform(args.M, args.N, args.density, seed=1)
    warm = _mean_ms(view, 128, False, args.iters, args.warmup)
    cold = _mean_ms(view, 128, True, args.iters, args.warmup)
    print(f" warm {warm:.4f} ms, cold {cold:.4f} ms")
    if cold < warm * 0.95:
        print("  ⚠️  flushed timing faster than warm timing")
        failures += 1

    if failures:
        raise SystemExit(f"\n❌ GPU GATE FAILED: {failures} regressions detected.")
    print("\n✅ GPU GATE PASSED")


if __name__ == "__main__":
    main()
