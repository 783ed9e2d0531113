"""
Benchmark harness: warmup/timed iterations, optional cache flushing,
throughput, and cross-checking each strategy against the reference.
"""
from __future__ import annotations

import csv
import enum
import sys
import time
import warnings
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

import torch

from sddmmflow.config import BenchConfig, KernelConfig
from sddmmflow.errors import AllocationFailure, NumericMismatch
from sddmmflow.kernels.base import SDDMMKernel
from sddmmflow.reference import ReferenceEngine
from sddmmflow.sparse import SparseMatrixView
from sddmmflow.strategies import DEFAULT_STRATEGIES, get_kernel

_CPU_FLUSH_BYTES = 64 << 20
_CUDA_FLUSH_FALLBACK = 256 << 20


def gflops(nnz: int, k: int, mean_ms: float) -> float:
    """2 * nnz * K floating-point operations over the mean iteration time"""
    if nnz == 0 or k == 0:
        return 0.0
    if mean_ms <= 0:
        # below timer resolution
        return float("inf")
    return 2 * nnz * k / (mean_ms * 1e-3 * 1e9)


def synchronize(device: torch.device) -> None:
    if device.type == "cuda":
        torch.cuda.synchronize(device)


class Timer:
    """CUDA events on the GPU, perf_counter on the host; stop() drains the device"""

    def __init__(self, device):
        self.device = torch.device(device)
        self._use_events = self.device.type == "cuda"
        if self._use_events:
            self._start = torch.cuda.Event(enable_timing=True)
            self._stop = torch.cuda.Event(enable_timing=True)
        self._t0 = 0.0
        self._t1 = 0.0

    def start(self) -> None:
        if self._use_events:
            self._start.record()
        else:
            synchronize(self.device)
            self._t0 = time.perf_counter()

    def stop(self) -> None:
        if self._use_events:
            self._stop.record()
            self._stop.synchronize()
        else:
            synchronize(self.device)
            self._t1 = time.perf_counter()

    def elapsed_ms(self) -> float:
        if self._use_events:
            return self._start.elapsed_time(self._stop)
        return (self._t1 - self._t0) * 1e3


class CacheFlusher:
    """Evict the last-level cache by overwriting a scratch buffer"""

    def __init__(self, device, nbytes: Optional[int] = None):
        self.device = torch.device(device)
        if nbytes is None:
            nbytes = self._default_bytes()
        self.nbytes = nbytes
        self._buffer = torch.empty(nbytes, dtype=torch.int8, device=self.device)

    def _default_bytes(self) -> int:
        if self.device.type == "cuda":
            props = torch.cuda.get_device_properties(self.device)
            l2 = getattr(props, "L2_cache_size", 0)
            return 2 * l2 if l2 else _CUDA_FLUSH_FALLBACK
        return _CPU_FLUSH_BYTES

    def flush(self) -> None:
        self._buffer.zero_()
        synchronize(self.device)


@dataclass
class BenchResult:
    name: str
    M: int
    N: int
    K: int
    nnz: int
    time_ms: float
    matches: Optional[bool] = None
    max_abs_err: Optional[float] = None

    @property
    def sparsity(self) -> float:
        total = self.M * self.N
        return self.nnz / total if total else 0.0

    @property
    def gflops(self) -> float:
        return gflops(self.nnz, self.K, self.time_ms)

    def report(self) -> str:
        return (
            f"[{self.name}] Report: sddmm (A({self.M} x {self.K}) * B^T({self.N} x {self.K})) "
            f"odot S({self.M} x {self.N}) sparsity {self.sparsity:f} (nnz={self.nnz}) \n"
            f" Time {self.time_ms:f} (ms), Throughput {self.gflops:f} (gflops)."
        )

    def as_row(self) -> Dict:
        row = asdict(self)
        row["sparsity"] = self.sparsity
        row["gflops"] = self.gflops
        return row


CSV_FIELDS = ["name", "M", "N", "K", "nnz", "sparsity", "time_ms", "gflops", "matches", "max_abs_err"]


def write_csv(results: Iterable[BenchResult], path) -> None:
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for r in results:
            row = r.as_row()
            writer.writerow({k: row[k] for k in CSV_FIELDS})


def compare(C: torch.Tensor, C_ref: torch.Tensor, rtol: float, atol: float):
    """(within tolerance, max abs error) of C against the reference"""
    if C.shape != C_ref.shape:
        return False, float("inf")
    if C.numel() == 0:
        return True, 0.0
    c = C.detach().to("cpu", torch.float64)
    ref = C_ref.detach().to("cpu", torch.float64)
    ok = torch.allclose(c, ref, rtol=rtol, atol=atol, equal_nan=True)
    diff = (c - ref).abs()
    finite = torch.isfinite(diff)
    max_err = float(diff[finite].max()) if bool(finite.any()) else 0.0
    return ok, max_err


class BenchState(enum.Enum):
    IDLE = "idle"
    LOADED = "loaded"
    VALIDATED = "validated"
    BENCHMARKED = "benchmarked"
    REPORTED = "reported"


class SDDMMBenchmark:
    """
    Drives one benchmark run over a fixed pattern and K.

    load() -> validate() -> run(strategy)... -> report(). Operands are
    generated once and stay read-only; every launch writes a fresh C.
    """

    def __init__(
        self,
        view: SparseMatrixView,
        config: Optional[BenchConfig] = None,
        kernel_config: KernelConfig = KernelConfig(),
        verbose: bool = True,
        file=None,
    ):
        self.config = config if config is not None else BenchConfig()
        self.kernel_config = kernel_config
        self.device = torch.device(self.config.device)
        self.view = view
        self.verbose = verbose
        self.file = file if file is not None else sys.stdout
        self.state = BenchState.IDLE
        self.results: List[BenchResult] = []
        self.A = None
        self.B = None
        self.values = None
        self.C_ref = None
        self._flusher = None

    def _log(self, msg: str) -> None:
        if self.verbose:
            print(f"[sddmmflow] {msg}", file=self.file)

    def _require(self, *states: BenchState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise RuntimeError(f"benchmark is {self.state.value}; expected one of: {allowed}")

    def load(self) -> "SDDMMBenchmark":
        """Generate reproducible A, B and the don't-care sparse values"""
        self._require(BenchState.IDLE)
        cfg = self.config
        M, N = self.view.shape
        gen = torch.Generator(device="cpu").manual_seed(cfg.seed)
        try:
            self.A = torch.rand(M, cfg.k, generator=gen).to(self.device, cfg.torch_dtype)
            self.B = torch.rand(N, cfg.k, generator=gen).to(self.device, cfg.torch_dtype)
            self.values = torch.rand(self.view.nnz, generator=gen).to(self.device, cfg.torch_dtype)
            self.view = self.view.to(self.device)
            if cfg.flush_cache:
                self._flusher = CacheFlusher(self.device, cfg.flush_bytes)
        except (torch.cuda.OutOfMemoryError, MemoryError) as e:
            raise AllocationFailure(f"cannot allocate operands for M={M}, N={N}, K={cfg.k}: {e}") from e

        self._log(
            f"Loaded pattern {M} rows, {N} columns, {self.view.nnz} nnz on {self.device}. "
            f"Ignoring stored values, using random operands (seed={cfg.seed})."
        )
        self.state = BenchState.LOADED
        return self

    def validate(self) -> torch.Tensor:
        """Compute the acceptance baseline C_ref with the reference engine"""
        self._require(BenchState.LOADED)
        self.C_ref = ReferenceEngine().compute(self.view, self.A, self.B, k=self.config.k)
        self.state = BenchState.VALIDATED
        return self.C_ref

    def time_launcher(self, launch) -> float:
        """Mean milliseconds per launch under the configured protocol"""
        cfg = self.config
        timer = Timer(self.device)

        for _ in range(cfg.warmup_iters):
            launch()
        synchronize(self.device)

        if self._flusher is not None:
            total = 0.0
            for _ in range(cfg.repeat_iters):
                self._flusher.flush()
                timer.start()
                launch()
                timer.stop()
                total += timer.elapsed_ms()
            return total / cfg.repeat_iters

        timer.start()
        for _ in range(cfg.repeat_iters):
            launch()
        timer.stop()
        return timer.elapsed_ms() / cfg.repeat_iters

    def run(self, kernel) -> BenchResult:
        """Benchmark one strategy (tag or SDDMMKernel instance)"""
        self._require(BenchState.LOADED, BenchState.VALIDATED, BenchState.BENCHMARKED)
        if not isinstance(kernel, SDDMMKernel):
            kernel = get_kernel(kernel, self.kernel_config)

        launch = kernel.bind(self.view, self.A, self.B, values=self.values, k=self.config.k)
        result = BenchResult(
            name=kernel.label,
            M=self.view.num_rows,
            N=self.view.num_cols,
            K=self.config.k,
            nnz=self.view.nnz,
            time_ms=0.0,
        )

        try:
            if self.C_ref is not None:
                C = launch()
                synchronize(self.device)
                ok, err = compare(C, self.C_ref, self.config.rtol, self.config.atol)
                result.matches, result.max_abs_err = ok, err
                if not ok:
                    warnings.warn(
                        f"{kernel.label}: output deviates from reference (max abs err {err:.3e}, "
                        f"rtol={self.config.rtol}, atol={self.config.atol})",
                        NumericMismatch,
                    )
                del C
            result.time_ms = self.time_launcher(launch)
        except (torch.cuda.OutOfMemoryError, MemoryError) as e:
            raise AllocationFailure(f"{kernel.label}: out of memory during benchmark: {e}") from e

        self.results.append(result)
        self.state = BenchState.BENCHMARKED
        return result

    def run_all(self, strategies: Iterable[str] = DEFAULT_STRATEGIES) -> List[BenchResult]:
        results = []
        for tag in strategies:
            kernel = get_kernel(tag, self.kernel_config)
            if not kernel.supports(self.device, self.config.torch_dtype):
                self._log(f"Skipping {kernel.label}: not supported for {self.config.dtype} on {self.device}")
                continue
            results.append(self.run(kernel))
        return results

    def report(self) -> List[str]:
        self._require(BenchState.BENCHMARKED, BenchState.REPORTED)
        lines = []
        for r in self.results:
            lines.append(r.report())
            if r.matches is False:
                lines.append(f" Validation: MISMATCH (max abs err {r.max_abs_err:.3e})")
            elif r.matches:
                lines.append(" Validation: OK")
        for line in lines:
            print(line, file=self.file)
        self.state = BenchState.REPORTED
        return lines


def run_benchmark(
    view: SparseMatrixView,
    config: Optional[BenchConfig] = None,
    strategies: Iterable[str] = DEFAULT_STRATEGIES,
    kernel_config: KernelConfig = KernelConfig(),
    verbose: bool = True,
    file=None,
) -> List[BenchResult]:
    """Load, optionally validate, benchmark each strategy and print the report"""
    bench = SDDMMBenchmark(view, config, kernel_config, verbose=verbose, file=file)
    bench.load()
    if bench.config.validate:
        bench.validate()
    results = bench.run_all(strategies)
    if results:
        bench.report()
    return results
