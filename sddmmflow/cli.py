import argparse
import sys

from sddmmflow.bench import run_benchmark, write_csv
from sddmmflow.config import BenchConfig
from sddmmflow.errors import InputError, SDDMMError
from sddmmflow.io import load_matrix
from sddmmflow.strategies import DEFAULT_STRATEGIES, STRATEGIES


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="sddmmflow-bench",
        description="Benchmark SDDMM strategies (cuSPARSE, CSR row-parallel, COO edge-parallel). "
                    "Set FLUSH_L2=ON to flush the cache before every timed iteration.",
    )
    ap.add_argument("matrix", help="sparse pattern file (.npz with shape/indptr/indices, or .mtx)")
    ap.add_argument("K", nargs="?", type=int, default=128, help="dense inner dimension (default 128)")
    ap.add_argument("--warmup", type=int, default=10)
    ap.add_argument("--repeat", type=int, default=100)
    ap.add_argument("--device", type=str, default=None)
    ap.add_argument("--dtype", type=str, default="float32")
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--strategies", nargs="+", default=list(DEFAULT_STRATEGIES),
                    choices=sorted(STRATEGIES))
    ap.add_argument("--no-validate", action="store_true", help="skip the reference cross-check")
    ap.add_argument("--csv", type=str, default=None, help="write results to this CSV file")
    ap.add_argument("--config", type=str, default=None, help="JSON file with BenchConfig overrides")
    return ap


def bench_main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        if args.K <= 0:
            raise InputError(f"K is the number of dense columns and must be > 0 (got {args.K})")
        overrides = dict(
            k=args.K,
            warmup_iters=args.warmup,
            repeat_iters=args.repeat,
            dtype=args.dtype,
            seed=args.seed,
            validate=not args.no_validate,
        )
        if args.device is not None:
            overrides["device"] = args.device
        config = BenchConfig.from_env(**overrides)
        if args.config:
            config.load(args.config)

        view = load_matrix(args.matrix)
        print(f"[sddmmflow] Flush cache before each timed iteration: {'ON' if config.flush_cache else 'OFF'}")
        results = run_benchmark(view, config, strategies=args.strategies)
        if args.csv:
            write_csv(results, args.csv)
            print(f"[sddmmflow] Results saved to: {args.csv}")
    except SDDMMError as e:
        print(f"[sddmmflow] ERROR: {e}", file=sys.stderr)
        return 1
    return 0


def main():
    sys.exit(bench_main())
