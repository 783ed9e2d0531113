import csv
import io
import json
import warnings

import pytest
import torch

from sddmmflow import BenchConfig, InputError, NumericMismatch, SDDMMBenchmark, SDDMMKernel
from sddmmflow import bench as bench_mod
from sddmmflow import patterns
from sddmmflow.bench import BenchResult, BenchState, gflops, run_benchmark, write_csv
from sddmmflow.kernels.csr import sddmm_csr_torch


def _config(**kw):
    base = dict(k=8, warmup_iters=2, repeat_iters=3, device="cpu", flush_bytes=1 << 16)
    base.update(kw)
    return BenchConfig(**base)


class _Corrupted(SDDMMKernel):
    name = "corrupted"
    label = "Corrupted"

    def _bind(self, view, A, B, k, values):
        def run():
            out = sddmm_csr_torch(view.indptr, view.indices, A, B, 1024)
            if out.numel():
                out[0] += 1.0
            return out
        return run


class _Counting(SDDMMKernel):
    name = "counting"
    label = "Counting"

    def __init__(self, events):
        super().__init__()
        self.events = events

    def _bind(self, view, A, B, k, values):
        def run():
            self.events.append("launch")
            return torch.zeros(view.nnz)
        return run


def test_gflops_formula_is_exact():
    r = BenchResult("x", M=100, N=200, K=64, nnz=12345, time_ms=0.37)
    assert r.gflops == 2 * 12345 * 64 / (0.37 * 1e-3 * 1e9)
    assert gflops(0, 64, 1.0) == 0.0


def test_report_line_format():
    r = BenchResult("SDDMM-csr", M=4, N=4, K=2, nnz=4, time_ms=0.5)
    text = r.report()
    assert text.startswith("[SDDMM-csr] Report: sddmm (A(4 x 2) * B^T(4 x 2)) odot S(4 x 4) sparsity 0.250000 (nnz=4)")
    assert "Time 0.500000 (ms)" in text
    assert f"Throughput {r.gflops:f} (gflops)." in text


def test_full_run_on_cpu(capsys):
    view = patterns.uniform(40, 30, 0.2, seed=1)
    results = run_benchmark(view, _config(), strategies=["csr", "coo"])
    assert [r.name for r in results] == ["SDDMM-csr", "SDDMM-coo"]
    for r in results:
        assert r.matches is True
        assert r.time_ms > 0
        assert r.nnz == view.nnz and r.K == 8
    out = capsys.readouterr().out
    assert "[SDDMM-csr] Report" in out and "[SDDMM-coo] Report" in out
    assert "Validation: OK" in out


def test_mismatch_is_reported_not_fatal():
    view = patterns.uniform(20, 20, 0.3, seed=2)
    bench = SDDMMBenchmark(view, _config(), verbose=False).load()
    bench.validate()
    with pytest.warns(NumericMismatch):
        bad = bench.run(_Corrupted())
    good = bench.run("coo")
    assert bad.matches is False and bad.max_abs_err == pytest.approx(1.0, rel=1e-3)
    assert good.matches is True
    lines = bench.report()
    assert any("MISMATCH" in line for line in lines)


def test_validation_can_be_skipped():
    view = patterns.uniform(10, 10, 0.3, seed=2)
    bench = SDDMMBenchmark(view, _config(validate=False), verbose=False).load()
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        r = bench.run(_Corrupted())
    assert r.matches is None


def test_state_machine_order():
    view = patterns.uniform(10, 10, 0.3, seed=2)
    bench = SDDMMBenchmark(view, _config(), verbose=False)
    assert bench.state is BenchState.IDLE
    with pytest.raises(RuntimeError):
        bench.run("csr")
    with pytest.raises(RuntimeError):
        bench.validate()
    bench.load()
    assert bench.state is BenchState.LOADED
    with pytest.raises(RuntimeError):
        bench.report()
    bench.validate()
    assert bench.state is BenchState.VALIDATED
    bench.run("csr")
    bench.run("csr")
    assert bench.state is BenchState.BENCHMARKED
    bench.report()
    assert bench.state is BenchState.REPORTED
    with pytest.raises(RuntimeError):
        bench.load()


def test_operands_are_reproducible():
    view = patterns.uniform(12, 9, 0.3, seed=2)
    a = SDDMMBenchmark(view, _config(seed=7), verbose=False).load()
    b = SDDMMBenchmark(view, _config(seed=7), verbose=False).load()
    c = SDDMMBenchmark(view, _config(seed=8), verbose=False).load()
    assert torch.equal(a.A, b.A) and torch.equal(a.B, b.B) and torch.equal(a.values, b.values)
    assert not torch.equal(a.A, c.A)
    assert a.values.shape == (view.nnz,)


def test_flush_before_every_timed_iteration(monkeypatch):
    events = []
    monkeypatch.setattr(bench_mod.CacheFlusher, "flush", lambda self: events.append("flush"))
    view = patterns.uniform(10, 10, 0.3, seed=2)
    bench = SDDMMBenchmark(view, _config(flush_cache=True, validate=False), verbose=False).load()
    bench.run(_Counting(events))
    warmup = ["launch"] * 2
    timed = ["flush", "launch"] * 3
    assert events == warmup + timed


def test_no_flush_times_whole_batch(monkeypatch):
    events = []
    monkeypatch.setattr(bench_mod.CacheFlusher, "flush", lambda self: events.append("flush"))
    starts = []
    orig_start = bench_mod.Timer.start

    def start(self):
        starts.append(len(events))
        orig_start(self)

    monkeypatch.setattr(bench_mod.Timer, "start", start)
    view = patterns.uniform(10, 10, 0.3, seed=2)
    bench = SDDMMBenchmark(view, _config(validate=False), verbose=False).load()
    bench.run(_Counting(events))
    assert "flush" not in events
    assert starts == [2]


def test_empty_pattern_benchmark():
    view = patterns.empty(5, 5)
    results = run_benchmark(view, _config(), strategies=["csr", "coo"], verbose=False)
    assert all(r.nnz == 0 and r.gflops == 0.0 and r.matches for r in results)


def test_csv_export(tmp_path):
    path = tmp_path / "results.csv"
    write_csv([BenchResult("SDDMM-coo", 4, 4, 2, 4, 0.25, True, 0.0)], path)
    with open(path) as f:
        rows = list(csv.DictReader(f))
    assert rows[0]["name"] == "SDDMM-coo"
    assert float(rows[0]["gflops"]) == pytest.approx(2 * 4 * 2 / (0.25e-3 * 1e9))


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("FLUSH_L2", "ON")
    assert BenchConfig.from_env(device="cpu").flush_cache is True
    monkeypatch.setenv("FLUSH_L2", "on")
    assert BenchConfig.from_env(device="cpu").flush_cache is False
    monkeypatch.delenv("FLUSH_L2")
    assert BenchConfig.from_env(device="cpu").flush_cache is False


def test_config_load_json(tmp_path):
    path = tmp_path / "bench.json"
    path.write_text(json.dumps({"bench": {"repeat_iters": 7, "rtol": 1e-3, "unknown": 1}}))
    cfg = BenchConfig(device="cpu").load(str(path))
    assert cfg.repeat_iters == 7 and cfg.rtol == 1e-3
    path.write_text(json.dumps({"k": 0}))
    with pytest.raises(InputError):
        BenchConfig(device="cpu").load(str(path))


@pytest.mark.parametrize("kwargs", [dict(k=0), dict(k=-3), dict(repeat_iters=0), dict(warmup_iters=-1), dict(dtype="int8")])
def test_bad_bench_config(kwargs):
    with pytest.raises(InputError):
        BenchConfig(device="cpu", **kwargs)


@pytest.mark.skipif(not torch.cuda.is_available(), reason="CUDA not available")
def test_cold_cache_not_faster_than_warm():
    view = patterns.uniform(4096, 4096, 0.01, seed=1)

    def mean_ms(flush):
        cfg = BenchConfig(k=128, warmup_iters=5, repeat_iters=30, flush_cache=flush, validate=False, device="cuda")
        return SDDMMBenchmark(view, cfg, verbose=False).load().run("csr").time_ms

    warm = min(mean_ms(False) for _ in range(3))
    cold = min(mean_ms(True) for _ in range(3))
    assert cold >= warm * 0.9


def test_gflops_below_timer_resolution():
    assert gflops(100, 8, 0.0) == float("inf")
    assert gflops(0, 8, 0.0) == 0.0


def test_default_strategies_on_cpu():
    view = patterns.uniform(30, 20, 0.2, seed=5)
    results = run_benchmark(view, _config(), verbose=False)
    assert [r.name for r in results] == ["cuSPARSE", "SDDMM-csr", "SDDMM-coo"]
    assert all(r.matches for r in results)


def test_half_precision_skips_vendor_baseline():
    view = patterns.uniform(30, 20, 0.2, seed=5)
    out = io.StringIO()
    bench = SDDMMBenchmark(view, _config(dtype="float16", validate=False), file=out).load()
    results = bench.run_all()
    assert [r.name for r in results] == ["SDDMM-csr", "SDDMM-coo"]
    assert "Skipping cuSPARSE: not supported for float16 on cpu" in out.getvalue()


@pytest.mark.parametrize("payload", [[1, 2], "k", 3, {"bench": [1]}, {"bench": None}])
def test_config_load_rejects_non_objects(tmp_path, payload):
    path = tmp_path / "bench.json"
    path.write_text(json.dumps(payload))
    with pytest.raises(InputError):
        BenchConfig(device="cpu").load(str(path))


@pytest.mark.parametrize("override", [
    {"k": "64"}, {"k": 64.0}, {"k": True}, {"repeat_iters": None}, {"rtol": "1e-3"},
    {"flush_cache": "ON"}, {"validate": 1}, {"dtype": 16}, {"flush_bytes": "1M"},
])
def test_config_load_rejects_wrong_types(tmp_path, override):
    path = tmp_path / "bench.json"
    path.write_text(json.dumps(override))
    with pytest.raises(InputError):
        BenchConfig(device="cpu").load(str(path))


def test_config_load_accepts_int_tolerance(tmp_path):
    path = tmp_path / "bench.json"
    path.write_text(json.dumps({"atol": 0, "flush_bytes": None, "flush_cache": True}))
    cfg = BenchConfig(device="cpu").load(str(path))
    assert cfg.atol == 0.0 and isinstance(cfg.atol, float)
    assert cfg.flush_bytes is None and cfg.flush_cache is True
