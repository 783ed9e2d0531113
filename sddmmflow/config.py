"""Benchmark and kernel configuration"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from typing import Optional

import torch

from sddmmflow.errors import InputError

_DTYPES = {
    "float32": torch.float32,
    "float16": torch.float16,
    "bfloat16": torch.bfloat16,
    "float64": torch.float64,
}


def _default_device() -> str:
    return "cuda" if torch.cuda.is_available() else "cpu"


def _is_pow2(x: int) -> bool:
    return x > 0 and (x & (x - 1)) == 0


def resolve_dtype(name: str) -> torch.dtype:
    try:
        return _DTYPES[name]
    except KeyError:
        raise InputError(f"unsupported dtype {name!r} (choose from {', '.join(_DTYPES)})") from None


@dataclass(frozen=True)
class KernelConfig:
    """
    Tile sizes for the parallel strategies.

    block_k:  K-slice handled by the cooperating lanes of one work unit
    block_nz: row nonzeros processed per inner step (CSR)
    block_e:  nonzero entries per work unit (COO)
    """
    block_k: int = 32
    block_nz: int = 16
    block_e: int = 64
    num_warps: int = 4
    cpu_chunk: int = 65536

    def __post_init__(self):
        for name in ("block_k", "block_nz", "block_e"):
            value = getattr(self, name)
            if not _is_pow2(value):
                raise InputError(f"{name} must be a positive power of two (got {value})")
        if self.num_warps <= 0:
            raise InputError(f"num_warps must be > 0 (got {self.num_warps})")
        if self.cpu_chunk <= 0:
            raise InputError(f"cpu_chunk must be > 0 (got {self.cpu_chunk})")


@dataclass
class BenchConfig:
    k: int = 128
    warmup_iters: int = 10
    repeat_iters: int = 100
    flush_cache: bool = False
    validate: bool = True
    rtol: float = 1e-4
    atol: float = 1e-5
    seed: int = 0
    device: str = field(default_factory=_default_device)
    dtype: str = "float32"
    flush_bytes: Optional[int] = None

    def __post_init__(self):
        self.check()

    def check(self) -> "BenchConfig":
        if self.k <= 0:
            raise InputError(f"K must be > 0 (got {self.k})")
        if self.warmup_iters < 0:
            raise InputError(f"warmup_iters must be >= 0 (got {self.warmup_iters})")
        if self.repeat_iters <= 0:
            raise InputError(f"repeat_iters must be > 0 (got {self.repeat_iters})")
        if self.flush_bytes is not None and self.flush_bytes <= 0:
            raise InputError(f"flush_bytes must be > 0 (got {self.flush_bytes})")
        resolve_dtype(self.dtype)
        return self

    @property
    def torch_dtype(self) -> torch.dtype:
        return resolve_dtype(self.dtype)

    @classmethod
    def from_env(cls, **overrides) -> "BenchConfig":
        """Build a config honouring FLUSH_L2=ON from the environment"""
        flush = os.environ.get("FLUSH_L2", "") == "ON"
        overrides.setdefault("flush_cache", flush)
        return cls(**overrides)

    def load(self, path: str) -> "BenchConfig":
        """Apply overrides from a JSON file"""
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InputError(f"cannot read config {path}: {e}") from e

        if not isinstance(data, dict):
            raise InputError(f"{path}: expected a JSON object, got {type(data).__name__}")
        section = data.get("bench", data)
        if not isinstance(section, dict):
            raise InputError(f"{path}: 'bench' must be an object, got {type(section).__name__}")

        known = {f.name for f in fields(self)}
        for key, value in section.items():
            if key in known:
                setattr(self, key, _coerce(key, value))
        return self.check()


_INT_FIELDS = ("k", "warmup_iters", "repeat_iters", "seed")
_FLOAT_FIELDS = ("rtol", "atol")
_BOOL_FIELDS = ("flush_cache", "validate")
_STR_FIELDS = ("device", "dtype")


def _coerce(key: str, value):
    """Type-check one JSON override; bools are not accepted as numbers"""
    if key in _INT_FIELDS or (key == "flush_bytes" and value is not None):
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif key in _FLOAT_FIELDS:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        value = float(value) if ok else value
    elif key in _BOOL_FIELDS:
        ok = isinstance(value, bool)
    elif key in _STR_FIELDS:
        ok = isinstance(value, str)
    else:
        ok = True
    if not ok:
        raise InputError(f"config field {key!r} has the wrong type ({type(value).__name__}: {value!r})")
    return value
