from __future__ import annotations

"""
Environment-driven settings.

  HYLI_NOIR_ALLOW_SUBPROCESS=1     required before nargo/bb are spawned
  HYLI_NOIR_NARGO_BIN=nargo
  HYLI_NOIR_BB_BIN=bb
  HYLI_NOIR_BB_SCHEME=ultra_honk
  HYLI_NOIR_MAX_STDERR=4000
  HYLI_NODE_URL=http://localhost:4321
  HYLI_NODE_TIMEOUT_SECS=30
  HYLI_NOIR_CIRCUIT_REGISTRY_PATH  optional overlay registry (json/yaml)

Values are read when Settings.from_env() is called; nothing is cached.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os


def _truthy(v: str) -> bool:
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    allow_subprocess: bool = False
    nargo_bin: str = "nargo"
    bb_bin: str = "bb"
    bb_scheme: str = "ultra_honk"
    max_stderr: int = 4000
    node_url: str = "http://localhost:4321"
    node_timeout_secs: float = 30.0
    circuit_registry_path: Optional[Path] = None

    @classmethod
    def from_env(cls) -> "Settings":
        reg = os.getenv("HYLI_NOIR_CIRCUIT_REGISTRY_PATH", "").strip()
        return cls(
            allow_subprocess=_truthy(os.getenv("HYLI_NOIR_ALLOW_SUBPROCESS", "0")),
            nargo_bin=os.getenv("HYLI_NOIR_NARGO_BIN", "nargo").strip() or "nargo",
            bb_bin=os.getenv("HYLI_NOIR_BB_BIN", "bb").strip() or "bb",
            bb_scheme=os.getenv("HYLI_NOIR_BB_SCHEME", "ultra_honk").strip() or "ultra_honk",
            max_stderr=_int_env("HYLI_NOIR_MAX_STDERR", 4000),
            node_url=os.getenv("HYLI_NODE_URL", "").strip() or "http://localhost:4321",
            node_timeout_secs=_float_env("HYLI_NODE_TIMEOUT_SECS", 30.0),
            circuit_registry_path=Path(reg) if reg else None,
        )
