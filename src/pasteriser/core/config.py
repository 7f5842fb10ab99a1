"""Runtime configuration for the content-protection engine.

Defaults match the values the web client ships with so envelopes stay
interchangeable. Every field can be overridden through a ``PASTERISER_*``
environment variable, e.g. ``PASTERISER_PBKDF2_ITERATIONS=1000`` for a fast
local test run.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

ENV_PREFIX = "PASTERISER_"


@dataclass(frozen=True)
class EngineConfig:
    """Tunable knobs for key derivation, chunking and the worker."""

    pbkdf2_iterations: int = 300_000
    pbkdf2_iterations_large: int = 100_000
    # ciphertext bytes above which the reduced iteration count applies
    large_payload_threshold: int = 1_000_000
    chunk_size: int = 1024 * 1024
    queue_size: int = 64
    idle_timeout: float = 60.0
    cooperative_yield: bool = True

    def __post_init__(self):
        if self.pbkdf2_iterations < 1 or self.pbkdf2_iterations_large < 1:
            raise ValueError("PBKDF2 iteration counts must be positive")
        if self.chunk_size < 4:
            raise ValueError("chunk_size must be at least 4")
        if self.queue_size < 0:
            raise ValueError("queue_size must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a config from ``PASTERISER_<FIELD>`` variables, falling back to defaults."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            overrides[f.name] = _coerce(raw, f.default)
        return cls(**overrides)


def _coerce(raw: str, default):
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


# module-level default config, read lazily from the environment
_default_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    global _default_config
    if _default_config is None:
        _default_config = EngineConfig.from_env()
    return _default_config


def set_config(config: Optional[EngineConfig]) -> None:
    """Replace (or with ``None`` reset) the module-level default config."""
    global _default_config
    _default_config = config
