"""Run configuration for mdspec, read from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from mdspec.errors import ConfigError

REWRITE_ENV = "REWRITE_SPECS"
LOCK_TIMEOUT_ENV = "MDSPEC_LOCK_TIMEOUT"

_FALSE_VALUES = ("false", "off", "0", "")


@dataclass(frozen=True)
class RunConfig:
    """How a run treats its documents."""

    rewrite: bool = False
    lock_timeout: float | None = None  # seconds; None blocks until the lock is free


def parse_flag(value: str | None) -> bool:
    """Interpret an environment toggle. Unset and false-like values are off."""
    if value is None:
        return False
    return value.strip().lower() not in _FALSE_VALUES


def parse_timeout(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        timeout = float(value)
    except ValueError:
        raise ConfigError(f"{LOCK_TIMEOUT_ENV} must be a number of seconds, got {value!r}")
    if timeout < 0:
        raise ConfigError(f"{LOCK_TIMEOUT_ENV} must not be negative, got {value!r}")
    return timeout


def load_config(environ: Mapping[str, str] | None = None) -> RunConfig:
    """Build a RunConfig from ``environ`` (defaults to ``os.environ``)."""
    env = os.environ if environ is None else environ
    return RunConfig(
        rewrite=parse_flag(env.get(REWRITE_ENV)),
        lock_timeout=parse_timeout(env.get(LOCK_TIMEOUT_ENV)),
    )


def rewrite_enabled(environ: Mapping[str, str] | None = None) -> bool:
    """Whether the current run rewrites documents instead of comparing."""
    return load_config(environ).rewrite
