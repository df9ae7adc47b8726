"""Runtime settings read from ``CARGODECK_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _env_float(key: str, default: float) -> float:
    return float(os.environ.get(key, default))


def _env_int(key: str, default: int) -> int:
    return int(os.environ.get(key, default))


def _env_optional_float(key: str) -> float | None:
    raw = os.environ.get(key, "").strip()
    return float(raw) if raw else None


def default_home() -> Path:
    """Directory holding the persisted cache and preferences."""
    override = os.environ.get("CARGODECK_HOME")
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "cargodeck"


@dataclass
class Settings:
    max_concurrency: int = 4
    scan_depth: int = 4
    terminate_grace: float = 5.0
    command_timeout: float | None = None
    cargo: str = "cargo"
    home: Path = field(default_factory=default_home)

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            max_concurrency=_env_int("CARGODECK_MAX_CONCURRENCY", 4),
            scan_depth=_env_int("CARGODECK_SCAN_DEPTH", 4),
            terminate_grace=_env_float("CARGODECK_TERMINATE_GRACE", 5.0),
            command_timeout=_env_optional_float("CARGODECK_COMMAND_TIMEOUT"),
            cargo=os.environ.get("CARGODECK_CARGO", "cargo"),
            home=default_home(),
        )

    @property
    def store_path(self) -> Path:
        return self.home / "state.json"
