"""Parsers for rust-toolchain.toml and legacy rust-toolchain files."""

from __future__ import annotations

import sys

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from cargodeck.exceptions import ParseError


def parse_toolchain_toml(content: str) -> str | None:
    """Return ``[toolchain].channel`` from a rust-toolchain.toml, if any."""
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ParseError(f"invalid rust-toolchain.toml: {exc}") from exc
    spec = data.get("toolchain")
    if not isinstance(spec, dict):
        return None
    channel = spec.get("channel")
    return channel if isinstance(channel, str) and channel else None


def parse_toolchain_file(content: str) -> str | None:
    """Parse a legacy ``rust-toolchain`` file.

    The file holds either a bare channel name or, in newer toolchains, the
    same TOML as rust-toolchain.toml.
    """
    trimmed = content.strip()
    if not trimmed:
        return None
    if trimmed.startswith("[toolchain]"):
        return parse_toolchain_toml(trimmed)
    return trimmed.splitlines()[0].strip()
