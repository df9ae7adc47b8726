"""Per-project operations fanned out by the :class:`BatchExecutor`.

Each factory returns an ``Operation``: ``async (path, token) -> OperationResult``.
Tool-specific output parsing lives in :mod:`cargodeck.parsers`; here we only
launch the tool and decide success from its exit status and parse outcome.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Sequence
from enum import Enum
from pathlib import Path

import structlog

from cargodeck.engines.batch.executor import Operation
from cargodeck.engines.jobs.registry import CancelToken
from cargodeck.engines.locator.locator import TARGET_DIR, dir_size
from cargodeck.engines.process.runner import ProcessRunner
from cargodeck.exceptions import ParseError
from cargodeck.parsers.cargo_audit import parse_audit_json
from cargodeck.parsers.cargo_license import parse_license_json
from cargodeck.parsers.cargo_outdated import parse_outdated_json
from cargodeck.parsers.manifest import load_manifest
from cargodeck.parsers.toolchain import parse_toolchain_file, parse_toolchain_toml
from cargodeck.schemas.payloads import CleanResult, CommandResult, ToolchainInfo
from cargodeck.schemas.results import OperationResult

log = structlog.get_logger("cargodeck.batch")


class OperationKind(str, Enum):
    OUTDATED = "outdated"
    AUDIT = "audit"
    LICENSES = "license-scan"
    TOOLCHAIN = "toolchain-read"
    DEPENDENCIES = "dependency-read"
    COMMAND = "arbitrary-command"
    CLEAN = "clean"


# Named shortcuts for common cargo invocations: preset -> (subcommand, args)
COMMAND_PRESETS: dict[str, tuple[str, list[str]]] = {
    "fmt-check": ("fmt", ["--", "--check"]),
    "clippy": ("clippy", ["--", "-D", "warnings"]),
    "test": ("test", []),
    "build": ("build", []),
    "build-release": ("build", ["--release"]),
    "check": ("check", []),
    "doc": ("doc", ["--no-deps"]),
    "update": ("update", []),
    "run": ("run", []),
    "bench": ("bench", []),
    "tree": ("tree", []),
}

# cargo subcommand -> crate that provides it
_PLUGIN_TOOLS = {
    "outdated": "cargo-outdated",
    "audit": "cargo-audit",
    "license": "cargo-license",
    "upgrade": "cargo-edit",
    "bloat": "cargo-bloat",
    "tarpaulin": "cargo-tarpaulin",
    "nextest": "cargo-nextest",
}

_STDERR_TAIL_LINES = 20


def resolve_command(command: str, args: Sequence[str] = ()) -> tuple[str, list[str]]:
    """Expand a preset name; anything else is passed through as a subcommand."""
    if command in COMMAND_PRESETS:
        subcommand, preset_args = COMMAND_PRESETS[command]
        return subcommand, [*preset_args, *args]
    return command, list(args)


def _stderr_tail(stderr: str) -> str:
    lines = stderr.strip().splitlines()
    return "\n".join(lines[-_STDERR_TAIL_LINES:])


def failure_message(result: CommandResult, subcommand: str) -> str:
    """Human-readable reason a cargo invocation did not succeed."""
    if result.exit_code is None and result.stderr.startswith("Failed to execute"):
        return f"Failed to run cargo {subcommand}: {result.stderr}"
    if "no such command" in result.stderr.lower():
        tool = _PLUGIN_TOOLS.get(subcommand, f"cargo-{subcommand}")
        return f"{tool} is not installed (install with: cargo install {tool})"
    tail = _stderr_tail(result.stderr)
    if tail:
        return tail
    return f"cargo {subcommand} exited with code {result.exit_code}"


def read_toolchain(project_dir: Path) -> ToolchainInfo:
    """Pinned toolchain and MSRV for one project.

    Missing files mean ``None``; so do unparseable ones, each on its own, so a
    broken toolchain file does not hide the manifest's MSRV or vice versa.
    """
    info = ToolchainInfo()

    toml_path = project_dir / "rust-toolchain.toml"
    if toml_path.is_file():
        try:
            info.channel = parse_toolchain_toml(toml_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ParseError) as exc:
            log.warning("batch.toolchain_unreadable", path=str(toml_path), error=str(exc))
        info.toolchain = info.channel

    plain_path = project_dir / "rust-toolchain"
    if info.toolchain is None and plain_path.is_file():
        try:
            info.channel = parse_toolchain_file(plain_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ParseError) as exc:
            log.warning("batch.toolchain_unreadable", path=str(plain_path), error=str(exc))
        info.toolchain = info.channel

    if (project_dir / "Cargo.toml").is_file():
        try:
            info.msrv = load_manifest(project_dir).rust_version
        except (OSError, ParseError) as exc:
            log.warning("batch.manifest_unreadable", path=str(project_dir), error=str(exc))
    return info


def clean_target(project_dir: Path, debug_only: bool = False) -> CleanResult:
    """Delete ``target/`` (or ``target/debug``) and report the bytes freed."""
    victim = project_dir / TARGET_DIR
    if debug_only:
        victim = victim / "debug"
    if not victim.is_dir():
        return CleanResult(freed_bytes=0, removed=None)
    freed = dir_size(victim)
    shutil.rmtree(victim)
    return CleanResult(freed_bytes=freed, removed=str(victim))


class Operations:
    """Builds batch operations bound to one runner and cargo executable."""

    def __init__(
        self, runner: ProcessRunner, cargo: str = "cargo", timeout: float | None = None
    ) -> None:
        self.runner = runner
        self.cargo = cargo
        self.timeout = timeout

    def for_kind(self, kind: OperationKind | str, args: Sequence[str] = ()) -> Operation:
        """Operation for *kind*.

        ``args`` is the command (and its arguments) for ``arbitrary-command``
        and ``["--debug-only"]`` optionally for ``clean``; other kinds ignore it.
        """
        kind = OperationKind(kind)
        if kind is OperationKind.OUTDATED:
            return self.outdated()
        if kind is OperationKind.AUDIT:
            return self.audit()
        if kind is OperationKind.LICENSES:
            return self.licenses()
        if kind is OperationKind.TOOLCHAIN:
            return self.toolchain()
        if kind is OperationKind.DEPENDENCIES:
            return self.dependencies()
        if kind is OperationKind.CLEAN:
            return self.clean(debug_only="--debug-only" in args)
        if not args:
            raise ValueError("arbitrary-command needs a command name")
        return self.command(args[0], args[1:])

    async def _cargo(
        self, path: str, args: Sequence[str], token: CancelToken
    ) -> CommandResult:
        return await self.runner.run(path, self.cargo, args, token, self.timeout)

    # ── external tools ───────────────────────────────────────────────────

    def outdated(self) -> Operation:
        async def _op(path: str, token: CancelToken) -> OperationResult:
            res = await self._cargo(
                path, ["outdated", "--format", "json", "--root-deps-only"], token
            )
            if not res.success:
                return OperationResult.fail(path, failure_message(res, "outdated"))
            try:
                deps = parse_outdated_json(res.stdout)
            except ParseError as exc:
                return OperationResult.fail(path, f"Failed to parse output: {exc}")
            return OperationResult.ok(path, deps)

        return _op

    def audit(self) -> Operation:
        # cargo audit exits non-zero when it finds vulnerabilities, so the
        # report is parsed whatever the exit status.
        async def _op(path: str, token: CancelToken) -> OperationResult:
            res = await self._cargo(path, ["audit", "--json"], token)
            if token.cancelled or res.exit_code is None:
                return OperationResult.fail(path, failure_message(res, "audit"))
            try:
                report = parse_audit_json(res.stdout)
            except ParseError as exc:
                if "no such command" in res.stderr.lower():
                    return OperationResult.fail(path, failure_message(res, "audit"))
                return OperationResult.fail(path, f"{exc}. Stderr: {_stderr_tail(res.stderr)}")
            return OperationResult.ok(path, report)

        return _op

    def licenses(self) -> Operation:
        async def _op(path: str, token: CancelToken) -> OperationResult:
            res = await self._cargo(path, ["license", "--json"], token)
            if token.cancelled or res.exit_code is None:
                return OperationResult.fail(path, failure_message(res, "license"))
            try:
                entries = parse_license_json(res.stdout)
            except ParseError as exc:
                if "no such command" in res.stderr.lower():
                    return OperationResult.fail(path, failure_message(res, "license"))
                return OperationResult.fail(path, f"{exc}. Stderr: {_stderr_tail(res.stderr)}")
            return OperationResult.ok(path, entries)

        return _op

    def command(self, command: str, args: Sequence[str] = ()) -> Operation:
        subcommand, full_args = resolve_command(command, args)

        async def _op(path: str, token: CancelToken) -> OperationResult:
            res = await self._cargo(path, [subcommand, *full_args], token)
            if not res.success:
                return OperationResult.fail(path, failure_message(res, subcommand))
            return OperationResult.ok(
                path, res.model_copy(update={"command": subcommand, "args": full_args})
            )

        return _op

    # ── filesystem reads ─────────────────────────────────────────────────

    def toolchain(self) -> Operation:
        async def _op(path: str, token: CancelToken) -> OperationResult:
            try:
                info = await asyncio.to_thread(read_toolchain, Path(path))
            except (OSError, ParseError) as exc:
                return OperationResult.fail(path, str(exc))
            return OperationResult.ok(path, info)

        return _op

    def dependencies(self) -> Operation:
        async def _op(path: str, token: CancelToken) -> OperationResult:
            try:
                manifest = await asyncio.to_thread(load_manifest, Path(path))
            except OSError as exc:
                return OperationResult.fail(path, f"Failed to read Cargo.toml: {exc}")
            except ParseError as exc:
                return OperationResult.fail(path, str(exc))
            return OperationResult.ok(path, manifest.dependencies())

        return _op

    def clean(self, debug_only: bool = False) -> Operation:
        async def _op(path: str, token: CancelToken) -> OperationResult:
            if token.cancelled:
                return OperationResult.fail(path, "cancelled")
            try:
                result = await asyncio.to_thread(clean_target, Path(path), debug_only)
            except OSError as exc:
                return OperationResult.fail(path, str(exc))
            log.info("batch.cleaned", project=path, freed_bytes=result.freed_bytes)
            return OperationResult.ok(path, result)

        return _op
