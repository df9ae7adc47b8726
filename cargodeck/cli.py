"""CLI entry point: cargodeck.

Subcommands:
    cargodeck scan [ROOT]                 # Discover projects and their build sizes
    cargodeck outdated|audit [PATH...]    # Per-project dependency checks
    cargodeck deps|toolchains|licenses    # Cross-project aggregate reports
    cargodeck run COMMAND [PATH...]       # Stream a cargo command (Ctrl-C cancels)
    cargodeck clean [PATH...]             # Remove build artifacts
    cargodeck cache KIND                  # Show the last stored report

Commands that take PATHs fall back to every visible project under the scan
root when none are given.
"""

from __future__ import annotations

import asyncio
import json
import signal
import sys
from collections.abc import Coroutine
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import click
from pydantic import BaseModel

from cargodeck.cache import CacheKind
from cargodeck.core.logging import setup_logging
from cargodeck.engines.analysis import summarize_audit, summarize_outdated
from cargodeck.engines.batch import failed_results
from cargodeck.engines.process import Completion, OutputLine, StreamEvent
from cargodeck.exceptions import CargoDeckError
from cargodeck.queue import CommandQueue, QueuedCommand
from cargodeck.schemas.results import OperationResult
from cargodeck.workspace import Workspace

T = TypeVar("T")


def _human_size(num: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if num < 1024:
            return f"{num:.0f} {unit}" if unit == "B" else f"{num:.1f} {unit}"
        num /= 1024
    return f"{num:.1f} TB"


def _workspace(ctx: click.Context) -> Workspace:
    if ctx.obj is None:
        ctx.obj = Workspace()
    return ctx.obj


def _run(coro: Coroutine[Any, Any, T]) -> T:
    try:
        return asyncio.run(coro)
    except CargoDeckError as e:
        raise click.ClickException(str(e)) from e


def _echo_json(value: Any) -> None:
    if isinstance(value, BaseModel):
        payload = value.model_dump(mode="json")
    elif isinstance(value, list):
        payload = [v.model_dump(mode="json") if isinstance(v, BaseModel) else v for v in value]
    else:
        payload = value
    click.echo(json.dumps(payload, indent=2))


def _progress(result: OperationResult[Any]) -> None:
    mark = "+" if result.success else "!"
    click.echo(f"  [{mark}] {result.project_name}", err=True)


def _echo_failures(results: list[OperationResult[Any]]) -> None:
    failed = failed_results(results)
    if not failed:
        return
    click.echo(f"\nFailed ({len(failed)}):", err=True)
    for r in failed:
        first_line = (r.error or "").splitlines()[0] if r.error else ""
        click.echo(f"  {r.project_name}: {first_line}", err=True)


async def _target_paths(
    ws: Workspace, paths: tuple[str, ...], root: str | None
) -> list[str]:
    if paths:
        return [str(Path(p).expanduser().resolve()) for p in paths]
    projects = await ws.scan(root)
    return [p.path for p in projects if not ws.preferences.is_hidden(p.path)]


def _paths_options(fn: Any) -> Any:
    fn = click.argument("paths", nargs=-1, type=click.Path(exists=True, file_okay=False))(fn)
    fn = click.option("--root", default=None, help="Scan root used when no PATHs are given")(fn)
    return fn


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """cargodeck: manage many Cargo projects at once."""
    setup_logging("DEBUG" if verbose else None)


# ── discovery ──


@main.command("scan")
@click.argument("root", required=False, type=click.Path(file_okay=False))
@click.option("--all", "show_all", is_flag=True, help="Include hidden projects")
@click.option("--set-default", is_flag=True, help="Remember ROOT as the default scan root")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def scan(
    ctx: click.Context, root: str | None, show_all: bool, set_default: bool, as_json: bool
) -> None:
    """Discover Cargo projects under ROOT."""
    ws = _workspace(ctx)
    projects = _run(ws.scan(root))
    if set_default and root:
        ws.preferences.set_scan_root(Path(root).expanduser().resolve())
    if not show_all:
        projects = [p for p in projects if not ws.preferences.is_hidden(p.path)]

    if as_json:
        click.echo(json.dumps([p.to_dict() for p in projects], indent=2))
        return

    total = 0
    for p in projects:
        total += p.target_size
        star = "*" if ws.preferences.is_favorite(p.path) else " "
        member = f" (workspace: {Path(p.workspace_root).name})" if p.workspace_root else ""
        click.echo(
            f"{star} {p.name:<30} {_human_size(p.target_size):>10}  "
            f"{p.dep_count:>3} deps  {p.path}{member}"
        )
    click.echo(f"\n{len(projects)} projects, {_human_size(total)} in target/")


@main.command("favorite")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.pass_context
def favorite(ctx: click.Context, path: str) -> None:
    """Toggle PATH as a favorite project."""
    ws = _workspace(ctx)
    state = ws.preferences.toggle_favorite(str(Path(path).resolve()))
    click.echo(f"{'Added to' if state else 'Removed from'} favorites: {path}")


@main.command("hide")
@click.argument("path", type=click.Path(exists=True, file_okay=False))
@click.pass_context
def hide(ctx: click.Context, path: str) -> None:
    """Toggle hiding PATH from scans and batch runs."""
    ws = _workspace(ctx)
    state = ws.preferences.toggle_hidden(str(Path(path).resolve()))
    click.echo(f"{'Hidden' if state else 'Unhidden'}: {path}")


# ── per-project checks ──


@main.command("outdated")
@_paths_options
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def outdated(ctx: click.Context, paths: tuple[str, ...], root: str | None, as_json: bool) -> None:
    """Check root dependencies for newer versions."""
    ws = _workspace(ctx)

    async def _go() -> list[OperationResult[Any]]:
        targets = await _target_paths(ws, paths, root)
        return await ws.check_outdated(targets, on_result=None if as_json else _progress)

    results = _run(_go())
    if as_json:
        _echo_json(results)
        return

    summary = summarize_outdated(results)
    for r in results:
        if r.success and r.data:
            click.echo(f"\n{r.project_name}:")
            for dep in r.data:
                click.echo(f"  {dep.name:<30} {dep.current:>12} -> {dep.latest}")
    click.echo(
        f"\n{summary.total_outdated} outdated dependencies in "
        f"{summary.projects_with_outdated}/{summary.projects_checked} projects"
    )
    _echo_failures(results)


@main.command("audit")
@_paths_options
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def audit(ctx: click.Context, paths: tuple[str, ...], root: str | None, as_json: bool) -> None:
    """Audit dependencies against the advisory database."""
    ws = _workspace(ctx)

    async def _go() -> list[OperationResult[Any]]:
        targets = await _target_paths(ws, paths, root)
        return await ws.check_audits(targets, on_result=None if as_json else _progress)

    results = _run(_go())
    if as_json:
        _echo_json(results)
        return

    summary = summarize_audit(results)
    for r in results:
        if not r.success or not (r.data.vulnerabilities or r.data.warnings):
            continue
        click.echo(f"\n{r.project_name}:")
        for v in r.data.vulnerabilities:
            click.echo(f"  [{v.severity}] {v.id} {v.package} {v.version}: {v.title}")
        for w in r.data.warnings:
            click.echo(f"  [{w.kind}] {w.package} {w.version}: {w.title}")
    severities = ", ".join(f"{k}: {v}" for k, v in sorted(summary.by_severity.items()))
    click.echo(
        f"\n{summary.total_vulnerabilities} vulnerabilities, {summary.total_warnings} warnings "
        f"in {summary.vulnerable_projects}/{summary.projects_checked} projects"
        + (f" ({severities})" if severities else "")
    )
    _echo_failures(results)


# ── aggregate reports ──


@main.command("deps")
@_paths_options
@click.option("--mismatches-only", is_flag=True, help="Only dependencies with several versions")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def deps(
    ctx: click.Context,
    paths: tuple[str, ...],
    root: str | None,
    mismatches_only: bool,
    as_json: bool,
) -> None:
    """Compare dependency versions across projects."""
    ws = _workspace(ctx)

    async def _go():
        targets = await _target_paths(ws, paths, root)
        return await ws.analyze_dependencies(targets, on_result=None if as_json else _progress)

    report = _run(_go())
    if as_json:
        _echo_json(report)
        return

    groups = report.mismatches if mismatches_only else report.dependencies
    for group in groups:
        flag = "!" if group.is_mismatch else " "
        click.echo(f"{flag} {group.name} ({group.project_count} projects)")
        if group.is_mismatch:
            for vg in group.versions:
                click.echo(f"    {vg.value}: {', '.join(vg.projects)}")
    click.echo(
        f"\n{report.total_unique_deps} unique dependencies, "
        f"{report.deps_with_mismatches} with version mismatches"
    )
    for err in report.errors:
        click.echo(f"  {err.project_name}: {err.error}", err=True)


@main.command("toolchains")
@_paths_options
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def toolchains(ctx: click.Context, paths: tuple[str, ...], root: str | None, as_json: bool) -> None:
    """Compare pinned toolchains and MSRVs across projects."""
    ws = _workspace(ctx)

    async def _go():
        targets = await _target_paths(ws, paths, root)
        return await ws.analyze_toolchains(targets, on_result=None if as_json else _progress)

    report = _run(_go())
    if as_json:
        _echo_json(report)
        return

    click.echo("Toolchains:")
    for vg in report.toolchain_groups:
        click.echo(f"  {vg.value}: {len(vg.projects)} projects")
    click.echo("MSRV:")
    for vg in report.msrv_groups:
        click.echo(f"  {vg.value}: {len(vg.projects)} projects")
    if report.has_mismatches:
        click.echo("\nProjects disagree on toolchain or MSRV.")
    for err in report.errors:
        click.echo(f"  {err.project_name}: {err.error}", err=True)


@main.command("licenses")
@_paths_options
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def licenses(ctx: click.Context, paths: tuple[str, ...], root: str | None, as_json: bool) -> None:
    """Group dependency licenses across projects."""
    ws = _workspace(ctx)

    async def _go():
        targets = await _target_paths(ws, paths, root)
        return await ws.check_licenses(targets, on_result=None if as_json else _progress)

    report = _run(_go())
    if as_json:
        _echo_json(report)
        return

    for group in report.license_groups:
        flag = "!" if group.is_problematic else " "
        click.echo(f"{flag} {group.license:<40} {len(group.packages)} packages")
    click.echo(
        f"\n{report.total_packages} packages, {report.problematic_count} with problematic licenses"
    )
    for err in report.errors:
        click.echo(f"  {err.project_name}: {err.error}", err=True)


# ── commands ──


def _install_interrupt(cancel: Any) -> None:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel)
    except (NotImplementedError, RuntimeError):
        pass


def _echo_event(prefix: str, event: StreamEvent) -> None:
    if isinstance(event, OutputLine):
        click.echo(f"{prefix}{event.line}", err=event.source == "stderr")
    elif isinstance(event, Completion):
        status = "ok" if event.success else ("cancelled" if event.cancelled else "failed")
        detail = f" (exit {event.exit_code})" if event.exit_code is not None else ""
        click.echo(f"{prefix}-- {status}{detail} in {event.duration_ms} ms", err=True)


@main.command("run")
@click.argument("command")
@click.argument("paths", nargs=-1, type=click.Path(exists=True, file_okay=False))
@click.option("-a", "--arg", "extra_args", multiple=True, help="Extra argument (repeatable)")
@click.pass_context
def run(ctx: click.Context, command: str, paths: tuple[str, ...], extra_args: tuple[str, ...]) -> None:
    """Stream `cargo COMMAND` in each PATH (default: current directory), one at a time.

    COMMAND is a cargo subcommand or a preset: fmt-check, clippy, test, build,
    build-release, check, doc, update, run, bench, tree.
    """
    ws = _workspace(ctx)
    targets = [str(Path(p).resolve()) for p in (paths or (".",))]
    for target in targets:
        ws.preferences.add_recent_project(target)

    if len(targets) == 1:
        completion = _run(_stream_one(ws, targets[0], command, list(extra_args)))
        ok = completion is not None and completion.success
    else:
        items = _run(_stream_many(ws, targets, command, list(extra_args)))
        ok = all(i.completion is not None and i.completion.success for i in items)
    if not ok:
        sys.exit(1)


async def _stream_one(
    ws: Workspace, path: str, command: str, args: list[str]
) -> Completion | None:
    completion: Completion | None = None
    async with ws.stream(path, command, args) as stream:
        _install_interrupt(lambda: ws.cancel_job(stream.job_id))
        async for event in stream:
            _echo_event("", event)
            if isinstance(event, Completion):
                completion = event
    return completion


async def _stream_many(
    ws: Workspace, paths: list[str], command: str, args: list[str]
) -> list[QueuedCommand]:
    def _on_event(item: QueuedCommand, event: StreamEvent) -> None:
        _echo_event(f"[{Path(item.path).name}] ", event)

    async with CommandQueue(ws, on_event=_on_event) as queue:
        items = [queue.submit(p, command, args) for p in paths]

        def _cancel_all() -> None:
            for item in items:
                queue.cancel(item.id)

        _install_interrupt(_cancel_all)
        await queue.join()
    return items


@main.command("clean")
@_paths_options
@click.option("--debug-only", is_flag=True, help="Only remove target/debug")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.confirmation_option(prompt="Remove build artifacts?")
@click.pass_context
def clean(
    ctx: click.Context,
    paths: tuple[str, ...],
    root: str | None,
    debug_only: bool,
    as_json: bool,
) -> None:
    """Delete target/ directories."""
    ws = _workspace(ctx)

    async def _go() -> list[OperationResult[Any]]:
        targets = await _target_paths(ws, paths, root)
        return await ws.clean(targets, debug_only, on_result=None if as_json else _progress)

    results = _run(_go())
    if as_json:
        _echo_json(results)
        return
    freed = sum(r.data.freed_bytes for r in results if r.success)
    click.echo(f"Freed {_human_size(freed)}")
    _echo_failures(results)


# ── cache ──


@main.command("cache")
@click.argument("kind", type=click.Choice([k.value for k in CacheKind]))
@click.option("--clear", is_flag=True, help="Drop the stored entry")
@click.pass_context
def cache(ctx: click.Context, kind: str, clear: bool) -> None:
    """Show (or clear) the last stored report of KIND as JSON."""
    ws = _workspace(ctx)
    if clear:
        ws.cache.clear(kind)
        click.echo(f"Cleared {kind}")
        return
    entry = ws.get_cache(kind)
    if entry is None:
        click.echo(f"No cached {kind} report", err=True)
        sys.exit(1)
    stamp = datetime.fromtimestamp(entry.timestamp).isoformat(timespec="seconds")
    click.echo(f"# {kind} @ {stamp}", err=True)
    _echo_json(entry.value)
