"""Workspace — the command surface over discovery, batches, jobs and cache."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from contextlib import aclosing
from pathlib import Path
from typing import Any

import structlog

from cargodeck.cache.result_cache import CachedResult, CacheKind, ResultCache
from cargodeck.cache.store import JsonFileStore, KeyValueStore
from cargodeck.core.config import Settings
from cargodeck.engines.analysis import analyze_dependencies, analyze_licenses, analyze_toolchains
from cargodeck.engines.batch import BatchExecutor, OperationKind, Operations
from cargodeck.engines.batch.executor import ResultCallback
from cargodeck.engines.batch.operations import resolve_command
from cargodeck.engines.jobs import BackgroundJob, CancelToken, JobRegistry
from cargodeck.engines.locator import ProjectDescriptor, ProjectLocator
from cargodeck.engines.process import ProcessRunner, StreamEvent
from cargodeck.preferences import Preferences
from cargodeck.schemas.reports import DependencyAnalysis, LicenseAnalysis, ToolchainAnalysis
from cargodeck.schemas.results import OperationResult, project_name_for

log = structlog.get_logger("cargodeck.workspace")


class CommandStream:
    """Async iterator over one streamed command, registered as job ``job_id``.

    The job is removed when the stream finishes or is closed.
    """

    def __init__(
        self, job_id: str, events: AsyncGenerator[StreamEvent, None], registry: JobRegistry
    ) -> None:
        self.job_id = job_id
        self._events = events
        self._registry = registry

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._events

    async def aclose(self) -> None:
        await self._events.aclose()
        self._registry.remove(self.job_id)

    async def __aenter__(self) -> CommandStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class Workspace:
    """Wires the engines together from one :class:`Settings`.

    Everything heavy is async; the job registry and result cache can be
    queried from any thread.
    """

    def __init__(
        self, settings: Settings | None = None, store: KeyValueStore | None = None
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.registry = JobRegistry()
        self.runner = ProcessRunner(terminate_grace=self.settings.terminate_grace)
        self.executor = BatchExecutor(self.registry, self.settings.max_concurrency)
        self.operations = Operations(
            self.runner, cargo=self.settings.cargo, timeout=self.settings.command_timeout
        )
        self.locator = ProjectLocator(max_depth=self.settings.scan_depth)
        self.store = store if store is not None else JsonFileStore(self.settings.store_path)
        self.cache = ResultCache(self.store)
        self.cache.load()
        self.preferences = Preferences(self.store)

    # ── discovery ────────────────────────────────────────────────────────

    async def scan(self, root: str | Path | None = None) -> list[ProjectDescriptor]:
        """Discover projects under *root* (default: the preferred scan root).

        Raises :class:`InvalidRootError` for a missing or non-directory root.
        """
        root = Path(root) if root is not None else self.preferences.scan_root()
        with self.registry.track(JobRegistry.new_id("scan"), f"Scanning {root}"):
            return await asyncio.to_thread(self.locator.locate, root)

    # ── batches ──────────────────────────────────────────────────────────

    async def run_batch(
        self,
        paths: Sequence[str],
        kind: OperationKind | str,
        args: Sequence[str] = (),
        *,
        job_id: str | None = None,
        token: CancelToken | None = None,
        on_result: ResultCallback | None = None,
    ) -> list[OperationResult[Any]]:
        """Run one operation kind over *paths*; one result per path, input order.

        Raises :class:`NoProjectsError` when *paths* is empty.
        """
        kind = OperationKind(kind)
        operation = self.operations.for_kind(kind, args)
        return await self.executor.run(
            paths, operation, label=kind.value, job_id=job_id, token=token, on_result=on_result
        )

    async def check_outdated(
        self, paths: Sequence[str], on_result: ResultCallback | None = None
    ) -> list[OperationResult[Any]]:
        token = CancelToken()
        results = await self.run_batch(
            paths, OperationKind.OUTDATED, token=token, on_result=on_result
        )
        self._remember(CacheKind.OUTDATED, results, token)
        return results

    async def check_audits(
        self, paths: Sequence[str], on_result: ResultCallback | None = None
    ) -> list[OperationResult[Any]]:
        token = CancelToken()
        results = await self.run_batch(paths, OperationKind.AUDIT, token=token, on_result=on_result)
        self._remember(CacheKind.AUDIT, results, token)
        return results

    async def analyze_dependencies(
        self, paths: Sequence[str], on_result: ResultCallback | None = None
    ) -> DependencyAnalysis:
        token = CancelToken()
        results = await self.run_batch(
            paths, OperationKind.DEPENDENCIES, token=token, on_result=on_result
        )
        report = analyze_dependencies(results)
        self._remember(CacheKind.DEPENDENCIES, report, token)
        return report

    async def analyze_toolchains(
        self, paths: Sequence[str], on_result: ResultCallback | None = None
    ) -> ToolchainAnalysis:
        token = CancelToken()
        results = await self.run_batch(
            paths, OperationKind.TOOLCHAIN, token=token, on_result=on_result
        )
        report = analyze_toolchains(results)
        self._remember(CacheKind.TOOLCHAIN, report, token)
        return report

    async def check_licenses(
        self, paths: Sequence[str], on_result: ResultCallback | None = None
    ) -> LicenseAnalysis:
        token = CancelToken()
        results = await self.run_batch(
            paths, OperationKind.LICENSES, token=token, on_result=on_result
        )
        report = analyze_licenses(results)
        self._remember(CacheKind.LICENSES, report, token)
        return report

    async def clean(
        self,
        paths: Sequence[str],
        debug_only: bool = False,
        on_result: ResultCallback | None = None,
    ) -> list[OperationResult[Any]]:
        args = ["--debug-only"] if debug_only else []
        return await self.run_batch(paths, OperationKind.CLEAN, args, on_result=on_result)

    def _remember(self, kind: CacheKind, value: Any, token: CancelToken) -> None:
        # A cancelled batch is partial; keep the previous entry.
        if token.cancelled:
            log.info("workspace.cache_skipped", kind=kind.value)
            return
        self.cache.save(kind, value)

    # ── streaming ────────────────────────────────────────────────────────

    def stream(
        self,
        path: str,
        command: str,
        args: Sequence[str] = (),
        *,
        job_id: str | None = None,
    ) -> CommandStream:
        """Start streaming ``cargo <command> <args>`` in *path*.

        The job is registered immediately, so it can be cancelled through
        :meth:`cancel_job` before or while iterating.
        """
        subcommand, full_args = resolve_command(command, args)
        job_id = job_id or JobRegistry.new_id("stream")
        token = self.registry.add(job_id, f"cargo {subcommand}: {project_name_for(path)}")

        async def _events() -> AsyncGenerator[StreamEvent, None]:
            events = self.runner.stream(
                path,
                self.settings.cargo,
                [subcommand, *full_args],
                token,
                self.settings.command_timeout,
            )
            try:
                async with aclosing(events):
                    async for event in events:
                        yield event
            finally:
                self.registry.remove(job_id)

        return CommandStream(job_id, _events(), self.registry)

    # ── jobs / cache ─────────────────────────────────────────────────────

    def cancel_job(self, job_id: str) -> bool:
        return self.registry.cancel(job_id)

    def list_jobs(self) -> list[BackgroundJob]:
        return self.registry.list()

    def get_cache(self, kind: CacheKind | str) -> CachedResult | None:
        return self.cache.get(kind)

    def save_cache(self, kind: CacheKind | str, value: Any) -> CachedResult:
        return self.cache.save(kind, value)
