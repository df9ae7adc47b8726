"""BatchExecutor — bounded-concurrency fan-out with per-project results."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog

from cargodeck.engines.jobs.registry import CancelToken, JobRegistry
from cargodeck.exceptions import NoProjectsError
from cargodeck.schemas.results import OperationResult, project_name_for

log = structlog.get_logger("cargodeck.batch")

Operation = Callable[[str, CancelToken], Awaitable[OperationResult[Any]]]
ResultCallback = Callable[[OperationResult[Any]], None]

CANCELLED_ERROR = "cancelled"


def failed_results(results: Sequence[OperationResult[Any]]) -> list[OperationResult[Any]]:
    """Only the failed entries of a batch, in batch order."""
    return [r for r in results if not r.success]


class BatchExecutor:
    """Run one operation over many project paths, never more than
    ``max_concurrency`` at a time.

    Results come back in input order, one per input path. A unit that fails
    (or raises) becomes a failed :class:`OperationResult`; it never aborts
    the batch.
    """

    def __init__(self, registry: JobRegistry, max_concurrency: int = 4) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._registry = registry
        self.max_concurrency = max_concurrency

    async def run(
        self,
        paths: Sequence[str],
        operation: Operation,
        *,
        label: str = "batch",
        job_id: str | None = None,
        token: CancelToken | None = None,
        on_result: ResultCallback | None = None,
    ) -> list[OperationResult[Any]]:
        """Execute *operation* for every path.

        The whole batch is registered as *job_id* (minted when omitted) and
        each in-flight unit as ``<job_id>/<index>``. Cancelling the batch job
        stops new launches and cancels running units; units that never ran
        are reported as failed with the error ``"cancelled"``. Pass *token* to
        observe or trigger cancellation from the caller side.

        Raises :class:`NoProjectsError` when *paths* is empty.
        """
        if not paths:
            raise NoProjectsError(f"{label}: no projects to run")

        job_id = job_id or JobRegistry.new_id("batch")
        results: list[OperationResult[Any] | None] = [None] * len(paths)
        sem = asyncio.Semaphore(self.max_concurrency)

        with self._registry.track(
            job_id, f"{label} ({len(paths)} projects)", token
        ) as batch_token:
            log.info("batch.started", job_id=job_id, label=label, projects=len(paths))

            async def _run_one(index: int, path: str) -> None:
                async with sem:
                    if batch_token.cancelled:
                        return
                    unit_id = f"{job_id}/{index}"
                    unit_token = batch_token.child()
                    try:
                        with self._registry.track(
                            unit_id, f"{label}: {project_name_for(path)}", unit_token
                        ):
                            result = await self._guarded(operation, path, unit_token)
                    finally:
                        unit_token.detach()
                    results[index] = result
                    if on_result is not None:
                        try:
                            on_result(result)
                        except Exception:
                            log.debug("batch.callback_error", job_id=job_id, exc_info=True)

            await asyncio.gather(*(_run_one(i, p) for i, p in enumerate(paths)))

        final = [
            r if r is not None else OperationResult.fail(p, CANCELLED_ERROR)
            for r, p in zip(results, paths)
        ]
        log.info(
            "batch.finished",
            job_id=job_id,
            label=label,
            projects=len(final),
            failed=len(failed_results(final)),
            cancelled=batch_token.cancelled,
        )
        return final

    @staticmethod
    async def _guarded(
        operation: Operation, path: str, token: CancelToken
    ) -> OperationResult[Any]:
        try:
            return await operation(path, token)
        except Exception as exc:
            log.error("batch.unit_failed", project=path, error=str(exc))
            return OperationResult.fail(path, str(exc) or type(exc).__name__)
