"""CommandQueue — run streamed commands one after another, in submission order."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from cargodeck.engines.jobs import JobRegistry
from cargodeck.engines.process import Completion, StreamEvent

if TYPE_CHECKING:
    from cargodeck.workspace import Workspace

log = structlog.get_logger("cargodeck.queue")


@dataclass
class QueuedCommand:
    id: str
    path: str
    command: str
    args: list[str] = field(default_factory=list)
    completion: Completion | None = None
    dropped: bool = False


EventCallback = Callable[[QueuedCommand, StreamEvent], None]


class CommandQueue:
    """FIFO drained by a single worker task.

    Each command is streamed through :meth:`Workspace.stream` with its queue
    id as the job id, so a running command is cancelled like any other job.
    """

    def __init__(self, workspace: Workspace, on_event: EventCallback | None = None) -> None:
        self._workspace = workspace
        self._on_event = on_event
        self._queue: asyncio.Queue[QueuedCommand] = asyncio.Queue()
        self._waiting: dict[str, QueuedCommand] = {}
        self._task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> CommandQueue:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._worker(), name="cargodeck-command-queue")
            log.debug("queue.started")

    async def stop(self) -> None:
        """Stop the worker; a command in flight is terminated."""
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        log.debug("queue.stopped")

    def submit(self, path: str, command: str, args: Sequence[str] = ()) -> QueuedCommand:
        item = QueuedCommand(
            id=JobRegistry.new_id("queued"), path=path, command=command, args=list(args)
        )
        self._waiting[item.id] = item
        self._queue.put_nowait(item)
        log.info("queue.submitted", id=item.id, command=command, project=path)
        return item

    def pending(self) -> list[QueuedCommand]:
        """Commands not yet started, in the order they will run."""
        return list(self._waiting.values())

    def cancel(self, item_id: str) -> bool:
        """Drop a waiting command or cancel the running one."""
        item = self._waiting.pop(item_id, None)
        if item is not None:
            item.dropped = True
            log.info("queue.dropped", id=item_id)
            return True
        return self._workspace.cancel_job(item_id)

    async def join(self) -> None:
        """Wait until every submitted command has finished or been dropped."""
        await self._queue.join()

    async def _worker(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item.dropped:
                    continue
                self._waiting.pop(item.id, None)
                await self._run(item)
            except Exception:
                log.exception("queue.command_failed", id=item.id)
            finally:
                self._queue.task_done()

    async def _run(self, item: QueuedCommand) -> None:
        async with self._workspace.stream(
            item.path, item.command, item.args, job_id=item.id
        ) as stream:
            async for event in stream:
                if isinstance(event, Completion):
                    item.completion = event
                if self._on_event is not None:
                    try:
                        self._on_event(item, event)
                    except Exception:
                        log.debug("queue.callback_error", id=item.id, exc_info=True)
        log.info(
            "queue.finished",
            id=item.id,
            success=item.completion.success if item.completion else False,
        )
