"""Tests for CommandQueue (fake cargo)."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from cargodeck.engines.process import Completion, OutputLine
from cargodeck.queue import CommandQueue

pytestmark = pytest.mark.skipif(os.name != "posix", reason="fake cargo needs a shebang")


class TestCommandQueue:
    @pytest.mark.asyncio
    async def test_runs_in_submission_order_one_at_a_time(
        self, workspace, tmp_path: Path, make_project
    ):
        paths = [str(make_project(tmp_path, name)) for name in ("a", "b", "c")]
        events: list[tuple[str, str]] = []
        max_jobs = 0

        def _on_event(item, event) -> None:
            nonlocal max_jobs
            max_jobs = max(max_jobs, len(workspace.list_jobs()))
            if isinstance(event, OutputLine):
                events.append((Path(item.path).name, event.line))

        async with CommandQueue(workspace, on_event=_on_event) as queue:
            items = [queue.submit(p, "lines", ["2"]) for p in paths]
            await asyncio.wait_for(queue.join(), 30)

        assert [name for name, _ in events] == ["a", "a", "b", "b", "c", "c"]
        assert max_jobs == 1
        assert all(i.completion is not None and i.completion.success for i in items)
        assert queue.pending() == []

    @pytest.mark.asyncio
    async def test_drop_waiting_command(self, workspace, tmp_path: Path, make_project):
        p = str(make_project(tmp_path, "a"))
        async with CommandQueue(workspace) as queue:
            first = queue.submit(p, "lines", ["1"])
            second = queue.submit(p, "lines", ["1"])
            assert queue.cancel(second.id) is True
            await asyncio.wait_for(queue.join(), 30)

        assert first.completion is not None and first.completion.success
        assert second.completion is None
        assert second.dropped

    @pytest.mark.asyncio
    async def test_cancel_running_command(self, workspace, tmp_path: Path, make_project):
        p = str(make_project(tmp_path, "a"))
        completions: list[Completion] = []
        queue: CommandQueue

        def _on_event(item, event) -> None:
            if isinstance(event, OutputLine) and event.line == "line 1":
                queue.cancel(item.id)
            if isinstance(event, Completion):
                completions.append(event)

        async with CommandQueue(workspace, on_event=_on_event) as queue:
            queue.submit(p, "lines", ["500", "0.05"])
            queue.submit(p, "lines", ["1"])
            await asyncio.wait_for(queue.join(), 30)

        assert [c.success for c in completions] == [False, True]
        assert completions[0].cancelled
        assert workspace.list_jobs() == []

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, workspace):
        async with CommandQueue(workspace) as queue:
            assert queue.cancel("queued-missing") is False
