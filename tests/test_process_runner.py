"""Tests for ProcessRunner — drives the current interpreter as the child."""

from __future__ import annotations

import asyncio
import os
import sys

import pytest

from cargodeck.engines.jobs import CancelToken
from cargodeck.engines.process import Completion, OutputLine, ProcessRunner

pytestmark = pytest.mark.skipif(os.name != "posix", reason="process groups are POSIX only")

PY = sys.executable


@pytest.fixture
def runner():
    return ProcessRunner(terminate_grace=1.0)


async def _collect(stream) -> tuple[list[OutputLine], Completion]:
    lines: list[OutputLine] = []
    completion = None
    async for event in stream:
        if isinstance(event, OutputLine):
            lines.append(event)
        else:
            completion = event
    assert completion is not None
    return lines, completion


# ── buffered ─────────────────────────────────────────────────────────────


class TestRun:
    @pytest.mark.asyncio
    async def test_success(self, runner, tmp_path):
        res = await runner.run(tmp_path, PY, ["-c", "print('hello')"])
        assert res.success
        assert res.exit_code == 0
        assert res.stdout.strip() == "hello"
        assert res.project_path == str(tmp_path)

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, runner, tmp_path):
        res = await runner.run(
            tmp_path, PY, ["-c", "import sys; sys.stderr.write('bad\\n'); sys.exit(3)"]
        )
        assert not res.success
        assert res.exit_code == 3
        assert "bad" in res.stderr

    @pytest.mark.asyncio
    async def test_runs_in_working_directory(self, runner, tmp_path):
        res = await runner.run(tmp_path, PY, ["-c", "import os; print(os.getcwd())"])
        assert os.path.samefile(res.stdout.strip(), tmp_path)

    @pytest.mark.asyncio
    async def test_missing_executable(self, runner, tmp_path):
        res = await runner.run(tmp_path, "definitely-not-a-real-program-xyz")
        assert not res.success
        assert res.exit_code is None
        assert res.stderr.startswith("Failed to execute command")

    @pytest.mark.asyncio
    async def test_missing_working_directory(self, runner, tmp_path):
        res = await runner.run(tmp_path / "gone", PY, ["-c", "pass"])
        assert not res.success
        assert "working directory does not exist" in res.stderr

    @pytest.mark.asyncio
    async def test_cancel(self, runner, tmp_path):
        token = CancelToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.2, token.cancel)
        res = await runner.run(tmp_path, PY, ["-c", "import time; time.sleep(30)"], token)
        assert not res.success
        assert "command cancelled" in res.stderr
        assert res.duration_ms < 10_000

    @pytest.mark.asyncio
    async def test_timeout(self, runner, tmp_path):
        res = await runner.run(
            tmp_path, PY, ["-c", "import time; time.sleep(30)"], timeout=0.2
        )
        assert not res.success
        assert "timed out" in res.stderr

    @pytest.mark.asyncio
    async def test_sigterm_ignored_then_killed(self, tmp_path):
        runner = ProcessRunner(terminate_grace=0.3)
        script = (
            "import signal, sys, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(30)\n"
        )
        res = await runner.run(tmp_path, PY, ["-c", script], timeout=0.5)
        assert not res.success
        assert res.exit_code is not None and res.exit_code < 0


# ── streaming ────────────────────────────────────────────────────────────


class TestStream:
    @pytest.mark.asyncio
    async def test_lines_then_completion(self, runner, tmp_path):
        script = (
            "import sys\n"
            "print('one', flush=True)\n"
            "sys.stderr.write('warn\\n'); sys.stderr.flush()\n"
            "print('two', flush=True)\n"
        )
        lines, completion = await _collect(runner.stream(tmp_path, PY, ["-c", script]))

        assert [l.line for l in lines if l.source == "stdout"] == ["one", "two"]
        assert [l.line for l in lines if l.source == "stderr"] == ["warn"]
        assert completion.success
        assert completion.exit_code == 0
        assert sorted(completion.output) == ["one", "two", "warn"]

    @pytest.mark.asyncio
    async def test_completion_is_last_and_single(self, runner, tmp_path):
        events = [e async for e in runner.stream(tmp_path, PY, ["-c", "print('x')"])]
        assert isinstance(events[-1], Completion)
        assert sum(isinstance(e, Completion) for e in events) == 1

    @pytest.mark.asyncio
    async def test_failure_exit(self, runner, tmp_path):
        _, completion = await _collect(
            runner.stream(tmp_path, PY, ["-c", "import sys; sys.exit(4)"])
        )
        assert not completion.success
        assert completion.exit_code == 4

    @pytest.mark.asyncio
    async def test_spawn_failure(self, runner, tmp_path):
        lines, completion = await _collect(runner.stream(tmp_path, "no-such-binary-xyz"))
        assert not completion.success
        assert completion.exit_code is None
        assert lines and lines[0].line.startswith("Failed to start command")

    @pytest.mark.asyncio
    async def test_cancel_mid_output_keeps_earlier_lines(self, runner, tmp_path):
        script = (
            "import time\n"
            "for i in range(1000):\n"
            "    print(f'line {i}', flush=True)\n"
            "    time.sleep(0.05)\n"
        )
        token = CancelToken()
        seen: list[str] = []
        completion = None
        async for event in runner.stream(tmp_path, PY, ["-c", script], token):
            if isinstance(event, OutputLine):
                seen.append(event.line)
                if len(seen) == 3:
                    token.cancel()
            else:
                completion = event

        assert completion is not None
        assert not completion.success
        assert completion.cancelled
        assert seen[:3] == ["line 0", "line 1", "line 2"]
        assert completion.output[:3] == seen[:3]

    @pytest.mark.asyncio
    async def test_closing_stream_early_terminates_child(self, runner, tmp_path):
        pidfile = tmp_path / "pid"
        script = (
            "import os, time\n"
            f"open({str(pidfile)!r}, 'w').write(str(os.getpid()))\n"
            "print('started', flush=True)\n"
            "time.sleep(30)\n"
        )
        stream = runner.stream(tmp_path, PY, ["-c", script])
        async for event in stream:
            assert isinstance(event, OutputLine)
            break
        await stream.aclose()

        pid = int(pidfile.read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
