"""Launch external commands against a project directory."""

from __future__ import annotations

import asyncio
import os
import signal
import time
from collections.abc import AsyncIterator, Sequence
from pathlib import Path

import structlog

from cargodeck.engines.jobs.registry import CancelToken
from cargodeck.engines.process.models import Completion, OutputLine, Source, StreamEvent
from cargodeck.schemas.payloads import CommandResult

log = structlog.get_logger("cargodeck.process")

_POSIX = os.name == "posix"

# StreamReader line limit; longer lines are emitted in chunks of this size
_LINE_LIMIT = 1024 * 1024


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _stop_note(reason: str | None, timeout: float | None) -> str | None:
    if reason == "cancelled":
        return "command cancelled"
    if reason == "timeout":
        return f"command timed out after {timeout}s"
    return None


class ProcessRunner:
    """Run a program in a working directory, buffered or line-streamed.

    Neither mode raises for spawn failures, non-zero exits, cancellation or
    timeouts: all of them come back as an unsuccessful result.
    """

    def __init__(self, terminate_grace: float = 5.0, line_limit: int = _LINE_LIMIT) -> None:
        self.terminate_grace = terminate_grace
        self.line_limit = line_limit

    # ── buffered mode ────────────────────────────────────────────────────

    async def run(
        self,
        cwd: str | Path,
        program: str,
        args: Sequence[str] = (),
        token: CancelToken | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        start = time.monotonic()
        try:
            proc = await self._spawn(cwd, program, args)
        except OSError as exc:
            log.info("process.spawn_failed", program=program, cwd=str(cwd), error=str(exc))
            return CommandResult(
                project_path=str(cwd),
                command=program,
                args=list(args),
                success=False,
                stderr=f"Failed to execute command: {exc}",
                exit_code=None,
                duration_ms=_elapsed_ms(start),
            )

        reasons: list[str] = []
        watcher = asyncio.create_task(self._watch(proc, token, timeout, reasons))
        try:
            raw_out, raw_err = await proc.communicate()
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            if proc.returncode is None:
                await self._terminate(proc)

        reason = reasons[0] if reasons else None
        stdout = raw_out.decode("utf-8", errors="replace")
        stderr = raw_err.decode("utf-8", errors="replace")
        note = _stop_note(reason, timeout)
        if note:
            stderr = f"{stderr.rstrip()}\n{note}".lstrip("\n")

        result = CommandResult(
            project_path=str(cwd),
            command=program,
            args=list(args),
            success=proc.returncode == 0 and reason is None,
            stdout=stdout,
            stderr=stderr,
            exit_code=proc.returncode,
            duration_ms=_elapsed_ms(start),
        )
        log.debug(
            "process.finished",
            program=program,
            cwd=str(cwd),
            exit_code=result.exit_code,
            duration_ms=result.duration_ms,
            stopped=reason,
        )
        return result

    # ── streaming mode ───────────────────────────────────────────────────

    async def stream(
        self,
        cwd: str | Path,
        program: str,
        args: Sequence[str] = (),
        token: CancelToken | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield :class:`OutputLine` events as produced, then one :class:`Completion`.

        stdout and stderr are interleaved in arrival order. Closing the
        iterator early terminates the child.
        """
        start = time.monotonic()
        output: list[str] = []
        try:
            proc = await self._spawn(cwd, program, args)
        except OSError as exc:
            line = f"Failed to start command: {exc}"
            log.info("process.spawn_failed", program=program, cwd=str(cwd), error=str(exc))
            yield OutputLine(line, "stderr")
            yield Completion(
                success=False,
                exit_code=None,
                output=[line],
                duration_ms=_elapsed_ms(start),
                error=line,
            )
            return

        queue: asyncio.Queue[OutputLine | None] = asyncio.Queue()
        pumps = [
            asyncio.create_task(self._pump(proc.stdout, "stdout", queue)),
            asyncio.create_task(self._pump(proc.stderr, "stderr", queue)),
        ]
        reasons: list[str] = []
        watcher = asyncio.create_task(self._watch(proc, token, timeout, reasons))
        try:
            open_pumps = len(pumps)
            while open_pumps:
                item = await queue.get()
                if item is None:
                    open_pumps -= 1
                    continue
                output.append(item.line)
                yield item
            returncode = await proc.wait()
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            if proc.returncode is None:
                await self._terminate(proc)
            for pump in pumps:
                pump.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)

        reason = reasons[0] if reasons else None
        completion = Completion(
            success=returncode == 0 and reason is None,
            exit_code=returncode,
            output=output,
            duration_ms=_elapsed_ms(start),
            cancelled=reason == "cancelled",
            timed_out=reason == "timeout",
            error=_stop_note(reason, timeout),
        )
        log.debug(
            "process.stream_finished",
            program=program,
            cwd=str(cwd),
            exit_code=returncode,
            lines=len(output),
            stopped=reason,
        )
        yield completion

    # ── internals ────────────────────────────────────────────────────────

    async def _spawn(
        self, cwd: str | Path, program: str, args: Sequence[str]
    ) -> asyncio.subprocess.Process:
        if not Path(cwd).is_dir():
            raise FileNotFoundError(f"working directory does not exist: {cwd}")
        return await asyncio.create_subprocess_exec(
            program,
            *args,
            cwd=str(cwd),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=self.line_limit,
            # Own process group so grandchildren (test binaries, rustc) die too.
            start_new_session=_POSIX,
        )

    async def _pump(
        self,
        reader: asyncio.StreamReader | None,
        source: Source,
        queue: asyncio.Queue[OutputLine | None],
    ) -> None:
        try:
            if reader is None:
                return
            while True:
                try:
                    raw = await reader.readline()
                except ValueError:
                    # Line longer than the limit
                    raw = await reader.read(self.line_limit)
                if not raw:
                    break
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                queue.put_nowait(OutputLine(line, source))
        finally:
            queue.put_nowait(None)

    async def _watch(
        self,
        proc: asyncio.subprocess.Process,
        token: CancelToken | None,
        timeout: float | None,
        reasons: list[str],
    ) -> None:
        """Terminate *proc* when *token* fires or *timeout* elapses."""
        loop = asyncio.get_running_loop()
        fired = asyncio.Event()

        def _wake() -> None:
            try:
                loop.call_soon_threadsafe(fired.set)
            except RuntimeError:
                # Loop already closed; the command is long gone.
                pass

        if token is not None:
            token.add_callback(_wake)
        try:
            try:
                await asyncio.wait_for(fired.wait(), timeout)
                reasons.append("cancelled")
            except asyncio.TimeoutError:
                reasons.append("timeout")
            log.info("process.stopping", pid=proc.pid, reason=reasons[-1])
            await self._terminate(proc)
        finally:
            if token is not None:
                token.remove_callback(_wake)

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM, then SIGKILL after the grace period."""
        if proc.returncode is not None:
            return
        self._signal(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), self.terminate_grace)
        except asyncio.TimeoutError:
            log.warning("process.kill", pid=proc.pid, grace=self.terminate_grace)
            self._signal(proc, signal.SIGKILL if _POSIX else signal.SIGTERM)
            await proc.wait()

    @staticmethod
    def _signal(proc: asyncio.subprocess.Process, sig: int) -> None:
        try:
            if _POSIX:
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except (ProcessLookupError, PermissionError):
            pass
