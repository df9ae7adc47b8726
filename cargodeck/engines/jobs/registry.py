"""Thread-safe registry of active background jobs."""

from __future__ import annotations

import itertools
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import structlog

from cargodeck.exceptions import DuplicateJobError

log = structlog.get_logger("cargodeck.jobs")

_id_counter = itertools.count(1)


class CancelToken:
    """Cooperative cancellation flag.

    Callbacks run exactly once, on the thread that calls :meth:`cancel`
    (or immediately on registration if the token is already cancelled).
    Child tokens are cancelled with their parent but not the other way round.
    """

    def __init__(self, parent: CancelToken | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._parent = parent
        if parent is not None:
            parent.add_callback(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception:
                log.debug("jobs.cancel_callback_error", exc_info=True)

    def add_callback(self, cb: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(cb)
                return
        cb()

    def remove_callback(self, cb: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(cb)
            except ValueError:
                pass

    def child(self) -> CancelToken:
        return CancelToken(parent=self)

    def detach(self) -> None:
        """Stop following the parent token (call once the owning unit is done)."""
        if self._parent is not None:
            self._parent.remove_callback(self.cancel)
            self._parent = None

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


@dataclass(frozen=True)
class BackgroundJob:
    id: str
    label: str
    started_at: float  # unix seconds


class JobRegistry:
    """Active jobs keyed by id; every method is safe to call from any thread."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: dict[str, tuple[BackgroundJob, CancelToken]] = {}

    @staticmethod
    def new_id(prefix: str = "job") -> str:
        """Mint an id that is unique for the lifetime of the process."""
        return f"{prefix}-{int(time.time() * 1000)}-{next(_id_counter)}"

    def add(self, job_id: str, label: str, token: CancelToken | None = None) -> CancelToken:
        """Register a job and return its cancellation token.

        Raises :class:`DuplicateJobError` if *job_id* is already active.
        """
        token = token or CancelToken()
        with self._lock:
            if job_id in self._jobs:
                raise DuplicateJobError(job_id)
            job = BackgroundJob(id=job_id, label=label, started_at=self._clock())
            self._jobs[job_id] = (job, token)
        log.debug("jobs.added", job_id=job_id, label=label)
        return token

    def remove(self, job_id: str) -> None:
        with self._lock:
            removed = self._jobs.pop(job_id, None)
        if removed is not None:
            log.debug("jobs.removed", job_id=job_id)

    def cancel(self, job_id: str) -> bool:
        """Signal the job's token and drop it from the registry.

        Returns ``False`` for unknown ids.
        """
        with self._lock:
            entry = self._jobs.pop(job_id, None)
        if entry is None:
            log.info("jobs.cancel_unknown", job_id=job_id)
            return False
        job, token = entry
        log.info("jobs.cancelled", job_id=job_id, label=job.label)
        token.cancel()
        return True

    def get(self, job_id: str) -> BackgroundJob | None:
        with self._lock:
            entry = self._jobs.get(job_id)
        return entry[0] if entry is not None else None

    def list(self) -> list[BackgroundJob]:
        with self._lock:
            jobs = [job for job, _ in self._jobs.values()]
        return sorted(jobs, key=lambda j: (j.started_at, j.id))

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    @contextmanager
    def track(
        self, job_id: str, label: str, token: CancelToken | None = None
    ) -> Iterator[CancelToken]:
        """Register *job_id* for the duration of the ``with`` block."""
        token = self.add(job_id, label, token)
        try:
            yield token
        finally:
            self.remove(job_id)
