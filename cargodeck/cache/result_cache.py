"""ResultCache — latest aggregate result per analysis kind, with timestamp."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from cargodeck.cache.store import KeyValueStore
from cargodeck.exceptions import CacheIOError
from cargodeck.schemas.payloads import AuditReport, OutdatedDependency
from cargodeck.schemas.reports import DependencyAnalysis, LicenseAnalysis, ToolchainAnalysis
from cargodeck.schemas.results import OperationResult

log = structlog.get_logger("cargodeck.cache")


class CacheKind(str, Enum):
    OUTDATED = "outdated"
    AUDIT = "audit"
    DEPENDENCIES = "dependency-analysis"
    TOOLCHAIN = "toolchain"
    LICENSES = "license"


_ADAPTERS: dict[CacheKind, TypeAdapter[Any]] = {
    CacheKind.OUTDATED: TypeAdapter(list[OperationResult[list[OutdatedDependency]]]),
    CacheKind.AUDIT: TypeAdapter(list[OperationResult[AuditReport]]),
    CacheKind.DEPENDENCIES: TypeAdapter(DependencyAnalysis),
    CacheKind.TOOLCHAIN: TypeAdapter(ToolchainAnalysis),
    CacheKind.LICENSES: TypeAdapter(LicenseAnalysis),
}


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class CachedResult:
    kind: CacheKind
    value: Any
    timestamp: int  # unix seconds


class ResultCache:
    """At most one entry per :class:`CacheKind`, replaced wholesale on save.

    Persistence is best effort: store failures are logged and the cache
    keeps working in memory.
    """

    STORE_KEY = "scan-cache"

    def __init__(
        self, store: KeyValueStore | None = None, clock: Callable[[], float] = time.time
    ) -> None:
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[CacheKind, CachedResult] = {}

    def load(self) -> None:
        """Populate from the store; unreadable or invalid entries are skipped."""
        if self._store is None:
            return
        try:
            raw = self._store.get(self.STORE_KEY)
        except (CacheIOError, OSError) as exc:
            log.warning("cache.load_failed", error=str(exc))
            return
        if not isinstance(raw, dict):
            return

        loaded: dict[CacheKind, CachedResult] = {}
        for key, entry in raw.items():
            try:
                kind = CacheKind(key)
                value = _ADAPTERS[kind].validate_python(entry["value"])
                loaded[kind] = CachedResult(kind, value, int(entry["timestamp"]))
            except (ValueError, KeyError, TypeError, ValidationError) as exc:
                log.warning("cache.entry_invalid", kind=key, error=str(exc))
        with self._lock:
            self._entries.update(loaded)
        log.info("cache.loaded", kinds=sorted(k.value for k in loaded))

    def get(self, kind: CacheKind | str) -> CachedResult | None:
        kind = CacheKind(kind)
        with self._lock:
            return self._entries.get(kind)

    def save(self, kind: CacheKind | str, value: Any) -> CachedResult:
        """Replace the entry for *kind* and persist the whole cache.

        Raises ``pydantic.ValidationError`` if *value* has the wrong shape
        for *kind*.
        """
        kind = CacheKind(kind)
        normalized = _ADAPTERS[kind].validate_python(_jsonable(value))
        entry = CachedResult(kind, normalized, int(self._clock()))
        with self._lock:
            self._entries[kind] = entry
            self._persist()
        return entry

    def clear(self, kind: CacheKind | str | None = None) -> None:
        with self._lock:
            if kind is None:
                self._entries.clear()
            else:
                self._entries.pop(CacheKind(kind), None)
            self._persist()

    def _persist(self) -> None:
        # Caller holds self._lock.
        if self._store is None:
            return
        document = {
            kind.value: {
                "value": _ADAPTERS[kind].dump_python(entry.value, mode="json"),
                "timestamp": entry.timestamp,
            }
            for kind, entry in self._entries.items()
        }
        try:
            self._store.set(self.STORE_KEY, document)
        except (CacheIOError, OSError) as exc:
            log.warning("cache.persist_failed", error=str(exc))
