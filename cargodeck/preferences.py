"""User preferences: favorites, hidden projects, recent projects and scan root."""

from __future__ import annotations

import threading
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from cargodeck.cache.store import KeyValueStore, MemoryStore
from cargodeck.exceptions import CacheIOError

log = structlog.get_logger("cargodeck.preferences")

MAX_RECENT_PROJECTS = 5


def default_scan_root() -> Path:
    return Path.home() / "Workspace"


class PreferencesDocument(BaseModel):
    favorites: list[str] = Field(default_factory=list)
    hidden: list[str] = Field(default_factory=list)
    recent_projects: list[str] = Field(default_factory=list)
    scan_root: str | None = None


class Preferences:
    """Preferences kept under one store key.

    The store is read once on first access. Store failures are logged and
    the preferences keep working in memory.
    """

    STORE_KEY = "preferences"

    def __init__(self, store: KeyValueStore | None = None) -> None:
        self._store = store if store is not None else MemoryStore()
        self._lock = threading.Lock()
        self._doc: PreferencesDocument | None = None

    # ── favorites / hidden ───────────────────────────────────────────────

    def favorites(self) -> list[str]:
        with self._lock:
            return list(self._load().favorites)

    def is_favorite(self, path: str) -> bool:
        with self._lock:
            return path in self._load().favorites

    def toggle_favorite(self, path: str) -> bool:
        """Flip the favorite flag for *path*; returns the new state."""
        with self._lock:
            doc = self._load()
            state = _toggle(doc.favorites, path)
            self._persist()
        return state

    def hidden(self) -> list[str]:
        with self._lock:
            return list(self._load().hidden)

    def is_hidden(self, path: str) -> bool:
        with self._lock:
            return path in self._load().hidden

    def toggle_hidden(self, path: str) -> bool:
        with self._lock:
            doc = self._load()
            state = _toggle(doc.hidden, path)
            self._persist()
        return state

    # ── recent projects ──────────────────────────────────────────────────

    def recent_projects(self) -> list[str]:
        """Most recently used first."""
        with self._lock:
            return list(self._load().recent_projects)

    def add_recent_project(self, path: str) -> None:
        with self._lock:
            doc = self._load()
            recent = [p for p in doc.recent_projects if p != path]
            recent.insert(0, path)
            doc.recent_projects = recent[:MAX_RECENT_PROJECTS]
            self._persist()

    # ── scan root ────────────────────────────────────────────────────────

    def scan_root(self) -> Path:
        with self._lock:
            stored = self._load().scan_root
        return Path(stored).expanduser() if stored else default_scan_root()

    def set_scan_root(self, path: str | Path) -> None:
        with self._lock:
            self._load().scan_root = str(path)
            self._persist()

    # ── storage ──────────────────────────────────────────────────────────

    def _load(self) -> PreferencesDocument:
        # Caller holds self._lock.
        if self._doc is not None:
            return self._doc
        self._doc = PreferencesDocument()
        try:
            raw = self._store.get(self.STORE_KEY)
        except (CacheIOError, OSError) as exc:
            log.warning("preferences.load_failed", error=str(exc))
            return self._doc
        if raw is not None:
            try:
                self._doc = PreferencesDocument.model_validate(raw)
            except ValidationError as exc:
                log.warning("preferences.invalid", error=str(exc))
        return self._doc

    def _persist(self) -> None:
        assert self._doc is not None
        try:
            self._store.set(self.STORE_KEY, self._doc.model_dump(mode="json"))
        except (CacheIOError, OSError) as exc:
            log.warning("preferences.persist_failed", error=str(exc))


def _toggle(items: list[str], path: str) -> bool:
    if path in items:
        items.remove(path)
        return False
    items.append(path)
    return True
