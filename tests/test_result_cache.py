"""Tests for ResultCache and the key-value stores behind it."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from cargodeck.cache import CacheKind, JsonFileStore, KeyValueStore, MemoryStore, ResultCache
from cargodeck.exceptions import CacheIOError
from cargodeck.schemas.payloads import OutdatedDependency
from cargodeck.schemas.reports import DependencyAnalysis, ItemGroup, ValueGroup
from cargodeck.schemas.results import OperationResult


def _clock(value: float = 1_700_000_000.0):
    return lambda: value


def _report() -> DependencyAnalysis:
    return DependencyAnalysis(
        dependencies=[
            ItemGroup(
                name="serde",
                versions=[
                    ValueGroup(value="1.0.150", projects=["a", "b"]),
                    ValueGroup(value="1.0.160", projects=["c"]),
                ],
                project_count=3,
            )
        ],
        total_unique_deps=1,
        deps_with_mismatches=1,
    )


# ── stores ───────────────────────────────────────────────────────────────


class TestJsonFileStore:
    def test_round_trip_and_other_keys_kept(self, tmp_path: Path):
        store = JsonFileStore(tmp_path / "state" / "state.json")
        store.set("a", {"x": 1})
        store.set("b", [1, 2])
        assert store.get("a") == {"x": 1}
        assert json.loads((tmp_path / "state" / "state.json").read_text()) == {
            "a": {"x": 1},
            "b": [1, 2],
        }

    def test_missing_file_is_empty(self, tmp_path: Path):
        assert JsonFileStore(tmp_path / "none.json").get("a") is None

    def test_corrupt_file(self, tmp_path: Path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(CacheIOError):
            JsonFileStore(path).get("a")

    def test_unwritable(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a dir")
        with pytest.raises(CacheIOError):
            JsonFileStore(blocker / "state.json").set("a", 1)

    def test_protocol(self, tmp_path: Path):
        assert isinstance(JsonFileStore(tmp_path / "s.json"), KeyValueStore)
        assert isinstance(MemoryStore(), KeyValueStore)


# ── cache ────────────────────────────────────────────────────────────────


class TestResultCache:
    def test_save_and_get(self):
        cache = ResultCache(clock=_clock())
        entry = cache.save(CacheKind.DEPENDENCIES, _report())
        assert entry.timestamp == 1_700_000_000
        assert cache.get("dependency-analysis") == entry
        assert cache.get(CacheKind.AUDIT) is None

    def test_one_entry_per_kind(self):
        cache = ResultCache()
        cache.save(CacheKind.DEPENDENCIES, _report())
        cache.save(CacheKind.DEPENDENCIES, DependencyAnalysis())
        assert cache.get(CacheKind.DEPENDENCIES).value.total_unique_deps == 0

    def test_result_lists_are_typed(self):
        cache = ResultCache()
        results = [
            OperationResult.ok(
                "/w/a", [OutdatedDependency(name="serde", current="1.0.150", latest="1.0.160")]
            ),
            OperationResult.fail("/w/b", "cargo-outdated is not installed"),
        ]
        entry = cache.save(CacheKind.OUTDATED, results)
        assert entry.value[0].data[0].latest == "1.0.160"
        assert not entry.value[1].success

    def test_wrong_shape_rejected(self):
        with pytest.raises(ValidationError):
            ResultCache().save(CacheKind.TOOLCHAIN, [{"nope": 1}])

    def test_persist_and_reload(self):
        store = MemoryStore()
        ResultCache(store, clock=_clock(42)).save(CacheKind.DEPENDENCIES, _report())

        reloaded = ResultCache(store)
        reloaded.load()
        entry = reloaded.get(CacheKind.DEPENDENCIES)
        assert entry.timestamp == 42
        assert entry.value == _report()

    def test_invalid_persisted_entry_skipped(self):
        store = MemoryStore()
        store.set(
            ResultCache.STORE_KEY,
            {
                "toolchain": {"value": "garbage", "timestamp": 1},
                "bogus-kind": {"value": {}, "timestamp": 1},
                "dependency-analysis": {
                    "value": _report().model_dump(mode="json"),
                    "timestamp": 7,
                },
            },
        )
        cache = ResultCache(store)
        cache.load()
        assert cache.get(CacheKind.TOOLCHAIN) is None
        assert cache.get(CacheKind.DEPENDENCIES).timestamp == 7

    def test_store_failures_are_non_fatal(self):
        store = MagicMock()
        store.get.side_effect = CacheIOError("disk on fire")
        store.set.side_effect = CacheIOError("disk on fire")

        cache = ResultCache(store)
        cache.load()
        entry = cache.save(CacheKind.DEPENDENCIES, _report())
        assert cache.get(CacheKind.DEPENDENCIES) == entry

    def test_clear(self):
        store = MemoryStore()
        cache = ResultCache(store)
        cache.save(CacheKind.DEPENDENCIES, _report())
        cache.save(CacheKind.TOOLCHAIN, {"projects": []})
        cache.clear(CacheKind.TOOLCHAIN)
        assert cache.get(CacheKind.TOOLCHAIN) is None
        assert set(store.get(ResultCache.STORE_KEY)) == {"dependency-analysis"}
        cache.clear()
        assert store.get(ResultCache.STORE_KEY) == {}

    def test_file_backed_round_trip(self, tmp_path: Path):
        store = JsonFileStore(tmp_path / "state.json")
        ResultCache(store).save(CacheKind.DEPENDENCIES, _report())
        cache = ResultCache(JsonFileStore(tmp_path / "state.json"))
        cache.load()
        assert cache.get(CacheKind.DEPENDENCIES).value.deps_with_mismatches == 1
