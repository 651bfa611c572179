"""Tests for checkpoint storage, commits and reload."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from inferbatch.core.checkpoint import (
    Checkpoint,
    CheckpointLoadError,
    CheckpointPersistError,
    CheckpointStore,
    InMemoryCheckpointStore,
    JsonFileCheckpointStore,
)
from inferbatch.core.models import CheckpointState, SongRecord, TokenUsage, UsageCounters
from inferbatch.patterns.retry import RetryPolicy

RECORD = SongRecord(artist="Nirvana", genre="grunge", track_title="Lithium")
USAGE = TokenUsage(prompt_tokens=20, completion_tokens=8, total_tokens=28)


class FlakyStore(CheckpointStore):
    """Store whose first ``failures`` saves raise :class:`OSError`."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.attempts = 0
        self.saved: CheckpointState | None = None

    def load(self) -> CheckpointState:
        return CheckpointState.empty()

    def save(self, state: CheckpointState) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise OSError("disk full")
        self.saved = state.model_copy(deep=True)


class TestJsonFileCheckpointStore:
    """Verify on-disk format and startup failure modes."""

    def test_missing_file_is_fatal(self, tmp_path: Path) -> None:
        store = JsonFileCheckpointStore(tmp_path / "db.json")
        with pytest.raises(CheckpointLoadError, match="not found"):
            store.load()

    def test_corrupt_file_is_fatal(self, tmp_path: Path) -> None:
        path = tmp_path / "db.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CheckpointLoadError, match="Invalid checkpoint"):
            JsonFileCheckpointStore(path).load()

    def test_wrong_shape_is_fatal(self, tmp_path: Path) -> None:
        path = tmp_path / "db.json"
        path.write_text(json.dumps({"results": {"x": {"artist": 1}}}), encoding="utf-8")
        with pytest.raises(CheckpointLoadError):
            JsonFileCheckpointStore(path).load()

    def test_empty_object_is_fatal(self, tmp_path: Path) -> None:
        path = tmp_path / "db.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(CheckpointLoadError, match="Invalid checkpoint"):
            JsonFileCheckpointStore(path).load()

    def test_unknown_keys_are_fatal(self, tmp_path: Path) -> None:
        path = tmp_path / "db.json"
        payload = {
            "counters": {
                "total_prompt_tokens": 1,
                "total_completion_tokens": 1,
                "total_tokens": 2,
                "total_cost": 0.5,
            },
            "results": {},
        }
        path.write_text(json.dumps(payload), encoding="utf-8")
        with pytest.raises(CheckpointLoadError, match="Invalid checkpoint"):
            JsonFileCheckpointStore(path).load()

    def test_missing_counter_is_fatal(self, tmp_path: Path) -> None:
        path = tmp_path / "db.json"
        payload = {"counters": {"total_prompt_tokens": 1}, "results": {}}
        path.write_text(json.dumps(payload), encoding="utf-8")
        with pytest.raises(CheckpointLoadError, match="Invalid checkpoint"):
            JsonFileCheckpointStore(path).load()

    @pytest.mark.asyncio
    async def test_flat_layout_keeps_counters(self, tmp_path: Path) -> None:
        path = tmp_path / "db.json"
        payload = {
            "total_prompt_tokens": 100,
            "total_completion_tokens": 40,
            "total_tokens": 140,
            "results": {"old line": RECORD.model_dump()},
        }
        path.write_text(json.dumps(payload), encoding="utf-8")
        store = JsonFileCheckpointStore(path)

        state = store.load()
        assert state.results["old line"] == RECORD
        assert state.counters.total_tokens == 140

        cp = Checkpoint.load(store)
        counters = await cp.commit("new line", RECORD, USAGE)
        assert counters.total_prompt_tokens == 120
        assert counters.total_tokens == 168

        data = json.loads(path.read_text(encoding="utf-8"))
        assert set(data) == {"counters", "results"}
        assert data["counters"]["total_tokens"] == 168

    def test_save_writes_counters_and_results(self, tmp_path: Path) -> None:
        path = tmp_path / "db.json"
        state = CheckpointState(counters=UsageCounters.zero(), results={"line": RECORD})
        state.counters.add(USAGE)
        JsonFileCheckpointStore(path).save(state)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["counters"] == {
            "total_prompt_tokens": 20,
            "total_completion_tokens": 8,
            "total_tokens": 28,
        }
        assert data["results"]["line"]["genre"] == "grunge"
        # No temp files are left behind.
        assert [p.name for p in tmp_path.iterdir()] == ["db.json"]


class TestCheckpoint:
    """Verify lookups, commits and persistence failures."""

    @pytest.mark.asyncio
    async def test_commit_is_visible_and_persisted(self) -> None:
        store = InMemoryCheckpointStore(CheckpointState.empty())
        cp = Checkpoint.load(store)

        assert not await cp.contains("a")
        counters = await cp.commit("a", RECORD, USAGE)

        assert await cp.contains("a")
        assert counters.total_tokens == 28
        assert store.save_count == 1
        assert store.load().results["a"] == RECORD

    @pytest.mark.asyncio
    async def test_counters_accumulate(self, checkpoint: Checkpoint) -> None:
        await checkpoint.commit("a", RECORD, USAGE)
        counters = await checkpoint.commit("b", RECORD, USAGE)
        assert counters.total_prompt_tokens == 40
        assert counters.total_completion_tokens == 16
        assert checkpoint.result_count == 2

    @pytest.mark.asyncio
    async def test_reload_after_commit(self, tmp_path: Path) -> None:
        path = tmp_path / "db.json"
        store = JsonFileCheckpointStore(path)
        store.save(CheckpointState.empty())

        cp = Checkpoint.load(store)
        await cp.commit("Queen - Bohemian Rhapsody", RECORD, USAGE)

        reloaded = JsonFileCheckpointStore(path).load()
        assert reloaded.results["Queen - Bohemian Rhapsody"] == RECORD
        assert reloaded.counters.total_tokens == 28

    @pytest.mark.asyncio
    async def test_transient_write_failure_is_retried(self) -> None:
        store = FlakyStore(failures=2)
        cp = Checkpoint(
            store,
            CheckpointState.empty(),
            persist_retry=RetryPolicy(max_attempts=3, base_delay_seconds=0.001, retry_on=(OSError,)),
        )
        await cp.commit("a", RECORD, USAGE)
        assert store.attempts == 3
        assert store.saved is not None and "a" in store.saved.results

    @pytest.mark.asyncio
    async def test_persist_failure_escalates_and_rolls_back(self) -> None:
        store = FlakyStore(failures=10)
        cp = Checkpoint(
            store,
            CheckpointState.empty(),
            persist_retry=RetryPolicy(max_attempts=2, base_delay_seconds=0.001, retry_on=(OSError,)),
        )
        with pytest.raises(CheckpointPersistError, match="disk full"):
            await cp.commit("a", RECORD, USAGE)

        snapshot = await cp.snapshot()
        assert "a" not in snapshot.results
        assert snapshot.counters.total_tokens == 0

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, checkpoint: Checkpoint) -> None:
        await checkpoint.commit("a", RECORD, USAGE)
        record = await checkpoint.get("a")
        assert record == RECORD
        assert await checkpoint.get("missing") is None

    def test_in_memory_store_without_state_is_fatal(self) -> None:
        with pytest.raises(CheckpointLoadError):
            Checkpoint.load(InMemoryCheckpointStore())
