"""Checkpointing for resumable batch runs.

The checkpoint records every item that has already been processed
together with the accumulated token usage.  It is loaded once at
startup and rewritten in full after each successful item so that an
interrupted run can be restarted without repeating (or paying for) any
request that already succeeded.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from inferbatch.config import StartupError
from inferbatch.core.models import CheckpointState
from inferbatch.patterns.retry import RetryPolicy, retry_with_backoff

if TYPE_CHECKING:
    from inferbatch.core.models import SongRecord, TokenUsage, UsageCounters

logger = logging.getLogger(__name__)


class CheckpointLoadError(StartupError):
    """Raised when the checkpoint file is missing or cannot be decoded."""


class CheckpointPersistError(Exception):
    """Raised when a commit could not be written to durable storage."""


class CheckpointStore(ABC):
    """Abstract interface for durable checkpoint storage."""

    @abstractmethod
    def load(self) -> CheckpointState:
        """Return the stored snapshot or raise :class:`CheckpointLoadError`."""
        ...

    @abstractmethod
    def save(self, state: CheckpointState) -> None:
        """Overwrite the stored snapshot with *state*."""
        ...


class JsonFileCheckpointStore(CheckpointStore):
    """Pretty-printed JSON file on local disk (``db.json`` by default).

    Writes go to a temporary file in the same directory which then
    replaces the target, so readers only ever see a complete snapshot.
    """

    def __init__(self, path: str | Path = "db.json") -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> CheckpointState:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise CheckpointLoadError(f"Checkpoint file not found: {self._path}") from exc
        except OSError as exc:
            raise CheckpointLoadError(f"Cannot read checkpoint {self._path}: {exc}") from exc

        try:
            return CheckpointState.model_validate_json(raw)
        except ValidationError as exc:
            raise CheckpointLoadError(f"Invalid checkpoint {self._path}: {exc}") from exc

    def save(self, state: CheckpointState) -> None:
        payload = state.model_dump_json(indent=2)
        directory = self._path.parent
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class InMemoryCheckpointStore(CheckpointStore):
    """In-memory store for development and testing."""

    def __init__(self, state: CheckpointState | None = None) -> None:
        self._state = state.model_copy(deep=True) if state is not None else None
        self.save_count = 0

    def load(self) -> CheckpointState:
        if self._state is None:
            raise CheckpointLoadError("No checkpoint has been stored")
        return self._state.model_copy(deep=True)

    def save(self, state: CheckpointState) -> None:
        self._state = state.model_copy(deep=True)
        self.save_count += 1


class Checkpoint:
    """Shared, lock-guarded checkpoint used by every pipeline worker.

    Lookups and commits both take the same :class:`asyncio.Lock`.  A
    commit builds the next snapshot, writes it through the store while
    still holding the lock and only then makes it visible in memory, so
    the in-memory state never runs ahead of what is on disk.
    """

    def __init__(
        self,
        store: CheckpointStore,
        state: CheckpointState,
        persist_retry: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._state = state
        self._persist_retry = persist_retry or RetryPolicy(
            max_attempts=3, base_delay_seconds=0.05, retry_on=(OSError,)
        )
        self._lock = asyncio.Lock()

    @classmethod
    def load(cls, store: CheckpointStore, persist_retry: RetryPolicy | None = None) -> Checkpoint:
        """Load the stored snapshot.  Raises :class:`CheckpointLoadError`."""
        state = store.load()
        logger.info(
            "Loaded checkpoint with %d results",
            len(state.results),
            extra={"counters": state.counters.model_dump()},
        )
        return cls(store, state, persist_retry=persist_retry)

    async def contains(self, key: str) -> bool:
        async with self._lock:
            return key in self._state.results

    async def get(self, key: str) -> SongRecord | None:
        async with self._lock:
            record = self._state.results.get(key)
            return record.model_copy() if record is not None else None

    async def commit(self, key: str, record: SongRecord, usage: TokenUsage) -> UsageCounters:
        """Record *key* as processed, add *usage* and persist the snapshot.

        Returns a copy of the counters as of this commit.  Raises
        :class:`CheckpointPersistError` if the write keeps failing.
        """
        async with self._lock:
            previous_counters = self._state.counters.model_copy()
            previous_record = self._state.results.get(key)
            self._state.counters.add(usage)
            self._state.results[key] = record.model_copy()

            try:
                await retry_with_backoff(
                    asyncio.to_thread, self._persist_retry, self._store.save, self._state
                )
            except Exception as exc:
                # Roll back so memory keeps matching the last durable snapshot.
                self._state.counters = previous_counters
                if previous_record is None:
                    del self._state.results[key]
                else:
                    self._state.results[key] = previous_record
                raise CheckpointPersistError(f"Failed to persist commit for {key!r}: {exc}") from exc

            return self._state.counters.model_copy()

    async def snapshot(self) -> CheckpointState:
        async with self._lock:
            return self._state.model_copy(deep=True)

    @property
    def result_count(self) -> int:
        return len(self._state.results)
