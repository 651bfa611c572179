"""Domain models for the inferbatch pipeline.

Defines the persisted checkpoint schema (result records and usage
counters), the normalised response returned by every inference client,
and the per-item outcome reported back to the runner.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ItemOutcome(enum.Enum):
    """Terminal state of one work item in a run."""

    CACHED = "cached"
    COMMITTED = "committed"
    FETCH_FAILED = "fetch_failed"
    PARSE_FAILED = "parse_failed"


class SongRecord(BaseModel):
    """Structured result extracted from the model's answer for one line."""

    model_config = ConfigDict(extra="ignore")

    artist: str
    genre: str
    track_title: str


class TokenUsage(BaseModel):
    """Token consumption reported for a single request."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class UsageCounters(BaseModel):
    """Running totals accumulated over every committed item."""

    model_config = ConfigDict(extra="forbid")

    total_prompt_tokens: int = Field(ge=0)
    total_completion_tokens: int = Field(ge=0)
    total_tokens: int = Field(ge=0)

    @classmethod
    def zero(cls) -> UsageCounters:
        return cls(total_prompt_tokens=0, total_completion_tokens=0, total_tokens=0)

    def add(self, usage: TokenUsage) -> None:
        self.total_prompt_tokens += usage.prompt_tokens
        self.total_completion_tokens += usage.completion_tokens
        self.total_tokens += usage.total_tokens


_FLAT_COUNTER_KEYS = ("total_prompt_tokens", "total_completion_tokens", "total_tokens")


class CheckpointState(BaseModel):
    """The full persisted snapshot: ``{"counters": ..., "results": ...}``.

    Both keys are required and unknown keys are rejected, so a file that
    is not a checkpoint fails to load instead of starting from zero.
    Files in the older flat layout, with the three totals next to
    ``results``, are moved into ``counters`` on load.
    """

    model_config = ConfigDict(extra="forbid")

    counters: UsageCounters
    results: dict[str, SongRecord]

    @model_validator(mode="before")
    @classmethod
    def _upgrade_flat_layout(cls, data: Any) -> Any:
        if isinstance(data, dict) and "counters" not in data and "results" in data:
            if all(key in data for key in _FLAT_COUNTER_KEYS):
                upgraded = {k: v for k, v in data.items() if k not in _FLAT_COUNTER_KEYS}
                upgraded["counters"] = {key: data[key] for key in _FLAT_COUNTER_KEYS}
                return upgraded
        return data

    @classmethod
    def empty(cls) -> CheckpointState:
        return cls(counters=UsageCounters.zero(), results={})


@dataclass(frozen=True)
class InferenceResponse:
    """Provider-independent view of a completed inference call."""

    text: str
    usage: TokenUsage
    raw: dict | None = None
