"""Application wiring.

Builds the rate limiter, inference client, checkpoint and pipeline from
:class:`~inferbatch.config.Settings` and runs them over the input lines.
Every shared component is constructed here and passed down explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from inferbatch.clients.openai import OpenAIChatClient
from inferbatch.clients.replicate import ReplicatePredictionClient
from inferbatch.config import InputFileError, StartupError
from inferbatch.core.checkpoint import Checkpoint, CheckpointLoadError, JsonFileCheckpointStore
from inferbatch.core.models import CheckpointState
from inferbatch.core.parsing import extract_json_record, parse_json_record
from inferbatch.core.pipeline import ItemPipeline
from inferbatch.core.runner import BoundedConcurrentRunner, RunnerConfig
from inferbatch.observability import RunReport
from inferbatch.patterns.rate_limiter import RateLimiter, RateLimiterConfig
from inferbatch.patterns.retry import RetryPolicy
from inferbatch.prompts import chat_genre_prompt, llama2_parse_prompt

if TYPE_CHECKING:
    from inferbatch.clients.base import InferenceClient
    from inferbatch.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunOptions:
    """Execution tuning supplied on the command line."""

    concurrency: int = 1
    max_requests_per_second: int = 30
    max_attempts: int = 3
    base_delay_seconds: float = 0.1
    timeout_seconds: float = 5.0


def read_work_items(path: str | Path) -> list[str]:
    """Return the non-blank lines of *path* without line terminators.

    Only ``\\n`` and ``\\r\\n`` end a line; other Unicode line breaks are
    kept as part of the key.
    """
    try:
        with Path(path).open(encoding="utf-8", newline="") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise InputFileError(f"Cannot read input file {path}: {exc}") from exc
    lines = (line.removesuffix("\r") for line in text.split("\n"))
    return [line for line in lines if line.strip()]


def build_client(settings: Settings, timeout_seconds: float) -> InferenceClient:
    if settings.provider == "openai":
        if settings.openai is None:
            raise StartupError("OpenAI provider selected but no OpenAI settings were loaded")
        return OpenAIChatClient(
            api_key=settings.openai.api_key,
            model=settings.openai.model,
            timeout_seconds=timeout_seconds,
        )
    if settings.provider == "replicate":
        if settings.replicate is None:
            raise StartupError("Replicate provider selected but no Replicate settings were loaded")
        return ReplicatePredictionClient(
            api_token=settings.replicate.api_token,
            version=settings.replicate.version,
            timeout_seconds=timeout_seconds,
        )
    raise StartupError(f"Unknown provider {settings.provider!r}")


def open_checkpoint(path: Path, create: bool = False) -> Checkpoint:
    """Load the checkpoint at *path*, creating an empty one only if *create*."""
    store = JsonFileCheckpointStore(path)
    if create and not store.exists():
        logger.info("Creating empty checkpoint at %s", path)
        try:
            store.save(CheckpointState.empty())
        except OSError as exc:
            raise CheckpointLoadError(f"Cannot create checkpoint {path}: {exc}") from exc
    return Checkpoint.load(store)


async def run_batch(
    lines: list[str],
    checkpoint: Checkpoint,
    client: InferenceClient,
    provider: str,
    options: RunOptions,
) -> RunReport:
    """Process *lines* through the pipeline and return the outcome tally.

    Raises :class:`~inferbatch.core.checkpoint.CheckpointPersistError` if
    a commit cannot be written.
    """
    if provider == "replicate":
        prompt_builder, parser = llama2_parse_prompt, extract_json_record
    else:
        prompt_builder, parser = chat_genre_prompt, parse_json_record

    pipeline = ItemPipeline(
        checkpoint=checkpoint,
        client=client,
        rate_limiter=RateLimiter(RateLimiterConfig(max_requests=options.max_requests_per_second)),
        prompt_builder=prompt_builder,
        parser=parser,
        retry_policy=RetryPolicy(
            max_attempts=options.max_attempts,
            base_delay_seconds=options.base_delay_seconds,
        ),
    )
    report = RunReport()
    report.attach(pipeline.event_bus)

    runner = BoundedConcurrentRunner(pipeline, RunnerConfig(max_concurrency=options.concurrency))
    logger.info(
        "Starting run over %d lines (concurrency=%d, rate=%d/s)",
        len(lines),
        options.concurrency,
        options.max_requests_per_second,
    )
    try:
        await runner.run(lines)
    finally:
        await client.aclose()
    return report
