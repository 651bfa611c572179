"""Command-line entry point: ``inferbatch INPUT_FILE``.

Exit status is 0 when every line was either committed, found in the
checkpoint, or skipped after a per-line failure.  Startup problems exit
with 1 and a failed checkpoint write exits with 2.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from inferbatch import __version__
from inferbatch.app import RunOptions, build_client, open_checkpoint, read_work_items, run_batch
from inferbatch.config import PROVIDERS, StartupError, load_settings
from inferbatch.core.checkpoint import CheckpointPersistError
from inferbatch.observability.logging import configure_logging

logger = logging.getLogger(__name__)

EXIT_STARTUP = 1
EXIT_PERSIST = 2


@click.command()
@click.argument("input_file", type=click.Path(dir_okay=False))
@click.option("--provider", type=click.Choice(PROVIDERS), default=None, help="Inference provider.")
@click.option("--checkpoint", "checkpoint_path", default=None, help="Checkpoint file [default: db.json].")
@click.option("--init-checkpoint", is_flag=True, help="Create an empty checkpoint if none exists.")
@click.option("--concurrency", default=1, type=click.IntRange(min=1), show_default=True)
@click.option("--rate", default=30, type=click.IntRange(min=1), show_default=True, help="Max requests per second.")
@click.option("--attempts", default=3, type=click.IntRange(min=1), show_default=True, help="Attempts per line.")
@click.option("--base-delay", default=0.1, type=click.FloatRange(min=0), show_default=True, help="Initial backoff in seconds.")
@click.option("--timeout", default=5.0, type=click.FloatRange(min=0, min_open=True), show_default=True, help="Per-request timeout in seconds.")
@click.version_option(__version__)
def main(
    input_file: str,
    provider: str | None,
    checkpoint_path: str | None,
    init_checkpoint: bool,
    concurrency: int,
    rate: int,
    attempts: int,
    base_delay: float,
    timeout: float,
) -> None:
    """Classify every line of INPUT_FILE, resuming from the checkpoint."""
    options = RunOptions(
        concurrency=concurrency,
        max_requests_per_second=rate,
        max_attempts=attempts,
        base_delay_seconds=base_delay,
        timeout_seconds=timeout,
    )
    try:
        settings = load_settings(provider=provider, checkpoint_path=checkpoint_path)
        configure_logging(settings.logging.level, json_format=settings.logging.json_format)
        lines = read_work_items(input_file)
        checkpoint = open_checkpoint(settings.checkpoint_path, create=init_checkpoint)
        client = build_client(settings, timeout_seconds=options.timeout_seconds)
    except StartupError as exc:
        click.echo(f"error: {exc}", err=True)
        sys.exit(EXIT_STARTUP)

    try:
        report = asyncio.run(run_batch(lines, checkpoint, client, settings.provider, options))
    except CheckpointPersistError as exc:
        logger.critical("Aborting run: %s", exc)
        click.echo(f"error: {exc}", err=True)
        sys.exit(EXIT_PERSIST)

    logger.info("Run finished", extra=report.summary())
    if report.failed_items:
        logger.warning("%d lines left unprocessed for a later run", len(report.failed_items))


if __name__ == "__main__":
    main()
