"""Runtime configuration for a batch run.

Settings are grouped by concern and resolved once at startup from the
process environment.  Anything the run cannot start without (an API key
for the chosen provider) is reported as a :class:`StartupError`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

PROVIDERS = ("openai", "replicate")

DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"
DEFAULT_REPLICATE_VERSION = "df7690f1994d94e96ad9d568eac121aecf50684a0b0963b25a41cc40061269e5"

_TRUTHY = {"1", "true", "yes", "on"}


class StartupError(Exception):
    """A condition that prevents the run from starting at all."""


class MissingCredentialError(StartupError):
    """Raised when the API key for the selected provider is not set."""


class InputFileError(StartupError):
    """Raised when the input file cannot be read."""


@dataclass(frozen=True)
class OpenAISettings:
    api_key: str
    model: str = DEFAULT_OPENAI_MODEL


@dataclass(frozen=True)
class ReplicateSettings:
    api_token: str
    version: str = DEFAULT_REPLICATE_VERSION


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"
    json_format: bool = True


@dataclass(frozen=True)
class Settings:
    """Everything a run needs, grouped by concern."""

    provider: str = "openai"
    checkpoint_path: Path = Path("db.json")
    openai: OpenAISettings | None = None
    replicate: ReplicateSettings | None = None
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def load_settings(
    provider: str | None = None,
    checkpoint_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build :class:`Settings` from *environ* (``os.environ`` by default).

    Explicit arguments take precedence over environment variables.
    """
    env = os.environ if environ is None else environ

    provider = (provider or env.get("INFERBATCH_PROVIDER") or "openai").strip().lower()
    if provider not in PROVIDERS:
        raise StartupError(f"Unknown provider {provider!r}; expected one of {', '.join(PROVIDERS)}")

    openai_settings: OpenAISettings | None = None
    replicate_settings: ReplicateSettings | None = None
    if provider == "openai":
        openai_settings = OpenAISettings(
            api_key=_require(env, "OPENAI_API_KEY"),
            model=env.get("INFERBATCH_OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
        )
    else:
        replicate_settings = ReplicateSettings(
            api_token=_require(env, "REPLICATE_API_TOKEN"),
            version=env.get("INFERBATCH_REPLICATE_VERSION", DEFAULT_REPLICATE_VERSION),
        )

    return Settings(
        provider=provider,
        checkpoint_path=Path(checkpoint_path or env.get("INFERBATCH_CHECKPOINT", "db.json")),
        openai=openai_settings,
        replicate=replicate_settings,
        logging=LoggingSettings(
            level=env.get("INFERBATCH_LOG_LEVEL", "INFO").upper(),
            json_format=env.get("INFERBATCH_LOG_JSON", "1").strip().lower() in _TRUTHY,
        ),
    )


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise MissingCredentialError(f"Environment variable {name} is required but not set")
    return value
