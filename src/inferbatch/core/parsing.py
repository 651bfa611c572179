"""Turning model output into result records.

Chat models are asked to answer with bare JSON and are parsed strictly.
Completion models tend to wrap the object in prose, so their parser
first extracts the outermost ``{...}`` span.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from pydantic import ValidationError

from inferbatch.core.models import SongRecord

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

ResponseParser = Callable[[str], SongRecord]


class ResponseParseError(ValueError):
    """Raised when model output does not describe a valid record."""


def parse_json_record(text: str) -> SongRecord:
    """Parse *text* as a JSON object with ``artist``, ``genre`` and ``track_title``."""
    try:
        return SongRecord.model_validate_json(text.strip())
    except ValidationError as exc:
        raise ResponseParseError(f"Response is not a valid record: {exc}") from exc


def extract_json_record(text: str) -> SongRecord:
    """Parse the outermost ``{...}`` span of *text*, first ``{`` to last ``}``."""
    match = _JSON_OBJECT.search(text)
    if match is None:
        raise ResponseParseError("Response contains no JSON object")
    return parse_json_record(match.group(0))
