"""Unit tests for response parsing."""

from __future__ import annotations

import pytest

from inferbatch.core.parsing import ResponseParseError, extract_json_record, parse_json_record


class TestParseJsonRecord:
    def test_valid_object(self) -> None:
        record = parse_json_record(
            ' {"artist": "Miles Davis", "genre": "jazz", "track_title": "So What"}\n'
        )
        assert record.genre == "jazz"
        assert record.track_title == "So What"

    def test_extra_fields_are_ignored(self) -> None:
        record = parse_json_record(
            '{"artist": "a", "genre": "g", "track_title": "t", "year": 1959}'
        )
        assert record.model_dump() == {"artist": "a", "genre": "g", "track_title": "t"}

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "jazz",
            '{"artist": "a", "genre": "g"}',
            '["a", "g", "t"]',
            '{"artist": 1, "genre": "g", "track_title": "t"}',
        ],
    )
    def test_invalid_input(self, text: str) -> None:
        with pytest.raises(ResponseParseError):
            parse_json_record(text)


class TestExtractJsonRecord:
    def test_object_inside_prose(self) -> None:
        text = (
            'Sure! The parsed result is:\n{"artist": "Daft Punk",\n "genre": "house",'
            ' "track_title": "One More Time"}\nLet me know if you need anything else.'
        )
        assert extract_json_record(text).artist == "Daft Punk"

    def test_no_object(self) -> None:
        with pytest.raises(ResponseParseError, match="no JSON object"):
            extract_json_record("I could not find the song.")

    def test_braces_inside_values_stay_in_span(self) -> None:
        text = 'Result: {"artist": "Sigur Ros", "genre": "post-rock {ambient}", "track_title": "Hoppipolla"}'
        assert extract_json_record(text).genre == "post-rock {ambient}"

    def test_two_objects_are_not_split(self) -> None:
        text = (
            '{"artist": "A", "genre": "rock", "track_title": "X"} or maybe '
            '{"artist": "B", "genre": "pop", "track_title": "Y"}'
        )
        with pytest.raises(ResponseParseError):
            extract_json_record(text)
