"""Prompt templates, one per provider."""

from __future__ import annotations


def chat_genre_prompt(line: str) -> str:
    return (
        f"The song '{line}' is of which genre? "
        "Respond in JSON using fields `artist`, `genre`, and `track_title`."
    )


def llama2_parse_prompt(line: str) -> str:
    return (
        f"User: Parse this string `{line}` which represents a song + artist information into "
        '{"artist": ..., "genre": ..., "track_title": ...}\n'
        "Assistant: \n"
    )
