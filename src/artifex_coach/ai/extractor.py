"""Structured data extraction from free-form model output."""

import json
from collections.abc import Iterable
from typing import Any

from artifex_coach.errors import MalformedResponse, MissingRequiredField


def extract_json(text: str | None) -> dict[str, Any]:
    """Extract a JSON object from backend text.

    Tries a direct parse first, then the span from the first ``{`` to the
    last ``}`` (covers prose preambles and markdown code fences).

    Args:
        text: Raw model output.

    Returns:
        The parsed object, unvalidated.

    Raises:
        MalformedResponse: If neither tier yields a JSON object.
    """
    text = text or ""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponse(f"No JSON object found in response: {text[:80]!r}")
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Embedded JSON did not parse: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponse(f"Expected a JSON object, got {type(data).__name__}")
    return data


def require_fields(
    data: dict[str, Any],
    fields: Iterable[str],
    stage: str,
    list_fields: Iterable[str] = (),
) -> dict[str, Any]:
    """Assert that a parsed record carries the fields a stage needs.

    Args:
        data: Output of :func:`extract_json`.
        fields: Keys that must be present and not null.
        stage: Stage name used in the error.
        list_fields: Keys that must additionally hold a JSON array.

    Returns:
        ``data`` unchanged.

    Raises:
        MissingRequiredField: Listing every absent or mistyped key.
    """
    missing = [f for f in fields if data.get(f) is None]
    missing += [
        f for f in list_fields
        if f not in missing and not isinstance(data.get(f), list)
    ]
    if missing:
        raise MissingRequiredField(stage, missing)
    return data
