"""Shared validation functions for all entry points.

Pure functions. No FastAPI or Click dependencies.
"""

from __future__ import annotations

import unicodedata
from typing import Any

_MAX_ACTOR_LENGTH = 128
_MAX_TAG_LENGTH = 256
_MAX_TITLE_LENGTH = 255

TAG_SEPARATOR = ";"


def _find_control_char(value: str) -> str | None:
    for ch in value:
        if unicodedata.category(ch).startswith("C"):  # Cc (control) and Cf (format)
            return ch
    return None


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Validate and clean an actor name.

    Returns (cleaned_actor, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", "actor must be a string")
    # Check before stripping: reject "\nbad" rather than absorbing the newline.
    bad = _find_control_char(value)
    if bad is not None:
        return ("", f"actor must not contain control characters (found U+{ord(bad):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", "actor must not be empty")
    if len(cleaned) > _MAX_ACTOR_LENGTH:
        return ("", f"actor must be at most {_MAX_ACTOR_LENGTH} characters")
    return (cleaned, None)


def sanitize_tag(value: Any) -> tuple[str, str | None]:
    """Validate and clean a single tag.

    Tags travel to the store as one ``"a; b"`` string, so the separator is
    rejected inside a tag. Case is preserved.
    """
    if not isinstance(value, str):
        return ("", "tag must be a string")
    cleaned = value.strip()
    if not cleaned:
        return ("", "tag must not be empty")
    if TAG_SEPARATOR in cleaned:
        return ("", f"tag must not contain '{TAG_SEPARATOR}': {cleaned!r}")
    bad = _find_control_char(cleaned)
    if bad is not None:
        return ("", f"tag must not contain control characters (found U+{ord(bad):04X})")
    if len(cleaned) > _MAX_TAG_LENGTH:
        return ("", f"tag must be at most {_MAX_TAG_LENGTH} characters")
    return (cleaned, None)


def sanitize_title(value: Any) -> tuple[str, str | None]:
    """Validate and clean a work item title (single line, non-blank)."""
    if not isinstance(value, str):
        return ("", "title must be a string")
    cleaned = value.strip()
    if not cleaned:
        return ("", "title must not be empty")
    if "\n" in cleaned or "\r" in cleaned:
        return ("", "title must be a single line")
    if len(cleaned) > _MAX_TITLE_LENGTH:
        return ("", f"title must be at most {_MAX_TITLE_LENGTH} characters")
    return (cleaned, None)


def split_tags(value: str | None) -> list[str]:
    """Split a ``"a; b"`` tag string into cleaned tags, dropping blanks and repeats."""
    result: list[str] = []
    for part in (value or "").split(TAG_SEPARATOR):
        tag = part.strip()
        if tag and tag not in result:
            result.append(tag)
    return result
