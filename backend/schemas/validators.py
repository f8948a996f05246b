"""Shared Pydantic validators for category payloads.

Keep these small and dependency-free so schema modules can reuse them without
introducing import cycles.
"""

import re
import unicodedata
from typing import Any


HTML_TAG_PATTERN = re.compile(r"<[^>]+>")
HEX_COLOR_PATTERN = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")


def strip_html_tags(text: str) -> str:
    """Strip HTML tags from free text (descriptions are rendered by the web client)."""
    if not isinstance(text, str):
        return text
    return HTML_TAG_PATTERN.sub("", text)


def strip_invisible_edges(value: str) -> str:
    """
    Strip leading/trailing whitespace and Unicode format characters (Cf).

    Sibling names are compared exactly, so "\\u200bFood" and "Food" must
    normalize to the same string before they reach the uniqueness check.
    """
    if not isinstance(value, str):
        return value
    start = 0
    end = len(value)
    while start < end and (
        value[start].isspace() or unicodedata.category(value[start]) == "Cf"
    ):
        start += 1
    while end > start and (
        value[end - 1].isspace() or unicodedata.category(value[end - 1]) == "Cf"
    ):
        end -= 1
    return value[start:end]


def ensure_utf8_encodable(value: str) -> str:
    """
    Reject strings that cannot be encoded to UTF-8 (e.g., unpaired surrogates).

    They can arrive via JSON escapes like "\\uD800" and would later crash
    response serialization.
    """
    if not isinstance(value, str):
        return value
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("Text contains invalid Unicode characters")
    return value


def normalize_category_name(value: Any) -> Any:
    """Trim invisible edges, reject blank names, enforce UTF-8."""
    if value is None or not isinstance(value, str):
        return value
    text = strip_invisible_edges(value)
    if not text:
        raise ValueError("Category name cannot be blank")
    return ensure_utf8_encodable(text)


def normalize_optional_text(value: Any, *, strip_html: bool = False) -> Any:
    """Normalize optional text fields: trim/sanitize, blank->None, enforce UTF-8."""
    if value is None or not isinstance(value, str):
        return value
    text = strip_html_tags(value) if strip_html else value
    text = text.strip()
    if not text:
        return None
    return ensure_utf8_encodable(text)


def normalize_hex_color(value: Any) -> Any:
    """Validate ``#RGB`` / ``#RRGGBB``; blank -> None."""
    if value is None or not isinstance(value, str):
        return value
    text = value.strip()
    if not text:
        return None
    if not HEX_COLOR_PATTERN.match(text):
        raise ValueError("Color must be a valid hex color code")
    return text
