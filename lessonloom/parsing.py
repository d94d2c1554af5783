"""Shared parsing helpers for runtime, config, and stored value normalization."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_api_keys(value: object) -> tuple[str, ...]:
    """Parse API keys from a CSV/newline string or an iterable of such strings.

    Blank entries are dropped and duplicates keep their first position, so the
    rotation order stays the order the user supplied.
    """

    if value is None:
        return ()
    if isinstance(value, str):
        raw_items: Iterable[object] = re.split(r"[,\n]", value)
    elif isinstance(value, Iterable):
        raw_items = [
            part
            for item in value
            for part in (re.split(r"[,\n]", item) if isinstance(item, str) else (item,))
        ]
    else:
        raise ValueError("API keys must be a string or a list of strings.")

    keys: list[str] = []
    for item in raw_items:
        normalized = normalize_optional_string(item)
        if normalized is not None and normalized not in keys:
            keys.append(normalized)
    return tuple(keys)


def slugify(value: str, fallback: str = "item") -> str:
    """Create a filesystem-safe ASCII slug from a title string."""

    normalized = unicodedata.normalize("NFKD", value)
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")
    collapsed = re.sub(r"[^a-z0-9]+", "-", ascii_only.lower().strip())
    slug = collapsed.strip("-")
    return slug[:48].rstrip("-") or fallback
