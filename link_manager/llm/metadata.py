"""
Parser for the "Category: ... / Tags: ..." suggestion format.

The model is asked for a fixed two-line template. Parsing is line oriented
and does not try to recover from other layouts: anything that does not
start with one of the two prefixes is ignored and the defaults apply.
"""

from __future__ import annotations

DEFAULT_CATEGORY = "General"
DEFAULT_TAGS = ("uncategorized",)

_CATEGORY_PREFIX = "Category:"
_TAGS_PREFIX = "Tags:"


def parse_metadata(response: str) -> tuple[str, list[str]]:
    """Parse a suggestion response into (category, tags).

    Category names keep their case; tags are lower-cased and trimmed.

    Examples:
        >>> parse_metadata("Category: Tech\\nTags: a, b, c")
        ('Tech', ['a', 'b', 'c'])
        >>> parse_metadata("nothing useful")
        ('General', ['uncategorized'])
    """
    category = ""
    tags: list[str] = []
    for raw_line in response.splitlines():
        line = raw_line.strip()
        if line.startswith(_CATEGORY_PREFIX):
            category = line[len(_CATEGORY_PREFIX):].strip()
        elif line.startswith(_TAGS_PREFIX):
            parts = line[len(_TAGS_PREFIX):].split(",")
            tags = [part.strip().lower() for part in parts if part.strip()]

    if not category:
        category = DEFAULT_CATEGORY
    if not tags:
        tags = list(DEFAULT_TAGS)
    return category, tags


def normalize_tags(raw: str | list[str] | None) -> list[str]:
    """Split a comma-separated tag string (or list) into lower-cased tags."""
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else raw
    out = []
    for part in parts:
        tag = part.strip().lower()
        if tag and tag not in out:
            out.append(tag)
    return out
