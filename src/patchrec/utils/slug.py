"""Turn free-form patch titles into stable file name fragments."""

from __future__ import annotations

import re
from typing import Pattern

_UNSAFE_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9_.]+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")

PATCH_SLUG_MAX_LENGTH = 52


def slugify(value: str | None, *, fallback: str = "patch", max_length: int = PATCH_SLUG_MAX_LENGTH) -> str:
    """Normalize ``value`` into a lowercase, hyphen-separated slug.

    Long titles are cut at the last hyphen that fits so words are not split.
    """
    slug = _normalize(value or "")
    if not slug:
        slug = _normalize(fallback) or "patch"
    if len(slug) <= max_length:
        return slug
    trimmed = slug[:max_length]
    if "-" in trimmed and slug[max_length] != "-":
        trimmed = trimmed.rsplit("-", 1)[0]
    return trimmed.strip("-.") or slug[:max_length]


def _normalize(value: str) -> str:
    slug = _UNSAFE_PATTERN.sub("-", value.strip().lower())
    slug = _HYPHEN_COLLAPSE.sub("-", slug)
    return slug.strip("-.")
