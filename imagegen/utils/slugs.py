"""Slug normalization shared by every store lookup."""

import re

_SLUG_SANITIZE = re.compile(r"[^a-z0-9]+")


def slugify(value: str | None) -> str:
    """
    Normalize free text into a slug.

    Lowercases, trims, collapses every run of non-alphanumeric characters to
    a single ``-`` and strips leading/trailing separators, so
    ``"  Demo Project!! "`` and ``"demo-project"`` resolve to the same row.
    """
    if not value:
        return ""
    slug = _SLUG_SANITIZE.sub("-", value.strip().lower())
    return slug.strip("-")
