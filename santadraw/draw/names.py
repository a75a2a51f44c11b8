"""Helpers for normalising and validating roster names."""

from __future__ import annotations

from typing import Iterable

from ..errors import DuplicateNameError, EmptyNameError


def name_key(name: str) -> str:
    """Return the comparison key for ``name``: trimmed and case-folded.

    Parameters
    ----------
    name : str
        Raw name as typed by the organiser.
    """

    if not isinstance(name, str):
        raise TypeError("name must be a string")
    return name.strip().casefold()


def validate_new_name(name: str, roster: Iterable[str]) -> str:
    """Check that ``name`` can be added to ``roster`` and return it trimmed.

    Raises
    ------
    EmptyNameError
        If the name is blank after trimming.
    DuplicateNameError
        If an equivalent name is already in ``roster``.
    """

    trimmed = name.strip()
    if not trimmed:
        raise EmptyNameError("Enter a name before adding.")

    key = name_key(trimmed)
    if any(name_key(existing) == key for existing in roster):
        raise DuplicateNameError(trimmed)
    return trimmed


def dedupe_names(names: Iterable[str]) -> list[str]:
    """Return trimmed, non-blank names with equivalent duplicates removed.

    The first occurrence wins and keeps its original casing.
    """

    unique: list[str] = []
    seen: set[str] = set()
    for name in names:
        trimmed = name.strip()
        if not trimmed:
            continue
        key = name_key(trimmed)
        if key in seen:
            continue
        seen.add(key)
        unique.append(trimmed)
    return unique


def normalize_email(email: str | None) -> str:
    """Trim and lower-case an email address; ``None`` becomes ``""``."""

    return (email or "").strip().lower()


__all__ = [
    "dedupe_names",
    "name_key",
    "normalize_email",
    "validate_new_name",
]
