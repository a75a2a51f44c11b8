"""Share-link helpers: slug generation, group URLs and route parsing."""

from __future__ import annotations

import os
import re
import secrets
import string
from dataclasses import dataclass
from typing import Callable, Optional

from dotenv import load_dotenv

SLUG_ALPHABET = string.digits + string.ascii_lowercase
SLUG_LENGTH = 8
DEFAULT_SITE_URL = "https://secret-santa-cpk.pages.dev"

_GROUP_PATH = re.compile(r"^/group/([a-z0-9_-]+)$", re.IGNORECASE)


@dataclass(frozen=True)
class GroupLink:
    slug: str
    url: str


def generate_slug(
    length: int = SLUG_LENGTH,
    exists: Optional[Callable[[str], bool]] = None,
    max_attempts: int = 32,
) -> str:
    """Return a random lowercase base36 slug.

    When ``exists`` is provided, the helper retries while it reports the
    candidate as already taken.
    """

    if length <= 0:
        raise ValueError("length must be positive")

    for _ in range(max_attempts):
        candidate = "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))
        if exists is None or not exists(candidate):
            return candidate

    raise RuntimeError("Unable to generate a unique group slug after multiple attempts")


def site_base_url() -> str:
    """Base URL that group links point at (``SITE_URL`` or the default)."""

    load_dotenv()
    return (os.getenv("SITE_URL") or DEFAULT_SITE_URL).rstrip("/")


def group_url(slug: str, base_url: Optional[str] = None) -> str:
    return f"{(base_url or site_base_url()).rstrip('/')}/group/{slug}"


def create_group_link(
    base_url: Optional[str] = None,
    exists: Optional[Callable[[str], bool]] = None,
) -> GroupLink:
    """Generate a fresh slug and the URL participants open to draw."""

    slug = generate_slug(exists=exists)
    return GroupLink(slug=slug, url=group_url(slug, base_url))


def slug_from_path(path: Optional[str]) -> str:
    """Extract the slug from a ``/group/<slug>`` path, or return ``""``."""

    if not path:
        return ""
    match = _GROUP_PATH.match(path)
    return match.group(1) if match else ""


__all__ = [
    "DEFAULT_SITE_URL",
    "GroupLink",
    "SLUG_LENGTH",
    "create_group_link",
    "generate_slug",
    "group_url",
    "site_base_url",
    "slug_from_path",
]
