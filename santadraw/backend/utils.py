import logging
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)


def open_session(anon_key: str) -> requests.Session:
    """Open a requests session carrying the hosted backend's API key headers.

    Parameters
    ----------
    anon_key : str
        Public (anonymous) API key of the hosted backend project.

    Returns
    -------
    requests.Session
        Session whose default headers authenticate every request.

    Raises
    ------
    ValueError
        If ``anon_key`` is empty.
    """
    if not anon_key:
        raise ValueError("An API key is required to open a backend session")

    session = requests.Session()
    session.headers.update(
        {
            "apikey": anon_key,
            "Authorization": f"Bearer {anon_key}",
            "Accept": "application/json",
        }
    )
    # Never log the key itself
    logger.debug("Backend session opened")
    return session


def eq(value: Any) -> str:
    """Return a row-store filter matching ``value`` exactly."""
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


def is_null() -> str:
    """Return a row-store filter matching NULL."""
    return "is.null"


def order_by(column: str, ascending: bool = True) -> str:
    return f"{column}.{'asc' if ascending else 'desc'}"


def mask_email(email: Optional[str]) -> str:
    """Shorten an email for log output, e.g. ``a***@example.com``."""
    if not email or "@" not in email:
        return "<none>"
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"
