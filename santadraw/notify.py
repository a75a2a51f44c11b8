"""Delivery of "you matched with X" messages."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import requests
from dotenv import load_dotenv

from .backend.api import BackendClient
from .backend.utils import mask_email

logger = logging.getLogger(__name__)

DEFAULT_NOTIFY_FUNCTION = "send_giftee_email"


class NotificationSink(ABC):
    """Sends a participant the name they drew."""

    @abstractmethod
    def send_match_notification(
        self,
        *,
        group_id: int,
        gifter_name: str,
        giftee_name: str,
        email: str,
    ) -> bool:
        """Deliver the match and return ``True`` on success.

        Implementations report failure by returning ``False`` rather than
        raising, since a failed delivery never undoes the draw.
        """


class FunctionNotificationSink(NotificationSink):
    """Deliver matches through the hosted backend's email-sending function."""

    def __init__(
        self,
        client: Optional[BackendClient] = None,
        function_name: Optional[str] = None,
    ) -> None:
        load_dotenv()
        self._client = client or BackendClient()
        self.function_name = (
            function_name or os.getenv("NOTIFY_FUNCTION") or DEFAULT_NOTIFY_FUNCTION
        )

    def send_match_notification(
        self,
        *,
        group_id: int,
        gifter_name: str,
        giftee_name: str,
        email: str,
    ) -> bool:
        body = {
            "groupId": group_id,
            "gifterName": gifter_name,
            "gifteeName": giftee_name,
            "email": email,
        }
        try:
            result = self._client.invoke_function(self.function_name, body)
        except (requests.RequestException, ValueError) as exc:
            logger.error(f"Email function {self.function_name} failed: {exc}")
            return False

        if isinstance(result, dict) and result.get("error"):
            logger.error(
                f"Email function {self.function_name} reported an error: {result['error']}"
            )
            return False

        logger.info(f"Match email for group {group_id} sent to {mask_email(email)}")
        return True


class LoggingNotificationSink(NotificationSink):
    """Development sink that only writes the match to the log."""

    def send_match_notification(
        self,
        *,
        group_id: int,
        gifter_name: str,
        giftee_name: str,
        email: str,
    ) -> bool:
        logger.info(
            f"[group {group_id}] {gifter_name} ({mask_email(email)}) drew {giftee_name}"
        )
        return True


__all__ = [
    "DEFAULT_NOTIFY_FUNCTION",
    "FunctionNotificationSink",
    "LoggingNotificationSink",
    "NotificationSink",
]
