"""Abstract interface over the row store that holds groups and participants."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Union

from ..draw.state import ParticipantRow


class _Unset:
    """Marker for keyword arguments that should be left untouched."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class GroupRecord:
    """Group values as stored; ``locked`` is true exactly when ``slug`` is set."""

    id: int
    organiser_email: str = ""
    slug: Optional[str] = None
    locked: bool = False


class GroupStore(ABC):
    """Row store used by the draw workflows.

    Every method is a suspension point that may fail; implementations raise
    :class:`~santadraw.errors.PersistenceError` for any backend failure so
    callers only have one exception to handle.

    ``conditional_assign_giftee`` is the only correctness-critical write and
    must be atomic: it succeeds for at most one caller per participant row
    and draw epoch. All other writes are last-write-wins.
    """

    @abstractmethod
    def create_group(self, organiser_email: str) -> int:
        """Insert an open group and return its id."""

    @abstractmethod
    def update_group(
        self,
        group_id: int,
        *,
        organiser_email: Union[str, _Unset] = UNSET,
        slug: Union[str, None, _Unset] = UNSET,
    ) -> GroupRecord:
        """Update the given fields and return the group as stored afterwards.

        Passing ``slug=None`` clears the slug and unlocks the group; any other
        slug locks it.
        """

    @abstractmethod
    def lock_group(self, group_id: int, slug: str) -> GroupRecord:
        """Set ``slug`` and lock the group, but only while it has no slug.

        Returns the group as stored afterwards. When another caller locked it
        first, the returned slug is theirs and ``slug`` was not written.
        """

    @abstractmethod
    def get_group(self, group_id: int) -> Optional[GroupRecord]:
        """Return the group with ``group_id`` or ``None``."""

    @abstractmethod
    def get_group_by_slug(self, slug: str) -> Optional[GroupRecord]:
        """Return the group shared under ``slug`` or ``None``."""

    @abstractmethod
    def replace_participants(self, group_id: int, names: Sequence[str]) -> None:
        """Delete every participant of the group, then insert ``names``."""

    @abstractmethod
    def get_participants(self, group_id: int) -> list[ParticipantRow]:
        """Return the group's participants ordered by name."""

    @abstractmethod
    def update_participant_email(self, group_id: int, name: str, email: str) -> None:
        """Record ``email`` as the claimant of ``name`` (last write wins)."""

    @abstractmethod
    def conditional_assign_giftee(
        self,
        group_id: int,
        name: str,
        email: str,
        giftee_name: str,
        timestamp: datetime,
    ) -> bool:
        """Commit a draw only if ``name`` has no giftee yet.

        Returns ``True`` when the row changed and ``False`` when another
        session already assigned a giftee, another drawer already holds
        ``giftee_name``, or the row is gone.
        """

    @abstractmethod
    def delete_participants(self, group_id: int) -> None:
        """Delete every participant of the group."""


__all__ = ["GroupRecord", "GroupStore", "UNSET"]
