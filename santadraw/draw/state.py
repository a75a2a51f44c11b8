"""Value objects describing a group's roster and assignments.

The draw engine never works on ORM rows directly. Stores hand back
:class:`ParticipantRow` snapshots, and the engine keeps its local view as a
:class:`GroupSnapshot` that is merged with fresh remote rows before every
decision.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Mapping, Optional

from .names import normalize_email


class GroupState(str, Enum):
    """Lifecycle of a gift exchange.

    ``OPEN`` while the organiser edits the roster, ``LOCKED`` once the link
    exists, ``DRAWING`` once at least one draw is committed. A reset moves
    any state back to ``OPEN``.
    """

    OPEN = "open"
    LOCKED = "locked"
    DRAWING = "drawing"


@dataclass(frozen=True)
class ParticipantRow:
    """Authoritative participant values as read from the store."""

    name: str
    claim_email: Optional[str] = None
    giftee_name: Optional[str] = None
    drawn_at: Optional[datetime] = None


@dataclass(frozen=True)
class Assignment:
    """A committed draw: who the participant gives to and who claimed it."""

    giftee: str
    email: str = ""
    timestamp: Optional[datetime] = None

    def claimed_by_other(self, email: str) -> bool:
        """Return ``True`` when a different email already claimed this draw."""

        return bool(self.email) and self.email != normalize_email(email)


def assignments_from_rows(
    rows: Iterable[ParticipantRow],
    local: Optional[Mapping[str, Assignment]] = None,
) -> dict[str, Assignment]:
    """Convert drawn rows into assignments.

    Rows without a giftee are skipped. Missing emails and timestamps fall back
    to the ``local`` entry for the same name, and finally to ``""`` and the
    current time.
    """

    local = local or {}
    result: dict[str, Assignment] = {}
    for row in rows:
        if not row.giftee_name:
            continue
        previous = local.get(row.name)
        email = normalize_email(row.claim_email) or (previous.email if previous else "")
        timestamp = row.drawn_at or (previous.timestamp if previous else None)
        result[row.name] = Assignment(
            giftee=row.giftee_name,
            email=email,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
    return result


@dataclass(frozen=True)
class GroupSnapshot:
    """The local view of one group: roster order plus known assignments."""

    group_id: Optional[int] = None
    slug: Optional[str] = None
    roster: tuple[str, ...] = ()
    assignments: Mapping[str, Assignment] = field(default_factory=dict)
    locked: bool = False

    @property
    def state(self) -> GroupState:
        if not self.locked:
            return GroupState.OPEN
        if self.assignments:
            return GroupState.DRAWING
        return GroupState.LOCKED

    @property
    def taken_giftees(self) -> set[str]:
        """Every name that is already someone's giftee."""

        return {a.giftee for a in self.assignments.values() if a.giftee}

    def candidates_for(self, name: str) -> list[str]:
        """Names ``name`` may still draw, in roster order."""

        taken = self.taken_giftees
        return [n for n in self.roster if n != name and n not in taken]

    def owned_name(self, email: str) -> Optional[str]:
        """Return the roster name already claimed by ``email``, if any."""

        normalized = normalize_email(email)
        if not normalized:
            return None
        for name, assignment in self.assignments.items():
            if assignment.email == normalized:
                return name
        return None

    def reconcile(self, rows: Iterable[ParticipantRow]) -> "GroupSnapshot":
        """Replace the known assignments with what the store reports.

        A row without a giftee means that participant has not drawn, whatever
        this view cached. Only the claimant email and timestamp of a drawn
        row fall back to the cached entry when the store leaves them empty.
        """

        return replace(self, assignments=assignments_from_rows(rows, self.assignments))

    def with_assignment(self, name: str, assignment: Assignment) -> "GroupSnapshot":
        merged = dict(self.assignments)
        merged[name] = assignment
        return replace(self, assignments=merged)

    def without_name(self, name: str) -> "GroupSnapshot":
        """Drop ``name`` from the roster and every assignment that mentions it."""

        assignments = {
            k: v for k, v in self.assignments.items() if k != name and v.giftee != name
        }
        roster = tuple(n for n in self.roster if n != name)
        return replace(self, roster=roster, assignments=assignments)

    @classmethod
    def from_rows(
        cls,
        group_id: int,
        rows: Iterable[ParticipantRow],
        *,
        slug: Optional[str] = None,
    ) -> "GroupSnapshot":
        """Build a fresh view from the store's rows (roster in row order)."""

        rows = list(rows)
        return cls(
            group_id=group_id,
            slug=slug,
            roster=tuple(row.name for row in rows),
            assignments=assignments_from_rows(rows),
            locked=slug is not None,
        )


__all__ = [
    "Assignment",
    "GroupSnapshot",
    "GroupState",
    "ParticipantRow",
    "assignments_from_rows",
]
