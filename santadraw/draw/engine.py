"""Engine that reconciles, plans, commits and announces draws."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from .names import normalize_email
from .state import Assignment, GroupSnapshot
from ..backend.utils import mask_email
from ..errors import (
    ConcurrentDrawConflictError,
    ExchangeExhaustedError,
    GroupNotLockedError,
    GroupNotSavedError,
    NameAlreadyClaimedError,
    NotEnoughParticipantsError,
    NotificationDeliveryError,
    UnknownParticipantError,
    ValidationError,
)

if TYPE_CHECKING:
    from ..notify import NotificationSink
    from ..store.base import GroupStore

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2


@dataclass(frozen=True)
class DrawPlan:
    """What a draw request resolves to before anything is written.

    Attributes
    ----------
    name : str
        Roster name the claimant is drawing for.
    email : str
        Normalised claimant email.
    giftee : str
        Name the participant gives to.
    fresh : bool
        ``True`` for a new random draw that still has to be committed,
        ``False`` when the existing draw is re-claimed and resent.
    """

    name: str
    email: str
    giftee: str
    fresh: bool


@dataclass(frozen=True)
class DrawOutcome:
    """A committed draw or re-claim, and the local view after it."""

    gifter_name: str
    giftee_name: str
    email: str
    resent: bool
    snapshot: GroupSnapshot


def check_can_draw(snapshot: GroupSnapshot, name: str, email: str) -> None:
    """Validate the preconditions of a draw attempt.

    Raises
    ------
    GroupNotLockedError
        If the organiser has not generated the group link yet.
    GroupNotSavedError
        If the group has no id.
    ValidationError
        If ``email`` is blank or no name was selected.
    NotEnoughParticipantsError
        If the roster has fewer than two names.
    UnknownParticipantError
        If ``name`` is not on the roster.
    """

    if not snapshot.locked:
        raise GroupNotLockedError("Waiting for the organiser to generate the group link.")
    if not normalize_email(email):
        raise ValidationError("Enter your email before drawing.")
    if len(snapshot.roster) < MIN_PARTICIPANTS:
        raise NotEnoughParticipantsError(
            "Need at least two people before anyone can draw."
        )
    if not name:
        raise ValidationError("Pick your name from the list first.")
    if snapshot.group_id is None:
        raise GroupNotSavedError("Ask the organiser to refresh the page before drawing.")
    if name not in snapshot.roster:
        raise UnknownParticipantError(name)


def plan_draw(
    snapshot: GroupSnapshot,
    name: str,
    email: str,
    rng: random.Random,
) -> DrawPlan:
    """Decide the outcome of a draw request against an already reconciled view.

    An existing draw for ``name`` is re-claimed (never re-randomised) unless
    another email owns it. Otherwise one giftee is picked uniformly at random
    among names that are neither ``name`` nor already someone's giftee.

    This is greedy, one drawer at a time, so the last drawer can be left with
    only their own name even when a full assignment existed.

    Raises
    ------
    NameAlreadyClaimedError
        If ``name`` already drew and another email claimed it.
    ExchangeExhaustedError
        If no candidate giftee remains.
    """

    normalized = normalize_email(email)
    existing = snapshot.assignments.get(name)
    if existing is not None:
        if existing.claimed_by_other(normalized):
            raise NameAlreadyClaimedError(name)
        return DrawPlan(name=name, email=normalized, giftee=existing.giftee, fresh=False)

    candidates = snapshot.candidates_for(name)
    if not candidates:
        raise ExchangeExhaustedError(name)
    return DrawPlan(name=name, email=normalized, giftee=rng.choice(candidates), fresh=True)


class DrawEngine:
    """Runs draws against a :class:`GroupStore` and a :class:`NotificationSink`."""

    def __init__(
        self,
        store: "GroupStore",
        notifier: "NotificationSink",
        *,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Create a draw engine.

        Parameters
        ----------
        store : GroupStore
            Authoritative row store.
        notifier : NotificationSink
            Sink that emails the drawer their match.
        rng : Optional[random.Random], default: None
            Random source for giftee selection. Defaults to a
            :class:`random.SystemRandom`.
        clock : Optional[Callable[[], datetime]], default: None
            Returns the timestamp recorded as ``drawn_at``.
        """

        self._store = store
        self._notifier = notifier
        self._rng = rng or random.SystemRandom()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def reconcile(self, snapshot: GroupSnapshot) -> GroupSnapshot:
        """Fetch the group's rows and merge them into ``snapshot``."""

        if snapshot.group_id is None:
            return snapshot
        rows = self._store.get_participants(snapshot.group_id)
        return snapshot.reconcile(rows)

    def draw(self, snapshot: GroupSnapshot, name: str, email: str) -> DrawOutcome:
        """Claim ``name`` for ``email`` and email the drawer their giftee.

        Notes
        -----
        The flow is:

        1. Reconcile ``snapshot`` with the store; remote values win.
        2. If ``name`` already drew, record ``email`` as its claimant and
           resend the existing giftee.
        3. Otherwise pick a giftee with :func:`plan_draw` and commit it with
           the store's conditional write, which only succeeds while the row
           has no giftee.
        4. Send the notification. A failed delivery raises
           :class:`NotificationDeliveryError` carrying the committed outcome.

        Raises
        ------
        PersistenceError
            If a store read or write fails.
        ConcurrentDrawConflictError
            If another session drew for ``name`` first. Retrying the whole
            draw is safe.
        NameAlreadyClaimedError, ExchangeExhaustedError
            As raised by :func:`plan_draw`.
        """

        check_can_draw(snapshot, name, email)
        group_id = snapshot.group_id
        assert group_id is not None

        snapshot = self.reconcile(snapshot)
        plan = plan_draw(snapshot, name, email, self._rng)

        if plan.fresh:
            timestamp = self._clock()
            committed = self._store.conditional_assign_giftee(
                group_id, plan.name, plan.email, plan.giftee, timestamp
            )
            if not committed:
                logger.warning(f"Lost draw race for {plan.name!r} in group {group_id}")
                raise ConcurrentDrawConflictError(plan.name)
            assignment = Assignment(giftee=plan.giftee, email=plan.email, timestamp=timestamp)
            logger.info(f"Committed draw for {plan.name!r} in group {group_id}")
        else:
            self._store.update_participant_email(group_id, plan.name, plan.email)
            previous = snapshot.assignments[plan.name]
            assignment = Assignment(
                giftee=previous.giftee, email=plan.email, timestamp=previous.timestamp
            )
            logger.info(
                f"Re-claim of {plan.name!r} in group {group_id} by {mask_email(plan.email)}"
            )

        outcome = DrawOutcome(
            gifter_name=plan.name,
            giftee_name=assignment.giftee,
            email=plan.email,
            resent=not plan.fresh,
            snapshot=snapshot.with_assignment(plan.name, assignment),
        )

        delivered = self._notifier.send_match_notification(
            group_id=group_id,
            gifter_name=outcome.gifter_name,
            giftee_name=outcome.giftee_name,
            email=outcome.email,
        )
        if not delivered:
            raise NotificationDeliveryError(outcome)
        return outcome


__all__ = [
    "DrawEngine",
    "DrawOutcome",
    "DrawPlan",
    "MIN_PARTICIPANTS",
    "check_can_draw",
    "plan_draw",
]
