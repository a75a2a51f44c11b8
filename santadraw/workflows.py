import logging
import random
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from .draw.engine import MIN_PARTICIPANTS, DrawEngine, DrawOutcome
from .draw.names import dedupe_names, normalize_email
from .draw.state import GroupSnapshot
from .errors import (
    EmptyRosterError,
    GroupNotFoundError,
    GroupNotSavedError,
    MissingOrganiserEmailError,
    NotEnoughParticipantsError,
    PersistenceError,
    RosterLockedError,
)
from .links import GroupLink, create_group_link, group_url

if TYPE_CHECKING:
    from .notify import NotificationSink
    from .store.base import GroupStore

logger = logging.getLogger(__name__)


class CancellationToken:
    """Liveness flag for a load whose owner may be torn down mid-flight."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


@dataclass(frozen=True)
class LoadedGroup:
    """A group opened from its share link."""

    snapshot: GroupSnapshot
    organiser_email: str
    link: GroupLink


def save_roster(
    store: "GroupStore",
    snapshot: GroupSnapshot,
    organiser_email: str,
    names: Iterable[str],
) -> GroupSnapshot:
    """Persist the organiser email and replace the group's roster.

    The roster is de-duplicated first (trimmed, case-insensitive, first
    occurrence wins with its casing). The group is created on the first save
    and updated afterwards; the participant rows are then deleted and
    re-inserted, so running the save again is always safe.

    Parameters
    ----------
    store : GroupStore
        Store that holds the group.
    snapshot : GroupSnapshot
        Current local view. Its ``group_id`` decides between create and update.
    organiser_email : str
        Email that later unlocks the organiser tools.
    names : Iterable[str]
        Roster as edited by the organiser.

    Returns
    -------
    GroupSnapshot
        Open view with the saved roster and no assignments.

    Raises
    ------
    RosterLockedError
        If the group is locked.
    MissingOrganiserEmailError
        If ``organiser_email`` is blank.
    EmptyRosterError
        If no names are left after de-duplication.
    PersistenceError
        If any write fails. Nothing should be assumed committed.
    """

    if snapshot.locked:
        raise RosterLockedError("The list is locked. Reset the event to make changes.")

    organiser_email = organiser_email.strip()
    if not organiser_email:
        raise MissingOrganiserEmailError("Please add an organiser email before saving.")

    unique_names = dedupe_names(names)
    if not unique_names:
        raise EmptyRosterError("No names captured. Add at least one participant.")

    if snapshot.group_id is not None:
        record = store.update_group(snapshot.group_id, organiser_email=organiser_email)
        group_id = record.id
    else:
        group_id = store.create_group(organiser_email)

    store.replace_participants(group_id, unique_names)
    logger.info(f"Saved roster of {len(unique_names)} for group {group_id}")

    return GroupSnapshot(group_id=group_id, roster=tuple(unique_names))


def generate_group_link(
    store: "GroupStore",
    snapshot: GroupSnapshot,
    *,
    base_url: Optional[str] = None,
) -> tuple[GroupSnapshot, GroupLink]:
    """Lock the group behind a fresh share link.

    Calling this on a group that is already locked, locally or in the store,
    is a no-op that returns the existing link. The slug is only written while
    the stored group has none, so when two organisers race both end up with
    the slug that was stored first.

    Raises
    ------
    NotEnoughParticipantsError
        If the open roster has fewer than two names.
    GroupNotSavedError
        If the roster was never saved.
    PersistenceError
        If the store cannot be read or written.
    """

    if snapshot.locked and snapshot.slug:
        return snapshot, GroupLink(snapshot.slug, group_url(snapshot.slug, base_url))

    if len(snapshot.roster) < MIN_PARTICIPANTS:
        raise NotEnoughParticipantsError(
            "Save at least two names before generating the group link."
        )
    if snapshot.group_id is None:
        raise GroupNotSavedError("Save the list before generating the link.")

    current = store.get_group(snapshot.group_id)
    if current is None:
        raise PersistenceError(f"Group {snapshot.group_id} no longer exists")

    if current.locked and current.slug:
        record = current
        logger.info(f"Group {current.id} was already locked; reusing its slug")
    else:
        link = create_group_link(
            base_url, exists=lambda slug: store.get_group_by_slug(slug) is not None
        )
        record = store.lock_group(snapshot.group_id, link.slug)
        if record.slug != link.slug:
            logger.info(f"Group {record.id} was locked concurrently; adopting its slug")
        else:
            logger.info(f"Locked group {record.id}")

    if not record.slug:
        raise PersistenceError(f"Group {record.id} did not keep its slug")

    locked = GroupSnapshot(
        group_id=record.id,
        slug=record.slug,
        roster=snapshot.roster,
        assignments=snapshot.assignments,
        locked=True,
    )
    return locked, GroupLink(record.slug, group_url(record.slug, base_url))


def draw_giftee(
    store: "GroupStore",
    notifier: "NotificationSink",
    snapshot: GroupSnapshot,
    name: str,
    email: str,
    *,
    rng: Optional[random.Random] = None,
) -> DrawOutcome:
    """Draw (or re-claim) a giftee for ``name`` on behalf of ``email``.

    This function wraps :meth:`DrawEngine.draw`; see there for the steps and
    the exceptions it raises.
    """

    engine = DrawEngine(store, notifier, rng=rng)
    return engine.draw(snapshot, name, email)


def reset_group(store: "GroupStore", snapshot: GroupSnapshot) -> GroupSnapshot:
    """Delete every participant and unlock the group for a new draw epoch.

    The group row itself is kept so the next save updates it. This cannot be
    undone.
    """

    if snapshot.group_id is not None:
        store.delete_participants(snapshot.group_id)
        store.update_group(snapshot.group_id, slug=None)
        logger.info(f"Reset group {snapshot.group_id}")
    return GroupSnapshot(group_id=snapshot.group_id)


def load_group(
    store: "GroupStore",
    slug: str,
    *,
    token: Optional[CancellationToken] = None,
    base_url: Optional[str] = None,
) -> Optional[LoadedGroup]:
    """Open the group shared under ``slug``.

    Returns ``None`` when ``token`` was cancelled while the store was being
    read, so the caller must not apply anything.

    Raises
    ------
    GroupNotFoundError
        If no group uses ``slug``.
    PersistenceError
        If the group or its participants cannot be read.
    """

    record = store.get_group_by_slug(slug)
    if record is None:
        raise GroupNotFoundError(slug)
    if token is not None and token.cancelled:
        return None

    rows = store.get_participants(record.id)
    if token is not None and token.cancelled:
        logger.debug(f"Discarding load of group {record.id}; loader was cancelled")
        return None

    resolved_slug = record.slug or slug
    snapshot = GroupSnapshot.from_rows(record.id, rows, slug=resolved_slug)
    return LoadedGroup(
        snapshot=snapshot,
        organiser_email=record.organiser_email,
        link=GroupLink(resolved_slug, group_url(resolved_slug, base_url)),
    )


def check_organiser_email(organiser_email: Optional[str], attempt: str) -> bool:
    """Compare ``attempt`` with the stored organiser email.

    Trimmed and case-insensitive. With no organiser email on file every
    attempt passes. This only hides the organiser tools in the client; it is
    not access control and the store does not enforce it.
    """

    expected = normalize_email(organiser_email)
    if not expected:
        return True
    return normalize_email(attempt) == expected


__all__ = [
    "CancellationToken",
    "LoadedGroup",
    "check_organiser_email",
    "draw_giftee",
    "generate_group_link",
    "load_group",
    "reset_group",
    "save_roster",
]
