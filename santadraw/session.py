"""Client-side state of one browser session and its user actions.

:class:`ExchangeSession` keeps the local roster and assignment cache that a
front end renders, and is the boundary where every user-triggered action
catches :class:`~santadraw.errors.SantaDrawError`. Each action returns an
:class:`ActionResult`; the message is also kept on the session so the
status text survives until the next action.
"""

from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Iterator, Optional

from .draw.engine import MIN_PARTICIPANTS, DrawEngine
from .draw.names import normalize_email, validate_new_name
from .draw.state import GroupSnapshot
from .errors import (
    ConcurrentDrawConflictError,
    DuplicateNameError,
    ExchangeExhaustedError,
    GroupNotFoundError,
    NameAlreadyClaimedError,
    NotificationDeliveryError,
    OrganiserLockedError,
    PersistenceError,
    RosterLockedError,
    SantaDrawError,
)
from .links import slug_from_path
from .workflows import (
    CancellationToken,
    check_organiser_email,
    generate_group_link,
    load_group,
    reset_group,
    save_roster,
)

if TYPE_CHECKING:
    from .notify import NotificationSink
    from .store.base import GroupStore

logger = logging.getLogger(__name__)

DRAW_MAX_ATTEMPTS = 3

MSG_SAVED = "Participant list saved. Generate group link to start."
MSG_SAVE_FAILED = "Could not save group. Try again."
MSG_LOCKED = "Group locked. Share the link so everyone can draw."
MSG_ALREADY_LOCKED = "Group is already locked. Share the link below."
MSG_LOCK_FAILED = "Could not lock group. Try again."
MSG_RESET = "Group reset. Add names to start again."
MSG_RESET_FAILED = "Could not reset group. Try again."
MSG_ORGANISER_ONLY = "Only the organiser can edit the participants."
MSG_UNLOCK_MISMATCH = "That email doesn't match the organiser on file."
MSG_GROUP_NOT_FOUND = "We couldn't find that group. Ask your organiser for a fresh link."
MSG_LOAD_FAILED = "We couldn't load participants right now. Try refreshing."
MSG_DRAWN = "All set! We just emailed you the name you drew (check your junk)."
MSG_RESENT = "We just resent your match to your email."
MSG_CLAIMED = "Looks like someone already claimed this name."
MSG_EXHAUSTED = "Everyone else has already been matched. Ask the organiser to reset."
MSG_CONFLICT = "Someone else drew this name at the same moment. Try again."
MSG_DRAW_FAILED = "Could not store your draw. Try again."
MSG_SAVED_NOT_SENT = (
    "We saved your draw but couldn't send the email. Ask the organiser to resend."
)
MSG_FOUND_NOT_SENT = (
    "We found your draw but couldn't send the email. Ask the organiser to resend."
)


@dataclass(frozen=True)
class ActionResult:
    ok: bool
    message: str = ""


class ExchangeSession:
    """Local view of a gift exchange for one organiser or participant.

    A session created without a slug belongs to the organiser building a new
    group and starts with the organiser tools unlocked. A session opened from
    a share link starts locked and loads the group from the store.
    """

    def __init__(
        self,
        store: "GroupStore",
        notifier: "NotificationSink",
        *,
        slug: str = "",
        base_url: Optional[str] = None,
        rng: Optional[random.Random] = None,
        max_draw_attempts: int = DRAW_MAX_ATTEMPTS,
    ) -> None:
        if max_draw_attempts < 1:
            raise ValueError("max_draw_attempts must be at least 1")

        self._store = store
        self._notifier = notifier
        self._base_url = base_url
        self._engine = DrawEngine(store, notifier, rng=rng)
        self._max_draw_attempts = max_draw_attempts
        self._load_token: Optional[CancellationToken] = None

        self.snapshot = GroupSnapshot()
        self.slug = slug
        self.link_url = ""
        self.organiser_email = ""
        self.organiser_unlocked = not slug
        self.unlock_required = False
        self.selected_name = ""
        self.email = ""
        self.pending: Optional[str] = None

        self.save_message = ""
        self.lock_message = ""
        self.draw_message = ""
        self.add_error = ""
        self.unlock_error = ""

    @classmethod
    def from_path(
        cls,
        store: "GroupStore",
        notifier: "NotificationSink",
        path: Optional[str],
        **kwargs,
    ) -> "ExchangeSession":
        """Create a session for a request path, e.g. ``/group/ab12cd34``."""

        return cls(store, notifier, slug=slug_from_path(path), **kwargs)

    # -------- derived state --------
    @property
    def participants(self) -> tuple[str, ...]:
        return self.snapshot.roster

    @property
    def assignments(self):
        return self.snapshot.assignments

    @property
    def locked(self) -> bool:
        return self.snapshot.locked

    @property
    def loading(self) -> bool:
        return self.pending == "loading"

    @property
    def can_generate_link(self) -> bool:
        return (
            len(self.participants) >= MIN_PARTICIPANTS
            and not self.locked
            and not self.loading
        )

    @property
    def can_reset(self) -> bool:
        return bool(self.participants) or self.locked or bool(self.assignments)

    def owned_name(self, email: Optional[str] = None) -> Optional[str]:
        return self.snapshot.owned_name(self.email if email is None else email)

    def claim_label(self, name: str, email: Optional[str] = None) -> str:
        """Return ``"taken"``, ``"yours"`` or ``""`` for the name picker."""

        assignment = self.assignments.get(name)
        if assignment is None:
            return ""
        if assignment.claimed_by_other(self.email if email is None else email):
            return "taken"
        return "yours"

    def participant_count_label(self) -> str:
        count = len(self.participants)
        if count == 0:
            return "Nobody added yet"
        if count == 1:
            return "1 person added"
        return f"{count} people added"

    def draw_label(self) -> str:
        if self.pending == "drawing":
            return "Sending…"
        assignment = self.assignments.get(self.selected_name)
        if assignment is not None and assignment.email == normalize_email(self.email):
            return "Email me my person"
        return "Draw my person"

    def status_message(self) -> str:
        """Current draw-panel text: the last draw message or a hint."""

        if self.draw_message:
            return self.draw_message
        if self.loading:
            return "Loading group details..."
        if not self.locked:
            return "Organiser is still setting things up."
        if not normalize_email(self.email):
            return "Enter your email so we know who is drawing."
        if not self.selected_name:
            return "Pick your name from the list to continue."
        return "Ready when you are - hit the button and we will email your match."

    # -------- participant inputs --------
    def set_email(self, email: str) -> None:
        self.email = email
        self.draw_message = ""
        self._select_owned_name()

    def select_name(self, name: str) -> None:
        self.selected_name = name
        self.draw_message = ""

    def _select_owned_name(self) -> None:
        owned = self.owned_name()
        if owned is None or owned == self.selected_name:
            return
        current = self.assignments.get(self.selected_name)
        if current is None or current.email != normalize_email(self.email):
            self.selected_name = owned

    @contextmanager
    def _pending(self, action: str) -> Iterator[None]:
        self.pending = action
        try:
            yield
        finally:
            self.pending = None

    def _require_organiser(self) -> None:
        if not self.organiser_unlocked:
            raise OrganiserLockedError(MSG_ORGANISER_ONLY)

    # -------- loading --------
    def load(self, slug: Optional[str] = None) -> ActionResult:
        """Load the group shared under ``slug`` (default: the session's slug)."""

        slug = slug or self.slug
        if not slug:
            return ActionResult(False, MSG_GROUP_NOT_FOUND)

        if self._load_token is not None:
            self._load_token.cancel()
        token = CancellationToken()
        self._load_token = token

        with self._pending("loading"):
            try:
                loaded = load_group(self._store, slug, token=token, base_url=self._base_url)
            except PersistenceError as exc:
                if token.cancelled:
                    return ActionResult(False)
                not_found = isinstance(exc, GroupNotFoundError)
                self.lock_message = MSG_GROUP_NOT_FOUND if not_found else MSG_LOAD_FAILED
                return ActionResult(False, self.lock_message)

        # The session may have been closed while the store was being read.
        if loaded is None or token.cancelled:
            return ActionResult(False)

        if not self.organiser_unlocked:
            self.unlock_error = ""
        self.snapshot = loaded.snapshot
        self.slug = loaded.link.slug
        self.link_url = loaded.link.url
        self.organiser_email = loaded.organiser_email
        self.add_error = ""
        self.save_message = ""
        self.lock_message = MSG_LOCKED
        self._select_owned_name()
        return ActionResult(True, self.lock_message)

    def close(self) -> None:
        """Tear the session down; results of an in-flight load are discarded."""

        if self._load_token is not None:
            self._load_token.cancel()

    # -------- organiser actions --------
    def add_participant(self, name: str) -> ActionResult:
        try:
            self._require_organiser()
            if self.locked or self.loading:
                raise RosterLockedError("The list is locked. Reset the event to make changes.")
            trimmed = validate_new_name(name, self.participants)
        except SantaDrawError as exc:
            self.add_error = _duplicate_or_message(exc)
            return ActionResult(False, self.add_error)

        self.snapshot = replace(self.snapshot, roster=self.participants + (trimmed,))
        self.add_error = ""
        self.save_message = ""
        return ActionResult(True)

    def remove_participant(self, name: str) -> ActionResult:
        if not self.organiser_unlocked:
            return ActionResult(False, MSG_ORGANISER_ONLY)
        if self.locked:
            return ActionResult(False, "The list is locked. Reset the event to make changes.")
        self.snapshot = self.snapshot.without_name(name)
        self.add_error = ""
        self.save_message = ""
        return ActionResult(True)

    def save(self) -> ActionResult:
        """Persist the roster; on a store failure the local roster is cleared."""

        names = list(self.participants)
        try:
            self._require_organiser()
            with self._pending("saving"):
                snapshot = save_roster(self._store, self.snapshot, self.organiser_email, names)
        except PersistenceError:
            logger.exception("Roster save failed")
            self.snapshot = GroupSnapshot(group_id=self.snapshot.group_id)
            self._clear_draw_inputs()
            self.save_message = MSG_SAVE_FAILED
            return ActionResult(False, self.save_message)
        except SantaDrawError as exc:
            self.save_message = str(exc)
            return ActionResult(False, self.save_message)

        self.snapshot = snapshot
        self._clear_draw_inputs()
        self.slug = ""
        self.link_url = ""
        self.lock_message = ""
        self.add_error = ""
        self.save_message = MSG_SAVED
        return ActionResult(True, self.save_message)

    def generate_link(self) -> ActionResult:
        if self.locked:
            self.lock_message = MSG_ALREADY_LOCKED
            return ActionResult(True, self.lock_message)

        try:
            self._require_organiser()
            with self._pending("locking"):
                snapshot, link = generate_group_link(
                    self._store, self.snapshot, base_url=self._base_url
                )
        except PersistenceError:
            logger.exception("Group lock failed")
            self.lock_message = MSG_LOCK_FAILED
            return ActionResult(False, self.lock_message)
        except SantaDrawError as exc:
            self.lock_message = str(exc)
            return ActionResult(False, self.lock_message)

        self.snapshot = snapshot
        self.slug = link.slug
        self.link_url = link.url
        self.lock_message = MSG_LOCKED
        self.save_message = ""
        self.organiser_unlocked = True
        self.unlock_error = ""
        return ActionResult(True, self.lock_message)

    def reset(self) -> ActionResult:
        """Delete the roster and every draw; the organiser must unlock again."""

        try:
            self._require_organiser()
            with self._pending("resetting"):
                snapshot = reset_group(self._store, self.snapshot)
        except PersistenceError:
            logger.exception("Group reset failed")
            self.save_message = MSG_RESET_FAILED
            return ActionResult(False, self.save_message)
        except SantaDrawError as exc:
            self.save_message = str(exc)
            return ActionResult(False, self.save_message)

        self.snapshot = snapshot
        self._clear_draw_inputs()
        self.slug = ""
        self.link_url = ""
        self.lock_message = ""
        self.save_message = MSG_RESET
        self.organiser_unlocked = False
        self.unlock_required = True
        self.unlock_error = ""
        self.add_error = ""
        return ActionResult(True, self.save_message)

    def unlock(self, attempt: str) -> ActionResult:
        """Unlock the organiser tools if ``attempt`` matches the organiser email.

        This is a convenience gate in the client only; anyone with the link
        can reach the store directly.
        """

        if check_organiser_email(self.organiser_email, attempt):
            self.organiser_unlocked = True
            self.unlock_required = False
            self.unlock_error = ""
            return ActionResult(True)
        self.unlock_error = MSG_UNLOCK_MISMATCH
        return ActionResult(False, self.unlock_error)

    # -------- participant actions --------
    def draw(self, name: Optional[str] = None, email: Optional[str] = None) -> ActionResult:
        """Draw (or resend) the giftee for the selected name.

        A lost race is retried from reconciliation up to ``max_draw_attempts``
        times in total.
        """

        if email is not None:
            self.set_email(email)
        if name is not None:
            self.select_name(name)

        with self._pending("drawing"):
            result = self._draw_with_retry()
        self.draw_message = result.message
        return result

    def _draw_with_retry(self) -> ActionResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                outcome = self._engine.draw(self.snapshot, self.selected_name, self.email)
            except ConcurrentDrawConflictError:
                if attempt < self._max_draw_attempts:
                    logger.info(f"Retrying draw for {self.selected_name!r} (attempt {attempt + 1})")
                    continue
                return ActionResult(False, MSG_CONFLICT)
            except NotificationDeliveryError as exc:
                self.snapshot = exc.outcome.snapshot
                message = MSG_FOUND_NOT_SENT if exc.outcome.resent else MSG_SAVED_NOT_SENT
                return ActionResult(False, message)
            except NameAlreadyClaimedError:
                self._refresh_assignments()
                return ActionResult(False, MSG_CLAIMED)
            except ExchangeExhaustedError:
                self._refresh_assignments()
                return ActionResult(False, MSG_EXHAUSTED)
            except PersistenceError:
                logger.exception("Draw failed against the store")
                return ActionResult(False, MSG_DRAW_FAILED)
            except SantaDrawError as exc:
                return ActionResult(False, str(exc))

            self.snapshot = outcome.snapshot
            return ActionResult(True, MSG_RESENT if outcome.resent else MSG_DRAWN)

    def _refresh_assignments(self) -> None:
        # Show the merged remote view even when the draw was refused.
        try:
            self.snapshot = self._engine.reconcile(self.snapshot)
        except PersistenceError:
            logger.warning("Could not refresh assignments after a refused draw")

    def _clear_draw_inputs(self) -> None:
        self.selected_name = ""
        self.email = ""
        self.draw_message = ""


def _duplicate_or_message(exc: SantaDrawError) -> str:
    if isinstance(exc, DuplicateNameError):
        return "That name is already on the list."
    return str(exc)


__all__ = ["ActionResult", "DRAW_MAX_ATTEMPTS", "ExchangeSession"]
