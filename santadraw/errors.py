"""Exception classes raised by the draw workflows."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .draw.engine import DrawOutcome


class SantaDrawError(Exception):
    """Base exception for all gift exchange errors."""
    pass


class ValidationError(SantaDrawError):
    """Raised when organiser input is rejected before anything is stored."""
    pass


class EmptyNameError(ValidationError):
    """Raised when a participant name is blank after trimming."""
    pass


class DuplicateNameError(ValidationError):
    """Raised when an equivalent name (trimmed, case-insensitive) is already listed."""

    def __init__(self, name: str):
        super().__init__(f"{name!r} is already on the list")
        self.name = name


class MissingOrganiserEmailError(ValidationError):
    """Raised when saving a roster without an organiser email."""
    pass


class EmptyRosterError(ValidationError):
    """Raised when saving a roster that has no names left after de-duplication."""
    pass


class StateError(SantaDrawError):
    """Raised when an operation is not allowed in the group's current state."""
    pass


class RosterLockedError(StateError):
    """Raised when editing the roster of a locked group."""
    pass


class GroupNotSavedError(StateError):
    """Raised when locking a group whose roster was never saved."""
    pass


class NotEnoughParticipantsError(StateError):
    """Raised when locking or drawing with fewer than two participants."""
    pass


class GroupNotLockedError(StateError):
    """Raised when drawing before the organiser generated the group link."""
    pass


class OrganiserLockedError(StateError):
    """Raised when organiser tools are used before the unlock check passed."""
    pass


class PersistenceError(SantaDrawError):
    """Raised when a read or write against the group store fails.

    Nothing about the attempted operation should be assumed committed.
    """
    pass


class GroupNotFoundError(PersistenceError):
    """Raised when no group matches the requested slug."""

    def __init__(self, slug: str):
        super().__init__(f"No group found for slug {slug!r}")
        self.slug = slug


class DrawError(SantaDrawError):
    """Base exception for draw-time business rule failures."""
    pass


class UnknownParticipantError(DrawError):
    """Raised when the selected name is not on the roster."""

    def __init__(self, name: str):
        super().__init__(f"{name!r} is not on the roster")
        self.name = name


class NameAlreadyClaimedError(DrawError):
    """Raised when another email already claimed the selected name."""

    def __init__(self, name: str):
        super().__init__(f"{name!r} was already claimed by someone else")
        self.name = name


class ExchangeExhaustedError(DrawError):
    """Raised when no giftee is left for the drawer; the organiser must reset."""

    def __init__(self, name: str):
        super().__init__(f"No giftee left for {name!r}")
        self.name = name


class ConcurrentDrawConflictError(DrawError):
    """Raised when another session committed a draw for the same name first.

    Retrying the whole draw from reconciliation is always safe.
    """

    def __init__(self, name: str):
        super().__init__(f"A concurrent draw for {name!r} won the race")
        self.name = name


class NotificationDeliveryError(SantaDrawError):
    """Raised when the match email could not be delivered.

    The draw itself is already committed; ``outcome`` describes it.
    """

    def __init__(self, outcome: "DrawOutcome", reason: Optional[str] = None):
        message = f"Could not deliver match email for {outcome.gifter_name!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.outcome = outcome
        self.reason = reason
