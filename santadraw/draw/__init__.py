"""Roster model and the draw algorithm."""

from .engine import (
    MIN_PARTICIPANTS,
    DrawEngine,
    DrawOutcome,
    DrawPlan,
    check_can_draw,
    plan_draw,
)
from .names import dedupe_names, name_key, normalize_email, validate_new_name
from .state import (
    Assignment,
    GroupSnapshot,
    GroupState,
    ParticipantRow,
    assignments_from_rows,
)

__all__ = [
    "Assignment",
    "DrawEngine",
    "DrawOutcome",
    "DrawPlan",
    "GroupSnapshot",
    "GroupState",
    "MIN_PARTICIPANTS",
    "ParticipantRow",
    "assignments_from_rows",
    "check_can_draw",
    "dedupe_names",
    "name_key",
    "normalize_email",
    "plan_draw",
    "validate_new_name",
]
