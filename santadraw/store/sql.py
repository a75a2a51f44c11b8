"""Group store backed by a SQLAlchemy database."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, Sequence, Union

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .base import UNSET, GroupRecord, GroupStore, _Unset
from ..draw.state import ParticipantRow
from ..errors import PersistenceError
from ..models import Group, Participant

logger = logging.getLogger(__name__)


def _group_record(group: Group) -> GroupRecord:
    return GroupRecord(
        id=group.id,
        organiser_email=group.organiser_email or "",
        slug=group.slug,
        locked=bool(group.locked),
    )


def _is_unique_violation(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed", Postgres: "violates unique constraint"
    return "unique" in str(exc.orig).lower()


def _participant_row(participant: Participant) -> ParticipantRow:
    return ParticipantRow(
        name=participant.name,
        claim_email=participant.claim_email,
        giftee_name=participant.giftee_name,
        drawn_at=participant.drawn_at,
    )


class SqlGroupStore(GroupStore):
    """Store every group in the tables defined by :mod:`santadraw.models`.

    Each operation runs in its own transaction so a failure never leaves a
    half-applied write behind.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        """Create a store bound to ``session_factory``.

        Parameters
        ----------
        session_factory : sessionmaker
            Factory producing sessions for the target database, e.g. from
            :func:`santadraw.db.engine.get_sessionmaker`.
        """

        self._session_factory = session_factory

    @contextmanager
    def _transaction(self, action: str, passthrough: tuple = ()) -> Iterator[Session]:
        try:
            with self._session_factory.begin() as session:
                yield session
        except passthrough:
            raise
        except SQLAlchemyError as exc:
            logger.error(f"Database error during {action}: {exc}")
            raise PersistenceError(f"Could not {action}") from exc

    def create_group(self, organiser_email: str) -> int:
        with self._transaction("create group") as session:
            group = Group(organiser_email=organiser_email)
            session.add(group)
            session.flush()
            logger.debug(f"Created group {group.id}")
            return group.id

    def update_group(
        self,
        group_id: int,
        *,
        organiser_email: Union[str, _Unset] = UNSET,
        slug: Union[str, None, _Unset] = UNSET,
    ) -> GroupRecord:
        with self._transaction("update group") as session:
            group = session.get(Group, group_id)
            if group is None:
                raise PersistenceError(f"Group {group_id} does not exist")
            if not isinstance(organiser_email, _Unset):
                group.organiser_email = organiser_email
            if not isinstance(slug, _Unset):
                group.assign_slug(slug)
            session.flush()
            return _group_record(group)

    def lock_group(self, group_id: int, slug: str) -> GroupRecord:
        with self._transaction("lock group") as session:
            result = session.execute(
                update(Group)
                .where(Group.id == group_id, Group.slug.is_(None))
                .values(slug=slug, locked=True)
                .execution_options(synchronize_session=False)
            )
            group = session.get(Group, group_id)
            if group is None:
                raise PersistenceError(f"Group {group_id} does not exist")
            if result.rowcount != 1:
                logger.info(f"Group {group_id} was locked by another session")
            return _group_record(group)

    def get_group(self, group_id: int) -> Optional[GroupRecord]:
        with self._transaction("load group") as session:
            group = session.get(Group, group_id)
            return _group_record(group) if group is not None else None

    def get_group_by_slug(self, slug: str) -> Optional[GroupRecord]:
        with self._transaction("load group") as session:
            group = Group.get_by_slug(session, slug)
            return _group_record(group) if group is not None else None

    def replace_participants(self, group_id: int, names: Sequence[str]) -> None:
        with self._transaction("save participants") as session:
            session.execute(delete(Participant).where(Participant.group_id == group_id))
            session.add_all(Participant(group_id=group_id, name=name) for name in names)

    def get_participants(self, group_id: int) -> list[ParticipantRow]:
        with self._transaction("load participants") as session:
            return [
                _participant_row(p) for p in Participant.list_for_group(session, group_id)
            ]

    def update_participant_email(self, group_id: int, name: str, email: str) -> None:
        with self._transaction("update claim email") as session:
            session.execute(
                update(Participant)
                .where(Participant.group_id == group_id, Participant.name == name)
                .values(claim_email=email)
            )

    def conditional_assign_giftee(
        self,
        group_id: int,
        name: str,
        email: str,
        giftee_name: str,
        timestamp: datetime,
    ) -> bool:
        stmt = (
            update(Participant)
            .where(
                Participant.group_id == group_id,
                Participant.name == name,
                Participant.giftee_name.is_(None),
            )
            .values(claim_email=email, giftee_name=giftee_name, drawn_at=timestamp)
            .execution_options(synchronize_session=False)
        )
        try:
            with self._transaction("store draw", passthrough=(IntegrityError,)) as session:
                return session.execute(stmt).rowcount == 1
        except IntegrityError as exc:
            if not _is_unique_violation(exc):
                logger.error(f"Database error during store draw: {exc}")
                raise PersistenceError("Could not store draw") from exc
            logger.warning(f"{giftee_name!r} is already someone's giftee in group {group_id}")
            return False

    def delete_participants(self, group_id: int) -> None:
        with self._transaction("delete participants") as session:
            session.execute(delete(Participant).where(Participant.group_id == group_id))


__all__ = ["SqlGroupStore"]
