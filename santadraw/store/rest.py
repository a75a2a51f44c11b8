"""Group store backed by the hosted backend's REST row store.

The hosted tables are ``groups(id, organiser_email,
slug)`` and ``participants(group_id, name, email, giftee_name, drawn_at)``.
There is no ``locked`` column there; a group is locked exactly when it has a
slug.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional, Sequence, Union

import requests

from .base import UNSET, GroupRecord, GroupStore, _Unset
from ..backend.api import BackendClient
from ..backend.utils import eq, is_null, mask_email, order_by
from ..db.utils import dt_iso, parse_iso
from ..draw.state import ParticipantRow
from ..errors import PersistenceError

logger = logging.getLogger(__name__)

GROUPS_TABLE = "groups"
PARTICIPANTS_TABLE = "participants"


def _group_record(row: dict) -> GroupRecord:
    slug = row.get("slug") or None
    return GroupRecord(
        id=row["id"],
        organiser_email=row.get("organiser_email") or "",
        slug=slug,
        locked=slug is not None,
    )


def _participant_row(row: dict) -> ParticipantRow:
    return ParticipantRow(
        name=row["name"],
        claim_email=row.get("email") or None,
        giftee_name=row.get("giftee_name") or None,
        drawn_at=parse_iso(row.get("drawn_at")),
    )


class RestGroupStore(GroupStore):
    """Store groups in the hosted row store through :class:`BackendClient`."""

    def __init__(self, client: Optional[BackendClient] = None) -> None:
        self._client = client or BackendClient()

    @contextmanager
    def _call(self, action: str) -> Iterator[BackendClient]:
        try:
            yield self._client
        except (requests.RequestException, ValueError, KeyError) as exc:
            # ValueError covers malformed JSON bodies
            logger.error(f"Row store error during {action}: {exc}")
            raise PersistenceError(f"Could not {action}") from exc

    def create_group(self, organiser_email: str) -> int:
        with self._call("create group") as client:
            rows = client.insert(GROUPS_TABLE, [{"organiser_email": organiser_email}])
            if not rows:
                raise PersistenceError("No group ID returned from the row store.")
            return rows[0]["id"]

    def update_group(
        self,
        group_id: int,
        *,
        organiser_email: Union[str, _Unset] = UNSET,
        slug: Union[str, None, _Unset] = UNSET,
    ) -> GroupRecord:
        values: dict = {}
        if not isinstance(organiser_email, _Unset):
            values["organiser_email"] = organiser_email
        if not isinstance(slug, _Unset):
            values["slug"] = slug
        with self._call("update group") as client:
            if not values:
                rows = client.select(GROUPS_TABLE, filters={"id": eq(group_id)})
            else:
                rows = client.update(
                    GROUPS_TABLE, values, filters={"id": eq(group_id)}
                )
            if not rows:
                raise PersistenceError(f"Group {group_id} does not exist")
            return _group_record(rows[0])

    def lock_group(self, group_id: int, slug: str) -> GroupRecord:
        with self._call("lock group") as client:
            rows = client.update(
                GROUPS_TABLE,
                {"slug": slug},
                filters={"id": eq(group_id), "slug": is_null()},
            )
            if not rows:
                logger.info(f"Group {group_id} was locked by another session")
                rows = client.select(
                    GROUPS_TABLE,
                    columns="id, organiser_email, slug",
                    filters={"id": eq(group_id)},
                )
            if not rows:
                raise PersistenceError(f"Group {group_id} does not exist")
            return _group_record(rows[0])

    def get_group(self, group_id: int) -> Optional[GroupRecord]:
        with self._call("load group") as client:
            rows = client.select(
                GROUPS_TABLE,
                columns="id, organiser_email, slug",
                filters={"id": eq(group_id)},
            )
            return _group_record(rows[0]) if rows else None

    def get_group_by_slug(self, slug: str) -> Optional[GroupRecord]:
        with self._call("load group") as client:
            rows = client.select(
                GROUPS_TABLE,
                columns="id, organiser_email, slug",
                filters={"slug": eq(slug)},
            )
            return _group_record(rows[0]) if rows else None

    def replace_participants(self, group_id: int, names: Sequence[str]) -> None:
        with self._call("save participants") as client:
            client.delete(PARTICIPANTS_TABLE, filters={"group_id": eq(group_id)})
            if names:
                client.insert(
                    PARTICIPANTS_TABLE,
                    [{"group_id": group_id, "name": name} for name in names],
                )

    def get_participants(self, group_id: int) -> list[ParticipantRow]:
        with self._call("load participants") as client:
            rows = client.select(
                PARTICIPANTS_TABLE,
                columns="name, email, giftee_name, drawn_at",
                filters={"group_id": eq(group_id)},
                order=order_by("name"),
            )
            return [_participant_row(row) for row in rows]

    def update_participant_email(self, group_id: int, name: str, email: str) -> None:
        with self._call("update claim email") as client:
            client.update(
                PARTICIPANTS_TABLE,
                {"email": email},
                filters={"group_id": eq(group_id), "name": eq(name)},
            )

    def conditional_assign_giftee(
        self,
        group_id: int,
        name: str,
        email: str,
        giftee_name: str,
        timestamp: datetime,
    ) -> bool:
        with self._call("store draw") as client:
            try:
                changed = client.update(
                    PARTICIPANTS_TABLE,
                    {
                        "email": email,
                        "giftee_name": giftee_name,
                        "drawn_at": dt_iso(timestamp),
                    },
                    filters={
                        "group_id": eq(group_id),
                        "name": eq(name),
                        "giftee_name": is_null(),
                    },
                )
            except requests.HTTPError as exc:
                # 409: the unique giftee index rejected a second claim
                if exc.response is None or exc.response.status_code != 409:
                    raise
                logger.warning(
                    f"{giftee_name!r} is already someone's giftee in group {group_id}"
                )
                return False
            logger.debug(
                f"Conditional draw for group {group_id} by {mask_email(email)} "
                f"changed {len(changed)} row(s)"
            )
            return len(changed) == 1

    def delete_participants(self, group_id: int) -> None:
        with self._call("delete participants") as client:
            client.delete(PARTICIPANTS_TABLE, filters={"group_id": eq(group_id)})


__all__ = ["RestGroupStore"]
