from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from .base import Base
from .id_type import ID_TYPE
from ..draw.names import name_key

if TYPE_CHECKING:
    from .group import Group


class Participant(Base):
    """One roster entry of a :class:`Group`.

    The draw engine addresses participants by ``name``; ``id`` is a stable
    synthetic key that survives renames and is never exposed to the engine.
    ``name_key`` holds the trimmed, case-folded name and carries the
    uniqueness constraint.
    """

    def __init__(
        self,
        group_id: int,
        name: str,
        claim_email: Optional[str] = None,
        giftee_name: Optional[str] = None,
        drawn_at: Optional[datetime] = None,
    ):
        self.group_id = group_id
        self.name = name.strip()
        self.name_key = name_key(name)
        self.claim_email = claim_email
        self.giftee_name = giftee_name
        self.drawn_at = drawn_at

    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    name_key: Mapped[str] = mapped_column(String(100), nullable=False)
    claim_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    giftee_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    drawn_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    group: Mapped["Group"] = relationship(back_populates="participants")

    __table_args__ = (
        UniqueConstraint("group_id", "name_key", name="uq_participant_name"),
        CheckConstraint("giftee_name IS NULL OR giftee_name <> name", name="no_self_draw"),
        # nobody can be drawn twice in the same group
        Index(
            "uq_participant_giftee",
            "group_id",
            "giftee_name",
            unique=True,
            sqlite_where=text("giftee_name IS NOT NULL"),
            postgresql_where=text("giftee_name IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Participant(id={self.id}, group_id={self.group_id}, "
            f"name='{self.name}', drawn={self.giftee_name is not None})>"
        )

    @classmethod
    def list_for_group(cls, session: Session, group_id: int) -> list["Participant"]:
        """Return the group's participants ordered by name."""

        stmt = select(cls).where(cls.group_id == group_id).order_by(cls.name.asc())
        return list(session.scalars(stmt).all())
