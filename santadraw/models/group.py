from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .participant import Participant


class Group(Base):
    """A gift exchange owned by a single organiser.

    The group stays *open* while the organiser edits the roster. Generating a
    share link assigns ``slug`` and flips ``locked``; only a reset clears both
    again.
    """

    def __init__(
        self,
        organiser_email: str = "",
        slug: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        """Create a new :class:`Group` record.

        Parameters
        ----------
        organiser_email : str
            Email the organiser uses to unlock the roster tools later.
        slug : str, optional
            Public share token. Supplying one creates the group locked.
        created_at : datetime, optional
            Explicit creation timestamp.
        updated_at : datetime, optional
            Explicit last update timestamp.
        """

        self.organiser_email = organiser_email
        self.slug = slug
        self.locked = slug is not None
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    organiser_email: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )
    slug: Mapped[Optional[str]] = mapped_column(
        String(64), unique=True, nullable=True
    )
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    participants: Mapped[list["Participant"]] = relationship(
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Participant.name",
    )

    __table_args__ = (
        CheckConstraint(
            "(locked AND slug IS NOT NULL) OR (NOT locked AND slug IS NULL)",
            name="slug_iff_locked",
        ),
    )

    @validates("organiser_email")
    def _strip_email(self, _key: str, value: Optional[str]) -> str:
        return (value or "").strip()

    def __repr__(self) -> str:
        return (
            f"<Group(id={self.id}, slug={self.slug!r}, locked={self.locked}, "
            f"updated_at={self.updated_at})>"
        )

    @classmethod
    def get_by_slug(cls, session: Session, slug: str) -> Optional["Group"]:
        """Retrieve a group by its public share token."""

        return session.scalar(select(cls).where(cls.slug == slug))

    def assign_slug(self, slug: Optional[str]) -> None:
        """Set or clear the share token, keeping ``locked`` in step with it."""

        self.slug = slug
        self.locked = slug is not None
