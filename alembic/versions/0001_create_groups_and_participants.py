"""Create groups and participants tables

Revision ID: 0001
Revises:
Create Date: 2025-11-20 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "groups",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("organiser_email", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=64), nullable=True),
        sa.Column("locked", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(locked AND slug IS NOT NULL) OR (NOT locked AND slug IS NULL)",
            name=op.f("ck_groups_slug_iff_locked"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_groups")),
        sa.UniqueConstraint("slug", name=op.f("uq_groups_slug")),
    )
    op.create_table(
        "participants",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("group_id", ID_TYPE, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("name_key", sa.String(length=100), nullable=False),
        sa.Column("claim_email", sa.String(length=255), nullable=True),
        sa.Column("giftee_name", sa.String(length=100), nullable=True),
        sa.Column("drawn_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "giftee_name IS NULL OR giftee_name <> name",
            name=op.f("ck_participants_no_self_draw"),
        ),
        sa.ForeignKeyConstraint(
            ["group_id"],
            ["groups.id"],
            name=op.f("fk_participants_group_id_groups"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_participants")),
        sa.UniqueConstraint("group_id", "name_key", name="uq_participant_name"),
    )
    op.create_index(
        op.f("ix_participants_group_id"), "participants", ["group_id"], unique=False
    )
    op.create_index(
        "uq_participant_giftee",
        "participants",
        ["group_id", "giftee_name"],
        unique=True,
        sqlite_where=sa.text("giftee_name IS NOT NULL"),
        postgresql_where=sa.text("giftee_name IS NOT NULL"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("uq_participant_giftee", table_name="participants")
    op.drop_index(op.f("ix_participants_group_id"), table_name="participants")
    op.drop_table("participants")
    op.drop_table("groups")
