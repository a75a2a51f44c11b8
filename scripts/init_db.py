"""Migrate the configured database (``DB_URL``) and summarise its exchanges."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import func, inspect, select

from santadraw.db.engine import get_sessionmaker, make_engine
from santadraw.models import Group, Participant

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(target_revision: str = "head") -> None:
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    command.upgrade(alembic_cfg, target_revision)


def summarise(engine) -> None:
    """Print the tables plus how many groups are open, locked and drawn."""

    tables = sorted(inspect(engine).get_table_names())
    print("Tables:", ", ".join(tables))
    if Group.__tablename__ not in tables:
        return

    Session = get_sessionmaker(engine)
    with Session() as session:
        locked = session.scalar(
            select(func.count()).select_from(Group).where(Group.locked.is_(True))
        )
        total = session.scalar(select(func.count()).select_from(Group))
        drawn = session.scalar(
            select(func.count())
            .select_from(Participant)
            .where(Participant.giftee_name.is_not(None))
        )
    print(f"Groups: {total} ({locked} locked), committed draws: {drawn}")


def main() -> None:
    upgrade_db()
    engine = make_engine()
    try:
        summarise(engine)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
