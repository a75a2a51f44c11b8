"""Exit non-zero when the database no longer matches the Group/Participant models.

Exit codes: 0 in sync, 1 drift found, 2 the check itself failed.
"""

from __future__ import annotations

import sys

from alembic.autogenerate import compare_metadata
from alembic.runtime.migration import MigrationContext
from sqlalchemy.exc import SQLAlchemyError

from santadraw.db.engine import make_engine
from santadraw.models import Base


def detect_drift(engine) -> list:
    """Return alembic's list of differences between ``engine`` and the models."""

    with engine.connect() as connection:
        context = MigrationContext.configure(
            connection=connection,
            opts={"compare_type": True, "compare_server_default": True},
        )
        return compare_metadata(context, Base.metadata)


def main() -> int:
    engine = make_engine()
    where = engine.url.render_as_string(hide_password=True)
    try:
        diffs = detect_drift(engine)
    except SQLAlchemyError as exc:
        print(f"Schema drift check: ERROR for {where}: {exc}", file=sys.stderr)
        return 2
    finally:
        engine.dispose()

    if not diffs:
        print(f"Schema drift check: OK for {where}.")
        return 0
    print(f"Schema drift check: {len(diffs)} difference(s) for {where}:")
    for diff in diffs:
        print(f"  - {diff}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
