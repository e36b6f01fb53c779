"""Dialect-aware INSERT ... ON CONFLICT DO UPDATE by natural key."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from lending_core.db.base import Base


def _insert_for(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"upsert not supported on {dialect}")


def upsert(
    session: Session,
    model: type[Base],
    values: dict[str, Any],
    key: Sequence[str],
) -> int:
    """Insert *values* or overwrite the row matching *key*; return its id.

    ``updated_at`` is refreshed on every write. Does not commit.
    """
    values = dict(values)
    if "updated_at" in model.__table__.c:
        values["updated_at"] = datetime.now(timezone.utc)

    insert = _insert_for(session)
    stmt = insert(model).values(**values)
    update_cols = {c: stmt.excluded[c] for c in values if c not in key}
    stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=update_cols)
    stmt = stmt.returning(model.__table__.c.id)
    return session.execute(stmt).scalar_one()
