"""Small persistence helpers shared by the services."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite drops the offset on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def conflict_insert(db: AsyncSession, model: Any) -> Any:
    """Return an INSERT construct supporting ``on_conflict_do_*`` for the session's dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    msg = f"Conflict-tolerant insert not supported for dialect {dialect!r}"
    raise RuntimeError(msg)


def supports_row_locks(db: AsyncSession) -> bool:
    return db.get_bind().dialect.name == "postgresql"
