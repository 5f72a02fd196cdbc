"""Record store primitives shared by the auth services."""

import logging
from typing import Any

from sqlalchemy import ColumnElement
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from frishta.exceptions import DependencyError

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# Columns that keep their original value when a row is replaced
_PRESERVED_ON_CONFLICT = frozenset({"id", "created_at"})


def normalize_email(email: str | None) -> str:
    """Trim and lower-case an email so it can be used as a record key."""
    return (email or "").strip().lower()


async def upsert(
    session: AsyncSession,
    model: type[SQLModel],
    conflict_key: str,
    values: dict[str, Any],
    *,
    where: ColumnElement[bool] | None = None,
) -> int:
    """Insert a row or replace the existing one sharing ``conflict_key`` atomically.

    Runs as a single ``INSERT ... ON CONFLICT DO UPDATE`` statement. When
    ``where`` is given the update only applies to conflicting rows matching it.

    Returns:
        Number of rows inserted or updated (0 when ``where`` rejected the update)
    """
    dialect = session.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        logger.error(f"Atomic upsert is not supported for dialect {dialect!r}")
        raise DependencyError()

    table = model.__table__  # type: ignore[attr-defined]
    stmt = insert(table).values(**values)
    replacements = {
        key: stmt.excluded[key]
        for key in values
        if key != conflict_key and key not in _PRESERVED_ON_CONFLICT
    }
    stmt = stmt.on_conflict_do_update(
        index_elements=[conflict_key],
        set_=replacements,
        where=where,
    )
    result = await session.execute(stmt)
    return result.rowcount  # type: ignore[attr-defined]
