"""Dialect-aware INSERT ... ON CONFLICT helpers.

Every projection write goes through here so concurrent webhook deliveries for
the same Stripe object resolve in the database instead of in a
read-then-branch race.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_for(session: AsyncSession, model: type[DeclarativeBase]):
    dialect = session.get_bind().dialect.name
    try:
        insert = _INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"Upsert is not supported on dialect '{dialect}'") from None
    return insert(model.__table__)


def _column_values(model: type[DeclarativeBase], values: Mapping[str, Any]) -> dict[str, Any]:
    """Key values by table column instead of mapped attribute (``metadata_`` -> ``metadata``)."""
    attrs = inspect(model).column_attrs
    return {(attrs[key].columns[0].key if key in attrs else key): value for key, value in values.items()}


async def upsert(
    session: AsyncSession,
    model: type[DeclarativeBase],
    values: Mapping[str, Any],
    *,
    conflict_columns: Iterable[str] = ("id",),
    update_columns: Iterable[str] | None = None,
) -> None:
    """Insert a row, or overwrite ``update_columns`` when the key already exists.

    ``update_columns`` defaults to every supplied column except the conflict
    columns (and ``created_at``, which keeps its first-seen value).
    """
    row = _column_values(model, values)
    conflict_columns = list(conflict_columns)
    if update_columns is None:
        update_columns = [k for k in row if k not in conflict_columns and k != "created_at"]
    else:
        update_columns = list(_column_values(model, dict.fromkeys(update_columns)))

    stmt = _insert_for(session, model).values(**row)
    stmt = stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_={column: stmt.excluded[column] for column in update_columns},
    )
    await session.execute(stmt)


async def insert_or_ignore(
    session: AsyncSession,
    model: type[DeclarativeBase],
    values: Mapping[str, Any],
    *,
    conflict_columns: Iterable[str] = ("id",),
) -> bool:
    """Insert a row unless the key exists. Returns True when a row was inserted."""
    stmt = _insert_for(session, model).values(**_column_values(model, values))
    stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
    result = await session.execute(stmt)
    return result.rowcount == 1
