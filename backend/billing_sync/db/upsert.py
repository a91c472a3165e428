"""Dialect-aware ``INSERT ... ON CONFLICT DO UPDATE`` builder.

PostgreSQL serves production and SQLite serves the test suite; both support
the same ON CONFLICT clause through their own ``insert`` constructs.
"""

from collections.abc import Iterable
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from billing_sync.core.exceptions import ConfigurationError

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def build_upsert(
    session: AsyncSession,
    model: Any,
    values: dict[str, Any],
    conflict_columns: Iterable[str],
    update_columns: Iterable[str] | None = None,
):
    """Return an insert-or-replace statement for ``model``.

    Args:
        session: Session whose bind decides the SQL dialect
        model: Declarative model class to write
        values: Column values for the new row
        conflict_columns: Columns of the unique constraint to upsert on
        update_columns: Columns overwritten on conflict (default: every value
            that is not part of the conflict target)

        Raises:
            ConfigurationError: The session is bound to an unsupported dialect
    """
    dialect = session.get_bind().dialect.name
    try:
        insert = _INSERTS[dialect]
    except KeyError:
        raise ConfigurationError(f"Upsert not supported for dialect '{dialect}'") from None

    conflict_columns = list(conflict_columns)
    if update_columns is None:
        update_columns = [column for column in values if column not in conflict_columns]

    stmt = insert(model).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_={column: stmt.excluded[column] for column in update_columns},
    )
