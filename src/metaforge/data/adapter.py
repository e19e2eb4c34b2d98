"""Persistence adapter: entity CRUD and find, translated to parameterized SQL.

This is the only component that reads or writes entity data. Each public
call issues exactly one statement; there is no batching and no retry. Any
database failure surfaces as PersistenceError with the entity and
operation in its context.

Criteria format::

    {"status": "active"}                    # equality
    {"status": ["active", "pending"]}       # membership
    {"age": {"gte": 18, "lt": 65}}          # operators
    {"deleted_by": None}                    # IS NULL
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import Connection, Table, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError

from metaforge.exceptions import FieldNotFoundError, PersistenceError, QueryError
from metaforge.metadata.core_fields import DELETED_AT, DELETED_BY, IDENTIFIER_FIELD

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement

    from metaforge.core.connection import DatabaseConnection
    from metaforge.models.model import Model
    from metaforge.storage.tables import TableCatalog

logger = logging.getLogger(__name__)

Criteria = Mapping[str, Any]
OrderBy = str | Sequence[str] | None
Row = dict[str, Any]


def _is_null(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column.is_(None) if value else column.is_not(None)


class PersistenceAdapter:
    """Entity-level CRUD over the tables in a TableCatalog."""

    OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
        "eq": lambda c, v: c.is_(None) if v is None else c == v,
        "ne": lambda c, v: c.is_not(None) if v is None else c != v,
        "gt": lambda c, v: c > v,
        "gte": lambda c, v: c >= v,
        "lt": lambda c, v: c < v,
        "lte": lambda c, v: c <= v,
        "like": lambda c, v: c.like(v),
        "in": lambda c, v: c.in_(list(v)),
        "is_null": _is_null,
    }

    def __init__(self, connection: DatabaseConnection, catalog: TableCatalog) -> None:
        """Initialize the adapter.

        Args:
            connection: Shared database connection
            catalog: Tables projected from the metadata registry
        """
        self._connection = connection
        self._catalog = catalog

    @property
    def catalog(self) -> TableCatalog:
        return self._catalog

    def transaction(self) -> Any:
        """Context manager grouping several calls into one transaction."""
        return self._connection.begin()

    @contextmanager
    def _execute(self, entity_name: str, operation: str) -> Iterator[Connection]:
        try:
            with self._connection.begin() as conn:
                yield conn
        except (FieldNotFoundError, PersistenceError):
            raise
        except SQLAlchemyError as e:
            detail = getattr(e, "orig", None) or e
            logger.error(f"{operation} on '{entity_name}' failed: {detail}")
            raise PersistenceError(
                f"Failed to {operation} '{entity_name}': {detail}",
                entity_name=entity_name,
                operation=operation,
            ) from e

    # === Entity operations ===

    def create(self, model: Model) -> Row:
        """Insert every persisted field of a model.

        Returns:
            The values written, after storage conversion (e.g. hashed passwords)
        """
        table = self._catalog.entity_table(model.entity_name)
        values = {f.name: f.value_for_storage() for f in model.persisted_fields()}
        with self._execute(model.entity_name, "create") as conn:
            conn.execute(insert(table).values(**values))
        logger.debug(f"Created {model.entity_name} {values.get(IDENTIFIER_FIELD)}")
        return values

    def update(self, model: Model) -> Row:
        """Write the changed persisted fields of a model.

        Explicit None values are written; the identifier never is.

        Returns:
            The values written

        Raises:
            PersistenceError: If nothing changed or no row matched the identifier
        """
        names = [f.name for f in model.changed_fields() if f.name != IDENTIFIER_FIELD]
        return self._write_fields(model, names, "update")

    def soft_delete(self, model: Model) -> Row:
        """Persist the deletion timestamp and actor already set on the model."""
        return self._write_fields(model, [DELETED_AT, DELETED_BY], "soft delete")

    delete = soft_delete

    def restore(self, model: Model) -> Row:
        """Persist cleared deletion fields plus the model's other pending changes."""
        names = [f.name for f in model.changed_fields() if f.name != IDENTIFIER_FIELD]
        for name in (DELETED_AT, DELETED_BY):
            if name not in names:
                names.append(name)
        return self._write_fields(model, names, "restore")

    def hard_delete(self, model: Model) -> int:
        """Physically remove a model's row.

        Returns:
            Number of rows removed (0 or 1)
        """
        table = self._catalog.entity_table(model.entity_name)
        with self._execute(model.entity_name, "hard delete") as conn:
            result = conn.execute(
                delete(table).where(table.c[IDENTIFIER_FIELD] == model.id)
            )
        return int(result.rowcount or 0)

    def _write_fields(self, model: Model, names: list[str], operation: str) -> Row:
        table = self._catalog.entity_table(model.entity_name)
        values = {
            name: model.field(name).value_for_storage()
            for name in names
            if model.field(name).is_persisted
        }
        values.pop(IDENTIFIER_FIELD, None)
        if not values:
            raise PersistenceError(
                f"Nothing to {operation} on '{model.entity_name}' record '{model.id}'",
                entity_name=model.entity_name,
                operation=operation,
            )
        with self._execute(model.entity_name, operation) as conn:
            result = conn.execute(
                update(table).where(table.c[IDENTIFIER_FIELD] == model.id).values(**values)
            )
        if not result.rowcount:
            raise PersistenceError(
                f"Cannot {operation} '{model.entity_name}': record '{model.id}' does not exist",
                entity_name=model.entity_name,
                operation=operation,
                context={"record_id": model.id},
            )
        return values

    # === Entity queries ===

    def find(
        self,
        entity_name: str,
        criteria: Criteria | None = None,
        order_by: OrderBy = None,
        limit: int | None = None,
        offset: int | None = None,
        include_deleted: bool = False,
    ) -> list[Row]:
        """Find rows of an entity.

        Args:
            entity_name: Entity to query
            criteria: Filters (see module docstring)
            order_by: "field", "-field" (descending) or a list of them
            limit: Maximum rows
            offset: Rows to skip
            include_deleted: Also return soft-deleted rows

        Returns:
            Matching rows as dicts

        Raises:
            FieldNotFoundError: If criteria or order_by name an unknown column
            QueryError: If an operator is unknown
        """
        table = self._catalog.entity_table(entity_name)
        return self._select(
            entity_name, table, criteria, order_by, limit, offset, include_deleted
        )

    def find_by_id(
        self, entity_name: str, record_id: str, include_deleted: bool = False
    ) -> Row | None:
        """Get one row by identifier; None when it does not exist."""
        rows = self.find(
            entity_name, {IDENTIFIER_FIELD: record_id}, limit=1, include_deleted=include_deleted
        )
        return rows[0] if rows else None

    def count(
        self, entity_name: str, criteria: Criteria | None = None, include_deleted: bool = False
    ) -> int:
        table = self._catalog.entity_table(entity_name)
        return self._count(entity_name, table, criteria, include_deleted)

    def record_exists(
        self,
        entity_name: str,
        field_name: str,
        value: Any,
        exclude_id: str | None = None,
        include_deleted: bool = True,
    ) -> bool:
        """Whether any row holds ``value`` in ``field_name``, ignoring ``exclude_id``."""
        criteria: dict[str, Any] = {field_name: value}
        if exclude_id is not None:
            criteria[IDENTIFIER_FIELD] = {"ne": exclude_id}
        return self.count(entity_name, criteria, include_deleted=include_deleted) > 0

    # === Table helpers (join tables) ===

    def select_rows(
        self,
        table: Table,
        criteria: Criteria | None = None,
        order_by: OrderBy = None,
        limit: int | None = None,
        offset: int | None = None,
        include_deleted: bool = False,
    ) -> list[Row]:
        return self._select(table.name, table, criteria, order_by, limit, offset, include_deleted)

    def count_rows(
        self, table: Table, criteria: Criteria | None = None, include_deleted: bool = False
    ) -> int:
        return self._count(table.name, table, criteria, include_deleted)

    def max_value(self, table: Table, column: str, criteria: Criteria | None = None) -> Any:
        """Largest value of a column among live rows matching criteria."""
        statement = select(func.max(self._column(table.name, table, column)))
        statement = statement.where(*self._where(table.name, table, criteria, False))
        with self._execute(table.name, "aggregate") as conn:
            return conn.execute(statement).scalar()

    def insert_row(self, table: Table, values: Mapping[str, Any]) -> None:
        with self._execute(table.name, "insert") as conn:
            conn.execute(insert(table).values(**dict(values)))

    def update_rows(
        self,
        table: Table,
        criteria: Criteria,
        values: Mapping[str, Any],
        include_deleted: bool = True,
    ) -> int:
        """Update matching rows; returns the number affected."""
        statement = (
            update(table)
            .where(*self._where(table.name, table, criteria, include_deleted))
            .values(**dict(values))
        )
        with self._execute(table.name, "update") as conn:
            result = conn.execute(statement)
        return int(result.rowcount or 0)

    def delete_rows(self, table: Table, criteria: Criteria) -> int:
        """Physically delete matching rows; returns the number removed."""
        statement = delete(table).where(*self._where(table.name, table, criteria, True))
        with self._execute(table.name, "delete") as conn:
            result = conn.execute(statement)
        return int(result.rowcount or 0)

    # === Statement building ===

    def _select(
        self,
        label: str,
        table: Table,
        criteria: Criteria | None,
        order_by: OrderBy,
        limit: int | None,
        offset: int | None,
        include_deleted: bool,
    ) -> list[Row]:
        statement = select(table).where(*self._where(label, table, criteria, include_deleted))
        for clause in self._order_by(label, table, order_by):
            statement = statement.order_by(clause)
        if limit is not None:
            statement = statement.limit(limit)
        if offset:
            statement = statement.offset(offset)
        with self._execute(label, "find") as conn:
            return [dict(row._mapping) for row in conn.execute(statement)]

    def _count(
        self, label: str, table: Table, criteria: Criteria | None, include_deleted: bool
    ) -> int:
        statement = (
            select(func.count())
            .select_from(table)
            .where(*self._where(label, table, criteria, include_deleted))
        )
        with self._execute(label, "count") as conn:
            return int(conn.execute(statement).scalar() or 0)

    def _column(self, label: str, table: Table, name: str) -> Any:
        if name not in table.c:
            raise FieldNotFoundError(name, label, [c.name for c in table.columns])
        return table.c[name]

    def _where(
        self, label: str, table: Table, criteria: Criteria | None, include_deleted: bool
    ) -> list[Any]:
        clauses: list[Any] = []
        if not include_deleted and DELETED_AT in table.c:
            clauses.append(table.c[DELETED_AT].is_(None))

        for name, condition in (criteria or {}).items():
            column = self._column(label, table, name)
            if isinstance(condition, Mapping):
                for op, value in condition.items():
                    builder = self.OPERATORS.get(op)
                    if builder is None:
                        raise QueryError(
                            f"Unknown operator '{op}' for '{name}'. "
                            f"Valid operators: {', '.join(self.OPERATORS)}",
                            entity_name=label,
                            operation="find",
                            context={"field_name": name, "operator": op},
                        )
                    clauses.append(builder(column, value))
            elif isinstance(condition, (list, tuple, set, frozenset)):
                clauses.append(column.in_(list(condition)))
            elif condition is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == condition)
        return clauses

    def _order_by(self, label: str, table: Table, order_by: OrderBy) -> list[Any]:
        if not order_by:
            return []
        names = [order_by] if isinstance(order_by, str) else list(order_by)
        clauses = []
        for name in names:
            descending = name.startswith("-")
            column = self._column(label, table, name.lstrip("-"))
            clauses.append(column.desc() if descending else column.asc())
        return clauses
