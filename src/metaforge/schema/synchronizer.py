"""Schema synchronizer: brings live tables in line with the metadata.

``plan()`` compares every projected table against the database inspector
and lists the DDL needed; ``apply()`` runs it in one transaction. The
synchronizer only ever adds: missing tables, missing columns, missing
indexes, and in-place column changes. It never drops anything.

Column changes are dialect specific. SQLite cannot alter a column, so
``modify_column`` statements are planned there but skipped on apply.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import Column, Index, Table, inspect
from sqlalchemy.exc import CompileError, SQLAlchemyError
from sqlalchemy.schema import CreateIndex, CreateTable
from sqlalchemy.sql.elements import TextClause

from metaforge.core.compat import StrEnum
from metaforge.exceptions import PersistenceError

if TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.engine.interfaces import ReflectedColumn

    from metaforge.core.connection import DatabaseConnection
    from metaforge.storage.tables import TableCatalog

logger = logging.getLogger(__name__)


class StatementKind(StrEnum):
    """Kinds of DDL the synchronizer emits."""

    CREATE_TABLE = "create_table"
    ADD_COLUMN = "add_column"
    MODIFY_COLUMN = "modify_column"
    CREATE_INDEX = "create_index"


# Reflected spellings that mean the same column type
_TYPE_ALIASES = {
    "BOOL": "BOOLEAN",
    "TINYINT(1)": "BOOLEAN",
    "DOUBLE PRECISION": "FLOAT",
    "DOUBLE": "FLOAT",
    "REAL": "FLOAT",
    "INT": "INTEGER",
}
_CHARSET_PATTERN = re.compile(r"\s+(CHARACTER SET|COLLATE)\s+\S+", re.IGNORECASE)
_INT_WIDTH_PATTERN = re.compile(r"^(SMALLINT|INTEGER|INT|BIGINT)\(\d+\)$")
_CAST_PATTERN = re.compile(r"::[\w\s]+(\(\d+\))?$")


def normalize_type(type_sql: str) -> str:
    """Canonical spelling of a compiled column type for comparison."""
    normalized = _CHARSET_PATTERN.sub("", type_sql.strip().upper())
    normalized = _INT_WIDTH_PATTERN.sub(r"\1", normalized)
    return _TYPE_ALIASES.get(normalized, normalized)


def normalize_default(default: Any) -> str | None:
    """Canonical spelling of a column default for comparison."""
    if default is None:
        return None
    value = str(default).strip()
    while value.startswith("(") and value.endswith(")"):
        value = value[1:-1].strip()
    value = _CAST_PATTERN.sub("", value).strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
        value = value[1:-1]
    lowered = value.lower()
    if lowered in ("true", "false"):
        return "1" if lowered == "true" else "0"
    if lowered == "null":
        return None
    try:
        return repr(float(value))
    except ValueError:
        return value


@dataclass(frozen=True)
class SchemaStatement:
    """One planned DDL statement."""

    kind: str
    table: str
    sql: str
    column: str | None = None
    supported: bool = True
    detail: str = ""
    ddl: Any = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "table": self.table,
            "column": self.column,
            "sql": self.sql,
            "supported": self.supported,
            "detail": self.detail,
        }


@dataclass
class SchemaPlan:
    """Ordered DDL needed to bring the database in line with the metadata."""

    statements: list[SchemaStatement] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.statements

    def of_kind(self, kind: str) -> list[SchemaStatement]:
        return [s for s in self.statements if s.kind == kind]

    def for_table(self, table: str) -> list[SchemaStatement]:
        return [s for s in self.statements if s.table == table]

    def to_dict(self) -> dict[str, Any]:
        return {
            "statements": [s.to_dict() for s in self.statements],
            "count": len(self.statements),
        }

    def __iter__(self) -> Iterator[SchemaStatement]:
        return iter(self.statements)

    def __len__(self) -> int:
        return len(self.statements)


class SchemaSynchronizer:
    """Plans and applies additive DDL for every projected table."""

    def __init__(self, connection: DatabaseConnection, catalog: TableCatalog) -> None:
        """Initialize the synchronizer.

        Args:
            connection: Database connection
            catalog: Tables projected from the metadata
        """
        self._connection = connection
        self._catalog = catalog

    @property
    def dialect(self) -> Dialect:
        return self._connection.engine.dialect

    # === Planning ===

    def plan(self) -> SchemaPlan:
        """Diff the projected tables against the live database.

        Returns:
            Statements to run, tables in registration order; empty when in sync
        """
        plan = SchemaPlan()
        metadata = self._catalog.metadata
        with self._connection.begin() as conn:
            inspector = inspect(conn)
            existing = set(inspector.get_table_names())
            for spec in self._catalog.specs:
                table = metadata.tables[spec.name]
                if spec.name not in existing:
                    plan.statements.append(self._create_table(table))
                    plan.statements.extend(self._create_index(table, ix) for ix in _indexes(table))
                    continue

                live_columns = {col["name"]: col for col in inspector.get_columns(spec.name)}
                for column in table.columns:
                    live = live_columns.get(column.name)
                    if live is None:
                        plan.statements.append(self._add_column(table, column))
                        continue
                    statement = self._modify_column(table, column, live)
                    if statement is not None:
                        plan.statements.append(statement)

                live_indexes = {ix["name"] for ix in inspector.get_indexes(spec.name)}
                for index in _indexes(table):
                    if index.name not in live_indexes:
                        plan.statements.append(self._create_index(table, index))

        logger.debug(f"Schema plan has {len(plan)} statement(s)")
        return plan

    def _create_table(self, table: Table) -> SchemaStatement:
        ddl = CreateTable(table)
        return SchemaStatement(
            kind=StatementKind.CREATE_TABLE,
            table=table.name,
            sql=str(ddl.compile(dialect=self.dialect)).strip(),
            ddl=ddl,
        )

    def _create_index(self, table: Table, index: Index) -> SchemaStatement:
        ddl = CreateIndex(index)
        return SchemaStatement(
            kind=StatementKind.CREATE_INDEX,
            table=table.name,
            column=", ".join(col.name for col in index.columns),
            sql=str(ddl.compile(dialect=self.dialect)).strip(),
            detail=str(index.name),
            ddl=ddl,
        )

    def _add_column(self, table: Table, column: Column[Any]) -> SchemaStatement:
        quote = self.dialect.identifier_preparer.quote
        default = self._default_sql(column)
        sql = (
            f"ALTER TABLE {quote(table.name)} ADD COLUMN {quote(column.name)} "
            f"{self._type_sql(column)}"
        )
        if default is not None:
            sql += f" DEFAULT {default}"
            if not column.nullable:
                sql += " NOT NULL"
        # Required columns without a default are added nullable so tables with rows accept them
        return SchemaStatement(
            kind=StatementKind.ADD_COLUMN, table=table.name, column=column.name, sql=sql
        )

    def _modify_column(
        self, table: Table, column: Column[Any], live: ReflectedColumn
    ) -> SchemaStatement | None:
        declared_type = self._type_sql(column)
        live_type = self._reflected_type_sql(live)
        declared_default = self._default_sql(column)

        type_changed = normalize_type(declared_type) != normalize_type(live_type)
        default_changed = normalize_default(declared_default) != normalize_default(
            live.get("default")
        )
        relax_null = column.nullable and not live["nullable"] and not column.primary_key
        if not (type_changed or default_changed or relax_null):
            return None

        reasons = []
        if type_changed:
            reasons.append(f"type {live_type} -> {declared_type}")
        if default_changed:
            reasons.append(f"default {live.get('default')} -> {declared_default}")
        if relax_null:
            reasons.append("drop NOT NULL")
        detail = "; ".join(reasons)

        quote = self.dialect.identifier_preparer.quote
        qtable, qcolumn = quote(table.name), quote(column.name)
        dialect_name = self.dialect.name

        if dialect_name == "mysql":
            nullable = column.nullable or bool(live["nullable"])
            sql = (
                f"ALTER TABLE {qtable} MODIFY COLUMN {qcolumn} {declared_type} "
                f"{'NULL' if nullable else 'NOT NULL'}"
            )
            if declared_default is not None:
                sql += f" DEFAULT {declared_default}"
            supported = True
        elif dialect_name == "postgresql":
            clauses = []
            if type_changed:
                clauses.append(
                    f"ALTER COLUMN {qcolumn} TYPE {declared_type} "
                    f"USING {qcolumn}::{declared_type}"
                )
            if default_changed:
                clauses.append(
                    f"ALTER COLUMN {qcolumn} DROP DEFAULT"
                    if declared_default is None
                    else f"ALTER COLUMN {qcolumn} SET DEFAULT {declared_default}"
                )
            if relax_null:
                clauses.append(f"ALTER COLUMN {qcolumn} DROP NOT NULL")
            sql = f"ALTER TABLE {qtable} " + ", ".join(clauses)
            supported = True
        else:
            sql = f"-- {dialect_name} cannot alter {qtable}.{qcolumn}: {detail}"
            supported = False

        return SchemaStatement(
            kind=StatementKind.MODIFY_COLUMN,
            table=table.name,
            column=column.name,
            sql=sql,
            supported=supported,
            detail=detail,
        )

    def _type_sql(self, column: Column[Any]) -> str:
        return column.type.compile(dialect=self.dialect)

    def _reflected_type_sql(self, live: ReflectedColumn) -> str:
        try:
            return live["type"].compile(dialect=self.dialect)
        except CompileError:
            # Types the dialect could not reflect (NullType) have no DDL spelling
            return str(live["type"])

    def _default_sql(self, column: Column[Any]) -> str | None:
        server_default = column.server_default
        if server_default is None:
            return None
        arg = getattr(server_default, "arg", None)
        if arg is None:
            return None
        if isinstance(arg, str):
            return "'" + arg.replace("'", "''") + "'"
        if isinstance(arg, TextClause):
            return arg.text
        return str(arg.compile(dialect=self.dialect))

    # === Applying ===

    def apply(self, plan: SchemaPlan | None = None) -> SchemaPlan:
        """Run a plan (a fresh one by default) inside one transaction.

        Statements the dialect cannot run are logged and skipped.

        Returns:
            The plan that was applied

        Raises:
            PersistenceError: If a statement fails; nothing from the plan is kept
        """
        if plan is None:
            plan = self.plan()
        if plan.is_empty:
            logger.info("Schema is up to date")
            return plan

        dialect_name = self.dialect.name
        try:
            with self._connection.begin() as conn:
                for statement in plan:
                    if not statement.supported:
                        logger.warning(
                            f"Skipping {statement.kind} on {statement.table}.{statement.column} "
                            f"({statement.detail}): not supported on {dialect_name}"
                        )
                        continue
                    logger.info(f"Applying {statement.kind} on {statement.table}")
                    if statement.ddl is not None:
                        conn.execute(statement.ddl)
                    else:
                        conn.exec_driver_sql(statement.sql)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Schema sync failed: {getattr(e, 'orig', None) or e}",
                operation="sync schema",
            ) from e
        return plan

    def sync(self) -> SchemaPlan:
        """Plan and apply in one step."""
        return self.apply(self.plan())


def _indexes(table: Table) -> list[Index]:
    return sorted(table.indexes, key=lambda index: str(index.name))
