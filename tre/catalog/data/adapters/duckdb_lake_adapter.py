"""Concrete LakeGateway implementation over a DuckDB database.

Each study gets its own schema; each dataset version its own table.
The lake connection is opened lazily and is independent of the
metadata store: callers pair lake cleanup with store rollbacks
themselves.
"""

from collections.abc import Iterable, Sequence
from typing import Any, Optional

import duckdb

from tre.catalog.domain.enums import ValueType
from tre.catalog.domain.exceptions import ConnectivityError, LakeError
from tre.catalog.domain.value_objects import TableRef, quote_ident
from tre.log import logger

logger = logger.getChild(__name__)

LAKE_TYPES = {
    ValueType.INTEGER: "BIGINT",
    ValueType.FLOAT: "DOUBLE",
    ValueType.DATE: "DATE",
    ValueType.TIME: "TIME",
    ValueType.DATETIME: "TIMESTAMP",
    ValueType.CATEGORY: "INTEGER",
}
EXPORT_FORMATS = {"csv": "FORMAT CSV, HEADER", "parquet": "FORMAT PARQUET"}


def lake_type(value_type: ValueType) -> str:
    """Lake column type for a canonical value type (VARCHAR by default)."""
    return LAKE_TYPES.get(ValueType(value_type), "VARCHAR")


def _literal(text: str) -> str:
    return "'" + str(text).replace("'", "''") + "'"


class DuckDBLakeAdapter:
    """Concrete LakeGateway backed by DuckDB.

    Attributes:
        path: Database file path, or ":memory:".
        _conn: Lazy DuckDB connection.
    """

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._in_transaction = False

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Lazy connection to the lake database.

        Raises:
            ConnectivityError: If the database cannot be opened.
        """
        if self._conn is None:
            try:
                self._conn = duckdb.connect(self.path)
            except duckdb.Error as exc:
                raise ConnectivityError("open lake", str(exc)) from exc
            logger.debug("Opened lake at %s", self.path)
        return self._conn

    def _run(self, operation: str, sql: str, params=None):
        try:
            if params is None:
                return self.conn.execute(sql)
            return self.conn.execute(sql, params)
        except duckdb.Error as exc:
            raise LakeError(f"{operation}: {exc}") from exc

    # ── Transactions ─────────────────────────────────────────

    def begin(self) -> None:
        self._run("begin", "BEGIN TRANSACTION")
        self._in_transaction = True

    def commit(self) -> None:
        if self._in_transaction:
            self._in_transaction = False
            self._run("commit", "COMMIT")

    def rollback(self) -> None:
        if self._in_transaction:
            self._in_transaction = False
            self._run("rollback", "ROLLBACK")

    # ── Tables ───────────────────────────────────────────────

    def create_schema(self, schema: str) -> None:
        self._run("create schema", f"CREATE SCHEMA IF NOT EXISTS {quote_ident(schema)}")

    def create_table(
        self,
        table: TableRef,
        columns: Sequence[tuple[str, str]],
        replace: bool = False,
    ) -> None:
        """Create a table with explicit (name, lake type) columns.

        Raises:
            LakeError: If the table exists and ``replace`` is False, or
                the definition is rejected.
        """
        if not columns:
            raise LakeError(f"create table {table}: no columns")
        self.create_schema(table.schema)
        body = ", ".join(f"{quote_ident(name)} {ltype}" for name, ltype in columns)
        verb = "CREATE OR REPLACE TABLE" if replace else "CREATE TABLE"
        self._run("create table", f"{verb} {table.qualified} ({body})")
        logger.debug("Created lake table %s with %d columns", table, len(columns))

    def append_rows(self, table: TableRef, rows: Iterable[Sequence[Any]]) -> int:
        batch = [tuple(row) for row in rows]
        if not batch:
            return 0
        marks = ", ".join("?" for _ in batch[0])
        try:
            self.conn.executemany(
                f"INSERT INTO {table.qualified} VALUES ({marks})", batch
            )
        except duckdb.Error as exc:
            raise LakeError(f"append rows to {table}: {exc}") from exc
        return len(batch)

    def drop_table(self, table: TableRef) -> None:
        self._run("drop table", f"DROP TABLE IF EXISTS {table.qualified}")

    def table_exists(self, table: TableRef) -> bool:
        rows = self._run(
            "table exists",
            "SELECT 1 FROM duckdb_tables() WHERE schema_name = ? AND table_name = ?",
            [table.schema, table.name],
        ).fetchall()
        return bool(rows)

    def column_names(self, table: TableRef) -> list[str]:
        rows = self._run(
            "column names",
            "SELECT column_name FROM duckdb_columns() "
            "WHERE schema_name = ? AND table_name = ? ORDER BY column_index",
            [table.schema, table.name],
        ).fetchall()
        return [row[0] for row in rows]

    def fetch_rows(
        self, table: TableRef, order_by: Optional[str] = None
    ) -> list[tuple]:
        sql = f"SELECT * FROM {table.qualified}"
        if order_by:
            sql += f" ORDER BY {quote_ident(order_by)}"
        return self._run("fetch rows", sql).fetchall()

    def export_table(self, table: TableRef, path: str, fmt: str = "csv") -> str:
        """Copy a lake table to a CSV or Parquet file.

        Returns:
            The path written.

        Raises:
            LakeError: If the format is unknown or the copy fails.
        """
        options = EXPORT_FORMATS.get(fmt.lower())
        if options is None:
            raise LakeError(f"Unsupported export format: {fmt}")
        self._run(
            "export table",
            f"COPY {table.qualified} TO {_literal(path)} ({options})",
        )
        return path

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        return self._run("execute", sql, list(params) if params is not None else None)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._in_transaction = False
