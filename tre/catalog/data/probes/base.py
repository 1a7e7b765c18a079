"""Shared behaviour of the per-flavour schema probes.

Concrete probes supply a type table, an identifier quoting rule, a
parameter placeholder and whichever catalog lookups their engine
offers. Everything here talks to the source through DB-API 2.0 cursors.
"""

import re
from dataclasses import replace
from typing import Any, Callable, Iterator, Optional

from funcy import first

from tre.catalog.data.probes import sqltext
from tre.catalog.domain.enums import SourceFlavour, ValueType
from tre.catalog.domain.exceptions import ConnectivityError, SchemaProbeError
from tre.catalog.domain.value_objects import VocabularyItem
from tre.catalog.infrastructure.gateways.schema_probe import ColumnInfo, TableKey
from tre.log import logger

logger = logger.getChild(__name__)

_DESCRIPTION_NAMES = ("description", "desc", "label", "name", "text")


class BaseSchemaProbe:
    """Generic DB-API schema probe.

    Attributes:
        flavour: Source flavour tag.
        placeholder: Parameter marker of the driver ("?" or "%s").
        _conn: Caller-owned DB-API connection.
    """

    flavour: SourceFlavour
    placeholder = "?"
    quote_chars = ('"', '"')
    # (regex searched in the lower-cased native type, canonical type)
    _TYPE_RULES: list[tuple[str, ValueType]] = []

    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self._table_cache: dict[tuple, list[tuple[str, str]]] = {}

    # ── Helpers ──────────────────────────────────────────────

    def _quote(self, name: str) -> str:
        left, right = self.quote_chars
        return left + str(name).replace(right, right * 2) + right

    def _qualified(self, schema: Optional[str], table: str) -> str:
        if schema:
            return f"{self._quote(schema)}.{self._quote(table)}"
        return self._quote(table)

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        cur = self._conn.cursor()
        try:
            if params:
                cur.execute(sql, params)
            else:
                cur.execute(sql)
            return [tuple(row) for row in cur.fetchall()]
        finally:
            cur.close()

    def _best_effort(
        self, what: str, column: ColumnInfo, lookup: Callable[[ColumnInfo], Any]
    ) -> Any:
        try:
            return lookup(column)
        except Exception as exc:  # drivers raise their own hierarchies
            logger.warning(
                "Could not read %s for column '%s': %s", what, column.name, exc
            )
            self._reset()
            return None

    def _reset(self) -> None:
        """Clear a failed transaction so later lookups can run."""

    @staticmethod
    def _items(values: list[str]) -> list[VocabularyItem]:
        return [
            VocabularyItem(value=index, code=str(value))
            for index, value in enumerate(values, start=1)
        ]

    # ── Zero-row probe ───────────────────────────────────────

    def describe(self, query: str) -> list[ColumnInfo]:
        """Column names and native types of ``query`` with no rows fetched.

        Raises:
            SchemaProbeError: If the wrapped query cannot be executed.
        """
        body = sqltext.strip_comments(query).strip().rstrip(";")
        sql = f"SELECT * FROM ({body}) AS _meta_query LIMIT 0"
        try:
            cur = self._conn.cursor()
            try:
                cur.execute(sql)
                description = cur.description or []
            finally:
                cur.close()
        except Exception as exc:
            self._reset()
            raise SchemaProbeError("describe query", str(exc)) from exc
        return [
            ColumnInfo(name=col[0], native_type=self._native_type(col[1]))
            for col in description
        ]

    def _native_type(self, type_code: Any) -> str:
        return "" if type_code is None else str(type_code)

    def map_type(self, native_type: str) -> ValueType:
        """Translate an engine type name into a canonical value type."""
        lowered = (native_type or "").strip().lower()
        for pattern, value_type in self._TYPE_RULES:
            if re.search(pattern, lowered):
                return value_type
        return ValueType.STRING

    # ── Source resolution ────────────────────────────────────

    def resolve_sources(
        self, query: str, columns: list[ColumnInfo]
    ) -> list[ColumnInfo]:
        """Attach base-table origins to columns read straight from a table.

        Expressions, and columns whose table cannot be pinned down, are
        left unresolved.
        """
        try:
            return self._resolve_from_text(query, columns)
        except Exception as exc:
            logger.warning("Could not resolve column sources: %s", exc)
            self._reset()
            return columns

    def _resolve_from_text(
        self, query: str, columns: list[ColumnInfo]
    ) -> list[ColumnInfo]:
        select = sqltext.final_select(query)
        ctes = sqltext.cte_names(query)
        tables = [
            table for table in sqltext.from_tables(select)
            if table.schema or table.table.lower() not in ctes
        ]
        if not tables:
            return columns
        items = [sqltext.projection_item(item) for item in sqltext.projection(select)]

        if len(items) == 1 and items[0] and items[0][1] == "*":
            table = self._pick_table(tables, items[0][0], None)
            if table is None:
                return columns
            known = {name.lower() for name, _ in self.table_columns(table.schema, table.table)}
            return [
                self._with_source(col, table, col.name)
                if col.name.lower() in known else col
                for col in columns
            ]
        if len(items) != len(columns):
            return columns

        resolved = []
        for col, item in zip(columns, items):
            if item is None or item[1] == "*":
                resolved.append(col)
                continue
            qualifier, name, _ = item
            table = self._pick_table(tables, qualifier, name)
            resolved.append(self._with_source(col, table, name) if table else col)
        return resolved

    def _pick_table(self, tables, qualifier: Optional[str], column: Optional[str]):
        if qualifier:
            return first(
                t for t in tables
                if qualifier.lower() in (t.key, t.table.lower())
            )
        if len(tables) == 1:
            return tables[0]
        if column is None:
            return None
        owners = [
            t for t in tables
            if column.lower() in {
                name.lower() for name, _ in self.table_columns(t.schema, t.table)
            }
        ]
        return owners[0] if len(owners) == 1 else None

    @staticmethod
    def _with_source(column: ColumnInfo, table, name: str) -> ColumnInfo:
        return replace(
            column,
            source_schema=table.schema,
            source_table=table.table,
            source_column=name,
        )

    # ── Table metadata ───────────────────────────────────────

    def table_columns(
        self, schema: Optional[str], table: str
    ) -> list[tuple[str, str]]:
        """(name, native type) pairs of a base table, in declared order."""
        key = (schema, table.lower())
        if key not in self._table_cache:
            self._table_cache[key] = self._table_columns(schema, table)
        return self._table_cache[key]

    def _table_columns(
        self, schema: Optional[str], table: str
    ) -> list[tuple[str, str]]:
        p = self.placeholder
        sql = (
            "SELECT column_name, data_type FROM information_schema.columns "
            f"WHERE table_name = {p}"
        )
        params: tuple = (table,)
        if schema:
            sql += f" AND table_schema = {p}"
            params += (schema,)
        return self._query(sql + " ORDER BY ordinal_position", params)

    def table_exists(self, schema: Optional[str], table: str) -> bool:
        return bool(self.table_columns(schema, table))

    def _primary_key(self, schema: Optional[str], table: str) -> list[str]:
        p = self.placeholder
        sql = (
            "SELECT kcu.column_name "
            "FROM information_schema.table_constraints tc "
            "JOIN information_schema.key_column_usage kcu "
            "ON kcu.constraint_name = tc.constraint_name "
            "AND kcu.table_name = tc.table_name "
            "AND kcu.table_schema = tc.table_schema "
            f"WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_name = {p}"
        )
        params: tuple = (table,)
        if schema:
            sql += f" AND tc.table_schema = {p}"
            params += (schema,)
        return [row[0] for row in self._query(sql, params)]

    # ── Best-effort lookups ──────────────────────────────────

    def column_comment(self, column: ColumnInfo) -> Optional[str]:
        if not column.source_table:
            return None
        comment = self._best_effort("comment", column, self._column_comment)
        return comment or None

    def _column_comment(self, column: ColumnInfo) -> Optional[str]:
        return None

    def native_enum(self, column: ColumnInfo) -> Optional[list[VocabularyItem]]:
        values = self._best_effort("enum values", column, self._enum_values)
        return self._items(values) if values else None

    def _enum_values(self, column: ColumnInfo) -> Optional[list[str]]:
        return None

    def check_values(self, column: ColumnInfo) -> Optional[list[VocabularyItem]]:
        if not column.source_table:
            return None
        definitions = self._best_effort(
            "check constraints", column, self._check_definitions
        )
        target = column.source_column or column.name
        for definition in definitions or ():
            values = sqltext.check_values(definition, target)
            if values:
                return self._items(values)
        return None

    def _check_definitions(self, column: ColumnInfo) -> list[str]:
        return []

    def referenced_key(self, column: ColumnInfo) -> Optional[TableKey]:
        """Foreign-key target of the column, else a same-named lookup table.

        A column named like a table whose single-column primary key has
        the same name is treated as a reference to that table.
        """
        if column.source_table:
            key = self._best_effort("foreign key", column, self._foreign_key)
            if key:
                return key
        return self._best_effort("lookup table", column, self._same_name_table)

    def _foreign_key(self, column: ColumnInfo) -> Optional[TableKey]:
        return None

    def _same_name_table(self, column: ColumnInfo) -> Optional[TableKey]:
        name = column.source_column or column.name
        if not self.table_exists(column.source_schema, name):
            return None
        primary_key = self._primary_key(column.source_schema, name)
        if [key.lower() for key in primary_key] != [name.lower()]:
            return None
        return TableKey(column.source_schema, name, primary_key[0])

    def code_table_items(
        self, key: TableKey, max_rows: int
    ) -> Optional[list[VocabularyItem]]:
        """Rows of a small lookup table as vocabulary items.

        The key gives the value, the first other string column the code,
        and a description/label/name/text column (else the second string
        column) the description.

        Returns:
            Items ordered by key, or None when the table has ``max_rows``
            rows or more, has no string column, or a non-integer key.
        """
        column = ColumnInfo(name=key.column, source_table=key.table)
        return self._best_effort(
            "code table", column, lambda _: self._code_table_items(key, max_rows)
        )

    def _code_table_items(
        self, key: TableKey, max_rows: int
    ) -> Optional[list[VocabularyItem]]:
        qualified = self._qualified(key.schema, key.table)
        (count,), = self._query(f"SELECT COUNT(*) FROM {qualified}")
        if count >= max_rows:
            return None
        columns = self.table_columns(key.schema, key.table)
        key_type = first(t for n, t in columns if n.lower() == key.column.lower())
        if key_type is None or self.map_type(key_type) != ValueType.INTEGER:
            return None
        strings = [
            name for name, native in columns
            if name.lower() != key.column.lower()
            and self.map_type(native) == ValueType.STRING
        ]
        if not strings:
            return None
        code_column = strings[0]
        rest = strings[1:]
        description_column = first(
            name for name in rest if name.lower() in _DESCRIPTION_NAMES
        ) or first(rest)

        selected = [self._quote(key.column), self._quote(code_column)]
        if description_column:
            selected.append(self._quote(description_column))
        rows = self._query(
            f"SELECT {', '.join(selected)} FROM {qualified} "
            f"ORDER BY {self._quote(key.column)}"
        )
        items = []
        for row in rows:
            if row[0] is None:
                continue
            try:
                value = int(row[0])
            except (TypeError, ValueError):
                return None
            code = "" if row[1] is None else str(row[1])
            description = row[2] if description_column else None
            items.append(VocabularyItem(value, code, description))
        return items

    # ── Streaming ────────────────────────────────────────────

    def stream(
        self, query: str, batch_size: int
    ) -> tuple[list[str], Iterator[list[tuple]]]:
        """Execute ``query`` and page through its rows.

        Returns:
            Column names and an iterator of row batches of at most
            ``batch_size`` rows. The cursor closes once exhausted.

        Raises:
            ConnectivityError: If the query cannot be executed or fetched.
        """
        cur = self._conn.cursor()
        try:
            cur.execute(query)
        except Exception as exc:
            cur.close()
            raise ConnectivityError("execute source query", str(exc)) from exc
        names = [col[0] for col in cur.description or []]
        return names, self._batches(cur, batch_size)

    @staticmethod
    def _batches(cur: Any, batch_size: int) -> Iterator[list[tuple]]:
        try:
            while True:
                try:
                    rows = cur.fetchmany(batch_size)
                except Exception as exc:
                    raise ConnectivityError("fetch source rows", str(exc)) from exc
                if not rows:
                    return
                yield [tuple(row) for row in rows]
        finally:
            cur.close()
