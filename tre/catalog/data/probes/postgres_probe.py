"""Schema probe for PostgreSQL sources (psycopg connections)."""

import itertools
from collections.abc import Iterator
from typing import Any, Optional

from funcy import first

from tre.catalog.data.probes.base import BaseSchemaProbe
from tre.catalog.domain.enums import SourceFlavour, ValueType
from tre.catalog.domain.exceptions import ConnectivityError
from tre.catalog.infrastructure.gateways.schema_probe import ColumnInfo, TableKey

_COLUMN_JOIN = """
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    JOIN pg_attribute a ON a.attrelid = c.oid
    WHERE c.relname = %s AND a.attname = %s
"""
_CURSOR_IDS = itertools.count(1)


class PostgresSchemaProbe(BaseSchemaProbe):
    """SchemaProbe for PostgreSQL.

    Cursor descriptions carry type OIDs; they are rendered to type names
    with ``format_type`` so that enum types keep their own name.
    """

    flavour = SourceFlavour.POSTGRESQL
    placeholder = "%s"
    _TYPE_RULES = [
        (r"\[\]$", ValueType.MULTIRESPONSE),
        (r"^(smallint|integer|bigint|int\d?|(small|big)?serial|boolean)$", ValueType.INTEGER),
        (r"^(real|double precision|numeric|decimal|float)", ValueType.FLOAT),
        (r"^timestamp", ValueType.DATETIME),
        (r"^date$", ValueType.DATE),
        (r"^time\b", ValueType.TIME),
    ]

    def __init__(self, conn: Any) -> None:
        super().__init__(conn)
        self._type_names: dict[int, str] = {}

    def _reset(self) -> None:
        # A failed statement aborts the whole transaction in PostgreSQL.
        self._conn.rollback()

    def describe(self, query: str) -> list[ColumnInfo]:
        columns = super().describe(query)
        oids = [int(col.native_type) for col in columns if col.native_type.isdigit()]
        missing = sorted(set(oids) - set(self._type_names))
        if missing:
            for oid, name in self._query(
                "SELECT oid::int, format_type(oid, NULL) FROM pg_type "
                "WHERE oid = ANY(%s)",
                (missing,),
            ):
                self._type_names[oid] = name
        return [
            ColumnInfo(
                name=col.name,
                native_type=self._type_names.get(int(col.native_type), col.native_type)
                if col.native_type.isdigit() else col.native_type,
            )
            for col in columns
        ]

    def stream(
        self, query: str, batch_size: int
    ) -> tuple[list[str], Iterator[list[tuple]]]:
        """Page through rows with a named server-side cursor.

        Only one batch of rows is held on the client at a time.
        """
        cur = self._conn.cursor(name=f"tre_stream_{next(_CURSOR_IDS)}")
        cur.itersize = batch_size
        try:
            cur.execute(query)
        except Exception as exc:
            cur.close()
            self._reset()
            raise ConnectivityError("execute source query", str(exc)) from exc
        names = [col[0] for col in cur.description or []]
        return names, self._batches(cur, batch_size)

    def _scope(self, sql: str, params: tuple, schema: Optional[str]):
        if schema:
            return sql + " AND n.nspname = %s", params + (schema,)
        return sql + " AND pg_table_is_visible(c.oid)", params

    def _column_comment(self, column: ColumnInfo) -> Optional[str]:
        sql, params = self._scope(
            "SELECT col_description(c.oid, a.attnum)" + _COLUMN_JOIN,
            (column.source_table, column.source_column or column.name),
            column.source_schema,
        )
        row = first(self._query(sql, params))
        return row[0] if row else None

    def _enum_values(self, column: ColumnInfo) -> Optional[list[str]]:
        rows = self._query(
            "SELECT e.enumlabel FROM pg_enum e "
            "JOIN pg_type t ON t.oid = e.enumtypid "
            "WHERE format_type(t.oid, NULL) = %s ORDER BY e.enumsortorder",
            (column.native_type,),
        )
        return [row[0] for row in rows] or None

    def _foreign_key(self, column: ColumnInfo) -> Optional[TableKey]:
        sql, params = self._scope(
            """
            SELECT rn.nspname, rc.relname, ra.attname
            FROM pg_constraint con
            JOIN pg_class c ON c.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            JOIN pg_attribute a
              ON a.attrelid = con.conrelid AND a.attnum = con.conkey[1]
            JOIN pg_class rc ON rc.oid = con.confrelid
            JOIN pg_namespace rn ON rn.oid = rc.relnamespace
            JOIN pg_attribute ra
              ON ra.attrelid = con.confrelid AND ra.attnum = con.confkey[1]
            WHERE con.contype = 'f' AND cardinality(con.conkey) = 1
              AND c.relname = %s AND a.attname = %s
            """,
            (column.source_table, column.source_column or column.name),
            column.source_schema,
        )
        row = first(self._query(sql, params))
        return TableKey(*row) if row else None

    def _check_definitions(self, column: ColumnInfo) -> list[str]:
        sql, params = self._scope(
            "SELECT pg_get_constraintdef(con.oid) FROM pg_constraint con "
            "JOIN pg_class c ON c.oid = con.conrelid "
            "JOIN pg_namespace n ON n.oid = c.relnamespace "
            "WHERE con.contype = 'c' AND c.relname = %s",
            (column.source_table,),
            column.source_schema,
        )
        return [row[0] for row in self._query(sql, params)]
