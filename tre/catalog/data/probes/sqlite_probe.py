"""Schema probe for SQLite sources.

SQLite cursors report no column types, so the zero-row probe goes
through a temporary view whose PRAGMA table_info carries the declared
types of the underlying columns.
"""

import itertools
from typing import Optional

from tre.catalog.data.probes import sqltext
from tre.catalog.data.probes.base import BaseSchemaProbe
from tre.catalog.domain.enums import SourceFlavour, ValueType
from tre.catalog.domain.exceptions import SchemaProbeError
from tre.catalog.infrastructure.gateways.schema_probe import ColumnInfo, TableKey

_VIEW_IDS = itertools.count(1)


class SQLiteSchemaProbe(BaseSchemaProbe):
    """SchemaProbe for ``sqlite3`` connections (declared-type affinity)."""

    flavour = SourceFlavour.SQLITE
    _TYPE_RULES = [
        (r"int|bool", ValueType.INTEGER),
        (r"char|clob|text", ValueType.STRING),
        (r"real|floa|doub|numeric|decimal", ValueType.FLOAT),
        (r"datetime|timestamp", ValueType.DATETIME),
        (r"^date$", ValueType.DATE),
        (r"^time$", ValueType.TIME),
    ]

    def describe(self, query: str) -> list[ColumnInfo]:
        body = sqltext.strip_comments(query).strip().rstrip(";")
        view = f"_tre_probe_{next(_VIEW_IDS)}"
        try:
            self._conn.execute(f"CREATE TEMP VIEW {view} AS {body}")
            rows = self._query(f"PRAGMA temp.table_info({view})")
        except Exception as exc:
            raise SchemaProbeError("describe query", str(exc)) from exc
        finally:
            self._conn.execute(f"DROP VIEW IF EXISTS temp.{view}")
        if not rows:
            raise SchemaProbeError("describe query", "query has no result columns")
        return [ColumnInfo(name=row[1], native_type=row[2] or "") for row in rows]

    def _pragma(self, name: str, schema: Optional[str], table: str) -> list[tuple]:
        prefix = f"{self._quote(schema)}." if schema else ""
        return self._query(f"PRAGMA {prefix}{name}({self._quote(table)})")

    def _table_columns(self, schema, table):
        return [(row[1], row[2] or "") for row in self._pragma("table_info", schema, table)]

    def _primary_key(self, schema, table):
        rows = [row for row in self._pragma("table_info", schema, table) if row[5]]
        return [row[1] for row in sorted(rows, key=lambda row: row[5])]

    def _foreign_key(self, column: ColumnInfo) -> Optional[TableKey]:
        source = (column.source_column or column.name).lower()
        for row in self._pragma(
            "foreign_key_list", column.source_schema, column.source_table
        ):
            target_table, from_column, to_column = row[2], row[3], row[4]
            if from_column.lower() != source:
                continue
            if to_column is None:
                primary_key = self._primary_key(column.source_schema, target_table)
                if len(primary_key) != 1:
                    return None
                to_column = primary_key[0]
            return TableKey(column.source_schema, target_table, to_column)
        return None

    def _check_definitions(self, column: ColumnInfo) -> list[str]:
        master = (
            f"{self._quote(column.source_schema)}.sqlite_master"
            if column.source_schema else "sqlite_master"
        )
        rows = self._query(
            f"SELECT sql FROM {master} WHERE type = 'table' AND name = ?",
            (column.source_table,),
        )
        return [row[0] for row in rows if row[0]]
