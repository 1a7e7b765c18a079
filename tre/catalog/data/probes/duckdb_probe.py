"""Schema probe for DuckDB sources, including the lake itself."""

import re
from typing import Optional

from funcy import first

from tre.catalog.data.probes import sqltext
from tre.catalog.data.probes.base import BaseSchemaProbe
from tre.catalog.domain.enums import SourceFlavour, ValueType
from tre.catalog.domain.exceptions import SchemaProbeError
from tre.catalog.infrastructure.gateways.schema_probe import ColumnInfo, TableKey

_FK_RE = re.compile(
    r"FOREIGN\s+KEY\s*\(([^)]*)\)\s*REFERENCES\s+([\w\".]+)\s*\(([^)]*)\)", re.I
)


class DuckDBSchemaProbe(BaseSchemaProbe):
    """SchemaProbe for ``duckdb`` connections.

    Zero-row probing uses ``DESCRIBE <query>``; comments, enums and
    constraints come from the ``duckdb_*()`` catalog functions.
    """

    flavour = SourceFlavour.DUCKDB
    _TYPE_RULES = [
        (r"\[\d*\]$", ValueType.MULTIRESPONSE),
        (r"^(u?(tiny|small|big|huge)?int(eger)?\d*|int\d+|bool(ean)?)$", ValueType.INTEGER),
        (r"^(double|float\d*|real|decimal|numeric)", ValueType.FLOAT),
        (r"^timestamp", ValueType.DATETIME),
        (r"^date$", ValueType.DATE),
        (r"^time\b", ValueType.TIME),
    ]

    def describe(self, query: str) -> list[ColumnInfo]:
        body = sqltext.strip_comments(query).strip().rstrip(";")
        try:
            rows = self._query(f"DESCRIBE {body}")
        except Exception as exc:
            raise SchemaProbeError("describe query", str(exc)) from exc
        return [ColumnInfo(name=row[0], native_type=row[1]) for row in rows]

    def _scoped(self, sql: str, params: tuple, schema: Optional[str]):
        if schema:
            return sql + " AND schema_name = ?", params + (schema,)
        return sql, params

    def _table_columns(self, schema, table):
        sql, params = self._scoped(
            "SELECT column_name, data_type FROM duckdb_columns() "
            "WHERE table_name = ?",
            (table,),
            schema,
        )
        return self._query(sql + " ORDER BY column_index", params)

    def _constraints(self, schema: Optional[str], table: str, kind: str):
        sql, params = self._scoped(
            "SELECT constraint_text, constraint_column_names "
            "FROM duckdb_constraints() "
            "WHERE table_name = ? AND constraint_type = ?",
            (table, kind),
            schema,
        )
        return self._query(sql, params)

    def _primary_key(self, schema, table):
        row = first(self._constraints(schema, table, "PRIMARY KEY"))
        return list(row[1]) if row else []

    def _column_comment(self, column: ColumnInfo) -> Optional[str]:
        sql, params = self._scoped(
            "SELECT comment FROM duckdb_columns() "
            "WHERE table_name = ? AND column_name = ?",
            (column.source_table, column.source_column or column.name),
            column.source_schema,
        )
        row = first(self._query(sql, params))
        return row[0] if row else None

    def _enum_values(self, column: ColumnInfo) -> Optional[list[str]]:
        native = column.native_type.strip()
        if native.lower().startswith("enum("):
            return sqltext.string_literals(native)
        rows = self._query(
            "SELECT 1 FROM duckdb_types() "
            "WHERE lower(type_name) = lower(?) AND logical_type = 'ENUM'",
            (native,),
        )
        if not rows:
            return None
        return [
            row[0] for row in
            self._query(f"SELECT unnest(enum_range(NULL::{self._quote(native)}))")
        ]

    def _foreign_key(self, column: ColumnInfo) -> Optional[TableKey]:
        source = (column.source_column or column.name).lower()
        for text, names in self._constraints(
            column.source_schema, column.source_table, "FOREIGN KEY"
        ):
            match = _FK_RE.search(text or "")
            if match is None:
                continue
            local = [sqltext.unquote(n) for n in match.group(1).split(",")]
            remote = [sqltext.unquote(n) for n in match.group(3).split(",")]
            if [n.lower() for n in local] != [source]:
                continue
            parts = [sqltext.unquote(p) for p in match.group(2).split(".")]
            schema = parts[-2] if len(parts) > 1 else column.source_schema
            return TableKey(schema, parts[-1], remote[0])
        return None

    def _check_definitions(self, column: ColumnInfo) -> list[str]:
        return [
            text for text, _ in self._constraints(
                column.source_schema, column.source_table, "CHECK"
            )
            if text
        ]
