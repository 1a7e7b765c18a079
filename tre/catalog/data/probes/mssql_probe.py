"""Schema probe for Microsoft SQL Server sources (pyodbc-style connections)."""

import datetime
import decimal
import re
from typing import Any, Optional

from funcy import first

from tre.catalog.data.probes import sqltext
from tre.catalog.data.probes.base import BaseSchemaProbe
from tre.catalog.domain.enums import SourceFlavour, ValueType
from tre.catalog.domain.exceptions import SchemaProbeError
from tre.catalog.infrastructure.gateways.schema_probe import ColumnInfo, TableKey
from tre.log import logger

logger = logger.getChild(__name__)

_PY_TYPES = {
    bool: "bit",
    int: "int",
    float: "float",
    decimal.Decimal: "decimal",
    str: "nvarchar",
    datetime.datetime: "datetime2",
    datetime.date: "date",
    datetime.time: "time",
}


class MSSQLSchemaProbe(BaseSchemaProbe):
    """SchemaProbe for SQL Server.

    ``sys.dm_exec_describe_first_result_set`` reports types and base
    table origins without running the query; ``SELECT TOP 0`` is the
    fallback when that function is unavailable.
    """

    flavour = SourceFlavour.MSSQL
    quote_chars = ("[", "]")
    _TYPE_RULES = [
        (r"^(bit|tinyint|smallint|int|bigint)$", ValueType.INTEGER),
        (r"^(decimal|numeric|float|real|money|smallmoney)$", ValueType.FLOAT),
        (r"^(datetime|datetime2|smalldatetime|datetimeoffset)$", ValueType.DATETIME),
        (r"^date$", ValueType.DATE),
        (r"^time$", ValueType.TIME),
    ]

    def map_type(self, native_type: str) -> ValueType:
        return super().map_type(re.sub(r"\(.*\)", "", native_type or "").strip())

    def _native_type(self, type_code: Any) -> str:
        if isinstance(type_code, type):
            return _PY_TYPES.get(type_code, type_code.__name__)
        return super()._native_type(type_code)

    def describe(self, query: str) -> list[ColumnInfo]:
        body = sqltext.strip_comments(query).strip().rstrip(";")
        try:
            rows = self._query(
                "SELECT name, system_type_name, source_schema, source_table, "
                "source_column "
                "FROM sys.dm_exec_describe_first_result_set(?, NULL, 1) "
                "WHERE is_hidden = 0 ORDER BY column_ordinal",
                (body,),
            )
        except Exception as exc:
            logger.warning("Result-set metadata unavailable, using TOP 0: %s", exc)
            rows = []
        if rows and all(row[0] for row in rows):
            return [ColumnInfo(*row) for row in rows]
        return self._describe_top0(body)

    def _describe_top0(self, body: str) -> list[ColumnInfo]:
        try:
            cur = self._conn.cursor()
            try:
                cur.execute(f"SELECT TOP 0 * FROM ({body}) AS _meta_query")
                description = cur.description or []
            finally:
                cur.close()
        except Exception as exc:
            raise SchemaProbeError("describe query", str(exc)) from exc
        return [
            ColumnInfo(name=col[0], native_type=self._native_type(col[1]))
            for col in description
        ]

    def resolve_sources(
        self, query: str, columns: list[ColumnInfo]
    ) -> list[ColumnInfo]:
        if any(col.source_table for col in columns):
            return columns
        return super().resolve_sources(query, columns)

    def _object(self, column: ColumnInfo) -> str:
        return self._qualified(column.source_schema, column.source_table)

    def _column_comment(self, column: ColumnInfo) -> Optional[str]:
        row = first(self._query(
            "SELECT CAST(ep.value AS nvarchar(4000)) "
            "FROM sys.extended_properties ep "
            "JOIN sys.columns c "
            "ON ep.major_id = c.object_id AND ep.minor_id = c.column_id "
            "WHERE ep.name = 'MS_Description' "
            "AND ep.major_id = OBJECT_ID(?) AND c.name = ?",
            (self._object(column), column.source_column or column.name),
        ))
        return row[0] if row else None

    def _foreign_key(self, column: ColumnInfo) -> Optional[TableKey]:
        row = first(self._query(
            "SELECT OBJECT_SCHEMA_NAME(fkc.referenced_object_id), "
            "OBJECT_NAME(fkc.referenced_object_id), rc.name "
            "FROM sys.foreign_key_columns fkc "
            "JOIN sys.columns pc ON pc.object_id = fkc.parent_object_id "
            "AND pc.column_id = fkc.parent_column_id "
            "JOIN sys.columns rc ON rc.object_id = fkc.referenced_object_id "
            "AND rc.column_id = fkc.referenced_column_id "
            "WHERE fkc.parent_object_id = OBJECT_ID(?) AND pc.name = ?",
            (self._object(column), column.source_column or column.name),
        ))
        return TableKey(*row) if row else None

    def _check_definitions(self, column: ColumnInfo) -> list[str]:
        rows = self._query(
            "SELECT definition FROM sys.check_constraints "
            "WHERE parent_object_id = OBJECT_ID(?)",
            (self._object(column),),
        )
        return [row[0] for row in rows]
