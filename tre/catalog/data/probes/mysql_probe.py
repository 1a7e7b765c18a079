"""Schema probe for MySQL/MariaDB sources (PyMySQL, mysqlclient)."""

from typing import Any, Optional

from funcy import first

from tre.catalog.data.probes import sqltext
from tre.catalog.data.probes.base import BaseSchemaProbe
from tre.catalog.domain.enums import SourceFlavour, ValueType
from tre.catalog.infrastructure.gateways.schema_probe import ColumnInfo, TableKey

# MySQL protocol field type codes reported in cursor.description.
FIELD_TYPES = {
    0: "decimal", 1: "tinyint", 2: "smallint", 3: "int", 4: "float",
    5: "double", 7: "timestamp", 8: "bigint", 9: "mediumint", 10: "date",
    11: "time", 12: "datetime", 13: "year", 14: "date", 15: "varchar",
    16: "bit", 245: "json", 246: "decimal", 247: "enum", 248: "set",
    249: "tinyblob", 250: "mediumblob", 251: "longblob", 252: "blob",
    253: "varchar", 254: "char",
}

_SCHEMA = "COALESCE(%s, DATABASE())"


class MySQLSchemaProbe(BaseSchemaProbe):
    """SchemaProbe for MySQL; metadata comes from INFORMATION_SCHEMA."""

    flavour = SourceFlavour.MYSQL
    placeholder = "%s"
    quote_chars = ("`", "`")
    _TYPE_RULES = [
        (r"^set\b", ValueType.MULTIRESPONSE),
        (r"^(tiny|small|medium|big)?int|^year$|^bit\b|^bool", ValueType.INTEGER),
        (r"^(decimal|numeric|float|double|real)", ValueType.FLOAT),
        (r"^(datetime|timestamp)", ValueType.DATETIME),
        (r"^date$", ValueType.DATE),
        (r"^time$", ValueType.TIME),
    ]

    def _native_type(self, type_code: Any) -> str:
        if isinstance(type_code, int):
            return FIELD_TYPES.get(type_code, str(type_code))
        return super()._native_type(type_code)

    def _table_columns(self, schema, table):
        return self._query(
            "SELECT COLUMN_NAME, COLUMN_TYPE FROM information_schema.COLUMNS "
            f"WHERE TABLE_NAME = %s AND TABLE_SCHEMA = {_SCHEMA} "
            "ORDER BY ORDINAL_POSITION",
            (table, schema),
        )

    def _primary_key(self, schema, table):
        rows = self._query(
            "SELECT COLUMN_NAME FROM information_schema.KEY_COLUMN_USAGE "
            "WHERE CONSTRAINT_NAME = 'PRIMARY' AND TABLE_NAME = %s "
            f"AND TABLE_SCHEMA = {_SCHEMA} ORDER BY ORDINAL_POSITION",
            (table, schema),
        )
        return [row[0] for row in rows]

    def _column_row(self, column: ColumnInfo, field: str) -> Optional[str]:
        row = first(self._query(
            f"SELECT {field} FROM information_schema.COLUMNS "
            "WHERE TABLE_NAME = %s AND COLUMN_NAME = %s "
            f"AND TABLE_SCHEMA = {_SCHEMA}",
            (
                column.source_table,
                column.source_column or column.name,
                column.source_schema,
            ),
        ))
        return row[0] if row else None

    def _column_comment(self, column: ColumnInfo) -> Optional[str]:
        return self._column_row(column, "COLUMN_COMMENT")

    def _enum_values(self, column: ColumnInfo) -> Optional[list[str]]:
        if not column.source_table:
            return None
        column_type = self._column_row(column, "COLUMN_TYPE") or ""
        if not column_type.lower().startswith("enum("):
            return None
        return sqltext.string_literals(column_type)

    def _foreign_key(self, column: ColumnInfo) -> Optional[TableKey]:
        row = first(self._query(
            "SELECT REFERENCED_TABLE_SCHEMA, REFERENCED_TABLE_NAME, "
            "REFERENCED_COLUMN_NAME FROM information_schema.KEY_COLUMN_USAGE "
            "WHERE TABLE_NAME = %s AND COLUMN_NAME = %s "
            f"AND TABLE_SCHEMA = {_SCHEMA} "
            "AND REFERENCED_TABLE_NAME IS NOT NULL",
            (
                column.source_table,
                column.source_column or column.name,
                column.source_schema,
            ),
        ))
        return TableKey(*row) if row else None

    def _check_definitions(self, column: ColumnInfo) -> list[str]:
        rows = self._query(
            "SELECT cc.CHECK_CLAUSE "
            "FROM information_schema.CHECK_CONSTRAINTS cc "
            "JOIN information_schema.TABLE_CONSTRAINTS tc "
            "ON tc.CONSTRAINT_SCHEMA = cc.CONSTRAINT_SCHEMA "
            "AND tc.CONSTRAINT_NAME = cc.CONSTRAINT_NAME "
            f"WHERE tc.TABLE_NAME = %s AND tc.TABLE_SCHEMA = {_SCHEMA}",
            (column.source_table, column.source_schema),
        )
        return [row[0] for row in rows]
