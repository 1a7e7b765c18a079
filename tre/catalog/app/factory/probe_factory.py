"""Factory creating SchemaProbes for SQL sources by flavour tag.

Probes wrap caller-owned DB-API connections. ``connect_source`` opens a
connection for the flavours with a built-in driver; MSSQL and MySQL
sources must be connected by the caller with the driver of their
choice.
"""

import sqlite3
from typing import Any, Union

from tre.catalog.data.probes.duckdb_probe import DuckDBSchemaProbe
from tre.catalog.data.probes.mssql_probe import MSSQLSchemaProbe
from tre.catalog.data.probes.mysql_probe import MySQLSchemaProbe
from tre.catalog.data.probes.postgres_probe import PostgresSchemaProbe
from tre.catalog.data.probes.sqlite_probe import SQLiteSchemaProbe
from tre.catalog.domain.enums import SourceFlavour
from tre.catalog.domain.exceptions import (
    ConnectivityError,
    UnsupportedFlavourError,
)
from tre.catalog.infrastructure.gateways.schema_probe import SchemaProbe

_REGISTRY: dict[SourceFlavour, type] = {
    SourceFlavour.POSTGRESQL: PostgresSchemaProbe,
    SourceFlavour.MSSQL: MSSQLSchemaProbe,
    SourceFlavour.SQLITE: SQLiteSchemaProbe,
    SourceFlavour.MYSQL: MySQLSchemaProbe,
    SourceFlavour.DUCKDB: DuckDBSchemaProbe,
}


class ProbeFactory:
    """Factory creating SchemaProbe instances keyed by flavour."""

    @staticmethod
    def create(flavour: Union[str, SourceFlavour], conn: Any) -> SchemaProbe:
        """Bind the probe for ``flavour`` to an open connection.

        Raises:
            UnsupportedFlavourError: If the flavour is unknown.
        """
        flavour = SourceFlavour.parse(flavour)
        probe_cls = _REGISTRY.get(flavour)
        if probe_cls is None:
            raise UnsupportedFlavourError(flavour.value)
        return probe_cls(conn)

    @staticmethod
    def register(flavour: SourceFlavour, probe_cls: type) -> None:
        _REGISTRY[SourceFlavour(flavour)] = probe_cls


def connect_source(flavour: Union[str, SourceFlavour], target: str) -> Any:
    """Open a DB-API connection for a built-in flavour.

    Args:
        flavour: Source flavour tag.
        target: File path (SQLite, DuckDB) or DSN (PostgreSQL).

    Raises:
        UnsupportedFlavourError: For flavours without a built-in driver.
        ConnectivityError: If the connection cannot be opened.
    """
    flavour = SourceFlavour.parse(flavour)
    try:
        if flavour == SourceFlavour.SQLITE:
            return sqlite3.connect(target)
        if flavour == SourceFlavour.DUCKDB:
            import duckdb

            return duckdb.connect(target, read_only=target != ":memory:")
        if flavour == SourceFlavour.POSTGRESQL:
            import psycopg

            return psycopg.connect(target)
    except ImportError as exc:
        raise ConnectivityError(
            "connect source", f"driver for {flavour.value} is not installed"
        ) from exc
    except Exception as exc:
        raise ConnectivityError("connect source", str(exc)) from exc
    raise UnsupportedFlavourError(
        f"{flavour.value} (pass an open DB-API connection instead)"
    )
