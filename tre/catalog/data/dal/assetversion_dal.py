"""Data Access Layer for AssetVersion persistence operations.

Executes SQL against a SQLite connection to persist asset versions and
their DataSet/DataFile specializations. The latest-flag swap is two
statements; callers run them inside one write transaction.
"""

import sqlite3
from typing import Any, Optional

_VERSION_ORDER = "major, minor, patch"


class AssetVersionDAL:
    """Executes SQL for AssetVersion, DataSet and DataFile operations.

    Attributes:
        _conn: Shared SQLite connection (managed by CatalogRepoSQLite).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def insert(self, data: dict[str, Any]) -> int:
        """Insert a version row and return its generated id.

        Raises:
            sqlite3.IntegrityError: If the version number already exists
                for the asset, or another row is already latest.
        """
        cur = self._conn.execute(
            """
            INSERT INTO asset_versions (
                asset_id, major, minor, patch, is_latest,
                note, doi, created_at
            ) VALUES (
                :asset_id, :major, :minor, :patch, :is_latest,
                :note, :doi, :created_at
            )
            RETURNING version_id
            """,
            data,
        )
        return cur.fetchone()[0]

    def demote_latest(self, asset_id: int) -> None:
        self._conn.execute(
            "UPDATE asset_versions SET is_latest = 0 "
            "WHERE asset_id = ? AND is_latest = 1",
            (asset_id,),
        )

    def promote(self, version_id: int) -> None:
        self._conn.execute(
            "UPDATE asset_versions SET is_latest = 1 WHERE version_id = ?",
            (version_id,),
        )

    def annotate(
        self, version_id: int, note: Optional[str], doi: Optional[str]
    ) -> None:
        """Update note and/or doi; None leaves a field unchanged."""
        self._conn.execute(
            """
            UPDATE asset_versions SET
                note = COALESCE(:note, note),
                doi = COALESCE(:doi, doi)
            WHERE version_id = :version_id
            """,
            {"version_id": version_id, "note": note, "doi": doi},
        )

    def get(self, version_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM asset_versions WHERE version_id = ?", (version_id,)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_latest(self, asset_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM asset_versions WHERE asset_id = ? AND is_latest = 1",
            (asset_id,),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_highest(self, asset_id: int) -> Optional[dict[str, Any]]:
        """Retrieve the version with the greatest (major, minor, patch)."""
        cur = self._conn.execute(
            "SELECT * FROM asset_versions WHERE asset_id = ? "
            "ORDER BY major DESC, minor DESC, patch DESC LIMIT 1",
            (asset_id,),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_for_asset(self, asset_id: int) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM asset_versions WHERE asset_id = ? "
            f"ORDER BY {_VERSION_ORDER}",
            (asset_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def count_for_asset(self, asset_id: int) -> int:
        cur = self._conn.execute(
            "SELECT COUNT(*) FROM asset_versions WHERE asset_id = ?",
            (asset_id,),
        )
        return cur.fetchone()[0]

    def delete(self, version_id: int) -> None:
        self._conn.execute(
            "DELETE FROM asset_versions WHERE version_id = ?", (version_id,)
        )

    # ── Specializations ───────────────────────────────────────

    def insert_dataset(self, data: dict[str, Any]) -> None:
        self._conn.execute(
            """
            INSERT INTO datasets (dataset_id, lake_schema, lake_table)
            VALUES (:dataset_id, :lake_schema, :lake_table)
            """,
            data,
        )

    def get_dataset(self, dataset_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM datasets WHERE dataset_id = ?", (dataset_id,)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def insert_datafile(self, data: dict[str, Any]) -> None:
        self._conn.execute(
            """
            INSERT INTO datafiles (
                datafile_id, storage_uri, digest, digest_algorithm,
                compressed, encrypted
            ) VALUES (
                :datafile_id, :storage_uri, :digest, :digest_algorithm,
                :compressed, :encrypted
            )
            """,
            data,
        )

    def get_datafile(self, datafile_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM datafiles WHERE datafile_id = ?", (datafile_id,)
        )
        row = cur.fetchone()
        return dict(row) if row else None
