"""Data Access Layer for Asset persistence operations."""

import sqlite3
from typing import Any, Optional


class AssetDAL:
    """Executes SQL for Asset CRUD operations.

    Attributes:
        _conn: Shared SQLite connection (managed by CatalogRepoSQLite).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def insert(self, data: dict[str, Any]) -> int:
        """Insert an asset and return its generated id.

        Raises:
            sqlite3.IntegrityError: If (study_id, name) is already taken.
        """
        cur = self._conn.execute(
            """
            INSERT INTO assets (study_id, name, kind, description, created_at)
            VALUES (:study_id, :name, :kind, :description, :created_at)
            RETURNING asset_id
            """,
            data,
        )
        return cur.fetchone()[0]

    def get(self, asset_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM assets WHERE asset_id = ?", (asset_id,)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_by_name(
        self, study_id: int, name: str
    ) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM assets WHERE study_id = ? AND name = ?",
            (study_id, name),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_for_study(self, study_id: int) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM assets WHERE study_id = ? ORDER BY name",
            (study_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def delete(self, asset_id: int) -> None:
        self._conn.execute("DELETE FROM assets WHERE asset_id = ?", (asset_id,))
