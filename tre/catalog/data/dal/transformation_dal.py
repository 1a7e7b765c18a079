"""Data Access Layer for the provenance ledger.

Persists transformations and their input/output links, and traverses
lineage through those links via recursive CTEs.
"""

import sqlite3
from typing import Any, Optional

_LINK_TABLES = {
    "input": "transformation_inputs",
    "output": "transformation_outputs",
}


class TransformationDAL:
    """Executes SQL for Transformation and link operations.

    Attributes:
        _conn: Shared SQLite connection (managed by CatalogRepoSQLite).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def insert(self, data: dict[str, Any]) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO transformations (
                type, status, description, repo_url, commit_hash,
                script_path, created_at
            ) VALUES (
                :type, :status, :description, :repo_url, :commit_hash,
                :script_path, :created_at
            )
            RETURNING transformation_id
            """,
            data,
        )
        return cur.fetchone()[0]

    def get(self, transformation_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM transformations WHERE transformation_id = ?",
            (transformation_id,),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_all(self, type: Optional[str] = None) -> list[dict[str, Any]]:
        if type is None:
            cur = self._conn.execute(
                "SELECT * FROM transformations ORDER BY transformation_id"
            )
        else:
            cur = self._conn.execute(
                "SELECT * FROM transformations WHERE type = ? "
                "ORDER BY transformation_id",
                (type,),
            )
        return [dict(row) for row in cur.fetchall()]

    def link(self, role: str, transformation_id: int, version_id: int) -> None:
        """Append an input or output link; repeated links are ignored.

        Raises:
            sqlite3.IntegrityError: If either id does not exist.
        """
        table = _LINK_TABLES[role]
        self._conn.execute(
            f"INSERT INTO {table} (transformation_id, version_id) "
            "VALUES (?, ?) ON CONFLICT DO NOTHING",
            (transformation_id, version_id),
        )

    def linked_versions(
        self, role: str, transformation_id: int
    ) -> list[dict[str, Any]]:
        table = _LINK_TABLES[role]
        cur = self._conn.execute(
            f"""
            SELECT v.* FROM asset_versions v
            JOIN {table} l ON l.version_id = v.version_id
            WHERE l.transformation_id = ?
            ORDER BY v.version_id
            """,
            (transformation_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def transformations_for(
        self, role: str, version_id: int
    ) -> list[dict[str, Any]]:
        table = _LINK_TABLES[role]
        cur = self._conn.execute(
            f"""
            SELECT t.* FROM transformations t
            JOIN {table} l ON l.transformation_id = t.transformation_id
            WHERE l.version_id = ?
            ORDER BY t.transformation_id
            """,
            (version_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def is_referenced(self, version_id: int) -> bool:
        cur = self._conn.execute(
            """
            SELECT 1 FROM transformation_inputs WHERE version_id = :v
            UNION ALL
            SELECT 1 FROM transformation_outputs WHERE version_id = :v
            LIMIT 1
            """,
            {"v": version_id},
        )
        return cur.fetchone() is not None

    def get_upstream(
        self, version_id: int, max_depth: int = 100
    ) -> list[dict[str, Any]]:
        """Versions that fed, directly or transitively, into a version.

        Walks output → transformation → input links backwards.

        Returns:
            Version dicts ordered by distance, nearest first.
        """
        return self._walk(
            version_id, max_depth, "transformation_outputs",
            "transformation_inputs",
        )

    def get_downstream(
        self, version_id: int, max_depth: int = 100
    ) -> list[dict[str, Any]]:
        """Versions derived, directly or transitively, from a version."""
        return self._walk(
            version_id, max_depth, "transformation_inputs",
            "transformation_outputs",
        )

    def _walk(
        self, version_id: int, max_depth: int, near: str, far: str
    ) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            f"""
            WITH RECURSIVE lineage(version_id, depth) AS (
                SELECT ?, 0
                UNION
                SELECT f.version_id, l.depth + 1
                FROM lineage l
                JOIN {near} n ON n.version_id = l.version_id
                JOIN {far} f ON f.transformation_id = n.transformation_id
                WHERE l.depth < ?
            )
            SELECT v.*, MIN(l.depth) AS depth
            FROM lineage l
            JOIN asset_versions v ON v.version_id = l.version_id
            WHERE l.depth > 0
            GROUP BY v.version_id
            ORDER BY depth, v.version_id
            """,
            (version_id, max_depth),
        )
        return [dict(row) for row in cur.fetchall()]
