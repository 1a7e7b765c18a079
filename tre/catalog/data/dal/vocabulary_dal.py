"""Data Access Layer for vocabularies and their items."""

import sqlite3
from typing import Any, Optional


class VocabularyDAL:
    """Executes SQL for Vocabulary operations.

    Attributes:
        _conn: Shared SQLite connection (managed by CatalogRepoSQLite).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def upsert(self, data: dict[str, Any]) -> int:
        """Insert a vocabulary or replace its description; return its id.

        Args:
            data: Keys domain_id, name, description.
        """
        cur = self._conn.execute(
            """
            INSERT INTO vocabularies (domain_id, name, description)
            VALUES (:domain_id, :name, :description)
            ON CONFLICT(domain_id, name) DO UPDATE SET
                description = excluded.description
            RETURNING vocabulary_id
            """,
            data,
        )
        return cur.fetchone()[0]

    def replace_items(
        self, vocabulary_id: int, items: list[dict[str, Any]]
    ) -> None:
        """Delete all items of a vocabulary, then insert ``items``."""
        self._conn.execute(
            "DELETE FROM vocabulary_items WHERE vocabulary_id = ?",
            (vocabulary_id,),
        )
        self._conn.executemany(
            """
            INSERT INTO vocabulary_items (
                vocabulary_id, value, code, description
            ) VALUES (
                :vocabulary_id, :value, :code, :description
            )
            """,
            [dict(item, vocabulary_id=vocabulary_id) for item in items],
        )

    def get(self, vocabulary_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM vocabularies WHERE vocabulary_id = ?",
            (vocabulary_id,),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_by_name(
        self, domain_id: int, name: str
    ) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM vocabularies WHERE domain_id = ? AND name = ?",
            (domain_id, name),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def find_by_name(self, name: str) -> list[dict[str, Any]]:
        """All vocabularies called ``name`` across every domain."""
        cur = self._conn.execute(
            "SELECT * FROM vocabularies WHERE name = ? ORDER BY domain_id",
            (name,),
        )
        return [dict(row) for row in cur.fetchall()]

    def list_items(self, vocabulary_id: int) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            """
            SELECT value, code, description FROM vocabulary_items
            WHERE vocabulary_id = ?
            ORDER BY vocabulary_item_id
            """,
            (vocabulary_id,),
        )
        return [dict(row) for row in cur.fetchall()]
