"""Data Access Layer for studies and domains.

Executes SQL against a SQLite connection to persist studies, domains
and the links between them.
"""

import sqlite3
from typing import Any, Optional


class StudyDAL:
    """Executes SQL for Study and Domain operations.

    Attributes:
        _conn: Shared SQLite connection (managed by CatalogRepoSQLite).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ── Studies ───────────────────────────────────────────────

    def insert_study(self, data: dict[str, Any]) -> int:
        """Insert a study and return its generated id.

        Raises:
            sqlite3.IntegrityError: If the name is already taken.
        """
        cur = self._conn.execute(
            """
            INSERT INTO studies (name, description, study_type, created_at)
            VALUES (:name, :description, :study_type, :created_at)
            RETURNING study_id
            """,
            data,
        )
        return cur.fetchone()[0]

    def get_study(self, study_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM studies WHERE study_id = ?", (study_id,)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_study_by_name(self, name: str) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM studies WHERE name = ?", (name,)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_studies(self) -> list[dict[str, Any]]:
        cur = self._conn.execute("SELECT * FROM studies ORDER BY name")
        return [dict(row) for row in cur.fetchall()]

    # ── Domains ───────────────────────────────────────────────

    def insert_domain(self, data: dict[str, Any]) -> int:
        """Insert a domain and return its generated id.

        Raises:
            sqlite3.IntegrityError: If (name, uri) is already taken, or
                the name already has a NULL-uri row.
        """
        cur = self._conn.execute(
            """
            INSERT INTO domains (name, uri, description)
            VALUES (:name, :uri, :description)
            RETURNING domain_id
            """,
            data,
        )
        return cur.fetchone()[0]

    def get_domain(self, domain_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM domains WHERE domain_id = ?", (domain_id,)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_domain_by_name(
        self, name: str, uri: Optional[str] = None
    ) -> Optional[dict[str, Any]]:
        """Retrieve a domain by name and uri (``IS`` matches NULL)."""
        cur = self._conn.execute(
            "SELECT * FROM domains WHERE name = ? AND uri IS ?", (name, uri)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def link_study_domain(self, study_id: int, domain_id: int) -> None:
        self._conn.execute(
            """
            INSERT INTO study_domains (study_id, domain_id)
            VALUES (?, ?)
            ON CONFLICT DO NOTHING
            """,
            (study_id, domain_id),
        )

    def list_study_domains(self, study_id: int) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            """
            SELECT d.* FROM domains d
            JOIN study_domains sd ON sd.domain_id = d.domain_id
            WHERE sd.study_id = ?
            ORDER BY d.name
            """,
            (study_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def study_has_domain(self, study_id: int, domain_id: int) -> bool:
        cur = self._conn.execute(
            "SELECT 1 FROM study_domains WHERE study_id = ? AND domain_id = ?",
            (study_id, domain_id),
        )
        return cur.fetchone() is not None
