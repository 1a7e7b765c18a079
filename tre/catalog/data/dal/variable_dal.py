"""Data Access Layer for variables and dataset schema membership."""

import sqlite3
from typing import Any, Optional


class VariableDAL:
    """Executes SQL for Variable and DatasetVariable operations.

    Attributes:
        _conn: Shared SQLite connection (managed by CatalogRepoSQLite).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def upsert(self, data: dict[str, Any]) -> int:
        """Insert or update a variable keyed on (domain_id, name).

        The key role of an existing variable is preserved.

        Returns:
            The variable id.
        """
        cur = self._conn.execute(
            """
            INSERT INTO variables (
                domain_id, name, value_type, value_format,
                vocabulary_id, keyrole, description
            ) VALUES (
                :domain_id, :name, :value_type, :value_format,
                :vocabulary_id, :keyrole, :description
            )
            ON CONFLICT(domain_id, name) DO UPDATE SET
                value_type = excluded.value_type,
                value_format = excluded.value_format,
                vocabulary_id = excluded.vocabulary_id,
                description = COALESCE(excluded.description, description)
            RETURNING variable_id
            """,
            data,
        )
        return cur.fetchone()[0]

    def get(self, variable_id: int) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM variables WHERE variable_id = ?", (variable_id,)
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def get_by_name(
        self, domain_id: int, name: str
    ) -> Optional[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM variables WHERE domain_id = ? AND name = ?",
            (domain_id, name),
        )
        row = cur.fetchone()
        return dict(row) if row else None

    def list_for_domain(self, domain_id: int) -> list[dict[str, Any]]:
        cur = self._conn.execute(
            "SELECT * FROM variables WHERE domain_id = ? ORDER BY name",
            (domain_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def replace_dataset_variables(
        self, dataset_id: int, links: list[dict[str, Any]]
    ) -> None:
        """Replace the ordered variable list of a dataset.

        Args:
            dataset_id: Dataset (version) id.
            links: Dicts with variable_id, keyrole, ordinal.
        """
        self._conn.execute(
            "DELETE FROM dataset_variables WHERE dataset_id = ?",
            (dataset_id,),
        )
        self._conn.executemany(
            """
            INSERT INTO dataset_variables (
                dataset_id, variable_id, keyrole, ordinal
            ) VALUES (
                :dataset_id, :variable_id, :keyrole, :ordinal
            )
            """,
            [dict(link, dataset_id=dataset_id) for link in links],
        )

    def list_for_dataset(self, dataset_id: int) -> list[dict[str, Any]]:
        """Variables of a dataset with the link's key role, in order."""
        cur = self._conn.execute(
            """
            SELECT v.variable_id, v.domain_id, v.name, v.value_type,
                   v.value_format, v.vocabulary_id, dv.keyrole,
                   v.description
            FROM dataset_variables dv
            JOIN variables v ON v.variable_id = dv.variable_id
            WHERE dv.dataset_id = ?
            ORDER BY dv.ordinal
            """,
            (dataset_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def foreign_domain_variables(
        self, study_id: int, variable_ids: list[int]
    ) -> list[str]:
        """Names of variables whose domain is not linked to a study."""
        if not variable_ids:
            return []
        marks = ", ".join("?" for _ in variable_ids)
        cur = self._conn.execute(
            f"""
            SELECT v.name FROM variables v
            WHERE v.variable_id IN ({marks})
              AND v.domain_id NOT IN (
                  SELECT domain_id FROM study_domains WHERE study_id = ?
              )
            ORDER BY v.name
            """,
            (*variable_ids, study_id),
        )
        return [row[0] for row in cur.fetchall()]
