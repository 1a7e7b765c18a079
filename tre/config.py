"""Runtime configuration for the catalog.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from tre.catalog.domain.exceptions import ConfigError

MEMORY = ":memory:"
DEFAULT_HOME = "~/.tre"
DEFAULT_CODE_TABLE_MAX_ROWS = 250
DEFAULT_BATCH_SIZE = 1000
DEFAULT_STORE_TIMEOUT = 30.0


@dataclass(frozen=True)
class CatalogConfig:
    """Validated runtime configuration.

    Attributes:
        store_path: SQLite metadata store path, or ":memory:".
        lake_path: DuckDB lake path, or ":memory:".
        file_store: Root directory for registered data files.
        store_timeout: Busy timeout for the metadata store, in seconds.
        code_table_max_rows: Tables with at least this many rows are
                             never treated as code tables.
        batch_size: Rows per fetch/append batch while streaming.
    """

    store_path: str = MEMORY
    lake_path: str = MEMORY
    file_store: Path = Path(DEFAULT_HOME).expanduser() / "files"
    store_timeout: float = DEFAULT_STORE_TIMEOUT
    code_table_max_rows: int = DEFAULT_CODE_TABLE_MAX_ROWS
    batch_size: int = DEFAULT_BATCH_SIZE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CatalogConfig":
        """Build config from process environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.

        Returns:
            A validated config object.

        Raises:
            ConfigError: If environment values are invalid.
        """
        env = os.environ if environ is None else environ
        home = Path(env.get("TRE_HOME", DEFAULT_HOME)).expanduser()
        return cls(
            store_path=_path_or_memory(
                env.get("TRE_STORE_PATH", str(home / "catalog.db"))
            ),
            lake_path=_path_or_memory(
                env.get("TRE_LAKE_PATH", str(home / "lake.duckdb"))
            ),
            file_store=Path(
                env.get("TRE_FILE_STORE", str(home / "files"))
            ).expanduser(),
            store_timeout=_parse_number(
                env, "TRE_STORE_TIMEOUT", DEFAULT_STORE_TIMEOUT, float
            ),
            code_table_max_rows=_parse_number(
                env, "TRE_CODE_TABLE_MAX_ROWS", DEFAULT_CODE_TABLE_MAX_ROWS, int
            ),
            batch_size=_parse_number(
                env, "TRE_INGEST_BATCH_SIZE", DEFAULT_BATCH_SIZE, int
            ),
        )

    def ensure_dirs(self) -> None:
        """Create parent directories of file-backed stores."""
        for path in (self.store_path, self.lake_path):
            if path != MEMORY:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.file_store.mkdir(parents=True, exist_ok=True)


def _path_or_memory(value: str) -> str:
    if value == MEMORY:
        return value
    return str(Path(value).expanduser())


def _parse_number(env: Mapping[str, str], name: str, default, kind):
    """Parse a positive numeric environment value.

    Raises:
        ConfigError: If the value is not a positive number of ``kind``.
    """
    raw_value = env.get(name)
    if raw_value is None or raw_value == "":
        return default
    try:
        value = kind(raw_value)
    except ValueError as error:
        raise ConfigError(
            f"Invalid {name} value: expected {kind.__name__}, "
            f"got '{raw_value}'."
        ) from error
    if value <= 0:
        raise ConfigError(f"Invalid {name} value: must be positive, got {value}.")
    return value
