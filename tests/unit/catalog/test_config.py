"""Tests for CatalogConfig environment parsing."""

from pathlib import Path

import pytest

from tre.catalog.domain.exceptions import ConfigError
from tre.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CODE_TABLE_MAX_ROWS,
    MEMORY,
    CatalogConfig,
)


class TestFromEnv:
    """Verify values read from the environment."""

    def test_defaults_under_home(self, tmp_path):
        """Paths default to files under TRE_HOME."""
        config = CatalogConfig.from_env({"TRE_HOME": str(tmp_path)})
        assert config.store_path == str(tmp_path / "catalog.db")
        assert config.lake_path == str(tmp_path / "lake.duckdb")
        assert config.file_store == tmp_path / "files"
        assert config.code_table_max_rows == DEFAULT_CODE_TABLE_MAX_ROWS
        assert config.batch_size == DEFAULT_BATCH_SIZE

    def test_overrides(self, tmp_path):
        """Each setting has its own variable."""
        config = CatalogConfig.from_env(
            {
                "TRE_STORE_PATH": MEMORY,
                "TRE_LAKE_PATH": str(tmp_path / "lake.db"),
                "TRE_FILE_STORE": str(tmp_path / "blobs"),
                "TRE_STORE_TIMEOUT": "2.5",
                "TRE_CODE_TABLE_MAX_ROWS": "10",
                "TRE_INGEST_BATCH_SIZE": "50",
            }
        )
        assert config.store_path == MEMORY
        assert config.lake_path == str(tmp_path / "lake.db")
        assert config.file_store == tmp_path / "blobs"
        assert config.store_timeout == 2.5
        assert config.code_table_max_rows == 10
        assert config.batch_size == 50

    def test_home_expanded(self):
        """A leading ~ is expanded."""
        config = CatalogConfig.from_env({"TRE_HOME": "~/catalog"})
        assert config.store_path == str(Path("~/catalog").expanduser() / "catalog.db")

    def test_empty_value_uses_default(self):
        """An empty numeric variable falls back to the default."""
        config = CatalogConfig.from_env({"TRE_INGEST_BATCH_SIZE": ""})
        assert config.batch_size == DEFAULT_BATCH_SIZE

    @pytest.mark.parametrize(
        "name, value",
        [
            ("TRE_INGEST_BATCH_SIZE", "many"),
            ("TRE_INGEST_BATCH_SIZE", "1.5"),
            ("TRE_CODE_TABLE_MAX_ROWS", "0"),
            ("TRE_STORE_TIMEOUT", "-1"),
        ],
    )
    def test_invalid_numbers(self, name, value):
        """Non-numeric and non-positive values raise ConfigError."""
        with pytest.raises(ConfigError, match=name):
            CatalogConfig.from_env({name: value})


class TestEnsureDirs:
    """Verify directory creation for file-backed stores."""

    def test_creates_parents(self, tmp_path):
        """Parent directories of the store, lake and file store are made."""
        config = CatalogConfig(
            store_path=str(tmp_path / "a" / "catalog.db"),
            lake_path=str(tmp_path / "b" / "lake.duckdb"),
            file_store=tmp_path / "c",
        )
        config.ensure_dirs()
        assert (tmp_path / "a").is_dir()
        assert (tmp_path / "b").is_dir()
        assert (tmp_path / "c").is_dir()

    def test_memory_paths_skipped(self, tmp_path):
        """In-memory stores need no directories."""
        config = CatalogConfig(file_store=tmp_path / "files")
        config.ensure_dirs()
        assert config.store_path == MEMORY
        assert (tmp_path / "files").is_dir()
        assert not (Path.cwd() / MEMORY).exists()
