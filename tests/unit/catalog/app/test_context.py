"""Tests for the scoped store, lake and catalog handles."""

import pytest

from tre.catalog.app.context import open_catalog, open_lake, open_store
from tre.config import CatalogConfig


@pytest.fixture
def config(tmp_path):
    return CatalogConfig(
        store_path=str(tmp_path / "home" / "catalog.db"),
        lake_path=str(tmp_path / "home" / "lake.duckdb"),
        file_store=tmp_path / "home" / "files",
    )


class TestContexts:
    """Verify handles are released on every exit path."""

    def test_open_store_closes(self, tmp_path):
        """The store connection is closed on exit."""
        config = CatalogConfig(store_path=str(tmp_path / "c.db"), file_store=tmp_path)
        with open_store(config) as repo:
            repo.list_studies()
        assert repo._conn is None

    def test_open_store_closes_on_error(self, tmp_path):
        """An exception inside the scope still closes the store."""
        config = CatalogConfig(store_path=str(tmp_path / "c.db"), file_store=tmp_path)
        with pytest.raises(RuntimeError):
            with open_store(config) as repo:
                repo.list_studies()
                raise RuntimeError("boom")
        assert repo._conn is None

    def test_open_lake_closes(self):
        """The lake connection is closed on exit."""
        with open_lake(CatalogConfig()) as lake:
            lake.execute("SELECT 1")
        assert lake._conn is None

    def test_open_catalog_persists(self, config):
        """Directories are created and data survives reopening."""
        with open_catalog(config) as catalog:
            catalog.create_study("hdss")
        assert config.file_store.is_dir()
        with open_catalog(config) as catalog:
            assert catalog.get_study("hdss").name == "hdss"
