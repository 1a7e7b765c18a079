"""Scoped handles on the metadata store and the lake.

The store and the lake have separate lifecycles; each context manager
releases its handle on every exit path.
"""

from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from typing import Optional

from tre.catalog.app.manager import CatalogManager
from tre.catalog.data.adapters.duckdb_lake_adapter import DuckDBLakeAdapter
from tre.catalog.data.adapters.local_file_adapter import LocalFileAdapter
from tre.catalog.data.catalogrepo_sqlite import CatalogRepoSQLite
from tre.config import CatalogConfig


@contextmanager
def open_store(config: CatalogConfig) -> Iterator[CatalogRepoSQLite]:
    repo = CatalogRepoSQLite(
        config.store_path,
        timeout=config.store_timeout,
        storage_gateway=LocalFileAdapter(config.file_store),
    )
    try:
        yield repo
    finally:
        repo.close()


@contextmanager
def open_lake(config: CatalogConfig) -> Iterator[DuckDBLakeAdapter]:
    lake = DuckDBLakeAdapter(config.lake_path)
    try:
        yield lake
    finally:
        lake.close()


@contextmanager
def open_catalog(config: Optional[CatalogConfig] = None) -> Iterator[CatalogManager]:
    """Open store and lake together behind a CatalogManager.

    Directories for file-backed stores are created first.
    """
    config = config or CatalogConfig.from_env()
    config.ensure_dirs()
    with ExitStack() as stack:
        repo = stack.enter_context(open_store(config))
        lake = stack.enter_context(open_lake(config))
        yield CatalogManager(config, catalogrepo=repo, lake=lake)
