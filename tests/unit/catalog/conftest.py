"""Shared fixtures for catalog unit tests."""

import sqlite3
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from tre.catalog.app.manager import CatalogManager
from tre.catalog.data.adapters.duckdb_lake_adapter import DuckDBLakeAdapter
from tre.catalog.data.adapters.local_file_adapter import LocalFileAdapter
from tre.catalog.data.catalogrepo_sqlite import CatalogRepoSQLite
from tre.catalog.domain.entities.study import Domain, Study
from tre.catalog.domain.value_objects import ContentDigest
from tre.config import CatalogConfig

FIXED_TIME = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

SOURCE_DDL = """
CREATE TABLE causes (
    code INTEGER PRIMARY KEY,
    label TEXT NOT NULL,
    description TEXT
);
CREATE TABLE deaths (
    id INTEGER PRIMARY KEY,
    cause INTEGER REFERENCES causes(code),
    place TEXT CHECK (place IN ('home', 'facility', 'other')),
    age REAL,
    died_on DATE
);
INSERT INTO causes VALUES (1, 'Natural', 'Natural causes'),
                          (2, 'Unnatural', 'External causes');
INSERT INTO deaths VALUES (1, 1, 'home', 71.5, '2020-01-03'),
                          (2, 1, 'facility', 64.0, '2020-02-11'),
                          (3, 2, 'other', 23.0, '2020-03-30');
"""


# ── Store and lake fixtures ──────────────────────────────────


@pytest.fixture
def fixed_time():
    """A fixed UTC timestamp for deterministic entities."""
    return FIXED_TIME


@pytest.fixture
def file_store(tmp_path):
    """Root directory of the local file store."""
    return tmp_path / "files"


@pytest.fixture
def storage_gateway(file_store):
    """LocalFileAdapter rooted in a temp directory."""
    return LocalFileAdapter(file_store)


@pytest.fixture
def repo(storage_gateway):
    """In-memory CatalogRepoSQLite for isolated tests.

    Yields:
        CatalogRepoSQLite connected to ':memory:' database.
        Automatically closed after test.
    """
    r = CatalogRepoSQLite(":memory:", storage_gateway=storage_gateway)
    yield r
    r.close()


@pytest.fixture
def lake():
    """In-memory DuckDB lake, closed after the test."""
    adapter = DuckDBLakeAdapter(":memory:")
    yield adapter
    adapter.close()


# ── Source fixtures ──────────────────────────────────────────


@pytest.fixture
def source_conn():
    """SQLite source with a ``causes`` lookup referenced by ``deaths``."""
    conn = sqlite3.connect(":memory:")
    conn.executescript(SOURCE_DDL)
    yield conn
    conn.close()


# ── Entity fixtures ──────────────────────────────────────────


@pytest.fixture
def study(repo):
    """A persisted study named 'hdss'."""
    return repo.add_study(
        Study(name="hdss", description="Demo site", study_type="HDSS", _repo=repo)
    )


@pytest.fixture
def domain(repo, study):
    """A persisted domain linked to ``study``."""
    d = repo.add_domain(Domain(name="core", uri="https://example.org/core"))
    repo.link_study_domain(study.study_id, d.domain_id)
    return d


# ── Mock fixtures ────────────────────────────────────────────


@pytest.fixture
def mock_storage_gateway():
    """Mock StorageGateway that returns predictable values.

    The mock's push() returns a file URI and a sha256 digest.
    The mock's verify() returns True.

    Returns:
        MagicMock conforming to StorageGateway protocol.
    """
    mock = MagicMock()
    mock.push.return_value = (
        "file:///store/x.csv",
        ContentDigest("abc123hash", "sha256"),
    )
    mock.pull.return_value = "/tmp/pulled/x.csv"
    mock.verify.return_value = True
    return mock


@pytest.fixture
def mock_repo():
    """Mock CatalogRepo for pure unit testing without SQLite."""
    return MagicMock()


# ── Facade fixtures ──────────────────────────────────────────


@pytest.fixture
def catalog(repo, lake, file_store):
    """CatalogManager over the in-memory store and lake."""
    return CatalogManager(
        CatalogConfig(file_store=file_store), catalogrepo=repo, lake=lake
    )


@pytest.fixture
def eav_file(tmp_path):
    """Write a long-format export and return its path."""

    def write(rows, name="export.csv"):
        path = tmp_path / name
        lines = ["record,field_name,value"] + [",".join(row) for row in rows]
        path.write_text("\n".join(lines) + "\n")
        return str(path)

    return write
