"""Tests for CatalogManager facade.

Runs the facade over an in-memory store and lake, with a SQLite source
and a temporary file store.
"""

import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from tre.catalog.app.manager import CatalogManager
from tre.catalog.domain.entities.study import Domain
from tre.catalog.domain.enums import AssetKind, TransformationType, ValueType
from tre.catalog.domain.exceptions import (
    AmbiguousNameError,
    DuplicateNameError,
    EntityNotFoundError,
    InvariantViolationError,
    SchemaProbeError,
)
from tre.catalog.domain.value_objects import StorageURI, VersionNumber, VocabularyItem
from tre.config import CatalogConfig


@pytest.fixture
def source_path(tmp_path, source_conn):
    """The SQLite source copied to a file."""
    path = tmp_path / "source.db"
    dest = sqlite3.connect(str(path))
    source_conn.backup(dest)
    dest.close()
    return str(path)


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "codebook.csv"
    path.write_text("field,label\nage,Age at death\n")
    return str(path)


class TestLazyInit:
    """Verify collaborators are created on first use."""

    def test_defaults(self):
        """A bare manager starts with nothing opened."""
        manager = CatalogManager()
        assert manager._catalogrepo is None
        assert manager._lake is None
        assert manager.config == CatalogConfig()

    def test_collaborators_cached(self, catalog):
        """Each lazy property returns the same object twice."""
        assert catalog.study_factory is catalog.study_factory
        assert catalog.ingest_pipeline is catalog.ingest_pipeline
        assert catalog.exporter is catalog.exporter

    def test_inference_uses_configured_threshold(self, repo, lake, file_store):
        """The code-table threshold comes from the config."""
        manager = CatalogManager(
            CatalogConfig(file_store=file_store, code_table_max_rows=7),
            catalogrepo=repo,
            lake=lake,
        )
        assert manager.inference.detectors.detectors[1].max_rows == 7

    def test_close_resets(self, repo, lake, file_store):
        """close releases the store and the lake."""
        manager = CatalogManager(
            CatalogConfig(file_store=file_store), catalogrepo=repo, lake=lake
        )
        manager.catalogrepo.list_studies()
        manager.close()
        assert manager._catalogrepo is None
        assert manager._lake is None
        assert repo._conn is None


class TestStudiesAndDomains:
    """Verify study, domain and vocabulary lookups."""

    def test_create_and_get_study(self, catalog):
        """A created study can be fetched by name."""
        catalog.create_study("hdss", "Demo", "HDSS")
        assert catalog.get_study("hdss").study_type == "HDSS"

    def test_duplicate_study(self, catalog):
        """Study names are unique."""
        catalog.create_study("hdss")
        with pytest.raises(DuplicateNameError):
            catalog.create_study("hdss")

    def test_missing_study(self, catalog):
        """Unknown studies raise EntityNotFoundError."""
        with pytest.raises(EntityNotFoundError):
            catalog.get_study("nope")

    def test_add_domain_links_study(self, catalog, study):
        """add_domain with a study links it."""
        domain = catalog.add_domain("core", study=study)
        assert [d.domain_id for d in study.domains()] == [domain.domain_id]

    def test_get_domain_with_uri(self, catalog):
        """Domains sharing a name are told apart by URI."""
        catalog.add_domain("core", uri="https://a")
        catalog.add_domain("core", uri="https://b")
        assert catalog.get_domain("core", "https://b").uri == "https://b"
        with pytest.raises(EntityNotFoundError):
            catalog.get_domain("core")

    def test_get_vocabulary(self, catalog, repo, domain):
        """Vocabularies resolve by name and by domain."""
        other = repo.add_domain(Domain(name="other"))
        for d in (domain, other):
            repo.ensure_vocabulary(d.domain_id, "status", "", [VocabularyItem(1, "a")])
        assert catalog.get_vocabulary("status", other).domain_id == other.domain_id
        with pytest.raises(AmbiguousNameError):
            catalog.get_vocabulary("status")
        with pytest.raises(EntityNotFoundError):
            catalog.get_vocabulary("missing")


class TestSourcesAndIngest:
    """Verify probing and ingestion through the facade."""

    def test_probe_from_path(self, catalog, source_path):
        """A path is opened with the flavour's driver."""
        with catalog.open_probe(source_path, "sqlite") as probe:
            assert [c.name for c in probe.describe("SELECT * FROM causes")] == [
                "code", "label", "description",
            ]

    def test_opened_connection_closed(self, catalog, source_path):
        """A connection opened from a path is closed on exit."""
        with catalog.open_probe(source_path, "sqlite") as probe:
            conn = probe._conn
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")

    def test_caller_connection_left_open(self, catalog, source_conn):
        """A caller-supplied connection stays usable."""
        catalog.infer_schema(source_conn, "sqlite", "SELECT id FROM deaths")
        assert source_conn.execute("SELECT count(*) FROM deaths").fetchone() == (3,)

    def test_connection_closed_after_failed_ingest(
        self, catalog, source_path, study, domain
    ):
        """The source connection is released when the ingest fails."""
        conn = MagicMock(wraps=sqlite3.connect(source_path))
        with patch(
            "tre.catalog.app.factory.probe_factory.connect_source",
            return_value=conn,
        ):
            with pytest.raises(SchemaProbeError):
                catalog.ingest(
                    source_path, "sqlite", "SELEC id FROM deaths",
                    study, domain, "deaths",
                )
        conn.close.assert_called_once_with()
        assert catalog.catalogrepo.get_asset_by_name(study.study_id, "deaths") is None

    def test_infer_schema(self, catalog, source_conn):
        """infer_schema returns descriptors without touching the store."""
        descriptors = catalog.infer_schema(source_conn, "sqlite", "SELECT cause FROM deaths")
        assert descriptors[0].value_type == ValueType.CATEGORY
        assert catalog.catalogrepo.list_variables(1) == []

    def test_ingest_and_read(self, catalog, source_path, study, domain):
        """Ingested rows are readable with categories stored as codes."""
        result = catalog.ingest(
            source_path, "sqlite", "SELECT id, place FROM deaths ORDER BY id",
            study, domain, "deaths",
        )
        assert result.rows == 3
        columns, rows = catalog.read_dataset(result.version.version_id)
        assert columns == ["id", "place"]
        assert rows == [(1, 1), (2, 2), (3, 3)]

    def test_read_dataset_missing(self, catalog):
        """read_dataset needs a dataset version."""
        with pytest.raises(EntityNotFoundError):
            catalog.read_dataset(42)


class TestDataFiles:
    """Verify file registration and verification."""

    def test_register_new_asset(self, catalog, study, data_file, file_store):
        """The first registration creates the asset at 1.0.0."""
        version, datafile = catalog.register_datafile(study, "codebook", data_file, note="first")
        assert version.version == VersionNumber(1, 0, 0)
        assert version.note == "first"
        assert study.getasset("codebook").kind == AssetKind.FILE
        stored = StorageURI(datafile.storage_uri).to_path()
        assert stored == (file_store / "hdss" / "codebook" / "1.0.0" / "codebook.csv").resolve()
        assert datafile.digest_algorithm == "sha256"

    def test_register_again_bumps(self, catalog, study, data_file):
        """A second registration is a new patch version."""
        catalog.register_datafile(study, "codebook", data_file)
        version, _ = catalog.register_datafile(study, "codebook", data_file)
        assert version.version == VersionNumber(1, 0, 1)
        assert version.is_latest

    def test_register_onto_dataset_asset(self, catalog, repo, study, data_file):
        """A file cannot become a version of a dataset asset."""
        asset = repo.create_asset(study.study_id, "deaths", AssetKind.DATASET)
        with pytest.raises(InvariantViolationError):
            catalog.register_datafile(study, "deaths", data_file)
        assert len(repo.list_versions(asset.asset_id)) == 1

    def test_verify(self, catalog, study, data_file):
        """verify_datafile detects changed bytes."""
        version, datafile = catalog.register_datafile(study, "codebook", data_file)
        assert catalog.verify_datafile(version.version_id) is True
        StorageURI(datafile.storage_uri).to_path().write_text("changed")
        assert catalog.verify_datafile(version.version_id) is False

    def test_verify_missing(self, catalog):
        """verify_datafile needs a file version."""
        with pytest.raises(EntityNotFoundError):
            catalog.verify_datafile(99)


class TestVersionsAndLineage:
    """Verify version resolution, export and lineage through the facade."""

    @pytest.fixture
    def ingested(self, catalog, source_conn, study, domain):
        return catalog.ingest(
            source_conn, "sqlite", "SELECT id, age FROM deaths", study, domain, "deaths"
        )

    def test_resolve_version(self, catalog, study, ingested):
        """Versions resolve by string or to the latest."""
        assert catalog.resolve_version(study, "deaths").version_id == ingested.version.version_id
        assert catalog.resolve_version(study, "deaths", "1.0.0").version_id == ingested.version.version_id
        with pytest.raises(EntityNotFoundError):
            catalog.resolve_version(study, "deaths", "9.9.9")

    def test_export_recorded(self, catalog, ingested, tmp_path):
        """Exports are consumers of the exported version."""
        result = catalog.export(ingested.version.version_id, str(tmp_path / "out" / "deaths.csv"))
        assert result.format == "csv"
        consumers = catalog.lineage_service.provenance(ingested.version.version_id)["consumed_by"]
        assert [t.type for t in consumers] == [TransformationType.EXPORT]

    def test_ingest_has_no_upstream(self, catalog, ingested):
        """An ingested version has no lineage and no descendants."""
        assert catalog.lineage(ingested.version.version_id) == []
        assert catalog.descendants(ingested.version.version_id) == []

    def test_lineage_missing_version(self, catalog):
        """Lineage of an unknown version raises."""
        with pytest.raises(EntityNotFoundError):
            catalog.lineage(404)
