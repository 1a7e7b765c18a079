"""Tests for CatalogRepoSQLite concrete implementation.

Tests the full round-trip: entity → dict → SQLite → dict → entity,
and the ledger invariants the store enforces. Uses in-memory SQLite
for isolation, and a file database where several connections share it.
"""

import sqlite3
import threading

import pytest

from tre.catalog.data.catalogrepo_sqlite import CatalogRepoSQLite
from tre.catalog.domain.entities.datafile import DataFile
from tre.catalog.domain.entities.dataset import DataSet
from tre.catalog.domain.entities.study import Domain, Study
from tre.catalog.domain.entities.variable import Variable
from tre.catalog.domain.enums import (
    AssetKind,
    KeyRole,
    TransformationType,
    ValueType,
)
from tre.catalog.domain.exceptions import (
    AmbiguousNameError,
    DeleteConstraintError,
    DuplicateNameError,
    EntityNotFoundError,
    InvariantViolationError,
)
from tre.catalog.domain.value_objects import (
    SourceRef,
    VersionNumber,
    VocabularyItem,
)


@pytest.fixture
def asset(repo, study):
    """A dataset asset at version 1.0.0."""
    return repo.create_asset(study.study_id, "deaths", AssetKind.DATASET, "Deaths")


def _latest_count(repo, asset_id):
    (count,) = repo.conn.execute(
        "SELECT COUNT(*) FROM asset_versions WHERE asset_id = ? AND is_latest = 1",
        (asset_id,),
    ).fetchone()
    return count


class TestStudiesAndDomains:
    """Verify study and domain persistence."""

    def test_add_and_get_study(self, repo):
        """add_study then get_study_by_name returns the same study."""
        repo.add_study(Study(name="hdss", study_type="HDSS"))
        study = repo.get_study_by_name("hdss")
        assert study.study_type == "HDSS"
        assert study._repo is repo

    def test_duplicate_study(self, repo, study):
        """A second study with the same name is rejected."""
        with pytest.raises(DuplicateNameError):
            repo.add_study(Study(name="hdss"))

    def test_missing_study_returns_none(self, repo):
        """Lookups of unknown studies return None."""
        assert repo.get_study(99) is None
        assert repo.get_study_by_name("nope") is None

    def test_domain_uri_unique(self, repo):
        """(name, uri) is unique when a URI is set."""
        repo.add_domain(Domain(name="core", uri="https://a"))
        repo.add_domain(Domain(name="core", uri="https://b"))
        with pytest.raises(DuplicateNameError):
            repo.add_domain(Domain(name="core", uri="https://a"))

    def test_one_null_uri_per_name(self, repo):
        """At most one NULL-URI domain exists per name."""
        repo.add_domain(Domain(name="core"))
        with pytest.raises(DuplicateNameError):
            repo.add_domain(Domain(name="core"))

    def test_get_domain_by_name_matches_null(self, repo):
        """A None uri finds the NULL-URI row only."""
        repo.add_domain(Domain(name="core", uri="https://a"))
        plain = repo.add_domain(Domain(name="core"))
        assert repo.get_domain_by_name("core").domain_id == plain.domain_id
        assert repo.get_domain_by_name("core", "https://a").uri == "https://a"

    def test_link_study_domain_idempotent(self, repo, study, domain):
        """Linking twice keeps a single link."""
        repo.link_study_domain(study.study_id, domain.domain_id)
        assert [d.domain_id for d in repo.list_study_domains(study.study_id)] == [
            domain.domain_id
        ]

    def test_link_unknown_domain(self, repo, study):
        """Linking to a missing domain raises."""
        with pytest.raises(EntityNotFoundError):
            repo.link_study_domain(study.study_id, 42)


class TestVocabularies:
    """Verify the vocabulary upsert and its lookup shapes."""

    ITEMS = [VocabularyItem(1, "Natural"), VocabularyItem(2, "Unnatural")]

    def test_ensure_is_idempotent(self, repo, domain):
        """Two identical calls yield the same id and item set."""
        first = repo.ensure_vocabulary(domain.domain_id, "cause", "Causes", self.ITEMS)
        second = repo.ensure_vocabulary(domain.domain_id, "cause", "Causes", self.ITEMS)
        assert first == second
        assert repo.get_vocabulary(first).items == self.ITEMS

    def test_ensure_replaces_items(self, repo, domain):
        """A second call replaces the description and all items."""
        vocab_id = repo.ensure_vocabulary(domain.domain_id, "cause", "old", self.ITEMS)
        repo.ensure_vocabulary(
            domain.domain_id, "cause", "new", [VocabularyItem(9, "Other")]
        )
        vocab = repo.get_vocabulary(vocab_id)
        assert vocab.description == "new"
        assert vocab.items == [VocabularyItem(9, "Other")]

    def test_items_deduplicated(self, repo, domain):
        """Repeated (value, code) pairs are stored once."""
        vocab_id = repo.ensure_vocabulary(
            domain.domain_id, "cause", "", self.ITEMS + [VocabularyItem(1, "Natural")]
        )
        assert len(repo.get_vocabulary(vocab_id).items) == 2

    def test_same_name_in_two_domains(self, repo, domain):
        """Domain-scoped names resolve separately; unscoped is ambiguous."""
        other = repo.add_domain(Domain(name="other"))
        a = repo.ensure_vocabulary(domain.domain_id, "status", "", self.ITEMS)
        b = repo.ensure_vocabulary(other.domain_id, "status", "", [VocabularyItem(0, "x")])
        assert a != b
        assert repo.get_vocabulary_by_name("status", domain.domain_id).vocabulary_id == a
        assert repo.get_vocabulary_by_name("status", other.domain_id).vocabulary_id == b
        with pytest.raises(AmbiguousNameError) as exc_info:
            repo.get_vocabulary_by_name("status")
        assert exc_info.value.count == 2

    def test_unique_name_lookup(self, repo, domain):
        """An unscoped lookup of a unique name succeeds."""
        vocab_id = repo.ensure_vocabulary(domain.domain_id, "sex", "", self.ITEMS)
        assert repo.get_vocabulary_by_name("sex").vocabulary_id == vocab_id
        assert repo.get_vocabulary_by_name("missing") is None


class TestVariables:
    """Verify variable upserts keyed on (domain, name)."""

    def test_upsert_keeps_id(self, repo, domain):
        """Re-registering a name updates the existing variable."""
        first = repo.upsert_variable(
            Variable(domain_id=domain.domain_id, name="age", value_type=ValueType.STRING)
        )
        second = repo.upsert_variable(
            Variable(domain_id=domain.domain_id, name="age", value_type=ValueType.FLOAT)
        )
        assert first.variable_id == second.variable_id
        assert repo.get_variable(first.variable_id).value_type == ValueType.FLOAT

    def test_list_variables(self, repo, domain):
        """list_variables returns the domain's variables by name."""
        for name in ("b", "a"):
            repo.upsert_variable(Variable(domain_id=domain.domain_id, name=name))
        assert [v.name for v in repo.list_variables(domain.domain_id)] == ["a", "b"]


class TestAssetVersionLedger:
    """Verify asset creation and version promotion."""

    def test_create_asset_with_first_version(self, repo, asset):
        """A new asset has exactly one version, 1.0.0, flagged latest."""
        versions = repo.list_versions(asset.asset_id)
        assert [v.version for v in versions] == [VersionNumber(1, 0, 0)]
        assert versions[0].is_latest

    def test_duplicate_asset_name(self, repo, study, asset):
        """Asset names are unique within a study."""
        with pytest.raises(DuplicateNameError):
            repo.create_asset(study.study_id, "deaths", AssetKind.FILE)

    def test_same_asset_name_other_study(self, repo, asset):
        """Another study may reuse the name."""
        other = repo.add_study(Study(name="other"))
        created = repo.create_asset(other.study_id, "deaths", AssetKind.DATASET)
        assert created.asset_id != asset.asset_id

    def test_create_asset_unknown_study(self, repo):
        """Creating an asset for a missing study raises."""
        with pytest.raises(EntityNotFoundError):
            repo.create_asset(99, "x", AssetKind.DATASET)

    def test_new_version_bumps_patch(self, repo, asset):
        """Without an explicit number the patch is incremented."""
        v = repo.new_version(asset.asset_id, "fix")
        assert v.version == VersionNumber(1, 0, 1)
        assert v.note == "fix"
        assert repo.get_latest_version(asset.asset_id).version_id == v.version_id
        assert _latest_count(repo, asset.asset_id) == 1

    def test_explicit_version(self, repo, asset):
        """An explicit greater version is accepted."""
        v = repo.new_version(asset.asset_id, "", VersionNumber(2, 0, 0))
        assert v.version == VersionNumber(2, 0, 0)
        assert repo.new_version(asset.asset_id).version == VersionNumber(2, 0, 1)

    def test_existing_version_rejected(self, repo, asset):
        """Writing an existing version number is a uniqueness error."""
        with pytest.raises(DuplicateNameError):
            repo.new_version(asset.asset_id, "", VersionNumber(1, 0, 0))

    def test_lower_version_rejected(self, repo, asset):
        """Explicit versions must be greater than the highest one."""
        repo.new_version(asset.asset_id, "", VersionNumber(2, 0, 0))
        with pytest.raises(InvariantViolationError):
            repo.new_version(asset.asset_id, "", VersionNumber(1, 5, 0))

    def test_list_versions_ordered(self, repo, asset):
        """Versions list by (major, minor, patch), not creation order."""
        repo.new_version(asset.asset_id, "", VersionNumber(1, 10, 0))
        repo.new_version(asset.asset_id, "", VersionNumber(10, 0, 0))
        assert [str(v.version) for v in repo.list_versions(asset.asset_id)] == [
            "1.0.0", "1.10.0", "10.0.0",
        ]

    def test_new_version_unknown_asset(self, repo):
        """new_version raises for a missing asset."""
        with pytest.raises(EntityNotFoundError):
            repo.new_version(99)

    def test_annotate_version(self, repo, asset):
        """note and doi are mutable."""
        v = repo.get_latest_version(asset.asset_id)
        updated = repo.annotate_version(v.version_id, doi="10.1234/x")
        assert updated.doi == "10.1234/x"
        assert updated.note == v.note


class TestLedgerStoreInvariants:
    """The store itself rejects writes that break the ledger."""

    def test_version_numbers_write_once(self, repo, asset):
        """Updating major/minor/patch in place fails in the store."""
        v = repo.get_latest_version(asset.asset_id)
        with pytest.raises(sqlite3.IntegrityError, match="write-once"):
            repo.conn.execute(
                "UPDATE asset_versions SET patch = 7 WHERE version_id = ?",
                (v.version_id,),
            )

    def test_second_latest_rejected(self, repo, asset):
        """The partial unique index allows one latest row per asset."""
        old = repo.get_latest_version(asset.asset_id)
        repo.new_version(asset.asset_id)
        with pytest.raises(sqlite3.IntegrityError):
            repo.conn.execute(
                "UPDATE asset_versions SET is_latest = 1 WHERE version_id = ?",
                (old.version_id,),
            )

    def test_transformations_immutable(self, repo):
        """Recorded transformations cannot be updated."""
        t = repo.record_transformation(TransformationType.INGEST, "load")
        with pytest.raises(sqlite3.IntegrityError, match="immutable"):
            repo.conn.execute(
                "UPDATE transformations SET description = 'x' "
                "WHERE transformation_id = ?",
                (t.transformation_id,),
            )

    def test_specialization_must_match_kind(self, repo, study):
        """A DataFile row on a dataset asset is rejected."""
        asset = repo.create_asset(study.study_id, "deaths", AssetKind.DATASET)
        v = repo.get_latest_version(asset.asset_id)
        with pytest.raises(InvariantViolationError):
            repo.add_datafile(
                DataFile(datafile_id=v.version_id, storage_uri="file:///x", digest="d")
            )

    def test_concurrent_promotion(self, tmp_path):
        """Writers on separate connections never leave two latest rows."""
        db_path = str(tmp_path / "catalog.db")
        setup = CatalogRepoSQLite(db_path)
        study = setup.add_study(Study(name="hdss"))
        asset = setup.create_asset(study.study_id, "deaths", AssetKind.DATASET)
        setup.close()

        errors = []

        def promote():
            worker = CatalogRepoSQLite(db_path, timeout=30.0)
            try:
                for _ in range(10):
                    worker.new_version(asset.asset_id)
            except Exception as exc:  # surfaced through ``errors``
                errors.append(exc)
            finally:
                worker.close()

        threads = [threading.Thread(target=promote) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        check = CatalogRepoSQLite(db_path)
        try:
            assert errors == []
            versions = check.list_versions(asset.asset_id)
            assert len(versions) == 41
            assert len({v.version for v in versions}) == 41
            assert _latest_count(check, asset.asset_id) == 1
            assert check.get_latest_version(asset.asset_id).version == VersionNumber(1, 0, 40)
        finally:
            check.close()


class TestDiscardAndDelete:
    """Verify compensation helpers used by failed runs."""

    def test_discard_latest_repromotes(self, repo, asset):
        """Discarding the latest promotes the highest remaining version."""
        first = repo.get_latest_version(asset.asset_id)
        second = repo.new_version(asset.asset_id)
        repo.discard_version(second.version_id)
        assert repo.get_version(second.version_id) is None
        assert repo.get_latest_version(asset.asset_id).version_id == first.version_id

    def test_discard_referenced_version(self, repo, asset):
        """Versions with provenance cannot be discarded."""
        v = repo.get_latest_version(asset.asset_id)
        t = repo.record_transformation(TransformationType.INGEST, "load")
        repo.link_output(t.transformation_id, v.version_id)
        with pytest.raises(DeleteConstraintError):
            repo.discard_version(v.version_id)

    def test_delete_asset_with_versions(self, repo, asset):
        """An asset with versions cannot be deleted."""
        with pytest.raises(DeleteConstraintError):
            repo.delete_asset(asset.asset_id)

    def test_delete_empty_asset(self, repo, asset):
        """Once its versions are gone the asset can be deleted."""
        v = repo.get_latest_version(asset.asset_id)
        repo.discard_version(v.version_id)
        repo.delete_asset(asset.asset_id)
        assert repo.get_asset(asset.asset_id) is None


class TestSpecializations:
    """Verify DataSet/DataFile rows and dataset schemas."""

    def test_dataset_round_trip(self, repo, asset):
        """add_dataset then get_dataset returns the lake table."""
        v = repo.get_latest_version(asset.asset_id)
        repo.add_dataset(DataSet(dataset_id=v.version_id, lake_schema="hdss", lake_table="t"))
        dataset = repo.get_dataset(v.version_id)
        assert str(dataset.table) == "hdss.t"
        assert dataset._repo is repo

    def test_datafile_round_trip(self, repo, study, storage_gateway):
        """DataFile flags come back as booleans with the gateway wired."""
        asset = repo.create_asset(study.study_id, "export", AssetKind.FILE)
        v = repo.get_latest_version(asset.asset_id)
        repo.add_datafile(
            DataFile(
                datafile_id=v.version_id,
                storage_uri="file:///x.csv",
                digest="abc",
                compressed=True,
            )
        )
        datafile = repo.get_datafile(v.version_id)
        assert datafile.compressed is True
        assert datafile.encrypted is False
        assert datafile._storage_gateway is storage_gateway

    def test_dataset_variables_in_order(self, repo, asset, domain):
        """Dataset variables keep their column order and key role."""
        v = repo.get_latest_version(asset.asset_id)
        repo.add_dataset(DataSet(dataset_id=v.version_id, lake_schema="hdss", lake_table="t"))
        b = repo.upsert_variable(Variable(domain_id=domain.domain_id, name="b"))
        a = repo.upsert_variable(Variable(domain_id=domain.domain_id, name="a"))
        a.keyrole = KeyRole.RECORD
        repo.set_dataset_variables(v.version_id, [b, a])
        listed = repo.list_dataset_variables(v.version_id)
        assert [x.name for x in listed] == ["b", "a"]
        assert listed[1].keyrole == KeyRole.RECORD

    def test_dataset_variables_need_linked_domain(self, repo, asset):
        """Variables from a domain the study does not use are rejected."""
        v = repo.get_latest_version(asset.asset_id)
        repo.add_dataset(DataSet(dataset_id=v.version_id, lake_schema="hdss", lake_table="t"))
        stray = repo.add_domain(Domain(name="stray"))
        var = repo.upsert_variable(Variable(domain_id=stray.domain_id, name="x"))
        with pytest.raises(InvariantViolationError, match="x"):
            repo.set_dataset_variables(v.version_id, [var])


class TestProvenance:
    """Verify transformations, links and lineage traversal."""

    def test_record_with_source_ref(self, repo):
        """The source reference round-trips; missing fields stay None."""
        t = repo.record_transformation(
            TransformationType.TRANSFORM,
            "pivot",
            SourceRef(repo_url="https://example.org/r", commit="abc1234"),
        )
        loaded = repo.get_transformation(t.transformation_id)
        assert loaded.source_ref.repo_url == "https://example.org/r"
        assert loaded.source_ref.script_path is None
        assert loaded.type == TransformationType.TRANSFORM

    def test_link_missing_version(self, repo):
        """Links require an existing version."""
        t = repo.record_transformation(TransformationType.INGEST, "load")
        with pytest.raises(EntityNotFoundError):
            repo.link_output(t.transformation_id, 999)

    def test_list_by_type(self, repo):
        """list_transformations filters by type."""
        repo.record_transformation(TransformationType.INGEST, "a")
        repo.record_transformation(TransformationType.EXPORT, "b")
        assert [t.description for t in repo.list_transformations(TransformationType.EXPORT)] == ["b"]
        assert len(repo.list_transformations()) == 2

    def test_lineage_chain(self, repo, study):
        """Upstream and downstream walks follow transformation links."""
        raw = repo.create_asset(study.study_id, "raw", AssetKind.FILE)
        wide = repo.create_asset(study.study_id, "wide", AssetKind.DATASET)
        raw_v = repo.get_latest_version(raw.asset_id)
        wide_v = repo.get_latest_version(wide.asset_id)
        t = repo.record_transformation(TransformationType.TRANSFORM, "pivot")
        repo.link_input(t.transformation_id, raw_v.version_id)
        repo.link_output(t.transformation_id, wide_v.version_id)

        assert [v.version_id for v in repo.query_lineage(wide_v.version_id)] == [raw_v.version_id]
        assert [v.version_id for v in repo.query_descendants(raw_v.version_id)] == [wide_v.version_id]
        assert [x.transformation_id for x in repo.list_producers(wide_v.version_id)] == [t.transformation_id]
        assert [x.transformation_id for x in repo.list_consumers(raw_v.version_id)] == [t.transformation_id]


class TestTransactions:
    """Verify transaction scoping."""

    def test_rollback_on_error(self, repo, study):
        """An exception inside the scope undoes its writes."""
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.create_asset(study.study_id, "tmp", AssetKind.DATASET)
                raise RuntimeError("boom")
        assert repo.get_asset_by_name(study.study_id, "tmp") is None

    def test_nested_rollback_keeps_outer(self, repo, study):
        """A failed nested scope rolls back only its own writes."""
        with repo.transaction():
            repo.create_asset(study.study_id, "kept", AssetKind.DATASET)
            with pytest.raises(DuplicateNameError):
                with repo.transaction():
                    repo.create_asset(study.study_id, "kept", AssetKind.DATASET)
        assert repo.get_asset_by_name(study.study_id, "kept") is not None

    def test_close_is_idempotent(self, repo):
        """close can be called twice."""
        repo.conn
        repo.close()
        repo.close()
        assert repo._conn is None
