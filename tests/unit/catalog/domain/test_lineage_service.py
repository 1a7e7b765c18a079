"""Tests for LineageService domain service."""

import pytest

from tre.catalog.domain.enums import AssetKind, TransformationType
from tre.catalog.domain.exceptions import EntityNotFoundError
from tre.catalog.domain.services.lineage_service import LineageService


@pytest.fixture
def chain(repo, study):
    """raw file -> clean dataset -> summary dataset, linked by transformations."""
    raw = repo.create_asset(study.study_id, "raw", AssetKind.FILE)
    clean = repo.create_asset(study.study_id, "clean", AssetKind.DATASET)
    summary = repo.create_asset(study.study_id, "summary", AssetKind.DATASET)
    v_raw = repo.get_latest_version(raw.asset_id)
    v_clean = repo.get_latest_version(clean.asset_id)
    v_summary = repo.get_latest_version(summary.asset_id)

    t1 = repo.record_transformation(TransformationType.TRANSFORM, "clean")
    repo.link_input(t1.transformation_id, v_raw.version_id)
    repo.link_output(t1.transformation_id, v_clean.version_id)
    t2 = repo.record_transformation(TransformationType.TRANSFORM, "summarize")
    repo.link_input(t2.transformation_id, v_clean.version_id)
    repo.link_output(t2.transformation_id, v_summary.version_id)
    return v_raw, v_clean, v_summary


@pytest.fixture
def service(repo):
    """LineageService backed by the in-memory repo."""
    return LineageService(repo)


class TestGetLineage:
    """Upstream traversal."""

    def test_full_chain(self, service, chain):
        """The summary derives from clean, then raw."""
        v_raw, v_clean, v_summary = chain
        ids = [v.version_id for v in service.get_lineage(v_summary.version_id)]
        assert ids == [v_clean.version_id, v_raw.version_id]

    def test_max_depth(self, service, chain):
        """max_depth limits the hops."""
        _, v_clean, v_summary = chain
        ids = [v.version_id for v in service.get_lineage(v_summary.version_id, 1)]
        assert ids == [v_clean.version_id]

    def test_root_has_no_lineage(self, service, chain):
        """A source version has nothing upstream."""
        assert service.get_lineage(chain[0].version_id) == []

    def test_missing_version(self, service):
        """Unknown versions raise EntityNotFoundError."""
        with pytest.raises(EntityNotFoundError):
            service.get_lineage(999)


class TestGetDescendants:
    """Downstream traversal."""

    def test_full_chain(self, service, chain):
        """raw feeds clean, then summary."""
        v_raw, v_clean, v_summary = chain
        ids = [v.version_id for v in service.get_descendants(v_raw.version_id)]
        assert ids == [v_clean.version_id, v_summary.version_id]


class TestProvenance:
    """Producers and consumers of a version."""

    def test_middle_version(self, service, chain):
        """clean is produced by one transformation and consumed by another."""
        result = service.provenance(chain[1].version_id)
        assert [t.description for t in result["produced_by"]] == ["clean"]
        assert [t.description for t in result["consumed_by"]] == ["summarize"]
