"""Tests for catalog entities and their repo delegation."""

from unittest.mock import MagicMock

import pytest

from tre.catalog.domain.entities.asset import Asset
from tre.catalog.domain.entities.assetversion import AssetVersion
from tre.catalog.domain.entities.datafile import DataFile
from tre.catalog.domain.entities.dataset import DataSet
from tre.catalog.domain.entities.study import Study
from tre.catalog.domain.entities.transformation import Transformation
from tre.catalog.domain.entities.variable import Vocabulary
from tre.catalog.domain.enums import AssetKind
from tre.catalog.domain.exceptions import (
    EntityNotFoundError,
    InvariantViolationError,
)
from tre.catalog.domain.value_objects import (
    ContentDigest,
    VersionNumber,
    VocabularyItem,
)


class TestAssetVersion:
    """Verify write-once version numbers."""

    def test_version_property(self, fixed_time):
        """version combines the three components."""
        v = AssetVersion(version_id=1, major=2, minor=1, patch=0, created_at=fixed_time)
        assert v.version == VersionNumber(2, 1, 0)
        assert str(v) == "v2.1.0"

    def test_changing_number_raises(self):
        """Assigning a different patch number is rejected."""
        v = AssetVersion(version_id=1)
        with pytest.raises(InvariantViolationError, match="write-once"):
            v.patch = 5

    def test_same_value_allowed(self):
        """Re-assigning the same value is a no-op."""
        v = AssetVersion(version_id=1, major=1)
        v.major = 1
        assert v.major == 1

    def test_mutable_fields(self):
        """Note and latest flag may change."""
        v = AssetVersion(version_id=1)
        v.note = "fixed"
        v.is_latest = True
        assert v.note == "fixed"


class TestStudyDelegation:
    """Study methods delegate to the injected repo."""

    def test_getasset_missing_raises(self, mock_repo):
        """getasset raises when the repo returns None."""
        mock_repo.get_asset_by_name.return_value = None
        study = Study(study_id=1, name="hdss", _repo=mock_repo)
        with pytest.raises(EntityNotFoundError):
            study.getasset("nope")

    def test_create_asset(self, mock_repo):
        """create_asset passes the study id."""
        study = Study(study_id=7, name="hdss", _repo=mock_repo)
        study.create_asset("deaths", AssetKind.DATASET, "d")
        mock_repo.create_asset.assert_called_once_with(
            7, "deaths", AssetKind.DATASET, "d"
        )

    def test_add_domain_links(self, mock_repo):
        """add_domain links study and domain ids."""
        study = Study(study_id=7, _repo=mock_repo)
        domain = MagicMock(domain_id=3)
        study.add_domain(domain)
        mock_repo.link_study_domain.assert_called_once_with(7, 3)


class TestAsset:
    """Verify Asset version lookups against a real store."""

    def test_create_asset_starts_at_1_0_0(self, study):
        """A new asset has latest version 1.0.0."""
        asset = study.create_asset("deaths", AssetKind.DATASET)
        latest = asset.get_latest()
        assert latest.version == VersionNumber(1, 0, 0)
        assert latest.is_latest

    def test_new_version_parses_string(self, study):
        """new_version accepts a version string."""
        asset = study.create_asset("deaths", AssetKind.DATASET)
        v = asset.new_version("major", "2.0.0")
        assert v.version == VersionNumber(2, 0, 0)
        assert asset.getversion("2.0.0").version_id == v.version_id

    def test_getversion_missing(self, study):
        """getversion raises for an unknown number."""
        asset = study.create_asset("deaths", AssetKind.DATASET)
        with pytest.raises(EntityNotFoundError):
            asset.getversion("9.9.9")

    def test_get_latest_without_versions(self, mock_repo):
        """get_latest raises when nothing is latest."""
        mock_repo.get_latest_version.return_value = None
        asset = Asset(asset_id=1, name="x", _repo=mock_repo)
        with pytest.raises(EntityNotFoundError):
            asset.get_latest()


class TestVocabulary:
    """Verify code lookup on vocabularies."""

    def test_code_for(self):
        """code_for maps a value to its code."""
        vocab = Vocabulary(name="sex", items=[VocabularyItem(1, "M"), VocabularyItem(2, "F")])
        assert vocab.code_for(2) == "F"
        assert vocab.code_for(3) is None


class TestDataFile:
    """DataFile data operations go through the storage gateway."""

    def test_verify_delegates(self, mock_storage_gateway):
        """verify passes the URI and digest to the gateway."""
        df = DataFile(
            datafile_id=1,
            storage_uri="file:///store/x.csv",
            digest="abc",
            _storage_gateway=mock_storage_gateway,
        )
        assert df.verify() is True
        mock_storage_gateway.verify.assert_called_once_with(
            "file:///store/x.csv", ContentDigest("abc", "sha256")
        )

    def test_getdata_delegates(self, mock_storage_gateway):
        """getdata pulls the stored bytes."""
        df = DataFile(
            datafile_id=1,
            storage_uri="file:///store/x.csv",
            _storage_gateway=mock_storage_gateway,
        )
        assert df.getdata("/tmp/out.csv") == "/tmp/pulled/x.csv"


class TestDataSet:
    """DataSet exposes its lake table and variables."""

    def test_table(self, mock_repo):
        """table is the schema-qualified lake table."""
        ds = DataSet(dataset_id=4, lake_schema="hdss", lake_table="deaths_v1_0_0", _repo=mock_repo)
        assert str(ds.table) == "hdss.deaths_v1_0_0"

    def test_variables_delegate(self, mock_repo):
        """variables lists the dataset variables."""
        ds = DataSet(dataset_id=4, _repo=mock_repo)
        ds.variables()
        mock_repo.list_dataset_variables.assert_called_once_with(4)


class TestTransformation:
    """Transformation links go through the repo."""

    def test_add_input_and_output(self, mock_repo):
        """add_input/add_output link version ids."""
        t = Transformation(transformation_id=9, _repo=mock_repo)
        t.add_input(AssetVersion(version_id=1))
        t.add_output(AssetVersion(version_id=2))
        mock_repo.link_input.assert_called_once_with(9, 1)
        mock_repo.link_output.assert_called_once_with(9, 2)
