"""Tests for catalog enumerations."""

import pytest

from tre.catalog.domain.enums import IngestState, SourceFlavour, ValueType
from tre.catalog.domain.exceptions import UnsupportedFlavourError


class TestSourceFlavour:
    """Verify flavour tag parsing."""

    @pytest.mark.parametrize(
        "tag, expected",
        [
            ("sqlite", SourceFlavour.SQLITE),
            ("Postgres", SourceFlavour.POSTGRESQL),
            ("pg", SourceFlavour.POSTGRESQL),
            ("sqlserver", SourceFlavour.MSSQL),
            ("mariadb", SourceFlavour.MYSQL),
            (" DuckDB ", SourceFlavour.DUCKDB),
        ],
    )
    def test_parse_aliases(self, tag, expected):
        """Common aliases resolve to their flavour."""
        assert SourceFlavour.parse(tag) == expected

    def test_parse_passthrough(self):
        """A SourceFlavour is returned unchanged."""
        assert SourceFlavour.parse(SourceFlavour.MSSQL) is SourceFlavour.MSSQL

    def test_parse_unknown(self):
        """Unknown tags raise UnsupportedFlavourError."""
        with pytest.raises(UnsupportedFlavourError, match="oracle"):
            SourceFlavour.parse("oracle")


class TestValueType:
    """Verify ValueType helpers."""

    def test_temporal_types(self):
        """Date, time and datetime are temporal."""
        temporal = {vt for vt in ValueType if vt.is_temporal}
        assert temporal == {ValueType.DATE, ValueType.TIME, ValueType.DATETIME}

    def test_string_values(self):
        """Enum values are the lower-case names stored in the catalog."""
        assert ValueType("multiresponse") is ValueType.MULTIRESPONSE


class TestIngestState:
    """Verify run state values."""

    def test_values_are_hyphenated(self):
        """Multi-word states use hyphens."""
        assert IngestState.SCHEMA_INFERRED.value == "schema-inferred"
