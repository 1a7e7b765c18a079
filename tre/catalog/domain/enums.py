from enum import Enum


class AssetKind(str, Enum):
    """Kind of digital object an Asset represents."""

    DATASET = "dataset"
    FILE = "file"


class ValueType(str, Enum):
    """Canonical value types every source column is mapped into."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    CATEGORY = "category"
    MULTIRESPONSE = "multiresponse"

    @property
    def is_temporal(self) -> bool:
        return self in (ValueType.DATE, ValueType.DATETIME, ValueType.TIME)


class KeyRole(str, Enum):
    """Role a variable plays in the key of a dataset."""

    NONE = "none"
    RECORD = "record"
    PRIMARY = "primary"
    FOREIGN = "foreign"


class TransformationType(str, Enum):
    """Kinds of recorded provenance."""

    INGEST = "ingest"
    TRANSFORM = "transform"
    ENTITY = "entity"
    EXPORT = "export"
    REPOSITORY = "repository"


class TransformationStatus(str, Enum):
    """Review status recorded with a transformation."""

    UNVERIFIED = "unverified"
    VERIFIED = "verified"


class SourceFlavour(str, Enum):
    """Supported SQL source engines."""

    MSSQL = "mssql"
    DUCKDB = "duckdb"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"
    MYSQL = "mysql"

    @classmethod
    def parse(cls, value: str) -> "SourceFlavour":
        """Resolve a flavour from a user-supplied tag.

        Args:
            value: Flavour name, case-insensitive. Common aliases such as
                "postgres", "pg" and "sqlserver" are accepted.

        Returns:
            The matching SourceFlavour.

        Raises:
            UnsupportedFlavourError: If the tag names no supported engine.
        """
        from tre.catalog.domain.exceptions import UnsupportedFlavourError

        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        key = _FLAVOUR_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise UnsupportedFlavourError(str(value)) from None


_FLAVOUR_ALIASES = {
    "postgres": "postgresql",
    "pg": "postgresql",
    "psql": "postgresql",
    "sqlserver": "mssql",
    "tsql": "mssql",
    "sqlite3": "sqlite",
    "mariadb": "mysql",
}


class IngestState(str, Enum):
    """States of a single ingestion or transform run."""

    START = "start"
    SCHEMA_INFERRED = "schema-inferred"
    TARGET_CREATED = "target-created"
    ROWS_STREAMED = "rows-streamed"
    PROVENANCE_RECORDED = "provenance-recorded"
    DONE = "done"
    FAILED = "failed"
