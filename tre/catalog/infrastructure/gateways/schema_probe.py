from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from tre.catalog.domain.enums import SourceFlavour, ValueType
from tre.catalog.domain.value_objects import VocabularyItem


@dataclass(frozen=True)
class ColumnInfo:
    """One result column reported by a zero-row probe.

    Attributes:
        name: Output column name.
        native_type: Engine type name (e.g., "INTEGER", "varchar(20)").
        source_schema: Schema of the base table, when resolvable.
        source_table: Base table the column is drawn from, when resolvable.
        source_column: Column name in the base table.
    """

    name: str
    native_type: str = ""
    source_schema: Optional[str] = None
    source_table: Optional[str] = None
    source_column: Optional[str] = None


@dataclass(frozen=True)
class TableKey:
    """A referenced table and the key column the reference points at."""

    schema: Optional[str]
    table: str
    column: str


@runtime_checkable
class SchemaProbe(Protocol):
    """Flavour-specific metadata capabilities of an SQL source.

    ``describe`` is the only capability whose failure is fatal. Comment,
    enum, constraint and reference lookups are best-effort and return
    None when the source has no answer.
    """

    flavour: SourceFlavour

    def describe(self, query: str) -> list[ColumnInfo]:
        """Column names and native types of ``query`` without fetching rows."""
        ...

    def resolve_sources(
        self, query: str, columns: list[ColumnInfo]
    ) -> list[ColumnInfo]:
        """Attach base-table origins to columns where unambiguous."""
        ...

    def map_type(self, native_type: str) -> ValueType:
        ...

    def column_comment(self, column: ColumnInfo) -> Optional[str]:
        ...

    def native_enum(self, column: ColumnInfo) -> Optional[list[VocabularyItem]]:
        """Values of an enumerated type backing the column."""
        ...

    def check_values(self, column: ColumnInfo) -> Optional[list[VocabularyItem]]:
        """Values allowed by an IN-list check constraint on the column."""
        ...

    def referenced_key(self, column: ColumnInfo) -> Optional[TableKey]:
        """Table and key column the column references."""
        ...

    def code_table_items(
        self, key: TableKey, max_rows: int
    ) -> Optional[list[VocabularyItem]]:
        """Rows of a small lookup table as vocabulary items."""
        ...

    def stream(self, query: str, batch_size: int) -> tuple[list[str], Any]:
        """Execute ``query``; return column names and a batch iterator."""
        ...
