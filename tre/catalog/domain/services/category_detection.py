"""Domain service deciding whether a source column is categorical.

Detectors are tried in priority order; the first one that produces a
vocabulary wins. Each detector only asks the SchemaProbe for metadata,
so the chain works identically across source flavours.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from funcy import some

from tre.catalog.domain.enums import ValueType
from tre.catalog.domain.value_objects import VocabularyItem

if TYPE_CHECKING:
    from tre.catalog.infrastructure.gateways.schema_probe import (
        ColumnInfo,
        SchemaProbe,
    )

DEFAULT_CODE_TABLE_MAX_ROWS = 250


@dataclass(frozen=True)
class DetectedCategory:
    """An unsaved vocabulary found for a column.

    Attributes:
        vocabulary_name: Name the vocabulary is stored under.
        items: Items in source order.
        description: Where the items came from.
    """

    vocabulary_name: str
    items: tuple[VocabularyItem, ...]
    description: str = ""


class CategoryDetector(ABC):
    """One rule for recognizing a categorical column."""

    @abstractmethod
    def detect(
        self, probe: "SchemaProbe", column: "ColumnInfo"
    ) -> Optional[DetectedCategory]:
        """Return the column's vocabulary, or None if the rule does not apply."""


class NativeEnumDetector(CategoryDetector):
    """Enumerated types first, then IN-list check constraints."""

    def detect(self, probe, column):
        items = probe.native_enum(column)
        if items:
            return DetectedCategory(
                f"{column.name}_enum",
                tuple(items),
                f"Values of enumerated type {column.native_type}",
            )
        items = probe.check_values(column)
        if items:
            return DetectedCategory(
                f"{column.name}_allowed",
                tuple(items),
                f"Values allowed by a check constraint on {column.name}",
            )
        return None


class CodeTableDetector(CategoryDetector):
    """Integer columns referencing a small lookup table.

    Attributes:
        max_rows: Tables with this many rows or more are not code tables.
    """

    def __init__(self, max_rows: int = DEFAULT_CODE_TABLE_MAX_ROWS) -> None:
        self.max_rows = max_rows

    def detect(self, probe, column):
        if probe.map_type(column.native_type) != ValueType.INTEGER:
            return None
        key = probe.referenced_key(column)
        if key is None:
            return None
        items = probe.code_table_items(key, self.max_rows)
        if not items:
            return None
        return DetectedCategory(
            f"{column.name}_codes",
            tuple(items),
            f"Codes from {key.table}.{key.column}",
        )


class NoCategoryDetector(CategoryDetector):
    """Terminal rule: the column is not categorical."""

    def detect(self, probe, column):
        return None


class CategoryDetectorChain:
    """Ordered, pluggable detector chain.

    Attributes:
        detectors: Rules in priority order.
    """

    def __init__(self, detectors: Optional[list[CategoryDetector]] = None) -> None:
        self.detectors = detectors if detectors is not None else default_detectors()

    def detect(
        self, probe: "SchemaProbe", column: "ColumnInfo"
    ) -> Optional[DetectedCategory]:
        return some(detector.detect(probe, column) for detector in self.detectors)


def default_detectors(
    max_rows: int = DEFAULT_CODE_TABLE_MAX_ROWS,
) -> list[CategoryDetector]:
    return [NativeEnumDetector(), CodeTableDetector(max_rows), NoCategoryDetector()]
