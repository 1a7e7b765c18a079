from collections.abc import Iterable, Sequence
from typing import Any, Optional, Protocol, runtime_checkable

from tre.catalog.domain.value_objects import TableRef


@runtime_checkable
class LakeGateway(Protocol):
    """Abstract gateway for the columnar lake.

    The lake is a separate, non-transactional resource from the metadata
    store: callers clean up tables explicitly when a run fails.
    """

    def begin(self) -> None:
        """Open a lake transaction."""
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def create_table(
        self,
        table: TableRef,
        columns: Sequence[tuple[str, str]],
        replace: bool = False,
    ) -> None:
        """Create ``table`` with (name, lake type) columns, in order."""
        ...

    def append_rows(self, table: TableRef, rows: Iterable[Sequence[Any]]) -> int:
        """Append rows (in column order) and return how many were written."""
        ...

    def drop_table(self, table: TableRef) -> None:
        ...

    def table_exists(self, table: TableRef) -> bool:
        ...

    def fetch_rows(
        self, table: TableRef, order_by: Optional[str] = None
    ) -> list[tuple]:
        ...

    def column_names(self, table: TableRef) -> list[str]:
        ...

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Run arbitrary SQL in the lake (pivots, exports)."""
        ...
