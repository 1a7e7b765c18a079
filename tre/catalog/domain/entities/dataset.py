from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from tre.catalog.domain.value_objects import TableRef

if TYPE_CHECKING:
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo
    from tre.catalog.domain.entities.variable import Variable


@dataclass
class DataSet:
    """Tabular specialization of an asset version.

    ``dataset_id`` equals the owning AssetVersion's ``version_id``. The
    rows live in the lake table named by ``lake_schema``/``lake_table``.

    Attributes:
        dataset_id: Id of the owning AssetVersion.
        lake_schema: Lake schema holding the table (the study name).
        lake_table: Lake table name.
        _repo: Injected CatalogRepo for schema lookups.
    """

    dataset_id: Optional[int] = None
    lake_schema: str = ""
    lake_table: str = ""

    _repo: Optional["CatalogRepo"] = field(
        default=None, repr=False, compare=False
    )

    @property
    def table(self) -> TableRef:
        return TableRef(self.lake_schema, self.lake_table)

    def variables(self) -> list["Variable"]:
        """Variables of this dataset in column order."""
        return self._repo.list_dataset_variables(self.dataset_id)
