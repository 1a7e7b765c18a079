from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from tre.catalog.domain.enums import TransformationStatus, TransformationType
from tre.catalog.domain.value_objects import SourceRef

if TYPE_CHECKING:
    from tre.catalog.domain.entities.assetversion import AssetVersion
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo


@dataclass(frozen=True)
class Transformation:
    """A recorded unit of provenance.

    Transformations are immutable once recorded. Input and output links
    to asset versions are appended afterwards through the ledger.

    Expected link cardinalities by type:
        INGEST: no inputs, one or more outputs.
        TRANSFORM: one or more inputs and outputs.
        ENTITY: dataset inputs; outputs are entity records, not versions.
        EXPORT, REPOSITORY: one or more inputs, no outputs.

    Attributes:
        transformation_id: Store-generated id.
        type: Transformation type.
        description: What the unit of work did.
        source_ref: Script/commit reference, possibly empty.
        status: Review status.
        created_at: When the transformation was recorded.
        _repo: Injected CatalogRepo for link operations.
    """

    transformation_id: Optional[int] = None
    type: TransformationType = TransformationType.TRANSFORM
    description: str = ""
    source_ref: SourceRef = field(default_factory=SourceRef)
    status: TransformationStatus = TransformationStatus.UNVERIFIED
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _repo: Optional["CatalogRepo"] = field(
        default=None, repr=False, compare=False
    )

    def add_input(self, version: "AssetVersion") -> None:
        self._repo.link_input(self.transformation_id, version.version_id)

    def add_output(self, version: "AssetVersion") -> None:
        self._repo.link_output(self.transformation_id, version.version_id)

    def inputs(self) -> list["AssetVersion"]:
        return self._repo.list_inputs(self.transformation_id)

    def outputs(self) -> list["AssetVersion"]:
        return self._repo.list_outputs(self.transformation_id)
