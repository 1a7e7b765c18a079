from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Union

from tre.catalog.domain.enums import AssetKind
from tre.catalog.domain.exceptions import EntityNotFoundError
from tre.catalog.domain.value_objects import VersionNumber

if TYPE_CHECKING:
    from tre.catalog.domain.entities.assetversion import AssetVersion
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo


@dataclass
class Asset:
    """A named, versioned digital object owned by a study.

    An Asset never carries data itself; each revision is an
    AssetVersion, exactly one of which is flagged latest.

    Attributes:
        asset_id: Store-generated id (None until persisted).
        study_id: Owning study.
        name: Name, unique within the study.
        kind: DATASET (tabular, lives in the lake) or FILE (a blob).
        description: Free text.
        created_at: When the asset was created.
        _repo: Injected CatalogRepo for persistence operations.
    """

    asset_id: Optional[int] = None
    study_id: Optional[int] = None
    name: str = ""
    kind: AssetKind = AssetKind.DATASET
    description: str = ""
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _repo: Optional["CatalogRepo"] = field(
        default=None, repr=False, compare=False
    )

    def new_version(
        self,
        note: str = "",
        version: Union[VersionNumber, str, None] = None,
    ) -> "AssetVersion":
        """Create a new latest version of this asset.

        Args:
            note: Free-text change note.
            version: Explicit version number. When omitted, the patch
                     component of the current latest is incremented.

        Returns:
            The new AssetVersion, flagged latest.

        Raises:
            DuplicateNameError: If ``version`` already exists.
            InvariantViolationError: If ``version`` is not greater than
                the current latest.
        """
        if isinstance(version, str):
            version = VersionNumber.parse(version)
        return self._repo.new_version(self.asset_id, note, version)

    def get_latest(self) -> "AssetVersion":
        """Return the version flagged latest.

        Raises:
            EntityNotFoundError: If the asset has no versions.
        """
        latest = self._repo.get_latest_version(self.asset_id)
        if latest is None:
            raise EntityNotFoundError("AssetVersion", f"{self.name}@latest")
        return latest

    def list_versions(self) -> list["AssetVersion"]:
        """All versions ordered by (major, minor, patch)."""
        return self._repo.list_versions(self.asset_id)

    def getversion(self, version: Union[VersionNumber, str]) -> "AssetVersion":
        """Retrieve a specific version.

        Raises:
            EntityNotFoundError: If no such version exists.
        """
        if isinstance(version, str):
            version = VersionNumber.parse(version)
        for candidate in self.list_versions():
            if candidate.version == version:
                return candidate
        raise EntityNotFoundError("AssetVersion", f"{self.name}@{version}")
