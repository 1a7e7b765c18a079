from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from tre.catalog.domain.enums import AssetKind
from tre.catalog.domain.exceptions import EntityNotFoundError

if TYPE_CHECKING:
    from tre.catalog.domain.entities.asset import Asset
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo


@dataclass
class Domain:
    """Namespace for variable, vocabulary and entity names.

    Attributes:
        domain_id: Store-generated id (None until persisted).
        name: Domain name.
        uri: Optional URI that disambiguates domains sharing a name.
        description: Free text.
    """

    domain_id: Optional[int] = None
    name: str = ""
    uri: Optional[str] = None
    description: str = ""


@dataclass
class Study:
    """A research study that owns assets.

    Studies act as the namespace for asset names and as the schema name
    for their tables in the lake. A study draws its variables from one
    or more linked domains.

    Attributes:
        study_id: Store-generated id (None until persisted).
        name: Unique study name.
        description: Free text.
        study_type: Study design label (e.g., "HDSS", "SURVEY").
        created_at: When the study was registered.
        _repo: Injected CatalogRepo for persistence operations.
    """

    study_id: Optional[int] = None
    name: str = ""
    description: str = ""
    study_type: str = ""
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _repo: Optional["CatalogRepo"] = field(
        default=None, repr=False, compare=False
    )

    def add_domain(self, domain: Domain) -> None:
        """Link a persisted domain to this study."""
        self._repo.link_study_domain(self.study_id, domain.domain_id)

    def domains(self) -> list[Domain]:
        return self._repo.list_study_domains(self.study_id)

    def create_asset(
        self, name: str, kind: AssetKind, description: str = ""
    ) -> "Asset":
        """Create an asset owned by this study with version 1.0.0.

        Raises:
            DuplicateNameError: If the study already has an asset ``name``.
        """
        return self._repo.create_asset(self.study_id, name, kind, description)

    def getasset(self, name: str) -> "Asset":
        """Retrieve one of this study's assets by name.

        Raises:
            EntityNotFoundError: If the study has no such asset.
        """
        asset = self._repo.get_asset_by_name(self.study_id, name)
        if asset is None:
            raise EntityNotFoundError("Asset", name)
        return asset

    def listassets(self) -> list["Asset"]:
        return self._repo.list_assets(self.study_id)
