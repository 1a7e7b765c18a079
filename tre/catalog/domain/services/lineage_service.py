"""Domain service for lineage and provenance queries.

Follows transformation input/output links between asset versions.
Delegates traversal to CatalogRepo.query_lineage() and
query_descendants().
"""

from typing import TYPE_CHECKING

from tre.catalog.domain.exceptions import EntityNotFoundError

if TYPE_CHECKING:
    from tre.catalog.domain.entities.assetversion import AssetVersion
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo
    from tre.catalog.domain.entities.transformation import Transformation


class LineageService:
    """Domain service for lineage and provenance queries.

    Attributes:
        _repo: Injected CatalogRepo for version and link retrieval.
    """

    def __init__(self, repo: "CatalogRepo") -> None:
        self._repo = repo

    def _require(self, version_id: int) -> "AssetVersion":
        version = self._repo.get_version(version_id)
        if version is None:
            raise EntityNotFoundError("AssetVersion", version_id)
        return version

    def get_lineage(
        self, version_id: int, max_depth: int = 100
    ) -> list["AssetVersion"]:
        """Versions a version was derived from, nearest first.

        Args:
            version_id: Starting version.
            max_depth: Maximum number of transformation hops.

        Raises:
            EntityNotFoundError: If the version does not exist.
        """
        self._require(version_id)
        return self._repo.query_lineage(version_id, max_depth)

    def get_descendants(
        self, version_id: int, max_depth: int = 100
    ) -> list["AssetVersion"]:
        """Versions derived from a version, nearest first."""
        self._require(version_id)
        return self._repo.query_descendants(version_id, max_depth)

    def provenance(self, version_id: int) -> dict[str, list["Transformation"]]:
        """Transformations that produced and consumed a version.

        Returns:
            Dict with "produced_by" and "consumed_by" lists.
        """
        self._require(version_id)
        return {
            "produced_by": self._repo.list_producers(version_id),
            "consumed_by": self._repo.list_consumers(version_id),
        }
