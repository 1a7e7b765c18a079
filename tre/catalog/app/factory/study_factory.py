"""Factory for creating Study entities with injected dependencies.

Ensures every Study is created with a proper CatalogRepo reference so
its methods (create_asset, getasset, add_domain) are functional.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo
    from tre.catalog.domain.entities.study import Study


class StudyFactory:
    """Factory for creating Study entities with injected CatalogRepo.

    Attributes:
        _repo: CatalogRepo instance injected into every created Study.
    """

    def __init__(self, repo: "CatalogRepo") -> None:
        self._repo = repo

    def create(
        self,
        name: str,
        description: str = "",
        study_type: str = "",
    ) -> "Study":
        """Create an unsaved Study wired with the CatalogRepo.

        Args:
            name: Unique study name; also its lake schema name.
            description: Optional free text.
            study_type: Optional study design label.

        Returns:
            New Study entity; persist it with ``CatalogRepo.add_study``.
        """
        from tre.catalog.domain.entities.study import Study

        if not name or not name.strip():
            raise ValueError("Study name must not be empty")
        return Study(
            name=name.strip(),
            description=description,
            study_type=study_type,
            _repo=self._repo,
        )
