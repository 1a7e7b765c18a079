from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Optional

from tre.catalog.domain.enums import (
    AssetKind,
    TransformationStatus,
    TransformationType,
)

if TYPE_CHECKING:
    from tre.catalog.domain.entities.asset import Asset
    from tre.catalog.domain.entities.assetversion import AssetVersion
    from tre.catalog.domain.entities.datafile import DataFile
    from tre.catalog.domain.entities.dataset import DataSet
    from tre.catalog.domain.entities.study import Domain, Study
    from tre.catalog.domain.entities.transformation import Transformation
    from tre.catalog.domain.entities.variable import Variable, Vocabulary
    from tre.catalog.domain.value_objects import (
        SourceRef,
        VersionNumber,
        VocabularyItem,
    )


class CatalogRepo(ABC):
    """Abstract persistence interface for the catalog metadata store.

    Domain entities receive a CatalogRepo by injection and delegate all
    persistence to it. Lookups return None when nothing matches; writes
    raise catalog exceptions on constraint violations.
    """

    # ── Transactions ──────────────────────────────────────────

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Scope several writes into one atomic unit.

        Nested scopes join the outermost one. The outermost scope commits
        on normal exit and rolls back when an exception escapes it.
        """

    # ── Studies and domains ───────────────────────────────────

    @abstractmethod
    def add_study(self, study: "Study") -> "Study":
        """Persist a new study. Raises DuplicateNameError on collision."""

    @abstractmethod
    def get_study(self, study_id: int) -> Optional["Study"]:
        """Retrieve a study by id."""

    @abstractmethod
    def get_study_by_name(self, name: str) -> Optional["Study"]:
        """Retrieve a study by name."""

    @abstractmethod
    def list_studies(self) -> list["Study"]:
        """List all studies ordered by name."""

    @abstractmethod
    def add_domain(self, domain: "Domain") -> "Domain":
        """Persist a new domain. Raises DuplicateNameError on collision."""

    @abstractmethod
    def get_domain(self, domain_id: int) -> Optional["Domain"]:
        """Retrieve a domain by id."""

    @abstractmethod
    def get_domain_by_name(
        self, name: str, uri: Optional[str] = None
    ) -> Optional["Domain"]:
        """Retrieve a domain by (name, uri); a None uri matches NULL."""

    @abstractmethod
    def link_study_domain(self, study_id: int, domain_id: int) -> None:
        """Make a domain's variables available to a study."""

    @abstractmethod
    def list_study_domains(self, study_id: int) -> list["Domain"]:
        """List domains linked to a study."""

    # ── Vocabularies ──────────────────────────────────────────

    @abstractmethod
    def ensure_vocabulary(
        self,
        domain_id: int,
        name: str,
        description: str,
        items: list["VocabularyItem"],
    ) -> int:
        """Insert or fully replace a vocabulary; return its id."""

    @abstractmethod
    def get_vocabulary(self, vocabulary_id: int) -> Optional["Vocabulary"]:
        """Retrieve a vocabulary with its items by id."""

    @abstractmethod
    def get_vocabulary_by_name(
        self, name: str, domain_id: Optional[int] = None
    ) -> Optional["Vocabulary"]:
        """Retrieve a vocabulary by name, scoped to a domain if given.

        Raises AmbiguousNameError when unscoped and the name exists in
        several domains.
        """

    # ── Variables ─────────────────────────────────────────────

    @abstractmethod
    def upsert_variable(self, variable: "Variable") -> "Variable":
        """Insert or update a variable keyed on (domain_id, name)."""

    @abstractmethod
    def get_variable(self, variable_id: int) -> Optional["Variable"]:
        """Retrieve a variable by id."""

    @abstractmethod
    def get_variable_by_name(
        self, domain_id: int, name: str
    ) -> Optional["Variable"]:
        """Retrieve a variable by (domain_id, name)."""

    @abstractmethod
    def list_variables(self, domain_id: int) -> list["Variable"]:
        """List all variables of a domain ordered by name."""

    # ── Assets and versions ───────────────────────────────────

    @abstractmethod
    def create_asset(
        self,
        study_id: int,
        name: str,
        kind: AssetKind,
        description: str = "",
    ) -> "Asset":
        """Create an asset with version 1.0.0 flagged latest."""

    @abstractmethod
    def get_asset(self, asset_id: int) -> Optional["Asset"]:
        """Retrieve an asset by id."""

    @abstractmethod
    def get_asset_by_name(
        self, study_id: int, name: str
    ) -> Optional["Asset"]:
        """Retrieve an asset by (study_id, name)."""

    @abstractmethod
    def list_assets(self, study_id: int) -> list["Asset"]:
        """List a study's assets ordered by name."""

    @abstractmethod
    def delete_asset(self, asset_id: int) -> None:
        """Delete an asset that has no remaining versions."""

    @abstractmethod
    def new_version(
        self,
        asset_id: int,
        note: str = "",
        version: Optional["VersionNumber"] = None,
    ) -> "AssetVersion":
        """Atomically demote the current latest and insert a new latest."""

    @abstractmethod
    def get_version(self, version_id: int) -> Optional["AssetVersion"]:
        """Retrieve a version by id."""

    @abstractmethod
    def get_latest_version(
        self, asset_id: int
    ) -> Optional["AssetVersion"]:
        """Retrieve the version flagged latest."""

    @abstractmethod
    def list_versions(self, asset_id: int) -> list["AssetVersion"]:
        """List versions ordered by (major, minor, patch)."""

    @abstractmethod
    def annotate_version(
        self,
        version_id: int,
        note: Optional[str] = None,
        doi: Optional[str] = None,
    ) -> "AssetVersion":
        """Update the mutable note/doi fields of a version."""

    @abstractmethod
    def discard_version(self, version_id: int) -> None:
        """Delete a version that no transformation references.

        If it was the latest, the highest remaining version is promoted.
        """

    # ── DataSet and DataFile specializations ──────────────────

    @abstractmethod
    def add_dataset(self, dataset: "DataSet") -> None:
        """Persist the dataset specialization of a dataset-kind version."""

    @abstractmethod
    def get_dataset(self, dataset_id: int) -> Optional["DataSet"]:
        """Retrieve the dataset specialization of a version."""

    @abstractmethod
    def set_dataset_variables(
        self, dataset_id: int, variables: list["Variable"]
    ) -> None:
        """Record the ordered variable list of a dataset."""

    @abstractmethod
    def list_dataset_variables(self, dataset_id: int) -> list["Variable"]:
        """List a dataset's variables in column order."""

    @abstractmethod
    def add_datafile(self, datafile: "DataFile") -> None:
        """Persist the file specialization of a file-kind version."""

    @abstractmethod
    def get_datafile(self, datafile_id: int) -> Optional["DataFile"]:
        """Retrieve the file specialization of a version."""

    # ── Transformations ───────────────────────────────────────

    @abstractmethod
    def record_transformation(
        self,
        type: TransformationType,
        description: str,
        source_ref: Optional["SourceRef"] = None,
        status: TransformationStatus = TransformationStatus.UNVERIFIED,
    ) -> "Transformation":
        """Persist a new immutable transformation."""

    @abstractmethod
    def get_transformation(
        self, transformation_id: int
    ) -> Optional["Transformation"]:
        """Retrieve a transformation by id."""

    @abstractmethod
    def list_transformations(
        self, type: Optional[TransformationType] = None
    ) -> list["Transformation"]:
        """List transformations, optionally filtered by type."""

    @abstractmethod
    def link_input(self, transformation_id: int, version_id: int) -> None:
        """Record a version consumed by a transformation."""

    @abstractmethod
    def link_output(self, transformation_id: int, version_id: int) -> None:
        """Record a version produced by a transformation."""

    @abstractmethod
    def list_inputs(self, transformation_id: int) -> list["AssetVersion"]:
        """Versions consumed by a transformation."""

    @abstractmethod
    def list_outputs(self, transformation_id: int) -> list["AssetVersion"]:
        """Versions produced by a transformation."""

    @abstractmethod
    def list_producers(self, version_id: int) -> list["Transformation"]:
        """Transformations that output a version."""

    @abstractmethod
    def list_consumers(self, version_id: int) -> list["Transformation"]:
        """Transformations that take a version as input."""

    # ── Lineage ───────────────────────────────────────────────

    @abstractmethod
    def query_lineage(
        self, version_id: int, depth: int = 100
    ) -> list["AssetVersion"]:
        """Upstream versions reachable through transformation links."""

    @abstractmethod
    def query_descendants(
        self, version_id: int, depth: int = 100
    ) -> list["AssetVersion"]:
        """Downstream versions reachable through transformation links."""

    # ── Lifecycle ─────────────────────────────────────────────

    @abstractmethod
    def close(self) -> None:
        """Release the store connection."""
