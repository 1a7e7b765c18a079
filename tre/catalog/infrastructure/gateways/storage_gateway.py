from typing import Protocol, runtime_checkable

from tre.catalog.domain.value_objects import ContentDigest


@runtime_checkable
class StorageGateway(Protocol):
    """Abstract gateway for data file storage operations.

    Defines the contract for storing, retrieving and verifying the
    bytes behind DataFile versions. Implementations wrap specific
    storage systems (local file store, object stores).
    """

    def push(self, source_path: str, key: str) -> tuple[str, ContentDigest]:
        """Store a local file under ``key``.

        Args:
            source_path: Path to the local file.
            key: Relative storage key (e.g., "study/asset/1.0.0/x.csv").

        Returns:
            Tuple of (storage_uri, digest of the stored bytes).
        """
        ...

    def pull(self, storage_uri: str, dest_path: str) -> str:
        """Copy stored bytes to a local path.

        Returns:
            Absolute path to the retrieved copy.
        """
        ...

    def verify(self, storage_uri: str, digest: ContentDigest) -> bool:
        """Check that stored bytes exist and match ``digest``."""
        ...

    def digest(self, storage_uri: str, algorithm: str = "sha256") -> ContentDigest:
        """Hash the stored bytes."""
        ...
