from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from tre.catalog.domain.value_objects import ContentDigest, StorageURI

if TYPE_CHECKING:
    from tre.catalog.infrastructure.gateways.storage_gateway import (
        StorageGateway,
    )


@dataclass
class DataFile:
    """BLOB specialization of an asset version.

    ``datafile_id`` equals the owning AssetVersion's ``version_id``.

    Attributes:
        datafile_id: Id of the owning AssetVersion.
        storage_uri: Physical address of the stored bytes.
        digest: Hex content hash of the stored bytes.
        digest_algorithm: Hash algorithm name (e.g., "sha256").
        compressed: Whether the stored bytes are compressed.
        encrypted: Whether the stored bytes are encrypted.
        _storage_gateway: Injected gateway for data operations.
    """

    datafile_id: Optional[int] = None
    storage_uri: str = ""
    digest: str = ""
    digest_algorithm: str = "sha256"
    compressed: bool = False
    encrypted: bool = False

    _storage_gateway: Optional["StorageGateway"] = field(
        default=None, repr=False, compare=False
    )

    @property
    def content_digest(self) -> ContentDigest:
        return ContentDigest(value=self.digest, algorithm=self.digest_algorithm)

    @property
    def uri(self) -> StorageURI:
        return StorageURI(self.storage_uri)

    def getdata(self, dest_path: str) -> str:
        """Copy the stored bytes to a local path.

        Returns:
            Absolute path to the retrieved copy.

        Raises:
            OSError: If the stored bytes cannot be read.
        """
        return self._storage_gateway.pull(self.storage_uri, dest_path)

    def verify(self) -> bool:
        """Check the stored bytes against the recorded digest.

        Returns:
            True if the bytes exist and hash to ``digest``.
        """
        return self._storage_gateway.verify(
            self.storage_uri, self.content_digest
        )
