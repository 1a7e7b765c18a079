"""Domain service for verifying data file integrity.

Provides single and batch verification of DataFile digests against the
stored bytes via the injected StorageGateway.
"""

from typing import TYPE_CHECKING

from tre.catalog.domain.exceptions import IntegrityError

if TYPE_CHECKING:
    from tre.catalog.domain.entities.datafile import DataFile
    from tre.catalog.infrastructure.gateways.storage_gateway import (
        StorageGateway,
    )


class IntegrityService:
    """Domain service for verifying data integrity.

    Attributes:
        _storage_gateway: Injected StorageGateway for verification.
    """

    def __init__(self, storage_gateway: "StorageGateway") -> None:
        self._storage_gateway = storage_gateway

    def verify_datafile(self, datafile: "DataFile") -> bool:
        """Verify a single DataFile.

        Returns:
            True if the stored bytes hash to the recorded digest.
        """
        if not datafile.digest:
            return False
        return self._storage_gateway.verify(
            datafile.storage_uri, datafile.content_digest
        )

    def require_intact(self, datafile: "DataFile") -> None:
        """Raise unless the DataFile verifies.

        Raises:
            IntegrityError: If the bytes are missing or altered.
        """
        if not self.verify_datafile(datafile):
            raise IntegrityError(
                f"Digest mismatch for {datafile.storage_uri} "
                f"(expected {datafile.digest_algorithm}:{datafile.digest})"
            )

    def verify_batch(self, datafiles: list["DataFile"]) -> dict[int, bool]:
        """Verify multiple DataFiles.

        Returns:
            Dict mapping datafile id to verification result.
        """
        return {
            datafile.datafile_id: self.verify_datafile(datafile)
            for datafile in datafiles
        }
