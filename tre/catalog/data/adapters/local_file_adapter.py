"""Concrete StorageGateway implementation over a local directory.

Files are copied into a store root under a caller-chosen key and
addressed by ``file://`` URIs. Digests are computed with hashlib over
the stored bytes, in chunks.
"""

import hashlib
import os
import shutil
from pathlib import Path

from tre.catalog.domain.value_objects import ContentDigest, StorageURI
from tre.log import logger

logger = logger.getChild(__name__)

DEFAULT_ALGORITHM = "sha256"
_CHUNK_SIZE = 1024 * 1024


class LocalFileAdapter:
    """Concrete StorageGateway backed by a local file store.

    Attributes:
        root: Directory that stored files are copied under.
    """

    def __init__(self, root) -> None:
        self.root = Path(root).expanduser()

    def push(self, source_path: str, key: str) -> tuple[str, ContentDigest]:
        """Copy a local file into the store.

        Args:
            source_path: Path to the local file.
            key: Relative storage key; must stay inside the store root.

        Returns:
            Tuple of (file URI, digest of the stored copy).

        Raises:
            FileNotFoundError: If ``source_path`` does not exist.
            ValueError: If ``key`` escapes the store root.
        """
        if not os.path.isfile(source_path):
            raise FileNotFoundError(source_path)
        target = (self.root / key).resolve()
        if not target.is_relative_to(self.root.resolve()):
            raise ValueError(f"Storage key escapes the file store: {key}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source_path, target)
        uri = str(StorageURI.from_path(target))
        digest = self.digest(uri)
        logger.debug("Stored %s as %s (%s)", source_path, uri, digest.value)
        return uri, digest

    def pull(self, storage_uri: str, dest_path: str) -> str:
        source = StorageURI(storage_uri).to_path()
        dest_path = os.path.abspath(dest_path)
        os.makedirs(os.path.dirname(dest_path), exist_ok=True)
        shutil.copyfile(source, dest_path)
        return dest_path

    def verify(self, storage_uri: str, digest: ContentDigest) -> bool:
        """Return True if the stored file exists and hashes to ``digest``."""
        try:
            actual = self.digest(storage_uri, digest.algorithm)
        except FileNotFoundError:
            logger.warning("Stored file is missing: %s", storage_uri)
            return False
        if actual.value != digest.value:
            logger.warning("Digest mismatch for %s", storage_uri)
            return False
        return True

    def digest(
        self, storage_uri: str, algorithm: str = DEFAULT_ALGORITHM
    ) -> ContentDigest:
        """Hash the stored file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If ``algorithm`` is unknown to hashlib.
        """
        hasher = hashlib.new(algorithm)
        with open(StorageURI(storage_uri).to_path(), "rb") as fobj:
            for chunk in iter(lambda: fobj.read(_CHUNK_SIZE), b""):
                hasher.update(chunk)
        return ContentDigest(value=hasher.hexdigest(), algorithm=algorithm)
