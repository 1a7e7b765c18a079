"""Tests for LocalFileAdapter concrete implementation."""

import hashlib

import pytest

from tre.catalog.domain.value_objects import ContentDigest, StorageURI
from tre.catalog.infrastructure.gateways.storage_gateway import StorageGateway


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "deaths.csv"
    path.write_bytes(b"id,place\n1,home\n")
    return path


class TestPush:
    """Verify copying files into the store."""

    def test_conforms_to_protocol(self, storage_gateway):
        """The adapter satisfies the StorageGateway protocol."""
        assert isinstance(storage_gateway, StorageGateway)

    def test_push_copies_and_hashes(self, storage_gateway, source_file, file_store):
        """push stores a copy under the key and returns its sha256."""
        uri, digest = storage_gateway.push(str(source_file), "hdss/deaths/1.0.0/deaths.csv")
        stored = file_store / "hdss" / "deaths" / "1.0.0" / "deaths.csv"
        assert stored.read_bytes() == source_file.read_bytes()
        assert StorageURI(uri).scheme == "file"
        assert StorageURI(uri).to_path() == stored.resolve()
        assert digest == ContentDigest(
            hashlib.sha256(source_file.read_bytes()).hexdigest(), "sha256"
        )

    def test_push_missing_source(self, storage_gateway, tmp_path):
        """A missing source file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            storage_gateway.push(str(tmp_path / "nope.csv"), "x.csv")

    def test_push_key_escape(self, storage_gateway, source_file):
        """Keys may not climb out of the store root."""
        with pytest.raises(ValueError):
            storage_gateway.push(str(source_file), "../outside.csv")


class TestPullAndVerify:
    """Verify retrieval and digest checks."""

    def test_pull(self, storage_gateway, source_file, tmp_path):
        """pull copies the stored bytes to the destination."""
        uri, _ = storage_gateway.push(str(source_file), "a/deaths.csv")
        dest = storage_gateway.pull(uri, str(tmp_path / "out" / "copy.csv"))
        assert open(dest, "rb").read() == source_file.read_bytes()

    def test_verify_match(self, storage_gateway, source_file):
        """An untouched file verifies."""
        uri, digest = storage_gateway.push(str(source_file), "a/deaths.csv")
        assert storage_gateway.verify(uri, digest) is True

    def test_verify_tampered(self, storage_gateway, source_file):
        """Changed bytes fail verification."""
        uri, digest = storage_gateway.push(str(source_file), "a/deaths.csv")
        StorageURI(uri).to_path().write_bytes(b"tampered")
        assert storage_gateway.verify(uri, digest) is False

    def test_verify_missing(self, storage_gateway, source_file):
        """A deleted file fails verification instead of raising."""
        uri, digest = storage_gateway.push(str(source_file), "a/deaths.csv")
        StorageURI(uri).to_path().unlink()
        assert storage_gateway.verify(uri, digest) is False

    def test_digest_other_algorithm(self, storage_gateway, source_file):
        """Any hashlib algorithm can be requested."""
        uri, _ = storage_gateway.push(str(source_file), "a/deaths.csv")
        digest = storage_gateway.digest(uri, "md5")
        assert digest.algorithm == "md5"
        assert digest.value == hashlib.md5(source_file.read_bytes()).hexdigest()
