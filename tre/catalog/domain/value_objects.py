import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote, urlparse

_VERSION_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")


@dataclass(frozen=True, order=True)
class VersionNumber:
    """Immutable semantic version of an asset revision.

    Attributes:
        major: Major component (>= 0).
        minor: Minor component (>= 0).
        patch: Patch component (>= 0).
    """

    major: int = 1
    minor: int = 0
    patch: int = 0

    def __post_init__(self) -> None:
        """Validate that every component is a non-negative integer."""
        for part in (self.major, self.minor, self.patch):
            if not isinstance(part, int) or part < 0:
                raise ValueError(
                    f"Version components must be integers >= 0, got {self}"
                )

    @classmethod
    def parse(cls, text: str) -> "VersionNumber":
        """Parse "1.2.3" (optionally prefixed with "v")."""
        match = _VERSION_RE.match(text.strip())
        if match is None:
            raise ValueError(f"Invalid version string: {text!r}")
        return cls(*(int(group) for group in match.groups()))

    def bump_patch(self) -> "VersionNumber":
        return VersionNumber(self.major, self.minor, self.patch + 1)

    def bump_minor(self) -> "VersionNumber":
        return VersionNumber(self.major, self.minor + 1, 0)

    def bump_major(self) -> "VersionNumber":
        return VersionNumber(self.major + 1, 0, 0)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class ContentDigest:
    """Immutable content hash of stored bytes.

    Attributes:
        value: The hex digest (e.g., "9f86d081...").
        algorithm: Hash algorithm name (e.g., "sha256").
    """

    value: str
    algorithm: str = "sha256"

    def __bool__(self) -> bool:
        """Return True if digest value is non-empty."""
        return bool(self.value)


@dataclass(frozen=True)
class StorageURI:
    """Immutable physical address of a stored file.

    Attributes:
        uri: Full URI string (e.g., "file:///data/x.csv", "s3://b/k").
    """

    uri: str

    @property
    def scheme(self) -> str:
        """Extract scheme from URI (e.g., 'file', 's3').

        Returns:
            URI scheme string, or empty string for bare local paths.
        """
        return urlparse(self.uri).scheme

    @classmethod
    def from_path(cls, path) -> "StorageURI":
        """Build a ``file://`` URI from a local path."""
        resolved = Path(path).expanduser().resolve()
        return cls("file://" + quote(resolved.as_posix()))

    def to_path(self) -> Path:
        """Return the local path addressed by a ``file://`` or bare URI.

        Raises:
            ValueError: If the URI addresses a non-local scheme.
        """
        parsed = urlparse(self.uri)
        if parsed.scheme in ("", "file"):
            if parsed.scheme == "":
                return Path(self.uri)
            path = unquote(parsed.path)
            if parsed.netloc and parsed.netloc != "localhost":
                path = f"//{parsed.netloc}{path}"
            return Path(os.path.normpath(path))
        raise ValueError(f"Not a local file URI: {self.uri}")

    def __str__(self) -> str:
        return self.uri


@dataclass(frozen=True)
class SourceRef:
    """Where the code that produced a transformation lives.

    Every field is optional: an unresolved reference is still recorded.

    Attributes:
        repo_url: Normalized https URL of the repository.
        commit: Commit hash the script ran at.
        script_path: Script path relative to the repository root.
    """

    repo_url: Optional[str] = None
    commit: Optional[str] = None
    script_path: Optional[str] = None

    def __bool__(self) -> bool:
        return any((self.repo_url, self.commit, self.script_path))


def quote_ident(name: str) -> str:
    """Quote an SQL identifier, doubling embedded quotes."""
    return '"' + str(name).replace('"', '""') + '"'


@dataclass(frozen=True)
class TableRef:
    """Schema-qualified table name in the lake.

    Attributes:
        schema: Schema name (one per study).
        name: Table name.
    """

    schema: str
    name: str

    @property
    def qualified(self) -> str:
        return f"{quote_ident(self.schema)}.{quote_ident(self.name)}"

    @classmethod
    def for_version(
        cls, study_name: str, asset_name: str, version: VersionNumber
    ) -> "TableRef":
        """Name the lake table holding one dataset version."""
        suffix = f"v{version.major}_{version.minor}_{version.patch}"
        return cls(schema=study_name, name=f"{asset_name}_{suffix}")

    def __str__(self) -> str:
        return f"{self.schema}.{self.name}"


@dataclass(frozen=True)
class VocabularyItem:
    """One entry of a controlled value set.

    Attributes:
        value: Integer value stored in data.
        code: Short label for the value.
        description: Optional longer text.
    """

    value: int
    code: str
    description: Optional[str] = None
