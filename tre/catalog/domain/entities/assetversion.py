from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from tre.catalog.domain.exceptions import InvariantViolationError
from tre.catalog.domain.value_objects import VersionNumber

_WRITE_ONCE = frozenset({"major", "minor", "patch"})


@dataclass
class AssetVersion:
    """One immutable revision of an asset.

    The version number (major, minor, patch) is write-once: it can be set
    when the object is constructed and never changed afterwards. Only
    ``is_latest``, ``note`` and ``doi`` may change over the lifetime of
    a version, and only through the ledger.

    Attributes:
        version_id: Store-generated id (None until persisted).
        asset_id: Parent asset.
        major: Major version component.
        minor: Minor version component.
        patch: Patch version component.
        is_latest: Whether this is the asset's current version.
        note: Free-text change note.
        doi: Optional persistent identifier.
        created_at: When the version was created.
    """

    version_id: Optional[int] = None
    asset_id: Optional[int] = None
    major: int = 1
    minor: int = 0
    patch: int = 0
    is_latest: bool = False
    note: str = ""
    doi: Optional[str] = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __setattr__(self, name, value) -> None:
        if name in _WRITE_ONCE and name in self.__dict__:
            if self.__dict__[name] != value:
                raise InvariantViolationError(
                    f"AssetVersion {self.version_id}: {name} is write-once"
                )
        super().__setattr__(name, value)

    @property
    def version(self) -> VersionNumber:
        return VersionNumber(self.major, self.minor, self.patch)

    def __str__(self) -> str:
        return f"v{self.version}"
