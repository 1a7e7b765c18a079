"""Concrete CatalogRepo implementation backed by SQLite.

Implements the CatalogRepo ABC from the Domain Layer by delegating
all I/O to DAL objects that execute SQL on a SQLite database.
Handles entity-to-dict and dict-to-entity conversions and translates
driver constraint errors into catalog exceptions.

The connection runs in autocommit mode; multi-statement units of work
go through ``transaction()``, which opens ``BEGIN IMMEDIATE`` so that
the write lock is taken before the first read. Nested scopes become
savepoints.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from funcy import distinct

from tre.catalog.data.dal.asset_dal import AssetDAL
from tre.catalog.data.dal.assetversion_dal import AssetVersionDAL
from tre.catalog.data.dal.study_dal import StudyDAL
from tre.catalog.data.dal.transformation_dal import TransformationDAL
from tre.catalog.data.dal.variable_dal import VariableDAL
from tre.catalog.data.dal.vocabulary_dal import VocabularyDAL
from tre.catalog.data.schema import SCHEMA_DDL
from tre.catalog.domain.entities.asset import Asset
from tre.catalog.domain.entities.assetversion import AssetVersion
from tre.catalog.domain.entities.catalogrepo import CatalogRepo
from tre.catalog.domain.entities.datafile import DataFile
from tre.catalog.domain.entities.dataset import DataSet
from tre.catalog.domain.entities.study import Domain, Study
from tre.catalog.domain.entities.transformation import Transformation
from tre.catalog.domain.entities.variable import Variable, Vocabulary
from tre.catalog.domain.enums import (
    AssetKind,
    KeyRole,
    TransformationStatus,
    TransformationType,
    ValueType,
)
from tre.catalog.domain.exceptions import (
    AmbiguousNameError,
    ConnectivityError,
    DeleteConstraintError,
    DuplicateNameError,
    EntityNotFoundError,
    InvariantViolationError,
)
from tre.catalog.domain.value_objects import (
    SourceRef,
    VersionNumber,
    VocabularyItem,
)
from tre.log import logger

if TYPE_CHECKING:
    from tre.catalog.infrastructure.gateways.storage_gateway import (
        StorageGateway,
    )

logger = logger.getChild(__name__)

_INVARIANT_MARKERS = ("write-once", "immutable", "require a")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@contextmanager
def _constraint_errors(entity_type: str, name) -> Iterator[None]:
    """Translate SQLite constraint failures into catalog exceptions."""
    try:
        yield
    except sqlite3.IntegrityError as exc:
        message = str(exc)
        if any(marker in message for marker in _INVARIANT_MARKERS):
            raise InvariantViolationError(message) from exc
        if "UNIQUE" in message:
            raise DuplicateNameError(entity_type, str(name)) from exc
        raise


class CatalogRepoSQLite(CatalogRepo):
    """Concrete CatalogRepo backed by SQLite via DAL objects.

    Manages a single SQLite connection with WAL mode for concurrent
    reads and a busy timeout for concurrent writers. Creates tables on
    first access.

    Attributes:
        _db_path: Path to SQLite database file (or ':memory:').
        _timeout: Seconds to wait for a competing writer's lock.
        _conn: Lazy-initialized SQLite connection.
        _tx_depth: Nesting depth of open ``transaction()`` scopes.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        timeout: float = 30.0,
        storage_gateway: Optional["StorageGateway"] = None,
    ) -> None:
        """Initialize with database path.

        Args:
            db_path: Path to SQLite database file.
                     Use ':memory:' for in-memory testing.
            timeout: Busy timeout in seconds.
            storage_gateway: Gateway injected into loaded DataFiles.
        """
        self._db_path = str(db_path)
        self._timeout = timeout
        self._storage_gateway = storage_gateway
        self._conn: Optional[sqlite3.Connection] = None
        self._tx_depth = 0
        self._study_dal: Optional[StudyDAL] = None
        self._vocabulary_dal: Optional[VocabularyDAL] = None
        self._variable_dal: Optional[VariableDAL] = None
        self._asset_dal: Optional[AssetDAL] = None
        self._assetversion_dal: Optional[AssetVersionDAL] = None
        self._transformation_dal: Optional[TransformationDAL] = None

    @property
    def conn(self) -> sqlite3.Connection:
        """Lazy-initialize and return the database connection.

        Returns:
            Active SQLite connection with WAL mode and foreign keys.

        Raises:
            ConnectivityError: If the database cannot be opened.
        """
        if self._conn is None:
            try:
                conn = sqlite3.connect(
                    self._db_path, timeout=self._timeout, isolation_level=None
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA foreign_keys=ON")
                conn.executescript(SCHEMA_DDL)
            except sqlite3.Error as exc:
                raise ConnectivityError(
                    "open metadata store", f"{self._db_path}: {exc}"
                ) from exc
            self._conn = conn
            self._study_dal = StudyDAL(conn)
            self._vocabulary_dal = VocabularyDAL(conn)
            self._variable_dal = VariableDAL(conn)
            self._asset_dal = AssetDAL(conn)
            self._assetversion_dal = AssetVersionDAL(conn)
            self._transformation_dal = TransformationDAL(conn)
            logger.debug("opened metadata store %s", self._db_path)
        return self._conn

    @property
    def study_dal(self) -> StudyDAL:
        self.conn  # ensure initialized
        return self._study_dal

    @property
    def vocabulary_dal(self) -> VocabularyDAL:
        self.conn  # ensure initialized
        return self._vocabulary_dal

    @property
    def variable_dal(self) -> VariableDAL:
        self.conn  # ensure initialized
        return self._variable_dal

    @property
    def asset_dal(self) -> AssetDAL:
        self.conn  # ensure initialized
        return self._asset_dal

    @property
    def assetversion_dal(self) -> AssetVersionDAL:
        self.conn  # ensure initialized
        return self._assetversion_dal

    @property
    def transformation_dal(self) -> TransformationDAL:
        self.conn  # ensure initialized
        return self._transformation_dal

    # ── Transactions ──────────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[None]:
        conn = self.conn
        depth = self._tx_depth
        if depth == 0:
            conn.execute("BEGIN IMMEDIATE")
        else:
            conn.execute(f"SAVEPOINT sp_{depth}")
        self._tx_depth = depth + 1
        try:
            yield
        except BaseException:
            self._tx_depth = depth
            if depth == 0:
                conn.execute("ROLLBACK")
            else:
                conn.execute(f"ROLLBACK TO sp_{depth}")
                conn.execute(f"RELEASE sp_{depth}")
            raise
        self._tx_depth = depth
        if depth == 0:
            conn.execute("COMMIT")
        else:
            conn.execute(f"RELEASE sp_{depth}")

    # ── Studies and domains ───────────────────────────────────

    def add_study(self, study: Study) -> Study:
        data = {
            "name": study.name,
            "description": study.description,
            "study_type": study.study_type,
            "created_at": study.created_at.isoformat(),
        }
        with _constraint_errors("Study", study.name):
            study_id = self.study_dal.insert_study(data)
        return self.get_study(study_id)

    def get_study(self, study_id: int) -> Optional[Study]:
        data = self.study_dal.get_study(study_id)
        if data is None:
            return None
        return self._study_from_dict(data)

    def get_study_by_name(self, name: str) -> Optional[Study]:
        data = self.study_dal.get_study_by_name(name)
        if data is None:
            return None
        return self._study_from_dict(data)

    def list_studies(self) -> list[Study]:
        return [self._study_from_dict(row) for row in self.study_dal.list_studies()]

    def add_domain(self, domain: Domain) -> Domain:
        data = {
            "name": domain.name,
            "uri": domain.uri,
            "description": domain.description,
        }
        with _constraint_errors("Domain", domain.name):
            domain_id = self.study_dal.insert_domain(data)
        return self.get_domain(domain_id)

    def get_domain(self, domain_id: int) -> Optional[Domain]:
        data = self.study_dal.get_domain(domain_id)
        if data is None:
            return None
        return Domain(**data)

    def get_domain_by_name(
        self, name: str, uri: Optional[str] = None
    ) -> Optional[Domain]:
        data = self.study_dal.get_domain_by_name(name, uri)
        if data is None:
            return None
        return Domain(**data)

    def link_study_domain(self, study_id: int, domain_id: int) -> None:
        if self.study_dal.get_study(study_id) is None:
            raise EntityNotFoundError("Study", study_id)
        if self.study_dal.get_domain(domain_id) is None:
            raise EntityNotFoundError("Domain", domain_id)
        self.study_dal.link_study_domain(study_id, domain_id)

    def list_study_domains(self, study_id: int) -> list[Domain]:
        return [Domain(**row) for row in self.study_dal.list_study_domains(study_id)]

    # ── Vocabularies ──────────────────────────────────────────

    def ensure_vocabulary(
        self,
        domain_id: int,
        name: str,
        description: str,
        items: list[VocabularyItem],
    ) -> int:
        unique_items = distinct(items, key=lambda item: (item.value, item.code))
        rows = [
            {"value": item.value, "code": item.code, "description": item.description}
            for item in unique_items
        ]
        with self.transaction():
            vocabulary_id = self.vocabulary_dal.upsert(
                {"domain_id": domain_id, "name": name, "description": description or ""}
            )
            self.vocabulary_dal.replace_items(vocabulary_id, rows)
        return vocabulary_id

    def get_vocabulary(self, vocabulary_id: int) -> Optional[Vocabulary]:
        data = self.vocabulary_dal.get(vocabulary_id)
        if data is None:
            return None
        return self._vocabulary_from_dict(data)

    def get_vocabulary_by_name(
        self, name: str, domain_id: Optional[int] = None
    ) -> Optional[Vocabulary]:
        if domain_id is not None:
            data = self.vocabulary_dal.get_by_name(domain_id, name)
            return self._vocabulary_from_dict(data) if data else None
        matches = self.vocabulary_dal.find_by_name(name)
        if not matches:
            return None
        if len(matches) > 1:
            raise AmbiguousNameError("Vocabulary", name, len(matches))
        return self._vocabulary_from_dict(matches[0])

    # ── Variables ─────────────────────────────────────────────

    def upsert_variable(self, variable: Variable) -> Variable:
        data = self._variable_to_dict(variable)
        with _constraint_errors("Variable", variable.name):
            variable_id = self.variable_dal.upsert(data)
        return self.get_variable(variable_id)

    def get_variable(self, variable_id: int) -> Optional[Variable]:
        data = self.variable_dal.get(variable_id)
        if data is None:
            return None
        return self._variable_from_dict(data)

    def get_variable_by_name(
        self, domain_id: int, name: str
    ) -> Optional[Variable]:
        data = self.variable_dal.get_by_name(domain_id, name)
        if data is None:
            return None
        return self._variable_from_dict(data)

    def list_variables(self, domain_id: int) -> list[Variable]:
        rows = self.variable_dal.list_for_domain(domain_id)
        return [self._variable_from_dict(row) for row in rows]

    # ── Assets and versions ───────────────────────────────────

    def create_asset(
        self,
        study_id: int,
        name: str,
        kind: AssetKind,
        description: str = "",
    ) -> Asset:
        kind = AssetKind(kind)
        with self.transaction():
            if self.study_dal.get_study(study_id) is None:
                raise EntityNotFoundError("Study", study_id)
            with _constraint_errors("Asset", name):
                asset_id = self.asset_dal.insert(
                    {
                        "study_id": study_id,
                        "name": name,
                        "kind": kind.value,
                        "description": description,
                        "created_at": _now(),
                    }
                )
            self._insert_version(asset_id, VersionNumber(1, 0, 0), "")
        logger.debug("created %s asset '%s' (%s)", kind.value, name, asset_id)
        return self.get_asset(asset_id)

    def get_asset(self, asset_id: int) -> Optional[Asset]:
        data = self.asset_dal.get(asset_id)
        if data is None:
            return None
        return self._asset_from_dict(data)

    def get_asset_by_name(self, study_id: int, name: str) -> Optional[Asset]:
        data = self.asset_dal.get_by_name(study_id, name)
        if data is None:
            return None
        return self._asset_from_dict(data)

    def list_assets(self, study_id: int) -> list[Asset]:
        return [self._asset_from_dict(row) for row in self.asset_dal.list_for_study(study_id)]

    def delete_asset(self, asset_id: int) -> None:
        with self.transaction():
            if self.assetversion_dal.count_for_asset(asset_id):
                raise DeleteConstraintError(
                    f"Asset {asset_id} still has versions"
                )
            self.asset_dal.delete(asset_id)

    def new_version(
        self,
        asset_id: int,
        note: str = "",
        version: Optional[VersionNumber] = None,
    ) -> AssetVersion:
        with self.transaction():
            if self.asset_dal.get(asset_id) is None:
                raise EntityNotFoundError("Asset", asset_id)
            dal = self.assetversion_dal
            latest = dal.get_latest(asset_id) or dal.get_highest(asset_id)
            highest = dal.get_highest(asset_id)
            if version is None:
                version = (
                    self._version_of(latest).bump_patch()
                    if latest
                    else VersionNumber(1, 0, 0)
                )
            elif highest is not None and version <= self._version_of(highest):
                if any(
                    self._version_of(row) == version
                    for row in dal.list_for_asset(asset_id)
                ):
                    raise DuplicateNameError("AssetVersion", str(version))
                raise InvariantViolationError(
                    f"Version {version} is not greater than "
                    f"{self._version_of(highest)}"
                )
            version_id = self._insert_version(asset_id, version, note)
        logger.debug("asset %s promoted v%s to latest", asset_id, version)
        return self.get_version(version_id)

    def _insert_version(
        self, asset_id: int, version: VersionNumber, note: str
    ) -> int:
        """Demote the current latest and insert ``version`` as latest."""
        self.assetversion_dal.demote_latest(asset_id)
        with _constraint_errors("AssetVersion", version):
            return self.assetversion_dal.insert(
                {
                    "asset_id": asset_id,
                    "major": version.major,
                    "minor": version.minor,
                    "patch": version.patch,
                    "is_latest": 1,
                    "note": note,
                    "doi": None,
                    "created_at": _now(),
                }
            )

    def get_version(self, version_id: int) -> Optional[AssetVersion]:
        data = self.assetversion_dal.get(version_id)
        if data is None:
            return None
        return self._version_from_dict(data)

    def get_latest_version(self, asset_id: int) -> Optional[AssetVersion]:
        data = self.assetversion_dal.get_latest(asset_id)
        if data is None:
            return None
        return self._version_from_dict(data)

    def list_versions(self, asset_id: int) -> list[AssetVersion]:
        rows = self.assetversion_dal.list_for_asset(asset_id)
        return [self._version_from_dict(row) for row in rows]

    def annotate_version(
        self,
        version_id: int,
        note: Optional[str] = None,
        doi: Optional[str] = None,
    ) -> AssetVersion:
        if self.assetversion_dal.get(version_id) is None:
            raise EntityNotFoundError("AssetVersion", version_id)
        self.assetversion_dal.annotate(version_id, note, doi)
        return self.get_version(version_id)

    def discard_version(self, version_id: int) -> None:
        with self.transaction():
            data = self.assetversion_dal.get(version_id)
            if data is None:
                raise EntityNotFoundError("AssetVersion", version_id)
            if self.transformation_dal.is_referenced(version_id):
                raise DeleteConstraintError(
                    f"AssetVersion {version_id} is referenced by provenance"
                )
            self.assetversion_dal.delete(version_id)
            if data["is_latest"]:
                highest = self.assetversion_dal.get_highest(data["asset_id"])
                if highest is not None:
                    self.assetversion_dal.promote(highest["version_id"])
        logger.debug("discarded asset version %s", version_id)

    # ── DataSet and DataFile specializations ──────────────────

    def add_dataset(self, dataset: DataSet) -> None:
        data = {
            "dataset_id": dataset.dataset_id,
            "lake_schema": dataset.lake_schema,
            "lake_table": dataset.lake_table,
        }
        with _constraint_errors("DataSet", dataset.dataset_id):
            self.assetversion_dal.insert_dataset(data)

    def get_dataset(self, dataset_id: int) -> Optional[DataSet]:
        data = self.assetversion_dal.get_dataset(dataset_id)
        if data is None:
            return None
        return DataSet(**data, _repo=self)

    def set_dataset_variables(
        self, dataset_id: int, variables: list[Variable]
    ) -> None:
        with self.transaction():
            version = self.assetversion_dal.get(dataset_id)
            if version is None or self.assetversion_dal.get_dataset(dataset_id) is None:
                raise EntityNotFoundError("DataSet", dataset_id)
            study_id = self.asset_dal.get(version["asset_id"])["study_id"]
            foreign = self.variable_dal.foreign_domain_variables(
                study_id, [v.variable_id for v in variables]
            )
            if foreign:
                raise InvariantViolationError(
                    "Variables outside the study's domains: " + ", ".join(foreign)
                )
            links = [
                {
                    "variable_id": variable.variable_id,
                    "keyrole": KeyRole(variable.keyrole).value,
                    "ordinal": ordinal,
                }
                for ordinal, variable in enumerate(variables)
            ]
            self.variable_dal.replace_dataset_variables(dataset_id, links)

    def list_dataset_variables(self, dataset_id: int) -> list[Variable]:
        rows = self.variable_dal.list_for_dataset(dataset_id)
        return [self._variable_from_dict(row) for row in rows]

    def add_datafile(self, datafile: DataFile) -> None:
        data = {
            "datafile_id": datafile.datafile_id,
            "storage_uri": datafile.storage_uri,
            "digest": datafile.digest,
            "digest_algorithm": datafile.digest_algorithm,
            "compressed": int(datafile.compressed),
            "encrypted": int(datafile.encrypted),
        }
        with _constraint_errors("DataFile", datafile.datafile_id):
            self.assetversion_dal.insert_datafile(data)

    def get_datafile(self, datafile_id: int) -> Optional[DataFile]:
        data = self.assetversion_dal.get_datafile(datafile_id)
        if data is None:
            return None
        data["compressed"] = bool(data["compressed"])
        data["encrypted"] = bool(data["encrypted"])
        return DataFile(**data, _storage_gateway=self._storage_gateway)

    # ── Transformations ───────────────────────────────────────

    def record_transformation(
        self,
        type: TransformationType,
        description: str,
        source_ref: Optional[SourceRef] = None,
        status: TransformationStatus = TransformationStatus.UNVERIFIED,
    ) -> Transformation:
        source_ref = source_ref or SourceRef()
        transformation_id = self.transformation_dal.insert(
            {
                "type": TransformationType(type).value,
                "status": TransformationStatus(status).value,
                "description": description,
                "repo_url": source_ref.repo_url,
                "commit_hash": source_ref.commit,
                "script_path": source_ref.script_path,
                "created_at": _now(),
            }
        )
        return self.get_transformation(transformation_id)

    def get_transformation(
        self, transformation_id: int
    ) -> Optional[Transformation]:
        data = self.transformation_dal.get(transformation_id)
        if data is None:
            return None
        return self._transformation_from_dict(data)

    def list_transformations(
        self, type: Optional[TransformationType] = None
    ) -> list[Transformation]:
        rows = self.transformation_dal.list_all(
            TransformationType(type).value if type else None
        )
        return [self._transformation_from_dict(row) for row in rows]

    def link_input(self, transformation_id: int, version_id: int) -> None:
        self._link("input", transformation_id, version_id)

    def link_output(self, transformation_id: int, version_id: int) -> None:
        self._link("output", transformation_id, version_id)

    def _link(self, role: str, transformation_id: int, version_id: int) -> None:
        if self.transformation_dal.get(transformation_id) is None:
            raise EntityNotFoundError("Transformation", transformation_id)
        if self.assetversion_dal.get(version_id) is None:
            raise EntityNotFoundError("AssetVersion", version_id)
        self.transformation_dal.link(role, transformation_id, version_id)

    def list_inputs(self, transformation_id: int) -> list[AssetVersion]:
        rows = self.transformation_dal.linked_versions("input", transformation_id)
        return [self._version_from_dict(row) for row in rows]

    def list_outputs(self, transformation_id: int) -> list[AssetVersion]:
        rows = self.transformation_dal.linked_versions("output", transformation_id)
        return [self._version_from_dict(row) for row in rows]

    def list_producers(self, version_id: int) -> list[Transformation]:
        rows = self.transformation_dal.transformations_for("output", version_id)
        return [self._transformation_from_dict(row) for row in rows]

    def list_consumers(self, version_id: int) -> list[Transformation]:
        rows = self.transformation_dal.transformations_for("input", version_id)
        return [self._transformation_from_dict(row) for row in rows]

    # ── Lineage ───────────────────────────────────────────────

    def query_lineage(
        self, version_id: int, depth: int = 100
    ) -> list[AssetVersion]:
        rows = self.transformation_dal.get_upstream(version_id, depth)
        return [self._version_from_dict(row) for row in rows]

    def query_descendants(
        self, version_id: int, depth: int = 100
    ) -> list[AssetVersion]:
        rows = self.transformation_dal.get_downstream(version_id, depth)
        return [self._version_from_dict(row) for row in rows]

    # ── Lifecycle ─────────────────────────────────────────────

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._tx_depth = 0
            self._study_dal = None
            self._vocabulary_dal = None
            self._variable_dal = None
            self._asset_dal = None
            self._assetversion_dal = None
            self._transformation_dal = None

    # ── Serialization helpers ─────────────────────────────────

    def _study_from_dict(self, data: dict) -> Study:
        return Study(
            study_id=data["study_id"],
            name=data["name"],
            description=data["description"],
            study_type=data["study_type"],
            created_at=datetime.fromisoformat(data["created_at"]),
            _repo=self,
        )

    def _vocabulary_from_dict(self, data: dict) -> Vocabulary:
        items = [
            VocabularyItem(row["value"], row["code"], row["description"])
            for row in self.vocabulary_dal.list_items(data["vocabulary_id"])
        ]
        return Vocabulary(
            vocabulary_id=data["vocabulary_id"],
            domain_id=data["domain_id"],
            name=data["name"],
            description=data["description"],
            items=items,
        )

    def _variable_to_dict(self, variable: Variable) -> dict:
        return {
            "domain_id": variable.domain_id,
            "name": variable.name,
            "value_type": ValueType(variable.value_type).value,
            "value_format": variable.value_format,
            "vocabulary_id": variable.vocabulary_id,
            "keyrole": KeyRole(variable.keyrole).value,
            "description": variable.description,
        }

    def _variable_from_dict(self, data: dict) -> Variable:
        return Variable(
            variable_id=data["variable_id"],
            domain_id=data["domain_id"],
            name=data["name"],
            value_type=ValueType(data["value_type"]),
            value_format=data["value_format"],
            vocabulary_id=data["vocabulary_id"],
            keyrole=KeyRole(data["keyrole"]),
            description=data["description"],
        )

    def _asset_from_dict(self, data: dict) -> Asset:
        return Asset(
            asset_id=data["asset_id"],
            study_id=data["study_id"],
            name=data["name"],
            kind=AssetKind(data["kind"]),
            description=data["description"],
            created_at=datetime.fromisoformat(data["created_at"]),
            _repo=self,
        )

    @staticmethod
    def _version_of(data: dict) -> VersionNumber:
        return VersionNumber(data["major"], data["minor"], data["patch"])

    def _version_from_dict(self, data: dict) -> AssetVersion:
        return AssetVersion(
            version_id=data["version_id"],
            asset_id=data["asset_id"],
            major=data["major"],
            minor=data["minor"],
            patch=data["patch"],
            is_latest=bool(data["is_latest"]),
            note=data["note"],
            doi=data["doi"],
            created_at=datetime.fromisoformat(data["created_at"]),
        )

    def _transformation_from_dict(self, data: dict) -> Transformation:
        return Transformation(
            transformation_id=data["transformation_id"],
            type=TransformationType(data["type"]),
            description=data["description"],
            source_ref=SourceRef(
                repo_url=data["repo_url"],
                commit=data["commit_hash"],
                script_path=data["script_path"],
            ),
            status=TransformationStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            _repo=self,
        )
