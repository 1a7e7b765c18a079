"""Shared run machinery for pipelines that materialize dataset versions.

A run moves through a fixed sequence of states and never retries. When
a step fails, the work done so far is compensated in reverse: the lake
transaction is rolled back, a table the run created is dropped, and a
version (or asset) the run created is discarded from the ledger.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from tre.catalog.domain.entities.dataset import DataSet
from tre.catalog.domain.enums import AssetKind, IngestState
from tre.catalog.domain.exceptions import (
    InvalidStateTransitionError,
    InvariantViolationError,
)
from tre.catalog.domain.value_objects import TableRef
from tre.log import logger

if TYPE_CHECKING:
    from tre.catalog.domain.entities.asset import Asset
    from tre.catalog.domain.entities.assetversion import AssetVersion
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo
    from tre.catalog.domain.entities.study import Study
    from tre.catalog.domain.entities.transformation import Transformation
    from tre.catalog.domain.entities.variable import Variable
    from tre.catalog.infrastructure.gateways.lake_gateway import LakeGateway

logger = logger.getChild(__name__)

_TRANSITIONS = {
    IngestState.START: {IngestState.SCHEMA_INFERRED},
    IngestState.SCHEMA_INFERRED: {IngestState.TARGET_CREATED},
    IngestState.TARGET_CREATED: {IngestState.ROWS_STREAMED},
    IngestState.ROWS_STREAMED: {IngestState.PROVENANCE_RECORDED},
    IngestState.PROVENANCE_RECORDED: {IngestState.DONE},
    IngestState.DONE: set(),
    IngestState.FAILED: set(),
}
_TERMINAL = (IngestState.DONE, IngestState.FAILED)


@dataclass
class PipelineRun:
    """State and compensation bookkeeping of one run.

    Attributes:
        state: Current state.
        history: Every state entered, in order.
        created_asset_id: Asset created by this run, if any.
        created_version_id: Version created by this run, if any.
        table: Lake table the run writes to.
        table_created: Whether the run created ``table``.
        lake_open: Whether a lake transaction is open.
    """

    state: IngestState = IngestState.START
    history: list[IngestState] = field(
        default_factory=lambda: [IngestState.START]
    )
    created_asset_id: Optional[int] = None
    created_version_id: Optional[int] = None
    table: Optional[TableRef] = None
    table_created: bool = False
    lake_open: bool = False

    def advance(self, target: IngestState) -> None:
        """Move to ``target``; FAILED is reachable from any live state.

        Raises:
            InvalidStateTransitionError: If ``target`` is out of order.
        """
        allowed = _TRANSITIONS[self.state]
        if target == IngestState.FAILED and self.state not in _TERMINAL:
            allowed = {IngestState.FAILED}
        if target not in allowed:
            raise InvalidStateTransitionError(self.state.value, target.value)
        logger.debug("run %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)


@dataclass
class Target:
    """Ledger objects a run writes into."""

    asset: "Asset"
    version: "AssetVersion"
    dataset: DataSet
    new_table: bool
    created_asset: bool = False


@dataclass
class PipelineResult:
    """Outcome of a successful run.

    Attributes:
        asset: Target asset.
        version: Version holding the rows.
        dataset: DataSet specialization of ``version``.
        transformation: Provenance record of the run.
        variables: Dataset variables in column order.
        rows: Rows written to the lake.
        history: States the run went through.
    """

    asset: "Asset"
    version: "AssetVersion"
    dataset: DataSet
    transformation: "Transformation"
    variables: list["Variable"]
    rows: int
    history: list[IngestState]


class PipelineBase:
    """Target creation and failure compensation shared by pipelines.

    Attributes:
        _repo: Metadata store.
        _lake: Lake the run materializes into.
    """

    def __init__(self, repo: "CatalogRepo", lake: "LakeGateway") -> None:
        self._repo = repo
        self._lake = lake

    def _new_target(
        self,
        study: "Study",
        name: str,
        description: str,
        note: str,
    ) -> Target:
        """Create the asset, or a new version of it, plus its DataSet row.

        Must run inside a store transaction; call ``_claim`` once it has
        committed.
        """
        created = False
        asset = self._repo.get_asset_by_name(study.study_id, name)
        if asset is None:
            asset = self._repo.create_asset(
                study.study_id, name, AssetKind.DATASET, description
            )
            version = self._repo.get_latest_version(asset.asset_id)
            if note:
                version = self._repo.annotate_version(version.version_id, note=note)
            created = True
        else:
            self._require_dataset_asset(asset)
            version = self._repo.new_version(asset.asset_id, note)
        table = TableRef.for_version(study.name, asset.name, version.version)
        dataset = DataSet(
            dataset_id=version.version_id,
            lake_schema=table.schema,
            lake_table=table.name,
            _repo=self._repo,
        )
        self._repo.add_dataset(dataset)
        return Target(asset, version, dataset, new_table=True, created_asset=created)

    @staticmethod
    def _claim(run: PipelineRun, target: Target) -> None:
        """Make a committed new target subject to compensation."""
        run.table = target.dataset.table
        if target.new_table:
            run.created_version_id = target.version.version_id
        if target.created_asset:
            run.created_asset_id = target.asset.asset_id

    def _existing_target(self, study: "Study", name: str) -> Optional[Target]:
        """The latest version of an existing dataset asset, for appends."""
        asset = self._repo.get_asset_by_name(study.study_id, name)
        if asset is None:
            return None
        self._require_dataset_asset(asset)
        version = self._repo.get_latest_version(asset.asset_id)
        dataset = self._repo.get_dataset(version.version_id)
        if dataset is None:
            raise InvariantViolationError(
                f"Latest version of '{name}' has no lake table to append to"
            )
        return Target(asset, version, dataset, new_table=False)

    @staticmethod
    def _require_dataset_asset(asset: "Asset") -> None:
        if AssetKind(asset.kind) != AssetKind.DATASET:
            raise InvariantViolationError(
                f"Asset '{asset.name}' is a {AssetKind(asset.kind).value} asset"
            )

    def _compensate(self, run: PipelineRun) -> None:
        """Undo what a failed run left behind, then mark it FAILED.

        Cleanup problems are logged; the caller re-raises the original
        error.
        """
        steps = []
        if run.lake_open:
            steps.append(("roll back lake transaction", self._lake.rollback))
            run.lake_open = False
        if run.table_created and run.table is not None:
            table = run.table
            steps.append((f"drop {table}", lambda: self._lake.drop_table(table)))
        if run.created_version_id is not None:
            version_id = run.created_version_id
            steps.append((
                f"discard version {version_id}",
                lambda: self._repo.discard_version(version_id),
            ))
        if run.created_asset_id is not None:
            asset_id = run.created_asset_id
            steps.append((
                f"delete asset {asset_id}",
                lambda: self._repo.delete_asset(asset_id),
            ))
        for label, step in steps:
            try:
                step()
            except Exception as exc:
                logger.error("Cleanup step '%s' failed: %s", label, exc)
        if run.state not in _TERMINAL:
            run.advance(IngestState.FAILED)
