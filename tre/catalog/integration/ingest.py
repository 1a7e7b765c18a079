"""Ingestion of an SQL source query into a lake-backed dataset version.

The run infers the query's schema, registers its variables, creates the
target version and lake table, streams rows across in batches, and
records an ``ingest`` transformation whose output is the version.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from tre.catalog.data.adapters.duckdb_lake_adapter import lake_type
from tre.catalog.domain.entities.variable import Variable
from tre.catalog.domain.enums import IngestState, TransformationType, ValueType
from tre.catalog.domain.exceptions import (
    CastError,
    InvariantViolationError,
    SchemaProbeError,
)
from tre.catalog.domain.value_objects import SourceRef
from tre.catalog.integration.pipeline import (
    PipelineBase,
    PipelineResult,
    PipelineRun,
)
from tre.log import logger

if TYPE_CHECKING:
    from tre.catalog.app.schema_inference import SchemaInference
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo
    from tre.catalog.domain.entities.study import Domain, Study
    from tre.catalog.infrastructure.gateways.lake_gateway import LakeGateway
    from tre.catalog.infrastructure.gateways.schema_probe import SchemaProbe

logger = logger.getChild(__name__)

DEFAULT_BATCH_SIZE = 1000


@dataclass
class IngestRequest:
    """What to ingest and where.

    Attributes:
        probe: Probe bound to the source connection.
        query: SELECT to run against the source.
        study: Owning study; its name is the lake schema.
        domain: Domain the variables are registered in.
        dataset_name: Target asset name within the study.
        description: Asset and transformation description.
        replace: Create a new version instead of appending to the latest.
        source_ref: Code reference recorded on the transformation.
        note: Note stored on a newly created version.
    """

    probe: "SchemaProbe"
    query: str
    study: "Study"
    domain: "Domain"
    dataset_name: str
    description: str = ""
    replace: bool = False
    source_ref: Optional[SourceRef] = None
    note: str = ""


class IngestPipeline(PipelineBase):
    """Loads source query results into the lake under catalog control.

    Attributes:
        _inference: Schema inference used for step one.
        batch_size: Rows per fetch/append batch.
    """

    def __init__(
        self,
        repo: "CatalogRepo",
        lake: "LakeGateway",
        inference: "SchemaInference",
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        super().__init__(repo, lake)
        self._inference = inference
        self.batch_size = batch_size

    def run(self, request: IngestRequest) -> PipelineResult:
        """Execute one ingestion run.

        Returns:
            The result with the target version and row count.

        Raises:
            CatalogError: On any failure, after the run's partial work
                has been compensated.
        """
        run = PipelineRun()
        try:
            return self._run(run, request)
        except Exception:
            logger.error(
                "Ingest of '%s' failed in state %s",
                request.dataset_name, run.state.value,
            )
            self._compensate(run)
            raise

    def _run(self, run: PipelineRun, request: IngestRequest) -> PipelineResult:
        repo = self._repo
        study, domain = request.study, request.domain
        descriptors = self._inference.infer(request.probe, request.query)

        with repo.transaction():
            repo.link_study_domain(study.study_id, domain.domain_id)
            variables = self._inference.register_variables(
                repo, domain.domain_id, descriptors
            )
            run.advance(IngestState.SCHEMA_INFERRED)
            target = None if request.replace else self._existing_target(
                study, request.dataset_name
            )
            if target is None:
                target = self._new_target(
                    study, request.dataset_name, request.description, request.note
                )
                repo.set_dataset_variables(target.dataset.dataset_id, variables)
            else:
                self._check_append_schema(target.dataset.dataset_id, variables)
        self._claim(run, target)
        table = target.dataset.table

        self._lake.begin()
        run.lake_open = True
        if target.new_table:
            self._lake.create_table(
                table, [(v.name, lake_type(v.value_type)) for v in variables]
            )
            run.table_created = True
        run.advance(IngestState.TARGET_CREATED)

        rows = self._stream(request, variables, table)
        self._lake.commit()
        run.lake_open = False
        run.advance(IngestState.ROWS_STREAMED)

        with repo.transaction():
            transformation = repo.record_transformation(
                TransformationType.INGEST,
                request.description or f"Ingest {request.dataset_name}",
                request.source_ref,
            )
            repo.link_output(
                transformation.transformation_id, target.version.version_id
            )
        run.advance(IngestState.PROVENANCE_RECORDED)
        run.advance(IngestState.DONE)
        logger.info(
            "Ingested %d rows into %s (%s)", rows, table, target.version
        )
        return PipelineResult(
            asset=target.asset,
            version=target.version,
            dataset=target.dataset,
            transformation=transformation,
            variables=variables,
            rows=rows,
            history=list(run.history),
        )

    def _check_append_schema(
        self, dataset_id: int, variables: list[Variable]
    ) -> None:
        existing = [v.name for v in self._repo.list_dataset_variables(dataset_id)]
        incoming = [v.name for v in variables]
        if existing != incoming:
            raise InvariantViolationError(
                f"Cannot append: columns {incoming} differ from {existing}"
            )

    def _stream(self, request: IngestRequest, variables: list[Variable], table) -> int:
        names, batches = request.probe.stream(request.query, self.batch_size)
        expected = [v.name for v in variables]
        if [n.lower() for n in names] != [n.lower() for n in expected]:
            raise SchemaProbeError(
                "execute source query",
                f"result columns {names} differ from inferred {expected}",
            )
        converters = self._converters(variables)
        total = 0
        for batch in batches:
            if converters:
                batch = [self._convert(row, converters) for row in batch]
            total += self._lake.append_rows(table, batch)
            logger.debug("Appended %d rows to %s", total, table)
        return total

    def _converters(
        self, variables: list[Variable]
    ) -> dict[int, Callable[[Any], Any]]:
        """Per-column translation of category labels to their codes."""
        converters = {}
        for index, variable in enumerate(variables):
            if variable.value_type != ValueType.CATEGORY or variable.vocabulary_id is None:
                continue
            vocabulary = self._repo.get_vocabulary(variable.vocabulary_id)
            codes = {item.code: item.value for item in vocabulary.items}
            converters[index] = _category_converter(variable.name, codes)
        return converters

    @staticmethod
    def _convert(row, converters) -> tuple:
        return tuple(
            converters[i](value) if i in converters else value
            for i, value in enumerate(row)
        )


def _category_converter(name: str, codes: dict[str, int]) -> Callable[[Any], Any]:
    def convert(value):
        if value is None or isinstance(value, int):
            return value
        text = str(value)
        if text in codes:
            return codes[text]
        try:
            return int(text)
        except ValueError:
            raise CastError(name, ValueType.CATEGORY.value, text) from None

    return convert
