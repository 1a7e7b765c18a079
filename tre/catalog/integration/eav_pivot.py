"""Pivot of long-format (entity-attribute-value) exports into datasets.

Survey platforms export one row per ``(record, field_name, value)``.
The transform loads such a file into the lake, folds repeated fields of
a record into one comma-separated value, pivots to one row per record,
casts every column to its declared variable type and materializes the
result as a new dataset version. A ``transform`` transformation links
the file version to the new dataset version.
"""

import itertools
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Optional

from tre.catalog.domain.entities.variable import Variable
from tre.catalog.domain.enums import (
    IngestState,
    KeyRole,
    TransformationType,
    ValueType,
)
from tre.catalog.domain.exceptions import (
    CastError,
    DuplicateNameError,
    EntityNotFoundError,
    LakeError,
)
from tre.catalog.domain.value_objects import SourceRef, quote_ident
from tre.catalog.integration.pipeline import (
    PipelineBase,
    PipelineResult,
    PipelineRun,
)
from tre.log import logger

if TYPE_CHECKING:
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo
    from tre.catalog.domain.entities.study import Domain, Study
    from tre.catalog.domain.services.integrity_service import IntegrityService
    from tre.catalog.infrastructure.gateways.lake_gateway import LakeGateway

logger = logger.getChild(__name__)

EAV_COLUMNS = ("record", "field_name", "value")
MULTI_VALUE_SEPARATOR = ", "

# Survey-platform validation names and the strptime formats they imply.
VALIDATION_FORMATS = {
    "date_mdy": "%m/%d/%Y",
    "date_dmy": "%d/%m/%Y",
    "date_ymd": "%Y-%m-%d",
    "datetime_mdy": "%m/%d/%Y %H:%M",
    "datetime_dmy": "%d/%m/%Y %H:%M",
    "datetime_ymd": "%Y-%m-%d %H:%M",
    "datetime_seconds_mdy": "%m/%d/%Y %H:%M:%S",
    "datetime_seconds_dmy": "%d/%m/%Y %H:%M:%S",
    "datetime_seconds_ymd": "%Y-%m-%d %H:%M:%S",
    "time_mm_ss": "%M:%S",
    "time": "%H:%M",
}
_VALIDATION_TYPES = {
    "integer": ValueType.INTEGER,
    "number": ValueType.FLOAT,
}
_SQL_TYPES = {
    ValueType.INTEGER: "BIGINT",
    ValueType.FLOAT: "DOUBLE",
    ValueType.DATE: "DATE",
    ValueType.TIME: "TIME",
    ValueType.DATETIME: "TIMESTAMP",
}
_TEMP_IDS = itertools.count(1)
# whole numbers only
_INTEGER_PATTERN = r"[+-]?[0-9]+"


def format_for_validation(validation: Optional[str]) -> Optional[str]:
    """strptime format for a validation name, or None."""
    return VALIDATION_FORMATS.get((validation or "").strip().lower())


def value_type_for_validation(validation: Optional[str]) -> ValueType:
    """Canonical type implied by a validation name (STRING if unknown)."""
    name = (validation or "").strip().lower()
    if name in _VALIDATION_TYPES:
        return _VALIDATION_TYPES[name]
    if name.startswith("datetime"):
        return ValueType.DATETIME
    if name.startswith("date"):
        return ValueType.DATE
    if name.startswith("time"):
        return ValueType.TIME
    return ValueType.STRING


def _literal(text: str) -> str:
    return "'" + str(text).replace("'", "''") + "'"


@dataclass
class PivotRequest:
    """What to pivot and where the result goes.

    Attributes:
        file_version_id: AssetVersion id of the EAV DataFile.
        study: Owning study of the new dataset.
        domain: Domain the dataset variables live in.
        dataset_name: Target dataset asset name.
        variables: Declared variables by field name; undeclared fields
                   become string variables.
        description: Asset and transformation description.
        source_ref: Code reference recorded on the transformation.
        note: Note stored on the new version.
    """

    file_version_id: int
    study: "Study"
    domain: "Domain"
    dataset_name: str
    variables: list[Variable] = field(default_factory=list)
    description: str = ""
    source_ref: Optional[SourceRef] = None
    note: str = ""


@dataclass
class PivotResult(PipelineResult):
    """PipelineResult plus the fields found to be multi-valued."""

    multi_valued: list[str] = field(default_factory=list)


class EavPivotTransform(PipelineBase):
    """Reshapes an EAV DataFile version into a wide DataSet version.

    Attributes:
        _integrity: Verifies the file digest before it is read.
    """

    def __init__(
        self,
        repo: "CatalogRepo",
        lake: "LakeGateway",
        integrity: "IntegrityService",
    ) -> None:
        super().__init__(repo, lake)
        self._integrity = integrity

    def run(self, request: PivotRequest) -> PivotResult:
        """Execute one pivot run.

        Raises:
            EntityNotFoundError: If the file version has no DataFile.
            IntegrityError: If the file does not match its digest.
            CastError: If a typed column holds an unparseable value;
                nothing is materialized.
            DuplicateNameError: If a category's raw column would clash
                with a field of the file.
        """
        run = PipelineRun()
        suffix = next(_TEMP_IDS)
        self._long = f"_eav_long_{suffix}"
        self._wide = f"_eav_wide_{suffix}"
        try:
            return self._run(run, request)
        except Exception:
            logger.error(
                "Pivot into '%s' failed in state %s",
                request.dataset_name, run.state.value,
            )
            self._compensate(run)
            raise
        finally:
            for temp in (self._wide, self._long):
                try:
                    self._lake.execute(f"DROP TABLE IF EXISTS {temp}")
                except LakeError as exc:
                    logger.warning("Could not drop %s: %s", temp, exc)

    def _run(self, run: PipelineRun, request: PivotRequest) -> PivotResult:
        repo = self._repo
        datafile = repo.get_datafile(request.file_version_id)
        if datafile is None:
            raise EntityNotFoundError("DataFile", request.file_version_id)
        self._integrity.require_intact(datafile)
        file_version = repo.get_version(request.file_version_id)

        fields = self._load(str(datafile.uri.to_path()))
        multi_valued = self._multi_valued_fields()
        self._widen(fields)
        declared = {v.name: v for v in request.variables}
        columns = self._columns(fields, declared, request.domain.domain_id)
        self._check_casts(columns)
        run.advance(IngestState.SCHEMA_INFERRED)

        with repo.transaction():
            repo.link_study_domain(request.study.study_id, request.domain.domain_id)
            variables = [
                replace(repo.upsert_variable(variable), keyrole=variable.keyrole)
                for variable, _ in columns
            ]
            target = self._new_target(
                request.study, request.dataset_name, request.description, request.note
            )
            repo.set_dataset_variables(target.dataset.dataset_id, variables)
        self._claim(run, target)
        table = target.dataset.table
        run.advance(IngestState.TARGET_CREATED)

        self._lake.begin()
        run.lake_open = True
        self._lake.execute(f"CREATE SCHEMA IF NOT EXISTS {quote_ident(table.schema)}")
        run.table_created = True
        selected = ", ".join(
            f"{expr} AS {quote_ident(variable.name)}" for variable, expr in columns
        )
        self._lake.execute(
            f"CREATE TABLE {table.qualified} AS SELECT {selected} "
            f"FROM {self._wide} "
            "ORDER BY TRY_CAST(record AS BIGINT) NULLS LAST, record"
        )
        (rows,) = self._lake.execute(f"SELECT count(*) FROM {table.qualified}").fetchone()
        self._lake.commit()
        run.lake_open = False
        run.advance(IngestState.ROWS_STREAMED)

        with repo.transaction():
            transformation = repo.record_transformation(
                TransformationType.TRANSFORM,
                request.description or f"Pivot EAV file into {request.dataset_name}",
                request.source_ref,
            )
            repo.link_input(transformation.transformation_id, file_version.version_id)
            repo.link_output(transformation.transformation_id, target.version.version_id)
        run.advance(IngestState.PROVENANCE_RECORDED)
        run.advance(IngestState.DONE)
        logger.info(
            "Pivoted %d fields into %d rows of %s", len(fields), rows, table
        )
        return PivotResult(
            asset=target.asset,
            version=target.version,
            dataset=target.dataset,
            transformation=transformation,
            variables=variables,
            rows=rows,
            history=list(run.history),
            multi_valued=multi_valued,
        )

    # ── Reshaping ────────────────────────────────────────────

    def _load(self, path: str) -> list[str]:
        """Load the file into a temp table; return fields by first appearance."""
        self._lake.execute(
            f"CREATE OR REPLACE TEMP TABLE {self._long} AS "
            "SELECT row_number() OVER () AS _row, * "
            f"FROM read_csv({_literal(path)}, all_varchar = true, header = true)"
        )
        described = self._lake.execute(f"SELECT * FROM {self._long} LIMIT 0").description
        names = {col[0] for col in described}
        missing = [name for name in EAV_COLUMNS if name not in names]
        if missing:
            raise LakeError(f"EAV file lacks columns: {', '.join(missing)}")
        fields = [
            row[0] for row in self._lake.execute(
                f"SELECT field_name FROM {self._long} "
                "WHERE field_name IS NOT NULL AND record IS NOT NULL "
                "GROUP BY field_name ORDER BY min(_row)"
            ).fetchall()
        ]
        if not fields:
            raise LakeError("EAV file holds no fields")
        if "record" in fields:
            raise LakeError("EAV field name 'record' collides with the record key")
        return fields

    def _multi_valued_fields(self) -> list[str]:
        rows = self._lake.execute(
            "SELECT field_name FROM ("
            f"  SELECT record, field_name, min(_row) AS first_row FROM {self._long}"
            "   GROUP BY record, field_name HAVING count(*) > 1"
            ") GROUP BY field_name ORDER BY min(first_row)"
        ).fetchall()
        return [row[0] for row in rows]

    def _widen(self, fields: list[str]) -> None:
        """Fold repeated values, then pivot to one row per record."""
        pivoted = ", ".join(
            f"any_value(value) FILTER (WHERE field_name = {_literal(name)}) "
            f"AS {quote_ident(name)}"
            for name in fields
        )
        self._lake.execute(
            f"CREATE OR REPLACE TEMP TABLE {self._wide} AS "
            "WITH prepped AS ("
            "  SELECT record, field_name,"
            f"         string_agg(value, {_literal(MULTI_VALUE_SEPARATOR)} ORDER BY _row) AS value"
            f"  FROM {self._long}"
            "  WHERE record IS NOT NULL AND field_name IS NOT NULL"
            "  GROUP BY record, field_name"
            f") SELECT record, {pivoted} FROM prepped GROUP BY record"
        )

    # ── Casting ──────────────────────────────────────────────

    def _columns(
        self, fields: list[str], declared: dict[str, Variable], domain_id: int
    ) -> list[tuple[Variable, str]]:
        """Output variables with the SQL expression producing each column."""
        record = declared.get("record") or Variable(name="record")
        columns = [(
            replace(record, domain_id=domain_id, keyrole=KeyRole.RECORD),
            self._cast_expr("record", record),
        )]
        taken = {name.lower() for name in fields}
        for name in fields:
            variable = replace(
                declared.get(name) or Variable(name=name), domain_id=domain_id
            )
            columns.append((variable, self._cast_expr(name, variable)))
            if variable.value_type == ValueType.CATEGORY:
                if f"{name}_raw".lower() in taken:
                    raise DuplicateNameError("Variable", f"{name}_raw")
                raw = Variable(
                    domain_id=domain_id,
                    name=f"{name}_raw",
                    description=f"Unparsed values of {name}",
                )
                columns.append((raw, quote_ident(name)))
        return columns

    @staticmethod
    def _cast_expr(name: str, variable: Variable) -> str:
        value = f"NULLIF(trim({quote_ident(name)}), '')"
        value_type = ValueType(variable.value_type)
        if value_type in (ValueType.CATEGORY, ValueType.INTEGER):
            sql_type = "INTEGER" if value_type == ValueType.CATEGORY else "BIGINT"
            return (
                f"CASE WHEN regexp_full_match({value}, {_literal(_INTEGER_PATTERN)}) "
                f"THEN TRY_CAST({value} AS {sql_type}) END"
            )
        sql_type = _SQL_TYPES.get(value_type)
        if sql_type is None:
            return quote_ident(name)
        if value_type.is_temporal and variable.value_format:
            return (
                f"CAST(try_strptime({value}, {_literal(variable.value_format)}) "
                f"AS {sql_type})"
            )
        return f"TRY_CAST({value} AS {sql_type})"

    def _check_casts(self, columns: list[tuple[Variable, str]]) -> None:
        """Raise CastError for the first typed column with a bad value."""
        for variable, expr in columns:
            value_type = ValueType(variable.value_type)
            if value_type not in _SQL_TYPES:
                continue
            source = quote_ident(variable.name)
            row = self._lake.execute(
                f"SELECT {source} FROM {self._wide} "
                f"WHERE NULLIF(trim({source}), '') IS NOT NULL "
                f"AND ({expr}) IS NULL LIMIT 1"
            ).fetchone()
            if row is not None:
                raise CastError(variable.name, value_type.value, row[0])
