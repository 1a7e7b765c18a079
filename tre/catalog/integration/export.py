"""Export of dataset versions from the lake to delimited or Parquet files.

Each export is recorded as an ``export`` transformation whose input is
the exported version; exports have no outputs in the ledger.
"""

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from tre.catalog.domain.enums import TransformationType
from tre.catalog.domain.exceptions import EntityNotFoundError
from tre.catalog.domain.value_objects import SourceRef
from tre.log import logger

if TYPE_CHECKING:
    from tre.catalog.data.adapters.duckdb_lake_adapter import DuckDBLakeAdapter
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo
    from tre.catalog.domain.entities.transformation import Transformation

logger = logger.getChild(__name__)


@dataclass
class ExportResult:
    path: str
    format: str
    transformation: "Transformation"


class DatasetExporter:
    """Writes a dataset version's lake table to a file.

    Attributes:
        _repo: Metadata store.
        _lake: Lake holding the table.
    """

    def __init__(self, repo: "CatalogRepo", lake: "DuckDBLakeAdapter") -> None:
        self._repo = repo
        self._lake = lake

    def export(
        self,
        version_id: int,
        path: str,
        fmt: Optional[str] = None,
        description: str = "",
        source_ref: Optional[SourceRef] = None,
    ) -> ExportResult:
        """Export one dataset version and record the export.

        Args:
            version_id: Dataset version to export.
            path: Destination file.
            fmt: "csv" or "parquet"; inferred from the extension if omitted.
            description: Transformation description.
            source_ref: Code reference recorded on the transformation.

        Raises:
            EntityNotFoundError: If the version has no DataSet.
            LakeError: If the format is unsupported or the copy fails.
        """
        dataset = self._repo.get_dataset(version_id)
        if dataset is None:
            raise EntityNotFoundError("DataSet", version_id)
        fmt = (fmt or os.path.splitext(path)[1].lstrip(".") or "csv").lower()
        path = os.path.abspath(path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        self._lake.export_table(dataset.table, path, fmt)
        try:
            with self._repo.transaction():
                transformation = self._repo.record_transformation(
                    TransformationType.EXPORT,
                    description or f"Export {dataset.table} to {fmt}",
                    source_ref,
                )
                self._repo.link_input(transformation.transformation_id, version_id)
        except Exception:
            # An unrecorded export must not leave a file behind.
            if os.path.exists(path):
                os.remove(path)
            raise
        logger.info("Exported %s to %s", dataset.table, path)
        return ExportResult(path=path, format=fmt, transformation=transformation)
