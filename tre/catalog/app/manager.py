"""Facade for catalog operations.

Wires together all layers: creates the SQLite catalog repository, the
DuckDB lake, the local file store, factories, domain services and
pipelines. Every collaborator is created lazily on first use.
"""

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Optional, Union

from tre.catalog.domain.enums import AssetKind, SourceFlavour
from tre.catalog.domain.exceptions import EntityNotFoundError
from tre.catalog.domain.value_objects import SourceRef, VersionNumber
from tre.config import CatalogConfig
from tre.log import logger

if TYPE_CHECKING:
    from tre.catalog.app.factory.study_factory import StudyFactory
    from tre.catalog.app.schema_inference import SchemaInference
    from tre.catalog.data.adapters.duckdb_lake_adapter import DuckDBLakeAdapter
    from tre.catalog.data.adapters.local_file_adapter import LocalFileAdapter
    from tre.catalog.data.catalogrepo_sqlite import CatalogRepoSQLite
    from tre.catalog.domain.entities.asset import Asset
    from tre.catalog.domain.entities.assetversion import AssetVersion
    from tre.catalog.domain.entities.datafile import DataFile
    from tre.catalog.domain.entities.study import Domain, Study
    from tre.catalog.domain.entities.variable import (
        Variable,
        VariableDescriptor,
        Vocabulary,
    )
    from tre.catalog.domain.services.integrity_service import IntegrityService
    from tre.catalog.domain.services.lineage_service import LineageService
    from tre.catalog.infrastructure.gateways.schema_probe import SchemaProbe
    from tre.catalog.integration.eav_pivot import EavPivotTransform, PivotResult
    from tre.catalog.integration.export import DatasetExporter, ExportResult
    from tre.catalog.integration.ingest import IngestPipeline
    from tre.catalog.integration.pipeline import PipelineResult

logger = logger.getChild(__name__)


class CatalogManager:
    """Facade for catalog operations.

    Attributes:
        config: Runtime configuration.
    """

    def __init__(
        self,
        config: Optional[CatalogConfig] = None,
        catalogrepo: Optional["CatalogRepoSQLite"] = None,
        lake: Optional["DuckDBLakeAdapter"] = None,
    ) -> None:
        self.config = config or CatalogConfig()
        self._catalogrepo = catalogrepo
        self._lake = lake
        self._storage_gateway: Optional["LocalFileAdapter"] = None
        self._study_factory: Optional["StudyFactory"] = None
        self._inference: Optional["SchemaInference"] = None
        self._lineage_service: Optional["LineageService"] = None
        self._integrity_service: Optional["IntegrityService"] = None
        self._ingest_pipeline: Optional["IngestPipeline"] = None
        self._pivot_transform: Optional["EavPivotTransform"] = None
        self._exporter: Optional["DatasetExporter"] = None

    # ── Lazy collaborators ────────────────────────────────────

    @property
    def catalogrepo(self) -> "CatalogRepoSQLite":
        if self._catalogrepo is None:
            from tre.catalog.data.catalogrepo_sqlite import CatalogRepoSQLite

            self._catalogrepo = CatalogRepoSQLite(
                self.config.store_path,
                timeout=self.config.store_timeout,
                storage_gateway=self.storage_gateway,
            )
        return self._catalogrepo

    @property
    def lake(self) -> "DuckDBLakeAdapter":
        if self._lake is None:
            from tre.catalog.data.adapters.duckdb_lake_adapter import (
                DuckDBLakeAdapter,
            )

            self._lake = DuckDBLakeAdapter(self.config.lake_path)
        return self._lake

    @property
    def storage_gateway(self) -> "LocalFileAdapter":
        if self._storage_gateway is None:
            from tre.catalog.data.adapters.local_file_adapter import (
                LocalFileAdapter,
            )

            self._storage_gateway = LocalFileAdapter(self.config.file_store)
        return self._storage_gateway

    @property
    def study_factory(self) -> "StudyFactory":
        if self._study_factory is None:
            from tre.catalog.app.factory.study_factory import StudyFactory

            self._study_factory = StudyFactory(self.catalogrepo)
        return self._study_factory

    @property
    def inference(self) -> "SchemaInference":
        if self._inference is None:
            from tre.catalog.app.schema_inference import SchemaInference
            from tre.catalog.domain.services.category_detection import (
                CategoryDetectorChain,
                default_detectors,
            )

            self._inference = SchemaInference(
                CategoryDetectorChain(
                    default_detectors(self.config.code_table_max_rows)
                )
            )
        return self._inference

    @property
    def lineage_service(self) -> "LineageService":
        if self._lineage_service is None:
            from tre.catalog.domain.services.lineage_service import (
                LineageService,
            )

            self._lineage_service = LineageService(self.catalogrepo)
        return self._lineage_service

    @property
    def integrity_service(self) -> "IntegrityService":
        if self._integrity_service is None:
            from tre.catalog.domain.services.integrity_service import (
                IntegrityService,
            )

            self._integrity_service = IntegrityService(self.storage_gateway)
        return self._integrity_service

    @property
    def ingest_pipeline(self) -> "IngestPipeline":
        if self._ingest_pipeline is None:
            from tre.catalog.integration.ingest import IngestPipeline

            self._ingest_pipeline = IngestPipeline(
                self.catalogrepo,
                self.lake,
                self.inference,
                batch_size=self.config.batch_size,
            )
        return self._ingest_pipeline

    @property
    def pivot_transform(self) -> "EavPivotTransform":
        if self._pivot_transform is None:
            from tre.catalog.integration.eav_pivot import EavPivotTransform

            self._pivot_transform = EavPivotTransform(
                self.catalogrepo, self.lake, self.integrity_service
            )
        return self._pivot_transform

    @property
    def exporter(self) -> "DatasetExporter":
        if self._exporter is None:
            from tre.catalog.integration.export import DatasetExporter

            self._exporter = DatasetExporter(self.catalogrepo, self.lake)
        return self._exporter

    # ── Studies and domains ───────────────────────────────────

    def create_study(
        self, name: str, description: str = "", study_type: str = ""
    ) -> "Study":
        study = self.study_factory.create(name, description, study_type)
        return self.catalogrepo.add_study(study)

    def get_study(self, name: str) -> "Study":
        study = self.catalogrepo.get_study_by_name(name)
        if study is None:
            raise EntityNotFoundError("Study", name)
        return study

    def add_domain(
        self,
        name: str,
        uri: Optional[str] = None,
        description: str = "",
        study: Optional["Study"] = None,
    ) -> "Domain":
        """Create a domain, optionally linking it to a study."""
        from tre.catalog.domain.entities.study import Domain

        domain = self.catalogrepo.add_domain(
            Domain(name=name, uri=uri, description=description)
        )
        if study is not None:
            study.add_domain(domain)
        return domain

    def get_domain(self, name: str, uri: Optional[str] = None) -> "Domain":
        domain = self.catalogrepo.get_domain_by_name(name, uri)
        if domain is None:
            raise EntityNotFoundError("Domain", name if uri is None else f"{name} <{uri}>")
        return domain

    def get_vocabulary(
        self, name: str, domain: Optional["Domain"] = None
    ) -> "Vocabulary":
        """Look up a vocabulary by name, scoped to a domain if given.

        Raises:
            AmbiguousNameError: If unscoped and several domains use ``name``.
            EntityNotFoundError: If no vocabulary matches.
        """
        vocabulary = self.catalogrepo.get_vocabulary_by_name(
            name, domain.domain_id if domain is not None else None
        )
        if vocabulary is None:
            raise EntityNotFoundError("Vocabulary", name)
        return vocabulary

    # ── Sources and ingestion ─────────────────────────────────

    @contextmanager
    def open_probe(
        self, source: Any, flavour: Union[str, SourceFlavour]
    ) -> Iterator["SchemaProbe"]:
        """Bind a SchemaProbe to a connection, or to a path/DSN to open.

        A connection opened here is closed on exit; a caller-supplied
        connection is left open.
        """
        from tre.catalog.app.factory.probe_factory import (
            ProbeFactory,
            connect_source,
        )

        if not isinstance(source, (str, os.PathLike)):
            yield ProbeFactory.create(flavour, source)
            return
        conn = connect_source(flavour, os.fspath(source))
        try:
            yield ProbeFactory.create(flavour, conn)
        finally:
            conn.close()

    def infer_schema(
        self, source: Any, flavour: Union[str, SourceFlavour], query: str
    ) -> list["VariableDescriptor"]:
        with self.open_probe(source, flavour) as probe:
            return self.inference.infer(probe, query)

    def ingest(
        self,
        source: Any,
        flavour: Union[str, SourceFlavour],
        query: str,
        study: "Study",
        domain: "Domain",
        dataset_name: str,
        description: str = "",
        replace: bool = False,
        source_ref: Optional[SourceRef] = None,
    ) -> "PipelineResult":
        from tre.catalog.integration.ingest import IngestRequest

        with self.open_probe(source, flavour) as probe:
            return self.ingest_pipeline.run(
                IngestRequest(
                    probe=probe,
                    query=query,
                    study=study,
                    domain=domain,
                    dataset_name=dataset_name,
                    description=description,
                    replace=replace,
                    source_ref=source_ref,
                )
            )

    # ── Files and transforms ──────────────────────────────────

    def register_datafile(
        self,
        study: "Study",
        name: str,
        path: str,
        description: str = "",
        note: str = "",
        compressed: bool = False,
        encrypted: bool = False,
    ) -> tuple["AssetVersion", "DataFile"]:
        """Store a local file as a new version of a file asset.

        The file is copied into the file store and its SHA-256 digest
        recorded on the DataFile row.
        """
        from tre.catalog.domain.entities.datafile import DataFile

        repo = self.catalogrepo
        with repo.transaction():
            asset = repo.get_asset_by_name(study.study_id, name)
            if asset is None:
                asset = repo.create_asset(study.study_id, name, AssetKind.FILE, description)
                version = repo.get_latest_version(asset.asset_id)
                if note:
                    version = repo.annotate_version(version.version_id, note=note)
            else:
                version = repo.new_version(asset.asset_id, note)
            key = "/".join(
                (study.name, name, str(version.version), os.path.basename(path))
            )
            uri, digest = self.storage_gateway.push(path, key)
            datafile = DataFile(
                datafile_id=version.version_id,
                storage_uri=uri,
                digest=digest.value,
                digest_algorithm=digest.algorithm,
                compressed=compressed,
                encrypted=encrypted,
            )
            repo.add_datafile(datafile)
        logger.info("Registered %s as %s %s", path, name, version)
        return version, repo.get_datafile(version.version_id)

    def verify_datafile(self, version_id: int) -> bool:
        datafile = self.catalogrepo.get_datafile(version_id)
        if datafile is None:
            raise EntityNotFoundError("DataFile", version_id)
        return self.integrity_service.verify_datafile(datafile)

    def pivot(
        self,
        file_version_id: int,
        study: "Study",
        domain: "Domain",
        dataset_name: str,
        variables: Optional[list["Variable"]] = None,
        description: str = "",
        source_ref: Optional[SourceRef] = None,
    ) -> "PivotResult":
        from tre.catalog.integration.eav_pivot import PivotRequest

        return self.pivot_transform.run(
            PivotRequest(
                file_version_id=file_version_id,
                study=study,
                domain=domain,
                dataset_name=dataset_name,
                variables=list(variables or ()),
                description=description,
                source_ref=source_ref,
            )
        )

    def export(
        self, version_id: int, path: str, fmt: Optional[str] = None,
        source_ref: Optional[SourceRef] = None,
    ) -> "ExportResult":
        return self.exporter.export(version_id, path, fmt, source_ref=source_ref)

    # ── Versions and lineage ──────────────────────────────────

    def get_asset(self, study: "Study", name: str) -> "Asset":
        return study.getasset(name)

    def resolve_version(
        self,
        study: "Study",
        name: str,
        version: Union[VersionNumber, str, None] = None,
    ) -> "AssetVersion":
        """A specific version of an asset, or its latest."""
        asset = study.getasset(name)
        return asset.get_latest() if version is None else asset.getversion(version)

    def read_dataset(self, version_id: int) -> tuple[list[str], list[tuple]]:
        """Column names and rows of a dataset version, in stored order."""
        dataset = self.catalogrepo.get_dataset(version_id)
        if dataset is None:
            raise EntityNotFoundError("DataSet", version_id)
        return (
            self.lake.column_names(dataset.table),
            self.lake.fetch_rows(dataset.table),
        )

    def lineage(self, version_id: int) -> list["AssetVersion"]:
        return self.lineage_service.get_lineage(version_id)

    def descendants(self, version_id: int) -> list["AssetVersion"]:
        return self.lineage_service.get_descendants(version_id)

    def close(self) -> None:
        """Release all held resources."""
        if self._catalogrepo is not None:
            self._catalogrepo.close()
            self._catalogrepo = None
        if self._lake is not None:
            self._lake.close()
            self._lake = None
        self._storage_gateway = None
        self._study_factory = None
        self._inference = None
        self._lineage_service = None
        self._integrity_service = None
        self._ingest_pipeline = None
        self._pivot_transform = None
        self._exporter = None
