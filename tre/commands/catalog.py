"""CLI commands for the research data catalog.

Provides the ``tre catalog`` command group with subcommands for
studies, domains, assets and versions, ingestion, EAV pivots, data
files, export, lineage and vocabularies.
"""

from typing import TYPE_CHECKING, Optional

from tre.cli.command import CmdBase
from tre.log import logger

if TYPE_CHECKING:
    from tre.catalog.domain.entities.assetversion import AssetVersion
    from tre.catalog.domain.entities.study import Study

logger = logger.getChild(__name__)


class CmdCatalogBase(CmdBase):
    """Shared lookups for catalog commands."""

    def _study(self, name: str) -> "Study":
        return self.catalog.get_study(name)

    def _version(
        self, study: "Study", asset: str, version: Optional[str] = None
    ) -> "AssetVersion":
        return self.catalog.resolve_version(study, asset, version)

    def _label(self, version: "AssetVersion") -> str:
        asset = self.catalog.catalogrepo.get_asset(version.asset_id)
        return f"{asset.name} {version}"

    def _source_ref(self):
        from tre.catalog.integration.sourceref import git_source_ref

        script = getattr(self.args, "script", None)
        if script is None:
            return None
        return git_source_ref(script)


class CmdCatalogStudyList(CmdCatalogBase):
    """List all studies."""

    def run(self):
        from tre.ui import ui

        studies = self.catalog.catalogrepo.list_studies()
        if not studies:
            ui.write("No studies found.")
            return 0
        for study in studies:
            assets = study.listassets()
            ui.write(
                f"  {study.name}  "
                f"({len(assets)} asset{'s' if len(assets) != 1 else ''})"
                + (f"  [{study.study_type}]" if study.study_type else "")
            )
        return 0


class CmdCatalogStudyCreate(CmdCatalogBase):
    """Create a new study."""

    def run(self):
        from tre.ui import ui

        study = self.catalog.create_study(
            self.args.name,
            description=self.args.description or "",
            study_type=self.args.type or "",
        )
        ui.write(f"Created study '{study.name}' ({study.study_id})")
        return 0


class CmdCatalogDomainAdd(CmdCatalogBase):
    """Create a domain, optionally linked to a study."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study) if self.args.study else None
        domain = self.catalog.add_domain(
            self.args.name,
            uri=self.args.uri,
            description=self.args.description or "",
            study=study,
        )
        ui.write(f"Created domain '{domain.name}' ({domain.domain_id})")
        return 0


class CmdCatalogAssetList(CmdCatalogBase):
    """List the assets of a study."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        assets = study.listassets()
        if not assets:
            ui.write(f"No assets in study '{study.name}'.")
            return 0
        ui.table(
            (
                (asset.name, asset.kind.value, str(asset.get_latest()))
                for asset in assets
            ),
            headers=("Asset", "Kind", "Latest"),
        )
        return 0


class CmdCatalogVersionList(CmdCatalogBase):
    """List the versions of an asset."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        asset = study.getasset(self.args.asset)
        ui.table(
            (
                (
                    str(v),
                    "latest" if v.is_latest else "",
                    v.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                    v.doi or "",
                    v.note,
                )
                for v in asset.list_versions()
            ),
            headers=("Version", "", "Created", "DOI", "Note"),
        )
        return 0


class CmdCatalogShow(CmdCatalogBase):
    """Show the columns of a dataset version or the file behind a file version."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        version = self._version(study, self.args.asset, self.args.version)
        repo = self.catalog.catalogrepo
        ui.write(f"Asset:   {self._label(version)}")
        dataset = repo.get_dataset(version.version_id)
        if dataset is not None:
            ui.write(f"Table:   {dataset.table}")
            ui.table(
                (
                    (v.name, v.value_type.value, v.keyrole.value, v.description)
                    for v in dataset.variables()
                ),
                headers=("Column", "Type", "Key", "Description"),
            )
            return 0
        datafile = repo.get_datafile(version.version_id)
        if datafile is not None:
            ui.write(f"URI:     {datafile.storage_uri}")
            ui.write(f"Digest:  {datafile.digest_algorithm}:{datafile.digest}")
        return 0


class CmdCatalogIngest(CmdCatalogBase):
    """Ingest an SQL query result as a dataset version."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        domain = self.catalog.get_domain(self.args.domain, self.args.uri)
        query = self.args.query
        if self.args.query_file:
            with open(self.args.query_file, encoding="utf-8") as fobj:
                query = fobj.read()
        if not query:
            ui.error_write("Either --query or --query-file is required.")
            return 1
        result = self.catalog.ingest(
            self.args.source,
            self.args.flavour,
            query,
            study,
            domain,
            self.args.name,
            description=self.args.description or "",
            replace=self.args.replace,
            source_ref=self._source_ref(),
        )
        ui.write(
            f"Ingested {result.rows} row{'s' if result.rows != 1 else ''} "
            f"into '{result.asset.name}' {result.version} ({result.dataset.table})"
        )
        return 0


class CmdCatalogRegisterFile(CmdCatalogBase):
    """Register a local file as a new file-asset version."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        version, datafile = self.catalog.register_datafile(
            study,
            self.args.name,
            self.args.path,
            description=self.args.description or "",
            note=self.args.note or "",
        )
        ui.write(
            f"Registered '{self.args.name}' {version} "
            f"{datafile.digest_algorithm}:{datafile.digest[:12]}"
        )
        return 0


class CmdCatalogVerify(CmdCatalogBase):
    """Check a file version's stored bytes against its digest."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        version = self._version(study, self.args.asset, self.args.version)
        if self.catalog.verify_datafile(version.version_id):
            ui.write(f"{self._label(version)}: OK")
            return 0
        ui.error_write(f"{self._label(version)}: digest mismatch")
        return 1


class CmdCatalogPivot(CmdCatalogBase):
    """Pivot a registered EAV file into a wide dataset version."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        domain = self.catalog.get_domain(self.args.domain, self.args.uri)
        source = self._version(study, self.args.file, self.args.file_version)
        result = self.catalog.pivot(
            source.version_id,
            study,
            domain,
            self.args.name,
            variables=_parse_variables(self.args.var or ()),
            description=self.args.description or "",
            source_ref=self._source_ref(),
        )
        ui.write(
            f"Pivoted {self._label(source)} into '{result.asset.name}' "
            f"{result.version}: {result.rows} record"
            f"{'s' if result.rows != 1 else ''}, "
            f"{len(result.variables)} columns"
        )
        if result.multi_valued:
            ui.write("Multi-valued fields: " + ", ".join(result.multi_valued))
        return 0


class CmdCatalogExport(CmdCatalogBase):
    """Export a dataset version to CSV or Parquet."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        version = self._version(study, self.args.asset, self.args.version)
        result = self.catalog.export(
            version.version_id,
            self.args.path,
            self.args.format,
            source_ref=self._source_ref(),
        )
        ui.write(f"Exported {self._label(version)} to {result.path}")
        return 0


class CmdCatalogLineage(CmdCatalogBase):
    """Show the versions upstream (or downstream) of a version."""

    def run(self):
        from tre.ui import ui

        study = self._study(self.args.study)
        version = self._version(study, self.args.asset, self.args.version)
        if self.args.descendants:
            related = self.catalog.descendants(version.version_id)
            direction = "downstream"
        else:
            related = self.catalog.lineage(version.version_id)
            direction = "upstream"
        if not related:
            ui.write(f"Nothing {direction} of {self._label(version)}.")
            return 0
        for other in related:
            ui.write(f"  {self._label(other)}")
        return 0


class CmdCatalogVocab(CmdCatalogBase):
    """Show the items of a vocabulary."""

    def run(self):
        from tre.ui import ui

        domain = (
            self.catalog.get_domain(self.args.domain, self.args.uri)
            if self.args.domain
            else None
        )
        vocabulary = self.catalog.get_vocabulary(self.args.name, domain)
        ui.write(f"{vocabulary.name}: {vocabulary.description}".rstrip(": "))
        ui.table(
            ((item.value, item.code, item.description) for item in vocabulary.items),
            headers=("Value", "Code", "Description"),
        )
        return 0


def _parse_variables(specs):
    """Variables from ``name`` or ``name:validation`` declarations."""
    from tre.catalog.domain.entities.variable import Variable
    from tre.catalog.integration.eav_pivot import (
        format_for_validation,
        value_type_for_validation,
    )

    variables = []
    for spec in specs:
        name, _, validation = spec.partition(":")
        if not name:
            raise ValueError(f"Invalid variable declaration: '{spec}'")
        variables.append(
            Variable(
                name=name,
                value_type=value_type_for_validation(validation),
                value_format=format_for_validation(validation),
            )
        )
    return variables


def _add_version_arg(parser):
    parser.add_argument(
        "--version", help="Version (e.g. 1.0.2); defaults to the latest."
    )


def _add_domain_args(parser):
    parser.add_argument("domain", help="Domain name.")
    parser.add_argument("--uri", help="Domain URI, when names repeat.")


def _add_script_arg(parser):
    parser.add_argument(
        "--script",
        help="Script to record (with its git commit) as the source reference.",
    )


def add_parser(subparsers, parent_parser):
    """Register ``tre catalog`` command group with subcommands."""
    CATALOG_HELP = "Manage studies, assets, versions and provenance."

    catalog_parser = subparsers.add_parser(
        "catalog",
        parents=[parent_parser],
        help=CATALOG_HELP,
        formatter_class=parent_parser.formatter_class,
    )

    catalog_subparsers = catalog_parser.add_subparsers(
        dest="cmd",
        help="Use `tre catalog CMD --help` for command-specific help.",
    )

    # -- studies --
    study_list_parser = catalog_subparsers.add_parser(
        "studies", parents=[parent_parser], help="List all studies."
    )
    study_list_parser.set_defaults(func=CmdCatalogStudyList)

    study_create_parser = catalog_subparsers.add_parser(
        "create-study", parents=[parent_parser], help="Create a new study."
    )
    study_create_parser.add_argument("name", help="Study name.")
    study_create_parser.add_argument(
        "-d", "--description", help="Study description."
    )
    study_create_parser.add_argument(
        "-t", "--type", help="Study type (e.g. cohort)."
    )
    study_create_parser.set_defaults(func=CmdCatalogStudyCreate)

    # -- domains --
    domain_add_parser = catalog_subparsers.add_parser(
        "add-domain", parents=[parent_parser], help="Create a domain."
    )
    domain_add_parser.add_argument("name", help="Domain name.")
    domain_add_parser.add_argument("--uri", help="Domain URI.")
    domain_add_parser.add_argument(
        "-d", "--description", help="Domain description."
    )
    domain_add_parser.add_argument("-s", "--study", help="Study to link it to.")
    domain_add_parser.set_defaults(func=CmdCatalogDomainAdd)

    # -- assets and versions --
    asset_list_parser = catalog_subparsers.add_parser(
        "assets", parents=[parent_parser], help="List the assets of a study."
    )
    asset_list_parser.add_argument("study", help="Study name.")
    asset_list_parser.set_defaults(func=CmdCatalogAssetList)

    ver_list_parser = catalog_subparsers.add_parser(
        "versions", parents=[parent_parser], help="List versions of an asset."
    )
    ver_list_parser.add_argument("study", help="Study name.")
    ver_list_parser.add_argument("asset", help="Asset name.")
    ver_list_parser.set_defaults(func=CmdCatalogVersionList)

    show_parser = catalog_subparsers.add_parser(
        "show", parents=[parent_parser], help="Show an asset version."
    )
    show_parser.add_argument("study", help="Study name.")
    show_parser.add_argument("asset", help="Asset name.")
    _add_version_arg(show_parser)
    show_parser.set_defaults(func=CmdCatalogShow)

    # -- ingest --
    ingest_parser = catalog_subparsers.add_parser(
        "ingest",
        parents=[parent_parser],
        help="Ingest an SQL query result as a dataset version.",
    )
    ingest_parser.add_argument("study", help="Study name.")
    _add_domain_args(ingest_parser)
    ingest_parser.add_argument("name", help="Dataset name.")
    ingest_parser.add_argument(
        "-f",
        "--flavour",
        required=True,
        help="Source flavour: sqlite, duckdb, postgres, mssql or mysql.",
    )
    ingest_parser.add_argument(
        "--source", required=True, help="Source database path or DSN."
    )
    query_group = ingest_parser.add_mutually_exclusive_group()
    query_group.add_argument("--query", help="SELECT to ingest.")
    query_group.add_argument("--query-file", help="File holding the SELECT.")
    ingest_parser.add_argument(
        "--replace",
        action="store_true",
        default=False,
        help="Create a new version instead of appending to the latest.",
    )
    ingest_parser.add_argument(
        "-d", "--description", help="Dataset description."
    )
    _add_script_arg(ingest_parser)
    ingest_parser.set_defaults(func=CmdCatalogIngest)

    # -- files --
    register_parser = catalog_subparsers.add_parser(
        "register-file",
        parents=[parent_parser],
        help="Register a local file as a new file version.",
    )
    register_parser.add_argument("study", help="Study name.")
    register_parser.add_argument("name", help="File asset name.")
    register_parser.add_argument("path", help="Local file to store.")
    register_parser.add_argument(
        "-d", "--description", help="Asset description."
    )
    register_parser.add_argument("-n", "--note", help="Version note.")
    register_parser.set_defaults(func=CmdCatalogRegisterFile)

    verify_parser = catalog_subparsers.add_parser(
        "verify",
        parents=[parent_parser],
        help="Verify a file version against its digest.",
    )
    verify_parser.add_argument("study", help="Study name.")
    verify_parser.add_argument("asset", help="File asset name.")
    _add_version_arg(verify_parser)
    verify_parser.set_defaults(func=CmdCatalogVerify)

    # -- pivot --
    pivot_parser = catalog_subparsers.add_parser(
        "pivot",
        parents=[parent_parser],
        help="Pivot a registered EAV file into a dataset version.",
    )
    pivot_parser.add_argument("study", help="Study name.")
    _add_domain_args(pivot_parser)
    pivot_parser.add_argument("name", help="Dataset name.")
    pivot_parser.add_argument(
        "--file", required=True, help="File asset holding the EAV export."
    )
    pivot_parser.add_argument(
        "--file-version", help="File version; defaults to the latest."
    )
    pivot_parser.add_argument(
        "--var",
        action="append",
        metavar="NAME[:VALIDATION]",
        help="Declare a field type, e.g. dob:date_dmy. Repeatable.",
    )
    pivot_parser.add_argument(
        "-d", "--description", help="Dataset description."
    )
    _add_script_arg(pivot_parser)
    pivot_parser.set_defaults(func=CmdCatalogPivot)

    # -- export --
    export_parser = catalog_subparsers.add_parser(
        "export",
        parents=[parent_parser],
        help="Export a dataset version to CSV or Parquet.",
    )
    export_parser.add_argument("study", help="Study name.")
    export_parser.add_argument("asset", help="Dataset name.")
    export_parser.add_argument("path", help="Destination file.")
    _add_version_arg(export_parser)
    export_parser.add_argument(
        "--format",
        choices=("csv", "parquet"),
        help="Output format; inferred from the extension by default.",
    )
    _add_script_arg(export_parser)
    export_parser.set_defaults(func=CmdCatalogExport)

    # -- lineage --
    lineage_parser = catalog_subparsers.add_parser(
        "lineage", parents=[parent_parser], help="Show lineage of a version."
    )
    lineage_parser.add_argument("study", help="Study name.")
    lineage_parser.add_argument("asset", help="Asset name.")
    _add_version_arg(lineage_parser)
    lineage_parser.add_argument(
        "--descendants",
        action="store_true",
        default=False,
        help="Show downstream versions instead.",
    )
    lineage_parser.set_defaults(func=CmdCatalogLineage)

    # -- vocabularies --
    vocab_parser = catalog_subparsers.add_parser(
        "vocab", parents=[parent_parser], help="Show a vocabulary."
    )
    vocab_parser.add_argument("name", help="Vocabulary name.")
    vocab_parser.add_argument("--domain", help="Domain name.")
    vocab_parser.add_argument("--uri", help="Domain URI, when names repeat.")
    vocab_parser.set_defaults(func=CmdCatalogVocab)
