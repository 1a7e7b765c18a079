"""Turns a source query into variable descriptors and registers them.

Inference never fetches data rows: column names and types come from the
probe's zero-row describe, and categories from catalog metadata through
the detector chain.
"""

from typing import TYPE_CHECKING, Optional

from funcy import ldistinct

from tre.catalog.domain.entities.variable import (
    Variable,
    VariableDescriptor,
    Vocabulary,
)
from tre.catalog.domain.enums import ValueType
from tre.catalog.domain.exceptions import SchemaProbeError
from tre.catalog.domain.services.category_detection import (
    CategoryDetectorChain,
)
from tre.log import logger

if TYPE_CHECKING:
    from tre.catalog.domain.entities.catalogrepo import CatalogRepo
    from tre.catalog.infrastructure.gateways.schema_probe import (
        ColumnInfo,
        SchemaProbe,
    )

logger = logger.getChild(__name__)


class SchemaInference:
    """Infers VariableDescriptors from arbitrary SELECT queries.

    Attributes:
        detectors: Category detector chain applied to every column.
    """

    def __init__(self, detectors: Optional[CategoryDetectorChain] = None) -> None:
        self.detectors = detectors or CategoryDetectorChain()

    def infer(self, probe: "SchemaProbe", query: str) -> list[VariableDescriptor]:
        """Describe the result columns of ``query``.

        Args:
            probe: Flavour-specific probe bound to the source connection.
            query: Any SELECT statement.

        Returns:
            One descriptor per result column, in result order.

        Raises:
            SchemaProbeError: If the query cannot be described or yields
                duplicate column names.
        """
        columns = probe.describe(query)
        names = [column.name for column in columns]
        if len(ldistinct(name.lower() for name in names)) != len(names):
            raise SchemaProbeError(
                "describe query", f"duplicate result column names: {names}"
            )
        columns = probe.resolve_sources(query, columns)
        descriptors = [self._describe_column(probe, column) for column in columns]
        logger.debug(
            "Inferred %d columns (%d categorical)",
            len(descriptors),
            sum(d.value_type == ValueType.CATEGORY for d in descriptors),
        )
        return descriptors

    def _describe_column(
        self, probe: "SchemaProbe", column: "ColumnInfo"
    ) -> VariableDescriptor:
        value_type = probe.map_type(column.native_type)
        descriptor = VariableDescriptor(
            name=column.name,
            value_type=value_type,
            native_type=column.native_type,
            description=probe.column_comment(column),
        )
        if value_type == ValueType.MULTIRESPONSE:
            return descriptor
        category = self.detectors.detect(probe, column)
        if category is not None:
            descriptor.value_type = ValueType.CATEGORY
            descriptor.vocabulary = Vocabulary(
                name=category.vocabulary_name,
                description=category.description,
                items=list(category.items),
            )
        return descriptor

    def register_variables(
        self,
        repo: "CatalogRepo",
        domain_id: int,
        descriptors: list[VariableDescriptor],
    ) -> list[Variable]:
        """Upsert descriptors as Variables (and Vocabularies) in a domain.

        Runs as one store transaction; an existing variable keeps its id
        and takes the new type, format and vocabulary.

        Returns:
            Persisted variables in descriptor order.
        """
        variables = []
        with repo.transaction():
            for descriptor in descriptors:
                vocabulary_id = None
                if descriptor.vocabulary is not None:
                    vocabulary_id = repo.ensure_vocabulary(
                        domain_id,
                        descriptor.vocabulary.name,
                        descriptor.vocabulary.description,
                        descriptor.vocabulary.items,
                    )
                variables.append(
                    repo.upsert_variable(
                        Variable(
                            domain_id=domain_id,
                            name=descriptor.name,
                            value_type=descriptor.value_type,
                            value_format=descriptor.value_format,
                            vocabulary_id=vocabulary_id,
                            description=descriptor.description,
                        )
                    )
                )
        return variables
