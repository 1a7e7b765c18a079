from dataclasses import dataclass, field
from typing import Optional

from tre.catalog.domain.enums import KeyRole, ValueType
from tre.catalog.domain.value_objects import VocabularyItem


@dataclass
class Vocabulary:
    """Domain-scoped controlled value set.

    Attributes:
        vocabulary_id: Store-generated id (None until persisted).
        domain_id: Owning domain.
        name: Name, unique within the domain.
        description: Free text.
        items: Ordered value/code/description entries.
    """

    vocabulary_id: Optional[int] = None
    domain_id: Optional[int] = None
    name: str = ""
    description: str = ""
    items: list[VocabularyItem] = field(default_factory=list)

    def code_for(self, value: int) -> Optional[str]:
        for item in self.items:
            if item.value == value:
                return item.code
        return None


@dataclass
class Variable:
    """A typed, domain-scoped column definition.

    Attributes:
        variable_id: Store-generated id (None until persisted).
        domain_id: Owning domain.
        name: Name, unique within the domain.
        value_type: Canonical value type.
        value_format: Parse format for date/time/datetime values
                      (strptime syntax, e.g. "%d/%m/%Y").
        vocabulary_id: Backing vocabulary for category variables.
        keyrole: Role of the variable in a dataset key.
        description: Free text (often the source column comment).
    """

    variable_id: Optional[int] = None
    domain_id: Optional[int] = None
    name: str = ""
    value_type: ValueType = ValueType.STRING
    value_format: Optional[str] = None
    vocabulary_id: Optional[int] = None
    keyrole: KeyRole = KeyRole.NONE
    description: Optional[str] = None


@dataclass
class VariableDescriptor:
    """Inferred description of one result column of a source query.

    Descriptors are not persisted; they become Variables (and
    Vocabularies) once registered in a domain.

    Attributes:
        name: Output column name.
        value_type: Canonical type (CATEGORY when a vocabulary was found).
        native_type: Type name reported by the source engine.
        description: Column comment, if the source exposes one.
        value_format: Parse format for temporal values, if known.
        vocabulary: Unsaved vocabulary for category columns.
    """

    name: str
    value_type: ValueType
    native_type: str = ""
    description: Optional[str] = None
    value_format: Optional[str] = None
    vocabulary: Optional[Vocabulary] = None
