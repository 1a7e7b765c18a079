from typing import Optional


class CatalogError(Exception):
    """Base exception for all catalog errors."""


class EntityNotFoundError(CatalogError):
    """Raised when a requested entity does not exist.

    Attributes:
        entity_type: Type name (e.g., "Asset", "Vocabulary").
        identifier: Id or name used in the lookup.
    """

    def __init__(self, entity_type: str, identifier) -> None:
        self.entity_type = entity_type
        self.identifier = identifier
        super().__init__(f"{entity_type} not found: {identifier}")


class DuplicateNameError(CatalogError):
    """Raised when an entity name conflicts with an existing one.

    Attributes:
        entity_type: Type name.
        name: The conflicting name.
    """

    def __init__(self, entity_type: str, name: str) -> None:
        self.entity_type = entity_type
        self.name = name
        super().__init__(f"{entity_type} already exists: {name}")


class AmbiguousNameError(CatalogError):
    """Raised when a name lookup without a scope matches several entities.

    Attributes:
        entity_type: Type name.
        name: The ambiguous name.
        count: Number of matching entities.
    """

    def __init__(self, entity_type: str, name: str, count: int) -> None:
        self.entity_type = entity_type
        self.name = name
        self.count = count
        super().__init__(
            f"{entity_type} name '{name}' is ambiguous: "
            f"{count} matches, qualify it with a domain"
        )


class InvariantViolationError(CatalogError):
    """Raised when a write would break a ledger invariant."""


class InvalidStateTransitionError(CatalogError):
    """Raised when a pipeline state change violates the run order.

    Attributes:
        current: Current state value.
        target: Attempted target state.
    """

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition from {current} to {target}")


class DeleteConstraintError(CatalogError):
    """Raised when deletion is blocked by provenance links."""


class UnsupportedFlavourError(CatalogError):
    """Raised when a source flavour has no schema probe."""

    def __init__(self, flavour: str) -> None:
        self.flavour = flavour
        super().__init__(f"Unsupported source flavour: {flavour}")


class OperationError(CatalogError):
    """Base for errors that carry the originating operation name.

    Attributes:
        operation: Name of the operation that failed.
    """

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation}: {message}")


class SchemaProbeError(OperationError):
    """Raised when the zero-row schema probe of a query fails."""


class ConnectivityError(OperationError):
    """Raised when a source, store or lake cannot be reached."""


class LakeError(CatalogError):
    """Raised when a lake table operation fails."""


class CastError(CatalogError):
    """Raised when a typed column holds values that do not parse.

    Attributes:
        column: Column name.
        value_type: Canonical type the column was cast to.
        value: A sample value that failed to parse.
    """

    def __init__(
        self, column: str, value_type: str, value: Optional[str] = None
    ) -> None:
        self.column = column
        self.value_type = value_type
        self.value = value
        super().__init__(
            f"Column '{column}' cannot be cast to {value_type}: {value!r}"
        )


class IntegrityError(CatalogError):
    """Raised when data digest verification fails."""


class ConfigError(CatalogError):
    """Raised when configuration values are invalid."""
