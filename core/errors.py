"""Typed exceptions for conversion failures."""

from uuid import UUID


class ConversionError(Exception):
    """Base class for conversion engine errors."""


class ConfigurationError(ConversionError):
    """
    Workflow configuration is missing something the conversion needs.

    Raised when no project type matches the configured mapping or a project
    type has no workflow attached.
    """


class PersistenceError(ConversionError):
    """A datastore write the conversion depends on did not happen."""


class AlreadyConvertedError(ConversionError):
    """
    The source row was already claimed by a conversion.

    Raised by the compare-and-swap update, so it also covers two concurrent
    requests that both passed validation.
    """

    def __init__(self, entity_type: str, entity_id: UUID, target_id: UUID | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.target_id = target_id
        if target_id is not None:
            message = f"{entity_type.capitalize()} {entity_id} is already converted to {target_id}"
        else:
            message = f"{entity_type.capitalize()} {entity_id} is already converted"
        super().__init__(message)
