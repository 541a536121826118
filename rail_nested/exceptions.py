"""
Custom exceptions for nested attribute assignment.

This module provides the exception types raised while registering,
assigning and saving nested attributes, allowing callers to tell
configuration mistakes apart from bad payloads and failed saves.
"""

from typing import Any, Optional


class NestedAttributesError(Exception):
    """Base exception for nested attributes operations."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.code = code

    def __str__(self) -> str:
        return self.message


class InvalidOptions(NestedAttributesError, ValueError):
    """Raised at registration time when nested attribute options don't make sense."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, field=field, code="INVALID_OPTIONS")


class UnknownRelationship(NestedAttributesError, ValueError):
    """Raised when a name does not identify a relationship of the model."""

    def __init__(self, model_name: str, relationship_name: str):
        super().__init__(
            f"No relationship {relationship_name!r} for {model_name}",
            field=relationship_name,
            code="UNKNOWN_RELATIONSHIP",
        )
        self.model_name = model_name
        self.relationship_name = relationship_name


class InvalidPayload(NestedAttributesError, ValueError):
    """Raised when a nested attributes payload doesn't fit the relationship."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, field=field, code="INVALID_PAYLOAD")


class StaleReference(NestedAttributesError, LookupError):
    """Raised when a payload references a child not associated with the parent."""

    def __init__(self, model_name: str, relationship_name: str, pk_value: Any):
        super().__init__(
            f"{model_name} with id '{pk_value}' is not associated through "
            f"'{relationship_name}'",
            field=relationship_name,
            code="STALE_REFERENCE",
        )
        self.model_name = model_name
        self.relationship_name = relationship_name
        self.pk_value = pk_value


class SaveFailed(NestedAttributesError):
    """
    Raised when the parent or one of its nested children fails validation.

    Attributes:
        parent_errors: errors on the parent's own fields
        child_errors: association key -> field name -> messages
    """

    def __init__(
        self,
        parent_errors: Optional[dict[str, list[str]]] = None,
        child_errors: Optional[dict[str, dict[str, list[str]]]] = None,
        model_name: Optional[str] = None,
    ):
        self.parent_errors = parent_errors or {}
        self.child_errors = child_errors or {}
        self.model_name = model_name
        total = sum(len(messages) for messages in self.parent_errors.values())
        total += sum(
            len(messages)
            for fields in self.child_errors.values()
            for messages in fields.values()
        )
        target = model_name or "instance"
        super().__init__(
            f"Failed to save {target}: {total} validation error(s)",
            code="SAVE_FAILED",
        )


class PersistenceError(NestedAttributesError):
    """Raised when the underlying storage operation fails."""

    def __init__(self, message: str, model_name: Optional[str] = None):
        super().__init__(message, code="PERSISTENCE_ERROR")
        self.model_name = model_name
