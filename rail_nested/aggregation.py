"""
Validation error aggregation for nested saves.

Child validation failures are lifted into the parent's ``ErrorCollection``
under association-scoped keys so a caller can map each message back to the
submitted row:

    addresses[1].city      # second record of a to-many relationship
    profile.bio            # to-one relationship
    addresses[0].phones[2].number
"""

from typing import Any, Iterator, Optional

from django.core.exceptions import NON_FIELD_ERRORS, ValidationError

from .relationships import NestedRelationship


class ErrorCollection:
    """Ordered mapping of field / association key to error messages."""

    def __init__(self):
        self._errors: dict[str, list[str]] = {}

    def add(self, key: str, message: Any) -> None:
        self._errors.setdefault(key, []).append(str(message))

    def extend(self, key: str, messages) -> None:
        for message in messages:
            self.add(key, message)

    def on(self, key: str) -> list[str]:
        return list(self._errors.get(key, []))

    def clear(self) -> None:
        self._errors.clear()

    def count(self) -> int:
        """Total number of messages."""
        return sum(len(messages) for messages in self._errors.values())

    def keys(self):
        return self._errors.keys()

    def items(self):
        return ((key, list(messages)) for key, messages in self._errors.items())

    def as_dict(self) -> dict[str, list[str]]:
        return {key: list(messages) for key, messages in self._errors.items()}

    def under(self, prefix: str) -> dict[str, list[str]]:
        """Errors whose key starts with ``prefix``."""
        return {
            key: list(messages)
            for key, messages in self._errors.items()
            if key.startswith(prefix)
        }

    def full_messages(self) -> list[str]:
        return [
            message if key == NON_FIELD_ERRORS else f"{key}: {message}"
            for key, messages in self._errors.items()
            for message in messages
        ]

    def __getitem__(self, key: str) -> list[str]:
        return self.on(key)

    def __contains__(self, key: object) -> bool:
        return key in self._errors

    def __iter__(self) -> Iterator[str]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __repr__(self) -> str:
        return f"ErrorCollection({self._errors!r})"


def _join(prefix: Optional[str], field_name: str) -> str:
    return f"{prefix}.{field_name}" if prefix else field_name


def association_key(
    relationship: NestedRelationship, index: int, parent_key: Optional[str] = None
) -> str:
    """Key of one child inside the root parent's error collection."""
    if relationship.is_collection:
        return _join(parent_key, f"{relationship.name}[{index}]")
    return _join(parent_key, relationship.name)


def validation_error_dict(error: ValidationError) -> dict[str, list[str]]:
    """Field -> messages for any ValidationError, non-field ones under __all__."""
    if hasattr(error, "error_dict"):
        return {
            field_name: [str(message) for message in messages]
            for field_name, messages in error.message_dict.items()
        }
    return {NON_FIELD_ERRORS: [str(message) for message in error.messages]}


def aggregate_validation_error(
    errors: ErrorCollection, error: ValidationError, prefix: Optional[str] = None
) -> int:
    """
    Copy every message of ``error`` into ``errors``.

    Args:
        errors: The parent's error collection
        error: A ValidationError raised by ``full_clean`` or ``save``
        prefix: Association key of the failing child, or None for the parent

    Returns:
        Number of messages added
    """
    added = 0
    for field_name, messages in validation_error_dict(error).items():
        errors.extend(_join(prefix, field_name), messages)
        added += len(messages)
    return added


def split_parent_and_child_errors(
    errors: ErrorCollection, relationship_names
) -> tuple[dict[str, list[str]], dict[str, dict[str, list[str]]]]:
    """
    Split a collection into the parent's own errors and per-child errors,
    the latter keyed by association key (``addresses[0]``) then field.
    """
    parent_errors: dict[str, list[str]] = {}
    child_errors: dict[str, dict[str, list[str]]] = {}
    names = tuple(relationship_names)
    for key, messages in errors.items():
        head, _, rest = key.partition(".")
        base = head.split("[", 1)[0]
        if base in names and rest:
            child_errors.setdefault(head, {}).setdefault(rest, []).extend(messages)
        else:
            parent_errors.setdefault(key, []).extend(messages)
    return parent_errors, child_errors
