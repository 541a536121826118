"""
Normalization of nested attributes payloads.
"""

from collections.abc import Mapping
from typing import Any, Optional

from .exceptions import InvalidPayload
from .relationships import RelationshipKind
from .settings import NestedAttributesSettings, get_nested_settings


def _as_mapping(value: Any, position: Any, field: Optional[str]) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise InvalidPayload(
            f"Nested record {position} must be a mapping, got {type(value).__name__}",
            field=field,
        )
    return {str(key): item for key, item in value.items()}


def sanitize_nested_attributes(
    payload: Any,
    kind: RelationshipKind,
    *,
    field: Optional[str] = None,
    settings: Optional[NestedAttributesSettings] = None,
) -> list[dict[str, Any]]:
    """
    Normalize a payload into an ordered list of child attribute mappings.

    Accepted shapes:
        - to-one: a single mapping
        - to-many: a list/tuple of mappings, or a mapping of mappings whose
          keys are discarded (insertion order is kept)

    ``None`` means nothing was submitted and yields an empty list.

    Raises:
        InvalidPayload: If the shape doesn't match the relationship's cardinality
    """
    if payload is None:
        return []

    if kind is RelationshipKind.TO_ONE:
        if not isinstance(payload, Mapping):
            raise InvalidPayload(
                f"A to-one relationship expects a mapping, got {type(payload).__name__}",
                field=field,
            )
        return [_as_mapping(payload, 0, field)]

    if isinstance(payload, Mapping):
        values = list(payload.values())
        if not all(isinstance(value, Mapping) for value in values):
            raise InvalidPayload(
                "A to-many relationship expects a list of mappings or a mapping "
                "of mappings",
                field=field,
            )
        records = [
            _as_mapping(value, repr(key), field) for key, value in payload.items()
        ]
    elif isinstance(payload, (list, tuple)):
        records = [_as_mapping(value, index, field) for index, value in enumerate(payload)]
    else:
        raise InvalidPayload(
            f"A to-many relationship expects a collection, got {type(payload).__name__}",
            field=field,
        )

    settings = settings or get_nested_settings()
    if settings.max_records is not None and len(records) > settings.max_records:
        raise InvalidPayload(
            f"Nested payload has {len(records)} records, the maximum is "
            f"{settings.max_records}",
            field=field,
        )
    return records
