"""
rail-nested: nested attributes for Django models.

Lets a parent model accept a nested description of its related children
(a mapping for a to-one relationship, a list of mappings for a to-many one)
and commits the resulting creates, updates and deletes together with the
parent in a single transaction.

Usage:
    from rail_nested import NestedAttributesMixin

    class Person(NestedAttributesMixin):
        name = models.CharField(max_length=100)

        class NestedAttributes:
            addresses = {"allow_destroy": True}

    person.addresses_attributes = [{"id": 1, "city": "B"}, {"city": "C"}]
    if not person.save_with_nested_attributes():
        print(person.nested_errors.as_dict())
"""

from .accessors import (
    assign_nested_attributes,
    clear_nested_attributes,
    get_nested_errors,
    get_nested_payload,
)
from .aggregation import ErrorCollection
from .defaults import LIBRARY_VERSION as __version__
from .exceptions import (
    InvalidOptions,
    InvalidPayload,
    NestedAttributesError,
    PersistenceError,
    SaveFailed,
    StaleReference,
    UnknownRelationship,
)
from .orchestrator import NestedSaveOrchestrator, save_nested
from .registry import (
    NestedAttributesConfig,
    accepts_nested_attributes_for,
    get_nested_relationship,
    get_nested_relationships,
    has_nested_attributes,
    reject_new_nested_attributes_guard_for,
)
from .relationships import NestedRelationship, RelationshipKind, RelationshipLink
from .resolver import ChildAction, PendingChildAction, resolve
from .sanitizer import sanitize_nested_attributes


def __getattr__(name):
    # The mixin is a Django model and can only be defined once apps are loaded.
    if name == "NestedAttributesMixin":
        from .mixins import NestedAttributesMixin

        return NestedAttributesMixin
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "NestedAttributesMixin",
    "accepts_nested_attributes_for",
    "assign_nested_attributes",
    "clear_nested_attributes",
    "get_nested_errors",
    "get_nested_payload",
    "get_nested_relationship",
    "get_nested_relationships",
    "has_nested_attributes",
    "reject_new_nested_attributes_guard_for",
    "save_nested",
    "sanitize_nested_attributes",
    "resolve",
    "NestedSaveOrchestrator",
    "NestedAttributesConfig",
    "NestedRelationship",
    "RelationshipKind",
    "RelationshipLink",
    "ChildAction",
    "PendingChildAction",
    "ErrorCollection",
    "NestedAttributesError",
    "InvalidOptions",
    "InvalidPayload",
    "StaleReference",
    "SaveFailed",
    "PersistenceError",
    "UnknownRelationship",
]
