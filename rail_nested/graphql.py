"""
GraphQL helpers for nested attributes.

Mutations built with graphene can return the errors of a failed nested save
as a flat list, the same way rail-django mutations return ``MutationError``
objects:

    class UpdatePerson(graphene.Mutation):
        ok = graphene.Boolean()
        errors = graphene.List(NestedAttributeError)

        def mutate(root, info, id, input):
            person = Person.objects.get(pk=id)
            person.addresses_attributes = input.get("addresses")
            if not person.save_with_nested_attributes():
                return UpdatePerson(ok=False, errors=build_nested_errors(person.nested_errors))
            return UpdatePerson(ok=True, errors=[])
"""

from typing import Optional, Union

import graphene
from django.core.exceptions import NON_FIELD_ERRORS

from .aggregation import ErrorCollection
from .exceptions import NestedAttributesError, SaveFailed


class NestedAttributeError(graphene.ObjectType):
    """
    Structured error for nested attributes.

    Attributes:
        field: Path of the failing field, e.g. ``addresses.1.city``
        message: The error message
    """

    field = graphene.String(description="Path of the field where the error occurred")
    message = graphene.String(description="What went wrong")


def normalize_error_path(key: Optional[str]) -> Optional[str]:
    """
    Convert ``addresses[1].city`` style keys into the dot-separated
    ``addresses.1.city`` paths clients use. Non-field errors keep their
    association path (or no path at all for the parent).
    """
    if key is None:
        return None
    segment = key.replace("[", ".").replace("]", "")
    parts = [part for part in segment.split(".") if part and part != NON_FIELD_ERRORS]
    return ".".join(parts) or None


def build_nested_errors(
    source: Union[ErrorCollection, NestedAttributesError, dict],
) -> list[NestedAttributeError]:
    """Flatten an ErrorCollection, SaveFailed or plain error dict into GraphQL errors."""
    if isinstance(source, SaveFailed):
        items = list(source.parent_errors.items())
        for child_key, fields in source.child_errors.items():
            items.extend(
                (f"{child_key}.{field_name}", messages)
                for field_name, messages in fields.items()
            )
    elif isinstance(source, NestedAttributesError):
        return [NestedAttributeError(field=source.field, message=source.message)]
    else:
        items = list(source.items())

    return [
        NestedAttributeError(field=normalize_error_path(key), message=str(message))
        for key, messages in items
        for message in messages
    ]
