"""
Instance-level state for nested attributes.

``accepts_nested_attributes_for`` installs a ``NestedAttributesAccessor`` as
``<association>_attributes`` on the model. Assigning to it sanitizes and
resolves the payload right away, so payload and reference errors surface at
assignment time, and stores the resulting actions on the instance until the
next successful save.
"""

import logging
from typing import Any, Optional

from django.db import models

from .aggregation import ErrorCollection
from .registry import get_nested_relationship
from .relationships import NestedRelationship
from .resolver import PendingChildAction, resolve
from .sanitizer import sanitize_nested_attributes
from .settings import get_nested_settings

logger = logging.getLogger(__name__)

PAYLOADS_ATTRIBUTE = "_nested_attributes_payloads"
PENDING_ATTRIBUTE = "_nested_attributes_pending"
ERRORS_ATTRIBUTE = "_nested_attributes_errors"


class NestedAttributesAccessor:
    """Getter/setter for one association's nested attributes."""

    def __init__(self, association_name: str):
        self.association_name = association_name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return get_nested_payload(instance, self.association_name)

    def __set__(self, instance, payload) -> None:
        assign_nested_attributes(instance, self.association_name, payload)

    def __repr__(self) -> str:
        return f"<NestedAttributesAccessor {self.association_name}_attributes>"


def assign_nested_attributes(
    instance: models.Model, association_name: str, payload: Any
) -> list[PendingChildAction]:
    """
    Sanitize and resolve ``payload`` for ``association_name`` on ``instance``.

    A later assignment for the same association replaces the earlier one.

    Raises:
        UnknownRelationship: If the association doesn't accept nested attributes
        InvalidPayload: If the payload shape or attributes are invalid
        StaleReference: If the payload references a child that isn't associated
    """
    relationship = get_nested_relationship(type(instance), association_name)
    settings = get_nested_settings()
    records = sanitize_nested_attributes(
        payload, relationship.kind, field=relationship.setter_name, settings=settings
    )
    actions = resolve(
        relationship,
        relationship.current_children(instance),
        records,
        parent=instance,
        settings=settings,
    )
    instance.__dict__.setdefault(PAYLOADS_ATTRIBUTE, {})[association_name] = payload
    pending = instance.__dict__.setdefault(PENDING_ATTRIBUTE, {})
    pending.pop(association_name, None)
    pending[association_name] = actions
    logger.debug(
        "Assigned %d nested record(s) to %s.%s",
        len(actions),
        type(instance).__name__,
        association_name,
    )
    return actions


def get_nested_payload(instance: models.Model, association_name: str) -> Any:
    """The raw payload last assigned for the association, or None."""
    return instance.__dict__.get(PAYLOADS_ATTRIBUTE, {}).get(association_name)


def get_pending_plan(
    instance: models.Model,
) -> list[tuple[NestedRelationship, list[PendingChildAction]]]:
    """Pending actions of ``instance`` per relationship, in assignment order."""
    pending = instance.__dict__.get(PENDING_ATTRIBUTE) or {}
    model = type(instance)
    return [
        (get_nested_relationship(model, name), actions)
        for name, actions in pending.items()
    ]


def has_pending_nested_actions(instance: models.Model) -> bool:
    return bool(instance.__dict__.get(PENDING_ATTRIBUTE))


def clear_pending_actions(instance: models.Model) -> None:
    instance.__dict__.pop(PENDING_ATTRIBUTE, None)


def clear_nested_attributes(instance: models.Model, association_name: Optional[str] = None) -> None:
    """Forget pending actions (and payloads) for one association or all of them."""
    if association_name is None:
        instance.__dict__.pop(PENDING_ATTRIBUTE, None)
        instance.__dict__.pop(PAYLOADS_ATTRIBUTE, None)
        return
    instance.__dict__.get(PENDING_ATTRIBUTE, {}).pop(association_name, None)
    instance.__dict__.get(PAYLOADS_ATTRIBUTE, {}).pop(association_name, None)


def get_nested_errors(instance: models.Model) -> ErrorCollection:
    """The instance's error collection, created on first access."""
    errors = instance.__dict__.get(ERRORS_ATTRIBUTE)
    if errors is None:
        errors = instance.__dict__[ERRORS_ATTRIBUTE] = ErrorCollection()
    return errors
