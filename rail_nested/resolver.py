"""
Assignment resolution for nested attributes.

Matches submitted child mappings against the children currently associated
with a parent and decides, per mapping, whether the child is created,
updated, destroyed or skipped. Nothing is persisted here: new children are
built and existing ones are modified in memory only.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence

from django.db import models

from .exceptions import InvalidPayload, StaleReference
from .registry import NestedAttributesConfig, get_nested_relationships
from .relationships import NestedRelationship, RelationshipKind, RelationshipLink
from .settings import NestedAttributesSettings, get_nested_settings

logger = logging.getLogger(__name__)


class ChildAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
    SKIP = "skip"


@dataclass
class PendingChildAction:
    """What will happen to one submitted child mapping when the parent is saved."""

    action: ChildAction
    attributes: dict[str, Any]
    index: int = 0
    target: Optional[models.Model] = None
    built: Optional[models.Model] = field(default=None, repr=False)

    @property
    def entity(self) -> Optional[models.Model]:
        """The child the action applies to: the existing target or the new one."""
        return self.target if self.target is not None else self.built

    @property
    def writes(self) -> bool:
        """Whether the child is inserted or updated (and therefore validated)."""
        return self.action in (ChildAction.CREATE, ChildAction.UPDATE)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _identity_of(mapping: Mapping[str, Any], relationship: NestedRelationship) -> Any:
    for key in relationship.identity_keys:
        value = mapping.get(key)
        if not _is_blank(value):
            return value
    return None


def _strip_reserved(
    mapping: Mapping[str, Any],
    relationship: NestedRelationship,
    settings: NestedAttributesSettings,
) -> dict[str, Any]:
    reserved = set(relationship.identity_keys) | {settings.destroy_marker}
    return {key: value for key, value in mapping.items() if key not in reserved}


def _split_attributes(
    model: type[models.Model], attributes: Mapping[str, Any]
) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Separate plain field values from nested payloads of the child's own
    relationships.

    Raises:
        InvalidPayload: For keys that are neither concrete fields nor nested setters
    """
    fields: dict[str, Any] = {}
    for concrete in model._meta.concrete_fields:
        fields[concrete.name] = concrete
        fields[concrete.attname] = concrete
    nested_setters = {
        relationship.setter_name for relationship in get_nested_relationships(model).values()
    }

    plain: dict[str, Any] = {}
    nested: dict[str, Any] = {}
    for key, value in attributes.items():
        if key in nested_setters:
            nested[key] = value
            continue
        model_field = fields.get(key)
        if model_field is None:
            raise InvalidPayload(
                f"Unknown attribute {key!r} for {model.__name__}", field=key
            )
        if (
            model_field.is_relation
            and key == model_field.name
            and value is not None
            and not isinstance(value, models.Model)
        ):
            # A raw id for a foreign key goes through the attname.
            key = model_field.attname
        plain[key] = value
    return plain, nested


def _assign(instance: models.Model, attributes: Mapping[str, Any]) -> None:
    plain, nested = _split_attributes(type(instance), attributes)
    for key, value in plain.items():
        setattr(instance, key, value)
    for setter_name, payload in nested.items():
        setattr(instance, setter_name, payload)


def _build(model: type[models.Model], attributes: Mapping[str, Any]) -> models.Model:
    plain, nested = _split_attributes(model, attributes)
    instance = model(**plain)
    for setter_name, payload in nested.items():
        setattr(instance, setter_name, payload)
    return instance


def resolve(
    relationship: NestedRelationship,
    current_children: Iterable[models.Model],
    attribute_mappings: Sequence[Mapping[str, Any]],
    config: Optional[NestedAttributesConfig] = None,
    *,
    parent: Optional[models.Model] = None,
    settings: Optional[NestedAttributesSettings] = None,
) -> list[PendingChildAction]:
    """
    Decide the action for every sanitized child mapping, in input order.

    Args:
        relationship: The relationship the mappings were submitted for
        current_children: Children currently associated with the parent
        attribute_mappings: Output of ``sanitize_nested_attributes``
        config: Nested attributes options, defaults to the relationship's own
        parent: Parent instance, needed by method-name ``reject_if`` guards
        settings: Library settings, read from Django settings by default

    Returns:
        One PendingChildAction per mapping

    Raises:
        StaleReference: If a mapping carries an id that is not among the
            current children
        InvalidPayload: If a mapping names unknown attributes, or asks for a
            second child of a reverse one-to-one relationship that has one
    """
    config = config or relationship.config or NestedAttributesConfig()
    settings = settings or get_nested_settings()
    child_model = relationship.child_model

    existing = {
        str(child.pk): child
        for child in current_children
        if child.pk is not None and not child._state.adding
    }
    # A reverse one-to-one row can't take a second child next to the stored one.
    occupied = (
        relationship.kind is RelationshipKind.TO_ONE
        and relationship.link is RelationshipLink.REVERSE
        and bool(existing)
    )

    actions: list[PendingChildAction] = []
    for index, mapping in enumerate(attribute_mappings):
        identity = _identity_of(mapping, relationship)
        marked = settings.is_truthy(mapping.get(settings.destroy_marker))
        destroy = marked and config.allow_destroy
        attributes = _strip_reserved(mapping, relationship, settings)

        if identity is not None:
            child = existing.get(str(identity))
            if child is None:
                raise StaleReference(child_model.__name__, relationship.name, identity)
            if destroy:
                pending = PendingChildAction(
                    ChildAction.DESTROY, attributes, index, target=child
                )
            else:
                _assign(child, attributes)
                pending = PendingChildAction(
                    ChildAction.UPDATE, attributes, index, target=child
                )
        elif destroy or config.reject_if.evaluate(mapping, parent):
            pending = PendingChildAction(ChildAction.SKIP, attributes, index)
        elif occupied:
            raise InvalidPayload(
                f"{relationship.name} already has a {child_model.__name__}; pass its id "
                "to update or destroy it",
                field=relationship.setter_name,
            )
        else:
            pending = PendingChildAction(
                ChildAction.CREATE,
                attributes,
                index,
                built=_build(child_model, attributes),
            )

        logger.debug(
            "%s[%s] resolved to %s (id=%r)",
            relationship.name,
            index,
            pending.action.value,
            identity,
        )
        actions.append(pending)
    return actions
