"""
Nested attributes registration.

``accepts_nested_attributes_for`` makes a relationship of a Django model
accept nested attributes. It fails as early as possible: unknown
relationships and options that don't make sense raise before anything is
stored. Registered relationships are kept per model class and never mutated
after registration.

Usage:
    from rail_nested import accepts_nested_attributes_for

    accepts_nested_attributes_for(Person, "addresses", allow_destroy=True)

    # or declaratively, processed when the app registry is ready
    class Person(NestedAttributesMixin):
        class NestedAttributes:
            addresses = {"allow_destroy": True, "reject_if": "blank_address"}
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

from django.apps import apps as django_apps
from django.db import models

from .exceptions import InvalidOptions, UnknownRelationship
from .guards import Guard, NoGuard, build_guard
from .relationships import NestedRelationship

logger = logging.getLogger(__name__)

VALID_OPTIONS = ("allow_destroy", "reject_if")

REGISTRY_ATTRIBUTE = "_nested_attributes_relationships"
DECLARATION_ATTRIBUTE = "NestedAttributes"


@dataclass(frozen=True)
class NestedAttributesConfig:
    """Options given to ``accepts_nested_attributes_for``."""

    allow_destroy: bool = False
    reject_if: Guard = field(default_factory=NoGuard)


def _model_registry(model: type[models.Model]) -> dict[str, NestedRelationship]:
    # Read from the class __dict__ so subclasses never share the parent's dict.
    registry = model.__dict__.get(REGISTRY_ATTRIBUTE)
    if registry is None:
        registry = {}
        setattr(model, REGISTRY_ATTRIBUTE, registry)
    return registry


def _assert_valid_options(model: type[models.Model], options: dict[str, Any]) -> None:
    if not isinstance(options, dict):
        raise InvalidOptions(
            f"options must be a dict, got {type(options).__name__}"
        )
    unknown = [key for key in options if key not in VALID_OPTIONS]
    if unknown:
        raise InvalidOptions(
            "options must be one of allow_destroy or reject_if "
            f"(got {', '.join(repr(k) for k in unknown)})"
        )
    if not isinstance(options.get("allow_destroy", False), bool):
        raise InvalidOptions("allow_destroy must be a boolean", field="allow_destroy")


def accepts_nested_attributes_for(
    model: type[models.Model], association_name: str, **options: Any
) -> NestedRelationship:
    """
    Makes the named association accept nested attributes.

    Args:
        model: Django model class owning the association
        association_name: Name of the relationship (field name or reverse accessor)
        **options: ``allow_destroy`` (bool, default False) and ``reject_if``
            (callable, method name or None)

    Returns:
        The registered NestedRelationship

    Raises:
        UnknownRelationship: If association_name identifies no relationship
        InvalidOptions: If the options don't make sense or the association
            is already registered
    """
    from .accessors import NestedAttributesAccessor

    relationship = NestedRelationship.from_model(model, association_name)
    _assert_valid_options(model, options)

    registry = _model_registry(model)
    if association_name in registry:
        raise InvalidOptions(
            f"{model.__name__}.{association_name} already accepts nested attributes"
        )

    setter_name = relationship.setter_name
    existing = getattr(model, setter_name, None)
    if existing is not None and not isinstance(existing, NestedAttributesAccessor):
        raise InvalidOptions(
            f"{model.__name__} already defines {setter_name!r}", field=setter_name
        )

    config = NestedAttributesConfig(
        allow_destroy=options.get("allow_destroy", False),
        reject_if=build_guard(model, options.get("reject_if")),
    )
    relationship = replace(relationship, config=config)

    registry[association_name] = relationship
    setattr(model, setter_name, NestedAttributesAccessor(association_name))
    logger.info(
        "%s.%s accepts nested attributes (%s, allow_destroy=%s)",
        model.__name__,
        association_name,
        relationship.kind.value,
        config.allow_destroy,
    )
    return relationship


def get_nested_relationships(model: type[models.Model]) -> dict[str, NestedRelationship]:
    """Registered relationships of ``model``, in registration order."""
    return dict(model.__dict__.get(REGISTRY_ATTRIBUTE) or {})


def has_nested_attributes(model: type[models.Model], association_name: str) -> bool:
    return association_name in (model.__dict__.get(REGISTRY_ATTRIBUTE) or {})


def get_nested_relationship(
    model: type[models.Model], association_name: str
) -> NestedRelationship:
    """
    Raises:
        UnknownRelationship: If the association doesn't accept nested attributes
    """
    registry = model.__dict__.get(REGISTRY_ATTRIBUTE) or {}
    try:
        return registry[association_name]
    except KeyError:
        raise UnknownRelationship(model.__name__, association_name) from None


def reject_new_nested_attributes_guard_for(
    model: type[models.Model], association_name: str
) -> Optional[Any]:
    """
    The ``reject_if`` value given for the association: a method name, a
    callable, or None when there is no guard or no such registration.
    """
    registry = model.__dict__.get(REGISTRY_ATTRIBUTE) or {}
    relationship = registry.get(association_name)
    if relationship is None:
        return None
    return relationship.config.reject_if.source


def register_declared_nested_attributes(
    model_classes: Optional[Iterable[type[models.Model]]] = None,
) -> list[NestedRelationship]:
    """
    Register the associations declared in ``class NestedAttributes`` blocks.

    Called from the app's ``ready()`` hook. Associations registered already
    (for example explicitly) are left untouched.
    """
    if model_classes is None:
        model_classes = django_apps.get_models()

    registered: list[NestedRelationship] = []
    for model in model_classes:
        declaration = getattr(model, DECLARATION_ATTRIBUTE, None)
        if declaration is None:
            continue
        for name, options in vars(declaration).items():
            if name.startswith("__"):
                continue
            if has_nested_attributes(model, name):
                continue
            if options is None or options is True:
                options = {}
            if not isinstance(options, dict):
                raise InvalidOptions(
                    f"{model.__name__}.{DECLARATION_ATTRIBUTE}.{name} must be a dict "
                    "of options"
                )
            registered.append(accepts_nested_attributes_for(model, name, **options))
    return registered
