"""
Relationship metadata for nested attributes.

Wraps the Django ``_meta`` relation objects behind ``NestedRelationship`` so
the resolver and orchestrator only deal with a cardinality
(``RelationshipKind``) and a link style (``RelationshipLink``):

- REVERSE: the child holds a foreign key to the parent (reverse FK / O2O)
- FORWARD: the parent holds a foreign key to the child (FK / O2O field)
- MANY_TO_MANY: parent and child are joined through a table
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from django.db import models

from .exceptions import InvalidOptions, UnknownRelationship

if TYPE_CHECKING:
    from .registry import NestedAttributesConfig

logger = logging.getLogger(__name__)


class RelationshipKind(Enum):
    TO_ONE = "to_one"
    TO_MANY = "to_many"


class RelationshipLink(Enum):
    REVERSE = "reverse"
    FORWARD = "forward"
    MANY_TO_MANY = "many_to_many"


def _find_relation(model: type[models.Model], name: str):
    """Find a forward relation field or a reverse relation by accessor name."""
    for candidate in model._meta.get_fields(include_hidden=False):
        if not candidate.is_relation:
            continue
        if candidate.auto_created and not candidate.concrete:
            # Reverse relations are addressed by their accessor, like the
            # attribute callers actually use on the instance.
            if candidate.get_accessor_name() == name:
                return candidate
        elif candidate.name == name:
            return candidate
    return None


def _classify(relation) -> tuple[RelationshipKind, RelationshipLink]:
    if isinstance(relation, models.ManyToManyField) or isinstance(
        relation, models.ManyToManyRel
    ):
        return RelationshipKind.TO_MANY, RelationshipLink.MANY_TO_MANY
    if isinstance(relation, models.OneToOneRel):
        return RelationshipKind.TO_ONE, RelationshipLink.REVERSE
    if isinstance(relation, models.ManyToOneRel):
        return RelationshipKind.TO_MANY, RelationshipLink.REVERSE
    if isinstance(relation, models.ForeignKey):
        # OneToOneField is a ForeignKey subclass; both point at a single child.
        return RelationshipKind.TO_ONE, RelationshipLink.FORWARD
    raise InvalidOptions(
        f"Relationship {relation.name!r} of type {type(relation).__name__} "
        "does not support nested attributes"
    )


@dataclass(frozen=True)
class NestedRelationship:
    """
    A relationship of a parent model that accepts nested attributes.

    The nested attributes configuration is owned by the descriptor and set
    once, at registration.
    """

    name: str
    model: type[models.Model]
    child_model: type[models.Model]
    kind: RelationshipKind
    link: RelationshipLink
    relation: Any = field(repr=False, compare=False)
    config: Optional["NestedAttributesConfig"] = field(default=None, compare=False)

    @classmethod
    def from_model(
        cls,
        model: type[models.Model],
        name: str,
        config: Optional["NestedAttributesConfig"] = None,
    ) -> "NestedRelationship":
        """
        Resolve ``name`` on ``model``.

        Raises:
            UnknownRelationship: If ``name`` is not a relationship of ``model``
            InvalidOptions: If the relationship type is not supported
        """
        relation = _find_relation(model, name)
        if relation is None:
            raise UnknownRelationship(model.__name__, name)
        kind, link = _classify(relation)
        return cls(
            name=name,
            model=model,
            child_model=relation.related_model,
            kind=kind,
            link=link,
            relation=relation,
            config=config,
        )

    @property
    def is_collection(self) -> bool:
        return self.kind is RelationshipKind.TO_MANY

    @property
    def setter_name(self) -> str:
        return f"{self.name}_attributes"

    @property
    def link_field_name(self) -> Optional[str]:
        """Name of the foreign key joining parent and child, if there is one."""
        if self.link is RelationshipLink.REVERSE:
            return self.relation.field.name
        if self.link is RelationshipLink.FORWARD:
            return self.relation.name
        return None

    @property
    def identity_keys(self) -> tuple[str, ...]:
        pk = self.child_model._meta.pk
        return tuple(dict.fromkeys(("id", pk.name, pk.attname)))

    def current_children(self, parent: models.Model) -> list[models.Model]:
        """Children currently associated with ``parent`` in storage."""
        if self.link is RelationshipLink.FORWARD:
            try:
                child = getattr(parent, self.name)
            except self.child_model.DoesNotExist:
                return []
            return [child] if child is not None else []

        if parent.pk is None or parent._state.adding:
            return []

        if self.kind is RelationshipKind.TO_ONE:
            try:
                return [getattr(parent, self.name)]
            except self.child_model.DoesNotExist:
                return []
        return list(getattr(parent, self.name).all())

    def child_validation_exclude(self) -> list[str]:
        """Fields skipped when validating a child before its parent is linked."""
        if self.link is RelationshipLink.REVERSE:
            return [self.relation.field.name]
        return []

    def link_child(self, parent: models.Model, child: models.Model) -> None:
        """Point a reverse child at its (saved) parent before the child is saved."""
        if self.link is RelationshipLink.REVERSE:
            setattr(child, self.relation.field.name, parent)

    def attach_child(self, parent: models.Model, child: models.Model) -> None:
        """Associate a saved child with the parent."""
        if self.link is RelationshipLink.FORWARD:
            setattr(parent, self.name, child)
        elif self.link is RelationshipLink.MANY_TO_MANY:
            getattr(parent, self.name).add(child)

    def detach_child(self, parent: models.Model, child: models.Model) -> None:
        """Drop the association before the child is deleted."""
        if self.link is RelationshipLink.FORWARD:
            setattr(parent, self.name, None)
        elif self.link is RelationshipLink.MANY_TO_MANY:
            getattr(parent, self.name).remove(child)

    def refresh_cache(
        self, parent: models.Model, remaining: Optional[models.Model] = None
    ) -> None:
        """
        Make the parent's in-memory association match storage after a save.

        ``remaining`` is the to-one child left after the save, if any.
        """
        prefetched = getattr(parent, "_prefetched_objects_cache", None)
        if prefetched:
            prefetched.pop(self.name, None)
            if isinstance(self.relation, models.ForeignObjectRel):
                prefetched.pop(self.relation.field.related_query_name(), None)

        if self.kind is RelationshipKind.TO_ONE and self.link is RelationshipLink.REVERSE:
            if remaining is not None:
                self.relation.set_cached_value(parent, remaining)
            elif self.relation.is_cached(parent):
                self.relation.delete_cached_value(parent)
        logger.debug(
            "Refreshed %s.%s association cache", self.model.__name__, self.name
        )
