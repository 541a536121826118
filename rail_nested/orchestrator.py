"""
Transactional save orchestration for nested attributes.

Saves a parent together with the pending actions of its nested
relationships as one unit of work:

1. Validation pass: the parent and every child being created or updated
   are validated with ``full_clean()``; nothing is written if anything fails.
2. Persistence pass inside ``transaction.atomic``: many-to-one children,
   then the parent, then the remaining children in submission order.

Any failure rolls the transaction back and leaves the parent's
``nested_errors`` describing what went wrong.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from django.core.exceptions import ValidationError
from django.db import models

from .accessors import (
    clear_pending_actions,
    get_nested_errors,
    get_pending_plan,
)
from .aggregation import (
    ErrorCollection,
    aggregate_validation_error,
    association_key,
    split_parent_and_child_errors,
)
from .exceptions import PersistenceError, SaveFailed
from .persistence import ModelPersistence
from .registry import get_nested_relationship
from .relationships import NestedRelationship, RelationshipKind, RelationshipLink
from .resolver import ChildAction, PendingChildAction
from .settings import NestedAttributesSettings, get_nested_settings

logger = logging.getLogger(__name__)

Plan = list[tuple[NestedRelationship, list[PendingChildAction]]]


class _Aborted(Exception):
    """Internal: a write was rejected by validation, errors are already collected."""


@dataclass
class _SaveRun:
    errors: ErrorCollection
    settings: NestedAttributesSettings
    created: list[models.Model] = field(default_factory=list)
    deleted: list[tuple[models.Model, Any]] = field(default_factory=list)
    unlinked: list[tuple[models.Model, str, Optional[models.Model]]] = field(default_factory=list)
    applied: list[tuple[models.Model, Plan]] = field(default_factory=list)


class NestedSaveOrchestrator:
    """Persists a parent and its pending nested child actions atomically."""

    def __init__(
        self,
        persistence: Optional[ModelPersistence] = None,
        settings: Optional[NestedAttributesSettings] = None,
    ):
        self.persistence = persistence or ModelPersistence()
        self.settings = settings

    def save(
        self,
        parent: models.Model,
        pending_actions: Optional[Mapping[str, Sequence[PendingChildAction]]] = None,
        **save_kwargs: Any,
    ) -> models.Model:
        """
        Save ``parent`` and apply its nested child actions in one transaction.

        Args:
            parent: The parent model instance
            pending_actions: Actions per association name; defaults to the
                actions stored on the parent by ``<association>_attributes``
            **save_kwargs: Passed to the parent's ``save()``

        Returns:
            The saved parent

        Raises:
            SaveFailed: If the parent or a child fails validation
            PersistenceError: If the database rejects a write, or refuses
                transactions under the "fail" policy
        """
        settings = self.settings or get_nested_settings()
        plan = self._plan_for(parent, pending_actions)
        errors = get_nested_errors(parent)
        errors.clear()
        run = _SaveRun(errors=errors, settings=settings)

        if settings.validate_before_persist:
            self._validate_graph(parent, plan, None, (), run)
            if errors:
                raise self._failure(parent, plan, errors)

        using = self.persistence.db_for(parent)
        transactional = self.persistence.supports_transactions(using)
        if not transactional:
            if settings.non_transactional_policy == "fail":
                raise PersistenceError(
                    f"Database {using!r} does not support transactions; refusing "
                    f"to save {type(parent).__name__} with nested attributes",
                    model_name=type(parent).__name__,
                )
            logger.warning(
                "Database %r does not support transactions, saving %s and its "
                "nested children without rollback",
                using,
                type(parent).__name__,
            )

        try:
            if transactional:
                with self.persistence.atomic(using):
                    self._persist_graph(parent, plan, None, run, save_kwargs)
            else:
                self._persist_graph(parent, plan, None, run, save_kwargs)
        except _Aborted:
            if transactional:
                self._restore(run)
            logger.warning(
                "Nested save of %s rolled back: %s", type(parent).__name__, errors.as_dict()
            )
            raise self._failure(parent, plan, errors) from None
        except PersistenceError as exc:
            if transactional:
                self._restore(run)
            logger.warning(
                "Nested save of %s rolled back: %s", type(parent).__name__, exc
            )
            raise

        self._finish(run)
        logger.info(
            "Saved %s(pk=%s) with %d nested action(s)",
            type(parent).__name__,
            parent.pk,
            sum(len(actions) for _, actions in plan),
        )
        return parent

    def _plan_for(
        self,
        parent: models.Model,
        pending_actions: Optional[Mapping[str, Sequence[PendingChildAction]]],
    ) -> Plan:
        if pending_actions is None:
            return get_pending_plan(parent)
        model = type(parent)
        return [
            (get_nested_relationship(model, name), list(actions))
            for name, actions in pending_actions.items()
        ]

    def _failure(self, parent: models.Model, plan: Plan, errors: ErrorCollection) -> SaveFailed:
        names = [relationship.name for relationship, _ in plan]
        parent_errors, child_errors = split_parent_and_child_errors(errors, names)
        return SaveFailed(
            parent_errors=parent_errors,
            child_errors=child_errors,
            model_name=type(parent).__name__,
        )

    # Validation pass

    def _validate_graph(
        self,
        instance: models.Model,
        plan: Plan,
        key: Optional[str],
        exclude: Sequence[str],
        run: _SaveRun,
    ) -> None:
        exclude = list(exclude)
        for relationship, actions in plan:
            # A many-to-one child created in this save isn't assigned yet.
            if relationship.link is RelationshipLink.FORWARD and any(
                pending.action is ChildAction.CREATE for pending in actions
            ):
                exclude.append(relationship.name)
        try:
            self.persistence.validate(instance, exclude=exclude)
        except ValidationError as exc:
            aggregate_validation_error(run.errors, exc, key)

        for relationship, actions in plan:
            for pending in actions:
                if not pending.writes:
                    continue
                child = pending.entity
                self._validate_graph(
                    child,
                    get_pending_plan(child),
                    association_key(relationship, pending.index, key),
                    relationship.child_validation_exclude(),
                    run,
                )

    # Persistence pass

    def _persist_graph(
        self,
        instance: models.Model,
        plan: Plan,
        key: Optional[str],
        run: _SaveRun,
        save_kwargs: Mapping[str, Any],
    ) -> None:
        forward = [item for item in plan if item[0].link is RelationshipLink.FORWARD]
        others = [item for item in plan if item[0].link is not RelationshipLink.FORWARD]

        detached: list[models.Model] = []
        for relationship, actions in forward:
            for pending in actions:
                child_key = association_key(relationship, pending.index, key)
                if pending.writes:
                    self._persist_child(instance, relationship, pending, child_key, run)
                elif pending.action is ChildAction.DESTROY:
                    self._remember_link(instance, relationship, run)
                    relationship.detach_child(instance, pending.target)
                    detached.append(pending.target)

        self._write(instance, key, run, save_kwargs)

        for child in detached:
            self._delete(child, run)

        for relationship, actions in others:
            for pending in actions:
                if pending.action is ChildAction.SKIP:
                    continue
                if pending.action is ChildAction.DESTROY:
                    relationship.detach_child(instance, pending.target)
                    self._delete(pending.target, run)
                    continue
                relationship.link_child(instance, pending.entity)
                self._persist_child(
                    instance,
                    relationship,
                    pending,
                    association_key(relationship, pending.index, key),
                    run,
                )

        run.applied.append((instance, plan))

    def _persist_child(
        self,
        parent: models.Model,
        relationship: NestedRelationship,
        pending: PendingChildAction,
        key: str,
        run: _SaveRun,
    ) -> None:
        child = pending.entity
        self._persist_graph(child, get_pending_plan(child), key, run, {})
        if pending.action is ChildAction.CREATE or relationship.link is RelationshipLink.FORWARD:
            self._remember_link(parent, relationship, run)
            relationship.attach_child(parent, child)

    def _remember_link(
        self, parent: models.Model, relationship: NestedRelationship, run: _SaveRun
    ) -> None:
        # Only a forward link lives on the parent instance itself.
        if relationship.link is RelationshipLink.FORWARD:
            current = relationship.current_children(parent)
            run.unlinked.append((parent, relationship.name, current[0] if current else None))

    def _delete(self, instance: models.Model, run: _SaveRun) -> None:
        # Model.delete() clears the pk of the deleted instance.
        run.deleted.append((instance, instance.pk))
        self.persistence.delete(instance)

    def _write(
        self,
        instance: models.Model,
        key: Optional[str],
        run: _SaveRun,
        save_kwargs: Mapping[str, Any],
    ) -> None:
        adding = instance._state.adding or instance.pk is None
        try:
            if not run.settings.validate_before_persist:
                self.persistence.validate(instance)
            self.persistence.save(instance, **save_kwargs)
        except ValidationError as exc:
            aggregate_validation_error(run.errors, exc, key)
            raise _Aborted() from exc
        if adding:
            run.created.append(instance)

    # Outcome

    def _restore(self, run: _SaveRun) -> None:
        """Give the in-memory graph of a rolled-back attempt its pre-save state back."""
        for instance in run.created:
            instance.pk = None
            instance._state.adding = True
        for instance, pk in run.deleted:
            instance.pk = pk
        for parent, name, previous in reversed(run.unlinked):
            setattr(parent, name, previous)

    def _finish(self, run: _SaveRun) -> None:
        for instance, plan in run.applied:
            for relationship, actions in plan:
                remaining = None
                if relationship.kind is RelationshipKind.TO_ONE:
                    writes = [pending for pending in actions if pending.writes]
                    if writes:
                        remaining = writes[-1].entity
                    elif not any(p.action is ChildAction.DESTROY for p in actions):
                        # Only skipped records: the association is unchanged.
                        continue
                relationship.refresh_cache(instance, remaining)
            clear_pending_actions(instance)


def save_nested(parent: models.Model, **save_kwargs: Any) -> models.Model:
    """
    Save ``parent`` with the nested attributes assigned to it.

    Raises:
        SaveFailed: If the parent or a child fails validation
        PersistenceError: If the database rejects a write
    """
    return NestedSaveOrchestrator().save(parent, **save_kwargs)
