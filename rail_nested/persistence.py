"""
Single-entity persistence primitives used by the save orchestrator.

Thin layer over the Django ORM: validation, insert/update, delete and the
transaction scope, with storage failures surfaced as ``PersistenceError``.
"""

import logging
from contextlib import contextmanager
from typing import Iterable, Optional

from django.db import DatabaseError, connections, models, router, transaction

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)

SAVE_IN_PROGRESS = "_nested_save_in_progress"


@contextmanager
def nested_save_in_progress(instance: models.Model):
    """Mark ``instance`` so that its own ``save()`` doesn't re-enter the orchestrator."""
    previous = instance.__dict__.get(SAVE_IN_PROGRESS, False)
    instance.__dict__[SAVE_IN_PROGRESS] = True
    try:
        yield instance
    finally:
        instance.__dict__[SAVE_IN_PROGRESS] = previous


class ModelPersistence:
    """Validation and persistence of single model instances."""

    def __init__(self, using: Optional[str] = None):
        self.using = using

    def db_for(self, instance: models.Model) -> str:
        if self.using:
            return self.using
        return instance._state.db or router.db_for_write(type(instance), instance=instance)

    def supports_transactions(self, using: str) -> bool:
        return bool(connections[using].features.supports_transactions)

    def atomic(self, using: str):
        return transaction.atomic(using=using)

    def validate(
        self, instance: models.Model, exclude: Optional[Iterable[str]] = None
    ) -> None:
        """
        Raises:
            ValidationError: If the instance fails its validation rules
        """
        instance.full_clean(exclude=list(exclude or ()))

    def save(self, instance: models.Model, **save_kwargs) -> models.Model:
        """
        Insert or update ``instance``.

        Raises:
            ValidationError: If the model's save() rejects the instance
            PersistenceError: If the database operation fails
        """
        model_name = type(instance).__name__
        if self.using:
            save_kwargs.setdefault("using", self.using)
        try:
            with nested_save_in_progress(instance):
                instance.save(**save_kwargs)
        except DatabaseError as exc:
            raise PersistenceError(
                f"Failed to save {model_name}: {exc}", model_name=model_name
            ) from exc
        logger.debug("Saved %s(pk=%s)", model_name, instance.pk)
        return instance

    def delete(self, instance: models.Model) -> None:
        """
        Raises:
            PersistenceError: If the database operation fails
        """
        model_name = type(instance).__name__
        pk = instance.pk
        try:
            instance.delete(using=self.using)
        except DatabaseError as exc:
            raise PersistenceError(
                f"Failed to delete {model_name}(pk={pk}): {exc}", model_name=model_name
            ) from exc
        logger.debug("Deleted %s(pk=%s)", model_name, pk)
