"""
Model mixin wiring nested attributes into ``save()``.
"""

import logging
from typing import Optional

from django.db import models

from .accessors import (
    clear_nested_attributes,
    get_nested_errors,
    get_pending_plan,
    has_pending_nested_actions,
)
from .aggregation import ErrorCollection
from .exceptions import SaveFailed
from .orchestrator import NestedSaveOrchestrator
from .persistence import SAVE_IN_PROGRESS
from .resolver import PendingChildAction

logger = logging.getLogger(__name__)


class NestedAttributesMixin(models.Model):
    """
    Abstract base for models accepting nested attributes.

    ``save()`` commits pending nested actions together with the instance and
    raises ``SaveFailed`` on validation errors. ``save_with_nested_attributes()``
    returns a boolean instead and leaves the details in ``nested_errors``.
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self.__dict__.get(SAVE_IN_PROGRESS) or not has_pending_nested_actions(self):
            return super().save(*args, **kwargs)
        if args:
            raise TypeError("save() with nested attributes takes keyword arguments only")
        NestedSaveOrchestrator().save(self, **kwargs)

    save.alters_data = True

    def save_with_nested_attributes(self, **kwargs) -> bool:
        """Save the instance; return False and fill ``nested_errors`` on validation errors."""
        try:
            NestedSaveOrchestrator().save(self, **kwargs)
        except SaveFailed as exc:
            logger.debug("%s not saved: %s", type(self).__name__, exc)
            return False
        return True

    save_with_nested_attributes.alters_data = True

    @property
    def nested_errors(self) -> ErrorCollection:
        return get_nested_errors(self)

    def pending_nested_actions(
        self, association_name: Optional[str] = None
    ) -> list[PendingChildAction]:
        actions: list[PendingChildAction] = []
        for relationship, pending in get_pending_plan(self):
            if association_name is None or relationship.name == association_name:
                actions.extend(pending)
        return actions

    def clear_nested_attributes(self, association_name: Optional[str] = None) -> None:
        clear_nested_attributes(self, association_name)
