"""
Django app configuration for the rail-nested library.

This module configures:
- Validation of the RAIL_NESTED_ATTRIBUTES settings
- Registration of associations declared in ``class NestedAttributes`` blocks
"""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class RailNestedConfig(AppConfig):
    """Django app configuration for rail-nested."""

    name = "rail_nested"
    label = "rail_nested"
    verbose_name = "Rail Nested Attributes"

    def ready(self):
        """Initialize the application after Django has loaded."""
        logger.debug("RailNestedConfig.ready() called - starting initialization")
        self._validate_configuration()
        self._register_declared_associations()

    def _validate_configuration(self):
        """Validate library configuration; invalid settings stop startup."""
        from .settings import validate_settings

        validate_settings()
        logger.debug("Configuration validation completed")

    def _register_declared_associations(self):
        """Register nested attributes declared on installed models."""
        from .registry import register_declared_nested_attributes

        registered = register_declared_nested_attributes()
        if registered:
            logger.info(
                "Registered %s nested attributes association(s) from model declarations",
                len(registered),
            )
