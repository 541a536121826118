"""
NestedAttributesSettings implementation.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from django.conf import settings as django_settings
from django.core.exceptions import ImproperlyConfigured

from .defaults import (
    LIBRARY_DEFAULTS,
    NON_TRANSACTIONAL_POLICIES,
    SETTINGS_NAME,
    merge_settings,
)

logger = logging.getLogger(__name__)


def _get_project_settings() -> dict[str, Any]:
    """Get the RAIL_NESTED_ATTRIBUTES dict from Django settings."""
    configured = getattr(django_settings, SETTINGS_NAME, None) or {}
    if not isinstance(configured, dict):
        raise ImproperlyConfigured(f"{SETTINGS_NAME} must be a dict")
    return configured


@dataclass
class NestedAttributesSettings:
    """Settings controlling nested attribute assignment and saving."""

    destroy_marker: str = "_destroy"
    truthy_values: List[Any] = field(
        default_factory=lambda: list(LIBRARY_DEFAULTS["truthy_values"])
    )
    non_transactional_policy: str = "best_effort"
    max_records: Optional[int] = None
    validate_before_persist: bool = True

    @classmethod
    def from_django_settings(cls) -> "NestedAttributesSettings":
        merged = merge_settings(LIBRARY_DEFAULTS, _get_project_settings())
        valid_fields = set(cls.__dataclass_fields__.keys())
        return cls(**{k: v for k, v in merged.items() if k in valid_fields})

    def is_truthy(self, value: Any) -> bool:
        """Return True when ``value`` is one of the configured truthy markers."""
        # bool is an int subclass, so compare on type as well as value
        return any(
            type(value) is type(candidate) and value == candidate
            for candidate in self.truthy_values
        )


def get_nested_settings() -> NestedAttributesSettings:
    return NestedAttributesSettings.from_django_settings()


def validate_settings(config: Optional[NestedAttributesSettings] = None) -> None:
    """
    Check the library settings.

    Raises:
        ImproperlyConfigured: If any setting has an unusable value
    """
    config = config or get_nested_settings()
    problems: list[str] = []

    if not isinstance(config.destroy_marker, str) or not config.destroy_marker:
        problems.append("destroy_marker must be a non-empty string")
    if not isinstance(config.truthy_values, (list, tuple)):
        problems.append("truthy_values must be a list")
    if config.non_transactional_policy not in NON_TRANSACTIONAL_POLICIES:
        problems.append(
            "non_transactional_policy must be one of "
            + ", ".join(repr(p) for p in NON_TRANSACTIONAL_POLICIES)
        )
    if config.max_records is not None and (
        not isinstance(config.max_records, int)
        or isinstance(config.max_records, bool)
        or config.max_records < 1
    ):
        problems.append("max_records must be a positive integer or None")

    if problems:
        raise ImproperlyConfigured(
            f"Invalid {SETTINGS_NAME}: " + "; ".join(problems)
        )
    logger.debug("Nested attributes settings validated: %s", config)
