"""
Default configuration for the rail-nested library.

Every key listed here is consumed by
``rail_nested.settings.NestedAttributesSettings``. Projects override them
through the ``RAIL_NESTED_ATTRIBUTES`` Django setting.
"""

from __future__ import annotations

from typing import Any

LIBRARY_VERSION = "0.1.0"
LIBRARY_NAME = "rail-nested"

SETTINGS_NAME = "RAIL_NESTED_ATTRIBUTES"

NON_TRANSACTIONAL_POLICIES = ("best_effort", "fail")


LIBRARY_DEFAULTS: dict[str, Any] = {
    # Field of a child mapping that asks for the child to be removed.
    "destroy_marker": "_destroy",
    # Values of the destroy marker treated as "true".
    "truthy_values": [True, 1, "1", "t", "T", "true", "TRUE"],
    # What to do when the write database cannot roll back:
    # "best_effort" runs the actions sequentially, "fail" refuses to write.
    "non_transactional_policy": "best_effort",
    # Upper bound on the number of records in a to-many payload (None = no limit).
    "max_records": None,
    # Run full_clean() on the whole graph before the first write.
    "validate_before_persist": True,
}


def merge_settings(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge settings dictionaries, later ones taking precedence."""
    result: dict[str, Any] = {}
    for config in configs:
        if config:
            result.update(config)
    return result
