"""
Unit tests for GraphQL error shaping.
"""

import pytest

from rail_nested.aggregation import ErrorCollection
from rail_nested.exceptions import SaveFailed, StaleReference
from rail_nested.graphql import (
    NestedAttributeError,
    build_nested_errors,
    normalize_error_path,
)

pytestmark = pytest.mark.unit


class TestNormalizeErrorPath:
    @pytest.mark.parametrize(
        "key,expected",
        [
            ("name", "name"),
            ("addresses[1].city", "addresses.1.city"),
            ("addresses[0].phones[2].number", "addresses.0.phones.2.number"),
            ("tasks[0].__all__", "tasks.0"),
            ("__all__", None),
            (None, None),
        ],
    )
    def test_paths(self, key, expected):
        """Bracketed keys become dotted GraphQL paths."""
        assert normalize_error_path(key) == expected


class TestBuildNestedErrors:
    def test_from_error_collection(self):
        """Every message in a collection becomes one error."""
        errors = ErrorCollection()
        errors.add("addresses[1].city", "Too long.")
        errors.add("addresses[1].city", "Invalid.")

        result = build_nested_errors(errors)

        assert all(isinstance(item, NestedAttributeError) for item in result)
        assert [(item.field, item.message) for item in result] == [
            ("addresses.1.city", "Too long."),
            ("addresses.1.city", "Invalid."),
        ]

    def test_from_save_failed(self):
        """SaveFailed flattens parent then child errors."""
        exc = SaveFailed(
            parent_errors={"name": ["Required."]},
            child_errors={"profile": {"bio": ["Too long."]}},
        )

        result = build_nested_errors(exc)

        assert [(item.field, item.message) for item in result] == [
            ("name", "Required."),
            ("profile.bio", "Too long."),
        ]

    def test_from_other_nested_error(self):
        """Other library errors become a single error on their field."""
        exc = StaleReference("Address", "addresses", 99)

        (error,) = build_nested_errors(exc)

        assert error.field == "addresses"
        assert "99" in error.message

    def test_from_plain_dict(self):
        """A plain dict of messages is accepted."""
        result = build_nested_errors({"__all__": ["Broken."]})

        assert result[0].field is None
        assert result[0].message == "Broken."
