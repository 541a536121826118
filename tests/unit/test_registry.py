"""
Unit tests for nested attributes registration and relationship metadata.
"""

import pytest

from rail_nested.accessors import NestedAttributesAccessor
from rail_nested.exceptions import InvalidOptions, NestedAttributesError, UnknownRelationship
from rail_nested.guards import CallableGuard, NamedPredicate, NoGuard, build_guard
from rail_nested.registry import (
    accepts_nested_attributes_for,
    get_nested_relationship,
    get_nested_relationships,
    has_nested_attributes,
    register_declared_nested_attributes,
    reject_new_nested_attributes_guard_for,
)
from rail_nested.relationships import NestedRelationship, RelationshipKind, RelationshipLink
from test_app.models import Address, Manager, Person, Project, Tag, _blank_address

pytestmark = pytest.mark.unit


class TestRelationshipClassification:
    """Relationships are described by cardinality and link style."""

    @pytest.mark.parametrize(
        "model,name,kind,link",
        [
            (Person, "addresses", RelationshipKind.TO_MANY, RelationshipLink.REVERSE),
            (Person, "profile", RelationshipKind.TO_ONE, RelationshipLink.REVERSE),
            (Project, "manager", RelationshipKind.TO_ONE, RelationshipLink.FORWARD),
            (Project, "tags", RelationshipKind.TO_MANY, RelationshipLink.MANY_TO_MANY),
            (Tag, "projects", RelationshipKind.TO_MANY, RelationshipLink.MANY_TO_MANY),
        ],
    )
    def test_classify(self, model, name, kind, link):
        """Each Django relation maps to a cardinality and a link style."""
        relationship = NestedRelationship.from_model(model, name)

        assert relationship.kind is kind
        assert relationship.link is link

    def test_plain_field_is_not_a_relationship(self):
        """A concrete non-relation field is an unknown relationship."""
        with pytest.raises(UnknownRelationship) as exc_info:
            NestedRelationship.from_model(Person, "name")

        assert exc_info.value.relationship_name == "name"
        assert exc_info.value.model_name == "Person"

    def test_identity_keys(self):
        """Identity keys, setter name and link field follow the child model."""
        relationship = NestedRelationship.from_model(Person, "addresses")

        assert relationship.identity_keys == ("id",)
        assert relationship.setter_name == "addresses_attributes"
        assert relationship.link_field_name == "person"
        assert relationship.child_model is Address


class TestDeclaredRegistration:
    """Models declaring ``class NestedAttributes`` are registered at startup."""

    def test_declared_associations_are_registered(self):
        """Inner NestedAttributes blocks are registered in declaration order."""
        assert list(get_nested_relationships(Person)) == ["addresses", "profile"]
        assert has_nested_attributes(Project, "tasks")
        assert not has_nested_attributes(Person, "name")

    def test_setter_is_installed(self):
        """Registration installs the <name>_attributes descriptor."""
        assert isinstance(Person.__dict__["addresses_attributes"], NestedAttributesAccessor)

    def test_options_are_kept(self):
        """Declared options end up on the relationship config."""
        relationship = get_nested_relationship(Person, "addresses")

        assert relationship.config.allow_destroy is True
        assert isinstance(relationship.config.reject_if, CallableGuard)
        assert get_nested_relationship(Project, "tasks").config.allow_destroy is False

    def test_reregistering_declarations_is_a_no_op(self):
        """Already registered declarations are skipped."""
        assert register_declared_nested_attributes([Person]) == []

    def test_get_unregistered_relationship(self):
        """Looking up an unregistered association raises."""
        with pytest.raises(UnknownRelationship):
            get_nested_relationship(Manager, "projects")

    def test_registry_is_per_model(self):
        """Registrations never leak between models."""
        assert get_nested_relationships(Address).keys() == {"phones"}
        assert get_nested_relationships(Manager) == {}


class TestRegistrationOptions:
    """Invalid registrations raise before anything is stored."""

    def test_unknown_relationship(self):
        """An unknown name raises and installs nothing."""
        with pytest.raises(UnknownRelationship):
            accepts_nested_attributes_for(Manager, "missing")

        assert not hasattr(Manager, "missing_attributes")

    def test_unknown_option(self):
        """Options other than allow_destroy and reject_if are refused."""
        with pytest.raises(InvalidOptions) as exc_info:
            accepts_nested_attributes_for(Manager, "projects", allow_delete=True)

        assert "allow_delete" in str(exc_info.value)
        assert not has_nested_attributes(Manager, "projects")

    def test_allow_destroy_must_be_boolean(self):
        """allow_destroy only accepts booleans."""
        with pytest.raises(InvalidOptions):
            accepts_nested_attributes_for(Manager, "projects", allow_destroy="yes")

    def test_reject_if_method_must_exist(self):
        """A reject_if method name must exist on the model."""
        with pytest.raises(InvalidOptions) as exc_info:
            accepts_nested_attributes_for(Manager, "projects", reject_if="no_such_method")

        assert exc_info.value.field == "reject_if"
        assert not has_nested_attributes(Manager, "projects")

    def test_reject_if_must_be_callable(self):
        """reject_if values that aren't callable are refused."""
        with pytest.raises(InvalidOptions):
            accepts_nested_attributes_for(Manager, "projects", reject_if=42)

    def test_duplicate_registration(self):
        """Registering an association twice raises."""
        with pytest.raises(InvalidOptions):
            accepts_nested_attributes_for(Person, "addresses")


class TestRejectIfGuards:
    def test_guard_source_is_reported(self):
        """The original reject_if value is reported back."""
        assert reject_new_nested_attributes_guard_for(Project, "tasks") == "reject_blank_task"
        assert reject_new_nested_attributes_guard_for(Person, "addresses") is _blank_address
        assert reject_new_nested_attributes_guard_for(Person, "profile") is None
        assert reject_new_nested_attributes_guard_for(Person, "missing") is None

    def test_build_guard(self):
        """Each reject_if form builds the matching guard."""
        assert isinstance(build_guard(Project, None), NoGuard)
        assert isinstance(build_guard(Project, "reject_blank_task"), NamedPredicate)
        assert isinstance(build_guard(Project, lambda attrs: False), CallableGuard)

        guard = NoGuard()
        assert build_guard(Project, guard) is guard

    def test_named_predicate_calls_parent_method(self):
        """A method-name guard calls the parent's method."""
        guard = NamedPredicate("reject_blank_task")
        project = Project(title="Roadmap")

        assert guard.evaluate({"name": "  "}, project) is True
        assert guard.evaluate({"name": "Write"}, project) is False

    def test_named_predicate_needs_parent(self):
        """A method-name guard can't run without a parent."""
        with pytest.raises(NestedAttributesError) as exc_info:
            NamedPredicate("reject_blank_task").evaluate({"name": ""})

        assert exc_info.value.code == "GUARD_WITHOUT_PARENT"

    def test_callable_guard_result_is_coerced(self):
        """Callable guard results are coerced to bool."""
        guard = CallableGuard(lambda attrs: attrs.get("city"))

        assert guard.evaluate({"city": "Paris"}) is True
        assert guard.evaluate({}) is False
