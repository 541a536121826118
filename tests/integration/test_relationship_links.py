"""
Integration tests for to-one, forward and many-to-many nested relationships,
and for relationships registered explicitly.
"""

import pytest

from rail_nested import accepts_nested_attributes_for, has_nested_attributes, save_nested
from rail_nested.exceptions import InvalidPayload, SaveFailed, StaleReference
from rail_nested.resolver import ChildAction
from test_app.models import Manager, Member, Person, Profile, Project, Tag, Team

pytestmark = [pytest.mark.integration, pytest.mark.django_db]


class TestReverseOneToOne:
    def test_create(self):
        """A new profile is created and cached on the parent."""
        person = Person(name="Ada")
        person.profile_attributes = {"bio": "Mathematician"}

        person.save()

        assert Profile.objects.get(person=person).bio == "Mathematician"
        assert person.profile.bio == "Mathematician"

    def test_update(self):
        """Submitting the child's id updates it in place."""
        person = Person.objects.create(name="Ada")
        profile = Profile.objects.create(person=person, bio="Old")
        person = Person.objects.get(pk=person.pk)

        person.profile_attributes = {"id": profile.pk, "bio": "New"}
        person.save()

        assert Profile.objects.get(pk=profile.pk).bio == "New"
        assert Profile.objects.count() == 1

    def test_destroy_clears_cached_child(self):
        """Destroying the profile clears the cached accessor."""
        person = Person.objects.create(name="Ada")
        profile = Profile.objects.create(person=person, bio="Old")
        person = Person.objects.get(pk=person.pk)
        assert person.profile.pk == profile.pk

        person.profile_attributes = {"id": profile.pk, "_destroy": "true"}
        person.save()

        assert not Profile.objects.exists()
        with pytest.raises(Profile.DoesNotExist):
            person.profile

    def test_validation_error_key(self):
        """To-one errors are keyed without an index."""
        person = Person(name="Ada")
        person.profile_attributes = {"bio": "b" * 201, "website": "not a url"}

        assert person.save_with_nested_attributes() is False

        assert set(person.nested_errors.keys()) == {"profile.bio", "profile.website"}

    def test_second_child_is_rejected_at_assignment(self):
        """A new profile next to a stored one is refused before storage is touched."""
        person = Person.objects.create(name="Ada")
        Profile.objects.create(person=person, bio="Old")
        person = Person.objects.get(pk=person.pk)

        with pytest.raises(InvalidPayload) as exc_info:
            person.profile_attributes = {"bio": "Another"}

        assert exc_info.value.field == "profile_attributes"
        assert person.pending_nested_actions() == []
        assert Profile.objects.get().bio == "Old"

    def test_destroy_marked_second_child_is_skipped(self):
        """A marked new profile is skipped rather than refused."""
        person = Person.objects.create(name="Ada")
        Profile.objects.create(person=person, bio="Old")
        person = Person.objects.get(pk=person.pk)

        person.profile_attributes = {"bio": "Another", "_destroy": True}

        assert [a.action for a in person.pending_nested_actions()] == [ChildAction.SKIP]

    def test_collection_payload_is_rejected(self):
        """A list for a to-one relationship raises InvalidPayload."""
        person = Person(name="Ada")

        with pytest.raises(InvalidPayload):
            person.profile_attributes = [{"bio": "Hi"}]


class TestForwardForeignKey:
    def test_create_links_parent(self):
        """A new forward child is saved first and linked to the parent."""
        project = Project(title="Roadmap")
        project.manager_attributes = {"name": "Linus"}

        project.save()

        project.refresh_from_db()
        assert project.manager.name == "Linus"

    def test_update(self):
        """Submitting the child's id updates it in place."""
        manager = Manager.objects.create(name="Linus")
        project = Project.objects.create(title="Roadmap", manager=manager)

        project.manager_attributes = {"id": manager.pk, "name": "Linus T."}
        project.save()

        assert Manager.objects.get(pk=manager.pk).name == "Linus T."
        assert Project.objects.get(pk=project.pk).manager_id == manager.pk

    def test_destroy_unlinks_then_deletes(self):
        """The parent is unlinked before the forward child is deleted."""
        manager = Manager.objects.create(name="Linus")
        project = Project.objects.create(title="Roadmap", manager=manager)

        project.manager_attributes = {"id": manager.pk, "_destroy": 1}
        project.save()

        assert not Manager.objects.exists()
        assert Project.objects.get(pk=project.pk).manager_id is None
        assert project.manager is None

    def test_unknown_manager_id(self):
        """Only the currently linked forward child can be referenced."""
        project = Project.objects.create(title="Roadmap")
        other = Manager.objects.create(name="Grace")

        with pytest.raises(StaleReference):
            project.manager_attributes = {"id": other.pk, "name": "Hopper"}


class TestManyToMany:
    def test_create_adds_to_association(self):
        """New many-to-many children are added to the association."""
        project = Project(title="Roadmap")
        project.tags_attributes = [{"label": "backend"}, {"label": "urgent"}]

        project.save()

        assert sorted(project.tags.values_list("label", flat=True)) == ["backend", "urgent"]

    def test_destroy_removes_and_deletes(self):
        """Destroyed many-to-many children are removed and deleted."""
        project = Project.objects.create(title="Roadmap")
        keep = Tag.objects.create(label="keep")
        drop = Tag.objects.create(label="drop")
        project.tags.add(keep, drop)

        project.tags_attributes = [{"id": drop.pk, "_destroy": True}, {"id": keep.pk, "label": "kept"}]
        project.save()

        assert list(project.tags.values_list("label", flat=True)) == ["kept"]
        assert not Tag.objects.filter(pk=drop.pk).exists()

    def test_unique_label_is_validated_before_writing(self):
        """Unique checks run in the validation pass."""
        Tag.objects.create(label="taken")
        project = Project(title="Roadmap")
        project.tags_attributes = [{"label": "taken"}]

        assert project.save_with_nested_attributes() is False

        assert "tags[0].label" in project.nested_errors
        assert Project.objects.count() == 0


class TestMixedRelationships:
    def test_forward_children_are_saved_before_parent(self):
        """Forward, reverse and many-to-many actions run in one save."""
        project = Project(title="Roadmap")
        project.tags_attributes = [{"label": "ops"}]
        project.manager_attributes = {"name": "Linus"}
        project.tasks_attributes = [{"name": "Plan"}, {"name": ""}]

        project.save()

        project = Project.objects.get(pk=project.pk)
        assert project.manager.name == "Linus"
        assert list(project.tags.values_list("label", flat=True)) == ["ops"]
        assert list(project.tasks.values_list("name", flat=True)) == ["Plan"]

    def test_action_count(self):
        """Each submitted row yields exactly one pending action."""
        project = Project(title="Roadmap")
        project.tags_attributes = [{"label": "ops"}, {"label": "dev"}]
        project.manager_attributes = {"name": "Linus"}
        project.tasks_attributes = [{"name": "Plan"}, {"name": ""}]

        actions = project.pending_nested_actions()

        assert len(actions) == 5
        assert [a.action for a in project.pending_nested_actions("tasks")] == [
            ChildAction.CREATE,
            ChildAction.SKIP,
        ]


@pytest.fixture(scope="module")
def team_members():
    if not has_nested_attributes(Team, "members"):
        accepts_nested_attributes_for(Team, "members", allow_destroy=True)
    return Team


class TestExplicitRegistration:
    def test_plain_model_uses_save_nested(self, team_members):
        """Models without the mixin save through save_nested."""
        team = Team(name="Core")
        team.members_attributes = [{"nickname": "ada"}, {"nickname": "grace"}]

        save_nested(team)

        assert list(team.members.values_list("nickname", flat=True)) == ["ada", "grace"]

    def test_plain_save_ignores_pending_actions(self, team_members):
        """A plain model's save() doesn't apply nested actions."""
        team = Team(name="Core")
        team.members_attributes = [{"nickname": "ada"}]

        team.save()

        assert Member.objects.count() == 0

    def test_errors_are_collected(self, team_members):
        """Child errors of an explicitly registered association are reported."""
        team = Team.objects.create(name="Core")
        member = Member.objects.create(team=team, nickname="ada")
        team.members_attributes = [{"id": member.pk, "nickname": "n" * 31}]

        with pytest.raises(SaveFailed) as exc_info:
            save_nested(team)

        assert exc_info.value.child_errors == {
            "members[0]": {"nickname": ["Ensure this value has at most 30 characters (it has 31)."]}
        }
        assert Member.objects.get(pk=member.pk).nickname == "ada"
