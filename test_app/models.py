from django.core.validators import RegexValidator
from django.db import models

from rail_nested.mixins import NestedAttributesMixin


def _blank_address(attributes):
    return not any(str(value).strip() for value in attributes.values() if value is not None)


class Person(NestedAttributesMixin):
    name = models.CharField(max_length=100)

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "people"

    class NestedAttributes:
        addresses = {"allow_destroy": True, "reject_if": _blank_address}
        profile = {"allow_destroy": True}


class Address(NestedAttributesMixin):
    person = models.ForeignKey(Person, on_delete=models.CASCADE, related_name="addresses")
    city = models.CharField(max_length=50)
    zip_code = models.CharField(
        max_length=10,
        blank=True,
        validators=[RegexValidator(r"^\d+$", "Enter digits only.")],
    )

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "addresses"
        ordering = ["id"]

    class NestedAttributes:
        phones = {"allow_destroy": True}


class Phone(models.Model):
    address = models.ForeignKey(Address, on_delete=models.CASCADE, related_name="phones")
    number = models.CharField(max_length=20)

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "phones"
        ordering = ["id"]


class Profile(models.Model):
    person = models.OneToOneField(Person, on_delete=models.CASCADE, related_name="profile")
    bio = models.CharField(max_length=200)
    website = models.URLField(blank=True)

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "profiles"


class Manager(models.Model):
    name = models.CharField(max_length=100)

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "managers"


class Tag(models.Model):
    label = models.CharField(max_length=50, unique=True)

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "tags"
        ordering = ["id"]


class Project(NestedAttributesMixin):
    title = models.CharField(max_length=200)
    manager = models.ForeignKey(
        Manager,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="projects",
    )
    tags = models.ManyToManyField(Tag, blank=True, related_name="projects")

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "projects"

    class NestedAttributes:
        tasks = {"reject_if": "reject_blank_task"}
        manager = {"allow_destroy": True}
        tags = {"allow_destroy": True}

    def reject_blank_task(self, attributes):
        return not (attributes.get("name") or "").strip()


class Task(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="tasks")
    name = models.CharField(max_length=100)
    done = models.BooleanField(default=False)

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "tasks"
        ordering = ["id"]


class Team(models.Model):
    """Registered explicitly (not declaratively) by the tests."""

    name = models.CharField(max_length=100)

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "teams"


class Member(models.Model):
    team = models.ForeignKey(Team, on_delete=models.CASCADE, related_name="members")
    nickname = models.CharField(max_length=30)

    class Meta:
        app_label = "test_app"
        verbose_name_plural = "members"
        ordering = ["id"]
