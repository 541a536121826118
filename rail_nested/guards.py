"""
Guards deciding whether a new nested record should be silently skipped.

A ``reject_if`` option is either absent, a callable taking the child
attribute mapping, or the name of a predicate method on the parent model.
Each form is represented by a ``Guard`` with a single ``evaluate`` entry
point so the resolver never has to care which one it got.
"""

from typing import Any, Callable, Mapping, Optional

from django.db import models

from .exceptions import InvalidOptions, NestedAttributesError


class Guard:
    """Predicate over a child attribute mapping."""

    def evaluate(
        self, attributes: Mapping[str, Any], parent: Optional[models.Model] = None
    ) -> bool:
        raise NotImplementedError

    @property
    def source(self) -> Any:
        """The value originally passed as ``reject_if``."""
        return None


class NoGuard(Guard):
    def evaluate(self, attributes, parent=None) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoGuard()"


class NamedPredicate(Guard):
    """Guard resolved to a method of the parent model and called on the parent."""

    def __init__(self, name: str):
        self.name = name

    @property
    def source(self) -> str:
        return self.name

    def evaluate(self, attributes, parent=None) -> bool:
        if parent is None:
            raise NestedAttributesError(
                f"reject_if={self.name!r} needs a parent instance to be evaluated",
                code="GUARD_WITHOUT_PARENT",
            )
        return bool(getattr(parent, self.name)(attributes))

    def __repr__(self) -> str:
        return f"NamedPredicate({self.name!r})"


class CallableGuard(Guard):
    def __init__(self, func: Callable[[Mapping[str, Any]], Any]):
        self.func = func

    @property
    def source(self) -> Callable:
        return self.func

    def evaluate(self, attributes, parent=None) -> bool:
        return bool(self.func(attributes))

    def __repr__(self) -> str:
        return f"CallableGuard({self.func!r})"


def build_guard(model: type[models.Model], reject_if: Any) -> Guard:
    """
    Turn a ``reject_if`` option into a Guard.

    Raises:
        InvalidOptions: If ``reject_if`` is neither None, a callable, nor the
            name of a callable attribute of ``model``
    """
    if reject_if is None:
        return NoGuard()
    if isinstance(reject_if, Guard):
        return reject_if
    if isinstance(reject_if, str):
        if not callable(getattr(model, reject_if, None)):
            raise InvalidOptions(
                f"reject_if={reject_if!r}, but there is no instance method "
                f"{reject_if!r} in {model.__name__}",
                field="reject_if",
            )
        return NamedPredicate(reject_if)
    if callable(reject_if):
        return CallableGuard(reject_if)
    raise InvalidOptions(
        "reject_if must be a method name (str) or a callable", field="reject_if"
    )
