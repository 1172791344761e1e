"""Who performed a stock change.

Callers resolve the actor (auth layer, HR lookup) before calling the engine;
the engine only accepts one of these values and never looks anything up.
"""

from dataclasses import dataclass
from typing import Union

from app.exceptions import ValidationError


@dataclass(frozen=True)
class Employee:
    id: str
    name: str

    kind = "employee"


@dataclass(frozen=True)
class AdminUser:
    id: str
    name: str

    kind = "admin"


@dataclass(frozen=True)
class SystemActor:
    """Scheduled jobs and migrations. Only used where a caller opts in explicitly."""

    name: str = "system"

    kind = "system"

    @property
    def id(self) -> None:
        return None


Actor = Union[Employee, AdminUser, SystemActor]

ACTOR_TYPES = (Employee, AdminUser, SystemActor)


def require_actor(actor) -> Actor:
    """Reject a missing or unresolved actor instead of defaulting to system."""
    if not isinstance(actor, ACTOR_TYPES):
        raise ValidationError(
            "A resolved actor is required for stock changes",
            errors=[{"field": "actor", "message": "missing or unresolved actor", "type": "missing"}],
        )
    if not isinstance(actor, SystemActor) and (not actor.id or not (actor.name or "").strip()):
        raise ValidationError(
            "Actor must have an id and a display name",
            errors=[{"field": "actor", "message": "incomplete actor", "type": "value_error"}],
        )
    return actor
