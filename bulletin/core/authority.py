"""
Static authority catalogue: resources, actions and the capability check.

A role owns a list of ``Authority`` entries.  Access is granted only on an
exact (resource, action) match; there are no wildcards or inheritance.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from pydantic import BaseModel, field_validator


class Resource(str, Enum):
    USER = "User"
    ROLE = "Role"
    TICKET = "Ticket"
    ANNOUNCEMENT = "Announcement"
    ATTACHMENT = "Attachment"


class Action(str, Enum):
    READ = "READ"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class Authority(BaseModel):
    resource: Resource
    actions: list[Action] = []

    @field_validator("actions")
    @classmethod
    def _dedupe(cls, v: list[Action]) -> list[Action]:
        return list(dict.fromkeys(v))


def has_authority(authorities: Iterable[Authority], resource: Resource, action: Action) -> bool:
    """True when some authority names ``resource`` and lists ``action``."""
    return any(a.resource == resource and action in a.actions for a in authorities)


def dump_authorities(authorities: Iterable[Authority]) -> list[dict]:
    """JSON-ready form stored in the ``roles.authorities`` column."""
    return [a.model_dump(mode="json") for a in authorities]


# ── Built-in roles (seeded at startup) ──────────────────────────────
ADMIN_ROLE = "ADMIN"
EMPLOYEE_ROLE = "EMPLOYEE"
CLIENT_ROLE = "CLIENT"

BUILTIN_ROLES: dict[str, list[Authority]] = {
    ADMIN_ROLE: [Authority(resource=r, actions=list(Action)) for r in Resource],
    EMPLOYEE_ROLE: [
        Authority(resource=Resource.TICKET, actions=[Action.READ, Action.UPDATE]),
        Authority(
            resource=Resource.ANNOUNCEMENT,
            actions=[Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE],
        ),
        Authority(resource=Resource.ATTACHMENT, actions=[Action.CREATE, Action.READ]),
    ],
    CLIENT_ROLE: [
        Authority(resource=Resource.TICKET, actions=[Action.CREATE]),
        Authority(resource=Resource.ANNOUNCEMENT, actions=[Action.READ]),
        Authority(resource=Resource.ATTACHMENT, actions=[Action.CREATE, Action.READ]),
    ],
}
