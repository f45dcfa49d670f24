"""Ownership rules for contact access.

``authorize`` is a pure function over the acting identity and the target
contact; callers decide what to do with a denial.
"""

import enum
from dataclasses import dataclass

from .models import Contact, User, UserRole


class Action(str, enum.Enum):
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Identity:
    """The acting user of a single request, resolved from its bearer token."""

    id: str
    email: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(id=user.id, email=user.email, role=UserRole(user.role))


def authorize(identity: Identity, contact: Contact, action: Action) -> bool:
    """
    Decide whether ``identity`` may perform ``action`` on ``contact``.

    Admins may act on any contact; everyone else only on contacts they own.
    The same rule currently applies to every action.
    """
    if identity.is_admin:
        return True
    return contact.owner_id == identity.id
