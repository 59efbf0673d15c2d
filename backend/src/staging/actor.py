"""Actors and draft access.

Privilege Hierarchy (descending):
- MAIN: Platform operators, may act on any draft
- ADMIN: Membership staff, may act on any draft
- OWNER: Members, may act on their own drafts only
"""

from dataclasses import dataclass
from enum import Enum

from .errors import NotFoundError


class Privilege(str, Enum):
    """Privilege levels carried in the access token."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MAIN = "MAIN"


class AccessModifier(str, Enum):
    """Visibility stamped on committed records."""
    PUBLIC = "PUBLIC"
    PROTECTED = "PROTECTED"
    PRIVATE = "PRIVATE"


ELEVATED_PRIVILEGES = {Privilege.ADMIN, Privilege.MAIN}


@dataclass(frozen=True)
class Actor:
    """The authenticated caller."""
    id: str
    privilege: Privilege = Privilege.OWNER

    @property
    def is_elevated(self) -> bool:
        return self.privilege in ELEVATED_PRIVILEGES


def authorize(actor: Actor, owner_id: str, session_id: str) -> None:
    """Allow the owner or an elevated actor.

    Raises:
        NotFoundError: For anyone else, so other owners' drafts stay invisible
    """
    if actor.id == owner_id or actor.is_elevated:
        return
    raise NotFoundError(f"Draft {session_id} not found", session_id=session_id)
