import enum
from typing import Protocol


class Privilege(str, enum.Enum):
    MODERATOR = "moderator"
    ADMIN = "admin"


class Actor(Protocol):
    id: int | None
    is_admin: bool
    is_moderator: bool


def has_privilege(actor: Actor | None, required: Privilege) -> bool:
    """Admins satisfy every level; moderators satisfy MODERATOR only."""
    if actor is None:
        return False
    if actor.is_admin:
        return True
    if required is Privilege.MODERATOR:
        return bool(actor.is_moderator)
    return False


def is_owner(owner_id: int | None, actor: Actor | None) -> bool:
    return actor is not None and owner_id is not None and owner_id == actor.id


def can_modify(
    owner_id: int | None,
    actor: Actor | None,
    required: Privilege = Privilege.MODERATOR,
) -> bool:
    """True when `actor` authored the resource or holds `required`."""
    return is_owner(owner_id, actor) or has_privilege(actor, required)


def approval_after_edit(
    current: bool, actor: Actor, required: Privilege = Privilege.MODERATOR
) -> bool:
    # Privileged edits keep the flag; everyone else goes back to pending.
    return current if has_privilege(actor, required) else False
