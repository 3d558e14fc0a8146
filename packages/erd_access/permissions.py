"""Permission levels and their stored flag representation.

The table below is the only place a level is expanded into flags or a set
of flags collapsed back into a level.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .errors import Invalid

__all__ = [
    "PermissionLevel",
    "PermissionFlags",
    "PublicAccess",
    "FULL_ACCESS",
    "expand_level",
    "collapse_flags",
]


class PermissionLevel(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    INVITE = "invite"


class PermissionFlags(BaseModel):
    """Stored grant of one member on one project."""

    model_config = ConfigDict(frozen=True)

    is_owner: Optional[bool] = None
    can_view: bool = True
    can_edit: bool = False
    can_invite: bool = False


class PublicAccess(BaseModel):
    """Rights every visitor of a project gets. ``can_edit=None`` means not public-editable."""

    model_config = ConfigDict(frozen=True)

    can_view: bool = True
    can_edit: Optional[bool] = None


_LEVEL_FLAGS: dict[PermissionLevel, tuple[bool, bool, bool]] = {
    PermissionLevel.VIEW: (True, False, False),
    PermissionLevel.EDIT: (True, True, False),
    PermissionLevel.INVITE: (True, True, True),
}

FULL_ACCESS = PermissionFlags(is_owner=True, can_view=True, can_edit=True, can_invite=True)


def expand_level(level: PermissionLevel | str) -> PermissionFlags:
    """Return the flags stored for ``level``; unknown levels are a logic error."""

    try:
        key = PermissionLevel(level)
    except ValueError:
        raise Invalid("resolve permission", f"permission {level!r}") from None
    can_view, can_edit, can_invite = _LEVEL_FLAGS[key]
    return PermissionFlags(can_view=can_view, can_edit=can_edit, can_invite=can_invite)


def collapse_flags(flags: PermissionFlags) -> PermissionLevel:
    """Highest level a stored grant amounts to. Owners always collapse to ``invite``."""

    if flags.is_owner or flags.can_invite:
        return PermissionLevel.INVITE
    if flags.can_edit:
        return PermissionLevel.EDIT
    return PermissionLevel.VIEW
