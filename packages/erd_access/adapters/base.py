"""Storage adapter contract and the JSON layout both backends persist."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from ..permissions import PermissionFlags, PublicAccess
from ..schemas import (
    Member,
    MemberGrant,
    ProjectGrant,
    ProjectMemberRecord,
    ProjectRecord,
    ProjectWithDetails,
    ResourceRecord,
)

__all__ = [
    "StorageAdapter",
    "permission_to_json",
    "permission_from_json",
    "public_access_to_json",
    "public_access_from_json",
    "member_meta_to_json",
    "member_from_columns",
]


@runtime_checkable
class StorageAdapter(Protocol):
    """Persistence operations the access-control engine relies on.

    Read paths return ``None`` or an empty list when nothing matches and
    never surface soft-deleted projects.
    """

    # Members
    async def create_member(self, *, id: str, email: str, name: str, image: str) -> Member:
        ...

    async def find_member_by_id(self, id: str) -> Optional[Member]:
        ...

    async def find_member_by_email(self, email: str) -> Optional[Member]:
        ...

    # Projects
    async def create_project(self, *, name: str, public_access: PublicAccess) -> ProjectRecord:
        ...

    async def find_project_by_id(self, id: str) -> Optional[ProjectRecord]:
        ...

    async def update_project(
        self,
        id: str,
        *,
        updated_at: dt.datetime,
        name: Optional[str] = None,
        public_access: Optional[PublicAccess] = None,
    ) -> None:
        ...

    async def delete_project(self, id: str) -> None:
        ...

    # Resources
    async def create_resource(
        self, *, project_id: str, code: str, model: Dict[str, Any]
    ) -> None:
        ...

    async def update_resource(self, project_id: str, code: str) -> None:
        ...

    async def find_resource_by_project_id(self, project_id: str) -> Optional[ResourceRecord]:
        ...

    # Grants
    async def create_project_member(
        self, *, project_id: str, member_id: str, permission: PermissionFlags
    ) -> ProjectMemberRecord:
        ...

    async def find_project_members_by_project_id(
        self, project_id: str, *, limit: Optional[int] = None
    ) -> List[MemberGrant]:
        ...

    async def find_project_member(
        self, project_id: str, member_id: str
    ) -> Optional[ProjectMemberRecord]:
        ...

    async def update_project_member_permission(
        self, project_id: str, member_id: str, permission: PermissionFlags
    ) -> None:
        ...

    async def delete_project_member(self, project_id: str, member_id: str) -> None:
        ...

    # Aggregates
    async def find_projects_by_member_id(self, member_id: str) -> List[ProjectGrant]:
        ...

    async def find_project_with_details(
        self, project_id: str, *, member_limit: Optional[int] = None
    ) -> Optional[ProjectWithDetails]:
        ...


# ---------------------- Stored JSON layout ----------------------


def permission_to_json(flags: PermissionFlags) -> Dict[str, bool]:
    data = {
        "canView": flags.can_view,
        "canEdit": flags.can_edit,
        "canInvite": flags.can_invite,
    }
    if flags.is_owner is not None:
        data["isOwner"] = flags.is_owner
    return data


def permission_from_json(data: Mapping[str, Any]) -> PermissionFlags:
    return PermissionFlags(
        is_owner=data.get("isOwner"),
        can_view=data.get("canView", True),
        can_edit=data.get("canEdit", False),
        can_invite=data.get("canInvite", False),
    )


def public_access_to_json(access: PublicAccess) -> Dict[str, bool]:
    data = {"canView": access.can_view}
    if access.can_edit is not None:
        data["canEdit"] = access.can_edit
    return data


def public_access_from_json(data: Mapping[str, Any]) -> PublicAccess:
    return PublicAccess(can_view=data.get("canView", True), can_edit=data.get("canEdit"))


def member_meta_to_json(*, name: str, image: str) -> Dict[str, str]:
    return {"name": name, "image": image}


def member_from_columns(id: str, email: str, meta: Mapping[str, Any]) -> Member:
    return Member(id=id, email=email, name=meta.get("name", ""), image=meta.get("image", ""))
