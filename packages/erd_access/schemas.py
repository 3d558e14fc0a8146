"""Pydantic records exchanged between the engine, its adapters and callers."""

from __future__ import annotations

import datetime as dt
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .permissions import PermissionFlags, PermissionLevel, PublicAccess

__all__ = [
    # Identity
    "SessionUser",
    "Session",
    # Persisted records
    "Member",
    "ProjectRecord",
    "ResourceRecord",
    "ProjectMemberRecord",
    "MemberGrant",
    "ProjectGrant",
    "ProjectWithDetails",
    # Requests
    "ResourceBody",
    "ProjectCreate",
    "ProjectUpdate",
    "UpdatePublicPermission",
    "UpdateMemberPermission",
    "UpdatePermission",
    "CreateMemberPermission",
    "DeletePermission",
    # Responses
    "EffectivePermission",
    "SharedMember",
    "ProjectSimple",
    "ProjectDetail",
]


# ========================================================================
# Identity
# ========================================================================


class SessionUser(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None


class Session(BaseModel):
    """Verified session handed over by the identity provider."""

    user: SessionUser


# ========================================================================
# Persisted records
# ========================================================================


class Member(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    image: str


class ProjectRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    public_access: PublicAccess = Field(default_factory=PublicAccess)
    is_deleted: bool = False
    created_at: dt.datetime
    updated_at: dt.datetime


class ResourceRecord(BaseModel):
    project_id: str
    code: str
    model: Dict[str, Any] = Field(default_factory=dict)


class ProjectMemberRecord(BaseModel):
    id: str
    project_id: str
    member_id: str
    permission: PermissionFlags


class MemberGrant(BaseModel):
    member: Member
    permission: PermissionFlags


class ProjectGrant(BaseModel):
    project: ProjectRecord
    permission: PermissionFlags


class ProjectWithDetails(BaseModel):
    project: ProjectRecord
    resource: ResourceRecord
    members: List[MemberGrant]


# ========================================================================
# Requests
# ========================================================================


class ResourceBody(BaseModel):
    code: str


class ProjectCreate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    resource: ResourceBody


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    resource: Optional[ResourceBody] = None


class UpdatePublicPermission(BaseModel):
    type: Literal["public"] = "public"
    permission: PermissionLevel


class UpdateMemberPermission(BaseModel):
    type: Literal["member"] = "member"
    member_id: str
    permission: PermissionLevel


UpdatePermission = Annotated[
    Union[UpdatePublicPermission, UpdateMemberPermission],
    Field(discriminator="type"),
]


class CreateMemberPermission(BaseModel):
    email: str
    permission: PermissionLevel


class DeletePermission(BaseModel):
    member_id: str


# ========================================================================
# Responses
# ========================================================================


class EffectivePermission(BaseModel):
    can_view: bool
    can_edit: bool
    can_invite: bool


class SharedMember(BaseModel):
    id: str
    name: str
    email: str
    image: str
    permission: PermissionLevel
    is_owner: bool = False
    is_me: bool = False


class ProjectSimple(BaseModel):
    id: str
    name: str
    public_access: PublicAccess
    created_at: dt.datetime
    updated_at: dt.datetime
    url: str
    is_owner: bool


class ProjectDetail(BaseModel):
    id: str
    name: str
    url: str
    created_at: dt.datetime
    updated_at: dt.datetime
    resource: ResourceBody
    is_owner: bool
    public_permission: PermissionLevel
    permission: EffectivePermission
    shared_members: List[SharedMember]
