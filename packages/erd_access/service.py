"""Access-control engine.

Business logic:
- session and grant checks in front of every project operation
- project lifecycle (create, update, soft delete)
- sharing grants and public access
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional

import structlog

from .adapters.base import StorageAdapter
from .config import AccessSettings
from .errors import Forbidden, Invalid, NotFound, Unauthorized
from .models import utc_now
from .notifications import NotificationSink
from .permissions import (
    FULL_ACCESS,
    PermissionFlags,
    PermissionLevel,
    PublicAccess,
    collapse_flags,
    expand_level,
)
from . import schemas

__all__ = ["AccessControlService", "SessionResolver"]

logger = structlog.get_logger(__name__)

SessionResolver = Callable[[], Awaitable[Optional[schemas.Session]]]


class AccessControlService:
    """Answers whether the current session may act on a project, then acts.

    One instance serves one request. Storage goes through ``StorageAdapter``
    only, so the engine runs unchanged against any backend.
    """

    def __init__(
        self,
        *,
        storage_adapter: StorageAdapter,
        session_resolver: SessionResolver,
        origin: str,
        settings: Optional[AccessSettings] = None,
        notification_sink: Optional[NotificationSink] = None,
    ) -> None:
        self._adapter = storage_adapter
        self._resolve_session = session_resolver
        self._origin = origin.rstrip("/")
        self._settings = settings or AccessSettings()
        self._notifications = notification_sink

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------
    async def create_member(self) -> schemas.Member:
        session = await self._resolve_session()
        if session is None:
            raise Unauthorized("create member")

        user = session.user
        existing = await self._adapter.find_member_by_id(user.id)
        if existing is not None:
            return existing

        member = await self._adapter.create_member(
            id=user.id,
            email=user.email or "",
            name=user.name or "",
            image=user.image or self._settings.default_member_image,
        )
        logger.info("member.created", member_id=member.id)
        if self._notifications is not None:
            try:
                await self._notifications.send_on_created_member(member)
            except Exception:
                logger.exception("notification.failed", member_id=member.id)
        return member

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------
    async def find_all_projects_of_member(self) -> List[schemas.ProjectSimple]:
        session = await self._resolve_session()
        if session is None:
            return []

        grants = await self._adapter.find_projects_by_member_id(session.user.id)
        return [
            schemas.ProjectSimple(
                id=grant.project.id,
                name=grant.project.name,
                public_access=grant.project.public_access,
                created_at=grant.project.created_at,
                updated_at=grant.project.updated_at,
                url=self._get_url(grant.project.name, grant.project.id),
                is_owner=bool(grant.permission.is_owner),
            )
            for grant in grants
        ]

    async def find_project(self, project_id: str) -> schemas.ProjectDetail:
        session = await self._resolve_session()
        project, resource, members = await asyncio.gather(
            self._adapter.find_project_by_id(project_id),
            self._adapter.find_resource_by_project_id(project_id),
            self._adapter.find_project_members_by_project_id(
                project_id, limit=self._settings.shared_member_limit
            ),
        )
        if project is None or resource is None:
            raise NotFound("find project")

        my_id = session.user.id if session else None
        mine: Optional[PermissionFlags] = None
        if my_id is not None:
            mine = next((m.permission for m in members if m.member.id == my_id), None)
            if mine is None and len(members) >= self._settings.shared_member_limit:
                grant = await self._adapter.find_project_member(project_id, my_id)
                mine = grant.permission if grant else None

        public = project.public_access
        if not public.can_view:
            if session is None:
                raise Unauthorized("find project")
            if mine is None or not (mine.is_owner or mine.can_view):
                raise Forbidden("find project")

        shared = [
            schemas.SharedMember(
                id=m.member.id,
                name=m.member.name,
                email=m.member.email,
                image=m.member.image,
                permission=collapse_flags(m.permission),
                is_owner=bool(m.permission.is_owner),
                is_me=m.member.id == my_id,
            )
            for m in members
        ]
        # stable: owner first, then the requester, everyone else keeps insertion order
        shared.sort(key=lambda s: (not s.is_owner, not s.is_me))

        return schemas.ProjectDetail(
            id=project.id,
            name=project.name,
            url=self._get_url(project.name, project.id),
            created_at=project.created_at,
            updated_at=project.updated_at,
            resource=schemas.ResourceBody(code=resource.code),
            is_owner=bool(mine and mine.is_owner),
            public_permission=(
                PermissionLevel.EDIT if public.can_edit else PermissionLevel.VIEW
            ),
            permission=self._effective_permission(public, mine),
            shared_members=shared,
        )

    async def delete_project(self, project_id: str) -> None:
        session = await self._resolve_session()
        if session is None:
            raise Unauthorized("delete project")

        project, grant = await asyncio.gather(
            self._adapter.find_project_by_id(project_id),
            self._adapter.find_project_member(project_id, session.user.id),
        )
        if project is None or grant is None:
            raise NotFound("delete project")
        if not (grant.permission.is_owner or grant.permission.can_edit):
            raise Forbidden("delete project")

        await self._adapter.delete_project(project_id)
        logger.info("project.deleted", project_id=project_id, member_id=session.user.id)

    async def create_project(self, payload: schemas.ProjectCreate) -> schemas.ProjectDetail:
        session = await self._resolve_session()
        if session is None:
            raise Unauthorized("create project")

        name = payload.name or self._settings.untitled_name
        project = await self._adapter.create_project(
            name=name, public_access=PublicAccess(can_view=True)
        )
        results = await asyncio.gather(
            self._adapter.create_project_member(
                project_id=project.id,
                member_id=session.user.id,
                permission=FULL_ACCESS,
            ),
            self._adapter.create_resource(
                project_id=project.id, code=payload.resource.code, model={}
            ),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            # the project row stays behind; callers see the original error
            logger.error("project.create_failed", project_id=project.id, exc_info=failures[0])
            raise failures[0]

        logger.info("project.created", project_id=project.id, member_id=session.user.id)
        return schemas.ProjectDetail(
            id=project.id,
            name=project.name,
            url=self._get_url(project.name, project.id),
            created_at=project.created_at,
            updated_at=project.updated_at,
            resource=schemas.ResourceBody(code=payload.resource.code),
            is_owner=True,
            public_permission=PermissionLevel.VIEW,
            permission=schemas.EffectivePermission(can_view=True, can_edit=True, can_invite=True),
            shared_members=[],
        )

    async def update_project(self, project_id: str, payload: schemas.ProjectUpdate) -> None:
        session = await self._resolve_session()
        project = await self._adapter.find_project_by_id(project_id)
        if project is None:
            raise NotFound("update project")

        if not project.public_access.can_edit:
            if session is None:
                raise Unauthorized("update project")
            grant = await self._adapter.find_project_member(project_id, session.user.id)
            if grant is None or not (grant.permission.is_owner or grant.permission.can_edit):
                raise Forbidden("update project")

        writes = []
        if payload.name is not None:
            writes.append(
                self._adapter.update_project(project_id, name=payload.name, updated_at=utc_now())
            )
        if payload.resource is not None:
            writes.append(self._adapter.update_resource(project_id, payload.resource.code))
        if writes:
            await asyncio.gather(*writes)

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------
    async def validate_before_permission_update(self, project_id: str) -> schemas.Session:
        """Check the acting session may change grants on ``project_id``.

        Only ``can_invite`` counts here; ownership alone does not.
        """
        session = await self._resolve_session()
        if session is None:
            raise Unauthorized("update permission")

        grant = await self._adapter.find_project_member(project_id, session.user.id)
        if grant is None:
            raise Forbidden("update permission")
        if not grant.permission.can_invite:
            raise Forbidden("update permission", f"id: {grant.id}")
        return session

    async def update_permission(
        self,
        project_id: str,
        payload: schemas.UpdatePermission,
    ) -> None:
        session = await self.validate_before_permission_update(project_id)

        flags = expand_level(payload.permission)
        if isinstance(payload, schemas.UpdatePublicPermission):
            await self._adapter.update_project(
                project_id,
                public_access=PublicAccess(can_view=flags.can_view, can_edit=flags.can_edit),
                updated_at=utc_now(),
            )
            logger.info(
                "permission.public_updated",
                project_id=project_id,
                level=payload.permission.value,
            )
            return
        if isinstance(payload, schemas.UpdateMemberPermission):
            target = await self._adapter.find_project_member(project_id, payload.member_id)
            if target is None:
                raise NotFound("update permission")
            if target.permission.is_owner and payload.member_id != session.user.id:
                raise Forbidden("update permission", "owner grant can not be changed")
            await self._adapter.update_project_member_permission(
                project_id, payload.member_id, flags
            )
            logger.info(
                "permission.member_updated",
                project_id=project_id,
                member_id=payload.member_id,
                level=payload.permission.value,
            )
            return
        raise Invalid("update permission", f"type {getattr(payload, 'type', None)!r}")

    async def create_member_permission(
        self, project_id: str, payload: schemas.CreateMemberPermission
    ) -> schemas.SharedMember:
        session = await self.validate_before_permission_update(project_id)

        member = await self._adapter.find_member_by_email(payload.email)
        if member is None:
            raise NotFound("share project", f"email {payload.email}")

        flags = expand_level(payload.permission)
        existing = await self._adapter.find_project_member(project_id, member.id)
        if existing is None:
            await self._adapter.create_project_member(
                project_id=project_id, member_id=member.id, permission=flags
            )
            is_owner = False
        else:
            if existing.permission.is_owner and member.id != session.user.id:
                raise Forbidden("share project", "owner grant can not be changed")
            await self._adapter.update_project_member_permission(project_id, member.id, flags)
            is_owner = bool(existing.permission.is_owner)

        logger.info("permission.member_granted", project_id=project_id, member_id=member.id)
        return schemas.SharedMember(
            id=member.id,
            name=member.name,
            email=member.email,
            image=member.image,
            permission=PermissionLevel.INVITE if is_owner else payload.permission,
            is_owner=is_owner,
            is_me=member.id == session.user.id,
        )

    async def delete_permission(self, project_id: str, payload: schemas.DeletePermission) -> None:
        await self.validate_before_permission_update(project_id)

        target = await self._adapter.find_project_member(project_id, payload.member_id)
        if target is None:
            raise NotFound("delete permission")
        if target.permission.is_owner:
            raise Forbidden("delete permission", "owner grant can not be revoked")

        await self._adapter.delete_project_member(project_id, payload.member_id)
        logger.info("permission.member_revoked", project_id=project_id, member_id=payload.member_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _effective_permission(
        public: PublicAccess, mine: Optional[PermissionFlags]
    ) -> schemas.EffectivePermission:
        if mine is not None and mine.is_owner:
            return schemas.EffectivePermission(can_view=True, can_edit=True, can_invite=True)
        return schemas.EffectivePermission(
            can_view=bool(public.can_view or (mine and mine.can_view)),
            can_edit=bool(public.can_edit or (mine and mine.can_edit)),
            can_invite=bool(mine and mine.can_invite),
        )

    def _get_url(self, name: str, project_id: str) -> str:
        if not name:
            return f"/workspace/{project_id}"
        slug = name.replace(" ", "-").lower()
        return f"{self._origin}/workspace/{slug}-{project_id}"
