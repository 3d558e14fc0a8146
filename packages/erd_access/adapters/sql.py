"""Relational storage adapter built on SQLAlchemy's asyncio extension."""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from ..config import AccessSettings
from ..errors import Invalid
from ..models import Base, MemberRow, ProjectMemberRow, ProjectRow, ResourceRow
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
from .base import (
    member_from_columns,
    member_meta_to_json,
    permission_from_json,
    permission_to_json,
    public_access_from_json,
    public_access_to_json,
)

__all__ = ["AccessDatabase", "SqlAlchemyAdapter", "init_engine", "normalize_database_url"]

logger = structlog.get_logger(__name__)

# Every read path joins through this predicate so soft-deleted projects stay hidden.
_LIVE_PROJECT = ProjectRow.is_deleted.is_(False)


def normalize_database_url(database_url: str) -> str:
    """Rewrite sync driver URLs to their asyncio drivers."""

    if database_url.startswith("postgres://"):
        return "postgresql+psycopg://" + database_url[len("postgres://") :]
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if database_url.startswith("sqlite+pysqlite://"):
        return database_url.replace("sqlite+pysqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def init_engine(settings: AccessSettings) -> AsyncEngine:
    """Create an async SQLAlchemy engine with sensible defaults."""

    database_url = normalize_database_url(settings.database_url)
    url = make_url(database_url)
    engine_kwargs: Dict[str, Any] = {"pool_pre_ping": True}

    if url.get_backend_name() == "sqlite":
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        database = (url.database or "").strip()
        if not database or database == ":memory:":
            engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs["pool_size"] = 10
        engine_kwargs["max_overflow"] = 20

    return create_async_engine(database_url, **engine_kwargs)


class AccessDatabase:
    """Async session factory wrapper."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    def session(self) -> AsyncSession:
        return self._session_factory()

    async def create_all(self) -> None:
        """Create tables (development and tests)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def _member(row: MemberRow) -> Member:
    return member_from_columns(row.id, row.email, row.meta)


def _project(row: ProjectRow) -> ProjectRecord:
    return ProjectRecord(
        id=row.id,
        name=row.name,
        public_access=public_access_from_json(row.meta),
        is_deleted=row.is_deleted,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _grant(row: ProjectMemberRow) -> ProjectMemberRecord:
    return ProjectMemberRecord(
        id=row.id,
        project_id=row.project_id,
        member_id=row.member_id,
        permission=permission_from_json(row.permission),
    )


class SqlAlchemyAdapter:
    """Storage adapter translating engine calls into row reads and writes.

    Each call runs in its own session so that calls issued concurrently by
    the engine never share a transaction.
    """

    def __init__(self, database: AccessDatabase) -> None:
        self._db = database

    # ---------------------- Members ----------------------
    async def create_member(self, *, id: str, email: str, name: str, image: str) -> Member:
        row = MemberRow(id=id, email=email, meta=member_meta_to_json(name=name, image=image))
        async with self._db.session() as session, session.begin():
            session.add(row)
        return _member(row)

    async def find_member_by_id(self, id: str) -> Optional[Member]:
        async with self._db.session() as session:
            row = (
                await session.execute(select(MemberRow).where(MemberRow.id == id).limit(1))
            ).scalars().first()
        return _member(row) if row else None

    async def find_member_by_email(self, email: str) -> Optional[Member]:
        stmt = (
            select(MemberRow)
            .where(MemberRow.email == email)
            .order_by(MemberRow.created_at)
            .limit(1)
        )
        async with self._db.session() as session:
            row = (await session.execute(stmt)).scalars().first()
        return _member(row) if row else None

    # ---------------------- Projects ----------------------
    async def create_project(self, *, name: str, public_access: PublicAccess) -> ProjectRecord:
        row = ProjectRow(name=name, meta=public_access_to_json(public_access), is_deleted=False)
        async with self._db.session() as session, session.begin():
            session.add(row)
            await session.flush()
        return _project(row)

    async def find_project_by_id(self, id: str) -> Optional[ProjectRecord]:
        stmt = select(ProjectRow).where(ProjectRow.id == id, _LIVE_PROJECT).limit(1)
        async with self._db.session() as session:
            row = (await session.execute(stmt)).scalars().first()
        return _project(row) if row else None

    async def update_project(
        self,
        id: str,
        *,
        updated_at: dt.datetime,
        name: Optional[str] = None,
        public_access: Optional[PublicAccess] = None,
    ) -> None:
        values: Dict[str, Any] = {"updated_at": updated_at}
        if name is not None:
            values["name"] = name
        if public_access is not None:
            values["meta"] = public_access_to_json(public_access)
        async with self._db.session() as session, session.begin():
            await session.execute(update(ProjectRow).where(ProjectRow.id == id).values(**values))

    async def delete_project(self, id: str) -> None:
        async with self._db.session() as session, session.begin():
            await session.execute(
                update(ProjectRow).where(ProjectRow.id == id).values(is_deleted=True)
            )

    # ---------------------- Resources ----------------------
    async def create_resource(
        self, *, project_id: str, code: str, model: Dict[str, Any]
    ) -> None:
        async with self._db.session() as session, session.begin():
            session.add(ResourceRow(project_id=project_id, code=code, model=model))

    async def update_resource(self, project_id: str, code: str) -> None:
        async with self._db.session() as session, session.begin():
            await session.execute(
                update(ResourceRow).where(ResourceRow.project_id == project_id).values(code=code)
            )

    async def find_resource_by_project_id(self, project_id: str) -> Optional[ResourceRecord]:
        stmt = (
            select(ResourceRow)
            .join(ProjectRow, ProjectRow.id == ResourceRow.project_id)
            .where(ResourceRow.project_id == project_id, _LIVE_PROJECT)
            .limit(1)
        )
        async with self._db.session() as session:
            row = (await session.execute(stmt)).scalars().first()
        if row is None:
            return None
        return ResourceRecord(project_id=row.project_id, code=row.code, model=row.model or {})

    # ---------------------- Grants ----------------------
    async def create_project_member(
        self, *, project_id: str, member_id: str, permission: PermissionFlags
    ) -> ProjectMemberRecord:
        row = ProjectMemberRow(
            project_id=project_id,
            member_id=member_id,
            permission=permission_to_json(permission),
        )
        try:
            async with self._db.session() as session, session.begin():
                session.add(row)
                await session.flush()
        except IntegrityError:
            logger.warning(
                "project_member.duplicate", project_id=project_id, member_id=member_id
            )
            raise Invalid("share project", f"member {member_id} already has a grant") from None
        return _grant(row)

    async def find_project_members_by_project_id(
        self, project_id: str, *, limit: Optional[int] = None
    ) -> List[MemberGrant]:
        stmt = (
            select(MemberRow, ProjectMemberRow.permission)
            .join(ProjectMemberRow, ProjectMemberRow.member_id == MemberRow.id)
            .join(ProjectRow, ProjectRow.id == ProjectMemberRow.project_id)
            .where(ProjectMemberRow.project_id == project_id, _LIVE_PROJECT)
            .order_by(ProjectMemberRow.created_at, ProjectMemberRow.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._db.session() as session:
            rows = (await session.execute(stmt)).all()
        return [
            MemberGrant(member=_member(member), permission=permission_from_json(permission))
            for member, permission in rows
        ]

    async def find_project_member(
        self, project_id: str, member_id: str
    ) -> Optional[ProjectMemberRecord]:
        stmt = (
            select(ProjectMemberRow)
            .join(ProjectRow, ProjectRow.id == ProjectMemberRow.project_id)
            .where(
                ProjectMemberRow.project_id == project_id,
                ProjectMemberRow.member_id == member_id,
                _LIVE_PROJECT,
            )
            .limit(1)
        )
        async with self._db.session() as session:
            row = (await session.execute(stmt)).scalars().first()
        return _grant(row) if row else None

    async def update_project_member_permission(
        self, project_id: str, member_id: str, permission: PermissionFlags
    ) -> None:
        stmt = select(ProjectMemberRow).where(
            ProjectMemberRow.project_id == project_id,
            ProjectMemberRow.member_id == member_id,
        )
        async with self._db.session() as session, session.begin():
            row = (await session.execute(stmt)).scalars().first()
            if row is None:
                return
            stored = permission_to_json(permission)
            if permission.is_owner is None and row.permission.get("isOwner"):
                stored["isOwner"] = True
            row.permission = stored

    async def delete_project_member(self, project_id: str, member_id: str) -> None:
        async with self._db.session() as session, session.begin():
            await session.execute(
                delete(ProjectMemberRow).where(
                    ProjectMemberRow.project_id == project_id,
                    ProjectMemberRow.member_id == member_id,
                )
            )

    # ---------------------- Aggregates ----------------------
    async def find_projects_by_member_id(self, member_id: str) -> List[ProjectGrant]:
        stmt = (
            select(ProjectRow, ProjectMemberRow.permission)
            .join(ProjectMemberRow, ProjectMemberRow.project_id == ProjectRow.id)
            .where(ProjectMemberRow.member_id == member_id, _LIVE_PROJECT)
            .order_by(ProjectRow.created_at.desc())
        )
        async with self._db.session() as session:
            rows = (await session.execute(stmt)).all()
        return [
            ProjectGrant(project=_project(project), permission=permission_from_json(permission))
            for project, permission in rows
        ]

    async def find_project_with_details(
        self, project_id: str, *, member_limit: Optional[int] = None
    ) -> Optional[ProjectWithDetails]:
        stmt = (
            select(ProjectRow, ResourceRow)
            .join(ResourceRow, ResourceRow.project_id == ProjectRow.id)
            .where(ProjectRow.id == project_id, _LIVE_PROJECT)
            .limit(1)
        )
        async with self._db.session() as session:
            found = (await session.execute(stmt)).first()
        if found is None:
            return None
        project, resource = found
        members = await self.find_project_members_by_project_id(project_id, limit=member_limit)
        return ProjectWithDetails(
            project=_project(project),
            resource=ResourceRecord(
                project_id=resource.project_id, code=resource.code, model=resource.model or {}
            ),
            members=members,
        )
