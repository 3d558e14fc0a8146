"""Storage adapter for a Cloudflare D1 database bound inside Workers.

D1 speaks SQLite, so JSON columns are stored as text and timestamps as
integer epoch milliseconds, matching the tables the Workers deployment
migrates with :func:`schema_statements`.
"""

from __future__ import annotations

import datetime as dt
import json
from typing import Any, Dict, List, Optional

import structlog

from ..config import D1Config
from ..errors import Invalid
from ..models import new_id, utc_now
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
from .bindings import D1Binding

logger = structlog.get_logger(__name__)


def schema_statements(cfg: D1Config) -> List[str]:
    return [
        f"""
        CREATE TABLE IF NOT EXISTS {cfg.member_table} (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL,
            meta TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
        """,
        f"CREATE INDEX IF NOT EXISTS ix_member_email ON {cfg.member_table}(email)",
        f"""
        CREATE TABLE IF NOT EXISTS {cfg.project_table} (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            meta TEXT NOT NULL,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            created_at INTEGER NOT NULL,
            updated_at INTEGER NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {cfg.project_member_table} (
            id TEXT PRIMARY KEY,
            member_id TEXT NOT NULL REFERENCES {cfg.member_table}(id),
            project_id TEXT NOT NULL REFERENCES {cfg.project_table}(id),
            permission TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            UNIQUE (project_id, member_id)
        )
        """,
        f"""
        CREATE INDEX IF NOT EXISTS ix_project_member_member_id
        ON {cfg.project_member_table}(member_id)
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {cfg.resource_table} (
            id TEXT PRIMARY KEY,
            project_id TEXT NOT NULL UNIQUE REFERENCES {cfg.project_table}(id),
            code TEXT NOT NULL,
            model TEXT NOT NULL DEFAULT '{{}}'
        )
        """,
    ]


def _to_millis(value: dt.datetime) -> int:
    return int(value.timestamp() * 1000)


def _from_millis(value: Any) -> dt.datetime:
    return dt.datetime.fromtimestamp(int(value) / 1000, tz=dt.timezone.utc)


def _loads(value: Any) -> Dict[str, Any]:
    if value is None or value == "":
        return {}
    if isinstance(value, dict):
        return value
    return json.loads(value)


def _rows(result: Any) -> List[Dict[str, Any]]:
    return result.get("results", []) if isinstance(result, dict) else []


def _project(row: Dict[str, Any]) -> ProjectRecord:
    return ProjectRecord(
        id=row["id"],
        name=row["name"],
        public_access=public_access_from_json(_loads(row.get("meta"))),
        is_deleted=bool(row.get("is_deleted", 0)),
        created_at=_from_millis(row["created_at"]),
        updated_at=_from_millis(row["updated_at"]),
    )


def _grant(row: Dict[str, Any]) -> ProjectMemberRecord:
    return ProjectMemberRecord(
        id=row["id"],
        project_id=row["project_id"],
        member_id=row["member_id"],
        permission=permission_from_json(_loads(row.get("permission"))),
    )


class D1Adapter:
    """Data-access helpers over the member, project, grant and resource tables."""

    def __init__(self, d1: D1Binding, cfg: Optional[D1Config] = None) -> None:
        self._d1 = d1
        self._cfg = cfg or D1Config()

    @classmethod
    def from_worker_env(cls, env: Any, cfg: Optional[D1Config] = None) -> "D1Adapter":
        """Build the adapter from a Workers ``env`` holding the configured binding."""

        cfg = cfg or D1Config()
        binding = getattr(env, cfg.d1_binding, None)
        if binding is None:
            raise LookupError(f"D1 binding {cfg.d1_binding!r} missing from worker env")
        return cls(binding, cfg)

    async def ensure_schema(self) -> None:
        statements = [self._d1.prepare(sql) for sql in schema_statements(self._cfg)]
        await self._d1.batch(statements)

    # ---------------------- Members ----------------------
    async def create_member(self, *, id: str, email: str, name: str, image: str) -> Member:
        now = _to_millis(utc_now())
        meta = member_meta_to_json(name=name, image=image)
        sql = f"""
            INSERT INTO {self._cfg.member_table} (id, email, meta, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """
        await self._d1.prepare(sql).bind(id, email, json.dumps(meta), now, now).run()
        return Member(id=id, email=email, name=name, image=image)

    async def find_member_by_id(self, id: str) -> Optional[Member]:
        sql = f"SELECT id, email, meta FROM {self._cfg.member_table} WHERE id = ? LIMIT 1"
        row = await self._d1.prepare(sql).bind(id).first()
        return member_from_columns(row["id"], row["email"], _loads(row["meta"])) if row else None

    async def find_member_by_email(self, email: str) -> Optional[Member]:
        sql = f"""
            SELECT id, email, meta FROM {self._cfg.member_table}
            WHERE email = ?
            ORDER BY created_at, rowid
            LIMIT 1
        """
        row = await self._d1.prepare(sql).bind(email).first()
        return member_from_columns(row["id"], row["email"], _loads(row["meta"])) if row else None

    # ---------------------- Projects ----------------------
    async def create_project(self, *, name: str, public_access: PublicAccess) -> ProjectRecord:
        project_id = new_id()
        now = utc_now()
        millis = _to_millis(now)
        sql = f"""
            INSERT INTO {self._cfg.project_table} (id, name, meta, is_deleted, created_at, updated_at)
            VALUES (?, ?, ?, 0, ?, ?)
        """
        meta = json.dumps(public_access_to_json(public_access))
        await self._d1.prepare(sql).bind(project_id, name, meta, millis, millis).run()
        stamp = _from_millis(millis)
        return ProjectRecord(
            id=project_id,
            name=name,
            public_access=public_access,
            created_at=stamp,
            updated_at=stamp,
        )

    async def find_project_by_id(self, id: str) -> Optional[ProjectRecord]:
        sql = f"""
            SELECT id, name, meta, is_deleted, created_at, updated_at
            FROM {self._cfg.project_table}
            WHERE id = ? AND is_deleted = 0
            LIMIT 1
        """
        row = await self._d1.prepare(sql).bind(id).first()
        return _project(row) if row else None

    async def update_project(
        self,
        id: str,
        *,
        updated_at: dt.datetime,
        name: Optional[str] = None,
        public_access: Optional[PublicAccess] = None,
    ) -> None:
        assignments = ["updated_at = ?"]
        params: List[Any] = [_to_millis(updated_at)]
        if name is not None:
            assignments.append("name = ?")
            params.append(name)
        if public_access is not None:
            assignments.append("meta = ?")
            params.append(json.dumps(public_access_to_json(public_access)))
        sql = f"UPDATE {self._cfg.project_table} SET {', '.join(assignments)} WHERE id = ?"
        await self._d1.prepare(sql).bind(*params, id).run()

    async def delete_project(self, id: str) -> None:
        sql = f"UPDATE {self._cfg.project_table} SET is_deleted = 1 WHERE id = ?"
        await self._d1.prepare(sql).bind(id).run()

    # ---------------------- Resources ----------------------
    async def create_resource(
        self, *, project_id: str, code: str, model: Dict[str, Any]
    ) -> None:
        sql = f"""
            INSERT INTO {self._cfg.resource_table} (id, project_id, code, model)
            VALUES (?, ?, ?, ?)
        """
        await self._d1.prepare(sql).bind(new_id(), project_id, code, json.dumps(model)).run()

    async def update_resource(self, project_id: str, code: str) -> None:
        sql = f"UPDATE {self._cfg.resource_table} SET code = ? WHERE project_id = ?"
        await self._d1.prepare(sql).bind(code, project_id).run()

    async def find_resource_by_project_id(self, project_id: str) -> Optional[ResourceRecord]:
        sql = f"""
            SELECT r.project_id AS project_id, r.code AS code, r.model AS model
            FROM {self._cfg.resource_table} AS r
            JOIN {self._cfg.project_table} AS p ON p.id = r.project_id
            WHERE r.project_id = ? AND p.is_deleted = 0
            LIMIT 1
        """
        row = await self._d1.prepare(sql).bind(project_id).first()
        if not row:
            return None
        return ResourceRecord(
            project_id=row["project_id"], code=row["code"], model=_loads(row.get("model"))
        )

    # ---------------------- Grants ----------------------
    async def create_project_member(
        self, *, project_id: str, member_id: str, permission: PermissionFlags
    ) -> ProjectMemberRecord:
        grant_id = new_id()
        sql = f"""
            INSERT INTO {self._cfg.project_member_table}
                (id, member_id, project_id, permission, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(project_id, member_id) DO NOTHING
        """
        result = await (
            self._d1.prepare(sql)
            .bind(
                grant_id,
                member_id,
                project_id,
                json.dumps(permission_to_json(permission)),
                _to_millis(utc_now()),
            )
            .run()
        )
        meta = result.get("meta", {}) if isinstance(result, dict) else {}
        if meta.get("changes", 1) == 0:
            logger.warning(
                "project_member.duplicate", project_id=project_id, member_id=member_id
            )
            raise Invalid("share project", f"member {member_id} already has a grant")
        return ProjectMemberRecord(
            id=grant_id, project_id=project_id, member_id=member_id, permission=permission
        )

    async def find_project_members_by_project_id(
        self, project_id: str, *, limit: Optional[int] = None
    ) -> List[MemberGrant]:
        sql = f"""
            SELECT m.id AS id, m.email AS email, m.meta AS meta, pm.permission AS permission
            FROM {self._cfg.project_member_table} AS pm
            JOIN {self._cfg.member_table} AS m ON m.id = pm.member_id
            JOIN {self._cfg.project_table} AS p ON p.id = pm.project_id
            WHERE pm.project_id = ? AND p.is_deleted = 0
            ORDER BY pm.created_at, pm.rowid
        """
        params: List[Any] = [project_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        result = await self._d1.prepare(sql).bind(*params).all()
        return [
            MemberGrant(
                member=member_from_columns(row["id"], row["email"], _loads(row["meta"])),
                permission=permission_from_json(_loads(row["permission"])),
            )
            for row in _rows(result)
        ]

    async def find_project_member(
        self, project_id: str, member_id: str
    ) -> Optional[ProjectMemberRecord]:
        sql = f"""
            SELECT pm.id AS id, pm.project_id AS project_id, pm.member_id AS member_id,
                   pm.permission AS permission
            FROM {self._cfg.project_member_table} AS pm
            JOIN {self._cfg.project_table} AS p ON p.id = pm.project_id
            WHERE pm.project_id = ? AND pm.member_id = ? AND p.is_deleted = 0
            LIMIT 1
        """
        row = await self._d1.prepare(sql).bind(project_id, member_id).first()
        return _grant(row) if row else None

    async def update_project_member_permission(
        self, project_id: str, member_id: str, permission: PermissionFlags
    ) -> None:
        select_sql = f"""
            SELECT permission FROM {self._cfg.project_member_table}
            WHERE project_id = ? AND member_id = ?
            LIMIT 1
        """
        row = await self._d1.prepare(select_sql).bind(project_id, member_id).first()
        if not row:
            return
        stored = permission_to_json(permission)
        if permission.is_owner is None and _loads(row["permission"]).get("isOwner"):
            stored["isOwner"] = True
        sql = f"""
            UPDATE {self._cfg.project_member_table} SET permission = ?
            WHERE project_id = ? AND member_id = ?
        """
        await self._d1.prepare(sql).bind(json.dumps(stored), project_id, member_id).run()

    async def delete_project_member(self, project_id: str, member_id: str) -> None:
        sql = f"""
            DELETE FROM {self._cfg.project_member_table}
            WHERE project_id = ? AND member_id = ?
        """
        await self._d1.prepare(sql).bind(project_id, member_id).run()

    # ---------------------- Aggregates ----------------------
    async def find_projects_by_member_id(self, member_id: str) -> List[ProjectGrant]:
        sql = f"""
            SELECT p.id AS id, p.name AS name, p.meta AS meta, p.is_deleted AS is_deleted,
                   p.created_at AS created_at, p.updated_at AS updated_at,
                   pm.permission AS permission
            FROM {self._cfg.project_table} AS p
            JOIN {self._cfg.project_member_table} AS pm ON pm.project_id = p.id
            WHERE pm.member_id = ? AND p.is_deleted = 0
            ORDER BY p.created_at DESC, p.rowid DESC
        """
        result = await self._d1.prepare(sql).bind(member_id).all()
        return [
            ProjectGrant(
                project=_project(row), permission=permission_from_json(_loads(row["permission"]))
            )
            for row in _rows(result)
        ]

    async def find_project_with_details(
        self, project_id: str, *, member_limit: Optional[int] = None
    ) -> Optional[ProjectWithDetails]:
        sql = f"""
            SELECT p.id AS id, p.name AS name, p.meta AS meta, p.is_deleted AS is_deleted,
                   p.created_at AS created_at, p.updated_at AS updated_at,
                   r.code AS code, r.model AS model
            FROM {self._cfg.project_table} AS p
            JOIN {self._cfg.resource_table} AS r ON r.project_id = p.id
            WHERE p.id = ? AND p.is_deleted = 0
            LIMIT 1
        """
        row = await self._d1.prepare(sql).bind(project_id).first()
        if not row:
            return None
        members = await self.find_project_members_by_project_id(project_id, limit=member_limit)
        return ProjectWithDetails(
            project=_project(row),
            resource=ResourceRecord(
                project_id=row["id"], code=row["code"], model=_loads(row.get("model"))
            ),
            members=members,
        )


__all__ = ["D1Adapter", "schema_statements"]
