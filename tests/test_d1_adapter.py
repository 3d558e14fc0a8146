"""D1 adapter exercised against an in-process SQLite stand-in for ``env.DB``."""

from __future__ import annotations

import json
import sqlite3
import types
from typing import Any, Dict, Iterable, List, Optional

import pytest

from packages.erd_access.adapters.base import StorageAdapter
from packages.erd_access.adapters.bindings import D1Binding
from packages.erd_access.adapters.d1 import D1Adapter
from packages.erd_access.config import D1Config
from packages.erd_access.errors import Invalid
from packages.erd_access.permissions import FULL_ACCESS, PublicAccess, expand_level


class FakeStatement:
    def __init__(self, conn: sqlite3.Connection, sql: str, params: tuple = ()) -> None:
        self._conn = conn
        self._sql = sql
        self._params = params

    def bind(self, *args: Any) -> "FakeStatement":
        return FakeStatement(self._conn, self._sql, args)

    async def first(self) -> Optional[Dict[str, Any]]:
        row = self._conn.execute(self._sql, self._params).fetchone()
        return dict(row) if row else None

    async def all(self) -> Dict[str, Any]:
        rows = self._conn.execute(self._sql, self._params).fetchall()
        return {"success": True, "results": [dict(row) for row in rows]}

    async def run(self) -> Dict[str, Any]:
        cursor = self._conn.execute(self._sql, self._params)
        self._conn.commit()
        return {"success": True, "meta": {"changes": cursor.rowcount}}


class FakeD1:
    def __init__(self) -> None:
        self.conn = sqlite3.connect(":memory:")
        self.conn.row_factory = sqlite3.Row

    def prepare(self, sql: str) -> FakeStatement:
        return FakeStatement(self.conn, sql)

    async def batch(self, statements: Iterable[FakeStatement]) -> List[Dict[str, Any]]:
        return [await statement.run() for statement in statements]


@pytest.fixture()
async def d1_adapter():
    d1 = FakeD1()
    adapter = D1Adapter(d1, D1Config())
    await adapter.ensure_schema()
    for key in ("owner", "alice"):
        await adapter.create_member(
            id=f"{key}-id",
            email=f"{key}@example.com",
            name=key.capitalize(),
            image=f"https://img.test/{key}.png",
        )
    yield adapter, d1
    d1.conn.close()


async def _project(adapter: D1Adapter, name: str = "Shop"):
    project = await adapter.create_project(name=name, public_access=PublicAccess(can_view=True))
    await adapter.create_project_member(
        project_id=project.id, member_id="owner-id", permission=FULL_ACCESS
    )
    await adapter.create_resource(project_id=project.id, code="table a {}", model={})
    return project


def test_fake_binding_matches_protocols():
    d1 = FakeD1()
    assert isinstance(d1, D1Binding)
    assert isinstance(D1Adapter(d1), StorageAdapter)


@pytest.mark.asyncio
async def test_from_worker_env_uses_configured_binding():
    d1 = FakeD1()
    cfg = D1Config(d1_binding="ERD_DB")
    adapter = D1Adapter.from_worker_env(types.SimpleNamespace(ERD_DB=d1), cfg)
    await adapter.ensure_schema()

    member = await adapter.create_member(
        id="m1", email="m1@example.com", name="M1", image="https://img.test/m1.png"
    )

    assert await adapter.find_member_by_id("m1") == member
    d1.conn.close()


def test_from_worker_env_missing_binding():
    with pytest.raises(LookupError, match="'DB'"):
        D1Adapter.from_worker_env(types.SimpleNamespace(OTHER=FakeD1()))


@pytest.mark.asyncio
async def test_member_meta_is_json_text(d1_adapter):
    adapter, d1 = d1_adapter

    member = await adapter.find_member_by_email("alice@example.com")
    raw = d1.conn.execute("SELECT meta FROM member WHERE id = ?", ("alice-id",)).fetchone()

    assert member.name == "Alice"
    assert json.loads(raw["meta"]) == {"name": "Alice", "image": "https://img.test/alice.png"}


@pytest.mark.asyncio
async def test_project_round_trip_and_soft_delete(d1_adapter):
    adapter, d1 = d1_adapter
    project = await _project(adapter)

    details = await adapter.find_project_with_details(project.id)
    assert details.resource.code == "table a {}"
    assert details.members[0].permission.is_owner is True

    await adapter.delete_project(project.id)

    assert await adapter.find_project_by_id(project.id) is None
    assert await adapter.find_resource_by_project_id(project.id) is None
    assert await adapter.find_project_member(project.id, "owner-id") is None
    assert await adapter.find_projects_by_member_id("owner-id") == []
    row = d1.conn.execute("SELECT is_deleted FROM project WHERE id = ?", (project.id,)).fetchone()
    assert row["is_deleted"] == 1


@pytest.mark.asyncio
async def test_duplicate_grant_rejected(d1_adapter):
    adapter, _ = d1_adapter
    project = await _project(adapter)

    with pytest.raises(Invalid):
        await adapter.create_project_member(
            project_id=project.id, member_id="owner-id", permission=expand_level("view")
        )


@pytest.mark.asyncio
async def test_update_grant_keeps_owner_flag(d1_adapter):
    adapter, d1 = d1_adapter
    project = await _project(adapter)

    await adapter.update_project_member_permission(project.id, "owner-id", expand_level("edit"))

    raw = d1.conn.execute(
        "SELECT permission FROM project_member WHERE member_id = ?", ("owner-id",)
    ).fetchone()
    assert json.loads(raw["permission"]) == {
        "canView": True,
        "canEdit": True,
        "canInvite": False,
        "isOwner": True,
    }


@pytest.mark.asyncio
async def test_projects_newest_first_and_members_in_order(d1_adapter):
    adapter, _ = d1_adapter
    first = await _project(adapter, "First")
    second = await _project(adapter, "Second")
    await adapter.create_project_member(
        project_id=second.id, member_id="alice-id", permission=expand_level("view")
    )

    projects = await adapter.find_projects_by_member_id("owner-id")
    grants = await adapter.find_project_members_by_project_id(second.id, limit=5)

    assert [g.project.id for g in projects] == [second.id, first.id]
    assert [g.member.id for g in grants] == ["owner-id", "alice-id"]


@pytest.mark.asyncio
async def test_update_project_name_and_public_access(d1_adapter):
    adapter, _ = d1_adapter
    project = await _project(adapter)

    await adapter.update_project(
        project.id,
        name="Renamed",
        public_access=PublicAccess(can_view=True, can_edit=True),
        updated_at=project.updated_at,
    )
    await adapter.update_resource(project.id, "table b {}")

    found = await adapter.find_project_by_id(project.id)
    resource = await adapter.find_resource_by_project_id(project.id)
    assert found.name == "Renamed"
    assert found.public_access.can_edit is True
    assert resource.code == "table b {}"


@pytest.mark.asyncio
async def test_delete_project_member(d1_adapter):
    adapter, _ = d1_adapter
    project = await _project(adapter)
    await adapter.create_project_member(
        project_id=project.id, member_id="alice-id", permission=expand_level("view")
    )

    await adapter.delete_project_member(project.id, "alice-id")

    assert await adapter.find_project_member(project.id, "alice-id") is None
