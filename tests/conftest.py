"""Shared fixtures: a file-backed SQLite adapter and session helpers."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import pytest

from packages.erd_access.adapters.sql import AccessDatabase, SqlAlchemyAdapter, init_engine
from packages.erd_access.config import AccessSettings
from packages.erd_access.schemas import Member, Session, SessionUser
from packages.erd_access.service import AccessControlService

ORIGIN = "https://easyrd.test"


class RecordingSink:
    """Notification sink that remembers every member it was told about."""

    def __init__(self) -> None:
        self.members: List[Member] = []

    async def send_on_created_member(self, member: Member) -> None:
        self.members.append(member)


def make_session(user_id: Optional[str], **fields) -> Optional[Session]:
    if user_id is None:
        return None
    return Session(user=SessionUser(id=user_id, **fields))


@pytest.fixture()
def settings(tmp_path: Path) -> AccessSettings:
    return AccessSettings(database_url=f"sqlite:///{tmp_path / 'erd.db'}", origin=ORIGIN)


@pytest.fixture()
async def database(settings: AccessSettings):
    db = AccessDatabase(init_engine(settings))
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture()
def adapter(database: AccessDatabase) -> SqlAlchemyAdapter:
    return SqlAlchemyAdapter(database)


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def service_for(adapter, settings, sink):
    """Build an engine acting as ``user_id`` (``None`` for anonymous)."""

    def _build(user_id: Optional[str] = None, **fields) -> AccessControlService:
        session = make_session(user_id, **fields)

        async def resolve() -> Optional[Session]:
            return session

        return AccessControlService(
            storage_adapter=adapter,
            session_resolver=resolve,
            origin=ORIGIN,
            settings=settings,
            notification_sink=sink,
        )

    return _build


@pytest.fixture()
async def members(adapter) -> dict:
    """Three registered members keyed by short name."""

    created = {}
    for key in ("owner", "alice", "bob"):
        created[key] = await adapter.create_member(
            id=f"{key}-id",
            email=f"{key}@example.com",
            name=key.capitalize(),
            image=f"https://img.test/{key}.png",
        )
    return created
