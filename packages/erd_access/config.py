"""Runtime configuration for the access-control core."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel

from packages.env import load_env

__all__ = [
    "AccessSettings",
    "D1Config",
    "DEFAULT_DATABASE_URL",
    "DEFAULT_MEMBER_IMAGE",
    "UNTITLED_PROJECT_NAME",
]

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./erd.db"
DEFAULT_MEMBER_IMAGE = "https://easyrd.dev/images/member/profile-1.png"
UNTITLED_PROJECT_NAME = "Untitled"


@dataclass(slots=True, frozen=True)
class AccessSettings:
    """Access-control service settings.

    ``origin`` prefixes project URLs; when unset the API uses the request's
    base URL.
    """

    database_url: str = DEFAULT_DATABASE_URL
    origin: Optional[str] = None
    discord_webhook_url: Optional[str] = None
    default_member_image: str = DEFAULT_MEMBER_IMAGE
    untitled_name: str = UNTITLED_PROJECT_NAME
    shared_member_limit: int = 100
    notification_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "AccessSettings":
        load_env()
        database_url = (
            os.getenv("ERD_DATABASE_URL")
            or os.getenv("DATABASE_URL")
            or DEFAULT_DATABASE_URL
        )
        return cls(
            database_url=database_url,
            origin=os.getenv("ERD_ORIGIN") or None,
            discord_webhook_url=os.getenv("DISCORD_WEBHOOK_URL") or None,
            default_member_image=os.getenv("ERD_DEFAULT_MEMBER_IMAGE", DEFAULT_MEMBER_IMAGE),
            shared_member_limit=int(os.getenv("ERD_SHARED_MEMBER_LIMIT", "100")),
            notification_timeout=float(os.getenv("ERD_NOTIFICATION_TIMEOUT", "5.0")),
        )


class D1Config(BaseModel):
    """Table layout of the D1 database the Workers deployment binds as ``DB``."""

    d1_binding: str = "DB"
    member_table: str = "member"
    project_table: str = "project"
    project_member_table: str = "project_member"
    resource_table: str = "resource"
