"""Runtime configuration helpers for command handlers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from packages.env import load_env
from packages.erd_access.config import AccessSettings


@dataclass(frozen=True)
class RuntimeConfig:
    """Resolved configuration for command handlers."""

    log_level: str
    settings: AccessSettings


def bootstrap() -> None:
    """Load environment variables once."""

    load_env()


def build_runtime_config(*, log_level: str, database_url: Optional[str] = None) -> RuntimeConfig:
    """Construct a :class:`RuntimeConfig`, honoring a ``--db-url`` override."""

    settings = AccessSettings.from_env()
    if database_url:
        settings = replace(settings, database_url=database_url)
    return RuntimeConfig(log_level=log_level, settings=settings)
