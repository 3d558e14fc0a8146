"""Create the relational schema."""

from __future__ import annotations

import asyncio
from argparse import _SubParsersAction, Namespace

import structlog

from packages.erd_access.adapters.sql import AccessDatabase, init_engine

from ..config import RuntimeConfig

__all__ = ["register", "run"]

logger = structlog.get_logger(__name__)


def register(subparsers: _SubParsersAction) -> None:
    parser = subparsers.add_parser("init-db", help="Create member/project/resource tables")
    parser.set_defaults(handler=run)


async def _create(config: RuntimeConfig) -> None:
    database = AccessDatabase(init_engine(config.settings))
    try:
        await database.create_all()
    finally:
        await database.dispose()


def run(args: Namespace, config: RuntimeConfig) -> None:  # noqa: ARG001
    asyncio.run(_create(config))
    logger.info("db.initialised", database_url=config.settings.database_url)
