"""Inspect a project with its resource and sharing grants."""

from __future__ import annotations

import asyncio
import json
from argparse import _SubParsersAction, Namespace
from typing import Optional

from packages.erd_access.adapters.sql import AccessDatabase, SqlAlchemyAdapter, init_engine
from packages.erd_access.schemas import ProjectWithDetails

from ..config import RuntimeConfig

__all__ = ["register", "run"]


def register(subparsers: _SubParsersAction) -> None:
    parser = subparsers.add_parser(
        "project-show", help="Print a project, its resource and its members as JSON"
    )
    parser.add_argument("project_id")
    parser.add_argument(
        "--member-limit",
        dest="member_limit",
        type=int,
        default=None,
        help="Cap the number of members listed",
    )
    parser.set_defaults(handler=run)


async def _load(config: RuntimeConfig, project_id: str, member_limit: Optional[int]) -> Optional[ProjectWithDetails]:
    database = AccessDatabase(init_engine(config.settings))
    try:
        adapter = SqlAlchemyAdapter(database)
        return await adapter.find_project_with_details(project_id, member_limit=member_limit)
    finally:
        await database.dispose()


def run(args: Namespace, config: RuntimeConfig) -> None:
    details = asyncio.run(_load(config, args.project_id, getattr(args, "member_limit", None)))
    if details is None:
        raise SystemExit(f"Project not found: {args.project_id}")
    print(json.dumps(details.model_dump(mode="json"), ensure_ascii=False, indent=2))
