"""``erd-cli`` entry point."""

from __future__ import annotations

import argparse
import os
from typing import Callable, List, Optional

from . import __version__, commands
from .config import RuntimeConfig, bootstrap, build_runtime_config
from .log import LOG_FORMATS, configure_logging

CommandHandler = Callable[[argparse.Namespace, RuntimeConfig], None]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="erd-cli", description="Operate the Easy RD access-control service."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=os.getenv("ERD_LOG_FORMAT", "kv"),
        help="kv for terminals, json for log shippers",
    )
    parser.add_argument("--db-url", dest="db_url", help="Overrides ERD_DATABASE_URL")
    commands.register(parser.add_subparsers(dest="command", required=True))
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    bootstrap()
    args = build_parser().parse_args(argv)
    level_name = str(args.log_level).upper()
    configure_logging(level_name, args.log_format)

    handler: CommandHandler = args.handler
    handler(args, build_runtime_config(log_level=level_name, database_url=args.db_url))


if __name__ == "__main__":  # pragma: no cover
    main()
