"""Run the access-control FastAPI service."""

from __future__ import annotations

from argparse import _SubParsersAction, Namespace

from ..config import RuntimeConfig

__all__ = ["register", "run"]


def register(subparsers: _SubParsersAction) -> None:
    parser = subparsers.add_parser("serve", help="Run the access-control FastAPI service")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8080)
    parser.set_defaults(handler=run)


def run(args: Namespace, config: RuntimeConfig) -> None:
    from packages.erd_access.api import create_app

    import uvicorn

    app = create_app(config.settings)
    # log_config=None keeps the handlers installed by configure_logging
    uvicorn.run(
        app,
        host=args.host,
        port=int(args.port),
        log_config=None,
        log_level=config.log_level.lower(),
    )
