"""Command registrations for the erd CLI."""

from __future__ import annotations

from argparse import _SubParsersAction

from . import db, project, serve

__all__ = ["register"]


def register(subparsers: _SubParsersAction) -> None:
    """Register all CLI commands with *subparsers*."""

    serve.register(subparsers)
    db.register(subparsers)
    project.register(subparsers)
