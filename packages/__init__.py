"""Easy RD server-side packages.

``erd_access`` holds the access-control engine and its storage adapters,
``erd_cli`` the operational command-line tooling built on top of it.
"""

from __future__ import annotations

from .env import load_env

__all__ = ["load_env"]
