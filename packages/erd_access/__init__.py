"""Access control and persistence for Easy RD projects."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    # Errors
    "AccessError",
    "Forbidden",
    "Invalid",
    "NotFound",
    "Unauthorized",
    # Permissions
    "PermissionFlags",
    "PermissionLevel",
    "PublicAccess",
    # Configuration
    "AccessSettings",
    "D1Config",
    # Engine
    "AccessControlService",
    "NotificationService",
    # API
    "create_app",
]

_MODULES = {
    ".errors": ["AccessError", "Forbidden", "Invalid", "NotFound", "Unauthorized"],
    ".permissions": ["PermissionFlags", "PermissionLevel", "PublicAccess"],
    ".config": ["AccessSettings", "D1Config"],
    ".service": ["AccessControlService"],
    ".notifications": ["NotificationService"],
    ".api": ["create_app"],
}


def __getattr__(name: str) -> Any:  # pragma: no cover - thin import shim
    for module_name, names in _MODULES.items():
        if name in names:
            value = getattr(import_module(module_name, __name__), name)
            globals()[name] = value
            return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover - introspection helper
    return sorted(__all__)
