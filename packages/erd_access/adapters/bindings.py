from __future__ import annotations

from typing import Any, Awaitable, Dict, Iterable, Optional, Protocol, runtime_checkable


@runtime_checkable
class D1PreparedStatement(Protocol):
    """Subset of the Cloudflare D1 prepared statement API the adapter uses."""

    def bind(self, *args: Any) -> "D1PreparedStatement":
        ...

    def first(self) -> Awaitable[Optional[Dict[str, Any]]]:
        ...

    def all(self) -> Awaitable[Dict[str, Any]]:
        ...

    def run(self) -> Awaitable[Dict[str, Any]]:
        ...


@runtime_checkable
class D1Binding(Protocol):
    """Interface expected from ``env.DB`` inside Workers."""

    def prepare(self, sql: str) -> D1PreparedStatement:
        ...

    def batch(self, statements: Iterable[Any]) -> Awaitable[Iterable[Any]]:
        ...


__all__ = ["D1Binding", "D1PreparedStatement"]
