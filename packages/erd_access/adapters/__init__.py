"""Storage adapters for the access-control engine."""

from .base import StorageAdapter
from .bindings import D1Binding, D1PreparedStatement
from .d1 import D1Adapter
from .sql import AccessDatabase, SqlAlchemyAdapter, init_engine, normalize_database_url

__all__ = [
    "AccessDatabase",
    "D1Adapter",
    "D1Binding",
    "D1PreparedStatement",
    "SqlAlchemyAdapter",
    "StorageAdapter",
    "init_engine",
    "normalize_database_url",
]
