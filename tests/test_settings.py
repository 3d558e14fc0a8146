import types

import pytest

from packages.erd_access.adapters import sql
from packages.erd_access.adapters.sql import init_engine, normalize_database_url
from packages.erd_access.config import DEFAULT_DATABASE_URL, AccessSettings


def _clear_env(monkeypatch):
    for key in (
        "ERD_DATABASE_URL",
        "DATABASE_URL",
        "ERD_ORIGIN",
        "DISCORD_WEBHOOK_URL",
        "ERD_DEFAULT_MEMBER_IMAGE",
        "ERD_SHARED_MEMBER_LIMIT",
        "ERD_NOTIFICATION_TIMEOUT",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("packages.erd_access.config.load_env", lambda: None)


def test_settings_from_env(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("DATABASE_URL", "postgres://user:pass@db/erd")
    monkeypatch.setenv("ERD_ORIGIN", "https://easyrd.dev")
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://hooks.test/1")
    monkeypatch.setenv("ERD_SHARED_MEMBER_LIMIT", "20")

    settings = AccessSettings.from_env()

    assert settings.database_url == "postgres://user:pass@db/erd"
    assert settings.origin == "https://easyrd.dev"
    assert settings.discord_webhook_url == "https://hooks.test/1"
    assert settings.shared_member_limit == 20
    assert settings.notification_timeout == 5.0


def test_settings_defaults(monkeypatch):
    _clear_env(monkeypatch)

    settings = AccessSettings.from_env()

    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.origin is None
    assert settings.discord_webhook_url is None
    assert settings.untitled_name == "Untitled"


def test_erd_database_url_wins(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("ERD_DATABASE_URL", "sqlite:///erd-a.db")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///erd-b.db")

    assert AccessSettings.from_env().database_url == "sqlite:///erd-a.db"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("postgres://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("postgresql+psycopg://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ("sqlite:///./erd.db", "sqlite+aiosqlite:///./erd.db"),
        ("sqlite+aiosqlite:///./erd.db", "sqlite+aiosqlite:///./erd.db"),
    ],
)
def test_normalize_database_url(raw, expected):
    assert normalize_database_url(raw) == expected


def _capture_engine(monkeypatch):
    captured: dict[str, object] = {}

    def fake_create_async_engine(url, **kwargs):  # type: ignore[no-untyped-def]
        captured["url"] = url
        captured["kwargs"] = kwargs
        return types.SimpleNamespace()

    monkeypatch.setattr(sql, "create_async_engine", fake_create_async_engine)
    return captured


def test_init_engine_uses_pool_for_postgres(monkeypatch):
    captured = _capture_engine(monkeypatch)

    init_engine(AccessSettings(database_url="postgres://u:p@h/db"))

    assert captured["url"] == "postgresql+psycopg://u:p@h/db"
    assert captured["kwargs"]["pool_size"] == 10
    assert captured["kwargs"]["pool_pre_ping"] is True


def test_init_engine_sqlite_pools(monkeypatch):
    captured = _capture_engine(monkeypatch)

    init_engine(AccessSettings(database_url="sqlite://"))
    assert captured["kwargs"]["poolclass"] is sql.StaticPool

    init_engine(AccessSettings(database_url="sqlite:///./erd.db"))
    assert captured["kwargs"]["poolclass"] is sql.NullPool
    assert captured["url"] == "sqlite+aiosqlite:///./erd.db"
