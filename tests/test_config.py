"""Tests for settings parsing and database URL handling."""

import pytest
from pydantic import ValidationError

from core.config import Settings
from dependencies.db import normalize_database_url


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)  # type: ignore[call-arg]


def test_defaults():
    settings = _settings()
    assert settings.MAX_PAGES == 6
    assert settings.MAX_UPLOAD_BYTES == 10 * 1024 * 1024
    assert settings.MODEL_MAX_FILE_BYTES == 5 * 1024 * 1024
    assert settings.PASS_TOKEN_INTERVAL == 50
    assert settings.DEFAULT_TIP_PERCENTAGE == 18


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("http://a.test, http://b.test", ["http://a.test", "http://b.test"]),
        ('["http://a.test"]', ["http://a.test"]),
        ("", []),
    ],
)
def test_cors_origins_parsing(raw, expected):
    assert _settings(CORS_ORIGINS=raw).CORS_ORIGINS == expected


def test_wildcard_origin_with_credentials_is_rejected():
    with pytest.raises(ValidationError):
        _settings(CORS_ORIGINS="*", ALLOW_CREDENTIALS=True)


def test_pass_interval_from_environment(monkeypatch):
    monkeypatch.setenv("PASS_TOKEN_INTERVAL", "25")
    assert _settings().PASS_TOKEN_INTERVAL == 25


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        (
            "postgres://u:p@db:5432/orda?sslmode=require",
            "postgresql+asyncpg://u:p@db:5432/orda?ssl=require",
        ),
        ("postgresql://u:p@db/orda", "postgresql+asyncpg://u:p@db/orda"),
        ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
    ],
)
def test_normalize_database_url(url, expected):
    assert normalize_database_url(url) == expected
