"""
tests/test_db_config.py

Database URL resolution and env file loading.
"""

from __future__ import annotations

import os

import pytest

from db.config import (
    get_engine_settings,
    load_env_files,
    normalize_postgres_url,
    resolve_database_url,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("postgres://u:p@db/kpi", "postgresql+psycopg://u:p@db/kpi"),
        ("postgresql://u:p@db/kpi", "postgresql+psycopg://u:p@db/kpi"),
        ("postgresql+psycopg://u:p@db/kpi", "postgresql+psycopg://u:p@db/kpi"),
    ],
)
def test_normalize_postgres_url(raw: str, expected: str) -> None:
    assert normalize_postgres_url(raw) == expected


def test_database_url_is_normalized(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", " postgres://u:p@db/kpi ")

    assert resolve_database_url() == "postgresql+psycopg://u:p@db/kpi"


def test_missing_database_url(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        resolve_database_url()


def test_other_variables_are_not_consulted(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("CLOUD_DATABASE_URL", "postgresql://u:p@cloud/kpi")
    monkeypatch.setenv("LOCAL_DATABASE_URL", "postgresql://u:p@local/kpi")

    with pytest.raises(RuntimeError):
        resolve_database_url()


def test_non_postgres_url_is_refused(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite:///kpi.db")

    with pytest.raises(RuntimeError, match="PostgreSQL"):
        resolve_database_url()


def test_env_files_fill_gaps_without_overriding(tmp_path, monkeypatch) -> None:
    (tmp_path / ".env").write_text(
        "# comment\nKPI_TEST_A=from-file\nKPI_TEST_B = 'quoted'\nnot a pair\n",
        encoding="utf-8",
    )
    (tmp_path / ".env.local").write_text("KPI_TEST_C=\"local\"\n", encoding="utf-8")
    monkeypatch.setenv("KPI_TEST_A", "from-process")
    monkeypatch.delenv("KPI_TEST_B", raising=False)
    monkeypatch.delenv("KPI_TEST_C", raising=False)

    load_env_files(tmp_path)

    try:
        assert os.environ["KPI_TEST_A"] == "from-process"
        assert os.environ["KPI_TEST_B"] == "quoted"
        assert os.environ["KPI_TEST_C"] == "local"
    finally:
        os.environ.pop("KPI_TEST_B", None)
        os.environ.pop("KPI_TEST_C", None)


def test_engine_settings_fall_back_on_bad_values(monkeypatch) -> None:
    monkeypatch.setenv("SQL_ECHO", "yes")
    monkeypatch.setenv("DB_POOL_SIZE", "0")
    monkeypatch.setenv("DB_MAX_OVERFLOW", "many")

    settings = get_engine_settings()

    assert settings.echo is True
    assert settings.pool_size == 1
    assert settings.max_overflow == 10
