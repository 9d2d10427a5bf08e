"""
db/config.py

Database settings read from the process environment.

The service talks to exactly one PostgreSQL database named by
``DATABASE_URL``. A ``.env`` file (and an untracked ``.env.local``) in the
project root may supply values the process environment does not.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILES = (".env", ".env.local")

_ASYNC_DRIVER = "postgresql+psycopg://"
_PLAIN_SCHEMES = ("postgres://", "postgresql://")


def load_env_files(root: Path = PROJECT_ROOT) -> None:
    """Copy ``KEY=VALUE`` lines from the env files into ``os.environ``; set keys win."""
    for name in ENV_FILES:
        path = root / name
        if not path.is_file():
            continue
        for line in path.read_text(encoding="utf-8").splitlines():
            entry = _parse_env_line(line)
            if entry is not None:
                os.environ.setdefault(*entry)


def _parse_env_line(line: str) -> tuple[str, str] | None:
    line = line.strip()
    if line.startswith("#") or "=" not in line:
        return None
    key, _, value = line.partition("=")
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip("\"'")


def normalize_postgres_url(url: str) -> str:
    """Point a plain PostgreSQL URL at the psycopg 3 async driver."""
    for scheme in _PLAIN_SCHEMES:
        if url.startswith(scheme):
            return _ASYNC_DRIVER + url[len(scheme):]
    return url


def resolve_database_url() -> str:
    """
    Return the normalized ``DATABASE_URL``.

    Raises RuntimeError when it is unset or does not name PostgreSQL.
    """
    load_env_files()
    url = os.getenv("DATABASE_URL", "").strip()
    if not url:
        raise RuntimeError("No database URL configured. Set DATABASE_URL.")
    url = normalize_postgres_url(url)
    if not url.startswith("postgresql"):
        raise RuntimeError("DATABASE_URL must point to PostgreSQL.")
    return url


@dataclass(frozen=True)
class EngineSettings:
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle: int = 1800


def get_engine_settings() -> EngineSettings:
    load_env_files()
    return EngineSettings(
        echo=os.getenv("SQL_ECHO", "").strip().lower() in {"1", "true", "yes", "on"},
        pool_size=max(1, _int_env("DB_POOL_SIZE", 5)),
        max_overflow=max(0, _int_env("DB_MAX_OVERFLOW", 10)),
        pool_recycle=_int_env("DB_POOL_RECYCLE", 1800),
    )


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ[name])
    except (KeyError, ValueError):
        return default
