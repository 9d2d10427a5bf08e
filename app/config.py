"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import lru_cache

from db.config import load_env_files

_ALLOWED_NOTIFY_BACKENDS = {"log", "smtp", "webhook"}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_decimal_env(name: str, default: Decimal) -> Decimal:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return Decimal(raw_value.strip())
    except InvalidOperation:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _get_csv_env(name: str) -> frozenset[str]:
    _load_env_once()
    raw_value = os.getenv(name) or ""
    return frozenset(item.strip().lower() for item in raw_value.split(",") if item.strip())


@dataclass(frozen=True)
class WorkflowSettings:
    """
    Status engine and approval workflow settings.
    """

    status_tolerance: Decimal = Decimal("0.0001")
    due_grace_months: int = 1
    admin_users: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class NotificationSettings:
    """
    Notification backend selection and transport settings.
    """

    enabled: bool = True
    backend: str = "log"
    inbox_url: str | None = None
    mail_domain: str | None = None
    smtp_host: str = "localhost"
    smtp_port: int = 25
    smtp_sender: str = "kpi-monitor@localhost"
    smtp_use_tls: bool = False
    smtp_username: str | None = None
    smtp_password: str | None = None
    webhook_url: str | None = None
    timeout_seconds: float = 10.0


@lru_cache(maxsize=1)
def get_workflow_settings() -> WorkflowSettings:
    """
    Return cached workflow settings from environment variables.
    """

    return WorkflowSettings(
        status_tolerance=abs(_get_decimal_env("KPI_STATUS_TOLERANCE", Decimal("0.0001"))),
        due_grace_months=max(0, _get_int_env("KPI_DUE_GRACE_MONTHS", 1)),
        admin_users=_get_csv_env("KPI_ADMIN_USERS"),
    )


@lru_cache(maxsize=1)
def get_notification_settings() -> NotificationSettings:
    """
    Return cached notification settings from environment variables.

    Raises RuntimeError for an unknown NOTIFY_BACKEND.
    """

    backend = _get_str_env("NOTIFY_BACKEND", "log").lower()
    if backend not in _ALLOWED_NOTIFY_BACKENDS:
        raise RuntimeError(
            f"NOTIFY_BACKEND '{backend}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_NOTIFY_BACKENDS)}."
        )

    return NotificationSettings(
        enabled=_get_bool_env("NOTIFY_ENABLED", True),
        backend=backend,
        inbox_url=_get_optional_str_env("NOTIFY_INBOX_URL"),
        mail_domain=_get_optional_str_env("NOTIFY_MAIL_DOMAIN"),
        smtp_host=_get_str_env("SMTP_HOST", "localhost"),
        smtp_port=max(1, _get_int_env("SMTP_PORT", 25)),
        smtp_sender=_get_str_env("SMTP_SENDER", "kpi-monitor@localhost"),
        smtp_use_tls=_get_bool_env("SMTP_USE_TLS", False),
        smtp_username=_get_optional_str_env("SMTP_USERNAME"),
        smtp_password=_get_optional_str_env("SMTP_PASSWORD"),
        webhook_url=_get_optional_str_env("NOTIFY_WEBHOOK_URL"),
        timeout_seconds=max(1.0, _get_float_env("NOTIFY_TIMEOUT_SECONDS", 10.0)),
    )
