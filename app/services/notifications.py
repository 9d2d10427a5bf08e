"""
app/services/notifications.py

Review notifications for the fact change workflow.

Notifications are best-effort side effects. The workflow services collect
them while a unit of work is open and hand them to
:class:`NotificationDispatcher` only after the transaction has committed, so
a failing mail relay can never roll back an approval. A service running
inside a transaction owned by its caller parks them on the session instead
(:func:`deliver`); the caller sends them with :func:`drain_outbox` once its
own commit succeeded.

Backends
--------
log      → :class:`LoggingNotifier` (default, no transport)
smtp     → :class:`SMTPNotifier`   (stdlib smtplib in a worker thread)
webhook  → :class:`WebhookNotifier` (JSON POST to a mail relay via requests)
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from collections.abc import Sequence
from dataclasses import dataclass
from email.message import EmailMessage
from functools import lru_cache
from typing import Protocol

import requests
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import NotificationSettings, get_notification_settings
from app.logging_utils import log_event
from db.repositories.types import KpiLabel

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotifyResult:
    ok: bool
    message: str


@dataclass(frozen=True)
class Notification:
    """One message queued for delivery after commit."""

    recipient: str
    subject: str
    body: str


class Notifier(Protocol):
    async def notify(self, recipient: str, subject: str, body: str) -> NotifyResult:
        ...


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class LoggingNotifier:
    """Writes each notification to the log instead of delivering it."""

    async def notify(self, recipient: str, subject: str, body: str) -> NotifyResult:
        log_event(
            logger,
            logging.INFO,
            "notification.logged",
            recipient=recipient,
            subject=subject,
        )
        return NotifyResult(ok=True, message="logged")


class SMTPNotifier:
    """
    Delivers notifications as e-mail.

    Recipient handles without an ``@`` are turned into addresses with the
    configured mail domain.
    """

    def __init__(self, settings: NotificationSettings) -> None:
        self._settings = settings

    async def notify(self, recipient: str, subject: str, body: str) -> NotifyResult:
        address = self._resolve_address(recipient)
        if address is None:
            return NotifyResult(ok=False, message=f"No mail address for {recipient!r}.")

        message = EmailMessage()
        message["From"] = self._settings.smtp_sender
        message["To"] = address
        message["Subject"] = subject
        message.set_content(body)

        await asyncio.to_thread(self._send, message)
        return NotifyResult(ok=True, message=f"sent to {address}")

    def _resolve_address(self, recipient: str) -> str | None:
        handle = recipient.strip()
        if not handle:
            return None
        if "@" in handle:
            return handle
        if not self._settings.mail_domain:
            return None
        return f"{handle}@{self._settings.mail_domain}"

    def _send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(
            self._settings.smtp_host,
            self._settings.smtp_port,
            timeout=self._settings.timeout_seconds,
        ) as client:
            if self._settings.smtp_use_tls:
                client.starttls()
            if self._settings.smtp_username and self._settings.smtp_password:
                client.login(self._settings.smtp_username, self._settings.smtp_password)
            client.send_message(message)


class WebhookNotifier:
    """
    Posts ``{"recipient", "subject", "body"}`` to a mail relay endpoint.
    """

    def __init__(
        self,
        settings: NotificationSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.webhook_url:
            raise RuntimeError("NOTIFY_WEBHOOK_URL must be set for the webhook backend.")
        self._url = settings.webhook_url
        self._timeout_seconds = settings.timeout_seconds
        self._session = session or requests.Session()

    async def notify(self, recipient: str, subject: str, body: str) -> NotifyResult:
        payload = {"recipient": recipient, "subject": subject, "body": body}
        response = await asyncio.to_thread(
            self._session.post,
            self._url,
            json=payload,
            timeout=self._timeout_seconds,
        )
        if response.status_code >= 400:
            return NotifyResult(ok=False, message=f"relay returned HTTP {response.status_code}")
        return NotifyResult(ok=True, message="accepted by relay")


def build_notifier(settings: NotificationSettings) -> Notifier:
    if settings.backend == "smtp":
        return SMTPNotifier(settings)
    if settings.backend == "webhook":
        return WebhookNotifier(settings)
    return LoggingNotifier()


# ---------------------------------------------------------------------------
# Post-commit dispatch
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """
    Sends queued notifications one by one. Never raises.
    """

    def __init__(self, notifier: Notifier, *, enabled: bool = True) -> None:
        self._notifier = notifier
        self._enabled = enabled

    async def dispatch(self, notifications: Sequence[Notification]) -> list[NotifyResult]:
        results: list[NotifyResult] = []
        if not self._enabled:
            return results

        for item in notifications:
            try:
                result = await self._notifier.notify(item.recipient, item.subject, item.body)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Notification to %r failed: %s", item.recipient, item.subject)
                result = NotifyResult(ok=False, message=str(exc))
            if not result.ok:
                log_event(
                    logger,
                    logging.WARNING,
                    "notification.failed",
                    recipient=item.recipient,
                    subject=item.subject,
                    reason=result.message,
                )
            results.append(result)
        return results


OUTBOX_KEY = "kpi_monitor.notification_outbox"


async def deliver(
    dispatcher: NotificationDispatcher,
    session: AsyncSession,
    notifications: Sequence[Notification],
    *,
    committed: bool,
) -> None:
    """
    Dispatch *notifications* now if the unit of work has committed.

    When the service ran inside a transaction owned by the caller, nothing
    is durable yet: the messages are parked in ``session.info`` and the
    caller sends them with :func:`drain_outbox` after its own commit.
    """
    if committed:
        await dispatcher.dispatch(notifications)
        return
    if notifications:
        session.info.setdefault(OUTBOX_KEY, []).extend(notifications)


def drain_outbox(session: AsyncSession) -> list[Notification]:
    """Remove and return the notifications parked on *session*."""
    return session.info.pop(OUTBOX_KEY, [])


@lru_cache(maxsize=1)
def get_notification_dispatcher() -> NotificationDispatcher:
    settings = get_notification_settings()
    return NotificationDispatcher(build_notifier(settings), enabled=settings.enabled)


# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------


def _kpi_text(label: KpiLabel) -> str:
    return f"KPI {label.code} — {label.name}"


def _with_footer(body: str, inbox_url: str | None) -> str:
    lines = [body]
    if inbox_url:
        lines.append(f"Open approvals: {inbox_url}")
    lines.append("This is an automated message.")
    return "\n\n".join(lines)


def pending_review(
    recipient: str,
    label: KpiLabel,
    submitted_by: str,
    *,
    inbox_url: str | None = None,
) -> Notification:
    body = (
        f"A change was submitted for {_kpi_text(label)} by {submitted_by}. "
        "Please review it in KPI Monitor."
    )
    return Notification(recipient, "KPI change pending approval", _with_footer(body, inbox_url))


def change_approved(
    recipient: str,
    label: KpiLabel,
    *,
    inbox_url: str | None = None,
) -> Notification:
    body = f"Your submitted change for {_kpi_text(label)} was approved."
    return Notification(recipient, "KPI change approved", _with_footer(body, inbox_url))


def change_rejected(
    recipient: str,
    label: KpiLabel,
    reason: str,
    *,
    inbox_url: str | None = None,
) -> Notification:
    body = f"Your submitted change for {_kpi_text(label)} was rejected. Reason: {reason}."
    return Notification(recipient, "KPI change rejected", _with_footer(body, inbox_url))


def batch_pending_review(
    recipient: str,
    label: KpiLabel,
    submitted_by: str,
    *,
    year: int,
    row_count: int,
    inbox_url: str | None = None,
) -> Notification:
    body = (
        f"{submitted_by} submitted {row_count} change(s) for {_kpi_text(label)} ({year}). "
        "Please review the batch in KPI Monitor."
    )
    return Notification(recipient, "KPI batch pending approval", _with_footer(body, inbox_url))


def batch_approved(
    recipient: str,
    label: KpiLabel,
    *,
    year: int,
    approved_count: int,
    inbox_url: str | None = None,
) -> Notification:
    body = (
        f"Your batch of {approved_count} change(s) for {_kpi_text(label)} ({year}) "
        "was approved."
    )
    return Notification(recipient, "KPI batch approved", _with_footer(body, inbox_url))


def batch_rejected(
    recipient: str,
    label: KpiLabel,
    reason: str,
    *,
    year: int,
    rejected_count: int,
    inbox_url: str | None = None,
) -> Notification:
    body = (
        f"Your batch of {rejected_count} change(s) for {_kpi_text(label)} ({year}) "
        f"was rejected. Reason: {reason}."
    )
    return Notification(recipient, "KPI batch rejected", _with_footer(body, inbox_url))
