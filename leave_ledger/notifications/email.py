"""Transactional email — leave status templates and the Resend HTTP client.

With no ``RESEND_API_KEY`` configured the client runs in mock mode: the
message is logged and reported as delivered.
"""

from __future__ import annotations

import html
import logging
from typing import Any, Optional

import httpx

from leave_ledger.common.constants import EmailTemplate, LeaveDuration
from leave_ledger.config import settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """The provider refused or failed to accept a message."""


# ── Templates ───────────────────────────────────────────────────────

_ROW = (
    '<tr><td style="color:#6b7280;padding:4px 12px 4px 0">{label}</td>'
    '<td style="color:#111827;padding:4px 0">{value}</td></tr>'
)


def _rows(pairs: list[tuple[str, Any]]) -> str:
    return "".join(
        _ROW.format(label=html.escape(label), value=html.escape(str(value)))
        for label, value in pairs
        if value not in (None, "")
    )


def _layout(title: str, greeting: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family:Arial,sans-serif\">"
        f"<h2>{html.escape(title)}</h2>"
        f"<p>{html.escape(greeting)}</p>"
        f"{body}"
        "</body></html>"
    )


def _duration_text(data: dict[str, Any]) -> str:
    text = f"{data.get('total_days')} day(s)"
    if data.get("duration") == LeaveDuration.half_day.value:
        text += " (Half Day)"
    return text


def render_leave_status_email(
    template: EmailTemplate, data: dict[str, Any],
) -> tuple[str, str]:
    """Return ``(subject, html)`` for a leave status email."""
    leave_type = data.get("leave_type") or "Leave"
    greeting = f"Hello, {data.get('member_name') or data.get('member_email')}"

    if template == EmailTemplate.leave_approved:
        rows = _rows([
            ("Leave Type:", leave_type),
            ("Start Date:", data.get("start_date")),
            ("End Date:", data.get("end_date")),
            ("Duration:", _duration_text(data)),
            ("Approved By:", data.get("approved_by") or "Administrator"),
            ("Message:", data.get("description")),
        ])
        body = (
            "<p>Your leave application has been <strong>approved</strong>.</p>"
            f"<table>{rows}</table>"
            "<p>Your leave has been approved and your calendar has been "
            "updated accordingly.</p>"
        )
        return (
            f"Leave Application Approved: {leave_type}",
            _layout("Leave Application Approved", greeting, body),
        )

    status_text = data.get("status_text") or "cancelled"
    rows = _rows([
        ("Leave Type:", leave_type),
        ("Start Date:", data.get("start_date")),
        ("End Date:", data.get("end_date")),
        ("Duration:", _duration_text(data)),
        (f"{status_text.capitalize()} By:", data.get("cancelled_by") or "Administrator"),
        ("Message:", data.get("reason") or "No reason provided"),
    ])
    body = (
        f"<p>Your leave application has been <strong>{html.escape(status_text)}</strong>.</p>"
        f"<table>{rows}</table>"
        "<p>Your leave balance has been restored. If you have any questions, "
        "please contact your administrator.</p>"
    )
    title = f"Leave Application {status_text.capitalize()}"
    return f"{title}: {leave_type}", _layout(title, greeting, body)


# ── Client ──────────────────────────────────────────────────────────


class EmailClient:
    """Thin async wrapper over the Resend ``POST /emails`` endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.RESEND_API_KEY if api_key is None else api_key
        self.api_url = api_url or settings.RESEND_API_URL
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def is_mock(self) -> bool:
        return not self.api_key

    async def send(self, *, to: str, subject: str, html_body: str) -> Optional[str]:
        """Send one message; return the provider message id (``None`` in mock mode).

        Raises ``EmailDeliveryError`` on any transport or provider failure.
        """
        if self.is_mock:
            logger.info("Email delivery disabled; would send %r to %s", subject, to)
            return None

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport,
            ) as client:
                resp = await client.post(
                    self.api_url,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "from": self.sender,
                        "to": [to],
                        "subject": subject,
                        "html": html_body,
                    },
                )
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"Email transport error: {exc}") from exc

        if resp.status_code >= 400:
            raise EmailDeliveryError(
                f"Email provider returned {resp.status_code}: {resp.text[:200]}"
            )
        message_id = resp.json().get("id")
        logger.info("Email sent to %s (id=%s)", to, message_id)
        return message_id
