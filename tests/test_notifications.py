"""Notification tests — outbox enqueue on status change, dispatcher retries,
email rendering and the Resend client.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import select

from leave_ledger.common.constants import (
    EmailTemplate,
    LeaveStatus,
    OutboxChannel,
    OutboxStatus,
)
from leave_ledger.core.models import utcnow
from leave_ledger.leave.models import Leave, LeaveBalance
from leave_ledger.leave.service import LeaveService
from leave_ledger.notifications.dispatcher import OutboxDispatcher, next_retry_at
from leave_ledger.notifications.email import (
    EmailClient,
    EmailDeliveryError,
    render_leave_status_email,
)
from leave_ledger.notifications.models import Notification, OutboxMessage
from leave_ledger.notifications.repository import OutboxRepository
from leave_ledger.notifications.service import LeaveStatusNotifier
from tests.conftest import make_balance, make_leave, make_user


async def _outbox(db) -> list[OutboxMessage]:
    result = await db.execute(
        select(OutboxMessage)
        .order_by(OutboxMessage.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _pending_leave(db, user, leave_type, **kwargs):
    await make_balance(db, user, leave_type, allocated=10, pending=1, remaining=9)
    return await make_leave(
        db, user, leave_type,
        start_date=date(2026, 3, 2), end_date=date(2026, 3, 2), status="pending", **kwargs,
    )


async def _enqueue_without_channel(self, tenant_id, channel, payload) -> OutboxMessage:
    """Outbox write that trips the NOT NULL constraint on ``channel``."""
    message = OutboxMessage(
        tenant_id=tenant_id,
        channel=None,
        payload=payload,
        status=OutboxStatus.pending,
        attempts=0,
        next_attempt_at=utcnow(),
    )
    self.db.add(message)
    await self.db.flush()
    return message


def _in_app_message(tenant, user, *, title) -> OutboxMessage:
    return OutboxMessage(
        tenant_id=tenant.id,
        channel=OutboxChannel.in_app,
        payload={
            "recipient_email": user.email,
            "type": "leave_approval",
            "title": title,
            "message": "Your leave application for 2026-03-02 has been approved.",
        },
        status=OutboxStatus.pending,
        attempts=0,
        next_attempt_at=utcnow(),
    )


# ═════════════════════════════════════════════════════════════════════
# Enqueue
# ═════════════════════════════════════════════════════════════════════


class TestLeaveStatusNotifications:

    async def test_approval_enqueues_email_and_in_app(self, db, tenant, user, leave_type):
        manager = await make_user(db, tenant, email="boss@acme.test", full_name="Pat Boss")
        leave = await _pending_leave(db, user, leave_type)

        await LeaveService.for_session(db).update_leave_status(
            leave.id, LeaveStatus.approved, approver_id=manager.id,
        )

        messages = {m.channel: m for m in await _outbox(db)}
        assert set(messages) == {OutboxChannel.email, OutboxChannel.in_app}
        email, in_app = messages[OutboxChannel.email], messages[OutboxChannel.in_app]
        assert email.status == OutboxStatus.pending
        assert email.payload["to"] == "jane.doe@acme.test"
        assert email.payload["template"] == "leave_approved"
        assert email.payload["data"]["approved_by"] == "Pat Boss"
        assert email.payload["data"]["leave_type"] == "Annual Leave"
        assert in_app.payload["title"] == "Leave Approved"
        assert in_app.payload["category"] == "general"
        assert in_app.payload["sender_name"] == "Manager"
        assert in_app.payload["message"] == (
            "Your leave application for 2026-03-02 has been approved."
        )

    async def test_rejection_payload_carries_reason(self, db, user, leave_type):
        leave = await _pending_leave(db, user, leave_type)

        await LeaveService.for_session(db).update_leave_status(
            leave.id, LeaveStatus.rejected, rejection_reason="Quarter close",
        )

        messages = {m.channel: m for m in await _outbox(db)}
        email, in_app = messages[OutboxChannel.email], messages[OutboxChannel.in_app]
        assert email.payload["template"] == "leave_cancelled"
        assert email.payload["data"]["status_text"] == "rejected"
        assert email.payload["data"]["reason"] == "Quarter close"
        assert in_app.payload["type"] == "leave_rejection"
        assert in_app.payload["category"] == "alert"
        assert in_app.payload["sender_name"] == "System"
        assert in_app.payload["message"].endswith("has been rejected. Reason: Quarter close")

    async def test_enqueue_failure_does_not_undo_transition(self, db, user, leave_type):
        leave = await _pending_leave(db, user, leave_type)

        with patch.object(
            LeaveStatusNotifier,
            "enqueue_status_change",
            AsyncMock(side_effect=RuntimeError("outbox unavailable")),
        ):
            result = await LeaveService.for_session(db).update_leave_status(
                leave.id, LeaveStatus.approved,
            )

        assert result.leave.status == LeaveStatus.approved
        assert result.balance.used == 1
        assert await _outbox(db) == []

    async def test_outbox_integrity_error_keeps_ledger_change(self, db, user, leave_type):
        leave = await _pending_leave(db, user, leave_type)

        with patch.object(OutboxRepository, "enqueue", _enqueue_without_channel):
            result = await LeaveService.for_session(db).update_leave_status(
                leave.id, LeaveStatus.approved,
            )
        await db.commit()

        assert result.leave.status == LeaveStatus.approved
        stored = (
            await db.execute(select(Leave).execution_options(populate_existing=True))
        ).scalars().one()
        assert stored.status == LeaveStatus.approved
        balance = (
            await db.execute(select(LeaveBalance).execution_options(populate_existing=True))
        ).scalars().one()
        assert balance.used == 1
        assert balance.pending == 0
        assert await _outbox(db) == []


# ═════════════════════════════════════════════════════════════════════
# Dispatcher
# ═════════════════════════════════════════════════════════════════════


class TestOutboxDispatcher:

    def test_next_retry_at_doubles(self):
        now = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
        assert next_retry_at(1, now, 30) == now + timedelta(seconds=30)
        assert next_retry_at(2, now, 30) == now + timedelta(seconds=60)
        assert next_retry_at(4, now, 30) == now + timedelta(seconds=240)
        assert next_retry_at(0, now, 30) == now + timedelta(seconds=30)

    async def test_mock_mode_delivers_everything(self, db, user, leave_type):
        leave = await _pending_leave(db, user, leave_type)
        await LeaveService.for_session(db).update_leave_status(leave.id, LeaveStatus.approved)
        dispatcher = OutboxDispatcher(db, EmailClient(api_key=""))

        result = await dispatcher.dispatch_pending(now=utcnow() + timedelta(seconds=1))

        assert (result.processed, result.sent, result.retried, result.failed) == (2, 2, 0, 0)
        assert all(m.status == OutboxStatus.sent for m in await _outbox(db))
        notification = (await db.execute(select(Notification))).scalars().one()
        assert notification.recipient_email == user.email
        assert notification.title == "Leave Approved"
        assert notification.entity_id == leave.id
        assert notification.is_read is False

    async def test_failed_email_is_retried_with_backoff(self, db, user, leave_type):
        leave = await _pending_leave(db, user, leave_type)
        await LeaveService.for_session(db).update_leave_status(leave.id, LeaveStatus.cancelled)
        client = EmailClient(api_key="re_test")
        client.send = AsyncMock(side_effect=EmailDeliveryError("provider down"))
        dispatcher = OutboxDispatcher(db, client, max_attempts=3, backoff_seconds=30)
        now = utcnow() + timedelta(seconds=1)

        result = await dispatcher.dispatch_pending(now=now)

        assert (result.sent, result.retried, result.failed) == (1, 1, 0)
        email = next(m for m in await _outbox(db) if m.channel == OutboxChannel.email)
        assert email.status == OutboxStatus.pending
        assert email.attempts == 1
        assert email.last_error == "provider down"
        assert email.next_attempt_at.replace(tzinfo=None) == (
            now + timedelta(seconds=30)
        ).replace(tzinfo=None)

        # not due yet
        early = await dispatcher.dispatch_pending(now=now + timedelta(seconds=10))
        assert early.processed == 0

    async def test_gives_up_after_max_attempts(self, db, user, leave_type):
        leave = await _pending_leave(db, user, leave_type)
        await LeaveService.for_session(db).update_leave_status(leave.id, LeaveStatus.rejected)
        client = EmailClient(api_key="re_test")
        client.send = AsyncMock(side_effect=EmailDeliveryError("bounced"))
        dispatcher = OutboxDispatcher(db, client, max_attempts=2, backoff_seconds=30)
        now = utcnow() + timedelta(seconds=1)

        first = await dispatcher.dispatch_pending(now=now)
        second = await dispatcher.dispatch_pending(now=now + timedelta(hours=1))
        third = await dispatcher.dispatch_pending(now=now + timedelta(hours=2))

        assert first.retried == 1
        assert second.failed == 1
        assert third.processed == 0
        email = next(m for m in await _outbox(db) if m.channel == OutboxChannel.email)
        assert email.status == OutboxStatus.failed
        assert email.attempts == 2
        assert client.send.await_count == 2

    async def test_broken_in_app_message_fails_without_blocking_batch(self, db, tenant, user):
        broken = _in_app_message(tenant, user, title=None)
        healthy = _in_app_message(tenant, user, title="Leave Approved")
        db.add_all([broken, healthy])
        await db.flush()
        dispatcher = OutboxDispatcher(
            db, EmailClient(api_key=""), max_attempts=3, backoff_seconds=30,
        )
        now = utcnow() + timedelta(seconds=1)

        first = await dispatcher.dispatch_pending(now=now)
        second = await dispatcher.dispatch_pending(now=now + timedelta(hours=1))
        third = await dispatcher.dispatch_pending(now=now + timedelta(hours=2))
        fourth = await dispatcher.dispatch_pending(now=now + timedelta(hours=3))
        await db.commit()

        assert (first.processed, first.sent, first.retried) == (2, 1, 1)
        assert second.retried == 1
        assert third.failed == 1
        assert fourth.processed == 0
        await db.refresh(broken)
        assert broken.status == OutboxStatus.failed
        assert broken.attempts == 3
        assert broken.last_error
        notifications = (await db.execute(select(Notification))).scalars().all()
        assert [n.title for n in notifications] == ["Leave Approved"]


# ═════════════════════════════════════════════════════════════════════
# Email rendering and client
# ═════════════════════════════════════════════════════════════════════


class TestEmail:

    def test_approved_subject(self):
        subject, body = render_leave_status_email(
            EmailTemplate.leave_approved,
            {"member_name": "Jane Doe", "leave_type": "Annual Leave", "total_days": "2"},
        )

        assert subject == "Leave Application Approved: Annual Leave"
        assert "Hello, Jane Doe" in body
        assert "2 day(s)" in body

    def test_rejected_subject_uses_status_text(self):
        subject, body = render_leave_status_email(
            EmailTemplate.leave_cancelled,
            {"leave_type": "Sick Leave", "status_text": "rejected", "reason": "Busy week"},
        )

        assert subject == "Leave Application Rejected: Sick Leave"
        assert "Rejected By:" in body
        assert "Busy week" in body

    def test_values_are_escaped(self):
        _, body = render_leave_status_email(
            EmailTemplate.leave_approved,
            {"member_name": "<script>x</script>", "leave_type": "Annual Leave"},
        )

        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_half_day_duration_text(self):
        _, body = render_leave_status_email(
            EmailTemplate.leave_approved,
            {"leave_type": "Annual Leave", "total_days": "0.5", "duration": "half_day"},
        )

        assert "0.5 day(s) (Half Day)" in body

    async def test_mock_mode_sends_nothing(self):
        client = EmailClient(api_key="")

        assert client.is_mock is True
        assert await client.send(to="a@acme.test", subject="Hi", html_body="<p/>") is None

    async def test_send_posts_to_provider(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "msg_123"})

        client = EmailClient(
            api_key="re_test",
            api_url="https://mail.test/emails",
            sender="Leave Desk <desk@acme.test>",
            transport=httpx.MockTransport(handler),
        )

        message_id = await client.send(to="jane@acme.test", subject="Hi", html_body="<p>x</p>")

        assert message_id == "msg_123"
        assert seen["auth"] == "Bearer re_test"
        assert seen["body"] == {
            "from": "Leave Desk <desk@acme.test>",
            "to": ["jane@acme.test"],
            "subject": "Hi",
            "html": "<p>x</p>",
        }

    async def test_provider_error_raises(self):
        client = EmailClient(
            api_key="re_test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
        )

        with pytest.raises(EmailDeliveryError):
            await client.send(to="jane@acme.test", subject="Hi", html_body="<p/>")

    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = EmailClient(api_key="re_test", transport=httpx.MockTransport(handler))

        with pytest.raises(EmailDeliveryError):
            await client.send(to="jane@acme.test", subject="Hi", html_body="<p/>")


# ═════════════════════════════════════════════════════════════════════
# HTTP API
# ═════════════════════════════════════════════════════════════════════


class TestNotificationsApi:

    async def test_dispatch_then_list(self, client, db, user, leave_type):
        leave = await _pending_leave(db, user, leave_type)
        await db.commit()

        approve = await client.put(
            f"/api/v1/leave/{leave.id}/status", json={"status": "approved"},
        )
        assert approve.status_code == 200

        dispatch = await client.post("/api/v1/notifications/dispatch")
        assert dispatch.status_code == 200
        assert dispatch.json()["sent"] == 2

        resp = await client.get(
            "/api/v1/notifications",
            params={"tenant_id": str(user.tenant_id), "recipient_email": user.email},
        )
        assert resp.status_code == 200
        rows = resp.json()
        assert len(rows) == 1
        assert rows[0]["title"] == "Leave Approved"
        assert rows[0]["entity_type"] == "leave"

    async def test_outbox_listing_filters_by_status(self, client, db, user, leave_type):
        leave = await _pending_leave(db, user, leave_type)
        await db.commit()
        await client.put(f"/api/v1/leave/{leave.id}/status", json={"status": "cancelled"})

        pending = await client.get(
            "/api/v1/notifications/outbox",
            params={"tenant_id": str(user.tenant_id), "status": "pending"},
        )
        sent = await client.get(
            "/api/v1/notifications/outbox",
            params={"tenant_id": str(user.tenant_id), "status": "sent"},
        )

        assert pending.status_code == 200
        assert sorted(m["channel"] for m in pending.json()) == ["email", "in_app"]
        assert all(m["attempts"] == 0 for m in pending.json())
        assert sent.json() == []
