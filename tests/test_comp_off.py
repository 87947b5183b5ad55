"""Comp-off tests — overtime detection, weekly dedup, manual credits, reconcile."""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from leave_ledger.common.exceptions import TenantMismatchException
from leave_ledger.comp_off.models import CompOffCredit
from leave_ledger.comp_off.schemas import CompOffCreditCreate
from leave_ledger.comp_off.service import (
    CompOffService,
    OvertimeCompOffEngine,
    overtime_days,
    round_to_half_day,
)
from leave_ledger.core.models import utcnow
from leave_ledger.leave.models import LeaveBalance, LeaveType
from leave_ledger.timesheets.models import Timesheet
from tests.conftest import (
    make_balance,
    make_leave_type,
    make_tenant,
    make_timesheet,
    make_user,
)

MONDAY = date(2026, 10, 12)


async def _seed_week(db, user, hours_by_day: list) -> None:
    """One timesheet entry per weekday, starting Monday."""
    for offset, hours in enumerate(hours_by_day):
        await make_timesheet(db, user, MONDAY + timedelta(days=offset), hours=hours)


async def _comp_off_type(db, tenant) -> LeaveType:
    return await make_leave_type(
        db, tenant, name="Compensatory Off", annual_allowance=0, is_comp_off=True,
    )


def _credit(user, leave_type, *, credited, expires_at, week_start=None) -> CompOffCredit:
    return CompOffCredit(
        id=uuid.uuid4(),
        tenant_id=user.tenant_id,
        user_id=user.id,
        user_email=user.email,
        leave_type_id=leave_type.id,
        week_start=week_start,
        credited_days=Decimal(credited),
        used_days=Decimal("0"),
        remaining_days=Decimal(credited),
        credited_by="admin@acme.test",
        expires_at=expires_at,
        is_expired=False,
    )


# ═════════════════════════════════════════════════════════════════════
# Overtime arithmetic
# ═════════════════════════════════════════════════════════════════════


class TestOvertimeArithmetic:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("0.2", "0"),
            ("0.25", "0.5"),
            ("0.5", "0.5"),
            ("0.74", "0.5"),
            ("0.75", "1"),
            ("1.3", "1.5"),
        ],
    )
    def test_round_to_half_day(self, raw, expected):
        assert round_to_half_day(Decimal(raw)) == Decimal(expected)

    async def test_daily_and_weekly_overtime_are_summed(self, db, user):
        await _seed_week(db, user, [10, 8, 8, 8, 8])
        entries = (await db.execute(select(Timesheet))).scalars().all()

        # 2h daily over on Monday + 2h over the 40h week
        assert overtime_days(entries) == Decimal("0.5")


# ═════════════════════════════════════════════════════════════════════
# Overtime engine
# ═════════════════════════════════════════════════════════════════════


class TestOvertimeCompOffEngine:

    async def test_credits_half_day_for_long_week(self, db, tenant, user):
        comp_off = await _comp_off_type(db, tenant)
        await _seed_week(db, user, [10, 8, 8, 8, 8])
        engine = OvertimeCompOffEngine.for_session(db)

        result = await engine.process(tenant.id, user.email, MONDAY + timedelta(days=2))

        assert result.credited is True
        assert result.days == 0.5
        credit = (await db.execute(select(CompOffCredit))).scalars().one()
        assert credit.week_start == MONDAY
        assert credit.expires_at == date(2026, 10, 18)
        assert credit.leave_type_id == comp_off.id
        assert credit.credited_days == Decimal("0.5")
        assert credit.remaining_days == Decimal("0.5")
        assert credit.credited_by == "system"
        assert credit.reason == "Auto-credited for overtime work (Week of Oct 12, 2026)"

    async def test_second_trigger_same_week_is_noop(self, db, tenant, user):
        await _comp_off_type(db, tenant)
        await _seed_week(db, user, [10, 8, 8, 8, 8])
        engine = OvertimeCompOffEngine.for_session(db)
        await engine.process(tenant.id, user.email, MONDAY)
        await make_timesheet(db, user, MONDAY + timedelta(days=5), hours=6)

        result = await engine.process(tenant.id, user.email, MONDAY + timedelta(days=5))

        assert result.credited is False
        credits = (await db.execute(select(CompOffCredit))).scalars().all()
        assert len(credits) == 1

    async def test_regular_week_credits_nothing(self, db, tenant, user):
        await _comp_off_type(db, tenant)
        await _seed_week(db, user, [8, 8, 8, 8, 8])
        engine = OvertimeCompOffEngine.for_session(db)

        result = await engine.process(tenant.id, user.email, MONDAY)

        assert result.credited is False
        assert result.days == 0

    async def test_small_overtime_rounds_to_zero(self, db, tenant, user):
        await _comp_off_type(db, tenant)
        await _seed_week(db, user, [8.5, 8, 8, 8, 8])
        engine = OvertimeCompOffEngine.for_session(db)

        result = await engine.process(tenant.id, user.email, MONDAY)

        assert result.credited is False
        assert (await db.execute(select(CompOffCredit))).scalars().all() == []

    async def test_minutes_count_towards_hours(self, db, tenant, user):
        await _comp_off_type(db, tenant)
        await make_timesheet(db, user, MONDAY, hours=9, minutes=60)
        for offset in range(1, 5):
            await make_timesheet(db, user, MONDAY + timedelta(days=offset), hours=8)
        engine = OvertimeCompOffEngine.for_session(db)

        result = await engine.process(tenant.id, user.email, MONDAY)

        assert result.credited is True
        assert result.days == 0.5

    async def test_without_comp_off_type_is_noop(self, db, tenant, user):
        await _seed_week(db, user, [12, 12, 8, 8, 8])
        engine = OvertimeCompOffEngine.for_session(db)

        result = await engine.process(tenant.id, user.email, MONDAY)

        assert result.credited is False
        assert (await db.execute(select(CompOffCredit))).scalars().all() == []

    async def test_inactive_comp_off_type_is_ignored(self, db, tenant, user):
        await make_leave_type(db, tenant, name="Comp Off", is_comp_off=True, is_active=False)
        await _seed_week(db, user, [12, 12, 8, 8, 8])
        engine = OvertimeCompOffEngine.for_session(db)

        result = await engine.process(tenant.id, user.email, MONDAY)

        assert result.credited is False

    async def test_unknown_user_is_noop(self, db, tenant, user):
        await _comp_off_type(db, tenant)
        await _seed_week(db, user, [12, 12, 8, 8, 8])
        engine = OvertimeCompOffEngine.for_session(db)

        result = await engine.process(tenant.id, "ghost@acme.test", MONDAY)

        assert result.credited is False

    async def test_other_weeks_are_not_counted(self, db, tenant, user):
        await _comp_off_type(db, tenant)
        await make_timesheet(db, user, MONDAY - timedelta(days=1), hours=14)
        await make_timesheet(db, user, MONDAY + timedelta(days=7), hours=14)
        await make_timesheet(db, user, MONDAY, hours=8)
        engine = OvertimeCompOffEngine.for_session(db)

        result = await engine.process(tenant.id, user.email, MONDAY)

        assert result.credited is False


# ═════════════════════════════════════════════════════════════════════
# Manual credits and reconcile
# ═════════════════════════════════════════════════════════════════════


class TestCompOffService:

    async def test_manual_credit_creates_type_and_ledger_row(self, db, tenant, user):
        service = CompOffService.for_session(db)

        credit = await service.credit_manual(
            CompOffCreditCreate(
                tenant_id=tenant.id,
                user_id=user.id,
                credited_days=Decimal("1.5"),
                reason="Worked the launch weekend",
                credited_by="admin@acme.test",
            )
        )

        assert credit.week_start is None
        assert credit.remaining_days == Decimal("1.5")
        comp_off = (await db.execute(
            select(LeaveType).where(LeaveType.is_comp_off.is_(True))
        )).scalars().one()
        assert comp_off.name == "Compensatory Off"
        balance = (await db.execute(
            select(LeaveBalance).where(LeaveBalance.leave_type_id == comp_off.id)
        )).scalars().one()
        assert balance.year == utcnow().year
        assert balance.allocated == Decimal("1.5")
        assert balance.remaining == Decimal("1.5")

    async def test_manual_credits_accumulate(self, db, tenant, user):
        comp_off = await _comp_off_type(db, tenant)
        balance = await make_balance(
            db, user, comp_off, year=utcnow().year, allocated=1, used=1,
        )
        service = CompOffService.for_session(db)

        for days in ("1", "0.5"):
            await service.credit_manual(
                CompOffCreditCreate(
                    tenant_id=tenant.id,
                    user_id=user.id,
                    credited_days=Decimal(days),
                    credited_by="admin@acme.test",
                )
            )

        assert balance.allocated == Decimal("2.5")
        assert balance.remaining == Decimal("1.5")
        assert balance.used == Decimal("1")

    async def test_manual_credit_for_other_tenant_user_rejected(self, db, tenant):
        other_tenant = await make_tenant(db, name="Globex")
        outsider = await make_user(db, other_tenant)
        service = CompOffService.for_session(db)

        with pytest.raises(TenantMismatchException):
            await service.credit_manual(
                CompOffCreditCreate(
                    tenant_id=tenant.id,
                    user_id=outsider.id,
                    credited_days=Decimal("1"),
                    credited_by="admin@acme.test",
                )
            )

    async def test_reconcile_spreads_used_oldest_expiry_first(self, db, tenant, user):
        comp_off = await _comp_off_type(db, tenant)
        await make_balance(db, user, comp_off, year=2026, allocated=5, used=3)
        later = _credit(user, comp_off, credited="2", expires_at=date(2026, 12, 1))
        sooner = _credit(user, comp_off, credited="2", expires_at=date(2026, 11, 1))
        open_ended = _credit(user, comp_off, credited="1", expires_at=None)
        db.add_all([later, sooner, open_ended])
        await db.flush()
        service = CompOffService.for_session(db)

        updated = await service.reconcile_usage(tenant.id)

        assert updated == 2
        assert sooner.used_days == Decimal("2")
        assert sooner.remaining_days == Decimal("0")
        assert later.used_days == Decimal("1")
        assert later.remaining_days == Decimal("1")
        assert open_ended.used_days == Decimal("0")

    async def test_reconcile_sums_usage_across_years(self, db, tenant, user):
        comp_off = await _comp_off_type(db, tenant)
        await make_balance(db, user, comp_off, year=2025, allocated=2, used=1)
        await make_balance(db, user, comp_off, year=2026, allocated=2, used=1)
        credit = _credit(user, comp_off, credited="3", expires_at=date(2026, 12, 31))
        db.add(credit)
        await db.flush()
        service = CompOffService.for_session(db)

        await service.reconcile_usage(tenant.id)

        assert credit.used_days == Decimal("2")
        assert credit.remaining_days == Decimal("1")

    async def test_reconcile_is_idempotent(self, db, tenant, user):
        comp_off = await _comp_off_type(db, tenant)
        await make_balance(db, user, comp_off, year=2026, allocated=2, used=1)
        db.add(_credit(user, comp_off, credited="2", expires_at=date(2026, 12, 31)))
        await db.flush()
        service = CompOffService.for_session(db)

        assert await service.reconcile_usage(tenant.id) == 1
        assert await service.reconcile_usage(tenant.id) == 0


# ═════════════════════════════════════════════════════════════════════
# HTTP API
# ═════════════════════════════════════════════════════════════════════


class TestCompOffApi:

    async def test_process_overtime_endpoint(self, client, db, tenant, user):
        await _comp_off_type(db, tenant)
        await _seed_week(db, user, [10, 8, 8, 8, 8])
        await db.commit()

        resp = await client.post(
            "/api/v1/leave-management/process-overtime",
            json={"tenant_id": str(tenant.id), "user_email": user.email, "date": "2026-10-14"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"credited": True, "days": 0.5}

    async def test_credit_and_list_endpoints(self, client, db, tenant, user):
        await db.commit()

        created = await client.post(
            "/api/v1/comp-off/credits",
            json={
                "tenant_id": str(tenant.id),
                "user_id": str(user.id),
                "credited_days": 1,
                "credited_by": "admin@acme.test",
                "expires_at": "2026-12-31",
            },
        )
        assert created.status_code == 201
        assert created.json()["expires_at"] == "2026-12-31"

        listed = await client.get(
            "/api/v1/comp-off/credits", params={"tenant_id": str(tenant.id)},
        )
        assert listed.status_code == 200
        assert [c["id"] for c in listed.json()] == [created.json()["id"]]

    async def test_zero_day_credit_rejected(self, client, db, tenant, user):
        await db.commit()

        resp = await client.post(
            "/api/v1/comp-off/credits",
            json={
                "tenant_id": str(tenant.id),
                "user_id": str(user.id),
                "credited_days": 0,
                "credited_by": "admin@acme.test",
            },
        )

        assert resp.status_code == 422

    async def test_reconcile_endpoint(self, client, db, tenant, user):
        comp_off = await _comp_off_type(db, tenant)
        await make_balance(db, user, comp_off, year=2026, allocated=2, used=1)
        db.add(_credit(user, comp_off, credited="2", expires_at=date(2026, 12, 31)))
        await db.commit()

        resp = await client.post(
            "/api/v1/comp-off/reconcile", json={"tenant_id": str(tenant.id)},
        )

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "updated": 1}
