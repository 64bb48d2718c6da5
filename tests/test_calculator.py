"""Overlap and duration calculator tests — pricing, range rules, policy, overlap.

2026-02-09 is a Monday; 2026-01-01 is a Thursday.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import LeaveStatus
from leave_ledger.common.exceptions import (
    InvalidRangeException,
    OverlappingRequestException,
    ValidationException,
)
from leave_ledger.core_hr.models import Employee
from leave_ledger.leave.calculator import LeaveCalculator
from leave_ledger.leave.models import LeaveType
from leave_ledger.leave.store import RequestStore
from tests.conftest import (
    _seed_employee,
    _seed_holiday,
    _seed_leave_type,
)


# ═════════════════════════════════════════════════════════════════════
# 1. Day counting and opening entitlement: pure logic (no DB)
# ═════════════════════════════════════════════════════════════════════


class TestCountChargeableDays:

    def test_monday_to_friday(self):
        total, details = LeaveCalculator.count_chargeable_days(
            date(2026, 2, 9), date(2026, 2, 13),
        )
        assert total == Decimal("5")
        assert len(details) == 5
        assert all(v == "full_day" for v in details.values())

    def test_friday_to_monday_skips_weekend(self):
        total, details = LeaveCalculator.count_chargeable_days(
            date(2026, 2, 13), date(2026, 2, 16),
        )
        assert total == Decimal("2")
        assert details["2026-02-14"] == "weekend"
        assert details["2026-02-15"] == "weekend"
        assert details["2026-02-16"] == "full_day"

    def test_holiday_excluded(self):
        total, details = LeaveCalculator.count_chargeable_days(
            date(2026, 2, 9),
            date(2026, 2, 13),
            holidays={date(2026, 2, 11)},
        )
        assert total == Decimal("4")
        assert details["2026-02-11"] == "holiday"

    def test_holiday_on_weekend_counts_once(self):
        """A holiday falling on Saturday is reported as a weekend."""
        total, details = LeaveCalculator.count_chargeable_days(
            date(2026, 2, 13),
            date(2026, 2, 16),
            holidays={date(2026, 2, 14)},
        )
        assert total == Decimal("2")
        assert details["2026-02-14"] == "weekend"

    def test_calendar_day_type_counts_everything(self):
        total, details = LeaveCalculator.count_chargeable_days(
            date(2026, 2, 13),
            date(2026, 2, 16),
            holidays={date(2026, 2, 16)},
            excludes_weekends=False,
            excludes_holidays=False,
        )
        assert total == Decimal("4")
        assert set(details.values()) == {"full_day"}

    def test_custom_weekly_off(self):
        """Friday/Saturday weekends (4, 5)."""
        total, _ = LeaveCalculator.count_chargeable_days(
            date(2026, 2, 12), date(2026, 2, 15), weekend_days=(4, 5),
        )
        assert total == Decimal("2")

    def test_single_day(self):
        total, details = LeaveCalculator.count_chargeable_days(
            date(2026, 2, 10), date(2026, 2, 10),
        )
        assert total == Decimal("1")
        assert details == {"2026-02-10": "full_day"}


class TestOpeningEntitlement:

    @staticmethod
    def _pto(annual: str = "12") -> LeaveType:
        return LeaveType(code="pto", name="Paid Time Off", default_entitlement=Decimal(annual))

    def test_joined_before_period_gets_full_year(self):
        emp = Employee(date_of_joining=date(2024, 1, 15))
        assert LeaveCalculator.opening_entitlement(self._pto(), emp, 2026) == Decimal("12")

    def test_joined_in_period_counts_joining_month(self):
        emp = Employee(date_of_joining=date(2026, 4, 20))
        assert LeaveCalculator.opening_entitlement(self._pto(), emp, 2026) == Decimal("9.0")

        january = Employee(date_of_joining=date(2026, 1, 31))
        assert LeaveCalculator.opening_entitlement(self._pto(), january, 2026) == Decimal("12")

        december = Employee(date_of_joining=date(2026, 12, 1))
        assert LeaveCalculator.opening_entitlement(self._pto(), december, 2026) == Decimal("1")

    def test_rounds_to_one_decimal(self):
        emp = Employee(date_of_joining=date(2026, 6, 1))
        # 7 / 12 * 7 = 4.083...
        assert LeaveCalculator.opening_entitlement(self._pto("7"), emp, 2026) == Decimal("4.1")

    def test_joined_after_period_gets_nothing(self):
        emp = Employee(date_of_joining=date(2027, 2, 1))
        assert LeaveCalculator.opening_entitlement(self._pto(), emp, 2026) == Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# 2. Range / blackout / policy
# ═════════════════════════════════════════════════════════════════════


class TestValidateRange:

    def test_returns_year(self):
        assert LeaveCalculator.validate_range(date(2026, 3, 2), date(2026, 3, 4)) == 2026

    def test_missing_dates(self):
        with pytest.raises(InvalidRangeException):
            LeaveCalculator.validate_range(None, date(2026, 3, 4))
        with pytest.raises(InvalidRangeException):
            LeaveCalculator.validate_range(date(2026, 3, 4), None)

    def test_end_before_start(self):
        with pytest.raises(InvalidRangeException) as exc_info:
            LeaveCalculator.validate_range(date(2026, 3, 4), date(2026, 3, 2))
        assert exc_info.value.status_code == 422
        assert exc_info.value.error_type == "invalid-range"

    def test_cross_year_rejected(self):
        with pytest.raises(InvalidRangeException, match="single calendar year"):
            LeaveCalculator.validate_range(date(2025, 12, 29), date(2026, 1, 2))


class TestBlackout:

    def test_inside_blackout(self):
        periods = [(date(2026, 3, 25), date(2026, 3, 31))]
        with pytest.raises(InvalidRangeException, match="25-Mar-2026"):
            LeaveCalculator.check_blackout(date(2026, 3, 30), date(2026, 4, 2), periods)

    def test_outside_blackout(self):
        periods = [(date(2026, 3, 25), date(2026, 3, 31))]
        LeaveCalculator.check_blackout(date(2026, 4, 1), date(2026, 4, 3), periods)


class TestCheckPolicy:

    async def test_min_notice(self, db: AsyncSession):
        emp = await _seed_employee(db)
        lt = await _seed_leave_type(db, min_days_notice=3)
        with pytest.raises(ValidationException) as exc_info:
            LeaveCalculator.check_policy(
                lt, emp, date(2026, 3, 3), Decimal("1"), today=date(2026, 3, 2),
            )
        assert "start_date" in exc_info.value.errors

        LeaveCalculator.check_policy(
            lt, emp, date(2026, 3, 5), Decimal("1"), today=date(2026, 3, 2),
        )

    async def test_max_consecutive(self, db: AsyncSession):
        emp = await _seed_employee(db)
        lt = await _seed_leave_type(db, code="sick", name="Sick Leave", max_consecutive_days=2)
        with pytest.raises(ValidationException) as exc_info:
            LeaveCalculator.check_policy(
                lt, emp, date(2026, 3, 2), Decimal("3"), today=date(2026, 3, 1),
            )
        assert "end_date" in exc_info.value.errors

    async def test_probation_block(self, db: AsyncSession):
        emp = await _seed_employee(db, date_of_joining=date(2026, 1, 20))
        lt = await _seed_leave_type(db, blocked_during_probation=True)
        with pytest.raises(ValidationException) as exc_info:
            LeaveCalculator.check_policy(
                lt, emp, date(2026, 3, 2), Decimal("1"), today=date(2026, 2, 1),
            )
        assert "leave_type_id" in exc_info.value.errors

        # Three whole months after joining the block lifts
        LeaveCalculator.check_policy(
            lt, emp, date(2026, 4, 20), Decimal("1"), today=date(2026, 2, 1),
        )


# ═════════════════════════════════════════════════════════════════════
# 3. price / quote: DB-backed
# ═════════════════════════════════════════════════════════════════════


class TestPrice:

    async def test_public_holiday_not_charged(self, db: AsyncSession):
        lt = await _seed_leave_type(db)
        await _seed_holiday(db, date(2026, 2, 11), name="Founders Day")

        quote = await LeaveCalculator.price(db, lt, date(2026, 2, 9), date(2026, 2, 13))

        assert quote.year == 2026
        assert quote.total_days == Decimal("4")
        assert quote.day_details["2026-02-11"] == "holiday"

    async def test_optional_holiday_is_charged(self, db: AsyncSession):
        lt = await _seed_leave_type(db)
        await _seed_holiday(db, date(2026, 2, 11), is_optional=True)

        quote = await LeaveCalculator.price(db, lt, date(2026, 2, 9), date(2026, 2, 13))
        assert quote.total_days == Decimal("5")

    async def test_weekend_only_range_rejected(self, db: AsyncSession):
        lt = await _seed_leave_type(db)
        with pytest.raises(InvalidRangeException, match="no chargeable"):
            await LeaveCalculator.price(db, lt, date(2026, 2, 14), date(2026, 2, 15))

    async def test_calendar_day_type_charges_weekend(self, db: AsyncSession):
        lt = await _seed_leave_type(
            db,
            code="maternity",
            name="Maternity Leave",
            excludes_weekends=False,
            excludes_holidays=False,
        )
        quote = await LeaveCalculator.price(db, lt, date(2026, 2, 14), date(2026, 2, 15))
        assert quote.total_days == Decimal("2")


class TestQuoteOverlap:

    async def _file(self, db, emp, lt, start, end, status=LeaveStatus.pending):
        request = await RequestStore.insert(
            db,
            employee_id=emp.id,
            leave_type_id=lt.id,
            year=start.year,
            start_date=start,
            end_date=end,
            total_days=Decimal("3"),
            day_details={},
            status=status,
        )
        await db.commit()
        return request

    async def test_overlap_names_conflicting_request(self, db: AsyncSession):
        emp = await _seed_employee(db)
        lt = await _seed_leave_type(db)
        first = await self._file(db, emp, lt, date(2026, 2, 10), date(2026, 2, 12))

        with pytest.raises(OverlappingRequestException) as exc_info:
            await LeaveCalculator.quote(db, emp, lt, date(2026, 2, 11), date(2026, 2, 13))

        assert exc_info.value.conflicting_request_id == first.id
        assert exc_info.value.status_code == 409
        assert "10-Feb-2026" in exc_info.value.detail

    async def test_cancelled_request_does_not_block(self, db: AsyncSession):
        emp = await _seed_employee(db)
        lt = await _seed_leave_type(db)
        await self._file(
            db, emp, lt, date(2026, 2, 10), date(2026, 2, 12), status=LeaveStatus.cancelled,
        )

        quote = await LeaveCalculator.quote(db, emp, lt, date(2026, 2, 11), date(2026, 2, 13))
        assert quote.total_days == Decimal("3")

    async def test_adjacent_ranges_do_not_overlap(self, db: AsyncSession):
        emp = await _seed_employee(db)
        lt = await _seed_leave_type(db)
        await self._file(db, emp, lt, date(2026, 2, 9), date(2026, 2, 10))

        quote = await LeaveCalculator.quote(db, emp, lt, date(2026, 2, 11), date(2026, 2, 12))
        assert quote.total_days == Decimal("2")

    async def test_other_employee_does_not_block(self, db: AsyncSession):
        emp = await _seed_employee(db)
        other = await _seed_employee(db)
        lt = await _seed_leave_type(db)
        await self._file(db, other, lt, date(2026, 2, 10), date(2026, 2, 12))

        quote = await LeaveCalculator.quote(db, emp, lt, date(2026, 2, 10), date(2026, 2, 12))
        assert quote.total_days == Decimal("3")
