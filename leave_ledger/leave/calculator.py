"""Overlap and duration calculator.

Prices a candidate date range against a leave type (weekly offs and public
holidays excluded where the type says so) and runs every check that needs no
balance: range sanity, blackout periods, leave-type policy and calendar
overlap with the employee's live requests. Nothing here writes.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    DATE_FORMAT,
    LeaveDayType,
)
from leave_ledger.common.exceptions import (
    InvalidRangeException,
    OverlappingRequestException,
    ValidationException,
)
from leave_ledger.config import settings
from leave_ledger.core_hr.models import Employee
from leave_ledger.core_hr.service import EmployeeDirectory
from leave_ledger.leave.models import Holiday, LeaveRequest, LeaveType


@dataclass
class LeaveQuote:
    """Result of pricing a range: chargeable days plus per-date classification."""

    year: int
    start_date: date
    end_date: date
    total_days: Decimal
    day_details: dict[str, str] = field(default_factory=dict)


class LeaveCalculator:
    """Stateless pricing and validation for leave date ranges."""

    # ─────────────────────────────────────────────────────────────────
    # Pure helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def validate_range(start_date: Optional[date], end_date: Optional[date]) -> int:
        """Check the range is usable and return its period (calendar year)."""
        if start_date is None or end_date is None:
            raise InvalidRangeException("Both start_date and end_date are required.")
        if end_date < start_date:
            raise InvalidRangeException("end_date must be on or after start_date.")
        if start_date.year != end_date.year:
            raise InvalidRangeException(
                "A leave request must fall within a single calendar year; "
                "split it at 31-Dec.",
            )
        return start_date.year

    @staticmethod
    def opening_entitlement(leave_type: LeaveType, employee: Employee, year: int) -> Decimal:
        """Entitlement for a period's first balance, pro-rated by joining month.

        Joiners earn ``annual / 12`` for every month left in the year, the
        joining month included; anyone joining after the period gets nothing.
        """
        annual = Decimal(leave_type.default_entitlement or 0)
        joined = employee.date_of_joining
        if joined is None or joined.year < year:
            return annual
        if joined.year > year:
            return Decimal("0")
        months_remaining = 12 - joined.month + 1
        return (annual / 12 * months_remaining).quantize(
            Decimal("0.1"), rounding=ROUND_HALF_UP,
        )

    @staticmethod
    def count_chargeable_days(
        start_date: date,
        end_date: date,
        *,
        weekend_days: Iterable[int] = (5, 6),
        holidays: Iterable[date] = (),
        excludes_weekends: bool = True,
        excludes_holidays: bool = True,
    ) -> tuple[Decimal, dict[str, str]]:
        """Count leave days in ``[start_date, end_date]``.

        Returns ``(total_days, day_details)`` where ``day_details`` maps every
        ISO date in the range to ``full_day``, ``weekend`` or ``holiday``.
        Weekly offs win over holidays when a holiday falls on a weekend.
        """
        offs = set(weekend_days) if excludes_weekends else set()
        closed = set(holidays) if excludes_holidays else set()

        details: dict[str, str] = {}
        total = Decimal("0")
        current = start_date
        while current <= end_date:
            if current.weekday() in offs:
                details[current.isoformat()] = LeaveDayType.weekend.value
            elif current in closed:
                details[current.isoformat()] = LeaveDayType.holiday.value
            else:
                details[current.isoformat()] = LeaveDayType.full_day.value
                total += Decimal("1")
            current += timedelta(days=1)
        return total, details

    @staticmethod
    def check_blackout(
        start_date: date,
        end_date: date,
        periods: Optional[list[tuple[date, date]]] = None,
    ) -> None:
        """Reject ranges touching a configured blackout period."""
        if periods is None:
            periods = settings.blackout_periods
        for blackout_start, blackout_end in periods:
            if blackout_start <= end_date and blackout_end >= start_date:
                raise InvalidRangeException(
                    "Leave cannot be taken during the blackout period "
                    f"{blackout_start.strftime(DATE_FORMAT)} to "
                    f"{blackout_end.strftime(DATE_FORMAT)}.",
                )

    @staticmethod
    def check_policy(
        leave_type: LeaveType,
        employee: Employee,
        start_date: date,
        total_days: Decimal,
        *,
        today: Optional[date] = None,
    ) -> None:
        """Apply the leave type's notice, length and probation rules."""
        today = today or date.today()
        errors: dict[str, list[str]] = {}

        if leave_type.min_days_notice and (start_date - today).days < leave_type.min_days_notice:
            errors.setdefault("start_date", []).append(
                f"{leave_type.name} requires at least {leave_type.min_days_notice} "
                "day(s) advance notice.",
            )

        if (
            leave_type.max_consecutive_days is not None
            and total_days > leave_type.max_consecutive_days
        ):
            errors.setdefault("end_date", []).append(
                f"{leave_type.name} cannot exceed {leave_type.max_consecutive_days} "
                f"consecutive day(s); requested {total_days}.",
            )

        if leave_type.blocked_during_probation:
            served = EmployeeDirectory.months_of_service(employee, on=start_date)
            if served < settings.PROBATION_MONTHS:
                errors.setdefault("leave_type_id", []).append(
                    f"{leave_type.name} is not available during the first "
                    f"{settings.PROBATION_MONTHS} months of employment.",
                )

        if errors:
            raise ValidationException(errors)

    # ─────────────────────────────────────────────────────────────────
    # Lookups
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_holiday_dates(
        db: AsyncSession,
        start_date: date,
        end_date: date,
    ) -> set[date]:
        """Non-optional holidays in the range."""
        result = await db.execute(
            select(Holiday.date).where(
                Holiday.date >= start_date,
                Holiday.date <= end_date,
                Holiday.is_optional.is_(False),
            )
        )
        return {row[0] for row in result.all()}

    @staticmethod
    async def find_overlapping(
        db: AsyncSession,
        employee_id: uuid.UUID,
        start_date: date,
        end_date: date,
        *,
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveRequest]:
        """First pending/approved request of the employee intersecting the range."""
        query = (
            select(LeaveRequest)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(ACTIVE_LEAVE_STATUSES),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
            .order_by(LeaveRequest.start_date)
            .limit(1)
        )
        if exclude_request_id is not None:
            query = query.where(LeaveRequest.id != exclude_request_id)
        result = await db.execute(query)
        return result.scalars().first()

    # ─────────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def price(
        db: AsyncSession,
        leave_type: LeaveType,
        start_date: Optional[date],
        end_date: Optional[date],
    ) -> LeaveQuote:
        """Range checks and duration only; used for drafts."""
        year = LeaveCalculator.validate_range(start_date, end_date)
        LeaveCalculator.check_blackout(start_date, end_date)

        holidays: set[date] = set()
        if leave_type.excludes_holidays:
            holidays = await LeaveCalculator.get_holiday_dates(db, start_date, end_date)

        total, details = LeaveCalculator.count_chargeable_days(
            start_date,
            end_date,
            weekend_days=settings.weekend_days,
            holidays=holidays,
            excludes_weekends=leave_type.excludes_weekends,
            excludes_holidays=leave_type.excludes_holidays,
        )
        if total < 1:
            raise InvalidRangeException(
                f"{start_date.strftime(DATE_FORMAT)} to {end_date.strftime(DATE_FORMAT)} "
                f"contains no chargeable {leave_type.name} days.",
            )
        return LeaveQuote(
            year=year,
            start_date=start_date,
            end_date=end_date,
            total_days=total,
            day_details=details,
        )

    @staticmethod
    async def quote(
        db: AsyncSession,
        employee: Employee,
        leave_type: LeaveType,
        start_date: Optional[date],
        end_date: Optional[date],
        *,
        exclude_request_id: Optional[uuid.UUID] = None,
        today: Optional[date] = None,
    ) -> LeaveQuote:
        """Full pre-reservation check: price, policy, then calendar overlap."""
        result = await LeaveCalculator.price(db, leave_type, start_date, end_date)
        LeaveCalculator.check_policy(
            leave_type, employee, start_date, result.total_days, today=today,
        )

        conflict = await LeaveCalculator.find_overlapping(
            db,
            employee.id,
            start_date,
            end_date,
            exclude_request_id=exclude_request_id,
        )
        if conflict is not None:
            raise OverlappingRequestException(
                conflicting_request_id=conflict.id,
                start_date=conflict.start_date.strftime(DATE_FORMAT),
                end_date=conflict.end_date.strftime(DATE_FORMAT),
                status=conflict.status.value,
            )
        return result
