"""Persistence for leave balances and leave requests.

Every ledger and status write is a single conditional UPDATE, so a write
that would break ``used + pending <= accrued`` or lose a status race simply
matches no row and reports ``False``. The caller decides what that means.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import Select, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.constants import LeaveStatus
from leave_ledger.core_hr.models import Employee
from leave_ledger.leave.calculator import LeaveCalculator
from leave_ledger.leave.models import LeaveBalance, LeaveRequest, LeaveType


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _column_keys(model: type) -> list[str]:
    """Column attributes only; refreshing them leaves loaded relationships alone."""
    return [attr.key for attr in inspect(model).column_attrs]


# ═════════════════════════════════════════════════════════════════════
# Balance Store
# ═════════════════════════════════════════════════════════════════════


class BalanceStore:
    """Reads and guarded writes for ``(employee, leave type, year)`` balances."""

    @staticmethod
    async def get(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
    ) -> Optional[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def list_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
    ) -> Sequence[LeaveBalance]:
        result = await db.execute(
            select(LeaveBalance)
            .join(LeaveType, LeaveBalance.leave_type_id == LeaveType.id)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.year == year,
            )
            .order_by(LeaveType.code)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    @staticmethod
    async def get_or_create(
        db: AsyncSession,
        employee: Employee,
        leave_type: LeaveType,
        year: int,
    ) -> LeaveBalance:
        """Return the period's balance, opening it from the leave type if absent.

        The opening entitlement is pro-rated for employees who join during
        the period. Fixed types are granted it up front; accruing types open
        at zero and grow through adjustments.
        """
        balance = await BalanceStore.get(db, employee.id, leave_type.id, year)
        if balance is not None:
            return balance

        entitlement = LeaveCalculator.opening_entitlement(leave_type, employee, year)
        balance = LeaveBalance(
            id=uuid.uuid4(),
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            year=year,
            entitlement=entitlement,
            accrued=Decimal("0") if leave_type.accrues else entitlement,
            used=Decimal("0"),
            pending=Decimal("0"),
            updated_at=_now(),
        )
        db.add(balance)
        await db.flush()
        return balance

    @staticmethod
    async def _guarded_update(
        db: AsyncSession,
        balance: LeaveBalance,
        guards: list[Any],
        values: dict[str, Any],
    ) -> bool:
        result = await db.execute(
            update(LeaveBalance)
            .where(LeaveBalance.id == balance.id, *guards)
            .values(updated_at=_now(), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await db.refresh(balance, _column_keys(LeaveBalance))
        return True

    @staticmethod
    async def reserve(db: AsyncSession, balance: LeaveBalance, days: Decimal) -> bool:
        """``pending += days`` if that many days are still available."""
        return await BalanceStore._guarded_update(
            db,
            balance,
            [LeaveBalance.accrued - LeaveBalance.used - LeaveBalance.pending >= days],
            {"pending": LeaveBalance.pending + days},
        )

    @staticmethod
    async def commit_reserved(db: AsyncSession, balance: LeaveBalance, days: Decimal) -> bool:
        """Move a reservation into ``used``."""
        return await BalanceStore._guarded_update(
            db,
            balance,
            [LeaveBalance.pending >= days],
            {
                "pending": LeaveBalance.pending - days,
                "used": LeaveBalance.used + days,
            },
        )

    @staticmethod
    async def release(db: AsyncSession, balance: LeaveBalance, days: Decimal) -> bool:
        """Drop a reservation without consuming it."""
        return await BalanceStore._guarded_update(
            db,
            balance,
            [LeaveBalance.pending >= days],
            {"pending": LeaveBalance.pending - days},
        )

    @staticmethod
    async def adjust(
        db: AsyncSession,
        balance: LeaveBalance,
        entitlement_delta: Decimal,
        accrued_delta: Decimal,
    ) -> bool:
        """Shift entitlement and accrued, keeping ``used + pending <= accrued <= entitlement``."""
        new_entitlement = LeaveBalance.entitlement + entitlement_delta
        new_accrued = LeaveBalance.accrued + accrued_delta
        return await BalanceStore._guarded_update(
            db,
            balance,
            [
                new_entitlement >= 0,
                new_accrued >= LeaveBalance.used + LeaveBalance.pending,
                new_accrued <= new_entitlement,
            ],
            {"entitlement": new_entitlement, "accrued": new_accrued},
        )


# ═════════════════════════════════════════════════════════════════════
# Request Store
# ═════════════════════════════════════════════════════════════════════


class RequestStore:
    """Leave request rows and their compare-and-set status changes."""

    @staticmethod
    async def get(db: AsyncSession, request_id: uuid.UUID) -> Optional[LeaveRequest]:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def insert(db: AsyncSession, **fields: Any) -> LeaveRequest:
        now = _now()
        request = LeaveRequest(
            id=uuid.uuid4(),
            created_at=now,
            updated_at=now,
            **fields,
        )
        db.add(request)
        await db.flush()
        return request

    @staticmethod
    async def transition(
        db: AsyncSession,
        request: LeaveRequest,
        expected: LeaveStatus,
        target: LeaveStatus,
        *,
        match: Optional[dict[str, Any]] = None,
        **values: Any,
    ) -> bool:
        """Set ``status = target`` only while it is still ``expected``.

        ``match`` pins further columns to the values the caller acted on, so
        a concurrent edit also loses the race. On success the ORM object is
        reloaded. On a lost race it is reloaded too, so ``request.status``
        names whoever won.
        """
        guards = [
            getattr(LeaveRequest, column) == value
            for column, value in (match or {}).items()
        ]
        result = await db.execute(
            update(LeaveRequest)
            .where(
                LeaveRequest.id == request.id,
                LeaveRequest.status == expected,
                *guards,
            )
            .values(status=target, updated_at=_now(), **values)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(request, _column_keys(LeaveRequest))
        return result.rowcount == 1

    @staticmethod
    async def update_draft(
        db: AsyncSession,
        request: LeaveRequest,
        **values: Any,
    ) -> bool:
        """Rewrite a draft's range/type/reason while it is still a draft."""
        return await RequestStore.transition(
            db, request, LeaveStatus.draft, LeaveStatus.draft, **values,
        )

    @staticmethod
    def build_list_query(
        *,
        employee_ids: Optional[Sequence[uuid.UUID]] = None,
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> Select:
        """Newest first; the date filter keeps requests intersecting the window."""
        query = select(LeaveRequest)
        if employee_ids is not None:
            query = query.where(LeaveRequest.employee_id.in_(employee_ids))
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if leave_type_id is not None:
            query = query.where(LeaveRequest.leave_type_id == leave_type_id)
        if from_date is not None:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.start_date <= to_date)
        return query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
