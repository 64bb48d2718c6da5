"""Employee directory lookups consumed by the leave ledger."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.exceptions import NotFoundException
from leave_ledger.core_hr.models import Employee


class EmployeeDirectory:
    """Read-only access to employee identity and reporting lines."""

    @staticmethod
    async def get(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        """Return the employee whether or not still active."""
        employee = await db.get(Employee, employee_id)
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def get_active(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        """Return the active employee or raise ``NotFoundException``."""
        result = await db.execute(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.is_active.is_(True),
            )
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def get_direct_report_ids(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        result = await db.execute(
            select(Employee.id).where(
                Employee.reporting_manager_id == manager_id,
                Employee.is_active.is_(True),
            )
        )
        return [row[0] for row in result.all()]

    @staticmethod
    def months_of_service(employee: Employee, on: Optional[date] = None) -> int:
        """Whole calendar months between joining and *on* (default: today)."""
        on = on or date.today()
        joined = employee.date_of_joining
        months = (on.year - joined.year) * 12 + (on.month - joined.month)
        if on.day < joined.day:
            months -= 1
        return max(0, months)
