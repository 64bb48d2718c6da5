"""Auth service — role lookup, access-token issue, authorization decisions."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.models import RoleAssignment
from leave_ledger.common.constants import REVIEWER_ROLES, UserRole
from leave_ledger.common.exceptions import UnauthorizedException
from leave_ledger.config import settings
from leave_ledger.core_hr.models import Employee

# Role priority: higher index = higher privilege
_ROLE_PRIORITY: list[UserRole] = [
    UserRole.employee,
    UserRole.manager,
    UserRole.hr_admin,
    UserRole.system_admin,
]


# ── Roles ───────────────────────────────────────────────────────────

async def get_active_roles(db: AsyncSession, employee_id: uuid.UUID) -> set[UserRole]:
    result = await db.execute(
        select(RoleAssignment.role).where(
            RoleAssignment.employee_id == employee_id,
            RoleAssignment.is_active.is_(True),
        ),
    )
    return {row[0] for row in result.all()}


async def get_highest_role(db: AsyncSession, employee_id: uuid.UUID) -> UserRole:
    """Return the highest active role for an employee (default: employee)."""
    roles = await get_active_roles(db, employee_id)
    return max(roles, key=_ROLE_PRIORITY.index, default=UserRole.employee)


# ── JWT helpers ─────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expires_in_hours: Optional[int] = None,
) -> str:
    """Encode an HS256 access token carrying ``sub``, ``role`` and ``type``."""
    hours = settings.JWT_EXPIRY_HOURS if expires_in_hours is None else expires_in_hours
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# ── Authorization decisions ─────────────────────────────────────────

class AuthorizationService:
    """Who may act on whose leave records.

    Decisions read the role table rather than the token claim, so a revoked
    role stops working before the token expires.
    """

    @staticmethod
    async def is_reviewer(db: AsyncSession, actor_id: uuid.UUID) -> bool:
        return bool(await get_active_roles(db, actor_id) & REVIEWER_ROLES)

    @staticmethod
    async def ensure_can_act_for(
        db: AsyncSession,
        actor_id: uuid.UUID,
        employee: Employee,
    ) -> None:
        """Self, the reporting manager, or HR may file and withdraw requests."""
        if actor_id == employee.id or actor_id == employee.reporting_manager_id:
            return
        if await AuthorizationService.is_reviewer(db, actor_id):
            return
        raise UnauthorizedException(
            detail="You can only manage leave requests for yourself or your team.",
        )

    @staticmethod
    async def ensure_can_review(
        db: AsyncSession,
        actor_id: uuid.UUID,
        employee: Employee,
    ) -> None:
        """The reporting manager or HR may approve or reject; never the requester."""
        if actor_id == employee.id:
            raise UnauthorizedException(
                detail="You cannot review your own leave request.",
            )
        if actor_id == employee.reporting_manager_id:
            return
        if await AuthorizationService.is_reviewer(db, actor_id):
            return
        raise UnauthorizedException(
            detail="Only the reporting manager or HR can review this leave request.",
        )

    @staticmethod
    async def ensure_hr(db: AsyncSession, actor_id: uuid.UUID) -> None:
        if not await AuthorizationService.is_reviewer(db, actor_id):
            raise UnauthorizedException(
                detail="This action requires an HR or system administrator role.",
            )
