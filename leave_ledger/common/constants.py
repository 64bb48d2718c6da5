"""Enums and constants for the leave ledger — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    hr_admin = "hr_admin"
    system_admin = "system_admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"
    processed = "processed"


class LeaveDayType(str, enum.Enum):
    full_day = "full_day"
    weekend = "weekend"
    holiday = "holiday"


class ListScope(str, enum.Enum):
    my = "my"
    team = "team"
    all = "all"


# Legal status transitions; anything absent is an invalid transition.
LEAVE_TRANSITIONS: dict[LeaveStatus, frozenset[LeaveStatus]] = {
    LeaveStatus.draft: frozenset({LeaveStatus.pending, LeaveStatus.cancelled}),
    LeaveStatus.pending: frozenset(
        {LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled}
    ),
    LeaveStatus.approved: frozenset({LeaveStatus.processed}),
    LeaveStatus.rejected: frozenset(),
    LeaveStatus.cancelled: frozenset(),
    LeaveStatus.processed: frozenset(),
}

# Statuses that block the calendar for overlap purposes
ACTIVE_LEAVE_STATUSES: tuple[LeaveStatus, ...] = (
    LeaveStatus.pending,
    LeaveStatus.approved,
)

TERMINAL_LEAVE_STATUSES: frozenset[LeaveStatus] = frozenset(
    s for s, targets in LEAVE_TRANSITIONS.items() if not targets
)


# ── Role-based permissions ──────────────────────────────────────────

REVIEWER_ROLES: frozenset[UserRole] = frozenset(
    {UserRole.hr_admin, UserRole.system_admin}
)


# ── Misc constants ──────────────────────────────────────────────────

DATE_FORMAT = "%d-%b-%Y"          # 10-Feb-2026
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10
