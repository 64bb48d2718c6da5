"""Leave router — quotes, request lifecycle, balances.

All endpoints require authentication. Per-employee rights (self, reporting
manager, HR) are decided in the service; HR-only endpoints also gate on the
token role.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.dependencies import get_current_user, require_role
from leave_ledger.common.constants import LeaveStatus, ListScope, UserRole
from leave_ledger.common.pagination import PaginatedResponse, PaginationParams
from leave_ledger.common.rate_limit import limiter
from leave_ledger.config import settings
from leave_ledger.core_hr.models import Employee
from leave_ledger.database import get_db
from leave_ledger.leave.schemas import (
    BalanceAdjustRequest,
    LeaveApproveRequest,
    LeaveBalanceOut,
    LeaveQuoteOut,
    LeaveQuoteRequest,
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveTypeOut,
)
from leave_ledger.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── GET /types ──────────────────────────────────────────────────────

@router.get("/types", response_model=list[LeaveTypeOut])
async def list_leave_types(
    include_inactive: bool = Query(False),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave types."""
    return await LeaveService.get_leave_types(db, include_inactive=include_inactive)


# ── POST /quote ─────────────────────────────────────────────────────

@router.post("/quote", response_model=LeaveQuoteOut)
async def quote_leave(
    body: LeaveQuoteRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Price a date range and run every check except the balance. Nothing is saved."""
    return await LeaveService.quote(db, employee.id, body)


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(settings.LEAVE_CREATE_RATE_LIMIT)
async def create_leave_request(
    request: Request,
    body: LeaveRequestCreate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """File a leave request (pending, or draft with ``as_draft``)."""
    return await LeaveService.create(db, employee.id, body)


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_leave_requests(
    scope: ListScope = Query(
        ListScope.my,
        description="my = own requests, team = direct reports, all = everyone (HR)",
    ),
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List leave requests visible to the caller, newest first."""
    return await LeaveService.list_leave_requests(
        db,
        employee.id,
        scope=scope,
        employee_id=employee_id,
        status=status,
        leave_type_id=leave_type_id,
        from_date=from_date,
        to_date=to_date,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_request(db, request_id, employee.id)


# ── PUT /requests/{id} ──────────────────────────────────────────────

@router.put("/requests/{request_id}", response_model=LeaveRequestOut)
async def update_draft(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Edit a draft. Submitted requests are immutable."""
    return await LeaveService.update_draft(db, request_id, employee.id, body)


# ── POST /requests/{id}/submit ──────────────────────────────────────

@router.post("/requests/{request_id}/submit", response_model=LeaveRequestOut)
async def submit_draft(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submit a draft for approval; reserves the days."""
    return await LeaveService.submit(db, request_id, employee.id)


# ── PUT /requests/{id}/approve ──────────────────────────────────────

@router.put("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave(
    request_id: uuid.UUID,
    body: Optional[LeaveApproveRequest] = None,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending leave request. Reserved days become used."""
    remarks = body.remarks if body is not None else None
    return await LeaveService.approve(db, request_id, employee.id, remarks=remarks)


# ── PUT /requests/{id}/reject ───────────────────────────────────────

@router.put("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Reject a pending leave request. The reservation is released."""
    return await LeaveService.reject(db, request_id, employee.id, body.reason)


# ── PUT /requests/{id}/cancel ───────────────────────────────────────

@router.put("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw a draft or pending request."""
    return await LeaveService.cancel(db, request_id, employee.id)


# ── PUT /requests/{id}/process ──────────────────────────────────────

@router.put("/requests/{request_id}/process", response_model=LeaveRequestOut)
async def process_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(require_role(UserRole.hr_admin, UserRole.system_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Mark an approved request as consumed by payroll."""
    return await LeaveService.mark_processed(db, request_id, employee.id)


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=LeaveBalanceOut)
async def get_balance(
    leave_type_id: uuid.UUID = Query(...),
    year: Optional[int] = Query(None, description="Leave year; defaults to current year"),
    employee_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """One balance; 404 when no ledger row exists for the period."""
    return await LeaveService.get_balance(
        db,
        employee_id or employee.id,
        leave_type_id,
        year or date.today().year,
        actor_id=employee.id,
    )


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=list[LeaveBalanceOut])
async def get_balances(
    year: Optional[int] = Query(None, description="Leave year; defaults to current year"),
    employee_id: Optional[uuid.UUID] = Query(None, description="Defaults to the caller"),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Every balance row the employee has for the year."""
    return await LeaveService.get_balances(
        db,
        employee_id or employee.id,
        year or date.today().year,
        actor_id=employee.id,
    )


# ── PUT /balances/adjust ────────────────────────────────────────────

@router.put("/balances/adjust", response_model=LeaveBalanceOut)
async def adjust_balance(
    body: BalanceAdjustRequest,
    employee: Employee = Depends(require_role(UserRole.hr_admin, UserRole.system_admin)),
    db: AsyncSession = Depends(get_db),
):
    """Grant or claw back entitlement and accrued days."""
    return await LeaveService.adjust_balance(db, employee.id, body)
