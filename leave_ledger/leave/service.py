"""Leave service layer — lifecycle engine and balance queries.

Business logic:
  - create / submit: price, validate and reserve days in ``pending``
  - approve: move the reservation into ``used``
  - reject / cancel: release the reservation
  - mark_processed: hand an approved request to payroll (no ledger change)
  - drafts: priced and range-checked only, nothing reserved
  - balance reads and HR / accrual adjustments

Every ledger write runs inside the ``(employee, leave type, year)`` scope and
commits before leaving it; filing and submitting also hold the employee's
calendar scope so overlap checks see every live request. Authorization and
reference-data reads happen before any scope is entered.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.auth.service import AuthorizationService
from leave_ledger.common.constants import (
    DEFAULT_PAGE_SIZE,
    LEAVE_TRANSITIONS,
    LeaveStatus,
    ListScope,
)
from leave_ledger.common.exceptions import (
    InsufficientBalanceException,
    InvalidTransitionException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from leave_ledger.common.locks import KeyedLock
from leave_ledger.common.pagination import PaginatedResponse, paginate
from leave_ledger.common.retry import storage_retry
from leave_ledger.core_hr.models import Employee
from leave_ledger.core_hr.service import EmployeeDirectory
from leave_ledger.leave.calculator import LeaveCalculator, LeaveQuote
from leave_ledger.leave.models import LeaveBalance, LeaveRequest, LeaveType
from leave_ledger.leave.schemas import (
    BalanceAdjustRequest,
    LeaveBalanceOut,
    LeaveQuoteOut,
    LeaveQuoteRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveTypeBrief,
    LeaveTypeOut,
)
from leave_ledger.leave.store import BalanceStore, RequestStore

logger = logging.getLogger(__name__)

_balance_locks = KeyedLock("balance")
_calendar_locks = KeyedLock("calendar")

_REQUEST_OUT_FIELDS = tuple(
    name for name in LeaveRequestOut.model_fields if name != "leave_type"
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave operations: quotes, requests, transitions, balances."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _balance_key(request: LeaveRequest) -> tuple[uuid.UUID, uuid.UUID, int]:
        return (request.employee_id, request.leave_type_id, request.year)

    @staticmethod
    async def _get_leave_type(
        db: AsyncSession,
        leave_type_id: uuid.UUID,
        *,
        active_only: bool = True,
    ) -> LeaveType:
        leave_type = await db.get(LeaveType, leave_type_id)
        if leave_type is None or (active_only and not leave_type.is_active):
            raise NotFoundException("LeaveType", str(leave_type_id))
        return leave_type

    @staticmethod
    async def _leave_type_map(
        db: AsyncSession,
        leave_type_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, LeaveType]:
        ids = set(leave_type_ids)
        if not ids:
            return {}
        result = await db.execute(select(LeaveType).where(LeaveType.id.in_(ids)))
        return {lt.id: lt for lt in result.scalars().all()}

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        request = await RequestStore.get(db, request_id)
        if request is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return request

    @staticmethod
    async def _get_reserved_balance(
        db: AsyncSession,
        request: LeaveRequest,
    ) -> LeaveBalance:
        balance = await BalanceStore.get(
            db, request.employee_id, request.leave_type_id, request.year,
        )
        if balance is None:
            raise NotFoundException(
                "LeaveBalance",
                f"{request.employee_id}/{request.leave_type_id}/{request.year}",
            )
        return balance

    @staticmethod
    def _request_out(request: LeaveRequest, leave_type: Optional[LeaveType]) -> LeaveRequestOut:
        out = LeaveRequestOut.model_validate(
            {name: getattr(request, name) for name in _REQUEST_OUT_FIELDS}
        )
        if leave_type is not None:
            out.leave_type = LeaveTypeBrief.model_validate(leave_type)
        return out

    @staticmethod
    def _balance_out(balance: LeaveBalance, leave_type: Optional[LeaveType]) -> LeaveBalanceOut:
        return LeaveBalanceOut(
            employee_id=balance.employee_id,
            leave_type_id=balance.leave_type_id,
            year=balance.year,
            entitlement=balance.entitlement,
            accrued=balance.accrued,
            used=balance.used,
            pending=balance.pending,
            available=balance.available,
            updated_at=balance.updated_at,
            leave_type=(
                LeaveTypeBrief.model_validate(leave_type) if leave_type is not None else None
            ),
        )

    @staticmethod
    async def _price_and_reserve(
        db: AsyncSession,
        employee: Employee,
        leave_type: LeaveType,
        start_date: Optional[date],
        end_date: Optional[date],
        *,
        exclude_request_id: Optional[uuid.UUID] = None,
        today: Optional[date] = None,
    ) -> tuple[LeaveQuote, LeaveBalance]:
        """Run every pre-reservation check, then hold the days in ``pending``.

        Must be called inside both the calendar and balance scopes.
        """
        quote = await LeaveCalculator.quote(
            db,
            employee,
            leave_type,
            start_date,
            end_date,
            exclude_request_id=exclude_request_id,
            today=today,
        )
        balance = await BalanceStore.get_or_create(db, employee, leave_type, quote.year)
        if quote.total_days > balance.available:
            raise InsufficientBalanceException(
                leave_type.name, balance.available, quote.total_days,
            )
        if not await BalanceStore.reserve(db, balance, quote.total_days):
            # Another writer got there first; report what is left now.
            current = await BalanceStore.get(db, employee.id, leave_type.id, quote.year)
            available = current.available if current is not None else Decimal("0")
            raise InsufficientBalanceException(leave_type.name, available, quote.total_days)
        return quote, balance

    @staticmethod
    def _ledger_mismatch(request: LeaveRequest, balance: LeaveBalance) -> ValidationException:
        logger.error(
            "Ledger mismatch on %s: %s day(s) not covered by pending=%s",
            request.id, request.total_days, balance.pending,
        )
        return ValidationException(
            {"balance": [
                f"Reserved days ({balance.pending}) do not cover this request "
                f"({request.total_days}). Contact HR."
            ]}
        )

    # ─────────────────────────────────────────────────────────────────
    # Leave Types
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_types(
        db: AsyncSession,
        *,
        include_inactive: bool = False,
    ) -> list[LeaveTypeOut]:
        query = select(LeaveType).order_by(LeaveType.name)
        if not include_inactive:
            query = query.where(LeaveType.is_active.is_(True))
        result = await db.execute(query)
        return [LeaveTypeOut.model_validate(lt) for lt in result.scalars().all()]

    # ─────────────────────────────────────────────────────────────────
    # Quote
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def quote(
        db: AsyncSession,
        actor_id: uuid.UUID,
        data: LeaveQuoteRequest,
        *,
        today: Optional[date] = None,
    ) -> LeaveQuoteOut:
        """Price a range with every create-time check except the balance."""
        employee = await EmployeeDirectory.get_active(db, data.employee_id or actor_id)
        await AuthorizationService.ensure_can_act_for(db, actor_id, employee)
        leave_type = await LeaveService._get_leave_type(db, data.leave_type_id)

        result = await LeaveCalculator.quote(
            db, employee, leave_type, data.start_date, data.end_date, today=today,
        )

        balance = await BalanceStore.get(db, employee.id, leave_type.id, result.year)
        if balance is not None:
            available = balance.available
        else:
            available = (
                Decimal("0") if leave_type.accrues
                else LeaveCalculator.opening_entitlement(leave_type, employee, result.year)
            )

        return LeaveQuoteOut(
            employee_id=employee.id,
            leave_type_id=leave_type.id,
            year=result.year,
            start_date=result.start_date,
            end_date=result.end_date,
            total_days=result.total_days,
            day_details=result.day_details,
            available=available,
        )

    # ─────────────────────────────────────────────────────────────────
    # Create / Draft / Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    @storage_retry("create")
    async def create(
        db: AsyncSession,
        actor_id: uuid.UUID,
        data: LeaveRequestCreate,
        *,
        today: Optional[date] = None,
    ) -> LeaveRequestOut:
        """File a leave request.

        A pending request is checked for overlap, policy and balance, and its
        days are reserved in the same commit as the insert. A draft is only
        priced and range-checked.
        """
        employee = await EmployeeDirectory.get_active(db, data.employee_id or actor_id)
        await AuthorizationService.ensure_can_act_for(db, actor_id, employee)
        leave_type = await LeaveService._get_leave_type(db, data.leave_type_id)
        year = LeaveCalculator.validate_range(data.start_date, data.end_date)
        created_by = actor_id if actor_id != employee.id else None

        if data.as_draft:
            priced = await LeaveCalculator.price(db, leave_type, data.start_date, data.end_date)
            try:
                request = await RequestStore.insert(
                    db,
                    employee_id=employee.id,
                    leave_type_id=leave_type.id,
                    year=priced.year,
                    start_date=priced.start_date,
                    end_date=priced.end_date,
                    total_days=priced.total_days,
                    day_details=priced.day_details,
                    reason=data.reason,
                    status=LeaveStatus.draft,
                    created_by=created_by,
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            logger.info(
                "Draft leave request %s saved for %s (%s, %s day(s))",
                request.id, employee.employee_code, leave_type.code, priced.total_days,
            )
            return LeaveService._request_out(request, leave_type)

        async with _calendar_locks.hold(employee.id), _balance_locks.hold(
            (employee.id, leave_type.id, year)
        ):
            try:
                quote, balance = await LeaveService._price_and_reserve(
                    db, employee, leave_type, data.start_date, data.end_date, today=today,
                )
                request = await RequestStore.insert(
                    db,
                    employee_id=employee.id,
                    leave_type_id=leave_type.id,
                    year=quote.year,
                    start_date=quote.start_date,
                    end_date=quote.end_date,
                    total_days=quote.total_days,
                    day_details=quote.day_details,
                    reason=data.reason,
                    status=LeaveStatus.pending,
                    created_by=created_by,
                    submitted_at=_now(),
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Leave request %s filed for %s: %s day(s) of %s reserved (available %s)",
            request.id, employee.employee_code, quote.total_days, leave_type.code,
            balance.available,
        )
        return LeaveService._request_out(request, leave_type)

    @staticmethod
    @storage_retry("update")
    async def update_draft(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        data: LeaveRequestUpdate,
    ) -> LeaveRequestOut:
        """Re-price a draft after changing its dates, type or reason.

        Holds the employee's calendar scope, so an edit cannot land while
        the same draft is being submitted.
        """
        request = await LeaveService._get_request(db, request_id)
        employee = await EmployeeDirectory.get_active(db, request.employee_id)
        await AuthorizationService.ensure_can_act_for(db, actor_id, employee)

        async with _calendar_locks.hold(employee.id):
            try:
                request = await LeaveService._get_request(db, request_id)
                if request.status != LeaveStatus.draft:
                    raise InvalidTransitionException(request.id, request.status.value, "update")

                leave_type = await LeaveService._get_leave_type(
                    db, data.leave_type_id or request.leave_type_id,
                )
                priced = await LeaveCalculator.price(
                    db,
                    leave_type,
                    data.start_date or request.start_date,
                    data.end_date or request.end_date,
                )
                values = {
                    "leave_type_id": leave_type.id,
                    "year": priced.year,
                    "start_date": priced.start_date,
                    "end_date": priced.end_date,
                    "total_days": priced.total_days,
                    "day_details": priced.day_details,
                }
                if "reason" in data.model_fields_set:
                    values["reason"] = data.reason

                if not await RequestStore.update_draft(db, request, **values):
                    raise InvalidTransitionException(request.id, request.status.value, "update")
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info("Draft leave request %s updated (%s day(s))", request.id, priced.total_days)
        return LeaveService._request_out(request, leave_type)

    @staticmethod
    @storage_retry("submit")
    async def submit(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
        *,
        today: Optional[date] = None,
    ) -> LeaveRequestOut:
        """``draft → pending`` with the full create-time validation and reservation.

        The draft is re-read inside the calendar scope and priced from that
        copy. The status change only lands while the row still carries the
        priced type and range, so an edit from elsewhere rolls the
        reservation back instead of leaving it on the wrong balance.
        """
        request = await LeaveService._get_request(db, request_id)
        employee = await EmployeeDirectory.get_active(db, request.employee_id)
        await AuthorizationService.ensure_can_act_for(db, actor_id, employee)

        async with _calendar_locks.hold(employee.id):
            request = await LeaveService._get_request(db, request_id)
            if request.status != LeaveStatus.draft:
                raise InvalidTransitionException(request.id, request.status.value, "submit")
            leave_type = await LeaveService._get_leave_type(db, request.leave_type_id)
            priced_on = {
                "leave_type_id": request.leave_type_id,
                "year": request.year,
                "start_date": request.start_date,
                "end_date": request.end_date,
            }

            async with _balance_locks.hold(LeaveService._balance_key(request)):
                try:
                    quote, balance = await LeaveService._price_and_reserve(
                        db,
                        employee,
                        leave_type,
                        priced_on["start_date"],
                        priced_on["end_date"],
                        exclude_request_id=request.id,
                        today=today,
                    )
                    if not await RequestStore.transition(
                        db,
                        request,
                        LeaveStatus.draft,
                        LeaveStatus.pending,
                        match=priced_on,
                        total_days=quote.total_days,
                        day_details=quote.day_details,
                        submitted_at=_now(),
                    ):
                        if request.status == LeaveStatus.draft:
                            raise ValidationException(
                                {"request": ["The draft changed while submitting; retry."]}
                            )
                        raise InvalidTransitionException(
                            request.id, request.status.value, "submit",
                        )
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

        logger.info(
            "Leave request %s submitted: %s day(s) of %s reserved",
            request.id, quote.total_days, leave_type.code,
        )
        return LeaveService._request_out(request, leave_type)

    # ─────────────────────────────────────────────────────────────────
    # Review
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    @storage_retry("approve")
    async def approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        remarks: Optional[str] = None,
    ) -> LeaveRequestOut:
        """``pending → approved``; the reserved days become used days."""
        request = await LeaveService._get_request(db, request_id)
        employee = await EmployeeDirectory.get(db, request.employee_id)
        await AuthorizationService.ensure_can_review(db, approver_id, employee)
        leave_type = await LeaveService._get_leave_type(
            db, request.leave_type_id, active_only=False,
        )

        async with _balance_locks.hold(LeaveService._balance_key(request)):
            try:
                if not await RequestStore.transition(
                    db,
                    request,
                    LeaveStatus.pending,
                    LeaveStatus.approved,
                    reviewed_by=approver_id,
                    reviewed_at=_now(),
                    reviewer_remarks=remarks,
                ):
                    raise InvalidTransitionException(request.id, request.status.value, "approve")
                balance = await LeaveService._get_reserved_balance(db, request)
                if not await BalanceStore.commit_reserved(db, balance, request.total_days):
                    raise LeaveService._ledger_mismatch(request, balance)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Leave request %s approved by %s (%s day(s) of %s now used)",
            request.id, approver_id, request.total_days, leave_type.code,
        )
        return LeaveService._request_out(request, leave_type)

    @staticmethod
    @storage_retry("reject")
    async def reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        approver_id: uuid.UUID,
        reason: str,
    ) -> LeaveRequestOut:
        """``pending → rejected``; the reservation is released."""
        request = await LeaveService._get_request(db, request_id)
        employee = await EmployeeDirectory.get(db, request.employee_id)
        await AuthorizationService.ensure_can_review(db, approver_id, employee)
        leave_type = await LeaveService._get_leave_type(
            db, request.leave_type_id, active_only=False,
        )

        async with _balance_locks.hold(LeaveService._balance_key(request)):
            try:
                if not await RequestStore.transition(
                    db,
                    request,
                    LeaveStatus.pending,
                    LeaveStatus.rejected,
                    reviewed_by=approver_id,
                    reviewed_at=_now(),
                    rejection_reason=reason,
                ):
                    raise InvalidTransitionException(request.id, request.status.value, "reject")
                balance = await LeaveService._get_reserved_balance(db, request)
                if not await BalanceStore.release(db, balance, request.total_days):
                    raise LeaveService._ledger_mismatch(request, balance)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info("Leave request %s rejected by %s", request.id, approver_id)
        return LeaveService._request_out(request, leave_type)

    # ─────────────────────────────────────────────────────────────────
    # Cancel / Process
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    @storage_retry("cancel")
    async def cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> LeaveRequestOut:
        """Withdraw a draft or an unreviewed request.

        Cancelling a pending request releases its reservation. Approved
        requests cannot be cancelled here.
        """
        request = await LeaveService._get_request(db, request_id)
        employee = await EmployeeDirectory.get(db, request.employee_id)
        await AuthorizationService.ensure_can_act_for(db, actor_id, employee)
        leave_type = await LeaveService._get_leave_type(
            db, request.leave_type_id, active_only=False,
        )

        async with _balance_locks.hold(LeaveService._balance_key(request)):
            try:
                current = (await LeaveService._get_request(db, request_id)).status
                if LeaveStatus.cancelled not in LEAVE_TRANSITIONS[current]:
                    raise InvalidTransitionException(request.id, current.value, "cancel")
                if not await RequestStore.transition(
                    db,
                    request,
                    current,
                    LeaveStatus.cancelled,
                    cancelled_by=actor_id,
                    cancelled_at=_now(),
                ):
                    raise InvalidTransitionException(request.id, request.status.value, "cancel")
                if current == LeaveStatus.pending:
                    balance = await LeaveService._get_reserved_balance(db, request)
                    if not await BalanceStore.release(db, balance, request.total_days):
                        raise LeaveService._ledger_mismatch(request, balance)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info("Leave request %s cancelled by %s (was %s)", request.id, actor_id, current.value)
        return LeaveService._request_out(request, leave_type)

    @staticmethod
    @storage_retry("process")
    async def mark_processed(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> LeaveRequestOut:
        """``approved → processed`` once payroll has consumed the leave.

        The ledger is untouched: processed days stay counted in ``used``.
        """
        await AuthorizationService.ensure_hr(db, actor_id)
        request = await LeaveService._get_request(db, request_id)
        leave_type = await LeaveService._get_leave_type(
            db, request.leave_type_id, active_only=False,
        )

        async with _balance_locks.hold(LeaveService._balance_key(request)):
            try:
                if not await RequestStore.transition(
                    db,
                    request,
                    LeaveStatus.approved,
                    LeaveStatus.processed,
                    processed_at=_now(),
                ):
                    raise InvalidTransitionException(request.id, request.status.value, "process")
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info("Leave request %s marked processed by %s", request.id, actor_id)
        return LeaveService._request_out(request, leave_type)

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor_id: uuid.UUID,
    ) -> LeaveRequestOut:
        request = await LeaveService._get_request(db, request_id)
        employee = await EmployeeDirectory.get(db, request.employee_id)
        await AuthorizationService.ensure_can_act_for(db, actor_id, employee)
        leave_type = await LeaveService._get_leave_type(
            db, request.leave_type_id, active_only=False,
        )
        return LeaveService._request_out(request, leave_type)

    @staticmethod
    async def list_leave_requests(
        db: AsyncSession,
        actor_id: uuid.UUID,
        *,
        scope: ListScope = ListScope.my,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> PaginatedResponse[LeaveRequestOut]:
        """List requests visible to the caller.

        ``my`` is the caller's own requests, ``team`` their direct reports
        (optionally narrowed to one report), ``all`` everyone (HR only).
        """
        if from_date and to_date and from_date > to_date:
            raise ValidationException({"from_date": ["from_date must be on or before to_date."]})

        employee_ids: Optional[list[uuid.UUID]]
        if scope == ListScope.my:
            employee_ids = [actor_id]
        elif scope == ListScope.team:
            reports = await EmployeeDirectory.get_direct_report_ids(db, actor_id)
            if employee_id is not None:
                if employee_id not in reports:
                    raise UnauthorizedException(
                        detail="You can only view leave requests of your direct reports.",
                    )
                employee_ids = [employee_id]
            else:
                employee_ids = reports
        else:
            await AuthorizationService.ensure_hr(db, actor_id)
            employee_ids = [employee_id] if employee_id is not None else None

        query = RequestStore.build_list_query(
            employee_ids=employee_ids,
            status=status,
            leave_type_id=leave_type_id,
            from_date=from_date,
            to_date=to_date,
        )
        rows, meta = await paginate(db, query, page=page, page_size=page_size)
        leave_types = await LeaveService._leave_type_map(db, (r.leave_type_id for r in rows))

        return PaginatedResponse[LeaveRequestOut](
            data=[LeaveService._request_out(r, leave_types.get(r.leave_type_id)) for r in rows],
            meta=meta,
        )

    # ─────────────────────────────────────────────────────────────────
    # Balance
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveBalanceOut:
        """Current figures for one period.

        A period with no ledger row raises ``NotFoundException``; that is not
        the same as a row whose available days are zero.
        """
        employee = await EmployeeDirectory.get(db, employee_id)
        if actor_id is not None:
            await AuthorizationService.ensure_can_act_for(db, actor_id, employee)
        leave_type = await LeaveService._get_leave_type(db, leave_type_id, active_only=False)

        balance = await BalanceStore.get(db, employee_id, leave_type_id, year)
        if balance is None:
            raise NotFoundException("LeaveBalance", f"{employee_id}/{leave_type.code}/{year}")
        return LeaveService._balance_out(balance, leave_type)

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveBalanceOut]:
        employee = await EmployeeDirectory.get(db, employee_id)
        if actor_id is not None:
            await AuthorizationService.ensure_can_act_for(db, actor_id, employee)

        balances = await BalanceStore.list_for_employee(db, employee_id, year)
        leave_types = await LeaveService._leave_type_map(db, (b.leave_type_id for b in balances))
        return [
            LeaveService._balance_out(b, leave_types.get(b.leave_type_id)) for b in balances
        ]

    @staticmethod
    def _adjustment_errors(
        balance: LeaveBalance,
        entitlement_delta: Decimal,
        accrued_delta: Decimal,
    ) -> dict[str, list[str]]:
        entitlement = balance.entitlement + entitlement_delta
        accrued = balance.accrued + accrued_delta
        committed = balance.used + balance.pending
        errors: dict[str, list[str]] = {}
        if entitlement < 0:
            errors.setdefault("entitlement_delta", []).append(
                f"Entitlement would become negative ({entitlement}).",
            )
        if accrued < committed:
            errors.setdefault("accrued_delta", []).append(
                f"Accrued ({accrued}) would fall below days already used or "
                f"reserved ({committed}).",
            )
        if accrued > entitlement:
            errors.setdefault("accrued_delta", []).append(
                f"Accrued ({accrued}) would exceed entitlement ({entitlement}).",
            )
        return errors

    @staticmethod
    @storage_retry("adjust")
    async def adjust_balance(
        db: AsyncSession,
        actor_id: uuid.UUID,
        data: BalanceAdjustRequest,
    ) -> LeaveBalanceOut:
        """Grant or claw back entitlement / accrued days (HR and accrual jobs)."""
        await AuthorizationService.ensure_hr(db, actor_id)
        employee = await EmployeeDirectory.get_active(db, data.employee_id)
        leave_type = await LeaveService._get_leave_type(
            db, data.leave_type_id, active_only=False,
        )
        year = data.year or date.today().year

        async with _balance_locks.hold((employee.id, leave_type.id, year)):
            try:
                balance = await BalanceStore.get_or_create(db, employee, leave_type, year)
                errors = LeaveService._adjustment_errors(
                    balance, data.entitlement_delta, data.accrued_delta,
                )
                if errors:
                    raise ValidationException(errors)
                if not await BalanceStore.adjust(
                    db, balance, data.entitlement_delta, data.accrued_delta,
                ):
                    raise ValidationException(
                        {"balance": ["The balance changed while adjusting; retry."]}
                    )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Balance %s/%s/%s adjusted by %s (entitlement %s, accrued %s): %s",
            employee.employee_code, leave_type.code, year, actor_id,
            data.entitlement_delta, data.accrued_delta, data.reason,
        )
        return LeaveService._balance_out(balance, leave_type)
