"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations

Date ranges are deliberately not validated here: the calculator owns range
rules so that HTTP callers and direct callers get the same ``invalid-range``
problem type.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from leave_ledger.common.constants import LeaveStatus


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str


class LeaveTypeBrief(BaseModel):
    """Minimal leave type info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    is_paid: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Type
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeOut(BaseModel):
    """Full leave type representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    is_paid: bool = True
    accrues: bool = False
    excludes_weekends: bool = True
    excludes_holidays: bool = True
    default_entitlement: Decimal
    min_days_notice: int = 0
    max_consecutive_days: Optional[int] = None
    blocked_during_probation: bool = False
    is_active: bool = True


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """One ledger row; ``available`` is derived at read time."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    entitlement: Decimal
    accrued: Decimal
    used: Decimal
    pending: Decimal
    available: Decimal
    updated_at: Optional[datetime] = None

    leave_type: Optional[LeaveTypeBrief] = None


class BalanceAdjustRequest(BaseModel):
    """HR / accrual-job adjustment of entitlement and accrued days."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: Optional[int] = Field(
        None, ge=2000, le=2100, description="Target year; defaults to current year"
    )
    entitlement_delta: Decimal = Field(
        Decimal("0"), description="Positive to grant, negative to claw back"
    )
    accrued_delta: Decimal = Field(
        Decimal("0"), description="Days earned (positive) or reversed (negative)"
    )
    reason: str = Field(..., min_length=5, max_length=500)

    @model_validator(mode="after")
    def validate_deltas(self) -> "BalanceAdjustRequest":
        if self.entitlement_delta == 0 and self.accrued_delta == 0:
            raise ValueError("At least one of entitlement_delta or accrued_delta must be non-zero.")
        for value in (self.entitlement_delta, self.accrued_delta):
            if value != value.to_integral_value():
                raise ValueError("Adjustments must be whole days.")
        return self


# ═════════════════════════════════════════════════════════════════════
# Quote
# ═════════════════════════════════════════════════════════════════════


class LeaveQuoteRequest(BaseModel):
    """Price a range without reserving anything."""

    employee_id: Optional[uuid.UUID] = Field(
        None, description="Defaults to the caller"
    )
    leave_type_id: uuid.UUID
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class LeaveQuoteOut(BaseModel):
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    start_date: date
    end_date: date
    total_days: Decimal
    day_details: dict[str, str]
    available: Optional[Decimal] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Create / Update
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for filing a leave request (for yourself or on someone's behalf)."""

    employee_id: Optional[uuid.UUID] = Field(
        None, description="Employee the leave is for; defaults to the caller"
    )
    leave_type_id: uuid.UUID
    start_date: Optional[date] = Field(None, description="Leave start date (inclusive)")
    end_date: Optional[date] = Field(None, description="Leave end date (inclusive)")
    reason: Optional[str] = Field(None, max_length=1000)
    as_draft: bool = Field(
        False, description="Store as draft: priced, but nothing is reserved"
    )


class LeaveRequestUpdate(BaseModel):
    """Payload for editing a draft; omitted fields keep their value."""

    leave_type_id: Optional[uuid.UUID] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=1000)


# ═════════════════════════════════════════════════════════════════════
# Leave Request — Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    year: int
    start_date: date
    end_date: date
    total_days: Decimal
    day_details: dict
    reason: Optional[str] = None
    status: LeaveStatus
    created_by: Optional[uuid.UUID] = None
    submitted_at: Optional[datetime] = None
    reviewed_by: Optional[uuid.UUID] = None
    reviewed_at: Optional[datetime] = None
    reviewer_remarks: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    # Enriched by service
    leave_type: Optional[LeaveTypeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Approve / Reject
# ═════════════════════════════════════════════════════════════════════


class LeaveApproveRequest(BaseModel):
    """Payload for approving a leave request."""

    remarks: Optional[str] = Field(None, max_length=500)


class LeaveRejectRequest(BaseModel):
    """Payload for rejecting a leave request."""

    reason: str = Field(..., min_length=5, max_length=500)
