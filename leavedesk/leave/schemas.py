"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - *Brief              → compact embedded representations

Date ordering and past-date rules live in ``leave.validators`` so they
surface as 400 business-rule errors rather than 422 schema errors.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leavedesk.common.constants import ApprovalStatus, LeaveStatus, LeaveType
from leavedesk.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    name: str
    email: str
    department_name: Optional[str] = None


class ApprovalOut(BaseModel):
    """One sub-approval (manager-side or coordinator-side)."""

    status: ApprovalStatus
    approved_by: Optional[uuid.UUID] = None
    approved_at: Optional[datetime] = None
    comments: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Leave Balance
# ═════════════════════════════════════════════════════════════════════


class LeaveBalanceOut(BaseModel):
    """Allocated / used / remaining days of one leave type in one year."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    academic_year: str
    leave_type: LeaveType
    total_allocated: int
    used: int
    remaining: int


class BalanceProvisionRequest(BaseModel):
    """Admin payload setting an employee's allocation for one type and year."""

    employee_id: uuid.UUID
    leave_type: LeaveType
    academic_year: Optional[str] = Field(None, min_length=4, max_length=20)
    total_allocated: int = Field(..., ge=0, le=366)


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Create / Decide
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    leave_type: LeaveType
    start_date: date = Field(..., description="Leave start date")
    end_date: date = Field(..., description="Leave end date (after start_date)")
    reason: str = Field(..., max_length=1000, description="Reason for leave")
    academic_year: Optional[str] = Field(
        None, min_length=4, max_length=20,
        description="Defaults to the current calendar year",
    )

    @field_validator("reason")
    @classmethod
    def strip_reason(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason must not be empty.")
        return v


class LeaveDecisionRequest(BaseModel):
    """Payload for approving or rejecting a leave request."""

    status: Literal["approved", "rejected"]
    comments: Optional[str] = Field(None, max_length=500)
    expected_version: Optional[int] = Field(
        None, ge=1,
        description="Reject the decision with 409 if the request has moved on",
    )


# ═════════════════════════════════════════════════════════════════════
# Leave Request: Response
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request with both sub-approvals and the employee brief."""

    id: uuid.UUID
    employee_id: uuid.UUID
    employee: Optional[EmployeeBrief] = None
    leave_type: LeaveType
    start_date: date
    end_date: date
    total_days: int
    reason: str
    academic_year: str
    status: LeaveStatus
    manager_approval: ApprovalOut
    coordinator_approval: ApprovalOut
    cancelled_at: Optional[datetime] = None
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LeaveRequestListResponse(BaseModel):
    data: list[LeaveRequestOut]
    meta: PaginationMeta


class AuditEntryOut(BaseModel):
    """One recorded transition of a leave request."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action: str
    actor_id: Optional[uuid.UUID] = None
    old_values: Optional[dict] = None
    new_values: Optional[dict] = None
    created_at: datetime
