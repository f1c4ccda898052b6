"""Leave router — submit, approve/reject, cancel, balances, records.

All endpoints require authentication. Approval and provisioning endpoints
enforce role checks. Notifications queued by the service are sent as a
background task, after the request's transaction has committed.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import (
    get_current_user,
    require_permission,
    require_role,
)
from leavedesk.common.constants import LeaveStatus, UserRole
from leavedesk.common.pagination import PaginationParams
from leavedesk.common.rate_limit import limiter
from leavedesk.config import settings
from leavedesk.core_hr.models import Employee
from leavedesk.database import get_db
from leavedesk.leave.schemas import (
    AuditEntryOut,
    BalanceProvisionRequest,
    LeaveBalanceOut,
    LeaveDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestListResponse,
    LeaveRequestOut,
)
from leavedesk.leave.service import BalanceService, LeaveService
from leavedesk.notifications.service import Notifier, get_notifier

router = APIRouter(prefix="", tags=["leave"])


# ── POST /request ───────────────────────────────────────────────────

@router.post("/request", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(settings.RATE_LIMIT_SUBMIT)
async def submit_leave(
    request: Request,
    body: LeaveRequestCreate,
    background_tasks: BackgroundTasks,
    employee: Employee = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Validates dates and the remaining balance."""
    result = await LeaveService.submit(db, employee, body, notifier)
    background_tasks.add_task(notifier.dispatch)
    return result


# ── GET /my-requests ────────────────────────────────────────────────

@router.get("/my-requests", response_model=LeaveRequestListResponse)
async def my_requests(
    academic_year: Optional[str] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's leave requests, newest first."""
    return await LeaveService.list_mine(
        db,
        employee.id,
        academic_year=academic_year,
        status=status,
        page=pagination.page,
        page_size=pagination.page_size,
    )


# ── GET /pending-approvals ──────────────────────────────────────────

@router.get("/pending-approvals", response_model=list[LeaveRequestOut])
async def pending_approvals(
    employee: Employee = Depends(
        require_role(UserRole.manager, UserRole.coordinator, UserRole.admin)
    ),
    db: AsyncSession = Depends(get_db),
):
    """Requests still waiting on a decision the caller can make."""
    return await LeaveService.list_pending_for(db, employee)


# ── PUT /approve/{id} ───────────────────────────────────────────────

@router.put("/approve/{request_id}", response_model=LeaveRequestOut)
async def decide_leave(
    request_id: uuid.UUID,
    body: LeaveDecisionRequest,
    background_tasks: BackgroundTasks,
    employee: Employee = Depends(
        require_role(UserRole.manager, UserRole.coordinator, UserRole.admin)
    ),
    notifier: Notifier = Depends(get_notifier),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject the caller's side of a pending leave request."""
    result = await LeaveService.decide(db, request_id, employee, body, notifier)
    background_tasks.add_task(notifier.dispatch)
    return result


# ── PUT /cancel/{id} ────────────────────────────────────────────────

@router.put("/cancel/{request_id}", response_model=LeaveRequestOut)
async def cancel_leave(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel one of the caller's own pending requests."""
    return await LeaveService.cancel(db, request_id, employee.id)


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=list[LeaveBalanceOut])
async def get_balance(
    academic_year: Optional[str] = Query(
        None, description="Academic year; defaults to the current year",
    ),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get the authenticated user's leave balances for an academic year."""
    return await BalanceService.get_balances(db, employee.id, academic_year)


# ── PUT /balances ───────────────────────────────────────────────────

@router.put("/balances", response_model=LeaveBalanceOut)
async def provision_balance(
    body: BalanceProvisionRequest,
    employee: Employee = Depends(require_permission("leave:provision_balance")),
    db: AsyncSession = Depends(get_db),
):
    """Set an employee's allocation for one leave type and academic year."""
    return await BalanceService.provision(db, employee, body)


# ── GET /records/{academic_year} ────────────────────────────────────

@router.get("/records/{academic_year}", response_model=list[LeaveRequestOut])
async def leave_records(
    academic_year: str,
    employee_code: Optional[str] = Query(
        None, description="Another employee's records (approvers only)",
    ),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave records for an academic year, latest start date first."""
    return await LeaveService.list_records(
        db, employee, academic_year, employee_code=employee_code,
    )


# ── GET /{id} ───────────────────────────────────────────────────────
# Registered last so the literal paths above take precedence.

@router.get("/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Get a single leave request (owner or approver)."""
    return await LeaveService.get_request(db, request_id, employee)


@router.get("/{request_id}/history", response_model=list[AuditEntryOut])
async def get_leave_request_history(
    request_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Submission, decisions and cancellation of one request, oldest first."""
    return await LeaveService.get_history(db, request_id, employee)
