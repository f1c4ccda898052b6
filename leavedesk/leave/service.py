"""Leave service layer — submission, dual approval, cancellation, balance ledger.

Business logic:
  - Submission through the validator (date rules, day count, balance check)
  - Manager / coordinator decisions via the state machine in ``workflow``
  - Ledger debit when a request reaches final approval
  - Owner-only cancellation of pending requests
  - Optimistic concurrency on every request update (version column)

Every operation receives the acting employee explicitly. Notifications are
only queued here; the caller dispatches them once the transaction commits.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from leavedesk.common.audit import create_audit_entry, get_audit_history
from leavedesk.common.constants import (
    ApprovalStatus,
    ApprovalStep,
    LeaveStatus,
    UserRole,
)
from leavedesk.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from leavedesk.common.pagination import paginate
from leavedesk.core_hr.models import Employee
from leavedesk.leave import workflow
from leavedesk.leave.models import LeaveBalance, LeaveRequest
from leavedesk.leave.schemas import (
    ApprovalOut,
    AuditEntryOut,
    BalanceProvisionRequest,
    EmployeeBrief,
    LeaveBalanceOut,
    LeaveDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
)
from leavedesk.leave.validators import (
    default_academic_year,
    get_ledger_row,
    validate_and_compute,
)
from leavedesk.notifications.service import (
    Notifier,
    queue_leave_decision,
    queue_leave_request,
)

logger = logging.getLogger(__name__)


def _request_options():
    return (
        selectinload(LeaveRequest.employee).selectinload(Employee.department),
    )


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async operations on leave requests."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_employee_brief(emp: Employee) -> EmployeeBrief:
        return EmployeeBrief(
            id=emp.id,
            employee_code=emp.employee_code,
            name=emp.name,
            email=emp.email,
            department_name=emp.department.name if emp.department else None,
        )

    @staticmethod
    def _build_approval(req: LeaveRequest, step: ApprovalStep) -> ApprovalOut:
        prefix = step.value
        return ApprovalOut(
            status=getattr(req, f"{prefix}_status"),
            approved_by=getattr(req, f"{prefix}_approved_by"),
            approved_at=getattr(req, f"{prefix}_approved_at"),
            comments=getattr(req, f"{prefix}_comments"),
        )

    @staticmethod
    def _build_request_response(
        req: LeaveRequest,
        *,
        employee: Optional[Employee] = None,
    ) -> LeaveRequestOut:
        """Build LeaveRequestOut from ORM, nesting the two sub-approvals."""
        emp = employee or req.employee
        return LeaveRequestOut(
            id=req.id,
            employee_id=req.employee_id,
            employee=LeaveService._build_employee_brief(emp) if emp else None,
            leave_type=req.leave_type,
            start_date=req.start_date,
            end_date=req.end_date,
            total_days=req.total_days,
            reason=req.reason,
            academic_year=req.academic_year,
            status=req.status,
            manager_approval=LeaveService._build_approval(req, ApprovalStep.manager),
            coordinator_approval=LeaveService._build_approval(
                req, ApprovalStep.coordinator,
            ),
            cancelled_at=req.cancelled_at,
            version=req.version,
            created_at=req.created_at,
            updated_at=req.updated_at,
        )

    @staticmethod
    def _approval_snapshot(req: LeaveRequest) -> dict:
        return {
            "status": req.status.value,
            "manager_status": req.manager_status.value,
            "coordinator_status": req.coordinator_status.value,
            "version": req.version,
        }

    @staticmethod
    async def _load_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        result = await db.execute(
            select(Employee)
            .where(Employee.id == employee_id)
            .options(
                selectinload(Employee.department),
                selectinload(Employee.manager),
            )
        )
        emp = result.scalars().first()
        if emp is None:
            raise NotFoundException("Employee", str(employee_id))
        return emp

    @staticmethod
    async def _get_request(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(*_request_options())
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    async def _flush_versioned(db: AsyncSession, leave_req: LeaveRequest) -> None:
        """Flush, turning a lost optimistic-lock race into a 409."""
        try:
            await db.flush()
        except StaleDataError as exc:
            logger.warning(
                "Concurrent update on leave request %s: %s", leave_req.id, exc,
            )
            raise ConflictError(
                "Leave request was modified by someone else. Reload and retry.",
                errors={"version": ["stale"]},
            ) from exc

    # ─────────────────────────────────────────────────────────────────
    # Submit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession,
        employee: Employee,
        data: LeaveRequestCreate,
        notifier: Notifier,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Validate and persist a new pending request, then queue a message
        to the employee's manager (if they have one)."""

        now = now or datetime.now(timezone.utc)

        validated = await validate_and_compute(
            db,
            employee_id=employee.id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            reason=data.reason,
            academic_year=data.academic_year,
            now=now,
        )

        leave_request = LeaveRequest(
            employee_id=employee.id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            total_days=validated.total_days,
            reason=data.reason.strip(),
            academic_year=validated.academic_year,
            status=LeaveStatus.pending,
            manager_status=ApprovalStatus.pending,
            coordinator_status=ApprovalStatus.pending,
        )
        db.add(leave_request)
        await db.flush()

        await create_audit_entry(
            db,
            action="submit",
            entity_type="leave_request",
            entity_id=leave_request.id,
            actor_id=employee.id,
            new_values={
                "leave_type": data.leave_type.value,
                "start_date": data.start_date.isoformat(),
                "end_date": data.end_date.isoformat(),
                "total_days": validated.total_days,
                "academic_year": validated.academic_year,
                "status": LeaveStatus.pending.value,
            },
        )

        emp = await LeaveService._load_employee(db, employee.id)
        if emp.manager is not None:
            queue_leave_request(notifier, leave_request, emp, emp.manager)
        else:
            logger.info(
                "Employee %s has no manager; no review request queued",
                emp.employee_code,
            )

        logger.info(
            "Leave request %s submitted by %s (%s, %d day(s), year %s)",
            leave_request.id, emp.employee_code, data.leave_type.value,
            validated.total_days, validated.academic_year,
        )
        return LeaveService._build_request_response(leave_request, employee=emp)

    # ─────────────────────────────────────────────────────────────────
    # Decide (approve / reject)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def decide(
        db: AsyncSession,
        request_id: uuid.UUID,
        actor: Employee,
        data: LeaveDecisionRequest,
        notifier: Notifier,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Record the actor's sub-approval decision and recompute the status.

        Final approval debits the balance ledger in the same transaction.
        """

        now = now or datetime.now(timezone.utc)
        leave_req = await LeaveService._get_request(db, request_id)

        if data.expected_version is not None and data.expected_version != leave_req.version:
            raise ConflictError(
                f"Leave request is at version {leave_req.version}, "
                f"not {data.expected_version}. Reload and retry.",
                errors={"expected_version": [f"current version is {leave_req.version}"]},
            )

        old_values = LeaveService._approval_snapshot(leave_req)
        decision = ApprovalStatus(data.status)

        steps = workflow.apply_decision(
            leave_req,
            actor_id=actor.id,
            actor_role=actor.role,
            decision=decision,
            comments=data.comments,
            now=now,
        )

        # Flush the version-checked update before the ledger query autoflushes it
        await LeaveService._flush_versioned(db, leave_req)

        if leave_req.status == LeaveStatus.approved:
            await BalanceService.debit(db, leave_req, now=now)
            await db.flush()

        await create_audit_entry(
            db,
            action="decide",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={
                **LeaveService._approval_snapshot(leave_req),
                "steps": [s.value for s in steps],
                "comments": data.comments,
            },
        )

        queue_leave_decision(
            notifier, leave_req, leave_req.employee, actor,
            decision.value, data.comments,
        )

        logger.info(
            "Leave request %s %s by %s (%s) on %s; status now %s",
            leave_req.id, decision.value, actor.employee_code, actor.role.value,
            ",".join(s.value for s in steps), leave_req.status.value,
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        request_id: uuid.UUID,
        employee_id: uuid.UUID,
        *,
        now: Optional[datetime] = None,
    ) -> LeaveRequestOut:
        """Cancel the caller's own pending request.

        A missing request, someone else's request and a request that is no
        longer pending all produce the same 404.
        """

        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.id == request_id,
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status == LeaveStatus.pending,
            )
            .options(*_request_options())
        )
        leave_req = result.scalars().first()
        if leave_req is None:
            raise NotFoundException(
                "LeaveRequest",
                str(request_id),
                detail="Leave request not found or cannot be cancelled.",
            )

        old_values = LeaveService._approval_snapshot(leave_req)
        workflow.cancel(leave_req, now=now)
        await LeaveService._flush_versioned(db, leave_req)

        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=employee_id,
            old_values=old_values,
            new_values=LeaveService._approval_snapshot(leave_req),
        )

        logger.info("Leave request %s cancelled by its owner", leave_req.id)
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        viewer: Employee,
    ) -> LeaveRequestOut:
        """Single request, visible to its owner and to approvers."""
        leave_req = await LeaveService._get_request(db, request_id)
        if leave_req.employee_id != viewer.id and not viewer.is_approver:
            raise ForbiddenException("You can only view your own leave requests.")
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    async def get_history(
        db: AsyncSession,
        request_id: uuid.UUID,
        viewer: Employee,
    ) -> list[AuditEntryOut]:
        """Audit entries of one request, oldest first; same visibility as the request."""
        leave_req = await LeaveService._get_request(db, request_id)
        if leave_req.employee_id != viewer.id and not viewer.is_approver:
            raise ForbiddenException("You can only view your own leave requests.")
        entries = await get_audit_history(db, "leave_request", leave_req.id)
        return [AuditEntryOut.model_validate(e) for e in entries]

    @staticmethod
    async def list_mine(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        academic_year: Optional[str] = None,
        status: Optional[LeaveStatus] = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict:
        """The employee's own requests, newest first, paginated."""
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .options(*_request_options())
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
        )
        if academic_year:
            query = query.where(LeaveRequest.academic_year == academic_year)
        if status:
            query = query.where(LeaveRequest.status == status)

        rows, meta = await paginate(db, query, page, page_size)
        return {
            "data": [LeaveService._build_request_response(r) for r in rows],
            "meta": meta,
        }

    @staticmethod
    async def list_pending_for(
        db: AsyncSession,
        actor: Employee,
    ) -> list[LeaveRequestOut]:
        """Requests still waiting on a decision the actor can make.

        - manager: either sub-approval still pending
        - coordinator: coordinator sub-approval still pending
        - admin: every pending request
        """
        if not workflow.approval_steps_for(actor.role):
            raise ForbiddenException("Only approvers can list pending approvals.")

        query = (
            select(LeaveRequest)
            .where(LeaveRequest.status == LeaveStatus.pending)
            .options(*_request_options())
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id)
        )
        if actor.role == UserRole.manager:
            query = query.where(
                or_(
                    LeaveRequest.manager_status == ApprovalStatus.pending,
                    LeaveRequest.coordinator_status == ApprovalStatus.pending,
                )
            )
        elif actor.role == UserRole.coordinator:
            query = query.where(
                LeaveRequest.coordinator_status == ApprovalStatus.pending
            )

        result = await db.execute(query)
        return [
            LeaveService._build_request_response(r)
            for r in result.scalars().all()
        ]

    @staticmethod
    async def list_records(
        db: AsyncSession,
        viewer: Employee,
        academic_year: str,
        employee_code: Optional[str] = None,
    ) -> list[LeaveRequestOut]:
        """Requests of one academic year ordered by start date, latest first.

        ``employee_code`` selects another employee's records and is only
        honoured for approvers; everyone else always gets their own.
        """
        target_id = viewer.id
        if employee_code and viewer.is_approver:
            result = await db.execute(
                select(Employee.id).where(Employee.employee_code == employee_code)
            )
            target_id = result.scalar()
            if target_id is None:
                raise NotFoundException(
                    "Employee",
                    employee_code,
                    detail=f"Employee with code '{employee_code}' does not exist.",
                )

        result = await db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.employee_id == target_id,
                LeaveRequest.academic_year == academic_year,
            )
            .options(*_request_options())
            .order_by(LeaveRequest.start_date.desc())
        )
        return [
            LeaveService._build_request_response(r)
            for r in result.scalars().all()
        ]


# ═════════════════════════════════════════════════════════════════════
# BalanceService
# ═════════════════════════════════════════════════════════════════════


class BalanceService:
    """Per-employee, per-year, per-type leave allocation ledger."""

    @staticmethod
    async def get_balances(
        db: AsyncSession,
        employee_id: uuid.UUID,
        academic_year: Optional[str] = None,
    ) -> list[LeaveBalanceOut]:
        year = academic_year or default_academic_year()
        result = await db.execute(
            select(LeaveBalance)
            .where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.academic_year == year,
            )
            .order_by(LeaveBalance.leave_type)
        )
        return [LeaveBalanceOut.model_validate(b) for b in result.scalars().all()]

    @staticmethod
    async def provision(
        db: AsyncSession,
        actor: Employee,
        data: BalanceProvisionRequest,
    ) -> LeaveBalanceOut:
        """Create or update the allocation for (employee, year, type)."""

        now = datetime.now(timezone.utc)
        year = data.academic_year or default_academic_year(now)

        emp_check = await db.execute(
            select(Employee.id).where(Employee.id == data.employee_id)
        )
        if emp_check.scalar() is None:
            raise NotFoundException("Employee", str(data.employee_id))

        balance = await get_ledger_row(db, data.employee_id, year, data.leave_type)

        if balance is None:
            old_values = None
            balance = LeaveBalance(
                employee_id=data.employee_id,
                academic_year=year,
                leave_type=data.leave_type,
                total_allocated=data.total_allocated,
                used=0,
            )
            db.add(balance)
        else:
            if data.total_allocated < balance.used:
                raise ValidationException(
                    {
                        "total_allocated": [
                            f"Cannot allocate fewer than the {balance.used} "
                            f"day(s) already used."
                        ]
                    }
                )
            old_values = {"total_allocated": balance.total_allocated}
            balance.total_allocated = data.total_allocated
            balance.updated_at = now

        await db.flush()

        await create_audit_entry(
            db,
            action="provision",
            entity_type="leave_balance",
            entity_id=balance.id,
            actor_id=actor.id,
            old_values=old_values,
            new_values={
                "employee_id": str(data.employee_id),
                "academic_year": year,
                "leave_type": data.leave_type.value,
                "total_allocated": data.total_allocated,
            },
        )

        logger.info(
            "Allocated %d %s day(s) for %s to employee %s",
            data.total_allocated, data.leave_type.value, year, data.employee_id,
        )
        return LeaveBalanceOut.model_validate(balance)

    @staticmethod
    async def debit(
        db: AsyncSession,
        leave_req: LeaveRequest,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[LeaveBalance]:
        """Move an approved request's days into ``used``.

        The increment runs in the database (``used = used + n``), so two
        approvals committing against the same row both land. Approval is
        never blocked here: without a ledger row nothing is tracked, and an
        overdraw is only logged.
        """
        stmt = (
            update(LeaveBalance)
            .where(
                LeaveBalance.employee_id == leave_req.employee_id,
                LeaveBalance.academic_year == leave_req.academic_year,
                LeaveBalance.leave_type == leave_req.leave_type,
            )
            .values(
                used=LeaveBalance.used + leave_req.total_days,
                updated_at=now or datetime.now(timezone.utc),
            )
            .returning(LeaveBalance.id, LeaveBalance.remaining)
            .execution_options(synchronize_session=False)
        )
        row = (await db.execute(stmt)).first()
        if row is None:
            return None

        if row.remaining < 0:
            logger.warning(
                "Approving leave request %s overdraws %s balance for %s "
                "(remaining %d after a %d day debit)",
                leave_req.id, leave_req.leave_type.value,
                leave_req.academic_year, row.remaining, leave_req.total_days,
            )

        # Refresh any copy of the row this session already holds
        return await db.get(LeaveBalance, row.id, populate_existing=True)
