"""Dual approval state machine for leave requests.

A request carries two independent sub-approvals, one per ``ApprovalStep``.
The overall ``status`` is never set by hand: it is recomputed from the two
sub-approvals after every decision. Cancellation is the only other
transition and is only possible while the request is still pending.

Pure functions over the ORM object; no database IO.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from leavedesk.common.constants import (
    ApprovalStatus,
    ApprovalStep,
    LeaveStatus,
    UserRole,
)
from leavedesk.common.exceptions import ForbiddenException, InvalidTransitionError
from leavedesk.leave.models import LeaveRequest

_STEPS_BY_ROLE: dict[UserRole, tuple[ApprovalStep, ...]] = {
    UserRole.manager: (ApprovalStep.manager,),
    UserRole.coordinator: (ApprovalStep.coordinator,),
    UserRole.admin: (ApprovalStep.manager, ApprovalStep.coordinator),
    UserRole.employee: (),
}


def derive_status(
    manager_status: ApprovalStatus,
    coordinator_status: ApprovalStatus,
) -> LeaveStatus:
    """Any rejection wins; both approvals approve; otherwise still pending."""
    if ApprovalStatus.rejected in (manager_status, coordinator_status):
        return LeaveStatus.rejected
    if manager_status == coordinator_status == ApprovalStatus.approved:
        return LeaveStatus.approved
    return LeaveStatus.pending


def approval_steps_for(role: UserRole) -> tuple[ApprovalStep, ...]:
    return _STEPS_BY_ROLE.get(role, ())


def get_step_status(leave_request: LeaveRequest, step: ApprovalStep) -> ApprovalStatus:
    return getattr(leave_request, f"{step.value}_status")


def _set_step(
    leave_request: LeaveRequest,
    step: ApprovalStep,
    *,
    decision: ApprovalStatus,
    actor_id: uuid.UUID,
    comments: Optional[str],
    now: datetime,
) -> None:
    setattr(leave_request, f"{step.value}_status", decision)
    setattr(leave_request, f"{step.value}_approved_by", actor_id)
    setattr(leave_request, f"{step.value}_approved_at", now)
    setattr(leave_request, f"{step.value}_comments", comments)


def apply_decision(
    leave_request: LeaveRequest,
    *,
    actor_id: uuid.UUID,
    actor_role: UserRole,
    decision: ApprovalStatus,
    comments: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[ApprovalStep]:
    """Record *decision* on the sub-approval(s) owned by *actor_role*.

    Returns the steps that were set. Decided sub-approvals are final: a
    manager or coordinator whose step is already decided gets
    ``InvalidTransitionError``, while an admin (who owns both steps)
    decides whichever are still pending.
    """
    if decision == ApprovalStatus.pending:
        raise InvalidTransitionError("A decision must be 'approved' or 'rejected'.")

    steps = approval_steps_for(actor_role)
    if not steps:
        raise ForbiddenException("Your role cannot approve or reject leave requests.")

    if leave_request.status != LeaveStatus.pending:
        raise InvalidTransitionError(
            f"Leave request is already {leave_request.status.value}."
        )

    open_steps = [
        step for step in steps
        if get_step_status(leave_request, step) == ApprovalStatus.pending
    ]
    if not open_steps:
        decided = ", ".join(step.value for step in steps)
        raise InvalidTransitionError(
            f"The {decided} approval has already been decided."
        )

    now = now or datetime.now(timezone.utc)
    for step in open_steps:
        _set_step(
            leave_request, step,
            decision=decision, actor_id=actor_id, comments=comments, now=now,
        )

    leave_request.status = derive_status(
        leave_request.manager_status, leave_request.coordinator_status,
    )
    leave_request.updated_at = now
    return open_steps


def cancel(leave_request: LeaveRequest, now: Optional[datetime] = None) -> None:
    """Move a pending request to cancelled."""
    if leave_request.status != LeaveStatus.pending:
        raise InvalidTransitionError(
            f"Only pending requests can be cancelled (status is "
            f"{leave_request.status.value})."
        )
    now = now or datetime.now(timezone.utc)
    leave_request.status = LeaveStatus.cancelled
    leave_request.cancelled_at = now
    leave_request.updated_at = now
