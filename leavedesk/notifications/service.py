"""Notification service — templated dispatch after commit, plus the in-app inbox.

Leave operations never talk to the mail transport directly: they queue an
``OutboundMessage`` on a ``Notifier`` and the router dispatches the queue as
a background task once the request's transaction has committed. Delivery
problems are logged and recorded on the notification row; they never reach
the caller.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leavedesk.common.constants import DATE_FORMAT, NotificationTemplate
from leavedesk.common.exceptions import ForbiddenException, NotFoundException
from leavedesk.common.pagination import PaginationParams, paginate
from leavedesk.config import settings
from leavedesk.database import async_session_factory
from leavedesk.notifications.models import Notification
from leavedesk.notifications.schemas import (
    InboxMeta,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)

Mailer = Callable[[str, str, str], Awaitable[None]]


# ── Templates ───────────────────────────────────────────────────────

TEMPLATES: dict[NotificationTemplate, tuple[str, str]] = {
    NotificationTemplate.leave_request: (
        "New Leave Request",
        "Hello {manager_name},\n\n"
        "{employee_name} has requested {leave_type} leave from {start_date} "
        "to {end_date} ({total_days} day(s)).\n"
        "Reason: {reason}\n\n"
        "Review it at {action_url}",
    ),
    NotificationTemplate.leave_approval: (
        "Leave Request {status_title}",
        "Hello {employee_name},\n\n"
        "Your {leave_type} leave from {start_date} to {end_date} was "
        "{status} by {approved_by}.\n"
        "Comments: {comments}\n"
        "Current status: {overall_status}\n\n"
        "Details: {action_url}",
    ),
}


def render_template(
    template: NotificationTemplate,
    data: dict[str, Any],
) -> tuple[str, str]:
    """Render ``(subject, body)``; a missing key raises ``KeyError``."""
    subject_fmt, body_fmt = TEMPLATES[template]
    values = dict(data)
    if "status" in values:
        values.setdefault("status_title", str(values["status"]).capitalize())
    values.setdefault("comments", "-")
    if values["comments"] is None:
        values["comments"] = "-"
    return subject_fmt.format(**values), body_fmt.format(**values)


async def log_mailer(to: str, subject: str, body: str) -> None:
    """Default transport: hand the message to the log (no SMTP in this service)."""
    logger.info("Mail from %s to %s: %s", settings.MAIL_FROM, to, subject)


# ── Outbox ──────────────────────────────────────────────────────────


@dataclass
class OutboundMessage:
    recipient_id: uuid.UUID
    to: str
    template: NotificationTemplate
    data: dict[str, Any]
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None


@dataclass
class Notifier:
    """Collects messages during a request and delivers them after commit."""

    session_factory: async_sessionmaker = field(default=async_session_factory)
    mailer: Mailer = field(default=log_mailer)
    pending: list[OutboundMessage] = field(default_factory=list)

    def queue(
        self,
        *,
        recipient_id: uuid.UUID,
        to: str,
        template: NotificationTemplate,
        data: dict[str, Any],
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
    ) -> OutboundMessage:
        message = OutboundMessage(
            recipient_id=recipient_id,
            to=to,
            template=template,
            data=data,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        self.pending.append(message)
        return message

    async def dispatch(self) -> int:
        """Deliver every queued message; returns how many were delivered."""
        messages, self.pending = self.pending, []
        delivered = 0
        for message in messages:
            if await self._deliver(message):
                delivered += 1
        return delivered

    async def _deliver(self, message: OutboundMessage) -> bool:
        try:
            subject, body = render_template(message.template, message.data)
        except Exception:
            logger.exception(
                "Could not render %s notification for %s",
                message.template.value, message.to,
            )
            return False

        error: Optional[str] = None
        try:
            await self.mailer(message.to, subject, body)
        except Exception as exc:
            logger.exception(
                "Sending %s notification to %s failed",
                message.template.value, message.to,
            )
            error = f"{type(exc).__name__}: {exc}"

        try:
            async with self.session_factory() as session:
                session.add(
                    Notification(
                        recipient_id=message.recipient_id,
                        recipient_email=message.to,
                        template=message.template,
                        subject=subject,
                        message=body,
                        payload=message.data,
                        entity_type=message.entity_type,
                        entity_id=message.entity_id,
                        is_delivered=error is None,
                        error=error,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception(
                "Recording %s notification for %s failed",
                message.template.value, message.to,
            )
            return False

        return error is None


def get_notifier() -> Notifier:
    """FastAPI dependency: a fresh outbox per request."""
    return Notifier()


# ── Leave message builders ──────────────────────────────────────────
# These accept the ORM objects directly to avoid tight schema coupling.


def queue_leave_request(
    notifier: Notifier,
    leave_request,  # leavedesk.leave.models.LeaveRequest
    employee,       # leavedesk.core_hr.models.Employee
    manager,        # leavedesk.core_hr.models.Employee
) -> OutboundMessage:
    """Tell the manager a new leave request is waiting for review."""
    return notifier.queue(
        recipient_id=manager.id,
        to=manager.email,
        template=NotificationTemplate.leave_request,
        data={
            "employee_name": employee.name,
            "manager_name": manager.name,
            "leave_type": leave_request.leave_type.value,
            "start_date": leave_request.start_date.strftime(DATE_FORMAT),
            "end_date": leave_request.end_date.strftime(DATE_FORMAT),
            "total_days": leave_request.total_days,
            "reason": leave_request.reason,
            "action_url": f"{settings.APP_BASE_URL}/leave/approvals",
        },
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


def queue_leave_decision(
    notifier: Notifier,
    leave_request,  # leavedesk.leave.models.LeaveRequest
    employee,       # leavedesk.core_hr.models.Employee
    approver,       # leavedesk.core_hr.models.Employee
    decision: str,
    comments: Optional[str],
) -> OutboundMessage:
    """Tell the employee how an approver decided on their request."""
    return notifier.queue(
        recipient_id=employee.id,
        to=employee.email,
        template=NotificationTemplate.leave_approval,
        data={
            "employee_name": employee.name,
            "leave_type": leave_request.leave_type.value,
            "start_date": leave_request.start_date.strftime(DATE_FORMAT),
            "end_date": leave_request.end_date.strftime(DATE_FORMAT),
            "status": decision,
            "overall_status": leave_request.status.value,
            "comments": comments,
            "approved_by": approver.name,
            "action_url": f"{settings.APP_BASE_URL}/leave/requests/{leave_request.id}",
        },
        entity_type="leave_request",
        entity_id=leave_request.id,
    )


# ── Inbox ───────────────────────────────────────────────────────────


class NotificationService:
    """Async read/update operations on a user's notification inbox."""

    @staticmethod
    async def get_notifications(
        db: AsyncSession,
        employee_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        is_read: Optional[bool] = None,
        template: Optional[NotificationTemplate] = None,
    ) -> NotificationListResponse:
        """Return paginated notifications for an employee, newest first."""
        query = (
            select(Notification)
            .where(Notification.recipient_id == employee_id)
            .order_by(Notification.created_at.desc())
        )

        if is_read is not None:
            query = query.where(Notification.is_read == is_read)
        if template is not None:
            query = query.where(Notification.template == template)

        rows, meta = await paginate(db, query, pagination.page, pagination.page_size)

        # Unread count for the badge, ignoring filters
        unread = await NotificationService.get_unread_count(db, employee_id)

        return NotificationListResponse(
            data=[NotificationResponse.model_validate(n) for n in rows],
            meta=InboxMeta(**meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read. Verifies ownership."""
        result = await db.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        notification = result.scalars().first()

        if notification is None:
            raise NotFoundException("Notification", notification_id)

        if notification.recipient_id != employee_id:
            raise ForbiddenException("You can only mark your own notifications as read.")

        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Bulk-mark all unread notifications as read. Returns count updated."""
        now = datetime.now(timezone.utc)
        result = await db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=now)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def get_unread_count(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> int:
        """Return the number of unread notifications for an employee."""
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == employee_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()
