"""Inbox endpoints over the leave messages sent to the current user."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import get_current_user
from leavedesk.common.constants import NotificationTemplate
from leavedesk.common.pagination import PaginationParams
from leavedesk.core_hr.models import Employee
from leavedesk.database import get_db
from leavedesk.notifications.schemas import (
    InboxCount,
    InboxCountResponse,
    NotificationEnvelope,
    NotificationListResponse,
    NotificationResponse,
)
from leavedesk.notifications.service import NotificationService

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_inbox(
    is_read: Optional[bool] = Query(default=None),
    template: Optional[NotificationTemplate] = Query(default=None),
    pagination: PaginationParams = Depends(),
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Newest first; ``meta.unread`` counts regardless of the filters."""
    return await NotificationService.get_notifications(
        db,
        employee_id=employee.id,
        pagination=pagination,
        is_read=is_read,
        template=template,
    )


# Static paths go before /{notification_id}/read.

@router.get(
    "/unread-count",
    response_model=InboxCountResponse,
    response_model_exclude_none=True,
)
async def unread_count(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.get_unread_count(db, employee.id)
    return InboxCountResponse(data=InboxCount(count=count))


@router.put("/read-all", response_model=InboxCountResponse)
async def mark_all_read(
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.mark_all_read(db, employee.id)
    return InboxCountResponse(
        message=f"{count} notification(s) marked as read",
        data=InboxCount(count=count),
    )


@router.put("/{notification_id}/read", response_model=NotificationEnvelope)
async def mark_read(
    notification_id: uuid.UUID,
    employee: Employee = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Only the recipient may mark a message read (403 otherwise)."""
    notification = await NotificationService.mark_read(db, notification_id, employee.id)
    return NotificationEnvelope(
        message="Notification marked as read",
        data=NotificationResponse.model_validate(notification),
    )
