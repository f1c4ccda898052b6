"""Response shapes for the notification inbox."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from leavedesk.common.constants import NotificationTemplate
from leavedesk.common.pagination import PaginationMeta


class NotificationResponse(BaseModel):
    """A delivered (or failed) leave message as shown in the inbox."""

    id: uuid.UUID
    template: NotificationTemplate
    subject: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[uuid.UUID] = None
    is_delivered: bool
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class InboxMeta(PaginationMeta):
    unread: int


class NotificationListResponse(BaseModel):
    data: list[NotificationResponse]
    meta: InboxMeta


class InboxCount(BaseModel):
    count: int


class InboxCountResponse(BaseModel):
    """Wrapper for the unread badge and the bulk mark-read result."""

    message: Optional[str] = None
    data: InboxCount


class NotificationEnvelope(BaseModel):
    message: str
    data: NotificationResponse
