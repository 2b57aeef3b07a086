"""Notification model."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    ASSIGNMENT = "assignment"
    MENTION = "mention"
    COMMENT = "comment"


class NotificationFilter(str, Enum):
    """Inbox views. Inbox holds notifications that are not yet addressed."""
    INBOX = "inbox"
    ARCHIVED = "archived"
    ALL = "all"


class Notification(BaseModel):
    """In-app notification. `is_read` (seen) and `is_addressed` (archived) are independent."""
    id: Optional[str] = None
    member_id: str = Field(..., description="Recipient member ID")
    type: NotificationType = Field(default=NotificationType.ASSIGNMENT)
    title: str
    content: Optional[str] = None
    link_task_id: Optional[str] = None
    link_step_id: Optional[str] = None
    is_read: bool = False
    is_addressed: bool = False
    created_by: Optional[str] = None
    created_at: Optional[str] = None
