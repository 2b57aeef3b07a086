"""Notification inbox - listing and read/addressed state."""

from typing import Optional

from src.models.notification import Notification, NotificationFilter
from src.services.supabase_client import (
    count_notifications,
    list_notifications,
    mark_inbox_read,
    update_notification,
)
from src.utils.errors import ValidationError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

DEFAULT_LIMIT = 50

_ADDRESSED_BY_FILTER = {
    NotificationFilter.INBOX: False,
    NotificationFilter.ARCHIVED: True,
    NotificationFilter.ALL: None,
}


async def get_inbox(
    member_id: str,
    view: NotificationFilter = NotificationFilter.INBOX,
    unread_only: bool = False,
    limit: int = DEFAULT_LIMIT,
) -> dict:
    """Notifications for one view plus the unread and inbox counters."""
    if not member_id:
        raise ValidationError("memberId is required")

    rows = await list_notifications(
        member_id,
        addressed=_ADDRESSED_BY_FILTER[view],
        unread_only=unread_only,
        limit=limit,
    )
    return {
        "notifications": [Notification.model_validate(row).model_dump(mode="json") for row in rows],
        "unread_count": await count_notifications(member_id, unread_only=True),
        "inbox_count": await count_notifications(member_id),
    }


async def apply_inbox_action(
    action: str,
    notification_id: Optional[str] = None,
    member_id: Optional[str] = None,
) -> None:
    """
    Change read/addressed flags.

    Actions: ``mark_read``, ``mark_all_read`` (inbox only, needs member_id),
    ``mark_addressed`` (also marks read) and ``unmark_addressed``.
    """
    if action == "mark_all_read":
        if not member_id:
            raise ValidationError("memberId is required")
        await mark_inbox_read(member_id)
        logger.info("Inbox marked read", member_id=member_id)
        return

    updates = {
        "mark_read": {"is_read": True},
        "mark_addressed": {"is_addressed": True, "is_read": True},
        "unmark_addressed": {"is_addressed": False},
    }.get(action)
    if updates is None:
        raise ValidationError(f"Unknown action: {action}")
    if not notification_id:
        raise ValidationError("notificationId is required")

    await update_notification(notification_id, updates)
    logger.info("Notification updated", notification_id=notification_id, action=action)
