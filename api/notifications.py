"""Notification inbox."""

from src.models.notification import NotificationFilter
from src.services.notification_inbox import DEFAULT_LIMIT, apply_inbox_action, get_inbox
from src.utils.errors import ValidationError
from src.utils.http import require_method, run_handler


def _flag(value) -> bool:
    return str(value).lower() in ("1", "true", "yes")


async def _notifications(ctx):
    require_method(ctx, ["GET", "PATCH"])

    if ctx.method == "PATCH":
        await apply_inbox_action(
            ctx.body.get("action", ""),
            notification_id=ctx.body.get("notificationId"),
            member_id=ctx.actor_id,
        )
        return {"success": True}

    try:
        view = NotificationFilter(ctx.query.get("filter", NotificationFilter.INBOX.value))
        limit = int(ctx.query.get("limit", DEFAULT_LIMIT))
    except ValueError:
        raise ValidationError("Invalid filter or limit")

    return await get_inbox(
        ctx.require_actor(),
        view=view,
        unread_only=_flag(ctx.query.get("unreadOnly", "false")),
        limit=limit,
    )


def handler(request):
    """GET /api/notifications?memberId&filter&unreadOnly&limit, PATCH {action, notificationId, memberId}"""
    return run_handler(request, _notifications)
