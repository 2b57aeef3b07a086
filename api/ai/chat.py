"""Task-creation chat turn."""

from src.services.member_directory import get_team_roster
from src.services.task_extractor import parse_chat_messages, process_task_chat
from src.utils.errors import ValidationError
from src.utils.http import require_method, run_handler


async def _chat(ctx):
    require_method(ctx, ["POST"])
    if not ctx.team_id:
        raise ValidationError("teamId is required")
    messages = parse_chat_messages(ctx.body.get("messages"))
    roster = await get_team_roster(ctx.team_id)
    return await process_task_chat(messages, roster)


def handler(request):
    """POST /api/ai/chat {messages, teamId}"""
    return run_handler(request, _chat)
