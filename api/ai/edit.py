"""Task-edit chat turn against an existing task."""

from src.services.member_directory import get_member_names, get_team_roster
from src.services.task_extractor import parse_chat_messages, process_task_chat, task_to_fundamental_sheet
from src.services.task_writer import get_task_with_steps
from src.utils.errors import ValidationError
from src.utils.http import require_method, run_handler


async def _edit(ctx):
    require_method(ctx, ["POST"])
    task_id = ctx.body.get("taskId") or ctx.path_id
    if not task_id:
        raise ValidationError("taskId is required")
    messages = parse_chat_messages(ctx.body.get("messages"))

    task = await get_task_with_steps(task_id)
    team_id = ctx.team_id or task.team_id
    roster = await get_team_roster(team_id)
    names = await get_member_names([step.assigned_to for step in task.pipeline_steps if step.assigned_to])
    sheet = task_to_fundamental_sheet(task, task.pipeline_steps, names)

    result = await process_task_chat(messages, roster, existing_sheet=sheet)
    return {**result.model_dump(mode="json"), "fundamental_sheet": sheet.model_dump(mode="json")}


def handler(request):
    """POST /api/ai/edit {messages, teamId, taskId}"""
    return run_handler(request, _edit)
