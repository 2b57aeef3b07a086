"""Create a task from a confirmed AI proposal."""

from pydantic import ValidationError as PydanticValidationError

from src.models.extraction import ExtractedTaskData
from src.services.task_writer import confirm_task_creation
from src.utils.errors import ValidationError
from src.utils.http import require_method, run_handler


async def _confirm(ctx):
    require_method(ctx, ["POST"])
    if not ctx.team_id:
        raise ValidationError("teamId is required")
    if not ctx.body.get("extractedData"):
        raise ValidationError("extractedData is required")
    try:
        data = ExtractedTaskData.model_validate(ctx.body["extractedData"])
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid extractedData: {e.error_count()} errors")

    task = await confirm_task_creation(
        ctx.team_id,
        ctx.body.get("createdBy") or ctx.actor_id,
        data,
        member_assignments=ctx.body.get("memberAssignments"),
        session_id=ctx.body.get("sessionId"),
    )
    return {"success": True, "task": task}


def handler(request):
    """POST /api/ai/confirm {teamId, createdBy, extractedData, memberAssignments, sessionId}"""
    return run_handler(request, _confirm, success_status=201)
