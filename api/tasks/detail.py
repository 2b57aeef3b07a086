"""Task detail, edit save and delete."""

from pydantic import ValidationError as PydanticValidationError

from src.models.extraction import ExtractedTaskData
from src.services.task_writer import get_task_with_steps, remove_task, save_task_edit
from src.utils.errors import ValidationError
from src.utils.http import require_method, run_handler


async def _detail(ctx):
    require_method(ctx, ["GET", "PATCH", "DELETE"])
    task_id = ctx.require_path_id("taskId")

    if ctx.method == "DELETE":
        await remove_task(task_id)
        return {"success": True}

    if ctx.method == "PATCH":
        if not ctx.body.get("extractedData"):
            raise ValidationError("extractedData is required")
        try:
            data = ExtractedTaskData.model_validate(ctx.body["extractedData"])
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid extractedData: {e.error_count()} errors")
        task = await save_task_edit(task_id, data, ctx.body.get("memberAssignments"))
        return {"success": True, "task": task}

    return {"task": await get_task_with_steps(task_id)}


def handler(request):
    """GET/PATCH/DELETE /api/tasks/{id}"""
    return run_handler(request, _detail)
