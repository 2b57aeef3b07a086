"""Duplicate a task as a new, not started pipeline."""

from src.services.task_writer import duplicate_task
from src.utils.http import require_method, run_handler


async def _duplicate(ctx):
    require_method(ctx, ["POST"])
    task = await duplicate_task(ctx.require_path_id("taskId"))
    return {"success": True, "task": task}


def handler(request):
    """POST /api/tasks/{id}/duplicate"""
    return run_handler(request, _duplicate, success_status=201)
