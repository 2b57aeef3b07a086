"""Reopen a completed task."""

from src.services.pipeline_state_machine import reopen_task
from src.utils.http import require_method, run_handler


async def _reopen(ctx):
    require_method(ctx, ["POST"])
    result = await reopen_task(ctx.require_path_id("taskId"), ctx.require_actor())
    return {"success": True, **result.model_dump(mode="json")}


def handler(request):
    """POST /api/tasks/{id}/reopen {memberId}"""
    return run_handler(request, _reopen)
