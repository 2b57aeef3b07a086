"""Step detail and limited step edits."""

from src.services.step_comments import get_step_detail, update_step_fields
from src.utils.http import require_method, run_handler


async def _detail(ctx):
    require_method(ctx, ["GET", "PATCH"])
    step_id = ctx.require_path_id("stepId")
    if ctx.method == "PATCH":
        step = await update_step_fields(step_id, ctx.body)
        return {"success": True, "step": step}
    return await get_step_detail(step_id)


def handler(request):
    """GET/PATCH /api/steps/{id}"""
    return run_handler(request, _detail)
