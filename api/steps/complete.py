"""Complete a pipeline step and unlock the next one."""

from src.services.pipeline_state_machine import complete_step
from src.utils.http import require_method, run_handler


async def _complete(ctx):
    require_method(ctx, ["POST"])
    result = await complete_step(ctx.require_path_id("stepId"), ctx.require_actor())
    return {"success": True, **result.model_dump(mode="json")}


def handler(request):
    """POST /api/steps/{id}/complete {memberId}"""
    return run_handler(request, _complete)
