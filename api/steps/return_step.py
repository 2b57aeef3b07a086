"""Return a step to the previous one."""

from src.services.pipeline_state_machine import return_step
from src.utils.http import require_method, run_handler


async def _return(ctx):
    require_method(ctx, ["POST"])
    result = await return_step(
        ctx.require_path_id("stepId"),
        ctx.require_actor(),
        reason=ctx.body.get("reason"),
    )
    return {"success": True, **result.model_dump(mode="json")}


def handler(request):
    """POST /api/steps/{id}/return {memberId, reason}"""
    return run_handler(request, _return)
