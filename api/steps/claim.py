"""Claim a joint step."""

from src.services.pipeline_state_machine import claim_step
from src.utils.http import require_method, run_handler


async def _claim(ctx):
    require_method(ctx, ["POST"])
    result = await claim_step(ctx.require_path_id("stepId"), ctx.require_actor())
    return {"success": True, **result.model_dump(mode="json")}


def handler(request):
    """POST /api/steps/{id}/claim {memberId}"""
    return run_handler(request, _claim)
