"""Step comments."""

from src.services.step_comments import add_comment, get_comments
from src.utils.http import require_method, run_handler


async def _comments(ctx):
    require_method(ctx, ["GET", "POST"])
    step_id = ctx.require_path_id("stepId")
    if ctx.method == "POST":
        comment = await add_comment(
            step_id,
            ctx.require_actor(),
            ctx.body.get("content"),
            attachments=ctx.body.get("attachments"),
        )
        return {"success": True, "comment": comment}
    return {"comments": await get_comments(step_id)}


def handler(request):
    """GET/POST /api/steps/{id}/comments"""
    return run_handler(request, _comments)
