"""Send one member their summary email now."""

from src.services.email_digest import send_member_summary
from src.utils.http import require_method, run_handler


async def _send(ctx):
    require_method(ctx, ["POST"])
    result = await send_member_summary(ctx.require_actor())
    return {"success": True, **result}


def handler(request):
    """POST /api/send_summary {memberId}"""
    return run_handler(request, _send)
