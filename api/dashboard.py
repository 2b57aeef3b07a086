"""Dashboard data for a team or business."""

from src.services.dashboard import load_dashboard
from src.utils.http import require_method, run_handler


async def _dashboard(ctx):
    require_method(ctx, ["GET"])
    return await load_dashboard(
        team_id=ctx.team_id,
        member_id=ctx.actor_id,
        role=ctx.query.get("role"),
        business_id=ctx.business_id,
        status=ctx.query.get("status"),
    )


def handler(request):
    """GET /api/dashboard?teamId&memberId&role&businessId&status"""
    return run_handler(request, _dashboard)
