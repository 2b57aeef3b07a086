"""A member's team assignments."""

from src.services.directory_admin import get_member_teams, set_member_teams
from src.utils.http import require_method, run_handler


async def _teams(ctx):
    require_method(ctx, ["GET", "PUT"])
    member_id = ctx.require_path_id("memberId")

    if ctx.method == "PUT":
        team_ids = await set_member_teams(member_id, ctx.body.get("teamIds"))
        return {"success": True, "teamIds": team_ids}

    return {"teams": await get_member_teams(member_id)}


def handler(request):
    """GET /api/members/{id}/teams, PUT {teamIds}"""
    return run_handler(request, _teams)
