"""Team membership."""

from src.services.directory_admin import add_member_to_team, list_team_members, remove_member_from_team
from src.utils.http import require_method, run_handler


async def _members(ctx):
    require_method(ctx, ["GET", "POST", "DELETE"])
    team_id = ctx.require_path_id("teamId")

    if ctx.method == "POST":
        await add_member_to_team(team_id, ctx.body.get("memberId"))
        return {"success": True}

    if ctx.method == "DELETE":
        await remove_member_from_team(team_id, ctx.body.get("memberId") or ctx.query.get("memberId"))
        return {"success": True}

    return {"members": await list_team_members(team_id)}


def handler(request):
    """GET /api/teams/{id}/members, POST/DELETE {memberId}"""
    return run_handler(request, _members)
