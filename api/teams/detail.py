"""Rename or delete a team."""

from src.services.directory_admin import remove_team, rename_team
from src.utils.http import require_method, run_handler


async def _detail(ctx):
    require_method(ctx, ["PATCH", "DELETE"])
    team_id = ctx.require_path_id("teamId")

    if ctx.method == "DELETE":
        await remove_team(team_id)
        return {"success": True}

    return {"success": True, "team": await rename_team(team_id, ctx.body.get("name"))}


def handler(request):
    """PATCH /api/teams/{id} {name}, DELETE /api/teams/{id}"""
    return run_handler(request, _detail)
