"""Team listing and creation."""

from src.services.directory_admin import create_business_team, list_business_teams
from src.utils.http import require_method, run_handler


async def _teams(ctx):
    require_method(ctx, ["GET", "POST"])

    if ctx.method == "POST":
        team = await create_business_team(ctx.body.get("name"), ctx.business_id)
        return {"success": True, "team": team}

    return {"teams": await list_business_teams(ctx.business_id)}


def handler(request):
    """GET /api/teams?businessId, POST {name, businessId}"""
    return run_handler(request, _teams)
