"""Member directory listing and creation."""

from src.services.directory_admin import create_directory_member, list_directory_members, list_team_members
from src.utils.http import require_method, run_handler


def _flag(value) -> bool:
    return str(value).lower() in ("1", "true", "yes")


async def _members(ctx):
    require_method(ctx, ["GET", "POST"])

    if ctx.method == "POST":
        team_ids = ctx.body.get("teamIds")
        if team_ids is None and ctx.body.get("teamId"):
            team_ids = [ctx.body["teamId"]]
        member = await create_directory_member(
            ctx.body.get("name"),
            ctx.business_id,
            email=ctx.body.get("email"),
            role=ctx.body.get("role"),
            team_ids=team_ids,
        )
        return {"success": True, "member": member}

    if ctx.team_id and not ctx.business_id:
        include_archived = _flag(ctx.query.get("includeArchived", "true"))
        return {"members": await list_team_members(ctx.team_id, include_archived=include_archived)}

    members = await list_directory_members(
        ctx.business_id,
        include_teams=_flag(ctx.query.get("includeTeams", "false")),
    )
    return {"members": members}


def handler(request):
    """GET /api/members?businessId&teamId&includeTeams, POST {name, email, role, businessId, teamId, teamIds}"""
    return run_handler(request, _members)
