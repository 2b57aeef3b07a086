"""Single member: read, rename, change role, archive or unarchive."""

from src.services.directory_admin import update_member_profile
from src.services.member_directory import load_member
from src.utils.http import require_method, run_handler


async def _detail(ctx):
    require_method(ctx, ["GET", "PATCH"])
    member_id = ctx.require_path_id("memberId")

    if ctx.method == "PATCH":
        changes = {key: value for key, value in ctx.body.items() if key != "memberId"}
        member = await update_member_profile(member_id, changes)
        return {"success": True, "member": member}

    return {"member": await load_member(member_id)}


def handler(request):
    """GET/PATCH /api/members/{id} {name, email, role, is_archived}"""
    return run_handler(request, _detail)
