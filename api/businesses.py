"""Businesses: list, fetch one, create with a join code, rename."""

from src.services.directory_admin import list_all_businesses, load_business, register_business, rename_business
from src.utils.http import require_method, run_handler


async def _businesses(ctx):
    require_method(ctx, ["GET", "POST", "PATCH"])

    if ctx.method == "POST":
        return {"success": True, "business": await register_business(ctx.body.get("name"))}

    if ctx.method == "PATCH":
        business = await rename_business(ctx.body.get("businessId"), ctx.body.get("name"))
        return {"success": True, "business": business}

    if ctx.path_id:
        return {"business": await load_business(ctx.path_id)}
    return {"businesses": await list_all_businesses()}


def handler(request):
    """GET /api/businesses?id, POST {name}, PATCH {businessId, name}"""
    return run_handler(request, _businesses)
