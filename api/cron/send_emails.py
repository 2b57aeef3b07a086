"""Scheduled digest sender (Vercel cron)."""

import os

from src.services.email_digest import run_digest_cron
from src.utils.errors import PipelinePulseError
from src.utils.http import get_header, require_method, run_handler


class CronUnauthorizedError(PipelinePulseError):
    status_code = 401


async def _run(ctx):
    require_method(ctx, ["GET", "POST"])
    secret = os.environ.get("CRON_SECRET")
    if not secret or get_header(ctx.headers, "Authorization") != f"Bearer {secret}":
        raise CronUnauthorizedError("Unauthorized")
    return {"success": True, **await run_digest_cron()}


def handler(request):
    """GET /api/cron/send_emails (Authorization: Bearer CRON_SECRET)"""
    return run_handler(request, _run)
