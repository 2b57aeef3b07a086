"""
Summary email digests.

Builds a per-member pipeline summary (scorecard, workload and the now/next/done
step lists), renders it as HTML and delivers it through the Resend HTTP API.
Without RESEND_API_KEY the digest is rendered but not sent.
"""

import os
from datetime import datetime, timedelta
from html import escape
from typing import Optional

import httpx

from src.models.dashboard import DigestStep, MemberDigest, TaskWithSteps
from src.models.email_settings import EmailFrequency, EmailSettings
from src.models.member import Business, Member
from src.models.pipeline_step import StepStatus
from src.services.dashboard import attach_steps, load_team_rosters, member_stats, score_task
from src.services.member_directory import load_member
from src.services.supabase_client import (
    get_business,
    get_email_settings,
    list_business_team_ids,
    list_completed_tasks_since,
    list_digest_recipients,
    list_member_team_ids,
    list_steps_for_tasks,
    list_tasks,
    upsert_email_settings,
)
from src.utils.dates import format_date, parse_timestamp, utc_now
from src.utils.errors import UpstreamFailureError, ValidationError
from src.utils.logging import get_structured_logger, mask_email

logger = get_structured_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_FROM_EMAIL = "Task Pulse <onboarding@resend.dev>"
DONE_WINDOW_DAYS = 7


def should_send_digest(frequency: EmailFrequency, now: datetime) -> bool:
    """Daily always, weekly on Mondays, monthly on the 1st, none never."""
    if frequency == EmailFrequency.DAILY:
        return True
    if frequency == EmailFrequency.WEEKLY:
        return now.weekday() == 0
    if frequency == EmailFrequency.MONTHLY:
        return now.day == 1
    return False


def _digest_step(task: TaskWithSteps, step, names: dict[str, str]) -> DigestStep:
    return DigestStep(
        task_id=task.id,
        task_title=task.title,
        step_name=step.name,
        assignee=names.get(step.assigned_to) or step.assigned_to_name,
        deadline=format_date(step.mini_deadline),
        completed_at=step.completed_at,
    )


def collect_step_lists(
    tasks: list[TaskWithSteps],
    names: dict[str, str],
    since: datetime,
) -> tuple[list[DigestStep], list[DigestStep], list[DigestStep]]:
    """
    Split steps into now (unlocked), next (the step after the unlocked one)
    and done (completed at or after ``since``).
    """
    now_steps, next_steps, done_steps = [], [], []
    for task in tasks:
        steps = task.pipeline_steps
        for index, step in enumerate(steps):
            if step.status == StepStatus.UNLOCKED:
                now_steps.append(_digest_step(task, step, names))
                if index + 1 < len(steps):
                    next_steps.append(_digest_step(task, steps[index + 1], names))
            elif step.status == StepStatus.COMPLETED:
                completed_at = parse_timestamp(step.completed_at)
                if completed_at and completed_at >= since:
                    done_steps.append(_digest_step(task, step, names))
    done_steps.sort(key=lambda s: s.completed_at or "", reverse=True)
    return now_steps, next_steps, done_steps


async def _digest_team_ids(member: Member) -> list[str]:
    if member.is_admin and member.business_id:
        return await list_business_team_ids(member.business_id)
    return await list_member_team_ids(member.id)


async def build_member_digest(member_id: str, now: Optional[datetime] = None) -> MemberDigest:
    """Gather the summary data for one member's email."""
    now = now or utc_now()
    member = await load_member(member_id)
    if not member.email:
        raise ValidationError("Member has no email address")

    team_ids = await _digest_team_ids(member)
    if not team_ids:
        raise ValidationError("No teams assigned")

    since = now - timedelta(days=DONE_WINDOW_DAYS)
    task_rows = await list_tasks(team_ids, status="active")
    task_rows += await list_completed_tasks_since(team_ids, since.isoformat())
    step_rows = await list_steps_for_tasks([row["id"] for row in task_rows])
    tasks = attach_steps(task_rows, step_rows)

    roster = await load_team_rosters(team_ids)
    names = {m.id: m.name for m in roster}
    business_row = await get_business(member.business_id) if member.business_id else None
    business = Business.model_validate(business_row) if business_row else None

    now_steps, next_steps, done_steps = collect_step_lists(tasks, names, since)
    return MemberDigest(
        member_id=member.id,
        member_name=member.name,
        email=member.email,
        business_name=business.name if business else "Your team",
        scorecard=[score_task(task, names) for task in tasks],
        member_stats=[stats for stats in member_stats(tasks, roster) if stats.total],
        now=now_steps,
        next=next_steps,
        done=done_steps,
    )


def _step_rows(steps: list[DigestStep], empty: str, show_completed: bool = False) -> str:
    if not steps:
        return f'<tr><td colspan="3" style="color:#888">{escape(empty)}</td></tr>'
    rows = []
    for step in steps:
        when = step.completed_at[:10] if show_completed and step.completed_at else step.deadline or ""
        rows.append(
            "<tr>"
            f"<td><strong>{escape(step.step_name)}</strong><br>"
            f'<span style="color:#888">{escape(step.task_title)}</span></td>'
            f"<td>{escape(step.assignee or 'Unassigned')}</td>"
            f"<td>{escape(when)}</td>"
            "</tr>"
        )
    return "".join(rows)


def render_digest_html(digest: MemberDigest, app_url: Optional[str] = None) -> str:
    """Render the summary as a self-contained HTML email."""
    app_url = app_url or os.environ.get("APP_URL", "")

    scorecard = "".join(
        "<tr>"
        f"<td>{escape(score.title)}</td>"
        f"<td>{score.completed}/{score.total} ({score.percent}%)</td>"
        f"<td>{escape(score.current_step or 'Done')}</td>"
        "</tr>"
        for score in digest.scorecard
    ) or '<tr><td colspan="3" style="color:#888">No active pipelines</td></tr>'

    stats = "".join(
        "<tr>"
        f"<td>{escape(entry.name)}</td>"
        f"<td>{entry.now}</td><td>{entry.upcoming}</td><td>{entry.done}</td>"
        "</tr>"
        for entry in digest.member_stats
    ) or '<tr><td colspan="4" style="color:#888">No assigned steps</td></tr>'

    link = f'<p><a href="{escape(app_url)}">Open dashboard</a></p>' if app_url else ""

    return f"""<!DOCTYPE html>
<html>
<body style="font-family:Arial,sans-serif;color:#222;max-width:640px;margin:0 auto">
<h1 style="font-size:20px">{escape(digest.business_name)} summary</h1>
<p>Hi {escape(digest.member_name)}, here is where your pipelines stand.</p>
<h2 style="font-size:16px">Pipeline scorecard</h2>
<table width="100%" cellpadding="6">{scorecard}</table>
<h2 style="font-size:16px">Team workload</h2>
<table width="100%" cellpadding="6">
<tr><th align="left">Member</th><th>Now</th><th>Upcoming</th><th>Done</th></tr>{stats}
</table>
<h2 style="font-size:16px">Now</h2>
<table width="100%" cellpadding="6">{_step_rows(digest.now, "Nothing in progress")}</table>
<h2 style="font-size:16px">Next</h2>
<table width="100%" cellpadding="6">{_step_rows(digest.next, "Nothing queued")}</table>
<h2 style="font-size:16px">Done in the last {DONE_WINDOW_DAYS} days</h2>
<table width="100%" cellpadding="6">{_step_rows(digest.done, "Nothing completed", show_completed=True)}</table>
{link}
</body>
</html>"""


async def send_email(to: str, subject: str, html: str) -> dict:
    """
    Deliver an email through Resend.

    Returns ``{"sent": True, "id": ...}``, or ``{"sent": False, "preview": html}``
    when no API key is configured.
    """
    api_key = os.environ.get("RESEND_API_KEY")
    if not api_key:
        logger.warning("RESEND_API_KEY not set, email not sent", to=mask_email(to))
        return {"sent": False, "preview": html}

    from_email = os.environ.get("RESEND_FROM_EMAIL", DEFAULT_FROM_EMAIL)
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {api_key}"},
                json={"from": from_email, "to": [to], "subject": subject, "html": html},
            )
    except httpx.HTTPError as e:
        logger.error("Email request failed", to=mask_email(to), error=str(e))
        raise UpstreamFailureError(f"Email request failed: {e}")

    if response.status_code >= 400:
        logger.error(
            "Email provider rejected request",
            to=mask_email(to),
            status_code=response.status_code,
            response_text=response.text[:200],
        )
        raise UpstreamFailureError(f"Email provider returned {response.status_code}")

    body = response.json()
    logger.info("Email sent", to=mask_email(to), email_id=body.get("id"))
    return {"sent": True, "id": body.get("id")}


async def send_member_summary(member_id: str, now: Optional[datetime] = None) -> dict:
    """Build, render and send one member's summary, then stamp last_sent_at."""
    now = now or utc_now()
    digest = await build_member_digest(member_id, now)
    html = render_digest_html(digest)
    result = await send_email(digest.email, f"Task Pulse Summary - {digest.business_name}", html)

    if result["sent"]:
        await upsert_email_settings(member_id, {"last_sent_at": now.isoformat()})

    return {"member_id": member_id, **result}


async def run_digest_cron(now: Optional[datetime] = None) -> dict:
    """Send summaries to every admin and lead whose frequency is due today."""
    now = now or utc_now()
    recipients = await list_digest_recipients()

    sent, skipped, failed = [], [], []
    for row in recipients:
        settings_row = await get_email_settings(row["id"])
        settings = EmailSettings.model_validate(settings_row or {"member_id": row["id"]})
        if not should_send_digest(settings.frequency, now):
            skipped.append(row["id"])
            continue
        try:
            await send_member_summary(row["id"], now)
            sent.append(row["id"])
        except Exception as e:
            logger.error("Failed to send summary", member_id=row["id"], error=str(e))
            failed.append(row["id"])

    logger.info(
        "Digest cron finished",
        recipients_count=len(recipients),
        sent_count=len(sent),
        skipped_count=len(skipped),
        failed_count=len(failed),
    )
    return {"sent": sent, "skipped": skipped, "failed": failed}
