"""Dashboard aggregator - grid, scorecard and member workload views."""

from typing import Optional

from src.models.dashboard import (
    AssigneeColumn,
    DashboardSummary,
    MemberStats,
    PipelineScore,
    TaskWithSteps,
)
from src.models.member import Member, UserRole
from src.models.pipeline_step import PipelineStep, StepStatus
from src.services.member_directory import get_team_roster, load_member
from src.services.supabase_client import list_business_team_ids, list_steps_for_tasks, list_tasks
from src.utils.errors import ValidationError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def score_task(task: TaskWithSteps, names: dict[str, str]) -> PipelineScore:
    steps = task.pipeline_steps
    completed = len([step for step in steps if step.status == StepStatus.COMPLETED])
    total = len(steps)
    current = next((step for step in steps if step.status == StepStatus.UNLOCKED), None)

    current_assignee = None
    if current:
        current_assignee = names.get(current.assigned_to) or current.assigned_to_name

    return PipelineScore(
        task_id=task.id,
        title=task.title,
        completed=completed,
        total=total,
        percent=round(completed * 100 / total) if total else 0,
        current_step=current.name if current else None,
        current_assignee=current_assignee,
    )


def _member_steps(member_id: str, tasks: list[TaskWithSteps]) -> list[PipelineStep]:
    return [
        step
        for task in tasks
        for step in task.pipeline_steps
        if member_id in step.eligible_member_ids()
    ]


def member_stats(tasks: list[TaskWithSteps], roster: list[Member]) -> list[MemberStats]:
    """Per-member now/upcoming/done counts, busiest first."""
    stats = []
    for member in roster:
        entry = MemberStats(member_id=member.id, name=member.name)
        for step in _member_steps(member.id, tasks):
            if step.status == StepStatus.COMPLETED:
                entry.done += 1
            elif step.status == StepStatus.UNLOCKED:
                entry.now += 1
            else:
                entry.upcoming += 1
        stats.append(entry)
    return sorted(stats, key=lambda s: (-s.now, -s.total))


def build_dashboard(tasks: list[TaskWithSteps], roster: list[Member]) -> DashboardSummary:
    """
    Project tasks and roster into the dashboard views.

    Joint steps appear under the primary assignee and under every additional
    assignee. Pure function, no I/O.
    """
    names = {member.id: member.name for member in roster}
    columns = [
        AssigneeColumn(
            member_id=member.id,
            name=member.name,
            step_ids=[step.id for step in _member_steps(member.id, tasks)],
        )
        for member in roster
    ]
    return DashboardSummary(
        tasks=tasks,
        members=roster,
        columns=columns,
        scorecard=[score_task(task, names) for task in tasks],
        member_stats=member_stats(tasks, roster),
    )


def attach_steps(task_rows: list[dict], step_rows: list[dict]) -> list[TaskWithSteps]:
    """Join step rows onto their task rows, steps ordered by step_order."""
    by_task: dict[str, list[dict]] = {}
    for row in step_rows:
        by_task.setdefault(row["task_id"], []).append(row)
    return [
        TaskWithSteps.model_validate({
            **row,
            "pipeline_steps": sorted(by_task.get(row["id"], []), key=lambda s: s["step_order"]),
        })
        for row in task_rows
    ]


async def load_team_rosters(team_ids: list[str]) -> list[Member]:
    """Active members across teams, each once."""
    roster: dict[str, Member] = {}
    for team_id in team_ids:
        for member in await get_team_roster(team_id):
            roster.setdefault(member.id, member)
    return list(roster.values())


async def load_dashboard(
    team_id: Optional[str] = None,
    member_id: Optional[str] = None,
    role: Optional[str] = None,
    business_id: Optional[str] = None,
    status: Optional[str] = None,
) -> DashboardSummary:
    """
    Load the dashboard for a team, or for a whole business.

    Regular users only see tasks in which they hold a step.
    """
    if team_id:
        team_ids = [team_id]
    elif business_id:
        team_ids = await list_business_team_ids(business_id)
    else:
        raise ValidationError("teamId or businessId is required")

    if member_id:
        role = (await load_member(member_id)).role.value

    task_rows = await list_tasks(team_ids, status=status)
    step_rows = await list_steps_for_tasks([row["id"] for row in task_rows])
    tasks = attach_steps(task_rows, step_rows)

    if role == UserRole.USER.value and member_id:
        tasks = [
            task for task in tasks
            if any(step.involves(member_id) for step in task.pipeline_steps)
        ]

    roster = await load_team_rosters(team_ids)
    logger.info(
        "Dashboard loaded",
        team_count=len(team_ids),
        tasks_count=len(tasks),
        members_count=len(roster),
    )
    return build_dashboard(tasks, roster)
