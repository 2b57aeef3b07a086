"""Task write operations - confirm an AI proposal, save edits, duplicate, delete."""

import re
from datetime import date
from typing import Optional

from src.models.dashboard import TaskWithSteps
from src.models.extraction import ExtractedStep, ExtractedTaskData
from src.models.member import Member
from src.models.pipeline_step import PipelineStep, StepStatus
from src.models.task import Task, TaskStatus
from src.services.member_directory import TeamMemberResolver
from src.services.notifications import notify_task_created
from src.services.supabase_client import (
    create_task,
    delete_steps_for_task,
    delete_task,
    get_member,
    get_task,
    insert_steps,
    link_conversation_to_task,
    list_steps,
    transition_task,
    update_task,
)
from src.utils.dates import utc_now_iso
from src.utils.errors import NotFoundError, ValidationError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_date(value: Optional[str], field: str) -> Optional[str]:
    """Require YYYY-MM-DD (or nothing)."""
    if value is None or value == "":
        return None
    if not DATE_PATTERN.match(value):
        raise ValidationError(f"Invalid date format for {field}: {value}. Use YYYY-MM-DD")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date for {field}: {value}")
    return value


def validate_task_data(data: ExtractedTaskData) -> None:
    if not data.pipeline_steps:
        raise ValidationError("At least one pipeline step is required")
    validate_date(data.deadline, "deadline")
    for index, step in enumerate(data.pipeline_steps):
        validate_date(step.mini_deadline, f"step {index + 1} deadline")


def _assignment_override(member_assignments: Optional[dict], index: int) -> Optional[str]:
    if not member_assignments:
        return None
    return member_assignments.get(str(index)) or member_assignments.get(index)


async def _resolve_assignees(
    step: ExtractedStep,
    index: int,
    resolver: TeamMemberResolver,
    member_assignments: Optional[dict],
) -> tuple[Optional[str], list[str]]:
    """Primary assignee ID (explicit assignment wins) and additional assignee IDs."""
    primary = _assignment_override(member_assignments, index)
    if not primary:
        primary = await resolver.resolve(step.assigned_to_name)

    additional: list[str] = []
    if step.is_joint:
        primary_name = (step.assigned_to_name or "").strip().lower()
        for name in step.additional_assignee_names:
            if name.strip().lower() == primary_name:
                continue
            member_id = await resolver.resolve(name)
            if member_id and member_id != primary and member_id not in additional:
                additional.append(member_id)
    return primary, additional


def _task_fields(data: ExtractedTaskData) -> dict:
    return {
        "title": data.title,
        "description": data.summary,
        "conclusion": data.conclusion,
        "actionables": list(data.actionables),
        "deadline": data.deadline or None,
        "recurrence": data.recurrence.model_dump(mode="json") if data.recurrence else None,
    }


async def _load_task_with_steps(task_id: str) -> TaskWithSteps:
    row = await get_task(task_id)
    if not row:
        raise NotFoundError(f"Task not found: {task_id}")
    steps = await list_steps(task_id)
    return TaskWithSteps.model_validate({**row, "pipeline_steps": steps})


async def get_task_with_steps(task_id: str) -> TaskWithSteps:
    """Task with its ordered steps."""
    return await _load_task_with_steps(task_id)


async def _insert_steps_or_rollback(task_id: str, rows: list[dict]) -> list[PipelineStep]:
    try:
        return [PipelineStep.model_validate(row) for row in await insert_steps(rows)]
    except Exception:
        logger.error("Failed to create pipeline steps, removing task", task_id=task_id)
        await delete_task(task_id)
        raise


async def confirm_task_creation(
    team_id: str,
    created_by: Optional[str],
    data: ExtractedTaskData,
    member_assignments: Optional[dict] = None,
    session_id: Optional[str] = None,
) -> TaskWithSteps:
    """
    Create a task and its steps from a confirmed extraction.

    Unmatched names become new members of the requesting team. Step 1 starts
    unlocked and the rest locked. Assignees other than the creator are notified.
    """
    if not team_id:
        raise ValidationError("teamId is required")
    validate_task_data(data)

    resolver = await TeamMemberResolver.for_team(team_id)

    step_rows = []
    for index, step in enumerate(data.pipeline_steps):
        primary, additional = await _resolve_assignees(step, index, resolver, member_assignments)
        step_rows.append({
            "step_order": index + 1,
            "name": step.name,
            "status": (StepStatus.UNLOCKED if index == 0 else StepStatus.LOCKED).value,
            "assigned_to": primary,
            "assigned_to_name": step.assigned_to_name,
            "additional_assignees": additional,
            "additional_assignee_names": list(step.additional_assignee_names) if step.is_joint else [],
            "is_joint": step.is_joint and bool(additional),
            "mini_deadline": step.mini_deadline or None,
            "completed_at": None,
        })

    task = Task.model_validate(await create_task({
        **_task_fields(data),
        "team_id": team_id,
        "status": TaskStatus.ACTIVE.value,
        "created_by": created_by,
        "recurrence_count": 0,
    }))

    steps = await _insert_steps_or_rollback(task.id, [{"task_id": task.id, **row} for row in step_rows])

    logger.info("Task created", task_id=task.id, team_id=team_id, steps_count=len(steps))

    creator: Optional[Member] = None
    if created_by:
        creator_row = await get_member(created_by)
        creator = Member.model_validate(creator_row) if creator_row else None
    await notify_task_created(task, steps, creator)

    if session_id:
        try:
            await link_conversation_to_task(session_id, task.id, data.model_dump(mode="json"))
        except Exception as e:
            logger.warning("Failed to link AI conversation", task_id=task.id, error=str(e))

    return TaskWithSteps.model_validate({**task.model_dump(), "pipeline_steps": steps})


async def save_task_edit(
    task_id: str,
    data: ExtractedTaskData,
    member_assignments: Optional[dict] = None,
) -> TaskWithSteps:
    """
    Replace a task's fields and steps with an edited proposal.

    Steps already completed keep their stored row (name, assignees, deadline,
    completion time) whatever the proposal says about them. The first step
    that is not completed becomes unlocked. A task left with no open step is
    closed; a completed task that gains open steps becomes active again.
    """
    existing = await _load_task_with_steps(task_id)
    validate_task_data(data)

    completed_by_order = {
        step.step_order: step
        for step in existing.pipeline_steps
        if step.status == StepStatus.COMPLETED
    }
    resolver = await TeamMemberResolver.for_team(existing.team_id)
    now = utc_now_iso()

    step_rows = []
    for index, step in enumerate(data.pipeline_steps):
        order = index + 1
        previous = completed_by_order.get(order)
        if previous:
            step_rows.append({
                "task_id": task_id,
                "step_order": order,
                "name": previous.name,
                "status": StepStatus.COMPLETED.value,
                "assigned_to": previous.assigned_to,
                "assigned_to_name": previous.assigned_to_name,
                "additional_assignees": list(previous.additional_assignees),
                "additional_assignee_names": list(previous.additional_assignee_names),
                "is_joint": previous.is_joint,
                "mini_deadline": previous.mini_deadline.isoformat() if previous.mini_deadline else None,
                "completed_at": previous.completed_at,
            })
            continue

        primary, additional = await _resolve_assignees(step, index, resolver, member_assignments)
        is_completed = step.status == "completed"
        step_rows.append({
            "task_id": task_id,
            "step_order": order,
            "name": step.name,
            "status": (StepStatus.COMPLETED if is_completed else StepStatus.LOCKED).value,
            "assigned_to": primary,
            "assigned_to_name": step.assigned_to_name,
            "additional_assignees": additional,
            "additional_assignee_names": list(step.additional_assignee_names) if step.is_joint else [],
            "is_joint": step.is_joint and bool(additional),
            "mini_deadline": step.mini_deadline or None,
            "completed_at": now if is_completed else None,
        })

    first_open = next((row for row in step_rows if row["status"] != StepStatus.COMPLETED.value), None)
    if first_open:
        first_open["status"] = StepStatus.UNLOCKED.value

    await update_task(task_id, _task_fields(data))
    await delete_steps_for_task(task_id)
    await insert_steps(step_rows)

    if first_open is None and existing.status == TaskStatus.ACTIVE:
        await _move_task_status(task_id, existing.status, TaskStatus.COMPLETED, now)
    elif first_open is not None and existing.status == TaskStatus.COMPLETED:
        await _move_task_status(task_id, existing.status, TaskStatus.ACTIVE, None)

    logger.info(
        "Task edited",
        task_id=task_id,
        steps_count=len(step_rows),
        preserved_completed=len([row for row in step_rows if row["status"] == StepStatus.COMPLETED.value]),
    )
    return await _load_task_with_steps(task_id)


async def _move_task_status(
    task_id: str,
    current: TaskStatus,
    target: TaskStatus,
    completed_at: Optional[str],
) -> None:
    """Keep the task status in line with its rebuilt steps."""
    moved = await transition_task(
        task_id,
        current.value,
        {"status": target.value, "completed_at": completed_at},
    )
    if not moved:
        logger.warning("Task status changed during edit", task_id=task_id, expected_status=current.value)
        return
    logger.info("Task status follows edited steps", task_id=task_id, status=target.value)


async def duplicate_task(task_id: str) -> TaskWithSteps:
    """Copy a task as a fresh, non-started pipeline."""
    original = await _load_task_with_steps(task_id)

    copy = Task.model_validate(await create_task({
        "team_id": original.team_id,
        "title": f"Copy of {original.title}",
        "description": original.description,
        "conclusion": original.conclusion,
        "actionables": list(original.actionables),
        "deadline": None,
        "status": TaskStatus.ACTIVE.value,
        "created_by": original.created_by,
        "recurrence": original.recurrence.model_dump(mode="json") if original.recurrence else None,
        "source_task_id": None,
        "recurrence_count": 0,
    }))

    step_rows = [
        {
            "task_id": copy.id,
            "step_order": step.step_order,
            "name": step.name,
            "status": (StepStatus.UNLOCKED if step.step_order == 1 else StepStatus.LOCKED).value,
            "assigned_to": step.assigned_to,
            "assigned_to_name": step.assigned_to_name,
            "additional_assignees": list(step.additional_assignees),
            "additional_assignee_names": list(step.additional_assignee_names),
            "is_joint": step.is_joint,
            "mini_deadline": None,
            "completed_at": None,
        }
        for step in original.pipeline_steps
    ]
    steps = await _insert_steps_or_rollback(copy.id, step_rows) if step_rows else []

    logger.info("Task duplicated", task_id=task_id, new_task_id=copy.id)
    return TaskWithSteps.model_validate({**copy.model_dump(), "pipeline_steps": steps})


async def remove_task(task_id: str) -> None:
    """Delete a task and its steps."""
    row = await get_task(task_id)
    if not row:
        raise NotFoundError(f"Task not found: {task_id}")
    await delete_steps_for_task(task_id)
    await delete_task(task_id)
    logger.info("Task deleted", task_id=task_id)
