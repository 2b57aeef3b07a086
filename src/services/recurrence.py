"""Recurrence engine - spawns the next cycle of a completed recurring task."""

from datetime import date, timedelta
from typing import Optional

from src.models.pipeline_step import PipelineStep, StepStatus
from src.models.task import Recurrence, RecurrenceType, Task, TaskStatus
from src.services.notifications import notify_new_cycle
from src.services.supabase_client import create_task, delete_task, insert_steps
from src.utils.dates import add_months, format_date, utc_now
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def compute_next_deadline(base: Optional[date], recurrence: Recurrence, today: Optional[date] = None) -> date:
    """
    Advance ``base`` (or today when the task had no deadline) by one interval.

    Monthly steps use overflow date arithmetic, see ``add_months``.
    """
    start = base or today or utc_now().date()
    interval = recurrence.interval
    if recurrence.type == RecurrenceType.DAILY:
        return start + timedelta(days=interval)
    if recurrence.type == RecurrenceType.WEEKLY:
        return start + timedelta(weeks=interval)
    return add_months(start, interval)


def build_next_cycle_task(task: Task, next_deadline: date) -> dict:
    """Row for the cloned task of the next cycle."""
    return {
        "team_id": task.team_id,
        "title": task.title,
        "description": task.description,
        "conclusion": task.conclusion,
        "actionables": list(task.actionables),
        "deadline": format_date(next_deadline),
        "status": TaskStatus.ACTIVE.value,
        "created_by": task.created_by,
        "recurrence": task.recurrence.model_dump(mode="json") if task.recurrence else None,
        "source_task_id": task.source_task_id or task.id,
        "recurrence_count": task.recurrence_count + 1,
    }


def build_next_cycle_steps(
    steps: list[PipelineStep],
    new_task_id: str,
    old_deadline: Optional[date],
    new_deadline: date,
) -> list[dict]:
    """
    Clone step rows for a new cycle.

    Step deadlines keep their offset from the task deadline. Without both an
    old step deadline and an old task deadline the clone has no deadline.
    """
    rows = []
    for step in sorted(steps, key=lambda s: s.step_order):
        mini_deadline = None
        if step.mini_deadline and old_deadline:
            mini_deadline = new_deadline + (step.mini_deadline - old_deadline)

        rows.append({
            "task_id": new_task_id,
            "step_order": step.step_order,
            "name": step.name,
            "status": (StepStatus.UNLOCKED if step.step_order == 1 else StepStatus.LOCKED).value,
            "assigned_to": step.assigned_to,
            "assigned_to_name": step.assigned_to_name,
            "additional_assignees": list(step.additional_assignees),
            "additional_assignee_names": list(step.additional_assignee_names),
            "is_joint": step.is_joint,
            "mini_deadline": format_date(mini_deadline),
            "completed_at": None,
        })
    return rows


async def spawn_next_cycle(
    task: Task,
    steps: list[PipelineStep],
    today: Optional[date] = None,
) -> Optional[Task]:
    """
    Create the next cycle of ``task``.

    Returns the new task, or None when the task does not recur or the cycle
    could not be stored. Failures are logged and never raised.
    """
    if not task.recurs:
        return None

    next_deadline = compute_next_deadline(task.deadline, task.recurrence, today=today)

    try:
        new_task = Task.model_validate(await create_task(build_next_cycle_task(task, next_deadline)))
    except Exception as e:
        logger.error("Failed to create recurring task", task_id=task.id, error=str(e))
        return None

    step_rows = build_next_cycle_steps(steps, new_task.id, task.deadline, next_deadline)
    try:
        created_steps = [PipelineStep.model_validate(row) for row in await insert_steps(step_rows)]
    except Exception as e:
        logger.error("Failed to create recurring task steps", task_id=new_task.id, error=str(e))
        try:
            await delete_task(new_task.id)
        except Exception as cleanup_error:
            logger.error("Failed to remove incomplete cycle", task_id=new_task.id, error=str(cleanup_error))
        return None

    logger.info(
        "Created next recurring cycle",
        task_id=task.id,
        new_task_id=new_task.id,
        recurrence_count=new_task.recurrence_count,
        deadline=format_date(next_deadline),
    )

    first_step = next((step for step in created_steps if step.step_order == 1), None)
    if first_step:
        await notify_new_cycle(new_task, first_step)

    return new_task
