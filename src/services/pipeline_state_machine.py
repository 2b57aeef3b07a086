"""
Pipeline step state machine.

Steps move locked -> unlocked -> completed, with at most one unlocked step per
active task. Every status change is a guarded update that only applies while
the row still has the expected status, so two concurrent requests cannot both
win the same transition. Notifications, comments and recurrence run after the
primary transition and are best-effort.
"""

from typing import Optional

from src.models.pipeline_step import PipelineStep, StepStatus, TransitionResult
from src.models.task import Task, TaskStatus
from src.services.authorization import Action, require
from src.services.member_directory import load_actor
from src.services.notifications import (
    notify_step_claimed,
    notify_step_returned,
    notify_step_unlocked,
    notify_task_completed,
)
from src.services.recurrence import spawn_next_cycle
from src.services.supabase_client import (
    get_last_step,
    get_step,
    get_step_by_order,
    get_task,
    insert_comment,
    list_steps,
    transition_step,
    transition_task,
    update_step,
)
from src.utils.dates import utc_now_iso
from src.utils.errors import InvalidStateError, NoPreviousStepError, NotFoundError
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


async def _load_step(step_id: str) -> PipelineStep:
    row = await get_step(step_id)
    if not row:
        raise NotFoundError(f"Step not found: {step_id}")
    return PipelineStep.model_validate(row)


async def _load_task(task_id: str) -> Task:
    row = await get_task(task_id)
    if not row:
        raise NotFoundError(f"Task not found: {task_id}")
    return Task.model_validate(row)


async def complete_step(step_id: str, actor_id: str) -> TransitionResult:
    """Complete an unlocked step and unlock the next one, or close the task."""
    with log_timing("complete_step", logger, step_id=step_id):
        step = await _load_step(step_id)
        if step.status != StepStatus.UNLOCKED:
            raise InvalidStateError("Step is not available for completion")

        actor = await load_actor(actor_id)
        require(actor, Action.COMPLETE_STEP, step)

        now = utc_now_iso()
        completed_row = await transition_step(
            step.id,
            StepStatus.UNLOCKED.value,
            {"status": StepStatus.COMPLETED.value, "completed_at": now},
        )
        if not completed_row:
            raise InvalidStateError("Step was already updated by another request")

        result = TransitionResult(step=PipelineStep.model_validate(completed_row))
        task = await _load_task(step.task_id)

        next_row = await get_step_by_order(task.id, step.step_order + 1)
        if next_row:
            unlocked_row = await transition_step(
                next_row["id"],
                StepStatus.LOCKED.value,
                {"status": StepStatus.UNLOCKED.value},
            )
            if not unlocked_row:
                logger.warning(
                    "Next step was not locked, leaving it unchanged",
                    step_id=next_row["id"],
                    status=next_row.get("status"),
                )
                unlocked_row = next_row
            next_step = PipelineStep.model_validate(unlocked_row)
            result.next_step = next_step
            await notify_step_unlocked(task, next_step, actor)

            logger.info(
                "Step completed",
                step_id=step.id,
                task_id=task.id,
                next_step_id=next_step.id,
            )
            return result

        closed_row = await transition_task(
            task.id,
            TaskStatus.ACTIVE.value,
            {"status": TaskStatus.COMPLETED.value, "completed_at": now},
        )
        if not closed_row:
            logger.warning("Task was not active when its last step completed", task_id=task.id)
            return result

        result.task_completed = True
        logger.info("Pipeline completed", task_id=task.id, step_id=step.id)
        await notify_task_completed(task, actor)

        if task.recurs:
            try:
                steps = [PipelineStep.model_validate(row) for row in await list_steps(task.id)]
                new_task = await spawn_next_cycle(task, steps)
            except Exception as e:
                logger.error("Recurrence failed", task_id=task.id, error=str(e), exc_info=True)
                new_task = None
            if new_task:
                result.next_cycle_task_id = new_task.id

        return result


async def return_step(step_id: str, actor_id: str, reason: Optional[str] = None) -> TransitionResult:
    """Send an unlocked step back one position."""
    with log_timing("return_step", logger, step_id=step_id):
        step = await _load_step(step_id)
        if step.status != StepStatus.UNLOCKED:
            raise InvalidStateError("Can only return steps that are in progress")

        previous_row = await get_step_by_order(step.task_id, step.step_order - 1)
        if not previous_row:
            raise NoPreviousStepError("Cannot return the first step")

        actor = await load_actor(actor_id)
        require(actor, Action.RETURN_STEP, step)

        locked_row = await transition_step(
            step.id,
            StepStatus.UNLOCKED.value,
            {"status": StepStatus.LOCKED.value},
        )
        if not locked_row:
            raise InvalidStateError("Step was already updated by another request")

        previous = PipelineStep.model_validate(
            await update_step(
                previous_row["id"],
                {"status": StepStatus.UNLOCKED.value, "completed_at": None},
            )
        )

        logger.info(
            "Step returned",
            step_id=step.id,
            previous_step_id=previous.id,
            task_id=step.task_id,
        )

        reason = (reason or "").strip()
        if reason:
            try:
                await insert_comment({
                    "step_id": previous.id,
                    "member_id": actor.id,
                    "content": f'Returned from step "{step.name}": {reason}',
                    "attachments": [],
                })
            except Exception as e:
                logger.error("Failed to record return comment", step_id=previous.id, error=str(e))

            task_row = await get_task(step.task_id)
            if task_row:
                await notify_step_returned(Task.model_validate(task_row), step, previous, actor, reason)

        return TransitionResult(step=PipelineStep.model_validate(locked_row), next_step=previous)


async def claim_step(step_id: str, actor_id: str) -> TransitionResult:
    """Take sole ownership of an unlocked joint step."""
    with log_timing("claim_step", logger, step_id=step_id):
        step = await _load_step(step_id)
        if not step.is_joint:
            raise InvalidStateError("This step is not a joint assignment")
        if step.status != StepStatus.UNLOCKED:
            raise InvalidStateError("Can only claim steps that are in progress")

        actor = await load_actor(actor_id)
        require(actor, Action.CLAIM_STEP, step)

        claimed_row = await transition_step(
            step.id,
            StepStatus.UNLOCKED.value,
            {
                "assigned_to": actor.id,
                "assigned_to_name": actor.name,
                "additional_assignees": [],
                "additional_assignee_names": [],
                "is_joint": False,
            },
            guards={"is_joint": True},
        )
        if not claimed_row:
            raise InvalidStateError("Step was already claimed")

        logger.info("Joint step claimed", step_id=step.id, task_id=step.task_id, member_id=actor.id)
        await notify_step_claimed(step.task_id, step, actor)

        return TransitionResult(step=PipelineStep.model_validate(claimed_row))


async def reopen_task(task_id: str, actor_id: str) -> TransitionResult:
    """Reopen a completed task at its last step."""
    with log_timing("reopen_task", logger, task_id=task_id):
        actor = await load_actor(actor_id)
        require(actor, Action.REOPEN_TASK)

        task = await _load_task(task_id)
        if task.status != TaskStatus.COMPLETED:
            raise InvalidStateError("Only completed pipelines can be reopened")

        last_row = await get_last_step(task.id)
        if not last_row:
            raise InvalidStateError("No steps found for this pipeline")

        reopened = await transition_task(
            task.id,
            TaskStatus.COMPLETED.value,
            {"status": TaskStatus.ACTIVE.value, "completed_at": None},
        )
        if not reopened:
            raise InvalidStateError("Pipeline was already reopened")

        last_step = PipelineStep.model_validate(
            await update_step(
                last_row["id"],
                {"status": StepStatus.UNLOCKED.value, "completed_at": None},
            )
        )

        logger.info("Pipeline reopened", task_id=task.id, step_id=last_step.id)
        return TransitionResult(step=last_step)
