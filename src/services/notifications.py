"""
Notification emitter.

Builds in-app notifications for pipeline transitions, task creation and
comment mentions. Delivery is best-effort: a failed insert is logged and
never rolls back the transition that triggered it.
"""

import re
from typing import Iterable, Optional

from src.models.member import Member
from src.models.notification import NotificationType
from src.models.pipeline_step import PipelineStep
from src.models.task import Task
from src.services.supabase_client import insert_notifications, search_members_by_name
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

MENTION_PATTERN = re.compile(r"@(\w+)")
MENTION_PREVIEW_LENGTH = 100


def _notification(
    member_id: str,
    title: str,
    content: str,
    task_id: Optional[str],
    step_id: Optional[str] = None,
    created_by: Optional[str] = None,
    type: NotificationType = NotificationType.ASSIGNMENT,
) -> dict:
    return {
        "member_id": member_id,
        "type": type.value,
        "title": title,
        "content": content,
        "link_task_id": task_id,
        "link_step_id": step_id,
        "is_read": False,
        "is_addressed": False,
        "created_by": created_by,
    }


async def _emit(notifications: list[dict], reason: str) -> int:
    """Insert notifications, logging instead of raising on failure."""
    if not notifications:
        return 0
    try:
        await insert_notifications(notifications)
    except Exception as e:
        logger.error(
            "Failed to send notifications",
            reason=reason,
            count=len(notifications),
            error=str(e),
        )
        return 0
    logger.info("Notifications sent", reason=reason, count=len(notifications))
    return len(notifications)


def _recipients(member_ids: Iterable[Optional[str]], exclude: Optional[str] = None) -> list[str]:
    return [member_id for member_id in dict.fromkeys(member_ids) if member_id and member_id != exclude]


async def notify_step_unlocked(task: Task, step: PipelineStep, actor: Member) -> int:
    """Tell every eligible assignee of a newly unlocked step that it is their turn."""
    notifications = [
        _notification(
            member_id,
            title=f'Your turn: "{step.name}"',
            content=f'{actor.name} completed the previous step. "{task.title}" is now waiting for you.',
            task_id=task.id,
            step_id=step.id,
            created_by=actor.id,
        )
        for member_id in _recipients(step.eligible_member_ids(), exclude=actor.id)
    ]
    return await _emit(notifications, "step_unlocked")


async def notify_task_completed(task: Task, actor: Member) -> int:
    """Tell the creator that the final step was completed."""
    if not task.created_by or task.created_by == actor.id:
        return 0
    notification = _notification(
        task.created_by,
        title=f'Task completed: "{task.title}"',
        content=f"{actor.name} completed the final step. The pipeline is done.",
        task_id=task.id,
        created_by=actor.id,
    )
    return await _emit([notification], "task_completed")


async def notify_step_returned(
    task: Task,
    returned_from: PipelineStep,
    previous: PipelineStep,
    actor: Member,
    reason: Optional[str] = None,
) -> int:
    """Tell the previous step's assignees that work came back to them."""
    content = f'{actor.name} returned "{returned_from.name}" to "{previous.name}"'
    content = f"{content}: {reason}" if reason else f"{content}."
    notifications = [
        _notification(
            member_id,
            title=f"Step returned: {task.title}",
            content=content,
            task_id=task.id,
            step_id=previous.id,
            created_by=actor.id,
        )
        for member_id in _recipients(previous.eligible_member_ids(), exclude=actor.id)
    ]
    return await _emit(notifications, "step_returned")


async def notify_step_claimed(task_id: str, step: PipelineStep, claimer: Member) -> int:
    """Tell the other previously eligible assignees that a joint step was claimed."""
    notifications = [
        _notification(
            member_id,
            title=f'{claimer.name} claimed "{step.name}"',
            content="This shared step has been claimed by another team member.",
            task_id=task_id,
            step_id=step.id,
            created_by=claimer.id,
        )
        for member_id in _recipients(step.eligible_member_ids(), exclude=claimer.id)
    ]
    return await _emit(notifications, "step_claimed")


async def notify_new_cycle(task: Task, first_step: PipelineStep) -> int:
    """Tell the first step's assignees that a recurring task started a new cycle."""
    deadline = f" Due {task.deadline.isoformat()}." if task.deadline else ""
    notifications = [
        _notification(
            member_id,
            title=f'New cycle: "{task.title}" - Your turn!',
            content=f'A new cycle of "{task.title}" has started with "{first_step.name}".{deadline}',
            task_id=task.id,
            step_id=first_step.id,
        )
        for member_id in _recipients(first_step.eligible_member_ids())
    ]
    return await _emit(notifications, "recurrence_cycle")


async def notify_task_created(task: Task, steps: list[PipelineStep], creator: Optional[Member]) -> int:
    """Tell every assignee of a freshly created task about their step."""
    creator_id = creator.id if creator else None
    creator_name = creator.name if creator else "Someone"
    notifications = []
    seen: set[str] = set()

    for step in steps:
        for member_id in _recipients(step.eligible_member_ids(), exclude=creator_id):
            if member_id in seen:
                continue
            seen.add(member_id)
            if step.step_order == 1:
                title = f'New task: "{task.title}" - Your turn!'
                content = f'{creator_name} created a task and you\'re up first: "{step.name}"'
            else:
                title = f'Assigned to step in "{task.title}"'
                content = f'{creator_name} assigned you to step {step.step_order}: "{step.name}"'
            notifications.append(
                _notification(
                    member_id,
                    title=title,
                    content=content,
                    task_id=task.id,
                    step_id=step.id,
                    created_by=creator_id,
                )
            )

    return await _emit(notifications, "task_created")


def extract_mentions(content: str) -> list[str]:
    """Names following an @ sign, in order of first appearance."""
    return list(dict.fromkeys(MENTION_PATTERN.findall(content or "")))


async def notify_mentions(
    content: str,
    author: Member,
    step_id: str,
    task_id: Optional[str],
    step_name: str,
) -> int:
    """
    Notify every member whose name contains a mentioned fragment.

    Matching is a case-insensitive substring search over all members, not only
    the step's team. The author is never notified and each member at most once.
    """
    mentions = extract_mentions(content)
    if not mentions:
        return 0

    member_ids: list[str] = []
    for fragment in mentions:
        try:
            matches = await search_members_by_name(fragment)
        except Exception as e:
            logger.warning("Mention lookup failed", mention=fragment, error=str(e))
            continue
        member_ids.extend(row["id"] for row in matches)

    preview = content[:MENTION_PREVIEW_LENGTH]
    if len(content) > MENTION_PREVIEW_LENGTH:
        preview += "..."

    notifications = [
        _notification(
            member_id,
            title=f'{author.name} mentioned you in "{step_name}"',
            content=preview,
            task_id=task_id,
            step_id=step_id,
            created_by=author.id,
            type=NotificationType.MENTION,
        )
        for member_id in _recipients(member_ids, exclude=author.id)
    ]
    return await _emit(notifications, "mention")
