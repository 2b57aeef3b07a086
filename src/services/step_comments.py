"""Step detail, limited step edits and step comments."""

from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from src.models.pipeline_step import PipelineStep
from src.models.step_comment import CommentAttachment, StepComment
from src.services.member_directory import get_member_names, load_actor
from src.services.notifications import notify_mentions
from src.services.supabase_client import (
    get_step,
    get_step_by_order,
    get_task,
    insert_comment,
    list_comments,
    update_step,
)
from src.utils.dates import parse_date
from src.utils.errors import NotFoundError, ValidationError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Status is owned by the state machine and never patched directly.
EDITABLE_STEP_FIELDS = ("name", "mini_deadline", "assigned_to", "assigned_to_name")


async def _load_step(step_id: str) -> PipelineStep:
    row = await get_step(step_id)
    if not row:
        raise NotFoundError(f"Step not found: {step_id}")
    return PipelineStep.model_validate(row)


async def get_comments(step_id: str) -> list[dict]:
    """Comments of a step, oldest first, with the author's name."""
    rows = await list_comments(step_id)
    names = await get_member_names([row["member_id"] for row in rows])
    comments = []
    for row in rows:
        comment = StepComment.model_validate(row).model_dump(mode="json")
        comment["member_name"] = names.get(row["member_id"])
        comments.append(comment)
    return comments


async def get_step_detail(step_id: str) -> dict:
    """Step with its task, neighbours and comments."""
    step = await _load_step(step_id)
    task = await get_task(step.task_id)
    previous_row = await get_step_by_order(step.task_id, step.step_order - 1) if step.step_order > 1 else None
    next_row = await get_step_by_order(step.task_id, step.step_order + 1)

    return {
        "step": step.model_dump(mode="json"),
        "task": task,
        "previous_step": PipelineStep.model_validate(previous_row).model_dump(mode="json") if previous_row else None,
        "next_step": PipelineStep.model_validate(next_row).model_dump(mode="json") if next_row else None,
        "comments": await get_comments(step_id),
    }


async def update_step_fields(step_id: str, changes: dict) -> PipelineStep:
    """Apply a limited edit to a step."""
    await _load_step(step_id)

    updates = {field: changes[field] for field in EDITABLE_STEP_FIELDS if field in changes}
    if not updates:
        raise ValidationError(f"Nothing to update. Editable fields: {', '.join(EDITABLE_STEP_FIELDS)}")
    if "name" in updates and not (updates["name"] or "").strip():
        raise ValidationError("Step name cannot be empty")
    if updates.get("mini_deadline"):
        parsed = parse_date(updates["mini_deadline"])
        if not parsed:
            raise ValidationError(f"Invalid date: {updates['mini_deadline']}")
        updates["mini_deadline"] = parsed.isoformat()

    row = await update_step(step_id, updates)
    logger.info("Step updated", step_id=step_id, fields=sorted(updates))
    return PipelineStep.model_validate(row)


async def add_comment(
    step_id: str,
    member_id: Optional[str],
    content: Optional[str],
    attachments: Optional[list[dict]] = None,
) -> dict:
    """Post a comment on a step and notify everyone it mentions."""
    content = (content or "").strip()
    if not content and not attachments:
        raise ValidationError("Comment content is required")

    step = await _load_step(step_id)
    author = await load_actor(member_id)

    try:
        parsed_attachments = [CommentAttachment.model_validate(item) for item in attachments or []]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid attachment: {e.error_count()} errors")

    row = await insert_comment({
        "step_id": step.id,
        "member_id": author.id,
        "content": content or "(attachment)",
        "attachments": [item.model_dump() for item in parsed_attachments],
    })
    comment = StepComment.model_validate(row).model_dump(mode="json")
    comment["member_name"] = author.name

    logger.info(
        "Comment added",
        step_id=step.id,
        member_id=author.id,
        attachments_count=len(parsed_attachments),
    )

    await notify_mentions(content, author, step_id=step.id, task_id=step.task_id, step_name=step.name)
    return comment
