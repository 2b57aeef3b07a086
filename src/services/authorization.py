"""Authorization policy shared by every pipeline transition."""

from enum import Enum
from typing import Optional

from src.models.member import Member
from src.models.pipeline_step import PipelineStep
from src.utils.errors import UnauthorizedError


class Action(str, Enum):
    COMPLETE_STEP = "complete_step"
    RETURN_STEP = "return_step"
    CLAIM_STEP = "claim_step"
    REOPEN_TASK = "reopen_task"


def _holds_step(actor: Member, step: PipelineStep) -> bool:
    """Actor may act on the step as its holder (complete or send back)."""
    if not step.assigned_to:
        return True
    if step.assigned_to == actor.id or actor.is_admin:
        return True
    return step.is_joint and actor.id in step.additional_assignees


def _may_claim(actor: Member, step: PipelineStep) -> bool:
    return (
        step.assigned_to == actor.id
        or actor.id in step.additional_assignees
        or actor.is_lead_or_admin
    )


def authorize(actor: Member, action: Action, step: Optional[PipelineStep] = None) -> bool:
    """Return True when ``actor`` may perform ``action`` on ``step``."""
    if action == Action.REOPEN_TASK:
        return actor.is_admin
    if step is None:
        return False
    if action in (Action.COMPLETE_STEP, Action.RETURN_STEP):
        return _holds_step(actor, step)
    if action == Action.CLAIM_STEP:
        return _may_claim(actor, step)
    return False


_DENIAL_MESSAGES = {
    Action.COMPLETE_STEP: "Only the assigned member can complete this step",
    Action.RETURN_STEP: "Only the assigned member can return this step",
    Action.CLAIM_STEP: "You are not authorized to claim this step",
    Action.REOPEN_TASK: "Only admins can reopen a pipeline",
}


def require(actor: Member, action: Action, step: Optional[PipelineStep] = None) -> None:
    """Raise UnauthorizedError unless the policy allows the action."""
    if not authorize(actor, action, step):
        raise UnauthorizedError(_DENIAL_MESSAGES[action])
