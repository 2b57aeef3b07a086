"""Pipeline step model."""

from enum import Enum
from typing import Optional
from datetime import date
from pydantic import BaseModel, Field


class StepStatus(str, Enum):
    """Step lifecycle: locked -> unlocked -> completed."""
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    COMPLETED = "completed"


class PipelineStep(BaseModel):
    """One position in a task's linear pipeline (pipeline_steps table)."""
    id: str = Field(..., description="Step ID (text)")
    task_id: str = Field(..., description="Parent task ID")
    step_order: int = Field(..., ge=1, description="1-based position in the pipeline")
    name: str = Field(..., description="What needs to be done")
    status: StepStatus = Field(default=StepStatus.LOCKED)
    assigned_to: Optional[str] = Field(None, description="Primary assignee member ID")
    assigned_to_name: Optional[str] = Field(None, description="Name as extracted by the AI")
    additional_assignees: list[str] = Field(default_factory=list, description="Joint assignee member IDs")
    additional_assignee_names: list[str] = Field(default_factory=list)
    is_joint: bool = Field(default=False, description="Claimable by any eligible assignee")
    mini_deadline: Optional[date] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None

    def eligible_member_ids(self) -> list[str]:
        """Primary assignee followed by additional assignees, without duplicates."""
        ids: list[str] = []
        if self.assigned_to:
            ids.append(self.assigned_to)
        if self.is_joint:
            for member_id in self.additional_assignees:
                if member_id and member_id not in ids:
                    ids.append(member_id)
        return ids

    def involves(self, member_id: str) -> bool:
        return self.assigned_to == member_id or member_id in self.additional_assignees


class TransitionResult(BaseModel):
    """Outcome of a state machine operation."""
    step: Optional[PipelineStep] = None
    next_step: Optional[PipelineStep] = None
    task_completed: bool = False
    next_cycle_task_id: Optional[str] = None
