"""Read-side projections for the dashboard grid and digest emails."""

from typing import Optional
from pydantic import BaseModel, Field

from src.models.member import Member
from src.models.pipeline_step import PipelineStep
from src.models.task import Task


class TaskWithSteps(Task):
    """Task joined with its steps, ordered by step_order."""
    pipeline_steps: list[PipelineStep] = Field(default_factory=list)


class PipelineScore(BaseModel):
    """Per-task progress row."""
    task_id: str
    title: str
    completed: int
    total: int
    percent: int = Field(..., ge=0, le=100)
    current_step: Optional[str] = None
    current_assignee: Optional[str] = None


class MemberStats(BaseModel):
    """Per-member step counts across the visible tasks."""
    member_id: str
    name: str
    now: int = 0
    upcoming: int = 0
    done: int = 0

    @property
    def total(self) -> int:
        return self.now + self.upcoming + self.done


class AssigneeColumn(BaseModel):
    """All steps a member appears on. Joint steps show under every eligible member."""
    member_id: str
    name: str
    step_ids: list[str] = Field(default_factory=list)


class DashboardSummary(BaseModel):
    tasks: list[TaskWithSteps]
    members: list[Member]
    columns: list[AssigneeColumn]
    scorecard: list[PipelineScore]
    member_stats: list[MemberStats]


class DigestStep(BaseModel):
    """A step line in the summary email."""
    task_id: str
    task_title: str
    step_name: str
    assignee: Optional[str] = None
    deadline: Optional[str] = None
    completed_at: Optional[str] = None


class MemberDigest(BaseModel):
    """Everything rendered into one member's summary email."""
    member_id: str
    member_name: str
    email: str
    business_name: str
    scorecard: list[PipelineScore] = Field(default_factory=list)
    member_stats: list[MemberStats] = Field(default_factory=list)
    now: list[DigestStep] = Field(default_factory=list)
    next: list[DigestStep] = Field(default_factory=list)
    done: list[DigestStep] = Field(default_factory=list)
