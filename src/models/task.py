"""Task models - a task is the container for an ordered pipeline of steps."""

from enum import Enum
from typing import Optional
from datetime import date
from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Task lifecycle status."""
    ACTIVE = "active"
    COMPLETED = "completed"


class RecurrenceType(str, Enum):
    """Recurrence unit."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Recurrence(BaseModel):
    """Recurrence pattern attached to a task."""
    type: RecurrenceType = Field(..., description="Unit: daily, weekly or monthly")
    interval: int = Field(default=1, ge=1, description="Every N units")
    enabled: bool = Field(default=True, description="Whether completion spawns a new cycle")


class Task(BaseModel):
    """Task row (tasks table)."""
    id: str = Field(..., description="Task ID (text)")
    team_id: str = Field(..., description="Owning team ID")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(None, description="Workflow summary")
    conclusion: Optional[str] = None
    actionables: list[str] = Field(default_factory=list)
    deadline: Optional[date] = Field(None, description="Overall deadline")
    status: TaskStatus = Field(default=TaskStatus.ACTIVE)
    created_by: Optional[str] = Field(None, description="Creator member ID")
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    source_task_id: Optional[str] = Field(None, description="Originating recurring task ID")
    recurrence_count: int = Field(default=0, ge=0, description="Cycle index, 0 for the original")

    @property
    def recurs(self) -> bool:
        return self.recurrence is not None and self.recurrence.enabled
