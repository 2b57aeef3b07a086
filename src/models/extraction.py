"""Models exchanged with the AI extraction flow.

Three shapes live here:

* ``FundamentalSheet`` - the normalized title/steps/deadline view of a persisted
  task, sent to the LLM as edit context.
* ``SheetExtraction`` - the strict structured output requested from the LLM. It
  is a tagged union: ``ready`` proposals must carry a title and at least one step,
  ``needs_clarification`` replies carry a question and whatever was understood
  so far. Anything else fails validation instead of defaulting to empty data.
* ``ExtractedTaskData`` / ``SmartExtractionResult`` - the normalized proposal
  returned to the client, with our own roster matching applied.
"""

from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field

from src.models.task import Recurrence


class ChatMessage(BaseModel):
    """One turn of the task-creation chat."""
    role: Literal["user", "assistant"]
    content: str


class SheetStep(BaseModel):
    """A persisted step as shown to the LLM in edit mode."""
    step_id: Optional[str] = None
    order: int
    what: str
    who: Optional[str] = None
    who_id: Optional[str] = None
    by_when: Optional[str] = None
    status: Literal["pending", "completed"] = "pending"
    completed_at: Optional[str] = None


class FundamentalSheet(BaseModel):
    """Normalized title/steps/deadline representation of a task."""
    task_id: Optional[str] = None
    title: str
    steps: list[SheetStep] = Field(default_factory=list)
    overall_deadline: Optional[str] = None


class ExtractedSheetStep(BaseModel):
    """A step as extracted by the LLM."""
    what: str = Field(..., min_length=1, description="Action description, sentence case")
    who: Optional[str] = Field(None, description="Exact person name from the user's text")
    who_alternatives: Optional[list[str]] = Field(
        None,
        description="For 'X or Y' patterns, every candidate name in order"
    )
    is_joint: bool = Field(False, description="True if any of several people can do the step")
    by_when: Optional[str] = Field(None, description="Step deadline, YYYY-MM-DD")
    status: Literal["pending", "completed"] = "pending"


class _ExtractionBase(BaseModel):
    summary: Optional[str] = Field(None, max_length=300, description="Workflow description, max 150 chars")
    overall_deadline: Optional[str] = Field(None, description="YYYY-MM-DD, usually the last step's date")
    recurrence: Optional[Recurrence] = Field(None, description="Only when the user asks for a repeating task")
    ai_message: str = Field(..., min_length=1, description="Brief reply to the user")


class ReadyExtraction(_ExtractionBase):
    """The user confirmed, or every required field is clearly provided."""
    kind: Literal["ready"] = "ready"
    title: str = Field(..., min_length=1, description="Title Case task name")
    steps: list[ExtractedSheetStep] = Field(..., min_length=1)


class ClarificationExtraction(_ExtractionBase):
    """More input is needed before the task can be created."""
    kind: Literal["needs_clarification"] = "needs_clarification"
    title: Optional[str] = None
    steps: list[ExtractedSheetStep] = Field(default_factory=list)


class SheetExtraction(BaseModel):
    """Structured output envelope requested from the chat model."""
    result: Annotated[
        Union[ReadyExtraction, ClarificationExtraction],
        Field(discriminator="kind"),
    ]


class ExtractedStep(BaseModel):
    """Normalized step proposal."""
    name: str = "Untitled Step"
    assigned_to_name: Optional[str] = None
    additional_assignee_names: list[str] = Field(default_factory=list)
    is_joint: bool = False
    mini_deadline: Optional[str] = None
    status: Literal["pending", "completed"] = "pending"


class ExtractedTaskData(BaseModel):
    """Normalized task proposal, also the payload of confirm/save requests."""
    title: str = Field(..., min_length=1)
    summary: Optional[str] = None
    conclusion: Optional[str] = None
    actionables: list[str] = Field(default_factory=list)
    deadline: Optional[str] = None
    recurrence: Optional[Recurrence] = None
    pipeline_steps: list[ExtractedStep] = Field(default_factory=list)
    confidence: Literal["high", "medium", "low"] = "medium"


class MatchedMember(BaseModel):
    """An extracted name resolved against the team roster."""
    step_index: int
    extracted_name: str
    member_id: str
    member_name: str
    is_alternative: bool = False


class SmartExtractionResult(BaseModel):
    extracted_data: ExtractedTaskData
    matched_members: list[MatchedMember] = Field(default_factory=list)
    unmatched_names: list[str] = Field(default_factory=list)
    ai_message: str
    ready_to_create: bool = False
    suggested_new_members: list[str] = Field(default_factory=list)
