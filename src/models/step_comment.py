"""Step comment models."""

from typing import Literal, Optional
from pydantic import BaseModel, Field


class CommentAttachment(BaseModel):
    """Uploaded file referenced from a comment."""
    id: str
    name: str
    url: str
    type: Literal["image", "file"] = "file"
    size: Optional[int] = Field(None, ge=0, description="Size in bytes")


class StepComment(BaseModel):
    id: Optional[str] = None
    step_id: str
    member_id: str
    content: str = Field(..., min_length=1)
    attachments: list[CommentAttachment] = Field(default_factory=list)
    created_at: Optional[str] = None
