"""Email digest settings model."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class EmailFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    NONE = "none"


class EmailSettings(BaseModel):
    """Per-member digest preference (email_settings table, unique on member_id)."""
    member_id: str
    frequency: EmailFrequency = Field(default=EmailFrequency.WEEKLY, description="Weekly when unset")
    last_sent_at: Optional[str] = None
