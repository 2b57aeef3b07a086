"""Member directory models - businesses, teams and the people in them."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Member role within a business."""
    ADMIN = "admin"
    LEAD = "lead"
    USER = "user"


class Business(BaseModel):
    id: str
    name: str
    join_code: Optional[str] = None
    created_at: Optional[str] = None


class Team(BaseModel):
    id: str
    business_id: str
    name: str
    created_at: Optional[str] = None


class Member(BaseModel):
    """Member model - login users and assignable-only identities alike."""
    id: str = Field(..., description="Member ID (text)")
    business_id: Optional[str] = Field(None, description="Business ID (text FK)")
    name: str = Field(..., description="Display name")
    email: Optional[str] = Field(None, description="Login email, null for assignable-only members")
    role: UserRole = Field(default=UserRole.USER)
    is_archived: bool = Field(default=False, description="Hidden from assignment UIs")
    archived_at: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_lead_or_admin(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.LEAD)


class MemberWithTeams(Member):
    """Member plus the IDs of the teams it belongs to."""
    team_ids: list[str] = Field(default_factory=list)
