"""Per-request context passed from handlers into services."""

from typing import Any, Optional
from pydantic import BaseModel, Field

from src.utils.errors import ValidationError


class RequestContext(BaseModel):
    """Who is calling, for which team, under which correlation ID."""
    method: str = "GET"
    actor_id: Optional[str] = Field(None, description="Member performing the request")
    team_id: Optional[str] = None
    business_id: Optional[str] = None
    correlation_id: Optional[str] = None
    path_id: Optional[str] = Field(None, description="Resource ID from the route")
    query: dict[str, Any] = Field(default_factory=dict)
    body: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)

    def require_path_id(self, label: str = "id") -> str:
        if not self.path_id:
            raise ValidationError(f"{label} is required")
        return self.path_id

    def require_actor(self) -> str:
        if not self.actor_id:
            raise ValidationError("memberId is required")
        return self.actor_id
