"""Member/team directory - identity resolution and team scoping."""

from typing import Optional

from src.models.member import Member, Team, UserRole
from src.services.supabase_client import (
    attach_member_to_team,
    create_member,
    get_member,
    get_members,
    get_team,
    list_team_member_ids,
)
from src.utils.errors import NotFoundError, UnauthorizedError
from src.utils.logging import get_structured_logger, mask_member_id

logger = get_structured_logger(__name__)


async def load_member(member_id: Optional[str]) -> Member:
    """Load a member or raise NotFoundError."""
    if not member_id:
        raise NotFoundError("Member not found")
    row = await get_member(member_id)
    if not row:
        raise NotFoundError(f"Member not found: {member_id}")
    return Member.model_validate(row)


async def load_actor(member_id: Optional[str]) -> Member:
    """Load the member performing an action. Unknown actors are unauthorized."""
    try:
        return await load_member(member_id)
    except NotFoundError:
        logger.warning("Unknown actor", member_id=mask_member_id(member_id))
        raise UnauthorizedError("Unknown member")


async def get_team_roster(team_id: str, include_archived: bool = False) -> list[Member]:
    """Members attached to a team, archived members excluded by default."""
    member_ids = await list_team_member_ids(team_id)
    rows = await get_members(member_ids)
    members = [Member.model_validate(row) for row in rows]
    if not include_archived:
        members = [member for member in members if not member.is_archived]
    return members


async def get_team_business_id(team_id: str) -> str:
    row = await get_team(team_id)
    if not row:
        raise NotFoundError(f"Team not found: {team_id}")
    return Team.model_validate(row).business_id


async def get_member_names(member_ids: list[str]) -> dict[str, str]:
    """Map member IDs to display names."""
    rows = await get_members(member_ids)
    return {row["id"]: row["name"] for row in rows}


def match_name_to_member(name: Optional[str], roster: list[Member]) -> Optional[Member]:
    """
    Resolve an extracted name against a roster.

    Case-insensitive, trimmed. A member matches when the names are equal or
    either one contains the other. The first matching roster entry wins.
    """
    if not name or not name.strip():
        return None
    wanted = name.strip().lower()
    for member in roster:
        candidate = member.name.strip().lower()
        if not candidate:
            continue
        if candidate == wanted or wanted in candidate or candidate in wanted:
            return member
    return None


class TeamMemberResolver:
    """
    Get-or-create members by name within one team.

    Names are matched with the same rules the extraction preview uses, active
    members before archived ones, so a name shown as matched never spawns a
    duplicate. Lookups only consider the team's own roster, so the same name
    confirmed from two teams yields two separate member records. Created
    members are plain users without email, attached to the team's business
    and team.
    """

    def __init__(self, team_id: str, business_id: str, roster: list[Member]):
        self.team_id = team_id
        self.business_id = business_id
        self._active = [member for member in roster if not member.is_archived]
        self._archived = [member for member in roster if member.is_archived]

    @classmethod
    async def for_team(cls, team_id: str) -> "TeamMemberResolver":
        business_id = await get_team_business_id(team_id)
        roster = await get_team_roster(team_id, include_archived=True)
        return cls(team_id, business_id, roster)

    async def resolve(self, name: Optional[str]) -> Optional[str]:
        if not name or not name.strip():
            return None
        existing = match_name_to_member(name, self._active) or match_name_to_member(name, self._archived)
        if existing:
            return existing.id

        row = await create_member({
            "name": name.strip(),
            "email": None,
            "role": UserRole.USER.value,
            "business_id": self.business_id,
        })
        await attach_member_to_team(row["id"], self.team_id)
        self._active.append(Member.model_validate(row))

        logger.info(
            "Auto-created member for unmatched name",
            member_id=row["id"],
            team_id=self.team_id,
        )
        return row["id"]
