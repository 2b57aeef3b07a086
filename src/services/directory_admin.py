"""
Business, team and member administration.

Backs the settings screens: listing and creating members, changing roles,
archiving, moving members between teams, and managing teams and businesses.
Auto-created members from task confirmation live in member_directory; this
module is the explicit, user-driven side of the same tables.
"""

import secrets
from typing import Any, Optional

from src.models.member import Business, Member, MemberWithTeams, Team, UserRole
from src.services.member_directory import get_team_roster, load_member
from src.services.supabase_client import (
    attach_member_to_team,
    create_business,
    create_member,
    create_team,
    delete_team,
    detach_member_from_team,
    get_business,
    get_member_by_email,
    get_team,
    get_teams,
    list_businesses,
    list_member_team_ids,
    list_member_team_links,
    list_members,
    list_team_member_ids,
    list_teams,
    replace_member_teams,
    team_has_tasks,
    update_business,
    update_member,
    update_team,
)
from src.utils.dates import utc_now_iso
from src.utils.errors import NotFoundError, ValidationError
from src.utils.logging import get_structured_logger, mask_email

logger = get_structured_logger(__name__)

JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
JOIN_CODE_LENGTH = 6
EDITABLE_MEMBER_FIELDS = ("name", "email", "role", "is_archived")


def generate_join_code() -> str:
    """Six characters, no look-alikes (O/0, I/1)."""
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def _required_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value.strip()


def _parse_role(value: Any) -> UserRole:
    try:
        return UserRole(value)
    except ValueError:
        raise ValidationError(f"Invalid role: {value}")


def _normalize_email(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("email must be a string")
    return value.strip().lower() or None


def _parse_team_ids(value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        raise ValidationError("teamIds must be a list of team IDs")
    return list(dict.fromkeys(value))


async def _ensure_email_free(email: Optional[str], member_id: Optional[str] = None) -> None:
    if not email:
        return
    holder = await get_member_by_email(email)
    if holder and holder["id"] != member_id:
        raise ValidationError("Email already exists")


async def load_team(team_id: Optional[str]) -> Team:
    if not team_id:
        raise ValidationError("teamId is required")
    row = await get_team(team_id)
    if not row:
        raise NotFoundError(f"Team not found: {team_id}")
    return Team.model_validate(row)


async def load_business(business_id: Optional[str]) -> Business:
    if not business_id:
        raise ValidationError("businessId is required")
    row = await get_business(business_id)
    if not row:
        raise NotFoundError(f"Business not found: {business_id}")
    return Business.model_validate(row)


async def _ensure_teams_in_business(team_ids: list[str], business_id: Optional[str]) -> None:
    if not team_ids:
        return
    teams = [Team.model_validate(row) for row in await get_teams(team_ids)]
    found = {team.id for team in teams}
    missing = [team_id for team_id in team_ids if team_id not in found]
    if missing:
        raise NotFoundError(f"Team not found: {missing[0]}")
    if business_id and any(team.business_id != business_id for team in teams):
        raise ValidationError("Teams must belong to the member's business")


# Members

async def list_directory_members(
    business_id: Optional[str] = None,
    include_teams: bool = False,
) -> list[MemberWithTeams]:
    """Members ordered by name, archived ones included so admins can restore them."""
    members = [MemberWithTeams.model_validate(row) for row in await list_members(business_id)]
    if include_teams and members:
        links = await list_member_team_links([member.id for member in members])
        for member in members:
            member.team_ids = [link["team_id"] for link in links if link["member_id"] == member.id]
    return members


async def list_team_members(team_id: str, include_archived: bool = True) -> list[Member]:
    await load_team(team_id)
    roster = await get_team_roster(team_id, include_archived=include_archived)
    return sorted(roster, key=lambda member: member.name.lower())


async def create_directory_member(
    name: Any,
    business_id: Optional[str],
    email: Any = None,
    role: Any = None,
    team_ids: Any = None,
) -> MemberWithTeams:
    """
    Add a member to a business and optionally to some of its teams.

    Email is optional; members without one can be assigned work but cannot
    sign in or receive summaries.
    """
    if not isinstance(name, str) or not name.strip() or not business_id:
        raise ValidationError("Name and business ID are required")
    business = await load_business(business_id)
    email = _normalize_email(email)
    member_role = _parse_role(role or UserRole.USER.value)
    team_ids = _parse_team_ids(team_ids)

    await _ensure_email_free(email)
    await _ensure_teams_in_business(team_ids, business.id)

    row = await create_member({
        "name": name.strip(),
        "email": email,
        "role": member_role.value,
        "business_id": business.id,
    })
    for team_id in team_ids:
        await attach_member_to_team(row["id"], team_id)

    logger.info(
        "Member created",
        member_id=row["id"],
        business_id=business.id,
        role=member_role.value,
        email=mask_email(email),
        teams_count=len(team_ids),
    )
    return MemberWithTeams.model_validate({**row, "team_ids": team_ids})


async def update_member_profile(member_id: str, changes: dict) -> Member:
    """
    Apply name, email, role and archive changes to a member.

    Archiving stamps archived_at; unarchiving clears it.
    """
    unknown = sorted(set(changes) - set(EDITABLE_MEMBER_FIELDS))
    if unknown:
        raise ValidationError(f"Unsupported member fields: {', '.join(unknown)}")
    if not changes:
        raise ValidationError("No member fields to update")

    member = await load_member(member_id)
    updates: dict[str, Any] = {}

    if "name" in changes:
        updates["name"] = _required_text(changes["name"], "name cannot be empty")
    if "email" in changes:
        updates["email"] = _normalize_email(changes["email"])
        await _ensure_email_free(updates["email"], member.id)
    if "role" in changes:
        updates["role"] = _parse_role(changes["role"]).value
    if "is_archived" in changes:
        if not isinstance(changes["is_archived"], bool):
            raise ValidationError("is_archived must be true or false")
        updates["is_archived"] = changes["is_archived"]
        if changes["is_archived"] != member.is_archived:
            updates["archived_at"] = utc_now_iso() if changes["is_archived"] else None

    row = await update_member(member.id, updates)
    if not row:
        raise NotFoundError(f"Member not found: {member_id}")

    logger.info("Member updated", member_id=member.id, fields=sorted(updates))
    return Member.model_validate(row)


async def get_member_teams(member_id: str) -> list[Team]:
    """Teams a member belongs to. Admins without explicit teams see the whole business."""
    member = await load_member(member_id)
    team_ids = await list_member_team_ids(member.id)
    if not team_ids and member.is_admin and member.business_id:
        rows = await list_teams(member.business_id)
    else:
        rows = await get_teams(team_ids)
    return [Team.model_validate(row) for row in rows]


async def set_member_teams(member_id: str, team_ids: Any) -> list[str]:
    member = await load_member(member_id)
    team_ids = _parse_team_ids(team_ids)
    await _ensure_teams_in_business(team_ids, member.business_id)
    await replace_member_teams(member.id, team_ids)
    logger.info("Member teams replaced", member_id=member.id, teams_count=len(team_ids))
    return team_ids


async def add_member_to_team(team_id: str, member_id: Optional[str]) -> None:
    if not member_id:
        raise ValidationError("Member ID is required")
    team = await load_team(team_id)
    member = await load_member(member_id)
    if member.business_id and member.business_id != team.business_id:
        raise ValidationError("Member belongs to another business")
    if member.id in await list_team_member_ids(team.id):
        raise ValidationError("Member already in team")
    await attach_member_to_team(member.id, team.id)
    logger.info("Member added to team", member_id=member.id, team_id=team.id)


async def remove_member_from_team(team_id: str, member_id: Optional[str]) -> None:
    if not member_id:
        raise ValidationError("Member ID is required")
    team = await load_team(team_id)
    await detach_member_from_team(member_id, team.id)
    logger.info("Member removed from team", member_id=member_id, team_id=team.id)


# Teams

async def list_business_teams(business_id: Optional[str] = None) -> list[Team]:
    return [Team.model_validate(row) for row in await list_teams(business_id)]


async def create_business_team(name: Any, business_id: Optional[str]) -> Team:
    if not isinstance(name, str) or not name.strip() or not business_id:
        raise ValidationError("Name and business ID are required")
    business = await load_business(business_id)
    team = Team.model_validate(await create_team({"name": name.strip(), "business_id": business.id}))
    logger.info("Team created", team_id=team.id, business_id=business.id)
    return team


async def rename_team(team_id: str, name: Any) -> Team:
    name = _required_text(name, "Name is required")
    await load_team(team_id)
    return Team.model_validate(await update_team(team_id, {"name": name}))


async def remove_team(team_id: str) -> None:
    """Delete an empty team. Teams that still own tasks are refused."""
    team = await load_team(team_id)
    if await team_has_tasks(team.id):
        raise ValidationError("Cannot delete team with existing tasks. Delete the tasks first.")
    await delete_team(team.id)
    logger.info("Team deleted", team_id=team.id, business_id=team.business_id)


# Businesses

async def list_all_businesses() -> list[Business]:
    return [Business.model_validate(row) for row in await list_businesses()]


async def register_business(name: Any) -> Business:
    name = _required_text(name, "Name is required")
    business = Business.model_validate(await create_business({"name": name, "join_code": generate_join_code()}))
    logger.info("Business created", business_id=business.id)
    return business


async def rename_business(business_id: Optional[str], name: Any) -> Business:
    if not business_id or not isinstance(name, str) or not name.strip():
        raise ValidationError("Business ID and name are required")
    await load_business(business_id)
    return Business.model_validate(await update_business(business_id, {"name": name.strip()}))
