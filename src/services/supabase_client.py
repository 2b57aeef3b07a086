"""Supabase client wrapper with async context manager support."""

import os
from typing import Any, Iterable, Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from ulid import ULID
from src.utils.errors import SupabaseError
import logging

logger = logging.getLogger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


def generate_id() -> str:
    """Generate a text-based row ID (ULID format)."""
    return str(ULID())


def _rows(result: Any) -> list[dict]:
    return result.data if result and result.data else []


def _first(result: Any) -> Optional[dict]:
    rows = _rows(result)
    return rows[0] if rows else None


# Tasks table operations
async def get_task(task_id: str) -> Optional[dict]:
    """Get task by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table("tasks").select("*").eq("id", task_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get task: {e}")


async def create_task(task_data: dict) -> dict:
    """Create a new task."""
    task_data = {"id": generate_id(), **task_data}
    async with SupabaseClient() as client:
        try:
            result = client.table("tasks").insert(task_data).execute()
            task = _first(result)
            if task:
                return task
            raise SupabaseError("Failed to create task: no data returned")
        except Exception as e:
            raise SupabaseError(f"Failed to create task: {e}")


async def update_task(task_id: str, updates: dict) -> dict:
    """Update a task."""
    async with SupabaseClient() as client:
        try:
            result = client.table("tasks").update(updates).eq("id", task_id).execute()
            task = _first(result)
            if task:
                return task
            raise SupabaseError(f"Failed to update task: {task_id}")
        except Exception as e:
            raise SupabaseError(f"Failed to update task: {e}")


async def transition_task(task_id: str, expected_status: str, updates: dict) -> Optional[dict]:
    """
    Update a task only while it still has ``expected_status``.

    Returns the updated row, or None when another request moved the task first.
    """
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("tasks")
                .update(updates)
                .eq("id", task_id)
                .eq("status", expected_status)
                .execute()
            )
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to transition task: {e}")


async def delete_task(task_id: str) -> None:
    """Delete a task. Steps are removed by the cascading foreign key."""
    async with SupabaseClient() as client:
        try:
            client.table("tasks").delete().eq("id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete task: {e}")


async def list_tasks(team_ids: list[str], status: Optional[str] = None) -> list[dict]:
    """Get tasks for a set of teams, newest first."""
    if not team_ids:
        return []
    async with SupabaseClient() as client:
        try:
            query = client.table("tasks").select("*").in_("team_id", team_ids)
            if status:
                query = query.eq("status", status)
            result = query.order("created_at", desc=True).execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list tasks: {e}")


async def list_completed_tasks_since(team_ids: list[str], since_iso: str) -> list[dict]:
    """Get tasks completed at or after ``since_iso``."""
    if not team_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("tasks")
                .select("*")
                .in_("team_id", team_ids)
                .eq("status", "completed")
                .gte("completed_at", since_iso)
                .order("completed_at", desc=True)
                .execute()
            )
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list completed tasks: {e}")


# Pipeline steps table operations
async def get_step(step_id: str) -> Optional[dict]:
    """Get pipeline step by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table("pipeline_steps").select("*").eq("id", step_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get step: {e}")


async def get_step_by_order(task_id: str, step_order: int) -> Optional[dict]:
    """Get the step at a given position of a task."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("pipeline_steps")
                .select("*")
                .eq("task_id", task_id)
                .eq("step_order", step_order)
                .execute()
            )
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get step by order: {e}")


async def get_last_step(task_id: str) -> Optional[dict]:
    """Get the step with the highest step_order."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("pipeline_steps")
                .select("*")
                .eq("task_id", task_id)
                .order("step_order", desc=True)
                .limit(1)
                .execute()
            )
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get last step: {e}")


async def list_steps(task_id: str) -> list[dict]:
    """Get all steps of a task in pipeline order."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("pipeline_steps")
                .select("*")
                .eq("task_id", task_id)
                .order("step_order")
                .execute()
            )
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list steps: {e}")


async def list_steps_for_tasks(task_ids: list[str]) -> list[dict]:
    """Get steps for many tasks at once."""
    if not task_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("pipeline_steps")
                .select("*")
                .in_("task_id", task_ids)
                .order("step_order")
                .execute()
            )
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list steps: {e}")


async def insert_steps(steps: list[dict]) -> list[dict]:
    """Insert a batch of steps."""
    steps = [{"id": generate_id(), **step} for step in steps]
    async with SupabaseClient() as client:
        try:
            result = client.table("pipeline_steps").insert(steps).execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to insert steps: {e}")


async def update_step(step_id: str, updates: dict) -> dict:
    """Update a pipeline step."""
    async with SupabaseClient() as client:
        try:
            result = client.table("pipeline_steps").update(updates).eq("id", step_id).execute()
            step = _first(result)
            if step:
                return step
            raise SupabaseError(f"Failed to update step: {step_id}")
        except Exception as e:
            raise SupabaseError(f"Failed to update step: {e}")


async def transition_step(
    step_id: str,
    expected_status: str,
    updates: dict,
    guards: Optional[dict] = None,
) -> Optional[dict]:
    """
    Compare-and-swap update on a step's status.

    ``guards`` adds further column equality conditions. Returns the updated
    row, or None when the step no longer matches (another request won the race).
    """
    async with SupabaseClient() as client:
        try:
            query = (
                client.table("pipeline_steps")
                .update(updates)
                .eq("id", step_id)
                .eq("status", expected_status)
            )
            for column, value in (guards or {}).items():
                query = query.eq(column, value)
            return _first(query.execute())
        except Exception as e:
            raise SupabaseError(f"Failed to transition step: {e}")


async def delete_steps_for_task(task_id: str) -> None:
    async with SupabaseClient() as client:
        try:
            client.table("pipeline_steps").delete().eq("task_id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete steps: {e}")


# Members, teams and businesses
async def get_member(member_id: str) -> Optional[dict]:
    """Get member by ID."""
    async with SupabaseClient() as client:
        try:
            result = client.table("members").select("*").eq("id", member_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get member: {e}")


async def get_members(member_ids: Iterable[str]) -> list[dict]:
    """Get several members by ID."""
    member_ids = [member_id for member_id in dict.fromkeys(member_ids) if member_id]
    if not member_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = client.table("members").select("*").in_("id", member_ids).execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get members: {e}")


async def search_members_by_name(fragment: str) -> list[dict]:
    """Case-insensitive substring lookup across every member."""
    async with SupabaseClient() as client:
        try:
            result = client.table("members").select("id, name").ilike("name", f"%{fragment}%").execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to search members: {e}")


async def create_member(member_data: dict) -> dict:
    """Create a new member record."""
    member_data = {"id": generate_id(), **member_data}
    async with SupabaseClient() as client:
        try:
            result = client.table("members").insert(member_data).execute()
            member = _first(result)
            if member:
                return member
            raise SupabaseError("Failed to create member: no data returned")
        except Exception as e:
            raise SupabaseError(f"Failed to create member: {e}")


async def list_digest_recipients() -> list[dict]:
    """Admins and leads that have a login email."""
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("members")
                .select("*")
                .not_.is_("email", "null")
                .in_("role", ["admin", "lead"])
                .execute()
            )
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list digest recipients: {e}")


async def list_team_member_ids(team_id: str) -> list[str]:
    async with SupabaseClient() as client:
        try:
            result = client.table("member_teams").select("member_id").eq("team_id", team_id).execute()
            return [row["member_id"] for row in _rows(result)]
        except Exception as e:
            raise SupabaseError(f"Failed to list team members: {e}")


async def list_member_team_ids(member_id: str) -> list[str]:
    async with SupabaseClient() as client:
        try:
            result = client.table("member_teams").select("team_id").eq("member_id", member_id).execute()
            return [row["team_id"] for row in _rows(result)]
        except Exception as e:
            raise SupabaseError(f"Failed to list member teams: {e}")


async def attach_member_to_team(member_id: str, team_id: str) -> None:
    """Idempotently add a member to a team."""
    async with SupabaseClient() as client:
        try:
            client.table("member_teams").upsert(
                {"member_id": member_id, "team_id": team_id},
                on_conflict="member_id,team_id",
            ).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to attach member to team: {e}")


async def get_team(team_id: str) -> Optional[dict]:
    async with SupabaseClient() as client:
        try:
            result = client.table("teams").select("*").eq("id", team_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get team: {e}")


async def list_business_team_ids(business_id: str) -> list[str]:
    async with SupabaseClient() as client:
        try:
            result = client.table("teams").select("id").eq("business_id", business_id).execute()
            return [row["id"] for row in _rows(result)]
        except Exception as e:
            raise SupabaseError(f"Failed to list business teams: {e}")


async def get_business(business_id: str) -> Optional[dict]:
    async with SupabaseClient() as client:
        try:
            result = client.table("businesses").select("*").eq("id", business_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get business: {e}")


async def list_members(business_id: Optional[str] = None) -> list[dict]:
    """Members ordered by name, optionally limited to one business."""
    async with SupabaseClient() as client:
        try:
            query = client.table("members").select("*")
            if business_id:
                query = query.eq("business_id", business_id)
            result = query.order("name").execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list members: {e}")


async def get_member_by_email(email: str) -> Optional[dict]:
    async with SupabaseClient() as client:
        try:
            result = client.table("members").select("*").eq("email", email).limit(1).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get member by email: {e}")


async def update_member(member_id: str, updates: dict) -> Optional[dict]:
    """Update a member. Returns None when no row matched."""
    async with SupabaseClient() as client:
        try:
            result = client.table("members").update(updates).eq("id", member_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to update member: {e}")


async def list_member_team_links(member_ids: list[str]) -> list[dict]:
    """member_teams rows for several members."""
    if not member_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = client.table("member_teams").select("member_id, team_id").in_("member_id", member_ids).execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list member teams: {e}")


async def replace_member_teams(member_id: str, team_ids: list[str]) -> None:
    """Swap a member's team assignments for ``team_ids``."""
    async with SupabaseClient() as client:
        try:
            client.table("member_teams").delete().eq("member_id", member_id).execute()
            if team_ids:
                client.table("member_teams").insert(
                    [{"member_id": member_id, "team_id": team_id} for team_id in team_ids]
                ).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to replace member teams: {e}")


async def detach_member_from_team(member_id: str, team_id: str) -> None:
    async with SupabaseClient() as client:
        try:
            client.table("member_teams").delete().eq("team_id", team_id).eq("member_id", member_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to detach member from team: {e}")


async def get_teams(team_ids: list[str]) -> list[dict]:
    if not team_ids:
        return []
    async with SupabaseClient() as client:
        try:
            result = client.table("teams").select("*").in_("id", team_ids).order("name").execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get teams: {e}")


async def list_teams(business_id: Optional[str] = None) -> list[dict]:
    async with SupabaseClient() as client:
        try:
            query = client.table("teams").select("*")
            if business_id:
                query = query.eq("business_id", business_id)
            result = query.order("name").execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list teams: {e}")


async def create_team(team_data: dict) -> dict:
    team_data = {"id": generate_id(), **team_data}
    async with SupabaseClient() as client:
        try:
            result = client.table("teams").insert(team_data).execute()
            team = _first(result)
            if team:
                return team
            raise SupabaseError("Failed to create team: no data returned")
        except Exception as e:
            raise SupabaseError(f"Failed to create team: {e}")


async def update_team(team_id: str, updates: dict) -> Optional[dict]:
    async with SupabaseClient() as client:
        try:
            result = client.table("teams").update(updates).eq("id", team_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to update team: {e}")


async def team_has_tasks(team_id: str) -> bool:
    async with SupabaseClient() as client:
        try:
            result = client.table("tasks").select("id").eq("team_id", team_id).limit(1).execute()
            return bool(_rows(result))
        except Exception as e:
            raise SupabaseError(f"Failed to check team tasks: {e}")


async def delete_team(team_id: str) -> None:
    """Delete a team and its memberships."""
    async with SupabaseClient() as client:
        try:
            client.table("member_teams").delete().eq("team_id", team_id).execute()
            client.table("teams").delete().eq("id", team_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete team: {e}")


async def list_businesses() -> list[dict]:
    async with SupabaseClient() as client:
        try:
            result = client.table("businesses").select("*").order("name").execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list businesses: {e}")


async def create_business(business_data: dict) -> dict:
    business_data = {"id": generate_id(), **business_data}
    async with SupabaseClient() as client:
        try:
            result = client.table("businesses").insert(business_data).execute()
            business = _first(result)
            if business:
                return business
            raise SupabaseError("Failed to create business: no data returned")
        except Exception as e:
            raise SupabaseError(f"Failed to create business: {e}")


async def update_business(business_id: str, updates: dict) -> Optional[dict]:
    async with SupabaseClient() as client:
        try:
            result = client.table("businesses").update(updates).eq("id", business_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to update business: {e}")


# Notifications table operations
async def insert_notifications(notifications: list[dict]) -> list[dict]:
    """Insert a batch of notifications."""
    if not notifications:
        return []
    rows = [{"id": generate_id(), **notification} for notification in notifications]
    async with SupabaseClient() as client:
        try:
            result = client.table("notifications").insert(rows).execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to insert notifications: {e}")


async def list_notifications(
    member_id: str,
    addressed: Optional[bool] = None,
    unread_only: bool = False,
    limit: int = 50,
) -> list[dict]:
    """Get a member's notifications, newest first."""
    async with SupabaseClient() as client:
        try:
            query = client.table("notifications").select("*").eq("member_id", member_id)
            if addressed is not None:
                query = query.eq("is_addressed", addressed)
            if unread_only:
                query = query.eq("is_read", False)
            result = query.order("created_at", desc=True).limit(limit).execute()
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list notifications: {e}")


async def count_notifications(member_id: str, unread_only: bool = False) -> int:
    """Count a member's inbox (not addressed) notifications."""
    async with SupabaseClient() as client:
        try:
            query = (
                client.table("notifications")
                .select("id", count="exact")
                .eq("member_id", member_id)
                .eq("is_addressed", False)
            )
            if unread_only:
                query = query.eq("is_read", False)
            result = query.execute()
            return result.count or 0
        except Exception as e:
            raise SupabaseError(f"Failed to count notifications: {e}")


async def update_notification(notification_id: str, updates: dict) -> None:
    async with SupabaseClient() as client:
        try:
            client.table("notifications").update(updates).eq("id", notification_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update notification: {e}")


async def mark_inbox_read(member_id: str) -> None:
    """Mark every unread inbox notification of a member as read."""
    async with SupabaseClient() as client:
        try:
            (
                client.table("notifications")
                .update({"is_read": True})
                .eq("member_id", member_id)
                .eq("is_read", False)
                .eq("is_addressed", False)
                .execute()
            )
        except Exception as e:
            raise SupabaseError(f"Failed to mark notifications read: {e}")


# Step comments table operations
async def insert_comment(comment_data: dict) -> dict:
    comment_data = {"id": generate_id(), **comment_data}
    async with SupabaseClient() as client:
        try:
            result = client.table("step_comments").insert(comment_data).execute()
            comment = _first(result)
            if comment:
                return comment
            raise SupabaseError("Failed to create comment: no data returned")
        except Exception as e:
            raise SupabaseError(f"Failed to create comment: {e}")


async def list_comments(step_id: str) -> list[dict]:
    async with SupabaseClient() as client:
        try:
            result = (
                client.table("step_comments")
                .select("*")
                .eq("step_id", step_id)
                .order("created_at")
                .execute()
            )
            return _rows(result)
        except Exception as e:
            raise SupabaseError(f"Failed to list comments: {e}")


# Email settings and AI conversations
async def get_email_settings(member_id: str) -> Optional[dict]:
    async with SupabaseClient() as client:
        try:
            result = client.table("email_settings").select("*").eq("member_id", member_id).execute()
            return _first(result)
        except Exception as e:
            raise SupabaseError(f"Failed to get email settings: {e}")


async def upsert_email_settings(member_id: str, updates: dict) -> None:
    async with SupabaseClient() as client:
        try:
            client.table("email_settings").upsert(
                {"member_id": member_id, **updates},
                on_conflict="member_id",
            ).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to upsert email settings: {e}")


async def link_conversation_to_task(session_id: str, task_id: str, extracted_data: dict) -> None:
    """Keep the AI conversation as an audit trail of the confirmed task."""
    async with SupabaseClient() as client:
        try:
            client.table("ai_conversations").update({
                "task_id": task_id,
                "status": "confirmed",
                "extracted_data": extracted_data,
            }).eq("session_id", session_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to link conversation: {e}")
