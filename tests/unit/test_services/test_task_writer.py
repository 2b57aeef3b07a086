"""Tests for task confirmation, edit save, duplicate and delete."""

import pytest

from src.models.extraction import ExtractedStep, ExtractedTaskData
from src.services.task_writer import (
    confirm_task_creation,
    duplicate_task,
    get_task_with_steps,
    remove_task,
    save_task_edit,
    validate_date,
)
from src.utils.errors import NotFoundError, ValidationError
from tests.utils.assertions import assert_pipeline_invariants


def _data(steps, **fields) -> ExtractedTaskData:
    return ExtractedTaskData(
        title=fields.pop("title", "Client Onboarding"),
        pipeline_steps=[ExtractedStep(**step) for step in steps],
        **fields,
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_creates_task_steps_and_notifies(fake_db, workspace):
    creator = workspace.add_member("Morgan", role="admin")
    alice = workspace.add_member("Alice")
    bob = workspace.add_member("Bob")

    task = await confirm_task_creation(
        workspace.team["id"],
        creator["id"],
        _data(
            [
                {"name": "Collect documents", "assigned_to_name": "alice", "mini_deadline": "2025-02-01"},
                {"name": "Review", "assigned_to_name": "Bob"},
                {"name": "Sign off", "assigned_to_name": "Morgan"},
            ],
            deadline="2025-02-10",
            summary="Onboard a new client",
        ),
    )

    stored = fake_db.get("tasks", task.id)
    assert stored["title"] == "Client Onboarding"
    assert stored["description"] == "Onboard a new client"
    assert stored["deadline"] == "2025-02-10"
    assert stored["recurrence_count"] == 0

    steps = sorted(fake_db.rows("pipeline_steps", task_id=task.id), key=lambda s: s["step_order"])
    assert [s["assigned_to"] for s in steps] == [alice["id"], bob["id"], creator["id"]]
    assert [s["status"] for s in steps] == ["unlocked", "locked", "locked"]
    assert steps[0]["mini_deadline"] == "2025-02-01"
    assert_pipeline_invariants(steps, "active")

    notes = {n["member_id"]: n["title"] for n in fake_db.rows("notifications")}
    assert notes == {
        alice["id"]: 'New task: "Client Onboarding" - Your turn!',
        bob["id"]: 'Assigned to step in "Client Onboarding"',
    }


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_creates_unknown_members_in_requesting_team(fake_db, workspace):
    other_team = workspace.add_team("Sales")

    await confirm_task_creation(workspace.team["id"], None, _data([{"name": "Call", "assigned_to_name": "Maya"}]))
    await confirm_task_creation(other_team["id"], None, _data([{"name": "Call", "assigned_to_name": "Maya"}]))
    await confirm_task_creation(workspace.team["id"], None, _data([{"name": "Email", "assigned_to_name": "maya"}]))

    mayas = fake_db.rows("members", name="Maya")
    assert len(mayas) == 2
    assert all(m["business_id"] == workspace.business["id"] and m["email"] is None for m in mayas)

    links = {(l["member_id"], l["team_id"]) for l in fake_db.rows("member_teams")}
    assert {(m["id"], t["id"]) for m, t in zip(mayas, (workspace.team, other_team))} <= links


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_honours_explicit_assignments_and_joint_steps(fake_db, workspace):
    dave = workspace.add_member("Dave")
    eve = workspace.add_member("Eve")
    zoe = workspace.add_member("Zoe")

    task = await confirm_task_creation(
        workspace.team["id"],
        None,
        _data([
            {"name": "Prep", "assigned_to_name": "Dave"},
            {"name": "Call", "assigned_to_name": "Dave", "additional_assignee_names": ["Dave", "Eve"], "is_joint": True},
        ]),
        member_assignments={"0": zoe["id"]},
    )

    first, joint = task.pipeline_steps
    assert first.assigned_to == zoe["id"]
    assert joint.is_joint is True
    assert joint.assigned_to == dave["id"]
    assert joint.additional_assignees == [eve["id"]]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_reuses_partially_named_members(fake_db, workspace):
    dave = workspace.add_member("Dave")
    maya = workspace.add_member("Maya Chen")

    task = await confirm_task_creation(
        workspace.team["id"],
        None,
        _data([
            {"name": "Call", "assigned_to_name": "Dave", "additional_assignee_names": ["Dave", "maya"], "is_joint": True},
            {"name": "Follow up", "assigned_to_name": "chen"},
        ]),
    )

    joint, follow_up = task.pipeline_steps
    assert len(fake_db.rows("members")) == 2
    assert joint.assigned_to == dave["id"]
    assert joint.additional_assignees == [maya["id"]]
    assert follow_up.assigned_to == maya["id"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_prefers_active_members_over_archived(fake_db, workspace):
    archived = fake_db.seed("members", {"business_id": workspace.business["id"], "name": "Sam Old", "is_archived": True})
    fake_db.seed("member_teams", {"member_id": archived["id"], "team_id": workspace.team["id"]})
    active = workspace.add_member("Sam")

    task = await confirm_task_creation(workspace.team["id"], None, _data([{"name": "Call", "assigned_to_name": "sam"}]))

    assert task.pipeline_steps[0].assigned_to == active["id"]
    assert len(fake_db.rows("members")) == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_links_conversation(fake_db, workspace):
    fake_db.seed("ai_conversations", {"session_id": "sess-1", "status": "active", "task_id": None})

    task = await confirm_task_creation(workspace.team["id"], None, _data([{"name": "Only step"}]), session_id="sess-1")

    conversation = fake_db.rows("ai_conversations", session_id="sess-1")[0]
    assert conversation["task_id"] == task.id
    assert conversation["status"] == "confirmed"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_validation(fake_db, workspace):
    with pytest.raises(ValidationError, match="At least one"):
        await confirm_task_creation(workspace.team["id"], None, _data([]))
    with pytest.raises(ValidationError, match="YYYY-MM-DD"):
        await confirm_task_creation(workspace.team["id"], None, _data([{"name": "A"}], deadline="next friday"))
    with pytest.raises(NotFoundError):
        await confirm_task_creation("no-team", None, _data([{"name": "A"}]))

    assert fake_db.rows("tasks") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_confirm_rolls_back_task_when_steps_fail(fake_db, workspace):
    fake_db.fail("pipeline_steps", "insert")

    with pytest.raises(Exception):
        await confirm_task_creation(workspace.team["id"], None, _data([{"name": "A"}]))

    assert fake_db.rows("tasks") == []


@pytest.mark.unit
@pytest.mark.parametrize("value", ["2025-02-30", "2025/02/01", "20250201"])
def test_validate_date_rejects_bad_values(value):
    with pytest.raises(ValidationError):
        validate_date(value, "deadline")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_edit_preserves_completed_steps(fake_db, workspace):
    alice = workspace.add_member("Alice")
    bob = workspace.add_member("Bob")
    task, _ = workspace.add_task([
        {"name": "Draft", "assigned_to": alice["id"], "status": "completed", "completed_at": "2025-01-05T08:00:00+00:00"},
        {"name": "Review", "assigned_to": bob["id"], "status": "unlocked"},
    ])

    result = await save_task_edit(
        task["id"],
        _data(
            [
                {"name": "Rewrite draft", "assigned_to_name": "Bob", "status": "pending"},
                {"name": "Review carefully", "assigned_to_name": "Bob"},
                {"name": "Publish", "assigned_to_name": "Alice"},
            ],
            title="Renamed",
        ),
    )

    steps = result.pipeline_steps
    assert result.title == "Renamed"
    assert [s.name for s in steps] == ["Draft", "Review carefully", "Publish"]
    assert [s.status.value for s in steps] == ["completed", "unlocked", "locked"]
    assert steps[0].completed_at == "2025-01-05T08:00:00+00:00"
    assert steps[0].assigned_to == alice["id"]
    assert len(fake_db.rows("pipeline_steps", task_id=task["id"])) == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_edit_can_mark_new_completed_step(fake_db, workspace):
    task, _ = workspace.add_task([{"name": "One"}])

    result = await save_task_edit(
        task["id"],
        _data([{"name": "One", "status": "completed"}, {"name": "Two"}]),
    )

    assert [s.status.value for s in result.pipeline_steps] == ["completed", "unlocked"]
    assert result.pipeline_steps[0].completed_at is not None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_edit_dropping_open_steps_completes_task(fake_db, workspace):
    alice = workspace.add_member("Alice")
    bob = workspace.add_member("Bob")
    task, _ = workspace.add_task([
        {"name": "A", "assigned_to": alice["id"], "status": "completed", "completed_at": "2025-01-05T08:00:00+00:00"},
        {"name": "B", "assigned_to": bob["id"], "status": "unlocked"},
    ])

    result = await save_task_edit(task["id"], _data([{"name": "A", "assigned_to_name": "Alice"}]))

    stored = fake_db.get("tasks", task["id"])
    assert result.status.value == "completed"
    assert stored["status"] == "completed"
    assert stored["completed_at"] is not None
    assert [s.status.value for s in result.pipeline_steps] == ["completed"]
    assert_pipeline_invariants(fake_db.rows("pipeline_steps", task_id=task["id"]), "completed")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_edit_adding_steps_reactivates_completed_task(fake_db, workspace):
    alice = workspace.add_member("Alice")
    task, _ = workspace.add_task(
        [{"name": "A", "assigned_to": alice["id"], "status": "completed", "completed_at": "2025-01-05T08:00:00+00:00"}],
        status="completed",
        completed_at="2025-01-05T08:00:00+00:00",
    )

    result = await save_task_edit(task["id"], _data([{"name": "A"}, {"name": "B", "assigned_to_name": "Alice"}]))

    stored = fake_db.get("tasks", task["id"])
    assert stored["status"] == "active"
    assert stored["completed_at"] is None
    assert [s.status.value for s in result.pipeline_steps] == ["completed", "unlocked"]
    assert_pipeline_invariants(
        sorted(fake_db.rows("pipeline_steps", task_id=task["id"]), key=lambda s: s["step_order"]),
        "active",
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_duplicate_resets_pipeline(fake_db, workspace):
    alice = workspace.add_member("Alice")
    task, _ = workspace.add_task(
        [
            {"name": "A", "assigned_to": alice["id"], "status": "completed", "mini_deadline": "2025-01-05",
             "completed_at": "2025-01-05T08:00:00+00:00"},
            {"name": "B", "status": "completed", "completed_at": "2025-01-06T08:00:00+00:00"},
        ],
        title="Audit",
        status="completed",
        deadline="2025-01-10",
        recurrence={"type": "monthly", "interval": 1, "enabled": True},
        recurrence_count=4,
    )

    copy = await duplicate_task(task["id"])

    assert copy.id != task["id"]
    assert copy.title == "Copy of Audit"
    assert copy.deadline is None
    assert copy.status.value == "active"
    assert copy.recurrence.type.value == "monthly"
    assert copy.recurrence_count == 0
    assert [s.status.value for s in copy.pipeline_steps] == ["unlocked", "locked"]
    assert all(s.mini_deadline is None and s.completed_at is None for s in copy.pipeline_steps)
    assert copy.pipeline_steps[0].assigned_to == alice["id"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_detail_and_delete(fake_db, workspace):
    task, _ = workspace.add_task([{"name": "A"}, {"name": "B"}])

    detail = await get_task_with_steps(task["id"])
    assert [s.step_order for s in detail.pipeline_steps] == [1, 2]

    await remove_task(task["id"])

    assert fake_db.rows("tasks") == []
    assert fake_db.rows("pipeline_steps") == []
    with pytest.raises(NotFoundError):
        await remove_task(task["id"])
