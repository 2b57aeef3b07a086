"""End-to-end pipeline lifecycle against the in-memory database."""

import pytest

from src.models.extraction import ExtractedStep, ExtractedTaskData
from src.models.task import Recurrence
from src.services.pipeline_state_machine import complete_step, reopen_task, return_step
from src.services.task_writer import confirm_task_creation
from tests.utils.assertions import assert_pipeline_invariants


def _steps(db, task_id):
    return sorted(db.rows("pipeline_steps", task_id=task_id), key=lambda s: s["step_order"])


@pytest.mark.integration
@pytest.mark.asyncio
async def test_recurring_pipeline_lifecycle(fake_db, workspace):
    admin = workspace.add_member("Morgan", role="admin")
    alice = workspace.add_member("Alice")
    bob = workspace.add_member("Bob")

    task = await confirm_task_creation(
        workspace.team["id"],
        admin["id"],
        ExtractedTaskData(
            title="Monthly Close",
            deadline="2025-01-31",
            recurrence=Recurrence(type="monthly"),
            pipeline_steps=[
                ExtractedStep(name="Reconcile", assigned_to_name="Alice", mini_deadline="2025-01-28"),
                ExtractedStep(name="Approve", assigned_to_name="Bob"),
            ],
        ),
    )
    first, second = _steps(fake_db, task.id)
    assert_pipeline_invariants([first, second], "active")

    await complete_step(first["id"], alice["id"])
    assert_pipeline_invariants(_steps(fake_db, task.id), "active")

    await return_step(second["id"], bob["id"], reason="Totals do not match")
    steps = _steps(fake_db, task.id)
    assert [s["status"] for s in steps] == ["unlocked", "locked"]
    assert steps[0]["completed_at"] is None

    await complete_step(first["id"], alice["id"])
    result = await complete_step(second["id"], bob["id"])

    assert result.task_completed is True
    assert fake_db.get("tasks", task.id)["status"] == "completed"
    assert_pipeline_invariants(_steps(fake_db, task.id), "completed")

    next_cycle = fake_db.get("tasks", result.next_cycle_task_id)
    assert next_cycle["deadline"] == "2025-03-03"
    assert next_cycle["source_task_id"] == task.id
    assert next_cycle["recurrence_count"] == 1
    cloned = _steps(fake_db, next_cycle["id"])
    assert [s["status"] for s in cloned] == ["unlocked", "locked"]
    assert cloned[0]["mini_deadline"] == "2025-02-28"
    assert [s["assigned_to"] for s in cloned] == [alice["id"], bob["id"]]

    await reopen_task(task.id, admin["id"])
    assert fake_db.get("tasks", task.id)["status"] == "active"
    assert [s["status"] for s in _steps(fake_db, task.id)] == ["completed", "unlocked"]

    notified = {(n["member_id"], n["title"]) for n in fake_db.rows("notifications")}
    assert (alice["id"], 'New task: "Monthly Close" - Your turn!') in notified
    assert (admin["id"], 'Task completed: "Monthly Close"') in notified
    assert (alice["id"], "Step returned: Monthly Close") in notified
