"""Tests for the dashboard aggregator."""

import pytest

from src.models.dashboard import TaskWithSteps
from src.models.member import Member
from src.services.dashboard import build_dashboard, load_dashboard
from src.utils.errors import ValidationError

ROSTER = [
    Member(id="alice", name="Alice"),
    Member(id="bob", name="Bob"),
    Member(id="eve", name="Eve"),
]


def _task(task_id: str, statuses: list[str], assignees: list[str], step_fields: dict = None) -> TaskWithSteps:
    step_fields = step_fields or {}
    return TaskWithSteps.model_validate({
        "id": task_id,
        "team_id": "team",
        "title": task_id.title(),
        "pipeline_steps": [
            {
                "id": f"{task_id}-s{i + 1}",
                "task_id": task_id,
                "step_order": i + 1,
                "name": f"Step {i + 1}",
                "status": status,
                "assigned_to": assignee,
                **step_fields.get(i, {}),
            }
            for i, (status, assignee) in enumerate(zip(statuses, assignees))
        ],
    })


@pytest.mark.unit
def test_scorecard_percent_and_current_step():
    task = _task("launch", ["completed", "unlocked", "locked"], ["alice", "bob", "alice"])

    summary = build_dashboard([task], ROSTER)

    score = summary.scorecard[0]
    assert (score.completed, score.total, score.percent) == (1, 3, 33)
    assert score.current_step == "Step 2"
    assert score.current_assignee == "Bob"


@pytest.mark.unit
def test_empty_pipeline_scores_zero():
    summary = build_dashboard([_task("empty", [], [])], ROSTER)

    assert summary.scorecard[0].percent == 0
    assert summary.scorecard[0].current_step is None


@pytest.mark.unit
def test_joint_steps_appear_under_every_assignee():
    task = _task(
        "joint",
        ["unlocked"],
        ["bob"],
        {0: {"additional_assignees": ["eve"], "is_joint": True}},
    )

    columns = {c.member_id: c.step_ids for c in build_dashboard([task], ROSTER).columns}

    assert columns == {"alice": [], "bob": ["joint-s1"], "eve": ["joint-s1"]}


@pytest.mark.unit
def test_member_stats_sorted_by_now_then_total():
    tasks = [
        _task("one", ["completed", "unlocked", "locked"], ["alice", "bob", "alice"]),
        _task("two", ["unlocked", "locked", "locked"], ["eve", "alice", "bob"]),
        _task("three", ["completed", "completed"], ["alice", "alice"]),
    ]

    stats = build_dashboard(tasks, ROSTER).member_stats

    assert [s.member_id for s in stats] == ["bob", "eve", "alice"]
    alice = stats[2]
    assert (alice.done, alice.now, alice.upcoming) == (3, 0, 2)
    assert stats[0].total == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_load_dashboard_scopes_users_to_their_tasks(fake_db, workspace):
    alice = workspace.add_member("Alice")
    bob = workspace.add_member("Bob")
    archived = workspace.add_member("Old Timer")
    fake_db.tables["members"][-1]["is_archived"] = True
    mine, _ = workspace.add_task([{"assigned_to": alice["id"]}], title="Mine")
    workspace.add_task([{"assigned_to": bob["id"]}], title="Theirs")

    as_user = await load_dashboard(team_id=workspace.team["id"], member_id=alice["id"])
    assert [t.id for t in as_user.tasks] == [mine["id"]]
    assert archived["id"] not in [m.id for m in as_user.members]

    admin = workspace.add_member("Boss", role="admin")
    as_admin = await load_dashboard(team_id=workspace.team["id"], member_id=admin["id"])
    assert {t.title for t in as_admin.tasks} == {"Mine", "Theirs"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_load_dashboard_by_business_and_status(fake_db, workspace):
    sales = workspace.add_team("Sales")
    workspace.add_task([{"name": "A"}], title="Ops task")
    workspace.add_task([{"name": "B"}], title="Sales task", team=sales, status="completed")

    everything = await load_dashboard(business_id=workspace.business["id"])
    active = await load_dashboard(business_id=workspace.business["id"], status="active")

    assert {t.title for t in everything.tasks} == {"Ops task", "Sales task"}
    assert [t.title for t in active.tasks] == ["Ops task"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_load_dashboard_requires_scope(fake_db):
    with pytest.raises(ValidationError):
        await load_dashboard()
