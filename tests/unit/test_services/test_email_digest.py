"""Tests for summary email digests."""

import json
import pytest
from datetime import datetime, timezone

import httpx

from src.models.email_settings import EmailFrequency
from src.services.email_digest import (
    build_member_digest,
    render_digest_html,
    run_digest_cron,
    send_email,
    send_member_summary,
    should_send_digest,
)
from src.utils.errors import UpstreamFailureError, ValidationError

MONDAY = datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc)
TUESDAY = datetime(2025, 1, 7, 8, 0, tzinfo=timezone.utc)
FIRST_OF_MONTH = datetime(2025, 2, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def resend(monkeypatch):
    """Route Resend calls to an in-process transport and record them."""
    calls = []
    status = {"code": 200}

    def handle(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if status["code"] >= 400:
            return httpx.Response(status["code"], json={"message": "rejected"})
        return httpx.Response(200, json={"id": "email_123"})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handle), **kwargs),
    )
    monkeypatch.setenv("RESEND_API_KEY", "re_test_key")
    return {"calls": calls, "status": status}


@pytest.fixture
def office(workspace):
    lead = workspace.add_member("Lena", role="lead", email="lena@example.com")
    bob = workspace.add_member("Bob")
    workspace.add_task(
        [
            {"name": "Collect", "assigned_to": bob["id"], "status": "completed",
             "completed_at": "2025-01-05T10:00:00+00:00"},
            {"name": "Review", "assigned_to": lead["id"], "status": "unlocked", "mini_deadline": "2025-01-08"},
            {"name": "Send", "assigned_to": bob["id"]},
        ],
        title="Invoices <Q1>",
    )
    workspace.add_task(
        [{"name": "Old", "assigned_to": bob["id"], "status": "completed", "completed_at": "2024-12-01T10:00:00+00:00"}],
        title="Ancient",
        status="completed",
        completed_at="2024-12-01T10:00:00+00:00",
    )
    return {"lead": lead, "bob": bob}


@pytest.mark.unit
@pytest.mark.parametrize(
    "frequency,when,expected",
    [
        (EmailFrequency.DAILY, TUESDAY, True),
        (EmailFrequency.WEEKLY, MONDAY, True),
        (EmailFrequency.WEEKLY, TUESDAY, False),
        (EmailFrequency.MONTHLY, FIRST_OF_MONTH, True),
        (EmailFrequency.MONTHLY, MONDAY, False),
        (EmailFrequency.NONE, MONDAY, False),
    ],
)
def test_should_send_digest(frequency, when, expected):
    assert should_send_digest(frequency, when) is expected


@pytest.mark.unit
@pytest.mark.asyncio
async def test_build_member_digest(fake_db, office):
    digest = await build_member_digest(office["lead"]["id"], TUESDAY)

    assert digest.business_name == "Acme Realty"
    assert [s.title for s in digest.scorecard] == ["Invoices <Q1>"]
    assert [(s.step_name, s.assignee) for s in digest.now] == [("Review", "Lena")]
    assert [s.step_name for s in digest.next] == ["Send"]
    assert [s.step_name for s in digest.done] == ["Collect"]
    assert {s.name for s in digest.member_stats} == {"Lena", "Bob"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_build_member_digest_requires_email_and_teams(fake_db, workspace):
    no_email = workspace.add_member("Quiet", role="lead")
    orphan = fake_db.seed("members", {"name": "Orphan", "role": "lead", "email": "o@example.com",
                                      "business_id": workspace.business["id"]})

    with pytest.raises(ValidationError, match="email"):
        await build_member_digest(no_email["id"], TUESDAY)
    with pytest.raises(ValidationError, match="No teams assigned"):
        await build_member_digest(orphan["id"], TUESDAY)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_admin_digest_covers_all_business_teams(fake_db, workspace):
    admin = fake_db.seed("members", {"name": "Ada", "role": "admin", "email": "ada@example.com",
                                     "business_id": workspace.business["id"]})
    sales = workspace.add_team("Sales")
    workspace.add_task([{"name": "Pitch"}], title="Sales push", team=sales)

    digest = await build_member_digest(admin["id"], TUESDAY)

    assert [s.title for s in digest.scorecard] == ["Sales push"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_render_escapes_content(fake_db, office):
    digest = await build_member_digest(office["lead"]["id"], TUESDAY)

    html = render_digest_html(digest, app_url="https://app.example")

    assert "Invoices &lt;Q1&gt;" in html
    assert "Invoices <Q1>" not in html
    assert 'href="https://app.example"' in html


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_email_without_key_returns_preview(no_email_key):
    result = await send_email("a@example.com", "Hi", "<p>preview</p>")

    assert result == {"sent": False, "preview": "<p>preview</p>"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_email_posts_to_resend(resend):
    result = await send_email("a@example.com", "Subject", "<p>body</p>")

    assert result == {"sent": True, "id": "email_123"}
    request = resend["calls"][0]
    assert str(request.url) == "https://api.resend.com/emails"
    assert request.headers["Authorization"] == "Bearer re_test_key"
    payload = json.loads(request.content)
    assert payload["to"] == ["a@example.com"]
    assert payload["subject"] == "Subject"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_email_rejection_is_upstream_failure(resend):
    resend["status"]["code"] = 422

    with pytest.raises(UpstreamFailureError):
        await send_email("a@example.com", "Subject", "<p>body</p>")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_member_summary_records_last_sent(fake_db, office, resend):
    result = await send_member_summary(office["lead"]["id"], TUESDAY)

    assert result["sent"] is True
    settings = fake_db.rows("email_settings", member_id=office["lead"]["id"])
    assert settings[0]["last_sent_at"] == TUESDAY.isoformat()
    assert json.loads(resend["calls"][0].content)["subject"] == "Task Pulse Summary - Acme Realty"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_send_member_summary_preview_does_not_record(fake_db, office, no_email_key):
    result = await send_member_summary(office["lead"]["id"], TUESDAY)

    assert result["sent"] is False
    assert "preview" in result
    assert fake_db.rows("email_settings") == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cron_respects_frequencies(fake_db, workspace, no_email_key):
    weekly = workspace.add_member("Wendy", role="lead", email="w@example.com")
    daily = workspace.add_member("Dan", role="admin", email="d@example.com")
    muted = workspace.add_member("Mo", role="lead", email="m@example.com")
    workspace.add_member("User", role="user", email="u@example.com")
    workspace.add_member("NoMail", role="lead")
    fake_db.seed("email_settings", {"member_id": daily["id"], "frequency": "daily"})
    fake_db.seed("email_settings", {"member_id": muted["id"], "frequency": "none"})

    on_tuesday = await run_digest_cron(TUESDAY)
    on_monday = await run_digest_cron(MONDAY)

    assert on_tuesday["sent"] == [daily["id"]]
    assert set(on_tuesday["skipped"]) == {weekly["id"], muted["id"]}
    assert set(on_monday["sent"]) == {weekly["id"], daily["id"]}
    assert on_monday["failed"] == []
