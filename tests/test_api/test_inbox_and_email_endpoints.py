"""Tests for the notification inbox, summary and cron endpoints."""

import pytest

from api.cron.send_emails import handler as cron_handler
from api.notifications import handler as notifications_handler
from api.send_summary import handler as summary_handler
from tests.utils.helpers import create_vercel_request, response_json


@pytest.mark.unit
def test_inbox_listing(fake_db):
    fake_db.seed("notifications", {"member_id": "m1", "title": "Hello"})
    fake_db.seed("notifications", {"member_id": "m1", "title": "Done", "is_addressed": True})

    inbox = notifications_handler(create_vercel_request(method="GET", query={"memberId": "m1"}))
    archived = notifications_handler(create_vercel_request(
        method="GET",
        query={"memberId": "m1", "filter": "archived"},
    ))

    assert inbox["statusCode"] == 200
    body = response_json(inbox)
    assert [n["title"] for n in body["notifications"]] == ["Hello"]
    assert body["unread_count"] == 1
    assert [n["title"] for n in response_json(archived)["notifications"]] == ["Done"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "query",
    [
        {},
        {"memberId": "m1", "filter": "starred"},
        {"memberId": "m1", "limit": "many"},
    ],
)
def test_inbox_listing_validation(fake_db, query):
    assert notifications_handler(create_vercel_request(method="GET", query=query))["statusCode"] == 400


@pytest.mark.unit
def test_inbox_patch_action(fake_db):
    note = fake_db.seed("notifications", {"member_id": "m1", "title": "Hello"})

    response = notifications_handler(create_vercel_request(
        method="PATCH",
        body={"action": "mark_read", "notificationId": note["id"]},
    ))

    assert response["statusCode"] == 200
    assert fake_db.get("notifications", note["id"])["is_read"] is True


@pytest.mark.unit
def test_inbox_rejects_delete(fake_db):
    assert notifications_handler(create_vercel_request(method="DELETE"))["statusCode"] == 405


@pytest.mark.unit
def test_send_summary_preview(fake_db, workspace, no_email_key):
    lead = workspace.add_member("Lena", role="lead", email="lena@example.com")

    response = summary_handler(create_vercel_request(body={"memberId": lead["id"]}))

    assert response["statusCode"] == 200
    body = response_json(response)
    assert body["sent"] is False
    assert "Lena" in body["preview"]


@pytest.mark.unit
def test_send_summary_unknown_member(fake_db):
    assert summary_handler(create_vercel_request(body={"memberId": "ghost"}))["statusCode"] == 404


@pytest.mark.unit
def test_cron_requires_secret(fake_db, monkeypatch):
    monkeypatch.setenv("CRON_SECRET", "s3cret")

    missing = cron_handler(create_vercel_request(method="GET"))
    wrong = cron_handler(create_vercel_request(method="GET", headers={"authorization": "Bearer nope"}))

    assert missing["statusCode"] == 401
    assert wrong["statusCode"] == 401


@pytest.mark.unit
def test_cron_without_configured_secret_is_unauthorized(fake_db, monkeypatch):
    monkeypatch.delenv("CRON_SECRET", raising=False)

    response = cron_handler(create_vercel_request(method="GET", headers={"authorization": "Bearer "}))

    assert response["statusCode"] == 401


@pytest.mark.unit
def test_cron_runs_digests(fake_db, workspace, monkeypatch, no_email_key):
    monkeypatch.setenv("CRON_SECRET", "s3cret")
    lead = workspace.add_member("Lena", role="lead", email="lena@example.com")
    fake_db.seed("email_settings", {"member_id": lead["id"], "frequency": "daily"})

    response = cron_handler(create_vercel_request(method="GET", headers={"Authorization": "Bearer s3cret"}))

    assert response["statusCode"] == 200
    body = response_json(response)
    assert body["success"] is True
    assert body["sent"] == [lead["id"]]
