"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

from tests.utils.fake_supabase import FakeSupabase
from tests.utils.factories import Workspace

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LLM_PROVIDER", "anthropic")
os.environ.setdefault("LLM_MODEL", "claude-sonnet-4-20250514")
os.environ.setdefault("LOG_FORMAT", "text")


@pytest.fixture
def fake_db(monkeypatch):
    """In-memory Supabase installed as the client singleton."""
    from src.services import supabase_client

    db = FakeSupabase()
    monkeypatch.setattr(supabase_client, "_client", db)
    return db


@pytest.fixture
def workspace(fake_db):
    """A business with one team, ready for members and tasks."""
    return Workspace(fake_db)


@pytest.fixture
def no_email_key(monkeypatch):
    monkeypatch.delenv("RESEND_API_KEY", raising=False)


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2025-01-10 12:00:00") as frozen_time:
        yield frozen_time
