"""Shared pytest fixtures and configuration."""

import os
import pytest
from freezegun import freeze_time

# Set test environment variables before any unpair module reads them
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LIVE_QUERY_INTERVAL_SECONDS", "0.01")

from tests.utils.fake_supabase import FakeSupabase  # noqa: E402


@pytest.fixture
def fake_supabase(monkeypatch):
    """In-memory Supabase installed as the service-role client singleton."""
    fake = FakeSupabase()
    monkeypatch.setattr("unpair.services.supabase_client._client", fake)
    return fake


@pytest.fixture
def seller_id():
    return "2b7c1e4a-seller-0000-0000-000000000001"


@pytest.fixture
def buyer_id():
    return "9f3d8a21-buyer-0000-0000-000000000002"


@pytest.fixture
def logged_in(fake_supabase, seller_id, buyer_id):
    """Bearer tokens for the seller and buyer."""
    fake_supabase.login("seller-token", seller_id)
    fake_supabase.login("buyer-token", buyer_id)
    return {"seller": "seller-token", "buyer": "buyer-token"}


@pytest.fixture
def sample_image():
    return b"\xff\xd8\xff\xe0fake-jpeg-bytes"


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
