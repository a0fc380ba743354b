"""Shared fixtures for Pulse tests."""

import pytest
from datetime import datetime, timedelta, timezone
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services.models import Issue, Workspace
from services.store import InMemoryEntityStore


class FakeClock:
    """Deterministic clock; call advance() to move time forward."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def base_time():
    return datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(base_time):
    return FakeClock(base_time)


@pytest.fixture
def make_issue(base_time):
    """Factory for issues with sensible defaults."""
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        defaults = {
            "id": f"issue_{counter['n']}",
            "workspace_id": "default",
            "title": f"Issue {counter['n']}",
            "created_at": base_time,
            "updated_at": base_time,
        }
        defaults.update(kwargs)
        if defaults.get("status") == "done" and "completed_at" not in kwargs:
            defaults["completed_at"] = defaults["created_at"] + timedelta(days=1)
        return Issue(**defaults)

    return _make


@pytest.fixture
def login_bug(make_issue):
    """Sample bug issue in todo."""
    return make_issue(
        id="issue_login",
        title="Fix login bug",
        description="Users cannot sign in with SSO",
        labels=["bug"],
        status="todo",
        assignee_id="alice"
    )


@pytest.fixture
def dark_mode_feature(make_issue):
    """Sample feature issue in backlog."""
    return make_issue(
        id="issue_dark_mode",
        title="Add dark mode",
        labels=["feature"],
        status="backlog"
    )


@pytest.fixture
def memory_store():
    return InMemoryEntityStore()


@pytest.fixture
def app(memory_store):
    """Create Flask test app backed by an in-memory store."""
    from pulse import create_app
    app = create_app({"storeBackend": "memory"}, store=memory_store)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def second_workspace(memory_store, base_time):
    workspace = Workspace(
        id="ws_other",
        name="Other Team",
        created_at=base_time,
        updated_at=base_time
    )
    memory_store.create_workspace(workspace)
    return workspace
