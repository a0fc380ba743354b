"""Tests for the in-memory and SQLite entity stores."""

import pytest
from datetime import timedelta

from services.errors import NotFoundError, PulseError
from services.models import Cycle, Workspace
from services.sqlite_store import SqliteEntityStore
from services.store import InMemoryEntityStore, paginate


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Run each store test against both bindings."""
    if request.param == "memory":
        store = InMemoryEntityStore()
    else:
        store = SqliteEntityStore(str(tmp_path / "data"))
    yield store
    store.close()


@pytest.fixture
def seeded(store, make_issue, base_time):
    """Four issues with mixed priorities and creation times."""
    issues = [
        make_issue(id="a", priority=2, created_at=base_time),
        make_issue(id="b", priority=1, created_at=base_time),
        make_issue(id="c", priority=1, created_at=base_time + timedelta(hours=1), status="done"),
        make_issue(id="d", priority=0, created_at=base_time, cycle_id="cycle_1"),
    ]
    for issue in issues:
        store.create_issue(issue)
    return store


class TestDefaultWorkspace:
    """Test first-run seeding."""

    def test_default_workspace_created(self, store):
        workspace = store.get_workspace("default")

        assert workspace is not None
        assert workspace.name == "Main Workspace"
        assert len(store.list_workspaces()) == 1

    def test_seeding_is_idempotent(self, store):
        store.ensure_default_workspace()
        assert len(store.list_workspaces()) == 1

    def test_no_seed_when_disabled(self, tmp_path):
        assert InMemoryEntityStore(seed_default=False).list_workspaces() == []
        assert SqliteEntityStore(str(tmp_path), seed_default=False).list_workspaces() == []


class TestWorkspaces:
    """Test workspace CRUD."""

    def test_update_and_delete(self, store, base_time):
        store.create_workspace(Workspace(id="ws_1", name="Team", created_at=base_time,
                                         updated_at=base_time))

        workspace = store.get_workspace("ws_1")
        workspace.settings = {"theme": "dark"}
        store.update_workspace(workspace)

        assert store.get_workspace("ws_1").settings == {"theme": "dark"}

        store.delete_workspace("ws_1")
        assert store.get_workspace("ws_1") is None

    def test_missing_workspace(self, store):
        assert store.get_workspace("nope") is None
        with pytest.raises(NotFoundError):
            store.update_workspace(Workspace(id="nope", name="x"))
        with pytest.raises(NotFoundError):
            store.delete_workspace("nope")


class TestIssues:
    """Test issue storage."""

    def test_round_trip_preserves_fields(self, store, make_issue, base_time):
        issue = make_issue(
            id="x",
            description="details",
            status="done",
            labels=["bug", "ui"],
            estimate=5,
            assignee_id="alice",
            completed_at=base_time + timedelta(hours=4)
        )
        store.create_issue(issue)

        loaded = store.get_issue("x")

        assert loaded == issue

    def test_duplicate_id_rejected(self, store, make_issue):
        store.create_issue(make_issue(id="x"))
        with pytest.raises(PulseError):
            store.create_issue(make_issue(id="x"))

    def test_ordering_priority_then_newest(self, seeded):
        assert [i.id for i in seeded.list_issues()] == ["d", "c", "b", "a"]

    def test_filters(self, seeded, make_issue):
        seeded.create_issue(make_issue(id="other", workspace_id="ws_2"))

        assert [i.id for i in seeded.list_issues(workspace_id="default", status="done")] == ["c"]
        assert [i.id for i in seeded.list_issues(cycle_id="cycle_1")] == ["d"]
        assert [i.id for i in seeded.list_issues(workspace_id="ws_2")] == ["other"]

    def test_pagination(self, seeded):
        assert [i.id for i in seeded.list_issues(limit=2)] == ["d", "c"]
        assert [i.id for i in seeded.list_issues(limit=2, offset=1)] == ["c", "b"]
        assert [i.id for i in seeded.list_issues(offset=3)] == ["a"]

    def test_update_replaces_record(self, seeded):
        issue = seeded.get_issue("a")
        issue.status = "canceled"
        issue.labels = ["wontfix"]

        seeded.update_issue(issue)

        loaded = seeded.get_issue("a")
        assert loaded.status == "canceled"
        assert loaded.labels == ["wontfix"]

    def test_update_missing_issue(self, store, make_issue):
        with pytest.raises(NotFoundError):
            store.update_issue(make_issue(id="ghost"))

    def test_delete(self, seeded):
        seeded.delete_issue("a")

        assert seeded.get_issue("a") is None
        with pytest.raises(NotFoundError):
            seeded.delete_issue("a")

    def test_count_by_status(self, seeded):
        assert seeded.count_issues_by_status("default") == {"backlog": 3, "done": 1}

    def test_returned_issue_is_a_copy(self, seeded):
        issue = seeded.get_issue("a")
        issue.title = "mutated"
        assert seeded.get_issue("a").title != "mutated"


class TestCycles:
    """Test cycle storage and lookups."""

    def test_active_and_upcoming(self, store, base_time):
        store.create_cycle(Cycle(id="c1", workspace_id="default", name="One",
                                 status="completed", created_at=base_time))
        store.create_cycle(Cycle(id="c2", workspace_id="default", name="Two",
                                 status="active", created_at=base_time + timedelta(days=1)))
        store.create_cycle(Cycle(id="c4", workspace_id="default", name="Four",
                                 status="upcoming", created_at=base_time + timedelta(days=3)))
        store.create_cycle(Cycle(id="c3", workspace_id="default", name="Three",
                                 status="upcoming", created_at=base_time + timedelta(days=2)))

        assert store.get_active_cycle("default").id == "c2"
        assert [c.id for c in store.list_upcoming_cycles("default")] == ["c3", "c4"]
        assert [c.id for c in store.list_cycles("default")] == ["c4", "c3", "c2", "c1"]

    def test_no_active_cycle(self, store):
        assert store.get_active_cycle("default") is None

    def test_update_and_delete(self, store, base_time):
        store.create_cycle(Cycle(id="c1", workspace_id="default", name="One",
                                 start_date=base_time, created_at=base_time))

        cycle = store.get_cycle("c1")
        cycle.end_date = base_time + timedelta(days=14)
        store.update_cycle(cycle)

        assert store.get_cycle("c1").end_date == base_time + timedelta(days=14)

        store.delete_cycle("c1")
        with pytest.raises(NotFoundError):
            store.update_cycle(cycle)


class TestSqlitePersistence:
    """Test that SQLite data survives reopening."""

    def test_reopen_keeps_data(self, tmp_path, make_issue):
        data_dir = str(tmp_path / "data")
        store = SqliteEntityStore(data_dir)
        store.create_issue(make_issue(id="kept", labels=["bug"]))
        store.close()

        reopened = SqliteEntityStore(data_dir)
        try:
            assert reopened.get_issue("kept").labels == ["bug"]
            assert len(reopened.list_workspaces()) == 1
        finally:
            reopened.close()


def test_paginate_helper():
    items = list(range(5))
    assert paginate(items) == items
    assert paginate(items, limit=2, offset=4) == [4]
    assert paginate(items, offset=10) == []
