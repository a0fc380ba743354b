"""Entity store interface and the in-memory binding.

The core never depends on which binding backs a request; handlers load
entities from a store, call the core, then write the result back. Writes to
the same record follow last-write-wins.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from services.errors import NotFoundError, PulseError
from services.models import DEFAULT_WORKSPACE_ID, Cycle, Issue, Workspace, utcnow

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def default_workspace() -> Workspace:
    now = utcnow()
    return Workspace(
        id=DEFAULT_WORKSPACE_ID,
        name="Main Workspace",
        description="Default workspace for tracking",
        settings={},
        created_at=now,
        updated_at=now,
    )


class EntityStore(ABC):
    """Keyed storage for workspaces, issues and cycles."""

    name = "abstract"

    def ensure_default_workspace(self) -> None:
        """Create the default workspace when no workspace exists yet."""
        if not self.list_workspaces():
            logger.info("No workspaces found, creating default workspace")
            self.create_workspace(default_workspace())

    def close(self) -> None:
        pass

    # Workspaces

    @abstractmethod
    def create_workspace(self, workspace: Workspace) -> Workspace: ...

    @abstractmethod
    def get_workspace(self, workspace_id: str) -> Optional[Workspace]: ...

    @abstractmethod
    def list_workspaces(self) -> list: ...

    @abstractmethod
    def update_workspace(self, workspace: Workspace) -> Workspace: ...

    @abstractmethod
    def delete_workspace(self, workspace_id: str) -> None: ...

    # Issues

    @abstractmethod
    def create_issue(self, issue: Issue) -> Issue: ...

    @abstractmethod
    def get_issue(self, issue_id: str) -> Optional[Issue]: ...

    @abstractmethod
    def list_issues(self, workspace_id: Optional[str] = None, status: Optional[str] = None,
                    cycle_id: Optional[str] = None, limit: int = 0, offset: int = 0) -> list:
        """Issues ordered by priority ascending, then newest first."""

    @abstractmethod
    def update_issue(self, issue: Issue) -> Issue: ...

    @abstractmethod
    def delete_issue(self, issue_id: str) -> None: ...

    @abstractmethod
    def count_issues_by_status(self, workspace_id: str) -> dict: ...

    # Cycles

    @abstractmethod
    def create_cycle(self, cycle: Cycle) -> Cycle: ...

    @abstractmethod
    def get_cycle(self, cycle_id: str) -> Optional[Cycle]: ...

    @abstractmethod
    def list_cycles(self, workspace_id: Optional[str] = None) -> list:
        """Cycles for a workspace, newest first."""

    @abstractmethod
    def update_cycle(self, cycle: Cycle) -> Cycle: ...

    @abstractmethod
    def delete_cycle(self, cycle_id: str) -> None: ...

    def get_active_cycle(self, workspace_id: str) -> Optional[Cycle]:
        for cycle in self.list_cycles(workspace_id):
            if cycle.status == "active":
                return cycle
        return None

    def list_upcoming_cycles(self, workspace_id: str) -> list:
        upcoming = [c for c in self.list_cycles(workspace_id) if c.status == "upcoming"]
        upcoming.sort(key=lambda c: c.created_at or _EPOCH)
        return upcoming


def order_issues(issues: list) -> list:
    ordered = sorted(issues, key=lambda i: i.created_at or _EPOCH, reverse=True)
    ordered.sort(key=lambda i: i.priority)
    return ordered


def paginate(items: list, limit: int = 0, offset: int = 0) -> list:
    if offset > 0:
        items = items[offset:]
    if limit > 0:
        items = items[:limit]
    return items


class InMemoryEntityStore(EntityStore):
    """Dict-backed store guarded by a re-entrant lock.

    Records are copied on the way in and out, so no two callers ever hold
    the same mutable instance.
    """

    name = "memory"

    def __init__(self, seed_default: bool = True):
        self._lock = threading.RLock()
        self._workspaces = {}
        self._issues = {}
        self._cycles = {}
        if seed_default:
            self.ensure_default_workspace()

    def _insert(self, table: dict, entity, kind: str):
        with self._lock:
            if entity.id in table:
                raise PulseError(f"{kind} already exists: {entity.id}")
            table[entity.id] = copy.deepcopy(entity)
        return entity

    def _replace(self, table: dict, entity, kind: str):
        with self._lock:
            if entity.id not in table:
                raise NotFoundError(kind, entity.id)
            table[entity.id] = copy.deepcopy(entity)
        return entity

    def _remove(self, table: dict, entity_id: str, kind: str) -> None:
        with self._lock:
            if table.pop(entity_id, None) is None:
                raise NotFoundError(kind, entity_id)

    def _fetch(self, table: dict, entity_id: str):
        with self._lock:
            entity = table.get(entity_id)
            return copy.deepcopy(entity) if entity is not None else None

    def create_workspace(self, workspace: Workspace) -> Workspace:
        return self._insert(self._workspaces, workspace, "workspace")

    def get_workspace(self, workspace_id: str) -> Optional[Workspace]:
        return self._fetch(self._workspaces, workspace_id)

    def list_workspaces(self) -> list:
        with self._lock:
            workspaces = [copy.deepcopy(w) for w in self._workspaces.values()]
        return sorted(workspaces, key=lambda w: w.created_at or _EPOCH, reverse=True)

    def update_workspace(self, workspace: Workspace) -> Workspace:
        return self._replace(self._workspaces, workspace, "workspace")

    def delete_workspace(self, workspace_id: str) -> None:
        self._remove(self._workspaces, workspace_id, "workspace")

    def create_issue(self, issue: Issue) -> Issue:
        return self._insert(self._issues, issue, "issue")

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        return self._fetch(self._issues, issue_id)

    def list_issues(self, workspace_id: Optional[str] = None, status: Optional[str] = None,
                    cycle_id: Optional[str] = None, limit: int = 0, offset: int = 0) -> list:
        with self._lock:
            issues = [
                copy.deepcopy(issue) for issue in self._issues.values()
                if (not workspace_id or issue.workspace_id == workspace_id)
                and (not status or issue.status == status)
                and (not cycle_id or issue.cycle_id == cycle_id)
            ]
        return paginate(order_issues(issues), limit, offset)

    def update_issue(self, issue: Issue) -> Issue:
        return self._replace(self._issues, issue, "issue")

    def delete_issue(self, issue_id: str) -> None:
        self._remove(self._issues, issue_id, "issue")

    def count_issues_by_status(self, workspace_id: str) -> dict:
        counts = {}
        with self._lock:
            for issue in self._issues.values():
                if issue.workspace_id == workspace_id:
                    counts[issue.status] = counts.get(issue.status, 0) + 1
        return counts

    def create_cycle(self, cycle: Cycle) -> Cycle:
        return self._insert(self._cycles, cycle, "cycle")

    def get_cycle(self, cycle_id: str) -> Optional[Cycle]:
        return self._fetch(self._cycles, cycle_id)

    def list_cycles(self, workspace_id: Optional[str] = None) -> list:
        with self._lock:
            cycles = [
                copy.deepcopy(c) for c in self._cycles.values()
                if not workspace_id or c.workspace_id == workspace_id
            ]
        return sorted(cycles, key=lambda c: c.created_at or _EPOCH, reverse=True)

    def update_cycle(self, cycle: Cycle) -> Cycle:
        return self._replace(self._cycles, cycle, "cycle")

    def delete_cycle(self, cycle_id: str) -> None:
        self._remove(self._cycles, cycle_id, "cycle")
