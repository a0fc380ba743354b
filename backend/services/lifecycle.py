"""Issue lifecycle: validated field updates and completion bookkeeping.

The manager mutates only the entity instance it is handed. Every update is
validated in full before the first field is touched, so a rejected update
leaves the issue exactly as it was.
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from services.errors import InvalidField, InvalidStatus
from services.models import (
    CYCLE_STATUSES,
    ISSUE_STATUSES,
    STATUS_BACKLOG,
    STATUS_DONE,
    UNSET,
    Cycle,
    Issue,
    IssueChanges,
    Workspace,
    normalize_labels,
    utcnow,
)


def validate_status(status) -> str:
    if status not in ISSUE_STATUSES:
        raise InvalidStatus(status, ISSUE_STATUSES)
    return status


def validate_title(title) -> str:
    if not isinstance(title, str) or not title.strip():
        raise InvalidField("title", "must not be empty")
    return title


def validate_labels(labels) -> list:
    """Return the de-duplicated labels, rejecting anything but a list of strings."""
    if not isinstance(labels, (list, tuple)) or not all(isinstance(l, str) for l in labels):
        raise InvalidField("labels", "must be a list of strings")
    return normalize_labels(labels)


def _resolve_values(changes: IssueChanges) -> dict:
    """Validate every set slot of ``changes`` and return the values to assign."""
    if changes.is_set("status"):
        validate_status(changes.status)
    if changes.is_set("title"):
        validate_title(changes.title)

    values = dict(changes.items())
    if "labels" in values:
        values["labels"] = validate_labels(values["labels"])
    return values


class IssueLifecycleManager:
    """Applies sparse updates to issues and owns the completed_at rule."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utcnow

    def _next_timestamp(self, previous: Optional[datetime]) -> datetime:
        now = self.clock()
        if previous is not None and now < previous:
            # A clock step backwards must not move updated_at backwards
            return previous
        return now

    def create_issue(self, issue_id: str, workspace_id: str,
                     changes: IssueChanges) -> Issue:
        """Build a new issue from creation-time field values.

        Title is required; status defaults to backlog. An issue created
        directly in done gets completed_at stamped at creation.
        """
        if not changes.is_set("title"):
            raise InvalidField("title", "is required")
        values = _resolve_values(changes)

        status = values.pop("status", STATUS_BACKLOG)
        validate_status(status)

        now = self.clock()
        issue = Issue(
            id=issue_id,
            workspace_id=workspace_id,
            title=values.pop("title"),
            status=status,
            created_at=now,
            updated_at=now,
            completed_at=now if status == STATUS_DONE else None,
        )
        for name, value in values.items():
            setattr(issue, name, value)
        return issue

    def apply_update(self, issue: Issue, changes: IssueChanges) -> Issue:
        """Apply every set slot of ``changes`` to ``issue`` or none of them.

        Raises InvalidStatus for an unrecognized status and InvalidField for
        an empty title or malformed labels. updated_at moves forward even
        when no value changes.
        """
        values = _resolve_values(changes)

        now = self._next_timestamp(issue.updated_at)
        previous_status = issue.status

        for name, value in values.items():
            setattr(issue, name, value)

        issue.updated_at = now

        if "status" in values:
            if issue.status == STATUS_DONE:
                if previous_status != STATUS_DONE or issue.completed_at is None:
                    issue.completed_at = now
            else:
                issue.completed_at = None

        return issue

    def apply_status_only(self, issue: Issue, new_status: str) -> Issue:
        """Quick-move path: a status-only update with the same rules."""
        return self.apply_update(issue, IssueChanges(status=new_status))


def apply_workspace_update(workspace: Workspace, name=UNSET, description=UNSET,
                           settings=UNSET, clock: Callable[[], datetime] = utcnow) -> Workspace:
    if name is not UNSET:
        if not isinstance(name, str) or not name.strip():
            raise InvalidField("name", "must not be empty")
    if settings is not UNSET and not isinstance(settings, dict):
        raise InvalidField("settings", "must be an object")
    if description is not UNSET and description is not None and not isinstance(description, str):
        raise InvalidField("description", "must be a string")

    if name is not UNSET:
        workspace.name = name
    if description is not UNSET:
        workspace.description = description or ""
    if settings is not UNSET:
        workspace.settings = dict(settings)
    workspace.updated_at = clock()
    return workspace


def apply_cycle_update(cycle: Cycle, name=UNSET, status=UNSET,
                       start_date=UNSET, end_date=UNSET) -> Cycle:
    if name is not UNSET:
        if not isinstance(name, str) or not name.strip():
            raise InvalidField("name", "must not be empty")
    if status is not UNSET and status not in CYCLE_STATUSES:
        raise InvalidStatus(status, CYCLE_STATUSES)

    changed = {}
    if name is not UNSET:
        changed["name"] = name
    if status is not UNSET:
        changed["status"] = status
    if start_date is not UNSET:
        changed["start_date"] = start_date
    if end_date is not UNSET:
        changed["end_date"] = end_date

    updated = replace(cycle, **changed)
    if updated.start_date and updated.end_date and updated.end_date < updated.start_date:
        raise InvalidField("end_date", "must not be before start_date")

    for key, value in changed.items():
        setattr(cycle, key, value)
    return cycle
