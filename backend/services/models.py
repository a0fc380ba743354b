"""Pulse entities: issues, workspaces and cycles.

Timestamps are timezone-aware UTC datetimes everywhere in the core; they are
converted to ISO-8601 strings only when an entity is serialized.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Optional

from services.errors import InvalidField

STATUS_BACKLOG = "backlog"
STATUS_TODO = "todo"
STATUS_IN_PROGRESS = "in_progress"
STATUS_DONE = "done"
STATUS_CANCELED = "canceled"

ISSUE_STATUSES = (
    STATUS_BACKLOG,
    STATUS_TODO,
    STATUS_IN_PROGRESS,
    STATUS_DONE,
    STATUS_CANCELED,
)

# Priority is informational only; values outside this map are stored as-is.
PRIORITY_NAMES = {
    0: "none",
    1: "urgent",
    2: "high",
    3: "medium",
    4: "low",
}

CYCLE_STATUSES = ("upcoming", "active", "completed")

DEFAULT_WORKSPACE_ID = "default"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC) and strings such as
    "2024-10-31T12:11:56.289-0400", "2024-10-31T12:11:56Z" or "2024-10-31".
    Returns None for empty or unparseable input.
    """
    if not value:
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        formats = [
            "%Y-%m-%dT%H:%M:%S.%f%z",  # With fractional seconds and offset
            "%Y-%m-%dT%H:%M:%S%z",     # Without fractional seconds, with offset
            "%Y-%m-%dT%H:%M:%S.%f",    # With fractional seconds, no offset
            "%Y-%m-%dT%H:%M:%S",       # Basic ISO format
            "%Y-%m-%d %H:%M:%S.%f%z",  # SQLite-style separators
            "%Y-%m-%d %H:%M:%S%z",
            "%Y-%m-%d",                # Date only
        ]
        parsed = None
        for fmt in formats:
            try:
                parsed = datetime.strptime(str(value), fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def normalize_labels(labels) -> list:
    """De-duplicate labels, keeping the first occurrence of each."""
    seen = []
    for label in labels or []:
        if label not in seen:
            seen.append(label)
    return seen


@dataclass
class Issue:
    """A unit of trackable work."""

    id: str
    workspace_id: str
    title: str
    description: str = ""
    status: str = STATUS_BACKLOG
    priority: int = 0
    assignee_id: Optional[str] = None
    estimate: int = 0
    cycle_id: Optional[str] = None
    parent_id: Optional[str] = None
    labels: list = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "estimate": self.estimate,
            "cycle_id": self.cycle_id,
            "parent_id": self.parent_id,
            "labels": list(self.labels),
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "completed_at": format_timestamp(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Issue":
        return cls(
            id=data["id"],
            workspace_id=data["workspace_id"],
            title=data["title"],
            description=data.get("description") or "",
            status=data.get("status") or STATUS_BACKLOG,
            priority=data.get("priority") or 0,
            assignee_id=data.get("assignee_id") or None,
            estimate=data.get("estimate") or 0,
            cycle_id=data.get("cycle_id") or None,
            parent_id=data.get("parent_id") or None,
            labels=normalize_labels(data.get("labels")),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
            completed_at=parse_timestamp(data.get("completed_at")),
        )


@dataclass
class Workspace:
    """Tenant boundary grouping issues and cycles by reference."""

    id: str
    name: str
    description: str = ""
    settings: dict = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "settings": dict(self.settings),
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }


@dataclass
class Cycle:
    """A time-boxed iteration. Member issues point at it through cycle_id."""

    id: str
    workspace_id: str
    name: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str = "upcoming"
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "workspace_id": self.workspace_id,
            "name": self.name,
            "start_date": format_timestamp(self.start_date),
            "end_date": format_timestamp(self.end_date),
            "status": self.status,
            "created_at": format_timestamp(self.created_at),
        }


@dataclass(frozen=True)
class StatusTransition:
    """One recorded status change, supplied by callers that keep history."""

    issue_id: str
    from_status: Optional[str]
    to_status: str
    at: datetime


class _Unset:
    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False


UNSET = _Unset()


def _require_text(name, value, nullable=False):
    if value is None and nullable:
        return None
    if not isinstance(value, str):
        raise InvalidField(name, "must be a string")
    return value


def _require_int(name, value):
    # bool is an int subclass, but true/false are never valid counts
    if isinstance(value, bool):
        raise InvalidField(name, "must be an integer")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise InvalidField(name, "must be an integer")
    return value


def _optional_reference(name, value):
    value = _require_text(name, value, nullable=True)
    return value or None


@dataclass
class IssueChanges:
    """A sparse set of issue field assignments.

    Every slot defaults to UNSET, meaning "leave this field untouched".
    Assigning None to assignee_id, cycle_id or parent_id clears the reference.
    """

    title: object = UNSET
    description: object = UNSET
    status: object = UNSET
    priority: object = UNSET
    assignee_id: object = UNSET
    estimate: object = UNSET
    cycle_id: object = UNSET
    parent_id: object = UNSET
    labels: object = UNSET

    def items(self):
        """Yield (field_name, value) for every slot that is set."""
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not UNSET:
                yield f.name, value

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not UNSET

    @classmethod
    def from_payload(cls, payload: dict) -> "IssueChanges":
        """Build changes from a decoded JSON body, checking value types.

        Unknown keys are ignored. "assignee" is accepted as an alias for
        "assignee_id".
        """
        if not isinstance(payload, dict):
            raise InvalidField("body", "must be a JSON object")

        changes = cls()

        if "title" in payload:
            changes.title = _require_text("title", payload["title"])
        if "description" in payload:
            changes.description = _require_text(
                "description", payload["description"], nullable=True
            ) or ""
        if "status" in payload:
            changes.status = _require_text("status", payload["status"])
        if "priority" in payload:
            changes.priority = _require_int("priority", payload["priority"])
        if "estimate" in payload:
            estimate = _require_int("estimate", payload["estimate"])
            if estimate < 0:
                raise InvalidField("estimate", "must not be negative")
            changes.estimate = estimate

        assignee_key = "assignee_id" if "assignee_id" in payload else "assignee"
        if assignee_key in payload:
            changes.assignee_id = _optional_reference("assignee_id", payload[assignee_key])
        if "cycle_id" in payload:
            changes.cycle_id = _optional_reference("cycle_id", payload["cycle_id"])
        if "parent_id" in payload:
            changes.parent_id = _optional_reference("parent_id", payload["parent_id"])

        if "labels" in payload:
            labels = payload["labels"]
            if labels is None:
                labels = []
            if not isinstance(labels, list) or not all(isinstance(l, str) for l in labels):
                raise InvalidField("labels", "must be a list of strings")
            changes.labels = normalize_labels(labels)

        return changes
