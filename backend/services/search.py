"""Free-text and structured issue search.

A query may carry one structured filter as a prefix ("status:done",
"label:bug", "assignee:alice"); the remainder becomes that filter's value
and the free-text part is dropped. Explicit filter arguments override a
prefix-parsed value for the same filter. All active filters are ANDed.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

from services.models import Issue

QUERY_PREFIXES = ("status", "label", "assignee")


@dataclass(frozen=True)
class SearchCriteria:
    text: str = ""
    status: str = ""
    label: str = ""
    assignee: str = ""


def parse_query(query: Optional[str]) -> SearchCriteria:
    """Split a raw query into free text and at most one prefixed filter."""
    query = query or ""
    for name in QUERY_PREFIXES:
        prefix = f"{name}:"
        if query.startswith(prefix):
            return SearchCriteria(**{name: query[len(prefix):]})
    return SearchCriteria(text=query)


def resolve_criteria(query: Optional[str] = "", status: Optional[str] = None,
                     label: Optional[str] = None,
                     assignee: Optional[str] = None) -> SearchCriteria:
    parsed = parse_query(query)
    return SearchCriteria(
        text=parsed.text,
        status=status or parsed.status,
        label=label or parsed.label,
        assignee=assignee or parsed.assignee,
    )


def matches(issue: Issue, criteria: SearchCriteria) -> bool:
    if criteria.text:
        in_title = criteria.text in (issue.title or "")
        in_description = criteria.text in (issue.description or "")
        if not (in_title or in_description):
            return False

    if criteria.status and issue.status != criteria.status:
        return False

    if criteria.label:
        if not any(criteria.label in label for label in issue.labels):
            return False

    if criteria.assignee and issue.assignee_id != criteria.assignee:
        return False

    return True


def search_issues(issues: Iterable[Issue], query: Optional[str] = "",
                  status: Optional[str] = None, label: Optional[str] = None,
                  assignee: Optional[str] = None) -> Iterator[Issue]:
    """Lazily yield the issues matching every active filter, in input order."""
    criteria = resolve_criteria(query, status, label, assignee)
    return (issue for issue in issues if matches(issue, criteria))


def to_search_result(issue: Issue) -> dict:
    return {
        "type": "issue",
        "id": issue.id,
        "title": issue.title,
        "status": issue.status,
        "labels": list(issue.labels),
        "estimate": issue.estimate,
        "workspace": issue.workspace_id,
    }
