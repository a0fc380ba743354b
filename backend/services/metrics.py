"""Team performance metrics calculated from a scoped set of issues.

Callers scope the issue set (by workspace and optionally cycle) before
handing it over; nothing here loads data. Every ratio guards its
denominator and reports 0 instead of failing.
"""

import math
from datetime import timedelta
from typing import Iterable, Optional

from services.models import (
    ISSUE_STATUSES,
    STATUS_DONE,
    STATUS_IN_PROGRESS,
    Issue,
    StatusTransition,
)

BUG_LABEL = "bug"

SECONDS_PER_HOUR = 3600


def percentile(sorted_values: list, percent: float) -> float:
    """Nearest-rank percentile of an ascending list.

    For n values the result is the one at index ceil(percent/100 * n) - 1,
    clamped to the list bounds. An empty list yields 0.
    """
    n = len(sorted_values)
    if n == 0:
        return 0
    index = math.ceil(percent * n / 100) - 1
    index = max(0, min(index, n - 1))
    return sorted_values[index]


def to_hours(duration) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds() / SECONDS_PER_HOUR
    return float(duration)


def duration_stats(durations: Iterable) -> dict:
    """Mean and P50/P90/P99 over durations given in hours or as timedeltas.

    NaN and infinite samples are dropped, so every reported figure is finite.
    """
    values = sorted(h for h in (to_hours(d) for d in durations) if math.isfinite(h))
    count = len(values)
    mean = sum(values) / count if count > 0 else 0

    return {
        "count": count,
        "mean": mean,
        "p50": percentile(values, 50),
        "p90": percentile(values, 90),
        "p99": percentile(values, 99),
    }


def _rate(numerator, denominator) -> float:
    return (numerator / denominator * 100) if denominator > 0 else 0


def cycle_time_samples(issues: Iterable[Issue],
                       transitions: Iterable[StatusTransition]) -> list:
    """Derive (issue_id, hours) cycle-time pairs from a transition history.

    Cycle time runs from the first move into in_progress to completed_at,
    for issues that are currently done. Issues never seen entering
    in_progress are skipped.
    """
    first_started = {}
    for transition in transitions:
        if transition.to_status != STATUS_IN_PROGRESS:
            continue
        seen = first_started.get(transition.issue_id)
        if seen is None or transition.at < seen:
            first_started[transition.issue_id] = transition.at

    samples = []
    for issue in issues:
        if issue.status != STATUS_DONE or issue.completed_at is None:
            continue
        started = first_started.get(issue.id)
        if started is None or started > issue.completed_at:
            continue
        samples.append((issue.id, to_hours(issue.completed_at - started)))
    return samples


def reopen_rate(transitions: Iterable[StatusTransition],
                issues: Optional[Iterable[Issue]] = None) -> float:
    """Share of ever-completed issues that later left done, as a percentage."""
    completed_ever = set()
    reopened = set()

    for transition in transitions:
        if transition.to_status == STATUS_DONE:
            completed_ever.add(transition.issue_id)
        elif transition.from_status == STATUS_DONE:
            reopened.add(transition.issue_id)

    for issue in issues or []:
        if issue.status == STATUS_DONE:
            completed_ever.add(issue.id)

    # History may begin after an issue was first completed
    completed_ever |= reopened
    return _rate(len(reopened), len(completed_ever))


class MetricsAggregator:
    """Velocity, cycle time, lead time and quality for a set of issues."""

    def calculate_status_counts(self, issues: list) -> dict:
        counts = {}
        for issue in issues:
            counts[issue.status] = counts.get(issue.status, 0) + 1
        return self.normalize_status_counts(counts)

    def normalize_status_counts(self, raw_counts: dict) -> dict:
        """Fill a status -> count map to every known status plus a total.

        Statuses outside the known set are not reported.
        """
        counts = {status: raw_counts.get(status, 0) for status in ISSUE_STATUSES}
        counts["total"] = sum(counts[status] for status in ISSUE_STATUSES)
        return counts

    def calculate_velocity(self, issues: list) -> dict:
        """Planned vs completed story points.

        Planned is the estimate sum over every issue in scope, completed the
        sum over issues in done; carryover is what remains.
        """
        points_planned = 0
        points_completed = 0

        for issue in issues:
            estimate = issue.estimate or 0
            points_planned += estimate
            if issue.status == STATUS_DONE:
                points_completed += estimate

        return {
            "points_planned": points_planned,
            "points_completed": points_completed,
            "completion_rate": _rate(points_completed, points_planned),
            "carryover": points_planned - points_completed,
        }

    def calculate_cycle_time(self, durations: Iterable) -> dict:
        """Distribution of pre-extracted (issue_id, duration) pairs."""
        return duration_stats(duration for _, duration in durations)

    def calculate_lead_time(self, issues: list) -> dict:
        """Distribution of completed_at - created_at over completed issues."""
        durations = []
        for issue in issues:
            if issue.status != STATUS_DONE:
                continue
            if issue.completed_at is None or issue.created_at is None:
                continue
            durations.append(issue.completed_at - issue.created_at)
        return duration_stats(durations)

    def calculate_quality(self, issues: list,
                          transitions: Optional[Iterable[StatusTransition]] = None) -> dict:
        """Bug share of the scope, plus reopen rate when history is supplied."""
        total = len(issues)
        bug_count = sum(1 for issue in issues if BUG_LABEL in issue.labels)

        return {
            "bug_count": bug_count,
            "bug_rate": _rate(bug_count, total),
            "reopen_rate": reopen_rate(transitions, issues) if transitions is not None else None,
        }

    def calculate_cycle_progress(self, issues: list, cycle_id: str) -> dict:
        in_cycle = [issue for issue in issues if issue.cycle_id == cycle_id]
        completed = sum(1 for issue in in_cycle if issue.status == STATUS_DONE)
        return {
            "cycle_id": cycle_id,
            "total": len(in_cycle),
            "completed": completed,
        }

    def _summarize(self, status_counts: dict, velocity: dict, quality: dict) -> dict:
        """Flat dashboard fields; completion_rate here counts issues, not points."""
        total = status_counts["total"]
        return {
            "total_issues": total,
            "backlog_count": status_counts["backlog"],
            "todo_count": status_counts["todo"],
            "in_progress_count": status_counts["in_progress"],
            "done_count": status_counts["done"],
            "canceled_count": status_counts["canceled"],
            "total_points": velocity["points_planned"],
            "completed_points": velocity["points_completed"],
            "completion_rate": _rate(status_counts["done"], total),
            "bug_count": quality["bug_count"],
        }

    def compute_all(self, issues: Iterable[Issue], cycle_durations: Optional[Iterable] = None,
                    transitions: Optional[Iterable[StatusTransition]] = None) -> dict:
        """All metric categories for one scope.

        Cycle time uses ``cycle_durations`` when given, otherwise samples
        derived from ``transitions``; with neither it is empty.
        """
        issues = list(issues)
        if transitions is not None:
            transitions = list(transitions)

        if cycle_durations is None and transitions is not None:
            cycle_durations = cycle_time_samples(issues, transitions)

        status_counts = self.calculate_status_counts(issues)
        velocity = self.calculate_velocity(issues)
        quality = self.calculate_quality(issues, transitions)

        return {
            "status_counts": status_counts,
            "velocity": velocity,
            "cycle_time": self.calculate_cycle_time(cycle_durations or []),
            "lead_time": self.calculate_lead_time(issues),
            "quality": quality,
            "summary": self._summarize(status_counts, velocity, quality),
        }
