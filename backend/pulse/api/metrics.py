"""Team metrics API endpoints."""

import math

from flask import Blueprint, current_app, request, jsonify

from pulse import get_default_workspace_id, get_store
from pulse.api import get_request_body
from services.errors import InvalidField, ValidationError
from services.metrics import MetricsAggregator
from services.models import StatusTransition, parse_timestamp

bp = Blueprint("metrics", __name__, url_prefix="/api/metrics")

aggregator = MetricsAggregator()


def get_scope():
    """Get the workspace/cycle scope from query params.

    Query params:
        - workspace_id: Workspace to scope to (defaults to the default workspace)
        - cycle_id: Optional cycle to narrow the scope to

    Returns:
        Tuple of (workspace_id, cycle_id), cycle_id may be None
    """
    workspace_id = request.args.get("workspace_id") or get_default_workspace_id()
    cycle_id = request.args.get("cycle_id") or None
    return workspace_id, cycle_id


def parse_cycle_durations(data):
    """Parse [[issue_id, hours], ...] or [{"issue_id", "hours"}, ...]."""
    durations = []
    for entry in data:
        if isinstance(entry, dict):
            issue_id, hours = entry.get("issue_id"), entry.get("hours")
        elif isinstance(entry, (list, tuple)) and len(entry) == 2:
            issue_id, hours = entry
        else:
            raise InvalidField("cycle_durations", "entries must be (issue_id, hours) pairs")

        if isinstance(hours, bool) or not isinstance(hours, (int, float)) \
                or not math.isfinite(hours) or hours < 0:
            raise InvalidField("cycle_durations", "hours must be a finite non-negative number")
        durations.append((issue_id, hours))
    return durations


def parse_transitions(data):
    """Parse [{"issue_id", "from_status", "to_status", "at"}, ...]."""
    transitions = []
    for entry in data:
        if not isinstance(entry, dict):
            raise InvalidField("transitions", "entries must be objects")
        at = parse_timestamp(entry.get("at"))
        if not entry.get("issue_id") or not entry.get("to_status") or at is None:
            raise InvalidField("transitions", "issue_id, to_status and at are required")
        transitions.append(StatusTransition(
            issue_id=entry["issue_id"],
            from_status=entry.get("from_status"),
            to_status=entry["to_status"],
            at=at
        ))
    return transitions


def build_metrics(workspace_id, cycle_id, cycle_durations=None, transitions=None):
    issues = get_store().list_issues(workspace_id=workspace_id, cycle_id=cycle_id)
    metrics = aggregator.compute_all(issues, cycle_durations, transitions)
    metrics["workspace_id"] = workspace_id
    metrics["cycle_id"] = cycle_id
    return metrics


@bp.route("", methods=["GET"])
def get_metrics():
    """Get all metrics for a workspace (optionally a single cycle).

    Returns:
        - Status counts
        - Velocity (planned vs completed points, carryover)
        - Cycle time (empty: no transition history is stored)
        - Lead time distribution
        - Quality (bug count and rate)
    """
    workspace_id, cycle_id = get_scope()

    try:
        return jsonify({"data": build_metrics(workspace_id, cycle_id)})
    except Exception as e:
        current_app.logger.exception("Failed to compute metrics")
        return jsonify({"error": str(e)}), 500


@bp.route("", methods=["POST"])
def post_metrics():
    """Get all metrics using caller-supplied status history.

    Query params are the same as GET. Expects JSON body with optional:
        - cycle_durations: [[issue_id, hours], ...] pre-extracted cycle times
        - transitions: [{issue_id, from_status, to_status, at}, ...]
    """
    workspace_id, cycle_id = get_scope()
    data = get_request_body()

    if data is None:
        return jsonify({"error": "Missing request body"}), 400

    try:
        cycle_durations = None
        transitions = None
        if data.get("cycle_durations") is not None:
            cycle_durations = parse_cycle_durations(data["cycle_durations"])
        if data.get("transitions") is not None:
            transitions = parse_transitions(data["transitions"])

        metrics = build_metrics(workspace_id, cycle_id, cycle_durations, transitions)
        return jsonify({"data": metrics})
    except (ValidationError, TypeError, OverflowError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        current_app.logger.exception("Failed to compute metrics")
        return jsonify({"error": str(e)}), 500


@bp.route("/cycles/<cycle_id>/progress", methods=["GET"])
def get_cycle_progress(cycle_id):
    """Get total vs completed issue counts for a cycle."""
    store = get_store()
    cycle = store.get_cycle(cycle_id)
    if cycle is None:
        return jsonify({"error": "Cycle not found"}), 404

    issues = store.list_issues(workspace_id=cycle.workspace_id, cycle_id=cycle_id)
    return jsonify({"data": aggregator.calculate_cycle_progress(issues, cycle_id)})


@bp.route("/status-counts", methods=["GET"])
def get_status_counts():
    """Get issue counts per status for a workspace without loading issues.

    Query params:
        - workspace_id: Workspace to count (defaults to the default workspace)
    """
    workspace_id, _ = get_scope()

    try:
        raw_counts = get_store().count_issues_by_status(workspace_id)
    except Exception as e:
        current_app.logger.exception("Failed to count issues")
        return jsonify({"error": str(e)}), 500

    counts = aggregator.normalize_status_counts(raw_counts)
    counts["workspace_id"] = workspace_id
    return jsonify({"data": counts})
