"""Cycle (sprint) API endpoints."""

from flask import Blueprint, current_app, jsonify, request

from pulse import get_store
from pulse.api import get_request_body, new_id
from services.errors import InvalidField, NotFoundError, ValidationError
from services.lifecycle import apply_cycle_update
from services.models import UNSET, Cycle, parse_timestamp, utcnow

bp = Blueprint("cycles", __name__, url_prefix="/api/cycles")


def get_date_field(data, name):
    """Get an optional ISO date from the body.

    Returns UNSET when absent, None when explicitly null, else a datetime.
    """
    if name not in data:
        return UNSET
    value = data[name]
    if value is None:
        return None
    parsed = parse_timestamp(value) if isinstance(value, str) else None
    if parsed is None:
        raise InvalidField(name, "must be an ISO-8601 date")
    return parsed


@bp.route("", methods=["GET"])
def list_cycles():
    """List cycles for a workspace, newest first.

    Query params:
        - workspace_id: Optional workspace to scope to
    """
    cycles = get_store().list_cycles(request.args.get("workspace_id"))
    return jsonify({"data": [cycle.to_dict() for cycle in cycles]})


@bp.route("/active", methods=["GET"])
def get_active_cycle():
    """Get the active cycle of a workspace, or null when none is active."""
    workspace_id = request.args.get("workspace_id")
    if not workspace_id:
        return jsonify({"error": "Missing required param: workspace_id"}), 400

    cycle = get_store().get_active_cycle(workspace_id)
    return jsonify({"data": cycle.to_dict() if cycle else None})


@bp.route("/upcoming", methods=["GET"])
def list_upcoming_cycles():
    """List upcoming cycles of a workspace, oldest first."""
    workspace_id = request.args.get("workspace_id")
    if not workspace_id:
        return jsonify({"error": "Missing required param: workspace_id"}), 400

    cycles = get_store().list_upcoming_cycles(workspace_id)
    return jsonify({"data": [cycle.to_dict() for cycle in cycles]})


@bp.route("", methods=["POST"])
def create_cycle():
    """Create a cycle.

    Expects JSON body with:
        - workspace_id: Owning workspace (must exist)
        - name: Required
        - start_date / end_date: Optional ISO dates
        - status: Optional, one of upcoming (default), active, completed
    """
    data = get_request_body()

    if data is None:
        return jsonify({"error": "Missing request body"}), 400

    store = get_store()
    workspace_id = data.get("workspace_id")
    if not workspace_id or store.get_workspace(workspace_id) is None:
        return jsonify({"error": "Workspace not found"}), 404

    cycle = Cycle(id=new_id("cycle"), workspace_id=workspace_id, name="", created_at=utcnow())

    try:
        apply_cycle_update(
            cycle,
            name=data.get("name", ""),
            status=data.get("status") or "upcoming",
            start_date=get_date_field(data, "start_date"),
            end_date=get_date_field(data, "end_date")
        )
        store.create_cycle(cycle)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        current_app.logger.exception("Failed to create cycle")
        return jsonify({"error": str(e)}), 500

    return jsonify({"data": cycle.to_dict()}), 201


@bp.route("/<cycle_id>", methods=["GET"])
def get_cycle(cycle_id):
    cycle = get_store().get_cycle(cycle_id)
    if cycle is None:
        return jsonify({"error": "Cycle not found"}), 404
    return jsonify({"data": cycle.to_dict()})


@bp.route("/<cycle_id>", methods=["PUT"])
def update_cycle(cycle_id):
    """Update name, status and/or dates of a cycle."""
    store = get_store()
    cycle = store.get_cycle(cycle_id)
    if cycle is None:
        return jsonify({"error": "Cycle not found"}), 404

    data = get_request_body()
    if data is None:
        return jsonify({"error": "Missing request body"}), 400

    try:
        apply_cycle_update(
            cycle,
            name=data.get("name", UNSET),
            status=data.get("status", UNSET),
            start_date=get_date_field(data, "start_date"),
            end_date=get_date_field(data, "end_date")
        )
        store.update_cycle(cycle)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError:
        return jsonify({"error": "Cycle not found"}), 404
    except Exception as e:
        current_app.logger.exception("Failed to update cycle")
        return jsonify({"error": str(e)}), 500

    return jsonify({"data": cycle.to_dict()})


@bp.route("/<cycle_id>", methods=["DELETE"])
def delete_cycle(cycle_id):
    """Delete a cycle. Issues keep their cycle_id back-reference."""
    try:
        get_store().delete_cycle(cycle_id)
    except NotFoundError:
        return jsonify({"error": "Cycle not found"}), 404

    return "", 204
