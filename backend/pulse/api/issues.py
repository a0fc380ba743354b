"""Issue API endpoints."""

from flask import Blueprint, current_app, jsonify, request

from pulse import get_store
from pulse.api import get_int_arg, get_request_body, new_id
from services.errors import NotFoundError, ValidationError
from services.lifecycle import IssueLifecycleManager
from services.models import IssueChanges

bp = Blueprint("issues", __name__, url_prefix="/api/issues")

lifecycle = IssueLifecycleManager()


@bp.route("", methods=["GET"])
def list_issues():
    """List issues ordered by priority, then newest first.

    Query params:
        - workspace_id: Optional workspace to scope to
        - status: Optional status filter
        - cycle_id: Optional cycle filter
        - limit / offset: Optional pagination
    """
    issues = get_store().list_issues(
        workspace_id=request.args.get("workspace_id"),
        status=request.args.get("status"),
        cycle_id=request.args.get("cycle_id"),
        limit=get_int_arg("limit"),
        offset=get_int_arg("offset")
    )
    return jsonify({"data": [issue.to_dict() for issue in issues]})


@bp.route("", methods=["POST"])
def create_issue():
    """Create an issue.

    Expects JSON body with:
        - workspace_id: Owning workspace (must exist)
        - title: Required, non-empty
        - status: Optional, defaults to backlog
        - description, priority, assignee_id, estimate, cycle_id,
          parent_id, labels: Optional
    """
    data = get_request_body()

    if data is None:
        return jsonify({"error": "Missing request body"}), 400

    store = get_store()
    workspace_id = data.get("workspace_id")
    if not workspace_id or store.get_workspace(workspace_id) is None:
        return jsonify({"error": "Workspace not found"}), 404

    try:
        changes = IssueChanges.from_payload(data)
        issue = lifecycle.create_issue(new_id("issue"), workspace_id, changes)
        store.create_issue(issue)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        current_app.logger.exception("Failed to create issue")
        return jsonify({"error": str(e)}), 500

    return jsonify({"data": issue.to_dict()}), 201


@bp.route("/<issue_id>", methods=["GET"])
def get_issue(issue_id):
    issue = get_store().get_issue(issue_id)
    if issue is None:
        return jsonify({"error": "Issue not found"}), 404
    return jsonify({"data": issue.to_dict()})


@bp.route("/<issue_id>", methods=["PUT"])
def update_issue(issue_id):
    """Apply a partial update; fields missing from the body are untouched."""
    store = get_store()
    issue = store.get_issue(issue_id)
    if issue is None:
        return jsonify({"error": "Issue not found"}), 404

    data = get_request_body()
    if data is None:
        return jsonify({"error": "Missing request body"}), 400

    try:
        lifecycle.apply_update(issue, IssueChanges.from_payload(data))
        store.update_issue(issue)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError:
        return jsonify({"error": "Issue not found"}), 404
    except Exception as e:
        current_app.logger.exception("Failed to update issue")
        return jsonify({"error": str(e)}), 500

    return jsonify({"data": issue.to_dict()})


@bp.route("/<issue_id>", methods=["PATCH"])
def update_issue_status(issue_id):
    """Move an issue to a new status (board drag-and-drop, quick moves).

    Expects JSON body with:
        - status: One of backlog, todo, in_progress, done, canceled
    """
    store = get_store()
    issue = store.get_issue(issue_id)
    if issue is None:
        return jsonify({"error": "Issue not found"}), 404

    data = get_request_body()
    if data is None or "status" not in data:
        return jsonify({"error": "Missing required field: status"}), 400

    try:
        lifecycle.apply_status_only(issue, data["status"])
        store.update_issue(issue)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError:
        return jsonify({"error": "Issue not found"}), 404
    except Exception as e:
        current_app.logger.exception("Failed to update issue status")
        return jsonify({"error": str(e)}), 500

    return jsonify({"data": issue.to_dict()})


@bp.route("/<issue_id>", methods=["DELETE"])
def delete_issue(issue_id):
    try:
        get_store().delete_issue(issue_id)
    except NotFoundError:
        return jsonify({"error": "Issue not found"}), 404

    return "", 204
