"""Workspace API endpoints."""

from flask import Blueprint, current_app, jsonify

from pulse import get_store
from pulse.api import get_request_body, new_id
from services.errors import NotFoundError, ValidationError
from services.lifecycle import apply_workspace_update
from services.models import UNSET, Workspace, utcnow

bp = Blueprint("workspaces", __name__, url_prefix="/api/workspaces")


@bp.route("", methods=["GET"])
def list_workspaces():
    """List all workspaces, newest first."""
    workspaces = get_store().list_workspaces()
    return jsonify({"data": [ws.to_dict() for ws in workspaces]})


@bp.route("", methods=["POST"])
def create_workspace():
    """Create a workspace.

    Expects JSON body with:
        - name: Workspace name (required)
        - description: Optional description
        - settings: Optional name -> value map
    """
    data = get_request_body()

    if data is None:
        return jsonify({"error": "Missing request body"}), 400

    now = utcnow()
    workspace = Workspace(
        id=new_id("ws"),
        name="",
        created_at=now,
        updated_at=now
    )

    try:
        apply_workspace_update(
            workspace,
            name=data.get("name", ""),
            description=data.get("description", ""),
            settings=data.get("settings") or {},
            clock=lambda: now
        )
        get_store().create_workspace(workspace)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        current_app.logger.exception("Failed to create workspace")
        return jsonify({"error": str(e)}), 500

    return jsonify({"data": workspace.to_dict()}), 201


@bp.route("/<workspace_id>", methods=["GET"])
def get_workspace(workspace_id):
    workspace = get_store().get_workspace(workspace_id)
    if workspace is None:
        return jsonify({"error": "Workspace not found"}), 404
    return jsonify({"data": workspace.to_dict()})


@bp.route("/<workspace_id>", methods=["PUT"])
def update_workspace(workspace_id):
    """Update name, description and/or settings of a workspace."""
    store = get_store()
    workspace = store.get_workspace(workspace_id)
    if workspace is None:
        return jsonify({"error": "Workspace not found"}), 404

    data = get_request_body()
    if data is None:
        return jsonify({"error": "Missing request body"}), 400

    try:
        apply_workspace_update(
            workspace,
            name=data.get("name", UNSET),
            description=data.get("description", UNSET),
            settings=data.get("settings", UNSET)
        )
        store.update_workspace(workspace)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception as e:
        current_app.logger.exception("Failed to update workspace")
        return jsonify({"error": str(e)}), 500

    return jsonify({"data": workspace.to_dict()})


@bp.route("/<workspace_id>", methods=["DELETE"])
def delete_workspace(workspace_id):
    """Delete a workspace. Its issues and cycles are left in place."""
    try:
        get_store().delete_workspace(workspace_id)
    except NotFoundError:
        return jsonify({"error": "Workspace not found"}), 404

    return "", 204
