"""Issue search API endpoint."""

from flask import Blueprint, current_app, request, jsonify

from pulse import get_default_workspace_id, get_store
from services.search import search_issues, to_search_result

bp = Blueprint("search", __name__, url_prefix="/api/search")


@bp.route("", methods=["GET"])
def search():
    """Search issues in a workspace.

    Query params:
        - q: Free text, or a single "status:", "label:" or "assignee:" filter
        - workspace_id: Workspace to search (defaults to the default workspace)
        - status, label, assignee: Explicit filters; these win over a
          filter of the same kind given as a "q" prefix
    """
    workspace_id = request.args.get("workspace_id") or get_default_workspace_id()

    try:
        issues = get_store().list_issues(workspace_id=workspace_id)
        results = search_issues(
            issues,
            query=request.args.get("q", ""),
            status=request.args.get("status"),
            label=request.args.get("label"),
            assignee=request.args.get("assignee")
        )
        return jsonify({"data": [to_search_result(issue) for issue in results]})
    except Exception as e:
        current_app.logger.exception("Search failed")
        return jsonify({"error": str(e)}), 500
