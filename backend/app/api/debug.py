"""Debug API endpoints for troubleshooting."""

from flask import Blueprint, request, jsonify
import requests

from app.session import get_registry, get_jira_credentials
from services.jira_client import JiraClient, JiraApiError

bp = Blueprint("debug", __name__, url_prefix="/api/debug")


@bp.route("/endpoints", methods=["GET"])
def test_endpoints():
    """Check which Jira endpoints answer for these credentials."""
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    results = JiraClient(server, email, token).test_endpoints()
    return jsonify({"data": results})


@bp.route("/filtering", methods=["GET"])
def filtering_diagnostic():
    """Compare a raw, unfiltered search with the caller's allow-list.

    Query params:
        - jql: Search to sample (default: most recently updated issues)
        - limit: Issues to sample (default: 100)

    Only counts and project keys are returned, never issue content.
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    jql = request.args.get("jql", "order by updated DESC")
    limit = request.args.get("limit", 100, type=int)
    access = get_registry().get(email)

    try:
        raw_issues = JiraClient(server, email, token).search_issues(
            jql, max_results=limit, fields=["project"]
        )
    except (requests.exceptions.RequestException, JiraApiError) as e:
        return jsonify({"error": str(e)}), 500

    return jsonify({
        "data": {
            "userProjects": access.get_user_projects(),
            "isInitialized": access.is_initialized(),
            "isManualSelection": access.is_manual_selection(),
            "stats": access.get_access_stats(raw_issues),
            "validation": access.validate_data_filtering(raw_issues)
        }
    })
