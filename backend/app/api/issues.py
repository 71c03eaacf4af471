"""Issue listing and export endpoints."""

from flask import Blueprint, Response, request, jsonify
import requests

from app.session import get_registry, get_jira_credentials
from services.dashboard_data import fetch_accessible_issues
from services.export import export_filename, issues_to_csv, issues_to_json
from services.issue_filters import parse_filter_args
from services.jira_client import JiraClient, JiraApiError

bp = Blueprint("issues", __name__, url_prefix="/api/issues")

EXPORT_FORMATS = {
    "csv": "text/csv; charset=utf-8",
    "json": "application/json"
}


@bp.route("", methods=["GET"])
def list_issues():
    """Get issues from the caller's allowed projects.

    Query params (all optional, lists comma-separated):
        - projects, sprints, issueTypes, statuses, assignees, priorities
        - start_date, end_date: ISO dates bounding the creation date

    Returns an empty list until the caller has selected projects.
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    access = get_registry().get(email)
    filters = parse_filter_args(request.args)

    try:
        result = fetch_accessible_issues(JiraClient(server, email, token), access, filters)
        return jsonify({"data": result})
    except requests.exceptions.Timeout:
        return jsonify({"error": "Connection to Jira timed out"}), 504
    except (requests.exceptions.RequestException, JiraApiError) as e:
        return jsonify({"error": f"Failed to fetch issues: {str(e)}"}), 500


@bp.route("/export", methods=["GET"])
def export_issues():
    """Download the filtered issue list as CSV or JSON.

    Query params:
        - format: "csv" (default) or "json"
        - the same filter params as the issue listing
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    export_format = request.args.get("format", "csv").lower()
    if export_format not in EXPORT_FORMATS:
        return jsonify({"error": f"Unsupported export format: {export_format}"}), 400

    access = get_registry().get(email)
    filters = parse_filter_args(request.args)

    try:
        result = fetch_accessible_issues(JiraClient(server, email, token), access, filters)
    except requests.exceptions.Timeout:
        return jsonify({"error": "Connection to Jira timed out"}), 504
    except (requests.exceptions.RequestException, JiraApiError) as e:
        return jsonify({"error": f"Failed to fetch issues: {str(e)}"}), 500

    if export_format == "csv":
        body = issues_to_csv(result["issues"])
    else:
        body = issues_to_json(result["issues"])

    return Response(
        body,
        content_type=EXPORT_FORMATS[export_format],
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename(export_format)}"'
        }
    )
