"""Quality metrics and insights endpoints."""

from flask import Blueprint, request, jsonify
import requests

from app.session import get_registry, get_jira_credentials
from services.dashboard_data import fetch_accessible_issues
from services.insights import InsightsService, TIME_RANGE_DAYS
from services.issue_filters import parse_filter_args
from services.jira_client import JiraClient, JiraApiError
from services.quality_metrics import QualityMetricsService

bp = Blueprint("metrics", __name__, url_prefix="/api/metrics")


def get_board_id():
    """Get optional board ID from query params.

    Query params:
        - board_id: Board whose closed sprints feed velocity figures

    Returns:
        int or None
    """
    board_id = request.args.get("board_id")
    if board_id:
        try:
            return int(board_id)
        except ValueError:
            return None
    return None


@bp.route("/quality", methods=["GET"])
def get_quality():
    """Get quality metrics for the caller's filtered issues.

    Query params: the issue filter params.

    Returns:
        - Metrics (bug rate, rework rate, resolution time, estimates)
        - Overall score (0-100)
        - Threshold insights and weekly trends
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    access = get_registry().get(email)
    filters = parse_filter_args(request.args)

    try:
        result = fetch_accessible_issues(JiraClient(server, email, token), access, filters)
        report = QualityMetricsService().get_quality_report(result["issues"])
        report["issueCount"] = result["total"]
        return jsonify({"data": report})
    except (requests.exceptions.RequestException, JiraApiError) as e:
        return jsonify({"error": str(e)}), 500


@bp.route("/insights", methods=["GET"])
def get_insights():
    """Get heuristic insights for the caller's filtered issues.

    Query params:
        - time_range: week, month (default) or quarter
        - board_id: Optional board for sprint-based velocity
        - the issue filter params
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    time_range = request.args.get("time_range", "month")
    if time_range not in TIME_RANGE_DAYS:
        return jsonify({"error": f"Unsupported time range: {time_range}"}), 400

    access = get_registry().get(email)
    filters = parse_filter_args(request.args)
    board_id = get_board_id()

    try:
        client = JiraClient(server, email, token)
        result = fetch_accessible_issues(client, access, filters)
        sprints = []
        if board_id is not None:
            board = client.get_board(board_id)
            project_key = (board.get("location") or {}).get("projectKey")
            if not access.has_access_to_project(project_key):
                return jsonify({"error": f"No access to project {project_key}"}), 403
            sprints = client.get_sprints(board_id, state="closed")
        insights = InsightsService().generate_insights(result["issues"], sprints, time_range)
        return jsonify({"data": {"insights": insights, "issueCount": result["total"]}})
    except (requests.exceptions.RequestException, JiraApiError) as e:
        return jsonify({"error": str(e)}), 500
