"""Board and sprint API endpoints."""

from flask import Blueprint, request, jsonify
import requests

from app.session import get_registry, get_jira_credentials
from services.jira_client import JiraClient

bp = Blueprint("boards", __name__, url_prefix="/api/boards")


def jira_error_response(e):
    """Map a failed Jira call to an error response, keeping Jira's status."""
    if isinstance(e, requests.exceptions.Timeout):
        return jsonify({"error": "Connection to Jira timed out"}), 504

    response = getattr(e, "response", None)
    if response is not None:
        if response.status_code == 404:
            return jsonify({"error": "Board not found"}), 404
        return jsonify({"error": f"Jira API error: {response.status_code}"}), response.status_code

    return jsonify({"error": f"Failed to connect to Jira: {str(e)}"}), 500


def board_project_key(board: dict):
    return (board.get("location") or {}).get("projectKey")


@bp.route("", methods=["GET"])
def list_boards():
    """List boards that belong to the caller's allowed projects.

    Requires headers:
        - X-Jira-Server: Jira server URL
        - X-Jira-Email: User's Jira email
        - X-Jira-Token: Jira API token
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    access = get_registry().get(email)
    if not access.is_initialized():
        return jsonify({"data": []})

    try:
        all_boards = JiraClient(server, email, token).get_boards()
    except requests.exceptions.RequestException as e:
        return jira_error_response(e)

    formatted_boards = [
        {
            "id": board["id"],
            "name": board["name"],
            "type": board.get("type"),
            "projectKey": board_project_key(board),
            "projectName": (board.get("location") or {}).get("displayName")
        }
        for board in all_boards
        if access.has_access_to_project(board_project_key(board))
    ]

    return jsonify({"data": formatted_boards})


@bp.route("/<int:board_id>/sprints", methods=["GET"])
def get_sprints(board_id):
    """Get sprints for a board in one of the caller's allowed projects.

    Query params:
        - limit: Number of sprints to return (default: 6)
        - state: Sprint state filter (default: all states)
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    limit = request.args.get("limit", 6, type=int)
    state = request.args.get("state")
    access = get_registry().get(email)
    client = JiraClient(server, email, token)

    try:
        project_key = board_project_key(client.get_board(board_id))
        if not access.has_access_to_project(project_key):
            return jsonify({"error": f"No access to project {project_key}"}), 403

        sprints = client.get_sprints(board_id, state=state)
    except requests.exceptions.RequestException as e:
        return jira_error_response(e)

    # Sort by end date descending and take the most recent
    sprints.sort(key=lambda s: s.get("endDate") or "", reverse=True)
    recent_sprints = sprints[:limit]

    formatted_sprints = [
        {
            "id": sprint["id"],
            "name": sprint["name"],
            "state": sprint["state"],
            "startDate": sprint.get("startDate"),
            "endDate": sprint.get("endDate"),
            "completeDate": sprint.get("completeDate"),
            "goal": sprint.get("goal")
        }
        for sprint in recent_sprints
    ]

    return jsonify({"data": formatted_sprints})
