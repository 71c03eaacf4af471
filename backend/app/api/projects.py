"""Project listing for the project selection screen."""

from flask import Blueprint, jsonify
import requests

from app.session import get_registry, get_jira_credentials
from services.jira_client import JiraClient, JiraApiError, to_project_ref

bp = Blueprint("projects", __name__, url_prefix="/api/projects")


@bp.route("", methods=["GET"])
def list_projects():
    """List every project the credentials can see, marking the selected ones.

    This is the one unfiltered listing: the user needs it to pick projects.
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    access = get_registry().get(email)

    try:
        projects = JiraClient(server, email, token).get_projects()
    except requests.exceptions.Timeout:
        return jsonify({"error": "Connection to Jira timed out"}), 504
    except (requests.exceptions.RequestException, JiraApiError) as e:
        return jsonify({"error": f"Failed to fetch projects: {str(e)}"}), 500

    formatted = []
    for project in sorted(projects, key=lambda p: p.get("key", "")):
        ref = to_project_ref(project)
        ref["selected"] = access.has_access_to_project(ref["key"])
        formatted.append(ref)

    return jsonify({"data": formatted})
