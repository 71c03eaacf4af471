"""Project access configuration endpoints.

Manual selection, discovery and access checks for the calling user. The
caller is identified by the X-Jira-Email header.
"""

from flask import Blueprint, request, jsonify

from app.session import get_registry, get_jira_credentials
from services.jira_client import JiraClient

bp = Blueprint("access", __name__, url_prefix="/api/access")


def access_state(access) -> dict:
    """Serialize the access configuration of one session."""
    discovery = access.get_discovery_info()
    return {
        "userEmail": access.get_user_email(),
        "allowedProjectKeys": access.get_user_projects(),
        "isInitialized": access.is_initialized(),
        "isManualSelection": access.is_manual_selection(),
        "discoveryEnabled": access.discovery_enabled,
        "discovery": discovery.to_dict() if discovery else None
    }


@bp.route("", methods=["GET"])
def get_access():
    """Get the caller's current access configuration."""
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    access = get_registry().get(email)
    return jsonify({"data": access_state(access)})


@bp.route("/selection", methods=["POST"])
def set_selection():
    """Store an explicit project selection.

    Expects JSON body with:
        - projects: list of project keys

    A manual selection disables discovery until it is cleared.
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    data = request.get_json(silent=True)
    if not data or not isinstance(data.get("projects"), list):
        return jsonify({"error": "Missing required field: projects"}), 400

    projects = [str(p).strip() for p in data["projects"] if str(p).strip()]

    registry = get_registry()
    access = registry.get(email)
    access.initialize_user_projects(email, projects, registry.discovery)

    return jsonify({"data": access_state(access)})


@bp.route("/selection", methods=["DELETE"])
def clear_selection():
    """Clear the caller's selection; data is hidden until a new one is made."""
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    registry = get_registry()
    access = registry.get(email)
    access.clear()
    registry.discovery.clear_cache(email)

    return jsonify({"data": access_state(access)})


@bp.route("/known", methods=["POST"])
def apply_known_projects():
    """Apply the configured email -> projects mapping for the caller."""
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    registry = get_registry()
    access = registry.get(email)
    access.configure_known_user_projects(email, registry.known_user_projects, registry.discovery)

    return jsonify({"data": access_state(access)})


@bp.route("/discover", methods=["POST"])
def discover():
    """Run automatic project discovery for the caller.

    Query params:
        - force: "true" to drop cache and current selection first

    Discovery is skipped when a manual selection exists or when it is
    disabled in the access config.
    """
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    force = request.args.get("force", "").lower() == "true"
    registry = get_registry()
    access = registry.get(email)
    client = JiraClient(server, email, token)

    if force:
        result = access.force_rediscovery(email, client, registry.discovery)
    else:
        result = access.discover_user_projects(email, client, registry.discovery)

    state = access_state(access)
    state["ran"] = result is not None
    state["result"] = result.to_dict() if result else None
    return jsonify({"data": state})


@bp.route("/discovery", methods=["GET"])
def cached_discovery():
    """Return the caller's cached discovery result, if still fresh."""
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    cached = get_registry().discovery.get_cached_discovery(email)
    return jsonify({"data": cached.to_dict() if cached else None})


@bp.route("/check/<project_key>", methods=["GET"])
def check_project(project_key):
    """Check whether the caller may see a project."""
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    access = get_registry().get(email)
    return jsonify({"data": access.validate_project_access(project_key)})
