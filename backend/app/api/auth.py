"""Authentication API endpoints."""

from flask import Blueprint, request, jsonify
import requests

from app.session import get_registry, get_jira_credentials
from services.jira_client import normalize_server

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.route("/validate", methods=["POST"])
def validate_token():
    """Validate Jira API token by fetching current user info.

    Expects JSON body with:
        - server: Jira server URL or bare domain
        - email: User's Jira email
        - token: Jira API token

    Returns user info and whether a project selection already exists.
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "Missing request body"}), 400

    server = normalize_server(data.get("server"))
    email = data.get("email")
    token = data.get("token")

    if not all([server, email, token]):
        return jsonify({"error": "Missing required fields: server, email, token"}), 400

    try:
        # Validate by fetching current user
        response = requests.get(
            f"{server}/rest/api/3/myself",
            auth=(email, token),
            headers={"Accept": "application/json"},
            timeout=10
        )

        if response.status_code == 401:
            return jsonify({"error": "Invalid credentials"}), 401

        if response.status_code != 200:
            return jsonify({"error": f"Jira API error: {response.status_code}"}), response.status_code

        user_info = response.json()
        access = get_registry().get(email)

        return jsonify({
            "data": {
                "valid": True,
                "user": {
                    "accountId": user_info.get("accountId"),
                    "displayName": user_info.get("displayName"),
                    "emailAddress": user_info.get("emailAddress"),
                    "avatarUrl": user_info.get("avatarUrls", {}).get("48x48")
                },
                "selectionRequired": not access.is_initialized()
            }
        })

    except requests.exceptions.Timeout:
        return jsonify({"error": "Connection to Jira timed out"}), 504
    except requests.exceptions.RequestException as e:
        return jsonify({"error": f"Failed to connect to Jira: {str(e)}"}), 500


@bp.route("/logout", methods=["POST"])
def logout():
    """Forget the caller's project selection and cached discovery."""
    server, email, token = get_jira_credentials()

    if not server:
        return jsonify({"error": "Missing Jira credentials in headers"}), 401

    get_registry().drop(email)
    return jsonify({"data": {"loggedOut": True}})
