"""Per-user access sessions and request credential helpers."""

from flask import current_app, request

from services.jira_client import credentials_from_env, normalize_server
from services.project_access import ProjectAccessService
from services.project_discovery import ProjectDiscoveryService


class AccessSessionRegistry:
    """One ProjectAccessService per user email, plus a shared discovery cache.

    Sessions live in memory only and end with an explicit clear/logout or a
    process restart.
    """

    def __init__(self, access_config: dict):
        self.discovery_enabled = bool(access_config.get("discoveryEnabled"))
        self.known_user_projects = access_config.get("knownUserProjects") or {}
        self.discovery = ProjectDiscoveryService(
            cache_seconds=access_config.get("discoveryCacheSeconds") or 300,
            fallback_projects=access_config.get("fallbackProjects"),
            jql_probe_projects=access_config.get("jqlProbeProjects")
        )
        self._sessions = {}

    def get(self, email: str) -> ProjectAccessService:
        """Return the user's session, creating an empty (closed) one on first use."""
        if email not in self._sessions:
            self._sessions[email] = ProjectAccessService(discovery_enabled=self.discovery_enabled)
        return self._sessions[email]

    def drop(self, email: str):
        session = self._sessions.pop(email, None)
        if session is not None:
            session.clear()
        self.discovery.clear_cache(email)


def get_registry() -> AccessSessionRegistry:
    return current_app.extensions["access_sessions"]


def get_jira_credentials():
    """Extract Jira credentials from request headers, falling back to env vars."""
    env_server, env_email, env_token = credentials_from_env()
    server = normalize_server(request.headers.get("X-Jira-Server")) or env_server
    email = request.headers.get("X-Jira-Email") or env_email
    token = request.headers.get("X-Jira-Token") or env_token

    if not all([server, email, token]):
        return None, None, None

    return server, email, token
