"""Per-user project access configuration and the fail-closed issue filter."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


def issue_project_key(issue) -> Optional[str]:
    """Return fields.project.key of an issue, or None when it is malformed."""
    try:
        return issue["fields"]["project"]["key"]
    except (KeyError, TypeError):
        return None


class ProjectAccessService:
    """Access configuration for one user session.

    Holds the user's email, the allow-list of project keys and whether the
    list came from an explicit selection or from discovery. The Flask app
    keeps one instance per user in its session registry instead of a module
    level singleton.
    """

    def __init__(self, discovery_enabled: bool = False):
        self.discovery_enabled = discovery_enabled
        self._user_email = ""
        self._user_projects = []
        self._allowed = frozenset()
        self._discovery_info = None
        self._is_discovering = False

    def _set_projects(self, email: str, projects: list):
        self._user_email = email or ""
        ordered = []
        for key in projects:
            if key and key not in ordered:
                ordered.append(key)
        self._user_projects = ordered
        self._allowed = frozenset(ordered)

    def initialize_user_projects(self, email: str, projects: list, discovery=None):
        """Apply an explicit project selection.

        A manual selection wins over discovery for the rest of the session,
        so any discovery result (and the cached one, if a discovery service
        is given) is dropped.
        """
        self._set_projects(email, projects)
        self._discovery_info = None
        if discovery is not None and email:
            discovery.clear_cache(email)

        logger.info(
            f"Manual project selection for {self._user_email}: "
            f"{self._user_projects} ({len(self._user_projects)} projects)"
        )

    def clear(self):
        """Forget the selection, e.g. on logout."""
        logger.info(f"Clearing project selection for {self._user_email}")
        self._set_projects("", [])
        self._discovery_info = None

    def has_access_to_project(self, project_key: str) -> bool:
        return project_key in self._allowed

    def filter_issues_by_user_access(self, issues: list) -> list:
        """Keep only issues from allowed projects, in their original order.

        Fails closed: with no user or an empty allow-list nothing is returned.
        """
        if not self.is_initialized():
            logger.warning("Project access not initialized, returning no issues")
            return []

        if not issues:
            return []

        filtered = []
        removed_projects = set()
        for issue in issues:
            key = issue_project_key(issue)
            if key is not None and key in self._allowed:
                filtered.append(issue)
            else:
                removed_projects.add(key)

        logger.info(
            f"Filtered issues for {self._user_email}: {len(issues)} -> {len(filtered)} "
            f"(allowed={self._user_projects})"
        )
        if removed_projects:
            logger.debug(f"Dropped issues from projects: {sorted(str(k) for k in removed_projects)}")

        return filtered

    def get_user_projects(self) -> list:
        return list(self._user_projects)

    def get_user_email(self) -> str:
        return self._user_email

    def is_initialized(self) -> bool:
        return bool(self._user_email) and bool(self._user_projects)

    def is_manual_selection(self) -> bool:
        return self.is_initialized() and self._discovery_info is None

    def is_discovering(self) -> bool:
        return self._is_discovering

    def get_discovery_info(self):
        return self._discovery_info

    def _split_projects(self, issues: list):
        all_keys = []
        for issue in issues:
            key = issue_project_key(issue)
            if key is not None and key not in all_keys:
                all_keys.append(key)
        accessible = [k for k in all_keys if self.has_access_to_project(k)]
        inaccessible = [k for k in all_keys if not self.has_access_to_project(k)]
        return accessible, inaccessible

    def get_access_stats(self, issues: list) -> dict:
        accessible_issues = self.filter_issues_by_user_access(issues)
        accessible, inaccessible = self._split_projects(issues)
        return {
            "totalIssues": len(issues),
            "accessibleIssues": len(accessible_issues),
            "inaccessibleIssues": len(issues) - len(accessible_issues),
            "accessibleProjects": accessible,
            "inaccessibleProjects": inaccessible
        }

    def validate_data_filtering(self, issues: list) -> dict:
        """Report whether a batch of issues is already restricted to the allow-list."""
        accessible_issues = self.filter_issues_by_user_access(issues)
        accessible, inaccessible = self._split_projects(issues)

        recommendations = []
        if inaccessible:
            recommendations.append(
                f"Remove data from inaccessible projects: {', '.join(inaccessible)}"
            )
        if len(accessible) != len(self._user_projects):
            recommendations.append("Check that every accessible project is being displayed")
        if len(issues) != len(accessible_issues):
            recommendations.append(
                f"Filter {len(issues) - len(accessible_issues)} issues from inaccessible projects"
            )

        return {
            "isValid": not inaccessible and len(issues) == len(accessible_issues),
            "issues": {
                "total": len(issues),
                "accessible": len(accessible_issues),
                "inaccessible": len(issues) - len(accessible_issues)
            },
            "projects": {
                "accessible": accessible,
                "inaccessible": inaccessible
            },
            "recommendations": recommendations
        }

    def validate_project_access(self, project_key: str) -> dict:
        has_access = self.has_access_to_project(project_key)
        if has_access:
            message = f"Access granted to project {project_key}"
        else:
            message = (
                f"Access denied to project {project_key}. "
                f"Accessible projects: {', '.join(self._user_projects)}"
            )
        return {
            "hasAccess": has_access,
            "message": message,
            "userProjects": self.get_user_projects()
        }

    def configure_known_user_projects(self, email: str, known_user_projects: dict, discovery=None):
        """Apply the static email -> allow-list mapping.

        Unknown users get an empty list, which keeps the filter closed.
        """
        projects = (known_user_projects or {}).get(email, [])
        if not projects:
            logger.info(f"No known project configuration for {email}")
        self.initialize_user_projects(email, projects, discovery)

    def discover_user_projects(self, email: str, client, discovery):
        """Run automatic discovery unless something more authoritative exists.

        Returns the DiscoveryResult that was applied, or None when discovery
        was skipped.
        """
        if self.is_manual_selection():
            logger.info("Manual selection configured, skipping automatic discovery")
            return None

        if self.is_initialized():
            logger.info("Projects already configured, skipping automatic discovery")
            return None

        if not self.discovery_enabled:
            logger.info("Automatic discovery disabled, only manual selection allowed")
            return None

        if self._is_discovering:
            logger.info(f"Discovery already in progress for {email}")
            return None

        self._is_discovering = True
        try:
            result = discovery.discover_user_projects(email, client)
        finally:
            self._is_discovering = False

        self._set_projects(email, result.project_keys)
        self._discovery_info = result if result.project_keys else None
        return result

    def force_rediscovery(self, email: str, client, discovery):
        """Drop cache and current selection, then discover again."""
        if not self.discovery_enabled:
            logger.info("Forced rediscovery disabled, keeping current selection")
            return None

        discovery.clear_cache(email)
        self.clear()
        return self.discover_user_projects(email, client, discovery)
