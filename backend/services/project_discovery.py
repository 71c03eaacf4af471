"""Best-effort discovery of the Jira projects a user can read.

Discovery walks four strategies in a fixed order and keeps the first one that
finds at least one project:

1. jql - probe a list of JQL templates built around the user's email
2. projects - list all projects and probe each with a 1-result search
3. boards - derive project keys from the boards' locations
4. fallback - probe a priority-ordered list of known project keys

Every network failure inside a strategy counts as "no access"; there is no
distinction between 403 and 404. Results are cached per email.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Optional

from services.jira_client import to_project_ref

logger = logging.getLogger(__name__)

DISCOVERY_METHODS = ("jql", "projects", "boards", "fallback")

DEFAULT_CACHE_SECONDS = 5 * 60

DEFAULT_JQL_PROBE_PROJECTS = ["INFOSECC", "SEGP", "TS", "TRE", "CRMS", "PPD", "GCD"]

DEFAULT_FALLBACK_PROJECTS = [
    {"key": "INFOSECC", "priority": 1, "description": "Information Security"},
    {"key": "SEGP", "priority": 1, "description": "Security & Privacy"},
    {"key": "TS", "priority": 2, "description": "Template Service"},
    {"key": "TRE", "priority": 2, "description": "AI Docs Elevate"},
    {"key": "CRMS", "priority": 3, "description": "CRM System"},
    {"key": "PPD", "priority": 3, "description": "Product Development"},
    {"key": "GCD", "priority": 3, "description": "Global Content Delivery"},
]


class DiscoveryResult:
    """Outcome of one discovery run for one user."""

    def __init__(self, user_email: str, accessible_projects: list, method: str,
                 discovered_at: Optional[datetime] = None,
                 total_projects_found: Optional[int] = None):
        if method not in DISCOVERY_METHODS:
            raise ValueError(f"Unknown discovery method: {method}")
        self.user_email = user_email
        self.accessible_projects = list(accessible_projects)
        self.method = method
        self.discovered_at = discovered_at or datetime.now()
        self.total_projects_found = (
            total_projects_found if total_projects_found is not None
            else len(self.accessible_projects)
        )

    @property
    def accessible_projects_count(self) -> int:
        return len(self.accessible_projects)

    @property
    def project_keys(self) -> list:
        return [p["key"] for p in self.accessible_projects]

    def to_dict(self) -> dict:
        return {
            "userEmail": self.user_email,
            "accessibleProjects": self.accessible_projects,
            "method": self.method,
            "discoveredAt": self.discovered_at.isoformat(),
            "totalProjectsFound": self.total_projects_found,
            "accessibleProjectsCount": self.accessible_projects_count
        }


class ProjectDiscoveryService:
    """Runs the discovery strategies and caches results per user email."""

    def __init__(self, cache_seconds: int = DEFAULT_CACHE_SECONDS,
                 fallback_projects: Optional[list] = None,
                 jql_probe_projects: Optional[list] = None,
                 max_workers: int = 6, clock=None):
        self.cache_duration = timedelta(seconds=cache_seconds)
        self.fallback_projects = list(
            DEFAULT_FALLBACK_PROJECTS if fallback_projects is None else fallback_projects
        )
        self.jql_probe_projects = list(
            DEFAULT_JQL_PROBE_PROJECTS if jql_probe_projects is None else jql_probe_projects
        )
        self.max_workers = max_workers
        self._clock = clock or datetime.now
        self._cache = {}

    def discover_user_projects(self, user_email: str, client) -> DiscoveryResult:
        """Discover accessible projects, honouring the per-user cache."""
        cached = self.get_cached_discovery(user_email)
        if cached is not None:
            logger.info(f"Using cached discovery for {user_email}")
            return cached

        strategies = [
            self._discover_via_jql,
            self._discover_via_projects_api,
            self._discover_via_boards_api,
            self._discover_via_fallback,
        ]

        result = None
        for strategy in strategies:
            result = strategy(user_email, client)
            if result.accessible_projects_count > 0:
                break
            logger.info(f"Discovery method '{result.method}' found no projects for {user_email}")

        self._cache[user_email] = result

        logger.info(
            f"Discovery completed for {user_email}: method={result.method}, "
            f"projects={result.project_keys}"
        )
        return result

    def jql_templates(self, user_email: str) -> list:
        """JQL probes in the order they are tried."""
        user = f'"{user_email}"'
        known = ", ".join(self.jql_probe_projects)
        templates = [
            f"assignee = {user} OR reporter = {user}",
            f"assignee = {user} OR reporter = {user} OR watcher = {user}",
        ]
        if known:
            templates.append(f"project in ({known}) AND (assignee = {user} OR reporter = {user})")
        templates.extend([
            f"assignee = {user} AND updated >= -30d",
            f"assignee = {user}",
        ])
        return templates

    def _discover_via_jql(self, user_email: str, client) -> DiscoveryResult:
        try:
            issues = []
            for jql in self.jql_templates(user_email):
                try:
                    issues = client.search_issues(jql, 0, 20, fields=["summary", "project"])
                except Exception as e:
                    logger.warning(f"JQL probe failed ({jql}): {e}")
                    continue
                if issues:
                    logger.info(f"JQL probe matched {len(issues)} issues: {jql}")
                    break

            if not issues:
                return self._empty(user_email, "jql")

            project_keys = []
            for issue in issues:
                key = ((issue.get("fields") or {}).get("project") or {}).get("key")
                if key and key not in project_keys:
                    project_keys.append(key)

            return self._get_project_details(project_keys, user_email, client, "jql")
        except Exception as e:
            logger.warning(f"JQL discovery failed: {e}")
            return self._empty(user_email, "jql")

    def _discover_via_projects_api(self, user_email: str, client) -> DiscoveryResult:
        try:
            projects = client.get_projects()
            if not projects:
                return self._empty(user_email, "projects")

            accessible = []
            for project in projects:
                try:
                    probe = client.search_issues(f'project = "{project["key"]}"', 0, 1,
                                                 fields=["summary"])
                except Exception:
                    continue
                if probe:
                    accessible.append(to_project_ref(project))

            return DiscoveryResult(user_email, accessible, "projects", self._clock(),
                                   total_projects_found=len(projects))
        except Exception as e:
            logger.warning(f"Projects API discovery failed: {e}")
            return self._empty(user_email, "projects")

    def _discover_via_boards_api(self, user_email: str, client) -> DiscoveryResult:
        try:
            boards = client.get_boards()
            if not boards:
                return self._empty(user_email, "boards")

            project_keys = []
            for board in boards:
                key = (board.get("location") or {}).get("projectKey")
                if key and key not in project_keys:
                    project_keys.append(key)

            return self._get_project_details(project_keys, user_email, client, "boards")
        except Exception as e:
            logger.warning(f"Boards API discovery failed: {e}")
            return self._empty(user_email, "boards")

    def _discover_via_fallback(self, user_email: str, client) -> DiscoveryResult:
        candidates = sorted(self.fallback_projects, key=lambda p: p.get("priority", 99))
        accessible = []
        tested = []

        for candidate in candidates:
            key = candidate["key"]
            tested.append(key)
            try:
                project = client.get_project(key)
                # Any answer, even zero issues, proves read access
                client.search_issues(f'project = "{key}"', 0, 1, fields=["summary"])
            except Exception as e:
                logger.info(f"No access to {key}: {e}")
                continue
            accessible.append(to_project_ref(project))

        logger.info(f"Fallback tested {tested}, accessible {[p['key'] for p in accessible]}")
        return DiscoveryResult(user_email, accessible, "fallback", self._clock(),
                               total_projects_found=len(tested))

    def _get_project_details(self, project_keys: list, user_email: str,
                             client, method: str) -> DiscoveryResult:
        """Resolve project keys into project refs in parallel."""
        details = {}

        def fetch_project(key):
            return key, client.get_project(key)

        if project_keys:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {executor.submit(fetch_project, k): k for k in project_keys}
                for future in as_completed(futures):
                    try:
                        key, project = future.result()
                    except Exception as e:
                        logger.warning(f"Failed to get project {futures[future]}: {e}")
                        continue
                    details[key] = to_project_ref(project)

        projects = [details[k] for k in project_keys if k in details]
        return DiscoveryResult(user_email, projects, method, self._clock(),
                               total_projects_found=len(project_keys))

    def _empty(self, user_email: str, method: str) -> DiscoveryResult:
        return DiscoveryResult(user_email, [], method, self._clock(), total_projects_found=0)

    def _is_cache_valid(self, result: DiscoveryResult) -> bool:
        return self._clock() - result.discovered_at < self.cache_duration

    def get_cached_discovery(self, user_email: str) -> Optional[DiscoveryResult]:
        cached = self._cache.get(user_email)
        if cached is not None and self._is_cache_valid(cached):
            return cached
        return None

    def clear_cache(self, user_email: Optional[str] = None):
        """Drop the cached result for one user, or for everyone."""
        if user_email:
            self._cache.pop(user_email, None)
        else:
            self._cache.clear()
