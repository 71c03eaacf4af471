"""Jira REST API client."""

import logging
import os
from datetime import datetime, timezone
from typing import Optional
import requests

logger = logging.getLogger(__name__)

DEFAULT_ISSUE_FIELDS = [
    "summary", "status", "issuetype", "priority", "assignee",
    "created", "updated", "duedate", "labels", "project"
]


class JiraApiError(Exception):
    """Raised when Jira answers with something we cannot use."""


def normalize_server(server: Optional[str]) -> str:
    """Turn a bare domain into a base URL without trailing slash."""
    server = (server or "").strip().rstrip("/")
    if server and not server.startswith(("http://", "https://")):
        server = f"https://{server}"
    return server


def credentials_from_env():
    """Read Jira credentials from the environment.

    Returns:
        Tuple of (server, email, token), any of which may be empty
    """
    server = normalize_server(os.environ.get("VITE_JIRA_DOMAIN", ""))
    email = os.environ.get("VITE_JIRA_EMAIL", "")
    token = os.environ.get("VITE_JIRA_API_TOKEN") or os.environ.get("JIRA_API_TOKEN", "")
    return server, email, token


def utc_now() -> datetime:
    """Current time as a naive UTC datetime, comparable with parse_jira_date."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_jira_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse a Jira date string into a naive UTC datetime."""
    if not date_str:
        return None

    # Jira formats: "2024-10-31T12:11:56.289-0400" or "2024-10-31T12:11:56.289+0000"
    formats = [
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d"
    ]

    for fmt in formats:
        try:
            parsed = datetime.strptime(date_str, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed

    return None


def normalize_issue(issue: dict) -> dict:
    """Fill in defaults so downstream code can index fields safely."""
    fields = issue.get("fields") or {}
    status = fields.get("status") or {}
    status_category = status.get("statusCategory") or {}
    issuetype = fields.get("issuetype") or {}
    priority = fields.get("priority") or {}
    assignee = fields.get("assignee")
    project = fields.get("project") or {}
    now = datetime.now(timezone.utc).isoformat()

    normalized = {
        "id": issue.get("id"),
        "key": issue.get("key"),
        "fields": {
            "summary": fields.get("summary") or "No summary",
            "status": {
                "name": status.get("name") or "Unknown",
                "statusCategory": {
                    "name": status_category.get("name") or "To Do",
                    "colorName": status_category.get("colorName") or "blue"
                }
            },
            "issuetype": {
                "name": issuetype.get("name") or "Task",
                "iconUrl": issuetype.get("iconUrl")
            },
            "priority": {
                "name": priority.get("name") or "Medium",
                "iconUrl": priority.get("iconUrl")
            },
            "assignee": {
                "displayName": assignee.get("displayName") or "Unassigned",
                "emailAddress": assignee.get("emailAddress") or "",
                "avatarUrls": assignee.get("avatarUrls") or {}
            } if assignee else None,
            "created": fields.get("created") or now,
            "updated": fields.get("updated") or now,
            "project": {
                "id": project.get("id") or "UNKNOWN",
                "key": project.get("key") or "UNKNOWN",
                "name": project.get("name") or "Unknown Project"
            },
            "duedate": fields.get("duedate"),
            "labels": fields.get("labels") or []
        }
    }

    sprint = fields.get("sprint")
    if sprint:
        normalized["fields"]["sprint"] = {
            "id": sprint.get("id"),
            "name": sprint.get("name"),
            "state": sprint.get("state") or "active"
        }

    return normalized


def to_project_ref(project: dict) -> dict:
    """Reduce a Jira project resource to the fields the dashboard uses."""
    ref = {
        "key": project.get("key"),
        "name": project.get("name"),
        "projectTypeKey": project.get("projectTypeKey"),
        "avatarUrls": project.get("avatarUrls") or {}
    }
    if project.get("projectCategory"):
        ref["category"] = project["projectCategory"]
    return ref


class JiraClient:
    """Thin wrapper around the Jira REST endpoints the dashboard consumes."""

    SEARCH_ENDPOINTS = ["/rest/api/3/search/jql", "/rest/api/2/search"]

    def __init__(self, server: str, email: str, token: str, timeout: int = 30):
        self.server = normalize_server(server)
        self.email = email
        self.token = token
        self.timeout = timeout

    def _request(self, endpoint: str, params: Optional[dict] = None):
        """Make authenticated request to Jira API."""
        response = requests.get(
            f"{self.server}{endpoint}",
            auth=(self.email, self.token),
            headers={"Accept": "application/json"},
            params=params,
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    def get_myself(self) -> dict:
        return self._request("/rest/api/3/myself")

    def get_projects(self) -> list:
        """List every project visible to the credentials."""
        data = self._request("/rest/api/3/project")
        if not isinstance(data, list):
            raise JiraApiError("Unexpected response from project endpoint")
        logger.info(f"Fetched {len(data)} projects")
        return data

    def get_project(self, project_key: str) -> dict:
        return self._request(f"/rest/api/3/project/{project_key}")

    def get_boards(self) -> list:
        """List all boards (paginated)."""
        all_boards = []
        start_at = 0
        max_results = 50

        while True:
            data = self._request(
                "/rest/agile/1.0/board",
                params={"startAt": start_at, "maxResults": max_results}
            )
            boards = data.get("values", [])
            all_boards.extend(boards)

            if data.get("isLast", True) or len(boards) < max_results:
                break

            start_at += max_results

        return all_boards

    def get_board(self, board_id: int) -> dict:
        return self._request(f"/rest/agile/1.0/board/{board_id}")

    def get_sprints(self, board_id: int, state: Optional[str] = None) -> list:
        params = {"maxResults": 50}
        if state:
            params["state"] = state
        data = self._request(f"/rest/agile/1.0/board/{board_id}/sprint", params=params)
        return data.get("values", [])

    def search_issues(self, jql: str, start_at: int = 0, max_results: int = 100,
                      fields: Optional[list] = None) -> list:
        """Run a JQL search and return the raw issues of one page.

        Tries the current search endpoint first and falls back to the legacy
        one. The error of the last endpoint tried is re-raised when none of
        them answer.
        """
        params = {
            "jql": jql,
            "startAt": start_at,
            "maxResults": max_results,
            "fields": ",".join(fields or DEFAULT_ISSUE_FIELDS)
        }

        last_error = None
        for endpoint in self.SEARCH_ENDPOINTS:
            try:
                data = self._request(endpoint, params=params)
            except requests.exceptions.RequestException as e:
                logger.warning(f"Search via {endpoint} failed: {e}")
                last_error = e
                continue

            if isinstance(data, dict) and "issues" in data:
                return data["issues"] or []

            last_error = JiraApiError(f"No issues in response from {endpoint}")

        raise last_error

    def search_all_issues(self, jql: str, max_pages: int = 10,
                          fields: Optional[list] = None) -> list:
        """Paginate a JQL search up to max_pages pages of 100 issues."""
        all_issues = []
        start_at = 0
        max_results = 100

        for page in range(1, max_pages + 1):
            issues = self.search_issues(jql, start_at, max_results, fields)
            all_issues.extend(issues)

            if len(issues) < max_results:
                break

            start_at += max_results
        else:
            logger.warning(f"Reached page limit ({max_pages}): {len(all_issues)} issues")

        return all_issues

    def test_endpoints(self) -> dict:
        """Probe the endpoints the dashboard depends on."""
        results = {}

        try:
            myself = self.get_myself()
            results["myself"] = {"status": "success", "displayName": myself.get("displayName")}
        except requests.exceptions.RequestException as e:
            results["myself"] = {"status": "error", "error": str(e)}

        try:
            results["projects"] = {"status": "success", "count": len(self.get_projects())}
        except (requests.exceptions.RequestException, JiraApiError) as e:
            results["projects"] = {"status": "error", "error": str(e)}

        try:
            issues = self.search_issues("order by created DESC", max_results=1, fields=["summary"])
            results["search"] = {"status": "success", "count": len(issues)}
        except (requests.exceptions.RequestException, JiraApiError) as e:
            results["search"] = {"status": "error", "error": str(e)}

        try:
            results["boards"] = {"status": "success", "count": len(self.get_boards())}
        except requests.exceptions.RequestException as e:
            results["boards"] = {"status": "error", "error": str(e)}

        return results
