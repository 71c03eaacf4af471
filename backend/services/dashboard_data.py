"""Fetches the issue set behind every dashboard view."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed

from services.issue_filters import (
    build_jql_from_filters, deduplicate_by_id, find_missing_projects
)
from services.jira_client import normalize_issue

logger = logging.getLogger(__name__)


def fetch_accessible_issues(client, access, filters: dict, max_pages: int = 10) -> dict:
    """Query Jira for the selected projects and apply the access filter.

    Several projects are fetched in parallel, one JQL query each, so a large
    project cannot crowd the others out of the page limit.

    Returns:
        Dict with issues (normalized), total and missingProjects
    """
    selected = access.get_user_projects()
    if not access.is_initialized():
        logger.warning("No projects selected, returning no issues")
        return {"issues": [], "total": 0, "missingProjects": []}

    requested = filters.get("projects") or []
    projects = [p for p in selected if not requested or p in requested]
    if not projects:
        return {"issues": [], "total": 0, "missingProjects": []}

    if len(projects) > 1:
        per_project = {}

        def fetch_project(project_key):
            jql = build_jql_from_filters(filters, [project_key])
            return project_key, client.search_all_issues(jql, max_pages)

        with ThreadPoolExecutor(max_workers=6) as executor:
            futures = {executor.submit(fetch_project, p): p for p in projects}
            for future in as_completed(futures):
                try:
                    project_key, issues = future.result()
                except Exception as e:
                    logger.warning(f"Failed to fetch issues for {futures[future]}: {e}")
                    continue
                per_project[project_key] = issues

        raw_issues = []
        for project_key in projects:
            raw_issues.extend(per_project.get(project_key, []))
    else:
        jql = build_jql_from_filters(filters, selected)
        raw_issues = client.search_all_issues(jql, max_pages)

    raw_issues = deduplicate_by_id(raw_issues)
    missing = find_missing_projects(raw_issues, projects)

    issues = [normalize_issue(i) for i in access.filter_issues_by_user_access(raw_issues)]
    logger.info(f"Fetched {len(issues)} issues for projects {projects}")

    return {"issues": issues, "total": len(issues), "missingProjects": missing}
