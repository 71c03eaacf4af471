"""JQL construction and post-processing for dashboard issue queries."""

import logging

logger = logging.getLogger(__name__)

# JQL that matches nothing, used when no project is selected
EMPTY_PROJECT_JQL = 'project in ("NONE")'

FILTER_KEYS = ["projects", "sprints", "issueTypes", "statuses", "assignees", "priorities"]


def _split(value):
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _quoted(values):
    return ",".join(f'"{v}"' for v in values)


def parse_filter_args(args) -> dict:
    """Build a filter dict from request query params.

    List params are comma-separated (e.g. ``statuses=Done,In Progress``);
    the date range comes from ``start_date`` / ``end_date``.
    """
    filters = {key: _split(args.get(key, "")) for key in FILTER_KEYS}
    filters["dateRange"] = {
        "start": args.get("start_date") or None,
        "end": args.get("end_date") or None
    }
    return filters


def build_jql_from_filters(filters: dict, selected_projects: list) -> str:
    """Translate dashboard filters into JQL, scoped to the selected projects."""
    if not selected_projects:
        logger.warning("No projects selected, returning empty JQL")
        return EMPTY_PROJECT_JQL

    # Selected projects always scope the query; the projects filter can only
    # narrow it further
    projects = list(selected_projects)
    requested = filters.get("projects") or []
    if requested:
        projects = [p for p in projects if p in requested]
        if not projects:
            return EMPTY_PROJECT_JQL

    conditions = [f"project in ({_quoted(projects)})"]

    date_range = filters.get("dateRange") or {}
    if date_range.get("start"):
        conditions.append(f'created >= "{date_range["start"]}"')
    if date_range.get("end"):
        conditions.append(f'created <= "{date_range["end"]}"')

    if filters.get("sprints"):
        conditions.append(f"sprint in ({','.join(filters['sprints'])})")

    if filters.get("issueTypes"):
        conditions.append(f"issuetype in ({_quoted(filters['issueTypes'])})")

    if filters.get("statuses"):
        conditions.append(f"status in ({_quoted(filters['statuses'])})")

    if filters.get("assignees"):
        conditions.append(f"assignee in ({_quoted(filters['assignees'])})")

    if filters.get("priorities"):
        conditions.append(f"priority in ({_quoted(filters['priorities'])})")

    jql = " AND ".join(conditions) + " ORDER BY created DESC"
    logger.debug(f"Built JQL: {jql}")
    return jql


def deduplicate_by_id(issues: list) -> list:
    """Drop repeated issues, keeping the first occurrence."""
    seen = set()
    unique = []
    for issue in issues:
        issue_id = issue.get("id") or issue.get("key")
        if issue_id in seen:
            continue
        seen.add(issue_id)
        unique.append(issue)

    if len(unique) != len(issues):
        logger.info(f"Removed {len(issues) - len(unique)} duplicate issues")
    return unique


def find_missing_projects(issues: list, expected_projects: list) -> list:
    """Selected projects that contributed no issues to the result."""
    found = {
        ((issue.get("fields") or {}).get("project") or {}).get("key")
        for issue in issues
    }
    missing = [p for p in expected_projects if p not in found]
    if missing:
        logger.warning(f"No issues returned for projects: {', '.join(missing)}")
    return missing
