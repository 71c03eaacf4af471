"""CSV and JSON export of the filtered issue list."""

import csv
import io
import json
from datetime import date
from typing import Optional

from services.jira_client import parse_jira_date

EXPORT_COLUMNS = [
    "Key", "Summary", "Status", "Priority", "Type",
    "Assignee", "Created", "Updated", "Project"
]


def _format_date(value: Optional[str]) -> str:
    parsed = parse_jira_date(value)
    return parsed.strftime("%Y-%m-%d") if parsed else (value or "")


def issue_to_row(issue: dict) -> dict:
    """Flatten one issue into the export columns."""
    fields = issue.get("fields") or {}
    assignee = fields.get("assignee") or {}
    return {
        "Key": issue.get("key", ""),
        "Summary": fields.get("summary") or "",
        "Status": (fields.get("status") or {}).get("name", ""),
        "Priority": (fields.get("priority") or {}).get("name", ""),
        "Type": (fields.get("issuetype") or {}).get("name", ""),
        "Assignee": assignee.get("displayName") or "Unassigned",
        "Created": _format_date(fields.get("created")),
        "Updated": _format_date(fields.get("updated")),
        "Project": (fields.get("project") or {}).get("name", "")
    }


def issues_to_csv(issues: list) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=EXPORT_COLUMNS,
                            quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writeheader()
    for issue in issues:
        writer.writerow(issue_to_row(issue))
    return output.getvalue()


def issues_to_json(issues: list) -> str:
    return json.dumps([issue_to_row(issue) for issue in issues], indent=2, ensure_ascii=False)


def export_filename(extension: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"jira-issues-{today.isoformat()}.{extension}"
