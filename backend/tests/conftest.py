"""Shared fixtures for the Jira access dashboard tests."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


def make_issue(key, project_key, issue_id=None, **fields):
    """Build a raw Jira issue for a project."""
    issue_fields = {
        "summary": f"Issue {key}",
        "project": {"id": f"id-{project_key}", "key": project_key, "name": f"Project {project_key}"}
    }
    issue_fields.update(fields)
    return {"id": issue_id or key, "key": key, "fields": issue_fields}


def make_project(key, name=None):
    return {
        "id": f"id-{key}",
        "key": key,
        "name": name or f"Project {key}",
        "projectTypeKey": "software",
        "avatarUrls": {"48x48": f"https://example.com/{key}.png"}
    }


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep developer env vars and config files out of the tests."""
    for name in ("VITE_JIRA_DOMAIN", "VITE_JIRA_EMAIL", "VITE_JIRA_API_TOKEN", "JIRA_API_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ACCESS_CONFIG_PATH", str(tmp_path / "missing-access-config.json"))


@pytest.fixture
def mock_jira_credentials():
    """Mock Jira credentials for testing."""
    return {
        "server": "https://test.atlassian.net",
        "email": "test@example.com",
        "token": "test-token-123"
    }


@pytest.fixture
def jira_headers():
    """Credential headers sent by the frontend."""
    return {
        "X-Jira-Server": "https://test.atlassian.net",
        "X-Jira-Email": "test@example.com",
        "X-Jira-Token": "token123"
    }


@pytest.fixture
def mixed_issues():
    """Issues from allowed and not allowed projects, in a fixed order."""
    return [
        make_issue("INFOSECC-1", "INFOSECC"),
        make_issue("GCD-1", "GCD"),
        make_issue("SEGP-1", "SEGP"),
        make_issue("INFOSECC-2", "INFOSECC"),
        make_issue("CRMS-1", "CRMS"),
    ]


@pytest.fixture
def sample_projects():
    return [make_project("SEGP"), make_project("INFOSECC"), make_project("TS")]


@pytest.fixture
def sample_issue():
    """A fully populated issue as returned by the search endpoint."""
    return {
        "id": "10001",
        "key": "INFOSECC-42",
        "fields": {
            "summary": "Rotate service credentials",
            "status": {"name": "In Progress", "statusCategory": {"name": "In Progress", "colorName": "yellow"}},
            "issuetype": {"name": "Task", "iconUrl": "https://example.com/task.png"},
            "priority": {"name": "High", "iconUrl": "https://example.com/high.png"},
            "assignee": {
                "displayName": "Alex Doe",
                "emailAddress": "alex@example.com",
                "avatarUrls": {}
            },
            "created": "2024-03-01T09:30:00.000+0000",
            "updated": "2024-03-04T17:00:00.000+0000",
            "project": {"id": "100", "key": "INFOSECC", "name": "Information Security"},
            "duedate": "2024-03-15",
            "labels": ["security"]
        }
    }


@pytest.fixture
def app():
    """Create Flask test app."""
    from app import create_app
    app = create_app()
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def registry(app):
    """The app's per-user access sessions."""
    return app.extensions["access_sessions"]
