"""Tests for ProjectDiscoveryService."""

import pytest
from unittest.mock import Mock
from datetime import datetime, timedelta
import requests

from services.project_discovery import (
    DiscoveryResult, ProjectDiscoveryService, DEFAULT_FALLBACK_PROJECTS
)

from conftest import make_issue, make_project

EMAIL = "test@example.com"


class FakeClock:
    """Settable clock for cache expiry tests."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0))


@pytest.fixture
def client():
    """A Jira client where every strategy comes back empty."""
    client = Mock()
    client.search_issues.return_value = []
    client.get_projects.return_value = []
    client.get_boards.return_value = []
    client.get_project.side_effect = lambda key: make_project(key)
    return client


class TestDiscoveryResult:
    """Test the result value object."""

    def test_rejects_unknown_method(self):
        with pytest.raises(ValueError):
            DiscoveryResult(EMAIL, [], "magic")

    def test_counts_and_keys(self):
        result = DiscoveryResult(EMAIL, [make_project("TS"), make_project("GCD")], "boards",
                                 datetime(2024, 1, 1), total_projects_found=5)

        assert result.accessible_projects_count == 2
        assert result.project_keys == ["TS", "GCD"]
        data = result.to_dict()
        assert data["method"] == "boards"
        assert data["totalProjectsFound"] == 5
        assert data["discoveredAt"] == "2024-01-01T00:00:00"


class TestJqlTemplates:
    """Test JQL probe ordering."""

    def test_templates_in_order(self):
        service = ProjectDiscoveryService(jql_probe_projects=["A", "B"])
        templates = service.jql_templates(EMAIL)

        assert templates == [
            f'assignee = "{EMAIL}" OR reporter = "{EMAIL}"',
            f'assignee = "{EMAIL}" OR reporter = "{EMAIL}" OR watcher = "{EMAIL}"',
            f'project in (A, B) AND (assignee = "{EMAIL}" OR reporter = "{EMAIL}")',
            f'assignee = "{EMAIL}" AND updated >= -30d',
            f'assignee = "{EMAIL}"',
        ]


class TestDiscoveryStrategies:
    """Test the strategy order and each strategy's success rule."""

    def test_jql_first(self, client, clock):
        client.search_issues.side_effect = [
            [],
            [make_issue("TS-1", "TS"), make_issue("GCD-1", "GCD"), make_issue("TS-2", "TS")],
        ]
        service = ProjectDiscoveryService(clock=clock)

        result = service.discover_user_projects(EMAIL, client)

        assert result.method == "jql"
        assert result.project_keys == ["TS", "GCD"]
        client.get_projects.assert_not_called()

    def test_jql_probe_errors_are_skipped(self, client, clock):
        client.search_issues.side_effect = [
            requests.exceptions.HTTPError("400 Bad Request"),
            [make_issue("SEGP-1", "SEGP")],
        ]
        service = ProjectDiscoveryService(clock=clock)

        result = service.discover_user_projects(EMAIL, client)

        assert result.method == "jql"
        assert result.project_keys == ["SEGP"]

    def test_projects_api_needs_visible_issue(self, client, clock):
        client.get_projects.return_value = [make_project("TS"), make_project("GCD")]

        def search(jql, start_at=0, max_results=100, fields=None):
            return [make_issue("GCD-1", "GCD")] if jql == 'project = "GCD"' else []
        client.search_issues.side_effect = search
        service = ProjectDiscoveryService(clock=clock)

        result = service.discover_user_projects(EMAIL, client)

        assert result.method == "projects"
        assert result.project_keys == ["GCD"]
        assert result.total_projects_found == 2

    def test_boards_after_jql_and_projects_fail(self, client, clock):
        client.get_projects.side_effect = requests.exceptions.HTTPError("403 Forbidden")
        client.get_boards.return_value = [
            {"id": 1, "location": {"projectKey": "TRE"}},
            {"id": 2, "location": {"projectKey": "TS"}},
            {"id": 3, "location": {"projectKey": "TRE"}},
            {"id": 4},
        ]
        service = ProjectDiscoveryService(clock=clock)

        result = service.discover_user_projects(EMAIL, client)

        assert result.method == "boards"
        assert result.project_keys == ["TRE", "TS"]
        assert client.search_issues.call_count == len(service.jql_templates(EMAIL))
        client.get_projects.assert_called_once()

    def test_unresolvable_board_project_is_skipped(self, client, clock):
        client.get_boards.return_value = [
            {"id": 1, "location": {"projectKey": "TRE"}},
            {"id": 2, "location": {"projectKey": "GONE"}},
        ]

        def get_project(key):
            if key == "GONE":
                raise requests.exceptions.HTTPError("404 Not Found")
            return make_project(key)
        client.get_project.side_effect = get_project
        service = ProjectDiscoveryService(clock=clock)

        result = service.discover_user_projects(EMAIL, client)

        assert result.project_keys == ["TRE"]
        assert result.total_projects_found == 2

    def test_fallback_probes_by_priority(self, client, clock):
        def get_project(key):
            if key not in ("SEGP", "TS"):
                raise requests.exceptions.HTTPError("404 Not Found")
            return make_project(key)
        client.get_project.side_effect = get_project
        service = ProjectDiscoveryService(clock=clock)

        result = service.discover_user_projects(EMAIL, client)

        assert result.method == "fallback"
        assert result.project_keys == ["SEGP", "TS"]
        assert result.total_projects_found == len(DEFAULT_FALLBACK_PROJECTS)
        probed = [c.args[0] for c in client.get_project.call_args_list]
        assert probed == ["INFOSECC", "SEGP", "TS", "TRE", "CRMS", "PPD", "GCD"]

    def test_nothing_found(self, client, clock):
        client.get_project.side_effect = requests.exceptions.ConnectionError()
        service = ProjectDiscoveryService(clock=clock)

        result = service.discover_user_projects(EMAIL, client)

        assert result.method == "fallback"
        assert result.accessible_projects_count == 0

    def test_custom_fallback_list(self, client, clock):
        service = ProjectDiscoveryService(
            fallback_projects=[{"key": "LOW", "priority": 3}, {"key": "HIGH", "priority": 1}],
            clock=clock
        )

        result = service.discover_user_projects(EMAIL, client)

        assert result.project_keys == ["HIGH", "LOW"]


class TestDiscoveryCache:
    """Test per-user caching."""

    def test_fresh_cache_skips_network(self, client, clock):
        client.search_issues.return_value = [make_issue("TS-1", "TS")]
        service = ProjectDiscoveryService(clock=clock)

        first = service.discover_user_projects(EMAIL, client)
        calls = client.search_issues.call_count
        clock.advance(minutes=4)
        second = service.discover_user_projects(EMAIL, client)

        assert second is first
        assert client.search_issues.call_count == calls

    def test_expired_cache_rediscovers(self, client, clock):
        client.search_issues.return_value = [make_issue("TS-1", "TS")]
        service = ProjectDiscoveryService(clock=clock)

        first = service.discover_user_projects(EMAIL, client)
        clock.advance(minutes=5)
        assert service.get_cached_discovery(EMAIL) is None

        second = service.discover_user_projects(EMAIL, client)
        assert second is not first
        assert second.discovered_at == clock.now

    def test_cache_is_per_user(self, client, clock):
        client.search_issues.return_value = [make_issue("TS-1", "TS")]
        service = ProjectDiscoveryService(clock=clock)

        service.discover_user_projects(EMAIL, client)

        assert service.get_cached_discovery(EMAIL) is not None
        assert service.get_cached_discovery("other@example.com") is None

    def test_clear_cache_for_one_user(self, client, clock):
        client.search_issues.return_value = [make_issue("TS-1", "TS")]
        service = ProjectDiscoveryService(clock=clock)
        service.discover_user_projects(EMAIL, client)
        service.discover_user_projects("other@example.com", client)

        service.clear_cache(EMAIL)

        assert service.get_cached_discovery(EMAIL) is None
        assert service.get_cached_discovery("other@example.com") is not None

    def test_clear_whole_cache(self, client, clock):
        client.search_issues.return_value = [make_issue("TS-1", "TS")]
        service = ProjectDiscoveryService(clock=clock)
        service.discover_user_projects(EMAIL, client)

        service.clear_cache()

        assert service.get_cached_discovery(EMAIL) is None


class TestConfiguredLists:
    """Test explicit candidate lists from the access config."""

    def test_empty_fallback_list_disables_fallback(self, client, clock):
        service = ProjectDiscoveryService(fallback_projects=[], clock=clock)

        result = service.discover_user_projects(EMAIL, client)

        assert result.method == "fallback"
        assert result.accessible_projects_count == 0
        client.get_project.assert_not_called()

    def test_empty_probe_list_skips_project_template(self):
        service = ProjectDiscoveryService(jql_probe_projects=[])
        templates = service.jql_templates(EMAIL)

        assert len(templates) == 4
        assert not any(t.startswith("project in") for t in templates)
