"""Tests for InsightsService."""

import pytest
from datetime import datetime, timedelta
from unittest.mock import patch

from services.insights import InsightsService, trend_label, z_score

NOW = datetime(2024, 6, 30, 12, 0, 0)


def jira_date(dt):
    return dt.strftime("%Y-%m-%dT%H:%M:%S.000+0000")


def issue(key, issue_type="Task", done=False, days_ago=3, updated_days_ago=None,
          priority="Medium", assignee=True, duedate=None):
    created = NOW - timedelta(days=days_ago)
    updated = NOW - timedelta(days=updated_days_ago if updated_days_ago is not None else days_ago)
    return {
        "key": key,
        "fields": {
            "issuetype": {"name": issue_type},
            "status": {"name": "Done" if done else "To Do",
                       "statusCategory": {"name": "Done" if done else "To Do"}},
            "priority": {"name": priority},
            "assignee": {"displayName": "Alex Doe"} if assignee else None,
            "created": jira_date(created),
            "updated": jira_date(updated),
            "duedate": duedate
        }
    }


@pytest.fixture
def service():
    return InsightsService(now=NOW)


def ids(insights):
    return [i["id"] for i in insights]


class TestHelpers:
    """Test statistics helpers."""

    def test_z_score(self):
        assert z_score(5, [1, 3]) == pytest.approx(3.0)

    @pytest.mark.parametrize("history", [[], [4], [2, 2, 2]])
    def test_z_score_undefined(self, history):
        assert z_score(5, history) is None

    @pytest.mark.parametrize("rate,label", [(25, "increasing"), (-25, "decreasing"), (5, "stable")])
    def test_trend_label(self, rate, label):
        assert trend_label(rate) == label


class TestGenerateInsights:
    """Test the combined, prioritised output."""

    def test_rejects_unknown_time_range(self, service):
        with pytest.raises(ValueError):
            service.generate_insights([], time_range="decade")

    def test_no_issues(self, service):
        assert service.generate_insights([]) == []

    def test_sorted_by_priority(self, service):
        issues = [
            issue("TS-1", duedate="2024-06-01"),
            issue("TS-2", priority="Highest", assignee=False),
            issue("TS-3", done=True),
        ]

        insights = service.generate_insights(issues)

        priorities = [i["priority"] for i in insights]
        assert priorities == sorted(priorities, reverse=True)
        assert insights[0]["id"] == "overdue-issues"


class TestRisks:
    """Test risk detection."""

    def test_overdue_ignores_done(self, service):
        insights = service.assess_risks([
            issue("TS-1", duedate="2024-06-01"),
            issue("TS-2", done=True, duedate="2024-06-01"),
            issue("TS-3", duedate="2024-07-15"),
        ])

        assert ids(insights) == ["overdue-issues"]
        assert insights[0]["metrics"] == {"overdueCount": 1, "totalIssues": 3}

    def test_unassigned_high_priority(self, service):
        insights = service.assess_risks([
            issue("TS-1", priority="High", assignee=False),
            issue("TS-2", priority="Low", assignee=False),
        ])

        assert ids(insights) == ["unassigned-high-priority"]
        assert insights[0]["metrics"]["unassignedCount"] == 1


class TestAnomalies:
    """Test anomaly detection."""

    def test_intake_spike(self, service):
        issues = [issue(f"NEW-{i}", done=True, days_ago=1) for i in range(10)]
        for week, count in enumerate([1, 2, 1, 2, 1, 2, 1], start=1):
            issues.extend(
                issue(f"OLD-{week}-{n}", done=True, days_ago=week * 7 + 3) for n in range(count)
            )

        insights = service.detect_anomalies(issues, "month")

        spike = next(i for i in insights if i["id"] == "intake-spike")
        assert spike["metrics"]["weeklyCounts"][-1] == 10
        assert spike["metrics"]["zScore"] > 2

    def test_velocity_spike(self, service):
        issues = [issue(f"TS-{i}", "Story", done=True) for i in range(8)]

        assert "velocity-spike" in ids(service.detect_anomalies(issues, "month"))

    def test_bug_spike_and_completion_drop(self, service):
        issues = [issue(f"TS-{i}", "Bug") for i in range(3)] + [issue("TS-9", "Task")]

        found = ids(service.detect_anomalies(issues, "week"))

        assert "bug-spike" in found
        assert "completion-drop" in found

    def test_quiet_week(self, service):
        issues = [issue("TS-1", "Story", done=True)]
        assert service.detect_anomalies(issues, "month") == []


class TestPerformanceAndRecommendations:
    """Test performance rules."""

    def test_low_velocity_needs_sprints(self, service):
        issues = [issue("TS-1", "Task", done=True)]

        assert "low-velocity" not in ids(service.analyze_performance(issues, []))
        assert "low-velocity" in ids(service.analyze_performance(issues, [{"id": 1}]))

    def test_high_cycle_time(self, service):
        issues = [issue("TS-1", done=True, days_ago=40, updated_days_ago=10)]

        assert "high-cycle-time" in ids(service.analyze_performance(issues, []))
        assert "process-inefficiency" in ids(service.generate_recommendations(issues, []))

    def test_high_efficiency(self, service):
        issues = [issue("TS-1", "Story", done=True)]
        assert ids(service.generate_recommendations(issues, [{"id": 1}])) == ["high-efficiency"]


class TestTrends:
    """Test period over period trends."""

    def test_velocity_decline(self, service):
        previous = [issue(f"OLD-{i}", "Story", done=True, days_ago=45) for i in range(5)]
        recent = [issue("NEW-1", "Task", done=False, days_ago=5)]

        found = ids(service.analyze_trends(previous + recent, "month"))

        assert "velocity-decline" in found
        assert "completion-decline" in found


class TestDefaultClock:
    def test_defaults_to_utc(self):
        with patch("services.insights.utc_now", return_value=NOW):
            service = InsightsService()

        assert service.now == NOW
        insights = service.assess_risks([issue("TS-1", duedate="2024-06-30")])
        assert ids(insights) == ["overdue-issues"]
