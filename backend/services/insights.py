"""Heuristic insights over the filtered issue set.

A fixed set of threshold rules grouped as performance, trend, anomaly, risk
and recommendation checks. Story points are estimated from the issue type
because the dashboard issue query does not fetch estimate fields.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from services.jira_client import parse_jira_date, utc_now

logger = logging.getLogger(__name__)

TIME_RANGE_DAYS = {"week": 7, "month": 30, "quarter": 90}

ESTIMATED_POINTS = {"Story": 3, "Task": 2, "Bug": 1}
DEFAULT_ESTIMATED_POINTS = 5

EXPECTED_VELOCITY = 15
SPIKE_Z_SCORE = 2.0


def z_score(value: float, history: list) -> Optional[float]:
    """Standard score of value against history, None when undefined."""
    if len(history) < 2:
        return None
    mean = sum(history) / len(history)
    variance = sum((x - mean) ** 2 for x in history) / len(history)
    std_dev = math.sqrt(variance)
    if std_dev == 0:
        return None
    return (value - mean) / std_dev


def trend_label(change_rate: float) -> str:
    if change_rate > 10:
        return "increasing"
    if change_rate < -10:
        return "decreasing"
    return "stable"


class InsightsService:
    """Generates prioritised insight dicts from issues and sprints."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or utc_now()

    def generate_insights(self, issues: list, sprints: Optional[list] = None,
                          time_range: str = "month") -> list:
        if time_range not in TIME_RANGE_DAYS:
            raise ValueError(f"Unsupported time range: {time_range}")
        sprints = sprints or []

        insights = []
        insights.extend(self.analyze_performance(issues, sprints))
        insights.extend(self.analyze_trends(issues, time_range))
        insights.extend(self.detect_anomalies(issues, time_range))
        insights.extend(self.assess_risks(issues))
        insights.extend(self.generate_recommendations(issues, sprints))

        insights.sort(key=lambda i: (i["priority"], i["confidence"]), reverse=True)
        logger.info(f"Generated {len(insights)} insights from {len(issues)} issues")
        return insights

    def _insight(self, insight_id, kind, title, description, confidence, impact,
                 category, metrics, recommendations, priority) -> dict:
        return {
            "id": insight_id,
            "type": kind,
            "title": title,
            "description": description,
            "confidence": round(confidence, 1),
            "impact": impact,
            "category": category,
            "metrics": metrics,
            "recommendations": recommendations,
            "timestamp": self.now.isoformat(),
            "priority": priority
        }

    # Metric helpers

    def _fields(self, issue: dict) -> dict:
        return issue.get("fields") or {}

    def _is_done(self, issue: dict) -> bool:
        status = self._fields(issue).get("status") or {}
        return (status.get("statusCategory") or {}).get("name") == "Done"

    def _type_name(self, issue: dict) -> str:
        return (self._fields(issue).get("issuetype") or {}).get("name", "")

    def _created(self, issue: dict) -> Optional[datetime]:
        return parse_jira_date(self._fields(issue).get("created"))

    def completed_points(self, issues: list) -> int:
        return sum(
            ESTIMATED_POINTS.get(self._type_name(i), DEFAULT_ESTIMATED_POINTS)
            for i in issues if self._is_done(i)
        )

    def calculate_velocity(self, issues: list, sprints: list) -> float:
        """Estimated completed points per sprint."""
        if not sprints:
            return 0
        return self.completed_points(issues) / len(sprints)

    def calculate_cycle_time(self, issues: list) -> float:
        """Average days from creation to last update for completed issues."""
        days = []
        for issue in issues:
            if not self._is_done(issue):
                continue
            created = self._created(issue)
            updated = parse_jira_date(self._fields(issue).get("updated"))
            if created and updated:
                days.append((updated - created).total_seconds() / 86400)
        return sum(days) / len(days) if days else 0

    def calculate_bug_rate(self, issues: list) -> float:
        if not issues:
            return 0
        return sum(1 for i in issues if self._type_name(i) == "Bug") / len(issues)

    def calculate_completion_rate(self, issues: list) -> float:
        if not issues:
            return 0
        return sum(1 for i in issues if self._is_done(i)) / len(issues)

    def _window(self, issues: list, start: datetime, end: datetime) -> list:
        result = []
        for issue in issues:
            created = self._created(issue)
            if created is not None and start <= created < end:
                result.append(issue)
        return result

    def recent_issues(self, issues: list, time_range: str) -> list:
        days = TIME_RANGE_DAYS[time_range]
        return self._window(issues, self.now - timedelta(days=days), self.now + timedelta(seconds=1))

    def previous_issues(self, issues: list, time_range: str) -> list:
        days = TIME_RANGE_DAYS[time_range]
        return self._window(issues, self.now - timedelta(days=2 * days), self.now - timedelta(days=days))

    def weekly_created_counts(self, issues: list, weeks: int = 8) -> list:
        """Issues created per week, oldest week first."""
        counts = []
        for i in range(weeks - 1, -1, -1):
            start = self.now - timedelta(weeks=i + 1)
            end = self.now - timedelta(weeks=i)
            counts.append(len(self._window(issues, start, end)))
        return counts

    def _trend(self, metric: str, recent: float, previous: float, time_range: str) -> dict:
        change_rate = ((recent - previous) / previous * 100) if previous > 0 else 0
        return {
            "metric": metric,
            "period": time_range,
            "trend": trend_label(change_rate),
            "changeRate": round(change_rate, 1),
            "significance": min(100, abs(change_rate))
        }

    # Rule groups

    def analyze_performance(self, issues: list, sprints: list) -> list:
        insights = []
        velocity = self.calculate_velocity(issues, sprints)
        cycle_time = self.calculate_cycle_time(issues)
        bug_rate = self.calculate_bug_rate(issues)

        if sprints and velocity < 10:
            insights.append(self._insight(
                "low-velocity", "performance", "Low velocity detected",
                f"Team velocity is {velocity:.1f} points per sprint.",
                85, "high", "Performance", {"velocity": velocity, "threshold": 15},
                ["Review story point estimates", "Identify process bottlenecks",
                 "Consider pair programming"],
                8
            ))

        if cycle_time > 14:
            insights.append(self._insight(
                "high-cycle-time", "performance", "High cycle time",
                f"Average cycle time is {cycle_time:.1f} days, above the 7-10 day target.",
                90, "high", "Performance", {"cycleTime": cycle_time, "ideal": 10},
                ["Introduce WIP limits", "Review the code review process", "Automate tests"],
                9
            ))

        if bug_rate > 0.3:
            insights.append(self._insight(
                "high-bug-rate", "performance", "High bug rate",
                f"Bugs make up {bug_rate * 100:.1f}% of issues.",
                80, "medium", "Quality", {"bugRate": bug_rate, "threshold": 0.2},
                ["Add automated tests", "Review the QA process",
                 "Sharpen acceptance criteria"],
                7
            ))

        return insights

    def analyze_trends(self, issues: list, time_range: str) -> list:
        insights = []
        recent = self.recent_issues(issues, time_range)
        previous = self.previous_issues(issues, time_range)

        velocity_trend = self._trend(
            "velocity", self.completed_points(recent), self.completed_points(previous), time_range
        )
        if velocity_trend["trend"] == "decreasing" and velocity_trend["significance"] > 70:
            insights.append(self._insight(
                "velocity-decline", "trend", "Velocity declining",
                f"Completed work changed by {velocity_trend['changeRate']}% per {time_range}.",
                velocity_trend["significance"], "high", "Trends", velocity_trend,
                ["Investigate the cause of the decline", "Review team workload"],
                9
            ))

        completion_trend = self._trend(
            "completion", self.calculate_completion_rate(recent),
            self.calculate_completion_rate(previous), time_range
        )
        if completion_trend["trend"] == "decreasing" and completion_trend["significance"] > 60:
            insights.append(self._insight(
                "completion-decline", "trend", "Completion rate declining",
                f"Completion rate changed by {completion_trend['changeRate']}% per {time_range}.",
                completion_trend["significance"], "medium", "Trends", completion_trend,
                ["Review the definition of done", "Improve sprint planning"],
                6
            ))

        return insights

    def detect_anomalies(self, issues: list, time_range: str) -> list:
        insights = []

        counts = self.weekly_created_counts(issues)
        score = z_score(counts[-1], counts[:-1])
        if score is not None and abs(score) >= SPIKE_Z_SCORE:
            spike = score > 0
            insights.append(self._insight(
                "intake-spike" if spike else "intake-drop", "anomaly",
                "Issue intake spike" if spike else "Issue intake drop",
                f"{counts[-1]} issues created this week (z-score {score:.1f}).",
                min(95, 50 + abs(score) * 10), "medium" if spike else "low", "Anomaly",
                {"weeklyCounts": counts, "zScore": round(score, 2)},
                ["Check for incidents or scope changes behind the change"],
                7 if spike else 4
            ))

        velocity = self.completed_points(issues)
        if velocity > EXPECTED_VELOCITY * 1.5:
            deviation = (velocity - EXPECTED_VELOCITY) / EXPECTED_VELOCITY * 100
            insights.append(self._insight(
                "velocity-spike", "anomaly", "Velocity spike",
                f"Completed work ({velocity}) is {deviation:.1f}% above the expected baseline.",
                75, "low", "Anomaly", {"velocity": velocity, "expected": EXPECTED_VELOCITY},
                ["Check that estimates are accurate", "Document what drove the increase"],
                3
            ))

        recent = self.recent_issues(issues, time_range)
        bug_rate = self.calculate_bug_rate(recent)
        if bug_rate > 0.4:
            insights.append(self._insight(
                "bug-spike", "anomaly", "Bug spike",
                f"Bugs make up {bug_rate * 100:.1f}% of recent issues.",
                85, "high", "Anomaly", {"bugRate": bug_rate, "threshold": 0.2},
                ["Investigate root causes", "Review the QA process"],
                8
            ))

        if recent:
            completion_rate = self.calculate_completion_rate(recent)
            if completion_rate < 0.3:
                insights.append(self._insight(
                    "completion-drop", "anomaly", "Low completion rate",
                    f"Only {completion_rate * 100:.1f}% of recent issues are done.",
                    80, "medium", "Anomaly", {"completionRate": completion_rate, "threshold": 0.5},
                    ["Identify blocked work", "Review team workload"],
                    6
                ))

        return insights

    def assess_risks(self, issues: list) -> list:
        insights = []

        overdue = []
        for issue in issues:
            due = parse_jira_date(self._fields(issue).get("duedate"))
            if due and due < self.now and not self._is_done(issue):
                overdue.append(issue)

        if overdue:
            insights.append(self._insight(
                "overdue-issues", "risk", "Overdue issues",
                f"{len(overdue)} issues are past their due date.",
                95, "high", "Risks",
                {"overdueCount": len(overdue), "totalIssues": len(issues)},
                ["Prioritise overdue issues", "Revisit due date estimates"],
                10
            ))

        unassigned = [
            i for i in issues
            if (self._fields(i).get("priority") or {}).get("name") in ("High", "Highest")
            and not self._fields(i).get("assignee")
        ]
        if unassigned:
            insights.append(self._insight(
                "unassigned-high-priority", "risk", "High priority issues without assignee",
                f"{len(unassigned)} high priority issues have no assignee.",
                90, "medium", "Risks", {"unassignedCount": len(unassigned)},
                ["Assign owners now", "Review the triage process"],
                8
            ))

        return insights

    def generate_recommendations(self, issues: list, sprints: list) -> list:
        insights = []
        cycle_time = self.calculate_cycle_time(issues)
        if cycle_time > 21:
            insights.append(self._insight(
                "process-inefficiency", "recommendation", "Inefficient process",
                f"Average cycle time of {cycle_time:.1f} days points to process inefficiency.",
                90, "high", "Process", {"cycleTime": cycle_time, "ideal": 14},
                ["Adopt Kanban with WIP limits", "Automate testing and deployment"],
                9
            ))

        velocity = self.calculate_velocity(issues, sprints)
        bug_rate = self.calculate_bug_rate(issues)
        if velocity > 0 and bug_rate < 0.1:
            insights.append(self._insight(
                "high-efficiency", "recommendation", "High efficiency team",
                "The team combines good velocity with a low bug rate.",
                85, "low", "Efficiency", {"velocity": velocity, "bugRate": bug_rate},
                ["Document successful practices", "Share knowledge with other teams"],
                2
            ))

        return insights
