"""Quality metrics calculation service.

All figures are heuristics over issue metadata. Values that Jira cannot
provide directly (test coverage, code quality, technical debt, customer
satisfaction, defect escape rate) are estimated from the bug, rework and
escalation rates.
"""

from datetime import datetime, timedelta
from typing import Optional

from services.jira_client import parse_jira_date, utc_now

METRIC_NAMES = [
    "bugRate", "reworkRate", "defectEscapeRate", "testCoverage", "codeQuality",
    "technicalDebt", "customerSatisfaction", "meanTimeToResolution",
    "firstTimeResolution", "escalationRate"
]

SCORE_WEIGHTS = {
    "bugRate": 0.2,
    "reworkRate": 0.15,
    "defectEscapeRate": 0.1,
    "testCoverage": 0.15,
    "codeQuality": 0.15,
    "technicalDebt": 0.1,
    "customerSatisfaction": 0.15,
}

RESOLVED_STATUS_TERMS = ("resolved", "closed", "done", "concluído")


class QualityMetricsService:
    """Rules-based quality scoring over a list of issues."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or utc_now()

    def _fields(self, issue: dict) -> dict:
        return issue.get("fields") or {}

    def _name(self, issue: dict, field: str) -> str:
        return ((self._fields(issue).get(field) or {}).get("name") or "").lower()

    def _age_days(self, issue: dict) -> Optional[float]:
        fields = self._fields(issue)
        created = parse_jira_date(fields.get("created"))
        updated = parse_jira_date(fields.get("updated"))
        if not created or not updated:
            return None
        return (updated - created).total_seconds() / 86400

    def _is_bug(self, issue: dict) -> bool:
        issue_type = self._name(issue, "issuetype")
        summary = (self._fields(issue).get("summary") or "").lower()
        return (
            "bug" in issue_type or "defect" in issue_type
            or any(term in summary for term in ("bug", "erro", "falha", "error"))
        )

    def _is_reopened(self, issue: dict) -> bool:
        # No changelog here; updates more than a day after creation count as rework
        age = self._age_days(issue)
        return age is not None and age > 1

    def _is_resolved(self, issue: dict) -> bool:
        status = self._name(issue, "status")
        return any(term in status for term in RESOLVED_STATUS_TERMS)

    def _is_escalated(self, issue: dict) -> bool:
        priority = self._name(issue, "priority")
        summary = (self._fields(issue).get("summary") or "").lower()
        return (
            "highest" in priority or "critical" in priority
            or "escalation" in summary or "urgent" in summary
        )

    def _created_between(self, issue: dict, start: datetime, end: datetime) -> bool:
        created = parse_jira_date(self._fields(issue).get("created"))
        return created is not None and start <= created < end

    def calculate_quality_metrics(self, issues: list, window_days: Optional[int] = 30) -> dict:
        """Calculate quality metrics for issues created in the last window_days.

        Pass window_days=None to use every issue given.
        """
        if window_days is not None:
            cutoff = self.now - timedelta(days=window_days)
            issues = [
                i for i in issues
                if (parse_jira_date(self._fields(i).get("created")) or datetime.min) >= cutoff
            ]

        if not issues:
            return {name: 0 for name in METRIC_NAMES}

        total = len(issues)
        bug_rate = sum(1 for i in issues if self._is_bug(i)) / total * 100
        rework_rate = sum(1 for i in issues if self._is_reopened(i)) / total * 100
        escalation_rate = sum(1 for i in issues if self._is_escalated(i)) / total * 100

        resolution_days = [
            d for d in (self._age_days(i) for i in issues if self._is_resolved(i))
            if d is not None
        ]
        mttr = sum(resolution_days) / len(resolution_days) if resolution_days else 0
        first_time = (
            sum(1 for d in resolution_days if d <= 2) / len(resolution_days) * 100
            if resolution_days else 0
        )

        metrics = {
            "bugRate": bug_rate,
            "reworkRate": rework_rate,
            "defectEscapeRate": min(50, bug_rate * 0.3),
            "testCoverage": max(20, 100 - bug_rate * 2),
            "codeQuality": max(30, 100 - (bug_rate + rework_rate) * 1.5),
            "technicalDebt": min(100, (rework_rate + escalation_rate) * 2),
            "customerSatisfaction": max(40, 100 - bug_rate * 0.5 - min(20, mttr * 2)),
            "meanTimeToResolution": mttr,
            "firstTimeResolution": first_time,
            "escalationRate": escalation_rate,
        }
        return {name: round(value, 1) for name, value in metrics.items()}

    def get_quality_score(self, metrics: dict) -> int:
        """Weighted 0-100 score; rates where lower is better are inverted."""
        normalized = {
            "bugRate": max(0, 100 - metrics["bugRate"] * 2),
            "reworkRate": max(0, 100 - metrics["reworkRate"] * 2),
            "defectEscapeRate": max(0, 100 - metrics["defectEscapeRate"] * 2),
            "testCoverage": metrics["testCoverage"],
            "codeQuality": metrics["codeQuality"],
            "technicalDebt": max(0, 100 - metrics["technicalDebt"]),
            "customerSatisfaction": metrics["customerSatisfaction"],
        }
        return round(sum(normalized[k] * w for k, w in SCORE_WEIGHTS.items()))

    def generate_insights(self, metrics: dict) -> list:
        """Threshold-based findings for a metrics dict."""
        insights = []

        def add(kind, title, description, recommendation, impact):
            insights.append({
                "type": kind,
                "title": title,
                "description": description,
                "recommendation": recommendation,
                "impact": impact
            })

        bug_rate = metrics["bugRate"]
        if bug_rate > 30:
            add("critical", "Critical bug rate",
                f"Bug rate is {bug_rate}%, far above the target of 15% or less",
                "Enforce stricter code review and automated tests", "high")
        elif bug_rate > 20:
            add("warning", "High bug rate",
                f"Bug rate is {bug_rate}%, above the recommended level",
                "Review the development process and add more tests", "medium")
        elif bug_rate < 10:
            add("improvement", "Excellent bug rate",
                f"Bug rate of {bug_rate}% is excellent",
                "Keep the current quality standards", "low")

        rework_rate = metrics["reworkRate"]
        if rework_rate > 25:
            add("critical", "Critical rework rate",
                f"Rework rate is {rework_rate}%, pointing to quality problems",
                "Improve specifications and communication before development starts", "high")
        elif rework_rate > 15:
            add("warning", "High rework rate",
                f"Rework rate is {rework_rate}%",
                "Review approval and feedback processes", "medium")

        if metrics["meanTimeToResolution"] > 7:
            add("warning", "Slow resolution",
                f"Mean time to resolution is {metrics['meanTimeToResolution']} days",
                "Streamline the resolution process", "medium")

        satisfaction = metrics["customerSatisfaction"]
        if satisfaction < 70:
            add("critical", "Low customer satisfaction",
                f"Estimated customer satisfaction is {satisfaction}%",
                "Focus on quality and customer communication", "high")
        elif satisfaction > 90:
            add("improvement", "Excellent customer satisfaction",
                f"Estimated customer satisfaction of {satisfaction}% is excellent",
                "Keep the current quality bar", "low")

        if metrics["technicalDebt"] > 70:
            add("warning", "High technical debt",
                f"Technical debt is estimated at {metrics['technicalDebt']}%",
                "Plan refactoring work", "medium")

        return insights

    def calculate_trends(self, issues: list, periods: int = 4) -> list:
        """Metrics per week for the last `periods` weeks, oldest first."""
        trends = []
        for i in range(periods - 1, -1, -1):
            start = self.now - timedelta(weeks=i + 1)
            end = self.now - timedelta(weeks=i)
            period_issues = [x for x in issues if self._created_between(x, start, end)]
            trends.append({
                "period": f"Week {periods - i}",
                "metrics": self.calculate_quality_metrics(period_issues, window_days=None)
            })
        return trends

    def get_quality_report(self, issues: list) -> dict:
        metrics = self.calculate_quality_metrics(issues)
        return {
            "metrics": metrics,
            "score": self.get_quality_score(metrics),
            "insights": self.generate_insights(metrics),
            "trends": self.calculate_trends(issues)
        }
