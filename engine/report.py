"""
Report rendering for finished load test runs.

Turns ``TestResult`` objects into a Markdown report for the control surface,
a console report for the standalone runner, and JSON report files with
qualitative ratings and prioritized recommendations. Every function is pure
with respect to its input, so identical results render identically.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import TestResult, isoformat, utc_now

TOP_ERRORS = 5
PRIORITY_ORDER = {"HIGH": 0, "MEDIUM": 1, "LOW": 2}


def performance_rating(p95_ms: float) -> str:
    if p95_ms < 1000:
        return "Excellent"
    if p95_ms < 2000:
        return "Good"
    if p95_ms < 5000:
        return "Fair"
    return "Poor"


def reliability_rating(success_rate: float) -> str:
    if success_rate > 99.5:
        return "Excellent"
    if success_rate > 99:
        return "Good"
    if success_rate > 95:
        return "Fair"
    return "Poor"


@dataclass(frozen=True)
class Recommendation:
    level: str
    issue: str
    suggestion: str

    def to_dict(self) -> Dict[str, str]:
        return {"level": self.level, "issue": self.issue, "suggestion": self.suggestion}


def file_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO timestamp safe for file names (colons replaced)."""

    return isoformat(moment or utc_now()).replace(":", "-")


class ReportGenerator:
    """Renders aggregated statistics into ratings, recommendations and reports."""

    @staticmethod
    def top_errors(result: TestResult, limit: int = TOP_ERRORS) -> List[Tuple[str, int]]:
        """Most frequent ``"endpoint: message"`` groups, ties broken by key."""

        grouped: Dict[str, int] = {}
        for error in result.errors:
            key = f"{error.endpoint}: {error.error}"
            grouped[key] = grouped.get(key, 0) + 1
        return sorted(grouped.items(), key=lambda item: (-item[1], item[0]))[:limit]

    @staticmethod
    def summarize(result: TestResult) -> Dict[str, Any]:
        return {
            "performance": {
                "rating": performance_rating(result.p95_response_time_ms),
                "p95ResponseTime": f"{result.p95_response_time_ms:.0f}ms",
            },
            "reliability": {
                "rating": reliability_rating(result.success_rate),
                "successRate": f"{result.success_rate:.2f}%",
            },
            "throughput": f"{result.requests_per_second:.2f} req/s",
        }

    @staticmethod
    def recommendations(result: TestResult) -> List[Recommendation]:
        recommendations: List[Recommendation] = []

        if result.success_rate < 99:
            recommendations.append(
                Recommendation(
                    "HIGH",
                    "Low success rate",
                    "Investigate error patterns and improve error handling",
                )
            )

        if result.p95_response_time_ms > 2000:
            recommendations.append(
                Recommendation(
                    "MEDIUM",
                    "Slow 95th percentile response time",
                    "Consider database query optimization, caching, or CDN implementation",
                )
            )

        if result.max_response_time_ms > 10000:
            recommendations.append(
                Recommendation(
                    "HIGH",
                    "Very slow maximum response time",
                    "Add request timeouts and investigate slow queries",
                )
            )

        if result.errors:
            recommendations.append(
                Recommendation(
                    "MEDIUM",
                    "Multiple error types detected" if len(result.error_counts()) > 1 else "Errors detected",
                    "Review error patterns and implement better error handling",
                )
            )

        # sorted() is stable, so heuristics keep their order within a level
        return sorted(recommendations, key=lambda rec: PRIORITY_ORDER[rec.level])

    @classmethod
    def render(cls, results: Sequence[TestResult]) -> str:
        """Markdown report covering every result, in order."""

        if not results:
            return "No load test results available."

        lines = ["# Load Test Report", ""]
        for result in results:
            summary = cls.summarize(result)
            lines.append(f"## {result.test_name}")
            lines.append(f"- **Run**: {result.run_id}{' (aborted)' if result.aborted else ''}")
            lines.append(f"- **Duration**: {result.duration_ms / 1000:.2f}s")
            lines.append(f"- **Total Requests**: {result.total_requests}")
            lines.append(f"- **Successful / Failed**: {result.successful_requests} / {result.failed_requests}")
            lines.append(f"- **Success Rate**: {result.success_rate:.2f}%")
            lines.append(f"- **Requests/Second**: {result.requests_per_second:.2f}")
            lines.append(f"- **Average Response Time**: {result.average_response_time_ms:.2f}ms")
            lines.append(f"- **P50 Response Time**: {result.p50_response_time_ms:.2f}ms")
            lines.append(f"- **P95 Response Time**: {result.p95_response_time_ms:.2f}ms")
            lines.append(f"- **P99 Response Time**: {result.p99_response_time_ms:.2f}ms")
            lines.append(f"- **Performance**: {summary['performance']['rating']}")
            lines.append(f"- **Reliability**: {summary['reliability']['rating']}")
            lines.append(f"- **Errors**: {len(result.errors)}")
            lines.append("")

            top = cls.top_errors(result)
            if top:
                lines.append("### Top Errors")
                lines.append("| Error | Count |")
                lines.append("|---|---|")
                for key, count in top:
                    lines.append(f"| {key} | {count} |")
                lines.append("")

            lines.append("### Endpoint Performance")
            if result.endpoint_stats:
                lines.append("| Endpoint | Requests | Throughput | Avg | Success |")
                lines.append("|---|---|---|---|---|")
                for key in sorted(result.endpoint_stats):
                    stats = result.endpoint_stats[key]
                    lines.append(
                        f"| {key} | {stats.total_requests} | {stats.throughput:.2f} req/s | "
                        f"{stats.average_response_time_ms:.2f}ms | {stats.success_rate:.1f}% |"
                    )
            else:
                lines.append("No requests recorded.")
            lines.append("")

            recommendations = cls.recommendations(result)
            if recommendations:
                lines.append("### Recommendations")
                for rec in recommendations:
                    lines.append(f"- **{rec.level}** {rec.issue}: {rec.suggestion}")
                lines.append("")

        return "\n".join(lines)

    @classmethod
    def console_report(cls, result: TestResult) -> str:
        """Human-readable block printed by the standalone runner."""

        lines = []
        lines.append("=" * 60)
        lines.append(f"LOAD TEST RESULTS - {result.test_name}")
        lines.append("=" * 60)
        lines.append(f"Total Requests: {result.total_requests}")
        lines.append(f"Successful: {result.successful_requests} ({result.success_rate:.2f}%)")
        lines.append(f"Failed: {result.failed_requests}")
        lines.append("")
        lines.append("Response Times:")
        lines.append(f"  Average: {result.average_response_time_ms:.2f}ms")
        lines.append(f"  Min: {result.min_response_time_ms:.0f}ms")
        lines.append(f"  Max: {result.max_response_time_ms:.0f}ms")
        lines.append(f"  P50: {result.p50_response_time_ms:.0f}ms")
        lines.append(f"  P90: {result.p90_response_time_ms:.0f}ms")
        lines.append(f"  P95: {result.p95_response_time_ms:.0f}ms")
        lines.append(f"  P99: {result.p99_response_time_ms:.0f}ms")
        lines.append("")
        lines.append(f"Throughput: {result.requests_per_second:.2f} requests/second")
        lines.append(f"Max Concurrent: {result.max_concurrent}")

        counts = result.error_counts()
        if counts:
            lines.append("")
            lines.append("Errors:")
            for message, count in sorted(counts.items(), key=lambda item: (-item[1], item[0])):
                lines.append(f"  {message}: {count}")

        return "\n".join(lines)

    @classmethod
    def build_json_report(cls, result: TestResult, timestamp: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "testName": result.test_name,
            "timestamp": isoformat(timestamp or result.end_time or utc_now()),
            "stats": result.stats_dict(),
            "summary": cls.summarize(result),
            "recommendations": [rec.to_dict() for rec in cls.recommendations(result)],
        }

    @classmethod
    def write_json_report(cls, result: TestResult, output_dir: str, timestamp: str) -> Tuple[str, Dict[str, Any]]:
        """Write ``<TestName>_<timestamp>.json`` and return its path and content."""

        os.makedirs(output_dir, exist_ok=True)
        report = cls.build_json_report(result)
        file_name = f"{'_'.join(result.test_name.split())}_{timestamp}.json"
        path = os.path.join(output_dir, file_name)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(report, handle, indent=2)
        return path, report

    @staticmethod
    def write_summary(reports: Sequence[Dict[str, Any]], output_dir: str, timestamp: str) -> str:
        """Write ``load_test_summary_<timestamp>.json`` aggregating every report."""

        os.makedirs(output_dir, exist_ok=True)
        count = len(reports)
        summary = {
            "timestamp": isoformat(utc_now()),
            "tests": list(reports),
            "overall": {
                "totalTests": count,
                "avgSuccessRate": (sum(r["stats"]["successRate"] for r in reports) / count) if count else 0.0,
                "avgP95": (sum(r["stats"]["p95"] for r in reports) / count) if count else 0.0,
            },
        }
        path = os.path.join(output_dir, f"load_test_summary_{timestamp}.json")
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(summary, handle, indent=2)
        return path
