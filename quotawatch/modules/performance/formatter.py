"""
Plain-text rendering of a `DailyReport` for operators.
"""

from __future__ import annotations

from typing import List

from quotawatch.modules.performance.models import DailyReport, ExtractionMethod, Intent

RULE_WIDTH = 80
LISTED_QUERIES = 10


def _pct(count: int, total: int) -> str:
    if total <= 0:
        return "0.0%"
    return f"{count / total * 100:.1f}%"


def _ms(value: float) -> str:
    return f"{value:.0f}ms"


def format_report(report: DailyReport) -> str:
    """
    Render a report as fixed-order text sections.

    Sections: header, overall metrics, percentiles, extraction method
    distribution, intents, slow queries and top queries (each only when
    non-empty), footer.
    """
    metrics = report.metrics
    total = metrics.total_queries
    heavy = "=" * RULE_WIDTH
    light = "-" * RULE_WIDTH

    lines: List[str] = [
        heavy,
        f"DAILY PERFORMANCE REPORT - {report.date.isoformat()}",
        heavy,
        "",
        "OVERALL METRICS",
        light,
        f"Total Queries: {total}",
        f"Average Response Time: {_ms(metrics.avg_total_time)}",
        f"  - Extraction: {_ms(metrics.avg_extraction_time)}",
        f"  - Search: {_ms(metrics.avg_search_time)}",
        f"  - Formatting: {_ms(metrics.avg_format_time)}",
        "",
        "Response Time Percentiles:",
        f"  - p50: {_ms(metrics.p50_time)}",
        f"  - p95: {_ms(metrics.p95_time)}",
        f"  - p99: {_ms(metrics.p99_time)}",
        "",
        "EXTRACTION METHOD DISTRIBUTION",
        light,
    ]

    for method in ExtractionMethod:
        count = metrics.method_count(method)
        lines.append(f"{method.label}: {count} ({_pct(count, total)})")

    lines.extend(["", "QUERIES BY INTENT", light])
    for intent in Intent:
        count = metrics.by_intent.get(intent, 0)
        if not count:
            continue
        lines.append(f"{intent.value}: {count} queries ({_pct(count, total)})")

    if report.slow_queries:
        lines.extend(
            [
                "",
                f"SLOW QUERIES (>{report.slow_threshold_ms:.0f}ms) - "
                f"{metrics.slow_query_count} total",
                light,
            ]
        )
        for index, slow in enumerate(report.slow_queries[:LISTED_QUERIES], start=1):
            lines.append(f'{index}. {_ms(slow.time_ms)} - "{slow.query}"')

    if report.top_queries:
        lines.extend(["", "TOP QUERIES", light])
        for index, top in enumerate(report.top_queries[:LISTED_QUERIES], start=1):
            lines.append(f'{index}. ({top.count}x) "{top.query}"')

    lines.extend(["", heavy])
    return "\n".join(lines)
