"""Analytics aggregation tests."""

from datetime import datetime, timedelta, timezone

import pytest

from triggerflow.analytics import (
    AnalyticsAggregator,
    classify_error,
    percentage,
    period_days,
    summarize,
)
from triggerflow.contracts import ExecutionRecord
from triggerflow.persistence import InMemoryWorkflowRepository

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def _record(workflow_id="wf1", trigger_type="lead_created", status="completed", error=None, days_ago=0):
    started = NOW - timedelta(days=days_ago)
    record = ExecutionRecord(
        workflow_id=workflow_id, trigger_type=trigger_type, started_at=started
    )
    if status != "running":
        record.seal(status == "completed", [], completed_at=started, error_message=error)
    return record


def test_period_days():
    assert period_days("7d") == 7
    assert period_days("30d") == 30
    assert period_days("90d") == 90
    assert period_days("forever") == 90


def test_percentage_rounds_and_handles_empty():
    assert percentage(0, 0) == 0
    assert percentage(1, 3) == 33.33
    assert percentage(2, 3) == 66.67
    assert percentage(3, 3) == 100


@pytest.mark.parametrize(
    "message, category",
    [
        ("Webhook timeout calling https://x", "Timeout"),
        ("Webhook connection error calling https://x", "Connection"),
        ("Unauthorized: auth token expired", "Authentication"),
        ("Provider rate limit exceeded", "Rate Limit"),
        ("leads record L9 not found", "Not Found"),
        ("Condition not met", "General"),
        # earlier categories win when several match
        ("connection timeout", "Timeout"),
        ("Auth service not found", "Authentication"),
    ],
)
def test_classify_error(message, category):
    assert classify_error(message) == category


def test_summarize_empty_window():
    report = summarize([], "30d", NOW)
    assert report.overview.total == 0
    assert report.overview.success_rate == 0
    assert report.error_analysis.error_rate == 0
    assert report.daily_trends == {}


def test_summarize_breakdowns():
    records = [
        _record(),
        _record(days_ago=1),
        _record(status="failed", error="Webhook timeout calling x", days_ago=1),
        _record(workflow_id="wf2", trigger_type="payment_received", status="failed", error="No student_id in trigger data", days_ago=2),
        _record(workflow_id="wf2", trigger_type="payment_received", status="running"),
        _record(workflow_id="wf2", trigger_type="payment_received", status="failed", error="Webhook timeout again", days_ago=2),
    ]

    report = summarize(records, "7d", NOW - timedelta(days=7))

    assert report.overview.total == 6
    assert report.overview.successful == 2
    assert report.overview.failed == 3
    assert report.overview.success_rate == 33.33

    assert report.by_workflow["wf1"].total == 3
    assert report.by_workflow["wf2"].failed == 2
    assert report.by_trigger["payment_received"].total == 3
    assert report.by_status["running"].total == 1
    assert report.by_status["failed"].failed == 3

    assert list(report.daily_trends) == ["2024-06-28", "2024-06-29", "2024-06-30"]
    assert report.daily_trends["2024-06-29"].total == 2
    assert report.daily_trends["2024-06-29"].failed == 1

    errors = report.error_analysis
    assert errors.total_errors == 3
    assert errors.error_rate == 50
    assert [(p.pattern, p.count) for p in errors.common_patterns] == [
        ("Timeout", 2),
        ("General", 1),
    ]


def test_daily_trend_uses_utc_date():
    offset = timezone(timedelta(hours=5))
    record = ExecutionRecord(
        workflow_id="wf", started_at=datetime(2024, 6, 30, 2, 0, tzinfo=offset)
    )
    report = summarize([record], "30d", NOW - timedelta(days=30))
    assert list(report.daily_trends) == ["2024-06-29"]


@pytest.mark.asyncio
async def test_aggregator_respects_window_and_filters():
    repo = InMemoryWorkflowRepository()
    for record in (
        _record(days_ago=1),
        _record(days_ago=10),
        _record(days_ago=45),
        _record(workflow_id="wf2", trigger_type="payment_received", days_ago=1),
    ):
        await repo.create_execution(record)
    aggregator = AnalyticsAggregator(repo, clock=lambda: NOW)

    week = await aggregator.compute("7d")
    month = await aggregator.compute("30d")
    quarter = await aggregator.compute("all")
    only_wf1 = await aggregator.compute("30d", workflow_id="wf1")
    payments = await aggregator.compute("30d", trigger_type="payment_received")

    assert week.overview.total == 2
    assert month.overview.total == 3
    assert quarter.overview.total == 4
    assert quarter.since == NOW - timedelta(days=90)
    assert only_wf1.overview.total == 2
    assert payments.overview.total == 1
    assert month.overview.success_rate == 100
