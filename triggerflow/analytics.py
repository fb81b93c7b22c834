"""Success rates, breakdowns and trends derived from execution records."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .constants import EXECUTION_COMPLETED, EXECUTION_FAILED
from .contracts import ExecutionRecord, utcnow
from .persistence import WorkflowRepository

PERIOD_DAYS = {"7d": 7, "30d": 30}
DEFAULT_PERIOD_DAYS = 90

# Checked in order; the first substring found names the category.
ERROR_CATEGORIES = (
    ("timeout", "Timeout"),
    ("connection", "Connection"),
    ("auth", "Authentication"),
    ("rate limit", "Rate Limit"),
    ("not found", "Not Found"),
)
GENERAL_ERROR = "General"


class Breakdown(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0

    def add(self, record: ExecutionRecord) -> None:
        self.total += 1
        if record.status == EXECUTION_COMPLETED:
            self.successful += 1
        elif record.status == EXECUTION_FAILED:
            self.failed += 1


class Overview(Breakdown):
    success_rate: float = 0


class DailyTrend(Breakdown):
    date: str


class ErrorPattern(BaseModel):
    pattern: str
    count: int


class ErrorAnalysis(BaseModel):
    total_errors: int = 0
    error_rate: float = 0
    common_patterns: List[ErrorPattern] = Field(default_factory=list)


class WorkflowAnalytics(BaseModel):
    period: str
    since: datetime
    overview: Overview = Field(default_factory=Overview)
    by_workflow: Dict[str, Breakdown] = Field(default_factory=dict)
    by_trigger: Dict[str, Breakdown] = Field(default_factory=dict)
    by_status: Dict[str, Breakdown] = Field(default_factory=dict)
    daily_trends: Dict[str, DailyTrend] = Field(default_factory=dict)
    error_analysis: ErrorAnalysis = Field(default_factory=ErrorAnalysis)


def period_days(period: str) -> int:
    """``7d`` and ``30d`` are recognised; anything else means 90 days."""
    return PERIOD_DAYS.get(period, DEFAULT_PERIOD_DAYS)


def percentage(part: int, total: int) -> float:
    """``part`` as a percentage of ``total`` to two places, 0 when empty."""
    if total <= 0:
        return 0
    return round(part / total * 100, 2)


def classify_error(message: str) -> str:
    lowered = message.lower()
    for needle, category in ERROR_CATEGORIES:
        if needle in lowered:
            return category
    return GENERAL_ERROR


def _utc_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date().isoformat()


def summarize(
    records: Iterable[ExecutionRecord], period: str, since: datetime
) -> WorkflowAnalytics:
    """Aggregate ``records`` that already fall inside the window."""
    analytics = WorkflowAnalytics(period=period, since=since)
    records = list(records)
    patterns: Counter[str] = Counter()
    failed_records = 0

    for record in records:
        analytics.overview.add(record)
        analytics.by_workflow.setdefault(record.workflow_id, Breakdown()).add(record)
        analytics.by_trigger.setdefault(record.trigger_type or "unknown", Breakdown()).add(record)
        analytics.by_status.setdefault(record.status, Breakdown()).add(record)
        day = _utc_date(record.started_at)
        analytics.daily_trends.setdefault(day, DailyTrend(date=day)).add(record)
        if record.status == EXECUTION_FAILED:
            failed_records += 1
            if record.error_message:
                patterns[classify_error(record.error_message)] += 1

    overview = analytics.overview
    overview.success_rate = percentage(overview.successful, overview.total)
    analytics.daily_trends = dict(sorted(analytics.daily_trends.items()))
    analytics.error_analysis = ErrorAnalysis(
        total_errors=failed_records,
        error_rate=percentage(failed_records, len(records)),
        common_patterns=[
            ErrorPattern(pattern=pattern, count=count)
            for pattern, count in patterns.most_common(5)
        ],
    )
    return analytics


class AnalyticsAggregator:
    """Computes :class:`WorkflowAnalytics` from persisted execution records."""

    def __init__(
        self,
        repository: WorkflowRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._clock = clock

    async def compute(
        self,
        period: str = "30d",
        workflow_id: Optional[str] = None,
        trigger_type: Optional[str] = None,
    ) -> WorkflowAnalytics:
        since = self._clock() - timedelta(days=period_days(period))
        records = await self._repository.executions_since(
            since, workflow_id=workflow_id, trigger_type=trigger_type
        )
        return summarize(records, period, since)
