"""Queue / dispute priority and SLA due dates.

Each lookup is first-match-wins over a fixed order. Queue SLAs are in
hours and dispute SLAs in days; the two tables are never merged.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Mapping, Optional, Union

from .config.tables import DEFAULT_DISPUTE_DUE_DAYS, DEFAULT_QUEUE_DUE_HOURS
from .types import (
    Dispute,
    DisputeCategory,
    DisputePriority,
    DisputeType,
    FlagSeverity,
    ModerationResult,
    PriorityAssignment,
    QueuePriority,
    ReportCategory,
    ReportPriority,
    ReportType,
)

HIGH_VALUE_DISPUTE_AMOUNT = 1000

_FLAG_PRIORITY: dict[FlagSeverity, QueuePriority] = {
    FlagSeverity.CRITICAL: QueuePriority.CRITICAL,
    FlagSeverity.HIGH: QueuePriority.HIGH,
    FlagSeverity.MEDIUM: QueuePriority.NORMAL,
    FlagSeverity.LOW: QueuePriority.LOW,
}


def queue_priority(overall_score: float) -> QueuePriority:
    if overall_score >= 80:
        return QueuePriority.CRITICAL
    if overall_score >= 60:
        return QueuePriority.HIGH
    if overall_score >= 40:
        return QueuePriority.NORMAL
    return QueuePriority.LOW


def flag_priority(severity: FlagSeverity) -> QueuePriority:
    return _FLAG_PRIORITY[severity]


def queue_due_at(
    priority: QueuePriority,
    now: datetime,
    table: Mapping[QueuePriority, int] = DEFAULT_QUEUE_DUE_HOURS,
) -> datetime:
    return now + timedelta(hours=table[priority])


def dispute_priority(
    dispute_type: DisputeType,
    category: DisputeCategory,
    amount: Optional[float] = None,
) -> DisputePriority:
    if amount is not None and amount > HIGH_VALUE_DISPUTE_AMOUNT:
        return DisputePriority.HIGH
    if category is DisputeCategory.SAFETY:
        return DisputePriority.CRITICAL
    if dispute_type is DisputeType.USER_CONDUCT:
        return DisputePriority.URGENT
    if dispute_type in (DisputeType.SERVICE_COMPLAINT, DisputeType.DELIVERY_PROBLEM):
        return DisputePriority.MEDIUM
    return DisputePriority.LOW


def dispute_due_at(
    priority: DisputePriority,
    now: datetime,
    table: Mapping[DisputePriority, int] = DEFAULT_DISPUTE_DUE_DAYS,
) -> datetime:
    return now + timedelta(days=table[priority])


def report_priority(report_type: ReportType, category: ReportCategory) -> ReportPriority:
    if category is ReportCategory.URGENT or report_type is ReportType.SAFETY_CONCERN:
        return ReportPriority.CRITICAL
    if report_type in (ReportType.FRAUD, ReportType.HARASSMENT):
        return ReportPriority.HIGH
    if report_type in (ReportType.FAKE_PROFILE, ReportType.INAPPROPRIATE_CONTENT):
        return ReportPriority.MEDIUM
    return ReportPriority.LOW


def priority_for(
    item: Union[ModerationResult, Dispute],
    *,
    now: datetime,
    queue_hours: Mapping[QueuePriority, int] = DEFAULT_QUEUE_DUE_HOURS,
    dispute_days: Mapping[DisputePriority, int] = DEFAULT_DISPUTE_DUE_DAYS,
) -> PriorityAssignment:
    if isinstance(item, ModerationResult):
        priority = queue_priority(item.overall_score)
        return PriorityAssignment(priority=priority, due_at=queue_due_at(priority, now, queue_hours))
    if isinstance(item, Dispute):
        disputed = dispute_priority(item.dispute_type, item.category, item.amount)
        return PriorityAssignment(priority=disputed, due_at=dispute_due_at(disputed, now, dispute_days))
    raise TypeError(f"no priority rule for {type(item).__name__}")


__all__ = [
    "queue_priority",
    "flag_priority",
    "queue_due_at",
    "dispute_priority",
    "dispute_due_at",
    "report_priority",
    "priority_for",
]
