from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from trust_engine.config.tables import DEFAULT_DISPUTE_DUE_DAYS, DEFAULT_QUEUE_DUE_HOURS
from trust_engine.priority import (
    dispute_due_at,
    dispute_priority,
    flag_priority,
    priority_for,
    queue_due_at,
    queue_priority,
    report_priority,
)
from trust_engine.types import (
    Dispute,
    DisputeCategory,
    DisputePriority,
    DisputeType,
    FlagSeverity,
    ModerationResult,
    QueuePriority,
    ReportCategory,
    ReportPriority,
    ReportType,
)


def _result(score: float) -> ModerationResult:
    return ModerationResult(
        content_id="c1",
        overall_score=score,
        categories={},
        recommendations=(),
        violations=(),
        requires_human_review=True,
    )


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (95.0, QueuePriority.CRITICAL),
        (80.0, QueuePriority.CRITICAL),
        (79.9, QueuePriority.HIGH),
        (60.0, QueuePriority.HIGH),
        (40.0, QueuePriority.NORMAL),
        (39.9, QueuePriority.LOW),
    ],
)
def test_queue_priority_bands(score: float, expected: QueuePriority) -> None:
    assert queue_priority(score) is expected


def test_queue_due_dates_are_hours(now: datetime) -> None:
    assert queue_due_at(QueuePriority.CRITICAL, now) == now + timedelta(hours=1)
    assert queue_due_at(QueuePriority.LOW, now) == now + timedelta(hours=72)


@pytest.mark.parametrize(
    ("dispute_type", "category", "amount", "expected"),
    [
        (DisputeType.ORDER_ISSUE, DisputeCategory.SAFETY, 2000, DisputePriority.HIGH),
        (DisputeType.USER_CONDUCT, DisputeCategory.SAFETY, None, DisputePriority.CRITICAL),
        (DisputeType.USER_CONDUCT, DisputeCategory.SERVICE, 1000, DisputePriority.URGENT),
        (DisputeType.SERVICE_COMPLAINT, DisputeCategory.SERVICE, None, DisputePriority.MEDIUM),
        (DisputeType.DELIVERY_PROBLEM, DisputeCategory.COMMERCIAL, 10, DisputePriority.MEDIUM),
        (DisputeType.REFUND_REQUEST, DisputeCategory.COMMERCIAL, None, DisputePriority.LOW),
    ],
)
def test_dispute_priority_precedence(
    dispute_type: DisputeType,
    category: DisputeCategory,
    amount: float | None,
    expected: DisputePriority,
) -> None:
    assert dispute_priority(dispute_type, category, amount) is expected


def test_dispute_due_dates_are_days(now: datetime) -> None:
    assert dispute_due_at(DisputePriority.CRITICAL, now) == now + timedelta(days=1)
    assert dispute_due_at(DisputePriority.LOW, now) == now + timedelta(days=30)


def test_sla_tables_stay_separate() -> None:
    assert set(DEFAULT_QUEUE_DUE_HOURS) == set(QueuePriority)
    assert set(DEFAULT_DISPUTE_DUE_DAYS) == set(DisputePriority)
    assert DEFAULT_QUEUE_DUE_HOURS[QueuePriority.CRITICAL] == 1
    assert DEFAULT_DISPUTE_DUE_DAYS[DisputePriority.CRITICAL] == 1


def test_priority_for_dispatches_on_item_type(now: datetime) -> None:
    moderated = priority_for(_result(65.0), now=now)
    assert moderated.priority is QueuePriority.HIGH
    assert moderated.due_at == now + timedelta(hours=12)

    dispute = Dispute(id="d1", dispute_type=DisputeType.ORDER_ISSUE, category=DisputeCategory.SAFETY, amount=5000)
    disputed = priority_for(dispute, now=now)
    assert disputed.priority is DisputePriority.HIGH
    assert disputed.due_at == now + timedelta(days=7)


def test_priority_for_uses_injected_tables(now: datetime) -> None:
    hours = dict(DEFAULT_QUEUE_DUE_HOURS)
    hours[QueuePriority.CRITICAL] = 2
    assignment = priority_for(_result(90.0), now=now, queue_hours=hours)
    assert assignment.due_at == now + timedelta(hours=2)


def test_priority_for_rejects_unknown_items(now: datetime) -> None:
    with pytest.raises(TypeError):
        priority_for("not an item", now=now)  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("severity", "expected"),
    [
        (FlagSeverity.CRITICAL, QueuePriority.CRITICAL),
        (FlagSeverity.HIGH, QueuePriority.HIGH),
        (FlagSeverity.MEDIUM, QueuePriority.NORMAL),
        (FlagSeverity.LOW, QueuePriority.LOW),
    ],
)
def test_flag_priority(severity: FlagSeverity, expected: QueuePriority) -> None:
    assert flag_priority(severity) is expected


@pytest.mark.parametrize(
    ("report_type", "category", "expected"),
    [
        (ReportType.SPAM, ReportCategory.URGENT, ReportPriority.CRITICAL),
        (ReportType.SAFETY_CONCERN, ReportCategory.LOW_PRIORITY, ReportPriority.CRITICAL),
        (ReportType.FRAUD, ReportCategory.LOW_PRIORITY, ReportPriority.HIGH),
        (ReportType.FAKE_PROFILE, ReportCategory.LOW_PRIORITY, ReportPriority.MEDIUM),
        (ReportType.SPAM, ReportCategory.LOW_PRIORITY, ReportPriority.LOW),
    ],
)
def test_report_priority(report_type: ReportType, category: ReportCategory, expected: ReportPriority) -> None:
    assert report_priority(report_type, category) is expected
