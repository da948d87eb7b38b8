from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from pathlib import Path

import pytest

pytest.importorskip("aiosqlite")

from trust_engine.engine.conditions import RuleSet
from trust_engine.engine.types import Condition, ConditionOperator, Rule
from trust_engine.errors import StaleRecordError
from trust_engine.lexicon import ModerationLexicon
from trust_engine.moderation import analyze_content
from trust_engine.risk import assess_risk
from trust_engine.scoring import build_profile
from trust_engine.store.sqlite_store import SqliteStore
from trust_engine.types import (
    AccountState,
    ActivityCounts,
    AlertSeverity,
    AlertType,
    Badge,
    BadgeStatus,
    BadgeType,
    ContentRecord,
    ContentType,
    EntityKind,
    EntityStatus,
    Metric,
    MetricType,
    OrderOutcome,
    QueueEntry,
    QueuePriority,
    QueueType,
    RatingEvent,
    RiskSignals,
    SocialCounts,
    SubjectSnapshot,
    TrustAlert,
    ViolationSeverity,
)


def _snapshot(now: datetime) -> SubjectSnapshot:
    return SubjectSnapshot(
        subject_id="seller-1",
        metrics=(
            Metric("seller-1", MetricType.COMPLETION_RATE, 90, 100, 2.0),
            Metric("seller-1", MetricType.DISPUTE_RATE, 2, 100, -1.0, source="orders"),
        ),
        badges=(
            Badge("seller-1", BadgeType.IDENTITY_VERIFIED, BadgeStatus.VERIFIED, now + timedelta(days=200)),
            Badge("seller-1", BadgeType.EMAIL_VERIFIED, BadgeStatus.VERIFIED),
        ),
        ratings=(RatingEvent(4.0, now - timedelta(days=3)), RatingEvent(5.0, now)),
        orders=(OrderOutcome("delivered", now, now + timedelta(days=1)), OrderOutcome("cancelled")),
        activity=ActivityCounts(logins=5, orders=2, messages=7),
        social=SocialCounts(verified_endorsements=1, connections=3, posts=4),
        profile_fields={"first_name": "Ada", "email": "ada@example.org"},
        account_state=AccountState.ACTIVE,
    )


def test_snapshot_round_trip(tmp_path: Path, now: datetime) -> None:
    async def _execute() -> None:
        store = SqliteStore(tmp_path / "trust.db")
        await store.connect()
        try:
            snapshot = _snapshot(now)
            await store.put_snapshot(snapshot)
            loaded = await store.get_snapshot("seller-1")
            assert loaded is not None
            assert sorted(loaded.metrics, key=lambda m: m.metric_type.value) == sorted(
                snapshot.metrics, key=lambda m: m.metric_type.value
            )
            assert set(loaded.badges) == set(snapshot.badges)
            assert sorted(loaded.ratings, key=lambda r: r.created_at) == sorted(
                snapshot.ratings, key=lambda r: r.created_at
            )
            assert loaded.activity == snapshot.activity
            assert loaded.social == snapshot.social
            assert dict(loaded.profile_fields) == dict(snapshot.profile_fields)
            assert await store.get_snapshot("ghost") is None

            signals = await store.get_risk_signals("seller-1")
            assert signals == RiskSignals(subject_id="seller-1")
            assert await store.get_risk_signals("ghost") is None
        finally:
            await store.close()

    asyncio.run(_execute())


def test_profile_versioning(tmp_path: Path, now: datetime) -> None:
    async def _execute() -> None:
        store = SqliteStore(tmp_path / "trust.db")
        await store.connect()
        try:
            profile = build_profile(_snapshot(now), now)
            stored = await store.upsert_profile(profile, expected_version=0)
            assert stored.version == 1
            assert stored.trust_score == profile.trust_score
            assert stored.updated_at == now

            with pytest.raises(StaleRecordError) as excinfo:
                await store.upsert_profile(profile, expected_version=0)
            assert excinfo.value.actual == 1

            stored.trust_score = 12
            again = await store.upsert_profile(stored, expected_version=1)
            assert again.version == 2
            assert again.trust_score == 12
            with pytest.raises(StaleRecordError):
                await store.upsert_profile(stored, expected_version=1)
        finally:
            await store.close()

    asyncio.run(_execute())


def test_assessment_round_trip(tmp_path: Path, now: datetime) -> None:
    async def _execute() -> None:
        store = SqliteStore(tmp_path / "trust.db")
        await store.connect()
        try:
            signals = RiskSignals("seller-1", duplicate_accounts=1, total_orders=20, disputed_orders=4)
            await store.put_risk_signals(signals)
            assert await store.get_risk_signals("seller-1") == signals
            assessment = assess_risk(signals, now)
            stored = await store.upsert_assessment(assessment, expected_version=0)
            assert stored.version == 1
            assert stored.factors == assessment.factors
            assert stored.recommendations == assessment.recommendations
            assert stored.risk_level is assessment.risk_level
        finally:
            await store.close()

    asyncio.run(_execute())


def test_rules_round_trip(tmp_path: Path) -> None:
    async def _execute() -> None:
        store = SqliteStore(tmp_path / "trust.db")
        await store.connect()
        try:
            rule = Rule(
                id="r1",
                name="Blocked sellers",
                conditions=(
                    Condition(field="author_id", operator=ConditionOperator.IN_LIST, value=["a", "b"]),
                    Condition(field="title", operator=ConditionOperator.REGEX_MATCH, value="^SALE", case_sensitive=True),
                ),
                priority=5,
                severity=ViolationSeverity.HIGH,
                content_types=frozenset({ContentType.PRODUCT_LISTING, ContentType.COMMENT}),
            )
            await store.put_rule(rule)
            await store.put_rule(Rule(id="r2", name="Off", conditions=rule.conditions, priority=50, active=False))
            await store.put_rule(Rule(id="r3", name="Top", conditions=rule.conditions[:1], priority=9))
            rules = await store.list_rules()
            assert [item.id for item in rules] == ["r3", "r1"]
            assert rules[1] == rule
        finally:
            await store.close()

    asyncio.run(_execute())


def test_moderation_result_queue_status_and_alerts(tmp_path: Path, now: datetime) -> None:
    async def _execute() -> None:
        store = SqliteStore(tmp_path / "trust.db")
        await store.connect()
        try:
            rule = Rule(
                id="kw",
                name="Keyword",
                conditions=(Condition(field="content", operator=ConditionOperator.CONTAINS, value="replica"),),
            )
            record = ContentRecord(id="c1", author_id="u1", content_type=ContentType.COMMENT, content="replica bag scam")
            result = analyze_content(record, lexicon=ModerationLexicon.default(), ruleset=RuleSet([rule]))
            await store.save_moderation_result(result)
            assert await store.get_moderation_result("c1") == result

            entry = QueueEntry(
                content_id="c1",
                priority=QueuePriority.CRITICAL,
                due_at=now + timedelta(hours=1),
                queue_type=QueueType.AUTO_MODERATION,
                reason="Auto-moderation queue",
                created_at=now,
            )
            await store.enqueue(entry)
            assert await store.get_queue_entry("c1") == entry
            assert await store.list_queue() == [entry]
            assert await store.dequeue("c1") is True
            assert await store.dequeue("c1") is False

            status = await store.set_status(
                EntityStatus(EntityKind.VERIFICATION, "v1", "approved", expires_at=now, updated_at=now),
                expected_version=0,
            )
            assert status.version == 1
            assert status.expires_at == now
            with pytest.raises(StaleRecordError):
                await store.set_status(EntityStatus(EntityKind.VERIFICATION, "v1", "expired"), expected_version=0)

            await store.record_alert(
                TrustAlert("u1", AlertType.REPUTATION_DROP, AlertSeverity.HIGH, "dropped", {"drop": 25})
            )
            assert await store.count_alerts("u1") == 1
        finally:
            await store.close()

    asyncio.run(_execute())


def test_schema_version_is_recorded(tmp_path: Path) -> None:
    async def _execute() -> int:
        store = SqliteStore(tmp_path / "trust.db")
        await store.connect()
        try:
            db = await store._require_db()
            return await store._get_user_version(db)
        finally:
            await store.close()

    assert asyncio.run(_execute()) == SqliteStore.SCHEMA_VERSION
