from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import pytest

from trust_engine.engine.types import Condition, ConditionOperator, Rule
from trust_engine.errors import StaleRecordError
from trust_engine.scoring import default_profile
from trust_engine.store.memory import MemoryStore
from trust_engine.types import (
    EntityKind,
    EntityStatus,
    QueueEntry,
    QueuePriority,
    QueueType,
    RiskSignals,
    SubjectSnapshot,
)


def _rule(rule_id: str, priority: int, active: bool = True) -> Rule:
    return Rule(
        id=rule_id,
        name=rule_id,
        conditions=(Condition(field="content", operator=ConditionOperator.CONTAINS, value="x"),),
        priority=priority,
        active=active,
    )


def test_profile_upsert_checks_versions(now: datetime) -> None:
    async def _execute() -> None:
        store = MemoryStore()
        first = await store.upsert_profile(default_profile("u1", now), expected_version=0)
        assert first.version == 1

        with pytest.raises(StaleRecordError) as excinfo:
            await store.upsert_profile(default_profile("u1", now), expected_version=0)
        assert excinfo.value.actual == 1

        second = await store.upsert_profile(first, expected_version=1)
        assert second.version == 2
        assert (await store.get_profile("u1")) == second

    asyncio.run(_execute())


def test_risk_signals_default_for_known_subjects() -> None:
    async def _execute() -> None:
        store = MemoryStore(snapshots=[SubjectSnapshot(subject_id="u1")])
        assert await store.get_risk_signals("u1") == RiskSignals(subject_id="u1")
        assert await store.get_risk_signals("ghost") is None
        store.put_risk_signals(RiskSignals(subject_id="u1", policy_violations=2))
        signals = await store.get_risk_signals("u1")
        assert signals is not None and signals.policy_violations == 2

    asyncio.run(_execute())


def test_rules_are_active_and_priority_ordered() -> None:
    async def _execute() -> None:
        store = MemoryStore(rules=[_rule("low", 1), _rule("off", 99, active=False)])
        store.put_rule(_rule("high", 10))
        assert [rule.id for rule in await store.list_rules()] == ["high", "low"]

    asyncio.run(_execute())


def test_queue_and_status(now: datetime) -> None:
    async def _execute() -> None:
        store = MemoryStore()
        entry = QueueEntry(
            content_id="c1",
            priority=QueuePriority.HIGH,
            due_at=now + timedelta(hours=12),
            queue_type=QueueType.AUTO_MODERATION,
            reason="Auto-moderation queue",
            created_at=now,
        )
        await store.enqueue(entry)
        assert await store.get_queue_entry("c1") == entry
        assert await store.dequeue("c1") is True
        assert await store.dequeue("c1") is False

        status = EntityStatus(kind=EntityKind.DISPUTE, entity_id="d1", status="submitted")
        stored = await store.set_status(status, expected_version=0)
        assert stored.version == 1
        with pytest.raises(StaleRecordError):
            await store.set_status(status, expected_version=0)
        assert (await store.get_status(EntityKind.DISPUTE, "d1")) == stored
        assert await store.get_status(EntityKind.MODERATION, "d1") is None

    asyncio.run(_execute())
