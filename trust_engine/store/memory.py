from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional

from ..engine.types import Rule
from ..errors import StaleRecordError
from ..types import (
    EntityKind,
    EntityStatus,
    ModerationResult,
    QueueEntry,
    RiskAssessment,
    RiskSignals,
    SubjectSnapshot,
    TrustAlert,
    TrustProfile,
)

logger = logging.getLogger(__name__)


class MemoryStore:
    """In-process repository and writer; every method completes without awaiting."""

    def __init__(
        self,
        *,
        snapshots: Iterable[SubjectSnapshot] = (),
        rules: Iterable[Rule] = (),
    ) -> None:
        self._snapshots: dict[str, SubjectSnapshot] = {snap.subject_id: snap for snap in snapshots}
        self._signals: dict[str, RiskSignals] = {}
        self._profiles: dict[str, TrustProfile] = {}
        self._assessments: dict[str, RiskAssessment] = {}
        self._rules: dict[str, Rule] = {rule.id: rule for rule in rules}
        self._results: dict[str, ModerationResult] = {}
        self._queue: dict[str, QueueEntry] = {}
        self._statuses: dict[tuple[EntityKind, str], EntityStatus] = {}
        self.alerts: list[TrustAlert] = []

    # seeding -----------------------------------------------------------------

    def put_snapshot(self, snapshot: SubjectSnapshot) -> None:
        self._snapshots[snapshot.subject_id] = snapshot

    def put_risk_signals(self, signals: RiskSignals) -> None:
        self._signals[signals.subject_id] = signals

    def put_rule(self, rule: Rule) -> None:
        self._rules[rule.id] = rule

    def put_status(self, status: EntityStatus) -> None:
        self._statuses[(status.kind, status.entity_id)] = status

    # repository ----------------------------------------------------------------

    async def get_snapshot(self, subject_id: str) -> Optional[SubjectSnapshot]:
        return self._snapshots.get(subject_id)

    async def get_risk_signals(self, subject_id: str) -> Optional[RiskSignals]:
        signals = self._signals.get(subject_id)
        if signals is None and subject_id in self._snapshots:
            return RiskSignals(subject_id=subject_id)
        return signals

    async def get_profile(self, subject_id: str) -> Optional[TrustProfile]:
        return self._profiles.get(subject_id)

    async def get_assessment(self, subject_id: str) -> Optional[RiskAssessment]:
        return self._assessments.get(subject_id)

    async def list_rules(self) -> list[Rule]:
        active = [rule for rule in self._rules.values() if rule.active]
        return sorted(active, key=lambda rule: rule.priority, reverse=True)

    async def get_queue_entry(self, content_id: str) -> Optional[QueueEntry]:
        return self._queue.get(content_id)

    async def get_status(self, kind: EntityKind, entity_id: str) -> Optional[EntityStatus]:
        return self._statuses.get((kind, entity_id))

    async def get_moderation_result(self, content_id: str) -> Optional[ModerationResult]:
        return self._results.get(content_id)

    async def list_queue(self) -> list[QueueEntry]:
        return sorted(self._queue.values(), key=lambda entry: entry.due_at)

    # writer ----------------------------------------------------------------------

    def _check_version(self, kind: str, key: str, current: int, expected: int) -> None:
        if current != expected:
            raise StaleRecordError(kind, key, expected, current)

    async def upsert_profile(self, profile: TrustProfile, *, expected_version: int) -> TrustProfile:
        existing = self._profiles.get(profile.subject_id)
        self._check_version("profile", profile.subject_id, existing.version if existing else 0, expected_version)
        stored = replace(profile, version=expected_version + 1)
        self._profiles[profile.subject_id] = stored
        return stored

    async def upsert_assessment(self, assessment: RiskAssessment, *, expected_version: int) -> RiskAssessment:
        existing = self._assessments.get(assessment.subject_id)
        self._check_version(
            "assessment", assessment.subject_id, existing.version if existing else 0, expected_version
        )
        stored = replace(assessment, version=expected_version + 1)
        self._assessments[assessment.subject_id] = stored
        return stored

    async def save_moderation_result(self, result: ModerationResult) -> None:
        self._results[result.content_id] = result

    async def enqueue(self, entry: QueueEntry) -> None:
        if entry.content_id in self._queue:
            logger.debug("queue entry for %s replaced", entry.content_id)
        self._queue[entry.content_id] = entry

    async def dequeue(self, content_id: str) -> bool:
        return self._queue.pop(content_id, None) is not None

    async def set_status(self, status: EntityStatus, *, expected_version: int) -> EntityStatus:
        key = (status.kind, status.entity_id)
        existing = self._statuses.get(key)
        self._check_version(
            f"{status.kind.value} status", status.entity_id, existing.version if existing else 0, expected_version
        )
        stored = replace(status, version=expected_version + 1)
        self._statuses[key] = stored
        return stored

    async def record_alert(self, alert: TrustAlert) -> None:
        self.alerts.append(alert)


__all__ = ["MemoryStore"]
