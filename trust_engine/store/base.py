from __future__ import annotations

from typing import Optional, Protocol

from ..engine.types import Rule
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


class TrustRepository(Protocol):
    """Read-only snapshot supplier keyed by subject or content id."""

    async def get_snapshot(self, subject_id: str) -> Optional[SubjectSnapshot]:
        ...

    async def get_risk_signals(self, subject_id: str) -> Optional[RiskSignals]:
        ...

    async def get_profile(self, subject_id: str) -> Optional[TrustProfile]:
        ...

    async def get_assessment(self, subject_id: str) -> Optional[RiskAssessment]:
        ...

    async def list_rules(self) -> list[Rule]:
        ...

    async def get_queue_entry(self, content_id: str) -> Optional[QueueEntry]:
        ...

    async def get_status(self, kind: EntityKind, entity_id: str) -> Optional[EntityStatus]:
        ...


class TrustWriter(Protocol):
    """Upsert side. Versioned writes raise StaleRecordError on a version mismatch."""

    async def upsert_profile(self, profile: TrustProfile, *, expected_version: int) -> TrustProfile:
        ...

    async def upsert_assessment(self, assessment: RiskAssessment, *, expected_version: int) -> RiskAssessment:
        ...

    async def save_moderation_result(self, result: ModerationResult) -> None:
        ...

    async def enqueue(self, entry: QueueEntry) -> None:
        ...

    async def dequeue(self, content_id: str) -> bool:
        ...

    async def set_status(self, status: EntityStatus, *, expected_version: int) -> EntityStatus:
        ...

    async def record_alert(self, alert: TrustAlert) -> None:
        ...


__all__ = ["TrustRepository", "TrustWriter"]
