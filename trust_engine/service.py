"""Async facade tying the pure scorers to a repository and a writer."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar, Union

from . import priority as priority_rules
from . import scoring, states
from .config import Settings, get_settings
from .config.tables import ScoringTables
from .engine.conditions import RuleSet
from .engine.loader import load_ruleset
from .engine.types import EvaluationPolicy
from .errors import MissingSubjectError, StaleRecordError
from .lexicon import ModerationLexicon, load_lexicon
from .moderation import (
    ImageHeuristic,
    analyze_content,
    classification_event,
    decide_initial_status,
    decision_event,
)
from .risk import assess_risk as build_assessment
from .store.base import TrustRepository, TrustWriter
from .store.locks import KeyedLock
from .store.sqlite_store import SqliteStore
from .types import (
    ContentFlag,
    ContentRecord,
    Dispute,
    DisputeStatus,
    EntityKind,
    EntityStatus,
    ModerationResult,
    ModerationStatus,
    PriorityAssignment,
    QueueEntry,
    QueueType,
    ReviewerDecision,
    RiskAssessment,
    SubjectSnapshot,
    TrustProfile,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUTO_QUEUE_REASON = "Auto-moderation queue"

_INITIAL_STATUS = {
    EntityKind.MODERATION: ModerationStatus.PENDING.value,
    EntityKind.DISPUTE: DisputeStatus.SUBMITTED.value,
    EntityKind.VERIFICATION: VerificationStatus.PENDING.value,
}

# Statuses missing here are already with a reviewer; rejected content has no flag edge.
_FLAG_EVENTS = {
    ModerationStatus.PENDING.value: "flag",
    ModerationStatus.AUTO_APPROVED.value: "flag",
    ModerationStatus.APPROVED.value: "reopen",
    ModerationStatus.REJECTED.value: "flag",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrustEngine:
    """Recompute, classify and transition records against injected storage.

    Recomputation is serialised per subject and written with the version
    read at the start of the attempt; a stale write re-reads and retries.
    """

    def __init__(
        self,
        repository: TrustRepository,
        writer: TrustWriter,
        *,
        lexicon: Optional[ModerationLexicon] = None,
        ruleset: Optional[RuleSet] = None,
        tables: Optional[ScoringTables] = None,
        decay_days: float = scoring.DEFAULT_DECAY_DAYS,
        max_rating: float = scoring.DEFAULT_MAX_RATING,
        max_upsert_attempts: int = 3,
        policy: Optional[EvaluationPolicy] = None,
        image_heuristic: Optional[ImageHeuristic] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_upsert_attempts < 1:
            raise ValueError("max_upsert_attempts must be >= 1")
        self.repository = repository
        self.writer = writer
        self.lexicon = lexicon or ModerationLexicon.default()
        self.ruleset = ruleset
        self.tables = tables or ScoringTables()
        self.decay_days = decay_days
        self.max_rating = max_rating
        self.max_upsert_attempts = max_upsert_attempts
        self.policy = policy or EvaluationPolicy()
        self.image_heuristic = image_heuristic
        self._clock = clock
        self._locks = KeyedLock()

    @classmethod
    def from_settings(
        cls,
        repository: Optional[TrustRepository] = None,
        writer: Optional[TrustWriter] = None,
        settings: Optional[Settings] = None,
        **overrides,
    ) -> "TrustEngine":
        """Build an engine from settings, backed by the SQLite file at ``store_db_path`` unless storage is given."""
        cfg = settings or get_settings()
        if repository is None:
            store = SqliteStore.from_settings(cfg)
            repository = store
            writer = writer or store
        if writer is None:
            raise ValueError("writer is required when a repository is given")
        ruleset: Optional[RuleSet] = None
        if cfg.rules_path.exists():
            ruleset = load_ruleset(cfg.rules_path, mode=cfg.rules_mode)  # type: ignore[arg-type]
        else:
            logger.info("rules file %s not found; rules are read from the repository", cfg.rules_path)
        kwargs = dict(
            lexicon=load_lexicon(cfg.lexicon_path),
            ruleset=ruleset,
            tables=cfg.load_tables(),
            decay_days=cfg.reputation_decay_days,
            max_rating=cfg.max_rating,
            max_upsert_attempts=cfg.max_upsert_attempts,
            policy=EvaluationPolicy.from_mode(cfg.rules_mode),
        )
        kwargs.update(overrides)
        return cls(repository, writer, **kwargs)

    # trust -------------------------------------------------------------------

    async def compute_trust_score(self, subject_id: str) -> int:
        """Score ``subject_id`` from its snapshot, creating its default profile on first request."""
        snapshot = await self._require_snapshot(subject_id)
        await self.ensure_profile(subject_id)
        return scoring.compute_trust_score(snapshot, self._clock(), self.tables.badge_bonus)

    async def refresh_profile(self, subject_id: str) -> TrustProfile:
        """Recompute and persist the profile, recording any alerts the change raises."""

        async def attempt() -> TrustProfile:
            snapshot = await self._require_snapshot(subject_id)
            previous = await self.repository.get_profile(subject_id)
            expected = previous.version if previous else 0
            now = self._clock()
            profile = scoring.build_profile(
                snapshot,
                now,
                badge_table=self.tables.badge_bonus,
                decay_days=self.decay_days,
                max_rating=self.max_rating,
                version=expected,
            )
            stored = await self.writer.upsert_profile(profile, expected_version=expected)
            for alert in scoring.detect_trust_alerts(previous, stored, snapshot.badges, now):
                logger.info("trust alert %s for %s: %s", alert.alert_type.value, subject_id, alert.message)
                await self.writer.record_alert(alert)
            return stored

        async with self._locks.hold(f"subject:{subject_id}"):
            return await self._with_retries("profile", subject_id, attempt)

    async def ensure_profile(self, subject_id: str) -> TrustProfile:
        existing = await self.repository.get_profile(subject_id)
        if existing is not None:
            return existing
        async with self._locks.hold(f"subject:{subject_id}"):
            existing = await self.repository.get_profile(subject_id)
            if existing is not None:
                return existing
            try:
                return await self.writer.upsert_profile(
                    scoring.default_profile(subject_id, self._clock()), expected_version=0
                )
            except StaleRecordError:
                stored = await self.repository.get_profile(subject_id)
                if stored is None:
                    raise
                return stored

    # risk ----------------------------------------------------------------------

    async def assess_risk(self, subject_id: str) -> RiskAssessment:
        async def attempt() -> RiskAssessment:
            signals = await self.repository.get_risk_signals(subject_id)
            if signals is None:
                raise MissingSubjectError(subject_id)
            previous = await self.repository.get_assessment(subject_id)
            expected = previous.version if previous else 0
            assessment = build_assessment(signals, self._clock(), version=expected)
            return await self.writer.upsert_assessment(assessment, expected_version=expected)

        async with self._locks.hold(f"subject:{subject_id}"):
            return await self._with_retries("assessment", subject_id, attempt)

    # moderation ----------------------------------------------------------------

    async def classify_content(self, record: ContentRecord) -> ModerationResult:
        """Analyse ``record``, persist the result, move its status and queue it if needed."""

        ruleset = self.ruleset
        if ruleset is None:
            ruleset = RuleSet(await self.repository.list_rules())
        result = analyze_content(
            record,
            lexicon=self.lexicon,
            ruleset=ruleset,
            policy=self.policy,
            image_heuristic=self.image_heuristic,
        )
        await self.writer.save_moderation_result(result)

        event = classification_event(decide_initial_status(result))

        def while_pending(status: str) -> Optional[str]:
            if status != ModerationStatus.PENDING.value:
                logger.info("content %s already %s; status left unchanged", record.id, status)
                return None
            return event

        await self._transition_with(EntityKind.MODERATION, record.id, while_pending)

        if result.requires_human_review:
            assignment = self.priority_for(result)
            await self.writer.enqueue(
                QueueEntry(
                    content_id=record.id,
                    priority=assignment.priority,  # type: ignore[arg-type]
                    due_at=assignment.due_at,
                    queue_type=QueueType.AUTO_MODERATION,
                    reason=AUTO_QUEUE_REASON,
                    created_at=self._clock(),
                )
            )
        logger.debug(
            "classified %s score=%.1f review=%s", record.id, result.overall_score, result.requires_human_review
        )
        return result

    async def record_decision(
        self,
        content_id: str,
        decision: Union[ReviewerDecision, str],
        reviewer_id: str,
    ) -> EntityStatus:
        status = await self.transition(EntityKind.MODERATION, content_id, decision_event(ReviewerDecision(decision)))
        await self.writer.dequeue(content_id)
        logger.info("content %s reviewed by %s: %s", content_id, reviewer_id, status.status)
        return status

    async def flag_content(self, flag: ContentFlag) -> QueueEntry:
        """Queue a user report; approved content is reopened, rejected content refuses the flag."""

        await self._transition_with(EntityKind.MODERATION, flag.content_id, _FLAG_EVENTS.get)
        now = self._clock()
        queue_priority = priority_rules.flag_priority(flag.severity)
        entry = QueueEntry(
            content_id=flag.content_id,
            priority=queue_priority,
            due_at=priority_rules.queue_due_at(queue_priority, now, self.tables.queue_due_hours),
            queue_type=QueueType.USER_FLAGGED,
            reason=f"User reported: {flag.reason}",
            created_at=now,
        )
        await self.writer.enqueue(entry)
        logger.info("content flagged: %s by %s", flag.content_id, flag.reporter_id)
        return entry

    # priorities / lifecycles -----------------------------------------------------

    def priority_for(self, item: Union[ModerationResult, Dispute]) -> PriorityAssignment:
        return priority_rules.priority_for(
            item,
            now=self._clock(),
            queue_hours=self.tables.queue_due_hours,
            dispute_days=self.tables.dispute_due_days,
        )

    async def transition(
        self,
        kind: Union[EntityKind, str],
        entity_id: str,
        event: str,
        *,
        expires_at: Optional[datetime] = None,
    ) -> EntityStatus:
        """Apply ``event`` to the stored status; unknown entities start at their initial status."""

        stored = await self._transition_with(kind, entity_id, lambda _status: event, expires_at=expires_at)
        assert stored is not None  # an event was always chosen
        return stored

    # helpers -------------------------------------------------------------------

    async def _transition_with(
        self,
        kind: Union[EntityKind, str],
        entity_id: str,
        choose_event: Callable[[str], Optional[str]],
        *,
        expires_at: Optional[datetime] = None,
    ) -> Optional[EntityStatus]:
        """Read the status and apply ``choose_event(status)`` under one entity lock.

        ``None`` from ``choose_event`` leaves the record untouched.
        """

        entity_kind = EntityKind(kind)
        async with self._locks.hold(f"{entity_kind.value}:{entity_id}"):
            current = await self.repository.get_status(entity_kind, entity_id)
            status = current.status if current else _INITIAL_STATUS[entity_kind]
            event = choose_event(status)
            if event is None:
                return current
            deadline = expires_at or (current.expires_at if current else None)
            now = self._clock()
            target = states.next_status(entity_kind, status, event, now=now, expires_at=deadline)
            return await self.writer.set_status(
                EntityStatus(
                    kind=entity_kind,
                    entity_id=entity_id,
                    status=target.value,
                    expires_at=deadline,
                    updated_at=now,
                ),
                expected_version=current.version if current else 0,
            )

    async def _require_snapshot(self, subject_id: str) -> SubjectSnapshot:
        snapshot = await self.repository.get_snapshot(subject_id)
        if snapshot is None:
            raise MissingSubjectError(subject_id)
        return snapshot

    async def _with_retries(self, kind: str, key: str, attempt: Callable[[], Awaitable[T]]) -> T:
        tries = 1
        while True:
            try:
                return await attempt()
            except StaleRecordError as exc:
                if tries >= self.max_upsert_attempts:
                    logger.warning("%s write for %s still stale after %d attempt(s)", kind, key, tries)
                    raise
                logger.info("stale %s write for %s (%s); retrying", kind, key, exc)
                tries += 1


__all__ = ["TrustEngine", "AUTO_QUEUE_REASON"]
