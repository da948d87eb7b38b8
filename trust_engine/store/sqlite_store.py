from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Mapping, Optional

import aiosqlite
from aiosqlite import Connection

from ..config import Settings, get_settings
from ..engine.types import Condition, ConditionOperator, Rule
from ..errors import StaleRecordError
from ..types import (
    AccountState,
    ActivityCounts,
    Badge,
    BadgeStatus,
    BadgeType,
    CategoryScore,
    ContentType,
    ContentViolation,
    DetectionMethod,
    EntityKind,
    EntityStatus,
    Metric,
    MetricType,
    ModerationAction,
    ModerationResult,
    OrderOutcome,
    ProfileStrength,
    QueueEntry,
    QueuePriority,
    QueueType,
    RatingEvent,
    Recommendation,
    RiskAssessment,
    RiskFactor,
    RiskFlag,
    RiskLevel,
    RiskSignals,
    SocialCounts,
    SubjectSnapshot,
    TrustAlert,
    TrustLevel,
    TrustProfile,
    ViolationCategory,
    ViolationSeverity,
    ViolationType,
)

logger = logging.getLogger(__name__)


def _dump(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True)


def _load(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("sqlite store: undecodable JSON column %r", raw[:80])
        return default


def encode_conditions(conditions: Iterable[Condition]) -> str:
    return _dump(
        [
            {
                "field": condition.field,
                "operator": condition.operator.value,
                "value": condition.value,
                "case_sensitive": condition.case_sensitive,
            }
            for condition in conditions
        ]
    )


def decode_conditions(raw: Optional[str]) -> tuple[Condition, ...]:
    conditions: list[Condition] = []
    for item in _load(raw, []):
        try:
            conditions.append(
                Condition(
                    field=str(item["field"]),
                    operator=ConditionOperator(item["operator"]),
                    value=item.get("value"),
                    case_sensitive=bool(item.get("case_sensitive", False)),
                )
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("sqlite store: dropping malformed condition %r", item)
    return tuple(conditions)


class SqliteStore:
    """aiosqlite-backed repository and writer with version-checked upserts."""

    SCHEMA_VERSION = 1

    def __init__(self, path: Path) -> None:
        self.path = path
        self._db: Optional[aiosqlite.Connection] = None
        self._connect_lock = asyncio.Lock()
        # One connection is shared, so a transaction must not interleave with another.
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SqliteStore":
        cfg = settings or get_settings()
        return cls(cfg.store_db_path)

    async def connect(self) -> None:
        async with self._connect_lock:
            if self._db is not None:
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            db = await aiosqlite.connect(self.path)
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute("PRAGMA foreign_keys=ON;")
            await self._run_migrations(db)
            self._db = db
            logger.info("sqlite store opened at %s", self.path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    # seeding -----------------------------------------------------------------

    async def put_snapshot(self, snapshot: SubjectSnapshot) -> None:
        async with self._writing() as db:
            now_iso = self._to_iso(datetime.now(timezone.utc))
            await db.execute(
                """
                INSERT INTO subjects (subject_id, account_state, profile_fields, activity, social, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(subject_id) DO UPDATE SET
                  account_state=excluded.account_state,
                  profile_fields=excluded.profile_fields,
                  activity=excluded.activity,
                  social=excluded.social
                """,
                (
                    snapshot.subject_id,
                    snapshot.account_state.value,
                    _dump(dict(snapshot.profile_fields)),
                    _dump(
                        {
                            "logins": snapshot.activity.logins,
                            "orders": snapshot.activity.orders,
                            "messages": snapshot.activity.messages,
                        }
                    ),
                    _dump(
                        {
                            "verified_endorsements": snapshot.social.verified_endorsements,
                            "connections": snapshot.social.connections,
                            "posts": snapshot.social.posts,
                        }
                    ),
                    now_iso,
                ),
            )
            for table in ("trust_metrics", "verification_badges", "rating_events", "order_outcomes"):
                await db.execute(f"DELETE FROM {table} WHERE subject_id=?", (snapshot.subject_id,))
            await db.executemany(
                "INSERT INTO trust_metrics(subject_id, metric_type, value, max_value, weight, source) VALUES(?,?,?,?,?,?)",
                [
                    (m.subject_id, m.metric_type.value, m.value, m.max_value, m.weight, m.source)
                    for m in snapshot.metrics
                ],
            )
            await db.executemany(
                "INSERT INTO verification_badges(subject_id, badge_type, status, expires_at) VALUES(?,?,?,?)",
                [
                    (
                        b.subject_id,
                        b.badge_type.value,
                        b.status.value,
                        self._to_iso(b.expires_at) if b.expires_at else None,
                    )
                    for b in snapshot.badges
                ],
            )
            await db.executemany(
                "INSERT INTO rating_events(subject_id, value, created_at) VALUES(?,?,?)",
                [(snapshot.subject_id, r.value, self._to_iso(r.created_at)) for r in snapshot.ratings],
            )
            await db.executemany(
                "INSERT INTO order_outcomes(subject_id, status, delivered_at, expected_delivery_at) VALUES(?,?,?,?)",
                [
                    (
                        snapshot.subject_id,
                        o.status,
                        self._to_iso(o.delivered_at) if o.delivered_at else None,
                        self._to_iso(o.expected_delivery_at) if o.expected_delivery_at else None,
                    )
                    for o in snapshot.orders
                ],
            )
            await db.commit()

    async def put_risk_signals(self, signals: RiskSignals) -> None:
        async with self._writing() as db:
            await db.execute(
                """
                INSERT INTO risk_signals (subject_id, duplicate_accounts, total_orders, disputed_orders, policy_violations)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(subject_id) DO UPDATE SET
                  duplicate_accounts=excluded.duplicate_accounts,
                  total_orders=excluded.total_orders,
                  disputed_orders=excluded.disputed_orders,
                  policy_violations=excluded.policy_violations
                """,
                (
                    signals.subject_id,
                    signals.duplicate_accounts,
                    signals.total_orders,
                    signals.disputed_orders,
                    signals.policy_violations,
                ),
            )
            await db.commit()

    async def put_rule(self, rule: Rule) -> None:
        async with self._writing() as db:
            await db.execute(
                """
                INSERT INTO moderation_rules (
                  id, name, conditions, priority, severity, content_types, active, violation_type, category
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  name=excluded.name,
                  conditions=excluded.conditions,
                  priority=excluded.priority,
                  severity=excluded.severity,
                  content_types=excluded.content_types,
                  active=excluded.active,
                  violation_type=excluded.violation_type,
                  category=excluded.category
                """,
                (
                    rule.id,
                    rule.name,
                    encode_conditions(rule.conditions),
                    rule.priority,
                    rule.severity.value,
                    _dump(sorted(ct.value for ct in rule.content_types)),
                    1 if rule.active else 0,
                    rule.violation_type.value,
                    rule.category.value,
                ),
            )
            await db.commit()

    # repository ----------------------------------------------------------------

    async def get_snapshot(self, subject_id: str) -> Optional[SubjectSnapshot]:
        db = await self._require_db()
        subject = await self._fetchone(db, "SELECT * FROM subjects WHERE subject_id=?", (subject_id,))
        if subject is None:
            return None
        metrics: list[Metric] = []
        for row in await self._fetchall(db, "SELECT * FROM trust_metrics WHERE subject_id=?", (subject_id,)):
            try:
                metric_type = MetricType(row["metric_type"])
            except ValueError:
                logger.warning("skipping unknown metric type %r for %s", row["metric_type"], subject_id)
                continue
            metrics.append(
                Metric(
                    subject_id=subject_id,
                    metric_type=metric_type,
                    value=row["value"],
                    max_value=row["max_value"],
                    weight=row["weight"],
                    source=row["source"],
                )
            )
        badges: list[Badge] = []
        for row in await self._fetchall(db, "SELECT * FROM verification_badges WHERE subject_id=?", (subject_id,)):
            try:
                badge_type = BadgeType(row["badge_type"])
                badge_status = BadgeStatus(row["status"])
            except ValueError:
                logger.warning("skipping unknown badge %r/%r for %s", row["badge_type"], row["status"], subject_id)
                continue
            badges.append(
                Badge(
                    subject_id=subject_id,
                    badge_type=badge_type,
                    status=badge_status,
                    expires_at=self._parse_iso(row["expires_at"]) if row["expires_at"] else None,
                )
            )
        ratings = [
            RatingEvent(value=row["value"], created_at=self._parse_iso(row["created_at"]))
            for row in await self._fetchall(db, "SELECT * FROM rating_events WHERE subject_id=?", (subject_id,))
        ]
        orders = [
            OrderOutcome(
                status=row["status"],
                delivered_at=self._parse_iso(row["delivered_at"]) if row["delivered_at"] else None,
                expected_delivery_at=(
                    self._parse_iso(row["expected_delivery_at"]) if row["expected_delivery_at"] else None
                ),
            )
            for row in await self._fetchall(db, "SELECT * FROM order_outcomes WHERE subject_id=?", (subject_id,))
        ]
        activity = _load(subject["activity"], {})
        social = _load(subject["social"], {})
        return SubjectSnapshot(
            subject_id=subject_id,
            metrics=tuple(metrics),
            badges=tuple(badges),
            ratings=tuple(ratings),
            orders=tuple(orders),
            activity=ActivityCounts(
                logins=int(activity.get("logins", 0)),
                orders=int(activity.get("orders", 0)),
                messages=int(activity.get("messages", 0)),
            ),
            social=SocialCounts(
                verified_endorsements=int(social.get("verified_endorsements", 0)),
                connections=int(social.get("connections", 0)),
                posts=int(social.get("posts", 0)),
            ),
            profile_fields=_load(subject["profile_fields"], {}),
            account_state=AccountState(subject["account_state"]),
        )

    async def get_risk_signals(self, subject_id: str) -> Optional[RiskSignals]:
        db = await self._require_db()
        row = await self._fetchone(db, "SELECT * FROM risk_signals WHERE subject_id=?", (subject_id,))
        if row is None:
            known = await self._fetchone(db, "SELECT 1 FROM subjects WHERE subject_id=?", (subject_id,))
            return RiskSignals(subject_id=subject_id) if known else None
        return RiskSignals(
            subject_id=subject_id,
            duplicate_accounts=row["duplicate_accounts"],
            total_orders=row["total_orders"],
            disputed_orders=row["disputed_orders"],
            policy_violations=row["policy_violations"],
        )

    async def get_profile(self, subject_id: str) -> Optional[TrustProfile]:
        db = await self._require_db()
        row = await self._fetchone(db, "SELECT * FROM trust_profiles WHERE subject_id=?", (subject_id,))
        return self._row_to_profile(row) if row else None

    async def get_assessment(self, subject_id: str) -> Optional[RiskAssessment]:
        db = await self._require_db()
        row = await self._fetchone(db, "SELECT * FROM risk_assessments WHERE subject_id=?", (subject_id,))
        return self._row_to_assessment(row) if row else None

    async def list_rules(self) -> list[Rule]:
        db = await self._require_db()
        rows = await self._fetchall(
            db,
            "SELECT * FROM moderation_rules WHERE active=1 ORDER BY priority DESC, id ASC",
            (),
        )
        rules: list[Rule] = []
        for row in rows:
            try:
                rules.append(self._row_to_rule(row))
            except ValueError as exc:
                logger.warning("skipping malformed rule %s: %s", row["id"], exc)
        return rules

    async def get_queue_entry(self, content_id: str) -> Optional[QueueEntry]:
        db = await self._require_db()
        row = await self._fetchone(db, "SELECT * FROM review_queue WHERE content_id=?", (content_id,))
        return self._row_to_queue_entry(row) if row else None

    async def list_queue(self) -> list[QueueEntry]:
        db = await self._require_db()
        rows = await self._fetchall(db, "SELECT * FROM review_queue ORDER BY due_at ASC", ())
        return [self._row_to_queue_entry(row) for row in rows]

    async def get_status(self, kind: EntityKind, entity_id: str) -> Optional[EntityStatus]:
        db = await self._require_db()
        row = await self._fetchone(
            db,
            "SELECT * FROM entity_status WHERE kind=? AND entity_id=?",
            (kind.value, entity_id),
        )
        if row is None:
            return None
        return EntityStatus(
            kind=EntityKind(row["kind"]),
            entity_id=row["entity_id"],
            status=row["status"],
            version=row["version"],
            expires_at=self._parse_iso(row["expires_at"]) if row["expires_at"] else None,
            updated_at=self._parse_iso(row["updated_at"]),
        )

    async def get_moderation_result(self, content_id: str) -> Optional[ModerationResult]:
        db = await self._require_db()
        row = await self._fetchone(db, "SELECT * FROM moderation_results WHERE content_id=?", (content_id,))
        return self._row_to_result(row) if row else None

    # writer ----------------------------------------------------------------------

    async def upsert_profile(self, profile: TrustProfile, *, expected_version: int) -> TrustProfile:
        async with self._writing() as db:
            updated_at = self._to_iso(profile.updated_at or datetime.now(timezone.utc))
            values = (
                profile.trust_score,
                profile.trust_level.value,
                profile.reputation_score,
                profile.reliability_score,
                profile.activity_score,
                profile.social_score,
                profile.profile_strength.value,
                expected_version + 1,
                updated_at,
            )
            if expected_version == 0:
                cursor = await db.execute(
                    """
                    INSERT INTO trust_profiles (
                      trust_score, trust_level, reputation_score, reliability_score, activity_score,
                      social_score, profile_strength, version, updated_at, subject_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(subject_id) DO NOTHING
                    """,
                    (*values, profile.subject_id),
                )
            else:
                cursor = await db.execute(
                    """
                    UPDATE trust_profiles SET
                      trust_score=?, trust_level=?, reputation_score=?, reliability_score=?, activity_score=?,
                      social_score=?, profile_strength=?, version=?, updated_at=?
                    WHERE subject_id=? AND version=?
                    """,
                    (*values, profile.subject_id, expected_version),
                )
            await self._commit_or_stale(db, cursor, "profile", "trust_profiles", profile.subject_id, expected_version)
            stored = await self.get_profile(profile.subject_id)
            if stored is None:  # pragma: no cover
                raise RuntimeError("Failed to persist trust profile")
            return stored

    async def upsert_assessment(self, assessment: RiskAssessment, *, expected_version: int) -> RiskAssessment:
        async with self._writing() as db:
            values = (
                assessment.overall_risk_score,
                assessment.risk_level.value,
                _dump(
                    [
                        {
                            "flag": factor.flag.value,
                            "score": factor.score,
                            "weight": factor.weight,
                            "description": factor.description,
                            "evidence": list(factor.evidence),
                        }
                        for factor in assessment.factors
                    ]
                ),
                _dump(list(assessment.recommendations)),
                self._to_iso(assessment.assessed_at),
                expected_version + 1,
            )
            if expected_version == 0:
                cursor = await db.execute(
                    """
                    INSERT INTO risk_assessments (
                      overall_risk_score, risk_level, factors, recommendations, assessed_at, version, subject_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(subject_id) DO NOTHING
                    """,
                    (*values, assessment.subject_id),
                )
            else:
                cursor = await db.execute(
                    """
                    UPDATE risk_assessments SET
                      overall_risk_score=?, risk_level=?, factors=?, recommendations=?, assessed_at=?, version=?
                    WHERE subject_id=? AND version=?
                    """,
                    (*values, assessment.subject_id, expected_version),
                )
            await self._commit_or_stale(
                db, cursor, "assessment", "risk_assessments", assessment.subject_id, expected_version
            )
            stored = await self.get_assessment(assessment.subject_id)
            if stored is None:  # pragma: no cover
                raise RuntimeError("Failed to persist risk assessment")
            return stored

    async def save_moderation_result(self, result: ModerationResult) -> None:
        async with self._writing() as db:
            await db.execute(
                """
                INSERT INTO moderation_results (
                  content_id, overall_score, categories, recommendations, violations, requires_human_review, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(content_id) DO UPDATE SET
                  overall_score=excluded.overall_score,
                  categories=excluded.categories,
                  recommendations=excluded.recommendations,
                  violations=excluded.violations,
                  requires_human_review=excluded.requires_human_review
                """,
                (
                    result.content_id,
                    result.overall_score,
                    _dump(
                        {
                            name: {"score": cat.score, "confidence": cat.confidence, "details": list(cat.details)}
                            for name, cat in result.categories.items()
                        }
                    ),
                    _dump(
                        [
                            {
                                "action": rec.action.value,
                                "reason": rec.reason,
                                "confidence": rec.confidence,
                                "severity": rec.severity.value,
                            }
                            for rec in result.recommendations
                        ]
                    ),
                    _dump([self._violation_to_dict(v) for v in result.violations]),
                    1 if result.requires_human_review else 0,
                    self._to_iso(datetime.now(timezone.utc)),
                ),
            )
            await db.commit()

    async def enqueue(self, entry: QueueEntry) -> None:
        async with self._writing() as db:
            await db.execute(
                """
                INSERT INTO review_queue (content_id, priority, due_at, queue_type, reason, assigned_to, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(content_id) DO UPDATE SET
                  priority=excluded.priority,
                  due_at=excluded.due_at,
                  queue_type=excluded.queue_type,
                  reason=excluded.reason
                """,
                (
                    entry.content_id,
                    entry.priority.value,
                    self._to_iso(entry.due_at),
                    entry.queue_type.value,
                    entry.reason,
                    entry.assigned_to,
                    self._to_iso(entry.created_at),
                ),
            )
            await db.commit()

    async def dequeue(self, content_id: str) -> bool:
        async with self._writing() as db:
            cursor = await db.execute("DELETE FROM review_queue WHERE content_id=?", (content_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def set_status(self, status: EntityStatus, *, expected_version: int) -> EntityStatus:
        async with self._writing() as db:
            updated_at = self._to_iso(status.updated_at or datetime.now(timezone.utc))
            expires_at = self._to_iso(status.expires_at) if status.expires_at else None
            if expected_version == 0:
                cursor = await db.execute(
                    """
                    INSERT INTO entity_status (kind, entity_id, status, version, expires_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(kind, entity_id) DO NOTHING
                    """,
                    (status.kind.value, status.entity_id, status.status, 1, expires_at, updated_at),
                )
            else:
                cursor = await db.execute(
                    """
                    UPDATE entity_status SET status=?, version=?, expires_at=?, updated_at=?
                    WHERE kind=? AND entity_id=? AND version=?
                    """,
                    (
                        status.status,
                        expected_version + 1,
                        expires_at,
                        updated_at,
                        status.kind.value,
                        status.entity_id,
                        expected_version,
                    ),
                )
            if cursor.rowcount != 1:
                await db.rollback()
                current = await self.get_status(status.kind, status.entity_id)
                raise StaleRecordError(
                    f"{status.kind.value} status",
                    status.entity_id,
                    expected_version,
                    current.version if current else 0,
                )
            await db.commit()
            stored = await self.get_status(status.kind, status.entity_id)
            if stored is None:  # pragma: no cover
                raise RuntimeError("Failed to persist entity status")
            return stored

    async def record_alert(self, alert: TrustAlert) -> None:
        async with self._writing() as db:
            await db.execute(
                "INSERT INTO trust_alerts(subject_id, alert_type, severity, message, metadata, created_at) "
                "VALUES(?,?,?,?,?,?)",
                (
                    alert.subject_id,
                    alert.alert_type.value,
                    alert.severity.value,
                    alert.message,
                    _dump(dict(alert.metadata)),
                    self._to_iso(datetime.now(timezone.utc)),
                ),
            )
            await db.commit()

    async def count_alerts(self, subject_id: str) -> int:
        db = await self._require_db()
        row = await self._fetchone(db, "SELECT COUNT(*) FROM trust_alerts WHERE subject_id=?", (subject_id,))
        return int(row[0]) if row else 0

    # helpers ---------------------------------------------------------------------

    async def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            await self.connect()
        assert self._db is not None  # for type checkers
        return self._db

    @asynccontextmanager
    async def _writing(self) -> AsyncIterator[Connection]:
        db = await self._require_db()
        async with self._write_lock:
            yield db

    async def _commit_or_stale(
        self,
        db: Connection,
        cursor: aiosqlite.Cursor,
        kind: str,
        table: str,
        key: str,
        expected_version: int,
    ) -> None:
        if cursor.rowcount == 1:
            await db.commit()
            return
        await db.rollback()
        row = await self._fetchone(db, f"SELECT version FROM {table} WHERE subject_id=?", (key,))
        raise StaleRecordError(kind, key, expected_version, int(row[0]) if row else 0)

    @staticmethod
    async def _fetchone(db: Connection, sql: str, params: tuple[Any, ...]) -> Optional[aiosqlite.Row]:
        cursor = await db.execute(sql, params)
        row = await cursor.fetchone()
        await cursor.close()
        return row

    @staticmethod
    async def _fetchall(db: Connection, sql: str, params: tuple[Any, ...]) -> list[aiosqlite.Row]:
        cursor = await db.execute(sql, params)
        rows = await cursor.fetchall()
        await cursor.close()
        return list(rows)

    @staticmethod
    def _to_iso(dt: datetime) -> str:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        else:
            dt = dt.astimezone(timezone.utc)
        return dt.isoformat()

    @staticmethod
    def _parse_iso(value: str) -> datetime:
        dt = datetime.fromisoformat(value)
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def _violation_to_dict(violation: ContentViolation) -> dict[str, Any]:
        return {
            "content_id": violation.content_id,
            "rule_id": violation.rule_id,
            "rule_name": violation.rule_name,
            "violation_type": violation.violation_type.value,
            "category": violation.category.value,
            "severity": violation.severity.value,
            "description": violation.description,
            "detected_by": violation.detected_by.value,
            "confidence": violation.confidence,
            "score": violation.score,
        }

    def _row_to_profile(self, row: aiosqlite.Row) -> TrustProfile:
        return TrustProfile(
            subject_id=row["subject_id"],
            trust_score=row["trust_score"],
            trust_level=TrustLevel(row["trust_level"]),
            reputation_score=row["reputation_score"],
            reliability_score=row["reliability_score"],
            activity_score=row["activity_score"],
            social_score=row["social_score"],
            profile_strength=ProfileStrength(row["profile_strength"]),
            version=row["version"],
            updated_at=self._parse_iso(row["updated_at"]),
        )

    def _row_to_assessment(self, row: aiosqlite.Row) -> RiskAssessment:
        factors = tuple(
            RiskFactor(
                flag=RiskFlag(item["flag"]),
                score=float(item["score"]),
                weight=float(item["weight"]),
                description=str(item.get("description", "")),
                evidence=tuple(item.get("evidence") or ()),
            )
            for item in _load(row["factors"], [])
        )
        return RiskAssessment(
            subject_id=row["subject_id"],
            overall_risk_score=row["overall_risk_score"],
            risk_level=RiskLevel(row["risk_level"]),
            factors=factors,
            recommendations=tuple(_load(row["recommendations"], [])),
            assessed_at=self._parse_iso(row["assessed_at"]),
            version=row["version"],
        )

    def _row_to_rule(self, row: aiosqlite.Row) -> Rule:
        return Rule(
            id=row["id"],
            name=row["name"],
            conditions=decode_conditions(row["conditions"]),
            priority=row["priority"],
            severity=ViolationSeverity(row["severity"]),
            content_types=frozenset(ContentType(value) for value in _load(row["content_types"], [])),
            active=bool(row["active"]),
            violation_type=ViolationType(row["violation_type"]),
            category=ViolationCategory(row["category"]),
        )

    def _row_to_queue_entry(self, row: aiosqlite.Row) -> QueueEntry:
        return QueueEntry(
            content_id=row["content_id"],
            priority=QueuePriority(row["priority"]),
            due_at=self._parse_iso(row["due_at"]),
            queue_type=QueueType(row["queue_type"]),
            reason=row["reason"],
            created_at=self._parse_iso(row["created_at"]),
            assigned_to=row["assigned_to"],
        )

    def _row_to_result(self, row: aiosqlite.Row) -> ModerationResult:
        categories: Mapping[str, Any] = _load(row["categories"], {})
        return ModerationResult(
            content_id=row["content_id"],
            overall_score=row["overall_score"],
            categories={
                name: CategoryScore(
                    score=float(item["score"]),
                    confidence=float(item["confidence"]),
                    details=tuple(item.get("details") or ()),
                )
                for name, item in categories.items()
            },
            recommendations=tuple(
                Recommendation(
                    action=ModerationAction(item["action"]),
                    reason=item["reason"],
                    confidence=float(item["confidence"]),
                    severity=ViolationSeverity(item["severity"]),
                )
                for item in _load(row["recommendations"], [])
            ),
            violations=tuple(
                ContentViolation(
                    content_id=item["content_id"],
                    rule_id=item["rule_id"],
                    rule_name=item["rule_name"],
                    violation_type=ViolationType(item["violation_type"]),
                    category=ViolationCategory(item["category"]),
                    severity=ViolationSeverity(item["severity"]),
                    description=item["description"],
                    detected_by=DetectionMethod(item["detected_by"]),
                    confidence=float(item["confidence"]),
                    score=float(item["score"]),
                )
                for item in _load(row["violations"], [])
            ),
            requires_human_review=bool(row["requires_human_review"]),
        )

    async def _run_migrations(self, db: Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS subjects (
              subject_id TEXT PRIMARY KEY,
              account_state TEXT NOT NULL DEFAULT 'active',
              profile_fields TEXT NOT NULL DEFAULT '{}',
              activity TEXT NOT NULL DEFAULT '{}',
              social TEXT NOT NULL DEFAULT '{}',
              created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS trust_metrics (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              subject_id TEXT NOT NULL,
              metric_type TEXT NOT NULL,
              value REAL NOT NULL,
              max_value REAL,
              weight REAL NOT NULL,
              source TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS verification_badges (
              subject_id TEXT NOT NULL,
              badge_type TEXT NOT NULL,
              status TEXT NOT NULL,
              expires_at TEXT,
              PRIMARY KEY (subject_id, badge_type)
            );
            CREATE TABLE IF NOT EXISTS rating_events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              subject_id TEXT NOT NULL,
              value REAL NOT NULL,
              created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS order_outcomes (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              subject_id TEXT NOT NULL,
              status TEXT NOT NULL,
              delivered_at TEXT,
              expected_delivery_at TEXT
            );
            CREATE TABLE IF NOT EXISTS risk_signals (
              subject_id TEXT PRIMARY KEY,
              duplicate_accounts INTEGER NOT NULL DEFAULT 0,
              total_orders INTEGER NOT NULL DEFAULT 0,
              disputed_orders INTEGER NOT NULL DEFAULT 0,
              policy_violations INTEGER NOT NULL DEFAULT 0
            );
            CREATE TABLE IF NOT EXISTS trust_profiles (
              subject_id TEXT PRIMARY KEY,
              trust_score INTEGER NOT NULL,
              trust_level TEXT NOT NULL,
              reputation_score INTEGER NOT NULL,
              reliability_score INTEGER NOT NULL,
              activity_score INTEGER NOT NULL,
              social_score INTEGER NOT NULL,
              profile_strength TEXT NOT NULL,
              version INTEGER NOT NULL,
              updated_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS risk_assessments (
              subject_id TEXT PRIMARY KEY,
              overall_risk_score REAL NOT NULL,
              risk_level TEXT NOT NULL,
              factors TEXT NOT NULL,
              recommendations TEXT NOT NULL,
              assessed_at TEXT NOT NULL,
              version INTEGER NOT NULL
            );
            CREATE TABLE IF NOT EXISTS moderation_rules (
              id TEXT PRIMARY KEY,
              name TEXT NOT NULL,
              conditions TEXT NOT NULL,
              priority INTEGER NOT NULL DEFAULT 0,
              severity TEXT NOT NULL,
              content_types TEXT NOT NULL DEFAULT '[]',
              active INTEGER NOT NULL DEFAULT 1,
              violation_type TEXT NOT NULL,
              category TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS moderation_results (
              content_id TEXT PRIMARY KEY,
              overall_score REAL NOT NULL,
              categories TEXT NOT NULL,
              recommendations TEXT NOT NULL,
              violations TEXT NOT NULL,
              requires_human_review INTEGER NOT NULL,
              created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS review_queue (
              content_id TEXT PRIMARY KEY,
              priority TEXT NOT NULL,
              due_at TEXT NOT NULL,
              queue_type TEXT NOT NULL,
              reason TEXT NOT NULL,
              assigned_to TEXT,
              created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS entity_status (
              kind TEXT NOT NULL,
              entity_id TEXT NOT NULL,
              status TEXT NOT NULL,
              version INTEGER NOT NULL,
              expires_at TEXT,
              updated_at TEXT NOT NULL,
              PRIMARY KEY (kind, entity_id)
            );
            CREATE TABLE IF NOT EXISTS trust_alerts (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              subject_id TEXT NOT NULL,
              alert_type TEXT NOT NULL,
              severity TEXT NOT NULL,
              message TEXT NOT NULL,
              metadata TEXT NOT NULL DEFAULT '{}',
              created_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_metrics_subject ON trust_metrics(subject_id);
            CREATE INDEX IF NOT EXISTS idx_ratings_subject ON rating_events(subject_id);
            CREATE INDEX IF NOT EXISTS idx_orders_subject ON order_outcomes(subject_id);
            CREATE INDEX IF NOT EXISTS idx_queue_due ON review_queue(due_at);
            """
        )
        version = await self._get_user_version(db)
        if version < self.SCHEMA_VERSION:
            await db.execute(f"PRAGMA user_version={self.SCHEMA_VERSION};")
        await db.commit()

    async def _get_user_version(self, db: Connection) -> int:
        cursor = await db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        await cursor.close()
        return int(row[0]) if row and row[0] is not None else 0


__all__ = ["SqliteStore", "encode_conditions", "decode_conditions"]
