"""Trust scoring: metric aggregation, verification bonus, reputation decay.

Every function here is pure over a snapshot; callers fetch the inputs and
persist the outputs.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping, Optional, Sequence

from .config.tables import DEFAULT_BADGE_BONUS, DEFAULT_ENDORSEMENT_WEIGHTS
from .types import (
    AccountState,
    ActivityCounts,
    AlertSeverity,
    AlertType,
    Badge,
    BadgeType,
    Metric,
    OrderOutcome,
    ProfileStrength,
    RatingEvent,
    SocialCounts,
    SubjectSnapshot,
    TrustAlert,
    TrustLevel,
    TrustProfile,
)

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
DEFAULT_DECAY_DAYS = 180.0
DEFAULT_MAX_RATING = 5.0
PROFILE_FIELDS = ("first_name", "last_name", "email", "phone", "bio", "avatar")
REPUTATION_DROP_THRESHOLD = 20
REPUTATION_DROP_CRITICAL = 40
EXPIRY_WARNING_WINDOW = timedelta(days=30)

_TRUST_LEVEL_BANDS: tuple[tuple[int, TrustLevel], ...] = (
    (90, TrustLevel.EXPERT),
    (80, TrustLevel.PREMIUM),
    (70, TrustLevel.TRUSTED),
    (60, TrustLevel.VERIFIED),
    (40, TrustLevel.BASIC),
)

_STRENGTH_BANDS: tuple[tuple[int, ProfileStrength], ...] = (
    (85, ProfileStrength.EXCELLENT),
    (70, ProfileStrength.STRONG),
    (50, ProfileStrength.GOOD),
    (30, ProfileStrength.FAIR),
)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(float(value), hi))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""

    return int(math.floor(value + 0.5))


def aggregate_metrics(metrics: Iterable[Metric]) -> float:
    """Weighted mean of normalised metric values on a 0..100 scale.

    Negative weights model inverse metrics. The result is left unclamped;
    :func:`combine_trust_score` clamps once after the bonus is added.
    """

    contribution = 0.0
    weight_total = 0.0
    for metric in metrics:
        max_value = metric.max_value
        if not max_value:
            logger.warning(
                "skipping metric %s for subject %s: max_value=%r",
                getattr(metric.metric_type, "value", metric.metric_type),
                metric.subject_id,
                max_value,
            )
            continue
        try:
            ratio = float(metric.value) / float(max_value)
            weight = float(metric.weight)
        except (TypeError, ValueError):
            logger.warning("skipping non-numeric metric for subject %s: %r", metric.subject_id, metric)
            continue
        if math.isnan(ratio) or math.isnan(weight):
            logger.warning("skipping NaN metric for subject %s: %r", metric.subject_id, metric)
            continue
        normalized = clamp(ratio, 0.0, 1.0)
        contribution += normalized * weight
        weight_total += abs(weight)
    if weight_total <= 0:
        return float(NEUTRAL_SCORE)
    return 100.0 * contribution / weight_total


def verification_bonus(
    badges: Iterable[Badge],
    now: datetime,
    table: Mapping[BadgeType, int] = DEFAULT_BADGE_BONUS,
) -> int:
    return sum(int(table.get(badge.badge_type, 0)) for badge in badges if badge.is_active(now))


def combine_trust_score(base_score: float, bonus: float) -> int:
    return round_half_up(clamp(base_score + bonus, 0.0, 100.0))


def reputation_score(
    events: Sequence[RatingEvent],
    now: datetime,
    *,
    decay_days: float = DEFAULT_DECAY_DAYS,
    max_rating: float = DEFAULT_MAX_RATING,
) -> int:
    """Recency-weighted rating average: each event weighs ``exp(-age_days / decay_days)``."""

    if not events:
        return NEUTRAL_SCORE
    weighted = 0.0
    weights = 0.0
    for event in events:
        age_days = max((now - event.created_at).total_seconds() / 86400.0, 0.0)
        weight = math.exp(-age_days / decay_days)
        weighted += float(event.value) * weight
        weights += weight
    if weights > 0:
        ratio = weighted / (weights * max_rating)
    else:
        # every weight underflowed; equal weights give the plain mean
        ratio = sum(float(event.value) for event in events) / (len(events) * max_rating)
    return round_half_up(clamp(100.0 * ratio, 0.0, 100.0))


def reliability_score(orders: Sequence[OrderOutcome]) -> int:
    if not orders:
        return NEUTRAL_SCORE
    points = 0
    for order in orders:
        if order.status == "delivered":
            points += 80
            if (
                order.delivered_at is not None
                and order.expected_delivery_at is not None
                and order.delivered_at <= order.expected_delivery_at
            ):
                points += 20
        elif order.status == "cancelled":
            points -= 20
    return round_half_up(clamp(points / (len(orders) * 100) * 100, 0.0, 100.0))


def activity_score(counts: ActivityCounts) -> int:
    return min(counts.logins * 2, 40) + min(counts.orders * 10, 40) + min(counts.messages, 20)


def social_score(counts: SocialCounts) -> int:
    return min(counts.verified_endorsements * 5, 50) + min(counts.connections * 2, 30) + min(counts.posts, 20)


def trust_level_for(score: float, account_state: AccountState = AccountState.ACTIVE) -> TrustLevel:
    if account_state is AccountState.BANNED:
        return TrustLevel.BANNED
    if account_state is AccountState.SUSPENDED:
        return TrustLevel.SUSPENDED
    for floor, level in _TRUST_LEVEL_BANDS:
        if score >= floor:
            return level
    return TrustLevel.UNVERIFIED


def profile_strength(fields: Mapping[str, Any], badges: Iterable[Badge], now: datetime) -> ProfileStrength:
    points = sum(10 for name in PROFILE_FIELDS if fields.get(name))
    points += sum(5 for badge in badges if badge.is_active(now))
    for floor, strength in _STRENGTH_BANDS:
        if points >= floor:
            return strength
    return ProfileStrength.WEAK


def endorsement_weight(
    level: TrustLevel,
    table: Mapping[TrustLevel, float] = DEFAULT_ENDORSEMENT_WEIGHTS,
) -> float:
    return float(table.get(level, 0.0))


def can_endorse(level: TrustLevel) -> bool:
    return level not in {TrustLevel.UNVERIFIED, TrustLevel.SUSPENDED, TrustLevel.BANNED}


def compute_trust_score(
    snapshot: SubjectSnapshot,
    now: datetime,
    badge_table: Mapping[BadgeType, int] = DEFAULT_BADGE_BONUS,
) -> int:
    base = aggregate_metrics(snapshot.metrics)
    bonus = verification_bonus(snapshot.badges, now, badge_table)
    return combine_trust_score(base, bonus)


def build_profile(
    snapshot: SubjectSnapshot,
    now: datetime,
    *,
    badge_table: Mapping[BadgeType, int] = DEFAULT_BADGE_BONUS,
    decay_days: float = DEFAULT_DECAY_DAYS,
    max_rating: float = DEFAULT_MAX_RATING,
    version: int = 0,
) -> TrustProfile:
    """Derive a full :class:`TrustProfile` from one snapshot."""

    trust_score = compute_trust_score(snapshot, now, badge_table)
    return TrustProfile(
        subject_id=snapshot.subject_id,
        trust_score=trust_score,
        trust_level=trust_level_for(trust_score, snapshot.account_state),
        reputation_score=reputation_score(snapshot.ratings, now, decay_days=decay_days, max_rating=max_rating),
        reliability_score=reliability_score(snapshot.orders),
        activity_score=activity_score(snapshot.activity),
        social_score=social_score(snapshot.social),
        profile_strength=profile_strength(snapshot.profile_fields, snapshot.badges, now),
        version=version,
        updated_at=now,
    )


def default_profile(subject_id: str, now: datetime) -> TrustProfile:
    return TrustProfile(
        subject_id=subject_id,
        trust_score=NEUTRAL_SCORE,
        trust_level=trust_level_for(NEUTRAL_SCORE),
        reputation_score=NEUTRAL_SCORE,
        reliability_score=NEUTRAL_SCORE,
        activity_score=0,
        social_score=0,
        profile_strength=ProfileStrength.WEAK,
        version=0,
        updated_at=now,
    )


def detect_trust_alerts(
    previous: Optional[TrustProfile],
    current: TrustProfile,
    badges: Iterable[Badge],
    now: datetime,
) -> list[TrustAlert]:
    alerts: list[TrustAlert] = []
    if previous is not None:
        drop = previous.trust_score - current.trust_score
        if drop >= REPUTATION_DROP_THRESHOLD:
            alerts.append(
                TrustAlert(
                    subject_id=current.subject_id,
                    alert_type=AlertType.REPUTATION_DROP,
                    severity=AlertSeverity.CRITICAL if drop >= REPUTATION_DROP_CRITICAL else AlertSeverity.HIGH,
                    message=f"Trust score dropped by {drop} points",
                    metadata={
                        "previous_score": previous.trust_score,
                        "current_score": current.trust_score,
                        "drop": drop,
                    },
                )
            )
    horizon = now + EXPIRY_WARNING_WINDOW
    expiring = sum(
        1
        for badge in badges
        if badge.is_active(now) and badge.expires_at is not None and badge.expires_at <= horizon
    )
    if expiring:
        alerts.append(
            TrustAlert(
                subject_id=current.subject_id,
                alert_type=AlertType.VERIFICATION_EXPIRING,
                severity=AlertSeverity.MEDIUM,
                message=f"{expiring} verification badge(s) expiring soon",
                metadata={"count": expiring},
            )
        )
    return alerts


__all__ = [
    "NEUTRAL_SCORE",
    "clamp",
    "round_half_up",
    "aggregate_metrics",
    "verification_bonus",
    "combine_trust_score",
    "reputation_score",
    "reliability_score",
    "activity_score",
    "social_score",
    "trust_level_for",
    "profile_strength",
    "endorsement_weight",
    "can_endorse",
    "compute_trust_score",
    "build_profile",
    "default_profile",
    "detect_trust_alerts",
]
