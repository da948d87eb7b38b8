from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Sequence

from .scoring import clamp
from .types import (
    AuthenticityStatus,
    ReviewAuthenticity,
    ReviewSignals,
    RiskAssessment,
    RiskFactor,
    RiskFlag,
    RiskLevel,
    RiskSignals,
)

logger = logging.getLogger(__name__)

HIGH_DISPUTE_RATE_PERCENT = 5.0
BULK_REVIEW_THRESHOLD = 5

_RISK_LEVEL_BANDS: tuple[tuple[float, RiskLevel], ...] = (
    (70.0, RiskLevel.CRITICAL),
    (50.0, RiskLevel.HIGH),
    (30.0, RiskLevel.MEDIUM),
)

_LEVEL_RECOMMENDATIONS: dict[RiskLevel, tuple[str, ...]] = {
    RiskLevel.CRITICAL: (
        "Immediate account review required",
        "Suspend account until review is completed",
    ),
    RiskLevel.HIGH: (
        "Enhanced monitoring required",
        "Require additional verification",
    ),
}

_FLAG_RECOMMENDATIONS: dict[RiskFlag, tuple[str, ...]] = {
    RiskFlag.MULTIPLE_ACCOUNTS: ("Verify account ownership and merge duplicates",),
    RiskFlag.HIGH_DISPUTE_RATE: ("Provide seller training and support",),
    RiskFlag.POLICY_VIOLATIONS: ("Review policy violations and take appropriate action",),
}


def dispute_rate(signals: RiskSignals) -> float:
    if signals.total_orders <= 0:
        return 0.0
    return signals.disputed_orders / signals.total_orders * 100.0


def detect_risk_factors(signals: RiskSignals) -> list[RiskFactor]:
    """Convert counted signals into weighted factors, one per detected condition."""

    factors: list[RiskFactor] = []
    if signals.duplicate_accounts > 0:
        factors.append(
            RiskFactor(
                flag=RiskFlag.MULTIPLE_ACCOUNTS,
                score=30.0,
                weight=0.8,
                description="Multiple accounts detected with same email/phone",
                evidence=(f"duplicate_accounts={signals.duplicate_accounts}",),
            )
        )
    rate = dispute_rate(signals)
    if rate > HIGH_DISPUTE_RATE_PERCENT:
        factors.append(
            RiskFactor(
                flag=RiskFlag.HIGH_DISPUTE_RATE,
                score=min(rate * 2, 50.0),
                weight=0.7,
                description=f"High dispute rate: {rate:.1f}%",
                evidence=(f"disputed_orders={signals.disputed_orders}", f"total_orders={signals.total_orders}"),
            )
        )
    if signals.policy_violations > 0:
        factors.append(
            RiskFactor(
                flag=RiskFlag.POLICY_VIOLATIONS,
                score=float(min(signals.policy_violations * 10, 40)),
                weight=0.6,
                description=f"{signals.policy_violations} policy violation(s) found",
                evidence=(f"policy_violations={signals.policy_violations}",),
            )
        )
    return factors


def overall_risk_score(factors: Sequence[RiskFactor]) -> float:
    weight_total = sum(factor.weight for factor in factors)
    if weight_total <= 0:
        return 0.0
    weighted = sum(factor.score * factor.weight for factor in factors)
    return clamp(weighted / weight_total, 0.0, 100.0)


def risk_level_for(score: float) -> RiskLevel:
    for floor, level in _RISK_LEVEL_BANDS:
        if score >= floor:
            return level
    return RiskLevel.LOW


def risk_recommendations(level: RiskLevel, flags: Iterable[RiskFlag]) -> tuple[str, ...]:
    ordered: list[str] = list(_LEVEL_RECOMMENDATIONS.get(level, ()))
    for flag in flags:
        ordered.extend(_FLAG_RECOMMENDATIONS.get(flag, ()))
    return tuple(dict.fromkeys(ordered))


def assess_risk(signals: RiskSignals, now: datetime, *, version: int = 0) -> RiskAssessment:
    factors = detect_risk_factors(signals)
    score = overall_risk_score(factors)
    level = risk_level_for(score)
    if level in {RiskLevel.HIGH, RiskLevel.CRITICAL}:
        logger.info("subject %s assessed %s risk (score=%.2f)", signals.subject_id, level.value, score)
    return RiskAssessment(
        subject_id=signals.subject_id,
        overall_risk_score=score,
        risk_level=level,
        factors=tuple(factors),
        recommendations=risk_recommendations(level, (factor.flag for factor in factors)),
        assessed_at=now,
        version=version,
    )


def assess_review_authenticity(signals: ReviewSignals) -> ReviewAuthenticity:
    score = 100
    flags: list[str] = []
    if signals.is_duplicate:
        score -= 30
        flags.append("duplicate_review")
    if signals.reviews_last_24h > BULK_REVIEW_THRESHOLD:
        score -= 25
        flags.extend(["suspicious_timing", "bulk_reviews"])
    if score < 40:
        status = AuthenticityStatus.FAKE
    elif score < 70:
        status = AuthenticityStatus.SUSPICIOUS
    else:
        status = AuthenticityStatus.AUTHENTIC
    return ReviewAuthenticity(review_id=signals.review_id, score=score, status=status, flags=tuple(flags))


__all__ = [
    "dispute_rate",
    "detect_risk_factors",
    "overall_risk_score",
    "risk_level_for",
    "risk_recommendations",
    "assess_risk",
    "assess_review_authenticity",
]
