"""Heuristic and rule-based content auto-moderation."""

from __future__ import annotations

import logging
import re
from typing import Mapping, Optional, Protocol, Sequence

from .engine.conditions import RuleSet, evaluate_rules
from .engine.types import EvaluationPolicy
from .lexicon import ModerationLexicon
from .scoring import clamp
from .types import (
    CategoryScore,
    ContentRecord,
    ContentType,
    ContentViolation,
    ModerationAction,
    ModerationResult,
    ModerationStatus,
    Recommendation,
    ReviewerDecision,
    ViolationSeverity,
)

logger = logging.getLogger(__name__)

PROFANITY_SCORE, PROFANITY_CONFIDENCE = 80.0, 0.8
SPAM_SCORE, SPAM_CONFIDENCE = 60.0, 0.7
CAPS_SCORE, CAPS_CONFIDENCE = 30.0, 0.6
REPEAT_SCORE, REPEAT_CONFIDENCE = 25.0, 0.5
RULES_CATEGORY_CONFIDENCE = 0.9

CAPS_RATIO_THRESHOLD = 0.5
CAPS_MIN_LENGTH = 10
REVIEW_BAND = (40.0, 70.0)
MIN_CATEGORY_CONFIDENCE = 0.7
MIN_RECOMMENDATION_CONFIDENCE = 0.8

_UPPER_RE = re.compile(r"[A-Z]")
_REPEAT_RE = re.compile(r"(.)\1{4,}")

_DECISION_EVENTS: dict[ReviewerDecision, str] = {
    ReviewerDecision.APPROVE: "approve",
    ReviewerDecision.APPROVE_WITH_EDITS: "approve",
    ReviewerDecision.REJECT: "reject",
    ReviewerDecision.ESCALATE: "escalate",
}


class ImageHeuristic(Protocol):
    """Pluggable image scorer returning ``(score, confidence, details)``."""

    def analyze(self, record: ContentRecord) -> tuple[float, float, Sequence[str]]:
        ...


def analyze_text(text: str, lexicon: ModerationLexicon) -> CategoryScore:
    """Score one text field; the category score is the max of the triggered signals."""

    score = 0.0
    confidence = 0.0
    details: list[str] = []
    lowered = text.lower()

    for word in lexicon.profanity:
        if word in lowered:
            details.append(f"Contains prohibited word: {word}")
            score = max(score, PROFANITY_SCORE)
            confidence = max(confidence, PROFANITY_CONFIDENCE)

    for pattern in lexicon.spam_patterns:
        match = pattern.search(text)
        if match:
            details.append(f"Spam pattern detected: {match.group(0)}")
            score = max(score, SPAM_SCORE)
            confidence = max(confidence, SPAM_CONFIDENCE)

    if text and len(text) > CAPS_MIN_LENGTH:
        caps_ratio = len(_UPPER_RE.findall(text)) / len(text)
        if caps_ratio > CAPS_RATIO_THRESHOLD:
            details.append("Excessive capitalization detected")
            score = max(score, CAPS_SCORE)
            confidence = max(confidence, CAPS_CONFIDENCE)

    if _REPEAT_RE.search(text):
        details.append("Repetitive characters detected")
        score = max(score, REPEAT_SCORE)
        confidence = max(confidence, REPEAT_CONFIDENCE)

    return CategoryScore(score=score, confidence=confidence, details=tuple(details))


def _image_category(record: ContentRecord, heuristic: ImageHeuristic) -> Optional[CategoryScore]:
    try:
        score, confidence, details = heuristic.analyze(record)
    except Exception:
        logger.exception("image heuristic failed for content %s", record.id)
        return None
    return CategoryScore(
        score=clamp(float(score), 0.0, 100.0),
        confidence=clamp(float(confidence), 0.0, 1.0),
        details=tuple(str(item) for item in details),
    )


def _rules_category(violations: Sequence[ContentViolation]) -> CategoryScore:
    return CategoryScore(
        score=max(violation.score for violation in violations),
        confidence=RULES_CATEGORY_CONFIDENCE,
        details=tuple(violation.description for violation in violations),
    )


def build_recommendations(overall_score: float) -> tuple[Recommendation, ...]:
    # 20 <= score < 40 intentionally yields no recommendation
    if overall_score >= 80:
        return (Recommendation(ModerationAction.REJECT, "High risk content detected", 0.9, ViolationSeverity.HIGH),)
    if overall_score >= 60:
        return (
            Recommendation(
                ModerationAction.REQUIRE_AGE_VERIFICATION,
                "Potentially inappropriate content",
                0.7,
                ViolationSeverity.MEDIUM,
            ),
        )
    if overall_score >= 40:
        return (
            Recommendation(
                ModerationAction.WARNING,
                "Content may violate community guidelines",
                0.6,
                ViolationSeverity.LOW,
            ),
        )
    if overall_score < 20:
        return (Recommendation(ModerationAction.APPROVE, "Content appears to be safe", 0.8, ViolationSeverity.LOW),)
    return ()


def requires_human_review(
    overall_score: float,
    categories: Mapping[str, CategoryScore],
    recommendations: Sequence[Recommendation],
) -> bool:
    """Borderline band, a low-confidence triggered signal, or a low-confidence recommendation.

    Categories that fired no signal carry no confidence and are ignored.
    """

    low, high = REVIEW_BAND
    if low <= overall_score <= high:
        return True
    if any(category.triggered and category.confidence < MIN_CATEGORY_CONFIDENCE for category in categories.values()):
        return True
    return any(rec.confidence < MIN_RECOMMENDATION_CONFIDENCE for rec in recommendations)


def analyze_content(
    record: ContentRecord,
    *,
    lexicon: ModerationLexicon,
    ruleset: Optional[RuleSet] = None,
    policy: Optional[EvaluationPolicy] = None,
    image_heuristic: Optional[ImageHeuristic] = None,
) -> ModerationResult:
    """Run every heuristic and rule over ``record``; always returns a result."""

    categories: dict[str, CategoryScore] = {}
    if record.content:
        categories["text"] = analyze_text(record.content, lexicon)
    if record.title:
        categories["title"] = analyze_text(record.title, lexicon)
    if record.content_type is ContentType.IMAGE and image_heuristic is not None:
        image = _image_category(record, image_heuristic)
        if image is not None:
            categories["image"] = image

    violations: list[ContentViolation] = []
    if ruleset is not None:
        violations = evaluate_rules(ruleset, record, policy)
        if violations:
            categories["rules"] = _rules_category(violations)

    overall = clamp(max((category.score for category in categories.values()), default=0.0), 0.0, 100.0)
    recommendations = build_recommendations(overall)
    return ModerationResult(
        content_id=record.id,
        overall_score=overall,
        categories=categories,
        recommendations=recommendations,
        violations=tuple(violations),
        requires_human_review=requires_human_review(overall, categories, recommendations),
    )


def decide_initial_status(result: ModerationResult) -> ModerationStatus:
    """Classification outcome; mid-band scores that need no review stay pending."""

    if result.requires_human_review:
        return ModerationStatus.UNDER_REVIEW
    if result.overall_score < 20:
        return ModerationStatus.AUTO_APPROVED
    if result.overall_score >= 80:
        return ModerationStatus.REJECTED
    return ModerationStatus.PENDING


def classification_event(status: ModerationStatus) -> Optional[str]:
    return {
        ModerationStatus.AUTO_APPROVED: "auto_approve",
        ModerationStatus.UNDER_REVIEW: "queue_for_review",
        ModerationStatus.REJECTED: "auto_reject",
    }.get(status)


def decision_event(decision: ReviewerDecision) -> str:
    return _DECISION_EVENTS[decision]


__all__ = [
    "ImageHeuristic",
    "analyze_text",
    "analyze_content",
    "build_recommendations",
    "requires_human_review",
    "decide_initial_status",
    "classification_event",
    "decision_event",
]
