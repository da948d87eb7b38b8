from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, TypeVar

import yaml

from ..types import BadgeType, DisputePriority, QueuePriority, TrustLevel

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)

__all__ = [
    "DEFAULT_BADGE_BONUS",
    "DEFAULT_ENDORSEMENT_WEIGHTS",
    "DEFAULT_QUEUE_DUE_HOURS",
    "DEFAULT_DISPUTE_DUE_DAYS",
    "ScoringTables",
    "build_tables",
    "load_scoring_tables",
]


DEFAULT_BADGE_BONUS: dict[BadgeType, int] = {
    BadgeType.EMAIL_VERIFIED: 2,
    BadgeType.PHONE_VERIFIED: 3,
    BadgeType.IDENTITY_VERIFIED: 10,
    BadgeType.ADDRESS_VERIFIED: 5,
    BadgeType.BUSINESS_VERIFIED: 15,
    BadgeType.PAYMENT_VERIFIED: 5,
    BadgeType.EXPERT_SELLER: 20,
    BadgeType.TOP_RATED: 15,
}

DEFAULT_ENDORSEMENT_WEIGHTS: dict[TrustLevel, float] = {
    TrustLevel.UNVERIFIED: 0.1,
    TrustLevel.BASIC: 0.3,
    TrustLevel.VERIFIED: 0.5,
    TrustLevel.TRUSTED: 0.7,
    TrustLevel.PREMIUM: 0.9,
    TrustLevel.EXPERT: 1.0,
    TrustLevel.SUSPENDED: 0.0,
    TrustLevel.BANNED: 0.0,
}

# Moderation queue SLA, hours.
DEFAULT_QUEUE_DUE_HOURS: dict[QueuePriority, int] = {
    QueuePriority.CRITICAL: 1,
    QueuePriority.URGENT: 4,
    QueuePriority.HIGH: 12,
    QueuePriority.NORMAL: 24,
    QueuePriority.LOW: 72,
}

# Dispute SLA, days. Kept apart from the queue table on purpose.
DEFAULT_DISPUTE_DUE_DAYS: dict[DisputePriority, int] = {
    DisputePriority.CRITICAL: 1,
    DisputePriority.URGENT: 3,
    DisputePriority.HIGH: 7,
    DisputePriority.MEDIUM: 14,
    DisputePriority.LOW: 30,
}


def _frozen(mapping: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(slots=True, frozen=True)
class ScoringTables:
    badge_bonus: Mapping[BadgeType, int] = field(default_factory=lambda: _frozen(DEFAULT_BADGE_BONUS))
    endorsement_weights: Mapping[TrustLevel, float] = field(
        default_factory=lambda: _frozen(DEFAULT_ENDORSEMENT_WEIGHTS)
    )
    queue_due_hours: Mapping[QueuePriority, int] = field(default_factory=lambda: _frozen(DEFAULT_QUEUE_DUE_HOURS))
    dispute_due_days: Mapping[DisputePriority, int] = field(
        default_factory=lambda: _frozen(DEFAULT_DISPUTE_DUE_DAYS)
    )


def _load_yaml(path: str | Path) -> dict[str, Any]:
    try:
        with Path(path).open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}
    except FileNotFoundError:
        return {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("failed to read scoring tables %s: %s", path, exc)
        return {}
    if isinstance(data, Mapping):
        return dict(data)
    return {}


def _merge_section(
    section: str,
    base: Mapping[E, Any],
    enum_cls: type[E],
    overrides: Any,
    cast: type,
) -> dict[E, Any]:
    merged = dict(base)
    if overrides is None:
        return merged
    if not isinstance(overrides, Mapping):
        logger.warning("scoring table %s must be a mapping, got %s", section, type(overrides).__name__)
        return merged
    for raw_key, raw_value in overrides.items():
        try:
            key = enum_cls(str(raw_key).strip().lower())
        except ValueError:
            logger.warning("scoring table %s: unknown key %r ignored", section, raw_key)
            continue
        try:
            value = cast(raw_value)
        except (TypeError, ValueError):
            logger.warning("scoring table %s.%s: non-numeric value %r ignored", section, raw_key, raw_value)
            continue
        if value < 0:
            logger.warning("scoring table %s.%s: negative value %r ignored", section, raw_key, raw_value)
            continue
        merged[key] = value
    return merged


def build_tables(overrides: Mapping[str, Any] | None = None) -> ScoringTables:
    """Merge ``overrides`` over the built-in tables; malformed entries are skipped."""

    payload = overrides or {}
    return ScoringTables(
        badge_bonus=_frozen(
            _merge_section("badge_bonus", DEFAULT_BADGE_BONUS, BadgeType, payload.get("badge_bonus"), int)
        ),
        endorsement_weights=_frozen(
            _merge_section(
                "endorsement_weights",
                DEFAULT_ENDORSEMENT_WEIGHTS,
                TrustLevel,
                payload.get("endorsement_weights"),
                float,
            )
        ),
        queue_due_hours=_frozen(
            _merge_section("queue_due_hours", DEFAULT_QUEUE_DUE_HOURS, QueuePriority, payload.get("queue_due_hours"), int)
        ),
        dispute_due_days=_frozen(
            _merge_section(
                "dispute_due_days",
                DEFAULT_DISPUTE_DUE_DAYS,
                DisputePriority,
                payload.get("dispute_due_days"),
                int,
            )
        ),
    )


def load_scoring_tables(path: str | Path) -> ScoringTables:
    return build_tables(_load_yaml(path))
