from __future__ import annotations

import math
from datetime import datetime, timedelta

import pytest

from trust_engine.scoring import (
    activity_score,
    build_profile,
    can_endorse,
    default_profile,
    detect_trust_alerts,
    endorsement_weight,
    profile_strength,
    reliability_score,
    reputation_score,
    social_score,
    trust_level_for,
)
from trust_engine.types import (
    AccountState,
    ActivityCounts,
    AlertSeverity,
    AlertType,
    Badge,
    BadgeStatus,
    BadgeType,
    OrderOutcome,
    ProfileStrength,
    RatingEvent,
    SocialCounts,
    SubjectSnapshot,
    TrustLevel,
)


def test_no_ratings_is_neutral(now: datetime) -> None:
    assert reputation_score([], now) == 50


@pytest.mark.parametrize("age_days", [0, 30, 365, 5000, 100000])
def test_single_max_rating_is_full_reputation_at_any_age(now: datetime, age_days: int) -> None:
    event = RatingEvent(value=5, created_at=now - timedelta(days=age_days))
    assert reputation_score([event], now) == 100


def test_recent_ratings_outweigh_old_ones(now: datetime) -> None:
    events = [
        RatingEvent(value=5, created_at=now),
        RatingEvent(value=1, created_at=now - timedelta(days=180)),
    ]
    recent_weight, old_weight = 1.0, math.exp(-1)
    expected = 100 * (5 * recent_weight + 1 * old_weight) / ((recent_weight + old_weight) * 5)
    assert reputation_score(events, now) == round(expected)
    assert reputation_score(events, now) > 60


def test_decay_constant_is_configurable(now: datetime) -> None:
    events = [
        RatingEvent(value=5, created_at=now),
        RatingEvent(value=1, created_at=now - timedelta(days=30)),
    ]
    assert reputation_score(events, now, decay_days=1) > reputation_score(events, now, decay_days=180)


def test_future_dated_rating_counts_as_fresh(now: datetime) -> None:
    events = [RatingEvent(value=4, created_at=now + timedelta(days=10))]
    assert reputation_score(events, now) == 80


def test_reliability_score(now: datetime) -> None:
    assert reliability_score([]) == 50
    on_time = OrderOutcome(status="delivered", delivered_at=now, expected_delivery_at=now + timedelta(days=1))
    late = OrderOutcome(status="delivered", delivered_at=now, expected_delivery_at=now - timedelta(days=1))
    cancelled = OrderOutcome(status="cancelled")
    assert reliability_score([on_time]) == 100
    assert reliability_score([late]) == 80
    assert reliability_score([cancelled]) == 0
    assert reliability_score([on_time, late, cancelled]) == 53


def test_activity_and_social_caps() -> None:
    assert activity_score(ActivityCounts(logins=100, orders=100, messages=100)) == 100
    assert activity_score(ActivityCounts(logins=3, orders=1, messages=4)) == 6 + 10 + 4
    assert social_score(SocialCounts(verified_endorsements=100, connections=100, posts=100)) == 100
    assert social_score(SocialCounts(verified_endorsements=2, connections=5, posts=1)) == 10 + 10 + 1


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (95, TrustLevel.EXPERT),
        (90, TrustLevel.EXPERT),
        (89, TrustLevel.PREMIUM),
        (70, TrustLevel.TRUSTED),
        (60, TrustLevel.VERIFIED),
        (40, TrustLevel.BASIC),
        (39, TrustLevel.UNVERIFIED),
    ],
)
def test_trust_level_bands(score: int, expected: TrustLevel) -> None:
    assert trust_level_for(score) is expected


def test_account_state_overrides_score() -> None:
    assert trust_level_for(99, AccountState.BANNED) is TrustLevel.BANNED
    assert trust_level_for(99, AccountState.SUSPENDED) is TrustLevel.SUSPENDED


def test_profile_strength(now: datetime) -> None:
    fields = {"first_name": "A", "last_name": "B", "email": "a@b.c", "phone": "", "bio": None}
    assert profile_strength(fields, [], now) is ProfileStrength.FAIR
    badges = [Badge("u1", BadgeType.EMAIL_VERIFIED, BadgeStatus.VERIFIED) for _ in range(4)]
    assert profile_strength(fields, badges, now) is ProfileStrength.GOOD
    full = {name: "x" for name in ("first_name", "last_name", "email", "phone", "bio", "avatar")}
    assert profile_strength(full, badges * 2, now) is ProfileStrength.EXCELLENT
    assert profile_strength({}, [], now) is ProfileStrength.WEAK


def test_endorsement_rules() -> None:
    assert endorsement_weight(TrustLevel.EXPERT) == pytest.approx(1.0)
    assert endorsement_weight(TrustLevel.BANNED) == 0.0
    assert not can_endorse(TrustLevel.UNVERIFIED)
    assert not can_endorse(TrustLevel.SUSPENDED)
    assert can_endorse(TrustLevel.BASIC)


def test_build_profile_derives_every_score(now: datetime) -> None:
    snapshot = SubjectSnapshot(
        subject_id="u1",
        ratings=(RatingEvent(value=5, created_at=now),),
        activity=ActivityCounts(logins=1),
        social=SocialCounts(posts=3),
    )
    profile = build_profile(snapshot, now, version=4)
    assert profile.trust_score == 50
    assert profile.trust_level is TrustLevel.BASIC
    assert profile.reputation_score == 100
    assert profile.reliability_score == 50
    assert profile.activity_score == 2
    assert profile.social_score == 3
    assert profile.version == 4
    assert profile.updated_at == now


def test_default_profile_is_neutral(now: datetime) -> None:
    profile = default_profile("new-user", now)
    assert profile.trust_score == 50
    assert profile.reputation_score == 50
    assert profile.version == 0


def test_reputation_drop_alert(now: datetime) -> None:
    previous = default_profile("u1", now)
    previous.trust_score = 80
    current = default_profile("u1", now)
    current.trust_score = 55
    alerts = detect_trust_alerts(previous, current, [], now)
    assert [alert.alert_type for alert in alerts] == [AlertType.REPUTATION_DROP]
    assert alerts[0].severity is AlertSeverity.HIGH

    current.trust_score = 30
    alerts = detect_trust_alerts(previous, current, [], now)
    assert alerts[0].severity is AlertSeverity.CRITICAL

    current.trust_score = 70
    assert detect_trust_alerts(previous, current, [], now) == []


def test_expiring_badges_alert(now: datetime) -> None:
    badges = [
        Badge("u1", BadgeType.IDENTITY_VERIFIED, BadgeStatus.VERIFIED, expires_at=now + timedelta(days=10)),
        Badge("u1", BadgeType.EMAIL_VERIFIED, BadgeStatus.VERIFIED, expires_at=now + timedelta(days=29)),
        Badge("u1", BadgeType.PHONE_VERIFIED, BadgeStatus.VERIFIED, expires_at=now + timedelta(days=90)),
        Badge("u1", BadgeType.ADDRESS_VERIFIED, BadgeStatus.VERIFIED, expires_at=now - timedelta(days=1)),
    ]
    alerts = detect_trust_alerts(None, default_profile("u1", now), badges, now)
    assert len(alerts) == 1
    assert alerts[0].alert_type is AlertType.VERIFICATION_EXPIRING
    assert alerts[0].metadata["count"] == 2
