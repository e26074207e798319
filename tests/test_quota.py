"""Tests for the weekly quota gate."""

from datetime import datetime, timedelta

import pytest

from src.services.quota import (
    QuotaCeilings,
    QuotaGate,
    ResourceClass,
    TokenTier,
    UserTier,
    derive_user_tier,
    tier_meets_requirement,
    week_start,
)


@pytest.fixture
def gate(clock, ceilings) -> QuotaGate:
    return QuotaGate(tier=UserTier.FREE, ceilings=ceilings, clock=clock)


def test_week_start_is_monday_midnight():
    assert week_start(datetime(2026, 10, 14, 15, 30)) == datetime(2026, 10, 12)
    assert week_start(datetime(2026, 10, 12, 0, 0)) == datetime(2026, 10, 12)
    assert week_start(datetime(2026, 10, 18, 23, 59)) == datetime(2026, 10, 12)


def test_free_tier_counts_up_to_ceiling(gate: QuotaGate):
    for _ in range(3):
        assert gate.can_use(ResourceClass.AI_VOICE)
        gate.increment(ResourceClass.AI_VOICE)

    assert not gate.can_use(ResourceClass.AI_VOICE)
    assert gate.remaining(ResourceClass.AI_VOICE) == 0
    assert gate.can_use(ResourceClass.DUBBING)


def test_remaining_floors_at_zero(gate: QuotaGate):
    for _ in range(7):
        gate.increment(ResourceClass.SAVE)

    assert gate.used(ResourceClass.SAVE) == 7
    assert gate.remaining(ResourceClass.SAVE) == 0


def test_guest_can_never_save(clock, ceilings):
    gate = QuotaGate(tier=UserTier.GUEST, ceilings=ceilings, clock=clock)

    assert not gate.can_use(ResourceClass.SAVE)
    assert gate.can_use(ResourceClass.AI_VOICE)
    assert gate.can_use(ResourceClass.DUBBING)


def test_premium_is_unbounded(clock, ceilings):
    gate = QuotaGate(tier=UserTier.PREMIUM, ceilings=ceilings, clock=clock)

    for _ in range(20):
        gate.increment(ResourceClass.SAVE)

    assert gate.can_use(ResourceClass.SAVE)
    assert gate.used(ResourceClass.SAVE) == 0
    assert gate.remaining(ResourceClass.SAVE) is None


def test_premium_ignores_exhausted_counters(gate: QuotaGate):
    for _ in range(5):
        gate.increment(ResourceClass.SAVE)
    gate.set_tier(UserTier.PREMIUM)

    assert gate.can_use(ResourceClass.SAVE)


def test_set_tier_keeps_counters(gate: QuotaGate):
    gate.increment(ResourceClass.DUBBING)
    gate.increment(ResourceClass.DUBBING)
    gate.set_tier(UserTier.GUEST)
    gate.set_tier(UserTier.FREE)

    assert gate.used(ResourceClass.DUBBING) == 2


def test_new_week_resets_counters_on_read(gate: QuotaGate, clock):
    for resource in ResourceClass:
        for _ in range(5):
            gate.increment(resource)
    assert not gate.can_use(ResourceClass.SAVE)

    # Sunday night -> Monday morning, nothing called in between
    clock.now = datetime(2026, 10, 19, 0, 0, 1)

    assert gate.can_use(ResourceClass.SAVE)
    assert gate.window_start == datetime(2026, 10, 19)
    for resource in ResourceClass:
        assert gate.used(resource) == 0


def test_same_week_does_not_reset(gate: QuotaGate, clock):
    gate.increment(ResourceClass.SAVE)
    clock.now = clock.now + timedelta(days=4)

    assert gate.used(ResourceClass.SAVE) == 1


def test_snapshot_round_trip(gate: QuotaGate, clock, ceilings):
    gate.increment(ResourceClass.SAVE)
    gate.increment(ResourceClass.DUBBING)

    restored = QuotaGate.from_snapshot(gate.to_snapshot(), ceilings=ceilings, clock=clock)

    assert restored.tier == UserTier.FREE
    assert restored.used(ResourceClass.SAVE) == 1
    assert restored.used(ResourceClass.DUBBING) == 1
    assert restored.window_start == gate.window_start


def test_restored_stale_snapshot_resets(clock, ceilings):
    snapshot = {
        "tier": "free",
        "saves_used": 5,
        "ai_voice_used": 3,
        "dubbing_used": 3,
        "window_start": datetime(2026, 9, 28).isoformat(),
    }
    gate = QuotaGate.from_snapshot(snapshot, ceilings=ceilings, clock=clock)

    assert gate.remaining_all() == {"save": 5, "ai_voice": 3, "dubbing": 3}


def test_custom_ceilings(clock):
    gate = QuotaGate(tier=UserTier.FREE, ceilings=QuotaCeilings(saves=1), clock=clock)
    gate.increment(ResourceClass.SAVE)
    assert not gate.can_use(ResourceClass.SAVE)


@pytest.mark.parametrize(
    "connected,token_tier,expected",
    [
        (False, TokenTier.PREMIUM, UserTier.GUEST),
        (True, None, UserTier.FREE),
        (True, TokenTier.NONE, UserTier.FREE),
        (True, TokenTier.BASIC, UserTier.PREMIUM),
        (True, TokenTier.PRO, UserTier.PREMIUM),
    ],
)
def test_derive_user_tier(connected, token_tier, expected):
    assert derive_user_tier(connected, token_tier) == expected


def test_tier_ordering():
    assert tier_meets_requirement(UserTier.PREMIUM, UserTier.FREE)
    assert tier_meets_requirement(UserTier.FREE, UserTier.FREE)
    assert not tier_meets_requirement(UserTier.GUEST, UserTier.FREE)
