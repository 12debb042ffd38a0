"""Tests for the two-tier CooldownPolicy."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from weeklybot.schedule.cooldown import CooldownDecision, CooldownPolicy
from weeklybot.schedule.ledger import DeliveryLedger, LedgerLookup
from weeklybot.schedule.storage import JsonRecordStore

NOW = datetime(2026, 10, 19, 0, 30, tzinfo=timezone.utc)


@pytest.fixture
def policy():
    return CooldownPolicy(clock=lambda: NOW)


def _spy_ledger(delivered=False):
    ledger = MagicMock(spec=DeliveryLedger)
    ledger.lookup = AsyncMock(return_value=LedgerLookup(delivered=delivered))
    return ledger


def _since(ledger):
    return ledger.lookup.await_args.args[1]


# ============================================================================
# Window selection
# ============================================================================


class TestWindowSelection:
    @pytest.mark.parametrize("distance, window", [(0, 5), (1, 5), (2, 5), (3, 15), (15, 15)])
    def test_window_minutes(self, policy, distance, window):
        assert policy.window_minutes(distance) == window

    @pytest.mark.asyncio
    async def test_distance_two_queries_five_minutes_back(self, policy):
        ledger = _spy_ledger()
        await policy.should_suppress("r1", 2, ledger)
        assert _since(ledger) == NOW - timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_distance_three_queries_fifteen_minutes_back(self, policy):
        ledger = _spy_ledger()
        await policy.should_suppress("r1", 3, ledger)
        assert _since(ledger) == NOW - timedelta(minutes=15)

    @pytest.mark.asyncio
    async def test_explicit_now_overrides_clock(self, policy):
        ledger = _spy_ledger()
        later = NOW + timedelta(hours=1)
        await policy.should_suppress("r1", 0, ledger, now=later)
        assert _since(ledger) == later - timedelta(minutes=5)

    def test_values_are_configurable(self):
        policy = CooldownPolicy(
            short_cooldown_minutes=1, long_cooldown_minutes=10, close_distance_threshold=0
        )
        assert policy.window_minutes(0) == 1
        assert policy.window_minutes(1) == 10


# ============================================================================
# Suppression against a real ledger
# ============================================================================


class TestShouldSuppress:
    @pytest.fixture
    def store(self, tmp_path):
        return JsonRecordStore(tmp_path / "store.json")

    @pytest.fixture
    def ledger(self, store):
        return DeliveryLedger(store)

    @pytest.mark.asyncio
    async def test_no_prior_delivery(self, policy, ledger):
        assert await policy.should_suppress("r1", 0, ledger) is False

    @pytest.mark.asyncio
    async def test_close_distance_prior_four_minutes_ago_suppressed(self, policy, store, ledger):
        store.insert_delivery("r1", NOW - timedelta(minutes=4))
        assert await policy.should_suppress("r1", 2, ledger) is True

    @pytest.mark.asyncio
    async def test_close_distance_prior_six_minutes_ago_allowed(self, policy, store, ledger):
        store.insert_delivery("r1", NOW - timedelta(minutes=6))
        assert await policy.should_suppress("r1", 2, ledger) is False

    @pytest.mark.asyncio
    async def test_far_distance_prior_six_minutes_ago_suppressed(self, policy, store, ledger):
        """d=3 switches to the 15-minute window, so a send 6 minutes ago still counts."""
        store.insert_delivery("r1", NOW - timedelta(minutes=6))
        assert await policy.should_suppress("r1", 3, ledger) is True

    @pytest.mark.asyncio
    async def test_far_distance_prior_sixteen_minutes_ago_allowed(self, policy, store, ledger):
        store.insert_delivery("r1", NOW - timedelta(minutes=16))
        assert await policy.should_suppress("r1", 3, ledger) is False

    @pytest.mark.asyncio
    async def test_decide_reports_detail(self, policy, store, ledger):
        store.insert_delivery("r1", NOW - timedelta(minutes=4))
        decision = await policy.decide("r1", 5, ledger)
        assert decision == CooldownDecision(
            suppress=True,
            window_minutes=15,
            ledger_available=True,
            last_sent_at=NOW - timedelta(minutes=4),
        )

    @pytest.mark.asyncio
    async def test_unavailable_ledger_does_not_suppress(self, policy):
        ledger = MagicMock(spec=DeliveryLedger)
        ledger.lookup = AsyncMock(return_value=LedgerLookup(delivered=False, error="down"))
        decision = await policy.decide("r1", 0, ledger)
        assert decision.suppress is False
        assert decision.ledger_available is False
