"""
Unit tests for the hearts ledger and regeneration rules.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from skilltree.collaborators.memory import InMemoryPlatform
from skilltree.config import Settings
from skilltree.errors import CollaboratorError, TransientError
from skilltree.hearts import HeartsLedger, can_purchase_heart, hours_until_next_heart, regenerated_balance
from skilltree.models import HeartsBalance


@pytest.fixture
def store():
    return InMemoryPlatform(hearts=3)


class TestHeartsBalance:
    def test_negative_balance_is_clamped(self):
        assert HeartsBalance(balance=-2).balance == 0


class TestHeartsLedger:
    """Tests for the optimistic, reconciled ledger."""

    @pytest.mark.asyncio
    async def test_load_from_store(self, store):
        ledger = await HeartsLedger.load("ana", store)

        assert ledger.balance == 3
        assert ledger.can_start_attempt()
        assert not ledger.unlimited

    @pytest.mark.asyncio
    async def test_debit_reconciles_with_store(self, store):
        ledger = await HeartsLedger.load("ana", store)
        store.hearts["ana"] = 10  # someone bought hearts elsewhere

        balance = await ledger.debit()

        assert balance == 9
        assert ledger.balance == 9

    @pytest.mark.asyncio
    async def test_debit_is_optimistic(self, store):
        ledger = await HeartsLedger.load("ana", store)
        gate = store.hold()

        task = asyncio.create_task(ledger.debit())
        await asyncio.sleep(0)

        assert ledger.balance == 2
        assert ledger.pending
        gate.set()
        await task
        assert not ledger.pending

    @pytest.mark.asyncio
    async def test_failed_debit_rolls_back(self, store):
        ledger = await HeartsLedger.load("ana", store)
        store.fail_next("debit_hearts")

        with pytest.raises(TransientError):
            await ledger.debit()

        assert ledger.balance == 3
        assert store.hearts.get("ana", 3) == 3

    @pytest.mark.asyncio
    async def test_rejected_debit_rolls_back(self, store):
        ledger = await HeartsLedger.load("ana", store)
        store.fail_next("debit_hearts", CollaboratorError("nope"))

        with pytest.raises(CollaboratorError):
            await ledger.debit()

        assert ledger.balance == 3

    @pytest.mark.asyncio
    async def test_never_negative_and_one_depletion(self, store):
        ledger = await HeartsLedger.load("ana", store)

        for _ in range(6):
            await ledger.debit()

        assert ledger.balance == 0
        assert ledger.depleted
        assert ledger.depletions == 1
        assert not ledger.can_start_attempt()

    @pytest.mark.asyncio
    async def test_depletion_counted_again_after_refill(self, store):
        ledger = await HeartsLedger.load("ana", store)
        await ledger.debit(3)
        await ledger.credit(1)
        await ledger.debit()

        assert ledger.depletions == 2

    @pytest.mark.asyncio
    async def test_unlimited_never_debits(self, store):
        store.set_hearts("ana", 0, unlimited=True)
        ledger = await HeartsLedger.load("ana", store)

        await ledger.debit()

        assert ledger.can_start_attempt()
        assert ledger.can_answer_incorrectly()
        assert not ledger.depleted
        assert "debit_hearts" not in store.calls

    @pytest.mark.asyncio
    async def test_can_answer_incorrectly(self, store):
        store.set_hearts("ana", 1)
        ledger = await HeartsLedger.load("ana", store)

        assert ledger.would_deplete()
        assert not ledger.can_answer_incorrectly()

    @pytest.mark.asyncio
    async def test_reconcile(self, store):
        ledger = await HeartsLedger.load("ana", store)
        store.set_hearts("ana", 5)

        await ledger.reconcile()

        assert ledger.balance == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1])
    async def test_rejects_non_positive_amounts(self, store, amount):
        ledger = await HeartsLedger.load("ana", store)
        with pytest.raises(ValueError):
            await ledger.debit(amount)
        with pytest.raises(ValueError):
            await ledger.credit(amount)


class TestRegeneration:
    """Tests for time-based regeneration."""

    NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "hours,expected",
        [(0, 1), (4.9, 1), (5, 2), (12, 3), (100, 5)],
    )
    def test_one_heart_every_five_hours(self, hours, expected):
        last = self.NOW - timedelta(hours=hours)
        assert regenerated_balance(1, last, now=self.NOW) == expected

    def test_never_lowers_a_bought_balance(self):
        assert regenerated_balance(8, self.NOW - timedelta(days=3), now=self.NOW) == 8

    def test_naive_timestamps_are_utc(self):
        last = datetime(2026, 3, 1, 2, 0)
        assert regenerated_balance(0, last, now=self.NOW) == 2

    def test_hours_until_next_heart(self):
        last = self.NOW - timedelta(hours=7)
        assert hours_until_next_heart(2, last, now=self.NOW) == pytest.approx(3)
        assert hours_until_next_heart(5, last, now=self.NOW) is None

    def test_purchase(self):
        assert can_purchase_heart(current=2, zaps=10)
        assert not can_purchase_heart(current=2, zaps=9)
        assert not can_purchase_heart(current=5, zaps=100)


START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class Clock:
    """Settable clock for the in-memory store."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **delta):
        self.now += timedelta(**delta)


@pytest.fixture
def clock():
    return Clock(START)


class TestStoreRegeneration:
    """Regeneration and purchases as the store applies them."""

    @pytest.mark.asyncio
    async def test_reconcile_picks_up_regenerated_hearts(self, clock):
        store = InMemoryPlatform(hearts=5, clock=clock)
        ledger = await HeartsLedger.load("ana", store)
        await ledger.debit(4)

        clock.advance(hours=10)
        await ledger.reconcile()
        assert ledger.balance == 3

        clock.advance(hours=4.9)
        await ledger.reconcile()
        assert ledger.balance == 3

        clock.advance(hours=0.1)
        await ledger.reconcile()
        assert ledger.balance == 4

    @pytest.mark.asyncio
    async def test_time_at_full_balance_is_not_banked(self, clock):
        store = InMemoryPlatform(hearts=5, clock=clock)
        ledger = await HeartsLedger.load("ana", store)
        clock.advance(hours=20)

        await ledger.debit()
        clock.advance(hours=4)
        await ledger.reconcile()

        assert ledger.balance == 4
        assert store.next_heart_in("ana") == pytest.approx(1)

    @pytest.mark.asyncio
    async def test_hearts_config_sets_the_pace(self, clock):
        settings = Settings(_env_file=None, hours_per_heart=2, zaps_per_heart_purchase=3)
        store = InMemoryPlatform(hearts=5, clock=clock, **settings.get_hearts_config())
        ledger = await HeartsLedger.load("ana", store)
        await ledger.debit(2)

        clock.advance(hours=2)

        assert (await store.get_hearts("ana")).balance == 4
        assert store.heart_price == 3

    @pytest.mark.asyncio
    async def test_unlimited_learners_do_not_regenerate(self, clock):
        store = InMemoryPlatform(hearts=5, clock=clock)
        store.set_hearts("ana", 0, unlimited=True, last_reset=START)
        clock.advance(hours=50)

        assert (await store.get_hearts("ana")).balance == 0

    def test_next_heart_when_full(self, clock):
        store = InMemoryPlatform(hearts=5, clock=clock)

        assert store.next_heart_in("ana") is None

    @pytest.mark.asyncio
    async def test_purchase_with_zaps(self, store):
        store.set_zaps("ana", 25)
        ledger = await HeartsLedger.load("ana", store)

        balance = await ledger.purchase()

        assert balance == 4
        assert ledger.balance == 4
        assert store.zaps["ana"] == 15

    @pytest.mark.asyncio
    async def test_purchase_needs_enough_zaps(self, store):
        store.set_zaps("ana", 9)
        ledger = await HeartsLedger.load("ana", store)

        assert not store.can_purchase("ana")
        with pytest.raises(CollaboratorError):
            await ledger.purchase()

        assert ledger.balance == 3
        assert store.zaps["ana"] == 9

    @pytest.mark.asyncio
    async def test_purchase_refused_at_full_balance(self, store):
        store.set_hearts("ana", 5)
        store.set_zaps("ana", 100)

        with pytest.raises(CollaboratorError):
            await store.purchase_heart("ana")

        assert store.hearts["ana"] == 5
