"""Unit tests for the token ledger and atomic blocks."""

import pytest

from basketvault.core.errors import InsufficientBalance, InvalidAmount
from basketvault.core.ledger import Journaled, Ledger, ManualClock

ALICE = "0x" + "3" * 40
BOB = "0x" + "4" * 40
TOKEN = "0x" + "5" * 40


class Counter(Journaled):
    _journaled_fields = ("value", "history")

    def __init__(self):
        self.value = 0
        self.history = []


class TestTokenLedger:
    """Tests for balances and transfers."""

    def test_mint_transfer_burn(self, ledger):
        tokens = ledger.tokens
        tokens.mint(TOKEN, ALICE, 100)
        tokens.transfer(TOKEN, ALICE, BOB, 40)
        tokens.burn(TOKEN, BOB, 10)

        assert tokens.balance_of(TOKEN, ALICE) == 60
        assert tokens.balance_of(TOKEN, BOB) == 30
        assert tokens.total_supply(TOKEN) == 90
        assert sorted(tokens.holders(TOKEN)) == sorted([ALICE, BOB])

    def test_overdraft_rejected(self, ledger):
        ledger.tokens.mint(TOKEN, ALICE, 5)
        with pytest.raises(InsufficientBalance):
            ledger.tokens.transfer(TOKEN, ALICE, BOB, 6)

    def test_negative_and_fractional_amounts_rejected(self, ledger):
        with pytest.raises(InvalidAmount):
            ledger.tokens.mint(TOKEN, ALICE, -1)
        with pytest.raises(InvalidAmount):
            ledger.tokens.mint(TOKEN, ALICE, 1.5)


class TestAtomic:
    """Tests for all-or-nothing blocks."""

    def test_failure_restores_every_participant(self, ledger):
        counter = Counter()
        ledger.register(counter)
        ledger.tokens.mint(TOKEN, ALICE, 100)

        with pytest.raises(InsufficientBalance):
            with ledger.atomic():
                counter.value = 7
                counter.history.append("step")
                ledger.tokens.transfer(TOKEN, ALICE, BOB, 50)
                ledger.tokens.transfer(TOKEN, ALICE, BOB, 500)

        assert counter.value == 0
        assert counter.history == []
        assert ledger.tokens.balance_of(TOKEN, ALICE) == 100
        assert ledger.tokens.balance_of(TOKEN, BOB) == 0

    def test_caught_inner_failure_keeps_outer_work(self, ledger):
        ledger.tokens.mint(TOKEN, ALICE, 100)
        with ledger.atomic():
            ledger.tokens.transfer(TOKEN, ALICE, BOB, 10)
            try:
                with ledger.atomic():
                    ledger.tokens.transfer(TOKEN, ALICE, BOB, 20)
                    raise ValueError("inner")
            except ValueError:
                pass

        assert ledger.tokens.balance_of(TOKEN, BOB) == 10

    def test_register_is_idempotent(self, ledger):
        counter = Counter()
        ledger.register(counter)
        ledger.register(counter)
        with pytest.raises(RuntimeError):
            with ledger.atomic():
                counter.value = 1
                raise RuntimeError()
        assert counter.value == 0


class TestManualClock:
    def test_advance(self):
        clock = ManualClock(start=100)
        ledger = Ledger(clock)
        assert ledger.now() == 100
        clock.advance(50)
        assert ledger.now() == 150
