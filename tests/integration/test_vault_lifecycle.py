"""Integration tests for deposits, withdrawals, fees and share policy."""

import numpy as np
import pytest

from basketvault.core.constants import SECONDS_PER_YEAR, WAD
from basketvault.core.errors import (
    AssetLimitExceeded,
    CallerNeedToMaintainMinTokenAmount,
    CallerNotAssetManager,
    CooldownPeriodNotPassed,
    DuplicateToken,
    InsufficientBalance,
    InvalidAmount,
    InvalidFee,
    InvalidInitialPortfolioAmount,
    LengthMismatch,
    MintAmountBelowMinimum,
    ProtocolEmergencyPaused,
    ProtocolIsPaused,
    TokenNotWhitelisted,
    TransferNotAllowed,
    UnsupportedAsset,
    UserNotAllowedToDeposit,
    WithdrawalBelowMinimum,
)
from basketvault.core.models import FeeParameters


class TestVaultCreation:
    """Tests for creation-time validation."""

    def test_create(self, addrs, make_vault, clock):
        core = make_vault([addrs.token_a, addrs.token_b])
        assert core.tokens == [addrs.token_a, addrs.token_b]
        assert core.total_supply == 0
        assert core.vault.creation_timestamp == clock.timestamp
        assert core.vault.cooldown_period == 3600

    def test_fee_above_max(self, addrs, make_vault):
        with pytest.raises(InvalidFee):
            make_vault([addrs.token_a], fees=FeeParameters(entry_fee_bps=501))

    def test_initial_amount_below_floor(self, addrs, make_vault, config):
        config.min_initial_portfolio_amount = 1000
        with pytest.raises(InvalidInitialPortfolioAmount):
            make_vault([addrs.token_a])

    def test_duplicate_token(self, addrs, make_vault):
        with pytest.raises(DuplicateToken):
            make_vault([addrs.token_a, addrs.token_a])

    def test_unregistered_token(self, addrs, make_vault):
        with pytest.raises(UnsupportedAsset):
            make_vault([addrs.token_a, "0x" + "7" * 40])

    def test_asset_limit(self, addrs, make_vault, config):
        config.max_asset_limit = 1
        with pytest.raises(AssetLimitExceeded):
            make_vault([addrs.token_a, addrs.token_b])

    def test_token_whitelist(self, addrs, make_vault):
        with pytest.raises(TokenNotWhitelisted):
            make_vault(
                [addrs.token_a, addrs.token_b],
                whitelist_tokens=True,
                whitelisted_tokens=[addrs.token_a],
            )


class TestDeposit:
    """Tests for multi-token deposits."""

    def test_entry_fee_scenario(self, addrs, make_vault, fund):
        """Second deposit of 10% of the vault value mints 10 shares, 9 after a 1% entry fee."""
        core = make_vault([addrs.token_a], fees=FeeParameters(entry_fee_bps=100))
        fund(addrs.alice, addrs.token_a, 1000)
        fund(addrs.bob, addrs.token_a, 100)

        assert core.multi_token_deposit(addrs.alice, [1000]) == 99
        assert core.balance_of(addrs.treasury) == 1
        assert core.total_supply == 100

        assert core.multi_token_deposit(addrs.bob, [100]) == 9
        assert core.balance_of(addrs.treasury) == 2
        assert core.total_supply == 110
        assert core.total_value_usd() == 1100 * WAD

    def test_first_deposit_seeds_high_water_mark(self, addrs, make_vault, fund):
        core = make_vault([addrs.token_a])
        fund(addrs.alice, addrs.token_a, 1000)
        core.multi_token_deposit(addrs.alice, [1000])
        assert core.vault.fee_state.high_water_mark_per_share == 10 * WAD

    def test_first_deposit_needs_every_token(self, addrs, make_vault, fund):
        core = make_vault([addrs.token_a, addrs.token_b])
        fund(addrs.alice, addrs.token_a, 1000)
        with pytest.raises(InvalidAmount):
            core.multi_token_deposit(addrs.alice, [1000, 0])

    def test_later_deposit_may_skip_tokens(self, addrs, make_vault, fund):
        core = make_vault([addrs.token_a, addrs.token_b])
        fund(addrs.alice, addrs.token_a, 2000)
        fund(addrs.alice, addrs.token_b, 1000)
        core.multi_token_deposit(addrs.alice, [1000, 1000])
        assert core.multi_token_deposit(addrs.alice, [200, 0]) == 10

    def test_length_mismatch(self, addrs, make_vault):
        core = make_vault([addrs.token_a, addrs.token_b])
        with pytest.raises(LengthMismatch):
            core.multi_token_deposit(addrs.alice, [1])

    def test_min_mint_amount_rolls_back(self, addrs, ledger, make_vault, fund):
        core = make_vault([addrs.token_a])
        fund(addrs.alice, addrs.token_a, 1000)
        with pytest.raises(MintAmountBelowMinimum):
            core.multi_token_deposit(addrs.alice, [1000], min_mint_amount=101)

        assert core.total_supply == 0
        assert ledger.tokens.balance_of(addrs.token_a, addrs.alice) == 1000
        assert ledger.tokens.balance_of(addrs.token_a, addrs.vault) == 0

    def test_private_vault_whitelist(self, addrs, make_vault, fund):
        core = make_vault([addrs.token_a], public=False)
        fund(addrs.bob, addrs.token_a, 1000)
        with pytest.raises(UserNotAllowedToDeposit):
            core.multi_token_deposit(addrs.bob, [1000])

        with pytest.raises(CallerNotAssetManager):
            core.whitelist_users(addrs.bob, [addrs.bob])
        core.whitelist_users(addrs.asset_manager, [addrs.bob])
        assert core.multi_token_deposit(addrs.bob, [1000]) == 100

        core.remove_whitelisted_users(addrs.asset_manager, [addrs.bob])
        with pytest.raises(UserNotAllowedToDeposit):
            core.multi_token_deposit(addrs.bob, [1])

    def test_paused_deposit(self, addrs, make_vault, config, fund):
        core = make_vault([addrs.token_a])
        fund(addrs.alice, addrs.token_a, 1000)
        config.set_protocol_pause(True)
        with pytest.raises(ProtocolIsPaused):
            core.multi_token_deposit(addrs.alice, [1000])


class TestWithdrawal:
    """Tests for multi-token withdrawals."""

    @pytest.fixture
    def funded(self, addrs, make_vault, fund):
        """Alice holds all 100 shares of a vault with 1000 A and 500 B."""

        def _funded(**kwargs):
            core = make_vault([addrs.token_a, addrs.token_b], **kwargs)
            fund(addrs.alice, addrs.token_a, 1000)
            fund(addrs.alice, addrs.token_b, 500)
            core.multi_token_deposit(addrs.alice, [1000, 500])
            return core

        return _funded

    def test_pro_rata_payout(self, addrs, ledger, clock, funded):
        core = funded()
        clock.advance(3600)
        result = core.multi_token_withdrawal(addrs.alice, 30)

        assert result.amounts == {addrs.token_a: 300, addrs.token_b: 150}
        assert result.shares_burned == 30
        assert core.total_supply == 70
        assert ledger.tokens.balance_of(addrs.token_a, addrs.alice) == 300

    def test_cooldown(self, addrs, clock, funded):
        core = funded()
        clock.advance(3599)
        with pytest.raises(CooldownPeriodNotPassed):
            core.multi_token_withdrawal(addrs.alice, 10)

    def test_exit_fee_moves_to_treasury(self, addrs, clock, funded):
        core = funded(fees=FeeParameters(exit_fee_bps=100))
        clock.advance(3600)
        result = core.multi_token_withdrawal(addrs.alice, 50)

        assert result.shares_burned == 49
        assert result.exit_fee_shares == 1
        assert result.amounts == {addrs.token_a: 490, addrs.token_b: 245}
        assert core.balance_of(addrs.alice) == 50
        assert core.balance_of(addrs.treasury) == 1

    def test_min_holding(self, addrs, clock, funded):
        core = funded()
        core.update_min_portfolio_token_holding_amount(addrs.asset_manager, 10)
        clock.advance(3600)
        with pytest.raises(CallerNeedToMaintainMinTokenAmount):
            core.multi_token_withdrawal(addrs.alice, 95)
        core.multi_token_withdrawal(addrs.alice, 100)
        assert core.balance_of(addrs.alice) == 0

    def test_minimum_amounts_roll_back(self, addrs, ledger, clock, funded):
        core = funded()
        clock.advance(3600)
        with pytest.raises(WithdrawalBelowMinimum):
            core.multi_token_withdrawal(addrs.alice, 10, min_amounts=[100, 51])

        assert core.balance_of(addrs.alice) == 100
        assert ledger.tokens.balance_of(addrs.token_a, addrs.vault) == 1000

    def test_withdraw_to_receiver(self, addrs, ledger, clock, funded):
        core = funded()
        clock.advance(3600)
        core.multi_token_withdrawal(addrs.alice, 10, receiver=addrs.carol)
        assert ledger.tokens.balance_of(addrs.token_a, addrs.carol) == 100

    def test_withdrawal_allowed_during_protocol_pause(self, addrs, clock, config, funded):
        core = funded()
        clock.advance(3600)
        config.set_protocol_pause(True)
        core.multi_token_withdrawal(addrs.alice, 10)

        config.set_emergency_pause(True)
        with pytest.raises(ProtocolEmergencyPaused):
            core.multi_token_withdrawal(addrs.alice, 10)

    def test_more_than_balance(self, addrs, clock, funded):
        core = funded()
        clock.advance(3600)
        with pytest.raises(InvalidAmount):
            core.multi_token_withdrawal(addrs.alice, 0)
        with pytest.raises(InsufficientBalance):
            core.multi_token_withdrawal(addrs.alice, 101)


class TestShareTransfers:
    """Tests for share transfer policy."""

    @pytest.fixture
    def core(self, addrs, make_vault, fund):
        def _core(**kwargs):
            core = make_vault([addrs.token_a], **kwargs)
            fund(addrs.alice, addrs.token_a, 1000)
            core.multi_token_deposit(addrs.alice, [1000])
            return core

        return _core

    def test_transfer_restarts_recipient_cooldown(self, addrs, clock, core):
        vault = core()
        clock.advance(3600)
        vault.transfer_shares(addrs.alice, addrs.bob, 40)

        assert vault.balance_of(addrs.bob) == 40
        with pytest.raises(CooldownPeriodNotPassed):
            vault.multi_token_withdrawal(addrs.bob, 40)
        clock.advance(3600)
        vault.multi_token_withdrawal(addrs.bob, 40)

    def test_sender_cooldown(self, addrs, core):
        vault = core()
        with pytest.raises(CooldownPeriodNotPassed):
            vault.transfer_shares(addrs.alice, addrs.bob, 40)

    def test_non_transferable(self, addrs, clock, core):
        vault = core(transferable=False)
        clock.advance(3600)
        with pytest.raises(TransferNotAllowed):
            vault.transfer_shares(addrs.alice, addrs.bob, 40)

    def test_transfer_only_to_whitelisted(self, addrs, clock, core):
        vault = core(transferable_to_public=False, whitelisted_users=[addrs.carol])
        clock.advance(3600)
        with pytest.raises(TransferNotAllowed):
            vault.transfer_shares(addrs.alice, addrs.bob, 40)
        vault.transfer_shares(addrs.alice, addrs.carol, 40)
        assert vault.balance_of(addrs.carol) == 40


class TestFeeCharging:
    """Tests for fee charging through the vault."""

    def test_management_fee_over_a_year(self, addrs, clock, make_vault, fund):
        core = make_vault(
            [addrs.token_a],
            fees=FeeParameters(management_fee_bps=100),
            initial_portfolio_amount=1_000_000,
        )
        fund(addrs.alice, addrs.token_a, 1000)
        core.multi_token_deposit(addrs.alice, [1000])
        clock.advance(SECONDS_PER_YEAR)

        with pytest.raises(CallerNotAssetManager):
            core.charge_fees(addrs.alice)
        assert core.charge_fees(addrs.asset_manager) == (10_000, 0)
        assert core.balance_of(addrs.treasury) == 10_000

    def test_performance_fee_above_high_water_mark(self, addrs, oracle, make_vault, fund):
        core = make_vault([addrs.token_a], fees=FeeParameters(performance_fee_bps=2000))
        fund(addrs.alice, addrs.token_a, 1000)
        core.multi_token_deposit(addrs.alice, [1000])

        oracle.set_price(addrs.token_a, "1.2", decimals=0)
        assert core.charge_performance_fee(addrs.asset_manager) == 3
        assert core.vault.fee_state.high_water_mark_per_share == 12 * WAD

        oracle.set_price(addrs.token_a, "1.1", decimals=0)
        assert core.charge_performance_fee(addrs.asset_manager) == 0
        assert core.vault.fee_state.high_water_mark_per_share == 12 * WAD

    def test_high_water_mark_holds_through_deposits_and_withdrawals(self, addrs, clock, oracle, make_vault, fund):
        core = make_vault([addrs.token_a], fees=FeeParameters(performance_fee_bps=2000))
        fund(addrs.alice, addrs.token_a, 1000)
        core.multi_token_deposit(addrs.alice, [1000])
        rng = np.random.default_rng(11)

        mark = core.vault.fee_state.high_water_mark_per_share
        for _ in range(60):
            oracle.set_price(addrs.token_a, str(rng.choice(["0.8", "0.9", "1.0", "1.1", "1.2", "1.5"])), decimals=0)
            if rng.random() < 0.5:
                amount = int(rng.integers(100, 1001))
                fund(addrs.bob, addrs.token_a, amount)
                core.multi_token_deposit(addrs.bob, [amount])
            elif core.balance_of(addrs.bob):
                clock.advance(3600)
                core.multi_token_withdrawal(addrs.bob, max(core.balance_of(addrs.bob) // 2, 1))
            core.charge_performance_fee(addrs.asset_manager)

            assert core.vault.fee_state.high_water_mark_per_share >= mark
            mark = core.vault.fee_state.high_water_mark_per_share

        assert mark >= core.share_price()

    def test_fee_charging_blocked_by_emergency_pause(self, addrs, config, make_vault):
        core = make_vault([addrs.token_a])
        config.set_emergency_pause(True)
        with pytest.raises(ProtocolEmergencyPaused):
            core.charge_fees(addrs.asset_manager)
