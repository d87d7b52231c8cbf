"""Unit tests for the lending pool and its adapter."""

import pytest

from basketvault.core.constants import WAD
from basketvault.core.errors import CollateralInsufficient, RepayAmountExceedsDebt, UnsupportedAsset
from basketvault.core.models import LendingToken, PositionKind


class TestLendingPool:
    """Tests for supply, borrow, repay and collateral flags."""

    @pytest.fixture
    def supplied(self, addrs, fund, lending_pool):
        """Alice supplies 10,000 USDC and enables it as collateral."""
        fund(addrs.alice, addrs.usdc, 10_000)
        lending_pool.supply(addrs.alice, addrs.usdc, 10_000)
        lending_pool.set_collateral(addrs.alice, addrs.a_usdc, True)
        return lending_pool

    def test_supply_mints_protocol_token(self, addrs, ledger, supplied):
        assert ledger.tokens.balance_of(addrs.a_usdc, addrs.alice) == 10_000
        assert ledger.tokens.balance_of(addrs.usdc, addrs.pool) == 10_000

    def test_borrow_within_ltv(self, addrs, ledger, supplied):
        supplied.borrow(addrs.alice, addrs.debt, 8000)
        data = supplied.account_data(addrs.alice)

        assert ledger.tokens.balance_of(addrs.debt, addrs.alice) == 8000
        assert data.total_collateral_usd == 10_000 * WAD
        assert data.total_debt_usd == 8000 * WAD
        assert data.health_factor == WAD

    def test_borrow_beyond_ltv(self, addrs, supplied):
        with pytest.raises(CollateralInsufficient):
            supplied.borrow(addrs.alice, addrs.debt, 8001)

    def test_borrow_on_behalf_of(self, addrs, ledger, supplied):
        supplied.borrow(addrs.bob, addrs.debt, 3000, on_behalf_of=addrs.alice)

        assert ledger.tokens.balance_of(addrs.debt, addrs.bob) == 3000
        assert supplied.debt_of(addrs.alice, addrs.debt) == 3000
        assert supplied.debt_of(addrs.bob, addrs.debt) == 0

    def test_borrow_on_behalf_checks_debtor_health(self, addrs, supplied):
        with pytest.raises(CollateralInsufficient):
            supplied.borrow(addrs.alice, addrs.debt, 1, on_behalf_of=addrs.bob)

    def test_repay_more_than_debt(self, addrs, supplied):
        supplied.borrow(addrs.alice, addrs.debt, 100)
        with pytest.raises(RepayAmountExceedsDebt):
            supplied.repay(addrs.alice, addrs.debt, 101)

    def test_repay_clears_debt(self, addrs, supplied):
        supplied.borrow(addrs.alice, addrs.debt, 100)
        supplied.repay(addrs.alice, addrs.debt, 100)
        assert supplied.debt_of(addrs.alice, addrs.debt) == 0
        assert supplied.account_data(addrs.alice).health_factor == 0

    def test_collateral_toggle_is_idempotent(self, addrs, supplied):
        assert supplied.set_collateral(addrs.alice, addrs.a_usdc, True) is False
        assert supplied.set_collateral(addrs.alice, addrs.a_usdc, False) is True
        assert supplied.set_collateral(addrs.alice, addrs.a_usdc, False) is False

    def test_cannot_disable_collateral_backing_debt(self, addrs, supplied):
        supplied.borrow(addrs.alice, addrs.debt, 100)
        with pytest.raises(CollateralInsufficient):
            supplied.set_collateral(addrs.alice, addrs.a_usdc, False)

    def test_exchange_rate_reserve(self, addrs, ledger, fund, lending_pool):
        token, v_token = "0x" + "7" * 40, "0x" + "8" * 40
        lending_pool.add_reserve(token, v_token, ltv_bps=5000, exchange_rate=2 * WAD)
        fund(addrs.bob, token, 1000)

        minted = lending_pool.supply(addrs.bob, token, 1000)
        assert minted == 500
        assert lending_pool.redeem(addrs.bob, v_token, 500) == 1000
        assert ledger.tokens.balance_of(token, addrs.bob) == 1000

    def test_unknown_reserve(self, addrs, lending_pool):
        with pytest.raises(UnsupportedAsset):
            lending_pool.reserve(addrs.token_x)


class TestLendingAssetHandler:
    """Tests for lending token valuation."""

    def test_registry_registers_protocol_tokens(self, addrs, registry, lending_adapter):
        position = registry.position_for(addrs.a_usdc)
        assert isinstance(position, LendingToken)
        assert position.kind == PositionKind.LENDING
        assert position.underlying == addrs.usdc
        assert registry.lending_adapter_for_pool(addrs.pool) is lending_adapter

    def test_underlying_follows_exchange_rate(self, addrs, lending_adapter, lending_pool):
        position = lending_adapter.position_for(addrs.a_usdc)
        lending_pool.set_exchange_rate(addrs.usdc, 3 * WAD // 2)
        assert lending_adapter.underlying_for(position, 1000) == {addrs.usdc: 1500}

    def test_account_data_filters_tracked_tokens(self, addrs, fund, lending_adapter):
        fund(addrs.alice, addrs.usdc, 100)
        lending_adapter.supply(addrs.alice, addrs.usdc, 100)
        data = lending_adapter.get_user_account_data(addrs.alice, tracked_tokens=[addrs.a_debt])
        assert data.supplied == {}

    def test_wrong_pool_rejected(self, addrs, lending_adapter):
        with pytest.raises(ValueError):
            lending_adapter.get_user_account_data(addrs.alice, pool=addrs.vault)
