"""Unit tests for basket resolution across position kinds."""

import pytest

from basketvault.core.constants import WAD
from basketvault.core.errors import InvalidPositionRange, UnsupportedAsset
from basketvault.core.models import FeeState, SwapCallData, Vault, VaultParameters
from basketvault.engine.calculations import PortfolioCalculations
from basketvault.engine.resolver import TokenBalanceResolver
from basketvault.protocols.amm import ConcentratedLiquidityPool, PositionWrapper, PositionWrapperAdapter

AMM_POOL = "0x" + "0" * 38 + "50"
WRAPPER = "0x" + "0" * 38 + "51"


class TestFixtures:
    """Test fixtures for resolver tests."""

    @staticmethod
    def create_vault(address: str, tokens) -> Vault:
        return Vault(
            address=address,
            params=VaultParameters(
                name="Resolve",
                symbol="RSV",
                asset_manager="0x" + "1" * 40,
                asset_manager_treasury="0x" + "2" * 40,
            ),
            tokens=list(tokens),
            creation_timestamp=0,
            cooldown_period=0,
            fee_state=FeeState(0, 0),
        )


class TestPositionWrapper:
    """Tests for the concentrated-liquidity wrapper."""

    @pytest.fixture
    def wrapper(self, addrs, ledger, registry, fund):
        pool = ConcentratedLiquidityPool(AMM_POOL, ledger, addrs.token_a, addrs.token_b)
        wrapper = PositionWrapper(WRAPPER, pool, -600, 600)
        registry.register_wrapper(PositionWrapperAdapter("uniswap"), wrapper)
        fund(addrs.lp_supplier, addrs.token_a, 1000)
        fund(addrs.lp_supplier, addrs.token_b, 1000)
        wrapper.deposit(addrs.lp_supplier, 1000, 1000, recipient=addrs.vault)
        return wrapper

    def test_invalid_range(self, addrs, ledger):
        pool = ConcentratedLiquidityPool(AMM_POOL, ledger, addrs.token_a, addrs.token_b)
        with pytest.raises(InvalidPositionRange):
            PositionWrapper(WRAPPER, pool, 600, -600)

    def test_in_range_position_holds_both_tokens(self, addrs, ledger, registry, wrapper):
        resolver = TokenBalanceResolver(ledger, registry)
        snapshot = resolver.resolve_basket(TestFixtures.create_vault(addrs.vault, [WRAPPER]))

        assert snapshot.holdings[WRAPPER] == wrapper.total_supply
        assert 998 <= snapshot.assets[addrs.token_a] <= 1000
        assert 998 <= snapshot.assets[addrs.token_b] <= 1000

    def test_above_range_position_is_all_token1(self, addrs, ledger, registry, wrapper):
        wrapper.pool.set_tick(700)
        underlying = TokenBalanceResolver(ledger, registry).underlying_for(WRAPPER, wrapper.total_supply)

        assert addrs.token_a not in underlying
        assert underlying[addrs.token_b] > 1000

    def test_withdraw_returns_tokens(self, addrs, ledger, wrapper):
        amount0, amount1 = wrapper.withdraw(addrs.vault, wrapper.total_supply)
        assert ledger.tokens.balance_of(addrs.token_a, addrs.vault) == amount0
        assert ledger.tokens.balance_of(addrs.token_b, addrs.vault) == amount1
        assert wrapper.total_liquidity == 0

    def test_handler_sells_but_cannot_buy_wrapper(self, addrs, ledger, handler, wrapper):
        shares = ledger.tokens.balance_of(WRAPPER, addrs.vault)
        handler.swap_from(ledger, addrs.vault, [SwapCallData(WRAPPER, addrs.usdc, shares, 1990)])
        assert ledger.tokens.balance_of(addrs.usdc, addrs.vault) >= 1990

        ledger.tokens.mint(addrs.usdc, addrs.bob, 100)
        with pytest.raises(UnsupportedAsset):
            handler.swap_from(ledger, addrs.bob, [SwapCallData(addrs.usdc, WRAPPER, 100, 0)])


class TestBasketResolution:
    """Tests for mixed baskets with liabilities."""

    def test_plain_lending_and_debt(self, addrs, ledger, registry, fund, lending_adapter, oracle):
        vault = TestFixtures.create_vault(addrs.vault, [addrs.token_a, addrs.a_usdc, addrs.debt])
        fund(addrs.vault, addrs.token_a, 500)
        fund(addrs.vault, addrs.usdc, 1000)
        lending_adapter.supply(addrs.vault, addrs.usdc, 1000)
        lending_adapter.set_collateral(addrs.vault, addrs.a_usdc, True)
        lending_adapter.borrow(addrs.vault, addrs.debt, 300)
        vault.track_debt(addrs.pool, addrs.debt)

        snapshot = TokenBalanceResolver(ledger, registry).resolve_basket(vault)

        assert snapshot.assets == {addrs.token_a: 500, addrs.usdc: 1000, addrs.debt: 300}
        assert snapshot.liabilities == {addrs.debt: 300}
        assert snapshot.has_liabilities

        assert PortfolioCalculations(oracle).total_vault_value_usd(snapshot) == 1500 * WAD

    def test_unregistered_token_aborts(self, addrs, ledger, registry):
        vault = TestFixtures.create_vault(addrs.vault, [addrs.token_a, "0x" + "7" * 40])
        with pytest.raises(UnsupportedAsset):
            TokenBalanceResolver(ledger, registry).resolve_basket(vault)
