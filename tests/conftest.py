"""Pytest configuration and fixtures."""

from dataclasses import dataclass
from typing import Callable, List, Optional

import pytest

from config.settings import Settings
from basketvault.core.ledger import Ledger, ManualClock
from basketvault.core.models import FeeParameters, VaultParameters
from basketvault.core.protocol_config import ProtocolConfig
from basketvault.engine import VaultCore
from basketvault.handlers import OracleSwapHandler
from basketvault.oracle import StaticPriceOracle
from basketvault.protocols import AssetRegistry, FlashLoanProvider
from basketvault.protocols.lending import LendingAssetHandler, LendingPool


def address(n: int) -> str:
    """Digit-only address, which is already in checksum form."""
    return "0x" + f"{n:040d}"


@dataclass(frozen=True)
class Addresses:
    asset_manager: str = address(1)
    treasury: str = address(2)
    alice: str = address(3)
    bob: str = address(4)
    carol: str = address(5)
    lp_supplier: str = address(6)

    vault: str = address(10)
    handler: str = address(20)
    flash_provider: str = address(21)
    pool: str = address(30)
    deposit_batch: str = address(40)
    withdraw_batch: str = address(41)

    # plain tokens, all $1 with 0 decimals
    token_a: str = address(101)
    token_b: str = address(102)
    token_x: str = address(103)
    usdc: str = address(104)
    debt: str = address(105)

    # lending receipt tokens
    a_usdc: str = address(201)
    a_debt: str = address(202)


@pytest.fixture
def addrs() -> Addresses:
    return Addresses()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def ledger(clock) -> Ledger:
    return Ledger(clock)


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Low issuance floors so share amounts stay readable."""
    return Settings(
        cooldown_period=3600,
        min_initial_portfolio_amount=1,
        min_portfolio_token_holding_amount=1,
        storage_dir=tmp_path / "storage",
    )


@pytest.fixture
def config(settings) -> ProtocolConfig:
    return ProtocolConfig(settings)


@pytest.fixture
def oracle(addrs) -> StaticPriceOracle:
    oracle = StaticPriceOracle()
    for token in (addrs.token_a, addrs.token_b, addrs.token_x, addrs.usdc, addrs.debt):
        oracle.set_price(token, "1", decimals=0)
    return oracle


@pytest.fixture
def registry(addrs) -> AssetRegistry:
    registry = AssetRegistry()
    for token in (addrs.token_a, addrs.token_b, addrs.token_x, addrs.usdc, addrs.debt):
        registry.register_token(token)
    return registry


@pytest.fixture
def lending_pool(addrs, ledger, oracle) -> LendingPool:
    """Pool with USDC and DEBT reserves at 80% LTV and 1,000,000 DEBT of liquidity."""
    pool = LendingPool(addrs.pool, ledger, oracle)
    pool.add_reserve(addrs.usdc, addrs.a_usdc, ltv_bps=8000)
    pool.add_reserve(addrs.debt, addrs.a_debt, ltv_bps=8000)
    ledger.tokens.mint(addrs.debt, addrs.lp_supplier, 1_000_000)
    pool.supply(addrs.lp_supplier, addrs.debt, 1_000_000)
    return pool


@pytest.fixture
def lending_adapter(lending_pool, registry) -> LendingAssetHandler:
    adapter = LendingAssetHandler("aave", lending_pool)
    registry.register_lending_adapter(adapter)
    return adapter


@pytest.fixture
def handler(addrs, oracle, registry, config) -> OracleSwapHandler:
    handler = OracleSwapHandler(addrs.handler, oracle, registry)
    registry.register_handler(handler)
    config.enable_solver_handler(handler.address)
    return handler


@pytest.fixture
def flash_provider(addrs, ledger, registry, config) -> FlashLoanProvider:
    provider = FlashLoanProvider(addrs.flash_provider, ledger)
    ledger.tokens.mint(addrs.usdc, provider.address, 1_000_000)
    registry.register_flash_provider(provider)
    config.enable_flash_loan_provider(provider.address)
    return provider


@pytest.fixture
def fund(ledger) -> Callable[[str, str, int], None]:
    """Mint tokens to an account."""

    def _fund(account: str, token: str, amount: int) -> None:
        ledger.tokens.mint(token, account, amount)

    return _fund


@pytest.fixture
def make_vault(addrs, ledger, registry, oracle, config, lending_adapter, handler, flash_provider):
    """Factory creating a vault with an initial share amount of 100."""

    def _make(
        tokens: List[str],
        fees: Optional[FeeParameters] = None,
        initial_portfolio_amount: int = 100,
        **params,
    ) -> VaultCore:
        vault_params = VaultParameters(
            name="Test Basket",
            symbol="TBSK",
            asset_manager=addrs.asset_manager,
            asset_manager_treasury=addrs.treasury,
            fees=fees or FeeParameters(),
            initial_portfolio_amount=initial_portfolio_amount,
            min_portfolio_token_holding_amount=params.pop("min_portfolio_token_holding_amount", 1),
            **params,
        )
        return VaultCore.create(ledger, registry, oracle, config, addrs.vault, vault_params, tokens)

    return _make
