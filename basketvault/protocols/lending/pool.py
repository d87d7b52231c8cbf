"""In-memory lending market (Aave / Venus style)."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from basketvault.core.address import normalize_address
from basketvault.core.constants import BPS, WAD
from basketvault.core.errors import (
    CollateralInsufficient,
    InsufficientBalance,
    InvalidAmount,
    RepayAmountExceedsDebt,
    UnsupportedAsset,
)
from basketvault.core.ledger import Journaled, Ledger
from basketvault.core.models import AccountData
from basketvault.oracle import PriceOracle

logger = logging.getLogger(__name__)


@dataclass
class Reserve:
    """
    One lending market.

    - underlying = asset supplied and borrowed
    - protocol_token = receipt token minted on supply
    - ltv_bps = share of collateral value that can be borrowed against
    - exchange_rate = underlying per protocol token, WAD (WAD for aTokens)
    """

    underlying: str
    protocol_token: str
    ltv_bps: int
    exchange_rate: int = WAD
    borrowable: bool = True

    def to_underlying(self, protocol_amount: int) -> int:
        return protocol_amount * self.exchange_rate // WAD

    def to_protocol(self, underlying_amount: int) -> int:
        return underlying_amount * WAD // self.exchange_rate


class LendingPool(Journaled):
    """
    A lending pool holding reserves, debts and collateral flags per account.

    Health is checked through the oracle on every borrow and collateral
    disable: debt value may not exceed the LTV-weighted collateral value.
    """

    _journaled_fields = ("_debts", "_collateral", "_reserves")

    def __init__(self, address: str, ledger: Ledger, oracle: PriceOracle):
        self.address = normalize_address(address)
        self.ledger = ledger
        self.oracle = oracle
        self._reserves: Dict[str, Reserve] = {}
        self._by_protocol_token: Dict[str, str] = {}
        self._debts: Dict[str, Dict[str, int]] = {}  # account -> underlying -> amount
        self._collateral: Dict[str, Set[str]] = {}  # account -> protocol tokens
        ledger.register(self)

    # ========== RESERVES ==========

    def add_reserve(
        self,
        underlying: str,
        protocol_token: str,
        ltv_bps: int,
        exchange_rate: int = WAD,
        borrowable: bool = True,
    ) -> Reserve:
        if not 0 <= ltv_bps < BPS:
            raise InvalidAmount(f"LTV must be in [0, {BPS}), got {ltv_bps}")
        if exchange_rate <= 0:
            raise InvalidAmount(f"Exchange rate must be positive, got {exchange_rate}")
        reserve = Reserve(
            underlying=normalize_address(underlying),
            protocol_token=normalize_address(protocol_token),
            ltv_bps=ltv_bps,
            exchange_rate=exchange_rate,
            borrowable=borrowable,
        )
        self._reserves[reserve.underlying] = reserve
        self._by_protocol_token[reserve.protocol_token] = reserve.underlying
        logger.debug(f"Pool {self.address}: reserve {reserve.underlying} -> {reserve.protocol_token}")
        return reserve

    def reserve(self, underlying: str) -> Reserve:
        reserve = self._reserves.get(underlying)
        if reserve is None:
            raise UnsupportedAsset(f"Pool {self.address} has no reserve for {underlying}")
        return reserve

    def reserve_for_protocol_token(self, protocol_token: str) -> Reserve:
        underlying = self._by_protocol_token.get(protocol_token)
        if underlying is None:
            raise UnsupportedAsset(f"Pool {self.address} has no reserve with token {protocol_token}")
        return self._reserves[underlying]

    def is_protocol_token(self, token: str) -> bool:
        return token in self._by_protocol_token

    @property
    def protocol_tokens(self) -> List[str]:
        return list(self._by_protocol_token.keys())

    def set_exchange_rate(self, underlying: str, exchange_rate: int) -> None:
        if exchange_rate <= 0:
            raise InvalidAmount(f"Exchange rate must be positive, got {exchange_rate}")
        self.reserve(underlying).exchange_rate = exchange_rate

    # ========== SUPPLY / REDEEM ==========

    def supply(self, supplier: str, underlying: str, amount: int, on_behalf_of: Optional[str] = None) -> int:
        """Deposit underlying, mint protocol tokens. Returns protocol tokens minted."""
        if amount <= 0:
            raise InvalidAmount(f"Supply amount must be positive, got {amount}")
        reserve = self.reserve(underlying)
        minted = reserve.to_protocol(amount)
        if minted == 0:
            raise InvalidAmount(f"Supply of {amount} {underlying} mints zero protocol tokens")
        self.ledger.tokens.transfer(underlying, supplier, self.address, amount)
        self.ledger.tokens.mint(reserve.protocol_token, on_behalf_of or supplier, minted)
        return minted

    def redeem(self, account: str, protocol_token: str, amount: int, receiver: Optional[str] = None) -> int:
        """Burn protocol tokens, pay out underlying. Returns underlying paid."""
        if amount <= 0:
            raise InvalidAmount(f"Redeem amount must be positive, got {amount}")
        reserve = self.reserve_for_protocol_token(protocol_token)
        underlying_amount = reserve.to_underlying(amount)
        self.ledger.tokens.burn(protocol_token, account, amount)
        self.ledger.tokens.transfer(reserve.underlying, self.address, receiver or account, underlying_amount)
        self.ensure_healthy(account)
        return underlying_amount

    # ========== BORROW / REPAY ==========

    def borrow(self, account: str, underlying: str, amount: int, on_behalf_of: Optional[str] = None) -> None:
        """Lend ``amount`` to ``account``; the debt is charged to ``on_behalf_of`` (default: the account)."""
        debtor = on_behalf_of or account
        if amount <= 0:
            raise InvalidAmount(f"Borrow amount must be positive, got {amount}")
        reserve = self.reserve(underlying)
        if not reserve.borrowable:
            raise UnsupportedAsset(f"{underlying} is not borrowable in pool {self.address}")
        if self.ledger.tokens.balance_of(underlying, self.address) < amount:
            raise CollateralInsufficient(f"Pool {self.address} lacks liquidity for {amount} {underlying}")
        debts = self._debts.setdefault(debtor, {})
        debts[underlying] = debts.get(underlying, 0) + amount
        self.ledger.tokens.transfer(underlying, self.address, account, amount)
        self.ensure_healthy(debtor)
        logger.debug(f"Pool {self.address}: {account} borrowed {amount} {underlying}")

    def repay(self, payer: str, underlying: str, amount: int, on_behalf_of: Optional[str] = None) -> None:
        account = on_behalf_of or payer
        debt = self.debt_of(account, underlying)
        if amount <= 0:
            raise InvalidAmount(f"Repay amount must be positive, got {amount}")
        if amount > debt:
            raise RepayAmountExceedsDebt(f"Repay {amount} exceeds debt {debt} of {underlying}")
        self.ledger.tokens.transfer(underlying, payer, self.address, amount)
        self._debts[account][underlying] = debt - amount
        logger.debug(f"Pool {self.address}: {account} repaid {amount} {underlying}")

    def debt_of(self, account: str, underlying: str) -> int:
        return self._debts.get(account, {}).get(underlying, 0)

    def accrue_debt(self, account: str, underlying: str, amount: int) -> None:
        """Add interest to an open debt."""
        if amount < 0:
            raise InvalidAmount(f"Interest cannot be negative, got {amount}")
        debts = self._debts.setdefault(account, {})
        if debts.get(underlying, 0) == 0:
            raise InsufficientBalance(f"{account} has no {underlying} debt to accrue on")
        debts[underlying] += amount

    # ========== COLLATERAL ==========

    def set_collateral(self, account: str, protocol_token: str, enabled: bool) -> bool:
        """Toggle a collateral flag. Returns False when already in the requested state."""
        self.reserve_for_protocol_token(protocol_token)
        flags = self._collateral.setdefault(account, set())
        if (protocol_token in flags) == enabled:
            return False
        if enabled:
            flags.add(protocol_token)
        else:
            flags.discard(protocol_token)
            self.ensure_healthy(account)
        return True

    def is_collateral(self, account: str, protocol_token: str) -> bool:
        return protocol_token in self._collateral.get(account, set())

    # ========== ACCOUNT VIEW ==========

    def account_data(self, account: str) -> AccountData:
        data = AccountData(pool=self.address)
        borrow_capacity = 0
        for reserve in self._reserves.values():
            balance = self.ledger.tokens.balance_of(reserve.protocol_token, account)
            if balance:
                underlying_amount = reserve.to_underlying(balance)
                data.supplied[reserve.protocol_token] = underlying_amount
                if self.is_collateral(account, reserve.protocol_token) and underlying_amount:
                    value = self.oracle.convert_to_usd18(reserve.underlying, underlying_amount)
                    data.collateral_enabled.add(reserve.protocol_token)
                    data.total_collateral_usd += value
                    borrow_capacity += value * reserve.ltv_bps // BPS
        for underlying, amount in self._debts.get(account, {}).items():
            if amount:
                data.borrowed[underlying] = amount
                data.total_debt_usd += self.oracle.convert_to_usd18(underlying, amount)
        if data.total_debt_usd:
            data.health_factor = borrow_capacity * WAD // data.total_debt_usd
        return data

    def ensure_healthy(self, account: str) -> None:
        """Raise if debt exceeds the LTV-weighted collateral."""
        data = self.account_data(account)
        if data.has_debt and data.health_factor < WAD:
            raise CollateralInsufficient(
                f"Account {account} in pool {self.address} unhealthy: "
                f"debt ${data.total_debt_usd / WAD:,.2f}, HF {data.health_factor / WAD:.4f}"
            )
