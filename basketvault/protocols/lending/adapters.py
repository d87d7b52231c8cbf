"""Lending protocol adapter (Aave aTokens, Venus vTokens)."""

import logging
from typing import Dict, Iterable, Optional

from basketvault.core.constants import WAD
from basketvault.core.ledger import Ledger
from basketvault.core.models import AccountData, LendingToken, Position
from basketvault.protocols.base import AssetValuationAdapter, ProtocolType
from basketvault.protocols.lending.pool import LendingPool

logger = logging.getLogger(__name__)


class LendingAssetHandler(AssetValuationAdapter):
    """
    Adapter bound to one lending pool.

    Aave-style pools mint protocol tokens 1:1 with the underlying, Venus-style
    pools at a per-reserve exchange rate. Both go through the same pool model.
    """

    def __init__(self, protocol_name: str, pool: LendingPool, protocol_type: ProtocolType = ProtocolType.AAVE):
        self._protocol_name = protocol_name
        self._protocol_type = protocol_type
        self.pool = pool

    @property
    def protocol_type(self) -> ProtocolType:
        return self._protocol_type

    @property
    def protocol_name(self) -> str:
        return self._protocol_name

    @property
    def supports_collateral(self) -> bool:
        return True

    @property
    def supports_borrow(self) -> bool:
        return True

    # ========== VALUATION ==========

    def resolve_balances(self, ledger: Ledger, account: str, position: Position) -> Dict[str, int]:
        balance = ledger.tokens.balance_of(position.token, account)
        return self.underlying_for(position, balance)

    def underlying_for(self, position: Position, amount: int) -> Dict[str, int]:
        if not amount:
            return {}
        reserve = self.pool.reserve_for_protocol_token(position.token)
        underlying_amount = reserve.to_underlying(amount)
        return {reserve.underlying: underlying_amount} if underlying_amount else {}

    def position_for(self, protocol_token: str) -> LendingToken:
        reserve = self.pool.reserve_for_protocol_token(protocol_token)
        return LendingToken(
            address=reserve.protocol_token,
            protocol=self.protocol_name,
            underlying=reserve.underlying,
        )

    # ========== ACCOUNT ==========

    def get_user_account_data(
        self,
        vault: str,
        pool: Optional[str] = None,
        tracked_tokens: Optional[Iterable[str]] = None,
    ) -> AccountData:
        """
        Supplied and borrowed amounts of ``vault`` in the bound pool.

        Args:
            vault: Account address
            pool: Pool address, must match the bound pool when given
            tracked_tokens: Restrict the supplied view to these protocol tokens
        """
        if pool is not None and pool != self.pool.address:
            raise ValueError(f"Adapter {self.protocol_name} is bound to {self.pool.address}, not {pool}")
        data = self.pool.account_data(vault)
        if tracked_tokens is not None:
            tracked = set(tracked_tokens)
            data.supplied = {t: a for t, a in data.supplied.items() if t in tracked}
        logger.debug(
            f"{self.protocol_name}: {vault} collateral ${data.total_collateral_usd / WAD:,.2f}, "
            f"debt ${data.total_debt_usd / WAD:,.2f}"
        )
        return data

    def debt_of(self, vault: str, underlying: str) -> int:
        return self.pool.debt_of(vault, underlying)

    def supply(self, supplier: str, underlying: str, amount: int, on_behalf_of: Optional[str] = None) -> int:
        return self.pool.supply(supplier, underlying, amount, on_behalf_of)

    def redeem(self, account: str, protocol_token: str, amount: int, receiver: Optional[str] = None) -> int:
        return self.pool.redeem(account, protocol_token, amount, receiver)

    def borrow(self, vault: str, underlying: str, amount: int, on_behalf_of: Optional[str] = None) -> None:
        self.pool.borrow(vault, underlying, amount, on_behalf_of)

    def repay(self, payer: str, underlying: str, amount: int, on_behalf_of: Optional[str] = None) -> None:
        self.pool.repay(payer, underlying, amount, on_behalf_of)

    def set_collateral(self, vault: str, protocol_token: str, enabled: bool) -> bool:
        """Idempotent collateral toggle. Returns True when the flag changed."""
        changed = self.pool.set_collateral(vault, protocol_token, enabled)
        if changed:
            logger.info(f"{self.protocol_name}: collateral {protocol_token} {'enabled' if enabled else 'disabled'}")
        return changed

    def is_collateral(self, vault: str, protocol_token: str) -> bool:
        return self.pool.is_collateral(vault, protocol_token)
