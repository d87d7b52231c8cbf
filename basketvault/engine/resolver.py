"""Resolves a vault's basket into underlying balances and liabilities."""

import logging
from typing import Dict

from basketvault.core.ledger import Ledger
from basketvault.core.models import BasketSnapshot, Vault
from basketvault.protocols.registry import AssetRegistry

logger = logging.getLogger(__name__)


class TokenBalanceResolver:
    """
    Builds one normalized ``BasketSnapshot`` per call.

    Every basket token must have a registered position; an unsupported token
    aborts the whole resolution.
    """

    def __init__(self, ledger: Ledger, registry: AssetRegistry):
        self.ledger = ledger
        self.registry = registry

    def resolve_basket(self, vault: Vault) -> BasketSnapshot:
        """
        Resolve holdings, underlying amounts and liabilities of ``vault``.

        Args:
            vault: Vault to resolve

        Returns:
            BasketSnapshot with assets and liabilities kept apart

        Raises:
            UnsupportedAsset: If a basket token or debt pool has no adapter
        """
        snapshot = BasketSnapshot()
        for token in vault.tokens:
            position = self.registry.position_for(token)
            adapter = self.registry.adapter_for(position)
            snapshot.holdings[token] = self.ledger.tokens.balance_of(token, vault.address)
            underlying = adapter.resolve_balances(self.ledger, vault.address, position)
            snapshot.underlying[token] = underlying
            for asset, amount in underlying.items():
                snapshot.add_asset(asset, amount)

        for pool, debt_token in vault.debts:
            adapter = self.registry.lending_adapter_for_pool(pool)
            snapshot.add_liability(debt_token, adapter.debt_of(vault.address, debt_token))

        logger.debug(
            f"Resolved {vault.address}: {len(snapshot.holdings)} tokens, "
            f"{len(snapshot.assets)} assets, {len(snapshot.liabilities)} liabilities"
        )
        return snapshot

    def underlying_for(self, token: str, amount: int) -> Dict[str, int]:
        """Underlying amounts of ``amount`` units of basket token ``token``."""
        position = self.registry.position_for(token)
        return self.registry.adapter_for(position).underlying_for(position, amount)
