"""Single-token deposit front-end."""

import logging
from typing import List

from basketvault.core.address import normalize_address
from basketvault.core.ledger import Ledger
from basketvault.core.models import SwapCallData
from basketvault.engine.vault import VaultCore

logger = logging.getLogger(__name__)


class DepositBatch:
    """
    Swaps one token into a vault's basket and deposits on the user's behalf.

    Basket tokens arrive at the batch before the vault mints. Anything the
    swaps or the deposit leave behind is refunded to the user.
    """

    def __init__(self, address: str, ledger: Ledger):
        self.address = normalize_address(address)
        self.ledger = ledger

    def deposit(
        self,
        vault: VaultCore,
        user: str,
        deposit_token: str,
        deposit_amount: int,
        handler: str,
        swap_data: List[SwapCallData],
        min_mint_amount: int = 0,
    ) -> int:
        """
        Deposit ``deposit_amount`` of ``deposit_token`` into ``vault``.

        Args:
            vault: Target vault
            user: Depositor and share receiver
            deposit_token: Token paid by the user
            deposit_amount: Amount paid
            handler: Solver handler executing ``swap_data``
            swap_data: Swaps from the deposit token into basket tokens
            min_mint_amount: Minimum shares to receive

        Returns:
            Shares minted to the user
        """
        user = normalize_address(user)
        deposit_token = normalize_address(deposit_token)
        handler = normalize_address(handler)
        tokens = self.ledger.tokens
        with self.ledger.atomic():
            vault.config.require_solver(handler)
            solver = vault.registry.handler_for(handler)
            tokens.transfer(deposit_token, user, self.address, deposit_amount)
            if swap_data:
                solver.swap_from(self.ledger, self.address, swap_data)

            amounts = [tokens.balance_of(t, self.address) for t in vault.tokens]
            shares = vault.multi_token_deposit(user, amounts, min_mint_amount, payer=self.address)

            for token in set(vault.tokens) | {deposit_token}:
                dust = tokens.balance_of(token, self.address)
                if dust:
                    tokens.transfer(token, self.address, user, dust)
                    logger.debug(f"Refunded {dust} of {token} to {user}")

        logger.info(f"Batch deposit of {deposit_amount} {deposit_token} for {user}: {shares} shares")
        return shares
