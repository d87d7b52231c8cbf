"""Single-token withdrawal front-end."""

import logging
from typing import Dict, List, Optional

from basketvault.core.address import normalize_address
from basketvault.core.errors import WithdrawalBelowMinimum
from basketvault.core.ledger import Ledger
from basketvault.core.models import SwapCallData, WithdrawFlashParams
from basketvault.engine.vault import VaultCore

logger = logging.getLogger(__name__)


class WithdrawBatch:
    """Withdraws a user's shares into the batch, swaps everything to one token and pays the user."""

    def __init__(self, address: str, ledger: Ledger):
        self.address = normalize_address(address)
        self.ledger = ledger

    def withdraw(
        self,
        vault: VaultCore,
        user: str,
        share_amount: int,
        token_out: str,
        handler: str,
        swap_data: Optional[List[SwapCallData]] = None,
        min_amount_out: int = 0,
        flash_params: Optional[WithdrawFlashParams] = None,
    ) -> int:
        """
        Redeem ``share_amount`` shares and pay the proceeds in ``token_out``.

        Without ``swap_data`` every received token is sold for ``token_out``.

        Returns:
            Amount of ``token_out`` paid to the user

        Raises:
            WithdrawalBelowMinimum: If the proceeds are below ``min_amount_out``
        """
        user = normalize_address(user)
        token_out = normalize_address(token_out)
        handler = normalize_address(handler)
        tokens = self.ledger.tokens
        with self.ledger.atomic():
            vault.config.require_solver(handler)
            solver = vault.registry.handler_for(handler)
            result = vault.multi_token_withdrawal(user, share_amount, flash_params=flash_params, receiver=self.address)

            received: Dict[str, int] = dict(result.amounts)
            for token, amount in result.exclusion_payouts.items():
                received[token] = received.get(token, 0) + amount

            calls = swap_data
            if calls is None:
                calls = [
                    SwapCallData(token, token_out, amount, 0)
                    for token, amount in received.items()
                    if token != token_out and amount
                ]
            if calls:
                solver.swap_from(self.ledger, self.address, calls)

            amount_out = tokens.balance_of(token_out, self.address)
            if amount_out < min_amount_out:
                raise WithdrawalBelowMinimum(f"Received {amount_out} of {token_out}, minimum {min_amount_out}")
            for token in set(received) | {token_out}:
                balance = tokens.balance_of(token, self.address)
                if balance:
                    tokens.transfer(token, self.address, user, balance)

        logger.info(f"Batch withdrawal of {share_amount} shares for {user}: {amount_out} {token_out}")
        return amount_out
