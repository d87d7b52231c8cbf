"""Flash-loan provider."""

import logging
from typing import Callable

from basketvault.core.address import normalize_address
from basketvault.core.constants import BPS
from basketvault.core.errors import FlashLoanRepaymentShortfall, InsufficientBalance, InvalidAmount
from basketvault.core.ledger import Ledger

logger = logging.getLogger(__name__)


class FlashLoanProvider:
    """
    Lends its own balance for the duration of one callback.

    The receiver must hold principal plus premium when the callback returns;
    otherwise the whole flash loan reverts.
    """

    def __init__(self, address: str, ledger: Ledger, fee_bps: int = 0):
        if not 0 <= fee_bps < BPS:
            raise InvalidAmount(f"Flash loan fee must be in [0, {BPS}), got {fee_bps}")
        self.address = normalize_address(address)
        self.ledger = ledger
        self.fee_bps = fee_bps

    def premium_for(self, amount: int) -> int:
        """Fee owed on ``amount``, rounded up."""
        return -(-amount * self.fee_bps // BPS)

    def available_liquidity(self, token: str) -> int:
        return self.ledger.tokens.balance_of(token, self.address)

    def flash_loan(self, receiver: str, token: str, amount: int, callback: Callable[[int], None]) -> int:
        """
        Lend ``amount`` of ``token`` to ``receiver`` and run ``callback(premium)``.

        Returns:
            The premium paid

        Raises:
            FlashLoanRepaymentShortfall: If the receiver cannot repay principal plus premium
        """
        if amount <= 0:
            raise InvalidAmount(f"Flash loan amount must be positive, got {amount}")
        liquidity = self.available_liquidity(token)
        if liquidity < amount:
            raise InsufficientBalance(f"Flash provider holds {liquidity} of {token}, requested {amount}")

        premium = self.premium_for(amount)
        with self.ledger.atomic():
            self.ledger.tokens.transfer(token, self.address, receiver, amount)
            callback(premium)
            owed = amount + premium
            balance = self.ledger.tokens.balance_of(token, receiver)
            if balance < owed:
                raise FlashLoanRepaymentShortfall(f"Receiver holds {balance} of {token}, owes {owed}")
            self.ledger.tokens.transfer(token, receiver, self.address, owed)

        logger.info(f"Flash loan of {amount} {token} repaid with premium {premium}")
        return premium
