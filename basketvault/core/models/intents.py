"""Ephemeral operation intents. Validated and consumed within one call, never persisted."""

from dataclasses import dataclass, field
from typing import Dict, List

from basketvault.core.errors import InvalidAmount, LengthMismatch


@dataclass(frozen=True)
class SwapCallData:
    """One opaque swap instruction for a solver handler."""

    token_in: str
    token_out: str
    amount_in: int
    min_amount_out: int = 0


@dataclass
class RebalanceIntent:
    """Token-set change: sell some holdings, buy into a new basket."""

    new_tokens: List[str]
    sell_tokens: List[str]
    sell_amounts: List[int]
    handler: str
    call_data: List[SwapCallData] = field(default_factory=list)

    def validate_shape(self) -> None:
        if len(self.sell_tokens) != len(self.sell_amounts):
            raise LengthMismatch(
                f"{len(self.sell_tokens)} sell tokens, {len(self.sell_amounts)} amounts"
            )
        if any(a < 0 for a in self.sell_amounts):
            raise InvalidAmount("Sell amounts must be non-negative")


@dataclass
class FlashRepayIntent:
    """
    Flash-loan-backed debt repayment.

    Amounts are parallel to ``debt_tokens``. Swap legs are parallel lists:
    ``first_swap_data`` converts flash token to each debt token,
    ``second_swap_data`` sells collateral back to the flash token.
    """

    flash_loan_token: str
    flash_loan_provider: str
    debt_tokens: List[str]
    protocol_tokens: List[str]
    buffer_unit: int
    solver_handler: str
    flash_loan_amounts: List[int]
    debt_repay_amounts: List[int]
    first_swap_data: List[SwapCallData] = field(default_factory=list)
    second_swap_data: List[SwapCallData] = field(default_factory=list)
    is_max_repayment: bool = False

    @property
    def total_flash_loan_amount(self) -> int:
        return sum(self.flash_loan_amounts)

    def validate_shape(self) -> None:
        n = len(self.debt_tokens)
        if len(self.flash_loan_amounts) != n or len(self.debt_repay_amounts) != n:
            raise LengthMismatch(
                f"{n} debt tokens, {len(self.flash_loan_amounts)} flash amounts, "
                f"{len(self.debt_repay_amounts)} repay amounts"
            )
        if n == 0:
            raise InvalidAmount("No debt to repay")
        if any(a <= 0 for a in self.flash_loan_amounts):
            raise InvalidAmount("Flash loan amounts must be positive")
        if any(a < 0 for a in self.debt_repay_amounts):
            raise InvalidAmount("Repay amounts must be non-negative")


@dataclass
class WithdrawFlashParams:
    """Flash-loan parameters for a withdrawal from a leveraged vault."""

    flash_loan_token: str
    flash_loan_provider: str
    solver_handler: str
    buffer_unit: int
    flashloan_buffer_unit: int = 0
    first_swap_data: List[SwapCallData] = field(default_factory=list)
    second_swap_data: List[SwapCallData] = field(default_factory=list)


@dataclass
class FlashLoanSizing:
    """Result of sizing a flash loan for a proportional debt unwind."""

    flash_loan_token: str
    pools: List[str]  # lending pool of each debt
    debt_tokens: List[str]
    debt_portions: List[int]  # debt attributable to the withdrawn shares
    flash_loan_amounts: List[int]  # per debt token, in flash-loan token units
    buffer_unit: int  # collateral buffer, 1/100000

    @property
    def total_flash_loan_amount(self) -> int:
        return sum(self.flash_loan_amounts)


@dataclass
class WithdrawalResult:
    """What a withdrawal paid out."""

    user: str
    shares_burned: int
    exit_fee_shares: int
    amounts: Dict[str, int] = field(default_factory=dict)
    exclusion_payouts: Dict[str, int] = field(default_factory=dict)
