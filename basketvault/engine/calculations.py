"""Portfolio valuation, share issuance and flash-loan sizing."""

import logging
from typing import Dict, List, Optional, Tuple

from basketvault.core.constants import (
    BPS,
    COLLATERAL_BUFFER_DENOMINATOR,
    FLASHLOAN_BUFFER_DENOMINATOR,
    WAD,
)
from basketvault.core.errors import (
    CollateralInsufficient,
    FlashLoanUndersized,
    InvalidAmount,
    VaultInsolvent,
)
from basketvault.core.models import AccountData, BasketSnapshot, FlashLoanSizing
from basketvault.oracle import PriceOracle
from basketvault.protocols.lending.adapters import LendingAssetHandler

logger = logging.getLogger(__name__)


def ceil_div(a: int, b: int) -> int:
    return -(-a // b)


class PortfolioCalculations:
    """
    Read-only portfolio math.

    Every valuation goes to the oracle on each call; nothing is cached.
    Share amounts round down, debt portions and flash-loan sizes round up.
    """

    def __init__(self, oracle: PriceOracle):
        self.oracle = oracle

    # ========== VALUATION ==========

    def value_of(self, amounts: Dict[str, int]) -> int:
        """USD value of a token amount map. Zero amounts are skipped."""
        return sum(
            self.oracle.convert_to_usd18(token, amount)
            for token, amount in amounts.items()
            if amount
        )

    def total_vault_value_usd(self, snapshot: BasketSnapshot) -> int:
        """
        Total value of a resolved basket.

        Assets are summed and borrowed amounts subtracted. The result can be
        negative for an insolvent vault.
        """
        assets = self.value_of(snapshot.assets)
        liabilities = self.value_of(snapshot.liabilities)
        logger.debug(f"Basket value: assets ${assets / WAD:,.2f}, liabilities ${liabilities / WAD:,.2f}")
        return assets - liabilities

    @staticmethod
    def share_price(total_value_usd: int, total_supply: int) -> int:
        """
        USD value (WAD) of one share base unit, 0 for an empty vault.

        Shares carry no decimals of their own: ``initial_portfolio_amount`` and
        every mint are counted in base units, so the price is value over supply.
        """
        if total_supply == 0:
            return 0
        return total_value_usd // total_supply

    # ========== SHARES ==========

    @staticmethod
    def mint_amount(
        deposit_value_usd: int,
        total_supply: int,
        total_value_usd: int,
        initial_portfolio_amount: int,
    ) -> int:
        """
        Shares to mint for a deposit, floored.

        The first deposit mints ``initial_portfolio_amount`` regardless of value.

        Raises:
            VaultInsolvent: If shares exist but the basket has no positive value
        """
        if deposit_value_usd <= 0:
            raise InvalidAmount(f"Deposit value must be positive, got {deposit_value_usd}")
        if total_supply == 0:
            return initial_portfolio_amount
        if total_value_usd <= 0:
            raise VaultInsolvent(f"Vault value {total_value_usd} with {total_supply} shares outstanding")
        return deposit_value_usd * total_supply // total_value_usd

    @staticmethod
    def withdrawal_amounts(share_amount: int, total_supply: int, holdings: Dict[str, int]) -> Dict[str, int]:
        """Pro-rata payout per token, each floored independently."""
        if total_supply <= 0 or share_amount <= 0 or share_amount > total_supply:
            raise InvalidAmount(f"Cannot withdraw {share_amount} of {total_supply} shares")
        return {token: balance * share_amount // total_supply for token, balance in holdings.items()}

    # ========== FLASH LOANS ==========

    @staticmethod
    def required_flash_value(repay_value_usd: int, flash_fee_bps: int) -> int:
        """USD value a flash loan must carry to repay ``repay_value_usd`` plus its fee."""
        return ceil_div(repay_value_usd * (BPS + flash_fee_bps), BPS)

    def flash_loan_amount_for_repayment(
        self,
        debt_token: str,
        flash_loan_token: str,
        repay_amount: int,
        flashloan_buffer_unit: int,
    ) -> int:
        """Flash-loan token amount that covers ``repay_amount`` of debt, inflated by the buffer."""
        usd = self.oracle.convert_to_usd18(debt_token, repay_amount)
        base = self.oracle.convert_from_usd18(flash_loan_token, usd, round_up=True)
        return ceil_div(base * (FLASHLOAN_BUFFER_DENOMINATOR + flashloan_buffer_unit), FLASHLOAN_BUFFER_DENOMINATOR)

    def flash_loan_sizing_for_unwind(
        self,
        debts: List[Tuple[str, str, int]],
        share_amount: int,
        total_supply: int,
        flash_loan_token: str,
        buffer_unit: int,
        flashloan_buffer_unit: int,
        flash_fee_bps: int = 0,
    ) -> FlashLoanSizing:
        """
        Size the flash loan that unwinds the withdrawn shares' part of the debt.

        Args:
            debts: (pool, debt token, outstanding amount) per tracked debt
            share_amount: Shares being withdrawn
            total_supply: Share supply before the burn
            flash_loan_token: Token borrowed from the flash provider
            buffer_unit: Collateral buffer (1/100000)
            flashloan_buffer_unit: Flash-loan inflation (1/10000)
            flash_fee_bps: Provider fee the loan must also cover

        Raises:
            FlashLoanUndersized: If a flash amount would not cover its debt portion plus fee
        """
        if total_supply <= 0 or share_amount <= 0:
            raise InvalidAmount(f"Cannot size unwind for {share_amount} of {total_supply} shares")
        sizing = FlashLoanSizing(
            flash_loan_token=flash_loan_token,
            pools=[],
            debt_tokens=[],
            debt_portions=[],
            flash_loan_amounts=[],
            buffer_unit=buffer_unit,
        )
        for pool, debt_token, amount in debts:
            portion = ceil_div(amount * share_amount, total_supply)
            if portion == 0:
                continue
            flash_amount = self.flash_loan_amount_for_repayment(
                debt_token, flash_loan_token, portion, flashloan_buffer_unit
            )
            required = self.required_flash_value(self.oracle.convert_to_usd18(debt_token, portion), flash_fee_bps)
            if self.oracle.convert_to_usd18(flash_loan_token, flash_amount) < required:
                raise FlashLoanUndersized(
                    f"Flash amount {flash_amount} does not cover debt portion {portion} of {debt_token} "
                    f"plus {flash_fee_bps} bps fee"
                )
            sizing.pools.append(pool)
            sizing.debt_tokens.append(debt_token)
            sizing.debt_portions.append(portion)
            sizing.flash_loan_amounts.append(flash_amount)
            logger.debug(f"Unwind {debt_token}: portion {portion}, flash {flash_amount} {flash_loan_token}")
        return sizing

    def collateral_amount_to_sell(
        self,
        adapter: LendingAssetHandler,
        account_data: AccountData,
        flash_loan_token: str,
        flash_loan_amount: int,
        flash_fee_bps: int,
        buffer_unit: int,
        limits: Optional[Dict[str, int]] = None,
    ) -> Dict[str, int]:
        """
        Protocol-token amounts to sell so the proceeds repay the flash loan.

        The value to raise is the flash loan plus fee, inflated by
        ``buffer_unit/100000``, split across collateral tokens by value.

        Args:
            adapter: Lending adapter of the pool holding the collateral
            account_data: Account view from that adapter
            flash_loan_token: Token to repay
            flash_loan_amount: Principal to repay
            flash_fee_bps: Flash-loan fee
            buffer_unit: Collateral buffer (1/100000)
            limits: Optional per-token amount available for sale (e.g. a withdrawal payout)

        Raises:
            CollateralInsufficient: If there is no collateral to sell
        """
        owed = flash_loan_amount + ceil_div(flash_loan_amount * flash_fee_bps, BPS)
        needed = self.oracle.convert_to_usd18(flash_loan_token, owed)
        needed = needed * (COLLATERAL_BUFFER_DENOMINATOR + buffer_unit) // COLLATERAL_BUFFER_DENOMINATOR

        values: Dict[str, int] = {}
        for protocol_token in account_data.collateral_enabled:
            underlying_amount = account_data.supplied.get(protocol_token, 0)
            if limits is not None:
                reserve = adapter.pool.reserve_for_protocol_token(protocol_token)
                underlying_amount = min(underlying_amount, reserve.to_underlying(limits.get(protocol_token, 0)))
            if underlying_amount:
                reserve = adapter.pool.reserve_for_protocol_token(protocol_token)
                values[protocol_token] = self.oracle.convert_to_usd18(reserve.underlying, underlying_amount)

        total = sum(values.values())
        if total == 0:
            raise CollateralInsufficient(f"No collateral in pool {account_data.pool} to repay flash loan")

        amounts = {}
        for protocol_token in sorted(values):
            reserve = adapter.pool.reserve_for_protocol_token(protocol_token)
            usd_share = needed * values[protocol_token] // total
            underlying_amount = self.oracle.convert_from_usd18(reserve.underlying, usd_share)
            amounts[protocol_token] = reserve.to_protocol(underlying_amount)
        logger.debug(f"Collateral to sell for {owed} {flash_loan_token}: {amounts}")
        return amounts
