"""Flash-loan-backed debt repayment and leveraged withdrawal unwinds."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from basketvault.core.constants import COLLATERAL_BUFFER_DENOMINATOR, WAD
from basketvault.core.errors import (
    CollateralSaleExceedsBuffer,
    FlashLoanRepaymentShortfall,
    FlashLoanUndersized,
    InsufficientRepaymentFunds,
    InvalidAmount,
    InvalidBufferUnit,
    RepayAmountExceedsDebt,
    SellAmountExceedsBalance,
    UnsupportedAsset,
)
from basketvault.core.ledger import Ledger
from basketvault.core.models import (
    FlashLoanSizing,
    FlashRepayIntent,
    SwapCallData,
    Vault,
    WithdrawFlashParams,
)
from basketvault.core.protocol_config import ProtocolConfig
from basketvault.engine.calculations import PortfolioCalculations
from basketvault.engine.resolver import TokenBalanceResolver
from basketvault.engine.state import RebalanceState
from basketvault.handlers.solver import SolverHandler
from basketvault.protocols.flash_loan import FlashLoanProvider
from basketvault.protocols.lending.adapters import LendingAssetHandler
from basketvault.protocols.registry import AssetRegistry

logger = logging.getLogger(__name__)

StateCallback = Callable[[RebalanceState], None]


@dataclass
class DebtLeg:
    """One debt to repay inside a flash loan."""

    adapter: LendingAssetHandler
    token: str
    amount: int
    repay_max: bool = False


@dataclass
class FlashOutcome:
    """Net effect of a flash-loan sequence on the vault."""

    premium: int = 0
    repaid: Dict[str, int] = field(default_factory=dict)
    sold: Dict[str, int] = field(default_factory=dict)
    leftovers: Dict[str, int] = field(default_factory=dict)


def _noop(state: RebalanceState) -> None:
    pass


class BorrowManager:
    """
    Runs the flash-loan sequence shared by asset-manager repayments and
    withdrawals from leveraged vaults:

        flash borrow -> swap to debt tokens -> repay -> sell collateral -> repay flash loan

    The sequence is one call inside the provider's atomic flash loan. Any
    failure leaves no trace.
    """

    def __init__(
        self,
        ledger: Ledger,
        registry: AssetRegistry,
        config: ProtocolConfig,
        calculations: PortfolioCalculations,
        resolver: TokenBalanceResolver,
    ):
        self.ledger = ledger
        self.registry = registry
        self.config = config
        self.calculations = calculations
        self.resolver = resolver

    # ========== ASSET-MANAGER REPAYMENT ==========

    def repay(
        self,
        vault: Vault,
        pool: str,
        intent: FlashRepayIntent,
        on_state: Optional[StateCallback] = None,
    ) -> FlashOutcome:
        """
        Repay ``vault``'s debt in ``pool`` with a flash loan.

        With ``is_max_repayment`` the full outstanding debt is repaid, read at
        the moment of repayment. Leftover flash token and debt tokens stay in
        the vault.

        Raises:
            FlashLoanUndersized: If the flash loan cannot cover the debt plus fee
            RepayAmountExceedsDebt: If a repay amount is above the outstanding debt
            FlashLoanRepaymentShortfall: If the swaps do not return principal plus premium
        """
        notify = on_state or _noop
        notify(RebalanceState.VALIDATING_REPAY_INTENT)
        intent.validate_shape()
        handler = self._handler(intent.solver_handler)
        provider = self._provider(intent.flash_loan_provider)
        self.config.validate_buffer_unit(intent.buffer_unit)
        adapter = self.registry.lending_adapter_for_pool(pool)

        for protocol_token in intent.protocol_tokens:
            if not adapter.pool.is_protocol_token(protocol_token):
                raise UnsupportedAsset(f"{protocol_token} is not a protocol token of pool {pool}")
        for swap in intent.second_swap_data:
            if swap.token_in not in intent.protocol_tokens:
                raise UnsupportedAsset(f"Second swap sells {swap.token_in}, not a listed protocol token")

        legs = []
        for token, amount in zip(intent.debt_tokens, intent.debt_repay_amounts):
            debt = adapter.debt_of(vault.address, token)
            if debt == 0:
                raise RepayAmountExceedsDebt(f"No {token} debt in pool {pool}")
            repay_amount = debt if intent.is_max_repayment else amount
            if repay_amount > debt:
                raise RepayAmountExceedsDebt(f"Repay {repay_amount} exceeds debt {debt} of {token}")
            if repay_amount == 0:
                raise InvalidAmount(f"Zero repay amount for {token}")
            legs.append(DebtLeg(adapter, token, repay_amount, intent.is_max_repayment))

        self._check_coverage(intent.flash_loan_token, intent.total_flash_loan_amount, legs, provider)

        outcome = self._run(
            vault,
            provider,
            handler,
            intent.flash_loan_token,
            intent.total_flash_loan_amount,
            legs,
            intent.first_swap_data,
            intent.second_swap_data,
            intent.buffer_unit,
            notify,
        )
        self._update_collateral_state(vault, notify)
        logger.info(
            f"Repaid {outcome.repaid} in pool {pool} for {vault.address} "
            f"(flash {intent.total_flash_loan_amount}, premium {outcome.premium})"
        )
        return outcome

    # ========== WITHDRAWAL UNWIND ==========

    def unwind_for_withdrawal(
        self,
        vault: Vault,
        sizing: FlashLoanSizing,
        params: WithdrawFlashParams,
        payouts: Dict[str, int],
        on_state: Optional[StateCallback] = None,
    ) -> FlashOutcome:
        """
        Repay the withdrawn shares' part of the debt and fund the flash loan
        out of the withdrawer's own collateral.

        Collateral sold may not exceed ``payouts`` for any token. Swap data left
        empty in ``params`` is derived from ``sizing``.
        """
        notify = on_state or _noop
        notify(RebalanceState.VALIDATING_REPAY_INTENT)
        handler = self._handler(params.solver_handler)
        provider = self._provider(params.flash_loan_provider)
        self.config.validate_buffer_unit(params.buffer_unit)
        if params.flashloan_buffer_unit > self.config.max_flashloan_buffer_unit:
            raise InvalidBufferUnit(
                f"Flash loan buffer {params.flashloan_buffer_unit} exceeds max {self.config.max_flashloan_buffer_unit}"
            )

        legs = [
            DebtLeg(self.registry.lending_adapter_for_pool(pool), token, portion)
            for pool, token, portion in zip(sizing.pools, sizing.debt_tokens, sizing.debt_portions)
        ]
        if not legs:
            return FlashOutcome()
        total_flash = sizing.total_flash_loan_amount
        self._check_coverage(sizing.flash_loan_token, total_flash, legs, provider)

        first_swaps = params.first_swap_data or [
            SwapCallData(sizing.flash_loan_token, token, amount, portion)
            for token, amount, portion in zip(sizing.debt_tokens, sizing.flash_loan_amounts, sizing.debt_portions)
            if token != sizing.flash_loan_token
        ]
        second_swaps = params.second_swap_data or self._collateral_swaps(
            vault, sizing, provider, params.buffer_unit, payouts
        )

        return self._run(
            vault,
            provider,
            handler,
            sizing.flash_loan_token,
            total_flash,
            legs,
            first_swaps,
            second_swaps,
            params.buffer_unit,
            notify,
            sale_limits=payouts,
        )

    def _collateral_swaps(
        self,
        vault: Vault,
        sizing: FlashLoanSizing,
        provider: FlashLoanProvider,
        buffer_unit: int,
        payouts: Dict[str, int],
    ) -> List[SwapCallData]:
        flash_per_pool: Dict[str, int] = {}
        for pool, amount in zip(sizing.pools, sizing.flash_loan_amounts):
            flash_per_pool[pool] = flash_per_pool.get(pool, 0) + amount

        swaps = []
        for pool, flash_amount in flash_per_pool.items():
            adapter = self.registry.lending_adapter_for_pool(pool)
            account = adapter.get_user_account_data(vault.address, pool, tracked_tokens=vault.tokens)
            amounts = self.calculations.collateral_amount_to_sell(
                adapter,
                account,
                sizing.flash_loan_token,
                flash_amount,
                provider.fee_bps,
                buffer_unit,
                limits=payouts,
            )
            swaps.extend(
                SwapCallData(token, sizing.flash_loan_token, amount, 0)
                for token, amount in amounts.items()
                if amount
            )
        return swaps

    # ========== SEQUENCE ==========

    def _run(
        self,
        vault: Vault,
        provider: FlashLoanProvider,
        handler: SolverHandler,
        flash_token: str,
        flash_amount: int,
        legs: List[DebtLeg],
        first_swaps: List[SwapCallData],
        second_swaps: List[SwapCallData],
        buffer_unit: int,
        notify: StateCallback,
        sale_limits: Optional[Dict[str, int]] = None,
    ) -> FlashOutcome:
        outcome = FlashOutcome()
        tokens = self.ledger.tokens
        watched = {flash_token} | {leg.token for leg in legs}
        before = {token: tokens.balance_of(token, vault.address) for token in watched}

        def on_flash_loan(premium: int) -> None:
            outcome.premium = premium

            notify(RebalanceState.REPAY_DEBT)
            if first_swaps:
                handler.swap_from(self.ledger, vault.address, first_swaps)
            for leg in legs:
                amount = leg.adapter.debt_of(vault.address, leg.token) if leg.repay_max else leg.amount
                available = tokens.balance_of(leg.token, vault.address)
                if available < amount:
                    raise InsufficientRepaymentFunds(f"Vault holds {available} of {leg.token}, needs {amount}")
                leg.adapter.repay(vault.address, leg.token, amount)
                outcome.repaid[leg.token] = outcome.repaid.get(leg.token, 0) + amount

            notify(RebalanceState.SWAP_SURPLUS)
            if second_swaps:
                self._check_collateral_sale(flash_token, flash_amount + premium, second_swaps, buffer_unit, sale_limits)
                handler.swap_from(self.ledger, vault.address, second_swaps)
                for swap in second_swaps:
                    outcome.sold[swap.token_in] = outcome.sold.get(swap.token_in, 0) + swap.amount_in

            notify(RebalanceState.REPAY_FLASH_LOAN)
            gained = tokens.balance_of(flash_token, vault.address) - before[flash_token]
            owed = flash_amount + premium
            if gained < owed:
                raise FlashLoanRepaymentShortfall(
                    f"Flash sequence returned {gained} of {flash_token}, owes {owed}"
                )

        notify(RebalanceState.FLASH_BORROW)
        provider.flash_loan(vault.address, flash_token, flash_amount, on_flash_loan)

        for token in watched:
            surplus = tokens.balance_of(token, vault.address) - before[token]
            if surplus > 0:
                outcome.leftovers[token] = surplus
        logger.debug(f"Flash sequence for {vault.address}: {outcome}")
        return outcome

    def _check_coverage(
        self,
        flash_token: str,
        flash_amount: int,
        legs: List[DebtLeg],
        provider: FlashLoanProvider,
    ) -> None:
        """The flash loan must be worth at least the debt plus the provider fee."""
        repay_value = self.calculations.value_of({leg.token: leg.amount for leg in legs})
        required = self.calculations.required_flash_value(repay_value, provider.fee_bps)
        flash_value = self.calculations.value_of({flash_token: flash_amount})
        if flash_value < required:
            raise FlashLoanUndersized(
                f"Flash loan worth ${flash_value / WAD:,.2f} below required ${required / WAD:,.2f}"
            )

    def _check_collateral_sale(
        self,
        flash_token: str,
        owed: int,
        swaps: List[SwapCallData],
        buffer_unit: int,
        sale_limits: Optional[Dict[str, int]],
    ) -> None:
        owed_value = self.calculations.value_of({flash_token: owed})
        bound = owed_value * (COLLATERAL_BUFFER_DENOMINATOR + buffer_unit) // COLLATERAL_BUFFER_DENOMINATOR
        sold_value = 0
        sold: Dict[str, int] = {}
        for swap in swaps:
            sold[swap.token_in] = sold.get(swap.token_in, 0) + swap.amount_in
            sold_value += self.calculations.value_of(self.resolver.underlying_for(swap.token_in, swap.amount_in))
        if sold_value > bound:
            raise CollateralSaleExceedsBuffer(
                f"Selling ${sold_value / WAD:,.2f} of collateral, bound ${bound / WAD:,.2f}"
            )
        if sale_limits is not None:
            for token, amount in sold.items():
                if amount > sale_limits.get(token, 0):
                    raise SellAmountExceedsBalance(
                        f"Selling {amount} of {token}, withdrawer owns {sale_limits.get(token, 0)}"
                    )

    def _update_collateral_state(self, vault: Vault, notify: StateCallback) -> None:
        notify(RebalanceState.UPDATING_COLLATERAL_STATE)
        for pool, token in list(vault.debts):
            if self.registry.lending_adapter_for_pool(pool).debt_of(vault.address, token) == 0:
                vault.untrack_debt(pool, token)
                logger.info(f"Debt of {token} in pool {pool} fully repaid")

    def untrack_repaid(self, vault: Vault, on_state: Optional[StateCallback] = None) -> None:
        """Drop debts that are no longer outstanding."""
        self._update_collateral_state(vault, on_state or _noop)

    # ========== LOOKUPS ==========

    def _handler(self, address: str) -> SolverHandler:
        self.config.require_solver(address)
        return self.registry.handler_for(address)

    def _provider(self, address: str) -> FlashLoanProvider:
        self.config.require_flash_loan_provider(address)
        return self.registry.flash_provider_for(address)
