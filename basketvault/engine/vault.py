"""Vault core: share issuance, withdrawals, policy and basket ownership."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from web3 import Web3

from basketvault.core.address import normalize_address, normalize_addresses
from basketvault.core.errors import (
    AssetLimitExceeded,
    CallerNeedToMaintainMinTokenAmount,
    CallerNotAssetManager,
    CooldownPeriodNotPassed,
    DuplicateToken,
    FlashParamsRequired,
    InsufficientBalance,
    InvalidAmount,
    InvalidFee,
    InvalidInitialPortfolioAmount,
    InvalidMinPortfolioTokenHoldingAmount,
    LengthMismatch,
    MintAmountBelowMinimum,
    TokenNotWhitelisted,
    TransferNotAllowed,
    UserNotAllowedToDeposit,
    WithdrawalBelowMinimum,
)
from basketvault.core.constants import WAD
from basketvault.core.ledger import Journaled, Ledger
from basketvault.core.models import (
    BasketSnapshot,
    FeeState,
    Vault,
    VaultParameters,
    WithdrawFlashParams,
    WithdrawalResult,
)
from basketvault.core.protocol_config import ProtocolConfig
from basketvault.engine.borrow_manager import BorrowManager
from basketvault.engine.calculations import PortfolioCalculations
from basketvault.engine.exclusion import TokenExclusionLedger
from basketvault.engine.fees import FeeAccrualModule
from basketvault.engine.rebalancing import RebalancingEngine
from basketvault.engine.resolver import TokenBalanceResolver
from basketvault.oracle import PriceOracle
from basketvault.protocols.registry import AssetRegistry

logger = logging.getLogger(__name__)


def escrow_address_for(vault_address: str) -> str:
    """Deterministic escrow account holding a vault's excluded-token proceeds."""
    digest = Web3.keccak(text=f"{vault_address}:exclusion").hex()
    return normalize_address("0x" + digest[-40:])


class VaultCore(Journaled):
    """
    A basket vault ("Portfolio").

    The only component that changes share supply or basket membership. Every
    public mutating call runs inside ``Ledger.atomic`` and either fully commits
    or leaves ledger, pools, vault and exclusion state untouched.
    """

    _journaled_fields = ("vault",)

    def __init__(
        self,
        ledger: Ledger,
        registry: AssetRegistry,
        oracle: PriceOracle,
        config: ProtocolConfig,
        vault: Vault,
        exclusion: Optional[TokenExclusionLedger] = None,
    ):
        self.ledger = ledger
        self.registry = registry
        self.oracle = oracle
        self.config = config
        self.vault = vault

        self.resolver = TokenBalanceResolver(ledger, registry)
        self.calculations = PortfolioCalculations(oracle)
        self.fees = FeeAccrualModule(config)
        self.exclusion = exclusion or TokenExclusionLedger(ledger, escrow_address_for(vault.address))
        self.borrow_manager = BorrowManager(ledger, registry, config, self.calculations, self.resolver)
        self.rebalancing = RebalancingEngine(self)

        ledger.register(config)
        ledger.register(self)

    @classmethod
    def create(
        cls,
        ledger: Ledger,
        registry: AssetRegistry,
        oracle: PriceOracle,
        config: ProtocolConfig,
        address: str,
        params: VaultParameters,
        tokens: List[str],
    ) -> "VaultCore":
        """
        Validate parameters and create an empty vault.

        Raises:
            InvalidFee: If a fee rate is above its protocol maximum
            InvalidInitialPortfolioAmount: If the initial share amount is below the floor
            InvalidMinPortfolioTokenHoldingAmount: If the minimum holding is below the floor
        """
        fees = params.fees
        if fees.management_fee_bps > config.max_management_fee_bps:
            raise InvalidFee(f"Management fee {fees.management_fee_bps} above max {config.max_management_fee_bps}")
        if fees.performance_fee_bps > config.max_performance_fee_bps:
            raise InvalidFee(f"Performance fee {fees.performance_fee_bps} above max {config.max_performance_fee_bps}")
        if max(fees.entry_fee_bps, fees.exit_fee_bps) > config.max_entry_exit_fee_bps:
            raise InvalidFee(f"Entry/exit fee above max {config.max_entry_exit_fee_bps}")
        if min(fees.management_fee_bps, fees.performance_fee_bps, fees.entry_fee_bps, fees.exit_fee_bps) < 0:
            raise InvalidFee("Fees cannot be negative")
        if params.initial_portfolio_amount < config.min_initial_portfolio_amount:
            raise InvalidInitialPortfolioAmount(
                f"Initial amount {params.initial_portfolio_amount} below {config.min_initial_portfolio_amount}"
            )
        if params.min_portfolio_token_holding_amount < config.min_portfolio_token_holding_amount:
            raise InvalidMinPortfolioTokenHoldingAmount(
                f"Min holding {params.min_portfolio_token_holding_amount} "
                f"below {config.min_portfolio_token_holding_amount}"
            )

        params.asset_manager = normalize_address(params.asset_manager)
        params.asset_manager_treasury = normalize_address(params.asset_manager_treasury)
        params.whitelisted_tokens = normalize_addresses(params.whitelisted_tokens)
        params.whitelisted_users = normalize_addresses(params.whitelisted_users)

        now = ledger.now()
        vault = Vault(
            address=normalize_address(address),
            params=params,
            tokens=[],
            creation_timestamp=now,
            cooldown_period=config.cooldown_period,
            fee_state=FeeState(last_charge_timestamp=now, last_protocol_charge_timestamp=now),
        )
        core = cls(ledger, registry, oracle, config, vault)
        vault.tokens = core.validate_token_set(tokens)
        logger.info(f"Created vault {params.symbol} at {vault.address} with {len(vault.tokens)} tokens")
        return core

    # ========== POLICY ==========

    def require_asset_manager(self, caller: str) -> None:
        if normalize_address(caller) != self.vault.params.asset_manager:
            raise CallerNotAssetManager(f"{caller} is not the asset manager of {self.vault.address}")

    def check_token_whitelisted(self, token: str) -> None:
        params = self.vault.params
        if params.whitelist_tokens and token not in params.whitelisted_tokens:
            raise TokenNotWhitelisted(f"{token} is not whitelisted for {self.vault.address}")

    def validate_token_set(self, tokens: Iterable[str]) -> List[str]:
        """Normalize a basket token list: registered, unique, whitelisted and within the asset limit."""
        result = []
        for token in normalize_addresses(tokens):
            if token in result:
                raise DuplicateToken(f"{token} listed twice")
            self.registry.position_for(token)
            self.check_token_whitelisted(token)
            result.append(token)
        if not result:
            raise InvalidAmount("Basket cannot be empty")
        if len(result) > self.config.max_asset_limit:
            raise AssetLimitExceeded(f"{len(result)} tokens above limit {self.config.max_asset_limit}")
        return result

    def _require_depositor(self, user: str) -> None:
        params = self.vault.params
        if not params.public and user not in params.whitelisted_users:
            raise UserNotAllowedToDeposit(f"{user} is not whitelisted for {self.vault.address}")

    def _require_cooldown(self, holder: str, now: int) -> None:
        last = self.vault.last_deposit_timestamp.get(holder)
        if last is not None and now - last < self.vault.cooldown_period:
            raise CooldownPeriodNotPassed(
                f"{holder} must wait {self.vault.cooldown_period - (now - last)}s before withdrawing"
            )

    def _require_min_holding(self, balance: int) -> None:
        minimum = self.vault.params.min_portfolio_token_holding_amount
        if 0 < balance < minimum:
            raise CallerNeedToMaintainMinTokenAmount(f"Balance {balance} below minimum holding {minimum}")

    # ========== BASKET ==========

    def set_basket(self, tokens: List[str]) -> None:
        self.vault.tokens = list(tokens)

    def add_to_basket(self, token: str) -> None:
        self.set_basket(self.validate_token_set(self.vault.tokens + [token]))

    # ========== DEPOSIT ==========

    def multi_token_deposit(
        self,
        user: str,
        amounts: List[int],
        min_mint_amount: int = 0,
        payer: Optional[str] = None,
    ) -> int:
        """
        Deposit basket tokens and mint shares.

        Args:
            user: Receiver of the shares
            amounts: Amount per basket token, in basket order
            min_mint_amount: Minimum shares the user must receive
            payer: Account the tokens come from (default: the user)

        Returns:
            Shares minted to the user, net of the entry fee

        Raises:
            MintAmountBelowMinimum: If fewer than ``min_mint_amount`` shares would be minted
        """
        user = normalize_address(user)
        payer = normalize_address(payer) if payer else user
        with self.ledger.atomic():
            self.config.require_not_paused()
            self._require_depositor(user)
            vault = self.vault
            if len(amounts) != len(vault.tokens):
                raise LengthMismatch(f"{len(amounts)} amounts for {len(vault.tokens)} tokens")
            if any(a < 0 for a in amounts) or not any(amounts):
                raise InvalidAmount("Deposit amounts must be non-negative and not all zero")
            if vault.total_supply == 0 and not all(amounts):
                raise InvalidAmount("First deposit must include every basket token")

            now = self.ledger.now()
            self.fees.charge_streaming_fees(vault, now)

            total_value = 0
            if vault.total_supply:
                total_value = self.calculations.total_vault_value_usd(self.resolver.resolve_basket(vault))
            deposit_value = 0
            for token, amount in zip(vault.tokens, amounts):
                if amount:
                    deposit_value += self.calculations.value_of(self.resolver.underlying_for(token, amount))
                    self.ledger.tokens.transfer(token, payer, vault.address, amount)

            first_deposit = vault.total_supply == 0
            gross = self.calculations.mint_amount(
                deposit_value, vault.total_supply, total_value, vault.params.initial_portfolio_amount
            )
            user_shares, fee_shares = self.fees.entry_fee_split(vault, gross)
            if user_shares == 0 or user_shares < min_mint_amount:
                raise MintAmountBelowMinimum(f"Minting {user_shares} shares, minimum {min_mint_amount}")
            self._require_min_holding(vault.balance_of(user) + user_shares)

            vault.mint_shares(user, user_shares)
            vault.mint_shares(vault.params.asset_manager_treasury, fee_shares)
            vault.last_deposit_timestamp[user] = now
            if first_deposit:
                self.fees.seed_high_water_mark(
                    vault, self.calculations.share_price(deposit_value, vault.total_supply)
                )

        logger.info(
            f"Deposit into {vault.address}: {user} minted {user_shares} shares "
            f"(fee {fee_shares}) for ${deposit_value / WAD:,.2f}"
        )
        return user_shares

    # ========== WITHDRAWAL ==========

    def multi_token_withdrawal(
        self,
        user: str,
        share_amount: int,
        flash_params: Optional[WithdrawFlashParams] = None,
        min_amounts: Optional[List[int]] = None,
        receiver: Optional[str] = None,
    ) -> WithdrawalResult:
        """
        Burn shares and pay out the pro-rata basket, plus any exclusion claims.

        A vault with open debt first unwinds the withdrawn shares' part of the
        debt through a flash loan funded by the withdrawer's collateral.

        Args:
            user: Share holder
            share_amount: Shares to redeem, including the exit fee
            flash_params: Required when the vault carries debt
            min_amounts: Minimum payout per basket token, in basket order
            receiver: Payout receiver (default: the user)

        Raises:
            CooldownPeriodNotPassed: If the user deposited within the cooldown period
            FlashParamsRequired: If the vault has debt and no flash parameters were given
            WithdrawalBelowMinimum: If a payout is below its minimum
        """
        user = normalize_address(user)
        receiver = normalize_address(receiver) if receiver else user
        with self.ledger.atomic():
            self.config.require_not_emergency_paused()
            vault = self.vault
            now = self.ledger.now()
            if share_amount <= 0:
                raise InvalidAmount(f"Share amount must be positive, got {share_amount}")
            balance = vault.balance_of(user)
            if share_amount > balance:
                raise InsufficientBalance(f"{user} holds {balance} shares, redeeming {share_amount}")
            self._require_cooldown(user, now)
            self._require_min_holding(balance - share_amount)
            if min_amounts is not None and len(min_amounts) != len(vault.tokens):
                raise LengthMismatch(f"{len(min_amounts)} minimums for {len(vault.tokens)} tokens")

            self.fees.charge_streaming_fees(vault, now)
            net_shares, exit_fee = self.fees.exit_fee_split(vault, share_amount)
            vault.move_shares(user, vault.params.asset_manager_treasury, exit_fee)

            supply = vault.total_supply
            holdings = {t: self.ledger.tokens.balance_of(t, vault.address) for t in vault.tokens}
            payouts = self.calculations.withdrawal_amounts(net_shares, supply, holdings)

            if vault.has_debt:
                payouts = self._unwind_debt(net_shares, supply, flash_params, payouts)

            vault.burn_shares(user, net_shares)
            for token, amount in payouts.items():
                if amount:
                    self.ledger.tokens.transfer(token, vault.address, receiver, amount)
            if min_amounts is not None:
                for token, minimum in zip(vault.tokens, min_amounts):
                    if payouts.get(token, 0) < minimum:
                        raise WithdrawalBelowMinimum(
                            f"Payout {payouts.get(token, 0)} of {token} below minimum {minimum}"
                        )

            exclusion_payouts = self.exclusion.claim(user, receiver)
            self.ensure_pools_healthy()

        logger.info(
            f"Withdrawal from {vault.address}: {user} burned {net_shares} shares "
            f"(exit fee {exit_fee}), {len(payouts)} tokens paid"
        )
        return WithdrawalResult(
            user=user,
            shares_burned=net_shares,
            exit_fee_shares=exit_fee,
            amounts={t: a for t, a in payouts.items() if a},
            exclusion_payouts=exclusion_payouts,
        )

    def _unwind_debt(
        self,
        net_shares: int,
        supply: int,
        flash_params: Optional[WithdrawFlashParams],
        payouts: Dict[str, int],
    ) -> Dict[str, int]:
        if flash_params is None:
            raise FlashParamsRequired(f"{self.vault.address} carries debt")
        vault = self.vault
        debts: List[Tuple[str, str, int]] = [
            (pool, token, self.registry.lending_adapter_for_pool(pool).debt_of(vault.address, token))
            for pool, token in vault.debts
        ]
        self.config.require_flash_loan_provider(flash_params.flash_loan_provider)
        provider = self.registry.flash_provider_for(flash_params.flash_loan_provider)
        sizing = self.calculations.flash_loan_sizing_for_unwind(
            debts,
            net_shares,
            supply,
            flash_params.flash_loan_token,
            flash_params.buffer_unit,
            flash_params.flashloan_buffer_unit,
            provider.fee_bps,
        )
        outcome = self.borrow_manager.unwind_for_withdrawal(vault, sizing, flash_params, payouts)

        payouts = dict(payouts)
        for token, amount in outcome.sold.items():
            if amount:
                payouts[token] -= amount
        for token, amount in outcome.leftovers.items():
            payouts[token] = payouts.get(token, 0) + amount
        self.borrow_manager.untrack_repaid(vault)
        return payouts

    def ensure_pools_healthy(self) -> None:
        """Raise CollateralInsufficient if any pool the vault borrows from is unhealthy."""
        for pool in {pool for pool, _ in self.vault.debts}:
            self.registry.lending_adapter_for_pool(pool).pool.ensure_healthy(self.vault.address)

    # ========== SHARES ==========

    def transfer_shares(self, sender: str, recipient: str, amount: int) -> None:
        """
        Move shares between holders under the vault's transfer policy.

        The recipient's cooldown restarts so transfers cannot bypass it.
        """
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)
        with self.ledger.atomic():
            self.config.require_not_emergency_paused()
            vault = self.vault
            params = vault.params
            if not params.transferable:
                raise TransferNotAllowed(f"Shares of {vault.address} are not transferable")
            if not params.transferable_to_public and recipient not in params.whitelisted_users:
                raise TransferNotAllowed(f"{recipient} is not whitelisted for {vault.address}")
            if amount <= 0:
                raise InvalidAmount(f"Transfer amount must be positive, got {amount}")
            now = self.ledger.now()
            self._require_cooldown(sender, now)
            self._require_min_holding(vault.balance_of(sender) - amount)
            self._require_min_holding(vault.balance_of(recipient) + amount)
            vault.move_shares(sender, recipient, amount)
            vault.last_deposit_timestamp[recipient] = now
        logger.info(f"Transferred {amount} shares of {vault.address} from {sender} to {recipient}")

    def claim_removed_tokens(self, user: str) -> Dict[str, int]:
        """Claim payouts of tokens removed while ``user`` held shares."""
        with self.ledger.atomic():
            self.config.require_not_emergency_paused()
            return self.exclusion.claim(normalize_address(user))

    # ========== FEES ==========

    def charge_fees(self, caller: str) -> Tuple[int, int]:
        """Charge management and protocol streaming fees. Returns the shares minted."""
        with self.ledger.atomic():
            self.require_asset_manager(caller)
            self.config.require_not_emergency_paused()
            return self.fees.charge_streaming_fees(self.vault, self.ledger.now())

    def charge_performance_fee(self, caller: str) -> int:
        """Charge the performance fee against the high-water mark."""
        with self.ledger.atomic():
            self.require_asset_manager(caller)
            self.config.require_not_emergency_paused()
            return self.fees.charge_performance_fee(self.vault, self.share_price())

    # ========== ADMIN ==========

    def update_min_portfolio_token_holding_amount(self, caller: str, amount: int) -> None:
        with self.ledger.atomic():
            self.require_asset_manager(caller)
            if amount < self.config.min_portfolio_token_holding_amount:
                raise InvalidMinPortfolioTokenHoldingAmount(
                    f"{amount} below protocol floor {self.config.min_portfolio_token_holding_amount}"
                )
            self.vault.params.min_portfolio_token_holding_amount = amount

    def whitelist_users(self, caller: str, users: List[str]) -> None:
        with self.ledger.atomic():
            self.require_asset_manager(caller)
            for user in normalize_addresses(users):
                if user not in self.vault.params.whitelisted_users:
                    self.vault.params.whitelisted_users.append(user)

    def remove_whitelisted_users(self, caller: str, users: List[str]) -> None:
        with self.ledger.atomic():
            self.require_asset_manager(caller)
            removed = set(normalize_addresses(users))
            self.vault.params.whitelisted_users = [
                u for u in self.vault.params.whitelisted_users if u not in removed
            ]

    # ========== VIEWS ==========

    @property
    def address(self) -> str:
        return self.vault.address

    @property
    def tokens(self) -> List[str]:
        return list(self.vault.tokens)

    @property
    def total_supply(self) -> int:
        return self.vault.total_supply

    def balance_of(self, holder: str) -> int:
        return self.vault.balance_of(normalize_address(holder))

    def snapshot(self) -> BasketSnapshot:
        return self.resolver.resolve_basket(self.vault)

    def total_value_usd(self) -> int:
        return self.calculations.total_vault_value_usd(self.snapshot())

    def share_price(self) -> int:
        return self.calculations.share_price(self.total_value_usd(), self.vault.total_supply)
