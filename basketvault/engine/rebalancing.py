"""Asset-manager rebalancing: token-set changes, borrow, repay and collateral toggles."""

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

from basketvault.core.address import normalize_address
from basketvault.core.errors import (
    CollateralInUse,
    InvalidAddress,
    LengthMismatch,
    SellAmountExceedsBalance,
    UnsupportedAsset,
    ZeroBalanceToken,
)
from basketvault.core.models import FlashRepayIntent, RebalanceIntent, SwapCallData
from basketvault.engine.borrow_manager import FlashOutcome
from basketvault.engine.state import RebalanceState
from basketvault.protocols.lending.adapters import LendingAssetHandler

if TYPE_CHECKING:
    from basketvault.engine.vault import VaultCore

logger = logging.getLogger(__name__)


class RebalancingEngine:
    """
    Orchestrates basket changes for one vault.

    Token-set path:
        IDLE -> VALIDATING_INTENT -> EXECUTING_SELLS -> EXECUTING_BUYS -> UPDATING_BASKET -> IDLE
    Repay path:
        IDLE -> VALIDATING_REPAY_INTENT -> FLASH_BORROW -> REPAY_DEBT -> SWAP_SURPLUS
             -> REPAY_FLASH_LOAN -> UPDATING_COLLATERAL_STATE -> IDLE

    Each call is all-or-nothing. ``state`` is back at IDLE after every call
    and ``transitions`` holds the path of the last one.
    """

    def __init__(self, core: "VaultCore"):
        self.core = core
        self.state = RebalanceState.IDLE
        self.transitions: List[RebalanceState] = []

    def _enter(self, state: RebalanceState) -> None:
        self.state = state
        self.transitions.append(state)

    @contextmanager
    def _operation(self, caller: str) -> Iterator[None]:
        self.transitions = [RebalanceState.IDLE]
        try:
            with self.core.ledger.atomic():
                self.core.require_asset_manager(caller)
                self.core.config.require_not_paused()
                yield
        finally:
            self._enter(RebalanceState.IDLE)

    # ========== TOKEN SET ==========

    def update_tokens(self, caller: str, intent: RebalanceIntent) -> Dict[str, int]:
        """
        Sell, buy and replace the basket with ``intent.new_tokens``.

        Tokens dropped from the basket are escrowed for current holders.

        Returns:
            Balance increase per bought token

        Raises:
            SellAmountExceedsBalance: If a sell amount is above the vault's holding
            UnsupportedAsset: If a sold token is not an input of any swap
            CollateralInsufficient: If the sells leave a lending pool unhealthy
            InsufficientOutput: If a bought token grew by less than its minimum
            ZeroBalanceToken: If a token of the new basket holds nothing
        """
        with self._operation(caller):
            return self._rebalance(intent)

    def update_weights(
        self,
        caller: str,
        sell_tokens: List[str],
        sell_amounts: List[int],
        handler: str,
        call_data: List[SwapCallData],
    ) -> Dict[str, int]:
        """Rebalance within the current token set."""
        with self._operation(caller):
            intent = RebalanceIntent(
                new_tokens=list(self.core.vault.tokens),
                sell_tokens=sell_tokens,
                sell_amounts=sell_amounts,
                handler=handler,
                call_data=call_data,
            )
            return self._rebalance(intent)

    def _rebalance(self, intent: RebalanceIntent) -> Dict[str, int]:
        core = self.core
        vault = core.vault
        tokens = core.ledger.tokens

        self._enter(RebalanceState.VALIDATING_INTENT)
        intent.validate_shape()
        core.config.require_solver(intent.handler)
        handler = core.registry.handler_for(intent.handler)
        new_tokens = core.validate_token_set(intent.new_tokens)

        holdings = core.resolver.resolve_basket(vault).holdings
        sells: Dict[str, int] = {}
        for token, amount in zip(intent.sell_tokens, intent.sell_amounts):
            token = normalize_address(token)
            if token not in holdings:
                raise UnsupportedAsset(f"Cannot sell {token}: not in the basket")
            sells[token] = sells.get(token, 0) + amount
            if sells[token] > holdings[token]:
                raise SellAmountExceedsBalance(f"Selling {sells[token]} of {token}, vault holds {holdings[token]}")

        swapped = {normalize_address(call.token_in) for call in intent.call_data if call.amount_in}
        for token, amount in sells.items():
            if amount and token not in swapped:
                raise UnsupportedAsset(f"Sell of {token} has no swap in the call data")

        removed = [t for t in vault.tokens if t not in new_tokens]
        self._check_collateral_removal(removed)

        self._enter(RebalanceState.EXECUTING_SELLS)
        for token, amount in sells.items():
            tokens.transfer(token, vault.address, handler.address, amount)
            logger.debug(f"Sell {amount} of {token} via {handler.address}")

        self._enter(RebalanceState.EXECUTING_BUYS)
        bought = handler.swap_from(core.ledger, vault.address, intent.call_data, transfers={})

        self._enter(RebalanceState.UPDATING_BASKET)
        for token in removed:
            core.exclusion.record_removal(vault, token)
        for token in new_tokens:
            if tokens.balance_of(token, vault.address) == 0:
                raise ZeroBalanceToken(f"{token} has no balance in the new basket")
        core.set_basket(new_tokens)
        core.ensure_pools_healthy()

        logger.info(
            f"Rebalanced {vault.address}: sold {len(sells)} tokens, removed {len(removed)}, "
            f"basket now {len(new_tokens)} tokens"
        )
        return bought

    def _check_collateral_removal(self, removed: List[str]) -> None:
        vault = self.core.vault
        for token in removed:
            if not self.core.registry.is_lending_token(token):
                continue
            adapter = self.core.registry.lending_adapter_for_token(token)
            if adapter.is_collateral(vault.address, token) and vault.debt_tokens_for(adapter.pool.address):
                raise CollateralInUse(f"{token} backs open debt in pool {adapter.pool.address}")

    # ========== BORROW / REPAY ==========

    def borrow(
        self,
        caller: str,
        pool: str,
        collateral_tokens: List[str],
        borrow_token: str,
        amount: int,
        on_behalf_of: Optional[str] = None,
    ) -> None:
        """
        Enable collateral and borrow ``amount`` of ``borrow_token`` into the vault.

        The borrowed token joins the basket and the debt is tracked as a liability.

        ``on_behalf_of`` defaults to the vault and must be the vault: only its own
        debt is tracked as a basket liability.

        Raises:
            InvalidAddress: If the debt would be charged to another account
            CollateralInsufficient: If the pool rejects the borrow
        """
        with self._operation(caller):
            core = self.core
            vault = core.vault
            adapter = core.registry.lending_adapter_for_pool(normalize_address(pool))
            borrow_token = normalize_address(borrow_token)
            core.registry.position_for(borrow_token)
            core.check_token_whitelisted(borrow_token)
            debtor = normalize_address(on_behalf_of) if on_behalf_of else vault.address
            if debtor != vault.address:
                raise InvalidAddress(f"Vault {vault.address} cannot borrow on behalf of {debtor}")

            for token in collateral_tokens:
                self._require_basket_collateral(adapter, normalize_address(token))
                adapter.set_collateral(vault.address, normalize_address(token), True)
            adapter.borrow(vault.address, borrow_token, amount, on_behalf_of=debtor)
            vault.track_debt(adapter.pool.address, borrow_token)
            if borrow_token not in vault.tokens:
                core.add_to_basket(borrow_token)
            logger.info(f"{vault.address} borrowed {amount} {borrow_token} from {adapter.pool.address}")

    def repay(self, caller: str, pool: str, intent: FlashRepayIntent) -> FlashOutcome:
        """Flash-loan-backed repayment of debt in ``pool``."""
        with self._operation(caller):
            core = self.core
            outcome = core.borrow_manager.repay(core.vault, normalize_address(pool), intent, on_state=self._enter)
            for token, amount in outcome.leftovers.items():
                if token in core.vault.tokens:
                    continue
                if core.registry.is_registered(token) and len(core.vault.tokens) < core.config.max_asset_limit:
                    core.add_to_basket(token)
                else:
                    logger.warning(f"Leftover {amount} of {token} is not tracked in the basket")
            return outcome

    # ========== COLLATERAL ==========

    def enable_collateral_tokens(self, caller: str, tokens: List[str], pool: str) -> List[str]:
        """Enable collateral flags. Already-enabled tokens are skipped. Returns the tokens changed."""
        return self._toggle_collateral(caller, tokens, pool, True)

    def disable_collateral_tokens(self, caller: str, tokens: List[str], pool: str) -> List[str]:
        """Disable collateral flags; the pool must stay healthy."""
        return self._toggle_collateral(caller, tokens, pool, False)

    def _toggle_collateral(self, caller: str, tokens: List[str], pool: str, enabled: bool) -> List[str]:
        if not tokens:
            raise LengthMismatch("No tokens given")
        with self._operation(caller):
            adapter = self.core.registry.lending_adapter_for_pool(normalize_address(pool))
            changed = []
            for token in tokens:
                token = normalize_address(token)
                self._require_basket_collateral(adapter, token)
                if adapter.set_collateral(self.core.vault.address, token, enabled):
                    changed.append(token)
            return changed

    def _require_basket_collateral(self, adapter: LendingAssetHandler, token: str) -> None:
        if token not in self.core.vault.tokens:
            raise UnsupportedAsset(f"{token} is not in the basket")
        if not adapter.pool.is_protocol_token(token):
            raise UnsupportedAsset(f"{token} is not a protocol token of pool {adapter.pool.address}")
