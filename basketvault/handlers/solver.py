"""Solver handlers execute opaque swap call data on behalf of a vault."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from basketvault.core.address import normalize_address
from basketvault.core.constants import BPS
from basketvault.core.errors import InsufficientBalance, InsufficientOutput, InvalidAmount, UnsupportedAsset
from basketvault.core.ledger import Ledger
from basketvault.core.models import PositionKind, SwapCallData
from basketvault.oracle import PriceOracle
from basketvault.protocols.registry import AssetRegistry

logger = logging.getLogger(__name__)


class SolverHandler(ABC):
    """
    Executes swap instructions against tokens already transferred to it.

    Outputs are delivered to ``recipient``. The engine only verifies that the
    recipient's balance of each output token grew by the stated minimum.
    """

    def __init__(self, address: str):
        self.address = normalize_address(address)

    def swap_from(
        self,
        ledger: Ledger,
        account: str,
        calls: List[SwapCallData],
        transfers: Optional[Dict[str, int]] = None,
    ) -> Dict[str, int]:
        """
        Move inputs from ``account`` to the handler, execute ``calls`` and check outputs.

        Args:
            ledger: Shared ledger
            account: Account selling and receiving
            calls: Swap instructions
            transfers: Inputs to move (default: the sum of ``amount_in`` per input token)

        Returns:
            Balance increase of ``account`` per output token

        Raises:
            InsufficientOutput: If an output token grew by less than its summed minimums
        """
        if transfers is None:
            transfers = {}
            for call in calls:
                transfers[call.token_in] = transfers.get(call.token_in, 0) + call.amount_in

        minimums: Dict[str, int] = {}
        for call in calls:
            minimums[call.token_out] = minimums.get(call.token_out, 0) + call.min_amount_out
        before = {token: ledger.tokens.balance_of(token, account) for token in minimums}

        for token, amount in transfers.items():
            ledger.tokens.transfer(token, account, self.address, amount)
        self.execute(ledger, account, calls)

        deltas = {}
        for token, minimum in minimums.items():
            delta = ledger.tokens.balance_of(token, account) - before[token]
            if delta < minimum:
                raise InsufficientOutput(f"Balance of {token} grew by {delta}, expected at least {minimum}")
            deltas[token] = delta
        return deltas

    @abstractmethod
    def execute(self, ledger: Ledger, recipient: str, calls: List[SwapCallData]) -> Dict[str, int]:
        """
        Run ``calls`` and deliver outputs to ``recipient``.

        Returns:
            Dict mapping output token to amount delivered
        """
        ...


class OracleSwapHandler(SolverHandler):
    """
    Aggregator stand-in that fills swaps at oracle prices less a slippage haircut.

    Inputs are sold out of the ledger and outputs minted in, so no liquidity
    needs to be seeded. Lending tokens are redeemed on the way in and supplied
    on the way out; LP wrappers can be sold but not bought.
    """

    def __init__(self, address: str, oracle: PriceOracle, registry: AssetRegistry, slippage_bps: int = 0):
        super().__init__(address)
        if not 0 <= slippage_bps < BPS:
            raise InvalidAmount(f"Slippage must be in [0, {BPS}), got {slippage_bps}")
        self.oracle = oracle
        self.registry = registry
        self.slippage_bps = slippage_bps

    def execute(self, ledger: Ledger, recipient: str, calls: List[SwapCallData]) -> Dict[str, int]:
        outputs: Dict[str, int] = {}
        inputs = []
        for call in calls:
            if call.token_in not in inputs:
                inputs.append(call.token_in)
            if call.amount_in == 0:
                continue
            held = ledger.tokens.balance_of(call.token_in, self.address)
            if held < call.amount_in:
                raise InsufficientBalance(f"Handler holds {held} of {call.token_in}, call needs {call.amount_in}")

            value_in = self._release(ledger, call.token_in, call.amount_in)
            value_out = value_in * (BPS - self.slippage_bps) // BPS
            amount_out = self._deliver(ledger, call.token_out, value_out, recipient)
            if amount_out < call.min_amount_out:
                raise InsufficientOutput(
                    f"Swap {call.token_in} -> {call.token_out} returned {amount_out}, "
                    f"minimum {call.min_amount_out}"
                )
            outputs[call.token_out] = outputs.get(call.token_out, 0) + amount_out
            logger.debug(f"Swapped {call.amount_in} {call.token_in} -> {amount_out} {call.token_out}")

        for token in inputs:
            leftover = ledger.tokens.balance_of(token, self.address)
            if leftover:
                ledger.tokens.transfer(token, self.address, recipient, leftover)
        return outputs

    def _release(self, ledger: Ledger, token: str, amount: int) -> int:
        """Sell ``amount`` of ``token`` out of the handler. Returns its USD value."""
        kind = self._kind(token)
        if kind == PositionKind.LENDING:
            adapter = self.registry.lending_adapter_for_token(token)
            underlying = adapter.pool.reserve_for_protocol_token(token).underlying
            redeemed = adapter.redeem(self.address, token, amount)
            return self._burn_for_value(ledger, underlying, redeemed)
        if kind == PositionKind.EXTERNAL_LP:
            wrapper = self.registry.lp_adapter_for_token(token).wrapper_for(token)
            amount0, amount1 = wrapper.withdraw(self.address, amount)
            return (
                self._burn_for_value(ledger, wrapper.token0, amount0)
                + self._burn_for_value(ledger, wrapper.token1, amount1)
            )
        return self._burn_for_value(ledger, token, amount)

    def _burn_for_value(self, ledger: Ledger, token: str, amount: int) -> int:
        if amount == 0:
            return 0
        value = self.oracle.convert_to_usd18(token, amount)
        ledger.tokens.burn(token, self.address, amount)
        return value

    def _deliver(self, ledger: Ledger, token: str, usd_amount: int, recipient: str) -> int:
        """Buy ``token`` worth ``usd_amount`` for ``recipient``. Returns the amount delivered."""
        kind = self._kind(token)
        if kind == PositionKind.EXTERNAL_LP:
            raise UnsupportedAsset(f"{type(self).__name__} cannot buy position wrapper {token}")
        if kind == PositionKind.LENDING:
            adapter = self.registry.lending_adapter_for_token(token)
            underlying = adapter.pool.reserve_for_protocol_token(token).underlying
            amount = self.oracle.convert_from_usd18(underlying, usd_amount)
            if amount == 0:
                return 0
            ledger.tokens.mint(underlying, self.address, amount)
            return adapter.supply(self.address, underlying, amount, on_behalf_of=recipient)
        amount = self.oracle.convert_from_usd18(token, usd_amount)
        if amount:
            ledger.tokens.mint(token, recipient, amount)
        return amount

    def _kind(self, token: str) -> PositionKind:
        if self.registry.is_registered(token):
            return self.registry.position_for(token).kind
        return PositionKind.PLAIN
