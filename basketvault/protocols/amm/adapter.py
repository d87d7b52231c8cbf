"""Valuation adapter for wrapped concentrated-liquidity positions."""

import logging
from typing import Dict

from basketvault.core.errors import UnsupportedAsset
from basketvault.core.ledger import Ledger
from basketvault.core.models import ExternalLPPosition, Position
from basketvault.protocols.amm.pool import PositionWrapper
from basketvault.protocols.base import AssetValuationAdapter, ProtocolType

logger = logging.getLogger(__name__)


class PositionWrapperAdapter(AssetValuationAdapter):
    """Decomposes wrapper balances into token0/token1 at the pool's current tick."""

    def __init__(self, protocol_name: str, protocol_type: ProtocolType = ProtocolType.UNISWAP_V3):
        self._protocol_name = protocol_name
        self._protocol_type = protocol_type
        self._wrappers: Dict[str, PositionWrapper] = {}

    @property
    def protocol_type(self) -> ProtocolType:
        return self._protocol_type

    @property
    def protocol_name(self) -> str:
        return self._protocol_name

    def register_wrapper(self, wrapper: PositionWrapper) -> ExternalLPPosition:
        """Track a wrapper and return its position descriptor."""
        self._wrappers[wrapper.address] = wrapper
        return wrapper.position(self.protocol_name)

    def wrapper_for(self, token: str) -> PositionWrapper:
        wrapper = self._wrappers.get(token)
        if wrapper is None:
            raise UnsupportedAsset(f"{self.protocol_name} has no wrapper {token}")
        return wrapper

    def resolve_balances(self, ledger: Ledger, account: str, position: Position) -> Dict[str, int]:
        balance = ledger.tokens.balance_of(position.token, account)
        return self.underlying_for(position, balance)

    def underlying_for(self, position: Position, amount: int) -> Dict[str, int]:
        wrapper = self.wrapper_for(position.token)
        if (position.tick_lower, position.tick_upper) != (wrapper.tick_lower, wrapper.tick_upper):
            raise UnsupportedAsset(f"Position range does not match wrapper {wrapper.address}")
        liquidity = wrapper.liquidity_for_shares(amount)
        amount0, amount1 = wrapper.pool.amounts_for_liquidity(liquidity, wrapper.tick_lower, wrapper.tick_upper)
        result = {}
        if amount0:
            result[wrapper.token0] = amount0
        if amount1:
            result[wrapper.token1] = result.get(wrapper.token1, 0) + amount1
        logger.debug(f"{self.protocol_name}: {amount} of {wrapper.address} -> {result}")
        return result
