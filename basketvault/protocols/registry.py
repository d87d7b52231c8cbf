"""Asset registry mapping basket tokens to positions, adapters and collaborators.

Dispatch is static per position kind: plain tokens always go to the ERC-20
adapter, lending and LP positions to the adapter named by their protocol.
"""

import logging
from typing import TYPE_CHECKING, Dict, List

from basketvault.core.address import normalize_address
from basketvault.core.errors import InvalidFlashLoanProvider, InvalidSolver, UnsupportedAsset
from basketvault.core.models import ExternalLPPosition, LendingToken, PlainToken, Position, PositionKind
from basketvault.protocols.amm.adapter import PositionWrapperAdapter
from basketvault.protocols.amm.pool import PositionWrapper
from basketvault.protocols.base import AssetValuationAdapter
from basketvault.protocols.erc20 import ERC20Adapter
from basketvault.protocols.flash_loan import FlashLoanProvider
from basketvault.protocols.lending.adapters import LendingAssetHandler

if TYPE_CHECKING:
    from basketvault.handlers.solver import SolverHandler

logger = logging.getLogger(__name__)


class AssetRegistry:
    """Registry of adapters, positions, solver handlers and flash-loan providers."""

    def __init__(self):
        self._erc20 = ERC20Adapter()
        self._adapters: Dict[str, AssetValuationAdapter] = {}
        self._positions: Dict[str, Position] = {}
        self._handlers: Dict[str, "SolverHandler"] = {}
        self._flash_providers: Dict[str, FlashLoanProvider] = {}

    # ========== ADAPTERS ==========

    def register_adapter(self, adapter: AssetValuationAdapter) -> None:
        self._adapters[adapter.protocol_name] = adapter
        logger.debug(f"Registered adapter {adapter.protocol_name}")

    def get_adapter(self, protocol_name: str) -> AssetValuationAdapter:
        adapter = self._adapters.get(protocol_name)
        if adapter is None:
            raise UnsupportedAsset(
                f"No adapter registered for protocol: {protocol_name}. "
                f"Available protocols: {list(self._adapters.keys())}"
            )
        return adapter

    def adapter_for(self, position: Position) -> AssetValuationAdapter:
        if position.kind == PositionKind.PLAIN:
            return self._erc20
        return self.get_adapter(position.protocol)

    # ========== POSITIONS ==========

    def register_position(self, position: Position) -> Position:
        if position.kind != PositionKind.PLAIN:
            self.get_adapter(position.protocol)
        self._positions[normalize_address(position.token)] = position
        return position

    def register_token(self, token: str) -> PlainToken:
        return self.register_position(PlainToken(address=normalize_address(token)))

    def register_lending_adapter(self, adapter: LendingAssetHandler) -> List[LendingToken]:
        """Register a lending adapter together with every protocol token of its pool."""
        self.register_adapter(adapter)
        positions = []
        for protocol_token in adapter.pool.protocol_tokens:
            positions.append(self.register_position(adapter.position_for(protocol_token)))
        return positions

    def register_wrapper(self, adapter: PositionWrapperAdapter, wrapper: PositionWrapper) -> ExternalLPPosition:
        if adapter.protocol_name not in self._adapters:
            self.register_adapter(adapter)
        return self.register_position(adapter.register_wrapper(wrapper))

    def is_registered(self, token: str) -> bool:
        return token in self._positions

    def position_for(self, token: str) -> Position:
        position = self._positions.get(token)
        if position is None:
            raise UnsupportedAsset(f"No position registered for token {token}")
        return position

    def is_lending_token(self, token: str) -> bool:
        position = self._positions.get(token)
        return position is not None and position.kind == PositionKind.LENDING

    def is_lp_wrapper(self, token: str) -> bool:
        position = self._positions.get(token)
        return position is not None and position.kind == PositionKind.EXTERNAL_LP

    def lending_adapter_for_pool(self, pool: str) -> LendingAssetHandler:
        for adapter in self._adapters.values():
            if isinstance(adapter, LendingAssetHandler) and adapter.pool.address == pool:
                return adapter
        raise UnsupportedAsset(f"No lending adapter for pool {pool}")

    def lending_adapter_for_token(self, protocol_token: str) -> LendingAssetHandler:
        position = self.position_for(protocol_token)
        if position.kind != PositionKind.LENDING:
            raise UnsupportedAsset(f"{protocol_token} is not a lending token")
        return self.get_adapter(position.protocol)

    def lp_adapter_for_token(self, wrapper: str) -> PositionWrapperAdapter:
        position = self.position_for(wrapper)
        if position.kind != PositionKind.EXTERNAL_LP:
            raise UnsupportedAsset(f"{wrapper} is not a position wrapper")
        return self.get_adapter(position.protocol)

    # ========== SOLVERS & FLASH PROVIDERS ==========

    def register_handler(self, handler: "SolverHandler") -> None:
        self._handlers[handler.address] = handler

    def handler_for(self, address: str) -> "SolverHandler":
        handler = self._handlers.get(address)
        if handler is None:
            raise InvalidSolver(f"Unknown solver handler {address}")
        return handler

    def register_flash_provider(self, provider: FlashLoanProvider) -> None:
        self._flash_providers[provider.address] = provider

    def flash_provider_for(self, address: str) -> FlashLoanProvider:
        provider = self._flash_providers.get(address)
        if provider is None:
            raise InvalidFlashLoanProvider(f"Unknown flash loan provider {address}")
        return provider
