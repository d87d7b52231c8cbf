"""Base asset valuation adapter interface.

Defines the capability interface every protocol adapter implements so the
balance resolver can value plain, lending and LP positions uniformly.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict

from basketvault.core.ledger import Ledger
from basketvault.core.models import Position


class ProtocolType(Enum):
    """Supported protocol families."""

    ERC20 = "erc20"
    AAVE = "aave"
    VENUS = "venus"
    UNISWAP_V3 = "uniswap_v3"
    ALGEBRA = "algebra"


class AssetValuationAdapter(ABC):
    """Abstract base class for protocol-specific valuation adapters."""

    @property
    @abstractmethod
    def protocol_type(self) -> ProtocolType:
        """Return the protocol family for this adapter."""
        ...

    @property
    @abstractmethod
    def protocol_name(self) -> str:
        """Registry key of this adapter."""
        ...

    @property
    def supports_collateral(self) -> bool:
        """Return True if positions can back a borrow."""
        return False

    @property
    def supports_borrow(self) -> bool:
        """Return True if the protocol can lend to the vault."""
        return False

    @abstractmethod
    def resolve_balances(self, ledger: Ledger, account: str, position: Position) -> Dict[str, int]:
        """Underlying token amounts of ``account``'s holding of ``position``.

        Args:
            ledger: Shared ledger
            account: Holder of the position token
            position: Position to resolve

        Returns:
            Dict mapping underlying token to amount
        """
        ...

    @abstractmethod
    def underlying_for(self, position: Position, amount: int) -> Dict[str, int]:
        """Underlying token amounts of ``amount`` units of the position token."""
        ...
