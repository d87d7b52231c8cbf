"""Vault accounting and rebalancing engine components."""

from .state import RebalanceState
from .resolver import TokenBalanceResolver
from .calculations import PortfolioCalculations
from .fees import FeeAccrualModule
from .exclusion import TokenExclusionLedger
from .borrow_manager import BorrowManager, FlashOutcome
from .rebalancing import RebalancingEngine
from .vault import VaultCore

__all__ = [
    "RebalanceState",
    "TokenBalanceResolver",
    "PortfolioCalculations",
    "FeeAccrualModule",
    "TokenExclusionLedger",
    "BorrowManager",
    "FlashOutcome",
    "RebalancingEngine",
    "VaultCore",
]
