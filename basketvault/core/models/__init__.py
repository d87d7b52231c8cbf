"""Core data models for the basket vault engine."""

from .position import (
    PositionKind,
    PlainToken,
    LendingToken,
    ExternalLPPosition,
    Position,
    position_from_dict,
)
from .vault import Vault, VaultParameters, FeeParameters, FeeState
from .snapshot import BasketSnapshot, AccountData
from .intents import (
    SwapCallData,
    RebalanceIntent,
    FlashRepayIntent,
    WithdrawFlashParams,
    FlashLoanSizing,
    WithdrawalResult,
)
from .exclusion import ExclusionEvent, ShareHolderCheckpoint

__all__ = [
    "PositionKind",
    "PlainToken",
    "LendingToken",
    "ExternalLPPosition",
    "Position",
    "position_from_dict",
    "Vault",
    "VaultParameters",
    "FeeParameters",
    "FeeState",
    "BasketSnapshot",
    "AccountData",
    "SwapCallData",
    "RebalanceIntent",
    "FlashRepayIntent",
    "WithdrawFlashParams",
    "FlashLoanSizing",
    "WithdrawalResult",
    "ExclusionEvent",
    "ShareHolderCheckpoint",
]
