"""Core module - ledger, models, constants and errors."""

from .constants import SECONDS_PER_YEAR, WAD, BPS
from .ledger import Ledger, ManualClock, TokenLedger, Journaled
from .models import Vault, VaultParameters, FeeParameters, FeeState, BasketSnapshot

__all__ = [
    "SECONDS_PER_YEAR",
    "WAD",
    "BPS",
    "Ledger",
    "ManualClock",
    "TokenLedger",
    "Journaled",
    "Vault",
    "VaultParameters",
    "FeeParameters",
    "FeeState",
    "BasketSnapshot",
]
