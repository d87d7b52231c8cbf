"""Protocol adapters module.

Provides a unified valuation interface over plain, lending and LP positions.
"""

from basketvault.protocols.base import AssetValuationAdapter, ProtocolType
from basketvault.protocols.erc20 import ERC20Adapter
from basketvault.protocols.flash_loan import FlashLoanProvider
from basketvault.protocols.registry import AssetRegistry

__all__ = [
    "AssetValuationAdapter",
    "ProtocolType",
    "ERC20Adapter",
    "FlashLoanProvider",
    "AssetRegistry",
]
