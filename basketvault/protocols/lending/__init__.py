"""Lending market model and adapter."""

from .pool import LendingPool, Reserve
from .adapters import LendingAssetHandler

__all__ = ["LendingPool", "Reserve", "LendingAssetHandler"]
