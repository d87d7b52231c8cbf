"""Concentrated-liquidity pools and position wrappers."""

from .pool import ConcentratedLiquidityPool, PositionWrapper, sqrt_price_at_tick
from .adapter import PositionWrapperAdapter

__all__ = ["ConcentratedLiquidityPool", "PositionWrapper", "PositionWrapperAdapter", "sqrt_price_at_tick"]
