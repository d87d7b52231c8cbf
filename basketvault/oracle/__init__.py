"""Price oracle gateway."""

from .price_oracle import PriceOracle, StaticPriceOracle, PriceFeed

__all__ = ["PriceOracle", "StaticPriceOracle", "PriceFeed"]
