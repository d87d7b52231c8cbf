"""Price oracle read contract and an in-memory implementation."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Union

from basketvault.core.address import normalize_address
from basketvault.core.constants import WAD
from basketvault.core.errors import InvalidAmount, PriceFeedUnavailable

logger = logging.getLogger(__name__)


class PriceOracle(ABC):
    """
    Converts token amounts to and from 18-decimal USD.

    Implementations must raise rather than return zero for an unusable feed.
    """

    @abstractmethod
    def convert_to_usd18(self, token: str, amount: int) -> int:
        """Value ``amount`` base units of ``token`` in 18-decimal USD."""
        pass

    @abstractmethod
    def convert_from_usd18(self, token: str, usd_amount: int, round_up: bool = False) -> int:
        """Amount of ``token`` base units worth ``usd_amount``."""
        pass

    @abstractmethod
    def has_feed(self, token: str) -> bool:
        pass


@dataclass
class PriceFeed:
    price: int  # USD per whole token, WAD precision
    decimals: int
    enabled: bool = True


class StaticPriceOracle(PriceOracle):
    """Oracle backed by manually set prices. Used for simulation and tests."""

    def __init__(self):
        self._feeds: Dict[str, PriceFeed] = {}

    def set_price(self, token: str, price: Union[int, float, str, Decimal], decimals: int = 18) -> None:
        """
        Set a token's USD price.

        Args:
            token: Token address
            price: USD per whole token (e.g. "1.0001")
            decimals: Token decimals
        """
        price18 = int(Decimal(str(price)) * WAD)
        if price18 <= 0:
            raise InvalidAmount(f"Price must be positive, got {price}")
        self._feeds[normalize_address(token)] = PriceFeed(price=price18, decimals=decimals)
        logger.debug(f"Price for {token} set to {price} ({decimals} decimals)")

    def disable_feed(self, token: str) -> None:
        """Simulate a reverted feed."""
        feed = self._feeds.get(normalize_address(token))
        if feed:
            feed.enabled = False

    def decimals(self, token: str) -> int:
        return self._feed(token).decimals

    def has_feed(self, token: str) -> bool:
        feed = self._feeds.get(token)
        return feed is not None and feed.enabled

    def convert_to_usd18(self, token: str, amount: int) -> int:
        if amount <= 0:
            raise InvalidAmount(f"Cannot price non-positive amount {amount} of {token}")
        feed = self._feed(token)
        return amount * feed.price // 10**feed.decimals

    def convert_from_usd18(self, token: str, usd_amount: int, round_up: bool = False) -> int:
        if usd_amount < 0:
            raise InvalidAmount(f"Negative USD amount {usd_amount}")
        feed = self._feed(token)
        numerator = usd_amount * 10**feed.decimals
        if round_up:
            return -(-numerator // feed.price)
        return numerator // feed.price

    def _feed(self, token: str) -> PriceFeed:
        feed = self._feeds.get(token)
        if feed is None or not feed.enabled:
            raise PriceFeedUnavailable(f"No price feed for {token}")
        return feed
