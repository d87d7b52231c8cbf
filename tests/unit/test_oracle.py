"""Unit tests for the price oracle."""

import pytest

from basketvault.core.constants import WAD
from basketvault.core.errors import InvalidAmount, PriceFeedUnavailable
from basketvault.oracle import StaticPriceOracle

USDC = "0x" + "6" * 40
WETH = "0x" + "7" * 40


class TestStaticPriceOracle:
    """Tests for USD conversion."""

    @pytest.fixture
    def oracle(self):
        oracle = StaticPriceOracle()
        oracle.set_price(USDC, "1.0001", decimals=6)
        oracle.set_price(WETH, 2000, decimals=18)
        return oracle

    def test_convert_to_usd18(self, oracle):
        assert oracle.convert_to_usd18(WETH, WAD // 2) == 1000 * WAD
        assert oracle.convert_to_usd18(USDC, 1_000_000) == 1_000_100_000_000_000_000

    def test_convert_from_usd18_rounding(self, oracle):
        assert oracle.convert_from_usd18(WETH, 1000 * WAD) == WAD // 2
        assert oracle.convert_from_usd18(USDC, WAD) == 999_900
        assert oracle.convert_from_usd18(USDC, WAD, round_up=True) == 999_901

    def test_missing_feed(self, oracle):
        with pytest.raises(PriceFeedUnavailable):
            oracle.convert_to_usd18("0x" + "9" * 40, 1)

    def test_disabled_feed(self, oracle):
        oracle.disable_feed(WETH)
        assert not oracle.has_feed(WETH)
        with pytest.raises(PriceFeedUnavailable):
            oracle.convert_to_usd18(WETH, WAD)

    def test_non_positive_amount(self, oracle):
        with pytest.raises(InvalidAmount):
            oracle.convert_to_usd18(WETH, 0)

    def test_non_positive_price(self):
        with pytest.raises(InvalidAmount):
            StaticPriceOracle().set_price(WETH, 0)
