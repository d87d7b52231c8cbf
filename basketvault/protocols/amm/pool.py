"""Concentrated-liquidity pool model and ERC-20 position wrapper."""

import logging
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal, localcontext
from typing import Dict, Optional, Tuple

from basketvault.core.address import normalize_address
from basketvault.core.errors import InsufficientBalance, InvalidAmount, InvalidPositionRange
from basketvault.core.ledger import Journaled, Ledger
from basketvault.core.models import ExternalLPPosition
from basketvault.protocols.base import ProtocolType

logger = logging.getLogger(__name__)

MIN_TICK = -887272
MAX_TICK = 887272
TICK_BASE = Decimal("1.0001")
PRECISION = 60


def sqrt_price_at_tick(tick: int) -> Decimal:
    """sqrt(1.0001 ** tick), price quoted as token1 per token0 in base units."""
    with localcontext() as ctx:
        ctx.prec = PRECISION
        return TICK_BASE ** (Decimal(tick) / 2)


def _to_int(value: Decimal, round_up: bool = False) -> int:
    rounding = ROUND_CEILING if round_up else ROUND_FLOOR
    return int(value.to_integral_value(rounding=rounding))


class ConcentratedLiquidityPool(Journaled):
    """
    Uniswap V3 / Algebra style pool.

    Only liquidity accounting is modelled: the current tick is set directly
    instead of being moved by swaps, and fees are not accrued.
    """

    _journaled_fields = ("tick", "_positions")

    def __init__(
        self,
        address: str,
        ledger: Ledger,
        token0: str,
        token1: str,
        tick: int = 0,
        protocol_type: ProtocolType = ProtocolType.UNISWAP_V3,
    ):
        self.address = normalize_address(address)
        self.ledger = ledger
        self.token0 = normalize_address(token0)
        self.token1 = normalize_address(token1)
        self.protocol_type = protocol_type
        self.tick = self._check_tick(tick)
        self._positions: Dict[Tuple[str, int, int], int] = {}
        ledger.register(self)

    @staticmethod
    def _check_tick(tick: int) -> int:
        if not MIN_TICK <= tick <= MAX_TICK:
            raise InvalidPositionRange(f"Tick {tick} out of range")
        return tick

    def check_range(self, tick_lower: int, tick_upper: int) -> None:
        self._check_tick(tick_lower)
        self._check_tick(tick_upper)
        if tick_lower >= tick_upper:
            raise InvalidPositionRange(f"Lower tick {tick_lower} must be below upper tick {tick_upper}")

    def set_tick(self, tick: int) -> None:
        """Move the pool price."""
        self.tick = self._check_tick(tick)

    def liquidity_of(self, owner: str, tick_lower: int, tick_upper: int) -> int:
        return self._positions.get((owner, tick_lower, tick_upper), 0)

    # ========== LIQUIDITY MATH ==========

    def amounts_for_liquidity(
        self,
        liquidity: int,
        tick_lower: int,
        tick_upper: int,
        round_up: bool = False,
    ) -> Tuple[int, int]:
        """Token amounts represented by ``liquidity`` at the current tick."""
        self.check_range(tick_lower, tick_upper)
        if liquidity <= 0:
            return 0, 0
        with localcontext() as ctx:
            ctx.prec = PRECISION
            L = Decimal(liquidity)
            sa = sqrt_price_at_tick(tick_lower)
            sb = sqrt_price_at_tick(tick_upper)
            sp = sqrt_price_at_tick(self.tick)
            if self.tick <= tick_lower:
                amount0, amount1 = L * (sb - sa) / (sa * sb), Decimal(0)
            elif self.tick >= tick_upper:
                amount0, amount1 = Decimal(0), L * (sb - sa)
            else:
                amount0 = L * (sb - sp) / (sp * sb)
                amount1 = L * (sp - sa)
            return _to_int(amount0, round_up), _to_int(amount1, round_up)

    def liquidity_for_amounts(self, amount0: int, amount1: int, tick_lower: int, tick_upper: int) -> int:
        """Largest liquidity that both amounts can fund."""
        self.check_range(tick_lower, tick_upper)
        with localcontext() as ctx:
            ctx.prec = PRECISION
            sa = sqrt_price_at_tick(tick_lower)
            sb = sqrt_price_at_tick(tick_upper)
            sp = sqrt_price_at_tick(self.tick)
            if self.tick <= tick_lower:
                liquidity = Decimal(amount0) * sa * sb / (sb - sa)
            elif self.tick >= tick_upper:
                liquidity = Decimal(amount1) / (sb - sa)
            else:
                liquidity = min(
                    Decimal(amount0) * sp * sb / (sb - sp),
                    Decimal(amount1) / (sp - sa),
                )
            return _to_int(liquidity)

    # ========== POSITIONS ==========

    def add_liquidity(
        self,
        payer: str,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        amount0_desired: int,
        amount1_desired: int,
    ) -> Tuple[int, int, int]:
        """Mint liquidity. Returns (liquidity, amount0 used, amount1 used)."""
        liquidity = self.liquidity_for_amounts(amount0_desired, amount1_desired, tick_lower, tick_upper)
        if liquidity <= 0:
            raise InvalidAmount("Amounts too small to mint liquidity")
        used0, used1 = self.amounts_for_liquidity(liquidity, tick_lower, tick_upper, round_up=True)
        used0, used1 = min(used0, amount0_desired), min(used1, amount1_desired)
        self.ledger.tokens.transfer(self.token0, payer, self.address, used0)
        self.ledger.tokens.transfer(self.token1, payer, self.address, used1)
        key = (owner, tick_lower, tick_upper)
        self._positions[key] = self._positions.get(key, 0) + liquidity
        logger.debug(f"Pool {self.address}: +{liquidity} liquidity [{tick_lower}, {tick_upper}] for {owner}")
        return liquidity, used0, used1

    def remove_liquidity(
        self,
        owner: str,
        tick_lower: int,
        tick_upper: int,
        liquidity: int,
        recipient: str,
    ) -> Tuple[int, int]:
        """Burn liquidity and pay out the token amounts."""
        key = (owner, tick_lower, tick_upper)
        current = self._positions.get(key, 0)
        if liquidity > current:
            raise InsufficientBalance(f"{owner} holds {current} liquidity, needs {liquidity}")
        amount0, amount1 = self.amounts_for_liquidity(liquidity, tick_lower, tick_upper)
        self._positions[key] = current - liquidity
        self.ledger.tokens.transfer(self.token0, self.address, recipient, amount0)
        self.ledger.tokens.transfer(self.token1, self.address, recipient, amount1)
        return amount0, amount1


class PositionWrapper:
    """
    Fungible ERC-20 wrapper around one pool position.

    Wrapper tokens live on the shared token ledger; each is a pro-rata claim
    on the wrapper's liquidity.
    """

    def __init__(self, address: str, pool: ConcentratedLiquidityPool, tick_lower: int, tick_upper: int):
        pool.check_range(tick_lower, tick_upper)
        self.address = normalize_address(address)
        self.pool = pool
        self.tick_lower = tick_lower
        self.tick_upper = tick_upper

    @property
    def ledger(self) -> Ledger:
        return self.pool.ledger

    @property
    def token0(self) -> str:
        return self.pool.token0

    @property
    def token1(self) -> str:
        return self.pool.token1

    @property
    def total_liquidity(self) -> int:
        return self.pool.liquidity_of(self.address, self.tick_lower, self.tick_upper)

    @property
    def total_supply(self) -> int:
        return self.ledger.tokens.total_supply(self.address)

    def position(self, protocol: str) -> ExternalLPPosition:
        return ExternalLPPosition(
            wrapper=self.address,
            protocol=protocol,
            tick_lower=self.tick_lower,
            tick_upper=self.tick_upper,
        )

    def liquidity_for_shares(self, shares: int) -> int:
        supply = self.total_supply
        if supply == 0 or shares <= 0:
            return 0
        return self.total_liquidity * shares // supply

    def deposit(self, depositor: str, amount0: int, amount1: int, recipient: Optional[str] = None) -> int:
        """Add liquidity from ``depositor`` and mint wrapper shares. Returns shares minted."""
        supply, total_liquidity = self.total_supply, self.total_liquidity
        liquidity, _, _ = self.pool.add_liquidity(
            depositor, self.address, self.tick_lower, self.tick_upper, amount0, amount1
        )
        shares = liquidity if supply == 0 else liquidity * supply // total_liquidity
        if shares == 0:
            raise InvalidAmount("Deposit too small to mint wrapper shares")
        self.ledger.tokens.mint(self.address, recipient or depositor, shares)
        return shares

    def withdraw(self, holder: str, shares: int, recipient: Optional[str] = None) -> Tuple[int, int]:
        """Burn wrapper shares and pay out token0/token1."""
        liquidity = self.liquidity_for_shares(shares)
        self.ledger.tokens.burn(self.address, holder, shares)
        return self.pool.remove_liquidity(
            self.address, self.tick_lower, self.tick_upper, liquidity, recipient or holder
        )
