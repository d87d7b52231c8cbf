"""Basket position variants."""

from dataclasses import dataclass
from enum import Enum
from typing import Union


class PositionKind(Enum):
    """Closed set of basket member kinds."""

    PLAIN = "plain"
    LENDING = "lending"
    EXTERNAL_LP = "external_lp"


@dataclass(frozen=True)
class PlainToken:
    """A plain ERC-20 held directly by the vault."""

    address: str

    kind = PositionKind.PLAIN

    @property
    def token(self) -> str:
        return self.address

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "address": self.address}


@dataclass(frozen=True)
class LendingToken:
    """
    A lending-market receipt token (aToken / vToken).

    - address = receipt token held by the vault
    - protocol = adapter key in the registry
    - underlying = asset supplied to the market
    """

    address: str
    protocol: str
    underlying: str

    kind = PositionKind.LENDING

    @property
    def token(self) -> str:
        return self.address

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "address": self.address,
            "protocol": self.protocol,
            "underlying": self.underlying,
        }


@dataclass(frozen=True)
class ExternalLPPosition:
    """An ERC-20 wrapper around a concentrated-liquidity position."""

    wrapper: str
    protocol: str
    tick_lower: int
    tick_upper: int

    kind = PositionKind.EXTERNAL_LP

    @property
    def token(self) -> str:
        return self.wrapper

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "wrapper": self.wrapper,
            "protocol": self.protocol,
            "tick_lower": self.tick_lower,
            "tick_upper": self.tick_upper,
        }


Position = Union[PlainToken, LendingToken, ExternalLPPosition]


def position_from_dict(data: dict) -> Position:
    """Deserialize any position variant."""
    kind = PositionKind(data["kind"])
    if kind == PositionKind.PLAIN:
        return PlainToken(address=data["address"])
    if kind == PositionKind.LENDING:
        return LendingToken(
            address=data["address"],
            protocol=data["protocol"],
            underlying=data["underlying"],
        )
    return ExternalLPPosition(
        wrapper=data["wrapper"],
        protocol=data["protocol"],
        tick_lower=int(data["tick_lower"]),
        tick_upper=int(data["tick_upper"]),
    )
