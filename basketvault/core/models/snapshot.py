"""Point-in-time views of a vault basket and lending accounts."""

from dataclasses import dataclass, field
from typing import Dict, List, Set


@dataclass
class BasketSnapshot:
    """
    Resolved basket of a vault.

    - holdings: raw balance of each basket token held by the vault
    - underlying: per basket token, the underlying amounts it decomposes into
    - assets: aggregated underlying amounts across the whole basket
    - liabilities: borrowed amount per debt token, valued negatively
    """

    holdings: Dict[str, int] = field(default_factory=dict)
    underlying: Dict[str, Dict[str, int]] = field(default_factory=dict)
    assets: Dict[str, int] = field(default_factory=dict)
    liabilities: Dict[str, int] = field(default_factory=dict)

    def add_asset(self, token: str, amount: int) -> None:
        if amount:
            self.assets[token] = self.assets.get(token, 0) + amount

    def add_liability(self, token: str, amount: int) -> None:
        if amount:
            self.liabilities[token] = self.liabilities.get(token, 0) + amount

    @property
    def has_liabilities(self) -> bool:
        return any(v > 0 for v in self.liabilities.values())

    def to_dict(self) -> dict:
        return {
            "holdings": {k: str(v) for k, v in self.holdings.items()},
            "underlying": {
                k: {t: str(a) for t, a in v.items()} for k, v in self.underlying.items()
            },
            "assets": {k: str(v) for k, v in self.assets.items()},
            "liabilities": {k: str(v) for k, v in self.liabilities.items()},
        }


@dataclass
class AccountData:
    """Lending account view of a vault in one pool."""

    pool: str
    supplied: Dict[str, int] = field(default_factory=dict)  # protocol token -> underlying amount
    borrowed: Dict[str, int] = field(default_factory=dict)  # underlying -> amount owed
    collateral_enabled: Set[str] = field(default_factory=set)
    total_collateral_usd: int = 0
    total_debt_usd: int = 0
    health_factor: int = 0  # WAD, 0 when there is no debt

    @property
    def has_debt(self) -> bool:
        return self.total_debt_usd > 0

    @property
    def supplied_tokens(self) -> List[str]:
        return [t for t, a in self.supplied.items() if a > 0]

    @property
    def borrowed_tokens(self) -> List[str]:
        return [t for t, a in self.borrowed.items() if a > 0]
