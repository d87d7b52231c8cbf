"""Vault data models."""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from basketvault.core.constants import WAD
from basketvault.core.errors import InsufficientBalance, InvalidAmount


@dataclass
class FeeParameters:
    """Fee rates in basis points."""

    management_fee_bps: int = 0
    performance_fee_bps: int = 0
    entry_fee_bps: int = 0
    exit_fee_bps: int = 0

    def to_dict(self) -> dict:
        return {
            "management_fee_bps": self.management_fee_bps,
            "performance_fee_bps": self.performance_fee_bps,
            "entry_fee_bps": self.entry_fee_bps,
            "exit_fee_bps": self.exit_fee_bps,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FeeParameters":
        return cls(
            management_fee_bps=int(data.get("management_fee_bps", 0)),
            performance_fee_bps=int(data.get("performance_fee_bps", 0)),
            entry_fee_bps=int(data.get("entry_fee_bps", 0)),
            exit_fee_bps=int(data.get("exit_fee_bps", 0)),
        )


@dataclass
class VaultParameters:
    """Creation-time configuration of a vault."""

    name: str
    symbol: str
    asset_manager: str
    asset_manager_treasury: str
    fees: FeeParameters = field(default_factory=FeeParameters)

    # Share issuance
    initial_portfolio_amount: int = 100 * WAD
    min_portfolio_token_holding_amount: int = 10**16

    # Access policy
    public: bool = True
    transferable: bool = True
    transferable_to_public: bool = True
    whitelist_tokens: bool = False
    whitelisted_tokens: List[str] = field(default_factory=list)
    whitelisted_users: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "asset_manager": self.asset_manager,
            "asset_manager_treasury": self.asset_manager_treasury,
            "fees": self.fees.to_dict(),
            "initial_portfolio_amount": str(self.initial_portfolio_amount),
            "min_portfolio_token_holding_amount": str(self.min_portfolio_token_holding_amount),
            "public": self.public,
            "transferable": self.transferable,
            "transferable_to_public": self.transferable_to_public,
            "whitelist_tokens": self.whitelist_tokens,
            "whitelisted_tokens": list(self.whitelisted_tokens),
            "whitelisted_users": list(self.whitelisted_users),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VaultParameters":
        return cls(
            name=data["name"],
            symbol=data["symbol"],
            asset_manager=data["asset_manager"],
            asset_manager_treasury=data["asset_manager_treasury"],
            fees=FeeParameters.from_dict(data.get("fees", {})),
            initial_portfolio_amount=int(data.get("initial_portfolio_amount", 100 * WAD)),
            min_portfolio_token_holding_amount=int(data.get("min_portfolio_token_holding_amount", 10**16)),
            public=data.get("public", True),
            transferable=data.get("transferable", True),
            transferable_to_public=data.get("transferable_to_public", True),
            whitelist_tokens=data.get("whitelist_tokens", False),
            whitelisted_tokens=list(data.get("whitelisted_tokens", [])),
            whitelisted_users=list(data.get("whitelisted_users", [])),
        )


@dataclass
class FeeState:
    """Fee accrual checkpoints. The high-water mark never decreases."""

    last_charge_timestamp: int
    last_protocol_charge_timestamp: int
    high_water_mark_per_share: int = 0  # USD per share base unit, WAD precision

    def ratchet_high_water_mark(self, share_price: int) -> None:
        self.high_water_mark_per_share = max(self.high_water_mark_per_share, share_price)

    def to_dict(self) -> dict:
        return {
            "last_charge_timestamp": self.last_charge_timestamp,
            "last_protocol_charge_timestamp": self.last_protocol_charge_timestamp,
            "high_water_mark_per_share": str(self.high_water_mark_per_share),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FeeState":
        return cls(
            last_charge_timestamp=int(data["last_charge_timestamp"]),
            last_protocol_charge_timestamp=int(data["last_protocol_charge_timestamp"]),
            high_water_mark_per_share=int(data.get("high_water_mark_per_share", "0")),
        )


@dataclass
class Vault:
    """
    A basket vault ("Portfolio").

    The vault address is the account that holds basket tokens on the ledger.
    Shares are tracked here, not on the token ledger.
    """

    address: str
    params: VaultParameters
    tokens: List[str]
    creation_timestamp: int
    cooldown_period: int
    fee_state: FeeState

    total_supply: int = 0
    share_balances: Dict[str, int] = field(default_factory=dict)
    last_deposit_timestamp: Dict[str, int] = field(default_factory=dict)

    # (pool address, debt token) pairs with outstanding borrows
    debts: List[Tuple[str, str]] = field(default_factory=list)

    # ========== SHARES ==========

    def balance_of(self, holder: str) -> int:
        return self.share_balances.get(holder, 0)

    def mint_shares(self, holder: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Cannot mint {amount} shares")
        if amount == 0:
            return
        self.share_balances[holder] = self.balance_of(holder) + amount
        self.total_supply += amount

    def burn_shares(self, holder: str, amount: int) -> None:
        if amount < 0:
            raise InvalidAmount(f"Cannot burn {amount} shares")
        balance = self.balance_of(holder)
        if balance < amount:
            raise InsufficientBalance(f"{holder} holds {balance} shares, needs {amount}")
        self.share_balances[holder] = balance - amount
        self.total_supply -= amount

    def move_shares(self, sender: str, recipient: str, amount: int) -> None:
        if amount == 0 or sender == recipient:
            return
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalance(f"{sender} holds {balance} shares, needs {amount}")
        self.share_balances[sender] = balance - amount
        self.share_balances[recipient] = self.balance_of(recipient) + amount

    def holders(self) -> List[str]:
        """Holders with a nonzero share balance."""
        return [h for h, bal in self.share_balances.items() if bal > 0]

    # ========== DEBT TRACKING ==========

    @property
    def has_debt(self) -> bool:
        return bool(self.debts)

    def track_debt(self, pool: str, token: str) -> None:
        if (pool, token) not in self.debts:
            self.debts.append((pool, token))

    def untrack_debt(self, pool: str, token: str) -> None:
        if (pool, token) in self.debts:
            self.debts.remove((pool, token))

    def debt_tokens_for(self, pool: str) -> List[str]:
        return [t for p, t in self.debts if p == pool]

    # ========== SERIALIZATION ==========

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "params": self.params.to_dict(),
            "tokens": list(self.tokens),
            "creation_timestamp": self.creation_timestamp,
            "cooldown_period": self.cooldown_period,
            "fee_state": self.fee_state.to_dict(),
            "total_supply": str(self.total_supply),
            "share_balances": {k: str(v) for k, v in self.share_balances.items()},
            "last_deposit_timestamp": dict(self.last_deposit_timestamp),
            "debts": [[pool, token] for pool, token in self.debts],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Vault":
        return cls(
            address=data["address"],
            params=VaultParameters.from_dict(data["params"]),
            tokens=list(data["tokens"]),
            creation_timestamp=int(data["creation_timestamp"]),
            cooldown_period=int(data["cooldown_period"]),
            fee_state=FeeState.from_dict(data["fee_state"]),
            total_supply=int(data.get("total_supply", "0")),
            share_balances={k: int(v) for k, v in data.get("share_balances", {}).items()},
            last_deposit_timestamp={k: int(v) for k, v in data.get("last_deposit_timestamp", {}).items()},
            debts=[(pool, token) for pool, token in data.get("debts", [])],
        )
