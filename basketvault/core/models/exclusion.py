"""Token exclusion events and per-holder checkpoints."""

from dataclasses import dataclass


@dataclass
class ExclusionEvent:
    """A token removed from the basket with proceeds held in escrow."""

    event_id: int
    token: str
    proceeds: int
    supply_at_removal: int
    timestamp: int
    claimed_total: int = 0

    @property
    def unclaimed(self) -> int:
        return self.proceeds - self.claimed_total

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "token": self.token,
            "proceeds": str(self.proceeds),
            "supply_at_removal": str(self.supply_at_removal),
            "timestamp": self.timestamp,
            "claimed_total": str(self.claimed_total),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExclusionEvent":
        return cls(
            event_id=int(data["event_id"]),
            token=data["token"],
            proceeds=int(data["proceeds"]),
            supply_at_removal=int(data["supply_at_removal"]),
            timestamp=int(data["timestamp"]),
            claimed_total=int(data.get("claimed_total", "0")),
        )


@dataclass
class ShareHolderCheckpoint:
    """A holder's claim on one exclusion event."""

    holder: str
    event_id: int
    token: str
    supply_at_removal: int
    balance_at_removal: int
    claimed: bool = False

    def payout(self, proceeds: int) -> int:
        """Pro-rata share of the event proceeds, floored."""
        if self.supply_at_removal == 0:
            return 0
        return proceeds * self.balance_at_removal // self.supply_at_removal

    def to_dict(self) -> dict:
        return {
            "holder": self.holder,
            "event_id": self.event_id,
            "token": self.token,
            "supply_at_removal": str(self.supply_at_removal),
            "balance_at_removal": str(self.balance_at_removal),
            "claimed": self.claimed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ShareHolderCheckpoint":
        return cls(
            holder=data["holder"],
            event_id=int(data["event_id"]),
            token=data["token"],
            supply_at_removal=int(data["supply_at_removal"]),
            balance_at_removal=int(data["balance_at_removal"]),
            claimed=bool(data.get("claimed", False)),
        )
