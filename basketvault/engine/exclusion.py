"""Token exclusion ledger: claims of pre-removal holders on removed tokens."""

import logging
from typing import Dict, List, Optional, Tuple

from basketvault.core.address import normalize_address
from basketvault.core.ledger import Journaled, Ledger
from basketvault.core.models import ExclusionEvent, ShareHolderCheckpoint, Vault

logger = logging.getLogger(__name__)


class TokenExclusionLedger(Journaled):
    """
    Escrows the remaining balance of a token removed from a vault's basket and
    records, for every holder at that moment, a claim on it.

    Events live in an arena indexed by id. Each holder keeps a pending index so
    a claim only touches that holder's unclaimed events.
    """

    _journaled_fields = ("_events", "_checkpoints", "_pending")

    def __init__(self, ledger: Ledger, escrow_address: str):
        self.ledger = ledger
        self.escrow_address = normalize_address(escrow_address)
        self._events: List[ExclusionEvent] = []
        self._checkpoints: Dict[Tuple[str, int], ShareHolderCheckpoint] = {}
        self._pending: Dict[str, List[int]] = {}
        ledger.register(self)

    @property
    def events(self) -> List[ExclusionEvent]:
        return list(self._events)

    def record_removal(self, vault: Vault, token: str, source: Optional[str] = None) -> Optional[ExclusionEvent]:
        """
        Escrow the remaining ``token`` balance and checkpoint current holders.

        Args:
            vault: Vault the token is removed from
            token: Removed basket token
            source: Account holding the proceeds (default: the vault)

        Returns:
            The recorded event, or None when there is nothing to escrow
        """
        source = source or vault.address
        proceeds = self.ledger.tokens.balance_of(token, source)
        if proceeds == 0 or vault.total_supply == 0:
            return None

        self.ledger.tokens.transfer(token, source, self.escrow_address, proceeds)
        event = ExclusionEvent(
            event_id=len(self._events),
            token=token,
            proceeds=proceeds,
            supply_at_removal=vault.total_supply,
            timestamp=self.ledger.now(),
        )
        self._events.append(event)

        for holder in vault.holders():
            self._checkpoints[(holder, event.event_id)] = ShareHolderCheckpoint(
                holder=holder,
                event_id=event.event_id,
                token=token,
                supply_at_removal=vault.total_supply,
                balance_at_removal=vault.balance_of(holder),
            )
            self._pending.setdefault(holder, []).append(event.event_id)

        logger.info(
            f"Excluded {proceeds} of {token} from {vault.address}: "
            f"{len(vault.holders())} holders checkpointed (event {event.event_id})"
        )
        return event

    def checkpoint_for(self, holder: str, token: str) -> Optional[ShareHolderCheckpoint]:
        """Most recent checkpoint of ``holder`` on ``token``."""
        matches = [
            cp for (h, _), cp in self._checkpoints.items()
            if h == holder and cp.token == token
        ]
        return max(matches, key=lambda cp: cp.event_id) if matches else None

    def claimable(self, holder: str) -> Dict[str, int]:
        """Unclaimed payouts of ``holder`` per token."""
        amounts: Dict[str, int] = {}
        for event_id in self._pending.get(holder, []):
            event = self._events[event_id]
            payout = self._checkpoints[(holder, event_id)].payout(event.proceeds)
            if payout:
                amounts[event.token] = amounts.get(event.token, 0) + payout
        return amounts

    def claim(self, holder: str, receiver: Optional[str] = None) -> Dict[str, int]:
        """
        Pay out and close every pending checkpoint of ``holder``.

        Returns:
            Dict mapping token to amount paid
        """
        paid: Dict[str, int] = {}
        for event_id in self._pending.pop(holder, []):
            event = self._events[event_id]
            cp = self._checkpoints[(holder, event_id)]
            if cp.claimed:
                continue
            payout = cp.payout(event.proceeds)
            cp.claimed = True
            if payout:
                self.ledger.tokens.transfer(event.token, self.escrow_address, receiver or holder, payout)
                event.claimed_total += payout
                paid[event.token] = paid.get(event.token, 0) + payout
        if paid:
            logger.info(f"Exclusion claim for {holder}: {paid}")
        return paid

    # ========== SERIALIZATION ==========

    def to_dict(self) -> dict:
        return {
            "escrow_address": self.escrow_address,
            "events": [e.to_dict() for e in self._events],
            "checkpoints": [cp.to_dict() for cp in self._checkpoints.values()],
        }

    def load_dict(self, data: dict) -> None:
        """Restore events and checkpoints saved by ``to_dict``."""
        self._events = [ExclusionEvent.from_dict(e) for e in data.get("events", [])]
        self._checkpoints = {}
        self._pending = {}
        for raw in data.get("checkpoints", []):
            cp = ShareHolderCheckpoint.from_dict(raw)
            self._checkpoints[(cp.holder, cp.event_id)] = cp
            if not cp.claimed:
                self._pending.setdefault(cp.holder, []).append(cp.event_id)
