"""Shared ledger state: token balances, clock and transactional rollback."""

import copy
import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from basketvault.core.errors import InsufficientBalance, InvalidAmount

logger = logging.getLogger(__name__)


class Journaled:
    """Mixin for state holders that can be checkpointed and rolled back.

    Subclasses list the attributes that make up their mutable state in
    ``_journaled_fields``. References to collaborators are never journaled.
    """

    _journaled_fields: Tuple[str, ...] = ()

    def checkpoint(self) -> Dict[str, Any]:
        """Capture a deep copy of the journaled state."""
        return {name: copy.deepcopy(getattr(self, name)) for name in self._journaled_fields}

    def rollback(self, state: Dict[str, Any]) -> None:
        """Restore state captured by ``checkpoint``."""
        for name, value in state.items():
            setattr(self, name, value)


class ManualClock:
    """Deterministic clock for simulations and tests."""

    def __init__(self, start: int = 1_700_000_000):
        self.timestamp = start

    def __call__(self) -> int:
        return self.timestamp

    def advance(self, seconds: int) -> int:
        """Move time forward and return the new timestamp."""
        self.timestamp += seconds
        return self.timestamp


class TokenLedger(Journaled):
    """ERC-20 balances for every token known to the ledger.

    Balances are integer base units keyed by token and then by account.
    """

    _journaled_fields = ("_balances", "_supplies")

    def __init__(self):
        self._balances: Dict[str, Dict[str, int]] = {}
        self._supplies: Dict[str, int] = {}

    def balance_of(self, token: str, account: str) -> int:
        return self._balances.get(token, {}).get(account, 0)

    def total_supply(self, token: str) -> int:
        return self._supplies.get(token, 0)

    def holders(self, token: str) -> List[str]:
        """Accounts with a nonzero balance of ``token``."""
        return [a for a, bal in self._balances.get(token, {}).items() if bal > 0]

    def mint(self, token: str, account: str, amount: int) -> None:
        self._check_amount(amount)
        balances = self._balances.setdefault(token, {})
        balances[account] = balances.get(account, 0) + amount
        self._supplies[token] = self._supplies.get(token, 0) + amount

    def burn(self, token: str, account: str, amount: int) -> None:
        self._check_amount(amount)
        self._debit(token, account, amount)
        self._supplies[token] -= amount

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        """Move ``amount`` of ``token``. Zero transfers are a no-op."""
        self._check_amount(amount)
        if amount == 0 or sender == recipient:
            return
        self._debit(token, sender, amount)
        balances = self._balances.setdefault(token, {})
        balances[recipient] = balances.get(recipient, 0) + amount

    def _debit(self, token: str, account: str, amount: int) -> None:
        balance = self.balance_of(token, account)
        if balance < amount:
            raise InsufficientBalance(
                f"{account} holds {balance} of {token}, needs {amount}"
            )
        self._balances[token][account] = balance - amount

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount < 0:
            raise InvalidAmount(f"Token amounts must be non-negative integers, got {amount!r}")


class Ledger:
    """Single linear ledger shared by every component.

    Holds the token balances, the clock, and the set of journaled participants
    (pools, vault state, exclusion state). ``atomic()`` makes an operation
    all-or-nothing across all of them.
    """

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self.clock = clock or (lambda: int(time.time()))
        self.tokens = TokenLedger()
        self._participants: List[Journaled] = [self.tokens]

    def now(self) -> int:
        """Current block timestamp."""
        return self.clock()

    def register(self, participant: Journaled) -> None:
        """Add a state holder to the rollback set."""
        if not any(p is participant for p in self._participants):
            self._participants.append(participant)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Run a block that either fully commits or leaves no trace.

        Nested blocks are allowed; an inner failure that is caught by the
        caller only rolls back the inner block.
        """
        states = [(p, p.checkpoint()) for p in self._participants]
        try:
            yield
        except Exception as e:
            for participant, state in reversed(states):
                participant.rollback(state)
            logger.debug(f"Rolled back {len(states)} participants after {type(e).__name__}")
            raise
