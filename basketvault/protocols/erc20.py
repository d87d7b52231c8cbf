"""Plain ERC-20 adapter."""

from typing import Dict

from basketvault.core.ledger import Ledger
from basketvault.core.models import Position
from basketvault.protocols.base import AssetValuationAdapter, ProtocolType


class ERC20Adapter(AssetValuationAdapter):
    """A plain token is its own underlying."""

    @property
    def protocol_type(self) -> ProtocolType:
        return ProtocolType.ERC20

    @property
    def protocol_name(self) -> str:
        return ProtocolType.ERC20.value

    def resolve_balances(self, ledger: Ledger, account: str, position: Position) -> Dict[str, int]:
        balance = ledger.tokens.balance_of(position.token, account)
        return {position.token: balance} if balance else {}

    def underlying_for(self, position: Position, amount: int) -> Dict[str, int]:
        return {position.token: amount} if amount else {}
