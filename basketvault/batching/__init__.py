"""Deposit and withdrawal batch front-ends."""

from .deposit import DepositBatch
from .withdraw import WithdrawBatch

__all__ = ["DepositBatch", "WithdrawBatch"]
