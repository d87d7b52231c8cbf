"""Rebalancing state machine states."""

from enum import Enum


class RebalanceState(Enum):
    """States of a rebalancing call. Every call starts and ends at IDLE."""

    IDLE = "idle"

    # Token-set change
    VALIDATING_INTENT = "validating_intent"
    EXECUTING_SELLS = "executing_sells"
    EXECUTING_BUYS = "executing_buys"
    UPDATING_BASKET = "updating_basket"

    # Flash-loan-backed repayment
    VALIDATING_REPAY_INTENT = "validating_repay_intent"
    FLASH_BORROW = "flash_borrow"
    REPAY_DEBT = "repay_debt"
    SWAP_SURPLUS = "swap_surplus"
    REPAY_FLASH_LOAN = "repay_flash_loan"
    UPDATING_COLLATERAL_STATE = "updating_collateral_state"
