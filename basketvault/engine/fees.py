"""Management, protocol, performance and entry/exit fees in share terms."""

import logging
from typing import Tuple

from basketvault.core.constants import BPS, SECONDS_PER_YEAR, WAD, ZERO_ADDRESS
from basketvault.core.models import Vault
from basketvault.core.protocol_config import ProtocolConfig

logger = logging.getLogger(__name__)


class FeeAccrualModule:
    """
    Fee accrual for one protocol configuration.

    Fee shares are minted to the asset-manager treasury (or the protocol
    treasury) and dilute every holder pro rata.
    """

    def __init__(self, config: ProtocolConfig):
        self.config = config

    # ========== STREAMING FEES ==========

    @staticmethod
    def streaming_fee_shares(total_supply: int, fee_bps: int, elapsed: int) -> int:
        """totalSupply * bps * elapsed / (SECONDS_PER_YEAR * 10000), floored."""
        if total_supply <= 0 or fee_bps <= 0 or elapsed <= 0:
            return 0
        return total_supply * fee_bps * elapsed // (SECONDS_PER_YEAR * BPS)

    def charge_management_fee(self, vault: Vault, now: int) -> int:
        """
        Mint accrued management fee shares.

        The charge timestamp only moves when shares are minted, so sub-share
        accruals keep building up. With nothing to accrue against (no supply or
        a zero rate) the timestamp is reset instead.
        """
        state = vault.fee_state
        fee_bps = vault.params.fees.management_fee_bps
        if vault.total_supply == 0 or fee_bps == 0:
            state.last_charge_timestamp = now
            return 0
        shares = self.streaming_fee_shares(vault.total_supply, fee_bps, now - state.last_charge_timestamp)
        if shares == 0:
            return 0
        vault.mint_shares(vault.params.asset_manager_treasury, shares)
        state.last_charge_timestamp = now
        logger.info(f"Management fee: minted {shares} shares of {vault.address}")
        return shares

    def charge_protocol_fee(self, vault: Vault, now: int) -> int:
        """Mint the protocol streaming fee to the protocol treasury."""
        state = vault.fee_state
        fee_bps = self.config.protocol_streaming_fee_bps
        treasury = self.config.protocol_treasury
        if vault.total_supply == 0 or fee_bps == 0 or treasury == ZERO_ADDRESS:
            state.last_protocol_charge_timestamp = now
            return 0
        shares = self.streaming_fee_shares(vault.total_supply, fee_bps, now - state.last_protocol_charge_timestamp)
        if shares == 0:
            return 0
        vault.mint_shares(treasury, shares)
        state.last_protocol_charge_timestamp = now
        logger.info(f"Protocol fee: minted {shares} shares of {vault.address}")
        return shares

    def charge_streaming_fees(self, vault: Vault, now: int) -> Tuple[int, int]:
        """Charge management then protocol fee. Returns (management shares, protocol shares)."""
        return self.charge_management_fee(vault, now), self.charge_protocol_fee(vault, now)

    # ========== PERFORMANCE FEE ==========

    @staticmethod
    def performance_fee_shares(current_price: int, high_water_mark: int, total_supply: int, fee_bps: int) -> int:
        """(current - hwm) * supply * bps / (current * 10000), zero unless above the mark."""
        if current_price <= high_water_mark or current_price <= 0 or fee_bps == 0:
            return 0
        return (current_price - high_water_mark) * total_supply * fee_bps // (current_price * BPS)

    def charge_performance_fee(self, vault: Vault, current_price: int) -> int:
        """
        Mint the performance fee and ratchet the high-water mark.

        The first observation only seeds the mark. The mark moves to
        ``max(mark, current_price)`` whether or not a fee was due.
        """
        state = vault.fee_state
        if state.high_water_mark_per_share == 0:
            state.ratchet_high_water_mark(current_price)
            logger.debug(f"High-water mark of {vault.address} seeded at {current_price}")
            return 0

        shares = self.performance_fee_shares(
            current_price,
            state.high_water_mark_per_share,
            vault.total_supply,
            vault.params.fees.performance_fee_bps,
        )
        if shares:
            vault.mint_shares(vault.params.asset_manager_treasury, shares)
            logger.info(
                f"Performance fee: minted {shares} shares of {vault.address} "
                f"(price {current_price / WAD:.6f} over mark {state.high_water_mark_per_share / WAD:.6f})"
            )
        state.ratchet_high_water_mark(current_price)
        return shares

    def seed_high_water_mark(self, vault: Vault, current_price: int) -> None:
        if vault.fee_state.high_water_mark_per_share == 0 and current_price > 0:
            vault.fee_state.ratchet_high_water_mark(current_price)

    # ========== ENTRY / EXIT ==========

    @staticmethod
    def split_fee(shares: int, fee_bps: int) -> Tuple[int, int]:
        """Split ``shares`` into (user part, fee part); the user part is floored."""
        user = shares * (BPS - fee_bps) // BPS
        return user, shares - user

    def entry_fee_split(self, vault: Vault, gross_shares: int) -> Tuple[int, int]:
        return self.split_fee(gross_shares, vault.params.fees.entry_fee_bps)

    def exit_fee_split(self, vault: Vault, shares: int) -> Tuple[int, int]:
        return self.split_fee(shares, vault.params.fees.exit_fee_bps)
