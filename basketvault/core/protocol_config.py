"""Runtime protocol configuration shared by every vault."""

import logging
from typing import Optional, Set

from config.settings import Settings, get_settings

from basketvault.core.address import normalize_address
from basketvault.core.constants import MAX_COLLATERAL_BUFFER_UNIT_CAP
from basketvault.core.errors import (
    InvalidAmount,
    InvalidBufferUnit,
    InvalidFlashLoanProvider,
    InvalidNewBufferUnit,
    InvalidSolver,
    ProtocolEmergencyPaused,
    ProtocolIsPaused,
)
from basketvault.core.ledger import Journaled

logger = logging.getLogger(__name__)


class ProtocolConfig(Journaled):
    """
    Protocol admin state: pause flags, enabled solvers and flash-loan providers,
    and the limits vaults are validated against.

    Seeded from ``Settings``; mutated only through the setters below.
    """

    _journaled_fields = (
        "cooldown_period",
        "max_collateral_buffer_unit",
        "protocol_streaming_fee_bps",
        "protocol_treasury",
        "is_protocol_paused",
        "is_emergency_paused",
        "enabled_solvers",
        "flash_loan_providers",
    )

    def __init__(self, settings: Settings):
        self.settings = settings
        self.cooldown_period = settings.cooldown_period
        self.min_initial_portfolio_amount = settings.min_initial_portfolio_amount
        self.min_portfolio_token_holding_amount = settings.min_portfolio_token_holding_amount
        self.max_collateral_buffer_unit = settings.max_collateral_buffer_unit
        self.max_flashloan_buffer_unit = settings.max_flashloan_buffer_unit
        self.protocol_streaming_fee_bps = settings.protocol_streaming_fee_bps
        self.protocol_treasury = settings.protocol_treasury
        self.max_management_fee_bps = settings.max_management_fee_bps
        self.max_performance_fee_bps = settings.max_performance_fee_bps
        self.max_entry_exit_fee_bps = settings.max_entry_exit_fee_bps
        self.max_asset_limit = settings.max_asset_limit

        self.is_protocol_paused = False
        self.is_emergency_paused = False
        self.enabled_solvers: Set[str] = set()
        self.flash_loan_providers: Set[str] = set()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProtocolConfig":
        """Build from explicit settings or the cached environment settings."""
        return cls(settings or get_settings())

    # ========== PAUSE ==========

    def set_protocol_pause(self, paused: bool) -> None:
        self.is_protocol_paused = paused
        logger.info(f"Protocol pause set to {paused}")

    def set_emergency_pause(self, paused: bool) -> None:
        self.is_emergency_paused = paused
        logger.info(f"Emergency pause set to {paused}")

    def require_not_paused(self) -> None:
        """Gate for deposits and rebalancing."""
        self.require_not_emergency_paused()
        if self.is_protocol_paused:
            raise ProtocolIsPaused()

    def require_not_emergency_paused(self) -> None:
        """Gate for withdrawals and fee charging."""
        if self.is_emergency_paused:
            raise ProtocolEmergencyPaused()

    # ========== LIMITS ==========

    def set_cooldown_period(self, seconds: int) -> None:
        if seconds < 0:
            raise InvalidAmount(f"Cooldown period cannot be negative: {seconds}")
        self.cooldown_period = seconds

    def update_max_collateral_buffer_unit(self, buffer_unit: int) -> None:
        """Raise or lower the collateral buffer cap, never above 3%."""
        if buffer_unit < 0 or buffer_unit > MAX_COLLATERAL_BUFFER_UNIT_CAP:
            raise InvalidNewBufferUnit(f"Buffer unit {buffer_unit} outside [0, {MAX_COLLATERAL_BUFFER_UNIT_CAP}]")
        self.max_collateral_buffer_unit = buffer_unit
        logger.info(f"Max collateral buffer unit updated to {buffer_unit}")

    def validate_buffer_unit(self, buffer_unit: int) -> None:
        if buffer_unit < 0 or buffer_unit > self.max_collateral_buffer_unit:
            raise InvalidBufferUnit(f"Buffer unit {buffer_unit} exceeds max {self.max_collateral_buffer_unit}")

    # ========== SOLVERS & FLASH PROVIDERS ==========

    def enable_solver_handler(self, handler: str) -> None:
        self.enabled_solvers.add(normalize_address(handler))

    def disable_solver_handler(self, handler: str) -> None:
        self.enabled_solvers.discard(normalize_address(handler))

    def require_solver(self, handler: str) -> None:
        if handler not in self.enabled_solvers:
            raise InvalidSolver(f"Solver handler {handler} is not enabled")

    def enable_flash_loan_provider(self, provider: str) -> None:
        self.flash_loan_providers.add(normalize_address(provider))

    def require_flash_loan_provider(self, provider: str) -> None:
        if provider not in self.flash_loan_providers:
            raise InvalidFlashLoanProvider(f"Flash loan provider {provider} is not supported")
