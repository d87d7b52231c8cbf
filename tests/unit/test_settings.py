"""Unit tests for settings and protocol configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from config.settings import Settings
from basketvault.core.constants import ZERO_ADDRESS
from basketvault.core.errors import (
    InvalidAmount,
    InvalidBufferUnit,
    InvalidFlashLoanProvider,
    InvalidNewBufferUnit,
    InvalidSolver,
    ProtocolEmergencyPaused,
    ProtocolIsPaused,
)
from basketvault.core.protocol_config import ProtocolConfig


class TestSettings:
    """Tests for the pydantic settings model."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.cooldown_period == 86400
        assert settings.max_collateral_buffer_unit == 175
        assert settings.protocol_treasury == ZERO_ADDRESS

    def test_collateral_buffer_cap(self):
        with pytest.raises(ValidationError):
            Settings(max_collateral_buffer_unit=3001)

    def test_treasury_is_checksummed(self):
        settings = Settings(protocol_treasury="0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48")
        assert settings.protocol_treasury == "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"

    def test_invalid_treasury(self):
        with pytest.raises(ValidationError):
            Settings(protocol_treasury="0xnot-an-address")

    def test_storage_dir_from_string(self, tmp_path):
        settings = Settings(storage_dir=str(tmp_path / "snapshots"))
        assert isinstance(settings.storage_dir, Path)
        assert settings.ensure_storage_dir().exists()

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("COOLDOWN_PERIOD", "600")
        assert Settings().cooldown_period == 600


class TestProtocolConfig:
    """Tests for runtime protocol state."""

    def test_pause_gates(self, config):
        config.set_protocol_pause(True)
        with pytest.raises(ProtocolIsPaused):
            config.require_not_paused()
        config.require_not_emergency_paused()

        config.set_emergency_pause(True)
        with pytest.raises(ProtocolEmergencyPaused):
            config.require_not_paused()
        with pytest.raises(ProtocolEmergencyPaused):
            config.require_not_emergency_paused()

    def test_buffer_unit_bounds(self, config):
        config.validate_buffer_unit(175)
        with pytest.raises(InvalidBufferUnit):
            config.validate_buffer_unit(176)

        config.update_max_collateral_buffer_unit(3000)
        config.validate_buffer_unit(3000)
        with pytest.raises(InvalidNewBufferUnit):
            config.update_max_collateral_buffer_unit(3001)

    def test_solver_registry(self, config):
        solver = "0x" + "2" * 40
        with pytest.raises(InvalidSolver):
            config.require_solver(solver)
        config.enable_solver_handler(solver)
        config.require_solver(solver)
        config.disable_solver_handler(solver)
        with pytest.raises(InvalidSolver):
            config.require_solver(solver)

    def test_flash_loan_providers(self, config):
        provider = "0x" + "3" * 40
        with pytest.raises(InvalidFlashLoanProvider):
            config.require_flash_loan_provider(provider)
        config.enable_flash_loan_provider(provider)
        config.require_flash_loan_provider(provider)

    def test_from_settings(self, settings):
        config = ProtocolConfig.from_settings(settings)
        assert config.cooldown_period == 3600
        assert config.min_initial_portfolio_amount == 1

    def test_cooldown_applies_to_new_vaults_only(self, addrs, config, make_vault):
        existing = make_vault([addrs.token_a])
        config.set_cooldown_period(60)

        assert existing.vault.cooldown_period == 3600
        with pytest.raises(InvalidAmount):
            config.set_cooldown_period(-1)
