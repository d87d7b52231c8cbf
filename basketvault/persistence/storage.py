"""Vault snapshot storage."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import get_settings

from basketvault.core.address import normalize_address
from basketvault.core.ledger import Ledger
from basketvault.core.models import Vault
from basketvault.core.protocol_config import ProtocolConfig
from basketvault.engine.exclusion import TokenExclusionLedger
from basketvault.engine.vault import VaultCore, escrow_address_for
from basketvault.oracle import PriceOracle
from basketvault.protocols.registry import AssetRegistry

logger = logging.getLogger(__name__)


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal and datetime types."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


@dataclass
class StoredVault:
    """A loaded snapshot: vault state plus its exclusion ledger."""

    snapshot_id: str
    saved_at: str
    vault: Vault
    exclusion: Dict[str, Any]


class VaultStorage:
    """
    Persistent storage for vault state snapshots.

    Token balances live on the ledger and are not part of a snapshot.
    Directory structure:
        storage_dir/
            vaults/
                {vault_address}/
                    {snapshot_id}.json
    """

    def __init__(self, storage_dir: Optional[Path] = None):
        """
        Initialize storage.

        Args:
            storage_dir: Base directory for storage (default: settings.storage_dir)
        """
        if storage_dir is None:
            storage_dir = get_settings().ensure_storage_dir()

        self.storage_dir = Path(storage_dir)
        self.vaults_dir = self.storage_dir / "vaults"
        self.vaults_dir.mkdir(parents=True, exist_ok=True)

    def _vault_dir(self, address: str) -> Path:
        return self.vaults_dir / normalize_address(address)

    def save_snapshot(self, core: VaultCore, snapshot_id: Optional[str] = None) -> str:
        """
        Save the current vault and exclusion state.

        Args:
            core: Vault to snapshot
            snapshot_id: Optional custom ID (default: UTC timestamp)

        Returns:
            Snapshot ID
        """
        saved_at = datetime.now(timezone.utc)
        if snapshot_id is None:
            snapshot_id = saved_at.strftime("%Y%m%d_%H%M%S_%f")

        vault_dir = self._vault_dir(core.address)
        vault_dir.mkdir(parents=True, exist_ok=True)

        data = {
            "_id": snapshot_id,
            "_saved_at": saved_at,
            "ledger_timestamp": core.ledger.now(),
            "vault": core.vault.to_dict(),
            "exclusion": core.exclusion.to_dict(),
        }
        with open(vault_dir / f"{snapshot_id}.json", "w") as f:
            json.dump(data, f, cls=DecimalEncoder, indent=2)

        logger.info(f"Saved snapshot: {core.address}/{snapshot_id}")
        return snapshot_id

    def load_snapshot(self, address: str, snapshot_id: str) -> Optional[StoredVault]:
        """
        Load a snapshot.

        Returns:
            StoredVault or None if not found
        """
        file_path = self._vault_dir(address) / f"{snapshot_id}.json"

        if not file_path.exists():
            logger.warning(f"Snapshot not found: {address}/{snapshot_id}")
            return None

        with open(file_path, "r") as f:
            data = json.load(f)

        return StoredVault(
            snapshot_id=data.get("_id", snapshot_id),
            saved_at=data.get("_saved_at", ""),
            vault=Vault.from_dict(data["vault"]),
            exclusion=data.get("exclusion", {}),
        )

    def list_snapshots(self, address: str) -> List[Dict[str, Any]]:
        """
        List all snapshots of a vault.

        Returns:
            List of snapshot summaries, newest first
        """
        vault_dir = self._vault_dir(address)

        if not vault_dir.exists():
            return []

        snapshots = []
        for file_path in vault_dir.glob("*.json"):
            with open(file_path, "r") as f:
                data = json.load(f)

            vault = data.get("vault", {})
            snapshots.append({
                "id": data.get("_id", file_path.stem),
                "saved_at": data.get("_saved_at", ""),
                "ledger_timestamp": data.get("ledger_timestamp"),
                "total_supply": vault.get("total_supply"),
                "tokens": vault.get("tokens", []),
            })

        snapshots.sort(key=lambda x: x.get("saved_at", ""), reverse=True)
        return snapshots

    def get_latest_snapshot(self, address: str) -> Optional[StoredVault]:
        """Get the most recent snapshot of a vault."""
        snapshots = self.list_snapshots(address)
        if not snapshots:
            return None
        return self.load_snapshot(address, snapshots[0]["id"])

    def delete_snapshot(self, address: str, snapshot_id: str) -> bool:
        """
        Delete a snapshot.

        Returns:
            True if deleted, False if not found
        """
        file_path = self._vault_dir(address) / f"{snapshot_id}.json"

        if file_path.exists():
            file_path.unlink()
            logger.info(f"Deleted snapshot: {address}/{snapshot_id}")
            return True

        return False

    def restore(
        self,
        stored: StoredVault,
        ledger: Ledger,
        registry: AssetRegistry,
        oracle: PriceOracle,
        config: ProtocolConfig,
    ) -> VaultCore:
        """Rebuild a VaultCore from a snapshot against live collaborators."""
        exclusion = TokenExclusionLedger(
            ledger, stored.exclusion.get("escrow_address") or escrow_address_for(stored.vault.address)
        )
        exclusion.load_dict(stored.exclusion)
        return VaultCore(ledger, registry, oracle, config, stored.vault, exclusion=exclusion)
