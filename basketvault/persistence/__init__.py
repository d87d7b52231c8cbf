"""Snapshot persistence."""

from .storage import VaultStorage, StoredVault, DecimalEncoder

__all__ = ["VaultStorage", "StoredVault", "DecimalEncoder"]
