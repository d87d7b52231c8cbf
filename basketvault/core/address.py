"""Address validation helpers."""

from typing import Iterable, List

from web3 import Web3

from basketvault.core.errors import InvalidAddress


def normalize_address(address: str) -> str:
    """Validate an address and return its checksummed form.

    Raises:
        InvalidAddress: If the value is not a 20-byte hex address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidAddress(f"Invalid address: {address!r}")
    return Web3.to_checksum_address(address)


def normalize_addresses(addresses: Iterable[str]) -> List[str]:
    """Normalize a sequence of addresses, preserving order."""
    return [normalize_address(a) for a in addresses]
