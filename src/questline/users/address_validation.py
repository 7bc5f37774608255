"""
EVM wallet address format validation.

Addresses are the case-insensitive natural key for users: they are always
stored and compared in lowercase. EIP-55 checksum casing is accepted but not
verified (signature checks happen upstream of this service).
"""

from __future__ import annotations

import re

_EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_wallet_address(address: str | None) -> str:
    """
    Validate a wallet address and return its lowercase form.

    Raises:
        ValueError: If the address is missing or not ``0x`` + 40 hex characters.
    """
    if not address or not isinstance(address, str):
        msg = "Wallet address required"
        raise ValueError(msg)

    normalized = address.strip().lower()
    if not _EVM_ADDRESS_RE.match(normalized):
        msg = f"Invalid wallet address: {address[:12]}..."
        raise ValueError(msg)
    return normalized

