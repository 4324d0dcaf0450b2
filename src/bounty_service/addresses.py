"""Payout address format checks."""

from __future__ import annotations

import re

from bounty_service.core.exceptions import ServiceError

# Base58 alphabet without 0, O, I and l; encoded 32-byte keys are 32-44 chars.
_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_valid_address(value: object) -> bool:
    """Return True if value looks like a settlement-network address."""
    return isinstance(value, str) and _ADDRESS_RE.fullmatch(value) is not None


def require_address(value: object, field_name: str = "wallet_address") -> str:
    """Return the address or raise INVALID_WALLET_ADDRESS (400)."""
    if not is_valid_address(value):
        raise ServiceError(
            "INVALID_WALLET_ADDRESS",
            f"{field_name} is not a valid wallet address",
            400,
            {"field": field_name},
        )
    return str(value)
