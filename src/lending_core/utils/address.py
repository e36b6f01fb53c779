"""Ethereum address validation."""

from __future__ import annotations

import re

from lending_core.errors import ErrorCode, ValidationError

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def normalize_address(address: str) -> str:
    """Return *address* lowercased, or raise ValidationError if malformed."""
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise ValidationError(ErrorCode.INVALID_ADDRESS, f"Invalid Ethereum address: {address!r}")
    return address.lower()


def is_valid_address(address: str) -> bool:
    return isinstance(address, str) and _ADDRESS_RE.match(address) is not None
