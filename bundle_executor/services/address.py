"""Helpers for validating EVM addresses and normalizing hex quantities."""

from __future__ import annotations

import re
from typing import Any, Optional

from eth_utils import is_checksum_address, to_checksum_address

_EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_HEX_QUANTITY_RE = re.compile(r"^0x[0-9a-fA-F]*$")


def is_valid_address(address: Optional[str]) -> bool:
    """Return True for a well-formed EVM address.

    All-lowercase and all-uppercase addresses carry no checksum and are
    accepted on shape alone; mixed-case input must be a valid EIP-55 checksum.
    """

    if not address or not isinstance(address, str):
        return False
    address = address.strip()
    if not _EVM_ADDRESS_RE.fullmatch(address):
        return False
    body = address[2:]
    if body == body.lower() or body == body.upper():
        return True
    return is_checksum_address(address)


def checksum_address(address: str) -> str:
    """Return the EIP-55 form of ``address``; raise ValueError if malformed."""

    if not is_valid_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address.strip())


def shorten_address(address: str) -> str:
    return f"{address[:6]}...{address[-4:]}" if len(address) > 12 else address


def parse_quantity(value: Any, default: int = 0) -> int:
    """Parse a JSON-ish numeric quantity (hex string, decimal string, int).

    ``None`` and empty strings yield ``default``. Negative values and
    unparseable strings raise ValueError.
    """

    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError(f"Invalid quantity: {value!r}")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            if not _HEX_QUANTITY_RE.fullmatch(text):
                raise ValueError(f"Invalid hex quantity: {value!r}")
            result = int(text, 16) if len(text) > 2 else 0
        else:
            try:
                result = int(text, 10)
            except ValueError as exc:
                raise ValueError(f"Invalid quantity: {value!r}") from exc
    else:
        raise ValueError(f"Invalid quantity: {value!r}")

    if result < 0:
        raise ValueError(f"Quantity must be non-negative: {value!r}")
    return result


def to_hex_quantity(value: Any) -> str:
    """Normalize a quantity to its 0x-prefixed hex form (``0x0`` for zero)."""

    return hex(parse_quantity(value))


__all__ = [
    "is_valid_address",
    "checksum_address",
    "shorten_address",
    "parse_quantity",
    "to_hex_quantity",
]
