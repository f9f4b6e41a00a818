"""
MultiSendCallsOnly calldata builders.

Each inner call is packed as
``operation (uint8) | to (20 bytes) | value (uint256) | data length (uint256) | data``
and the concatenation is passed as the single ``bytes`` argument of
``multiSend(bytes)``. MultiSendCallsOnly rejects delegatecalls, so the
operation byte is always 0.
"""

from __future__ import annotations

from typing import Iterable

from eth_utils import keccak

from .models import SubmissionRequest

CALL_OPERATION = 0


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def _encode_uint(value: int) -> str:
    if value < 0:
        raise ValueError("Value must be non-negative")
    return hex(value)[2:].rjust(64, "0")


def _encode_bytes(data: str) -> str:
    hex_data = _strip_0x(data)
    if len(hex_data) % 2 != 0:
        raise ValueError("Byte data must have an even-length hex string")
    data_len = len(hex_data) // 2
    padded_len = ((data_len + 31) // 32) * 32
    padding = "0" * ((padded_len - data_len) * 2)
    return _encode_uint(data_len) + hex_data + padding


def _selector_from_signature(signature: str) -> str:
    selector = keccak(text=signature)[:4].hex()
    return f"0x{selector}"


MULTISEND_SELECTOR = _selector_from_signature("multiSend(bytes)")


def pack_call(request: SubmissionRequest) -> str:
    """Pack one call (no 0x prefix)."""
    to = _strip_0x(request.to).lower()
    if len(to) != 40:
        raise ValueError(f"Invalid address length: {request.to}")
    data = _strip_0x(request.data)
    if len(data) % 2 != 0:
        raise ValueError("Call data must have an even-length hex string")
    return (
        format(CALL_OPERATION, "02x")
        + to
        + _encode_uint(request.value)
        + _encode_uint(len(data) // 2)
        + data
    )


def encode_transactions(requests: Iterable[SubmissionRequest]) -> str:
    """Packed transactions blob, 0x-prefixed."""
    return "0x" + "".join(pack_call(r) for r in requests)


def build_multisend_call_data(requests: Iterable[SubmissionRequest]) -> str:
    """
    Build calldata for multiSend(bytes transactions).
    """
    packed = encode_transactions(requests)
    return MULTISEND_SELECTOR + _encode_uint(32) + _encode_bytes(packed)


def total_value(requests: Iterable[SubmissionRequest]) -> int:
    return sum(r.value for r in requests)
