"""
Wallet Addresses

Address generation and validation for the demo wallet, plus the QR code a
receive screen shows so another device can scan the address.

Address format: "0x" followed by 16 hex characters, e.g. 0x3fa9c01be27d5a44.
"""

import io
import re
import secrets
import time
from typing import Any

import qrcode
from qrcode.constants import ERROR_CORRECT_L

from ..blockchain.transaction import ValidationError
from ..config import ADDRESS_HEX_LENGTH, ADDRESS_PREFIX
from ..core_crypto.hasher import sha256_hex

ADDRESS_PATTERN = re.compile(
    rf"^{re.escape(ADDRESS_PREFIX)}[0-9a-fA-F]{{{ADDRESS_HEX_LENGTH}}}$"
)


def generate_address() -> str:
    """
    Generate a pseudo-random wallet address.

    Hashes the current time with fresh randomness and keeps a short,
    readable prefix of the digest.
    """
    seed = f"{time.time_ns()}{secrets.token_hex(16)}".encode()
    return ADDRESS_PREFIX + sha256_hex(seed)[:ADDRESS_HEX_LENGTH]


def is_valid_address(value: Any) -> bool:
    """Check the address format."""
    return isinstance(value, str) and ADDRESS_PATTERN.match(value) is not None


def parse_scanned_address(data: str) -> str:
    """
    Validate an address coming from a QR scan or manual entry.

    Args:
        data: Raw scanned text

    Returns:
        The address with surrounding whitespace removed

    Raises:
        ValidationError: If the text is not a wallet address
    """
    if not isinstance(data, str) or not data.strip():
        raise ValidationError("Recipient required")

    address = data.strip()
    if not is_valid_address(address):
        raise ValidationError(f"Not a valid wallet address: {address!r}")
    return address


def address_qr(address: str) -> str:
    """
    Render an address as an ASCII QR code.

    Raises:
        ValidationError: If the address is malformed
    """
    if not is_valid_address(address):
        raise ValidationError(f"Not a valid wallet address: {address!r}")

    qr = qrcode.QRCode(
        version=1,
        error_correction=ERROR_CORRECT_L,
        box_size=1,
        border=2,
    )
    qr.add_data(address)
    qr.make(fit=True)

    out = io.StringIO()
    qr.print_ascii(out=out)
    return out.getvalue()
