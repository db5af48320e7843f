"""
Content Hasher

Deterministic SHA-256 hashing of structured data.

Structured values (dicts, lists, strings, numbers) are first rendered to a
canonical JSON form - sorted keys, no insignificant whitespace - so the same
logical content always yields the same digest regardless of dict ordering.

Used by the ledger for block sealing and chain validation, and by the wallet
for address generation.
"""

import hashlib
import json
from typing import Any


def canonical_json(data: Any) -> str:
    """
    Render data as canonical JSON.

    Args:
        data: Any JSON-serializable value

    Returns:
        Compact JSON string with sorted keys
    """
    return json.dumps(data, sort_keys=True, separators=(',', ':'), ensure_ascii=False)


def sha256_hex(data: bytes) -> str:
    """SHA-256 of raw bytes as lowercase hex."""
    return hashlib.sha256(data).hexdigest()


def content_hash(data: Any) -> str:
    """
    Hash structured data.

    Args:
        data: Any JSON-serializable value

    Returns:
        64-character lowercase hex SHA-256 digest of the canonical JSON form
    """
    return sha256_hex(canonical_json(data).encode('utf-8'))


def meets_difficulty(hash_hex: str, difficulty: int) -> bool:
    """Check whether a hex digest starts with `difficulty` zero characters."""
    return hash_hex.startswith("0" * difficulty)


if __name__ == "__main__":
    print("Content Hasher Self-Test")
    print("=" * 50)

    a = content_hash({"b": 2, "a": 1})
    b = content_hash({"a": 1, "b": 2})
    print(f"  Key order independent: {'✓ PASS' if a == b else '✗ FAIL'}")
    print(f"  Digest length 64:      {'✓ PASS' if len(a) == 64 else '✗ FAIL'}")
    print(f"  Difficulty check:      "
          f"{'✓ PASS' if meets_difficulty('00ab', 2) and not meets_difficulty('0ab', 2) else '✗ FAIL'}")
