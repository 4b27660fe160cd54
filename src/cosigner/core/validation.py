"""
Structural validators for addresses and public-key hashes.
"""

import re
from typing import Iterable, List

# Base58 alphabet: no 0, O, I or l
BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_PATTERN = re.compile(f"^[{BASE58_ALPHABET}]+$")

MIN_ADDRESS_LENGTH = 40
MAX_ADDRESS_LENGTH = 60


def is_valid_address(value: object) -> bool:
    """
    Check that a value looks like a public-key hash / address.

    True iff it is a string of 40 to 60 base58 characters. Never raises.
    """
    if not isinstance(value, str) or not value:
        return False
    if not MIN_ADDRESS_LENGTH <= len(value) <= MAX_ADDRESS_LENGTH:
        return False
    return _BASE58_PATTERN.match(value) is not None


# Public-key hashes and addresses share one format
is_valid_pkh = is_valid_address


def normalize_pkh(value: str) -> str:
    """Normalized form used for duplicate detection."""
    return value.strip().lower()


def find_duplicate_pkhs(pkhs: Iterable[str]) -> List[str]:
    """Return the normalized hashes that appear more than once."""
    seen = set()
    duplicates: List[str] = []
    for pkh in pkhs:
        normalized = normalize_pkh(pkh)
        if not normalized:
            continue
        if normalized in seen and normalized not in duplicates:
            duplicates.append(normalized)
        seen.add(normalized)
    return duplicates


def short_address(value: str) -> str:
    """Abbreviate an address for display."""
    if len(value) <= 14:
        return value
    return f"{value[:8]}...{value[-6:]}"
