"""
Claim Kinds and Claim Values

A claim is an attested fact about an address, stored by a claims provider
as a 32-byte hash. The engine never interprets claim values beyond two rules:

- ZERO_HASH means "absent"
- COUNTRY claim values are looked up in the country policy table

Hashes are rendered as "0x" + 64 lowercase hex characters.
"""

import hashlib
import re
from enum import Enum

ZERO_HASH = "0x" + "0" * 64

_HASH_RE = re.compile(r"^0x[0-9a-f]{64}$")


def claim_hash(text: str) -> str:
    """Hash an arbitrary label into a 32-byte claim value."""
    return "0x" + hashlib.sha256(text.encode("utf-8")).hexdigest()


def country_code_hash(code: str) -> str:
    """
    Hash an ISO country code ("US", "sg", ...) into its policy key.

    Codes are upper-cased first so "us" and "US" address the same entry.
    """
    normalized = code.strip().upper()
    if not normalized:
        raise ValueError("Country code must not be empty")
    return claim_hash(normalized)


def normalize_hash(value: str) -> str:
    """Validate and lowercase a 32-byte hash string."""
    if not isinstance(value, str):
        raise ValueError(f"Hash must be a string, got {type(value).__name__}")
    candidate = value.strip().lower()
    if not _HASH_RE.match(candidate):
        raise ValueError(
            f"Invalid hash '{value}': expected 0x followed by 64 hex characters"
        )
    return candidate


def is_present(value: str | None) -> bool:
    """A claim is present only if its stored value is non-zero."""
    return value is not None and value.lower() != ZERO_HASH


class ClaimKind(str, Enum):
    """The three claim kinds the compliance evaluator consults."""
    KYC = "KYC"
    ACCREDITED = "ACCREDITED"
    COUNTRY = "COUNTRY"

    @property
    def topic(self) -> str:
        """32-byte identifier of this claim kind (KYC_CLAIM, ...)."""
        return claim_hash(self.value)


def resolve_country_hash(value: str) -> str:
    """Accept either an ISO country code or a 32-byte country hash."""
    if value.lower().startswith("0x") and len(value) == 66:
        return normalize_hash(value)
    return country_code_hash(value)
