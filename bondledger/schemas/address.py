"""
Account Addresses

Addresses are opaque fixed-width identifiers: "0x" followed by 40 hex digits.
They are normalized to lowercase everywhere so that the same account never
appears under two spellings in the balance map or the event log.

ZERO_ADDRESS is the null identifier. It is never a valid transfer recipient
and, passed as a registry address, selects whitelist compliance.
"""

import re
from typing import Annotated

from pydantic import AfterValidator

ZERO_ADDRESS = "0x" + "0" * 40

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


class InvalidAddressError(ValueError):
    """Raised when a string is not a well-formed address."""
    pass


def normalize_address(value: str) -> str:
    """
    Return the canonical lowercase form of an address.

    Raises InvalidAddressError for anything that is not 0x + 40 hex digits.
    """
    if not isinstance(value, str):
        raise InvalidAddressError(
            f"Address must be a string, got {type(value).__name__}"
        )
    candidate = value.strip().lower()
    if not _ADDRESS_RE.match(candidate):
        raise InvalidAddressError(
            f"Invalid address '{value}': expected 0x followed by 40 hex characters"
        )
    return candidate


def is_zero_address(value: str) -> bool:
    return normalize_address(value) == ZERO_ADDRESS


# Pydantic field type: validates and normalizes on model construction
Address = Annotated[str, AfterValidator(normalize_address)]
