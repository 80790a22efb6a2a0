# Canonical schemas for the compliance-gated token ledger.

from .address import (
    Address,
    InvalidAddressError,
    ZERO_ADDRESS,
    is_zero_address,
    normalize_address,
)
from .claims import (
    ClaimKind,
    ZERO_HASH,
    claim_hash,
    country_code_hash,
    is_present,
    normalize_hash,
    resolve_country_hash,
)
from .events import (
    EventType,
    LedgerEvent,
    LedgerInitializedPayload,
    TransferPayload,
    InvestorPayload,
    CountryPolicyChangedPayload,
    RoleChangedPayload,
    HoldingLimitChangedPayload,
    LifecyclePayload,
    chain_content,
)

__all__ = [
    # Addresses
    "Address",
    "InvalidAddressError",
    "ZERO_ADDRESS",
    "is_zero_address",
    "normalize_address",
    # Claims
    "ClaimKind",
    "ZERO_HASH",
    "claim_hash",
    "country_code_hash",
    "is_present",
    "normalize_hash",
    "resolve_country_hash",
    # Events
    "EventType",
    "LedgerEvent",
    "LedgerInitializedPayload",
    "TransferPayload",
    "InvestorPayload",
    "CountryPolicyChangedPayload",
    "RoleChangedPayload",
    "HoldingLimitChangedPayload",
    "LifecyclePayload",
    "chain_content",
]
