"""
Canonical Event Schema

Every committed ledger invocation produces one or more events.
Events are ordered, append-only and hash-chained; the balance map,
the policy tables and the role assignments can all be rebuilt by
replaying them.

Each event:
- Has a monotonically increasing sequence number
- Is hashed together with the previous event's hash
- Names the caller that caused it
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .address import Address


class EventType(str, Enum):
    """
    All event types the ledger emits.
    You can add more later, never remove.
    """
    # Construction (always sequence 0)
    LEDGER_INITIALIZED = "LEDGER_INITIALIZED"

    # Balance movements (mint is a transfer from the zero address)
    TRANSFER = "TRANSFER"

    # Administration
    INVESTOR_WHITELISTED = "INVESTOR_WHITELISTED"
    INVESTOR_REMOVED = "INVESTOR_REMOVED"
    COUNTRY_POLICY_CHANGED = "COUNTRY_POLICY_CHANGED"
    ROLE_CHANGED = "ROLE_CHANGED"
    HOLDING_LIMIT_CHANGED = "HOLDING_LIMIT_CHANGED"

    # Instrument lifecycle
    INTEREST_PAID = "INTEREST_PAID"
    PRINCIPAL_REDEEMED = "PRINCIPAL_REDEEMED"


# ============================================================
# Event Payloads
# ============================================================

class LedgerInitializedPayload(BaseModel):
    """
    Payload for LEDGER_INITIALIZED.

    Records the construction-time configuration. The compliance mode
    is derived from the two registry addresses and can never change.
    """
    name: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1)
    decimals: int = Field(..., ge=0)
    issuer: Address
    identity_registry: Address
    claims_registry: Address
    compliance_mode: str
    max_holding_bps: int = Field(..., gt=0, le=10000)
    allowed_countries: list[str] = Field(
        default_factory=list,
        description="Country-code hashes allowed at construction"
    )
    require_sender_compliance: bool = False
    enforce_single_redemption: bool = False

    schema_version: int = 1


class TransferPayload(BaseModel):
    """Payload for TRANSFER. sender is the zero address for the initial mint."""
    sender: Address
    recipient: Address
    amount: int = Field(..., ge=0)

    schema_version: int = 1


class InvestorPayload(BaseModel):
    """Payload for INVESTOR_WHITELISTED / INVESTOR_REMOVED."""
    investor: Address

    schema_version: int = 1


class CountryPolicyChangedPayload(BaseModel):
    """Payload for COUNTRY_POLICY_CHANGED."""
    country_hash: str
    country_code: Optional[str] = None
    allowed: bool

    schema_version: int = 1


class RoleChangedPayload(BaseModel):
    """Payload for ROLE_CHANGED."""
    role: str
    previous_holder: Address
    new_holder: Address

    schema_version: int = 1


class HoldingLimitChangedPayload(BaseModel):
    """Payload for HOLDING_LIMIT_CHANGED."""
    previous_bps: int
    new_bps: int = Field(..., gt=0, le=10000)

    schema_version: int = 1


class LifecyclePayload(BaseModel):
    """
    Payload for INTEREST_PAID / PRINCIPAL_REDEEMED.

    sequence is the 1-based count of this lifecycle operation so far,
    so repeated calls are distinguishable in the log.
    """
    timestamp: datetime
    description: str
    sequence: int = Field(..., ge=1)

    schema_version: int = 1


def chain_content(
    event_type: EventType,
    subject: str,
    created_by: str,
    created_at: datetime,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """
    The part of an event covered by its chain hash.

    Several event types share a payload shape, so the type, subject and
    actor are hashed alongside the payload.
    """
    return {
        "event_type": event_type,
        "subject": subject,
        "created_by": created_by,
        "created_at": created_at,
        "payload": payload,
    }


# ============================================================
# Event Envelope
# ============================================================

class LedgerEvent(BaseModel):
    """
    An immutable, hash-chained ledger event.

    Chain Integrity Rules:
    - sequence_number is 0 for the first event and increases by one
    - previous_event_hash is None for sequence 0 and REQUIRED otherwise
    - event_hash = hash(chain_content(...), previous_event_hash), which covers
      the event type, subject, actor and timestamp as well as the payload
    """
    event_id: UUID
    sequence_number: int = Field(..., ge=0)
    event_type: EventType

    # The account (or policy entry) this event is about
    subject: str

    payload: dict[str, Any]

    previous_event_hash: Optional[str] = None
    event_hash: str

    # Acting caller of the invocation that produced this event
    created_by: Address
    created_at: datetime

    def hashed_content(self) -> dict[str, Any]:
        return chain_content(
            self.event_type, self.subject, self.created_by, self.created_at, self.payload
        )

    @property
    def is_genesis(self) -> bool:
        return self.sequence_number == 0

    def validate_chain_rules(self) -> None:
        """Raises ValueError if the event violates chain linkage rules."""
        if self.sequence_number == 0:
            if self.previous_event_hash is not None:
                raise ValueError(
                    f"Genesis event (sequence 0) must have previous_event_hash=None, "
                    f"got: {self.previous_event_hash}"
                )
        else:
            if self.previous_event_hash is None:
                raise ValueError(
                    f"Non-genesis event (sequence {self.sequence_number}) must have "
                    f"previous_event_hash set, got None"
                )
            if len(self.previous_event_hash) != 64:
                raise ValueError(
                    f"previous_event_hash must be 64 hex characters, "
                    f"got {len(self.previous_event_hash)}"
                )
