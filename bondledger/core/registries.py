"""
Identity and Claims Providers

The ledger consumes two external fact sources:

- IdentityProvider: address -> (associated identity, verified)
- ClaimsProvider:   (address, claim kind) -> 32-byte claim value

The ledger only ever READS them. The abstract interfaces below are the
whole contract; the in-memory registries are the development/testing
implementations that seed facts directly (what a KYC provider would do
in production).
"""

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Optional

from ..schemas.address import ZERO_ADDRESS, normalize_address
from ..schemas.claims import ClaimKind, ZERO_HASH, is_present, normalize_hash


def _random_address() -> str:
    return "0x" + secrets.token_hex(20)


@dataclass(frozen=True)
class IdentityRecord:
    """Identity facts for one address. A missing record means unverified."""
    identity: str
    verified: bool


# ============================================================
# INTERFACES
# ============================================================

class IdentityProvider(ABC):
    """Read-only view of an identity registry."""

    @property
    @abstractmethod
    def address(self) -> str:
        """Address under which this registry is configured. Never the zero address."""
        pass

    @abstractmethod
    def is_verified(self, account: str) -> bool:
        """True only if a record exists for account and it is verified."""
        pass

    @abstractmethod
    def identity_of(self, account: str) -> Optional[str]:
        """Associated identity of account, or None if there is no record."""
        pass


class ClaimsProvider(ABC):
    """Read-only view of a claims registry."""

    @property
    @abstractmethod
    def address(self) -> str:
        pass

    @abstractmethod
    def get_claim(self, account: str, kind: ClaimKind) -> str:
        """Stored claim value, ZERO_HASH when absent."""
        pass

    def has_claim(self, account: str, kind: ClaimKind) -> bool:
        return is_present(self.get_claim(account, kind))


# ============================================================
# IN-MEMORY IMPLEMENTATIONS
# ============================================================

class InMemoryIdentityRegistry(IdentityProvider):
    """
    In-memory identity registry.

    Suitable for development and testing. Writers call set();
    the ledger only calls the IdentityProvider methods.
    """

    def __init__(self, address: Optional[str] = None):
        self._address = normalize_address(address) if address else _random_address()
        if self._address == ZERO_ADDRESS:
            raise ValueError("A registry cannot live at the zero address")
        self._records: dict[str, IdentityRecord] = {}
        self._lock = Lock()

    @property
    def address(self) -> str:
        return self._address

    def set(self, account: str, identity: str, verified: bool) -> None:
        """Create or replace the identity record for account."""
        record = IdentityRecord(
            identity=normalize_address(identity),
            verified=bool(verified),
        )
        with self._lock:
            self._records[normalize_address(account)] = record

    def remove(self, account: str) -> None:
        with self._lock:
            self._records.pop(normalize_address(account), None)

    def get_record(self, account: str) -> Optional[IdentityRecord]:
        return self._records.get(normalize_address(account))

    def is_verified(self, account: str) -> bool:
        record = self.get_record(account)
        return record is not None and record.verified

    def identity_of(self, account: str) -> Optional[str]:
        record = self.get_record(account)
        return record.identity if record else None


class InMemoryClaimsRegistry(ClaimsProvider):
    """In-memory claims registry keyed by (address, claim kind)."""

    def __init__(self, address: Optional[str] = None):
        self._address = normalize_address(address) if address else _random_address()
        if self._address == ZERO_ADDRESS:
            raise ValueError("A registry cannot live at the zero address")
        self._claims: dict[tuple[str, ClaimKind], str] = {}
        self._lock = Lock()

    @property
    def address(self) -> str:
        return self._address

    def set_claim(self, account: str, kind: ClaimKind, value: str) -> None:
        """
        Store a claim value. Storing ZERO_HASH is equivalent to removing it.
        """
        key = (normalize_address(account), ClaimKind(kind))
        value = normalize_hash(value)
        with self._lock:
            if value == ZERO_HASH:
                self._claims.pop(key, None)
            else:
                self._claims[key] = value

    def remove_claim(self, account: str, kind: ClaimKind) -> None:
        with self._lock:
            self._claims.pop((normalize_address(account), ClaimKind(kind)), None)

    def get_claim(self, account: str, kind: ClaimKind) -> str:
        return self._claims.get(
            (normalize_address(account), ClaimKind(kind)),
            ZERO_HASH,
        )
