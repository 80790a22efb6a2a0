"""
Compliance Evaluator

Decides, for a single address, whether it may receive (and optionally
send) tokens. Two mutually exclusive modes, fixed at construction:

    WHITELIST:  compliant(a) = a in whitelist
    REGISTRY:   compliant(a) = verified(a)
                               AND has_claim(a, KYC)
                               AND has_claim(a, ACCREDITED)
                               AND country_allowed(a)

The evaluator owns no identity or claim data. It holds read-only
references to the providers plus the ledger's country policy table.
Nothing here has side effects, so short-circuiting is safe.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from ..schemas.address import ZERO_ADDRESS, normalize_address
from ..schemas.claims import ClaimKind, is_present, normalize_hash
from .errors import ConfigurationError
from .registries import ClaimsProvider, IdentityProvider


class ComplianceMode(str, Enum):
    REGISTRY = "registry"
    WHITELIST = "whitelist"


class CheckName(str, Enum):
    """Individual sub-checks, used to explain a negative verdict."""
    WHITELISTED = "whitelisted"
    IDENTITY_VERIFIED = "identity_verified"
    KYC_CLAIM = "kyc_claim"
    ACCREDITED_CLAIM = "accredited_claim"
    COUNTRY_ALLOWED = "country_allowed"


# ============================================================
# POLICY TABLES (owned by the ledger)
# ============================================================

class CountryPolicy:
    """
    Country-code hash -> allowed.

    Mutations return True only when they changed the table, so callers
    can keep repeated calls idempotent.
    """

    def __init__(self, allowed: Iterable[str] = ()):
        self._entries: dict[str, bool] = {}
        for country_hash in allowed:
            self._entries[normalize_hash(country_hash)] = True

    def is_allowed(self, country_hash: str) -> bool:
        return self._entries.get(country_hash.lower(), False)

    def allow(self, country_hash: str) -> bool:
        key = normalize_hash(country_hash)
        if self._entries.get(key, False):
            return False
        self._entries[key] = True
        return True

    def block(self, country_hash: str) -> bool:
        key = normalize_hash(country_hash)
        if not self._entries.get(key, False):
            return False
        self._entries[key] = False
        return True

    def allowed_hashes(self) -> list[str]:
        return sorted(h for h, allowed in self._entries.items() if allowed)


class WhitelistSet:
    """Addresses approved under whitelist mode."""

    def __init__(self, members: Iterable[str] = ()):
        self._members: set[str] = {normalize_address(m) for m in members}

    def __contains__(self, account: str) -> bool:
        return account.lower() in self._members

    def __len__(self) -> int:
        return len(self._members)

    def add(self, account: str) -> bool:
        account = normalize_address(account)
        if account in self._members:
            return False
        self._members.add(account)
        return True

    def remove(self, account: str) -> bool:
        account = normalize_address(account)
        if account not in self._members:
            return False
        self._members.discard(account)
        return True

    def members(self) -> list[str]:
        return sorted(self._members)


# ============================================================
# MODE VARIANTS
# ============================================================

@dataclass(frozen=True)
class RegistrySource:
    identity: IdentityProvider
    claims: ClaimsProvider


@dataclass(frozen=True)
class WhitelistSource:
    whitelist: WhitelistSet


ComplianceSource = Union[RegistrySource, WhitelistSource]


@dataclass(frozen=True)
class ComplianceVerdict:
    """Full (non short-circuited) evaluation, for diagnostics and logs."""
    account: str
    mode: ComplianceMode
    failed_checks: tuple[CheckName, ...]

    @property
    def compliant(self) -> bool:
        return not self.failed_checks


class ComplianceEvaluator:
    """
    Pure decision function over (mode source, country policy).

    The source variant is chosen once and never replaced.
    """

    def __init__(self, source: ComplianceSource, country_policy: CountryPolicy):
        self._source = source
        self._country_policy = country_policy

    @classmethod
    def from_providers(
        cls,
        identity: Optional[IdentityProvider],
        claims: Optional[ClaimsProvider],
        whitelist: WhitelistSet,
        country_policy: CountryPolicy,
    ) -> "ComplianceEvaluator":
        """
        Select the mode from the configured providers.

        Both None -> whitelist mode. Both set -> registry mode.
        Anything else is a misconfiguration.
        """
        if identity is None and claims is None:
            return cls(WhitelistSource(whitelist), country_policy)
        if identity is None or claims is None:
            raise ConfigurationError(
                "Identity and claims registries must both be configured "
                "(registry mode) or both be absent (whitelist mode)"
            )
        return cls(RegistrySource(identity, claims), country_policy)

    @property
    def mode(self) -> ComplianceMode:
        if isinstance(self._source, RegistrySource):
            return ComplianceMode.REGISTRY
        return ComplianceMode.WHITELIST

    @property
    def identity_registry_address(self) -> str:
        if isinstance(self._source, RegistrySource):
            return self._source.identity.address
        return ZERO_ADDRESS

    @property
    def claims_registry_address(self) -> str:
        if isinstance(self._source, RegistrySource):
            return self._source.claims.address
        return ZERO_ADDRESS

    def is_compliant(self, account: str) -> bool:
        account = account.lower()
        source = self._source
        if isinstance(source, WhitelistSource):
            return account in source.whitelist
        return (
            source.identity.is_verified(account)
            and source.claims.has_claim(account, ClaimKind.KYC)
            and source.claims.has_claim(account, ClaimKind.ACCREDITED)
            and self._country_allowed(source.claims, account)
        )

    def evaluate(self, account: str) -> ComplianceVerdict:
        """Run every sub-check and report which ones failed."""
        account = account.lower()
        source = self._source
        failed: list[CheckName] = []

        if isinstance(source, WhitelistSource):
            if account not in source.whitelist:
                failed.append(CheckName.WHITELISTED)
        else:
            if not source.identity.is_verified(account):
                failed.append(CheckName.IDENTITY_VERIFIED)
            if not source.claims.has_claim(account, ClaimKind.KYC):
                failed.append(CheckName.KYC_CLAIM)
            if not source.claims.has_claim(account, ClaimKind.ACCREDITED):
                failed.append(CheckName.ACCREDITED_CLAIM)
            if not self._country_allowed(source.claims, account):
                failed.append(CheckName.COUNTRY_ALLOWED)

        return ComplianceVerdict(
            account=account,
            mode=self.mode,
            failed_checks=tuple(failed),
        )

    def _country_allowed(self, claims: ClaimsProvider, account: str) -> bool:
        country = claims.get_claim(account, ClaimKind.COUNTRY)
        if not is_present(country):
            return False
        return self._country_policy.is_allowed(country)
