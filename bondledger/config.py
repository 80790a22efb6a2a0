"""
Ledger Configuration

Construction-time settings, loaded from the environment.

Environment Variables:
    BONDLEDGER_NAME: Token name (default "Real Estate Debt Bond")
    BONDLEDGER_SYMBOL: Token symbol (default "REDB")
    BONDLEDGER_INITIAL_SUPPLY: Whole tokens minted to the issuer (default 1000000)
    BONDLEDGER_ISSUER: Issuer address
    BONDLEDGER_COMPLIANCE_MODE: registry or whitelist (default registry)
    BONDLEDGER_MAX_HOLDING_BPS: Holding limit in basis points (default 1000)
    BONDLEDGER_ALLOWED_COUNTRIES: Comma-separated ISO codes (default US,SG,CH)
    BONDLEDGER_REQUIRE_SENDER_COMPLIANCE: Gate senders too (default false)
    BONDLEDGER_SINGLE_REDEMPTION: Reject repeat principal redemption (default false)
"""

import os
from dataclasses import dataclass, field

from .core.compliance import ComplianceMode
from .core.errors import ConfigurationError
from .core.holding import DEFAULT_MAX_HOLDING_BPS
from .core.ledger import DEFAULT_ALLOWED_COUNTRIES
from .schemas.address import InvalidAddressError, normalize_address

DEFAULT_ISSUER = "0x" + "1" * 40


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw.replace("_", ""))
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class LedgerSettings:
    """Settings used to build the service's ledger."""
    name: str = "Real Estate Debt Bond"
    symbol: str = "REDB"
    initial_supply: int = 1_000_000
    issuer: str = DEFAULT_ISSUER
    compliance_mode: ComplianceMode = ComplianceMode.REGISTRY
    max_holding_bps: int = DEFAULT_MAX_HOLDING_BPS
    allowed_countries: tuple[str, ...] = field(default=DEFAULT_ALLOWED_COUNTRIES)
    require_sender_compliance: bool = False
    enforce_single_redemption: bool = False

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        """
        Load settings from environment variables.

        Raises ConfigurationError on malformed values.
        """
        mode_raw = os.getenv("BONDLEDGER_COMPLIANCE_MODE", ComplianceMode.REGISTRY.value)
        try:
            mode = ComplianceMode(mode_raw.strip().lower())
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown BONDLEDGER_COMPLIANCE_MODE: {mode_raw}. "
                f"Valid values: registry, whitelist"
            ) from e

        try:
            issuer = normalize_address(os.getenv("BONDLEDGER_ISSUER", DEFAULT_ISSUER))
        except InvalidAddressError as e:
            raise ConfigurationError(f"BONDLEDGER_ISSUER: {e}") from e

        countries_raw = os.getenv("BONDLEDGER_ALLOWED_COUNTRIES")
        if countries_raw is None:
            countries = DEFAULT_ALLOWED_COUNTRIES
        else:
            countries = tuple(
                c.strip().upper() for c in countries_raw.split(",") if c.strip()
            )

        return cls(
            name=os.getenv("BONDLEDGER_NAME", "Real Estate Debt Bond"),
            symbol=os.getenv("BONDLEDGER_SYMBOL", "REDB"),
            initial_supply=_env_int("BONDLEDGER_INITIAL_SUPPLY", 1_000_000),
            issuer=issuer,
            compliance_mode=mode,
            max_holding_bps=_env_int("BONDLEDGER_MAX_HOLDING_BPS", DEFAULT_MAX_HOLDING_BPS),
            allowed_countries=countries,
            require_sender_compliance=_env_bool("BONDLEDGER_REQUIRE_SENDER_COMPLIANCE"),
            enforce_single_redemption=_env_bool("BONDLEDGER_SINGLE_REDEMPTION"),
        )
