# Core ledger services

from .hasher import Hasher, CanonicalSerializationError
from .errors import (
    LedgerError,
    InsufficientBalanceError,
    InvalidRecipientError,
    RecipientNotCompliantError,
    SenderNotCompliantError,
    HoldingLimitExceededError,
    UnauthorizedError,
    ArithmeticOverflowError,
    ValidationError,
    LifecycleError,
    ConfigurationError,
    ChainError,
)
from .registries import (
    IdentityProvider,
    ClaimsProvider,
    IdentityRecord,
    InMemoryIdentityRegistry,
    InMemoryClaimsRegistry,
)
from .compliance import (
    CheckName,
    ComplianceEvaluator,
    ComplianceMode,
    ComplianceVerdict,
    CountryPolicy,
    WhitelistSet,
)
from .holding import (
    BPS_DENOMINATOR,
    DEFAULT_MAX_HOLDING_BPS,
    UINT256_MAX,
    HoldingLimitChecker,
)
from .roles import Role, RoleAssignments
from .ledger import TokenLedger, DECIMALS, DEFAULT_ALLOWED_COUNTRIES

__all__ = [
    "Hasher",
    "CanonicalSerializationError",
    "LedgerError",
    "InsufficientBalanceError",
    "InvalidRecipientError",
    "RecipientNotCompliantError",
    "SenderNotCompliantError",
    "HoldingLimitExceededError",
    "UnauthorizedError",
    "ArithmeticOverflowError",
    "ValidationError",
    "LifecycleError",
    "ConfigurationError",
    "ChainError",
    "IdentityProvider",
    "ClaimsProvider",
    "IdentityRecord",
    "InMemoryIdentityRegistry",
    "InMemoryClaimsRegistry",
    "CheckName",
    "ComplianceEvaluator",
    "ComplianceMode",
    "ComplianceVerdict",
    "CountryPolicy",
    "WhitelistSet",
    "BPS_DENOMINATOR",
    "DEFAULT_MAX_HOLDING_BPS",
    "UINT256_MAX",
    "HoldingLimitChecker",
    "Role",
    "RoleAssignments",
    "TokenLedger",
    "DECIMALS",
    "DEFAULT_ALLOWED_COUNTRIES",
]
