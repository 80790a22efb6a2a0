"""
Ledger Error Taxonomy

Every failure aborts the whole invocation with no state change and
carries a stable reason code plus a human-readable message.
"""


class LedgerError(Exception):
    """Base exception for ledger errors."""

    reason = "LedgerError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"reason": self.reason, "message": self.message}


class InsufficientBalanceError(LedgerError):
    """Amount is zero or exceeds the sender's balance."""
    reason = "InsufficientBalance"


class InvalidRecipientError(LedgerError):
    """Recipient is the zero address or the sender itself."""
    reason = "InvalidRecipient"


class RecipientNotCompliantError(LedgerError):
    """Recipient failed the compliance evaluator."""
    reason = "RecipientNotCompliant"


class SenderNotCompliantError(LedgerError):
    """Sender failed the compliance evaluator (sender gating enabled)."""
    reason = "SenderNotCompliant"


class HoldingLimitExceededError(LedgerError):
    """Transfer would push the recipient above the concentration limit."""
    reason = "HoldingLimitExceeded"


class UnauthorizedError(LedgerError):
    """Caller does not hold the role an entry point requires."""
    reason = "Unauthorized"


class ArithmeticOverflowError(LedgerError):
    """uint256 bound violated. An internal invariant breach, never expected."""
    reason = "ArithmeticOverflow"


class ValidationError(LedgerError):
    """Malformed administrative input (bad basis points, zero address role, ...)."""
    reason = "ValidationError"


class LifecycleError(LedgerError):
    """Lifecycle operation rejected (repeat redemption with single redemption enforced)."""
    reason = "LifecycleError"


class ConfigurationError(LedgerError):
    """Construction-time misconfiguration, e.g. only one registry configured."""
    reason = "ConfigurationError"


class ChainError(LedgerError):
    """Event chain integrity is compromised."""
    reason = "ChainError"
