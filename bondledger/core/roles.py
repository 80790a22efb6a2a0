"""
Role Assignments

issuer              deployer; lifecycle ops, whitelist, role reassignment
compliance_officer  country policy, holding limit
transfer_agent      reserved; reported but not required by any entry point

Roles live on the ledger instance. Every privileged entry point receives
the acting caller explicitly and runs require() before doing anything.
"""

from dataclasses import dataclass, replace
from enum import Enum

from ..schemas.address import normalize_address
from .errors import UnauthorizedError


class Role(str, Enum):
    ISSUER = "issuer"
    COMPLIANCE_OFFICER = "compliance_officer"
    TRANSFER_AGENT = "transfer_agent"


@dataclass(frozen=True)
class RoleAssignments:
    issuer: str
    compliance_officer: str
    transfer_agent: str

    @classmethod
    def for_issuer(cls, issuer: str) -> "RoleAssignments":
        """The deployer initially holds every role."""
        issuer = normalize_address(issuer)
        return cls(issuer=issuer, compliance_officer=issuer, transfer_agent=issuer)

    def holder(self, role: Role) -> str:
        return getattr(self, role.value)

    def holds(self, caller: str, role: Role) -> bool:
        return self.holder(role) == caller.lower()

    def require(self, caller: str, *roles: Role) -> None:
        """Raise UnauthorizedError unless caller holds at least one of roles."""
        if any(self.holds(caller, role) for role in roles):
            return
        wanted = " or ".join(role.value for role in roles)
        raise UnauthorizedError(f"Caller {caller} is not the {wanted}")

    def reassign(self, role: Role, holder: str) -> "RoleAssignments":
        return replace(self, **{role.value: normalize_address(holder)})
