"""
API Routes for the Compliance-Gated Token Ledger

The acting caller is passed explicitly in the X-Caller header on every
command. No session, no ambient identity.

Command endpoints:
- POST /transfers                        - Transfer tokens (caller = sender)
- POST /investors                        - Whitelist an investor (issuer)
- DELETE /investors/{address}            - Remove an investor (issuer)
- POST /countries/{code}/allow           - Allow a country (compliance officer)
- POST /countries/{code}/block           - Block a country (compliance officer)
- PUT /roles/compliance-officer          - Reassign compliance officer (issuer)
- PUT /roles/transfer-agent              - Reassign transfer agent (issuer)
- PUT /holding-limit                     - Set holding limit bps (issuer / officer)
- POST /lifecycle/interest               - Pay interest (issuer)
- POST /lifecycle/redemption             - Redeem principal (issuer)

Query endpoints:
- GET /token                             - Token info, roles, registries
- GET /accounts/{address}                - Balance and compliance verdict
- GET /holding-limit/{address}?amount=   - Holding limit check
- GET /countries/{code_or_hash}          - Country policy lookup
- GET /events                            - Event log

Development registry endpoints (in-memory registries only):
- PUT /registry/identities/{address}
- PUT /registry/claims/{address}/{kind}
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..core import (
    ArithmeticOverflowError,
    ChainError,
    InMemoryClaimsRegistry,
    InMemoryIdentityRegistry,
    InvalidRecipientError,
    LedgerError,
    TokenLedger,
    UnauthorizedError,
    ValidationError,
)
from ..observability import CALLER_HEADER
from ..schemas import (
    ClaimKind,
    InvalidAddressError,
    LedgerEvent,
    ZERO_HASH,
    country_code_hash,
    normalize_address,
    resolve_country_hash,
)


router = APIRouter()


# ============================================================
# Dependency Injection
# ============================================================

def get_ledger(request: Request) -> TokenLedger:
    return request.app.state.ledger


def get_caller(x_caller: str = Header(..., alias=CALLER_HEADER)) -> str:
    try:
        return normalize_address(x_caller)
    except InvalidAddressError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": "ValidationError", "message": str(e)},
        )


def _path_address(value: str) -> str:
    try:
        return normalize_address(value)
    except InvalidAddressError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": "ValidationError", "message": str(e)},
        )


def _http_error(error: LedgerError) -> HTTPException:
    """Map a ledger error onto an HTTP status, keeping its reason code."""
    if isinstance(error, UnauthorizedError):
        code = status.HTTP_403_FORBIDDEN
    elif isinstance(error, (ValidationError, InvalidRecipientError)):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, (ArithmeticOverflowError, ChainError)):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return HTTPException(status_code=code, detail=error.to_dict())


# ============================================================
# Request/Response Models
# ============================================================

class TransferRequest(BaseModel):
    to: str
    amount: int


class InvestorRequest(BaseModel):
    investor: str


class RoleRequest(BaseModel):
    address: str


class HoldingLimitRequest(BaseModel):
    bps: int


class LifecycleRequest(BaseModel):
    description: Optional[str] = Field(default=None, max_length=500)


class IdentityRequest(BaseModel):
    identity: Optional[str] = None
    verified: bool


class ClaimRequest(BaseModel):
    """Either a raw 32-byte value or a country code to hash into one."""
    value: Optional[str] = None
    country_code: Optional[str] = None


class EventResponse(BaseModel):
    event_id: UUID
    sequence_number: int
    event_type: str
    subject: str
    payload: dict
    event_hash: str
    previous_event_hash: Optional[str] = None
    created_by: str
    created_at: datetime

    @classmethod
    def from_event(cls, event: LedgerEvent) -> "EventResponse":
        return cls(
            event_id=event.event_id,
            sequence_number=event.sequence_number,
            event_type=event.event_type.value,
            subject=event.subject,
            payload=event.payload,
            event_hash=event.event_hash,
            previous_event_hash=event.previous_event_hash,
            created_by=event.created_by,
            created_at=event.created_at,
        )


class CommandResponse(BaseModel):
    """Events emitted by one command. Empty when the command was a no-op."""
    events: list[EventResponse]


def _command(events: list[LedgerEvent]) -> CommandResponse:
    return CommandResponse(events=[EventResponse.from_event(e) for e in events])


# ============================================================
# Query Endpoints
# ============================================================

@router.get("/token", tags=["Queries"], summary="Token info")
async def token_info(ledger: TokenLedger = Depends(get_ledger)):
    return {
        "name": ledger.name,
        "symbol": ledger.symbol,
        "decimals": ledger.decimals,
        "total_supply": str(ledger.total_supply),
        "compliance_mode": ledger.compliance_mode.value,
        "identity_registry": ledger.identity_registry(),
        "claims_registry": ledger.claims_registry(),
        "max_holding_percentage": ledger.max_holding_percentage,
        "max_holding_amount": str(ledger.max_holding_amount()),
        "require_sender_compliance": ledger.require_sender_compliance,
        "roles": {
            "issuer": ledger.issuer,
            "compliance_officer": ledger.compliance_officer,
            "transfer_agent": ledger.transfer_agent,
        },
        "claim_topics": {
            "KYC_CLAIM": TokenLedger.KYC_CLAIM,
            "ACCREDITED_CLAIM": TokenLedger.ACCREDITED_CLAIM,
            "COUNTRY_CLAIM": TokenLedger.COUNTRY_CLAIM,
        },
        "lifecycle": {
            "interest_payment_count": ledger.interest_payment_count,
            "principal_redemption_count": ledger.principal_redemption_count,
            "principal_redeemed": ledger.principal_redeemed,
        },
    }


@router.get("/accounts/{address}", tags=["Queries"], summary="Balance and compliance")
async def account(address: str, ledger: TokenLedger = Depends(get_ledger)):
    address = _path_address(address)
    verdict = ledger.explain_compliance(address)
    return {
        "address": address,
        "balance": str(ledger.balance_of(address)),
        "is_erc3643_compliant": verdict.compliant,
        "is_whitelisted": ledger.is_whitelisted(address),
        "failed_checks": [check.value for check in verdict.failed_checks],
    }


@router.get("/holding-limit/{address}", tags=["Queries"], summary="Check holding limit")
async def check_holding_limit(
    address: str,
    amount: int = Query(..., ge=0),
    ledger: TokenLedger = Depends(get_ledger),
):
    address = _path_address(address)
    try:
        within = ledger.check_holding_limit(address, amount)
    except LedgerError as e:
        raise _http_error(e)
    return {
        "address": address,
        "amount": str(amount),
        "within_limit": within,
        "max_holding_amount": str(ledger.max_holding_amount()),
    }


@router.get("/countries/{country}", tags=["Queries"], summary="Country policy lookup")
async def country_policy(country: str, ledger: TokenLedger = Depends(get_ledger)):
    try:
        country_hash = resolve_country_hash(country)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": "ValidationError", "message": str(e)},
        )
    return {"country_hash": country_hash, "allowed": ledger.allowed_countries(country_hash)}


@router.get("/events", response_model=list[EventResponse], tags=["Queries"], summary="Event log")
async def list_events(
    subject: Optional[str] = None,
    ledger: TokenLedger = Depends(get_ledger),
):
    events = ledger.get_events_for(subject) if subject else ledger.get_events()
    return [EventResponse.from_event(e) for e in events]


# ============================================================
# Command Endpoints
# ============================================================

@router.post(
    "/transfers",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Commands"],
    summary="Transfer tokens from the caller",
)
async def transfer(
    request: TransferRequest,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    """
    Move tokens from the caller to `to`.

    Rejected with 422 when the recipient is not compliant, the holding
    limit would be exceeded, or the balance is insufficient.
    """
    try:
        event = ledger.transfer(caller, request.to, request.amount)
    except LedgerError as e:
        raise _http_error(e)
    return EventResponse.from_event(event)


@router.post("/investors", response_model=CommandResponse, tags=["Commands"])
async def add_investor(
    request: InvestorRequest,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return _command(ledger.add_investor(caller, request.investor))
    except LedgerError as e:
        raise _http_error(e)


@router.delete("/investors/{address}", response_model=CommandResponse, tags=["Commands"])
async def remove_investor(
    address: str,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return _command(ledger.remove_investor(caller, address))
    except LedgerError as e:
        raise _http_error(e)


@router.post("/countries/{code}/allow", response_model=CommandResponse, tags=["Commands"])
async def allow_country(
    code: str,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return _command(ledger.allow_country(caller, code))
    except LedgerError as e:
        raise _http_error(e)


@router.post("/countries/{code}/block", response_model=CommandResponse, tags=["Commands"])
async def block_country(
    code: str,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return _command(ledger.block_country(caller, code))
    except LedgerError as e:
        raise _http_error(e)


@router.put("/roles/compliance-officer", response_model=CommandResponse, tags=["Commands"])
async def set_compliance_officer(
    request: RoleRequest,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return _command(ledger.set_compliance_officer(caller, request.address))
    except LedgerError as e:
        raise _http_error(e)


@router.put("/roles/transfer-agent", response_model=CommandResponse, tags=["Commands"])
async def set_transfer_agent(
    request: RoleRequest,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return _command(ledger.set_transfer_agent(caller, request.address))
    except LedgerError as e:
        raise _http_error(e)


@router.put("/holding-limit", response_model=CommandResponse, tags=["Commands"])
async def set_holding_limit(
    request: HoldingLimitRequest,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return _command(ledger.set_max_holding_percentage(caller, request.bps))
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/lifecycle/interest",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Lifecycle"],
)
async def pay_interest(
    request: LifecycleRequest,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return EventResponse.from_event(ledger.pay_interest(caller, request.description))
    except LedgerError as e:
        raise _http_error(e)


@router.post(
    "/lifecycle/redemption",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Lifecycle"],
)
async def redeem_principal(
    request: LifecycleRequest,
    caller: str = Depends(get_caller),
    ledger: TokenLedger = Depends(get_ledger),
):
    try:
        return EventResponse.from_event(ledger.redeem_principal(caller, request.description))
    except LedgerError as e:
        raise _http_error(e)


# ============================================================
# Development Registry Endpoints
# ============================================================

def _identity_registry(request: Request) -> InMemoryIdentityRegistry:
    registry = getattr(request.app.state, "identity_registry", None)
    if not isinstance(registry, InMemoryIdentityRegistry):
        raise HTTPException(status_code=404, detail="No in-memory identity registry configured")
    return registry


def _claims_registry(request: Request) -> InMemoryClaimsRegistry:
    registry = getattr(request.app.state, "claims_registry", None)
    if not isinstance(registry, InMemoryClaimsRegistry):
        raise HTTPException(status_code=404, detail="No in-memory claims registry configured")
    return registry


@router.put("/registry/identities/{address}", tags=["Registry"])
async def set_identity(
    address: str,
    request: IdentityRequest,
    registry: InMemoryIdentityRegistry = Depends(_identity_registry),
):
    """Seed an identity record. The identity defaults to the address itself."""
    address = _path_address(address)
    identity = _path_address(request.identity) if request.identity else address
    registry.set(address, identity, request.verified)
    return {"address": address, "identity": identity, "verified": request.verified}


@router.put("/registry/claims/{address}/{kind}", tags=["Registry"])
async def set_claim(
    address: str,
    kind: ClaimKind,
    request: ClaimRequest,
    registry: InMemoryClaimsRegistry = Depends(_claims_registry),
):
    """Seed a claim. A missing value (or the zero hash) removes it."""
    address = _path_address(address)
    try:
        if request.country_code:
            value = country_code_hash(request.country_code)
        else:
            value = request.value or ZERO_HASH
        registry.set_claim(address, kind, value)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"reason": "ValidationError", "message": str(e)},
        )
    return {"address": address, "kind": kind.value, "value": registry.get_claim(address, kind)}
