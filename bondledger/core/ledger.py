"""
Token Ledger - The Heart of the System

A compliance-gated token balance registry for a regulated debt instrument.
Balances only move when the recipient passes the compliance evaluator and
stays under the holding limit.

Every public entry point is one atomic invocation:
1. Validate everything (roles, addresses, compliance, limits, arithmetic)
2. Build the event batch
3. Commit the batch to the EventStore
4. Apply the committed events to in-memory state

If any step fails nothing changes: no balance, no policy entry, no role,
no event. State is only ever mutated by applying committed events, which
is also how load_from_store() rebuilds a ledger.

Rules (enforced in code):
- sum(balances) == total_supply, no balance below zero
- Recipients must be compliant; senders too when sender gating is on
- No recipient may exceed max_holding_bps of total supply
- Compliance mode is fixed at construction
- Administration and lifecycle operations are role-gated
"""

import time
from datetime import datetime, timezone
from threading import RLock
from typing import TYPE_CHECKING, Callable, Iterable, Optional
from uuid import uuid4

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..observability import get_logger, get_metrics
from ..schemas import (
    ClaimKind,
    CountryPolicyChangedPayload,
    EventType,
    HoldingLimitChangedPayload,
    InvalidAddressError,
    InvestorPayload,
    LedgerEvent,
    LedgerInitializedPayload,
    LifecyclePayload,
    RoleChangedPayload,
    TransferPayload,
    chain_content,
    ZERO_ADDRESS,
    country_code_hash,
    normalize_address,
)
from .compliance import (
    ComplianceEvaluator,
    ComplianceMode,
    ComplianceVerdict,
    CountryPolicy,
    WhitelistSet,
)
from .errors import (
    ArithmeticOverflowError,
    ChainError,
    ConfigurationError,
    HoldingLimitExceededError,
    InsufficientBalanceError,
    InvalidRecipientError,
    LedgerError,
    LifecycleError,
    RecipientNotCompliantError,
    SenderNotCompliantError,
    ValidationError,
)
from .hasher import Hasher
from .holding import (
    BPS_DENOMINATOR,
    DEFAULT_MAX_HOLDING_BPS,
    UINT256_MAX,
    HoldingLimitChecker,
    checked_add,
    checked_mul,
    checked_sub,
)
from .registries import ClaimsProvider, IdentityProvider
from .roles import Role, RoleAssignments

if TYPE_CHECKING:
    from ..db.store import EventStore


logger = get_logger(__name__)

DECIMALS = 18
DEFAULT_ALLOWED_COUNTRIES = ("US", "SG", "CH")
DEFAULT_INTEREST_DESCRIPTION = "Interest payment executed"
DEFAULT_REDEMPTION_DESCRIPTION = "Principal redeemed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _caller(value: str) -> str:
    try:
        return normalize_address(value)
    except InvalidAddressError as e:
        raise ValidationError(f"Invalid caller: {e}") from e


def _target(value: str, what: str) -> str:
    try:
        return normalize_address(value)
    except InvalidAddressError as e:
        raise ValidationError(f"Invalid {what}: {e}") from e


class TokenLedger:
    """
    The core ledger.

    Owns balances, total supply, the whitelist, the country policy table,
    role assignments and lifecycle counters. Reads (never writes) the
    identity and claims providers.

    CONSTRUCTION:
    - identity_registry and claims_registry both None -> whitelist mode
    - both set -> registry mode
    - only one set -> ConfigurationError
    - initial_supply is in whole tokens, minted to the issuer
    """

    KYC_CLAIM = ClaimKind.KYC.topic
    ACCREDITED_CLAIM = ClaimKind.ACCREDITED.topic
    COUNTRY_CLAIM = ClaimKind.COUNTRY.topic

    def __init__(
        self,
        name: str,
        symbol: str,
        initial_supply: int,
        issuer: str,
        identity_registry: Optional[IdentityProvider] = None,
        claims_registry: Optional[ClaimsProvider] = None,
        *,
        max_holding_bps: int = DEFAULT_MAX_HOLDING_BPS,
        allowed_countries: Iterable[str] = DEFAULT_ALLOWED_COUNTRIES,
        require_sender_compliance: bool = False,
        enforce_single_redemption: bool = False,
        event_store: Optional["EventStore"] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if event_store is None:
            from ..db.store import InMemoryEventStore
            event_store = InMemoryEventStore()

        if event_store.get_event_count() > 0:
            raise ConfigurationError(
                "Event store already holds a ledger. "
                "Use TokenLedger.load_from_store() to reopen it."
            )

        if isinstance(initial_supply, bool) or not isinstance(initial_supply, int) or initial_supply < 0:
            raise ConfigurationError(
                f"initial_supply must be a non-negative integer, got {initial_supply!r}"
            )
        try:
            minted = checked_mul(initial_supply, 10 ** DECIMALS)
        except ArithmeticOverflowError as e:
            raise ConfigurationError(f"initial_supply too large: {e}") from e

        try:
            issuer = normalize_address(issuer)
            country_hashes = [country_code_hash(code) for code in allowed_countries]
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if issuer == ZERO_ADDRESS:
            raise ConfigurationError("Issuer cannot be the zero address")

        try:
            genesis = LedgerInitializedPayload(
                name=name,
                symbol=symbol,
                decimals=DECIMALS,
                issuer=issuer,
                identity_registry=identity_registry.address if identity_registry else ZERO_ADDRESS,
                claims_registry=claims_registry.address if claims_registry else ZERO_ADDRESS,
                compliance_mode=(
                    ComplianceMode.WHITELIST.value
                    if identity_registry is None and claims_registry is None
                    else ComplianceMode.REGISTRY.value
                ),
                max_holding_bps=self._checked_bps(max_holding_bps, ConfigurationError),
                allowed_countries=country_hashes,
                require_sender_compliance=require_sender_compliance,
                enforce_single_redemption=enforce_single_redemption,
            )
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid ledger configuration: {e}") from e

        self._setup(genesis, identity_registry, claims_registry, event_store, clock)

        self._commit(
            issuer,
            [
                (EventType.LEDGER_INITIALIZED, issuer, genesis),
                (
                    EventType.TRANSFER,
                    issuer,
                    TransferPayload(sender=ZERO_ADDRESS, recipient=issuer, amount=minted),
                ),
            ],
        )

        logger.info(
            "Ledger initialized",
            token=symbol,
            mode=self.compliance_mode.value,
            total_supply=str(self._total_supply),
        )

    def _setup(
        self,
        genesis: LedgerInitializedPayload,
        identity_registry: Optional[IdentityProvider],
        claims_registry: Optional[ClaimsProvider],
        event_store: "EventStore",
        clock: Optional[Callable[[], datetime]],
    ) -> None:
        """Initialize empty state from the genesis configuration."""
        self._event_store = event_store
        self._clock = clock or _utcnow
        self._lock = RLock()

        self._name = genesis.name
        self._symbol = genesis.symbol
        self._decimals = genesis.decimals
        self._require_sender_compliance = genesis.require_sender_compliance
        self._enforce_single_redemption = genesis.enforce_single_redemption
        self._max_holding_bps = genesis.max_holding_bps

        self._balances: dict[str, int] = {}
        self._total_supply = 0

        self._roles = RoleAssignments.for_issuer(genesis.issuer)
        self._whitelist = WhitelistSet()
        self._country_policy = CountryPolicy(genesis.allowed_countries)
        self._country_codes: dict[str, str] = {}

        self._evaluator = ComplianceEvaluator.from_providers(
            identity_registry, claims_registry, self._whitelist, self._country_policy
        )
        self._holding = HoldingLimitChecker(
            balance_of=self.balance_of,
            total_supply=lambda: self._total_supply,
            max_holding_bps=lambda: self._max_holding_bps,
        )

        self._interest_payment_count = 0
        self._principal_redemption_count = 0

        self._events: list[LedgerEvent] = []

    @staticmethod
    def _checked_bps(bps: int, error: type[LedgerError] = ValidationError) -> int:
        if isinstance(bps, bool) or not isinstance(bps, int) or not 0 < bps <= BPS_DENOMINATOR:
            raise error(
                f"Holding limit must be an integer in (0, {BPS_DENOMINATOR}] basis points, "
                f"got {bps!r}"
            )
        return bps

    # ================================================================
    # READ-ONLY QUERIES
    # ================================================================

    @property
    def name(self) -> str:
        return self._name

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def decimals(self) -> int:
        return self._decimals

    @property
    def total_supply(self) -> int:
        return self._total_supply

    @property
    def compliance_mode(self) -> ComplianceMode:
        return self._evaluator.mode

    @property
    def max_holding_percentage(self) -> int:
        """Current holding limit in basis points (1000 = 10%)."""
        return self._max_holding_bps

    @property
    def require_sender_compliance(self) -> bool:
        return self._require_sender_compliance

    @property
    def issuer(self) -> str:
        return self._roles.issuer

    @property
    def compliance_officer(self) -> str:
        return self._roles.compliance_officer

    @property
    def transfer_agent(self) -> str:
        return self._roles.transfer_agent

    @property
    def interest_payment_count(self) -> int:
        return self._interest_payment_count

    @property
    def principal_redemption_count(self) -> int:
        return self._principal_redemption_count

    @property
    def principal_redeemed(self) -> bool:
        return self._principal_redemption_count > 0

    @property
    def event_store(self) -> "EventStore":
        return self._event_store

    @property
    def event_count(self) -> int:
        return len(self._events)

    @property
    def last_event_hash(self) -> Optional[str]:
        return self._events[-1].event_hash if self._events else None

    def identity_registry(self) -> str:
        """Configured identity registry address; zero address in whitelist mode."""
        return self._evaluator.identity_registry_address

    def claims_registry(self) -> str:
        return self._evaluator.claims_registry_address

    def balance_of(self, account: str) -> int:
        return self._balances.get(account.lower(), 0)

    def holders(self) -> dict[str, int]:
        """All accounts with a non-zero balance."""
        return {a: b for a, b in self._balances.items() if b > 0}

    def is_erc3643_compliant(self, account: str) -> bool:
        """The compliance verdict for account."""
        return self._evaluator.is_compliant(_target(account, "account"))

    def explain_compliance(self, account: str) -> ComplianceVerdict:
        return self._evaluator.evaluate(_target(account, "account"))

    def is_whitelisted(self, account: str) -> bool:
        """
        Legacy query.

        Whitelist mode: whitelist membership. Registry mode: the full
        compliance verdict.
        """
        account = _target(account, "account")
        if self.compliance_mode == ComplianceMode.WHITELIST:
            return account in self._whitelist
        return self._evaluator.is_compliant(account)

    def whitelist_members(self) -> list[str]:
        return self._whitelist.members()

    def allowed_countries(self, country_hash: str) -> bool:
        return self._country_policy.is_allowed(country_hash)

    def is_country_allowed(self, code: str) -> bool:
        return self._country_policy.is_allowed(country_code_hash(code))

    def allowed_country_hashes(self) -> list[str]:
        return self._country_policy.allowed_hashes()

    def max_holding_amount(self) -> int:
        """floor(total_supply * max_holding_bps / 10000)."""
        return self._holding.max_allowed()

    def check_holding_limit(self, account: str, amount: int) -> bool:
        """Would account stay within the limit after receiving amount?"""
        account = _target(account, "account")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError(f"Amount must be an integer, got {amount!r}")
        if not 0 <= amount <= UINT256_MAX:
            raise ValidationError(f"Amount {amount} is outside the uint256 range")
        return self._holding.check(account, amount)

    def supply_invariant_holds(self) -> bool:
        return (
            sum(self._balances.values()) == self._total_supply
            and all(b >= 0 for b in self._balances.values())
        )

    def get_events(self) -> list[LedgerEvent]:
        return self._events.copy()

    def get_events_for(self, subject: str) -> list[LedgerEvent]:
        subject = subject.lower()
        return [e for e in self._events if e.subject == subject]

    # ================================================================
    # TRANSFER GATE
    # ================================================================

    def transfer(self, caller: str, to: str, amount: int) -> LedgerEvent:
        """
        Move amount from caller to `to`.

        Gate, in order, with no state change on any failure:
        1. Recipient is neither the zero address nor the caller
        2. 0 < amount <= balance(caller)
        3. Recipient is compliant (and the sender, if sender gating is on)
        4. Recipient stays within the holding limit
        """
        with self._lock:
            try:
                sender = _caller(caller)
                recipient = self._validate_transfer(sender, to, amount)
            except LedgerError as e:
                self._reject("transfer", caller, e)
                raise

            event = self._commit(
                sender,
                [(
                    EventType.TRANSFER,
                    recipient,
                    TransferPayload(sender=sender, recipient=recipient, amount=amount),
                )],
            )[0]

        get_metrics().record_transfer()
        logger.info(
            "Transfer applied",
            sender=sender,
            recipient=recipient,
            amount=str(amount),
            sequence=event.sequence_number,
        )
        return event

    def _validate_transfer(self, sender: str, to: str, amount: int) -> str:
        try:
            recipient = normalize_address(to)
        except InvalidAddressError as e:
            raise InvalidRecipientError(str(e)) from e
        if recipient == ZERO_ADDRESS:
            raise InvalidRecipientError("Cannot transfer to the zero address")
        if recipient == sender:
            raise InvalidRecipientError("Sender and recipient must differ")

        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError(f"Amount must be an integer, got {amount!r}")
        if amount > UINT256_MAX:
            raise ArithmeticOverflowError(f"Amount {amount} exceeds uint256")
        if amount <= 0:
            raise InsufficientBalanceError("Transfer amount must be greater than zero")
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalanceError(
                f"Balance {balance} of {sender} is below transfer amount {amount}"
            )

        if not self._evaluator.is_compliant(recipient):
            verdict = self._evaluator.evaluate(recipient)
            failed = ", ".join(check.value for check in verdict.failed_checks)
            raise RecipientNotCompliantError(
                f"Recipient {recipient} does not meet compliance requirements ({failed})"
            )

        if (
            self._require_sender_compliance
            and sender != self._roles.issuer
            and not self._evaluator.is_compliant(sender)
        ):
            raise SenderNotCompliantError(
                f"Sender {sender} does not meet compliance requirements"
            )

        if not self._holding.check(recipient, amount):
            raise HoldingLimitExceededError(
                f"Transfer would take {recipient} above the maximum holding of "
                f"{self._max_holding_bps} bps ({self._holding.max_allowed()} units)"
            )

        # Both sides must stay in range before anything is committed
        checked_sub(balance, amount)
        checked_add(self.balance_of(recipient), amount)
        return recipient

    # ================================================================
    # ADMINISTRATION
    # ================================================================

    def add_investor(self, caller: str, investor: str) -> list[LedgerEvent]:
        """Issuer-only. Adds investor to the whitelist; no-op if present."""
        with self._lock:
            caller, investor = self._authorize(
                "add_investor", caller, (Role.ISSUER,),
                lambda: _target(investor, "investor"),
            )
            if investor in self._whitelist:
                return []
            return self._commit(
                caller,
                [(EventType.INVESTOR_WHITELISTED, investor, InvestorPayload(investor=investor))],
            )

    def remove_investor(self, caller: str, investor: str) -> list[LedgerEvent]:
        """Issuer-only. Removes investor from the whitelist; no-op if absent."""
        with self._lock:
            caller, investor = self._authorize(
                "remove_investor", caller, (Role.ISSUER,),
                lambda: _target(investor, "investor"),
            )
            if investor not in self._whitelist:
                return []
            return self._commit(
                caller,
                [(EventType.INVESTOR_REMOVED, investor, InvestorPayload(investor=investor))],
            )

    def allow_country(self, caller: str, code: str) -> list[LedgerEvent]:
        """Compliance-officer-only. Marks an ISO country code allowed."""
        return self._set_country(caller, code, allowed=True)

    def block_country(self, caller: str, code: str) -> list[LedgerEvent]:
        """Compliance-officer-only. Marks an ISO country code not allowed."""
        return self._set_country(caller, code, allowed=False)

    def _set_country(self, caller: str, code: str, allowed: bool) -> list[LedgerEvent]:
        operation = "allow_country" if allowed else "block_country"

        def country_hash() -> str:
            try:
                return country_code_hash(code)
            except ValueError as e:
                raise ValidationError(str(e)) from e

        with self._lock:
            caller, key = self._authorize(
                operation, caller, (Role.COMPLIANCE_OFFICER,), country_hash
            )
            if self._country_policy.is_allowed(key) == allowed:
                return []
            return self._commit(
                caller,
                [(
                    EventType.COUNTRY_POLICY_CHANGED,
                    key,
                    CountryPolicyChangedPayload(
                        country_hash=key,
                        country_code=code.strip().upper(),
                        allowed=allowed,
                    ),
                )],
            )

    def set_compliance_officer(self, caller: str, new_officer: str) -> list[LedgerEvent]:
        """Issuer-only. Reassigns the compliance officer, effective immediately."""
        return self._set_role(caller, Role.COMPLIANCE_OFFICER, new_officer)

    def set_transfer_agent(self, caller: str, new_agent: str) -> list[LedgerEvent]:
        """Issuer-only. Reassigns the transfer agent."""
        return self._set_role(caller, Role.TRANSFER_AGENT, new_agent)

    def _set_role(self, caller: str, role: Role, holder: str) -> list[LedgerEvent]:
        def new_holder() -> str:
            holder_address = _target(holder, role.value)
            if holder_address == ZERO_ADDRESS:
                raise ValidationError(f"{role.value} cannot be the zero address")
            return holder_address

        with self._lock:
            caller, holder_address = self._authorize(
                f"set_{role.value}", caller, (Role.ISSUER,), new_holder
            )
            previous = self._roles.holder(role)
            if previous == holder_address:
                return []
            return self._commit(
                caller,
                [(
                    EventType.ROLE_CHANGED,
                    holder_address,
                    RoleChangedPayload(
                        role=role.value,
                        previous_holder=previous,
                        new_holder=holder_address,
                    ),
                )],
            )

    def set_max_holding_percentage(self, caller: str, bps: int) -> list[LedgerEvent]:
        """Issuer or compliance officer. Sets the holding limit in basis points."""
        with self._lock:
            caller, bps = self._authorize(
                "set_max_holding_percentage",
                caller,
                (Role.ISSUER, Role.COMPLIANCE_OFFICER),
                lambda: self._checked_bps(bps),
            )
            if bps == self._max_holding_bps:
                return []
            return self._commit(
                caller,
                [(
                    EventType.HOLDING_LIMIT_CHANGED,
                    caller,
                    HoldingLimitChangedPayload(previous_bps=self._max_holding_bps, new_bps=bps),
                )],
            )

    def _authorize(
        self,
        operation: str,
        caller: str,
        roles: tuple[Role, ...],
        validate: Callable[[], object],
    ) -> tuple[str, object]:
        """Role check first, then argument validation; both logged on failure."""
        try:
            caller = _caller(caller)
            self._roles.require(caller, *roles)
            return caller, validate()
        except LedgerError as e:
            self._reject(operation, caller, e)
            raise

    # ================================================================
    # LIFECYCLE
    # ================================================================

    def pay_interest(self, caller: str, description: Optional[str] = None) -> LedgerEvent:
        """
        Issuer-only. Records an interest payment.

        Nothing prevents repeated calls; avoiding double payment is the
        caller's responsibility.
        """
        with self._lock:
            caller, _ = self._authorize("pay_interest", caller, (Role.ISSUER,), lambda: None)
            event = self._commit(
                caller,
                [(
                    EventType.INTEREST_PAID,
                    caller,
                    LifecyclePayload(
                        timestamp=self._clock(),
                        description=description or DEFAULT_INTEREST_DESCRIPTION,
                        sequence=self._interest_payment_count + 1,
                    ),
                )],
            )[0]
        logger.info("Interest paid", payment=self._interest_payment_count)
        return event

    def redeem_principal(self, caller: str, description: Optional[str] = None) -> LedgerEvent:
        """
        Issuer-only. Records a principal redemption.

        Repeat redemptions are allowed unless enforce_single_redemption was
        set at construction, in which case they raise LifecycleError.
        """
        with self._lock:
            caller, _ = self._authorize("redeem_principal", caller, (Role.ISSUER,), lambda: None)
            if self.principal_redeemed:
                if self._enforce_single_redemption:
                    error = LifecycleError("Principal has already been redeemed")
                    self._reject("redeem_principal", caller, error)
                    raise error
                logger.warning(
                    "Principal redeemed again",
                    previous_redemptions=self._principal_redemption_count,
                )
            event = self._commit(
                caller,
                [(
                    EventType.PRINCIPAL_REDEEMED,
                    caller,
                    LifecyclePayload(
                        timestamp=self._clock(),
                        description=description or DEFAULT_REDEMPTION_DESCRIPTION,
                        sequence=self._principal_redemption_count + 1,
                    ),
                )],
            )[0]
        logger.info("Principal redeemed", redemption=self._principal_redemption_count)
        return event

    # ================================================================
    # COMMIT / APPLY
    # ================================================================

    def _reject(self, operation: str, caller: str, error: LedgerError) -> None:
        get_metrics().record_rejection(error.reason)
        if isinstance(error, ArithmeticOverflowError):
            logger.error(f"{operation} aborted", reason=error.reason, detail=error.message, account=caller)
        else:
            logger.warning(f"{operation} rejected", reason=error.reason, detail=error.message, account=caller)

    def _commit(
        self,
        caller: str,
        staged: list[tuple[EventType, str, BaseModel]],
    ) -> list[LedgerEvent]:
        """
        Hash, chain and commit a batch of events, then apply them.

        The store validates the whole batch before accepting any of it;
        in-memory state is only touched after the commit succeeded.
        """
        start = time.perf_counter()
        created_at = self._clock()

        with self._event_store.begin_append() as ctx:
            sequence = ctx.head.next_sequence
            previous_hash = ctx.head.last_event_hash
            if previous_hash != self.last_event_hash:
                raise ChainError(
                    "Event store head does not match the ledger. "
                    "Another writer appended to this store."
                )

            events = []
            for event_type, subject, payload in staged:
                payload_dict = payload.model_dump(mode="json")
                event_hash = Hasher.hash_event(
                    chain_content(event_type, subject, caller, created_at, payload_dict),
                    previous_hash,
                )
                event = LedgerEvent(
                    event_id=uuid4(),
                    sequence_number=sequence,
                    event_type=event_type,
                    subject=subject,
                    payload=payload_dict,
                    previous_event_hash=previous_hash,
                    event_hash=event_hash,
                    created_by=caller,
                    created_at=created_at,
                )
                event.validate_chain_rules()
                events.append(event)
                previous_hash = event_hash
                sequence += 1

            try:
                ctx.commit(events)
            except ChainError as e:
                self._reject("commit", caller, e)
                raise

        for event in events:
            self._apply_event(event)
            self._events.append(event)

        get_metrics().record_append(len(events), (time.perf_counter() - start) * 1000)
        return events

    def _apply_event(self, event: LedgerEvent) -> None:
        """
        Apply one committed event to in-memory state.

        Used both for live invocations and for replay in load_from_store().
        """
        payload = event.payload
        event_type = event.event_type

        if event_type == EventType.LEDGER_INITIALIZED:
            return

        if event_type == EventType.TRANSFER:
            sender = payload["sender"]
            recipient = payload["recipient"]
            amount = int(payload["amount"])
            if sender == ZERO_ADDRESS:
                self._total_supply = checked_add(self._total_supply, amount)
            else:
                self._balances[sender] = checked_sub(self._balances.get(sender, 0), amount)
            self._balances[recipient] = checked_add(self._balances.get(recipient, 0), amount)

        elif event_type == EventType.INVESTOR_WHITELISTED:
            self._whitelist.add(payload["investor"])

        elif event_type == EventType.INVESTOR_REMOVED:
            self._whitelist.remove(payload["investor"])

        elif event_type == EventType.COUNTRY_POLICY_CHANGED:
            if payload["allowed"]:
                self._country_policy.allow(payload["country_hash"])
            else:
                self._country_policy.block(payload["country_hash"])

        elif event_type == EventType.ROLE_CHANGED:
            self._roles = self._roles.reassign(Role(payload["role"]), payload["new_holder"])

        elif event_type == EventType.HOLDING_LIMIT_CHANGED:
            self._max_holding_bps = int(payload["new_bps"])

        elif event_type == EventType.INTEREST_PAID:
            self._interest_payment_count += 1

        elif event_type == EventType.PRINCIPAL_REDEEMED:
            self._principal_redemption_count += 1

    # ================================================================
    # CHAIN VERIFICATION / REPLAY
    # ================================================================

    def verify_chain_integrity(self) -> bool:
        """Verify the whole event chain held by this ledger."""
        try:
            self._verify_event_chain(self._events)
        except ChainError:
            return False
        return True

    @staticmethod
    def _verify_event_chain(events: list[LedgerEvent]) -> None:
        """
        Verify sequence, linkage and hashes of a complete chain.

        Raises ChainError on the first violation.
        """
        prev_hash = None
        for expected_sequence, event in enumerate(events):
            if event.sequence_number != expected_sequence:
                raise ChainError(
                    f"Sequence number gap or out-of-order event. "
                    f"Expected {expected_sequence}, got {event.sequence_number}"
                )
            if event.previous_event_hash != prev_hash:
                raise ChainError(
                    f"Chain linkage broken at sequence {expected_sequence}"
                )
            if not Hasher.verify_chain(event.hashed_content(), event.event_hash, prev_hash):
                raise ChainError(
                    f"Hash verification failed at sequence {expected_sequence}"
                )
            try:
                event.validate_chain_rules()
            except ValueError as e:
                raise ChainError(str(e)) from e
            prev_hash = event.event_hash

    @classmethod
    def load_from_store(
        cls,
        event_store: "EventStore",
        identity_registry: Optional[IdentityProvider] = None,
        claims_registry: Optional[ClaimsProvider] = None,
        clock: Optional[Callable[[], datetime]] = None,
        verify: bool = True,
    ) -> "TokenLedger":
        """
        Rebuild a ledger by replaying its event store.

        The providers must match the registry addresses recorded at
        construction; the compliance mode cannot change across a reload.

        Raises:
            ChainError: If chain integrity is violated
            ConfigurationError: If the store is empty or providers don't match
        """
        events = event_store.list_all()
        if not events:
            raise ConfigurationError("Event store is empty; construct a new TokenLedger instead")

        if verify:
            cls._verify_event_chain(events)

        genesis_event = events[0]
        if genesis_event.event_type != EventType.LEDGER_INITIALIZED:
            raise ChainError(
                f"First event must be LEDGER_INITIALIZED, got {genesis_event.event_type.value}"
            )
        genesis = LedgerInitializedPayload.model_validate(genesis_event.payload)

        configured_identity = identity_registry.address if identity_registry else ZERO_ADDRESS
        configured_claims = claims_registry.address if claims_registry else ZERO_ADDRESS
        if (configured_identity, configured_claims) != (genesis.identity_registry, genesis.claims_registry):
            raise ConfigurationError(
                "Registries do not match the ledger's construction: expected identity "
                f"{genesis.identity_registry} and claims {genesis.claims_registry}"
            )

        ledger = cls.__new__(cls)
        ledger._setup(genesis, identity_registry, claims_registry, event_store, clock)
        for event in events:
            ledger._apply_event(event)
            ledger._events.append(event)

        logger.info(
            "Ledger loaded from store",
            token=ledger.symbol,
            event_count=ledger.event_count,
        )
        return ledger
