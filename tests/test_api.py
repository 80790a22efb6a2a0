"""
Tests for the HTTP surface.

Exercises routing, the X-Caller header and the mapping of ledger
errors onto status codes and reason codes.
"""

import pytest
from fastapi.testclient import TestClient

from bondledger.config import LedgerSettings
from bondledger.core import (
    ComplianceMode,
    InMemoryClaimsRegistry,
    InMemoryIdentityRegistry,
    TokenLedger,
)
from bondledger.db import ChainIntegrityError, InMemoryEventStore
from bondledger.main import create_app
from bondledger.observability import reset_metrics
from bondledger.schemas import ZERO_ADDRESS, country_code_hash


ISSUER = "0x" + "1" * 40
ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
MALLORY = "0x" + "e" * 40

SUPPLY = 1_000_000 * 10 ** 18
LIMIT = SUPPLY // 10

API = "/api/v1"


def as_caller(address):
    return {"X-Caller": address}


class RejectingEventStore(InMemoryEventStore):
    """Accepts appends until told to reject them."""

    reject = False

    def _do_commit(self, ctx, events):
        if self.reject:
            raise ChainIntegrityError("Store refused the batch")
        return super()._do_commit(ctx, events)


@pytest.fixture(autouse=True)
def fresh_metrics():
    reset_metrics()
    yield


@pytest.fixture
def registries():
    return InMemoryIdentityRegistry(), InMemoryClaimsRegistry()


@pytest.fixture
def ledger(registries):
    identity, claims = registries
    return TokenLedger("Real Estate Debt Bond", "REDB", 1_000_000, ISSUER, identity, claims)


@pytest.fixture
def client(ledger, registries):
    identity, claims = registries
    app = create_app(ledger=ledger, identity_registry=identity, claims_registry=claims)
    with TestClient(app) as c:
        yield c


def seed_compliant(client, account, country="US"):
    r = client.put(f"{API}/registry/identities/{account}", json={"verified": True})
    assert r.status_code == 200
    for kind in ("KYC", "ACCREDITED"):
        r = client.put(f"{API}/registry/claims/{account}/{kind}", json={"value": "0x" + "ab" * 32})
        assert r.status_code == 200
    r = client.put(f"{API}/registry/claims/{account}/COUNTRY", json={"country_code": country})
    assert r.status_code == 200


class TestQueries:

    def test_token_info(self, client, registries):
        r = client.get(f"{API}/token")
        assert r.status_code == 200
        data = r.json()
        assert data["symbol"] == "REDB"
        assert data["decimals"] == 18
        assert data["total_supply"] == str(SUPPLY)
        assert data["compliance_mode"] == "registry"
        assert data["identity_registry"] == registries[0].address
        assert data["roles"]["issuer"] == ISSUER
        assert data["max_holding_amount"] == str(LIMIT)

    def test_account(self, client):
        seed_compliant(client, ALICE)
        r = client.get(f"{API}/accounts/{ALICE.upper().replace('0X', '0x')}")
        assert r.status_code == 200
        data = r.json()
        assert data["address"] == ALICE
        assert data["balance"] == "0"
        assert data["is_erc3643_compliant"] is True
        assert data["failed_checks"] == []

    def test_account_explains_failures(self, client):
        r = client.get(f"{API}/accounts/{BOB}")
        data = r.json()
        assert data["is_erc3643_compliant"] is False
        assert "identity_verified" in data["failed_checks"]

    def test_malformed_address(self, client):
        r = client.get(f"{API}/accounts/not-an-address")
        assert r.status_code == 400
        assert r.json()["detail"]["reason"] == "ValidationError"

    def test_country_lookup_by_code_and_hash(self, client):
        assert client.get(f"{API}/countries/us").json()["allowed"] is True
        assert client.get(f"{API}/countries/CN").json()["allowed"] is False
        r = client.get(f"{API}/countries/{country_code_hash('SG')}")
        assert r.json()["allowed"] is True

    def test_holding_limit_check(self, client):
        r = client.get(f"{API}/holding-limit/{ALICE}", params={"amount": str(LIMIT)})
        assert r.json()["within_limit"] is True
        r = client.get(f"{API}/holding-limit/{ALICE}", params={"amount": str(LIMIT + 1)})
        assert r.json()["within_limit"] is False

    def test_events(self, client):
        r = client.get(f"{API}/events")
        assert [e["event_type"] for e in r.json()] == ["LEDGER_INITIALIZED", "TRANSFER"]


class TestTransfers:

    def test_transfer_to_compliant_investor(self, client, ledger):
        seed_compliant(client, ALICE)
        r = client.post(f"{API}/transfers", json={"to": ALICE, "amount": 1000}, headers=as_caller(ISSUER))
        assert r.status_code == 201
        event = r.json()
        assert event["event_type"] == "TRANSFER"
        assert event["payload"]["amount"] == 1000
        assert ledger.balance_of(ALICE) == 1000

    def test_large_amount_as_string(self, client, ledger):
        seed_compliant(client, ALICE)
        r = client.post(
            f"{API}/transfers",
            json={"to": ALICE, "amount": str(LIMIT)},
            headers=as_caller(ISSUER),
        )
        assert r.status_code == 201
        assert ledger.balance_of(ALICE) == LIMIT

    def test_non_compliant_recipient(self, client):
        r = client.post(f"{API}/transfers", json={"to": BOB, "amount": 1}, headers=as_caller(ISSUER))
        assert r.status_code == 422
        assert r.json()["detail"]["reason"] == "RecipientNotCompliant"

    def test_holding_limit_exceeded(self, client):
        seed_compliant(client, ALICE)
        r = client.post(
            f"{API}/transfers",
            json={"to": ALICE, "amount": str(LIMIT + 1)},
            headers=as_caller(ISSUER),
        )
        assert r.status_code == 422
        assert r.json()["detail"]["reason"] == "HoldingLimitExceeded"

    def test_insufficient_balance(self, client):
        seed_compliant(client, ALICE)
        r = client.post(f"{API}/transfers", json={"to": ALICE, "amount": 1}, headers=as_caller(MALLORY))
        assert r.status_code == 422
        assert r.json()["detail"]["reason"] == "InsufficientBalance"

    def test_zero_address_recipient(self, client):
        r = client.post(
            f"{API}/transfers", json={"to": ZERO_ADDRESS, "amount": 1}, headers=as_caller(ISSUER)
        )
        assert r.status_code == 400
        assert r.json()["detail"]["reason"] == "InvalidRecipient"

    def test_missing_caller_header(self, client):
        r = client.post(f"{API}/transfers", json={"to": ALICE, "amount": 1})
        assert r.status_code == 422

    def test_malformed_caller_header(self, client):
        r = client.post(f"{API}/transfers", json={"to": ALICE, "amount": 1}, headers=as_caller("me"))
        assert r.status_code == 400


class TestAdministration:

    def test_country_block_and_allow(self, client):
        r = client.post(f"{API}/countries/US/block", headers=as_caller(ISSUER))
        assert r.status_code == 200
        assert r.json()["events"][0]["event_type"] == "COUNTRY_POLICY_CHANGED"
        assert client.get(f"{API}/countries/US").json()["allowed"] is False

        r = client.post(f"{API}/countries/US/block", headers=as_caller(ISSUER))
        assert r.json()["events"] == []

    def test_unauthorized_is_403(self, client):
        r = client.post(f"{API}/countries/DE/allow", headers=as_caller(MALLORY))
        assert r.status_code == 403
        assert r.json()["detail"]["reason"] == "Unauthorized"

    def test_role_reassignment(self, client, ledger):
        r = client.put(
            f"{API}/roles/compliance-officer", json={"address": ALICE}, headers=as_caller(ISSUER)
        )
        assert r.status_code == 200
        assert ledger.compliance_officer == ALICE

        r = client.put(f"{API}/holding-limit", json={"bps": 2000}, headers=as_caller(ALICE))
        assert r.status_code == 200
        assert ledger.max_holding_percentage == 2000

    def test_invalid_bps(self, client):
        r = client.put(f"{API}/holding-limit", json={"bps": 10001}, headers=as_caller(ISSUER))
        assert r.status_code == 400
        assert r.json()["detail"]["reason"] == "ValidationError"

    def test_investor_whitelist(self, client, ledger):
        r = client.post(f"{API}/investors", json={"investor": ALICE}, headers=as_caller(ISSUER))
        assert r.status_code == 200
        assert ALICE in ledger.whitelist_members()
        r = client.delete(f"{API}/investors/{ALICE}", headers=as_caller(ISSUER))
        assert r.json()["events"][0]["event_type"] == "INVESTOR_REMOVED"


class TestLifecycle:

    def test_pay_interest(self, client, ledger):
        r = client.post(f"{API}/lifecycle/interest", json={}, headers=as_caller(ISSUER))
        assert r.status_code == 201
        assert r.json()["event_type"] == "INTEREST_PAID"
        assert ledger.interest_payment_count == 1

    def test_redeem_principal_with_description(self, client):
        r = client.post(
            f"{API}/lifecycle/redemption",
            json={"description": "Final maturity"},
            headers=as_caller(ISSUER),
        )
        assert r.status_code == 201
        assert r.json()["payload"]["description"] == "Final maturity"

    def test_lifecycle_requires_issuer(self, client):
        r = client.post(f"{API}/lifecycle/interest", json={}, headers=as_caller(MALLORY))
        assert r.status_code == 403


class TestSystem:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_health_detailed(self, client):
        r = client.get("/health/detailed")
        assert r.status_code == 200
        checks = r.json()["checks"]
        assert checks["chain_integrity"]["valid"] is True
        assert checks["supply_invariant"]["status"] == "healthy"

    def test_metrics_count_rejections(self, client):
        client.post(f"{API}/transfers", json={"to": BOB, "amount": 1}, headers=as_caller(ISSUER))
        summary = client.get("/metrics").json()
        assert summary["rejections"] == {"RecipientNotCompliant": 1}
        assert summary["requests_failed"] >= 1

    def test_store_rejection_is_500_with_reason(self):
        store = RejectingEventStore()
        ledger = TokenLedger("Bond", "B", 1, ISSUER, event_store=store)
        store.reject = True
        with TestClient(create_app(ledger=ledger)) as c:
            r = c.post(f"{API}/lifecycle/interest", json={}, headers=as_caller(ISSUER))
        assert r.status_code == 500
        assert r.json()["detail"]["reason"] == "ChainError"
        assert ledger.interest_payment_count == 0

    def test_metrics_summary_fields(self, client):
        client.get("/health")
        summary = client.get("/metrics").json()
        assert summary["requests_total"] >= 1
        assert summary["request_latency_mean_ms"] is not None
        assert set(summary) >= {"events_appended", "append_latency_max_ms"}

    def test_request_id_echoed(self, client):
        r = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert r.headers["X-Request-ID"] == "abc123"


class TestWhitelistDeployment:

    @pytest.fixture
    def whitelist_client(self):
        settings = LedgerSettings(compliance_mode=ComplianceMode.WHITELIST, issuer=ISSUER)
        with TestClient(create_app(settings=settings)) as c:
            yield c

    def test_registry_endpoints_unavailable(self, whitelist_client):
        r = whitelist_client.put(f"{API}/registry/identities/{ALICE}", json={"verified": True})
        assert r.status_code == 404

    def test_whitelisted_investor_receives(self, whitelist_client):
        r = whitelist_client.post(f"{API}/transfers", json={"to": ALICE, "amount": 5}, headers=as_caller(ISSUER))
        assert r.json()["detail"]["reason"] == "RecipientNotCompliant"

        whitelist_client.post(f"{API}/investors", json={"investor": ALICE}, headers=as_caller(ISSUER))
        r = whitelist_client.post(f"{API}/transfers", json={"to": ALICE, "amount": 5}, headers=as_caller(ISSUER))
        assert r.status_code == 201
        r = whitelist_client.get(f"{API}/accounts/{ALICE}")
        assert r.json()["balance"] == "5"
        assert r.json()["is_whitelisted"] is True


class TestSettings:

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BONDLEDGER_COMPLIANCE_MODE", "whitelist")
        monkeypatch.setenv("BONDLEDGER_ALLOWED_COUNTRIES", "us, de")
        monkeypatch.setenv("BONDLEDGER_MAX_HOLDING_BPS", "2500")
        monkeypatch.setenv("BONDLEDGER_SINGLE_REDEMPTION", "true")
        settings = LedgerSettings.from_env()
        assert settings.compliance_mode == ComplianceMode.WHITELIST
        assert settings.allowed_countries == ("US", "DE")
        assert settings.max_holding_bps == 2500
        assert settings.enforce_single_redemption is True

    def test_bad_mode(self, monkeypatch):
        from bondledger.core import ConfigurationError

        monkeypatch.setenv("BONDLEDGER_COMPLIANCE_MODE", "hybrid")
        with pytest.raises(ConfigurationError):
            LedgerSettings.from_env()
