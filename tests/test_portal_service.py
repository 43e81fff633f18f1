"""Mini README: Tests for the portal service workflows.

Structure:
    * session tests - sign-in messages and admin detection.
    * payment tests - reconciliation scenario, validation before writes,
      authorization guard and propagation of store failures.
    * fee, export, provisioning and summary tests.
"""

from __future__ import annotations

from io import BytesIO
from unittest.mock import MagicMock

import pytest
import requests
from openpyxl import load_workbook

import hoaportal.portal.service as portal_service
from hoaportal.backend.memory import InMemoryAuthProvider, InMemoryRecordStore
from hoaportal.backend.supabase_rest import SupabaseAuthProvider, SupabaseClient
from hoaportal.errors import (
    AuthFailure,
    InvalidAmount,
    InvalidFeeValue,
    InvalidRole,
    MemberNotFound,
    StoreReadFailure,
    StoreWriteFailure,
    Unauthorized,
)
from hoaportal.finance import ledger
from hoaportal.portal import PortalContext, PortalService


class FailingStore(InMemoryRecordStore):
    """Store whose writes always fail, as when the backend is unreachable."""

    def apply_payment(self, payment, member_id, expected_balance, new_balance):
        raise StoreWriteFailure("connection reset")

    def update_by_id(self, table, record_id, changes):
        raise StoreWriteFailure("connection reset")


def _tables() -> dict:
    return {
        "members": [
            {
                "name": "Unit 1",
                "email": "admin@example.org",
                "waterBill": 80.0,
                "securityFee": 40.0,
                "operations": 30.0,
                "extraFees": 10.0,
                "balance": 200.0,
            },
            {
                "name": "Unit 2",
                "email": "member@example.org",
                "waterBill": 100.0,
                "securityFee": 50.0,
                "operations": 25.0,
                "balance": -10.0,
            },
        ],
        "admins": [{"email": "admin@example.org"}],
    }


@pytest.fixture()
def auth() -> InMemoryAuthProvider:
    return InMemoryAuthProvider(
        accounts=[("admin@example.org", "changeme"), ("member@example.org", "changeme")]
    )


@pytest.fixture()
def service(auth: InMemoryAuthProvider) -> PortalService:
    return PortalService(InMemoryRecordStore(tables=_tables()), auth)


@pytest.fixture()
def admin(service: PortalService) -> PortalContext:
    return service.sign_in("admin@example.org", "changeme")


@pytest.fixture()
def member(service: PortalService) -> PortalContext:
    return service.sign_in("member@example.org", "changeme")


def test_sign_in_detects_admins(admin: PortalContext, member: PortalContext) -> None:
    assert admin.is_admin is True
    assert member.is_admin is False
    assert admin.access_token


def test_sign_in_failure_message(service: PortalService) -> None:
    with pytest.raises(AuthFailure, match="^Login failed: "):
        service.sign_in("admin@example.org", "nope")


def test_resolve_context_round_trips_token(service: PortalService, admin: PortalContext) -> None:
    assert service.resolve_context(admin.access_token) == admin
    with pytest.raises(AuthFailure):
        service.resolve_context("unknown")


def test_sign_out_revokes_session(service: PortalService, member: PortalContext) -> None:
    service.sign_out(member)

    with pytest.raises(AuthFailure, match="Not signed in"):
        service.resolve_context(member.access_token)


def test_sign_out_without_token_is_harmless(service: PortalService) -> None:
    service.sign_out(PortalContext.operator())


def test_auth_outage_is_not_reported_as_signed_out() -> None:
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = requests.Timeout("read timed out")
    remote_auth = SupabaseAuthProvider(SupabaseClient("https://demo.supabase.co", "anon", session=session))
    service = PortalService(InMemoryRecordStore(tables=_tables()), remote_auth)

    with pytest.raises(StoreReadFailure) as caught:
        service.resolve_context("valid-token")
    assert caught.value.http_status == 502


def test_default_member_is_first(service: PortalService, member: PortalContext) -> None:
    members = service.list_members(member)
    assert service.default_member(members) == members[0]
    assert service.default_member([]) is None


def test_add_payment_scenario(service: PortalService, admin: PortalContext) -> None:
    """Balance 200 with a payment of 50 leaves 150 and a history entry."""

    receipt = service.add_payment(admin, 1, 50)

    assert receipt.previous_balance == 200.0
    assert receipt.member.balance == 150.0
    assert service.get_member(1).balance == 150.0
    history = service.payment_history(admin, 1)
    assert [payment.amount for payment in history] == [50.0]
    assert history[0].member_id == 1


def test_overpayment_creates_credit(service: PortalService, admin: PortalContext) -> None:
    receipt = service.add_payment(admin, "2", "15")
    assert receipt.member.balance == -25.0


@pytest.mark.parametrize("amount", [0, -5])
def test_invalid_amount_writes_nothing(service: PortalService, admin: PortalContext, amount: int) -> None:
    with pytest.raises(InvalidAmount):
        service.add_payment(admin, 1, amount)

    assert service.get_member(1).balance == 200.0
    assert service.payment_history(admin, 1) == []


def test_add_payment_reconciles_the_validated_amount(
    service: PortalService, admin: PortalContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    """The ledger receives the parsed float, not the raw form text."""

    received = []

    def spy(member, amount, **kwargs):
        received.append(amount)
        return ledger.record_payment(member, amount, **kwargs)

    monkeypatch.setattr(portal_service, "record_payment", spy)
    receipt = service.add_payment(admin, 1, " 50 ")

    assert received == [50.0]
    assert isinstance(received[0], float)
    assert receipt.member.balance == 150.0


def test_invalid_amount_checked_before_member_lookup(service: PortalService, admin: PortalContext) -> None:
    with pytest.raises(InvalidAmount):
        service.add_payment(admin, 999, 0)


def test_non_admin_cannot_record_payment(service: PortalService, member: PortalContext) -> None:
    with pytest.raises(Unauthorized):
        service.add_payment(member, 1, 50)
    assert service.get_member(1).balance == 200.0


def test_store_failure_reaches_caller(auth: InMemoryAuthProvider) -> None:
    service = PortalService(FailingStore(tables=_tables()), auth)
    admin = service.sign_in("admin@example.org", "changeme")

    with pytest.raises(StoreWriteFailure):
        service.add_payment(admin, 1, 50)
    with pytest.raises(StoreWriteFailure):
        service.update_fee(admin, 1, "waterBill", 10)


def test_payment_for_unknown_member(service: PortalService, admin: PortalContext) -> None:
    with pytest.raises(MemberNotFound):
        service.add_payment(admin, 42, 10)


def test_payment_history_is_newest_first(service: PortalService, admin: PortalContext) -> None:
    service.store.insert("payments", {"member_id": 1, "amount": 5.0, "paid_at": "2023-01-01T00:00:00+00:00"})
    service.add_payment(admin, 1, 20)

    history = service.payment_history(admin, 1)
    assert [payment.amount for payment in history] == [20.0, 5.0]


def test_update_fee_coerces_and_writes(service: PortalService, admin: PortalContext) -> None:
    updated = service.update_fee(admin, 2, "extraFees", "12.5")

    assert updated.extra_fees == 12.5
    assert service.get_member(2).extra_fees == 12.5
    assert updated.balance == -10.0


def test_update_fee_guards(service: PortalService, admin: PortalContext, member: PortalContext) -> None:
    with pytest.raises(Unauthorized):
        service.update_fee(member, 1, "waterBill", 1)
    with pytest.raises(InvalidFeeValue):
        service.update_fee(admin, 1, "balance", 0)
    with pytest.raises(MemberNotFound):
        service.update_fee(admin, 99, "waterBill", 1)


def test_export_workbook_for_admin(service: PortalService, admin: PortalContext) -> None:
    worksheet = load_workbook(BytesIO(service.export_workbook(admin)))["Members"]
    rows = list(worksheet.iter_rows(values_only=True))

    assert rows[1][0] == "Unit 1"
    assert rows[1][-1] == 160
    assert rows[2][5] == 0
    assert rows[2][-1] == 175


def test_export_requires_admin(service: PortalService, member: PortalContext) -> None:
    with pytest.raises(Unauthorized):
        service.export_workbook(member)


def test_create_admin_user(service: PortalService, admin: PortalContext) -> None:
    created = service.create_user(admin, "new@example.org", "temp-pass", "Unit 3", role="Admin")

    assert created.name == "Unit 3"
    assert created.balance == 0.0
    assert service.is_admin("new@example.org")
    assert service.sign_in("new@example.org", "temp-pass").is_admin is True


def test_create_member_user_is_not_admin(service: PortalService, admin: PortalContext) -> None:
    service.create_user(admin, "plain@example.org", "temp-pass", "Unit 4")
    assert not service.is_admin("plain@example.org")


def test_create_user_errors(service: PortalService, admin: PortalContext, member: PortalContext) -> None:
    with pytest.raises(Unauthorized):
        service.create_user(member, "x@example.org", "temp-pass", "X")
    with pytest.raises(InvalidRole):
        service.create_user(admin, "x@example.org", "temp-pass", "X", role="owner")
    with pytest.raises(AuthFailure, match="^Error creating user: "):
        service.create_user(admin, "member@example.org", "temp-pass", "Dup")
    assert len(service.list_members(admin)) == 2


def test_financial_summary(service: PortalService, member: PortalContext) -> None:
    summary = service.financial_summary(member)

    assert summary["member_count"] == 2
    assert summary["total_balance"] == 190.0
    assert summary["total_outstanding"] == 200.0
    assert summary["total_credit"] == 10.0
    assert summary["total_monthly_dues"] == 335.0
    assert summary["members_owing"] == 1
    assert summary["members_in_credit"] == 1


def test_financial_summary_empty(auth: InMemoryAuthProvider) -> None:
    service = PortalService(InMemoryRecordStore(), auth)
    assert service.financial_summary(PortalContext.operator())["member_count"] == 0
