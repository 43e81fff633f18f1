"""Mini README: Tests for the Supabase REST backend with a mocked session.

The HTTP session is replaced by ``unittest.mock`` objects so the tests
check the requests that would be sent and the translation of responses
and failures into portal errors.
"""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from hoaportal.backend.supabase_rest import SupabaseAuthProvider, SupabaseClient, SupabaseRecordStore
from hoaportal.errors import AuthFailure, StaleBalance, StoreReadFailure, StoreWriteFailure


def _response(status_code: int = 200, body: Any = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.content = b"" if body is None else json.dumps(body).encode()
    response.text = response.content.decode()
    response.json.return_value = body
    return response


def _client(*responses: MagicMock) -> SupabaseClient:
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = list(responses)
    return SupabaseClient("https://demo.supabase.co/", "anon", timeout=3.0, session=session)


def _call(client: SupabaseClient, index: int = 0):
    return client.session.request.call_args_list[index]


def test_select_ordered_builds_postgrest_query() -> None:
    client = _client(_response(body=[{"amount": 5, "paid_at": "2024-01-01T00:00:00Z"}]))
    rows = SupabaseRecordStore(client).select_ordered(
        "payments", "paid_at", descending=True, columns=("amount", "paid_at"), member_id=3
    )

    assert rows == [{"amount": 5, "paid_at": "2024-01-01T00:00:00Z"}]
    call = _call(client)
    assert call.args == ("GET", "https://demo.supabase.co/rest/v1/payments")
    assert call.kwargs["params"] == {
        "select": "amount,paid_at",
        "order": "paid_at.desc",
        "member_id": "eq.3",
    }
    assert call.kwargs["headers"]["apikey"] == "anon"
    assert call.kwargs["timeout"] == 3.0


def test_select_where_uses_equality_filters() -> None:
    client = _client(_response(body=[]))
    assert SupabaseRecordStore(client).select_where("admins", email="a@example.org") == []
    assert _call(client).kwargs["params"] == {"select": "*", "email": "eq.a@example.org"}


def test_read_errors_surface_as_store_read_failure() -> None:
    client = _client(_response(500, {"message": "relation does not exist"}))
    with pytest.raises(StoreReadFailure, match="relation does not exist"):
        SupabaseRecordStore(client).select_all("members")


def test_network_errors_surface_as_store_write_failure() -> None:
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = requests.ConnectionError("down")
    client = SupabaseClient("https://demo.supabase.co", "anon", session=session)

    with pytest.raises(StoreWriteFailure):
        SupabaseRecordStore(client).insert("members", {"name": "x"})


def test_update_by_id_patches_matching_row() -> None:
    client = _client(_response(body=[{"id": 4, "waterBill": 70.0}]))
    row = SupabaseRecordStore(client).update_by_id("members", 4, {"waterBill": 70.0})

    assert row == {"id": 4, "waterBill": 70.0}
    call = _call(client)
    assert call.args[0] == "PATCH"
    assert call.kwargs["params"] == {"id": "eq.4"}
    assert call.kwargs["headers"]["Prefer"] == "return=representation"


def test_update_with_no_matching_row_is_a_write_failure() -> None:
    client = _client(_response(body=[]))
    with pytest.raises(StoreWriteFailure):
        SupabaseRecordStore(client).update_by_id("members", 4, {"waterBill": 70.0})


def test_apply_payment_calls_rpc_once() -> None:
    client = _client(_response(body=[{"id": 2, "balance": 150.0}]))
    payment = {"member_id": 2, "amount": 50.0, "paid_at": "2024-05-01T00:00:00+00:00"}
    row = SupabaseRecordStore(client).apply_payment(payment, 2, 200.0, 150.0)

    assert row["balance"] == 150.0
    assert client.session.request.call_count == 1
    call = _call(client)
    assert call.args[1].endswith("/rest/v1/rpc/record_payment")
    assert call.kwargs["json"] == {
        "p_member_id": 2,
        "p_amount": 50.0,
        "p_paid_at": "2024-05-01T00:00:00+00:00",
        "p_expected_balance": 200.0,
        "p_new_balance": 150.0,
    }


def test_apply_payment_maps_stale_balance() -> None:
    client = _client(_response(400, {"message": "stale_balance: expected 200, found 180"}))
    with pytest.raises(StaleBalance):
        SupabaseRecordStore(client).apply_payment(
            {"amount": 50.0, "paid_at": "2024-05-01T00:00:00+00:00"}, 2, 200.0, 150.0
        )


def test_sign_in_returns_session() -> None:
    client = _client(
        _response(body={"access_token": "tok", "user": {"id": "u1", "email": "a@example.org"}})
    )
    session = SupabaseAuthProvider(client).sign_in("a@example.org", "pw")

    assert session.access_token == "tok"
    assert session.user.email == "a@example.org"
    assert _call(client).kwargs["params"] == {"grant_type": "password"}


def test_sign_in_failure_raises_auth_failure() -> None:
    client = _client(_response(400, {"error_description": "Invalid login credentials"}))
    with pytest.raises(AuthFailure, match="Invalid login credentials"):
        SupabaseAuthProvider(client).sign_in("a@example.org", "bad")


def test_get_current_user_returns_none_for_rejected_token() -> None:
    client = _client(_response(401, {"msg": "invalid JWT"}))
    assert SupabaseAuthProvider(client).get_current_user("expired") is None


def test_get_current_user_treats_forbidden_token_as_signed_out() -> None:
    client = _client(_response(403, {"msg": "bad_jwt"}))
    assert SupabaseAuthProvider(client).get_current_user("revoked") is None


def test_get_current_user_surfaces_unreachable_auth_service() -> None:
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = requests.ConnectionError("auth down")
    client = SupabaseClient("https://demo.supabase.co", "anon", session=session)

    with pytest.raises(StoreReadFailure, match="auth down") as caught:
        SupabaseAuthProvider(client).get_current_user("valid-token")
    assert caught.value.upstream_status is None


def test_get_current_user_surfaces_auth_server_errors() -> None:
    client = _client(_response(503, {"message": "service unavailable"}))
    with pytest.raises(StoreReadFailure) as caught:
        SupabaseAuthProvider(client).get_current_user("valid-token")
    assert caught.value.upstream_status == 503


def test_create_user_requires_service_key() -> None:
    with pytest.raises(AuthFailure):
        SupabaseAuthProvider(_client()).create_user("a@example.org", "pw1234")


def test_create_user_uses_admin_endpoint() -> None:
    client = _client(_response(body={"id": "u2", "email": "new@example.org"}))
    user = SupabaseAuthProvider(client, service_key="service").create_user("new@example.org", "pw1234")

    assert user.id == "u2"
    call = _call(client)
    assert call.args[1].endswith("/auth/v1/admin/users")
    assert call.kwargs["headers"]["Authorization"] == "Bearer service"
    assert call.kwargs["json"]["email_confirm"] is True
