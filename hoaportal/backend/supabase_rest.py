"""Mini README: Hosted Supabase backend over its REST and auth endpoints.

Structure:
    * SupabaseClient - thin ``requests`` wrapper adding keys, timeouts and
      error translation.
    * SupabaseRecordStore - PostgREST table access plus the atomic
      ``record_payment`` RPC.
    * SupabaseAuthProvider - GoTrue password sign-in, session lookup and
      admin account creation.
    * create_supabase_backend - registry factory reading settings.

Payments are applied through a Postgres function so the payment insert and
the balance update commit together (see ``supabase/record_payment.sql``).
The function raises ``stale_balance`` when the stored balance no longer
matches the caller's snapshot. No call is retried here.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Type

import requests
from requests.adapters import HTTPAdapter

from .base import MEMBERS, AuthProvider, AuthSession, AuthUser, RecordStore, Row
from .registry import REGISTRY, Backend
from ..errors import (
    AuthFailure,
    PortalError,
    StaleBalance,
    StoreReadFailure,
    StoreWriteFailure,
)
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

RECORD_PAYMENT_RPC = "record_payment"
REJECTED_TOKEN_STATUSES = (401, 403)


def _error_message(response: requests.Response) -> str:
    """Extract the most helpful message from a Supabase error body."""

    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


class SupabaseClient:
    """Issue JSON requests against a Supabase project."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or self._make_session()

    @staticmethod
    def _make_session() -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=4, pool_maxsize=4, max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def request(
        self,
        method: str,
        path: str,
        *,
        error: Type[PortalError],
        params: Optional[Dict[str, str]] = None,
        json_body: Optional[Any] = None,
        bearer: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Send a request and return decoded JSON, raising ``error`` on failure."""

        merged = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {bearer or self.api_key}",
            "Content-Type": "application/json",
        }
        merged.update(headers or {})
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=merged,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            LOGGER.error("%s %s failed: %s", method, path, exc)
            raise error(f"Backend request failed: {exc}") from exc
        if response.status_code >= 400:
            message = _error_message(response)
            LOGGER.warning("%s %s returned %s: %s", method, path, response.status_code, message)
            failure = error(message)
            failure.upstream_status = response.status_code
            raise failure
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise error(f"Backend returned invalid JSON for {path}") from exc


def _eq_filters(equals: Dict[str, object]) -> Dict[str, str]:
    return {column: f"eq.{value}" for column, value in equals.items()}


class SupabaseRecordStore(RecordStore):
    """PostgREST-backed tables."""

    store_name = "supabase"

    def __init__(self, client: SupabaseClient) -> None:
        self.client = client

    def _select(self, table: str, params: Dict[str, str]) -> List[Row]:
        rows = self.client.request("GET", f"/rest/v1/{table}", params=params, error=StoreReadFailure)
        return list(rows or [])

    def select_all(self, table: str) -> List[Row]:
        return self._select(table, {"select": "*"})

    def select_where(self, table: str, **equals: object) -> List[Row]:
        return self._select(table, {"select": "*", **_eq_filters(equals)})

    def select_ordered(
        self,
        table: str,
        order_by: str,
        *,
        descending: bool = False,
        columns: Optional[Sequence[str]] = None,
        **equals: object,
    ) -> List[Row]:
        params = {
            "select": ",".join(columns) if columns else "*",
            "order": f"{order_by}.{'desc' if descending else 'asc'}",
            **_eq_filters(equals),
        }
        return self._select(table, params)

    def _single(self, rows: Any, description: str) -> Row:
        if not rows:
            raise StoreWriteFailure(f"{description} returned no row")
        return rows[0] if isinstance(rows, list) else rows

    def insert(self, table: str, row: Row) -> Row:
        rows = self.client.request(
            "POST",
            f"/rest/v1/{table}",
            json_body=row,
            headers={"Prefer": "return=representation"},
            error=StoreWriteFailure,
        )
        return self._single(rows, f"Insert into {table}")

    def update_by_id(self, table: str, record_id: object, changes: Row) -> Row:
        rows = self.client.request(
            "PATCH",
            f"/rest/v1/{table}",
            params=_eq_filters({"id": record_id}),
            json_body=changes,
            headers={"Prefer": "return=representation"},
            error=StoreWriteFailure,
        )
        return self._single(rows, f"Update of {table} {record_id}")

    def apply_payment(
        self,
        payment: Row,
        member_id: object,
        expected_balance: float,
        new_balance: float,
    ) -> Row:
        try:
            rows = self.client.request(
                "POST",
                f"/rest/v1/rpc/{RECORD_PAYMENT_RPC}",
                json_body={
                    "p_member_id": member_id,
                    "p_amount": payment["amount"],
                    "p_paid_at": payment["paid_at"],
                    "p_expected_balance": expected_balance,
                    "p_new_balance": new_balance,
                },
                error=StoreWriteFailure,
            )
        except StoreWriteFailure as exc:
            if "stale_balance" in exc.message:
                raise StaleBalance(
                    f"Balance for member {member_id} changed; reload and retry"
                ) from exc
            raise
        return self._single(rows, f"Payment for {MEMBERS} {member_id}")

    def metadata(self) -> Dict[str, str]:
        return {"store": self.store_name, "url": self.client.base_url}


def _auth_user(payload: Dict[str, Any]) -> AuthUser:
    return AuthUser(id=str(payload.get("id", "")), email=str(payload.get("email", "")))


class SupabaseAuthProvider(AuthProvider):
    """GoTrue authentication endpoints."""

    provider_name = "supabase"

    def __init__(self, client: SupabaseClient, service_key: Optional[str] = None) -> None:
        self.client = client
        self.service_key = service_key

    def get_current_user(self, access_token: Optional[str]) -> Optional[AuthUser]:
        if not access_token:
            return None
        try:
            payload = self.client.request(
                "GET", "/auth/v1/user", bearer=access_token, error=StoreReadFailure
            )
        except StoreReadFailure as exc:
            # Only an explicit rejection means "not signed in"; outages propagate.
            if exc.upstream_status not in REJECTED_TOKEN_STATUSES:
                raise
            LOGGER.debug("Session token rejected by auth service")
            return None
        return _auth_user(payload or {})

    def sign_in(self, email: str, password: str) -> AuthSession:
        payload = self.client.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json_body={"email": email, "password": password},
            error=AuthFailure,
        )
        return AuthSession(user=_auth_user(payload["user"]), access_token=payload["access_token"])

    def create_user(self, email: str, password: str) -> AuthUser:
        if not self.service_key:
            raise AuthFailure("User provisioning requires HOAPORTAL_SUPABASE_SERVICE_KEY")
        payload = self.client.request(
            "POST",
            "/auth/v1/admin/users",
            json_body={"email": email, "password": password, "email_confirm": True},
            bearer=self.service_key,
            headers={"apikey": self.service_key},
            error=AuthFailure,
        )
        return _auth_user(payload or {})

    def sign_out(self, access_token: str) -> None:
        self.client.request("POST", "/auth/v1/logout", bearer=access_token, error=AuthFailure)


def create_supabase_backend(settings: Any) -> Backend:
    """Build the Supabase store and auth provider from settings."""

    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "The supabase backend requires HOAPORTAL_SUPABASE_URL and HOAPORTAL_SUPABASE_KEY."
        )
    client = SupabaseClient(
        settings.supabase_url, settings.supabase_key, timeout=settings.request_timeout
    )
    # Table writes need the service role once row-level security is enabled.
    store_client = (
        SupabaseClient(
            settings.supabase_url,
            settings.supabase_service_key,
            timeout=settings.request_timeout,
            session=client.session,
        )
        if settings.supabase_service_key
        else client
    )
    return Backend(
        store=SupabaseRecordStore(store_client),
        auth=SupabaseAuthProvider(client, service_key=settings.supabase_service_key),
    )


REGISTRY.register("supabase", create_supabase_backend)
