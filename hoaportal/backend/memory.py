"""Mini README: In-process backend used for demos, the CLI and tests.

Structure:
    * InMemoryRecordStore - thread-safe tables with integer identifiers.
    * InMemoryAuthProvider - bcrypt password hashes and opaque tokens.
    * create_memory_backend - registry factory seeding demo households.

The store mirrors the hosted backend's behaviour closely enough for the
portal service: equality filters, ordered projections, inserts and updates
by id. ``apply_payment`` runs under the store lock and refuses to overwrite
a balance that moved since the caller's snapshot.
"""

from __future__ import annotations

import copy
import secrets
import threading
import uuid
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type

import bcrypt

from .base import ADMINS, MEMBERS, PAYMENTS, AuthProvider, AuthSession, AuthUser, RecordStore, Row
from .registry import REGISTRY, Backend
from ..errors import AuthFailure, PortalError, StaleBalance, StoreReadFailure, StoreWriteFailure
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

BALANCE_TOLERANCE = 1e-9


def _matches(row: Row, equals: Mapping[str, object]) -> bool:
    """Compare filters loosely so path parameters match integer identifiers."""

    for column, expected in equals.items():
        actual = row.get(column)
        if actual != expected and str(actual) != str(expected):
            return False
    return True


class InMemoryRecordStore(RecordStore):
    """Dictionary-backed tables guarded by a single lock."""

    store_name = "memory"

    def __init__(self, tables: Optional[Mapping[str, Iterable[Row]]] = None) -> None:
        self._lock = threading.RLock()
        self._tables: Dict[str, List[Row]] = {MEMBERS: [], PAYMENTS: [], ADMINS: []}
        self._sequences: Dict[str, int] = {}
        for table, rows in (tables or {}).items():
            for row in rows:
                self.insert(table, row)
        LOGGER.debug(
            "Memory store initialised with %s members", len(self._tables[MEMBERS])
        )

    def _table(self, table: str, error: Type[PortalError] = StoreReadFailure) -> List[Row]:
        try:
            return self._tables[table]
        except KeyError as exc:
            raise error(f"Unknown table '{table}'") from exc

    def _next_id(self, table: str) -> int:
        rows = self._tables[table]
        current = self._sequences.get(table, 0)
        existing = [row["id"] for row in rows if isinstance(row.get("id"), int)]
        self._sequences[table] = max([current, *existing]) + 1
        return self._sequences[table]

    def _find(self, table: str, record_id: object) -> Optional[Row]:
        for row in self._table(table):
            if _matches(row, {"id": record_id}):
                return row
        return None

    def select_all(self, table: str) -> List[Row]:
        with self._lock:
            return copy.deepcopy(self._table(table))

    def select_where(self, table: str, **equals: object) -> List[Row]:
        with self._lock:
            return [copy.deepcopy(row) for row in self._table(table) if _matches(row, equals)]

    def select_ordered(
        self,
        table: str,
        order_by: str,
        *,
        descending: bool = False,
        columns: Optional[Sequence[str]] = None,
        **equals: object,
    ) -> List[Row]:
        rows = self.select_where(table, **equals)
        try:
            rows.sort(key=lambda row: row.get(order_by), reverse=descending)
        except TypeError as error:
            raise StoreReadFailure(f"Cannot order '{table}' by '{order_by}'") from error
        if columns:
            rows = [{column: row.get(column) for column in columns} for row in rows]
        return rows

    def insert(self, table: str, row: Row) -> Row:
        with self._lock:
            rows = self._table(table, StoreWriteFailure)
            stored = dict(row)
            if "id" not in stored and table != ADMINS:
                stored["id"] = self._next_id(table)
            rows.append(stored)
            LOGGER.debug("Inserted row into %s: %s", table, stored.get("id", stored))
            return copy.deepcopy(stored)

    def update_by_id(self, table: str, record_id: object, changes: Row) -> Row:
        with self._lock:
            row = self._find(table, record_id)
            if row is None:
                raise StoreWriteFailure(f"No row {record_id} in '{table}' to update")
            row.update({key: value for key, value in changes.items() if key != "id"})
            return copy.deepcopy(row)

    def apply_payment(
        self,
        payment: Row,
        member_id: object,
        expected_balance: float,
        new_balance: float,
    ) -> Row:
        with self._lock:
            member = self._find(MEMBERS, member_id)
            if member is None:
                raise StoreWriteFailure(f"No member {member_id} to apply payment to")
            stored_balance = float(member.get("balance") or 0)
            if abs(stored_balance - expected_balance) > BALANCE_TOLERANCE:
                raise StaleBalance(
                    f"Balance for member {member_id} changed from {expected_balance} "
                    f"to {stored_balance}; reload and retry"
                )
            self.insert(PAYMENTS, payment)
            member["balance"] = new_balance
            return copy.deepcopy(member)


def _hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


class InMemoryAuthProvider(AuthProvider):
    """Email/password accounts and bearer tokens kept in process memory."""

    provider_name = "memory"

    def __init__(self, accounts: Optional[Iterable[Tuple[str, str]]] = None) -> None:
        self._lock = threading.Lock()
        self._accounts: Dict[str, Tuple[AuthUser, str]] = {}
        self._sessions: Dict[str, AuthUser] = {}
        for email, password in accounts or ():
            self.create_user(email, password)

    @staticmethod
    def _normalise(email: str) -> str:
        return email.strip().lower()

    def get_current_user(self, access_token: Optional[str]) -> Optional[AuthUser]:
        if not access_token:
            return None
        with self._lock:
            return self._sessions.get(access_token)

    def sign_in(self, email: str, password: str) -> AuthSession:
        key = self._normalise(email)
        with self._lock:
            account = self._accounts.get(key)
            if account is None or not _verify_password(password, account[1]):
                raise AuthFailure("Invalid login credentials")
            token = secrets.token_urlsafe(32)
            self._sessions[token] = account[0]
        LOGGER.info("User %s signed in", key)
        return AuthSession(user=account[0], access_token=token)

    def create_user(self, email: str, password: str) -> AuthUser:
        key = self._normalise(email)
        if "@" not in key:
            raise AuthFailure(f"Unable to validate email address: {email}")
        if len(password) < 6:
            raise AuthFailure("Password should be at least 6 characters")
        with self._lock:
            if key in self._accounts:
                raise AuthFailure("A user with this email address has already been registered")
            user = AuthUser(id=str(uuid.uuid4()), email=key)
            self._accounts[key] = (user, _hash_password(password))
        LOGGER.info("Created account for %s", key)
        return user

    def sign_out(self, access_token: str) -> None:
        with self._lock:
            self._sessions.pop(access_token, None)


def create_memory_backend(settings: object = None) -> Backend:
    """Return a memory backend seeded with deterministic demo households."""

    store = InMemoryRecordStore(
        tables={
            MEMBERS: [
                {
                    "name": "Unit 1 - Alvarez",
                    "email": "admin@example.org",
                    "waterBill": 80.0,
                    "securityFee": 40.0,
                    "operations": 30.0,
                    "extraFees": 10.0,
                    "balance": 200.0,
                },
                {
                    "name": "Unit 2 - Chen",
                    "email": "member@example.org",
                    "waterBill": 100.0,
                    "securityFee": 50.0,
                    "operations": 25.0,
                    "extraFees": None,
                    "balance": 175.0,
                },
            ],
            ADMINS: [{"email": "admin@example.org"}],
        }
    )
    auth = InMemoryAuthProvider(
        accounts=[("admin@example.org", "changeme"), ("member@example.org", "changeme")]
    )
    return Backend(store=store, auth=auth)


REGISTRY.register("memory", create_memory_backend)
