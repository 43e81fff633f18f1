"""Mini README: Abstract interfaces for the hosted backend collaborators.

Structure:
    * AuthUser / AuthSession - identities returned by the auth service.
    * AuthProvider - sign-in, session lookup and account provisioning.
    * RecordStore - table-style access to members, payments and admins.

Concrete backends subclass these and register a factory with
``backend.registry.REGISTRY``. Implementations must translate client
errors into ``StoreReadFailure``/``StoreWriteFailure``/``AuthFailure`` so
callers never see transport-specific exceptions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

MEMBERS = "members"
PAYMENTS = "payments"
ADMINS = "admins"

Row = Dict[str, object]


@dataclass(slots=True, frozen=True)
class AuthUser:
    """Identity returned by the auth service."""

    id: str
    email: str


@dataclass(slots=True, frozen=True)
class AuthSession:
    """Signed-in user together with the bearer token for later calls."""

    user: AuthUser
    access_token: str


class AuthProvider(ABC):
    """Base interface for authentication services."""

    provider_name: str = "generic"

    @abstractmethod
    def get_current_user(self, access_token: Optional[str]) -> Optional[AuthUser]:
        """Return the user owning ``access_token`` or ``None`` when unknown."""

    @abstractmethod
    def sign_in(self, email: str, password: str) -> AuthSession:
        """Authenticate with email and password, raising ``AuthFailure``."""

    @abstractmethod
    def create_user(self, email: str, password: str) -> AuthUser:
        """Provision a confirmed account, raising ``AuthFailure`` on rejection."""

    def sign_out(self, access_token: str) -> None:
        """Optional hook to revoke a session token."""

        LOGGER.debug("Sign-out is a no-op for provider %s", self.provider_name)


class RecordStore(ABC):
    """Base interface for table-style record storage."""

    store_name: str = "generic"

    @abstractmethod
    def select_all(self, table: str) -> List[Row]:
        """Return every row of ``table`` in store order."""

    @abstractmethod
    def select_where(self, table: str, **equals: object) -> List[Row]:
        """Return rows whose columns equal every given value."""

    @abstractmethod
    def select_ordered(
        self,
        table: str,
        order_by: str,
        *,
        descending: bool = False,
        columns: Optional[Sequence[str]] = None,
        **equals: object,
    ) -> List[Row]:
        """Return filtered rows sorted on ``order_by`` with optional projection."""

    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """Insert ``row`` and return it as stored."""

    @abstractmethod
    def update_by_id(self, table: str, record_id: object, changes: Row) -> Row:
        """Apply ``changes`` to the row with ``id == record_id``."""

    @abstractmethod
    def apply_payment(
        self,
        payment: Row,
        member_id: object,
        expected_balance: float,
        new_balance: float,
    ) -> Row:
        """Insert ``payment`` and set the member balance as one atomic write.

        ``expected_balance`` is the balance the caller reconciled against.
        Stores that can compare it with the stored value raise
        ``StaleBalance`` instead of overwriting a concurrent update. Returns
        the updated member row.
        """

    def metadata(self) -> Dict[str, str]:
        """Return diagnostic metadata for health endpoints."""

        return {"store": self.store_name}
