"""Mini README: Portal operations invoked by the web interface and CLI.

Structure:
    * PortalContext - explicit per-request identity and admin capability.
    * PaymentReceipt - outcome of a reconciled payment.
    * PortalService - sign-in, member queries, fee edits, payments,
      exports, account provisioning and the financial summary.

Every mutating operation passes through ``require_admin`` first, then
validates its input, and only then touches the store. Store errors are
never caught here; they reach the caller carrying their own status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ..backend import ADMINS, MEMBERS, PAYMENTS, AuthProvider, AuthUser, RecordStore
from ..errors import AuthFailure, InvalidRole, MemberNotFound, Unauthorized
from ..export import MemberWorkbookExporter, export_members
from ..finance import Member, Payment, coerce_fee_value, monthly_total, record_payment, validate_amount
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

ROLES = ("member", "admin")


@dataclass(slots=True, frozen=True)
class PortalContext:
    """Who is calling and whether they may change records."""

    user: AuthUser
    is_admin: bool = False
    access_token: Optional[str] = None

    @classmethod
    def operator(cls, label: str = "cli") -> "PortalContext":
        """Context for trusted local tooling that holds the service key."""

        return cls(user=AuthUser(id=label, email=f"{label}@localhost"), is_admin=True)


@dataclass(slots=True, frozen=True)
class PaymentReceipt:
    """Result of recording a payment."""

    member: Member
    payment: Payment
    previous_balance: float

    def as_dict(self) -> Dict[str, object]:
        return {
            "member_id": self.member.id,
            "previous_balance": self.previous_balance,
            "balance": self.member.balance,
            "payment": self.payment.as_row(),
        }


class PortalService:
    """Coordinate the ledger, exporter and backend for portal users."""

    def __init__(
        self,
        store: RecordStore,
        auth: AuthProvider,
        exporter: Optional[MemberWorkbookExporter] = None,
    ) -> None:
        self.store = store
        self.auth = auth
        self.exporter = exporter or MemberWorkbookExporter()

    # Sessions -----------------------------------------------------------

    def is_admin(self, email: str) -> bool:
        """Return ``True`` when ``email`` appears in the admins collection."""

        return bool(self.store.select_where(ADMINS, email=email))

    def context_for(self, user: AuthUser, access_token: Optional[str] = None) -> PortalContext:
        return PortalContext(user=user, is_admin=self.is_admin(user.email), access_token=access_token)

    def sign_in(self, email: str, password: str) -> PortalContext:
        """Authenticate and return the caller's context."""

        try:
            session = self.auth.sign_in(email, password)
        except AuthFailure as exc:
            LOGGER.warning("Login failed for %s: %s", email, exc.message)
            raise AuthFailure(f"Login failed: {exc.message}") from exc
        context = self.context_for(session.user, session.access_token)
        LOGGER.info("Signed in %s (admin=%s)", session.user.email, context.is_admin)
        return context

    def resolve_context(self, access_token: Optional[str]) -> PortalContext:
        """Rebuild the caller's context from a bearer token."""

        user = self.auth.get_current_user(access_token)
        if user is None:
            raise AuthFailure("Not signed in")
        return self.context_for(user, access_token)

    def sign_out(self, context: PortalContext) -> None:
        """End the caller's session with the auth service."""

        if context.access_token:
            self.auth.sign_out(context.access_token)
        LOGGER.info("Signed out %s", context.user.email)

    def require_admin(self, context: PortalContext, action: str) -> None:
        """Single authorization guard for every mutating operation."""

        if not context.is_admin:
            LOGGER.warning("Denied %s for non-admin %s", action, context.user.email)
            raise Unauthorized(f"Admin access required to {action}")

    # Queries ------------------------------------------------------------

    def list_members(self, context: PortalContext) -> List[Member]:
        """Return all members in store order."""

        members = [Member.from_row(row) for row in self.store.select_all(MEMBERS)]
        LOGGER.debug("Listed %s members for %s", len(members), context.user.email)
        return members

    @staticmethod
    def default_member(members: Sequence[Member]) -> Optional[Member]:
        """Member selected when the portal first loads."""

        return members[0] if members else None

    def get_member(self, member_id: object) -> Member:
        rows = self.store.select_where(MEMBERS, id=member_id)
        if not rows:
            raise MemberNotFound(member_id)
        return Member.from_row(rows[0])

    def payment_history(self, context: PortalContext, member_id: object) -> List[Payment]:
        """Return the member's payments, newest first."""

        member = self.get_member(member_id)
        rows = self.store.select_ordered(
            PAYMENTS,
            "paid_at",
            descending=True,
            columns=("amount", "paid_at"),
            member_id=member.id,
        )
        return [Payment.from_row(row, member_id=member.id) for row in rows]

    def financial_summary(self, context: PortalContext) -> Dict[str, Any]:
        """Aggregate balances and dues across all members."""

        members = self.list_members(context)
        if not members:
            return {
                "member_count": 0,
                "total_balance": 0.0,
                "total_outstanding": 0.0,
                "total_credit": 0.0,
                "total_monthly_dues": 0.0,
                "members_owing": 0,
                "members_in_credit": 0,
            }
        owing = [member for member in members if member.balance > 0]
        in_credit = [member for member in members if member.balance < 0]
        return {
            "member_count": len(members),
            "total_balance": sum(member.balance for member in members),
            "total_outstanding": sum(member.balance for member in owing),
            "total_credit": -sum(member.balance for member in in_credit),
            "total_monthly_dues": sum(monthly_total(member) for member in members),
            "members_owing": len(owing),
            "members_in_credit": len(in_credit),
        }

    # Mutations ----------------------------------------------------------

    def update_fee(self, context: PortalContext, member_id: object, field_name: str, value: object) -> Member:
        """Write a coerced fee value back to the member record."""

        self.require_admin(context, "edit fees")
        column, number = coerce_fee_value(field_name, value)
        member = self.get_member(member_id)
        row = self.store.update_by_id(MEMBERS, member.id, {column: number})
        LOGGER.info(
            "%s set %s=%.2f for member %s", context.user.email, column, number, member.id
        )
        return Member.from_row(row)

    def add_payment(self, context: PortalContext, member_id: object, amount: object) -> PaymentReceipt:
        """Record a payment and lower the member's balance in one store write."""

        self.require_admin(context, "record payments")
        value = validate_amount(amount)
        member = self.get_member(member_id)
        new_balance, payment = record_payment(member, value)
        row = self.store.apply_payment(payment.as_row(), member.id, member.balance, new_balance)
        updated = Member.from_row(row)
        LOGGER.info(
            "%s recorded payment of %.2f for member %s; balance %.2f -> %.2f",
            context.user.email,
            payment.amount,
            member.id,
            member.balance,
            updated.balance,
        )
        return PaymentReceipt(member=updated, payment=payment, previous_balance=member.balance)

    def export_rows(self, context: PortalContext) -> List[Dict[str, object]]:
        self.require_admin(context, "export members")
        return export_members(self.list_members(context))

    def export_workbook(self, context: PortalContext) -> bytes:
        """Return the members workbook as ``.xlsx`` bytes."""

        rows = self.export_rows(context)
        LOGGER.info("%s exported %s members", context.user.email, len(rows))
        return self.exporter.to_bytes(rows)

    def create_user(
        self,
        context: PortalContext,
        email: str,
        password: str,
        name: str,
        role: str = "member",
    ) -> Member:
        """Provision an account, its member row and optionally admin rights."""

        self.require_admin(context, "create users")
        normalised_role = role.strip().lower()
        if normalised_role not in ROLES:
            raise InvalidRole(f"Role must be one of {', '.join(ROLES)}, got {role!r}")
        try:
            user = self.auth.create_user(email, password)
        except AuthFailure as exc:
            raise AuthFailure(f"Error creating user: {exc.message}") from exc
        row = self.store.insert(MEMBERS, {"email": user.email or email, "name": name, "balance": 0})
        if normalised_role == "admin":
            self.store.insert(ADMINS, {"email": user.email or email})
        LOGGER.info("%s created %s account for %s", context.user.email, normalised_role, email)
        return Member.from_row(row)
