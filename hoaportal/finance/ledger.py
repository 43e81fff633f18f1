"""Mini README: Dues ledger primitives and payment reconciliation.

Structure:
    * FEE_FIELDS - store column names of the editable monthly fee fields.
    * Member - snapshot of a household record with fees and running balance.
    * Payment - immutable record of money received from a member.
    * monthly_total - derived sum of a member's four fee fields.
    * record_payment - reconcile a payment against a member snapshot.
    * coerce_fee_value - validate fee edits before they are written back.

Everything here is pure. Functions compute new values from snapshots and
never talk to a store; persisting the results is the job of the portal
service and the configured backend.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple, Union

from ..errors import InvalidAmount, InvalidFeeValue
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

MemberId = Union[int, str]

# Store column -> Member attribute.
FEE_FIELDS: Dict[str, str] = {
    "waterBill": "water_bill",
    "securityFee": "security_fee",
    "operations": "operations",
    "extraFees": "extra_fees",
}


def _number(value: object, default: float = 0.0) -> float:
    """Coerce optional numeric store values into floats."""

    if value is None or value == "":
        return default
    return float(value)


@dataclass(slots=True, frozen=True)
class Member:
    """Represent one household with its fee schedule and balance."""

    id: MemberId
    name: str
    water_bill: float = 0.0
    security_fee: float = 0.0
    operations: float = 0.0
    extra_fees: Optional[float] = None
    balance: float = 0.0
    email: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, object]) -> "Member":
        """Build a member from a ``members`` table row."""

        extra_fees = row.get("extraFees")
        return cls(
            id=row["id"],  # type: ignore[arg-type]
            name=str(row.get("name") or ""),
            water_bill=_number(row.get("waterBill")),
            security_fee=_number(row.get("securityFee")),
            operations=_number(row.get("operations")),
            extra_fees=None if extra_fees is None else _number(extra_fees),
            balance=_number(row.get("balance")),
            email=row.get("email"),  # type: ignore[arg-type]
        )

    def as_row(self) -> Dict[str, object]:
        """Export the member using store column names."""

        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "waterBill": self.water_bill,
            "securityFee": self.security_fee,
            "operations": self.operations,
            "extraFees": self.extra_fees,
            "balance": self.balance,
        }


@dataclass(slots=True, frozen=True)
class Payment:
    """Money received from a member, written once and never edited."""

    member_id: MemberId
    amount: float
    paid_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, object], *, member_id: Optional[MemberId] = None) -> "Payment":
        """Build a payment from a ``payments`` row.

        History queries only select ``amount`` and ``paid_at`` so callers may
        supply the member identifier they filtered on.
        """

        resolved_member = row.get("member_id", member_id)
        return cls(
            member_id=resolved_member,  # type: ignore[arg-type]
            amount=_number(row.get("amount")),
            paid_at=_parse_timestamp(row.get("paid_at")),
        )

    def as_row(self) -> Dict[str, object]:
        """Export the payment with serialisable values."""

        return {
            "member_id": self.member_id,
            "amount": self.amount,
            "paid_at": self.paid_at.isoformat(),
        }


def _parse_timestamp(value: object) -> datetime:
    """Parse ISO formatted strings or datetime objects into aware datetimes."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        # Older interpreters reject the trailing "Z" PostgREST emits.
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError("Timestamps must be provided as ISO strings or datetime instances.")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def monthly_total(member: Member) -> float:
    """Sum the monthly fee fields, treating missing extra fees as zero."""

    return member.water_bill + member.security_fee + member.operations + (member.extra_fees or 0)


def validate_amount(amount: object) -> float:
    """Return ``amount`` as a float or raise ``InvalidAmount``."""

    if isinstance(amount, bool):
        raise InvalidAmount(f"Payment amount must be a number, got {amount!r}")
    try:
        value = float(amount)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        raise InvalidAmount(f"Payment amount must be a number, got {amount!r}") from error
    if not math.isfinite(value) or value <= 0:
        raise InvalidAmount(f"Payment amount must be greater than zero, got {amount!r}")
    return value


def record_payment(
    member: Member,
    amount: object,
    *,
    paid_at: Optional[datetime] = None,
) -> Tuple[float, Payment]:
    """Reconcile a payment against a member snapshot.

    Returns the balance after the payment and the payment record to persist.
    Balances have no floor: overpayment leaves the member in credit, which is
    represented by a negative balance.
    """

    value = validate_amount(amount)
    updated_balance = member.balance - value
    payment = Payment(
        member_id=member.id,
        amount=value,
        paid_at=paid_at or datetime.now(timezone.utc),
    )
    LOGGER.debug(
        "Reconciled payment of %.2f for member %s: %.2f -> %.2f",
        value,
        member.id,
        member.balance,
        updated_balance,
    )
    return updated_balance, payment


def resolve_fee_field(field_name: str) -> str:
    """Map a fee field given as store column or attribute name to its column."""

    if field_name in FEE_FIELDS:
        return field_name
    for column, attribute in FEE_FIELDS.items():
        if field_name == attribute:
            return column
    raise InvalidFeeValue(
        f"Field '{field_name}' is not editable; choose one of {', '.join(FEE_FIELDS)}."
    )


def coerce_fee_value(field_name: str, value: object) -> Tuple[str, float]:
    """Validate a fee edit and return ``(column, numeric value)``.

    No bounds are enforced; any finite number is written back as-is.
    """

    column = resolve_fee_field(field_name)
    if isinstance(value, str):
        value = value.strip() or 0
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as error:
        raise InvalidFeeValue(f"Value for '{column}' must be numeric, got {value!r}") from error
    if not math.isfinite(number):
        raise InvalidFeeValue(f"Value for '{column}' must be finite, got {value!r}")
    return column, number
