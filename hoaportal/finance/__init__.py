"""Mini README: Dues ledger utilities for the HOA portal.

This package holds the member and payment snapshots plus the pure
reconciliation helpers. Nothing here performs I/O, so the functions can be
called directly by the portal service, the CLI or tests.
"""

from .ledger import (
    FEE_FIELDS,
    Member,
    Payment,
    coerce_fee_value,
    monthly_total,
    record_payment,
    resolve_fee_field,
    validate_amount,
)

__all__ = [
    "FEE_FIELDS",
    "Member",
    "Payment",
    "coerce_fee_value",
    "monthly_total",
    "record_payment",
    "resolve_fee_field",
    "validate_amount",
]
