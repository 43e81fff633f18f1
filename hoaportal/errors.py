"""Mini README: Error types shared by the ledger, backends and interfaces.

Structure:
    * PortalError - base class carrying a machine code and HTTP status.
    * Validation errors - InvalidAmount, InvalidFeeValue, InvalidRole.
    * Access errors - Unauthorized, AuthFailure.
    * Record errors - MemberNotFound, StaleBalance.
    * Store errors - StoreReadFailure, StoreWriteFailure.
    * error_response - serialise an error for JSON responses.

Validation errors are raised before any store call is issued. Store errors
wrap whatever the backend client raised and always reach the caller.
"""

from __future__ import annotations

from typing import Any, Dict


class PortalError(Exception):
    """Base application error."""

    code = "portal_error"
    http_status = 400
    upstream_status: int | None = None

    def __init__(self, message: str, *, code: str | None = None, http_status: int | None = None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        super().__init__(message)


class InvalidAmount(PortalError):
    """Payment amount is not a strictly positive number."""

    code = "invalid_amount"


class InvalidFeeValue(PortalError):
    """Fee field name or value cannot be applied to a member."""

    code = "invalid_fee_value"


class InvalidRole(PortalError):
    """Requested account role is neither member nor admin."""

    code = "invalid_role"


class Unauthorized(PortalError):
    """Caller lacks admin capability for a mutating operation."""

    code = "unauthorized"
    http_status = 403

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message)


class AuthFailure(PortalError):
    """Credentials or session token were rejected."""

    code = "auth_failure"
    http_status = 401


class MemberNotFound(PortalError):
    """No member exists for the requested identifier."""

    code = "member_not_found"
    http_status = 404

    def __init__(self, member_id: object):
        self.member_id = member_id
        super().__init__(f"Member {member_id} not found")


class StaleBalance(PortalError):
    """Stored balance changed since the caller read its snapshot."""

    code = "stale_balance"
    http_status = 409


class StoreReadFailure(PortalError):
    """A query against the record store failed."""

    code = "store_read_failure"
    http_status = 502


class StoreWriteFailure(PortalError):
    """An insert or update against the record store failed."""

    code = "store_write_failure"
    http_status = 502


def error_response(error: PortalError) -> Dict[str, Any]:
    """Create a standardized error payload."""

    return {
        "error": {
            "code": error.code,
            "message": error.message,
        }
    }
