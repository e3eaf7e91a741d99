"""
Marketplace error taxonomy

Every failure a booking, payment or payout operation can report is one of
the classes below. Each carries a ``kind`` (the broad category callers branch
on), a ``code`` (the specific variant) and the HTTP status the API renders it
with, so neither routes nor tests depend on message text.
"""

from typing import Optional

# Error kinds
AUTHORIZATION = "authorization"
NOT_FOUND = "not_found"
PRECONDITION = "precondition"
VALIDATION = "validation"
EXTERNAL_SERVICE = "external_service"
CONFIGURATION = "configuration"
RECONCILIATION = "reconciliation"


class MarketplaceError(Exception):
    """Base class for all tagged marketplace errors"""

    kind = PRECONDITION
    code = "error"
    status_code = 400

    def __init__(self, message: str, code: Optional[str] = None, **details):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        """Uniform error envelope returned to API callers"""
        return {
            "success": False,
            "error": self.message,
            "kind": self.kind,
            "code": self.code,
            **self.details,
        }


class Unauthorized(MarketplaceError):
    """Caller is not the resource owner or lacks the required role"""

    kind = AUTHORIZATION
    code = "unauthorized"
    status_code = 403


class NotFound(MarketplaceError):
    kind = NOT_FOUND
    code = "not_found"
    status_code = 404


class PreconditionFailed(MarketplaceError):
    """The resource is not in a state that allows the operation"""

    kind = PRECONDITION
    code = "precondition_failed"
    status_code = 409


class HasActiveBookings(PreconditionFailed):
    code = "has_active_bookings"


class ValidationFailed(MarketplaceError):
    kind = VALIDATION
    code = "validation_failed"
    status_code = 400


class AmountMismatch(ValidationFailed):
    code = "amount_mismatch"


class ReferenceMismatch(ValidationFailed):
    code = "reference_mismatch"


class NotSuccessful(ValidationFailed):
    code = "not_successful"


class InvalidBankCode(ValidationFailed):
    code = "invalid_bank_code"


class UnsupportedBankCode(ValidationFailed):
    code = "unsupported_bank_code"


class AccountNameMismatch(ValidationFailed):
    code = "account_name_mismatch"


class GatewayError(MarketplaceError):
    """The payment gateway rejected the call; its message is passed through"""

    kind = EXTERNAL_SERVICE
    code = "gateway_error"
    status_code = 502


class GatewayNotConfigured(MarketplaceError):
    kind = CONFIGURATION
    code = "gateway_not_configured"
    status_code = 503


class ReconciliationRequired(MarketplaceError):
    """
    Money already moved at the gateway but the ledger could not record it.

    Carries the external reference. Callers must not retry the money movement;
    the record has to be fixed by hand (see mark_booking_as_paid).
    """

    kind = RECONCILIATION
    code = "reconciliation_required"
    status_code = 500
