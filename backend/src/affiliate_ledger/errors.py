"""Error taxonomy for the referral ledger.

Every business rejection carries a stable ``code`` that the API renders as
``{"error": {"code": ..., "message": ...}}``. Unattributed and duplicate
conversions are outcomes, not errors, so they have no exception class here.
"""

from decimal import Decimal


class LedgerError(Exception):
    """Base class for rejected ledger operations."""

    code = "INTERNAL_ERROR"
    http_status = 500

    def __init__(self, message: str | None = None):
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidInputError(LedgerError):
    """Raised when a request is structurally valid but semantically empty."""

    code = "INVALID_INPUT"
    http_status = 400


class InvalidActionError(LedgerError):
    """Raised for an unknown bulk action."""

    code = "INVALID_ACTION"
    http_status = 400

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Invalid action: {action}")


class LinkNotFoundError(LedgerError):
    """Raised when a link code is unknown or the link is deactivated."""

    code = "LINK_NOT_FOUND"
    http_status = 404

    def __init__(self, link_code: str):
        self.link_code = link_code
        super().__init__(f"Referral link not found: {link_code}")


class CreatorNotFoundError(LedgerError):
    """Raised when a creator id does not exist."""

    code = "CREATOR_NOT_FOUND"
    http_status = 404

    def __init__(self, creator_id: int):
        self.creator_id = creator_id
        super().__init__(f"Creator {creator_id} not found")


class CreatorNotApprovedError(LedgerError):
    """Raised when an operation needs an approved creator."""

    code = "CREATOR_NOT_APPROVED"
    http_status = 400

    def __init__(self, creator_id: int, status: str):
        self.creator_id = creator_id
        self.status = status
        super().__init__(f"Creator {creator_id} is {status}, not approved")


class InvalidStatusTransitionError(LedgerError):
    """Raised when a status change is not an edge of the transition table."""

    code = "INVALID_STATUS_TRANSITION"
    http_status = 409

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class InvalidTransactionTransitionError(InvalidStatusTransitionError):
    """Raised when a commission transaction status change is not allowed."""

    def __init__(self, transaction_id: int, current: str, target: str):
        self.transaction_id = transaction_id
        super().__init__(f"transaction {transaction_id}", current, target)


class InvalidCommissionRateError(LedgerError):
    """Raised when a commission rate is outside [0, 50]."""

    code = "INVALID_COMMISSION_RATE"
    http_status = 400

    def __init__(self, rate: Decimal | float | None):
        self.rate = rate
        super().__init__(f"Commission rate must be between 0 and 50, got {rate}")


class InvalidMinimumPayoutError(LedgerError):
    """Raised when a minimum payout is below the floor."""

    code = "INVALID_MINIMUM_PAYOUT"
    http_status = 400

    def __init__(self, amount: Decimal | float | None):
        self.amount = amount
        super().__init__(f"Minimum payout must be at least 10, got {amount}")


class PayoutNotEligibleError(LedgerError):
    """Raised when a creator's approved balance is below their minimum payout."""

    code = "PAYOUT_NOT_ELIGIBLE"
    http_status = 400

    def __init__(self, creator_id: int, available: Decimal, minimum: Decimal):
        self.creator_id = creator_id
        self.available = available
        self.minimum = minimum
        super().__init__(
            f"Creator {creator_id} not eligible for payout: available {available}, minimum {minimum}"
        )


class PayoutNotFoundError(LedgerError):
    """Raised when a payout id does not exist."""

    code = "PAYOUT_NOT_FOUND"
    http_status = 404

    def __init__(self, payout_id: int):
        self.payout_id = payout_id
        super().__init__(f"Payout {payout_id} not found")


class TransactionNotFoundError(LedgerError):
    """Raised when a commission transaction id does not exist."""

    code = "TRANSACTION_NOT_FOUND"
    http_status = 404

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")
