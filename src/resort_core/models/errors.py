"""Standard error codes for the reservation and checkout core.

Every failure carries a machine-readable ErrorCode. The code determines the
category (validation, conflict, not found, instrument), which in turn decides
how the error propagates: validation, not-found and conflict errors fail the
whole call, instrument errors are reported per instrument during checkout.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCategory(str, Enum):
    """Error families."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    INSTRUMENT = "instrument"


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    # Validation (caller-correctable, raised before touching the store)
    INVALID_ID = "INVALID_ID"
    INVALID_INTERVAL = "INVALID_INTERVAL"
    INVALID_CAPACITY = "INVALID_CAPACITY"
    INVALID_OCCUPANCY = "INVALID_OCCUPANCY"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_INSTRUMENTS = "INVALID_INSTRUMENTS"

    # Conflict (business-rule violations)
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"
    EXCEEDS_CAPACITY = "EXCEEDS_CAPACITY"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    RESOURCE_HAS_ACTIVE_RESERVATIONS = "RESOURCE_HAS_ACTIVE_RESERVATIONS"
    RESERVATION_FINALIZED = "RESERVATION_FINALIZED"
    ORDER_NOT_PAYABLE = "ORDER_NOT_PAYABLE"
    RESERVATION_EXISTS = "RESERVATION_EXISTS"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Not found
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESERVATION_NOT_FOUND = "RESERVATION_NOT_FOUND"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"

    # Instrument (per-instrument during checkout)
    INSUFFICIENT_GIFT_CARD_BALANCE = "INSUFFICIENT_GIFT_CARD_BALANCE"
    INSUFFICIENT_LOYALTY_POINTS = "INSUFFICIENT_LOYALTY_POINTS"
    COUPON_ALREADY_USED = "COUPON_ALREADY_USED"
    COUPON_EXPIRED = "COUPON_EXPIRED"
    COUPON_NOT_FOUND = "COUPON_NOT_FOUND"
    COUPON_INACTIVE = "COUPON_INACTIVE"
    COUPON_NOT_STARTED = "COUPON_NOT_STARTED"
    COUPON_DEPLETED = "COUPON_DEPLETED"
    COUPON_MIN_ORDER_NOT_MET = "COUPON_MIN_ORDER_NOT_MET"
    COUPON_SCOPE_MISMATCH = "COUPON_SCOPE_MISMATCH"
    GIFT_CARD_NOT_FOUND = "GIFT_CARD_NOT_FOUND"
    GIFT_CARD_INACTIVE = "GIFT_CARD_INACTIVE"
    GIFT_CARD_EXPIRED = "GIFT_CARD_EXPIRED"
    LOYALTY_ACCOUNT_NOT_FOUND = "LOYALTY_ACCOUNT_NOT_FOUND"
    REDEMPTION_NOT_FOUND = "REDEMPTION_NOT_FOUND"
    REDEMPTION_CONTENDED = "REDEMPTION_CONTENDED"
    REDEMPTION_REVERSED = "REDEMPTION_REVERSED"


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    # Validation
    ErrorCode.INVALID_ID: "Identifier is not a valid UUID",
    ErrorCode.INVALID_INTERVAL: "Interval end must be after its start",
    ErrorCode.INVALID_CAPACITY: "Capacity must be a positive whole number",
    ErrorCode.INVALID_OCCUPANCY: "Occupancy must be a positive whole number",
    ErrorCode.INVALID_AMOUNT: "Amount must be positive",
    ErrorCode.INVALID_INSTRUMENTS: "Requested discount instruments are not valid",
    # Conflict
    ErrorCode.RESOURCE_UNAVAILABLE: "The resource is not available for the requested interval",
    ErrorCode.EXCEEDS_CAPACITY: "Occupancy exceeds the resource capacity",
    ErrorCode.INVALID_STATUS_TRANSITION: "This action is not allowed in the current status",
    ErrorCode.ALREADY_CANCELLED: "This entity is already cancelled",
    ErrorCode.RESOURCE_HAS_ACTIVE_RESERVATIONS: "The resource still has active reservations",
    ErrorCode.RESERVATION_FINALIZED: "Completed or cancelled reservations cannot be changed",
    ErrorCode.ORDER_NOT_PAYABLE: "The order is not in a payable state",
    ErrorCode.RESERVATION_EXISTS: "A reservation with this ID already exists",
    ErrorCode.CONCURRENT_MODIFICATION: "The entity was modified concurrently, please retry",
    # Not found
    ErrorCode.RESOURCE_NOT_FOUND: "Resource not found",
    ErrorCode.RESERVATION_NOT_FOUND: "Reservation not found",
    ErrorCode.ORDER_NOT_FOUND: "Order not found",
    # Instrument
    ErrorCode.INSUFFICIENT_GIFT_CARD_BALANCE: "The gift card has no remaining balance",
    ErrorCode.INSUFFICIENT_LOYALTY_POINTS: "Not enough loyalty points",
    ErrorCode.COUPON_ALREADY_USED: "You have already used this coupon the maximum number of times",
    ErrorCode.COUPON_EXPIRED: "This coupon has expired",
    ErrorCode.COUPON_NOT_FOUND: "Coupon not found",
    ErrorCode.COUPON_INACTIVE: "This coupon is no longer active",
    ErrorCode.COUPON_NOT_STARTED: "This coupon is not yet valid",
    ErrorCode.COUPON_DEPLETED: "This coupon has reached its usage limit",
    ErrorCode.COUPON_MIN_ORDER_NOT_MET: "The order does not meet the coupon minimum amount",
    ErrorCode.COUPON_SCOPE_MISMATCH: "This coupon is not applicable to this order",
    ErrorCode.GIFT_CARD_NOT_FOUND: "Gift card not found",
    ErrorCode.GIFT_CARD_INACTIVE: "The gift card is not active",
    ErrorCode.GIFT_CARD_EXPIRED: "The gift card has expired",
    ErrorCode.LOYALTY_ACCOUNT_NOT_FOUND: "Loyalty account not found",
    ErrorCode.REDEMPTION_NOT_FOUND: "No redemption exists for this order and instrument",
    ErrorCode.REDEMPTION_CONTENDED: "The instrument is being redeemed concurrently, please retry",
    ErrorCode.REDEMPTION_REVERSED: "This redemption was reversed and cannot be applied again",
}

ERROR_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.INVALID_ID: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_INTERVAL: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_CAPACITY: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_OCCUPANCY: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_AMOUNT: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_INSTRUMENTS: ErrorCategory.VALIDATION,
    ErrorCode.RESOURCE_UNAVAILABLE: ErrorCategory.CONFLICT,
    ErrorCode.EXCEEDS_CAPACITY: ErrorCategory.CONFLICT,
    ErrorCode.INVALID_STATUS_TRANSITION: ErrorCategory.CONFLICT,
    ErrorCode.ALREADY_CANCELLED: ErrorCategory.CONFLICT,
    ErrorCode.RESOURCE_HAS_ACTIVE_RESERVATIONS: ErrorCategory.CONFLICT,
    ErrorCode.RESERVATION_FINALIZED: ErrorCategory.CONFLICT,
    ErrorCode.ORDER_NOT_PAYABLE: ErrorCategory.CONFLICT,
    ErrorCode.CONCURRENT_MODIFICATION: ErrorCategory.CONFLICT,
    ErrorCode.RESERVATION_EXISTS: ErrorCategory.CONFLICT,
    ErrorCode.RESOURCE_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.RESERVATION_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.ORDER_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.REDEMPTION_NOT_FOUND: ErrorCategory.NOT_FOUND,
}


def category_for(code: ErrorCode) -> ErrorCategory:
    """Return the category of an error code (instrument unless listed)."""
    return ERROR_CATEGORIES.get(code, ErrorCategory.INSTRUMENT)


class ErrorResponse(BaseModel):
    """Standard error payload handed to callers (controllers, previews).

    Mirrors the structure every consumer of the core expects so a failure
    can be rendered without knowing which component raised it.
    """

    model_config = ConfigDict(strict=True)

    success: bool = False
    error_code: ErrorCode
    category: ErrorCategory
    message: str
    details: Optional[dict[str, str]] = None

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        details: Optional[dict[str, str]] = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from an error code.

        Args:
            code: The error code
            details: Optional additional context about the error

        Returns:
            An ErrorResponse with the message and category for the code.
        """
        return cls(
            error_code=code,
            category=category_for(code),
            message=ERROR_MESSAGES[code],
            details=details,
        )


class ResortCoreError(Exception):
    """Base exception raised by core operations.

    Can be caught and converted to an ErrorResponse for callers.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.category = category_for(code)
        self.message = ERROR_MESSAGES[code]
        self.details = {k: str(v) for k, v in (details or {}).items()}
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_response(self) -> ErrorResponse:
        """Convert this exception to an ErrorResponse."""
        return ErrorResponse.from_code(self.code, self.details or None)


class ValidationError(ResortCoreError):
    """Malformed input rejected before any store access."""


class ConflictError(ResortCoreError):
    """Business-rule violation that aborts the whole operation."""


class NotFoundError(ResortCoreError):
    """Unknown resource, reservation or order."""


class InstrumentError(ResortCoreError):
    """A single discount instrument could not be redeemed."""


class TransitionError(ConflictError):
    """A (status, action) pair absent from the transition table."""

    def __init__(
        self,
        from_status: str,
        action: str,
        code: ErrorCode = ErrorCode.INVALID_STATUS_TRANSITION,
    ):
        self.from_status = from_status
        self.action = action
        super().__init__(code, {"from": from_status, "action": action})
