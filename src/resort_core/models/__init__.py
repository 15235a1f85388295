"""Pydantic models for resort_core data entities."""

from .checkout import (
    CheckoutPreview,
    CheckoutResult,
    CheckoutSelection,
    CouponRequest,
    GiftCardRequest,
    InstrumentLine,
    InstrumentRequest,
    LoyaltyRequest,
    TransitionEvent,
)
from .common import Interval, new_entity_id, parse_entity_id, to_cents
from .enums import (
    BookingStatus,
    DiscountType,
    EntityType,
    EventStatus,
    GiftCardStatus,
    InstrumentKind,
    OrderStatus,
    OrderType,
    PartialApplicationPolicy,
    PaymentStatus,
    RecordType,
    ReservationKind,
    ResourceKind,
    ResourceStatus,
    TransitionAction,
)
from .errors import (
    ConflictError,
    ErrorCategory,
    ErrorCode,
    ErrorResponse,
    InstrumentError,
    NotFoundError,
    ResortCoreError,
    TransitionError,
    ValidationError,
)
from .instruments import (
    Coupon,
    CouponApplication,
    GiftCard,
    GiftCardRedemption,
    LoyaltyAccount,
    LoyaltyRedemption,
    RedemptionRecord,
)
from .order import Order
from .reservation import Reservation, ReservationNote
from .resource import Resource

__all__ = [
    # Enums
    "BookingStatus",
    "DiscountType",
    "EntityType",
    "EventStatus",
    "GiftCardStatus",
    "InstrumentKind",
    "OrderStatus",
    "OrderType",
    "PartialApplicationPolicy",
    "PaymentStatus",
    "RecordType",
    "ReservationKind",
    "ResourceKind",
    "ResourceStatus",
    "TransitionAction",
    # Errors
    "ConflictError",
    "ErrorCategory",
    "ErrorCode",
    "ErrorResponse",
    "InstrumentError",
    "NotFoundError",
    "ResortCoreError",
    "TransitionError",
    "ValidationError",
    # Common
    "Interval",
    "new_entity_id",
    "parse_entity_id",
    "to_cents",
    # Entities
    "Order",
    "Reservation",
    "ReservationNote",
    "Resource",
    # Instruments
    "Coupon",
    "CouponApplication",
    "GiftCard",
    "GiftCardRedemption",
    "LoyaltyAccount",
    "LoyaltyRedemption",
    "RedemptionRecord",
    # Checkout
    "CheckoutPreview",
    "CheckoutResult",
    "CheckoutSelection",
    "CouponRequest",
    "GiftCardRequest",
    "InstrumentLine",
    "InstrumentRequest",
    "LoyaltyRequest",
    "TransitionEvent",
]
