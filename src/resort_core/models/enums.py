"""Enumeration types for resort_core data models."""

from enum import Enum


class ResourceKind(str, Enum):
    """Kind of bookable resource."""

    VENUE = "venue"
    CHALET = "chalet"


class ResourceStatus(str, Enum):
    """Offerable status of a resource. Only AVAILABLE accepts reservations."""

    AVAILABLE = "available"
    MAINTENANCE = "maintenance"
    RESERVED = "reserved"
    CLOSED = "closed"


class EntityType(str, Enum):
    """Entities governed by a status state machine."""

    EVENT = "event"
    BOOKING = "booking"
    ORDER = "order"


class ReservationKind(str, Enum):
    """A reservation is either a venue event or a chalet booking."""

    EVENT = "event"
    BOOKING = "booking"

    @property
    def entity_type(self) -> EntityType:
        return EntityType(self.value)


class EventStatus(str, Enum):
    """Lifecycle of a venue event."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatus(str, Enum):
    """Lifecycle of a chalet booking."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"


class OrderStatus(str, Enum):
    """Lifecycle of an order."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status for an order."""

    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class TransitionAction(str, Enum):
    """Actions accepted by the state machines."""

    SCHEDULE = "schedule"
    CONFIRM = "confirm"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    PREPARE = "prepare"
    MARK_READY = "mark_ready"
    DELIVER = "deliver"
    ADVANCE = "advance"


class OrderType(str, Enum):
    """How an order is served."""

    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"
    ROOM_SERVICE = "room_service"


class InstrumentKind(str, Enum):
    """Discount-bearing instrument types."""

    COUPON = "coupon"
    LOYALTY = "loyalty"
    GIFT_CARD = "gift_card"


class DiscountType(str, Enum):
    """How a coupon value is interpreted."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"


class GiftCardStatus(str, Enum):
    """Status of a gift card."""

    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"


class RecordType(str, Enum):
    """Redemption ledger entry type."""

    REDEMPTION = "redemption"
    REVERSAL = "reversal"


class PartialApplicationPolicy(str, Enum):
    """What checkout does after one instrument fails to redeem.

    CONTINUE skips the failed instrument and keeps going.
    ABORT stops redeeming further instruments. Neither rolls back
    instruments that were already committed.
    """

    CONTINUE = "continue"
    ABORT = "abort"
