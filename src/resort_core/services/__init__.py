"""Business logic services for the reservation and checkout core."""

from .availability import AvailabilityGuard
from .checkout import CheckoutCalculator, CheckoutService, compute_checkout, compute_coupon_amount
from .dynamodb import DynamoDBService, get_dynamodb_service, reset_dynamodb_service
from .dynamodb_store import DynamoDBStore
from .memory_store import InMemoryStore
from .notifications import (
    EventBridgeNotifier,
    LoggingNotifier,
    NotificationError,
    TransitionNotifier,
)
from .redemption import RedemptionLedger
from .redemption_dynamodb import DynamoDBRedemptionLedger
from .redemption_memory import InMemoryRedemptionLedger
from .state_machine import StatusService, apply_transition, next_order_status
from .store import ReservationStore

__all__ = [
    "AvailabilityGuard",
    "CheckoutCalculator",
    "CheckoutService",
    "compute_checkout",
    "compute_coupon_amount",
    "DynamoDBService",
    "get_dynamodb_service",
    "reset_dynamodb_service",
    "DynamoDBStore",
    "InMemoryStore",
    "EventBridgeNotifier",
    "LoggingNotifier",
    "NotificationError",
    "TransitionNotifier",
    "RedemptionLedger",
    "DynamoDBRedemptionLedger",
    "InMemoryRedemptionLedger",
    "StatusService",
    "apply_transition",
    "next_order_status",
    "ReservationStore",
]
