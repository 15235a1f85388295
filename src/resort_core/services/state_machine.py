"""Status state machines for events, bookings and orders.

Each entity has a closed status enum and an explicit transition table keyed
by ``(status, action)``. Any pair missing from the table is rejected with a
TransitionError. The pure functions here never touch storage;
``StatusService`` wraps them with load, compare-and-set persistence,
logging and notification.
"""

import datetime as dt
from decimal import Decimal
from typing import Union

from ..config import get_settings
from ..models import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    Order,
    Reservation,
    ReservationNote,
    TransitionError,
    TransitionEvent,
    parse_entity_id,
)
from ..models.common import to_cents, utc_now
from ..models.enums import (
    BookingStatus,
    EntityType,
    EventStatus,
    OrderStatus,
    TransitionAction,
)
from ..utils.logging import get_logger, log_transition
from .notifications import LoggingNotifier, TransitionNotifier
from .store import ReservationStore

logger = get_logger(__name__)

Status = Union[EventStatus, BookingStatus, OrderStatus]
Entity = Union[Reservation, Order]

_A = TransitionAction

EVENT_TRANSITIONS: dict[tuple[EventStatus, TransitionAction], EventStatus] = {
    (EventStatus.DRAFT, _A.SCHEDULE): EventStatus.SCHEDULED,
    (EventStatus.SCHEDULED, _A.CONFIRM): EventStatus.CONFIRMED,
    (EventStatus.SCHEDULED, _A.START): EventStatus.IN_PROGRESS,
    (EventStatus.CONFIRMED, _A.START): EventStatus.IN_PROGRESS,
    (EventStatus.IN_PROGRESS, _A.COMPLETE): EventStatus.COMPLETED,
    (EventStatus.DRAFT, _A.CANCEL): EventStatus.CANCELLED,
    (EventStatus.SCHEDULED, _A.CANCEL): EventStatus.CANCELLED,
    (EventStatus.CONFIRMED, _A.CANCEL): EventStatus.CANCELLED,
    (EventStatus.IN_PROGRESS, _A.CANCEL): EventStatus.CANCELLED,
}

BOOKING_TRANSITIONS: dict[tuple[BookingStatus, TransitionAction], BookingStatus] = {
    (BookingStatus.PENDING, _A.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.CONFIRMED, _A.CHECK_IN): BookingStatus.CHECKED_IN,
    (BookingStatus.CHECKED_IN, _A.CHECK_OUT): BookingStatus.CHECKED_OUT,
    (BookingStatus.PENDING, _A.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, _A.CANCEL): BookingStatus.CANCELLED,
}

# Linear fulfilment chain followed by ``advance``
ORDER_CHAIN: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
)

ORDER_TRANSITIONS: dict[tuple[OrderStatus, TransitionAction], OrderStatus] = {
    (OrderStatus.PENDING, _A.CONFIRM): OrderStatus.CONFIRMED,
    (OrderStatus.CONFIRMED, _A.PREPARE): OrderStatus.PREPARING,
    (OrderStatus.PREPARING, _A.MARK_READY): OrderStatus.READY,
    (OrderStatus.READY, _A.DELIVER): OrderStatus.DELIVERED,
    (OrderStatus.DELIVERED, _A.COMPLETE): OrderStatus.COMPLETED,
    **{(status, _A.CANCEL): OrderStatus.CANCELLED for status in ORDER_CHAIN[:-1]},
}

TRANSITION_TABLES: dict[EntityType, dict] = {
    EntityType.EVENT: EVENT_TRANSITIONS,
    EntityType.BOOKING: BOOKING_TRANSITIONS,
    EntityType.ORDER: ORDER_TRANSITIONS,
}

CANCELLED_STATUSES = {
    EntityType.EVENT: EventStatus.CANCELLED,
    EntityType.BOOKING: BookingStatus.CANCELLED,
    EntityType.ORDER: OrderStatus.CANCELLED,
}


def next_order_status(status: OrderStatus | str) -> OrderStatus | None:
    """Return the next status in the order chain.

    Returns:
        The following status, or None when the status is terminal or unknown
    """
    try:
        index = ORDER_CHAIN.index(OrderStatus(status))
    except ValueError:
        return None
    if index == len(ORDER_CHAIN) - 1:
        return None
    return ORDER_CHAIN[index + 1]


def resolve_transition(
    entity_type: EntityType,
    status: Status,
    action: TransitionAction | str,
) -> Status:
    """Look up the target status for a (status, action) pair.

    Raises:
        TransitionError: ALREADY_CANCELLED when cancelling a cancelled
            entity, INVALID_STATUS_TRANSITION for any other missing pair
    """
    try:
        action = TransitionAction(action)
    except ValueError:
        raise TransitionError(status.value, str(action)) from None

    if action == TransitionAction.CANCEL and status == CANCELLED_STATUSES[entity_type]:
        raise TransitionError(status.value, action.value, code=ErrorCode.ALREADY_CANCELLED)

    if action == TransitionAction.ADVANCE and entity_type == EntityType.ORDER:
        target = next_order_status(status)
        if target is None:
            raise TransitionError(status.value, action.value)
        return target

    target = TRANSITION_TABLES[entity_type].get((status, action))
    if target is None:
        raise TransitionError(status.value, action.value)
    return target


def _cancellation_note(reason: str | None) -> str | None:
    return f"Cancellation: {reason}" if reason else None


def transition_reservation(
    reservation: Reservation,
    action: TransitionAction | str,
    *,
    reason: str | None = None,
    actor_id: str | None = None,
    actual_occupancy: int | None = None,
    actual_cost: Decimal | None = None,
    now: dt.datetime | None = None,
) -> Reservation:
    """Apply an action to an event or booking and return the new version.

    Args:
        reservation: Current reservation
        action: Action to apply
        reason: Cancellation reason, appended to the notes
        actor_id: Author recorded on the cancellation note
        actual_occupancy: Measured guest count, attached on complete
        actual_cost: Final cost, attached on complete
        now: Timestamp for the change (defaults to the current time)

    Returns:
        A new Reservation in the target status

    Raises:
        TransitionError: If the action is not allowed from the current status
    """
    target = resolve_transition(
        reservation.kind.entity_type, reservation.status, action
    )
    now = now or utc_now()
    update: dict = {"status": target, "updated_at": now}

    if target in (EventStatus.CANCELLED, BookingStatus.CANCELLED):
        note = _cancellation_note(reason)
        if note:
            update["notes"] = reservation.notes + (
                ReservationNote(text=note, created_at=now, author_id=actor_id),
            )
    elif target == EventStatus.COMPLETED:
        update["actual_occupancy"] = (
            actual_occupancy if actual_occupancy is not None else reservation.actual_occupancy
        )
        update["actual_cost"] = (
            to_cents(actual_cost) if actual_cost is not None else reservation.actual_cost
        )

    return reservation.model_copy(update=update)


def transition_order(
    order: Order,
    action: TransitionAction | str,
    *,
    reason: str | None = None,
    now: dt.datetime | None = None,
) -> Order:
    """Apply an action to an order and return the new version.

    Raises:
        TransitionError: If the action is not allowed from the current status
    """
    target = resolve_transition(EntityType.ORDER, order.status, action)
    update: dict = {"status": target, "updated_at": now or utc_now()}
    if target == OrderStatus.CANCELLED:
        note = _cancellation_note(reason)
        if note:
            update["notes"] = order.notes + (note,)
    return order.model_copy(update=update)


def apply_transition(entity: Entity, action: TransitionAction | str, **kwargs) -> Entity:
    """Dispatch to the transition function for the entity's type."""
    if isinstance(entity, Order):
        return transition_order(
            entity, action, reason=kwargs.get("reason"), now=kwargs.get("now")
        )
    return transition_reservation(entity, action, **kwargs)


class StatusService:
    """Loads, transitions, persists and announces status changes."""

    def __init__(
        self,
        store: ReservationStore,
        notifier: TransitionNotifier | None = None,
        max_attempts: int | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Persistence backend
            notifier: Transition event sink (logs only when omitted)
            max_attempts: Reload/retry bound for concurrent transitions
        """
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.max_attempts = max_attempts or get_settings().max_reservation_attempts

    def _load(self, entity_type: EntityType, entity_id: str) -> Entity:
        if entity_type == EntityType.ORDER:
            order = self.store.get_order(entity_id)
            if order is None:
                raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, {"order_id": entity_id})
            return order

        reservation = self.store.get_reservation(entity_id)
        if reservation is None or reservation.kind.entity_type != entity_type:
            raise NotFoundError(
                ErrorCode.RESERVATION_NOT_FOUND,
                {"reservation_id": entity_id, "entity_type": entity_type.value},
            )
        return reservation

    def _persist(self, updated: Entity, expected_version: int) -> bool:
        if isinstance(updated, Order):
            return self.store.update_order(updated, expected_version=expected_version)
        return self.store.update_reservation(updated, expected_version=expected_version)

    def transition(
        self,
        entity_type: EntityType | str,
        entity_id: str,
        action: TransitionAction | str,
        actor_id: str | None = None,
        reason: str | None = None,
        actual_occupancy: int | None = None,
        actual_cost: Decimal | None = None,
    ) -> Entity:
        """Move an entity along its state machine.

        Args:
            entity_type: event, booking or order
            entity_id: Entity to transition
            action: Action to apply
            actor_id: Staff member or customer performing the action
            reason: Cancellation reason
            actual_occupancy: Measured guest count for completed events
            actual_cost: Final cost for completed events

        Returns:
            The persisted entity in its new status

        Raises:
            ValidationError: Malformed entity ID
            NotFoundError: Unknown entity
            TransitionError: Action not allowed from the current status
            ConflictError: CONCURRENT_MODIFICATION if every attempt lost a race
        """
        entity_type = EntityType(entity_type)
        entity_id = parse_entity_id(entity_id, "entity_id")

        for _ in range(self.max_attempts):
            current = self._load(entity_type, entity_id)
            now = utc_now()
            if isinstance(current, Order):
                updated = transition_order(current, action, reason=reason, now=now)
            else:
                updated = transition_reservation(
                    current,
                    action,
                    reason=reason,
                    actor_id=actor_id,
                    actual_occupancy=actual_occupancy,
                    actual_cost=actual_cost,
                    now=now,
                )

            updated = updated.next_version()
            if not self._persist(updated, current.version):
                logger.info(
                    "%s %s changed concurrently, reloading",
                    entity_type.value,
                    entity_id,
                )
                continue

            log_transition(
                logger,
                entity_type.value,
                entity_id,
                current.status.value,
                updated.status.value,
                action=TransitionAction(action).value,
                actor_id=actor_id,
            )
            self._emit(
                TransitionEvent(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    from_status=current.status.value,
                    to_status=updated.status.value,
                    action=TransitionAction(action).value,
                    timestamp=now,
                    actor_id=actor_id,
                )
            )
            return updated

        raise ConflictError(
            ErrorCode.CONCURRENT_MODIFICATION,
            {"entity_type": entity_type.value, "entity_id": entity_id},
        )

    def _emit(self, event: TransitionEvent) -> None:
        """Publish a transition event; delivery failures are only logged."""
        try:
            self.notifier.publish(event)
        except Exception as e:
            logger.warning(
                "Failed to publish transition event for %s %s: %s",
                event.entity_type.value,
                event.entity_id,
                e,
                extra={"entity_id": event.entity_id, "to_status": event.to_status},
            )
