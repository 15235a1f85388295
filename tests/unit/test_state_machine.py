"""Unit tests for the event, booking and order state machines.

Tests cover:
- Transition tables accept listed pairs and reject everything else
- Cancelling a cancelled entity reports ALREADY_CANCELLED
- Cancellation notes and completion fields
- StatusService persistence, retries and notification
"""

import datetime as dt
from decimal import Decimal
from typing import Callable
from unittest.mock import MagicMock

import pytest

from resort_core.models import (
    BookingStatus,
    ConflictError,
    EntityType,
    ErrorCode,
    EventStatus,
    Interval,
    NotFoundError,
    Order,
    OrderStatus,
    Reservation,
    ReservationKind,
    Resource,
    TransitionAction,
    TransitionError,
    TransitionEvent,
    new_entity_id,
)
from resort_core.services import (
    AvailabilityGuard,
    InMemoryStore,
    StatusService,
    apply_transition,
    next_order_status,
)
from resort_core.services.state_machine import resolve_transition


def _reservation(
    kind: ReservationKind,
    status: EventStatus | BookingStatus,
    interval: Interval,
) -> Reservation:
    now = dt.datetime(2030, 1, 1, tzinfo=dt.UTC)
    return Reservation(
        reservation_id=new_entity_id(),
        resource_id=new_entity_id(),
        kind=kind,
        interval=interval,
        occupancy=10,
        status=status,
        created_at=now,
        updated_at=now,
    )


class TestResolveTransition:
    """Tests for transition table lookups."""

    @pytest.mark.parametrize(
        "status, action, expected",
        [
            (EventStatus.DRAFT, "schedule", EventStatus.SCHEDULED),
            (EventStatus.SCHEDULED, "confirm", EventStatus.CONFIRMED),
            (EventStatus.SCHEDULED, "start", EventStatus.IN_PROGRESS),
            (EventStatus.CONFIRMED, "start", EventStatus.IN_PROGRESS),
            (EventStatus.IN_PROGRESS, "complete", EventStatus.COMPLETED),
            (EventStatus.IN_PROGRESS, "cancel", EventStatus.CANCELLED),
        ],
    )
    def test_event_transitions(
        self, status: EventStatus, action: str, expected: EventStatus
    ) -> None:
        """Should follow the event table."""
        assert resolve_transition(EntityType.EVENT, status, action) == expected

    @pytest.mark.parametrize(
        "status",
        [EventStatus.DRAFT, EventStatus.SCHEDULED, EventStatus.CONFIRMED],
    )
    def test_event_complete_only_from_in_progress(self, status: EventStatus) -> None:
        """Should reject completing an event that has not started."""
        with pytest.raises(TransitionError) as exc_info:
            resolve_transition(EntityType.EVENT, status, TransitionAction.COMPLETE)

        assert exc_info.value.code == ErrorCode.INVALID_STATUS_TRANSITION

    def test_completed_event_cannot_be_cancelled(self) -> None:
        """Should reject cancelling a terminal event."""
        with pytest.raises(TransitionError) as exc_info:
            resolve_transition(EntityType.EVENT, EventStatus.COMPLETED, "cancel")

        assert exc_info.value.code == ErrorCode.INVALID_STATUS_TRANSITION
        assert exc_info.value.from_status == "completed"

    @pytest.mark.parametrize(
        "entity_type, status",
        [
            (EntityType.EVENT, EventStatus.CANCELLED),
            (EntityType.BOOKING, BookingStatus.CANCELLED),
            (EntityType.ORDER, OrderStatus.CANCELLED),
        ],
    )
    def test_cancel_twice_reports_already_cancelled(
        self, entity_type: EntityType, status: str
    ) -> None:
        """Should use ALREADY_CANCELLED rather than a generic transition error."""
        with pytest.raises(TransitionError) as exc_info:
            resolve_transition(entity_type, status, "cancel")

        assert exc_info.value.code == ErrorCode.ALREADY_CANCELLED

    @pytest.mark.parametrize(
        "status, action, expected",
        [
            (BookingStatus.PENDING, "confirm", BookingStatus.CONFIRMED),
            (BookingStatus.CONFIRMED, "check_in", BookingStatus.CHECKED_IN),
            (BookingStatus.CHECKED_IN, "check_out", BookingStatus.CHECKED_OUT),
            (BookingStatus.PENDING, "cancel", BookingStatus.CANCELLED),
            (BookingStatus.CONFIRMED, "cancel", BookingStatus.CANCELLED),
        ],
    )
    def test_booking_transitions(
        self, status: BookingStatus, action: str, expected: BookingStatus
    ) -> None:
        """Should follow the booking table."""
        assert resolve_transition(EntityType.BOOKING, status, action) == expected

    @pytest.mark.parametrize(
        "status, action",
        [
            (BookingStatus.PENDING, "check_in"),
            (BookingStatus.CHECKED_IN, "cancel"),
            (BookingStatus.CHECKED_OUT, "cancel"),
            (BookingStatus.CONFIRMED, "start"),
        ],
    )
    def test_booking_rejections(self, status: BookingStatus, action: str) -> None:
        """Should reject pairs missing from the booking table."""
        with pytest.raises(TransitionError):
            resolve_transition(EntityType.BOOKING, status, action)

    def test_unknown_action(self) -> None:
        """Should treat an unknown action like a missing pair."""
        with pytest.raises(TransitionError) as exc_info:
            resolve_transition(EntityType.ORDER, OrderStatus.PENDING, "teleport")

        assert exc_info.value.code == ErrorCode.INVALID_STATUS_TRANSITION
        assert exc_info.value.action == "teleport"

    def test_order_advance_follows_chain(self) -> None:
        """Should step through the fulfilment chain one status at a time."""
        status = OrderStatus.PENDING
        visited = [status]
        while status != OrderStatus.COMPLETED:
            status = resolve_transition(EntityType.ORDER, status, TransitionAction.ADVANCE)
            visited.append(status)

        assert visited == [
            OrderStatus.PENDING,
            OrderStatus.CONFIRMED,
            OrderStatus.PREPARING,
            OrderStatus.READY,
            OrderStatus.DELIVERED,
            OrderStatus.COMPLETED,
        ]

    def test_order_advance_from_terminal(self) -> None:
        """Should reject advancing a completed order."""
        with pytest.raises(TransitionError):
            resolve_transition(EntityType.ORDER, OrderStatus.COMPLETED, "advance")

    def test_order_cancel_from_any_non_terminal(self) -> None:
        """Should allow cancelling an order until it completes."""
        for status in (OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.DELIVERED):
            assert (
                resolve_transition(EntityType.ORDER, status, "cancel")
                == OrderStatus.CANCELLED
            )
        with pytest.raises(TransitionError):
            resolve_transition(EntityType.ORDER, OrderStatus.COMPLETED, "cancel")


class TestNextOrderStatus:
    """Tests for the order chain helper."""

    def test_next_status(self) -> None:
        assert next_order_status(OrderStatus.READY) == OrderStatus.DELIVERED
        assert next_order_status("pending") == OrderStatus.CONFIRMED

    def test_terminal_and_unknown(self) -> None:
        """Should return None at the end of the chain or for unknown statuses."""
        assert next_order_status(OrderStatus.COMPLETED) is None
        assert next_order_status(OrderStatus.CANCELLED) is None
        assert next_order_status("shipped") is None


class TestApplyTransition:
    """Tests for the pure transition functions."""

    def test_cancel_appends_note(self, make_interval: Callable[..., Interval]) -> None:
        """Should append a cancellation note with the reason and author."""
        event = _reservation(ReservationKind.EVENT, EventStatus.SCHEDULED, make_interval(5, 9, 17))

        cancelled = apply_transition(
            event, TransitionAction.CANCEL, reason="Storm warning", actor_id="staff-7"
        )

        assert cancelled.status == EventStatus.CANCELLED
        assert len(cancelled.notes) == 1
        assert cancelled.notes[0].text == "Cancellation: Storm warning"
        assert cancelled.notes[0].author_id == "staff-7"
        assert event.notes == ()

    def test_cancel_without_reason_adds_no_note(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should leave notes untouched when no reason is given."""
        booking = _reservation(
            ReservationKind.BOOKING, BookingStatus.PENDING, make_interval(5, 9, 17)
        )

        assert apply_transition(booking, "cancel").notes == ()

    def test_complete_attaches_actuals(self, make_interval: Callable[..., Interval]) -> None:
        """Should record actual occupancy and cost when an event completes."""
        event = _reservation(
            ReservationKind.EVENT, EventStatus.IN_PROGRESS, make_interval(5, 9, 17)
        )

        completed = apply_transition(
            event, "complete", actual_occupancy=85, actual_cost=Decimal("1234.567")
        )

        assert completed.status == EventStatus.COMPLETED
        assert completed.actual_occupancy == 85
        assert completed.actual_cost == Decimal("1234.57")

    def test_order_cancel_note(self, sample_order: Order) -> None:
        """Should append the cancellation reason to the order notes."""
        cancelled = apply_transition(sample_order, "cancel", reason="Guest left")

        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.notes == ("Cancellation: Guest left",)

    def test_stamps_updated_at(self, sample_order: Order) -> None:
        now = dt.datetime(2031, 2, 3, tzinfo=dt.UTC)
        assert apply_transition(sample_order, "confirm", now=now).updated_at == now


class TestStatusService:
    """Tests for persisted transitions."""

    @pytest.fixture
    def booking(
        self,
        memory_store: InMemoryStore,
        sample_chalet: Resource,
        make_interval: Callable[..., Interval],
    ) -> Reservation:
        memory_store.save_resource(sample_chalet)
        return AvailabilityGuard(memory_store).create_reservation(
            sample_chalet.resource_id, make_interval(10, 14, 18), 2
        )

    def test_transition_persists_and_notifies(
        self, memory_store: InMemoryStore, booking: Reservation
    ) -> None:
        """Should store the new status and publish one event."""
        notifier = MagicMock()
        service = StatusService(memory_store, notifier=notifier)

        confirmed = service.transition(
            EntityType.BOOKING, booking.reservation_id, "confirm", actor_id="staff-1"
        )

        assert confirmed.status == BookingStatus.CONFIRMED
        assert memory_store.get_reservation(booking.reservation_id).status == (
            BookingStatus.CONFIRMED
        )
        notifier.publish.assert_called_once()
        event = notifier.publish.call_args.args[0]
        assert isinstance(event, TransitionEvent)
        assert event.entity_type == EntityType.BOOKING
        assert event.from_status == "pending"
        assert event.to_status == "confirmed"
        assert event.action == "confirm"
        assert event.actor_id == "staff-1"

    def test_notifier_failure_does_not_fail_transition(
        self, memory_store: InMemoryStore, booking: Reservation
    ) -> None:
        """Should keep the transition when publishing raises."""
        notifier = MagicMock()
        notifier.publish.side_effect = RuntimeError("bus unavailable")
        service = StatusService(memory_store, notifier=notifier)

        cancelled = service.transition("booking", booking.reservation_id, "cancel", reason="Sick")

        assert cancelled.status == BookingStatus.CANCELLED
        stored = memory_store.get_reservation(booking.reservation_id)
        assert stored.notes[0].text == "Cancellation: Sick"

    def test_rejected_transition_changes_nothing(
        self, memory_store: InMemoryStore, booking: Reservation
    ) -> None:
        """Should leave the stored entity alone and publish nothing."""
        notifier = MagicMock()
        service = StatusService(memory_store, notifier=notifier)

        with pytest.raises(TransitionError):
            service.transition("booking", booking.reservation_id, "check_out")

        assert memory_store.get_reservation(booking.reservation_id) == booking
        notifier.publish.assert_not_called()

    def test_wrong_entity_type(self, memory_store: InMemoryStore, booking: Reservation) -> None:
        """Should not find a booking when asked for an event."""
        with pytest.raises(NotFoundError) as exc_info:
            StatusService(memory_store).transition("event", booking.reservation_id, "start")

        assert exc_info.value.code == ErrorCode.RESERVATION_NOT_FOUND

    def test_unknown_order(self, memory_store: InMemoryStore) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            StatusService(memory_store).transition("order", new_entity_id(), "confirm")

        assert exc_info.value.code == ErrorCode.ORDER_NOT_FOUND

    def test_order_transitions(self, memory_store: InMemoryStore, sample_order: Order) -> None:
        """Should advance a stored order along its chain."""
        memory_store.insert_order(sample_order)
        service = StatusService(memory_store)

        service.transition("order", sample_order.order_id, "confirm")
        advanced = service.transition("order", sample_order.order_id, "advance")

        assert advanced.status == OrderStatus.PREPARING
        assert memory_store.get_order(sample_order.order_id).status == OrderStatus.PREPARING

    def test_lost_races_raise_concurrent_modification(
        self, sample_order: Order
    ) -> None:
        """Should reload and retry, then give up with CONCURRENT_MODIFICATION."""

        class StaleStore(InMemoryStore):
            def update_order(self, order, expected_version):
                return False

        store = StaleStore()
        store.insert_order(sample_order)
        notifier = MagicMock()

        with pytest.raises(ConflictError) as exc_info:
            StatusService(store, notifier=notifier, max_attempts=2).transition(
                "order", sample_order.order_id, "confirm"
            )

        assert exc_info.value.code == ErrorCode.CONCURRENT_MODIFICATION
        notifier.publish.assert_not_called()
