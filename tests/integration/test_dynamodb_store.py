"""Integration tests for the DynamoDB-backed store (mocked with moto).

Tests cover:
- Round trips of resources, reservations and orders through DynamoDB items
- Version compare-and-set on reservation inserts
- Window queries over the resource_id-start_at GSI
- The availability guard, state machine and checkout running on DynamoDB
"""

import datetime as dt
from decimal import Decimal
from typing import Callable

import pytest

from resort_core.models import (
    BookingStatus,
    CheckoutSelection,
    ConflictError,
    ErrorCode,
    EventStatus,
    GiftCard,
    Interval,
    Order,
    OrderStatus,
    PaymentStatus,
    ReservationKind,
    Resource,
    ResourceStatus,
)
from resort_core.services import (
    AvailabilityGuard,
    CheckoutService,
    DynamoDBRedemptionLedger,
    DynamoDBStore,
    StatusService,
)


class TestResourceItems:
    """Tests for resource persistence."""

    def test_round_trip(self, dynamodb_store: DynamoDBStore, sample_chalet: Resource) -> None:
        dynamodb_store.save_resource(sample_chalet)

        assert dynamodb_store.get_resource(sample_chalet.resource_id) == sample_chalet

    def test_missing_resource(self, dynamodb_store: DynamoDBStore) -> None:
        assert dynamodb_store.get_resource("00000000-0000-0000-0000-000000000000") is None

    def test_update_requires_expected_version(
        self, dynamodb_store: DynamoDBStore, sample_chalet: Resource
    ) -> None:
        """Should refuse an update based on a stale version."""
        dynamodb_store.save_resource(sample_chalet)
        closed = sample_chalet.model_copy(
            update={"status": ResourceStatus.CLOSED, "version": 1}
        )

        assert not dynamodb_store.update_resource(closed, expected_version=7)
        assert dynamodb_store.update_resource(closed, expected_version=0)
        assert dynamodb_store.get_resource(sample_chalet.resource_id).status == (
            ResourceStatus.CLOSED
        )


class TestReservationItems:
    """Tests for reservation persistence and queries."""

    @pytest.fixture
    def guard(
        self, dynamodb_store: DynamoDBStore, sample_chalet: Resource
    ) -> AvailabilityGuard:
        dynamodb_store.save_resource(sample_chalet)
        return AvailabilityGuard(dynamodb_store)

    def test_created_reservation_round_trips(
        self,
        guard: AvailabilityGuard,
        dynamodb_store: DynamoDBStore,
        sample_chalet: Resource,
        make_interval: Callable[..., Interval],
    ) -> None:
        reservation = guard.create_reservation(
            sample_chalet.resource_id, make_interval(10, 14, 18), 3
        )

        stored = dynamodb_store.get_reservation(reservation.reservation_id)

        assert stored is not None
        assert stored.interval == reservation.interval
        assert stored.status == BookingStatus.PENDING
        assert stored.occupancy == 3
        assert dynamodb_store.get_resource(sample_chalet.resource_id).version == 1

    def test_stale_version_insert_fails(
        self,
        guard: AvailabilityGuard,
        dynamodb_store: DynamoDBStore,
        sample_chalet: Resource,
        make_interval: Callable[..., Interval],
    ) -> None:
        """Should write nothing when the resource version moved on."""
        first = guard.create_reservation(
            sample_chalet.resource_id, make_interval(10, 14, 18), 2
        )
        # Simulate a writer that read the resource before the first insert
        late = first.model_copy(
            update={
                "reservation_id": "11111111-1111-1111-1111-111111111111",
                "interval": make_interval(12, 14, 18),
            }
        )

        assert not dynamodb_store.insert_reservation(late, resource_version=0)
        assert dynamodb_store.get_reservation(late.reservation_id) is None

    def test_window_query(
        self,
        guard: AvailabilityGuard,
        dynamodb_store: DynamoDBStore,
        sample_chalet: Resource,
        make_interval: Callable[..., Interval],
    ) -> None:
        """Should return only reservations overlapping the window."""
        early = guard.create_reservation(sample_chalet.resource_id, make_interval(10, 8, 10), 1)
        mid = guard.create_reservation(sample_chalet.resource_id, make_interval(10, 12, 14), 1)
        guard.create_reservation(sample_chalet.resource_id, make_interval(11, 12, 14), 1)

        found = dynamodb_store.list_reservations_in_window(
            sample_chalet.resource_id, make_interval(10, 9, 13)
        )

        assert {r.reservation_id for r in found} == {early.reservation_id, mid.reservation_id}

    def test_overlap_rejected(
        self,
        guard: AvailabilityGuard,
        sample_chalet: Resource,
        make_interval: Callable[..., Interval],
    ) -> None:
        guard.create_reservation(sample_chalet.resource_id, make_interval(10, 14, 18), 2)

        with pytest.raises(ConflictError) as exc_info:
            guard.create_reservation(sample_chalet.resource_id, make_interval(10, 16, 20), 2)

        assert exc_info.value.code == ErrorCode.RESOURCE_UNAVAILABLE
        assert guard.is_available(sample_chalet.resource_id, make_interval(10, 18, 20))

    def test_event_lifecycle(
        self,
        dynamodb_store: DynamoDBStore,
        sample_venue: Resource,
        make_interval: Callable[..., Interval],
    ) -> None:
        """Should persist notes and actuals through the event lifecycle."""
        dynamodb_store.save_resource(sample_venue)
        event = AvailabilityGuard(dynamodb_store).create_reservation(
            sample_venue.resource_id,
            make_interval(20, 17, 23),
            100,
            kind=ReservationKind.EVENT,
        )
        service = StatusService(dynamodb_store)

        service.transition("event", event.reservation_id, "start")
        service.transition(
            "event",
            event.reservation_id,
            "complete",
            actual_occupancy=92,
            actual_cost=Decimal("4200.50"),
        )

        stored = dynamodb_store.get_reservation(event.reservation_id)
        assert stored.status == EventStatus.COMPLETED
        assert stored.actual_occupancy == 92
        assert stored.actual_cost == Decimal("4200.50")

    def test_cancellation_note_round_trips(
        self,
        guard: AvailabilityGuard,
        dynamodb_store: DynamoDBStore,
        sample_chalet: Resource,
        make_interval: Callable[..., Interval],
    ) -> None:
        booking = guard.create_reservation(
            sample_chalet.resource_id, make_interval(10, 14, 18), 2
        )

        StatusService(dynamodb_store).transition(
            "booking", booking.reservation_id, "cancel", actor_id="staff-2", reason="Flight cancelled"
        )

        stored = dynamodb_store.get_reservation(booking.reservation_id)
        assert stored.status == BookingStatus.CANCELLED
        assert stored.notes[0].text == "Cancellation: Flight cancelled"
        assert stored.notes[0].author_id == "staff-2"

    def test_reservation_update_requires_version(
        self,
        guard: AvailabilityGuard,
        dynamodb_store: DynamoDBStore,
        sample_chalet: Resource,
        make_interval: Callable[..., Interval],
    ) -> None:
        """Should refuse a reservation update based on a stale version."""
        booking = guard.create_reservation(
            sample_chalet.resource_id, make_interval(10, 14, 18), 2
        )
        confirmed = booking.model_copy(
            update={"status": BookingStatus.CONFIRMED, "version": 1}
        )

        assert not dynamodb_store.update_reservation(confirmed, expected_version=3)
        assert dynamodb_store.update_reservation(confirmed, expected_version=0)
        assert not dynamodb_store.update_reservation(confirmed, expected_version=0)
        assert dynamodb_store.get_reservation(booking.reservation_id).version == 1

    def test_archive(
        self,
        guard: AvailabilityGuard,
        dynamodb_store: DynamoDBStore,
        sample_chalet: Resource,
        make_interval: Callable[..., Interval],
    ) -> None:
        """Should refuse while booked, then archive once the booking is cancelled."""
        booking = guard.create_reservation(
            sample_chalet.resource_id, make_interval(10, 14, 18), 2
        )
        now = dt.datetime(2030, 7, 1, tzinfo=dt.UTC)

        with pytest.raises(ConflictError):
            guard.archive_resource(sample_chalet.resource_id, now=now)

        StatusService(dynamodb_store).transition("booking", booking.reservation_id, "cancel")
        archived = guard.archive_resource(sample_chalet.resource_id, now=now)

        stored = dynamodb_store.get_resource(sample_chalet.resource_id)
        assert stored == archived
        assert stored.archived_at == now


class TestOrderItems:
    """Tests for order persistence and checkout on DynamoDB."""

    def test_round_trip(self, dynamodb_store: DynamoDBStore, sample_order: Order) -> None:
        assert dynamodb_store.insert_order(sample_order)

        assert dynamodb_store.get_order(sample_order.order_id) == sample_order

    def test_insert_twice(self, dynamodb_store: DynamoDBStore, sample_order: Order) -> None:
        dynamodb_store.insert_order(sample_order)

        assert not dynamodb_store.insert_order(sample_order)

    def test_checkout_flow(
        self,
        dynamodb_store: DynamoDBStore,
        dynamodb_ledger: DynamoDBRedemptionLedger,
        sample_order: Order,
        sample_coupon,
        sample_loyalty_account,
        sample_gift_card: GiftCard,
    ) -> None:
        """Should stack every instrument and then pay the rest by a second card."""
        dynamodb_store.insert_order(sample_order)
        dynamodb_ledger.save_coupon(sample_coupon)
        dynamodb_ledger.save_loyalty_account(sample_loyalty_account)
        dynamodb_ledger.save_gift_card(sample_gift_card)
        dynamodb_ledger.save_gift_card(GiftCard(code="GIFT-100", balance=Decimal("100.00")))
        service = CheckoutService(
            dynamodb_store, dynamodb_ledger, StatusService(dynamodb_store)
        )

        partial = service.commit_checkout(
            sample_order.order_id,
            CheckoutSelection(
                coupon_code="SAVE10", loyalty_points=100, gift_card_codes=("GIFT-50",)
            ),
        )
        assert partial.order.amount_due == Decimal("49.90")
        assert partial.order.payment_status == PaymentStatus.PENDING

        paid = service.commit_checkout(
            sample_order.order_id,
            CheckoutSelection(
                coupon_code="SAVE10",
                loyalty_points=100,
                gift_card_codes=("GIFT-50", "GIFT-100"),
            ),
        )

        assert paid.order.amount_due == Decimal("0.00")
        assert paid.order.payment_status == PaymentStatus.PAID
        assert paid.order.status == OrderStatus.CONFIRMED
        assert dynamodb_ledger.get_gift_card("GIFT-100").balance == Decimal("50.10")
        assert dynamodb_ledger.get_coupon("SAVE10").usage_count == 1
        assert dynamodb_ledger.get_loyalty_account("guest-123").points_balance == 400
        stored = dynamodb_store.get_order(sample_order.order_id)
        assert stored.status == OrderStatus.CONFIRMED
        assert stored.gift_card_amount == Decimal("99.90")
