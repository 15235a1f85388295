"""Unit tests for shared primitives and domain models.

Tests cover:
- parse_entity_id accepts canonical UUIDs and rejects everything else
- Interval half-open overlap and day-bucket padding
- Order.place tax and charge arithmetic
- ResortCoreError categories and ErrorResponse conversion
"""

import datetime as dt
from decimal import Decimal
from typing import Callable

import pytest

from resort_core.models import (
    BookingStatus,
    ConflictError,
    ErrorCategory,
    ErrorCode,
    EventStatus,
    Interval,
    Order,
    OrderType,
    Reservation,
    ReservationKind,
    TransitionError,
    ValidationError,
    new_entity_id,
    parse_entity_id,
    to_cents,
)


class TestParseEntityId:
    """Tests for entity ID validation."""

    def test_accepts_canonical_uuid(self) -> None:
        """Should return the ID unchanged when already canonical."""
        entity_id = new_entity_id()
        assert parse_entity_id(entity_id) == entity_id

    def test_lowercases_uppercase_uuid(self) -> None:
        """Should normalize an uppercase UUID to lowercase."""
        entity_id = new_entity_id()
        assert parse_entity_id(entity_id.upper()) == entity_id

    @pytest.mark.parametrize(
        "value",
        ["", "not-a-uuid", "12345678123456781234567812345678", None, 42],
    )
    def test_rejects_malformed_values(self, value: object) -> None:
        """Should raise INVALID_ID for anything that is not an 8-4-4-4-12 string."""
        with pytest.raises(ValidationError) as exc_info:
            parse_entity_id(value, "resource_id")

        assert exc_info.value.code == ErrorCode.INVALID_ID
        assert exc_info.value.details == {"field": "resource_id"}


class TestInterval:
    """Tests for half-open intervals."""

    def test_overlapping_intervals(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should overlap when the ranges share any instant."""
        assert make_interval(10, 9, 12).overlaps(make_interval(10, 11, 14))

    def test_back_to_back_intervals_do_not_overlap(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should not overlap when one ends exactly where the other starts."""
        first = make_interval(10, 9, 12)
        second = make_interval(10, 12, 15)

        assert not first.overlaps(second)
        assert not second.overlaps(first)

    def test_contained_interval_overlaps(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should overlap when one interval contains the other."""
        assert make_interval(10, 8, 20).overlaps(make_interval(10, 10, 11))

    def test_validate_order_rejects_inverted_interval(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should raise INVALID_INTERVAL when end is not after start."""
        with pytest.raises(ValidationError) as exc_info:
            make_interval(10, 12, 9).validate_order()

        assert exc_info.value.code == ErrorCode.INVALID_INTERVAL

    def test_validate_order_rejects_empty_interval(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should raise INVALID_INTERVAL when end equals start."""
        with pytest.raises(ValidationError):
            make_interval(10, 12, 12).validate_order()

    def test_naive_datetimes_are_treated_as_utc(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should attach UTC to naive datetimes."""
        interval = Interval(
            start=dt.datetime(2030, 7, 10, 9),
            end=dt.datetime(2030, 7, 10, 12),
        )
        assert interval.start.tzinfo == dt.UTC
        assert interval == make_interval(10, 9, 12)

    def test_day_bucket_window_pads_one_day_each_side(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should cover whole UTC days from the day before to the day after."""
        window = make_interval(10, 22, 23).day_bucket_window()

        assert window.start == dt.datetime(2030, 7, 9, tzinfo=dt.UTC)
        assert window.end == dt.datetime(2030, 7, 12, tzinfo=dt.UTC)


class TestReservationModel:
    """Tests for the reservation model."""

    def test_status_must_match_kind(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should reject an event status on a booking."""
        now = dt.datetime.now(dt.UTC)
        with pytest.raises(ValueError):
            Reservation(
                reservation_id=new_entity_id(),
                resource_id=new_entity_id(),
                kind=ReservationKind.BOOKING,
                interval=make_interval(10, 9, 12),
                occupancy=2,
                status=EventStatus.SCHEDULED,
                created_at=now,
                updated_at=now,
            )

    def test_terminal_reservation_does_not_conflict(
        self, make_interval: Callable[..., Interval]
    ) -> None:
        """Should free the slot once a reservation is cancelled."""
        now = dt.datetime.now(dt.UTC)
        reservation = Reservation(
            reservation_id=new_entity_id(),
            resource_id=new_entity_id(),
            kind=ReservationKind.BOOKING,
            interval=make_interval(10, 9, 12),
            occupancy=2,
            status=BookingStatus.CANCELLED,
            created_at=now,
            updated_at=now,
        )
        assert reservation.is_terminal
        assert not reservation.conflicts_with(make_interval(10, 10, 11))


class TestOrderPlace:
    """Tests for order total computation."""

    def test_dine_in_order_carries_service_charge(self) -> None:
        """Should add 11% tax and a 10% service charge."""
        order = Order.place(Decimal("100.00"))

        assert order.tax_amount == Decimal("11.00")
        assert order.service_charge == Decimal("10.00")
        assert order.total_amount == Decimal("121.00")
        assert order.amount_due is None

    def test_delivery_order_carries_delivery_fee(self) -> None:
        """Should add the flat delivery fee instead of a service charge."""
        order = Order.place(Decimal("40.00"), order_type=OrderType.DELIVERY)

        assert order.tax_amount == Decimal("4.40")
        assert order.service_charge == Decimal("5.00")
        assert order.total_amount == Decimal("49.40")

    def test_takeaway_order_has_no_charges(self) -> None:
        """Should only add tax for takeaway orders."""
        order = Order.place(Decimal("19.99"), order_type=OrderType.TAKEAWAY)

        assert order.tax_amount == Decimal("2.20")
        assert order.total_amount == Decimal("22.19")

    def test_to_cents_rounds_half_up(self) -> None:
        """Should round half a cent upward."""
        assert to_cents(Decimal("1.005")) == Decimal("1.01")
        assert to_cents(Decimal("1.004")) == Decimal("1.00")


class TestErrors:
    """Tests for the error hierarchy."""

    def test_error_carries_category_and_message(self) -> None:
        """Should derive category and message from the code."""
        error = ConflictError(ErrorCode.EXCEEDS_CAPACITY, {"occupancy": 5, "capacity": 4})

        assert error.category == ErrorCategory.CONFLICT
        assert error.details == {"occupancy": "5", "capacity": "4"}
        assert str(error).startswith("EXCEEDS_CAPACITY:")

    def test_to_response(self) -> None:
        """Should convert to an ErrorResponse payload."""
        response = ValidationError(ErrorCode.INVALID_OCCUPANCY).to_response()

        assert response.success is False
        assert response.error_code == ErrorCode.INVALID_OCCUPANCY
        assert response.category == ErrorCategory.VALIDATION
        assert response.details is None

    def test_instrument_codes_default_to_instrument_category(self) -> None:
        """Should classify redemption failures as instrument errors."""
        response = ValidationError(ErrorCode.GIFT_CARD_EXPIRED).to_response()
        assert response.category == ErrorCategory.INSTRUMENT

    def test_transition_error_is_a_conflict(self) -> None:
        """Should be catchable as a ConflictError."""
        error = TransitionError("completed", "cancel")

        assert isinstance(error, ConflictError)
        assert error.code == ErrorCode.INVALID_STATUS_TRANSITION
        assert error.details == {"from": "completed", "action": "cancel"}
