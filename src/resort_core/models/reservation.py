"""Reservation model: a venue event or a chalet booking."""

import datetime as dt
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import Interval
from .enums import BookingStatus, EventStatus, ReservationKind

STATUS_TYPES: dict[ReservationKind, type[EventStatus] | type[BookingStatus]] = {
    ReservationKind.EVENT: EventStatus,
    ReservationKind.BOOKING: BookingStatus,
}

INITIAL_STATUS: dict[ReservationKind, EventStatus | BookingStatus] = {
    ReservationKind.EVENT: EventStatus.SCHEDULED,
    ReservationKind.BOOKING: BookingStatus.PENDING,
}

TERMINAL_STATUSES: frozenset[EventStatus | BookingStatus] = frozenset(
    {
        EventStatus.COMPLETED,
        EventStatus.CANCELLED,
        BookingStatus.CHECKED_OUT,
        BookingStatus.CANCELLED,
    }
)


class ReservationNote(BaseModel):
    """One entry of a reservation's append-only annotation log."""

    model_config = ConfigDict(strict=True, frozen=True)

    text: str
    created_at: dt.datetime
    author_id: str | None = None


class Reservation(BaseModel):
    """A time-bounded claim against a resource.

    ``version`` increases with every stored change; updates are
    compare-and-set on it so a write built from a stale read is rejected.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    reservation_id: str
    resource_id: str
    kind: ReservationKind
    interval: Interval
    occupancy: int = Field(..., ge=1)
    status: EventStatus | BookingStatus
    notes: tuple[ReservationNote, ...] = ()
    actual_occupancy: int | None = Field(default=None, ge=0)
    actual_cost: Decimal | None = Field(default=None, ge=0)
    version: int = Field(default=0, ge=0)
    created_at: dt.datetime
    updated_at: dt.datetime

    @model_validator(mode="after")
    def _status_matches_kind(self) -> Self:
        if not isinstance(self.status, STATUS_TYPES[self.kind]):
            raise ValueError(f"status {self.status.value!r} is not a {self.kind.value} status")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def next_version(self) -> "Reservation":
        """Copy of this reservation ready to be stored over the current one."""
        return self.model_copy(update={"version": self.version + 1})

    def conflicts_with(self, interval: Interval) -> bool:
        """True if this reservation still holds the resource during interval."""
        return not self.is_terminal and self.interval.overlaps(interval)
