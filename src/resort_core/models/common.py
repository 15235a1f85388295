"""Shared primitives: identifiers, money rounding, time and intervals."""

import datetime as dt
import re
import uuid
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, field_validator

from .errors import ErrorCode, ValidationError

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def new_entity_id() -> str:
    """Generate a new random entity ID in canonical form."""
    return str(uuid.uuid4())


def parse_entity_id(value: object, field: str = "id") -> str:
    """Validate an entity ID and return its canonical lowercase form.

    Args:
        value: Candidate ID
        field: Field name reported in the error details

    Returns:
        Canonical 8-4-4-4-12 lowercase UUID string

    Raises:
        ValidationError: If the value is not a canonical UUID string
    """
    if not isinstance(value, str) or not UUID_PATTERN.match(value):
        raise ValidationError(ErrorCode.INVALID_ID, {"field": field})
    return value.lower()


def to_cents(amount: Decimal) -> Decimal:
    """Round a monetary amount half-up to cents."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def ensure_utc(value: dt.datetime) -> dt.datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


class Interval(BaseModel):
    """Half-open time range [start, end).

    An interval whose end is not after its start can be constructed so that
    callers get a domain ValidationError from the guard rather than a model
    error; use ``validate_order`` before relying on it.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    start: dt.datetime
    end: dt.datetime

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: dt.datetime) -> dt.datetime:
        return ensure_utc(value)

    def validate_order(self) -> "Interval":
        """Return self, or raise INVALID_INTERVAL if end <= start."""
        if self.end <= self.start:
            raise ValidationError(
                ErrorCode.INVALID_INTERVAL,
                {"start": self.start.isoformat(), "end": self.end.isoformat()},
            )
        return self

    def overlaps(self, other: "Interval") -> bool:
        """Strict half-open overlap; touching intervals do not overlap."""
        return self.start < other.end and self.end > other.start

    def day_bucket_window(self) -> "Interval":
        """Whole UTC days covering this interval, padded by one day each side."""
        first_day = dt.datetime.combine(
            self.start.date() - dt.timedelta(days=1), dt.time.min, tzinfo=dt.UTC
        )
        after_last_day = dt.datetime.combine(
            self.end.date() + dt.timedelta(days=2), dt.time.min, tzinfo=dt.UTC
        )
        return Interval(start=first_day, end=after_last_day)
