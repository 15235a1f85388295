"""Discount instruments, redemption ledger records and gateway results."""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .common import ZERO
from .enums import DiscountType, GiftCardStatus, InstrumentKind, RecordType
from .errors import ERROR_MESSAGES, ErrorCode

ALL_SCOPES = "all"


class Coupon(BaseModel):
    """A discount code with usage accounting."""

    model_config = ConfigDict(strict=True, frozen=True)

    code: str = Field(..., min_length=1)
    discount_type: DiscountType
    value: Decimal = Field(..., ge=0, description="Fixed amount or percentage")
    usage_scope: str = ALL_SCOPES
    max_discount_amount: Decimal | None = Field(default=None, ge=0)
    min_order_amount: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, ge=0)
    usage_count: int = Field(default=0, ge=0)
    per_user_limit: int | None = Field(default=None, ge=1)
    starts_at: dt.datetime | None = None
    ends_at: dt.datetime | None = None
    is_active: bool = True

    @property
    def is_depleted(self) -> bool:
        return self.usage_limit is not None and self.usage_count >= self.usage_limit

    def applies_to(self, scope: str) -> bool:
        return self.usage_scope == ALL_SCOPES or self.usage_scope == scope


class LoyaltyAccount(BaseModel):
    """A user's loyalty points balance."""

    model_config = ConfigDict(strict=True, frozen=True)

    user_id: str
    points_balance: int = Field(..., ge=0)
    point_value: Decimal = Field(..., gt=0, description="Dollar value of one point")


class GiftCard(BaseModel):
    """Stored-value card; the balance never goes negative."""

    model_config = ConfigDict(strict=True, frozen=True)

    code: str = Field(..., min_length=1)
    balance: Decimal = Field(..., ge=0)
    status: GiftCardStatus = GiftCardStatus.ACTIVE
    expires_at: dt.datetime | None = None


class RedemptionRecord(BaseModel):
    """Append-only ledger entry for one instrument applied to one order."""

    model_config = ConfigDict(strict=True, frozen=True)

    order_id: str
    instrument_kind: InstrumentKind
    instrument_id: str
    amount_redeemed: Decimal = ZERO
    points: int = 0
    idempotency_key: str
    record_type: RecordType = RecordType.REDEMPTION
    user_id: str | None = None
    created_at: dt.datetime


def redemption_key(order_id: str, kind: InstrumentKind, instrument_id: str) -> str:
    """Idempotency key for one instrument applied to one order."""
    return f"{order_id}:{kind.value}:{instrument_id}"


def reversal_key(order_id: str, kind: InstrumentKind, instrument_id: str) -> str:
    """Idempotency key for the compensation of a redemption."""
    return f"{redemption_key(order_id, kind, instrument_id)}:reversal"


class _GatewayResult(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    success: bool
    error_code: ErrorCode | None = None
    error_message: str | None = None

    @classmethod
    def failed(cls, code: ErrorCode, **fields):
        return cls(success=False, error_code=code, error_message=ERROR_MESSAGES[code], **fields)


class CouponApplication(_GatewayResult):
    """Result of applying a coupon to an order."""

    discount_amount: Decimal = ZERO


class LoyaltyRedemption(_GatewayResult):
    """Result of spending loyalty points on an order."""

    points_redeemed: int = 0
    dollar_value: Decimal = ZERO


class GiftCardRedemption(_GatewayResult):
    """Result of charging a gift card for an order."""

    amount_redeemed: Decimal = ZERO
    remaining_balance: Decimal | None = None
