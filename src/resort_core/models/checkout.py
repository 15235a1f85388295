"""Checkout request, preview and result models."""

import datetime as dt
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .common import ZERO
from .enums import EntityType, InstrumentKind
from .errors import ErrorCode
from .instruments import Coupon, GiftCard, LoyaltyAccount
from .order import Order


class CouponRequest(BaseModel):
    """Apply a coupon snapshot to the order."""

    model_config = ConfigDict(strict=True, frozen=True)

    kind: Literal[InstrumentKind.COUPON] = InstrumentKind.COUPON
    coupon: Coupon


class LoyaltyRequest(BaseModel):
    """Spend up to ``points`` from a loyalty account."""

    model_config = ConfigDict(strict=True, frozen=True)

    kind: Literal[InstrumentKind.LOYALTY] = InstrumentKind.LOYALTY
    account: LoyaltyAccount
    points: int = Field(..., ge=1)


class GiftCardRequest(BaseModel):
    """Charge a gift card snapshot for what is left of the order."""

    model_config = ConfigDict(strict=True, frozen=True)

    kind: Literal[InstrumentKind.GIFT_CARD] = InstrumentKind.GIFT_CARD
    gift_card: GiftCard


InstrumentRequest = Annotated[
    Union[CouponRequest, LoyaltyRequest, GiftCardRequest],
    Field(discriminator="kind"),
]


class CheckoutSelection(BaseModel):
    """Instruments a guest selected at checkout, by code.

    ``loyalty_points`` of zero means no loyalty redemption.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    coupon_code: Optional[str] = None
    loyalty_points: int = Field(default=0, ge=0)
    gift_card_codes: tuple[str, ...] = ()
    scope: str = "all"


class InstrumentLine(BaseModel):
    """Outcome of one instrument in a preview or commit."""

    model_config = ConfigDict(strict=True, frozen=True)

    kind: InstrumentKind
    instrument_id: str
    amount: Decimal = ZERO
    points: int = 0
    tax_savings: Decimal = ZERO
    error_code: Optional[ErrorCode] = None
    error_message: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.error_code is None


class CheckoutPreview(BaseModel):
    """Deterministic breakdown of an order's payable amount.

    ``amount_due`` is the ``remaining`` balance after every instrument.
    ``total_discount`` covers the coupon and loyalty value; gift cards are
    tender and reported in ``gift_card_total``.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    order_id: str
    subtotal: Decimal
    tax_amount: Decimal
    service_charge: Decimal
    total_amount: Decimal
    tax_rate: Decimal
    coupon_discount: Decimal = ZERO
    tax_savings: Decimal = ZERO
    loyalty_value: Decimal = ZERO
    loyalty_points: int = 0
    gift_card_total: Decimal = ZERO
    total_discount: Decimal = ZERO
    amount_due: Decimal
    lines: tuple[InstrumentLine, ...] = ()


class CheckoutResult(BaseModel):
    """Structured multi-result of committing a checkout."""

    model_config = ConfigDict(strict=True, frozen=True)

    order: Order
    applied: tuple[InstrumentLine, ...] = ()
    failed: tuple[InstrumentLine, ...] = ()
    aborted: bool = False

    @property
    def fully_applied(self) -> bool:
        return not self.failed


class TransitionEvent(BaseModel):
    """Fire-and-forget notification emitted after every status change."""

    model_config = ConfigDict(strict=True, frozen=True)

    entity_type: EntityType
    entity_id: str
    from_status: str
    to_status: str
    action: str
    timestamp: dt.datetime
    actor_id: Optional[str] = None
