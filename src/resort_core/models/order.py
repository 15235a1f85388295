"""Order model and its checkout outcome fields."""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .common import ZERO, new_entity_id, to_cents, utc_now
from .enums import OrderStatus, OrderType, PaymentStatus

TAX_RATE = Decimal("0.11")
SERVICE_CHARGE_RATE = Decimal("0.10")
DELIVERY_FEE = Decimal("5.00")

ORDER_TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)


class Order(BaseModel):
    """An order placed by a guest.

    ``subtotal``, ``tax_amount``, ``service_charge`` and ``total_amount`` are
    the pre-discount figures and are never rewritten by checkout, so the tax
    rate derived from them stays stable across retries. Checkout records its
    outcome in the discount fields and ``amount_due``.

    ``version`` increases with every stored change. Status transitions and
    checkout both compare-and-set on it, so neither can overwrite the other.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    order_id: str
    customer_id: str | None = None
    order_type: OrderType = OrderType.DINE_IN
    subtotal: Decimal = Field(..., ge=0)
    tax_amount: Decimal = Field(..., ge=0)
    service_charge: Decimal = Field(default=ZERO, ge=0)
    total_amount: Decimal = Field(..., ge=0)
    discount_amount: Decimal = Field(default=ZERO, ge=0)
    tax_savings: Decimal = Field(default=ZERO, ge=0)
    gift_card_amount: Decimal = Field(default=ZERO, ge=0)
    amount_due: Decimal | None = Field(default=None, ge=0)
    coupon_code: str | None = None
    loyalty_points_used: int = Field(default=0, ge=0)
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    notes: tuple[str, ...] = ()
    version: int = Field(default=0, ge=0)
    created_at: dt.datetime
    updated_at: dt.datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in ORDER_TERMINAL_STATUSES

    def next_version(self) -> "Order":
        """Copy of this order ready to be stored over the current one."""
        return self.model_copy(update={"version": self.version + 1})

    @property
    def payable_tax(self) -> Decimal:
        """Tax still collected after pre-tax discounts."""
        return self.tax_amount - self.tax_savings

    @classmethod
    def place(
        cls,
        subtotal: Decimal,
        order_type: OrderType = OrderType.DINE_IN,
        customer_id: str | None = None,
        order_id: str | None = None,
    ) -> "Order":
        """Build a new pending order, computing tax and charges from the subtotal.

        Args:
            subtotal: Sum of item prices
            order_type: Dine-in orders carry a service charge, deliveries a fee
            customer_id: Ordering guest, if known
            order_id: Explicit ID (generated when omitted)

        Returns:
            A pending Order with totals rounded to cents
        """
        subtotal = to_cents(subtotal)
        tax = to_cents(subtotal * TAX_RATE)
        service = (
            to_cents(subtotal * SERVICE_CHARGE_RATE)
            if order_type == OrderType.DINE_IN
            else ZERO
        )
        delivery = DELIVERY_FEE if order_type == OrderType.DELIVERY else ZERO
        now = utc_now()
        return cls(
            order_id=order_id or new_entity_id(),
            customer_id=customer_id,
            order_type=order_type,
            subtotal=subtotal,
            tax_amount=tax,
            service_charge=service + delivery,
            total_amount=subtotal + tax + service + delivery,
            created_at=now,
            updated_at=now,
        )
