"""Discount stacking: checkout calculator, preview and commit.

Instruments are always applied in the same order, whatever order they were
requested in:

1. Coupon, pre-tax. It lowers the taxable base, so the tax collected drops
   by ``coupon_discount * tax_rate`` where the rate is derived once from the
   order's own tax and subtotal.
2. Loyalty points, up to what is still owed.
3. Gift cards, in the order given, up to what is still owed.

``remaining`` starts at the order total and is clamped at zero after every
step. Gift cards are tender, not discount.
"""

from collections.abc import Callable, Iterable
from decimal import ROUND_CEILING, Decimal
from typing import TYPE_CHECKING

from ..config import get_settings
from ..models import (
    CheckoutPreview,
    CheckoutResult,
    CheckoutSelection,
    ConflictError,
    Coupon,
    CouponRequest,
    ErrorCode,
    GiftCardRequest,
    InstrumentLine,
    InstrumentRequest,
    LoyaltyAccount,
    LoyaltyRequest,
    NotFoundError,
    Order,
    ValidationError,
    parse_entity_id,
    to_cents,
)
from ..models.common import ZERO, utc_now
from ..models.enums import (
    DiscountType,
    EntityType,
    GiftCardStatus,
    InstrumentKind,
    OrderStatus,
    PartialApplicationPolicy,
    PaymentStatus,
    TransitionAction,
)
from ..models.errors import ERROR_MESSAGES
from ..utils.logging import get_logger, log_redemption_operation

if TYPE_CHECKING:
    from .redemption import RedemptionLedger
    from .state_machine import StatusService
    from .store import ReservationStore

logger = get_logger(__name__)

# Coupon redemptions need a user key even for guests without an account
ANONYMOUS_USER = "anonymous"

_CANONICAL_ORDER = {
    InstrumentKind.COUPON: 0,
    InstrumentKind.LOYALTY: 1,
    InstrumentKind.GIFT_CARD: 2,
}


def compute_coupon_amount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount a coupon gives on a pre-tax amount.

    Percentage coupons take ``value`` percent, fixed coupons take ``value``.
    The result is capped by ``max_discount_amount`` and by the amount itself.
    """
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * coupon.value / Decimal(100)
    else:
        discount = coupon.value

    if coupon.max_discount_amount is not None:
        discount = min(discount, coupon.max_discount_amount)

    return to_cents(max(min(discount, subtotal), ZERO))


def _error_line(kind: InstrumentKind, instrument_id: str, code: ErrorCode) -> InstrumentLine:
    return InstrumentLine(
        kind=kind,
        instrument_id=instrument_id,
        error_code=code,
        error_message=ERROR_MESSAGES[code],
    )


class CheckoutCalculator:
    """Stepwise discount arithmetic over one order.

    The pure preview and the committing checkout both drive this object, so
    the amounts they produce can only differ where a redemption itself
    turned out differently.
    """

    def __init__(self, order: Order) -> None:
        self.order = order
        self.tax_rate = (
            order.tax_amount / order.subtotal if order.subtotal > 0 else Decimal(0)
        )
        self.remaining = order.total_amount
        self.coupon_code: str | None = None
        self.coupon_discount = ZERO
        self.tax_savings = ZERO
        self.loyalty_value = ZERO
        self.loyalty_points = 0
        self.gift_card_total = ZERO
        self.lines: list[InstrumentLine] = []

    @property
    def total_discount(self) -> Decimal:
        return self.coupon_discount + self.loyalty_value

    def _reduce(self, amount: Decimal) -> None:
        self.remaining = max(self.remaining - amount, ZERO)

    def apply_coupon(self, code: str, discount: Decimal) -> InstrumentLine:
        discount = min(to_cents(discount), self.order.subtotal)
        savings = to_cents(discount * self.tax_rate)
        self.coupon_code = code
        self.coupon_discount = discount
        self.tax_savings = savings
        self._reduce(discount + savings)
        return self.record(
            InstrumentLine(
                kind=InstrumentKind.COUPON,
                instrument_id=code,
                amount=discount,
                tax_savings=savings,
            )
        )

    def quote_loyalty(self, account: LoyaltyAccount, points: int) -> tuple[Decimal, int]:
        """Value of spending up to ``points`` now, and the points that takes.

        Returns:
            (dollar value, fewest whole points covering that value)
        """
        value = to_cents(min(points * account.point_value, self.remaining))
        if value <= 0:
            return ZERO, 0
        needed = int((value / account.point_value).to_integral_value(rounding=ROUND_CEILING))
        return value, min(needed, points)

    def apply_loyalty(self, user_id: str, value: Decimal, points: int) -> InstrumentLine:
        self.loyalty_value += value
        self.loyalty_points += points
        self._reduce(value)
        return self.record(
            InstrumentLine(
                kind=InstrumentKind.LOYALTY, instrument_id=user_id, amount=value, points=points
            )
        )

    def quote_gift_card(self, balance: Decimal) -> Decimal:
        return min(balance, self.remaining)

    def apply_gift_card(self, code: str, amount: Decimal) -> InstrumentLine:
        self.gift_card_total += amount
        self._reduce(amount)
        return self.record(
            InstrumentLine(kind=InstrumentKind.GIFT_CARD, instrument_id=code, amount=amount)
        )

    def reject(self, kind: InstrumentKind, instrument_id: str, code: ErrorCode) -> InstrumentLine:
        return self.record(_error_line(kind, instrument_id, code))

    def record(self, line: InstrumentLine) -> InstrumentLine:
        self.lines.append(line)
        return line

    def preview(self) -> CheckoutPreview:
        lines = sorted(self.lines, key=lambda line: _CANONICAL_ORDER[line.kind])
        return CheckoutPreview(
            order_id=self.order.order_id,
            subtotal=self.order.subtotal,
            tax_amount=self.order.tax_amount,
            service_charge=self.order.service_charge,
            total_amount=self.order.total_amount,
            tax_rate=self.tax_rate,
            coupon_discount=self.coupon_discount,
            tax_savings=self.tax_savings,
            loyalty_value=self.loyalty_value,
            loyalty_points=self.loyalty_points,
            gift_card_total=self.gift_card_total,
            total_discount=self.total_discount,
            amount_due=self.remaining,
            lines=tuple(lines),
        )


def _split_requests(
    instruments: Iterable[InstrumentRequest],
) -> tuple[CouponRequest | None, LoyaltyRequest | None, list[GiftCardRequest]]:
    coupons: list[CouponRequest] = []
    loyalty: list[LoyaltyRequest] = []
    gift_cards: list[GiftCardRequest] = []
    for request in instruments:
        if isinstance(request, CouponRequest):
            coupons.append(request)
        elif isinstance(request, LoyaltyRequest):
            loyalty.append(request)
        elif isinstance(request, GiftCardRequest):
            gift_cards.append(request)
        else:
            raise ValidationError(ErrorCode.INVALID_INSTRUMENTS, {"instrument": type(request).__name__})

    codes = [r.gift_card.code for r in gift_cards]
    if len(coupons) > 1 or len(loyalty) > 1 or len(codes) != len(set(codes)):
        raise ValidationError(
            ErrorCode.INVALID_INSTRUMENTS,
            {"coupons": len(coupons), "loyalty": len(loyalty), "gift_cards": len(codes)},
        )
    return (coupons[0] if coupons else None), (loyalty[0] if loyalty else None), gift_cards


def compute_checkout(
    order: Order,
    instruments: Iterable[InstrumentRequest],
) -> CheckoutPreview:
    """Compute what an order costs after stacking the requested instruments.

    Pure and deterministic: balances are read from the snapshots passed in
    and never modified. Problems visible from the snapshots alone become
    per-line error codes; validity windows are checked at redemption time.

    Args:
        order: Order with its pre-discount totals
        instruments: At most one coupon, at most one loyalty request and any
            number of distinct gift cards, in any order

    Returns:
        CheckoutPreview with the per-step amounts and the amount due

    Raises:
        ValidationError: INVALID_INSTRUMENTS for duplicate coupon, loyalty
            or gift card requests
    """
    coupon_request, loyalty_request, gift_card_requests = _split_requests(instruments)
    calc = CheckoutCalculator(order)

    if coupon_request is not None:
        coupon = coupon_request.coupon
        if not coupon.is_active:
            calc.reject(InstrumentKind.COUPON, coupon.code, ErrorCode.COUPON_INACTIVE)
        elif coupon.is_depleted:
            calc.reject(InstrumentKind.COUPON, coupon.code, ErrorCode.COUPON_DEPLETED)
        elif coupon.min_order_amount is not None and order.subtotal < coupon.min_order_amount:
            calc.reject(InstrumentKind.COUPON, coupon.code, ErrorCode.COUPON_MIN_ORDER_NOT_MET)
        else:
            calc.apply_coupon(coupon.code, compute_coupon_amount(coupon, order.subtotal))

    if loyalty_request is not None:
        account = loyalty_request.account
        value, points = calc.quote_loyalty(account, loyalty_request.points)
        if account.points_balance < points:
            calc.reject(
                InstrumentKind.LOYALTY, account.user_id, ErrorCode.INSUFFICIENT_LOYALTY_POINTS
            )
        else:
            calc.apply_loyalty(account.user_id, value, points)

    for request in gift_card_requests:
        card = request.gift_card
        if card.status != GiftCardStatus.ACTIVE:
            calc.reject(InstrumentKind.GIFT_CARD, card.code, ErrorCode.GIFT_CARD_INACTIVE)
        elif card.balance <= 0:
            calc.reject(
                InstrumentKind.GIFT_CARD, card.code, ErrorCode.INSUFFICIENT_GIFT_CARD_BALANCE
            )
        else:
            calc.apply_gift_card(card.code, calc.quote_gift_card(card.balance))

    return calc.preview()


class CheckoutService:
    """Previews and commits checkouts against the store and redemption ledger."""

    def __init__(
        self,
        store: "ReservationStore",
        ledger: "RedemptionLedger",
        status_service: "StatusService",
        partial_policy: PartialApplicationPolicy | None = None,
        max_attempts: int | None = None,
    ) -> None:
        """Initialize the checkout service.

        Args:
            store: Order persistence
            ledger: Redemption gateway
            status_service: Used to confirm orders that end up fully paid
            partial_policy: What to do after an instrument fails (defaults to settings)
            max_attempts: Retries when the order changes during commit
        """
        settings = get_settings()
        self.store = store
        self.ledger = ledger
        self.status_service = status_service
        self.partial_policy = partial_policy or settings.partial_policy
        self.max_attempts = max_attempts or settings.max_redemption_attempts

    def _load_order(self, order_id: str) -> Order:
        order = self.store.get_order(order_id)
        if order is None:
            raise NotFoundError(ErrorCode.ORDER_NOT_FOUND, {"order_id": order_id})
        if order.is_terminal or order.payment_status != PaymentStatus.PENDING:
            raise ConflictError(
                ErrorCode.ORDER_NOT_PAYABLE,
                {"status": order.status.value, "payment_status": order.payment_status.value},
            )
        return order

    def _resolve_user(self, order: Order, selection: CheckoutSelection, user_id: str | None) -> str:
        user = user_id or order.customer_id
        if selection.loyalty_points and not user:
            raise ValidationError(
                ErrorCode.INVALID_INSTRUMENTS, {"loyalty_points": selection.loyalty_points}
            )
        return user or ANONYMOUS_USER

    def _check_selection(self, selection: CheckoutSelection) -> None:
        if len(selection.gift_card_codes) != len(set(selection.gift_card_codes)):
            raise ValidationError(
                ErrorCode.INVALID_INSTRUMENTS, {"gift_card_codes": ",".join(selection.gift_card_codes)}
            )

    def preview_checkout(
        self,
        order_id: str,
        selection: CheckoutSelection,
        user_id: str | None = None,
    ) -> CheckoutPreview:
        """Show what a checkout would cost without redeeming anything.

        Args:
            order_id: Order to price
            selection: Coupon code, loyalty points and gift card codes
            user_id: Guest checking out (defaults to the order's customer)

        Returns:
            CheckoutPreview; unknown instruments appear as error lines
        """
        order_id = parse_entity_id(order_id, "order_id")
        self._check_selection(selection)
        order = self._load_order(order_id)
        user = self._resolve_user(order, selection, user_id)

        requests: list[InstrumentRequest] = []
        missing: list[InstrumentLine] = []

        if selection.coupon_code:
            coupon = self.ledger.get_coupon(selection.coupon_code)
            if coupon is None:
                missing.append(
                    _error_line(InstrumentKind.COUPON, selection.coupon_code, ErrorCode.COUPON_NOT_FOUND)
                )
            else:
                requests.append(CouponRequest(coupon=coupon))

        if selection.loyalty_points:
            account = self.ledger.get_loyalty_account(user)
            if account is None:
                missing.append(
                    _error_line(InstrumentKind.LOYALTY, user, ErrorCode.LOYALTY_ACCOUNT_NOT_FOUND)
                )
            else:
                requests.append(LoyaltyRequest(account=account, points=selection.loyalty_points))

        for code in selection.gift_card_codes:
            card = self.ledger.get_gift_card(code)
            if card is None:
                missing.append(
                    _error_line(InstrumentKind.GIFT_CARD, code, ErrorCode.GIFT_CARD_NOT_FOUND)
                )
            else:
                requests.append(GiftCardRequest(gift_card=card))

        preview = compute_checkout(order, requests)
        if not missing:
            return preview
        lines = sorted(preview.lines + tuple(missing), key=lambda line: _CANONICAL_ORDER[line.kind])
        return preview.model_copy(update={"lines": tuple(lines)})

    def commit_checkout(
        self,
        order_id: str,
        selection: CheckoutSelection,
        user_id: str | None = None,
    ) -> CheckoutResult:
        """Redeem the selected instruments and record the outcome on the order.

        Each instrument is redeemed with the amount left after the previous
        ones actually went through. A failed instrument is reported in
        ``failed``; under the abort policy no further instruments are
        redeemed. Nothing already redeemed is rolled back. Retrying with the
        same order replays earlier redemptions instead of repeating them.

        Args:
            order_id: Order to pay
            selection: Coupon code, loyalty points and gift card codes
            user_id: Guest checking out (defaults to the order's customer)

        Returns:
            CheckoutResult with the updated order and per-instrument lines

        Raises:
            ValidationError: Malformed ID or duplicate gift card codes
            NotFoundError: Unknown order
            ConflictError: ORDER_NOT_PAYABLE or CONCURRENT_MODIFICATION
        """
        order_id = parse_entity_id(order_id, "order_id")
        self._check_selection(selection)

        for _ in range(self.max_attempts):
            order = self._load_order(order_id)
            user = self._resolve_user(order, selection, user_id)
            calc = CheckoutCalculator(order)
            failed: list[InstrumentLine] = []
            aborted = False

            def fail(line: InstrumentLine) -> bool:
                failed.append(line)
                return self.partial_policy == PartialApplicationPolicy.ABORT

            if selection.coupon_code:
                coupon_result = self.ledger.apply_coupon(
                    selection.coupon_code, user, order.subtotal, order_id, scope=selection.scope
                )
                if coupon_result.success:
                    calc.apply_coupon(selection.coupon_code, coupon_result.discount_amount)
                else:
                    aborted = fail(
                        _error_line(InstrumentKind.COUPON, selection.coupon_code, coupon_result.error_code)
                    )

            if selection.loyalty_points and not aborted:
                aborted = self._commit_loyalty(calc, order_id, user, selection, fail)

            for code in selection.gift_card_codes:
                if aborted:
                    break
                amount = calc.remaining
                if amount <= 0:
                    calc.apply_gift_card(code, ZERO)
                    continue
                redeemed = self.ledger.redeem_gift_card(code, amount, order_id)
                if redeemed.success:
                    calc.apply_gift_card(code, redeemed.amount_redeemed)
                else:
                    aborted = fail(
                        _error_line(InstrumentKind.GIFT_CARD, code, redeemed.error_code)
                    )

            paid = calc.remaining <= 0
            updated = order.model_copy(
                update={
                    "discount_amount": calc.total_discount,
                    "tax_savings": calc.tax_savings,
                    "gift_card_amount": calc.gift_card_total,
                    "amount_due": calc.remaining,
                    "coupon_code": calc.coupon_code,
                    "loyalty_points_used": calc.loyalty_points,
                    "payment_status": PaymentStatus.PAID if paid else PaymentStatus.PENDING,
                    "updated_at": utc_now(),
                    "version": order.version + 1,
                }
            )
            if not self.store.update_order(updated, expected_version=order.version):
                logger.info("Order %s changed during checkout, replaying", order_id)
                continue

            if paid and updated.status == OrderStatus.PENDING:
                updated = self.status_service.transition(
                    EntityType.ORDER, order_id, TransitionAction.CONFIRM, actor_id=user_id
                )

            log_redemption_operation(
                logger,
                "commit_checkout",
                order_id=order_id,
                amount=calc.remaining,
                result="aborted" if aborted else ("partial" if failed else "completed"),
                applied=len(calc.lines),
                failed=len(failed),
            )
            return CheckoutResult(
                order=updated,
                applied=tuple(calc.lines),
                failed=tuple(failed),
                aborted=aborted,
            )

        raise ConflictError(ErrorCode.CONCURRENT_MODIFICATION, {"order_id": order_id})

    def _commit_loyalty(
        self,
        calc: CheckoutCalculator,
        order_id: str,
        user: str,
        selection: CheckoutSelection,
        fail: Callable[[InstrumentLine], bool],
    ) -> bool:
        """Redeem loyalty points for the commit; returns True to abort."""
        account = self.ledger.get_loyalty_account(user)
        if account is None:
            return fail(
                _error_line(InstrumentKind.LOYALTY, user, ErrorCode.LOYALTY_ACCOUNT_NOT_FOUND)
            )

        value, points = calc.quote_loyalty(account, selection.loyalty_points)
        if points == 0:
            calc.apply_loyalty(user, ZERO, 0)
            return False

        redeemed = self.ledger.redeem_loyalty_points(user, points, order_id, value)
        if not redeemed.success:
            return fail(_error_line(InstrumentKind.LOYALTY, user, redeemed.error_code))
        calc.apply_loyalty(user, redeemed.dollar_value, redeemed.points_redeemed)
        return False
