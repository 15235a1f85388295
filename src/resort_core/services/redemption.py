"""Atomic redemption gateway for coupons, loyalty points and gift cards.

Every redemption is keyed by ``order_id:kind:instrument_id``. The ledger
record and the conditional balance change are committed together, so a
retried call finds the record and replays the stored result instead of
charging the instrument twice. A reversed key stays consumed: retrying it
fails with REDEMPTION_REVERSED. Backends only provide the atomic commit
primitives; validation and retry live here.
"""

import datetime as dt
from abc import ABC, abstractmethod
from decimal import Decimal

from ..config import get_settings
from ..models import (
    ConflictError,
    Coupon,
    CouponApplication,
    ErrorCode,
    GiftCard,
    GiftCardRedemption,
    LoyaltyAccount,
    LoyaltyRedemption,
    NotFoundError,
    RedemptionRecord,
    ValidationError,
    parse_entity_id,
)
from ..models.common import ZERO, ensure_utc, to_cents, utc_now
from ..models.enums import GiftCardStatus, InstrumentKind, RecordType
from ..models.instruments import ALL_SCOPES, redemption_key, reversal_key
from ..utils.logging import get_logger, log_redemption_operation
from .checkout import compute_coupon_amount

logger = get_logger(__name__)


class RedemptionLedger(ABC):
    """Append-only redemption ledger with conditional instrument updates."""

    def __init__(self, max_attempts: int | None = None) -> None:
        """Initialize the ledger.

        Args:
            max_attempts: Retries when a commit loses a race (defaults to settings)
        """
        self.max_attempts = max_attempts or get_settings().max_redemption_attempts

    # Catalog

    @abstractmethod
    def get_coupon(self, code: str) -> Coupon | None:
        """Return the coupon with this code, if any."""

    @abstractmethod
    def save_coupon(self, coupon: Coupon) -> None:
        """Create or replace a coupon."""

    @abstractmethod
    def get_gift_card(self, code: str) -> GiftCard | None:
        """Return the gift card with this code, if any."""

    @abstractmethod
    def save_gift_card(self, gift_card: GiftCard) -> None:
        """Create or replace a gift card."""

    @abstractmethod
    def get_loyalty_account(self, user_id: str) -> LoyaltyAccount | None:
        """Return the user's loyalty account, if any."""

    @abstractmethod
    def save_loyalty_account(self, account: LoyaltyAccount) -> None:
        """Create or replace a loyalty account."""

    # Ledger

    @abstractmethod
    def get_redemption(self, idempotency_key: str) -> RedemptionRecord | None:
        """Return the ledger record stored under this key, if any."""

    @abstractmethod
    def list_redemptions(self, order_id: str) -> list[RedemptionRecord]:
        """All ledger records (redemptions and reversals) for an order."""

    @abstractmethod
    def coupon_uses_by_user(self, code: str, user_id: str) -> int:
        """Number of unreversed uses of a coupon by one user."""

    # Atomic primitives. Each writes the record only if its key is new and
    # only together with the instrument change; False means nothing was written.

    @abstractmethod
    def _commit_coupon(self, record: RedemptionRecord, per_user_limit: int | None) -> bool:
        """Insert record, bump usage_count below usage_limit and the user's use count."""

    @abstractmethod
    def _commit_gift_card(self, record: RedemptionRecord) -> bool:
        """Insert record and subtract its amount if the card is active and covers it."""

    @abstractmethod
    def _commit_loyalty(self, record: RedemptionRecord) -> bool:
        """Insert record and subtract its points if the balance covers them."""

    @abstractmethod
    def _commit_reversal(self, original: RedemptionRecord, reversal: RedemptionRecord) -> bool:
        """Insert the reversal record and credit the original back to the instrument."""

    def _is_reversed(self, order_id: str, kind: InstrumentKind, instrument_id: str) -> bool:
        return self.get_redemption(reversal_key(order_id, kind, instrument_id)) is not None

    # Gateway operations

    def apply_coupon(
        self,
        code: str,
        user_id: str,
        pre_tax_amount: Decimal,
        order_id: str,
        scope: str = ALL_SCOPES,
        now: dt.datetime | None = None,
    ) -> CouponApplication:
        """Validate a coupon and record its use against an order.

        Args:
            code: Coupon code
            user_id: Guest using the coupon
            pre_tax_amount: Amount the discount is computed on
            order_id: Order the coupon is applied to
            scope: Usage scope of the order (e.g. "restaurant")
            now: Reference time for validity checks

        Returns:
            CouponApplication with the discount, or the failure code
        """
        order_id = parse_entity_id(order_id, "order_id")
        if pre_tax_amount < 0:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, {"amount": pre_tax_amount})
        now = ensure_utc(now) if now else utc_now()
        key = redemption_key(order_id, InstrumentKind.COUPON, code)

        def rejected(error: ErrorCode) -> CouponApplication:
            log_redemption_operation(
                logger, "apply_coupon", order_id=order_id,
                instrument_kind=InstrumentKind.COUPON.value, instrument_id=code,
                amount=pre_tax_amount, result="rejected", error=error.value,
            )
            return CouponApplication.failed(error)

        for _ in range(self.max_attempts):
            existing = self.get_redemption(key)
            if existing is not None:
                if self._is_reversed(order_id, InstrumentKind.COUPON, code):
                    return rejected(ErrorCode.REDEMPTION_REVERSED)
                log_redemption_operation(
                    logger, "apply_coupon", order_id=order_id,
                    instrument_kind=InstrumentKind.COUPON.value, instrument_id=code,
                    amount=existing.amount_redeemed, result="replayed",
                )
                return CouponApplication(success=True, discount_amount=existing.amount_redeemed)

            coupon = self.get_coupon(code)
            if coupon is None:
                return rejected(ErrorCode.COUPON_NOT_FOUND)
            if not coupon.is_active:
                return rejected(ErrorCode.COUPON_INACTIVE)
            if coupon.starts_at and ensure_utc(coupon.starts_at) > now:
                return rejected(ErrorCode.COUPON_NOT_STARTED)
            if coupon.ends_at and ensure_utc(coupon.ends_at) < now:
                return rejected(ErrorCode.COUPON_EXPIRED)
            if coupon.is_depleted:
                return rejected(ErrorCode.COUPON_DEPLETED)
            if (
                coupon.per_user_limit is not None
                and self.coupon_uses_by_user(code, user_id) >= coupon.per_user_limit
            ):
                return rejected(ErrorCode.COUPON_ALREADY_USED)
            if coupon.min_order_amount is not None and pre_tax_amount < coupon.min_order_amount:
                return rejected(ErrorCode.COUPON_MIN_ORDER_NOT_MET)
            if not coupon.applies_to(scope):
                return rejected(ErrorCode.COUPON_SCOPE_MISMATCH)

            discount = compute_coupon_amount(coupon, pre_tax_amount)
            record = RedemptionRecord(
                order_id=order_id,
                instrument_kind=InstrumentKind.COUPON,
                instrument_id=code,
                amount_redeemed=discount,
                idempotency_key=key,
                user_id=user_id,
                created_at=now,
            )
            if self._commit_coupon(record, coupon.per_user_limit):
                log_redemption_operation(
                    logger, "apply_coupon", order_id=order_id,
                    instrument_kind=InstrumentKind.COUPON.value, instrument_id=code,
                    amount=discount, result="applied",
                )
                return CouponApplication(success=True, discount_amount=discount)

        return rejected(ErrorCode.REDEMPTION_CONTENDED)

    def redeem_loyalty_points(
        self,
        user_id: str,
        points: int,
        order_id: str,
        dollar_value: Decimal,
    ) -> LoyaltyRedemption:
        """Spend loyalty points against an order.

        Args:
            user_id: Account owner
            points: Whole points to deduct
            order_id: Order the points pay for
            dollar_value: Value the points cover on the order

        Returns:
            LoyaltyRedemption with the points spent, or the failure code
        """
        order_id = parse_entity_id(order_id, "order_id")
        if isinstance(points, bool) or not isinstance(points, int) or points < 1:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, {"points": points})
        key = redemption_key(order_id, InstrumentKind.LOYALTY, user_id)
        log_args = {
            "order_id": order_id,
            "instrument_kind": InstrumentKind.LOYALTY.value,
            "instrument_id": user_id,
            "points": points,
        }

        for _ in range(self.max_attempts):
            existing = self.get_redemption(key)
            if existing is not None:
                if self._is_reversed(order_id, InstrumentKind.LOYALTY, user_id):
                    log_redemption_operation(
                        logger, "redeem_loyalty_points", result="rejected",
                        error=ErrorCode.REDEMPTION_REVERSED.value, **log_args,
                    )
                    return LoyaltyRedemption.failed(ErrorCode.REDEMPTION_REVERSED)
                log_redemption_operation(
                    logger, "redeem_loyalty_points", result="replayed", **log_args
                )
                return LoyaltyRedemption(
                    success=True,
                    points_redeemed=existing.points,
                    dollar_value=existing.amount_redeemed,
                )

            account = self.get_loyalty_account(user_id)
            error = None
            if account is None:
                error = ErrorCode.LOYALTY_ACCOUNT_NOT_FOUND
            elif account.points_balance < points:
                error = ErrorCode.INSUFFICIENT_LOYALTY_POINTS
            if error is not None:
                log_redemption_operation(
                    logger, "redeem_loyalty_points", result="rejected",
                    error=error.value, **log_args,
                )
                return LoyaltyRedemption.failed(error)

            value = to_cents(dollar_value)
            record = RedemptionRecord(
                order_id=order_id,
                instrument_kind=InstrumentKind.LOYALTY,
                instrument_id=user_id,
                amount_redeemed=value,
                points=points,
                idempotency_key=key,
                user_id=user_id,
                created_at=utc_now(),
            )
            if self._commit_loyalty(record):
                log_redemption_operation(
                    logger, "redeem_loyalty_points", amount=value, result="applied", **log_args
                )
                return LoyaltyRedemption(success=True, points_redeemed=points, dollar_value=value)

        log_redemption_operation(
            logger, "redeem_loyalty_points", result="rejected",
            error=ErrorCode.REDEMPTION_CONTENDED.value, **log_args,
        )
        return LoyaltyRedemption.failed(ErrorCode.REDEMPTION_CONTENDED)

    def redeem_gift_card(
        self,
        code: str,
        amount: Decimal,
        order_id: str,
        now: dt.datetime | None = None,
    ) -> GiftCardRedemption:
        """Charge a gift card for an order.

        Amounts above the balance are clamped to the balance, so a card can
        be drained to exactly zero but never below it.

        Args:
            code: Gift card code
            amount: Amount requested
            order_id: Order being paid
            now: Reference time for the expiry check

        Returns:
            GiftCardRedemption with the amount actually redeemed
        """
        order_id = parse_entity_id(order_id, "order_id")
        if amount <= 0:
            raise ValidationError(ErrorCode.INVALID_AMOUNT, {"amount": amount})
        amount = to_cents(amount)
        now = ensure_utc(now) if now else utc_now()
        key = redemption_key(order_id, InstrumentKind.GIFT_CARD, code)

        def rejected(error: ErrorCode) -> GiftCardRedemption:
            log_redemption_operation(
                logger, "redeem_gift_card", order_id=order_id,
                instrument_kind=InstrumentKind.GIFT_CARD.value, instrument_id=code,
                amount=amount, result="rejected", error=error.value,
            )
            return GiftCardRedemption.failed(error)

        for _ in range(self.max_attempts):
            existing = self.get_redemption(key)
            if existing is not None:
                if self._is_reversed(order_id, InstrumentKind.GIFT_CARD, code):
                    return rejected(ErrorCode.REDEMPTION_REVERSED)
                log_redemption_operation(
                    logger, "redeem_gift_card", order_id=order_id,
                    instrument_kind=InstrumentKind.GIFT_CARD.value, instrument_id=code,
                    amount=existing.amount_redeemed, result="replayed",
                )
                return GiftCardRedemption(success=True, amount_redeemed=existing.amount_redeemed)

            card = self.get_gift_card(code)
            if card is None:
                return rejected(ErrorCode.GIFT_CARD_NOT_FOUND)
            if card.status != GiftCardStatus.ACTIVE:
                return rejected(ErrorCode.GIFT_CARD_INACTIVE)
            if card.expires_at and ensure_utc(card.expires_at) < now:
                return rejected(ErrorCode.GIFT_CARD_EXPIRED)
            if card.balance <= ZERO:
                return rejected(ErrorCode.INSUFFICIENT_GIFT_CARD_BALANCE)

            redeemed = min(amount, card.balance)
            record = RedemptionRecord(
                order_id=order_id,
                instrument_kind=InstrumentKind.GIFT_CARD,
                instrument_id=code,
                amount_redeemed=redeemed,
                idempotency_key=key,
                created_at=now,
            )
            if self._commit_gift_card(record):
                log_redemption_operation(
                    logger, "redeem_gift_card", order_id=order_id,
                    instrument_kind=InstrumentKind.GIFT_CARD.value, instrument_id=code,
                    amount=redeemed, result="applied",
                )
                return GiftCardRedemption(
                    success=True,
                    amount_redeemed=redeemed,
                    remaining_balance=card.balance - redeemed,
                )

        return rejected(ErrorCode.REDEMPTION_CONTENDED)

    def reverse_redemption(
        self,
        order_id: str,
        instrument_kind: InstrumentKind,
        instrument_id: str,
    ) -> RedemptionRecord:
        """Compensate a redemption by crediting the instrument back.

        Calling it again for the same redemption returns the existing
        reversal record.

        Returns:
            The reversal ledger record

        Raises:
            NotFoundError: REDEMPTION_NOT_FOUND if nothing was redeemed
        """
        order_id = parse_entity_id(order_id, "order_id")
        instrument_kind = InstrumentKind(instrument_kind)
        original = self.get_redemption(redemption_key(order_id, instrument_kind, instrument_id))
        if original is None:
            raise NotFoundError(
                ErrorCode.REDEMPTION_NOT_FOUND,
                {
                    "order_id": order_id,
                    "instrument_kind": instrument_kind.value,
                    "instrument_id": instrument_id,
                },
            )

        key = reversal_key(order_id, instrument_kind, instrument_id)
        reversal = RedemptionRecord(
            order_id=order_id,
            instrument_kind=instrument_kind,
            instrument_id=instrument_id,
            amount_redeemed=original.amount_redeemed,
            points=original.points,
            idempotency_key=key,
            record_type=RecordType.REVERSAL,
            user_id=original.user_id,
            created_at=utc_now(),
        )
        if not self._commit_reversal(original, reversal):
            existing = self.get_redemption(key)
            if existing is None:
                raise ConflictError(
                    ErrorCode.CONCURRENT_MODIFICATION,
                    {"idempotency_key": original.idempotency_key},
                )
            reversal = existing

        log_redemption_operation(
            logger, "reverse_redemption", order_id=order_id,
            instrument_kind=instrument_kind.value, instrument_id=instrument_id,
            amount=reversal.amount_redeemed, points=reversal.points or None,
            result="reversed",
        )
        return reversal
