"""In-process RedemptionLedger guarded by a single lock."""

import threading

from ..models import Coupon, GiftCard, LoyaltyAccount, RedemptionRecord
from ..models.enums import GiftCardStatus, InstrumentKind
from .checkout import ANONYMOUS_USER
from .redemption import RedemptionLedger


class InMemoryRedemptionLedger(RedemptionLedger):
    """Ledger for local use and tests; each commit checks and writes under the lock."""

    def __init__(self, max_attempts: int | None = None) -> None:
        super().__init__(max_attempts)
        self._lock = threading.Lock()
        self._coupons: dict[str, Coupon] = {}
        self._gift_cards: dict[str, GiftCard] = {}
        self._accounts: dict[str, LoyaltyAccount] = {}
        self._records: dict[str, RedemptionRecord] = {}
        self._coupon_uses: dict[tuple[str, str], int] = {}

    def get_coupon(self, code: str) -> Coupon | None:
        with self._lock:
            return self._coupons.get(code)

    def save_coupon(self, coupon: Coupon) -> None:
        with self._lock:
            self._coupons[coupon.code] = coupon

    def get_gift_card(self, code: str) -> GiftCard | None:
        with self._lock:
            return self._gift_cards.get(code)

    def save_gift_card(self, gift_card: GiftCard) -> None:
        with self._lock:
            self._gift_cards[gift_card.code] = gift_card

    def get_loyalty_account(self, user_id: str) -> LoyaltyAccount | None:
        with self._lock:
            return self._accounts.get(user_id)

    def save_loyalty_account(self, account: LoyaltyAccount) -> None:
        with self._lock:
            self._accounts[account.user_id] = account

    def get_redemption(self, idempotency_key: str) -> RedemptionRecord | None:
        with self._lock:
            return self._records.get(idempotency_key)

    def list_redemptions(self, order_id: str) -> list[RedemptionRecord]:
        with self._lock:
            return sorted(
                (r for r in self._records.values() if r.order_id == order_id),
                key=lambda r: r.created_at,
            )

    def coupon_uses_by_user(self, code: str, user_id: str) -> int:
        with self._lock:
            return self._coupon_uses.get((code, user_id), 0)

    def _commit_coupon(self, record: RedemptionRecord, per_user_limit: int | None) -> bool:
        with self._lock:
            coupon = self._coupons.get(record.instrument_id)
            if record.idempotency_key in self._records or coupon is None:
                return False
            if not coupon.is_active or coupon.is_depleted:
                return False
            use_key = (record.instrument_id, record.user_id or ANONYMOUS_USER)
            uses = self._coupon_uses.get(use_key, 0)
            if per_user_limit is not None and uses >= per_user_limit:
                return False
            self._coupons[coupon.code] = coupon.model_copy(
                update={"usage_count": coupon.usage_count + 1}
            )
            self._coupon_uses[use_key] = uses + 1
            self._records[record.idempotency_key] = record
            return True

    def _commit_gift_card(self, record: RedemptionRecord) -> bool:
        with self._lock:
            card = self._gift_cards.get(record.instrument_id)
            if record.idempotency_key in self._records or card is None:
                return False
            if card.status != GiftCardStatus.ACTIVE or card.balance < record.amount_redeemed:
                return False
            self._gift_cards[card.code] = card.model_copy(
                update={"balance": card.balance - record.amount_redeemed}
            )
            self._records[record.idempotency_key] = record
            return True

    def _commit_loyalty(self, record: RedemptionRecord) -> bool:
        with self._lock:
            account = self._accounts.get(record.instrument_id)
            if record.idempotency_key in self._records or account is None:
                return False
            if account.points_balance < record.points:
                return False
            self._accounts[account.user_id] = account.model_copy(
                update={"points_balance": account.points_balance - record.points}
            )
            self._records[record.idempotency_key] = record
            return True

    def _commit_reversal(self, original: RedemptionRecord, reversal: RedemptionRecord) -> bool:
        with self._lock:
            if reversal.idempotency_key in self._records:
                return False

            if original.instrument_kind == InstrumentKind.GIFT_CARD:
                card = self._gift_cards.get(original.instrument_id)
                if card is None:
                    return False
                self._gift_cards[card.code] = card.model_copy(
                    update={"balance": card.balance + original.amount_redeemed}
                )
            elif original.instrument_kind == InstrumentKind.LOYALTY:
                account = self._accounts.get(original.instrument_id)
                if account is None:
                    return False
                self._accounts[account.user_id] = account.model_copy(
                    update={"points_balance": account.points_balance + original.points}
                )
            else:
                coupon = self._coupons.get(original.instrument_id)
                if coupon is None:
                    return False
                self._coupons[coupon.code] = coupon.model_copy(
                    update={"usage_count": max(coupon.usage_count - 1, 0)}
                )
                use_key = (original.instrument_id, original.user_id or ANONYMOUS_USER)
                self._coupon_uses[use_key] = max(self._coupon_uses.get(use_key, 0) - 1, 0)

            self._records[reversal.idempotency_key] = reversal
            return True
