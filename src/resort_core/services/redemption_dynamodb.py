"""RedemptionLedger backed by DynamoDB transactions.

Each commit is one TransactWriteItems call: a Put of the ledger record
conditioned on ``attribute_not_exists(idempotency_key)`` plus the
conditional update of the instrument. If either condition fails nothing
is written and the gateway re-reads before deciding.
"""

from decimal import Decimal
from typing import Any

from boto3.dynamodb.conditions import Key

from ..models import Coupon, GiftCard, LoyaltyAccount, RedemptionRecord
from ..models.common import to_cents
from ..models.enums import DiscountType, GiftCardStatus, InstrumentKind, RecordType
from .checkout import ANONYMOUS_USER
from .dynamodb import DynamoDBService, drop_none, format_timestamp, parse_timestamp
from .redemption import RedemptionLedger


class DynamoDBRedemptionLedger(RedemptionLedger):
    """Coupons, gift cards, loyalty accounts and the redemption ledger in DynamoDB."""

    COUPONS = "coupons"
    GIFT_CARDS = "gift-cards"
    LOYALTY_ACCOUNTS = "loyalty-accounts"
    REDEMPTIONS = "redemptions"
    COUPON_USAGE = "coupon-usage"
    ORDER_INDEX = "order_id-index"

    def __init__(self, db: DynamoDBService, max_attempts: int | None = None) -> None:
        """Initialize the ledger.

        Args:
            db: DynamoDB service instance
            max_attempts: Retries when a commit loses a race
        """
        super().__init__(max_attempts)
        self.db = db

    # Catalog

    def get_coupon(self, code: str) -> Coupon | None:
        item = self.db.get_item(self.COUPONS, {"code": code})
        return self._item_to_coupon(item) if item else None

    def save_coupon(self, coupon: Coupon) -> None:
        self.db.put_item(self.COUPONS, self._coupon_to_item(coupon))

    def get_gift_card(self, code: str) -> GiftCard | None:
        item = self.db.get_item(self.GIFT_CARDS, {"code": code})
        if not item:
            return None
        return GiftCard(
            code=item["code"],
            balance=to_cents(item["balance"]),
            status=GiftCardStatus(item["status"]),
            expires_at=parse_timestamp(item["expires_at"]) if "expires_at" in item else None,
        )

    def save_gift_card(self, gift_card: GiftCard) -> None:
        self.db.put_item(
            self.GIFT_CARDS,
            drop_none(
                {
                    "code": gift_card.code,
                    "balance": gift_card.balance,
                    "status": gift_card.status.value,
                    "expires_at": (
                        format_timestamp(gift_card.expires_at) if gift_card.expires_at else None
                    ),
                }
            ),
        )

    def get_loyalty_account(self, user_id: str) -> LoyaltyAccount | None:
        item = self.db.get_item(self.LOYALTY_ACCOUNTS, {"user_id": user_id})
        if not item:
            return None
        return LoyaltyAccount(
            user_id=item["user_id"],
            points_balance=int(item["points_balance"]),
            point_value=Decimal(item["point_value"]),
        )

    def save_loyalty_account(self, account: LoyaltyAccount) -> None:
        self.db.put_item(
            self.LOYALTY_ACCOUNTS,
            {
                "user_id": account.user_id,
                "points_balance": account.points_balance,
                "point_value": account.point_value,
            },
        )

    # Ledger

    def get_redemption(self, idempotency_key: str) -> RedemptionRecord | None:
        item = self.db.get_item(self.REDEMPTIONS, {"idempotency_key": idempotency_key})
        return self._item_to_record(item) if item else None

    def list_redemptions(self, order_id: str) -> list[RedemptionRecord]:
        items = self.db.query(
            self.REDEMPTIONS,
            Key("order_id").eq(order_id),
            index_name=self.ORDER_INDEX,
        )
        records = [self._item_to_record(item) for item in items]
        return sorted(records, key=lambda r: r.created_at)

    def coupon_uses_by_user(self, code: str, user_id: str) -> int:
        item = self.db.get_item(self.COUPON_USAGE, {"code": code, "user_id": user_id})
        return int(item.get("uses", 0)) if item else 0

    # Atomic primitives

    def _record_put(self, record: RedemptionRecord) -> dict[str, Any]:
        return self.db.put_op(
            self.REDEMPTIONS,
            self._record_to_item(record),
            condition_expression="attribute_not_exists(idempotency_key)",
        )

    def _commit_coupon(self, record: RedemptionRecord, per_user_limit: int | None) -> bool:
        usage_update: dict[str, Any] = {
            "key": {"code": record.instrument_id, "user_id": record.user_id or ANONYMOUS_USER},
            "update_expression": "SET #uses = if_not_exists(#uses, :zero) + :one",
            "expression_attribute_names": {"#uses": "uses"},
            "expression_attribute_values": {":zero": 0, ":one": 1},
        }
        if per_user_limit is not None:
            usage_update["condition_expression"] = "attribute_not_exists(#uses) OR #uses < :limit"
            usage_update["expression_attribute_values"][":limit"] = per_user_limit

        return self.db.transact_write(
            [
                self._record_put(record),
                self.db.update_op(
                    self.COUPONS,
                    key={"code": record.instrument_id},
                    update_expression="SET #count = #count + :one",
                    condition_expression=(
                        "attribute_exists(#code) AND #active = :true "
                        "AND (attribute_not_exists(#limit) OR #count < #limit)"
                    ),
                    expression_attribute_names={
                        "#code": "code",
                        "#count": "usage_count",
                        "#limit": "usage_limit",
                        "#active": "is_active",
                    },
                    expression_attribute_values={":one": 1, ":true": True},
                ),
                self.db.update_op(self.COUPON_USAGE, **usage_update),
            ]
        )

    def _commit_gift_card(self, record: RedemptionRecord) -> bool:
        return self.db.transact_write(
            [
                self._record_put(record),
                self.db.update_op(
                    self.GIFT_CARDS,
                    key={"code": record.instrument_id},
                    update_expression="SET #balance = #balance - :amount",
                    condition_expression="#status = :active AND #balance >= :amount",
                    expression_attribute_names={"#balance": "balance", "#status": "status"},
                    expression_attribute_values={
                        ":amount": record.amount_redeemed,
                        ":active": GiftCardStatus.ACTIVE.value,
                    },
                ),
            ]
        )

    def _commit_loyalty(self, record: RedemptionRecord) -> bool:
        return self.db.transact_write(
            [
                self._record_put(record),
                self.db.update_op(
                    self.LOYALTY_ACCOUNTS,
                    key={"user_id": record.instrument_id},
                    update_expression="SET #points = #points - :points",
                    condition_expression="#points >= :points",
                    expression_attribute_names={"#points": "points_balance"},
                    expression_attribute_values={":points": record.points},
                ),
            ]
        )

    def _commit_reversal(self, original: RedemptionRecord, reversal: RedemptionRecord) -> bool:
        credits: list[dict[str, Any]]
        if original.instrument_kind == InstrumentKind.GIFT_CARD:
            credits = [
                self.db.update_op(
                    self.GIFT_CARDS,
                    key={"code": original.instrument_id},
                    update_expression="SET #balance = #balance + :amount",
                    condition_expression="attribute_exists(#balance)",
                    expression_attribute_names={"#balance": "balance"},
                    expression_attribute_values={":amount": original.amount_redeemed},
                )
            ]
        elif original.instrument_kind == InstrumentKind.LOYALTY:
            credits = [
                self.db.update_op(
                    self.LOYALTY_ACCOUNTS,
                    key={"user_id": original.instrument_id},
                    update_expression="SET #points = #points + :points",
                    condition_expression="attribute_exists(#points)",
                    expression_attribute_names={"#points": "points_balance"},
                    expression_attribute_values={":points": original.points},
                )
            ]
        else:
            credits = [
                self.db.update_op(
                    self.COUPONS,
                    key={"code": original.instrument_id},
                    update_expression="SET #count = #count - :one",
                    condition_expression="#count > :zero",
                    expression_attribute_names={"#count": "usage_count"},
                    expression_attribute_values={":one": 1, ":zero": 0},
                ),
                self.db.update_op(
                    self.COUPON_USAGE,
                    key={
                        "code": original.instrument_id,
                        "user_id": original.user_id or ANONYMOUS_USER,
                    },
                    update_expression="SET #uses = #uses - :one",
                    condition_expression="#uses > :zero",
                    expression_attribute_names={"#uses": "uses"},
                    expression_attribute_values={":one": 1, ":zero": 0},
                ),
            ]

        return self.db.transact_write(
            [
                self.db.put_op(
                    self.REDEMPTIONS,
                    self._record_to_item(reversal),
                    condition_expression="attribute_not_exists(idempotency_key)",
                ),
                *credits,
            ]
        )

    # Item conversion

    def _coupon_to_item(self, coupon: Coupon) -> dict[str, Any]:
        return drop_none(
            {
                "code": coupon.code,
                "discount_type": coupon.discount_type.value,
                "value": coupon.value,
                "usage_scope": coupon.usage_scope,
                "max_discount_amount": coupon.max_discount_amount,
                "min_order_amount": coupon.min_order_amount,
                "usage_limit": coupon.usage_limit,
                "usage_count": coupon.usage_count,
                "per_user_limit": coupon.per_user_limit,
                "starts_at": format_timestamp(coupon.starts_at) if coupon.starts_at else None,
                "ends_at": format_timestamp(coupon.ends_at) if coupon.ends_at else None,
                "is_active": coupon.is_active,
            }
        )

    def _item_to_coupon(self, item: dict[str, Any]) -> Coupon:
        def optional_int(name: str) -> int | None:
            return int(item[name]) if name in item else None

        def optional_money(name: str) -> Decimal | None:
            return to_cents(item[name]) if name in item else None

        return Coupon(
            code=item["code"],
            discount_type=DiscountType(item["discount_type"]),
            value=Decimal(item["value"]),
            usage_scope=item.get("usage_scope", "all"),
            max_discount_amount=optional_money("max_discount_amount"),
            min_order_amount=optional_money("min_order_amount"),
            usage_limit=optional_int("usage_limit"),
            usage_count=int(item.get("usage_count", 0)),
            per_user_limit=optional_int("per_user_limit"),
            starts_at=parse_timestamp(item["starts_at"]) if "starts_at" in item else None,
            ends_at=parse_timestamp(item["ends_at"]) if "ends_at" in item else None,
            is_active=bool(item.get("is_active", True)),
        )

    def _record_to_item(self, record: RedemptionRecord) -> dict[str, Any]:
        return drop_none(
            {
                "idempotency_key": record.idempotency_key,
                "order_id": record.order_id,
                "instrument_kind": record.instrument_kind.value,
                "instrument_id": record.instrument_id,
                "amount_redeemed": record.amount_redeemed,
                "points": record.points,
                "record_type": record.record_type.value,
                "user_id": record.user_id,
                "created_at": format_timestamp(record.created_at),
            }
        )

    def _item_to_record(self, item: dict[str, Any]) -> RedemptionRecord:
        return RedemptionRecord(
            order_id=item["order_id"],
            instrument_kind=InstrumentKind(item["instrument_kind"]),
            instrument_id=item["instrument_id"],
            amount_redeemed=to_cents(item["amount_redeemed"]),
            points=int(item.get("points", 0)),
            idempotency_key=item["idempotency_key"],
            record_type=RecordType(item["record_type"]),
            user_id=item.get("user_id"),
            created_at=parse_timestamp(item["created_at"]),
        )
