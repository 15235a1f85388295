"""ReservationStore backed by DynamoDB conditional writes and transactions."""

from decimal import Decimal
from typing import Any

from boto3.dynamodb.conditions import Attr, Key

from ..models import Interval, Order, Reservation, ReservationNote, Resource
from ..models.common import to_cents
from ..models.enums import (
    OrderStatus,
    OrderType,
    PaymentStatus,
    ReservationKind,
    ResourceKind,
    ResourceStatus,
)
from ..models.reservation import STATUS_TYPES
from .dynamodb import (
    DynamoDBService,
    drop_none,
    format_timestamp,
    parse_timestamp,
)
from .store import ReservationStore


class DynamoDBStore(ReservationStore):
    """Store resources, reservations and orders in DynamoDB.

    Reservations are queried through the ``resource_id-start_at-index`` GSI:
    the key condition bounds ``start_at`` below the window end and a filter
    keeps items whose ``end_at`` is after the window start.
    """

    RESOURCES = "resources"
    RESERVATIONS = "reservations"
    ORDERS = "orders"
    RESOURCE_INDEX = "resource_id-start_at-index"

    def __init__(self, db: DynamoDBService) -> None:
        """Initialize the store.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    # Resources

    def get_resource(self, resource_id: str) -> Resource | None:
        item = self.db.get_item(self.RESOURCES, {"resource_id": resource_id})
        if not item:
            return None
        return self._item_to_resource(item)

    def save_resource(self, resource: Resource) -> None:
        self.db.put_item(self.RESOURCES, self._resource_to_item(resource))

    def update_resource(self, resource: Resource, expected_version: int) -> bool:
        return self.db.put_item(
            self.RESOURCES,
            self._resource_to_item(resource),
            condition_expression="#version = :expected",
            expression_attribute_names={"#version": "version"},
            expression_attribute_values={":expected": expected_version},
        )

    # Reservations

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        item = self.db.get_item(self.RESERVATIONS, {"reservation_id": reservation_id})
        if not item:
            return None
        return self._item_to_reservation(item)

    def list_reservations_in_window(
        self, resource_id: str, window: Interval
    ) -> list[Reservation]:
        items = self.db.query(
            self.RESERVATIONS,
            Key("resource_id").eq(resource_id)
            & Key("start_at").lt(format_timestamp(window.end)),
            index_name=self.RESOURCE_INDEX,
            filter_expression=Attr("end_at").gt(format_timestamp(window.start)),
        )
        return [self._item_to_reservation(item) for item in items]

    def _version_bump_op(self, resource_id: str, resource_version: int) -> dict[str, Any]:
        return self.db.update_op(
            self.RESOURCES,
            key={"resource_id": resource_id},
            update_expression="SET #version = :next",
            condition_expression="#version = :expected",
            expression_attribute_names={"#version": "version"},
            expression_attribute_values={
                ":expected": resource_version,
                ":next": resource_version + 1,
            },
        )

    def insert_reservation(self, reservation: Reservation, resource_version: int) -> bool:
        return self.db.transact_write(
            [
                self.db.put_op(
                    self.RESERVATIONS,
                    self._reservation_to_item(reservation),
                    condition_expression="attribute_not_exists(reservation_id)",
                ),
                self._version_bump_op(reservation.resource_id, resource_version),
            ]
        )

    def update_reservation(
        self,
        reservation: Reservation,
        expected_version: int,
        resource_version: int | None = None,
    ) -> bool:
        put = self.db.put_op(
            self.RESERVATIONS,
            self._reservation_to_item(reservation),
            condition_expression="#version = :expected",
            expression_attribute_names={"#version": "version"},
            expression_attribute_values={":expected": expected_version},
        )
        if resource_version is None:
            return self.db.transact_write([put])
        return self.db.transact_write(
            [put, self._version_bump_op(reservation.resource_id, resource_version)]
        )

    # Orders

    def get_order(self, order_id: str) -> Order | None:
        item = self.db.get_item(self.ORDERS, {"order_id": order_id})
        if not item:
            return None
        return self._item_to_order(item)

    def insert_order(self, order: Order) -> bool:
        return self.db.put_item(
            self.ORDERS,
            self._order_to_item(order),
            condition_expression="attribute_not_exists(order_id)",
        )

    def update_order(self, order: Order, expected_version: int) -> bool:
        return self.db.put_item(
            self.ORDERS,
            self._order_to_item(order),
            condition_expression="#version = :expected",
            expression_attribute_names={"#version": "version"},
            expression_attribute_values={":expected": expected_version},
        )

    # Item conversion

    def _resource_to_item(self, resource: Resource) -> dict[str, Any]:
        return drop_none(
            {
                "resource_id": resource.resource_id,
                "name": resource.name,
                "kind": resource.kind.value,
                "capacity": resource.capacity,
                "status": resource.status.value,
                "version": resource.version,
                "archived_at": (
                    format_timestamp(resource.archived_at) if resource.archived_at else None
                ),
            }
        )

    def _item_to_resource(self, item: dict[str, Any]) -> Resource:
        return Resource(
            resource_id=item["resource_id"],
            name=item["name"],
            kind=ResourceKind(item["kind"]),
            capacity=int(item["capacity"]),
            status=ResourceStatus(item["status"]),
            version=int(item.get("version", 0)),
            archived_at=(
                parse_timestamp(item["archived_at"]) if item.get("archived_at") else None
            ),
        )

    def _reservation_to_item(self, reservation: Reservation) -> dict[str, Any]:
        return drop_none(
            {
                "reservation_id": reservation.reservation_id,
                "resource_id": reservation.resource_id,
                "kind": reservation.kind.value,
                "start_at": format_timestamp(reservation.interval.start),
                "end_at": format_timestamp(reservation.interval.end),
                "occupancy": reservation.occupancy,
                "status": reservation.status.value,
                "notes": [
                    drop_none(
                        {
                            "text": note.text,
                            "created_at": format_timestamp(note.created_at),
                            "author_id": note.author_id,
                        }
                    )
                    for note in reservation.notes
                ],
                "actual_occupancy": reservation.actual_occupancy,
                "actual_cost": reservation.actual_cost,
                "version": reservation.version,
                "created_at": format_timestamp(reservation.created_at),
                "updated_at": format_timestamp(reservation.updated_at),
            }
        )

    def _item_to_reservation(self, item: dict[str, Any]) -> Reservation:
        kind = ReservationKind(item["kind"])
        return Reservation(
            reservation_id=item["reservation_id"],
            resource_id=item["resource_id"],
            kind=kind,
            interval=Interval(
                start=parse_timestamp(item["start_at"]),
                end=parse_timestamp(item["end_at"]),
            ),
            occupancy=int(item["occupancy"]),
            status=STATUS_TYPES[kind](item["status"]),
            notes=tuple(
                ReservationNote(
                    text=note["text"],
                    created_at=parse_timestamp(note["created_at"]),
                    author_id=note.get("author_id"),
                )
                for note in item.get("notes", [])
            ),
            actual_occupancy=(
                int(item["actual_occupancy"]) if "actual_occupancy" in item else None
            ),
            actual_cost=to_cents(item["actual_cost"]) if "actual_cost" in item else None,
            version=int(item.get("version", 0)),
            created_at=parse_timestamp(item["created_at"]),
            updated_at=parse_timestamp(item["updated_at"]),
        )

    def _order_to_item(self, order: Order) -> dict[str, Any]:
        return drop_none(
            {
                "order_id": order.order_id,
                "customer_id": order.customer_id,
                "order_type": order.order_type.value,
                "subtotal": order.subtotal,
                "tax_amount": order.tax_amount,
                "service_charge": order.service_charge,
                "total_amount": order.total_amount,
                "discount_amount": order.discount_amount,
                "tax_savings": order.tax_savings,
                "gift_card_amount": order.gift_card_amount,
                "amount_due": order.amount_due,
                "coupon_code": order.coupon_code,
                "loyalty_points_used": order.loyalty_points_used,
                "status": order.status.value,
                "payment_status": order.payment_status.value,
                "notes": list(order.notes),
                "version": order.version,
                "created_at": format_timestamp(order.created_at),
                "updated_at": format_timestamp(order.updated_at),
            }
        )

    def _item_to_order(self, item: dict[str, Any]) -> Order:
        def money(name: str) -> Decimal:
            return to_cents(item.get(name, Decimal(0)))

        return Order(
            order_id=item["order_id"],
            customer_id=item.get("customer_id"),
            order_type=OrderType(item["order_type"]),
            subtotal=money("subtotal"),
            tax_amount=money("tax_amount"),
            service_charge=money("service_charge"),
            total_amount=money("total_amount"),
            discount_amount=money("discount_amount"),
            tax_savings=money("tax_savings"),
            gift_card_amount=money("gift_card_amount"),
            amount_due=money("amount_due") if "amount_due" in item else None,
            coupon_code=item.get("coupon_code"),
            loyalty_points_used=int(item.get("loyalty_points_used", 0)),
            status=OrderStatus(item["status"]),
            payment_status=PaymentStatus(item["payment_status"]),
            notes=tuple(item.get("notes", [])),
            version=int(item.get("version", 0)),
            created_at=parse_timestamp(item["created_at"]),
            updated_at=parse_timestamp(item["updated_at"]),
        )
