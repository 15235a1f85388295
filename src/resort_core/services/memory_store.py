"""In-process ReservationStore backed by dictionaries and a lock."""

import threading

from ..models import Interval, Order, Reservation, Resource
from .store import ReservationStore


class InMemoryStore(ReservationStore):
    """Thread-safe store for local use and tests.

    Every compare-and-set runs under one lock, which gives the same
    guarantees the DynamoDB transactions give across processes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._resources: dict[str, Resource] = {}
        self._reservations: dict[str, Reservation] = {}
        self._orders: dict[str, Order] = {}

    def get_resource(self, resource_id: str) -> Resource | None:
        with self._lock:
            return self._resources.get(resource_id)

    def save_resource(self, resource: Resource) -> None:
        with self._lock:
            self._resources[resource.resource_id] = resource

    def update_resource(self, resource: Resource, expected_version: int) -> bool:
        with self._lock:
            current = self._resources.get(resource.resource_id)
            if current is None or current.version != expected_version:
                return False
            self._resources[resource.resource_id] = resource
            return True

    def get_reservation(self, reservation_id: str) -> Reservation | None:
        with self._lock:
            return self._reservations.get(reservation_id)

    def list_reservations_in_window(
        self, resource_id: str, window: Interval
    ) -> list[Reservation]:
        with self._lock:
            return sorted(
                (
                    r
                    for r in self._reservations.values()
                    if r.resource_id == resource_id and r.interval.overlaps(window)
                ),
                key=lambda r: r.interval.start,
            )

    def _bump_version(self, resource_id: str, resource_version: int) -> bool:
        current = self._resources.get(resource_id)
        if current is None or current.version != resource_version:
            return False
        self._resources[resource_id] = current.model_copy(
            update={"version": resource_version + 1}
        )
        return True

    def insert_reservation(self, reservation: Reservation, resource_version: int) -> bool:
        with self._lock:
            if reservation.reservation_id in self._reservations:
                return False
            if not self._bump_version(reservation.resource_id, resource_version):
                return False
            self._reservations[reservation.reservation_id] = reservation
            return True

    def update_reservation(
        self,
        reservation: Reservation,
        expected_version: int,
        resource_version: int | None = None,
    ) -> bool:
        with self._lock:
            current = self._reservations.get(reservation.reservation_id)
            if current is None or current.version != expected_version:
                return False
            if resource_version is not None and not self._bump_version(
                reservation.resource_id, resource_version
            ):
                return False
            self._reservations[reservation.reservation_id] = reservation
            return True

    def get_order(self, order_id: str) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

    def insert_order(self, order: Order) -> bool:
        with self._lock:
            if order.order_id in self._orders:
                return False
            self._orders[order.order_id] = order
            return True

    def update_order(self, order: Order, expected_version: int) -> bool:
        with self._lock:
            current = self._orders.get(order.order_id)
            if current is None or current.version != expected_version:
                return False
            self._orders[order.order_id] = order
            return True
