"""Persistence contract for resources, reservations and orders.

Backends must make ``insert_reservation`` atomic with the compare-and-set of
the owning resource's version; that is what turns the guard's read-check-
insert sequence into a single unit against concurrent callers.
"""

from abc import ABC, abstractmethod

from ..models import Interval, Order, Reservation, Resource


class ReservationStore(ABC):
    """Storage operations consumed by the reservation and checkout core."""

    # Resources

    @abstractmethod
    def get_resource(self, resource_id: str) -> Resource | None:
        """Return the resource or None if it does not exist."""

    @abstractmethod
    def save_resource(self, resource: Resource) -> None:
        """Create or replace a resource (catalog seeding)."""

    @abstractmethod
    def update_resource(self, resource: Resource, expected_version: int) -> bool:
        """Replace a resource if its stored version still equals expected_version.

        The caller passes the resource with its version already bumped.

        Returns:
            True if written, False if the version moved on
        """

    # Reservations

    @abstractmethod
    def get_reservation(self, reservation_id: str) -> Reservation | None:
        """Return the reservation or None if it does not exist."""

    @abstractmethod
    def list_reservations_in_window(
        self, resource_id: str, window: Interval
    ) -> list[Reservation]:
        """All reservations on a resource whose interval intersects window.

        Terminal reservations are included; callers decide what counts.
        """

    @abstractmethod
    def insert_reservation(self, reservation: Reservation, resource_version: int) -> bool:
        """Insert a new reservation and bump its resource's version.

        Both writes happen atomically, and only if the resource version still
        equals resource_version and no reservation with the same ID exists.

        Returns:
            True if inserted, False if the resource changed since it was read
        """

    @abstractmethod
    def update_reservation(
        self,
        reservation: Reservation,
        expected_version: int,
        resource_version: int | None = None,
    ) -> bool:
        """Replace a reservation if its stored version equals expected_version.

        The caller passes the reservation with its version already bumped.

        When resource_version is given, the resource version is also
        compare-and-set and bumped in the same atomic write.

        Returns:
            True if written, False if a condition failed
        """

    # Orders

    @abstractmethod
    def get_order(self, order_id: str) -> Order | None:
        """Return the order or None if it does not exist."""

    @abstractmethod
    def insert_order(self, order: Order) -> bool:
        """Insert a new order. Returns False if the ID is taken."""

    @abstractmethod
    def update_order(self, order: Order, expected_version: int) -> bool:
        """Replace an order if its stored version equals expected_version.

        The caller passes the order with its version already bumped.
        """
