"""Availability guard: conflict-free reservations against finite resources."""

import datetime as dt

from ..config import get_settings
from ..models import (
    ConflictError,
    ErrorCode,
    Interval,
    NotFoundError,
    Reservation,
    Resource,
    ValidationError,
    new_entity_id,
    parse_entity_id,
)
from ..models.common import ensure_utc, utc_now
from ..models.enums import ReservationKind, ResourceStatus
from ..models.reservation import INITIAL_STATUS
from ..utils.logging import get_logger, log_reservation_operation
from .store import ReservationStore

logger = get_logger(__name__)

# Archiving checks every reservation from now until this cutoff
FAR_FUTURE = dt.datetime(2099, 12, 31, tzinfo=dt.UTC)


def _validate_occupancy(occupancy: object) -> int:
    if isinstance(occupancy, bool) or not isinstance(occupancy, int) or occupancy < 1:
        raise ValidationError(ErrorCode.INVALID_OCCUPANCY, {"occupancy": occupancy})
    return occupancy


class AvailabilityGuard:
    """Decides whether resources are free and creates reservations atomically.

    Each write is conditioned on the resource version observed while
    checking availability. A write that loses the race re-runs the whole
    check against fresh data, up to ``max_attempts`` times.
    """

    def __init__(
        self,
        store: ReservationStore,
        max_attempts: int | None = None,
    ) -> None:
        """Initialize the guard.

        Args:
            store: Persistence backend
            max_attempts: Optimistic retries per write (defaults to settings)
        """
        self.store = store
        self.max_attempts = max_attempts or get_settings().max_reservation_attempts

    def _load_resource(self, resource_id: str) -> Resource:
        resource = self.store.get_resource(resource_id)
        if resource is None:
            raise NotFoundError(ErrorCode.RESOURCE_NOT_FOUND, {"resource_id": resource_id})
        return resource

    def _has_conflict(
        self,
        resource: Resource,
        interval: Interval,
        exclude_reservation_id: str | None = None,
    ) -> bool:
        candidates = self.store.list_reservations_in_window(
            resource.resource_id, interval.day_bucket_window()
        )
        return any(
            r.conflicts_with(interval)
            for r in candidates
            if r.reservation_id != exclude_reservation_id
        )

    def _is_free(
        self,
        resource: Resource,
        interval: Interval,
        exclude_reservation_id: str | None = None,
    ) -> bool:
        return resource.is_offerable and not self._has_conflict(
            resource, interval, exclude_reservation_id
        )

    def is_available(
        self,
        resource_id: str,
        interval: Interval,
        exclude_reservation_id: str | None = None,
    ) -> bool:
        """Check whether a resource is free for an interval.

        Args:
            resource_id: Resource to check
            interval: Requested half-open interval
            exclude_reservation_id: Reservation to ignore (when rescheduling it)

        Returns:
            True if the resource is offerable and no non-terminal
            reservation overlaps the interval

        Raises:
            ValidationError: Malformed ID or inverted interval
            NotFoundError: Unknown resource
        """
        resource_id = parse_entity_id(resource_id, "resource_id")
        if exclude_reservation_id is not None:
            exclude_reservation_id = parse_entity_id(
                exclude_reservation_id, "exclude_reservation_id"
            )
        interval.validate_order()
        return self._is_free(
            self._load_resource(resource_id), interval, exclude_reservation_id
        )

    def create_reservation(
        self,
        resource_id: str,
        interval: Interval,
        occupancy: int,
        kind: ReservationKind = ReservationKind.BOOKING,
        reservation_id: str | None = None,
    ) -> Reservation:
        """Reserve a resource for an interval.

        Args:
            resource_id: Resource to reserve
            interval: Half-open interval [start, end)
            occupancy: Number of guests
            kind: Event (venue) or booking (chalet)
            reservation_id: Explicit ID (generated when omitted)

        Returns:
            The persisted Reservation in its initial status

        Raises:
            ValidationError: INVALID_ID, INVALID_INTERVAL or INVALID_OCCUPANCY
            NotFoundError: Unknown resource
            ConflictError: RESERVATION_EXISTS, EXCEEDS_CAPACITY,
                RESOURCE_UNAVAILABLE or CONCURRENT_MODIFICATION when every
                attempt lost a race
        """
        resource_id = parse_entity_id(resource_id, "resource_id")
        explicit_id = reservation_id is not None
        reservation_id = (
            parse_entity_id(reservation_id, "reservation_id")
            if reservation_id is not None
            else new_entity_id()
        )
        interval.validate_order()
        occupancy = _validate_occupancy(occupancy)

        log_context = {
            "resource_id": resource_id,
            "reservation_id": reservation_id,
            "start_at": interval.start.isoformat(),
            "end_at": interval.end.isoformat(),
            "occupancy": occupancy,
        }

        for attempt in range(1, self.max_attempts + 1):
            if explicit_id and self.store.get_reservation(reservation_id) is not None:
                log_reservation_operation(
                    logger, "create_reservation",
                    error=ErrorCode.RESERVATION_EXISTS.value, **log_context,
                )
                raise ConflictError(
                    ErrorCode.RESERVATION_EXISTS, {"reservation_id": reservation_id}
                )

            resource = self._load_resource(resource_id)

            if occupancy > resource.capacity:
                log_reservation_operation(
                    logger, "create_reservation",
                    error=ErrorCode.EXCEEDS_CAPACITY.value, **log_context,
                )
                raise ConflictError(
                    ErrorCode.EXCEEDS_CAPACITY,
                    {"occupancy": occupancy, "capacity": resource.capacity},
                )

            if not self._is_free(resource, interval):
                log_reservation_operation(
                    logger, "create_reservation",
                    error=ErrorCode.RESOURCE_UNAVAILABLE.value, **log_context,
                )
                raise ConflictError(
                    ErrorCode.RESOURCE_UNAVAILABLE, {"resource_id": resource_id}
                )

            now = utc_now()
            reservation = Reservation(
                reservation_id=reservation_id,
                resource_id=resource_id,
                kind=kind,
                interval=interval,
                occupancy=occupancy,
                status=INITIAL_STATUS[kind],
                created_at=now,
                updated_at=now,
            )
            if self.store.insert_reservation(reservation, resource.version):
                log_reservation_operation(
                    logger, "create_reservation", attempt=attempt, **log_context
                )
                return reservation

            logger.info(
                "Resource %s changed during reservation, retrying (attempt %d)",
                resource_id,
                attempt,
            )

        log_reservation_operation(
            logger, "create_reservation",
            error=ErrorCode.CONCURRENT_MODIFICATION.value, **log_context,
        )
        raise ConflictError(ErrorCode.CONCURRENT_MODIFICATION, {"resource_id": resource_id})

    def reschedule_reservation(
        self,
        reservation_id: str,
        interval: Interval,
        occupancy: int | None = None,
    ) -> Reservation:
        """Move a non-terminal reservation to a new interval.

        The reservation's own current slot does not count as a conflict.

        Args:
            reservation_id: Reservation to move
            interval: New half-open interval
            occupancy: New occupancy (keeps the current one when omitted)

        Returns:
            The updated Reservation

        Raises:
            ValidationError: Malformed input
            NotFoundError: Unknown reservation or resource
            ConflictError: RESERVATION_FINALIZED, EXCEEDS_CAPACITY,
                RESOURCE_UNAVAILABLE or CONCURRENT_MODIFICATION
        """
        reservation_id = parse_entity_id(reservation_id, "reservation_id")
        interval.validate_order()
        if occupancy is not None:
            occupancy = _validate_occupancy(occupancy)

        for attempt in range(1, self.max_attempts + 1):
            current = self.store.get_reservation(reservation_id)
            if current is None:
                raise NotFoundError(
                    ErrorCode.RESERVATION_NOT_FOUND, {"reservation_id": reservation_id}
                )
            if current.is_terminal:
                raise ConflictError(
                    ErrorCode.RESERVATION_FINALIZED,
                    {"reservation_id": reservation_id, "status": current.status.value},
                )

            resource = self._load_resource(current.resource_id)
            new_occupancy = occupancy if occupancy is not None else current.occupancy
            if new_occupancy > resource.capacity:
                raise ConflictError(
                    ErrorCode.EXCEEDS_CAPACITY,
                    {"occupancy": new_occupancy, "capacity": resource.capacity},
                )
            if not self._is_free(resource, interval, exclude_reservation_id=reservation_id):
                raise ConflictError(
                    ErrorCode.RESOURCE_UNAVAILABLE, {"resource_id": resource.resource_id}
                )

            updated = current.model_copy(
                update={
                    "interval": interval,
                    "occupancy": new_occupancy,
                    "updated_at": utc_now(),
                    "version": current.version + 1,
                }
            )
            if self.store.update_reservation(
                updated, expected_version=current.version, resource_version=resource.version
            ):
                log_reservation_operation(
                    logger,
                    "reschedule_reservation",
                    resource_id=resource.resource_id,
                    reservation_id=reservation_id,
                    start_at=interval.start.isoformat(),
                    end_at=interval.end.isoformat(),
                    occupancy=new_occupancy,
                    attempt=attempt,
                )
                return updated

        raise ConflictError(
            ErrorCode.CONCURRENT_MODIFICATION, {"reservation_id": reservation_id}
        )

    def archive_resource(
        self,
        resource_id: str,
        now: dt.datetime | None = None,
    ) -> Resource:
        """Close a resource for good once nothing is booked on it.

        Args:
            resource_id: Resource to archive
            now: Reference time (defaults to the current time)

        Returns:
            The closed Resource

        Raises:
            ConflictError: RESOURCE_HAS_ACTIVE_RESERVATIONS if any
                non-terminal reservation ends after now
        """
        resource_id = parse_entity_id(resource_id, "resource_id")
        now = ensure_utc(now) if now else utc_now()
        horizon = Interval(start=now, end=FAR_FUTURE)

        for _ in range(self.max_attempts):
            resource = self._load_resource(resource_id)
            active = [
                r
                for r in self.store.list_reservations_in_window(resource_id, horizon)
                if r.conflicts_with(horizon)
            ]
            if active:
                log_reservation_operation(
                    logger,
                    "archive_resource",
                    resource_id=resource_id,
                    error=ErrorCode.RESOURCE_HAS_ACTIVE_RESERVATIONS.value,
                    active_count=len(active),
                )
                raise ConflictError(
                    ErrorCode.RESOURCE_HAS_ACTIVE_RESERVATIONS,
                    {"resource_id": resource_id, "active_count": len(active)},
                )

            archived = resource.model_copy(
                update={
                    "status": ResourceStatus.CLOSED,
                    "archived_at": now,
                    "version": resource.version + 1,
                }
            )
            if self.store.update_resource(archived, expected_version=resource.version):
                log_reservation_operation(logger, "archive_resource", resource_id=resource_id)
                return archived

        raise ConflictError(ErrorCode.CONCURRENT_MODIFICATION, {"resource_id": resource_id})

    def set_resource_status(self, resource_id: str, status: ResourceStatus) -> Resource:
        """Change a resource's offerable status (e.g. put it in maintenance).

        Raises:
            ConflictError: CONCURRENT_MODIFICATION if every attempt lost a race
        """
        resource_id = parse_entity_id(resource_id, "resource_id")

        for _ in range(self.max_attempts):
            resource = self._load_resource(resource_id)
            updated = resource.model_copy(
                update={"status": status, "version": resource.version + 1}
            )
            if self.store.update_resource(updated, expected_version=resource.version):
                log_reservation_operation(
                    logger, "set_resource_status", resource_id=resource_id, status=status.value
                )
                return updated

        raise ConflictError(ErrorCode.CONCURRENT_MODIFICATION, {"resource_id": resource_id})
