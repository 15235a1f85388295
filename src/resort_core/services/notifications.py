"""Fire-and-forget delivery of status transition events.

Transitions never fail because of a notifier: StatusService logs any
exception raised by ``publish`` and carries on.
"""

import json
from abc import ABC, abstractmethod

import boto3
from botocore.exceptions import ClientError

from ..config import get_settings
from ..models import TransitionEvent
from ..utils.logging import get_correlation_id, get_logger

logger = get_logger(__name__)

DETAIL_TYPE = "StatusTransition"


class NotificationError(Exception):
    """Raised when a transition event could not be delivered."""

    pass


class TransitionNotifier(ABC):
    """Sink for transition events."""

    @abstractmethod
    def publish(self, event: TransitionEvent) -> None:
        """Deliver one event. May raise; callers treat failures as non-fatal."""


class LoggingNotifier(TransitionNotifier):
    """Writes transition events to the log only."""

    def publish(self, event: TransitionEvent) -> None:
        logger.info(
            "Transition event: %s %s %s -> %s",
            event.entity_type.value,
            event.entity_id,
            event.from_status,
            event.to_status,
            extra={"transition_event": event.model_dump(mode="json")},
        )


class EventBridgeNotifier(TransitionNotifier):
    """Publishes transition events to an Amazon EventBridge bus.

    Usage:
        notifier = EventBridgeNotifier(bus_name="resort-dev-events")
        StatusService(store, notifier=notifier)
    """

    def __init__(
        self,
        bus_name: str | None = None,
        source: str | None = None,
    ) -> None:
        """Initialize the EventBridge client.

        Args:
            bus_name: Event bus name (defaults to RESORT_EVENT_BUS_NAME, then "default")
            source: Event source (defaults to RESORT_EVENT_SOURCE)
        """
        settings = get_settings()
        self.bus_name = bus_name or settings.event_bus_name or "default"
        self.source = source or settings.event_source
        self._client = boto3.client("events")

    def publish(self, event: TransitionEvent) -> None:
        """Put the event on the bus.

        Raises:
            NotificationError: If EventBridge rejects the entry or the call fails
        """
        detail = event.model_dump(mode="json")
        correlation_id = get_correlation_id()
        if correlation_id:
            detail["correlation_id"] = correlation_id

        try:
            response = self._client.put_events(
                Entries=[
                    {
                        "Source": self.source,
                        "DetailType": DETAIL_TYPE,
                        "Detail": json.dumps(detail),
                        "EventBusName": self.bus_name,
                        "Resources": [event.entity_id],
                    }
                ]
            )
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            raise NotificationError(
                f"Failed to publish transition event ({error_code}): {e}"
            ) from e

        if response.get("FailedEntryCount", 0):
            entry = response["Entries"][0]
            raise NotificationError(
                f"EventBridge rejected transition event: {entry.get('ErrorCode')} "
                f"{entry.get('ErrorMessage')}"
            )

        logger.debug(
            "Published transition event %s for %s %s",
            response["Entries"][0].get("EventId"),
            event.entity_type.value,
            event.entity_id,
        )
