"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Structured logging formatter for consistent log output
- Helper functions for reservation, redemption and transition logging

Usage:
    from resort_core.utils.logging import get_logger, set_correlation_id

    # In the request handler that calls into the core:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Reservation created", extra={"reservation_id": "..."})
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def generate_correlation_id() -> str:
    """Generate a new correlation ID.

    Returns:
        UUID-based correlation ID string
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for structured log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)

        # Correlation ID prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


def configure_logging(level: str | int = "INFO") -> None:
    """Install a stderr handler with the structured formatter on the package logger.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Log level name or number
    """
    package_logger = logging.getLogger("resort_core")
    package_logger.setLevel(level)

    if not any(
        isinstance(h.formatter, StructuredFormatter) for h in package_logger.handlers
    ):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(StructuredFormatter(DEFAULT_FORMAT))
        handler.addFilter(CorrelationIdFilter())
        package_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def _emit(
    logger: logging.Logger,
    message: str,
    context: dict[str, Any],
    *,
    failed: bool,
) -> None:
    if failed:
        logger.error(message, extra=context)
    else:
        logger.info(message, extra=context)


def log_reservation_operation(
    logger: logging.Logger,
    operation: str,
    *,
    resource_id: str | None = None,
    reservation_id: str | None = None,
    start_at: str | None = None,
    end_at: str | None = None,
    occupancy: int | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a reservation operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "create_reservation", "archive_resource")
        resource_id: Resource ID if available
        reservation_id: Reservation ID if available
        start_at: Interval start (ISO format)
        end_at: Interval end (ISO format)
        occupancy: Requested occupancy
        error: Error code or message if the operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if resource_id:
        context["resource_id"] = resource_id
    if reservation_id:
        context["reservation_id"] = reservation_id
    if start_at:
        context["start_at"] = start_at
    if end_at:
        context["end_at"] = end_at
    if occupancy is not None:
        context["occupancy"] = occupancy
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Reservation operation: {operation}"]
    for key, value in context.items():
        if key != "operation":
            msg_parts.append(f"{key}={value}")

    _emit(logger, " | ".join(msg_parts), context, failed=bool(error))


def log_redemption_operation(
    logger: logging.Logger,
    operation: str,
    *,
    order_id: str | None = None,
    instrument_kind: str | None = None,
    instrument_id: str | None = None,
    amount: Any = None,
    points: int | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log an instrument redemption with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "redeem_gift_card", "commit_checkout")
        order_id: Order the redemption is keyed on
        instrument_kind: coupon, loyalty or gift_card
        instrument_id: Coupon code, gift card code or loyalty user ID
        amount: Monetary amount involved
        points: Loyalty points involved
        result: Outcome (applied, replayed, rejected, reversed)
        error: Error code if the redemption failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if order_id:
        context["order_id"] = order_id
    if instrument_kind:
        context["instrument_kind"] = instrument_kind
    if instrument_id:
        context["instrument_id"] = instrument_id
    if amount is not None:
        context["amount"] = str(amount)
    if points is not None:
        context["points"] = points
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Redemption operation: {operation}"]
    if order_id:
        msg_parts.append(f"order={order_id}")
    if instrument_kind:
        msg_parts.append(f"{instrument_kind}={instrument_id}")
    if amount is not None:
        msg_parts.append(f"amount={amount}")
    if result:
        msg_parts.append(f"result={result}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "rejected":
        logger.warning(message, extra=context)
    else:
        _emit(logger, message, context, failed=bool(error))


def log_transition(
    logger: logging.Logger,
    entity_type: str,
    entity_id: str,
    from_status: str,
    to_status: str,
    *,
    action: str | None = None,
    actor_id: str | None = None,
    **extra: Any,
) -> None:
    """Log a successful status transition.

    Args:
        logger: Logger instance
        entity_type: event, booking or order
        entity_id: Entity ID
        from_status: Status before the transition
        to_status: Status after the transition
        action: Action that triggered the transition
        actor_id: Staff member or customer who triggered it
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "entity_type": entity_type,
        "entity_id": entity_id,
        "from_status": from_status,
        "to_status": to_status,
    }
    if action:
        context["action"] = action
    if actor_id:
        context["actor_id"] = actor_id

    context.update(extra)

    logger.info(
        "Status transition: %s %s %s -> %s",
        entity_type,
        entity_id,
        from_status,
        to_status,
        extra=context,
    )
