"""Reservation conflict resolution, status state machines and discount stacking."""

__version__ = "0.1.0"
