"""Events published by the benchmark controller to its subscribers."""

from common.messaging.events import Event, EventType

__all__ = ["Event", "EventType"]
