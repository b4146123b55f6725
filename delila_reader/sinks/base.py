"""
Base classes for event sinks.

A sink is any downstream consumer of decoded EventRecords. The reader pushes
records one at a time and closes the sink when the stream ends.
"""

from abc import ABC, abstractmethod
from typing import Callable, List

from ..schema.records import EventRecord


class EventSink(ABC):
    """
    Abstract base class for event consumers.

    Subclasses must implement push(). close() is optional.
    """

    @abstractmethod
    def push(self, event: EventRecord) -> None:
        """Consume one event."""
        pass

    def close(self) -> None:
        """Called once after the last event."""
        pass


class ListSink(EventSink):
    """Collect events in memory."""

    def __init__(self):
        self.events: List[EventRecord] = []
        self.closed = False

    def push(self, event: EventRecord) -> None:
        self.events.append(event)

    def close(self) -> None:
        self.closed = True

    def __len__(self) -> int:
        return len(self.events)


class CallbackSink(EventSink):
    """Forward each event to a callable."""

    def __init__(self, callback: Callable[[EventRecord], None]):
        self.callback = callback

    def push(self, event: EventRecord) -> None:
        self.callback(event)
