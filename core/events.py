"""Event definitions and callback bus for pipeline notifications.

The delivery layer (web broadcast, console display) subscribes here. All
listeners must be attached before the pipeline starts: the bus is sealed on
start and late registration raises ListenerRegistrationClosed, so no early
event can be missed.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List

from core.errors import ListenerRegistrationClosed

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    TICK = "tick"
    BAR_UPDATE = "bar_update"
    BAR_CLOSED = "bar_closed"
    SIGNAL_GENERATED = "signal_generated"
    SIGNAL_VERIFIED = "signal_verified"
    METRICS_UPDATED = "metrics_updated"


Handler = Callable[[Any], None]


class PipelineEventBus:
    """Minimal sync bus; handler failures never break the data path."""

    def __init__(self):
        self._handlers: Dict[EventType, List[Handler]] = {t: [] for t in EventType}
        self._any_handlers: List[Callable[[EventType, Any], None]] = []
        self._sealed = False
        self._lock = threading.Lock()

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> None:
        """Close registration; called by the pipeline right before start."""
        self._sealed = True

    def _check_open(self) -> None:
        if self._sealed:
            raise ListenerRegistrationClosed("register listeners before starting the pipeline")

    # Subscription helpers
    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        with self._lock:
            self._check_open()
            self._handlers[EventType(event_type)].append(handler)

    def subscribe_all(self, handler: Callable[[EventType, Any], None]) -> None:
        """Receive every event as (event_type, payload)."""
        with self._lock:
            self._check_open()
            self._any_handlers.append(handler)

    def on_tick(self, handler: Handler) -> None:
        self.subscribe(EventType.TICK, handler)

    def on_bar_update(self, handler: Handler) -> None:
        self.subscribe(EventType.BAR_UPDATE, handler)

    def on_bar_closed(self, handler: Handler) -> None:
        self.subscribe(EventType.BAR_CLOSED, handler)

    def on_signal(self, handler: Handler) -> None:
        self.subscribe(EventType.SIGNAL_GENERATED, handler)

    def on_signal_verified(self, handler: Handler) -> None:
        self.subscribe(EventType.SIGNAL_VERIFIED, handler)

    def on_metrics(self, handler: Handler) -> None:
        self.subscribe(EventType.METRICS_UPDATED, handler)

    def remove_handler(self, event_type: EventType, handler: Handler) -> bool:
        """Remove a handler. Returns True if removed."""
        with self._lock:
            try:
                self._handlers[EventType(event_type)].remove(handler)
                return True
            except ValueError:
                return False

    def handler_count(self, event_type: EventType) -> int:
        return len(self._handlers[EventType(event_type)]) + len(self._any_handlers)

    # Emitter
    def emit(self, event_type: EventType, payload: Any) -> None:
        event_type = EventType(event_type)
        for handler in list(self._handlers[event_type]):
            try:
                handler(payload)
            except Exception as e:
                logger.warning("[EVENT] %s handler error: %s", event_type.value, e)
                continue
        for handler in list(self._any_handlers):
            try:
                handler(event_type, payload)
            except Exception as e:
                logger.warning("[EVENT] %s broadcast handler error: %s", event_type.value, e)
                continue
