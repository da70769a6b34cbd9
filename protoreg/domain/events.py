"""Domain events for decoupled side effects and integrations."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional
from uuid import uuid4

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for all domain events."""
    event_id: str
    timestamp: Optional[datetime]
    aggregate_id: str

    def __post_init__(self):
        if not self.event_id:
            self.event_id = str(uuid4())
        if not self.timestamp:
            self.timestamp = datetime.now()


@dataclass
class CompilationStarted(DomainEvent):
    """Raised when a language compile is dispatched to the sandbox."""
    language: str
    cache_key: str


@dataclass
class CompilationSucceeded(DomainEvent):
    """Raised when a language compile finishes (fresh or from cache)."""
    language: str
    cache_hit: bool
    duration: float
    storage_key: str


@dataclass
class CompilationFailed(DomainEvent):
    """Raised when a language compile ends in failure."""
    language: str
    error: str


class DomainEventPublisher:
    """Singleton publisher for domain events."""

    _instance: DomainEventPublisher | None = None
    _subscribers: Dict[type, List[Callable[[DomainEvent], None]]]
    _lock: threading.Lock

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._subscribers = {}
            cls._instance._lock = threading.Lock()
        return cls._instance

    def subscribe(self, event_type: type[DomainEvent], handler: Callable[[DomainEvent], None]) -> None:
        """Subscribe a handler to an event type."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def publish(self, event: DomainEvent) -> None:
        """Publish an event to all subscribers."""
        with self._lock:
            handlers = list(self._subscribers.get(type(event), ()))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # Handlers never fail the compile that raised the event
                logger.exception(f"Event handler error for {type(event).__name__}")

    def clear_subscribers(self) -> None:
        """Clear all subscribers (useful for testing)."""
        with self._lock:
            self._subscribers = {}


# Singleton instance
event_publisher = DomainEventPublisher()
