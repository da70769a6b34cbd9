"""Event handlers for compilation domain events."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from protoreg.domain.events import (
        CompilationStarted,
        CompilationSucceeded,
        CompilationFailed,
    )

logger = logging.getLogger(__name__)


class AuditLogHandler:
    """Logs all compilation events for audit trail."""

    def handle_compilation_started(self, event: CompilationStarted) -> None:
        logger.info(f"[AUDIT] Compilation started: {event.aggregate_id} (key {event.cache_key[:12]})")

    def handle_compilation_succeeded(self, event: CompilationSucceeded) -> None:
        source = "cache" if event.cache_hit else "sandbox"
        logger.info(
            f"[AUDIT] Compilation succeeded: {event.aggregate_id} from {source} "
            f"in {event.duration:.3f}s"
        )

    def handle_compilation_failed(self, event: CompilationFailed) -> None:
        logger.warning(f"[AUDIT] Compilation failed: {event.aggregate_id} - {event.error}")


def register_event_handlers():
    """Register all event handlers with the publisher."""
    from protoreg.domain.events import (
        event_publisher,
        CompilationStarted,
        CompilationSucceeded,
        CompilationFailed,
    )

    audit = AuditLogHandler()

    event_publisher.subscribe(CompilationStarted, audit.handle_compilation_started)
    event_publisher.subscribe(CompilationSucceeded, audit.handle_compilation_succeeded)
    event_publisher.subscribe(CompilationFailed, audit.handle_compilation_failed)
