"""
DI Diagnostics - Observability and event tracking for containers and proxies.
"""

import time
from typing import Any, Dict, List, Optional, Protocol
from enum import Enum
import dataclasses
import logging

logger = logging.getLogger("lazyproxy.di.diagnostics")


class DIEventType(Enum):
    """Types of DI events."""
    REGISTRATION = "registration"
    RESOLUTION_START = "resolution_start"
    RESOLUTION_SUCCESS = "resolution_success"
    RESOLUTION_FAILURE = "resolution_failure"
    DISPATCHER_GENERATED = "dispatcher_generated"
    MATERIALIZATION_START = "materialization_start"
    MATERIALIZATION_SUCCESS = "materialization_success"
    MATERIALIZATION_FAILURE = "materialization_failure"
    LIFECYCLE_SHUTDOWN = "lifecycle_shutdown"


@dataclasses.dataclass
class DIEvent:
    """A diagnostic event in the DI system."""
    type: DIEventType
    timestamp: float = dataclasses.field(default_factory=time.time)
    token: Optional[Any] = None
    tag: Optional[str] = None
    provider_name: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[BaseException] = None
    metadata: Dict[str, Any] = dataclasses.field(default_factory=dict)


class DiagnosticListener(Protocol):
    """Interface for DI diagnostic listeners."""
    def on_event(self, event: DIEvent) -> None:
        """Called when a DI event occurs."""
        ...


class ConsoleDiagnosticListener:
    """Diagnostic listener that writes events to the logging system."""
    def __init__(self, log_level: int = logging.DEBUG):
        self.log_level = log_level

    def on_event(self, event: DIEvent) -> None:
        if event.type == DIEventType.REGISTRATION:
            logger.log(self.log_level, f"Registered provider '{event.provider_name}' for token={event.token} (tag={event.tag})")
        elif event.type == DIEventType.RESOLUTION_START:
            logger.log(self.log_level, f"Resolving token={event.token} (tag={event.tag})...")
        elif event.type == DIEventType.RESOLUTION_SUCCESS:
            logger.log(self.log_level, f"✓ Resolved token={event.token} in {event.duration:.4f}s")
        elif event.type == DIEventType.RESOLUTION_FAILURE:
            logger.log(logging.ERROR, f"✗ Failed to resolve token={event.token}: {event.error}")
        elif event.type == DIEventType.DISPATCHER_GENERATED:
            logger.log(self.log_level, f"Generated proxy dispatcher for {event.token} ({event.metadata.get('members', 0)} members)")
        elif event.type == DIEventType.MATERIALIZATION_START:
            logger.log(self.log_level, f"Materializing lazy target for {event.token}...")
        elif event.type == DIEventType.MATERIALIZATION_SUCCESS:
            logger.log(self.log_level, f"✓ Materialized {event.token} in {event.duration:.4f}s")
        elif event.type == DIEventType.MATERIALIZATION_FAILURE:
            logger.log(logging.ERROR, f"✗ Failed to materialize {event.token}: {event.error}")
        elif event.type == DIEventType.LIFECYCLE_SHUTDOWN:
            logger.log(logging.INFO, f"Container shutdown: {event.metadata.get('scope', 'unknown')}")


class DIDiagnostics:
    """Coordinator for DI diagnostic listeners."""
    def __init__(self):
        self._listeners: List[DiagnosticListener] = []

    def add_listener(self, listener: DiagnosticListener) -> None:
        """Add a diagnostic listener."""
        self._listeners.append(listener)

    def emit(self, event_type: DIEventType, **kwargs) -> None:
        """Emit a diagnostic event to all listeners."""
        if not self._listeners:
            return
        event = DIEvent(type=event_type, **kwargs)
        for listener in self._listeners:
            try:
                listener.on_event(event)
            except Exception as e:
                # Diagnostics should never crash the main application
                logger.error(f"Diagnostic listener error: {e}")

    def measure(
        self,
        event_type: DIEventType,
        success: DIEventType = DIEventType.RESOLUTION_SUCCESS,
        failure: DIEventType = DIEventType.RESOLUTION_FAILURE,
        **kwargs,
    ):
        """Context manager that emits a start event and a timed outcome event."""
        return _DiagnosticMeasure(self, event_type, success, failure, **kwargs)


class _DiagnosticMeasure:
    def __init__(self, diagnostics: DIDiagnostics, event_type, success, failure, **kwargs):
        self.diagnostics = diagnostics
        self.event_type = event_type
        self.success = success
        self.failure = failure
        self.kwargs = kwargs
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        self.diagnostics.emit(self.event_type, **self.kwargs)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self.start_time
        if exc_type:
            self.diagnostics.emit(
                self.failure,
                duration=duration,
                error=exc_val,
                **self.kwargs
            )
        else:
            self.diagnostics.emit(
                self.success,
                duration=duration,
                **self.kwargs
            )
        return False


# Shared instance for components that live outside any container
# (dispatcher generation, standalone proxies).
global_diagnostics = DIDiagnostics()
