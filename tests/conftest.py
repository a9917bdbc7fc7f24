"""
Shared test fixtures and helpers for the lazyproxy test suite.
"""

import logging

import pytest

from lazyproxy.di.diagnostics import DIDiagnostics, DIEvent
from lazyproxy.proxy.cache import ProxyDispatcherCache
from lazyproxy.proxy.generator import ProxyDispatcherGenerator

# Import fixtures so pytest can discover them
from lazyproxy.di.testing import (  # noqa: F401
    service_collection,
    di_container,
    scoped_container,
    mock_provider,
)


class RecordingListener:
    """Diagnostic listener that keeps every event."""

    def __init__(self):
        self.events: list[DIEvent] = []

    def on_event(self, event: DIEvent) -> None:
        self.events.append(event)

    def types(self) -> list:
        return [event.type for event in self.events]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def recorder() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def diagnostics(recorder) -> DIDiagnostics:
    diagnostics = DIDiagnostics()
    diagnostics.add_listener(recorder)
    return diagnostics


@pytest.fixture
def dispatcher_cache(diagnostics) -> ProxyDispatcherCache:
    """A private dispatcher cache so tests don't share generated classes."""
    return ProxyDispatcherCache(ProxyDispatcherGenerator(diagnostics))


@pytest.fixture
def debug_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="lazyproxy")
    return caplog
