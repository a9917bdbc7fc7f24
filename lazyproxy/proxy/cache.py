"""
Process-wide dispatcher cache.

Append-only: a published dispatcher is never replaced. Lookups of published
entries take no lock. Concurrent misses for one descriptor may each generate a
dispatcher, but only the first published one is ever returned.
"""

from typing import Dict, Optional
import logging
import threading

from .descriptor import InterfaceDescriptor
from .generator import ProxyDispatcher, ProxyDispatcherGenerator

logger = logging.getLogger("lazyproxy.proxy.cache")


class ProxyDispatcherCache:
    """Memoizes one ``ProxyDispatcher`` per interface descriptor."""

    __slots__ = ("_entries", "_lock", "_generator")

    def __init__(self, generator: Optional[ProxyDispatcherGenerator] = None):
        self._entries: Dict[InterfaceDescriptor, ProxyDispatcher] = {}
        self._lock = threading.Lock()
        self._generator = generator or ProxyDispatcherGenerator()

    def get_or_create(self, descriptor: InterfaceDescriptor) -> ProxyDispatcher:
        """
        Return the dispatcher for ``descriptor``, generating it on first use.

        Generation failures are not cached; the next call tries again.
        """
        dispatcher = self._entries.get(descriptor)
        if dispatcher is not None:
            return dispatcher

        generated = self._generator.generate(descriptor)

        with self._lock:
            published = self._entries.setdefault(descriptor, generated)

        if published is not generated:
            logger.debug(f"Discarded redundant dispatcher for {descriptor.token}")
        return published

    def get(self, descriptor: InterfaceDescriptor) -> Optional[ProxyDispatcher]:
        """Published dispatcher or None. Never generates."""
        return self._entries.get(descriptor)

    def __contains__(self, descriptor: InterfaceDescriptor) -> bool:
        return descriptor in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        """Forget all dispatchers. Intended for test isolation only."""
        with self._lock:
            self._entries.clear()


# Module-level cache shared by the registration surface
default_cache = ProxyDispatcherCache()


def get_dispatcher(descriptor: InterfaceDescriptor) -> ProxyDispatcher:
    """Dispatcher for ``descriptor`` from the process-wide cache."""
    return default_cache.get_or_create(descriptor)
