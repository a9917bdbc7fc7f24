"""
Lifecycle management for containers.
"""

from typing import Callable, List, Tuple
from dataclasses import dataclass
import logging

logger = logging.getLogger("lazyproxy.di.lifecycle")


@dataclass
class LifecycleHook:
    """
    Shutdown hook registration.

    Hooks run before finalizers when the container shuts down.
    """

    name: str
    callback: Callable[[], None]
    priority: int = 0  # Higher priority runs first


class Lifecycle:
    """
    Manages shutdown hooks and deterministic disposal.

    Finalizers run last-registered first. Failures in one hook or finalizer
    are logged and do not stop the others.
    """

    __slots__ = (
        "_shutdown_hooks",
        "_finalizers",
    )

    def __init__(self):
        self._shutdown_hooks: List[LifecycleHook] = []
        self._finalizers: List[Tuple[str, Callable[[], None]]] = []

    def on_shutdown(
        self,
        callback: Callable[[], None],
        *,
        name: str = "shutdown_hook",
        priority: int = 0,
    ) -> None:
        """
        Register shutdown hook.

        Args:
            callback: Callback to run on shutdown
            name: Hook name for diagnostics
            priority: Higher priority runs first
        """
        self._shutdown_hooks.append(LifecycleHook(name=name, callback=callback, priority=priority))
        self._shutdown_hooks.sort(key=lambda h: -h.priority)  # Descending

    def register_finalizer(
        self,
        finalizer: Callable[[], None],
        *,
        name: str = "finalizer",
    ) -> None:
        """Register finalizer for cleanup."""
        self._finalizers.append((name, finalizer))

    def run_shutdown_hooks(self) -> None:
        """Run all shutdown hooks in priority order."""
        for hook in self._shutdown_hooks:
            try:
                hook.callback()
            except Exception as e:
                logger.warning(f"Shutdown hook '{hook.name}' failed: {e}")

    def run_finalizers(self) -> None:
        """Run all finalizers, most recently registered first."""
        for name, finalizer in reversed(self._finalizers):
            try:
                finalizer()
            except Exception as e:
                logger.warning(f"Finalizer '{name}' failed: {e}")

    def clear(self) -> None:
        """Clear all hooks and finalizers."""
        self._shutdown_hooks.clear()
        self._finalizers.clear()
