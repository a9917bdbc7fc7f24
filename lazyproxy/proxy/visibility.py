"""
Restricted-visibility interfaces and the generator's trust relationship.

Python has no access modifiers, so "internal" follows the usual conventions:
an interface is restricted when a segment of its qualified name starts with an
underscore, or when its module publishes ``__all__`` without it. Generated
proxy classes live in the synthetic module ``lazyproxy.dynamic``; a module
allows that module to subclass its internal interfaces by declaring::

    __internals_visible_to__ = ("lazyproxy.dynamic",)

or by calling ``grant_internals_access("my.module")`` before registration.
"""

from types import ModuleType
from typing import Set, Union
import logging
import sys
import threading

from ..di.errors import InterfaceAccessError

logger = logging.getLogger("lazyproxy.proxy.visibility")

# Module name that generated proxy classes report as their __module__
DYNAMIC_MODULE = "lazyproxy.dynamic"

_granted: Set[str] = set()
_granted_lock = threading.Lock()


def grant_internals_access(module: Union[str, ModuleType]) -> None:
    """Trust the proxy generator with a module's internal interfaces."""
    name = module if isinstance(module, str) else module.__name__
    with _granted_lock:
        _granted.add(name)
    logger.debug(f"Granted internals access for module '{name}'")


def revoke_internals_access(module: Union[str, ModuleType]) -> None:
    """Undo ``grant_internals_access``."""
    name = module if isinstance(module, str) else module.__name__
    with _granted_lock:
        _granted.discard(name)


def is_exported(interface: type) -> bool:
    """True if the interface is part of its module's public surface."""
    segments = interface.__qualname__.split(".")
    if "<locals>" in segments:
        # Only the class path inside the innermost function counts
        segments = segments[len(segments) - segments[::-1].index("<locals>"):]
        module_level = False
    else:
        module_level = True
    if any(part.startswith("_") for part in segments):
        return False
    if not module_level:
        return True

    module = sys.modules.get(interface.__module__)
    exported = getattr(module, "__all__", None) if module is not None else None
    if exported is not None and segments[0] not in exported:
        return False
    return True


def module_trusts_generator(module_name: str) -> bool:
    """True if ``module_name`` declared or was granted the trust relationship."""
    if module_name in _granted:
        return True
    module = sys.modules.get(module_name)
    declared = getattr(module, "__internals_visible_to__", ()) if module is not None else ()
    if isinstance(declared, str):
        declared = (declared,)
    return DYNAMIC_MODULE in declared


def check_access(interface: type) -> None:
    """
    Ensure the generator may implement ``interface``.

    Raises:
        InterfaceAccessError: Restricted interface without trust
    """
    if is_exported(interface):
        return
    module_name = interface.__module__
    if not module_trusts_generator(module_name):
        raise InterfaceAccessError(interface, module_name, DYNAMIC_MODULE)
