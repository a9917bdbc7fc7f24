"""
Standalone lazy proxy construction, without a container.
"""

from typing import Any, Callable, Optional, TypeVar, Union

from ..di.diagnostics import DIDiagnostics
from ..di.errors import RegistrationError
from .cache import ProxyDispatcherCache, default_cache
from .descriptor import InterfaceDescriptor
from .holder import FailurePolicy, LazyInstanceHolder

T = TypeVar("T")


def create_instance(
    service_type: Any,
    factory: Callable[[], T],
    *,
    policy: Union[FailurePolicy, str] = FailurePolicy.RETRY,
    cache: Optional[ProxyDispatcherCache] = None,
    diagnostics: Optional[DIDiagnostics] = None,
) -> T:
    """
    Create a proxy for ``service_type`` whose target is built by ``factory``
    on first member access.

    Example:
        >>> repo = create_instance(UserRepository, lambda: SqlUserRepository(dsn))
        >>> repo.find(42)   # SqlUserRepository is constructed here
    """
    if factory is None:
        raise RegistrationError("factory must not be None", argument="factory")
    descriptor = InterfaceDescriptor.of(service_type)
    dispatcher = (cache or default_cache).get_or_create(descriptor)
    holder = LazyInstanceHolder(
        factory,
        policy=FailurePolicy(policy),
        name=descriptor.token,
        diagnostics=diagnostics,
    )
    return dispatcher.create_proxy(holder)
