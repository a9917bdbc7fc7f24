"""
Lazy proxy engine.

Generates, per interface shape, a proxy class that forwards every member to a
target built on first use.
"""

from .descriptor import (
    InterfaceDescriptor,
    MemberKind,
    MemberSignature,
    is_interface,
)

from .holder import (
    FailurePolicy,
    HolderState,
    LazyInstanceHolder,
)

from .generator import (
    ProxyDispatcher,
    ProxyDispatcherGenerator,
    enumerate_members,
)

from .cache import (
    ProxyDispatcherCache,
    default_cache,
    get_dispatcher,
)

from .runtime import (
    Invocation,
    holder_of,
    is_lazy_proxy,
    is_materialized,
    materialize,
    unwrap,
)

from .visibility import (
    DYNAMIC_MODULE,
    grant_internals_access,
    revoke_internals_access,
)

from .builder import create_instance

__all__ = [
    "InterfaceDescriptor",
    "MemberKind",
    "MemberSignature",
    "is_interface",
    "FailurePolicy",
    "HolderState",
    "LazyInstanceHolder",
    "ProxyDispatcher",
    "ProxyDispatcherGenerator",
    "enumerate_members",
    "ProxyDispatcherCache",
    "default_cache",
    "get_dispatcher",
    "Invocation",
    "holder_of",
    "is_lazy_proxy",
    "is_materialized",
    "materialize",
    "unwrap",
    "DYNAMIC_MODULE",
    "grant_internals_access",
    "revoke_internals_access",
    "create_instance",
]
