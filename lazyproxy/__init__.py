"""
Lazyproxy - Lazy service proxies for dependency injection

Complete integration of:
- Proxy engine: per-interface generated proxy classes and dispatchers
- Holders: thread-safe, at-most-once materialization of targets
- DI: Service collection and container with transient/scoped/singleton lifetimes
- Registration: add_lazy_* registrations that defer construction to first use
- Config: Layered configuration from files, .env and environment

Example:
    services = ServiceCollection()
    services.add_lazy_singleton(ReportStore, S3ReportStore)
    container = services.build_container()

    store = container.resolve(ReportStore)   # proxy, nothing built yet
    store.put(report)                        # S3ReportStore built here
"""

__version__ = "0.1.0"

# ============================================================================
# Dependency Injection
# ============================================================================

from .di import (
    Container,
    ServiceCollection,
    Lifetime,
    Inject,
    inject,
    service,
    DIError,
    RegistrationError,
    NotAnInterfaceError,
    ResolutionError,
    ProviderNotFoundError,
    DependencyCycleError,
    ScopeViolationError,
    ProxyGenerationError,
    InterfaceAccessError,
    CircularDependencyError,
    MissingDependencyError,
)

# ============================================================================
# Proxy Engine
# ============================================================================

from .proxy import (
    InterfaceDescriptor,
    FailurePolicy,
    HolderState,
    LazyInstanceHolder,
    ProxyDispatcher,
    ProxyDispatcherCache,
    create_instance,
    grant_internals_access,
    revoke_internals_access,
    is_lazy_proxy,
    is_materialized,
    materialize,
    unwrap,
)

# ============================================================================
# Registration & Config
# ============================================================================

from .registration import add_lazy, wrap_for_laziness
from .config import ConfigError, ConfigLoader, LazyProxyConfig

__all__ = [
    "__version__",
    # DI
    "Container",
    "ServiceCollection",
    "Lifetime",
    "Inject",
    "inject",
    "service",
    # Errors
    "DIError",
    "RegistrationError",
    "NotAnInterfaceError",
    "ResolutionError",
    "ProviderNotFoundError",
    "DependencyCycleError",
    "ScopeViolationError",
    "ProxyGenerationError",
    "InterfaceAccessError",
    "CircularDependencyError",
    "MissingDependencyError",
    # Proxy engine
    "InterfaceDescriptor",
    "FailurePolicy",
    "HolderState",
    "LazyInstanceHolder",
    "ProxyDispatcher",
    "ProxyDispatcherCache",
    "create_instance",
    "grant_internals_access",
    "revoke_internals_access",
    "is_lazy_proxy",
    "is_materialized",
    "materialize",
    "unwrap",
    # Registration
    "add_lazy",
    "wrap_for_laziness",
    # Config
    "ConfigError",
    "ConfigLoader",
    "LazyProxyConfig",
]
