"""
Lazyproxy Dependency Injection System

A small, thread-safe container that lazy proxies plug into.

Key Features:
- Lifetimes: transient, scoped, singleton
- Constructor injection from type hints, with Annotated[T, Inject(...)]
- Eager and lazy registrations on a ServiceCollection
- Deterministic LIFO disposal of cached instances
- Cycle and missing-dependency validation of the registration graph
- Event diagnostics through the logging system
"""

from .core import (
    Provider,
    ProviderMeta,
    Container,
    ServiceCollection,
    ResolveCtx,
    token_key,
)

from .providers import (
    ClassProvider,
    FactoryProvider,
    ValueProvider,
    LazyProxyProvider,
)

from .scopes import (
    Lifetime,
    Scope,
    SCOPES,
    ScopeValidator,
)

from .decorators import (
    service,
    inject,
    Inject,
)

from .lifecycle import (
    Lifecycle,
    LifecycleHook,
)

from .graph import (
    DependencyGraph,
)

from .diagnostics import (
    DIDiagnostics,
    DIEvent,
    DIEventType,
    ConsoleDiagnosticListener,
)

from .errors import (
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

from .testing import (
    MockProvider,
    override_container,
)

__all__ = [
    # Core types
    "Provider",
    "ProviderMeta",
    "Container",
    "ServiceCollection",
    "ResolveCtx",
    "token_key",
    # Providers
    "ClassProvider",
    "FactoryProvider",
    "ValueProvider",
    "LazyProxyProvider",
    # Lifetimes
    "Lifetime",
    "Scope",
    "SCOPES",
    "ScopeValidator",
    # Decorators
    "service",
    "inject",
    "Inject",
    # Lifecycle
    "Lifecycle",
    "LifecycleHook",
    # Graph
    "DependencyGraph",
    # Diagnostics
    "DIDiagnostics",
    "DIEvent",
    "DIEventType",
    "ConsoleDiagnosticListener",
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
    # Testing
    "MockProvider",
    "override_container",
]
