"""
Core DI types and protocols.

Defines the fundamental contracts for the container the lazy proxies plug into:
provider metadata, the resolution context, the container with its scopes, and
the service collection that builds it.
"""

from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Protocol,
    Tuple,
    Type,
    TypeVar,
    get_args,
    get_origin,
    runtime_checkable,
)
from dataclasses import dataclass, field
import logging
import threading

from .diagnostics import DIDiagnostics, DIEventType
from .errors import (
    DependencyCycleError,
    ProviderNotFoundError,
    RegistrationError,
    ScopeViolationError,
)
from .lifecycle import Lifecycle
from .scopes import Lifetime, ScopeValidator

logger = logging.getLogger("lazyproxy.di.core")

# Module-level cache: type → "module.qualname" string
_type_key_cache: Dict[Any, str] = {}

# Lifetimes that cache instances in a container
_CACHEABLE_LIFETIMES = frozenset(("singleton", "scoped"))

_MISSING = object()

T = TypeVar("T")


def token_key(token: Any) -> str:
    """
    Convert a type, generic alias or string to a registry key.

    Closed generics get their arguments in the key, so ``Repo[User, int]`` and
    ``Repo[Order, int]`` are distinct services.
    """
    if isinstance(token, str):
        return token

    try:
        key = _type_key_cache.get(token)
    except TypeError:
        key = None
    if key is not None:
        return key

    if isinstance(token, type):
        key = f"{token.__module__}.{token.__qualname__}"
    elif get_origin(token) is not None and isinstance(get_origin(token), type):
        origin = get_origin(token)
        args = ", ".join(token_key(a) for a in get_args(token))
        key = f"{origin.__module__}.{origin.__qualname__}[{args}]"
    else:
        return str(token)

    try:
        _type_key_cache[token] = key
    except TypeError:
        pass
    return key


def make_key(token: Any, tag: Optional[str] = None) -> str:
    """Registry key for a token and optional tag."""
    key = token_key(token)
    if tag:
        return f"{key}#{tag}"
    return key


@dataclass(frozen=True, slots=True)
class ProviderMeta:
    """
    Compact, serializable provider metadata.
    """
    name: str
    token: str  # Type name or string key
    lifetime: str  # "singleton", "scoped", "transient"
    tags: tuple[str, ...] = field(default_factory=tuple)
    module: str = ""
    qualname: str = ""
    line: Optional[int] = None
    lazy: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for diagnostics output."""
        return {
            "name": self.name,
            "token": self.token,
            "lifetime": self.lifetime,
            "tags": list(self.tags),
            "module": self.module,
            "qualname": self.qualname,
            "line": self.line,
            "lazy": self.lazy,
        }


class ResolveCtx:
    """
    Context for one resolution chain.

    Tracks the resolution stack for cycle detection and the metadata of the
    provider currently being instantiated (the consumer) for scope checks.
    Child contexts share the stack list.
    """
    __slots__ = ("container", "stack", "consumer")

    def __init__(
        self,
        container: "Container",
        stack: Optional[List[str]] = None,
        consumer: Optional[ProviderMeta] = None,
    ):
        self.container = container
        self.stack: List[str] = stack if stack is not None else []
        self.consumer = consumer

    def push(self, token: str) -> None:
        """Push token onto resolution stack."""
        self.stack.append(token)

    def pop(self) -> None:
        """Pop token from resolution stack."""
        self.stack.pop()

    def in_cycle(self, token: str) -> bool:
        """Check if token is currently being resolved (cycle)."""
        return token in self.stack

    def get_trace(self) -> List[str]:
        """Get current resolution trace for error messages."""
        return self.stack.copy()

    def resolve(
        self,
        token: Any,
        *,
        tag: Optional[str] = None,
        optional: bool = False,
    ) -> Any:
        """Resolve a dependency as part of this chain."""
        return self.container._resolve(token, tag, optional, self)


@runtime_checkable
class Provider(Protocol):
    """
    Provider protocol - how to instantiate a dependency.

    All providers must implement this interface.
    """

    @property
    def meta(self) -> ProviderMeta:
        """Provider metadata."""
        ...

    def instantiate(self, ctx: ResolveCtx) -> Any:
        """
        Instantiate the provider.

        Args:
            ctx: Resolution context with container and stack

        Returns:
            The instantiated object
        """
        ...


class Container:
    """
    DI Container - manages provider instances and scopes.

    The root container owns singletons; ``create_scope()`` returns a child that
    caches scoped services and delegates singletons to the root. Cache misses
    for cacheable lifetimes are serialized per key, so concurrent threads get
    one instance.
    """

    __slots__ = (
        "_providers",
        "_cache",
        "_scope",
        "_parent",
        "_root",
        "_locks",
        "_locks_guard",
        "_diagnostics",
        "_lifecycle",
        "_config",
        "_closed",
    )

    def __init__(
        self,
        scope: str = "root",
        parent: Optional["Container"] = None,
        diagnostics: Optional[DIDiagnostics] = None,
        config: Optional[Any] = None,
    ):
        from ..config import LazyProxyConfig

        self._providers: Dict[str, Provider] = {}  # {cache_key: provider}
        self._cache: Dict[str, Any] = {}  # {cache_key: instance}
        self._scope = scope
        self._parent = parent
        self._root: Container = parent._root if parent is not None else self
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._diagnostics = diagnostics or DIDiagnostics()
        self._lifecycle = Lifecycle()
        self._config = config or LazyProxyConfig()
        self._closed = False

    @property
    def config(self) -> Any:
        return self._config

    @property
    def diagnostics(self) -> DIDiagnostics:
        return self._diagnostics

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def parent(self) -> Optional["Container"]:
        return self._parent

    def register(self, provider: Provider, tag: Optional[str] = None) -> None:
        """
        Register a provider.

        Re-registering a token replaces the earlier provider (last
        registration wins); registering the same provider twice is a no-op.

        Args:
            provider: Provider instance
            tag: Optional tag for disambiguation
        """
        meta = provider.meta
        token = meta.token
        key = self._make_cache_key(token, tag)

        existing = self._providers.get(key)
        if existing is provider:
            return
        if existing is not None:
            logger.debug(f"Provider for {token} (tag={tag}) replaced by {meta.name}")

        self._providers[key] = provider

        self._diagnostics.emit(
            DIEventType.REGISTRATION,
            token=token,
            tag=tag,
            provider_name=meta.name,
            metadata={"lifetime": meta.lifetime, "lazy": meta.lazy},
        )

    def resolve(
        self,
        token: Type[T] | str,
        *,
        tag: Optional[str] = None,
        optional: bool = False,
    ) -> T:
        """
        Resolve a dependency.

        Args:
            token: Type, closed generic alias or string key
            tag: Optional tag for disambiguation
            optional: If True, return None if not found instead of raising

        Returns:
            The resolved instance

        Raises:
            ProviderNotFoundError: If provider not found and not optional
        """
        return self._resolve(token, tag, optional, None)

    def get_service(self, token: Type[T] | str, *, tag: Optional[str] = None) -> Optional[T]:
        """Resolve, returning None when nothing is registered for ``token``."""
        return self._resolve(token, tag, True, None)

    def is_registered(self, token: Type[T] | str, tag: Optional[str] = None) -> bool:
        """Check if a provider is registered for the token."""
        return self._lookup_provider(token_key(token), tag) is not None

    def create_scope(self) -> "Container":
        """Create a scoped child container sharing this container's providers."""
        child = Container.__new__(Container)
        child._providers = self._providers  # Share by reference
        child._cache = {}  # Fresh cache per scope
        child._scope = "scoped"
        child._parent = self
        child._root = self._root
        child._locks = {}
        child._locks_guard = threading.Lock()
        child._diagnostics = self._diagnostics
        child._lifecycle = Lifecycle()
        child._config = self._config
        child._closed = False
        return child

    def on_shutdown(self, callback: Callable[[], None], *, name: str = "shutdown_hook", priority: int = 0) -> None:
        """Run ``callback`` when this container shuts down, before disposal."""
        self._lifecycle.on_shutdown(callback, name=name, priority=priority)

    def shutdown(self) -> None:
        """Dispose cached instances in LIFO order. Idempotent."""
        if self._closed:
            return
        self._closed = True

        self._diagnostics.emit(DIEventType.LIFECYCLE_SHUTDOWN, metadata={"scope": self._scope})
        self._lifecycle.run_shutdown_hooks()
        self._lifecycle.run_finalizers()
        self._lifecycle.clear()
        self._cache.clear()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.shutdown()
        return False

    # ── resolution internals ──

    def _resolve(
        self,
        token: Any,
        tag: Optional[str],
        optional: bool,
        ctx: Optional[ResolveCtx],
    ) -> Any:
        key = token_key(token)
        cache_key = self._make_cache_key(key, tag)

        # Fast path: check cache
        cached = self._cache.get(cache_key, _MISSING)
        if cached is not _MISSING:
            return cached

        provider = self._lookup_provider(key, tag)
        if provider is None:
            if optional:
                return None
            self._raise_not_found(key, tag, ctx)

        lifetime = provider.meta.lifetime
        if self._config.validate_scopes:
            self._validate_scope(provider.meta, ctx)

        # Singletons live in the root, whatever scope asked for them
        if lifetime == "singleton" and self._root is not self:
            return self._root._resolve(token, tag, optional, ctx)

        if lifetime not in _CACHEABLE_LIFETIMES:
            return self._instantiate(provider, cache_key, ctx)

        with self._lock_for(cache_key):
            cached = self._cache.get(cache_key, _MISSING)
            if cached is not _MISSING:
                return cached
            instance = self._instantiate(provider, cache_key, ctx)
            self._cache[cache_key] = instance
            if not getattr(provider, "externally_owned", False):
                self._register_finalizer(instance, provider.meta.name)
            return instance

    def _instantiate(
        self,
        provider: Provider,
        cache_key: str,
        ctx: Optional[ResolveCtx],
    ) -> Any:
        child = ResolveCtx(
            self,
            stack=ctx.stack if ctx is not None else None,
            consumer=provider.meta,
        )
        if child.in_cycle(cache_key):
            raise DependencyCycleError(child.get_trace() + [cache_key])

        child.push(cache_key)
        try:
            with self._diagnostics.measure(
                DIEventType.RESOLUTION_START,
                token=cache_key,
                provider_name=provider.meta.name,
            ):
                return provider.instantiate(child)
        finally:
            child.pop()

    def _validate_scope(self, meta: ProviderMeta, ctx: Optional[ResolveCtx]) -> None:
        consumer = ctx.consumer if ctx is not None else None
        if consumer is None:
            return
        if not ScopeValidator.validate_injection(meta.lifetime, consumer.lifetime):
            raise ScopeViolationError(
                provider_token=meta.token,
                provider_lifetime=meta.lifetime,
                consumer_token=consumer.token,
                consumer_lifetime=consumer.lifetime,
            )

    def _lock_for(self, cache_key: str) -> threading.RLock:
        lock = self._locks.get(cache_key)
        if lock is None:
            with self._locks_guard:
                lock = self._locks.setdefault(cache_key, threading.RLock())
        return lock

    def _make_cache_key(self, token: str, tag: Optional[str]) -> str:
        """Create cache key from token and tag."""
        return make_key(token, tag)

    def _lookup_provider(
        self,
        token: str,
        tag: Optional[str],
    ) -> Optional[Provider]:
        """
        Lookup provider in current container or parent.

        Returns:
            Provider or None if not found
        """
        key = self._make_cache_key(token, tag)
        provider = self._providers.get(key)
        if provider is not None:
            return provider

        if self._parent is not None:
            return self._parent._lookup_provider(token, tag)

        return None

    def _register_finalizer(self, instance: Any, name: str) -> None:
        """Register disposal for a cached instance."""
        from ..proxy.runtime import holder_of, is_lazy_proxy

        if is_lazy_proxy(instance):
            holder = holder_of(instance)
            # Only a target that was actually built gets disposed
            self._lifecycle.register_finalizer(
                lambda: _dispose(holder.target_if_materialized()),
                name=f"{name} (lazy)",
            )
        elif _is_disposable(instance):
            self._lifecycle.register_finalizer(lambda: _dispose(instance), name=name)

    def _raise_not_found(
        self,
        token: str,
        tag: Optional[str],
        ctx: Optional[ResolveCtx],
    ) -> None:
        """Raise ProviderNotFoundError with helpful diagnostics."""
        short = token.rsplit(".", 1)[-1]
        candidates = [key for key in self._providers if short in key]
        requested_by = ctx.consumer.token if ctx is not None and ctx.consumer else None

        raise ProviderNotFoundError(
            token=token,
            tag=tag,
            candidates=candidates,
            requested_by=requested_by,
        )

    def __repr__(self) -> str:
        return f"<Container scope={self._scope} providers={len(self._providers)} cached={len(self._cache)}>"


def _is_disposable(instance: Any) -> bool:
    return callable(getattr(instance, "close", None)) or hasattr(instance, "__exit__")


def _dispose(instance: Any) -> None:
    if instance is None:
        return
    close = getattr(instance, "close", None)
    if callable(close):
        close()
    elif hasattr(instance, "__exit__"):
        instance.__exit__(None, None, None)


class ServiceCollection:
    """
    Collects service registrations and builds a container from them.

    Example:
        services = ServiceCollection()
        services.add_scoped(UserRepository, SqlUserRepository)
        services.add_lazy_singleton(Mailer, SmtpMailer)

        with services.build_container() as container:
            with container.create_scope() as scope:
                repo = scope.resolve(UserRepository)
    """

    def __init__(self):
        self._registrations: List[Tuple[Provider, Optional[str]]] = []

    def add(self, provider: Provider, tag: Optional[str] = None) -> "ServiceCollection":
        """Add a provider as-is."""
        if provider is None:
            raise RegistrationError("provider must not be None", argument="provider")
        self._registrations.append((provider, tag))
        return self

    # ── eager registrations ──

    def add_transient(self, service_type: Any, implementation: Any = None, *,
                      factory: Optional[Callable] = None, tag: Optional[str] = None) -> "ServiceCollection":
        return self._add_eager(service_type, implementation, factory, Lifetime.TRANSIENT, tag)

    def add_scoped(self, service_type: Any, implementation: Any = None, *,
                   factory: Optional[Callable] = None, tag: Optional[str] = None) -> "ServiceCollection":
        return self._add_eager(service_type, implementation, factory, Lifetime.SCOPED, tag)

    def add_singleton(self, service_type: Any, implementation: Any = None, *,
                      factory: Optional[Callable] = None, tag: Optional[str] = None) -> "ServiceCollection":
        return self._add_eager(service_type, implementation, factory, Lifetime.SINGLETON, tag)

    def add_instance(self, service_type: Any, value: Any, *, tag: Optional[str] = None) -> "ServiceCollection":
        """Register a pre-built object as a singleton."""
        from .providers import ValueProvider

        if service_type is None:
            raise RegistrationError("service_type must not be None", argument="service_type")
        return self.add(ValueProvider(value, token=service_type), tag=tag)

    # ── lazy registrations ──

    def add_lazy_transient(self, service_type: Any, implementation: Any = None, *,
                           factory: Optional[Callable] = None, tag: Optional[str] = None) -> "ServiceCollection":
        from ..registration import add_lazy
        return add_lazy(self, service_type, implementation, factory=factory,
                        lifetime=Lifetime.TRANSIENT, tag=tag)

    def add_lazy_scoped(self, service_type: Any, implementation: Any = None, *,
                        factory: Optional[Callable] = None, tag: Optional[str] = None) -> "ServiceCollection":
        from ..registration import add_lazy
        return add_lazy(self, service_type, implementation, factory=factory,
                        lifetime=Lifetime.SCOPED, tag=tag)

    def add_lazy_singleton(self, service_type: Any, implementation: Any = None, *,
                           factory: Optional[Callable] = None, tag: Optional[str] = None) -> "ServiceCollection":
        from ..registration import add_lazy
        return add_lazy(self, service_type, implementation, factory=factory,
                        lifetime=Lifetime.SINGLETON, tag=tag)

    def add_service(self, cls: type) -> "ServiceCollection":
        """
        Register a class decorated with ``@service``.

        Reads the lifetime, service type, tag and laziness from the decorator
        metadata.
        """
        if not hasattr(cls, "__di_lifetime__"):
            raise RegistrationError(
                f"{getattr(cls, '__qualname__', cls)!r} is not decorated with @service",
                argument="cls",
            )
        service_type = getattr(cls, "__di_provides__", None) or cls
        lifetime = cls.__di_lifetime__
        tag = getattr(cls, "__di_tag__", None)

        if getattr(cls, "__di_lazy__", False):
            from ..registration import add_lazy
            return add_lazy(self, service_type, cls, lifetime=lifetime, tag=tag)
        return self._add_eager(service_type, cls, None, lifetime, tag)

    def _add_eager(self, service_type, implementation, factory, lifetime, tag) -> "ServiceCollection":
        from ..registration import build_provider
        provider = build_provider(service_type, implementation, factory, lifetime)
        return self.add(provider, tag=tag)

    # ── building ──

    def validate(self) -> None:
        """
        Check the registration graph.

        Raises:
            MissingDependencyError: An eager registration depends on an
                unregistered service
            CircularDependencyError: Eager registrations form a cycle
        """
        from .graph import DependencyGraph

        graph = DependencyGraph()
        for provider, tag in self._registrations:
            graph.add_provider(provider, list(getattr(provider, "dependency_tokens", ())), tag=tag)
        graph.validate()

    def build_container(
        self,
        config: Optional[Any] = None,
        *,
        validate: Optional[bool] = None,
    ) -> Container:
        """
        Build the root container.

        Args:
            config: ``LazyProxyConfig`` (defaults apply when omitted)
            validate: Run ``validate()`` first; defaults to
                ``config.validate_on_build``
        """
        from ..config import LazyProxyConfig
        from .diagnostics import ConsoleDiagnosticListener

        config = config or LazyProxyConfig()
        if validate if validate is not None else config.validate_on_build:
            self.validate()

        diagnostics = DIDiagnostics()
        if config.diagnostics:
            diagnostics.add_listener(
                ConsoleDiagnosticListener(getattr(logging, config.diagnostics_level))
            )

        container = Container(diagnostics=diagnostics, config=config)
        for provider, tag in self._registrations:
            container.register(provider, tag=tag)
        return container

    def __len__(self) -> int:
        return len(self._registrations)

    def __iter__(self) -> Iterator[Provider]:
        return (provider for provider, _ in self._registrations)
