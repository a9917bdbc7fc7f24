"""
Registration adapter.

Bridges the container and the proxy engine: a lazy registration stores a
container factory that, on every invocation, returns a fresh proxy bound to a
new holder. The real factory runs only when a member of that proxy is used.

Example:
    services = ServiceCollection()
    services.add_singleton(Settings)
    services.add_lazy_scoped(Mailer, SmtpMailer)

    with services.build_container() as container:
        with container.create_scope() as scope:
            mailer = scope.resolve(Mailer)   # no SmtpMailer yet
            mailer.send(message)             # built here
"""

from typing import Any, Callable, Optional, get_origin
import logging

from .di.core import ResolveCtx
from .di.errors import RegistrationError
from .di.providers import ClassProvider, FactoryProvider, LazyProxyProvider
from .di.scopes import Lifetime, normalize_lifetime
from .proxy.cache import default_cache
from .proxy.descriptor import InterfaceDescriptor, MemberKind
from .proxy.generator import enumerate_members
from .proxy.holder import FailurePolicy, LazyInstanceHolder

logger = logging.getLogger("lazyproxy.registration")


def wrap_for_laziness(
    service_type: Any,
    real_factory: Callable[[Any], Any],
) -> Callable[[Any], Any]:
    """
    Turn a real factory into a container factory that returns lazy proxies.

    The service type is validated immediately. The returned
    ``container_factory(resolver)`` never runs ``real_factory`` itself; the
    proxy it returns does, with the same resolver, on first member access.

    Raises:
        NotAnInterfaceError: ``service_type`` is not a closed interface
        RegistrationError: ``real_factory`` is None
    """
    if real_factory is None:
        raise RegistrationError("real_factory must not be None", argument="real_factory")
    descriptor = InterfaceDescriptor.of(service_type)

    def container_factory(resolver: Any) -> Any:
        dispatcher = default_cache.get_or_create(descriptor)

        config = getattr(resolver, "config", None)
        policy = FailurePolicy(config.failure_policy) if config is not None else FailurePolicy.RETRY

        holder = LazyInstanceHolder(
            lambda: real_factory(resolver),
            policy=policy,
            name=descriptor.token,
            diagnostics=getattr(resolver, "diagnostics", None),
        )
        return dispatcher.create_proxy(holder)

    container_factory.__qualname__ = f"container_factory[{descriptor.name}]"
    return container_factory


def check_implementation(service_type: Any, implementation: Any) -> None:
    """
    Verify that ``implementation`` can stand in for ``service_type``.

    ABC interfaces (and any plain class) require a subclass. Protocols accept
    explicit subclasses or classes that define every method and property of
    the protocol; data members are not checked because instances usually set
    them in ``__init__``.

    Raises:
        RegistrationError: Not a class, or does not implement the service type
    """
    impl_origin = get_origin(implementation) or implementation
    if not isinstance(impl_origin, type):
        raise RegistrationError(
            f"Implementation must be a class, got {implementation!r}",
            argument="implementation",
        )

    service_origin = get_origin(service_type) or service_type
    if not isinstance(service_origin, type):
        # String tokens carry no contract to check
        return
    if issubclass(impl_origin, service_origin):
        return

    if getattr(service_origin, "_is_protocol", False):
        missing = _missing_protocol_members(service_type, impl_origin)
        if not missing:
            return
        detail = f"missing {', '.join(missing)}"
    else:
        detail = f"not a subclass of {service_origin.__qualname__}"

    raise RegistrationError(
        f"{impl_origin.__qualname__} does not implement "
        f"{getattr(service_origin, '__qualname__', service_type)} ({detail})",
        argument="implementation",
    )


def _missing_protocol_members(service_type: Any, impl: type) -> list:
    descriptor = InterfaceDescriptor.of(service_type)
    missing = []
    for signature, source in enumerate_members(descriptor):
        if source is None or signature.kind is MemberKind.SETTER:
            continue
        if not hasattr(impl, signature.name) and signature.name not in missing:
            missing.append(signature.name)
    return missing


def _validate_arguments(service_type: Any, implementation: Any, factory: Optional[Callable]) -> None:
    if service_type is None:
        raise RegistrationError("service_type must not be None", argument="service_type")
    if implementation is None and factory is None:
        raise RegistrationError(
            "Either an implementation type or a factory is required",
            argument="implementation",
        )
    if implementation is not None and factory is not None:
        raise RegistrationError(
            "Pass an implementation type or a factory, not both",
            argument="factory",
        )
    if factory is not None and not callable(factory):
        raise RegistrationError(f"Factory must be callable, got {factory!r}", argument="factory")


def build_provider(
    service_type: Any,
    implementation: Any = None,
    factory: Optional[Callable] = None,
    lifetime: Lifetime | str = Lifetime.TRANSIENT,
) -> Any:
    """
    Build the provider for an eager registration.

    With neither implementation nor factory the service type registers itself.
    """
    if service_type is None:
        raise RegistrationError("service_type must not be None", argument="service_type")
    if implementation is None and factory is None:
        implementation = service_type
    else:
        _validate_arguments(service_type, implementation, factory)

    if factory is not None:
        return FactoryProvider(factory, token=service_type, lifetime=lifetime)

    check_implementation(service_type, implementation)
    return ClassProvider(implementation, lifetime=lifetime, token=service_type)


def add_lazy(
    services: Any,
    service_type: Any,
    implementation: Any = None,
    *,
    factory: Optional[Callable] = None,
    lifetime: Lifetime | str,
    tag: Optional[str] = None,
) -> Any:
    """
    Register ``service_type`` behind a lazy proxy.

    Args:
        services: ``ServiceCollection`` to add to
        service_type: Interface (Protocol or ABC), or a closed generic alias
        implementation: Class building the target, resolved like an eager
            registration of the same lifetime
        factory: ``factory(resolver)`` building the target instead
        lifetime: Caching of the proxy (transient, scoped, singleton)
        tag: Optional tag for disambiguation

    Returns:
        ``services``, for chaining

    Raises:
        RegistrationError: Invalid arguments
        NotAnInterfaceError: ``service_type`` cannot be proxied
    """
    lifetime = normalize_lifetime(lifetime)
    _validate_arguments(service_type, implementation, factory)
    InterfaceDescriptor.of(service_type)

    if implementation is not None:
        check_implementation(service_type, implementation)
        inner = ClassProvider(implementation, lifetime=lifetime, token=service_type)
    else:
        inner = FactoryProvider(factory, token=service_type, lifetime=lifetime)

    def real_factory(resolver: Any) -> Any:
        return inner.instantiate(ResolveCtx(resolver, consumer=inner.meta))

    provider = LazyProxyProvider(
        service_type,
        wrap_for_laziness(service_type, real_factory),
        lifetime=lifetime,
        inner=inner,
    )
    logger.debug(f"Lazy {lifetime} registration for {provider.meta.token}")
    return services.add(provider, tag=tag)
