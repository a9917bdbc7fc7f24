"""
Provider implementations for different instantiation strategies.
"""

from typing import Annotated, Any, Callable, Dict, List, Optional, Type, TypeVar, get_args, get_origin
import inspect

from .core import Container, ProviderMeta, ResolveCtx, make_key, token_key
from .errors import RegistrationError
from .scopes import Lifetime, normalize_lifetime


T = TypeVar("T")

# Marks a factory parameter that receives the resolving container
_RESOLVER = object()


def _source_line(obj: Any) -> Optional[int]:
    try:
        _, line = inspect.getsourcelines(obj)
    except (TypeError, OSError):
        line = None
    return line


def _parse_annotation(annotation: Any) -> Dict[str, Any]:
    """Parse type annotation for Inject metadata."""
    # Check for Annotated[Type, Inject(...)]
    if get_origin(annotation) is Annotated:
        args = get_args(annotation)
        base_type = args[0]
        metadata = args[1:] if len(args) > 1 else ()

        # Look for Inject marker
        result = {"token": base_type}
        for meta in metadata:
            if hasattr(meta, "_inject_token") and meta._inject_token is not None:
                result["token"] = meta._inject_token
            if hasattr(meta, "_inject_tag"):
                result["tag"] = meta._inject_tag
            if getattr(meta, "_inject_optional", False):
                result["optional"] = True
        return result

    # Plain type annotation
    return {"token": annotation}


def _annotations_of(func: Callable) -> Dict[str, Any]:
    try:
        return inspect.get_annotations(func, eval_str=True)
    except Exception:
        # Unresolvable forward references: keep whatever is there raw
        return getattr(func, "__annotations__", {}) or {}


def _required_keys(dependencies: Dict[str, Dict[str, Any]]) -> List[str]:
    return [
        make_key(dep["token"], dep.get("tag"))
        for dep in dependencies.values()
        if not dep.get("optional") and dep["token"] is not _RESOLVER
    ]


class ClassProvider:
    """
    Provider that instantiates a class by resolving constructor dependencies.

    ``cls`` may be a closed generic alias such as ``SqlRepo[User, int]``; the
    constructor is inspected on the origin class and the instance is created
    through the alias.
    """

    __slots__ = ("_meta", "_cls", "_dependencies")

    def __init__(
        self,
        cls: Any,
        lifetime: Lifetime | str = Lifetime.TRANSIENT,
        token: Optional[Any] = None,
        tags: tuple[str, ...] = (),
        name: Optional[str] = None,
    ):
        origin = get_origin(cls) or cls
        if not isinstance(origin, type):
            raise RegistrationError(
                f"Implementation must be a class, got {cls!r}",
                argument="implementation",
            )

        self._cls = cls
        self._dependencies = self._extract_dependencies(origin)

        self._meta = ProviderMeta(
            name=name or origin.__name__,
            token=token_key(token if token is not None else cls),
            lifetime=normalize_lifetime(lifetime),
            tags=tags,
            module=origin.__module__,
            qualname=origin.__qualname__,
            line=_source_line(origin),
        )

    @property
    def meta(self) -> ProviderMeta:
        return self._meta

    @property
    def implementation(self) -> Any:
        return self._cls

    @property
    def dependency_tokens(self) -> List[str]:
        """Registry keys of required constructor dependencies."""
        return _required_keys(self._dependencies)

    def instantiate(self, ctx: ResolveCtx) -> Any:
        """Instantiate class by resolving dependencies."""
        resolved_deps = {}
        for dep_name, dep_info in self._dependencies.items():
            resolved = ctx.resolve(
                dep_info["token"],
                tag=dep_info.get("tag"),
                optional=dep_info.get("optional", False),
            )
            if resolved is None and dep_info.get("has_default"):
                # Let the parameter default apply
                continue
            resolved_deps[dep_name] = resolved

        return self._cls(**resolved_deps)

    def _extract_dependencies(self, cls: type) -> Dict[str, Dict[str, Any]]:
        """
        Extract dependencies from __init__ signature.

        Returns:
            Dict mapping parameter names to dependency info
        """
        deps = {}

        # Check if using default object.__init__
        if cls.__init__ is object.__init__:
            return deps

        try:
            sig = inspect.signature(cls.__init__)
        except ValueError:
            # Builtins that don't support signature inspection
            return deps

        type_hints = _annotations_of(cls.__init__)

        for param_name, param in sig.parameters.items():
            if param_name in ("self", "cls"):
                continue

            # Skip varargs and kwargs
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue

            # Prefer resolved hint, fallback to raw annotation
            annotation = type_hints.get(param_name, param.annotation)
            has_default = param.default is not inspect.Parameter.empty

            if annotation is inspect.Parameter.empty:
                # If default value exists, it's optional and we skip dependency injection
                if has_default:
                    continue

                raise RegistrationError(
                    f"Missing type annotation for parameter '{param_name}' "
                    f"in {cls.__qualname__}.__init__",
                    argument="implementation",
                )

            dep_info = _parse_annotation(annotation)
            dep_info["optional"] = dep_info.get("optional", False) or has_default
            dep_info["has_default"] = has_default

            deps[param_name] = dep_info

        return deps

    def __repr__(self) -> str:
        return f"<ClassProvider {self._meta.token} -> {self._meta.qualname} ({self._meta.lifetime})>"


class FactoryProvider:
    """
    Provider that calls a factory function to produce instances.

    A parameter annotated with ``Container``, or a leading parameter with no
    annotation, receives the container performing the resolution (the
    resolver). Other annotated parameters are injected like constructor
    dependencies.

    Example:
        FactoryProvider(lambda resolver: Mailer(resolver.resolve(Settings)), token=Mailer)
    """

    __slots__ = ("_meta", "_factory", "_dependencies", "_positional_resolver")

    def __init__(
        self,
        factory: Callable,
        token: Any,
        lifetime: Lifetime | str = Lifetime.TRANSIENT,
        tags: tuple[str, ...] = (),
        name: Optional[str] = None,
    ):
        if not callable(factory):
            raise RegistrationError(f"Factory must be callable, got {factory!r}", argument="factory")

        self._factory = factory
        self._positional_resolver = False
        self._dependencies = self._extract_dependencies(factory)

        module = getattr(factory, "__module__", "") or ""
        qualname = getattr(factory, "__qualname__", type(factory).__qualname__)

        self._meta = ProviderMeta(
            name=name or getattr(factory, "__name__", qualname),
            token=token_key(token),
            lifetime=normalize_lifetime(lifetime),
            tags=tags,
            module=module,
            qualname=qualname,
            line=_source_line(factory),
        )

    @property
    def meta(self) -> ProviderMeta:
        return self._meta

    @property
    def dependency_tokens(self) -> List[str]:
        """Registry keys of required annotated parameters."""
        return _required_keys(self._dependencies)

    def instantiate(self, ctx: ResolveCtx) -> Any:
        """Call factory with resolved dependencies."""
        if self._positional_resolver:
            return self._factory(ctx.container)

        resolved_deps = {}
        for dep_name, dep_info in self._dependencies.items():
            if dep_info["token"] is _RESOLVER:
                resolved_deps[dep_name] = ctx.container
                continue
            resolved = ctx.resolve(
                dep_info["token"],
                tag=dep_info.get("tag"),
                optional=dep_info.get("optional", False),
            )
            if resolved is None and dep_info.get("has_default"):
                continue
            resolved_deps[dep_name] = resolved

        return self._factory(**resolved_deps)

    def _extract_dependencies(self, factory: Callable) -> Dict[str, Dict[str, Any]]:
        """Extract dependencies from factory signature."""
        deps = {}
        try:
            sig = inspect.signature(factory)
        except (TypeError, ValueError):
            # Opaque callable: hand it the resolver
            self._positional_resolver = True
            return deps

        hints = _annotations_of(factory)
        for index, (param_name, param) in enumerate(sig.parameters.items()):
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            if param.kind is inspect.Parameter.POSITIONAL_ONLY and index > 0:
                continue

            annotation = hints.get(param_name, param.annotation)
            has_default = param.default is not inspect.Parameter.empty

            if annotation is inspect.Parameter.empty:
                if index == 0 and not has_default:
                    if param.kind is inspect.Parameter.POSITIONAL_ONLY:
                        self._positional_resolver = True
                    else:
                        deps[param_name] = {"token": _RESOLVER}
                continue

            if annotation is Container:
                if param.kind is inspect.Parameter.POSITIONAL_ONLY:
                    self._positional_resolver = True
                else:
                    deps[param_name] = {"token": _RESOLVER}
                continue

            dep_info = _parse_annotation(annotation)
            dep_info["optional"] = dep_info.get("optional", False) or has_default
            dep_info["has_default"] = has_default
            deps[param_name] = dep_info

        return deps

    def __repr__(self) -> str:
        return f"<FactoryProvider {self._meta.token} via {self._meta.qualname} ({self._meta.lifetime})>"


class ValueProvider:
    """Provider that returns a pre-bound constant value."""

    __slots__ = ("_meta", "_value")

    # The container does not dispose objects it did not create
    externally_owned = True

    def __init__(
        self,
        value: Any,
        token: Type | str,
        name: Optional[str] = None,
        tags: tuple[str, ...] = (),
    ):
        self._value = value
        self._meta = ProviderMeta(
            name=name or "value",
            token=token_key(token),
            lifetime="singleton",
            tags=tags,
        )

    @property
    def meta(self) -> ProviderMeta:
        return self._meta

    def instantiate(self, ctx: ResolveCtx) -> Any:
        """Return pre-bound value."""
        return self._value


class LazyProxyProvider:
    """
    Provider that hands out lazy proxies instead of targets.

    Wraps the container factory produced by
    ``lazyproxy.registration.wrap_for_laziness``: each instantiation returns a
    fresh proxy bound to the resolving container, and the real target is
    built on first member access. Caching the proxy is left to the lifetime.
    """

    __slots__ = ("_meta", "_container_factory", "_inner")

    def __init__(
        self,
        token: Any,
        container_factory: Callable[[Any], Any],
        lifetime: Lifetime | str = Lifetime.TRANSIENT,
        inner: Optional[Any] = None,
        tags: tuple[str, ...] = (),
    ):
        self._container_factory = container_factory
        self._inner = inner

        inner_meta = inner.meta if inner is not None else None
        self._meta = ProviderMeta(
            name=inner_meta.name if inner_meta else "lazy_proxy",
            token=token_key(token),
            lifetime=normalize_lifetime(lifetime),
            tags=tags,
            module=inner_meta.module if inner_meta else "",
            qualname=inner_meta.qualname if inner_meta else "",
            line=inner_meta.line if inner_meta else None,
            lazy=True,
        )

    @property
    def meta(self) -> ProviderMeta:
        return self._meta

    @property
    def inner(self) -> Optional[Any]:
        """Provider that builds the target, if the registration has one."""
        return self._inner

    @property
    def dependency_tokens(self) -> List[str]:
        # Dependencies of the target are only needed on first member access
        return []

    def instantiate(self, ctx: ResolveCtx) -> Any:
        """Create lazy proxy."""
        return self._container_factory(ctx.container)

    def __repr__(self) -> str:
        return f"<LazyProxyProvider {self._meta.token} ({self._meta.lifetime})>"
