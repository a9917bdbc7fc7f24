"""
Proxy dispatcher generation.

For a closed interface the generator builds one proxy class: a subclass of the
service type whose every member forwards through the dispatch runtime. The
class plus its member table form the ``ProxyDispatcher``, which is stateless and
shared by all proxies of that shape.
"""

from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import functools
import inspect
import logging
import types

from ..di.diagnostics import DIDiagnostics, DIEventType, global_diagnostics
from ..di.errors import NotAnInterfaceError, ProxyGenerationError
from . import runtime
from .descriptor import (
    _INFRASTRUCTURE_BASES,
    InterfaceDescriptor,
    MemberKind,
    MemberSignature,
    data_member_annotations,
    is_interface,
    property_annotation,
)
from .holder import LazyInstanceHolder
from .visibility import DYNAMIC_MODULE, check_access

logger = logging.getLogger("lazyproxy.proxy.generator")

# Special methods are looked up on the type, never through __getattr__, so a
# proxy only supports the ones its interface declares.
FORWARDABLE_SPECIAL_METHODS = frozenset((
    "__call__",
    "__len__",
    "__iter__",
    "__next__",
    "__reversed__",
    "__contains__",
    "__getitem__",
    "__setitem__",
    "__delitem__",
    "__enter__",
    "__exit__",
    "__aenter__",
    "__aexit__",
    "__aiter__",
    "__anext__",
    "__await__",
    "__bool__",
    "__str__",
    "__repr__",
    "__eq__",
    "__ne__",
    "__lt__",
    "__le__",
    "__gt__",
    "__ge__",
    "__hash__",
))


class ProxyDispatcher:
    """
    Generated forwarding logic for one closed interface.

    Attributes:
        descriptor: Interface shape this dispatcher implements
        proxy_type: Generated class; instances are proxies
        members: Read-only mapping of member signature to forwarder
    """

    __slots__ = ("_descriptor", "_proxy_type", "_members")

    def __init__(
        self,
        descriptor: InterfaceDescriptor,
        proxy_type: type,
        members: Mapping[MemberSignature, Any],
    ):
        self._descriptor = descriptor
        self._proxy_type = proxy_type
        self._members = MappingProxyType(dict(members))

    @property
    def descriptor(self) -> InterfaceDescriptor:
        return self._descriptor

    @property
    def proxy_type(self) -> type:
        return self._proxy_type

    @property
    def members(self) -> Mapping[MemberSignature, Any]:
        return self._members

    def member(self, name: str, kind: MemberKind = MemberKind.METHOD) -> MemberSignature:
        """Look up a member signature by name and kind."""
        for signature in self._members:
            if signature.name == name and signature.kind is kind:
                return signature
        raise KeyError(f"{self._descriptor.name} has no {kind.value} '{name}'")

    def create_proxy(self, holder: LazyInstanceHolder) -> Any:
        """Create a proxy instance backed by ``holder``."""
        return self._proxy_type(holder)

    def __repr__(self) -> str:
        return f"<ProxyDispatcher {self._descriptor.name} members={len(self._members)}>"


def _is_forwardable_name(name: str) -> bool:
    if name.startswith("__") and name.endswith("__"):
        return name in FORWARDABLE_SPECIAL_METHODS
    return True


def enumerate_members(descriptor: InterfaceDescriptor) -> List[Tuple[MemberSignature, Any]]:
    """
    Collect every member of the interface and the interfaces it extends.

    Walks the MRO most-derived first, so an override shadows the declaration
    it overrides. Returns ``(signature, source)`` pairs where ``source`` is the
    declaring function or property, or ``None`` for annotated data members.
    """
    members: List[Tuple[MemberSignature, Any]] = []
    seen = set()

    for klass in descriptor.origin.__mro__:
        if klass in _INFRASTRUCTURE_BASES:
            continue

        for name, value in klass.__dict__.items():
            if name in seen or not _is_forwardable_name(name):
                continue

            if isinstance(value, (staticmethod, classmethod)):
                # Class-level members are inherited unchanged
                seen.add(name)
                continue

            if isinstance(value, property):
                annotation = property_annotation(value)
                members.append((MemberSignature.for_getter(name, annotation, descriptor, klass), value))
                if value.fset is not None:
                    members.append((MemberSignature.for_setter(name, annotation, descriptor, klass), value))
                seen.add(name)
            elif inspect.isfunction(value):
                members.append((MemberSignature.for_method(name, value, descriptor, klass), value))
                seen.add(name)

        for name, annotation in data_member_annotations(klass).items():
            if name in seen:
                continue
            members.append((MemberSignature.for_getter(name, annotation, descriptor, klass), None))
            members.append((MemberSignature.for_setter(name, annotation, descriptor, klass), None))
            seen.add(name)

    return members


def _method_forwarder(signature: MemberSignature, source: Callable, qualname: str) -> Callable:
    if signature.is_async:
        async def forward(self, *args, **kwargs):
            return await runtime.invoke_async(self, runtime.Invocation(signature, args, kwargs))
    else:
        def forward(self, *args, **kwargs):
            return runtime.invoke(self, runtime.Invocation(signature, args, kwargs))

    # updated=() keeps __isabstractmethod__ off the forwarder
    functools.update_wrapper(forward, source, updated=())
    forward.__qualname__ = f"{qualname}.{signature.name}"
    return forward


def _property_forwarder(
    getter: MemberSignature,
    setter: Optional[MemberSignature],
    doc: Optional[str],
) -> property:
    def fget(self):
        return runtime.get_property(self, getter)

    fset = None
    if setter is not None:
        def fset(self, value):
            runtime.set_property(self, setter, value)

    return property(fget, fset, doc=doc)


def _proxy_init(self, holder: LazyInstanceHolder) -> None:
    object.__setattr__(self, runtime.HOLDER_ATTRIBUTE, holder)


def _proxy_repr(self) -> str:
    holder = runtime.holder_of(self)
    dispatcher = getattr(type(self), runtime.DISPATCHER_ATTRIBUTE)
    return f"<{dispatcher.descriptor.name} lazy proxy [{holder.state.value}]>"


class ProxyDispatcherGenerator:
    """Synthesizes a ``ProxyDispatcher`` for a closed interface descriptor."""

    def __init__(self, diagnostics: Optional[DIDiagnostics] = None):
        self._diagnostics = diagnostics or global_diagnostics

    def generate(self, descriptor: InterfaceDescriptor) -> ProxyDispatcher:
        """
        Build the dispatcher for ``descriptor``.

        Raises:
            NotAnInterfaceError: Descriptor origin is not an interface
            InterfaceAccessError: Restricted interface without trust
            ProxyGenerationError: The interface has members a proxy cannot
                implement
        """
        if not is_interface(descriptor.origin):
            raise NotAnInterfaceError(descriptor.origin, "concrete class")
        check_access(descriptor.origin)

        class_name = f"{descriptor.origin.__name__}LazyProxy"
        members = enumerate_members(descriptor)
        namespace: Dict[str, Any] = {}
        table: Dict[MemberSignature, Any] = {}

        setters = {sig.name: sig for sig, _ in members if sig.kind is MemberKind.SETTER}
        for signature, source in members:
            if signature.kind is MemberKind.METHOD:
                forwarder = _method_forwarder(signature, source, class_name)
                namespace[signature.name] = forwarder
                table[signature] = forwarder
            elif signature.kind is MemberKind.GETTER:
                doc = source.__doc__ if isinstance(source, property) else None
                prop = _property_forwarder(signature, setters.get(signature.name), doc)
                namespace[signature.name] = prop
                table[signature] = prop
            else:
                table[signature] = namespace[signature.name]

        namespace["__init__"] = _proxy_init
        namespace.setdefault("__repr__", _proxy_repr)
        namespace["__module__"] = DYNAMIC_MODULE
        namespace["__qualname__"] = class_name
        namespace["__doc__"] = f"Lazy proxy implementing {descriptor.name}."

        try:
            proxy_type = types.new_class(
                class_name,
                (descriptor.service_type,),
                {},
                lambda ns: ns.update(namespace),
            )
        except TypeError as exc:
            raise ProxyGenerationError(
                f"Cannot derive a proxy class from {descriptor.name}: {exc}"
            ) from exc

        abstract = getattr(proxy_type, "__abstractmethods__", frozenset())
        if abstract:
            raise ProxyGenerationError(
                f"Cannot proxy {descriptor.name}: abstract members "
                f"{sorted(abstract)} cannot be forwarded to an instance"
            )

        dispatcher = ProxyDispatcher(descriptor, proxy_type, table)
        setattr(proxy_type, runtime.DISPATCHER_ATTRIBUTE, dispatcher)

        logger.debug(f"Generated {class_name} for {descriptor.token} ({len(table)} members)")
        self._diagnostics.emit(
            DIEventType.DISPATCHER_GENERATED,
            token=descriptor.token,
            provider_name=class_name,
            metadata={"members": len(table)},
        )
        return dispatcher
