"""
Interface descriptors and member signatures.

An ``InterfaceDescriptor`` is the canonical identity of a proxied shape: the
interface class plus the type arguments it is bound to. Two descriptors for
``Repo[User, int]`` compare equal no matter how the alias was spelled, so the
dispatcher cache can key on them.
"""

from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    Optional,
    Protocol,
    Tuple,
    TypeVar,
    Generic,
    get_args,
    get_origin,
    get_type_hints,
)
from dataclasses import dataclass, field
from enum import Enum
import abc
import inspect

from ..di.errors import NotAnInterfaceError


# Bases that never contribute members to a proxy
_INFRASTRUCTURE_BASES = frozenset((object, Generic, Protocol, abc.ABC))


def is_interface(tp: Any) -> bool:
    """
    True if ``tp`` is an interface class.

    Interfaces are ``typing.Protocol`` classes and abstract base classes that
    declare at least one abstract member.
    """
    if not isinstance(tp, type) or tp in _INFRASTRUCTURE_BASES:
        return False
    if getattr(tp, "_is_protocol", False):
        return True
    return inspect.isabstract(tp)


def _free_parameters(tp: Any) -> tuple:
    """Type variables still unbound in ``tp``."""
    if isinstance(tp, TypeVar):
        return (tp,)
    return tuple(getattr(tp, "__parameters__", ()) or ())


@dataclass(frozen=True)
class InterfaceDescriptor:
    """
    Immutable identity of an interface shape.

    Attributes:
        origin: The interface class
        args: Bound generic type arguments (empty for non-generic interfaces)
    """

    origin: type
    args: Tuple[Any, ...] = ()

    @classmethod
    def of(cls, service_type: Any) -> "InterfaceDescriptor":
        """
        Build and validate a descriptor for a service type.

        Args:
            service_type: Interface class or closed generic alias

        Raises:
            NotAnInterfaceError: If the type is not an interface or is an
                open generic
        """
        if service_type is None:
            raise NotAnInterfaceError(service_type, "service type is None")

        origin = get_origin(service_type)
        if origin is None:
            origin, args = service_type, ()
        else:
            args = tuple(get_args(service_type))

        if not is_interface(origin):
            if isinstance(origin, type):
                reason = "concrete class"
            else:
                reason = f"{type(service_type).__name__} is not a class"
            raise NotAnInterfaceError(service_type, reason)

        if not args and getattr(origin, "__parameters__", ()):
            raise NotAnInterfaceError(
                service_type,
                "open generic; bind every type argument",
            )
        for arg in args:
            if _free_parameters(arg):
                raise NotAnInterfaceError(
                    service_type,
                    f"type argument {arg!r} is not closed",
                )

        return cls(origin=origin, args=args)

    @property
    def service_type(self) -> Any:
        """The closed service type (alias for generics, class otherwise)."""
        if not self.args:
            return self.origin
        return self.origin[self.args]

    @property
    def bindings(self) -> Dict[TypeVar, Any]:
        """Interface type parameters mapped to their bound arguments."""
        params = getattr(self.origin, "__parameters__", ())
        return dict(zip(params, self.args))

    def bindings_for(self, owner: type) -> Dict[TypeVar, Any]:
        """
        Bindings as seen from ``owner``, a class in the interface's MRO.

        ``class Users(Repo[User, int])`` binds Repo's own parameters, so a
        method declared on ``Repo`` is described with ``User`` and ``int``.
        """
        return _mro_bindings(self.origin, self.args).get(owner, {})

    @property
    def class_parameters(self) -> frozenset:
        """Every class-level type variable across the interface hierarchy."""
        found = set()
        for klass in self.origin.__mro__:
            found.update(getattr(klass, "__parameters__", ()) or ())
        return frozenset(found)

    @property
    def is_generic(self) -> bool:
        return bool(self.args)

    @property
    def name(self) -> str:
        """Readable name, e.g. ``Repo[User, int]``."""
        base = self.origin.__qualname__
        if not self.args:
            return base
        rendered = ", ".join(_type_name(a) for a in self.args)
        return f"{base}[{rendered}]"

    @property
    def token(self) -> str:
        """Fully qualified name used in diagnostics."""
        return f"{self.origin.__module__}.{self.name}"

    def __str__(self) -> str:
        return self.name


def _type_name(tp: Any) -> str:
    if isinstance(tp, type):
        return tp.__qualname__
    return repr(tp).replace("typing.", "")


def _mro_bindings(origin: type, args: tuple) -> Dict[type, Dict[TypeVar, Any]]:
    result: Dict[type, Dict[TypeVar, Any]] = {}

    def visit(klass: type, mapping: Dict[TypeVar, Any]) -> None:
        if klass in result:
            return
        result[klass] = mapping
        for base in klass.__dict__.get("__orig_bases__", ()):
            base_origin = get_origin(base)
            if base_origin is None or base_origin in _INFRASTRUCTURE_BASES:
                continue
            base_args = tuple(substitute(a, mapping) for a in get_args(base))
            params = getattr(base_origin, "__parameters__", ())
            visit(base_origin, dict(zip(params, base_args)))

    visit(origin, dict(zip(getattr(origin, "__parameters__", ()), args)))
    return result


def substitute(annotation: Any, bindings: Dict[TypeVar, Any]) -> Any:
    """Replace interface type variables in ``annotation`` with bound arguments."""
    if not bindings:
        return annotation
    if isinstance(annotation, TypeVar):
        return bindings.get(annotation, annotation)
    params = _free_parameters(annotation)
    if params and any(p in bindings for p in params):
        try:
            return annotation[tuple(bindings.get(p, p) for p in params)]
        except TypeError:
            return annotation
    return annotation


def _collect_typevars(annotation: Any, found: list) -> None:
    if isinstance(annotation, TypeVar):
        if annotation not in found:
            found.append(annotation)
        return
    for arg in getattr(annotation, "__args__", None) or ():
        if isinstance(arg, (list, tuple)):
            for item in arg:
                _collect_typevars(item, found)
        else:
            _collect_typevars(arg, found)


def _resolve_hints(func: Callable) -> Dict[str, Any]:
    """Evaluated annotations, falling back to the raw ones."""
    try:
        return get_type_hints(func)
    except Exception:
        try:
            return inspect.get_annotations(func)
        except Exception:
            return {}


class MemberKind(str, Enum):
    """How a member is reached on the proxy."""

    METHOD = "method"
    GETTER = "getter"
    SETTER = "setter"


_empty = inspect.Parameter.empty


@dataclass(frozen=True)
class MemberSignature:
    """
    Shape of one forwarded member.

    ``type_params`` holds the method-level type variables, distinct from the
    interface's own parameters. Hashing uses only name and kind since both are
    unique within one interface.
    """

    name: str
    kind: MemberKind
    parameters: Tuple[Tuple[str, Any], ...] = ()
    return_annotation: Any = None
    type_params: Tuple[TypeVar, ...] = ()
    is_async: bool = field(default=False, compare=False)

    def __hash__(self) -> int:
        return hash((self.name, self.kind))

    @property
    def is_generic(self) -> bool:
        return bool(self.type_params)

    @classmethod
    def for_method(
        cls,
        name: str,
        func: Callable,
        descriptor: InterfaceDescriptor,
        owner: Optional[type] = None,
    ) -> "MemberSignature":
        """
        Describe a method declared on the interface.

        Args:
            name: Member name
            func: The function found in ``owner``'s class body
            descriptor: Closed interface being proxied
            owner: Class declaring the member (defaults to the interface)
        """
        hints = _resolve_hints(func)
        bindings = descriptor.bindings_for(owner or descriptor.origin)
        interface_params = descriptor.class_parameters

        try:
            sig = inspect.signature(func)
        except (TypeError, ValueError):
            sig = None

        parameters = []
        raw = []
        if sig is not None:
            for index, (param_name, param) in enumerate(sig.parameters.items()):
                # Instance receiver, whatever it is called
                if index == 0 and param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
                    continue
                annotation = hints.get(param_name, param.annotation)
                if annotation is _empty:
                    annotation = Any
                raw.append(annotation)
                parameters.append((param_name, substitute(annotation, bindings)))

        return_annotation = hints.get("return", Any)
        raw.append(return_annotation)

        found: list = list(getattr(func, "__type_params__", ()) or ())
        for annotation in raw:
            _collect_typevars(annotation, found)
        type_params = tuple(
            tv for tv in found
            if tv not in interface_params
        )

        return cls(
            name=name,
            kind=MemberKind.METHOD,
            parameters=tuple(parameters),
            return_annotation=substitute(return_annotation, bindings),
            type_params=type_params,
            is_async=inspect.iscoroutinefunction(func),
        )

    @classmethod
    def for_getter(
        cls,
        name: str,
        annotation: Any,
        descriptor: InterfaceDescriptor,
        owner: Optional[type] = None,
    ) -> "MemberSignature":
        bindings = descriptor.bindings_for(owner or descriptor.origin)
        return cls(
            name=name,
            kind=MemberKind.GETTER,
            return_annotation=substitute(annotation, bindings),
        )

    @classmethod
    def for_setter(
        cls,
        name: str,
        annotation: Any,
        descriptor: InterfaceDescriptor,
        owner: Optional[type] = None,
    ) -> "MemberSignature":
        bindings = descriptor.bindings_for(owner or descriptor.origin)
        return cls(
            name=name,
            kind=MemberKind.SETTER,
            parameters=(("value", substitute(annotation, bindings)),),
            return_annotation=None,
        )


def property_annotation(prop: property) -> Any:
    """Declared type of a property, taken from its getter's return hint."""
    if prop.fget is None:
        return Any
    return _resolve_hints(prop.fget).get("return", Any)


def data_member_annotations(klass: type) -> Dict[str, Any]:
    """Instance attribute declarations of one class body (ClassVars excluded)."""
    try:
        raw = inspect.get_annotations(klass, eval_str=True)
    except Exception:
        raw = dict(klass.__dict__.get("__annotations__", {}))

    members = {}
    for name, annotation in raw.items():
        if name.startswith("_"):
            continue
        if annotation is ClassVar or get_origin(annotation) is ClassVar:
            continue
        if isinstance(annotation, str) and annotation.startswith(("ClassVar", "typing.ClassVar")):
            continue
        members[name] = annotation
    return members
