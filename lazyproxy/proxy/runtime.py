"""
Member dispatch runtime.

Turns a call on a proxy into the same call on the materialized target. One
forwarded invocation per proxy invocation; arguments, results and errors pass
through untouched.
"""

from typing import Any, Dict, Optional, Tuple, TypeVar
import logging

from .descriptor import MemberSignature
from .holder import LazyInstanceHolder

logger = logging.getLogger("lazyproxy.proxy.runtime")

# Instance attribute holding a proxy's LazyInstanceHolder
HOLDER_ATTRIBUTE = "_lazyproxy_holder"

# Class attribute pointing a generated proxy class at its dispatcher
DISPATCHER_ATTRIBUTE = "__lazyproxy_dispatcher__"


class Invocation:
    """
    A captured call: the member, its arguments, and the call-site type
    arguments of a generic method.

    Python passes no explicit type arguments, so for a generic method they are
    read off the bound argument values: a parameter annotated with a
    method-level type variable binds that variable to ``type(value)``.

    ``type_arguments`` is informational. It feeds debug logging only and is
    never passed to the target, which receives the original arguments.
    """

    __slots__ = ("member", "args", "kwargs", "_type_arguments")

    def __init__(
        self,
        member: MemberSignature,
        args: Tuple[Any, ...] = (),
        kwargs: Optional[Dict[str, Any]] = None,
    ):
        self.member = member
        self.args = args
        self.kwargs = kwargs or {}
        self._type_arguments: Optional[Dict[TypeVar, type]] = None

    @property
    def type_arguments(self) -> Dict[TypeVar, type]:
        if self._type_arguments is None:
            self._type_arguments = self._infer_type_arguments()
        return self._type_arguments

    def _infer_type_arguments(self) -> Dict[TypeVar, type]:
        if not self.member.is_generic:
            return {}
        type_params = set(self.member.type_params)
        names = [name for name, _ in self.member.parameters]
        values = dict(zip(names, self.args))
        values.update(self.kwargs)

        inferred: Dict[TypeVar, type] = {}
        for name, annotation in self.member.parameters:
            if not isinstance(annotation, TypeVar) or annotation not in type_params:
                continue
            if name in values and annotation not in inferred:
                inferred[annotation] = type(values[name])
        return inferred

    def __repr__(self) -> str:
        return f"<Invocation {self.member.name} args={len(self.args)} kwargs={sorted(self.kwargs)}>"


def holder_of(proxy: Any) -> LazyInstanceHolder:
    """Return the holder backing a proxy."""
    try:
        return object.__getattribute__(proxy, HOLDER_ATTRIBUTE)
    except AttributeError:
        raise TypeError(f"{type(proxy).__name__} object is not a lazy proxy") from None


def is_lazy_proxy(obj: Any) -> bool:
    """True if ``obj`` is an instance of a generated proxy class."""
    return getattr(type(obj), DISPATCHER_ATTRIBUTE, None) is not None


def is_materialized(proxy: Any) -> bool:
    """True once the proxy's target exists. Never materializes."""
    return holder_of(proxy).is_materialized


def materialize(proxy: Any) -> None:
    """Force materialization without invoking a member."""
    holder_of(proxy).get_or_materialize()


def unwrap(proxy: Any) -> Any:
    """Materialize the proxy and return its target."""
    return holder_of(proxy).get_or_materialize()


def _log_generic(invocation: Invocation) -> None:
    if invocation.member.is_generic and logger.isEnabledFor(logging.DEBUG):
        bound = ", ".join(
            f"{tv.__name__}={tp.__qualname__}"
            for tv, tp in invocation.type_arguments.items()
        )
        logger.debug(f"Forwarding generic {invocation.member.name}[{bound}]")


def invoke(proxy: Any, invocation: Invocation) -> Any:
    """Forward a method call to the target."""
    target = holder_of(proxy).get_or_materialize()
    _log_generic(invocation)
    method = getattr(target, invocation.member.name)
    return method(*invocation.args, **invocation.kwargs)


async def invoke_async(proxy: Any, invocation: Invocation) -> Any:
    """Forward a coroutine method call to the target and await it."""
    target = holder_of(proxy).get_or_materialize()
    _log_generic(invocation)
    method = getattr(target, invocation.member.name)
    return await method(*invocation.args, **invocation.kwargs)


def get_property(proxy: Any, member: MemberSignature) -> Any:
    """Forward a property read."""
    target = holder_of(proxy).get_or_materialize()
    return getattr(target, member.name)


def set_property(proxy: Any, member: MemberSignature, value: Any) -> None:
    """Forward a property write."""
    target = holder_of(proxy).get_or_materialize()
    setattr(target, member.name, value)
