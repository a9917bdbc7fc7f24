"""
Decorators and injection helpers for ergonomic DI usage.
"""

from typing import Any, Callable, Optional, Type, TypeVar
from dataclasses import dataclass

from .scopes import Lifetime, normalize_lifetime


T = TypeVar("T")


@dataclass
class Inject:
    """
    Injection metadata marker.

    Usage:
        def __init__(self, repo: Annotated[UserRepo, Inject(tag="repo")]):
            ...
    """

    token: Optional[Type | str] = None
    tag: Optional[str] = None
    optional: bool = False

    # Internal marker for provider introspection
    _inject_token: Optional[Type | str] = None
    _inject_tag: Optional[str] = None
    _inject_optional: bool = False

    def __post_init__(self):
        self._inject_token = self.token
        self._inject_tag = self.tag
        self._inject_optional = self.optional


def inject(
    token: Optional[Type | str] = None,
    *,
    tag: Optional[str] = None,
    optional: bool = False,
) -> Inject:
    """
    Create injection metadata.

    Args:
        token: Optional explicit token (inferred from type hint if None)
        tag: Optional tag for disambiguation
        optional: If True, inject None if provider not found

    Example:
        def __init__(
            self,
            db: Annotated[Database, inject(tag="readonly")],
            cache: Annotated[Cache, inject(optional=True)] = None,
        ):
            ...
    """
    return Inject(token=token, tag=tag, optional=optional)


def service(
    *,
    lifetime: Lifetime | str = Lifetime.TRANSIENT,
    provides: Optional[Any] = None,
    lazy: bool = False,
    tag: Optional[str] = None,
    name: Optional[str] = None,
) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator to mark a class as a DI service.

    ``ServiceCollection.add_service(cls)`` reads this metadata.

    Args:
        lifetime: transient, scoped or singleton
        provides: Service type the class is registered under (the class itself
            if None)
        lazy: Register behind a lazy proxy; ``provides`` must then be an
            interface
        tag: Optional tag for disambiguation
        name: Optional explicit service name

    Example:
        @service(lifetime="scoped", provides=Mailer, lazy=True)
        class SmtpMailer(Mailer):
            def __init__(self, settings: SmtpSettings):
                self.settings = settings
    """
    normalized = normalize_lifetime(lifetime)

    def decorator(cls: Type[T]) -> Type[T]:
        # Attach metadata to class
        cls.__di_lifetime__ = normalized  # type: ignore
        cls.__di_provides__ = provides  # type: ignore
        cls.__di_lazy__ = lazy  # type: ignore
        cls.__di_tag__ = tag  # type: ignore
        cls.__di_name__ = name or cls.__name__  # type: ignore
        return cls

    return decorator
