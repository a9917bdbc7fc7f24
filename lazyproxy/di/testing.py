"""
Testing utilities for DI system.
"""

from typing import Any, Iterator, Optional, Type
from contextlib import contextmanager

from .core import Container, ServiceCollection, make_key
from .providers import ValueProvider


class MockProvider(ValueProvider):
    """
    Mock provider for testing.

    Tracks access for assertions.
    """

    __slots__ = ("access_count", "instantiate_calls")

    def __init__(
        self,
        value: Any,
        token: Type | str,
        name: str = "mock",
        tags: tuple[str, ...] = (),
    ):
        super().__init__(value, token, name, tags)
        self.access_count = 0
        self.instantiate_calls = []

    def instantiate(self, ctx):
        """Track instantiation calls."""
        self.access_count += 1
        self.instantiate_calls.append(ctx.get_trace())
        return super().instantiate(ctx)

    def reset(self) -> None:
        """Reset tracking."""
        self.access_count = 0
        self.instantiate_calls.clear()


@contextmanager
def override_container(
    container: Container,
    token: Type | str,
    mock_value: Any,
    *,
    tag: Optional[str] = None,
) -> Iterator[MockProvider]:
    """
    Context manager to temporarily override a provider.

    The override is visible to the container and every scope sharing its
    providers. The original provider and cached instance come back on exit.

    Example:
        with override_container(container, UserRepo, FakeRepo()) as mock:
            service = container.resolve(UserService)
            assert mock.access_count == 1
    """
    mock = MockProvider(mock_value, token, tags=(tag,) if tag else ())

    cache_key = make_key(token, tag)
    original_provider = container._providers.get(cache_key)
    original_cached = container._cache.pop(cache_key, None)

    container.register(mock, tag=tag)

    try:
        yield mock
    finally:
        container._cache.pop(cache_key, None)
        if original_provider is not None:
            container._providers[cache_key] = original_provider
        else:
            container._providers.pop(cache_key, None)
        if original_cached is not None:
            container._cache[cache_key] = original_cached


# Pytest fixtures (if pytest is available)
try:
    import pytest

    @pytest.fixture
    def service_collection():
        """Provide an empty service collection."""
        return ServiceCollection()

    @pytest.fixture
    def di_container(service_collection):
        """Provide a root container built from ``service_collection``."""
        container = service_collection.build_container()
        yield container
        container.shutdown()

    @pytest.fixture
    def scoped_container(di_container):
        """Provide a scope of ``di_container``."""
        scope = di_container.create_scope()
        yield scope
        scope.shutdown()

    @pytest.fixture
    def mock_provider():
        """Factory fixture for creating mock providers."""
        def _create_mock(value: Any, token: Type | str, **kwargs):
            return MockProvider(value, token, **kwargs)
        return _create_mock

except ImportError:
    # pytest not available - skip fixtures
    pass
