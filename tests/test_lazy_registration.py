"""
Lazy registrations resolved through the container, for every lifetime.

Construction side effects are recorded in ``_ids``; a proxy must leave it
untouched until a member of the service is used.
"""

import abc
import uuid
from typing import Callable, Generic, Optional, TypeVar, get_args

import pytest

from lazyproxy import (
    FailurePolicy,
    HolderState,
    LazyProxyConfig,
    Lifetime,
    NotAnInterfaceError,
    ProviderNotFoundError,
    RegistrationError,
    ServiceCollection,
    is_lazy_proxy,
    is_materialized,
    unwrap,
)
from lazyproxy.proxy import holder_of

from internal_services import INTERNAL_SERVICE_METHOD_VALUE, _IInternalService, _InternalService


SERVICE1_PROPERTY_VALUE = "Service1PropertyValue"
SERVICE1_METHOD_VALUE = "Service1MethodValue"
SERVICE2_METHOD_VALUE = "Service2MethodValue"

_ids = {"service1": "", "service2": ""}


# ============================================================================
# Test services
# ============================================================================


class IService2(abc.ABC):
    @abc.abstractmethod
    def method(self, arg: Optional[str] = None) -> str:
        ...


class IService1(abc.ABC):
    @property
    @abc.abstractmethod
    def text(self) -> str:
        ...

    @text.setter
    @abc.abstractmethod
    def text(self, value: str) -> None:
        ...

    @abc.abstractmethod
    def method(
        self,
        callback: Optional[Callable[[IService2], str]] = None,
        arg: Optional[str] = None,
    ) -> str:
        ...


class Service1(IService1):
    def __init__(self, other_service: IService2):
        _ids["service1"] = str(uuid.uuid4())
        self._other_service = other_service
        self._text = SERVICE1_PROPERTY_VALUE

    @property
    def text(self) -> str:
        return self._text

    @text.setter
    def text(self, value: str) -> None:
        self._text = value

    def method(self, callback=None, arg=None) -> str:
        dependent = callback(self._other_service) if callback is not None else ""
        return f"{SERVICE1_METHOD_VALUE}{dependent}{arg or ''}"


class Service2(IService2):
    def __init__(self):
        _ids["service2"] = str(uuid.uuid4())

    def method(self, arg: Optional[str] = None) -> str:
        return f"{SERVICE2_METHOD_VALUE}{arg or ''}"


class IHasId(abc.ABC):
    @property
    @abc.abstractmethod
    def id(self) -> uuid.UUID:
        ...


class ParameterTypeBase:
    def __init__(self, value: str = ""):
        self.value = value


class ParameterType1:
    pass


class ParameterType2:
    pass


class ParameterType3(ParameterTypeBase):
    pass


T = TypeVar("T")
TIn = TypeVar("TIn")
TOut = TypeVar("TOut", bound=ParameterTypeBase)
TArg = TypeVar("TArg")


class IGenericService(IHasId, Generic[T, TIn, TOut]):
    @abc.abstractmethod
    def get(self, arg1: T, arg2: TIn, arg3: TArg) -> TOut:
        ...


class GenericService(IGenericService[T, TIn, TOut]):
    def __init__(self):
        self._id = uuid.uuid4()

    @property
    def id(self) -> uuid.UUID:
        return self._id

    def get(self, arg1, arg2, arg3):
        out_type = get_args(self.__orig_class__)[2]
        return out_type(
            f"{type(arg1).__name__}_{type(arg2).__name__}_{type(arg3).__name__}"
        )


ClosedService = IGenericService[ParameterType1, ParameterType2, ParameterType3]
ClosedImplementation = GenericService[ParameterType1, ParameterType2, ParameterType3]


# ============================================================================
# Helpers
# ============================================================================

LIFETIMES = [Lifetime.SCOPED, Lifetime.SINGLETON, Lifetime.TRANSIENT]


def add_lazy(services: ServiceCollection, lifetime: Lifetime, service_type, implementation):
    register = {
        Lifetime.SCOPED: services.add_lazy_scoped,
        Lifetime.SINGLETON: services.add_lazy_singleton,
        Lifetime.TRANSIENT: services.add_lazy_transient,
    }[lifetime]
    register(service_type, implementation)


def add_eager(services: ServiceCollection, lifetime: Lifetime, service_type, implementation):
    register = {
        Lifetime.SCOPED: services.add_scoped,
        Lifetime.SINGLETON: services.add_singleton,
        Lifetime.TRANSIENT: services.add_transient,
    }[lifetime]
    register(service_type, implementation)


def build(lifetime: Lifetime, *, with_service2: bool = True, config: Optional[LazyProxyConfig] = None):
    services = ServiceCollection()
    add_lazy(services, lifetime, IService1, Service1)
    if with_service2:
        add_eager(services, lifetime, IService2, Service2)
    return services.build_container(config)


@pytest.fixture(autouse=True)
def reset_ids():
    _ids["service1"] = ""
    _ids["service2"] = ""
    yield


# ============================================================================
# Deferred construction
# ============================================================================


@pytest.mark.parametrize("lifetime", LIFETIMES)
class TestDeferredConstruction:

    def test_ctor_runs_when_method_is_called_for_the_first_time(self, lifetime):
        with build(lifetime) as container:
            service = container.get_service(IService1)

            assert _ids["service1"] == ""
            assert _ids["service2"] == ""

            assert service.method() == SERVICE1_METHOD_VALUE
            assert _ids["service1"] != ""
            assert _ids["service2"] != ""

            prev1, prev2 = _ids["service1"], _ids["service2"]

            assert service.method() == SERVICE1_METHOD_VALUE
            assert _ids["service1"] == prev1
            assert _ids["service2"] == prev2

    def test_ctor_runs_when_property_getter_is_called_for_the_first_time(self, lifetime):
        with build(lifetime) as container:
            service = container.get_service(IService1)

            assert _ids["service1"] == ""
            assert _ids["service2"] == ""

            assert service.text == SERVICE1_PROPERTY_VALUE
            assert _ids["service1"] != ""
            assert _ids["service2"] != ""

            prev1, prev2 = _ids["service1"], _ids["service2"]

            assert service.text == SERVICE1_PROPERTY_VALUE
            assert _ids["service1"] == prev1
            assert _ids["service2"] == prev2

    def test_ctor_runs_when_property_setter_is_called_for_the_first_time(self, lifetime):
        with build(lifetime) as container:
            service = container.get_service(IService1)

            assert _ids["service1"] == ""
            assert _ids["service2"] == ""

            service.text = "newValue1"

            assert _ids["service1"] != ""
            assert _ids["service2"] != ""

            prev1, prev2 = _ids["service1"], _ids["service2"]

            service.text = "newValue2"

            assert _ids["service1"] == prev1
            assert _ids["service2"] == prev2
            assert service.text == "newValue2"

    def test_resolution_returns_an_unmaterialized_proxy(self, lifetime):
        with build(lifetime) as container:
            service = container.resolve(IService1)

            assert is_lazy_proxy(service)
            assert isinstance(service, IService1)
            assert not is_materialized(service)
            assert "uninitialized" in repr(service)

            service.method()
            assert is_materialized(service)


# ============================================================================
# Argument passing
# ============================================================================


@pytest.mark.parametrize("lifetime", LIFETIMES)
class TestArgumentPassing:

    def test_arguments_are_passed_to_method_correctly(self, lifetime):
        with build(lifetime) as container:
            service = container.get_service(IService1)

            assert service.method(arg="arg1") == f"{SERVICE1_METHOD_VALUE}arg1"

            result = service.method(lambda s: s.method("arg2"), "arg1")
            assert result == f"{SERVICE1_METHOD_VALUE}{SERVICE2_METHOD_VALUE}arg2arg1"

    def test_callback_can_reach_another_lazy_service(self, lifetime):
        services = ServiceCollection()
        add_lazy(services, lifetime, IService1, Service1)
        add_lazy(services, lifetime, IService2, Service2)

        with services.build_container() as container:
            service = container.get_service(IService1)

            assert service.method(arg="x") == f"{SERVICE1_METHOD_VALUE}x"
            # Service1 holds a proxy for IService2 that nothing has used yet
            assert _ids["service1"] != ""
            assert _ids["service2"] == ""

            result = service.method(lambda s: s.method("y"), "x")
            assert result == f"{SERVICE1_METHOD_VALUE}{SERVICE2_METHOD_VALUE}yx"
            assert _ids["service2"] != ""


# ============================================================================
# Missing dependencies
# ============================================================================


@pytest.mark.parametrize("lifetime", LIFETIMES)
class TestMissingDependency:

    def test_error_is_raised_when_method_is_called(self, lifetime):
        with build(lifetime, with_service2=False) as container:
            service = container.get_service(IService1)
            assert service is not None

            with pytest.raises(ProviderNotFoundError) as excinfo:
                service.method()

            assert "IService2" in excinfo.value.token
            assert _ids["service1"] == ""

    def test_failed_materialization_is_retried(self, lifetime):
        with build(lifetime, with_service2=False) as container:
            service = container.get_service(IService1)

            with pytest.raises(ProviderNotFoundError):
                service.method()
            with pytest.raises(ProviderNotFoundError):
                service.text

    def test_poison_policy_from_config_rethrows_first_error(self, lifetime):
        config = LazyProxyConfig(failure_policy="poison")
        with build(lifetime, with_service2=False, config=config) as container:
            service = container.get_service(IService1)
            holder = holder_of(service)

            with pytest.raises(ProviderNotFoundError) as first:
                service.method()
            with pytest.raises(ProviderNotFoundError) as second:
                service.method()

            assert first.value is second.value
            assert holder.policy is FailurePolicy.POISON
            assert holder.state is HolderState.FAILED


# ============================================================================
# Restricted interfaces
# ============================================================================


@pytest.mark.parametrize("lifetime", LIFETIMES)
def test_internal_service_resolves_from_trusting_module(lifetime):
    services = ServiceCollection()
    add_lazy(services, lifetime, _IInternalService, _InternalService)

    with services.build_container() as container:
        service = container.get_service(_IInternalService)

        assert service.method() == INTERNAL_SERVICE_METHOD_VALUE
        assert service.method("!") == f"{INTERNAL_SERVICE_METHOD_VALUE}!"


# ============================================================================
# Closed generics
# ============================================================================


@pytest.mark.parametrize("lifetime", LIFETIMES)
def test_closed_generic_service_resolves(lifetime):
    services = ServiceCollection()
    add_lazy(services, lifetime, ClosedService, ClosedImplementation)

    with services.build_container() as container:
        service = container.get_service(ClosedService)

        assert isinstance(service, IGenericService)
        result = service.get(ParameterType1(), ParameterType2(), 42)

        assert isinstance(result, ParameterType3)
        assert result.value == "ParameterType1_ParameterType2_int"
        assert isinstance(service.id, uuid.UUID)


def test_distinct_closures_of_one_generic_are_distinct_services():
    other = IGenericService[ParameterType1, ParameterType2, ParameterTypeBase]
    services = ServiceCollection()
    services.add_lazy_singleton(ClosedService, ClosedImplementation)

    with services.build_container() as container:
        assert container.get_service(ClosedService) is not None
        assert container.get_service(other) is None


# ============================================================================
# Lifetimes of proxies
# ============================================================================


class TestProxyLifetimes:

    def test_transient_returns_a_new_proxy_each_time(self):
        with build(Lifetime.TRANSIENT) as container:
            first = container.resolve(IService1)
            second = container.resolve(IService1)

            assert first is not second
            first.method()
            assert is_materialized(first)
            assert not is_materialized(second)

    def test_singleton_proxy_is_shared_across_scopes(self):
        with build(Lifetime.SINGLETON) as container:
            with container.create_scope() as scope:
                assert scope.resolve(IService1) is container.resolve(IService1)

    def test_scoped_proxy_is_shared_within_a_scope_only(self):
        with build(Lifetime.SCOPED) as container:
            with container.create_scope() as scope1, container.create_scope() as scope2:
                assert scope1.resolve(IService1) is scope1.resolve(IService1)
                assert scope1.resolve(IService1) is not scope2.resolve(IService1)

    def test_scoped_target_uses_dependencies_of_its_scope(self):
        services = ServiceCollection()
        services.add_lazy_scoped(IService1, Service1)
        services.add_scoped(IService2, Service2)

        with services.build_container() as container:
            with container.create_scope() as scope:
                proxy = scope.resolve(IService1)
                proxy.method()
                assert unwrap(proxy)._other_service is scope.resolve(IService2)


# ============================================================================
# Registration errors
# ============================================================================


class TestRegistrationErrors:

    def test_none_service_type(self):
        with pytest.raises(RegistrationError, match="service_type"):
            ServiceCollection().add_lazy_singleton(None, Service1)

    def test_missing_implementation_and_factory(self):
        with pytest.raises(RegistrationError, match="implementation"):
            ServiceCollection().add_lazy_singleton(IService1)

    def test_implementation_and_factory_together(self):
        with pytest.raises(RegistrationError, match="not both"):
            ServiceCollection().add_lazy_singleton(
                IService1, Service1, factory=lambda resolver: Service1(Service2())
            )

    def test_implementation_must_be_a_class(self):
        with pytest.raises(RegistrationError, match="must be a class"):
            ServiceCollection().add_lazy_singleton(IService1, Service1(Service2()))

    def test_implementation_must_implement_the_interface(self):
        with pytest.raises(RegistrationError, match="does not implement"):
            ServiceCollection().add_lazy_singleton(IService1, Service2)

    def test_concrete_service_type_is_rejected(self):
        with pytest.raises(NotAnInterfaceError, match="concrete class"):
            ServiceCollection().add_lazy_singleton(Service1, Service1)

    def test_open_generic_service_type_is_rejected(self):
        with pytest.raises(NotAnInterfaceError, match="open generic"):
            ServiceCollection().add_lazy_singleton(IGenericService, GenericService)

    def test_not_an_interface_is_a_type_error(self):
        with pytest.raises(TypeError):
            ServiceCollection().add_lazy_transient(Service2, Service2)

    def test_unknown_lifetime(self):
        from lazyproxy import add_lazy as add_lazy_registration

        with pytest.raises(RegistrationError, match="lifetime"):
            add_lazy_registration(ServiceCollection(), IService1, Service1, lifetime="pooled")


# ============================================================================
# Factory registrations
# ============================================================================


class TestFactoryRegistrations:

    def test_factory_receives_the_resolver_on_first_use(self):
        calls = []

        def make_service1(resolver):
            calls.append(resolver)
            return Service1(resolver.resolve(IService2))

        services = ServiceCollection()
        services.add_lazy_scoped(IService1, factory=make_service1)
        services.add_scoped(IService2, Service2)

        with services.build_container() as container:
            with container.create_scope() as scope:
                proxy = scope.resolve(IService1)
                assert calls == []

                assert proxy.method() == SERVICE1_METHOD_VALUE
                assert calls == [scope]

    def test_factory_with_annotated_dependencies(self):
        def make_service1(other: IService2) -> IService1:
            return Service1(other)

        services = ServiceCollection()
        services.add_lazy_transient(IService1, factory=make_service1)
        services.add_transient(IService2, Service2)

        with services.build_container() as container:
            assert container.resolve(IService1).method(arg="!") == f"{SERVICE1_METHOD_VALUE}!"
