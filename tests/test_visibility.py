"""
Tests for restricted-visibility interfaces and the generator trust relationship.
"""

import pytest

from lazyproxy import ServiceCollection
from lazyproxy.di.errors import InterfaceAccessError, ProxyGenerationError
from lazyproxy.proxy import (
    DYNAMIC_MODULE,
    create_instance,
    grant_internals_access,
    revoke_internals_access,
)
from lazyproxy.proxy.visibility import is_exported, module_trusts_generator

import hidden_services
import internal_services
from hidden_services import (
    HiddenReport,
    HiddenReportImpl,
    PrivateReportImpl,
    PublicReport,
    _PrivateReport,
)
from internal_services import INTERNAL_SERVICE_METHOD_VALUE, _IInternalService, _InternalService


class PublicReportImpl(PublicReport):
    def render(self) -> str:
        return "public"


# ============================================================================
# Export rules
# ============================================================================


class TestExportRules:

    def test_listed_in_all_is_exported(self):
        assert is_exported(PublicReport)

    def test_missing_from_all_is_restricted(self):
        assert not is_exported(HiddenReport)

    def test_underscore_name_is_restricted(self):
        assert not is_exported(_PrivateReport)
        assert not is_exported(_IInternalService)

    def test_declared_trust(self):
        assert module_trusts_generator(internal_services.__name__)
        assert not module_trusts_generator(hidden_services.__name__)


# ============================================================================
# Generation against restricted interfaces
# ============================================================================


class TestRestrictedInterfaces:

    def test_exported_interface_is_proxied(self, dispatcher_cache):
        proxy = create_instance(PublicReport, PublicReportImpl, cache=dispatcher_cache)
        assert proxy.render() == "public"

    def test_interface_missing_from_all_is_refused(self, dispatcher_cache):
        with pytest.raises(InterfaceAccessError) as excinfo:
            create_instance(HiddenReport, HiddenReportImpl, cache=dispatcher_cache)

        error = excinfo.value
        assert isinstance(error, ProxyGenerationError)
        assert error.module_name == hidden_services.__name__
        assert error.trusted_name == DYNAMIC_MODULE
        assert "__internals_visible_to__" in str(error)

    def test_private_interface_is_refused(self, dispatcher_cache):
        with pytest.raises(InterfaceAccessError):
            create_instance(_PrivateReport, PrivateReportImpl, cache=dispatcher_cache)

    def test_granted_module_is_proxied(self, dispatcher_cache):
        grant_internals_access(hidden_services)
        try:
            hidden = create_instance(HiddenReport, HiddenReportImpl, cache=dispatcher_cache)
            private = create_instance(_PrivateReport, PrivateReportImpl, cache=dispatcher_cache)

            assert hidden.render() == "hidden"
            assert private.render() == "private"
        finally:
            revoke_internals_access(hidden_services)

        assert not module_trusts_generator(hidden_services.__name__)

    def test_declaring_module_is_proxied(self, dispatcher_cache):
        proxy = create_instance(_IInternalService, _InternalService, cache=dispatcher_cache)
        assert proxy.method("!") == f"{INTERNAL_SERVICE_METHOD_VALUE}!"

    def test_access_error_surfaces_on_first_resolve(self):
        services = ServiceCollection()
        services.add_lazy_transient(HiddenReport, HiddenReportImpl)
        container = services.build_container()

        with pytest.raises(InterfaceAccessError):
            container.resolve(HiddenReport)
