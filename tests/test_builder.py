"""
Tests for standalone proxy construction with create_instance.
"""

import abc

import pytest

from lazyproxy import create_instance, is_materialized, unwrap
from lazyproxy.di.diagnostics import DIEventType
from lazyproxy.di.errors import NotAnInterfaceError, RegistrationError
from lazyproxy.proxy import FailurePolicy, holder_of


class Mailer(abc.ABC):
    @abc.abstractmethod
    def send(self, to: str) -> str: ...


class SmtpMailer(Mailer):
    instances = 0

    def __init__(self):
        SmtpMailer.instances += 1

    def send(self, to: str) -> str:
        return f"sent to {to}"


@pytest.fixture(autouse=True)
def reset_instances():
    SmtpMailer.instances = 0


class TestCreateInstance:

    def test_target_is_built_on_first_call(self):
        mailer = create_instance(Mailer, SmtpMailer)

        assert isinstance(mailer, Mailer)
        assert SmtpMailer.instances == 0

        assert mailer.send("ops@example.com") == "sent to ops@example.com"
        assert mailer.send("dev@example.com") == "sent to dev@example.com"
        assert SmtpMailer.instances == 1

    def test_each_call_gets_its_own_holder(self):
        first = create_instance(Mailer, SmtpMailer)
        second = create_instance(Mailer, SmtpMailer)

        assert holder_of(first) is not holder_of(second)
        assert unwrap(first) is not unwrap(second)

    def test_policy_is_applied(self):
        mailer = create_instance(Mailer, SmtpMailer, policy="poison")
        assert holder_of(mailer).policy is FailurePolicy.POISON

    def test_holder_is_named_after_the_interface(self):
        mailer = create_instance(Mailer, SmtpMailer)
        assert holder_of(mailer).name.endswith(".Mailer")

    def test_diagnostics_are_forwarded_to_the_holder(self, diagnostics, recorder, dispatcher_cache):
        mailer = create_instance(Mailer, SmtpMailer, cache=dispatcher_cache, diagnostics=diagnostics)
        mailer.send("a@example.com")

        assert DIEventType.MATERIALIZATION_SUCCESS in recorder.types()
        assert is_materialized(mailer)

    def test_none_factory_is_rejected(self):
        with pytest.raises(RegistrationError) as excinfo:
            create_instance(Mailer, None)
        assert excinfo.value.argument == "factory"

    def test_concrete_service_type_is_rejected(self):
        with pytest.raises(NotAnInterfaceError):
            create_instance(SmtpMailer, SmtpMailer)
