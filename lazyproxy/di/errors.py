"""
DI-specific error types with rich diagnostics.
"""

from typing import Any, List, Optional


class DIError(Exception):
    """Base exception for DI errors."""
    pass


# ============================================================================
# Registration-time errors
# ============================================================================

class RegistrationError(DIError, ValueError):
    """Invalid arguments passed to a registration call."""

    def __init__(self, message: str, *, argument: Optional[str] = None):
        self.argument = argument
        if argument:
            message = f"{message} (argument: {argument})"
        super().__init__(message)


class NotAnInterfaceError(RegistrationError, TypeError):
    """Service type cannot be proxied because it is not an interface."""

    def __init__(self, service_type: Any, reason: str = ""):
        self.service_type = service_type
        name = getattr(service_type, "__qualname__", None) or repr(service_type)

        msg = f"Cannot create a lazy proxy for '{name}': not an interface"
        if reason:
            msg += f" ({reason})"
        msg += "\n\nSuggested fixes:"
        msg += "\n  - Declare the service contract as a typing.Protocol"
        msg += "\n  - Or as an abc.ABC with at least one @abstractmethod"
        msg += "\n  - Register generic interfaces with every type argument bound"

        super().__init__(msg, argument="service_type")


# ============================================================================
# Resolution errors
# ============================================================================

class ResolutionError(DIError):
    """A dependency could not be constructed."""
    pass


class ProviderNotFoundError(ResolutionError):
    """Provider not found for requested token."""

    def __init__(
        self,
        token: str,
        tag: Optional[str] = None,
        candidates: Optional[List[str]] = None,
        requested_by: Optional[str] = None,
    ):
        self.token = token
        self.tag = tag
        self.candidates = candidates or []
        self.requested_by = requested_by

        msg = f"No provider found for token={token}"
        if tag:
            msg += f" (tag={tag})"

        if requested_by:
            msg += f"\nRequested by: {requested_by}"

        if self.candidates:
            msg += "\n\nCandidates found:"
            for candidate in self.candidates:
                msg += f"\n  - {candidate}"

        msg += "\n\nSuggested fixes:"
        msg += f"\n  - Register a provider for {token}"
        if self.candidates:
            msg += "\n  - Add Inject(tag='...') to disambiguate"

        super().__init__(msg)


class DependencyCycleError(ResolutionError):
    """Circular dependency detected while resolving or materializing."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle

        msg = "Detected dependency cycle:"
        for i, token in enumerate(cycle):
            arrow = " -> " if i < len(cycle) - 1 else ""
            msg += f"\n  {token}{arrow}"

        msg += "\n\nSuggested fixes:"
        msg += "\n  - Register one side of the cycle lazily (add_lazy_*)"
        msg += "\n  - Do not call a lazy dependency from its own constructor path"
        msg += "\n  - Restructure dependencies to remove cycle"

        super().__init__(msg)


class ScopeViolationError(DIError):
    """Scoped service injected into a singleton."""

    def __init__(
        self,
        provider_token: str,
        provider_lifetime: str,
        consumer_token: str,
        consumer_lifetime: str,
    ):
        self.provider_token = provider_token
        self.provider_lifetime = provider_lifetime
        self.consumer_token = consumer_token
        self.consumer_lifetime = consumer_lifetime

        msg = (
            f"Scope violation: {provider_lifetime} service '{provider_token}' "
            f"injected into {consumer_lifetime} service '{consumer_token}'. "
            f"\n\nShorter-lived services cannot be captured by longer-lived ones."
            f"\n\nSuggested fixes:"
            f"\n  - Change '{consumer_token}' to {provider_lifetime} lifetime"
            f"\n  - Change '{provider_token}' to {consumer_lifetime} lifetime"
        )

        super().__init__(msg)


# ============================================================================
# Proxy generation errors
# ============================================================================

class ProxyGenerationError(DIError):
    """A dispatcher could not be generated for an interface."""
    pass


class InterfaceAccessError(ProxyGenerationError):
    """Restricted interface without a trust declaration for the generator."""

    def __init__(self, interface: type, module_name: str, trusted_name: str):
        self.interface = interface
        self.module_name = module_name
        self.trusted_name = trusted_name

        msg = (
            f"Interface '{interface.__qualname__}' is not exported from "
            f"module '{module_name}' and cannot be proxied."
            f"\n\nSuggested fixes:"
            f"\n  - Add __internals_visible_to__ = (\"{trusted_name}\",) to {module_name}"
            f"\n  - Or call lazyproxy.grant_internals_access(\"{module_name}\")"
        )

        super().__init__(msg)


# ============================================================================
# Graph validation errors
# ============================================================================

class CircularDependencyError(DIError):
    """Circular dependency detected in service graph."""

    def __init__(
        self,
        cycles: List[List[str]],
        locations: Optional[dict] = None,
    ):
        self.cycles = cycles
        self.locations = locations or {}

        msg = "Circular dependency detected in service collection\n"

        for i, cycle in enumerate(cycles, 1):
            msg += f"\nCycle {i}:\n"
            for j, token in enumerate(cycle):
                arrow = " → " if j < len(cycle) - 1 else ""
                msg += f"  {token}{arrow}"

                if token in self.locations:
                    file, line = self.locations[token]
                    msg += f" ({file}:{line})"

                msg += "\n"

            if cycle:
                msg += f"  {cycle[0]} (circular)\n"

        msg += "\nSuggested fixes:"
        msg += "\n  1. Register one of the services lazily"
        msg += "\n  2. Extract shared dependencies into a separate service"

        super().__init__(msg)


class MissingDependencyError(DIError):
    """Required dependency of an eager registration is not registered."""

    def __init__(
        self,
        service_token: str,
        dependency_token: str,
        service_location: Optional[tuple] = None,
    ):
        self.service_token = service_token
        self.dependency_token = dependency_token
        self.service_location = service_location

        msg = (
            f"Missing dependency: Service '{service_token}' "
            f"requires '{dependency_token}' but it is not registered\n"
        )

        if service_location:
            file, line = service_location
            msg += f"\nService location: {file}:{line}\n"

        msg += "\nSuggested fixes:"
        msg += f"\n  1. Register '{dependency_token}'"
        msg += "\n  2. Check for typos in the dependency annotation"
        msg += f"\n  3. Make the dependency optional with a default value"

        super().__init__(msg)
