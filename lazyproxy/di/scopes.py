"""
Service lifetimes and scope validation.
"""

from enum import Enum
from typing import Optional
from dataclasses import dataclass


class Lifetime(str, Enum):
    """Service lifetime categories."""

    TRANSIENT = "transient"  # New instance every resolve
    SCOPED = "scoped"        # One instance per scope
    SINGLETON = "singleton"  # One instance for the root container's lifetime


@dataclass(frozen=True)
class Scope:
    """Lifetime metadata and rules."""

    name: str
    cacheable: bool
    parent: Optional[str] = None

    def can_inject_into(self, other: "Scope") -> bool:
        """
        Check if a service of this lifetime can be captured by another.

        Rules:
        - Singleton and transient can inject into anything
        - Scoped cannot inject into singleton (captive dependency)
        """
        if self.name == "scoped":
            return other.name != "singleton"
        return True


SCOPES = {
    "singleton": Scope(name="singleton", cacheable=True),
    "scoped": Scope(name="scoped", cacheable=True, parent="singleton"),
    "transient": Scope(name="transient", cacheable=False),
}


def normalize_lifetime(lifetime: "Lifetime | str") -> str:
    """Return the canonical lifetime name, rejecting unknown values."""
    name = lifetime.value if isinstance(lifetime, Lifetime) else str(lifetime).lower()
    if name not in SCOPES:
        from .errors import RegistrationError
        raise RegistrationError(
            f"Unknown lifetime '{lifetime}'; expected one of {sorted(SCOPES)}",
            argument="lifetime",
        )
    return name


class ScopeValidator:
    """Validates lifetime rules and relationships."""

    @staticmethod
    def validate_injection(
        provider_lifetime: str,
        consumer_lifetime: str,
    ) -> bool:
        """
        Validate that a dependency's lifetime can be injected into a consumer.

        Args:
            provider_lifetime: Lifetime of the dependency being injected
            consumer_lifetime: Lifetime of the consumer

        Returns:
            True if valid, False otherwise
        """
        provider = SCOPES.get(provider_lifetime)
        consumer = SCOPES.get(consumer_lifetime)

        if provider is None or consumer is None:
            return False

        return provider.can_inject_into(consumer)
