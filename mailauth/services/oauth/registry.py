"""
mailauth.services.oauth.registry - Provider Registry

Maps provider names to adapter classes and hands out one cached adapter
instance per provider for the lifetime of the registry.
"""

import inspect
import logging
from typing import Any

from mailauth.models.email_configuration import EmailProvider, VendorEmailConfiguration
from mailauth.services.oauth.errors import InvalidProviderError
from mailauth.services.oauth.lifecycle import RefreshGuard
from mailauth.services.oauth.providers.base import OAuthProvider
from mailauth.services.oauth.providers.google import GoogleOAuthProvider
from mailauth.services.oauth.providers.microsoft import MicrosoftGraphProvider
from mailauth.settings import MailAuthSettings

logger = logging.getLogger(__name__)


def _normalize(name: Any) -> str:
    return str(name or "").strip().lower()


class ProviderRegistry:
    """
    Registry of OAuth provider adapters.

    Adapters are stateless, so one instance per provider is shared by every
    request. Instances are created on first use; a race on first use only
    means one of two equivalent instances wins the cache slot.

    All adapters share one RefreshGuard.

    Usage:
        registry = ProviderRegistry(timeout=30.0)
        registry.register("google", GoogleOAuthProvider)

        provider = registry.resolve("Google ")
        provider = registry.resolve_from_configuration(config)
    """

    def __init__(self, timeout: float | None = None, refresh_guard: RefreshGuard | None = None) -> None:
        self.timeout = timeout
        self.refresh_guard = refresh_guard or RefreshGuard()

        # Map of provider name -> adapter class
        self._providers: dict[str, type[OAuthProvider]] = {}

        # Map of provider name -> adapter instance
        self._instances: dict[str, OAuthProvider] = {}

    def register(self, name: str, adapter_class: type[OAuthProvider]) -> None:
        """
        Register an adapter class under a provider name.

        Replaces any existing registration and drops its cached instance.

        Raises:
            InvalidProviderError: If the name is empty or the class is not a
                concrete OAuthProvider
        """
        key = _normalize(name)
        if not key:
            raise InvalidProviderError("Provider name cannot be empty")

        if not inspect.isclass(adapter_class) or not issubclass(adapter_class, OAuthProvider):
            raise InvalidProviderError(
                f"{getattr(adapter_class, '__name__', adapter_class)!s} must extend OAuthProvider",
                key,
            )
        if inspect.isabstract(adapter_class):
            raise InvalidProviderError(
                f"{adapter_class.__name__} does not implement the full OAuthProvider interface",
                key,
            )

        self._providers[key] = adapter_class
        self._instances.pop(key, None)

        logger.info(
            f"Registered OAuth provider: {key}",
            extra={"provider": key, "adapter_class": adapter_class.__name__},
        )

    def resolve(self, name: str) -> OAuthProvider:
        """
        Return the adapter for ``name`` (case-insensitive, surrounding
        whitespace ignored).

        Raises:
            InvalidProviderError: If no adapter is registered under ``name``
        """
        key = _normalize(name)
        instance = self._instances.get(key)
        if instance is not None:
            return instance

        adapter_class = self._providers.get(key)
        if adapter_class is None:
            raise InvalidProviderError(
                f"Provider not supported: {name!r}. Available providers: "
                f"{', '.join(self.available_providers())}",
                key or None,
            )

        instance = adapter_class(timeout=self.timeout, refresh_guard=self.refresh_guard)
        self._instances[key] = instance

        logger.debug(f"Created OAuth provider instance: {key}", extra={"provider": key})
        return instance

    def resolve_from_configuration(self, config: VendorEmailConfiguration) -> OAuthProvider:
        """
        Return the adapter for a stored configuration.

        Raises:
            InvalidProviderError: If the configuration has no provider, or an
                unregistered one
        """
        if not _normalize(config.provider):
            raise InvalidProviderError(f"Configuration {config.id} has no provider set")
        return self.resolve(config.provider)

    def clear_cache(self, name: str | None = None) -> None:
        """Drop cached adapter instances, for one provider or all of them."""
        if name is None:
            self._instances.clear()
        else:
            self._instances.pop(_normalize(name), None)

    def available_providers(self) -> list[str]:
        return sorted(self._providers)

    def is_valid_provider(self, name: str) -> bool:
        return _normalize(name) in self._providers

    def all_adapters(self) -> dict[str, OAuthProvider]:
        """Every registered adapter, instantiating any not yet cached."""
        return {key: self.resolve(key) for key in self.available_providers()}

    def stats(self) -> dict[str, Any]:
        return {
            "registered_providers": len(self._providers),
            "cached_instances": len(self._instances),
            "available_providers": self.available_providers(),
            "cached_providers": sorted(self._instances),
        }

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_valid_provider(name)


def build_default_registry(settings: MailAuthSettings) -> ProviderRegistry:
    """Registry with the Google and Microsoft adapters."""
    registry = ProviderRegistry(timeout=settings.http_timeout_seconds)
    registry.register(EmailProvider.GOOGLE.value, GoogleOAuthProvider)
    registry.register(EmailProvider.MICROSOFT.value, MicrosoftGraphProvider)
    return registry
