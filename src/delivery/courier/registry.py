"""Provider registry — provider id to courier adapter and profile."""

import structlog

from delivery.config import ProviderProfile
from delivery.courier.port import CourierAPIProvider
from delivery.errors import ProviderNotSupported

logger = structlog.get_logger(__name__)


class ProviderRegistry:
    """Constructed once at startup and handed to the orchestrator."""

    def __init__(self) -> None:
        self._adapters: dict[str, CourierAPIProvider] = {}
        self._profiles: dict[str, ProviderProfile] = {}

    def register(self, adapter: CourierAPIProvider, profile: ProviderProfile | None = None) -> None:
        provider_id = adapter.provider_id
        self._adapters[provider_id] = adapter
        self._profiles[provider_id] = profile or getattr(adapter, "profile", None) or ProviderProfile(
            provider_id, provider_id
        )
        logger.debug("Courier provider registered", provider=provider_id)

    def resolve(self, provider_id: str) -> CourierAPIProvider:
        try:
            return self._adapters[provider_id]
        except KeyError:
            raise ProviderNotSupported(provider_id) from None

    def profile(self, provider_id: str) -> ProviderProfile:
        try:
            return self._profiles[provider_id]
        except KeyError:
            raise ProviderNotSupported(provider_id) from None

    def supports(self, provider_id: str) -> bool:
        return provider_id in self._adapters

    def provider_ids(self) -> list[str]:
        return sorted(self._adapters)

    def profiles(self) -> list[ProviderProfile]:
        return [self._profiles[provider_id] for provider_id in self.provider_ids()]

    def polled_provider_ids(self) -> list[str]:
        """Providers that do not push webhooks and must be polled for status."""
        return [provider_id for provider_id in self.provider_ids() if not self._profiles[provider_id].supports_webhooks]

    def close(self) -> None:
        for adapter in self._adapters.values():
            close = getattr(adapter, "close", None)
            if close is not None:
                close()
