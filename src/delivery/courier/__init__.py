"""Courier adapter abstraction — pluggable third-party courier integrations."""

from delivery.config import PROVIDER_PROFILES, DeliverySettings
from delivery.courier.registry import ProviderRegistry
from delivery.errors import CourierConfigurationError


def build_registry(settings: DeliverySettings) -> ProviderRegistry:
    """Construct adapters for every enabled provider.

    Enabled providers come from COURIER_PROVIDERS. An enabled provider whose
    credentials are missing fails startup rather than the first dispatch.
    """
    registry = ProviderRegistry()
    for provider_id in settings.enabled_providers:
        if provider_id == "fake":
            from delivery.courier.fake_adapter import FakeCourier

            registry.register(FakeCourier())
        elif provider_id == "g4s":
            from delivery.courier.g4s_adapter import G4SCourierAPI

            if not settings.g4s.api_key:
                raise CourierConfigurationError("g4s is enabled but G4S_API_KEY is not set")
            registry.register(
                G4SCourierAPI(
                    PROVIDER_PROFILES["g4s"],
                    api_key=settings.g4s.api_key,
                    base_url=settings.g4s.base_url,
                    webhook_secret=settings.g4s.webhook_secret,
                    timeout=settings.courier_timeout_seconds,
                )
            )
        elif provider_id == "fargo_courier":
            from delivery.courier.fargo_adapter import FargoCourierAPI

            missing = [
                name
                for name, value in (
                    ("FARGO_API_KEY", settings.fargo.api_key),
                    ("FARGO_USERNAME", settings.fargo.username),
                    ("FARGO_PASSWORD", settings.fargo.password),
                )
                if not value
            ]
            if missing:
                raise CourierConfigurationError(f"fargo_courier is enabled but {', '.join(missing)} not set")
            registry.register(
                FargoCourierAPI(
                    PROVIDER_PROFILES["fargo_courier"],
                    settings.fargo,
                    timeout=settings.courier_timeout_seconds,
                )
            )
        else:
            raise CourierConfigurationError(f"Unknown courier provider in COURIER_PROVIDERS: {provider_id}")
    return registry
