"""Delivery configuration — courier credentials, timeouts, provider profiles.

Read once from the environment at startup. Adapters receive what they need
through their constructors and never look at the environment themselves.
"""

import os
from dataclasses import dataclass, field
from enum import Enum


class ProviderType(Enum):
    COURIER = "courier"
    DISPATCH = "dispatch"
    PICKUP_NETWORK = "pickup_network"


@dataclass(frozen=True)
class ProviderProfile:
    """Static description of a delivery provider."""

    provider_id: str
    name: str
    provider_type: ProviderType = ProviderType.COURIER
    estimated_delivery_time: str = "24-48 hours"
    estimated_delivery_hours: int = 48
    base_rate: float = 0.0
    per_kg_rate: float = 0.0
    currency: str = "KES"
    supports_webhooks: bool = False


PROVIDER_PROFILES = {
    "g4s": ProviderProfile(
        provider_id="g4s",
        name="G4S Courier",
        estimated_delivery_time="24-48 hours",
        estimated_delivery_hours=48,
        base_rate=200.0,
        supports_webhooks=True,
    ),
    "fargo_courier": ProviderProfile(
        provider_id="fargo_courier",
        name="Fargo Courier Services",
        estimated_delivery_time="Next day",
        estimated_delivery_hours=24,
        base_rate=250.0,
        supports_webhooks=False,
    ),
    "fake": ProviderProfile(
        provider_id="fake",
        name="Fake Courier",
        estimated_delivery_time="Same day",
        estimated_delivery_hours=8,
        base_rate=100.0,
        supports_webhooks=True,
    ),
}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass(frozen=True)
class G4SSettings:
    api_key: str | None = None
    base_url: str = "https://api.g4s.co.ke"
    webhook_secret: str | None = None


@dataclass(frozen=True)
class FargoSettings:
    api_key: str | None = None
    username: str | None = None
    password: str | None = None
    environment: str = "production"
    base_url: str | None = None
    webhook_secret: str | None = None
    default_city: str | None = None
    default_weight_kg: float = 1.0
    parcel_dimensions_cm: tuple[float, float, float] = (10.0, 10.0, 10.0)


@dataclass(frozen=True)
class DeliverySettings:
    enabled_providers: list[str] = field(default_factory=lambda: ["fake"])
    courier_timeout_seconds: float = 10.0
    courier_max_workers: int = 8
    dispatch_stale_after_seconds: int = 900
    poll_interval_seconds: int = 300
    order_service_url: str | None = None
    g4s: G4SSettings = field(default_factory=G4SSettings)
    fargo: FargoSettings = field(default_factory=FargoSettings)

    @classmethod
    def from_env(cls) -> "DeliverySettings":
        dimensions = _env_list("FARGO_PARCEL_DIMENSIONS_CM", "10,10,10")
        if len(dimensions) != 3:
            raise ValueError("FARGO_PARCEL_DIMENSIONS_CM must be three comma-separated numbers")

        return cls(
            enabled_providers=_env_list("COURIER_PROVIDERS", "fake"),
            courier_timeout_seconds=_env_float("COURIER_TIMEOUT_SECONDS", 10.0),
            courier_max_workers=_env_int("COURIER_MAX_WORKERS", 8),
            dispatch_stale_after_seconds=_env_int("DISPATCH_STALE_AFTER_SECONDS", 900),
            poll_interval_seconds=_env_int("DELIVERY_POLL_INTERVAL_SECONDS", 300),
            order_service_url=os.environ.get("ORDER_SERVICE_URL") or None,
            g4s=G4SSettings(
                api_key=os.environ.get("G4S_API_KEY") or None,
                base_url=os.environ.get("G4S_BASE_URL") or "https://api.g4s.co.ke",
                webhook_secret=os.environ.get("G4S_WEBHOOK_SECRET") or None,
            ),
            fargo=FargoSettings(
                api_key=os.environ.get("FARGO_API_KEY") or None,
                username=os.environ.get("FARGO_USERNAME") or None,
                password=os.environ.get("FARGO_PASSWORD") or None,
                environment=os.environ.get("FARGO_ENV", "production"),
                base_url=os.environ.get("FARGO_BASE_URL") or None,
                webhook_secret=os.environ.get("FARGO_WEBHOOK_SECRET") or None,
                default_city=os.environ.get("FARGO_DEFAULT_CITY") or None,
                default_weight_kg=_env_float("FARGO_DEFAULT_WEIGHT_KG", 1.0),
                parcel_dimensions_cm=tuple(float(d) for d in dimensions),
            ),
        )
