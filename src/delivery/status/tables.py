"""Per-courier status tables.

Each table maps a courier's own status code to a normalized
``DeliveryStatus`` value. Codes are written here the way the courier
documents them; lookup canonicalizes them (see ``canonical_code``).
"""

G4S_STATUS_TABLE = {
    "created": "pending",
    "pending": "pending",
    "pickup_scheduled": "pickup_scheduled",
    "picked_up": "picked_up",
    "in_transit": "in_transit",
    "out_for_delivery": "out_for_delivery",
    "delivered": "delivered",
    "failed": "failed",
    "cancelled": "cancelled",
}

FARGO_STATUS_TABLE = {
    "booked": "pending",
    "pickup_arranged": "pickup_scheduled",
    "collected": "picked_up",
    "in_warehouse": "in_transit",
    "out_for_delivery": "out_for_delivery",
    "To Deliver": "out_for_delivery",
    "Delivered": "delivered",
    "delivery_failed": "failed",
    "cancelled": "cancelled",
}

# The fake courier speaks the normalized vocabulary directly
FAKE_STATUS_TABLE = {
    "pending": "pending",
    "pickup_scheduled": "pickup_scheduled",
    "picked_up": "picked_up",
    "in_transit": "in_transit",
    "out_for_delivery": "out_for_delivery",
    "delivered": "delivered",
    "failed": "failed",
    "cancelled": "cancelled",
}

DEFAULT_STATUS_TABLES = {
    "g4s": G4S_STATUS_TABLE,
    "fargo_courier": FARGO_STATUS_TABLE,
    "fake": FAKE_STATUS_TABLE,
}


def canonical_code(code: str) -> str:
    """Canonical lookup key: trimmed, case-folded, spaces and hyphens as underscores."""
    return "_".join(code.strip().casefold().replace("-", " ").split())
