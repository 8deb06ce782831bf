"""Status normalizer — courier status codes to the internal lifecycle.

``normalize`` is pure and total: an unknown provider or an unmapped code is
returned as a flagged passthrough instead of raising, so a surprising courier
payload can never crash webhook handling. Tables are validated once, when the
normalizer is built.
"""

from dataclasses import dataclass

from delivery.errors import StatusTableError
from delivery.status.lifecycle import DeliveryStatus
from delivery.status.tables import DEFAULT_STATUS_TABLES, canonical_code


@dataclass(frozen=True)
class NormalizedStatus:
    """Outcome of normalizing one courier status code.

    ``status`` is None exactly when ``known`` is False; ``value`` is then the
    raw courier code, passed through unchanged.
    """

    provider_id: str
    raw: str
    status: DeliveryStatus | None

    @property
    def known(self) -> bool:
        return self.status is not None

    @property
    def value(self) -> str:
        return self.status.value if self.status is not None else self.raw


class StatusNormalizer:
    """Holds the validated per-provider tables."""

    def __init__(self, tables: dict[str, dict[str, str]] | None = None) -> None:
        source = DEFAULT_STATUS_TABLES if tables is None else tables
        self._tables = {provider_id: _compile(provider_id, table) for provider_id, table in source.items()}

    def normalize(self, provider_id: str, code: str | None) -> NormalizedStatus:
        raw = code or ""
        table = self._tables.get(provider_id)
        if table is None:
            return NormalizedStatus(provider_id=provider_id, raw=raw, status=None)
        return NormalizedStatus(provider_id=provider_id, raw=raw, status=table.get(canonical_code(raw)))

    def provider_ids(self) -> list[str]:
        return sorted(self._tables)

    def table_for(self, provider_id: str) -> dict[str, DeliveryStatus]:
        return dict(self._tables.get(provider_id, {}))


def _compile(provider_id: str, table: dict[str, str]) -> dict[str, DeliveryStatus]:
    compiled: dict[str, DeliveryStatus] = {}
    for code, target in table.items():
        try:
            status = DeliveryStatus(target)
        except ValueError:
            raise StatusTableError(f"{provider_id}: code {code!r} maps to unknown status {target!r}") from None

        key = canonical_code(code)
        if key in compiled and compiled[key] != status:
            raise StatusTableError(
                f"{provider_id}: code {code!r} collides with another code mapped to {compiled[key].value!r}"
            )
        compiled[key] = status
    return compiled


_default_normalizer = StatusNormalizer()


def normalize(provider_id: str, code: str | None) -> NormalizedStatus:
    """Normalize ``code`` with the built-in courier tables."""
    return _default_normalizer.normalize(provider_id, code)
