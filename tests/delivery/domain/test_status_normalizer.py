"""Domain tests for courier status normalization."""

import pytest
from delivery.errors import StatusTableError
from delivery.status.lifecycle import DeliveryStatus
from delivery.status.normalizer import NormalizedStatus, StatusNormalizer, normalize
from delivery.status.tables import DEFAULT_STATUS_TABLES, canonical_code


class TestCanonicalCode:
    def test_trims_and_case_folds(self):
        assert canonical_code("  Delivered ") == "delivered"

    def test_spaces_and_hyphens_become_underscores(self):
        assert canonical_code("To Deliver") == "to_deliver"
        assert canonical_code("out-for-delivery") == "out_for_delivery"
        assert canonical_code("pickup   arranged") == "pickup_arranged"


class TestG4SCodes:
    @pytest.mark.parametrize(
        "code, expected",
        [
            ("created", DeliveryStatus.PENDING),
            ("pending", DeliveryStatus.PENDING),
            ("picked_up", DeliveryStatus.PICKED_UP),
            ("in_transit", DeliveryStatus.IN_TRANSIT),
            ("OUT_FOR_DELIVERY", DeliveryStatus.OUT_FOR_DELIVERY),
            ("delivered", DeliveryStatus.DELIVERED),
            ("failed", DeliveryStatus.FAILED),
            ("cancelled", DeliveryStatus.CANCELLED),
        ],
    )
    def test_known_codes(self, code, expected):
        result = normalize("g4s", code)
        assert result.known
        assert result.status == expected
        assert result.value == expected.value


class TestFargoCodes:
    @pytest.mark.parametrize(
        "code, expected",
        [
            ("booked", DeliveryStatus.PENDING),
            ("pickup_arranged", DeliveryStatus.PICKUP_SCHEDULED),
            ("collected", DeliveryStatus.PICKED_UP),
            ("in_warehouse", DeliveryStatus.IN_TRANSIT),
            ("To Deliver", DeliveryStatus.OUT_FOR_DELIVERY),
            ("to deliver", DeliveryStatus.OUT_FOR_DELIVERY),
            ("Delivered", DeliveryStatus.DELIVERED),
            ("delivery_failed", DeliveryStatus.FAILED),
        ],
    )
    def test_known_codes(self, code, expected):
        assert normalize("fargo_courier", code).status == expected

    def test_g4s_vocabulary_is_not_fargo_vocabulary(self):
        assert not normalize("fargo_courier", "picked_up").known


class TestPassthrough:
    def test_unmapped_code_passes_through_flagged(self):
        result = normalize("g4s", "held_at_customs")
        assert result == NormalizedStatus(provider_id="g4s", raw="held_at_customs", status=None)
        assert not result.known
        assert result.value == "held_at_customs"

    def test_unknown_provider_passes_through(self):
        result = normalize("sendy", "delivered")
        assert not result.known
        assert result.value == "delivered"

    @pytest.mark.parametrize("code", [None, "", "   "])
    def test_empty_codes_never_raise(self, code):
        result = normalize("g4s", code)
        assert not result.known

    def test_is_deterministic(self):
        assert normalize("fargo_courier", "collected") == normalize("fargo_courier", "collected")


class TestTableValidation:
    def test_default_tables_compile(self):
        normalizer = StatusNormalizer()
        assert normalizer.provider_ids() == sorted(DEFAULT_STATUS_TABLES)

    def test_unknown_target_status_is_rejected(self):
        with pytest.raises(StatusTableError, match="unknown status"):
            StatusNormalizer({"acme": {"done": "finished"}})

    def test_colliding_codes_are_rejected(self):
        with pytest.raises(StatusTableError, match="collides"):
            StatusNormalizer({"acme": {"On Hold": "pending", "on-hold": "failed"}})

    def test_equivalent_duplicate_codes_are_allowed(self):
        normalizer = StatusNormalizer({"acme": {"Done": "delivered", "done": "delivered"}})
        assert normalizer.table_for("acme") == {"done": DeliveryStatus.DELIVERED}

    def test_custom_tables_replace_defaults(self):
        normalizer = StatusNormalizer({"acme": {"ok": "delivered"}})
        assert normalizer.normalize("acme", "OK").status == DeliveryStatus.DELIVERED
        assert not normalizer.normalize("g4s", "delivered").known
