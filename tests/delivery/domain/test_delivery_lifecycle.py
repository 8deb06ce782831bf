"""Domain tests for the normalized delivery lifecycle and its total order."""

import pytest
from delivery.status.lifecycle import ACTIVE_STATUSES, CUSTOMER_LABELS, TERMINAL_STATUSES, DeliveryStatus

FORWARD_PATH = [
    DeliveryStatus.PENDING,
    DeliveryStatus.PICKUP_SCHEDULED,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.OUT_FOR_DELIVERY,
    DeliveryStatus.DELIVERED,
]


class TestRank:
    def test_forward_path_is_strictly_increasing(self):
        ranks = [s.rank for s in FORWARD_PATH]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == len(ranks)

    def test_terminal_statuses_share_the_highest_rank(self):
        top = max(s.rank for s in DeliveryStatus)
        assert {s for s in DeliveryStatus if s.rank == top} == TERMINAL_STATUSES


class TestAdvancement:
    @pytest.mark.parametrize("index", range(len(FORWARD_PATH) - 1))
    def test_next_status_advances(self, index):
        assert FORWARD_PATH[index].advances_to(FORWARD_PATH[index + 1])

    def test_intermediate_statuses_may_be_skipped(self):
        assert DeliveryStatus.PENDING.advances_to(DeliveryStatus.IN_TRANSIT)
        assert DeliveryStatus.PICKED_UP.advances_to(DeliveryStatus.DELIVERED)

    def test_backwards_move_does_not_advance(self):
        assert not DeliveryStatus.IN_TRANSIT.advances_to(DeliveryStatus.PENDING)
        assert not DeliveryStatus.OUT_FOR_DELIVERY.advances_to(DeliveryStatus.PICKED_UP)

    def test_same_status_does_not_advance(self):
        assert not DeliveryStatus.IN_TRANSIT.advances_to(DeliveryStatus.IN_TRANSIT)

    @pytest.mark.parametrize("status", sorted(ACTIVE_STATUSES, key=lambda s: s.rank))
    def test_any_active_status_can_fail_or_be_cancelled(self, status):
        assert status.advances_to(DeliveryStatus.FAILED)
        assert status.advances_to(DeliveryStatus.CANCELLED)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_are_final(self, terminal):
        assert terminal.is_terminal
        assert not any(terminal.advances_to(other) for other in DeliveryStatus)


class TestCustomerLabels:
    def test_every_status_has_a_label(self):
        assert set(CUSTOMER_LABELS) == set(DeliveryStatus)

    def test_labels_never_expose_internal_codes(self):
        for status, label in CUSTOMER_LABELS.items():
            assert "_" not in label, status
