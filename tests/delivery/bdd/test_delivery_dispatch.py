"""BDD tests for dispatching orders to couriers."""

from delivery.delivery.attempt import DispatchAttempt
from protean import current_domain
from pytest_bdd import parsers, scenarios, then

scenarios("features/delivery_dispatch.feature")


@then("no delivery exists for the order")
def no_delivery(context, orchestrator):
    assert orchestrator.deliveries_for_order(context["order_id"]) == []


@then("the order is still awaiting dispatch")
def order_awaiting_dispatch(context, orders):
    assert orders.status_of(context["order_id"]) == "ready_for_dispatch"
    assert orders.calls == []


@then(parsers.cfparse('the dispatch attempt recorded a "{error_kind}"'))
def attempt_recorded(context, error_kind):
    [attempt] = current_domain.repository_for(DispatchAttempt).find_by_order(context["order_id"])
    assert attempt.outcome == "failed"
    assert attempt.error_kind == error_kind
    assert type(context["error"]).__name__ == error_kind
