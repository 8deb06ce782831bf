"""Shared BDD fixtures and step definitions for the Delivery domain."""

import pytest
from delivery.errors import DeliveryError
from pytest_bdd import given, parsers, then, when
from structlog.testing import capture_logs


@pytest.fixture()
def context():
    """Scenario state shared between steps."""
    return {"error": None, "logs": []}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('order "{order_id}" is ready for dispatch with courier "{provider_id}"'))
def ready_order(context, make_order, order_id, provider_id):
    make_order(order_id, status="ready_for_dispatch", courier_id=provider_id)
    context["order_id"] = order_id


@given(parsers.cfparse('the courier "{provider_id}" does not respond in time'))
def slow_courier(registry, settings, provider_id):
    registry.resolve(provider_id).configure(delay_seconds=settings.courier_timeout_seconds + 0.5)


# ---------------------------------------------------------------------------
# Steps usable as Given or When
# ---------------------------------------------------------------------------
@given("the order is dispatched")
@when("the order is dispatched")
def dispatch_order(context, orchestrator):
    try:
        dlv = orchestrator.dispatch(context["order_id"])
    except DeliveryError as exc:
        context["error"] = exc
        return
    context["delivery_id"] = str(dlv.id)


@given(parsers.cfparse('the courier webhook reports "{status}"'))
@when(parsers.cfparse('the courier webhook reports "{status}"'))
def courier_webhook(context, orchestrator, status):
    dlv = orchestrator.get_delivery(context["delivery_id"])
    with capture_logs() as logs:
        context["result"] = orchestrator.ingest_status(dlv.provider_id, dlv.tracking_id, status)
    context["logs"] = logs


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the delivery status is "{status}"'))
def delivery_status_is(context, orchestrator, status):
    assert orchestrator.get_delivery(context["delivery_id"]).status == status


@then(parsers.cfparse("the delivery has {count:d} updates"))
def delivery_update_count(context, orchestrator, count):
    assert len(orchestrator.get_delivery(context["delivery_id"]).history) == count
