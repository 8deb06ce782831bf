"""FastAPI routes for the Delivery domain.

Routes that reach couriers, the order service or the store are plain ``def``
so FastAPI runs them in its threadpool; a slow courier never stalls the event
loop. The webhook reads its raw body asynchronously and hands ingestion to the
threadpool the same way.
"""

from contextlib import contextmanager

from fastapi import APIRouter, Header, HTTPException, Request
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain
from pydantic import ValidationError as PayloadValidationError
from starlette.concurrency import run_in_threadpool

from delivery.api.schemas import (
    CancellationResponse,
    CancelOrderDeliveryRequest,
    CourierWebhookRequest,
    DeliveryResponse,
    DeliveryUpdateResponse,
    DispatchAttemptResponse,
    DispatchRequest,
    DispatchResponse,
    IngestResponse,
    ManualStatusRequest,
    PollResponse,
    ProviderPerformanceResponse,
    ProviderResponse,
    QuoteRequest,
    QuoteResponse,
    ReassignRequest,
    ReassignResponse,
    TrackingResponse,
)
from delivery.delivery.attempt import TriggeredBy
from delivery.delivery.delivery import Delivery
from delivery.errors import (
    CourierRejected,
    CourierTransportError,
    DeliveryError,
    DeliveryNotFound,
    DuplicateDispatch,
    OrderNotDispatchable,
    OrderNotFound,
    ProviderNotSupported,
)
from delivery.polling import StatusPoller
from delivery.projections.delivery_tracking import DeliveryTrackingView
from delivery.projections.provider_performance import ProviderPerformanceView
from delivery.wiring import get_orchestrator

_STATUS_CODES = {
    ProviderNotSupported: 400,
    DeliveryNotFound: 404,
    OrderNotFound: 404,
    DuplicateDispatch: 409,
    OrderNotDispatchable: 409,
    CourierRejected: 422,
    CourierTransportError: 503,
}


@contextmanager
def _as_http_errors():
    """Translate orchestrator errors into HTTP responses."""
    try:
        yield
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.messages) from exc
    except DeliveryError as exc:
        status_code = next((code for kind, code in _STATUS_CODES.items() if isinstance(exc, kind)), 500)
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc


def _delivery_response(dlv: Delivery) -> DeliveryResponse:
    return DeliveryResponse(
        delivery_id=str(dlv.id),
        order_id=str(dlv.order_id),
        provider_id=dlv.provider_id,
        courier_name=dlv.courier_name,
        attempt=dlv.attempt,
        tracking_id=dlv.tracking_id,
        status=dlv.status,
        pickup_address=dlv.pickup_address,
        delivery_address=dlv.delivery_address,
        delivery_fee=dlv.delivery_fee,
        weight_kg=dlv.weight_kg,
        failure_reason=dlv.failure_reason,
        superseded_by=str(dlv.superseded_by) if dlv.superseded_by else None,
        estimated_pickup_time=dlv.estimated_pickup_time,
        actual_pickup_time=dlv.actual_pickup_time,
        estimated_delivery_time=dlv.estimated_delivery_time,
        actual_delivery_time=dlv.actual_delivery_time,
        created_at=dlv.created_at,
        updated_at=dlv.updated_at,
        updates=[
            DeliveryUpdateResponse(
                sequence=u.sequence,
                status=u.status,
                description=u.description,
                location=u.location,
                source=u.source,
                raw_status=u.raw_status,
                flagged=bool(u.flagged),
                reported_at=u.reported_at,
                timestamp=u.timestamp,
            )
            for u in dlv.history
        ],
    )


# ---------------------------------------------------------------------------
# Delivery Router
# ---------------------------------------------------------------------------
delivery_router = APIRouter(prefix="/deliveries", tags=["deliveries"])


@delivery_router.post("/dispatch", status_code=201, response_model=DispatchResponse)
def dispatch_order(body: DispatchRequest) -> DispatchResponse:
    """Dispatch an order to a courier."""
    with _as_http_errors():
        dlv = get_orchestrator().dispatch(
            body.order_id,
            provider_id=body.provider_id,
            triggered_by=TriggeredBy.OPERATOR.value,
        )
    return DispatchResponse(
        delivery_id=str(dlv.id),
        status=dlv.status,
        provider_id=dlv.provider_id,
        tracking_id=dlv.tracking_id,
    )


@delivery_router.post("/webhook/{provider_id}", response_model=IngestResponse)
async def courier_webhook(
    provider_id: str,
    request: Request,
    x_courier_signature: str = Header(default=""),
) -> IngestResponse:
    """Process a courier status webhook callback."""
    orchestrator = get_orchestrator()
    with _as_http_errors():
        courier = orchestrator.registry.resolve(provider_id)

    payload = await request.body()
    if not courier.verify_webhook_signature(payload, x_courier_signature):
        raise HTTPException(status_code=401, detail="Invalid courier webhook signature")

    try:
        body = CourierWebhookRequest.model_validate_json(payload)
    except PayloadValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc

    with _as_http_errors():
        result = await run_in_threadpool(
            orchestrator.ingest_status,
            provider_id,
            body.tracking_id,
            body.status,
            location=body.location,
            occurred_at=body.timestamp,
            description=body.description,
        )
    return IngestResponse(delivery_id=result.delivery_id, outcome=result.outcome.value, status=result.status)


@delivery_router.post("/poll", response_model=PollResponse)
def poll_statuses() -> PollResponse:
    """Run one status polling cycle for couriers without webhooks."""
    summary = StatusPoller(get_orchestrator()).poll_once()
    return PollResponse(
        checked=summary.checked,
        applied=summary.applied,
        unchanged=summary.unchanged,
        failed=summary.failed,
    )


@delivery_router.post("/quote", response_model=QuoteResponse)
def quote(body: QuoteRequest) -> QuoteResponse:
    """Estimate the delivery price of an order with a courier."""
    with _as_http_errors():
        result = get_orchestrator().quote(body.order_id, body.provider_id)
    return QuoteResponse(
        success=result.success,
        amount=result.amount,
        currency=result.currency,
        estimated_delivery=result.estimated_delivery,
        quote_id=result.quote_id,
        error=result.error,
        error_code=result.error_code,
    )


@delivery_router.post("/orders/{order_id}/cancel", response_model=CancellationResponse)
def cancel_order_delivery(order_id: str, body: CancelOrderDeliveryRequest) -> CancellationResponse:
    """Stop the active delivery of a cancelled order, if the courier agrees."""
    with _as_http_errors():
        result = get_orchestrator().cancel_for_order(order_id, reason=body.reason)
    return CancellationResponse(order_id=result.order_id, outcome=result.outcome.value, delivery_id=result.delivery_id)


@delivery_router.get("/dispatch-failures", response_model=list[DispatchAttemptResponse])
def dispatch_failures() -> list[DispatchAttemptResponse]:
    """Failed courier submissions awaiting operator action."""
    return [
        DispatchAttemptResponse(
            attempt_id=str(a.id),
            order_id=str(a.order_id),
            attempt=a.attempt,
            provider_id=a.provider_id,
            outcome=a.outcome,
            error_kind=a.error_kind,
            error_message=a.error_message,
            triggered_by=a.triggered_by,
            started_at=a.started_at,
            finished_at=a.finished_at,
        )
        for a in get_orchestrator().failed_attempts()
    ]


@delivery_router.get("/analytics", response_model=list[ProviderPerformanceResponse])
def provider_analytics() -> list[ProviderPerformanceResponse]:
    """Dispatch and delivery outcomes per courier."""
    repo = current_domain.repository_for(ProviderPerformanceView)
    views = repo._dao.query.order_by("provider_id").all().items
    return [
        ProviderPerformanceResponse(
            provider_id=str(v.provider_id),
            dispatched_count=v.dispatched_count or 0,
            dispatch_failure_count=v.dispatch_failure_count or 0,
            delivered_count=v.delivered_count or 0,
            failed_count=v.failed_count or 0,
            cancelled_count=v.cancelled_count or 0,
            average_delivery_minutes=v.average_delivery_minutes,
            updated_at=v.updated_at,
        )
        for v in views
    ]


@delivery_router.get("/providers", response_model=list[ProviderResponse])
async def list_providers() -> list[ProviderResponse]:
    """Couriers this deployment can dispatch to."""
    return [
        ProviderResponse(
            provider_id=p.provider_id,
            name=p.name,
            provider_type=p.provider_type.value,
            estimated_delivery_time=p.estimated_delivery_time,
            supports_webhooks=p.supports_webhooks,
        )
        for p in get_orchestrator().registry.profiles()
    ]


@delivery_router.get("/tracking/{order_id}", response_model=TrackingResponse)
def track_order(order_id: str) -> TrackingResponse:
    """Customer-facing delivery status of an order."""
    try:
        view = current_domain.repository_for(DeliveryTrackingView).get(order_id)
    except ObjectNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"No delivery for order {order_id}") from exc
    return TrackingResponse(
        order_id=str(view.order_id),
        courier_name=view.courier_name,
        tracking_id=view.tracking_id,
        status=view.status,
        status_label=view.status_label,
        current_location=view.current_location,
        failure_message=view.failure_message,
        estimated_delivery=view.estimated_delivery,
        delivered_at=view.delivered_at,
    )


@delivery_router.get("", response_model=list[DeliveryResponse])
def list_deliveries(status: str | None = None, provider_id: str | None = None) -> list[DeliveryResponse]:
    """Deliveries for the admin delivery management view."""
    return [_delivery_response(d) for d in get_orchestrator().list_deliveries(status=status, provider_id=provider_id)]


@delivery_router.get("/{delivery_id}", response_model=DeliveryResponse)
def get_delivery(delivery_id: str) -> DeliveryResponse:
    """A delivery with its full update history."""
    with _as_http_errors():
        dlv = get_orchestrator().get_delivery(delivery_id)
    return _delivery_response(dlv)


@delivery_router.put("/{delivery_id}/status", response_model=IngestResponse)
def record_manual_status(delivery_id: str, body: ManualStatusRequest) -> IngestResponse:
    """Record an admin status change."""
    with _as_http_errors():
        result = get_orchestrator().record_manual_status(
            delivery_id,
            body.status,
            description=body.description,
            location=body.location,
        )
    return IngestResponse(delivery_id=result.delivery_id, outcome=result.outcome.value, status=result.status)


@delivery_router.post("/{delivery_id}/reassign", response_model=ReassignResponse)
def reassign_delivery(delivery_id: str, body: ReassignRequest) -> ReassignResponse:
    """Cancel a delivery and dispatch the order to another courier."""
    with _as_http_errors():
        result = get_orchestrator().reassign(delivery_id, body.provider_id, reason=body.reason)
    return ReassignResponse(
        previous_delivery_id=str(result.previous.id),
        previous_status=result.previous.status,
        delivery_id=str(result.current.id),
        status=result.current.status,
        provider_id=result.current.provider_id,
        cancellation=result.cancellation.value,
    )
