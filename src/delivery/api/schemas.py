"""Pydantic API schemas for the Delivery domain.

These are the external API contracts — separate from the domain model.
The API layer translates between these schemas and orchestrator calls.
"""

from datetime import datetime

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class DispatchRequest(BaseModel):
    order_id: str
    provider_id: str | None = None


class CourierWebhookRequest(BaseModel):
    tracking_id: str
    status: str
    location: str | None = None
    timestamp: datetime | None = None
    description: str | None = None


class ManualStatusRequest(BaseModel):
    status: str
    description: str | None = None
    location: str | None = None


class ReassignRequest(BaseModel):
    provider_id: str
    reason: str = ""


class CancelOrderDeliveryRequest(BaseModel):
    reason: str = ""


class QuoteRequest(BaseModel):
    order_id: str
    provider_id: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class DispatchResponse(BaseModel):
    delivery_id: str
    status: str
    provider_id: str
    tracking_id: str | None = None


class IngestResponse(BaseModel):
    delivery_id: str
    outcome: str
    status: str


class DeliveryUpdateResponse(BaseModel):
    sequence: int
    status: str
    description: str | None = None
    location: str | None = None
    source: str
    raw_status: str | None = None
    flagged: bool = False
    reported_at: datetime | None = None
    timestamp: datetime


class DeliveryResponse(BaseModel):
    delivery_id: str
    order_id: str
    provider_id: str
    courier_name: str | None = None
    attempt: int
    tracking_id: str | None = None
    status: str
    pickup_address: str
    delivery_address: str
    delivery_fee: float | None = None
    weight_kg: float | None = None
    failure_reason: str | None = None
    superseded_by: str | None = None
    estimated_pickup_time: datetime | None = None
    actual_pickup_time: datetime | None = None
    estimated_delivery_time: datetime | None = None
    actual_delivery_time: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    updates: list[DeliveryUpdateResponse] = []


class DispatchAttemptResponse(BaseModel):
    attempt_id: str
    order_id: str
    attempt: int
    provider_id: str
    outcome: str
    error_kind: str | None = None
    error_message: str | None = None
    triggered_by: str
    started_at: datetime | None = None
    finished_at: datetime | None = None


class ReassignResponse(BaseModel):
    previous_delivery_id: str
    previous_status: str
    delivery_id: str
    status: str
    provider_id: str
    cancellation: str


class CancellationResponse(BaseModel):
    order_id: str
    outcome: str
    delivery_id: str | None = None


class ProviderResponse(BaseModel):
    provider_id: str
    name: str
    provider_type: str
    estimated_delivery_time: str
    supports_webhooks: bool


class TrackingResponse(BaseModel):
    order_id: str
    courier_name: str | None = None
    tracking_id: str | None = None
    status: str
    status_label: str
    current_location: str | None = None
    failure_message: str | None = None
    estimated_delivery: datetime | None = None
    delivered_at: datetime | None = None


class QuoteResponse(BaseModel):
    success: bool
    amount: float | None = None
    currency: str | None = None
    estimated_delivery: datetime | None = None
    quote_id: str | None = None
    error: str | None = None
    error_code: str | None = None


class PollResponse(BaseModel):
    checked: int
    applied: int
    unchanged: int
    failed: int


class ProviderPerformanceResponse(BaseModel):
    provider_id: str
    dispatched_count: int = 0
    dispatch_failure_count: int = 0
    delivered_count: int = 0
    failed_count: int = 0
    cancelled_count: int = 0
    average_delivery_minutes: float | None = None
    updated_at: datetime | None = None
