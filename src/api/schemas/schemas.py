from pydantic import BaseModel


class WebhookAckResponse(BaseModel):
    received: bool
    processed: bool
    event_id: str | None = None
    reason: str | None = None
    duplicate: bool | None = None
    target_type: str | None = None
    order_id: str | None = None
    booking_id: str | None = None
    previous_status: str | None = None
    status: str | None = None
    payment_status: str | None = None
    applied: bool | None = None
    error: str | None = None


class WebhookStatusResponse(BaseModel):
    status: str
    secret_configured: bool
    timestamp: str


class HealthResponse(BaseModel):
    status: str
