class PaymentWebhookError(Exception):
    """
    Base exception for all domain-level errors
    raised while handling a payment webhook.
    """

    status_code: int = 500


class WebhookConfigurationError(PaymentWebhookError):
    """Raised when the webhook endpoint is not configured to verify events."""

    status_code = 500


class WebhookAuthenticationError(PaymentWebhookError):
    """Raised when a webhook cannot be authenticated."""

    status_code = 401


class InvalidTimestampError(WebhookAuthenticationError):
    """Raised when the webhook timestamp is outside the accepted window."""

    def __init__(self) -> None:
        super().__init__("Invalid timestamp")


class MalformedEventError(PaymentWebhookError):
    """Raised when the webhook body is not a valid event."""

    status_code = 400


class ReconciliationTargetNotFoundError(PaymentWebhookError):
    """
    Raised when the order or hall booking referenced
    by an event does not exist.
    """

    status_code = 404

    def __init__(self, target_type: str, target_id: str):
        self.target_type = target_type
        self.target_id = target_id

        label = "Order" if target_type == "order" else "Hall booking"
        super().__init__(f"{label} not found")


class ReconciliationPersistenceError(PaymentWebhookError):
    """Raised when reading or writing the target aggregate fails."""

    status_code = 500


class WebhookDeadlineExceededError(PaymentWebhookError):
    """Raised when a webhook request runs past its deadline."""

    status_code = 500

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(f"Webhook processing timed out before {stage}")

