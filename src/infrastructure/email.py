# src/infrastructure/email.py

import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional, Protocol, Sequence

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from src.infrastructure.config import WebhookSettings

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"

_templates = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


@dataclass(frozen=True)
class ConfirmationItem:
    name: str
    quantity: int
    price: Decimal


class OrderConfirmationSender(Protocol):
    def send_order_confirmation(
        self,
        order_id: str,
        total: Decimal,
        email: str,
        name: Optional[str],
        items: Sequence[ConfirmationItem],
    ) -> bool:
        ...


def render_order_confirmation(
    order_id: str,
    total: Decimal,
    name: Optional[str],
    items: Sequence[ConfirmationItem],
) -> str:
    template = _templates.get_template("order_confirmation.html")
    return template.render(
        order_id=order_id,
        total=total,
        customer_name=name or "Valued Customer",
        items=items,
    )


class EmailNotificationService:
    """
    Sends transactional email through an HTTP email API.
    Without an API key messages are only logged.
    """

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str,
        api_url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: WebhookSettings) -> "EmailNotificationService":
        return cls(
            api_key=settings.resend_api_key,
            from_email=settings.from_email,
            api_url=settings.email_api_url,
            timeout_seconds=settings.email_timeout_seconds,
        )

    def send_order_confirmation(
        self,
        order_id: str,
        total: Decimal,
        email: str,
        name: Optional[str],
        items: Sequence[ConfirmationItem],
    ) -> bool:
        subject = f"Order Confirmation #{order_id} - Little Latte Lane"
        html = render_order_confirmation(order_id, total, name, items)

        if not self.api_key:
            logger.info(
                "Email API key not configured, order confirmation for %s logged only",
                order_id,
                extra={"order_id": order_id, "subject": subject},
            )
            return True

        response = self._post(
            {
                "from": self.from_email,
                "to": email,
                "subject": subject,
                "html": html,
            }
        )

        if not response.is_success:
            logger.warning(
                "Email API rejected order confirmation for %s with status %s",
                order_id,
                response.status_code,
                extra={"order_id": order_id},
            )
            return False

        return True

    def _post(self, message: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            return self._client.post(
                self.api_url,
                json=message,
                headers=headers,
                timeout=self.timeout_seconds,
            )
        with httpx.Client(timeout=self.timeout_seconds) as client:
            return client.post(self.api_url, json=message, headers=headers)
