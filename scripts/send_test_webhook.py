import argparse
import json
import time
from uuid import uuid4

import httpx

from src.domain.signature import SIGNATURE_VERSION, compute_signature
from src.infrastructure.config import WebhookSettings


def build_event(event_type: str, order_id: str | None, booking_id: str | None) -> dict:
    status = "succeeded" if event_type.endswith("succeeded") else "failed"
    metadata: dict = {"checkoutId": f"ch_test_{uuid4().hex[:12]}"}
    if booking_id:
        metadata.update({"bookingId": booking_id, "bookingType": "hall_booking"})
    if order_id:
        metadata["orderId"] = order_id

    return {
        "id": f"evt_test_{uuid4().hex[:16]}",
        "type": event_type,
        "createdDate": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        "payload": {
            "id": f"p_test_{uuid4().hex[:16]}",
            "amount": 15000,
            "currency": "ZAR",
            "mode": "test",
            "status": status,
            "type": "payment",
            "metadata": metadata,
        },
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a signed test payment webhook.")
    parser.add_argument("--url", default="http://localhost:8000/webhook")
    parser.add_argument(
        "--type",
        default="payment.succeeded",
        choices=["payment.succeeded", "payment.failed"],
    )
    parser.add_argument("--order-id", default="LL1031")
    parser.add_argument("--booking-id")
    args = parser.parse_args()

    settings = WebhookSettings.from_env()
    if not settings.webhook_secret:
        raise SystemExit("YOCO_WEBHOOK_SECRET must be set to sign the test event.")

    booking_id = args.booking_id
    order_id = None if booking_id else args.order_id
    body = json.dumps(build_event(args.type, order_id, booking_id)).encode("utf-8")

    webhook_id = f"msg_{uuid4().hex}"
    timestamp = str(int(time.time()))
    signature = compute_signature(settings.webhook_secret, webhook_id, timestamp, body)

    response = httpx.post(
        args.url,
        content=body,
        headers={
            "Content-Type": "application/json",
            "webhook-id": webhook_id,
            "webhook-timestamp": timestamp,
            "webhook-signature": f"{SIGNATURE_VERSION},{signature}",
        },
        timeout=10,
    )
    print(f"{response.status_code} {response.text}")


if __name__ == "__main__":
    main()
