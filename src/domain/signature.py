# src/domain/signature.py

import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Callable, Optional

from src.domain.exceptions import InvalidTimestampError, WebhookConfigurationError

logger = logging.getLogger(__name__)

SECRET_PREFIX = "whsec_"
SIGNATURE_VERSION = "v1"


def secret_key_bytes(secret: str) -> bytes:
    """
    Decode a signing secret into HMAC key bytes.

    Secrets issued by the gateway carry a ``whsec_`` prefix followed by
    base64; anything else is used as plain UTF-8.
    """
    if secret.startswith(SECRET_PREFIX):
        try:
            return base64.b64decode(secret[len(SECRET_PREFIX):], validate=True)
        except binascii.Error as exc:
            raise WebhookConfigurationError(
                "Webhook secret is not valid base64"
            ) from exc
    return secret.encode("utf-8")


def compute_signature(
    secret: str,
    webhook_id: str,
    timestamp: str,
    raw_body: bytes,
) -> str:
    signed_content = f"{webhook_id}.{timestamp}.".encode("utf-8") + raw_body
    digest = hmac.new(
        secret_key_bytes(secret),
        signed_content,
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


class WebhookSignatureVerifier:
    """
    Authenticates webhook deliveries signed with a shared secret.
    """

    def __init__(self, secret: str):
        if not secret:
            raise WebhookConfigurationError("Webhook secret not configured")
        self._secret = secret

    def verify(
        self,
        raw_body: bytes,
        signature_header: str,
        webhook_id: str,
        timestamp: str,
    ) -> bool:
        """
        Returns True if any ``v1`` entry of the signature header matches.

        The header is a space separated list of ``version,signature``
        pairs so several secrets can be valid during a rotation.
        """
        expected = compute_signature(self._secret, webhook_id, timestamp, raw_body)

        verified = False
        for entry in signature_header.split():
            version, _, signature = entry.partition(",")
            if version != SIGNATURE_VERSION or not signature:
                continue
            if hmac.compare_digest(
                expected.encode("ascii"),
                signature.encode("ascii", errors="replace"),
            ):
                verified = True
                break

        logger.info(
            "Webhook signature %s",
            "verified" if verified else "rejected",
            extra={"webhook_id": webhook_id, "signature_valid": verified},
        )
        return verified


class ReplayGuard:
    """
    Rejects deliveries whose timestamp is outside the tolerance window,
    in the past or in the future.
    """

    def __init__(
        self,
        tolerance_seconds: int,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.tolerance_seconds = tolerance_seconds
        self._clock = clock or time.time

    def check(self, timestamp_header: str) -> int:
        try:
            timestamp = int(timestamp_header)
        except (TypeError, ValueError) as exc:
            logger.warning("Webhook timestamp is not an integer")
            raise InvalidTimestampError() from exc

        skew = self._clock() - timestamp
        if abs(skew) > self.tolerance_seconds:
            logger.warning(
                "Webhook timestamp outside tolerance (skew %.0fs)",
                skew,
                extra={"timestamp": timestamp},
            )
            raise InvalidTimestampError()

        return timestamp
