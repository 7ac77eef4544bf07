"""
Lifecycle event publisher with HMAC-SHA256 signatures.

Events are fire-and-forget: publish() schedules delivery in the
background and returns immediately; a sink that is down costs retries
and a log line, never a failed state transition.

Security features:
- HMAC-SHA256 signature over "timestamp.payload"
- Timestamp header so receivers can reject replays
"""
import asyncio
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional, Sequence
from uuid import uuid4

import httpx

from shipping.core.config import settings
from shipping.core.metrics import EVENT_PUBLISH_FAILURES

logger = logging.getLogger(__name__)


class EventDeliveryResult:
    """Result of delivering one event to one sink."""

    def __init__(
        self,
        url: str,
        success: bool,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
        attempts: int = 1,
        duration_ms: float = 0,
    ):
        self.url = url
        self.success = success
        self.status_code = status_code
        self.error = error
        self.attempts = attempts
        self.duration_ms = duration_ms


class EventPublisher:
    """
    Pushes signed lifecycle events to the configured sink URLs.

    Retry logic with exponential backoff (3 attempts: 1s, 2s, 4s).
    """

    MAX_RETRIES = 3
    RETRY_DELAYS = [1, 2, 4]
    TIMEOUT_SECONDS = 10.0

    def __init__(
        self,
        sink_urls: Optional[Sequence[str]] = None,
        secret: Optional[str] = None,
    ):
        self.sink_urls = list(sink_urls if sink_urls is not None else settings.EVENT_SINK_URLS)
        self.secret = secret if secret is not None else settings.WEBHOOK_SECRET_KEY
        self._pending: set[asyncio.Task] = set()

    @staticmethod
    def generate_signature(secret: str, payload: str, timestamp: int) -> str:
        """
        Generate HMAC-SHA256 signature.

        The signature is computed over: timestamp.payload

        Returns:
            Hex-encoded HMAC-SHA256 signature
        """
        message = f"{timestamp}.{payload}"
        return hmac.new(
            secret.encode("utf-8"),
            message.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    @staticmethod
    def verify_signature(
        secret: str,
        payload: str,
        timestamp: int,
        signature: str,
        tolerance_seconds: int = 300,
    ) -> bool:
        """
        Verify a signature produced by generate_signature.

        Accepts an optional "sha256=" prefix. Rejects timestamps older
        (or newer) than the tolerance.
        """
        now = int(time.time())
        if abs(now - timestamp) > tolerance_seconds:
            logger.warning(f"Signature timestamp outside tolerance: {timestamp}, now: {now}")
            return False

        if signature.startswith("sha256="):
            signature = signature[len("sha256="):]
        expected = EventPublisher.generate_signature(secret, payload, timestamp)
        return hmac.compare_digest(expected, signature)

    @staticmethod
    def build_envelope(event_type: str, data: dict[str, Any], event_id: Optional[str] = None) -> dict[str, Any]:
        return {
            "id": event_id or str(uuid4()),
            "event": event_type,
            "timestamp": datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z",
            "source": "shipping",
            "data": data,
        }

    async def publish(self, event_type: str, data: dict[str, Any]) -> None:
        """Schedule delivery and return immediately."""
        if not self.sink_urls:
            logger.debug(f"No event sinks configured, dropping {event_type}")
            return
        task = asyncio.create_task(self.dispatch(event_type, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown, end of a worker job)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def dispatch(self, event_type: str, data: dict[str, Any]) -> list[EventDeliveryResult]:
        """Deliver one event to every sink concurrently."""
        envelope = self.build_envelope(event_type, data)
        payload_json = json.dumps(envelope, default=str)
        timestamp = int(time.time())

        results = await asyncio.gather(
            *[self._deliver(url, payload_json, timestamp, event_type, envelope["id"]) for url in self.sink_urls],
            return_exceptions=True,
        )

        delivery_results = []
        for url, result in zip(self.sink_urls, results):
            if isinstance(result, Exception):
                delivery_results.append(EventDeliveryResult(url=url, success=False, error=str(result)))
            else:
                delivery_results.append(result)

        failed = [r for r in delivery_results if not r.success]
        if failed:
            EVENT_PUBLISH_FAILURES.labels(event_type=event_type).inc(len(failed))
        logger.info(
            f"Event dispatch: event={event_type}, "
            f"total={len(delivery_results)}, success={len(delivery_results) - len(failed)}"
        )
        return delivery_results

    async def _deliver(
        self,
        url: str,
        payload_json: str,
        timestamp: int,
        event_type: str,
        event_id: str,
    ) -> EventDeliveryResult:
        """Deliver to a single sink with retry logic."""
        if not self.secret:
            logger.warning("WEBHOOK_SECRET_KEY not configured; events are signed with an empty key")
        signature = self.generate_signature(self.secret or "", payload_json, timestamp)

        headers = {
            "Content-Type": "application/json",
            "X-Event-ID": event_id,
            "X-Event-Type": event_type,
            "X-Webhook-Timestamp": str(timestamp),
            "X-Webhook-Signature": f"sha256={signature}",
            "User-Agent": "Shipping-Events/1.0",
        }

        start_time = time.time()
        last_error = None
        attempts = 0

        async with httpx.AsyncClient(timeout=self.TIMEOUT_SECONDS) as client:
            for attempt in range(self.MAX_RETRIES):
                attempts = attempt + 1
                try:
                    response = await client.post(url, content=payload_json, headers=headers)
                    if response.status_code < 400:
                        return EventDeliveryResult(
                            url=url,
                            success=True,
                            status_code=response.status_code,
                            attempts=attempts,
                            duration_ms=(time.time() - start_time) * 1000,
                        )
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(
                        f"Event delivery failed: url={url}, status={response.status_code}, "
                        f"attempt={attempts}/{self.MAX_RETRIES}"
                    )
                except httpx.TimeoutException:
                    last_error = "Timeout"
                    logger.warning(f"Event delivery timeout: url={url}, attempt={attempts}/{self.MAX_RETRIES}")
                except httpx.RequestError as e:
                    last_error = str(e)
                    logger.warning(
                        f"Event delivery request error: url={url}, error={e}, "
                        f"attempt={attempts}/{self.MAX_RETRIES}"
                    )

                if attempt < self.MAX_RETRIES - 1:
                    await asyncio.sleep(self.RETRY_DELAYS[attempt])

        logger.error(f"Event delivery failed after {attempts} attempts: url={url}, error={last_error}")
        return EventDeliveryResult(
            url=url,
            success=False,
            error=last_error,
            attempts=attempts,
            duration_ms=(time.time() - start_time) * 1000,
        )


# Singleton instance
event_publisher = EventPublisher()
