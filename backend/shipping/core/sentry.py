"""
Sentry integration for error tracking and performance monitoring.

Enabled only when SENTRY_DSN is configured. Expected client-side errors
(validation, state, not found) are filtered before sending.
"""

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from shipping.core.config import settings
from shipping.core.exceptions import AppException
from shipping.core.logging import delivery_id_var, request_id_var

logger = logging.getLogger(__name__)


def init_sentry() -> bool:
    """
    Initialize Sentry SDK.

    Call this once during application or worker startup.

    Returns:
        True if Sentry was initialized, False otherwise.
    """
    if not settings.SENTRY_DSN:
        logger.info("SENTRY_DSN not configured, error tracking disabled")
        return False

    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            release=f"{settings.APP_NAME}@{settings.APP_VERSION}",
            traces_sample_rate=0.1 if settings.ENVIRONMENT == "production" else 1.0,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                RedisIntegration(),
                CeleryIntegration(),
                HttpxIntegration(),
                LoggingIntegration(
                    level=logging.INFO,
                    event_level=logging.ERROR,
                ),
            ],
            send_default_pii=False,
            before_send=_before_send,
            before_send_transaction=_before_send_transaction,
            max_breadcrumbs=50,
            attach_stacktrace=True,
        )

        logger.info(f"Sentry initialized for {settings.ENVIRONMENT} environment")
        return True

    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}")
        return False


def _before_send(event: dict, hint: dict) -> Optional[dict]:
    """Drop application errors that map to a 4xx response; tag the rest with request and delivery."""
    tags = event.setdefault("tags", {})
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, AppException):
            if exc_value.status_code < 500:
                return None
            tags["error_kind"] = exc_value.kind.value

    if request_id_var.get():
        tags["request_id"] = request_id_var.get()
    if delivery_id_var.get():
        tags["delivery_id"] = delivery_id_var.get()
    return event


def _before_send_transaction(event: dict, hint: dict) -> Optional[dict]:
    """Skip health and metrics transactions."""
    transaction_name = event.get("transaction", "")
    if any(path in transaction_name for path in ["/health", "/metrics", "/docs"]):
        return None
    return event
