"""
Customer address lookup.

Resolves a customer's delivery address id to the administrative scope
used by the coverage resolver, plus the distance from the depot.

Features:
- Exponential backoff retry on network errors and 5xx
- No retry on 4xx (unknown address is final)
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Protocol

import httpx

from shipping.core.config import settings
from shipping.core.exceptions import AddressLookupException, InvalidFieldException
from shipping.core.metrics import track_external_request

logger = logging.getLogger(__name__)


@dataclass
class AddressInfo:
    """Administrative scope of a destination."""
    address_id: uuid.UUID
    province: Optional[str]
    district: Optional[str] = None
    subdistrict: Optional[str] = None
    postal_code: Optional[str] = None
    distance_km: Decimal = Decimal("0")


class AddressLookup(Protocol):
    async def resolve(self, customer_id: uuid.UUID, address_id: uuid.UUID) -> AddressInfo:
        ...


class CustomerServiceAddressLookup:
    """Address lookup backed by the customer service HTTP API."""

    MAX_RETRIES = 3
    RETRY_BASE_DELAY = 0.5  # seconds

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.CUSTOMER_SERVICE_URL).rstrip("/")
        self.timeout = httpx.Timeout(timeout or settings.CUSTOMER_SERVICE_TIMEOUT, connect=2.0)

    @track_external_request("customer_service", "address")
    async def resolve(self, customer_id: uuid.UUID, address_id: uuid.UUID) -> AddressInfo:
        url = f"{self.base_url}/api/v1/customers/{customer_id}/addresses/{address_id}"
        last_error: Optional[Exception] = None

        for attempt in range(self.MAX_RETRIES):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url)
                if response.status_code == 404:
                    raise InvalidFieldException("customer_address_id", "address not found", address_id)
                response.raise_for_status()
                return self._parse(address_id, response.json())

            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    raise AddressLookupException(
                        message=f"Customer service rejected address lookup: {e.response.status_code}",
                        details={"address_id": str(address_id), "status_code": e.response.status_code},
                    ) from e
                last_error = e
                logger.warning(
                    f"Address lookup HTTP error (attempt {attempt + 1}/{self.MAX_RETRIES}): "
                    f"{e.response.status_code}"
                )
            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"Address lookup network error (attempt {attempt + 1}/{self.MAX_RETRIES}): {e}"
                )

            if attempt < self.MAX_RETRIES - 1:
                await asyncio.sleep(self.RETRY_BASE_DELAY * (2 ** attempt))

        raise AddressLookupException(
            message=f"Address lookup failed after {self.MAX_RETRIES} attempts: {last_error}",
            details={"address_id": str(address_id)},
        )

    @staticmethod
    def _parse(address_id: uuid.UUID, data: dict) -> AddressInfo:
        # Customer service wraps payloads in {"data": {...}}
        body = data.get("data", data)
        distance = body.get("distance_km")
        return AddressInfo(
            address_id=address_id,
            province=body.get("province"),
            district=body.get("district"),
            subdistrict=body.get("subdistrict"),
            postal_code=body.get("postal_code"),
            distance_km=Decimal(str(distance)) if distance is not None else Decimal("0"),
        )


# Singleton instance
address_lookup = CustomerServiceAddressLookup()
