"""
Telemetry document store client.

This module defines the contract the KPI engine expects from the document
store and an async HTTP implementation of it:
- Row queries for one device over a time window
- Reference queries for the mold-to-cycle-time mapping device
- Retry with exponential backoff for transient failures
- Error classification into transport and payload errors
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, tzinfo
from typing import Any, Optional

import httpx
import structlog

from moldkpi.config import StoreConfig

logger = structlog.get_logger()

STORE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class StoreError(Exception):
    """Base class for document store failures."""

    pass


class StoreAPIError(StoreError):
    """Raised when the store cannot be reached or answers with an HTTP error."""

    pass


class StoreResponseError(StoreError):
    """Raised when the store answers with a payload that is not a row list."""

    pass


def format_store_timestamp(instant: datetime, timezone: tzinfo) -> str:
    """
    Format an instant the way the store expects window bounds.

    Args:
        instant: Instant to format (naive values are taken as plant time)
        timezone: Plant timezone

    Returns:
        ``YYYY-MM-DD HH:MM:SS`` in plant time
    """
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone)
    return instant.strftime(STORE_TIME_FORMAT)


class DocumentStore(ABC):
    """
    Abstract telemetry document store.

    Implementations return raw rows; any field of a row may be missing and
    absence is normal. Failures must surface as ``StoreError``.
    """

    @abstractmethod
    async def fetch(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
        limit: int = 10000,
    ) -> list[dict]:
        """
        Fetch telemetry rows of one device in ``[start, end)``.

        Args:
            device_id: Machine identifier
            start: Window start (inclusive)
            end: Window end (exclusive)
            limit: Maximum number of rows to return

        Returns:
            Raw rows as returned by the store

        Raises:
            StoreError: If the store is unreachable or the payload is malformed
        """
        pass

    @abstractmethod
    async def fetch_reference(self, reference_device_id: str, limit: int = 1000) -> list[dict]:
        """
        Fetch rows of a reference device, independent of time.

        Args:
            reference_device_id: Reference dataset identifier
            limit: Maximum number of rows to return

        Returns:
            Raw rows as returned by the store

        Raises:
            StoreError: If the store is unreachable or the payload is malformed
        """
        pass


class TelemetryStoreClient(DocumentStore):
    """
    HTTP client for the telemetry row store.

    Every query is a ``PUT`` of a JSON body to the row endpoint with the
    configured identity in the ``userID`` header. The response body must
    carry a ``data`` list.

    Attributes:
        config: Store connection settings
        timezone: Plant timezone used to format window bounds

    Example:
        >>> async with TelemetryStoreClient(StoreConfig(user_id="...")) as store:
        ...     rows = await store.fetch("M1", start, end)
    """

    def __init__(
        self,
        config: StoreConfig,
        timezone: Optional[tzinfo] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the store client.

        Args:
            config: Store connection settings
            timezone: Plant timezone for window bounds (defaults to the
                timezone carried by the bounds themselves)
            transport: Optional httpx transport, used by tests
        """
        self.config = config
        self.timezone = timezone
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

        logger.info(
            "store_client_initialized",
            url=config.rows_url,
            has_identity=bool(config.user_id),
        )

    async def __aenter__(self):
        """Async context manager entry."""
        self._http_client = self._new_http_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _new_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout_seconds, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        return {
            "userID": self.config.user_id,
            "Content-Type": "application/json",
        }

    def _format(self, instant: datetime) -> str:
        return format_store_timestamp(instant, self.timezone or instant.tzinfo)

    async def fetch(
        self,
        device_id: str,
        start: datetime,
        end: datetime,
        limit: int = 10000,
    ) -> list[dict]:
        payload = {
            "devID": device_id,
            "startTime": self._format(start),
            "endTime": self._format(end),
            "limit": limit,
            "rawData": True,
        }
        rows = await self._query_rows(payload)

        logger.info(
            "telemetry_rows_fetched",
            device_id=device_id,
            start=payload["startTime"],
            end=payload["endTime"],
            count=len(rows),
        )
        return rows

    async def fetch_reference(self, reference_device_id: str, limit: int = 1000) -> list[dict]:
        payload = {
            "devID": reference_device_id,
            "limit": limit,
            "rawData": True,
        }
        rows = await self._query_rows(payload)

        logger.info(
            "reference_rows_fetched",
            device_id=reference_device_id,
            count=len(rows),
        )
        return rows

    async def _query_rows(self, payload: dict[str, Any]) -> list[dict]:
        """
        Send a row query with retry logic and validate the payload.

        Client errors (4xx) and malformed payloads are not retried. Server
        errors (5xx) and transport errors are retried with exponential
        backoff up to ``config.max_retries`` attempts.

        Raises:
            StoreAPIError: If the request fails after retries
            StoreResponseError: If the body has no ``data`` list
        """
        retry_count = self.config.max_retries

        for attempt in range(retry_count):
            try:
                response = await self._send(payload)
                response.raise_for_status()
                body = response.json()
                break

            except httpx.HTTPStatusError as e:
                logger.error(
                    "store_request_failed",
                    device_id=payload.get("devID"),
                    status_code=e.response.status_code,
                    attempt=attempt + 1,
                )

                if 400 <= e.response.status_code < 500:
                    raise StoreAPIError(
                        f"Store request failed with {e.response.status_code}: {e.response.text}"
                    ) from e

                if attempt < retry_count - 1:
                    wait_time = 2 ** attempt
                    logger.info("retrying_store_request", wait_seconds=wait_time)
                    await asyncio.sleep(wait_time)
                else:
                    raise StoreAPIError(
                        f"Store request failed after {retry_count} attempts: {e.response.text}"
                    ) from e

            except httpx.HTTPError as e:
                logger.error(
                    "store_request_error",
                    device_id=payload.get("devID"),
                    error=str(e),
                    attempt=attempt + 1,
                )

                if attempt < retry_count - 1:
                    await asyncio.sleep(2 ** attempt)
                else:
                    raise StoreAPIError(f"Store unreachable: {e}") from e

            except ValueError as e:
                raise StoreResponseError(f"Store returned a non-JSON body: {e}") from e

        return self._extract_rows(body)

    async def _send(self, payload: dict[str, Any]) -> httpx.Response:
        if self._http_client:
            return await self._http_client.put(
                self.config.rows_url, json=payload, headers=self._headers()
            )
        async with self._new_http_client() as client:
            return await client.put(self.config.rows_url, json=payload, headers=self._headers())

    @staticmethod
    def _extract_rows(body: Any) -> list[dict]:
        if not isinstance(body, dict) or not isinstance(body.get("data"), list):
            logger.error("store_response_missing_data", body_type=type(body).__name__)
            raise StoreResponseError('Missing "data" in store response')
        return body["data"]
