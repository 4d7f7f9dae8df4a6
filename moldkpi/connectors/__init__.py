"""
Telemetry store connector for the mold KPI engine.

This package provides the document store contract the engine depends on and
the HTTP client that implements it against the telemetry row API.
"""

from functools import lru_cache

from moldkpi.config import get_settings

from .store_client import (
    DocumentStore,
    StoreAPIError,
    StoreError,
    StoreResponseError,
    TelemetryStoreClient,
    format_store_timestamp,
)


@lru_cache
def get_store() -> DocumentStore:
    """
    Get cached store client instance (singleton).

    Returns:
        DocumentStore implementation configured from settings
    """
    settings = get_settings()
    return TelemetryStoreClient(
        config=settings.store_config(),
        timezone=settings.engine_config().timezone,
    )


__all__ = [
    "DocumentStore",
    "StoreAPIError",
    "StoreError",
    "StoreResponseError",
    "TelemetryStoreClient",
    "format_store_timestamp",
    "get_store",
]
