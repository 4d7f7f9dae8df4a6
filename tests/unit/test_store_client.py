"""
Unit tests for the telemetry store HTTP client.

The HTTP layer is replaced with httpx.MockTransport; backoff sleeps are
patched out.
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from moldkpi.config import StoreConfig
from moldkpi.connectors.store_client import (
    StoreAPIError,
    StoreResponseError,
    TelemetryStoreClient,
    format_store_timestamp,
)
from tests.conftest import PLANT_TZ, make_row, plant_time


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def instant(_seconds):
        return None

    monkeypatch.setattr("moldkpi.connectors.store_client.asyncio.sleep", instant)


@pytest.fixture
def store_config():
    return StoreConfig(data_url="store.test", protocol="https", user_id="user-42", max_retries=2)


class Recorder:
    """Mock transport handler replaying queued responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(
            response.status_code, content=response.content, headers=response.headers
        )


def client_for(recorder: Recorder, config: StoreConfig) -> TelemetryStoreClient:
    return TelemetryStoreClient(config, timezone=PLANT_TZ, transport=httpx.MockTransport(recorder))


def test_store_format_timestamp_in_plant_time():
    instant = datetime(2025, 7, 1, 2, 30, tzinfo=timezone.utc)
    assert format_store_timestamp(instant, PLANT_TZ) == "2025-07-01 08:00:00"


def test_store_fetch_sends_row_query(store_config):
    rows = [make_row(units=10)]
    recorder = Recorder(httpx.Response(200, json={"data": rows}))
    client = client_for(recorder, store_config)

    result = asyncio.run(
        client.fetch("M1", plant_time(2025, 7, 1, 8), plant_time(2025, 9, 30, 8), limit=500)
    )

    assert result == rows
    request = recorder.requests[0]
    assert request.method == "PUT"
    assert str(request.url) == "https://store.test/api/table/getRows3"
    assert request.headers["userID"] == "user-42"
    assert json.loads(request.content) == {
        "devID": "M1",
        "startTime": "2025-07-01 08:00:00",
        "endTime": "2025-09-30 08:00:00",
        "limit": 500,
        "rawData": True,
    }


def test_store_fetch_reference_has_no_window(store_config):
    recorder = Recorder(httpx.Response(200, json={"data": []}))
    client = client_for(recorder, store_config)

    assert asyncio.run(client.fetch_reference("SDPLYPLC_AM2_MoldMapping")) == []
    body = json.loads(recorder.requests[0].content)
    assert body == {"devID": "SDPLYPLC_AM2_MoldMapping", "limit": 1000, "rawData": True}


def test_store_fetch_missing_data_raises(store_config):
    recorder = Recorder(httpx.Response(200, json={"rows": []}))
    with pytest.raises(StoreResponseError):
        asyncio.run(client_for(recorder, store_config).fetch_reference("X"))


def test_store_fetch_non_json_body_raises(store_config):
    recorder = Recorder(httpx.Response(200, content=b"<html>gateway</html>"))
    with pytest.raises(StoreResponseError):
        asyncio.run(client_for(recorder, store_config).fetch_reference("X"))


def test_store_client_error_not_retried(store_config):
    recorder = Recorder(httpx.Response(404, text="no such device"))
    with pytest.raises(StoreAPIError, match="404"):
        asyncio.run(client_for(recorder, store_config).fetch_reference("X"))
    assert len(recorder.requests) == 1


def test_store_server_error_retried_then_succeeds(store_config):
    recorder = Recorder(
        httpx.Response(503, text="busy"),
        httpx.Response(200, json={"data": [{"devID": "X"}]}),
    )
    rows = asyncio.run(client_for(recorder, store_config).fetch_reference("X"))
    assert rows == [{"devID": "X"}]
    assert len(recorder.requests) == 2


def test_store_server_error_exhausts_retries(store_config):
    recorder = Recorder(httpx.Response(500, text="boom"))
    with pytest.raises(StoreAPIError, match="after 2 attempts"):
        asyncio.run(client_for(recorder, store_config).fetch_reference("X"))
    assert len(recorder.requests) == 2


def test_store_transport_error_raises_api_error(store_config):
    recorder = Recorder(httpx.ConnectError("connection refused"))
    with pytest.raises(StoreAPIError, match="unreachable"):
        asyncio.run(client_for(recorder, store_config).fetch_reference("X"))
    assert len(recorder.requests) == 2


def test_store_context_manager_reuses_connection(store_config):
    recorder = Recorder(httpx.Response(200, json={"data": []}))

    async def run():
        async with client_for(recorder, store_config) as client:
            await client.fetch_reference("X")
            await client.fetch_reference("Y")
            return client

    client = asyncio.run(run())
    assert len(recorder.requests) == 2
    assert client._http_client is None
