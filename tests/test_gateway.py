"""Tests for the external data gateway, using httpx.MockTransport."""

import asyncio

import httpx
import pytest

from errors import UpstreamUnavailable
from gateway import COUNTRIES_UPSTREAM, RATES_UPSTREAM, ExternalDataGateway

COUNTRIES_URL = "https://countries.test/v2/all"
RATES_URL = "https://rates.test/v6/latest/USD"


def make_gateway(handler) -> ExternalDataGateway:
    return ExternalDataGateway(
        countries_url=COUNTRIES_URL,
        rates_url=RATES_URL,
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


def test_fetch_countries_returns_list():
    payload = [{"name": "Ghana"}]
    gateway = make_gateway(lambda request: httpx.Response(200, json=payload))

    assert asyncio.run(gateway.fetch_countries()) == payload


def test_fetch_exchange_rates_returns_rates_table():
    gateway = make_gateway(
        lambda request: httpx.Response(200, json={"result": "success", "rates": {"NGN": 1600.5}})
    )

    assert asyncio.run(gateway.fetch_exchange_rates()) == {"NGN": 1600.5}


def test_requests_go_to_configured_urls():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        if request.url.host == "countries.test":
            return httpx.Response(200, json=[])
        return httpx.Response(200, json={"rates": {}})

    gateway = make_gateway(handler)
    asyncio.run(gateway.fetch_countries())
    asyncio.run(gateway.fetch_exchange_rates())

    assert seen == [COUNTRIES_URL, RATES_URL]


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, json={"error": "boom"}),
        lambda request: httpx.Response(404),
        lambda request: httpx.Response(200, content=b"<html>not json</html>"),
        lambda request: httpx.Response(200, json={"countries": []}),
    ],
    ids=["server-error", "not-found", "malformed-json", "wrong-shape"],
)
def test_countries_failures_name_upstream(handler):
    gateway = make_gateway(handler)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        asyncio.run(gateway.fetch_countries())

    assert exc_info.value.upstream == COUNTRIES_UPSTREAM
    assert exc_info.value.status_code == 503


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500),
        lambda request: httpx.Response(200, json={"result": "error"}),
        lambda request: httpx.Response(200, json={"rates": ["NGN"]}),
        lambda request: httpx.Response(200, json=[1, 2, 3]),
    ],
    ids=["server-error", "missing-rates", "rates-not-object", "not-object"],
)
def test_rates_failures_name_upstream(handler):
    gateway = make_gateway(handler)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        asyncio.run(gateway.fetch_exchange_rates())

    assert exc_info.value.upstream == RATES_UPSTREAM


def test_timeout_is_upstream_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    gateway = make_gateway(handler)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        asyncio.run(gateway.fetch_countries())

    assert exc_info.value.to_dict() == {
        "error": "External data source unavailable",
        "details": "Could not fetch data from restcountries.com",
    }


def test_transport_error_is_upstream_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    gateway = make_gateway(handler)

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(gateway.fetch_exchange_rates())


def test_single_attempt_no_retry():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    gateway = make_gateway(handler)

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(gateway.fetch_countries())

    assert len(calls) == 1
