"""
External data gateway: country listings and exchange rates over HTTP.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

COUNTRIES_UPSTREAM = "restcountries.com"
RATES_UPSTREAM = "open.er-api.com"


class ExternalDataGateway:
    """
    Single-attempt fetches with a bounded timeout.

    A non-2xx status, a transport error, a timeout or a body of the wrong
    shape all surface as UpstreamUnavailable naming the failing upstream.
    """

    def __init__(
        self,
        countries_url: str = settings.COUNTRIES_API_URL,
        rates_url: str = settings.EXCHANGE_RATE_API_URL,
        timeout: float = settings.UPSTREAM_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.countries_url = countries_url
        self.rates_url = rates_url
        self.timeout = timeout
        self.transport = transport

    async def _get_json(self, url: str, upstream: str) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException:
            logger.error("Timed out fetching %s", upstream)
            raise UpstreamUnavailable(upstream)
        except httpx.HTTPStatusError as e:
            logger.error("%s returned status %s", upstream, e.response.status_code)
            raise UpstreamUnavailable(upstream)
        except httpx.HTTPError as e:
            logger.error("Error fetching %s: %s", upstream, e)
            raise UpstreamUnavailable(upstream)
        except ValueError as e:
            logger.error("Malformed JSON from %s: %s", upstream, e)
            raise UpstreamUnavailable(upstream)

    async def fetch_countries(self) -> List[Dict]:
        """Fetch the raw country listing."""
        logger.info("Fetching countries from %s", COUNTRIES_UPSTREAM)
        data = await self._get_json(self.countries_url, COUNTRIES_UPSTREAM)
        if not isinstance(data, list):
            logger.error("Countries payload is not a list")
            raise UpstreamUnavailable(COUNTRIES_UPSTREAM)
        logger.info("Fetched %d countries", len(data))
        return data

    async def fetch_exchange_rates(self) -> Dict[str, float]:
        """Fetch the currency code -> rate table."""
        logger.info("Fetching exchange rates from %s", RATES_UPSTREAM)
        data = await self._get_json(self.rates_url, RATES_UPSTREAM)
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            logger.error("Exchange rate payload has no rates table")
            raise UpstreamUnavailable(RATES_UPSTREAM)
        logger.info("Fetched exchange rates for %d currencies", len(rates))
        return rates
