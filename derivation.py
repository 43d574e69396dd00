"""
Turns one raw country entry plus the exchange-rate table into a CountryRecord.
"""

import math
import random
from datetime import datetime
from typing import Callable, Dict, List, Optional

from models import CountryRecord

UNKNOWN_NAME = "Unknown"
MULTIPLIER_MIN = 1000
MULTIPLIER_MAX = 2000


def random_multiplier() -> int:
    """Integer drawn uniformly from [1000, 2000], inclusive."""
    return random.randint(MULTIPLIER_MIN, MULTIPLIER_MAX)


def _is_number(value) -> bool:
    """True for finite ints and floats; booleans, NaN and infinities are rejected."""
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and (isinstance(value, int) or math.isfinite(value))
    )


def extract_currency_code(currencies: Optional[List[Dict]]) -> Optional[str]:
    """
    Extract first currency code from currencies array.

    Args:
        currencies: List of currency dictionaries

    Returns:
        First currency code, or None if the list is empty or the first
        entry has no code
    """
    if not isinstance(currencies, list) or not currencies:
        return None

    first_currency = currencies[0]
    if not isinstance(first_currency, dict):
        return None
    return first_currency.get("code") or None


def calculate_estimated_gdp(
    population: int,
    currency_code: Optional[str],
    rate,
    multiplier_fn: Callable[[], int] = random_multiplier,
):
    """
    Return (exchange_rate, estimated_gdp).

    No currency gives (None, 0). A currency without a positive quoted rate
    gives (None, None). Otherwise population * multiplier / rate.
    """
    if currency_code is None:
        return None, 0.0

    if not _is_number(rate) or rate <= 0:
        return None, None

    multiplier = multiplier_fn()
    return float(rate), (population * multiplier) / rate


def derive_country(
    country: Dict,
    exchange_rates: Dict[str, float],
    multiplier_fn: Callable[[], int] = random_multiplier,
    refreshed_at: Optional[datetime] = None,
) -> CountryRecord:
    """
    Process raw country data and combine with exchange rate.

    Raises pydantic.ValidationError when the result is not a valid record.
    """
    name = country.get("name")
    if not isinstance(name, str) or not name.strip():
        name = UNKNOWN_NAME
    population = country.get("population")
    if not _is_number(population):
        population = 0

    currency_code = extract_currency_code(country.get("currencies"))
    rate = exchange_rates.get(currency_code) if currency_code else None
    exchange_rate, estimated_gdp = calculate_estimated_gdp(
        population, currency_code, rate, multiplier_fn
    )

    return CountryRecord(
        name=name,
        capital=country.get("capital") or None,
        region=country.get("region") or None,
        population=int(population),
        currency_code=currency_code,
        exchange_rate=exchange_rate,
        estimated_gdp=estimated_gdp,
        flag_url=country.get("flag") or None,
        last_refreshed_at=refreshed_at,
    )
