import json
import logging
import time
from typing import Any

import requests

from country_api.config import settings
from country_api.errors import UpstreamUnavailable

logger = logging.getLogger("country_api")

COUNTRIES_SOURCE = "restcountries API"
RATES_SOURCE = "exchange rate API"
CHUNK_SIZE = 64 * 1024


def _get_json(url: str, source: str) -> Any:
    """GET ``url`` and decode its JSON body.

    FETCH_TIMEOUT_SECONDS bounds the connect, each socket read and the whole
    download; a body that trickles in past the deadline is abandoned.
    """
    timeout = settings.FETCH_TIMEOUT_SECONDS
    deadline = time.monotonic() + timeout
    try:
        with requests.get(url, timeout=timeout, stream=True) as resp:
            resp.raise_for_status()
            body = bytearray()
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                body.extend(chunk)
                if time.monotonic() > deadline:
                    raise requests.Timeout(f"{source} did not respond within {timeout:g}s")
        return json.loads(bytes(body))
    except (requests.RequestException, ValueError) as e:
        logger.error("Error fetching %s: %s", source, e)
        raise UpstreamUnavailable(f"Could not fetch data from {source}") from e


def fetch_countries() -> list[dict]:
    """Return the raw country records (name, capital, region, population, flag, currencies)."""
    data = _get_json(settings.COUNTRY_API, COUNTRIES_SOURCE)
    if not isinstance(data, list):
        logger.error("Unexpected payload from %s: %s", COUNTRIES_SOURCE, type(data).__name__)
        raise UpstreamUnavailable(f"Could not fetch data from {COUNTRIES_SOURCE}")
    return data


def fetch_exchange_rates() -> dict[str, float]:
    """Return ``{currency_code: rate}`` where rate is units of that currency per 1 USD."""
    data = _get_json(settings.EXCHANGE_API, RATES_SOURCE)
    rates = data.get("rates") if isinstance(data, dict) else None
    if not isinstance(rates, dict):
        logger.error("Exchange rate payload has no 'rates' mapping")
        raise UpstreamUnavailable(f"Could not fetch data from {RATES_SOURCE}")
    return rates
