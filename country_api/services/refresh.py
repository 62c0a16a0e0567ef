"""Refresh pipeline: pull countries and exchange rates, reconcile them and upsert.

A pass runs in one database transaction. Each country is written inside its
own savepoint so a bad record is rolled back and skipped without aborting the
rest of the pass. Passes are serialised within the process.
"""
import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from sqlalchemy.orm import Session

from country_api import crud
from country_api.services import external_api
from country_api.services.gdp import estimate_gdp

logger = logging.getLogger("country_api.refresh")

_refresh_lock = threading.Lock()


@dataclass(frozen=True)
class RefreshResult:
    processed: int = 0
    inserted: int = 0
    updated: int = 0


def _first_currency_code(record: Mapping[str, Any]) -> Optional[str]:
    currencies = record.get("currencies") or []
    if not currencies:
        return None
    code = (currencies[0] or {}).get("code")
    return code.upper() if isinstance(code, str) and code else None


def country_fields(record: Mapping[str, Any], rates: Mapping[str, Any], rng: Optional[random.Random] = None) -> dict:
    """Build the persisted column values for one upstream country record."""
    name = record.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValueError("country record has no name")

    population = int(record.get("population") or 0)
    currency_code = _first_currency_code(record)
    exchange_rate = rates.get(currency_code) if currency_code else None
    if not exchange_rate:
        exchange_rate = None

    return {
        "name": name.strip(),
        "capital": record.get("capital") or None,
        "region": record.get("region") or None,
        "population": population,
        "currency_code": currency_code,
        "exchange_rate": exchange_rate,
        "estimated_gdp": estimate_gdp(population, exchange_rate, rng),
        "flag_url": record.get("flag") or None,
    }


def refresh_countries(
    db: Session,
    *,
    rng: Optional[random.Random] = None,
    after_commit: Optional[Callable[[], None]] = None,
) -> RefreshResult:
    """Run one refresh pass.

    Raises ``UpstreamUnavailable`` before touching the database if either
    fetch fails. Any other error outside a single country's processing rolls
    back the whole pass and propagates.
    """
    with _refresh_lock:
        logger.info("Fetching countries data...")
        countries = external_api.fetch_countries()
        logger.info("Fetching exchange rates...")
        rates = external_api.fetch_exchange_rates()
        logger.info("Fetched %d countries and %d exchange rates", len(countries), len(rates))

        now = datetime.now(timezone.utc)
        processed = inserted = updated = 0
        try:
            for record in countries:
                try:
                    with db.begin_nested():
                        fields = country_fields(record, rates, rng)
                        was_inserted = crud.upsert_country(db, fields, now)
                except Exception as e:
                    label = record.get("name") if isinstance(record, Mapping) else record
                    logger.error("Error processing country %r: %s", label, e)
                    continue

                if was_inserted:
                    inserted += 1
                else:
                    updated += 1
                processed += 1

            crud.set_last_refreshed_at(db, now)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Refresh failed; transaction rolled back")
            raise

        result = RefreshResult(processed=processed, inserted=inserted, updated=updated)
        logger.info(
            "Refresh complete: %d processed (%d inserted, %d updated)",
            result.processed,
            result.inserted,
            result.updated,
        )

    if after_commit is not None:
        try:
            after_commit()
        except Exception:
            logger.exception("Post-refresh hook failed; refresh result unaffected")
    return result
