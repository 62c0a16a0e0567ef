import threading
import time

import pytest
from sqlalchemy.exc import SQLAlchemyError

from country_api import crud, models
from country_api.errors import UpstreamUnavailable
from country_api.services import external_api, refresh
from country_api.services.refresh import country_fields, refresh_countries


TESTLAND = {
    "name": "Testland",
    "capital": "Test City",
    "region": "Test Region",
    "population": 1000,
    "flag": "http://flag",
    "currencies": [{"code": "TST"}],
}


def _row(session, name):
    return session.query(models.Country).filter(models.Country.name == name).one_or_none()


def test_refresh_inserts_country_with_estimate(db, upstream):
    upstream.countries = [TESTLAND]
    upstream.rates = {"TST": 2}

    result = refresh_countries(db)

    assert (result.processed, result.inserted, result.updated) == (1, 1, 0)
    row = _row(db, "Testland")
    assert row.currency_code == "TST"
    assert row.exchange_rate == 2
    assert 500_000 <= row.estimated_gdp < 1_000_000
    assert row.capital == "Test City"
    assert row.flag_url == "http://flag"
    assert crud.get_last_refreshed_at(db) == row.last_refreshed_at


def test_refresh_without_rate_leaves_estimate_null(db, upstream):
    upstream.countries = [TESTLAND]
    upstream.rates = {}

    refresh_countries(db)

    row = _row(db, "Testland")
    assert row.currency_code == "TST"
    assert row.exchange_rate is None
    assert row.estimated_gdp is None


def test_country_without_currency(db, upstream):
    upstream.countries = [{"name": "Nocurr", "population": 500, "currencies": []}]
    upstream.rates = {"USD": 1}

    result = refresh_countries(db)

    assert result.inserted == 1
    row = _row(db, "Nocurr")
    assert row.currency_code is None
    assert row.exchange_rate is None
    assert row.estimated_gdp is None


def test_country_fields_first_currency_wins_and_defaults():
    fields = country_fields(
        {"name": " Multiland ", "currencies": [{"code": "eur"}, {"code": "USD"}]},
        {"EUR": 0.5, "USD": 1.0},
    )
    assert fields["name"] == "Multiland"
    assert fields["currency_code"] == "EUR"
    assert fields["exchange_rate"] == 0.5
    assert fields["population"] == 0
    assert fields["estimated_gdp"] == 0


def test_country_fields_zero_rate_is_unknown():
    fields = country_fields({"name": "Zeroland", "population": 10, "currencies": [{"code": "ZZZ"}]}, {"ZZZ": 0})
    assert fields["exchange_rate"] is None
    assert fields["estimated_gdp"] is None


def test_refresh_twice_is_idempotent(db, upstream):
    upstream.countries = [TESTLAND, {**TESTLAND, "name": "Otherland", "currencies": [{"code": "OTH"}]}]
    upstream.rates = {"TST": 2, "OTH": 4}

    first = refresh_countries(db)
    created = _row(db, "Testland").created_at
    second = refresh_countries(db)

    assert (first.inserted, first.updated) == (2, 0)
    assert (second.inserted, second.updated) == (0, 2)
    assert second.processed == 2
    assert crud.count_countries(db) == 2
    row = _row(db, "Testland")
    assert row.created_at == created
    assert row.last_refreshed_at >= created


def test_refresh_matches_existing_name_case_insensitively(db, upstream):
    upstream.countries = [{**TESTLAND, "name": "TESTLAND"}]
    refresh_countries(db)

    upstream.countries = [{**TESTLAND, "population": 2000}]
    result = refresh_countries(db)

    assert (result.inserted, result.updated) == (0, 1)
    assert crud.count_countries(db) == 1
    assert crud.get_country(db, "testland").population == 2000


def test_row_level_errors_are_skipped(db, upstream):
    upstream.countries = [
        TESTLAND,
        {**TESTLAND, "name": "Badland", "population": -5},
        {"capital": "Nameless"},
        "garbage",
        {**TESTLAND, "name": "Otherland"},
    ]
    upstream.rates = {"TST": 2}

    result = refresh_countries(db)

    assert (result.processed, result.inserted, result.updated) == (2, 2, 0)
    assert _row(db, "Badland") is None
    assert crud.count_countries(db) == 2
    assert crud.get_last_refreshed_at(db) is not None


def test_failed_update_keeps_previous_values(db, upstream):
    upstream.countries = [TESTLAND]
    upstream.rates = {"TST": 2}
    refresh_countries(db)

    upstream.countries = [{**TESTLAND, "population": -1}]
    result = refresh_countries(db)

    assert result.processed == 0
    db.expire_all()
    assert _row(db, "Testland").population == 1000


def test_empty_refresh_still_updates_metadata(db, upstream):
    result = refresh_countries(db)

    assert result.processed == 0
    assert crud.get_last_refreshed_at(db) is not None


@pytest.mark.parametrize("failing", ["countries", "rates"])
def test_upstream_failure_changes_nothing(db, upstream, failing):
    upstream.countries = [TESTLAND]
    upstream.rates = {"TST": 2}
    refresh_countries(db)
    last = crud.get_last_refreshed_at(db)
    db.commit()

    upstream.countries = [TESTLAND, {**TESTLAND, "name": "Newland"}]
    upstream.fail = failing
    with pytest.raises(UpstreamUnavailable):
        refresh_countries(db)

    assert crud.count_countries(db) == 1
    assert crud.get_last_refreshed_at(db) == last


def test_transaction_error_rolls_back_everything(db, upstream, monkeypatch):
    upstream.countries = [TESTLAND]
    upstream.rates = {"TST": 2}

    def broken(*args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(crud, "set_last_refreshed_at", broken)

    with pytest.raises(SQLAlchemyError):
        refresh_countries(db)

    assert crud.count_countries(db) == 0
    assert crud.get_last_refreshed_at(db) is None


def test_after_commit_runs_once_on_success(db, upstream):
    calls = []
    refresh_countries(db, after_commit=lambda: calls.append("done"))
    assert calls == ["done"]


def test_after_commit_failure_does_not_change_result(db, upstream):
    upstream.countries = [TESTLAND]

    def explode():
        raise RuntimeError("renderer crashed")

    result = refresh_countries(db, after_commit=explode)

    assert result.inserted == 1
    assert crud.count_countries(db) == 1


def test_after_commit_skipped_on_upstream_failure(db, upstream):
    upstream.fail = "countries"
    calls = []
    with pytest.raises(UpstreamUnavailable):
        refresh_countries(db, after_commit=lambda: calls.append("done"))
    assert calls == []


def test_overlapping_refreshes_are_serialised(monkeypatch):
    active = 0
    peak = 0
    guard = threading.Lock()

    def slow_fetch():
        nonlocal active, peak
        with guard:
            active += 1
            peak = max(peak, active)
        time.sleep(0.05)
        with guard:
            active -= 1
        return []

    def rates_down():
        raise UpstreamUnavailable("Could not fetch data from exchange rate API")

    monkeypatch.setattr(external_api, "fetch_countries", slow_fetch)
    monkeypatch.setattr(external_api, "fetch_exchange_rates", rates_down)

    errors = []

    def run():
        try:
            refresh.refresh_countries(None)
        except UpstreamUnavailable as e:
            errors.append(e)

    threads = [threading.Thread(target=run) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(errors) == 3
    assert peak == 1


def test_refresh_twice_with_non_ascii_name(db, upstream):
    upstream.countries = [{"name": "Åland Islands", "population": 29_000, "currencies": [{"code": "EUR"}]}]
    upstream.rates = {"EUR": 0.9}

    first = refresh_countries(db)
    assert crud.get_country(db, "Åland Islands") is not None
    second = refresh_countries(db)

    assert (first.processed, first.inserted, first.updated) == (1, 1, 0)
    assert (second.processed, second.inserted, second.updated) == (1, 0, 1)
    assert crud.count_countries(db) == 1
