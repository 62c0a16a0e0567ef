import json
import os
import sys
import time

# Keep the application's own engine off the local dev database during tests.
os.environ.setdefault("DATABASE_URL", "sqlite://")
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest  # noqa: E402
import requests  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from country_api import models  # noqa: E402
from country_api.config import settings  # noqa: E402
from country_api.database import create_db_engine, get_db, init_db  # noqa: E402
from country_api.main import app  # noqa: E402


class DummyResponse:
    """Streamed response: ``data`` is JSON-encoded unless it is already bytes."""

    def __init__(self, data, status_code=200, chunk_delay=0.0, chunk_size=16):
        self.body = data if isinstance(data, bytes) else json.dumps(data).encode()
        self.status_code = status_code
        self.chunk_delay = chunk_delay
        self.chunk_size = chunk_size

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.body), self.chunk_size):
            if self.chunk_delay:
                time.sleep(self.chunk_delay)
            yield self.body[start : start + self.chunk_size]

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class FakeUpstream:
    """Stands in for ``requests.get`` against both upstream APIs."""

    def __init__(self):
        self.countries = []
        self.rates = {}
        self.fail = None  # "countries" | "rates"
        self.calls = []

    def get(self, url, timeout=None, stream=False):
        self.calls.append((url, timeout))
        if url == settings.COUNTRY_API:
            if self.fail == "countries":
                raise requests.ConnectionError("countries API down")
            return DummyResponse(self.countries)
        if url == settings.EXCHANGE_API:
            if self.fail == "rates":
                raise requests.Timeout("exchange API timed out")
            return DummyResponse({"result": "success", "base_code": "USD", "rates": self.rates})
        raise AssertionError(f"Unexpected URL {url}")


def seed_countries(session):
    data = [
        models.Country(
            name="Alpha",
            capital="A",
            region="Africa",
            population=100,
            currency_code="AAA",
            exchange_rate=2.0,
            estimated_gdp=1000.0,
        ),
        models.Country(
            name="Bravo",
            capital="B",
            region="Europe",
            population=200,
            currency_code="BBB",
            exchange_rate=1.5,
            estimated_gdp=500.0,
        ),
        models.Country(
            name="Charlie",
            capital="C",
            region="africa",
            population=300,
            currency_code="BBB",
            exchange_rate=3.0,
            estimated_gdp=1500.0,
        ),
        models.Country(
            name="Delta",
            capital="D",
            region="Europe",
            population=400,
            currency_code="DDD",
            exchange_rate=None,
            estimated_gdp=None,
        ),
    ]
    for c in data:
        session.add(c)
    session.commit()


@pytest.fixture
def engine():
    # StaticPool keeps a single in-memory DB across threads/requests
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def seeded(session_factory):
    with session_factory() as session:
        seed_countries(session)


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def upstream(monkeypatch):
    fake = FakeUpstream()
    monkeypatch.setattr("country_api.services.external_api.requests.get", fake.get)
    return fake


@pytest.fixture(autouse=True)
def image_cache(tmp_path, monkeypatch):
    cache_dir = tmp_path / "cache"
    monkeypatch.setattr(settings, "CACHE_DIR", cache_dir)
    return cache_dir
