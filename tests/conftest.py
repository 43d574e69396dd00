"""Pytest configuration and shared fixtures for the Country Currency API tests.

This module provides fixtures for:
- An in-memory SQLite database shared across threads
- A fake upstream gateway and a recording image renderer
- A FastAPI test client wired to those fakes
"""

from pathlib import Path
from typing import Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import main
from database import create_db_engine, get_db, init_db
from errors import UpstreamUnavailable


# ============================================================================
# Fakes
# ============================================================================

class FakeGateway:
    """Returns canned payloads, or raises UpstreamUnavailable for a named upstream."""

    def __init__(self, countries=None, rates=None, fail: Optional[str] = None):
        self.countries = countries if countries is not None else []
        self.rates = rates if rates is not None else {}
        self.fail = fail
        self.calls: List[str] = []

    async def fetch_countries(self):
        self.calls.append("countries")
        if self.fail == "countries":
            raise UpstreamUnavailable("restcountries.com")
        return self.countries

    async def fetch_exchange_rates(self):
        self.calls.append("rates")
        if self.fail == "rates":
            raise UpstreamUnavailable("open.er-api.com")
        return self.rates


class RecordingRenderer:
    """Records each summary it is asked to render; optionally fails."""

    def __init__(self, path: str = "cache/summary.png", error: Optional[Exception] = None):
        self.path = path
        self.error = error
        self.summaries = []

    def __call__(self, summary):
        self.summaries.append(summary)
        if self.error is not None:
            raise self.error
        return self.path


# ============================================================================
# Test Data Fixtures
# ============================================================================

@pytest.fixture
def raw_countries() -> List[Dict]:
    """Raw entries shaped like restcountries.com v2."""
    return [
        {
            "name": "Nigeria",
            "capital": "Abuja",
            "region": "Africa",
            "population": 206139589,
            "flag": "https://flagcdn.com/ng.svg",
            "currencies": [{"code": "NGN", "name": "Nigerian naira", "symbol": "₦"}],
        },
        {
            "name": "Ghana",
            "capital": "Accra",
            "region": "Africa",
            "population": 31072945,
            "flag": "https://flagcdn.com/gh.svg",
            "currencies": [{"code": "GHS", "name": "Ghanaian cedi", "symbol": "₵"}],
        },
        {
            "name": "Germany",
            "capital": "Berlin",
            "region": "Europe",
            "population": 83240525,
            "flag": "https://flagcdn.com/de.svg",
            "currencies": [{"code": "EUR", "name": "Euro", "symbol": "€"}],
        },
        {
            "name": "Antarctica",
            "region": "Polar",
            "population": 1000,
            "flag": "https://flagcdn.com/aq.svg",
        },
        {
            "name": "Zimbabwe",
            "capital": "Harare",
            "region": "Africa",
            "population": 14862927,
            "flag": "https://flagcdn.com/zw.svg",
            "currencies": [{"code": "ZWL", "name": "Zimbabwean dollar"}],
        },
    ]


@pytest.fixture
def rates() -> Dict[str, float]:
    """Exchange-rate table; ZWL is deliberately missing."""
    return {"USD": 1, "NGN": 1600.5, "GHS": 15.2, "EUR": 0.92}


@pytest.fixture
def fake_gateway(raw_countries, rates) -> FakeGateway:
    return FakeGateway(countries=raw_countries, rates=rates)


@pytest.fixture
def renderer(tmp_path: Path) -> RecordingRenderer:
    return RecordingRenderer(path=str(tmp_path / "summary.png"))


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def engine():
    """In-memory SQLite engine; StaticPool keeps one connection for every thread."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


# ============================================================================
# HTTP Fixtures
# ============================================================================

@pytest.fixture
def image_path(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "summary.png"


@pytest.fixture
def client(db, fake_gateway, renderer, image_path) -> TestClient:
    """Test client with the database, gateway, renderer and image path overridden."""
    app = main.create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[main.get_gateway] = lambda: fake_gateway
    app.dependency_overrides[main.get_renderer] = lambda: renderer
    app.dependency_overrides[main.get_summary_image_path] = lambda: str(image_path)
    return TestClient(app)
