from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from fare_tracker.amadeus_client import AmadeusError
from fare_tracker.config import Settings
from fare_tracker.models import CandidateDate, RawOffer, Segment


BASE_ENV = {
    "AMADEUS_CLIENT_ID": "id",
    "AMADEUS_CLIENT_SECRET": "secret",
    "MAX_PRICE": "600",
    "ROUND_TRIP": "false",
    "NOTIFY_ENABLED": "false",
}


@pytest.fixture
def settings(monkeypatch):
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    for key in ("RETURN_DATE", "TIMEZONE", "ON_LOOKUP_FAILURE", "ORIGIN", "DESTINATION"):
        monkeypatch.delenv(key, raising=False)
    return Settings()


def make_offer(offer_id, price, route=("MAD", "BOG"), *, back=None, duration="PT11H"):
    """Build a RawOffer flying through ``route`` (a list of airports)."""
    start = datetime(2025, 12, 5, 8, 0)

    def leg(airports):
        segs = []
        for i, (dep, arr) in enumerate(zip(airports, airports[1:])):
            segs.append(
                Segment(
                    carrier_code="IB",
                    number=str(6000 + i),
                    departure_airport=dep,
                    departure_at=start + timedelta(hours=4 * i),
                    arrival_airport=arr,
                    arrival_at=start + timedelta(hours=4 * i + 3),
                )
            )
        return tuple(segs)

    return RawOffer(
        offer_id=str(offer_id),
        price=Decimal(str(price)),
        currency="EUR",
        duration=duration,
        segments=leg(list(route)),
        return_segments=leg(list(back)) if back else (),
    )


class FakeProvider:
    """In-memory stand-in for AmadeusClient that records every call."""

    def __init__(self, dates=(), offers=None, countries=None):
        self.dates = [CandidateDate(date.fromisoformat(d), Decimal(str(p))) for d, p in dates]
        self.offers = offers or {}
        self.countries = countries or {}
        self.searched = []
        self.lookups = []

    def cheapest_dates(self, window, *, one_way=True, limit=3):
        return list(self.dates[:limit])

    def search_offers(self, window, departure_date, return_date=None, *, limit=10, non_stop=False):
        self.searched.append((departure_date, return_date))
        return list(self.offers.get(departure_date.isoformat(), []))[:limit]

    def airport_country(self, iata_code):
        self.lookups.append(iata_code)
        country = self.countries.get(iata_code)
        if country is None:
            raise AmadeusError(f"Unknown airport {iata_code}")
        return country


@pytest.fixture
def provider_factory():
    return FakeProvider


@pytest.fixture
def offer_factory():
    return make_offer
