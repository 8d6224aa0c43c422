from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import logging

import requests

from fare_tracker import tracker
from fare_tracker.amadeus_client import AmadeusError


def scenario(provider_factory, offer_factory):
    return provider_factory(
        dates=[("2025-12-05", 550), ("2025-12-10", 700), ("2025-12-15", 580)],
        offers={
            "2025-12-05": [
                offer_factory(1, 590, ("MAD", "BOG")),
                offer_factory(2, 610, ("MAD", "BOG")),
                offer_factory(3, 400, ("MAD", "JFK", "BOG")),
            ],
            "2025-12-10": [offer_factory(1, 100, ("MAD", "BOG"))],
            "2025-12-15": [
                offer_factory(1, 560, ("MAD", "PTY", "BOG")),
                offer_factory(2, 600, ("MAD", "LIS", "BOG")),
            ],
        },
        countries={"JFK": "US", "PTY": "PA"},
    )


def test_dates_above_ceiling_are_never_fetched(settings, provider_factory, offer_factory):
    provider = scenario(provider_factory, offer_factory)
    tracker.run_once(settings, provider, notifier=Mock())
    assert [d for d, _ in provider.searched] == [date(2025, 12, 5), date(2025, 12, 15)]


def test_run_once_filters_and_ranks(settings, provider_factory, offer_factory):
    provider = scenario(provider_factory, offer_factory)
    top = tracker.run_once(settings, provider, notifier=Mock())

    assert [(o.departure_date.day, o.offer_id) for o in top] == [(15, "1"), (5, "1"), (15, "2")]
    assert all(o.price <= settings.max_price for o in top)
    prices = [o.price for o in top]
    assert prices == sorted(prices)
    # LIS could not be resolved and is allowed through
    assert "LIS" in provider.lookups


def test_run_once_is_idempotent(settings, provider_factory, offer_factory):
    provider = scenario(provider_factory, offer_factory)
    first = tracker.run_once(settings, provider, notifier=Mock())
    second = tracker.run_once(settings, provider, notifier=Mock())
    assert first == second


def test_no_offers_skips_notifier(settings, provider_factory, caplog):
    provider = provider_factory(dates=[("2025-12-05", 900)])
    notifier = Mock()
    caplog.set_level(logging.INFO)
    settings = settings.model_copy(update={"notify_enabled": True})

    assert tracker.run_once(settings, provider, notifier=notifier) == []
    notifier.assert_not_called()
    assert any("No good offers" in r.getMessage() for r in caplog.records)


def test_notifier_called_only_when_enabled(settings, provider_factory, offer_factory):
    provider = scenario(provider_factory, offer_factory)
    notifier = Mock()
    tracker.run_once(settings, provider, notifier=notifier)
    notifier.assert_not_called()

    enabled = settings.model_copy(update={"notify_enabled": True})
    top = tracker.run_once(enabled, provider, notifier=notifier)
    notifier.assert_called_once_with(top, enabled)


def test_round_trip_return_dates(settings, provider_factory, offer_factory):
    provider = scenario(provider_factory, offer_factory)
    rt = settings.model_copy(update={"round_trip": True, "return_offset_days": 10})
    tracker.run_once(rt, provider, notifier=Mock())
    assert provider.searched == [
        (date(2025, 12, 5), date(2025, 12, 15)),
        (date(2025, 12, 15), date(2025, 12, 25)),
    ]

    fixed = rt.model_copy(update={"return_date": date(2026, 1, 15)})
    assert tracker.return_date_for(date(2025, 12, 5), fixed) == date(2026, 1, 15)
    assert tracker.return_date_for(date(2025, 12, 5), settings) is None


def test_affordable_dates_keeps_equal_price(provider_factory):
    provider = provider_factory(dates=[("2025-12-05", 600), ("2025-12-06", "600.01")])
    kept = tracker.affordable_dates(provider.dates, Decimal("600"))
    assert [c.departure_date for c in kept] == [date(2025, 12, 5)]


def test_search_and_notify_logs_provider_error(settings, caplog):
    client = Mock()
    client.cheapest_dates.side_effect = AmadeusError(
        "HTTP 401", status=401, payload=[{"title": "Invalid access token"}]
    )
    caplog.set_level(logging.ERROR)

    assert tracker.search_and_notify(settings, client) == []
    assert any("Invalid access token" in r.getMessage() for r in caplog.records)


def test_search_and_notify_survives_network_error(settings):
    client = Mock()
    client.cheapest_dates.side_effect = requests.ConnectionError("down")
    assert tracker.search_and_notify(settings, client) == []


def test_offer_search_failure_aborts_run(settings, provider_factory, offer_factory):
    provider = scenario(provider_factory, offer_factory)
    provider.search_offers = Mock(side_effect=AmadeusError("HTTP 500"))
    assert tracker.search_and_notify(settings, provider) == []
    provider.search_offers.assert_called_once()


def test_overlapping_run_is_skipped(settings, provider_factory, caplog):
    provider = provider_factory(dates=[("2025-12-05", 900)])
    caplog.set_level(logging.WARNING)
    assert tracker._run_lock.acquire(blocking=False)
    try:
        assert tracker.search_and_notify(settings, provider) == []
    finally:
        tracker._run_lock.release()
    assert any("still running" in r.getMessage() for r in caplog.records)


def test_cheapest_dates_logged_without_configured_currency(settings, provider_factory, caplog):
    provider = provider_factory(dates=[("2025-12-05", 550)])
    caplog.set_level(logging.INFO)
    tracker.find_candidate_dates(provider, settings)

    lines = [r.getMessage() for r in caplog.records if "Cheapest dates" in r.getMessage()]
    assert lines == ["Cheapest dates: 2025-12-05: 550"]
