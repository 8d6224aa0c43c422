from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Protocol, Sequence

import requests

from .amadeus_client import AmadeusClient, AmadeusError
from .config import Settings, get_settings
from .mailer import send_offers_email
from .models import CandidateDate, RawOffer, SearchWindow, ValidatedOffer
from .offer_filter import LayoverValidator, rank_offers, to_validated, within_budget

logger = logging.getLogger(__name__)

CANDIDATE_DATES = 3
OFFERS_PER_DATE = 10

_run_lock = threading.Lock()


class FlightProvider(Protocol):
    def cheapest_dates(
        self, window: SearchWindow, *, one_way: bool = True, limit: int = 3
    ) -> List[CandidateDate]: ...

    def search_offers(
        self,
        window: SearchWindow,
        departure_date: date,
        return_date: Optional[date] = None,
        *,
        limit: int = 10,
        non_stop: bool = False,
    ) -> List[RawOffer]: ...

    def airport_country(self, iata_code: str) -> str: ...


Notifier = Callable[[Sequence[ValidatedOffer], Settings], object]


# ────────────────────────────────────────────────────────────────
# Pipeline stages
# ────────────────────────────────────────────────────────────────


def find_candidate_dates(
    client: FlightProvider, settings: Settings
) -> List[CandidateDate]:
    window = settings.search_window()
    dates = client.cheapest_dates(
        window, one_way=not settings.round_trip, limit=CANDIDATE_DATES
    )
    logger.info(
        "Cheapest dates: %s",
        ", ".join(f"{c.departure_date}: {c.price}" for c in dates),
    )
    return dates


def affordable_dates(
    candidates: Sequence[CandidateDate], max_price: Decimal
) -> List[CandidateDate]:
    kept = []
    for cand in candidates:
        if not within_budget(cand.price, max_price):
            logger.info(
                "Skipping %s: cheapest fare %s already above %s",
                cand.departure_date,
                cand.price,
                max_price,
            )
            continue
        kept.append(cand)
    return kept


def return_date_for(departure: date, settings: Settings) -> Optional[date]:
    if not settings.round_trip:
        return None
    if settings.return_date:
        return settings.return_date
    return departure + timedelta(days=settings.return_offset_days)


def fetch_offers(
    client: FlightProvider, settings: Settings, candidate: CandidateDate
) -> List[RawOffer]:
    logger.info("Fetching offers for %s", candidate.departure_date)
    return client.search_offers(
        settings.search_window(),
        candidate.departure_date,
        return_date_for(candidate.departure_date, settings),
        limit=OFFERS_PER_DATE,
        non_stop=False,
    )


def validate_offers(
    offers: Sequence[RawOffer],
    departure_date: date,
    settings: Settings,
    validator: LayoverValidator,
) -> List[ValidatedOffer]:
    valid = []
    for off in offers:
        if not within_budget(off.price, settings.max_price):
            continue
        if validator.is_forbidden(off):
            continue
        valid.append(to_validated(off, departure_date))
    return valid


# ────────────────────────────────────────────────────────────────
# Main logic
# ────────────────────────────────────────────────────────────────


def run_once(
    settings: Settings,
    client: FlightProvider,
    notifier: Notifier = send_offers_email,
) -> List[ValidatedOffer]:
    """Run the whole search once and return the ranked offers.

    Provider errors from the date and offer searches propagate.
    """
    logger.info(
        "Searching %s ➔ %s offers (%s)...",
        settings.origin,
        settings.destination,
        datetime.now().strftime("%Y-%m-%d %H:%M"),
    )
    window = settings.search_window()
    validator = LayoverValidator(
        client.airport_country,
        window,
        settings.blocked_countries,
        on_failure=settings.on_lookup_failure,
    )

    collected: List[ValidatedOffer] = []
    candidates = find_candidate_dates(client, settings)
    for cand in affordable_dates(candidates, settings.max_price):
        raw = fetch_offers(client, settings, cand)
        valid = validate_offers(raw, cand.departure_date, settings, validator)
        logger.info(
            "  %s: %d of %d offers passed", cand.departure_date, len(valid), len(raw)
        )
        collected.extend(valid)

    top = rank_offers(collected)
    if not top:
        logger.info("No good offers today.")
        return top

    logger.info(
        "%d offers at or below %s %s",
        len(top),
        settings.max_price,
        settings.currency,
    )
    if settings.notify_enabled:
        notifier(top, settings)
    else:
        logger.info("Notifications disabled, not sending email")
    return top


def search_and_notify(
    settings: Optional[Settings] = None,
    client: Optional[FlightProvider] = None,
) -> List[ValidatedOffer]:
    """Entry point for scheduled runs; never raises."""
    if not _run_lock.acquire(blocking=False):
        logger.warning("Previous search still running, skipping this one")
        return []
    try:
        settings = settings or get_settings()
        client = client or AmadeusClient.from_settings(settings)
        return run_once(settings, client)
    except AmadeusError as exc:
        logger.error("Amadeus error: %s %s", exc, exc.payload or "")
    except requests.RequestException as exc:
        logger.error("Network error talking to Amadeus: %s", exc)
    except Exception:
        logger.exception("Fare search failed")
    finally:
        _run_lock.release()
    return []


__all__ = [
    "CANDIDATE_DATES",
    "OFFERS_PER_DATE",
    "affordable_dates",
    "fetch_offers",
    "find_candidate_dates",
    "return_date_for",
    "run_once",
    "search_and_notify",
    "validate_offers",
]
