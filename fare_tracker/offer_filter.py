from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, List

import requests

from .amadeus_client import AmadeusError
from .config import LookupFailurePolicy
from .models import RawOffer, SearchWindow, ValidatedOffer

logger = logging.getLogger(__name__)

TOP_N = 5


# ────────────────────────────────────────────────────────────────
# Layover countries
# ────────────────────────────────────────────────────────────────


class LayoverValidator:
    """Reject offers that stop over in a denylisted country.

    ``lookup`` maps an airport IATA code to its country code and may raise
    ``AmadeusError`` or ``requests.RequestException``; ``on_failure`` decides
    what an unresolved stop means for the offer.
    """

    def __init__(
        self,
        lookup: Callable[[str], str],
        window: SearchWindow,
        blocked_countries: Iterable[str] = ("US", "CA"),
        *,
        on_failure: LookupFailurePolicy = LookupFailurePolicy.ALLOW,
    ) -> None:
        self.lookup = lookup
        self.window = window
        self.blocked = frozenset(c.upper() for c in blocked_countries)
        self.on_failure = on_failure

    def intermediate_stops(self, offer: RawOffer) -> List[str]:
        """Arrival airports of every segment but the last one of each leg."""
        stops = [
            s.arrival_airport
            for s in offer.segments[:-1]
            if s.arrival_airport != self.window.destination
        ]
        stops += [
            s.arrival_airport
            for s in offer.return_segments[:-1]
            if s.arrival_airport != self.window.origin
        ]
        return stops

    def is_forbidden(self, offer: RawOffer) -> bool:
        for airport in self.intermediate_stops(offer):
            try:
                country = self.lookup(airport)
            except (AmadeusError, requests.RequestException) as exc:
                logger.warning("Could not verify layover %s: %s", airport, exc)
                if self.on_failure is LookupFailurePolicy.REJECT:
                    return True
                continue

            if country.upper() in self.blocked:
                logger.info(
                    "Offer %s rejected: layover in %s (%s)",
                    offer.offer_id,
                    airport,
                    country,
                )
                return True
        return False


# ────────────────────────────────────────────────────────────────
# Price, conversion and ranking
# ────────────────────────────────────────────────────────────────


def within_budget(price: Decimal, max_price: Decimal) -> bool:
    return price <= max_price


def to_validated(offer: RawOffer, departure_date: date) -> ValidatedOffer:
    segments = offer.segments + offer.return_segments
    return ValidatedOffer(
        offer_id=offer.offer_id,
        departure_date=departure_date,
        price=offer.price,
        carrier=offer.segments[0].carrier_code,
        duration=offer.duration,
        stops=len(offer.segments) - 1,
        details=[s.describe() for s in segments],
    )


def rank_offers(
    offers: Iterable[ValidatedOffer], top_n: int = TOP_N
) -> List[ValidatedOffer]:
    """Cheapest ``top_n`` offers, ascending by price, without duplicates."""
    ranked: List[ValidatedOffer] = []
    seen = set()
    for off in sorted(offers, key=lambda o: o.price):
        if off.key in seen:
            continue
        seen.add(off.key)
        ranked.append(off)
        if len(ranked) == top_n:
            break
    return ranked


__all__ = [
    "TOP_N",
    "LayoverValidator",
    "within_budget",
    "to_validated",
    "rank_offers",
]
