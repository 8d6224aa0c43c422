"""Data models used throughout the project."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Tuple


@dataclass(frozen=True, slots=True)
class SearchWindow:
    origin: str
    destination: str
    earliest: date
    latest: date
    adults: int = 1
    currency: str = "EUR"

    def __post_init__(self) -> None:
        if self.earliest > self.latest:
            raise ValueError(
                f"Empty date range: {self.earliest} is after {self.latest}"
            )

    def date_range(self) -> str:
        return f"{self.earliest.isoformat()},{self.latest.isoformat()}"


@dataclass(slots=True)
class CandidateDate:
    departure_date: date
    price: Decimal


@dataclass(slots=True)
class Segment:
    carrier_code: str
    number: str
    departure_airport: str
    departure_at: datetime
    arrival_airport: str
    arrival_at: datetime

    def describe(self) -> str:
        return (
            f"{self.carrier_code}{self.number} "
            f"({self.departure_at:%Y-%m-%d %H:%M} → {self.arrival_at:%Y-%m-%d %H:%M})"
        )


@dataclass(slots=True)
class RawOffer:
    offer_id: str
    price: Decimal
    currency: str
    duration: str
    segments: Tuple[Segment, ...]
    return_segments: Tuple[Segment, ...] = ()


@dataclass(slots=True)
class ValidatedOffer:
    offer_id: str
    departure_date: date
    price: Decimal
    carrier: str
    duration: str
    stops: int
    details: list[str] = field(default_factory=list)

    @property
    def key(self) -> tuple[date, str]:
        # Provider ids restart at "1" for every search.
        return (self.departure_date, self.offer_id)
