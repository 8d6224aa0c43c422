from __future__ import annotations

import datetime as dt
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any

import requests

from .models import CandidateDate, RawOffer, SearchWindow, Segment

logger = logging.getLogger(__name__)

BASE_URLS = {
    "test": "https://test.api.amadeus.com",
    "production": "https://api.amadeus.com",
}


class AmadeusError(RuntimeError):
    """Error talking to the Amadeus Self-Service API.

    ``payload`` carries the ``errors`` list the API attached to the
    response, when there was one.
    """

    def __init__(
        self, message: str, *, status: int | None = None, payload: Any = None
    ) -> None:
        super().__init__(message)
        self.status = status
        self.payload = payload


class AmadeusClient:
    """
    Client for the three Amadeus endpoints the tracker needs:
    flight dates, flight offers and airport reference data.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        env: str = "test",
        *,
        timeout_s: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = BASE_URLS[env]
        self.timeout_s = timeout_s
        self.session = session or requests.Session()
        self._token: str | None = None
        self._token_expiry = 0.0

    @classmethod
    def from_settings(cls, settings) -> "AmadeusClient":
        return cls(
            settings.amadeus_client_id,
            settings.amadeus_client_secret,
            settings.amadeus_env,
            timeout_s=settings.timeout_s,
        )

    # ──────────────────────────────────────────────────────────

    def cheapest_dates(
        self, window: SearchWindow, *, one_way: bool = True, limit: int = 3
    ) -> list[CandidateDate]:
        """Return up to ``limit`` cheapest departure dates, cheapest first."""
        if window.adults != 1:
            raise ValueError("Flight dates search only supports one adult")

        data = self._get(
            "/v1/shopping/flight-dates",
            {
                "origin": window.origin,
                "destination": window.destination,
                "departureDate": window.date_range(),
                "oneWay": "true" if one_way else "false",
                "viewBy": "DATE",
            },
        )
        rows = data.get("data")
        if not rows:
            raise AmadeusError("No cheap dates returned", payload=data.get("errors"))

        try:
            candidates = [
                CandidateDate(
                    departure_date=dt.date.fromisoformat(row["departureDate"]),
                    price=Decimal(str(row["price"]["total"])),
                )
                for row in rows
            ]
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            raise AmadeusError(f"Malformed flight-dates response: {exc!r}") from exc

        candidates.sort(key=lambda c: c.price)
        return candidates[:limit]

    def search_offers(
        self,
        window: SearchWindow,
        departure_date: dt.date,
        return_date: dt.date | None = None,
        *,
        limit: int = 10,
        non_stop: bool = False,
    ) -> list[RawOffer]:
        """Return detailed offers departing on ``departure_date``."""
        params: dict[str, Any] = {
            "originLocationCode": window.origin,
            "destinationLocationCode": window.destination,
            "departureDate": departure_date.isoformat(),
            "adults": window.adults,
            "currencyCode": window.currency,
            "max": limit,
            "nonStop": "true" if non_stop else "false",
        }
        if return_date:
            params["returnDate"] = return_date.isoformat()

        data = self._get("/v2/shopping/flight-offers", params)
        try:
            return [self._to_offer(item) for item in data.get("data", [])]
        except (KeyError, IndexError, TypeError, ValueError, InvalidOperation) as exc:
            raise AmadeusError(f"Malformed flight-offers response: {exc!r}") from exc

    def airport_country(self, iata_code: str) -> str:
        """Resolve an airport IATA code to its ISO country code."""
        data = self._get(
            "/v1/reference-data/locations",
            {"subType": "AIRPORT", "keyword": iata_code, "view": "LIGHT"},
        )
        try:
            for loc in data.get("data", []):
                if loc.get("iataCode") == iata_code:
                    country = (loc.get("address") or {}).get("countryCode")
                    if country:
                        return country
        except (AttributeError, TypeError) as exc:
            raise AmadeusError(
                f"Malformed locations response for {iata_code}: {exc!r}"
            ) from exc
        raise AmadeusError(f"Unknown airport {iata_code}")

    # ──────────────────────────────────────────────────────────

    def _token_valid(self) -> bool:
        # Refresh 60 seconds early
        return bool(self._token) and time.time() < self._token_expiry - 60

    def _fetch_token(self) -> None:
        resp = self.session.post(
            f"{self.base_url}/v1/security/oauth2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            timeout=self.timeout_s,
        )
        if resp.status_code != 200:
            raise AmadeusError(
                f"Token request failed: HTTP {resp.status_code}",
                status=resp.status_code,
                payload=_error_payload(resp),
            )
        payload = resp.json()
        self._token = payload["access_token"]
        self._token_expiry = time.time() + int(payload.get("expires_in", 1799))

    def _get(self, path: str, params: dict[str, Any]) -> dict:
        if not self._token_valid():
            self._fetch_token()

        url = f"{self.base_url}{path}"
        resp = self._request(url, params)
        if resp.status_code == 401:
            logger.debug("Amadeus token rejected, refreshing")
            self._fetch_token()
            resp = self._request(url, params)

        if resp.status_code != 200:
            raise AmadeusError(
                f"HTTP {resp.status_code} – {resp.text[:120]}",
                status=resp.status_code,
                payload=_error_payload(resp),
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise AmadeusError(f"Invalid JSON from {path}") from exc

    def _request(self, url: str, params: dict[str, Any]) -> requests.Response:
        return self.session.get(
            url,
            params=params,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=self.timeout_s,
        )

    def _to_offer(self, item: dict) -> RawOffer:
        """Map one flight-offer JSON record onto a RawOffer."""
        itineraries = item["itineraries"]
        outbound = itineraries[0]
        inbound = itineraries[1] if len(itineraries) > 1 else None
        return RawOffer(
            offer_id=str(item["id"]),
            price=Decimal(str(item["price"]["total"])),
            currency=item["price"].get("currency", ""),
            duration=outbound.get("duration", ""),
            segments=tuple(_to_segment(s) for s in outbound["segments"]),
            return_segments=tuple(_to_segment(s) for s in inbound["segments"])
            if inbound
            else (),
        )


def _to_segment(seg: dict) -> Segment:
    return Segment(
        carrier_code=seg["carrierCode"],
        number=str(seg["number"]),
        departure_airport=seg["departure"]["iataCode"],
        departure_at=dt.datetime.fromisoformat(seg["departure"]["at"]),
        arrival_airport=seg["arrival"]["iataCode"],
        arrival_at=dt.datetime.fromisoformat(seg["arrival"]["at"]),
    )


def _error_payload(resp: requests.Response) -> Any:
    try:
        return resp.json().get("errors")
    except (ValueError, AttributeError):
        return resp.text[:500]


__all__ = ["AmadeusClient", "AmadeusError"]
