from __future__ import annotations

import logging
import re
import smtplib
from datetime import datetime
from decimal import Decimal
from email.message import EmailMessage
from email.utils import formataddr
from html import escape
from typing import List, Sequence

from .models import ValidatedOffer

logger = logging.getLogger(__name__)

SENDER_NAME = "Fare Tracker"

_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?$")


def format_duration(value: str) -> str:
    """``PT11H5M`` -> ``11h 05m``; anything unparsable is returned as is."""
    match = _DURATION_RE.match(value or "")
    if not value or not match:
        return value
    days, hours, minutes = (int(g or 0) for g in match.groups())
    return f"{days * 24 + hours}h {minutes:02d}m"


def stops_label(stops: int) -> str:
    if stops == 0:
        return "Direct"
    return f"{stops} stop{'s' if stops > 1 else ''}"


def build_subject(
    offers: Sequence[ValidatedOffer], origin: str, destination: str, currency: str
) -> str:
    return (
        f"✈ {origin}-{destination} from {offers[0].price} {currency}! "
        f"({len(offers)} offers)"
    )


def render_offers_html(
    offers: Sequence[ValidatedOffer],
    *,
    origin: str,
    destination: str,
    max_price: Decimal,
    currency: str,
    round_trip: bool,
    blocked_countries: Sequence[str] = ("US", "CA"),
    searched_at: datetime | None = None,
) -> str:
    searched_at = searched_at or datetime.now()
    trip = "round trip" if round_trip else "one way"
    blocked = ", ".join(sorted(blocked_countries)) or "none"

    html_rows = [
        f"<h2>Flight offers {escape(origin)} → {escape(destination)}</h2>",
        f"<p>Found at or below <strong>{max_price} {escape(currency)}</strong> "
        f"({trip}), no layovers in {escape(blocked)}.</p>",
        '<table border="1" cellpadding="10" style="border-collapse:collapse; width:100%;">',
        '<tr style="background:#007bff; color:white;">'
        "<th>#</th><th>Price</th><th>Date</th><th>Duration</th>"
        "<th>Stops</th><th>Airline</th><th>Details</th></tr>",
    ]
    for i, off in enumerate(offers, start=1):
        details = " | ".join(escape(d) for d in off.details)
        html_rows.append(
            f"<tr><td>{i}</td>"
            f"<td><strong>{off.price} {escape(currency)}</strong></td>"
            f"<td>{off.departure_date.isoformat()}</td>"
            f"<td>{escape(format_duration(off.duration))}</td>"
            f"<td>{stops_label(off.stops)}</td>"
            f"<td>{escape(off.carrier)}</td>"
            f"<td>{details}</td></tr>"
        )
    html_rows.append("</table>")
    html_rows.append(
        f"<br><small>Searched on {searched_at:%Y-%m-%d %H:%M} via Amadeus.</small>"
    )
    return "\n".join(html_rows)


def render_offers_text(offers: Sequence[ValidatedOffer], currency: str) -> str:
    lines: List[str] = []
    for i, off in enumerate(offers, start=1):
        lines.append(
            f"{i}. {off.price} {currency} | {off.departure_date} | "
            f"{format_duration(off.duration)} | {stops_label(off.stops)} | "
            f"{off.carrier} | {' | '.join(off.details)}"
        )
    return "\n".join(lines)


def send_offers_email(offers: Sequence[ValidatedOffer], settings) -> bool:
    """Email ``offers`` to ``settings.email_to``.

    Returns ``False`` without touching the network when ``offers`` is empty.
    Uses implicit TLS (``SMTP_SSL``) unless ``settings.smtp_starttls`` is set.
    """
    if not offers:
        return False

    msg = EmailMessage()
    msg["Subject"] = build_subject(
        offers, settings.origin, settings.destination, settings.currency
    )
    msg["From"] = formataddr((SENDER_NAME, settings.email_from))
    msg["To"] = settings.email_to

    msg.set_content(render_offers_text(offers, settings.currency))
    html_body = render_offers_html(
        offers,
        origin=settings.origin,
        destination=settings.destination,
        max_price=settings.max_price,
        currency=settings.currency,
        round_trip=settings.round_trip,
        blocked_countries=sorted(settings.blocked_countries),
    )
    msg.add_alternative(f"<html><body>{html_body}</body></html>", subtype="html")

    if settings.smtp_starttls:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as smtp:
            smtp.starttls()
            smtp.login(settings.email_from, settings.email_pass)
            smtp.send_message(msg)
    else:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port) as smtp:
            smtp.login(settings.email_from, settings.email_pass)
            smtp.send_message(msg)

    logger.info("Email with %d offers sent to %s", len(offers), settings.email_to)
    return True


__all__ = [
    "build_subject",
    "format_duration",
    "render_offers_html",
    "render_offers_text",
    "send_offers_email",
    "stops_label",
]
