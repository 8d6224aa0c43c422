from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import FrozenSet, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import SearchWindow

load_dotenv()


class LookupFailurePolicy(str, Enum):
    """What to do with a layover whose country could not be resolved."""

    ALLOW = "allow"
    REJECT = "reject"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(populate_by_name=True, frozen=True)

    amadeus_client_id: str = Field(..., alias="AMADEUS_CLIENT_ID")
    amadeus_client_secret: str = Field(..., alias="AMADEUS_CLIENT_SECRET")
    amadeus_env: str = Field("test", alias="AMADEUS_ENV")
    timeout_s: float = Field(30.0, alias="AMADEUS_TIMEOUT_S")

    max_price: Decimal = Field(..., alias="MAX_PRICE")
    round_trip: bool = Field(False, alias="ROUND_TRIP")
    origin: str = Field("MAD", alias="ORIGIN")
    destination: str = Field("BOG", alias="DESTINATION")
    date_from: date = Field(date(2025, 12, 1), alias="DATE_FROM")
    date_to: date = Field(date(2025, 12, 21), alias="DATE_TO")
    currency: str = Field("EUR", alias="CURRENCY")
    return_date: Optional[date] = Field(None, alias="RETURN_DATE")
    return_offset_days: int = Field(14, alias="RETURN_OFFSET_DAYS")
    blocked_countries_raw: str = Field("US,CA", alias="BLOCKED_LAYOVER_COUNTRIES")
    on_lookup_failure: LookupFailurePolicy = Field(
        LookupFailurePolicy.ALLOW, alias="ON_LOOKUP_FAILURE"
    )

    notify_enabled: bool = Field(False, alias="NOTIFY_ENABLED")
    email_from: Optional[str] = Field(None, alias="EMAIL_FROM")
    email_pass: Optional[str] = Field(None, alias="EMAIL_PASS")
    email_to: Optional[str] = Field(None, alias="EMAIL_TO")
    smtp_host: str = Field("smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(465, alias="SMTP_PORT")
    smtp_starttls: bool = Field(False, alias="SMTP_STARTTLS")

    schedule_cron: str = Field("0 8,14,20 * * *", alias="SCHEDULE_CRON")
    timezone: Optional[str] = Field(None, alias="TIMEZONE")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator("amadeus_client_id", "amadeus_client_secret")
    @classmethod
    def _credential_non_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Amadeus credentials must be non-empty strings")
        return v.strip()

    @field_validator("amadeus_env")
    @classmethod
    def _known_env(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("test", "production"):
            raise ValueError("AMADEUS_ENV must be 'test' or 'production'")
        return v

    @field_validator("max_price")
    @classmethod
    def _price_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("MAX_PRICE must be greater than 0")
        return v

    @field_validator("timeout_s", "return_offset_days")
    @classmethod
    def _positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("origin", "destination", "currency")
    @classmethod
    def _upper_code(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"{v!r} is not a three-letter code")
        return v

    @model_validator(mode="after")
    def _check_consistency(self) -> "Settings":
        if self.date_from > self.date_to:
            raise ValueError("DATE_FROM must not be after DATE_TO")
        if self.notify_enabled and not (
            self.email_from and self.email_pass and self.email_to
        ):
            raise ValueError(
                "NOTIFY_ENABLED requires EMAIL_FROM, EMAIL_PASS and EMAIL_TO"
            )
        return self

    @property
    def blocked_countries(self) -> FrozenSet[str]:
        return frozenset(
            c.strip().upper() for c in self.blocked_countries_raw.split(",") if c.strip()
        )

    def search_window(self) -> SearchWindow:
        return SearchWindow(
            origin=self.origin,
            destination=self.destination,
            earliest=self.date_from,
            latest=self.date_to,
            adults=1,
            currency=self.currency,
        )


@lru_cache()
def get_settings() -> Settings:
    """Return application settings loaded from the environment."""
    return Settings()  # type: ignore[call-arg]


__all__ = ["LookupFailurePolicy", "Settings", "get_settings"]
