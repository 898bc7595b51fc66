"""Phone number normalization"""
import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Country:
    name: str
    country_code: str
    code: str
    subscriber_lengths: tuple


COUNTRIES = [
    Country("India", "IN", "+91", (10,)),
    Country("United States", "US", "+1", (10,)),
    Country("United Kingdom", "GB", "+44", (10,)),
    Country("United Arab Emirates", "AE", "+971", (9,)),
    Country("Singapore", "SG", "+65", (8,)),
    Country("Australia", "AU", "+61", (9,)),
    Country("Saudi Arabia", "SA", "+966", (9,)),
    Country("Qatar", "QA", "+974", (8,)),
]

DEFAULT_COUNTRY = COUNTRIES[0]

INVALID_PHONE_MESSAGE = "Please enter a valid phone number"


@dataclass
class PhoneResult:
    value: Optional[str] = None
    country: Optional[Country] = None
    subscriber: Optional[str] = None
    error: Optional[str] = None


def _match_country(digits: str) -> Optional[Country]:
    # Longest dial code first so +971 is not read as +9...
    for country in sorted(COUNTRIES, key=lambda c: len(c.code), reverse=True):
        if digits.startswith(country.code[1:]):
            return country
    return None


def normalize_phone(raw: str) -> PhoneResult:
    """
    Normalize a visitor phone number to ``+<dial code><subscriber>``

    Numbers without a ``+`` prefix are read as Indian numbers (optionally
    with a leading 0 or 91).
    """
    text = (raw or "").strip()
    if not text or re.search(r"[^\d\s\-().+]", text):
        return PhoneResult(error=INVALID_PHONE_MESSAGE)

    has_plus = text.startswith("+") or text.startswith("00")
    digits = re.sub(r"\D", "", text)
    if text.startswith("00"):
        digits = digits[2:]

    if has_plus:
        country = _match_country(digits)
        if not country:
            return PhoneResult(error=INVALID_PHONE_MESSAGE)
        subscriber = digits[len(country.code) - 1:]
    else:
        country = DEFAULT_COUNTRY
        subscriber = digits
        if len(subscriber) == 11 and subscriber.startswith("0"):
            subscriber = subscriber[1:]
        elif len(subscriber) == 12 and subscriber.startswith("91"):
            subscriber = subscriber[2:]

    if len(subscriber) not in country.subscriber_lengths:
        return PhoneResult(error=INVALID_PHONE_MESSAGE)

    if country is DEFAULT_COUNTRY and subscriber[0] not in "6789":
        return PhoneResult(error=INVALID_PHONE_MESSAGE)

    return PhoneResult(
        value=f"{country.code}{subscriber}",
        country=country,
        subscriber=subscriber,
    )
