"""
Parse structured hints out of a wine-list entry: vintage and list price.

The remaining text is normalized for matching with vintage and price
tokens removed, so "Ch. Margaux 2015 $185" matches as "chateau margaux".
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from .text_normalizer import normalize

# Four-digit vintage: 1950-2039
_YEAR_PATTERN = re.compile(r"\b(19[5-9]\d|20[0-3]\d)\b")
# Apostrophe vintage: '15, ’98
_SHORT_YEAR_PATTERN = re.compile(r"['’](\d{2})\b")
# Currency-prefixed price: $185, $ 1,200.00, €45.50
_PRICE_PATTERN = re.compile(r"([$€£])\s*(\d[\d,]*(?:\.\d{1,2})?)")

# Two-digit years at or above this map to the 1900s
CENTURY_PIVOT = 50

CURRENCY_CODES = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
}


@dataclass
class ParsedPrice:
    amount: Decimal
    currency: str


@dataclass
class ParsedWineText:
    """Result of parsing one candidate's text."""
    original_text: str
    normalized_text: str
    vintage: Optional[int] = None
    price: Optional[ParsedPrice] = None


def extract_vintage(text: str) -> Optional[int]:
    """
    Extract a vintage year from text.

    Prefers a four-digit year; falls back to an apostrophe year with a
    50/50 century split ('98 -> 1998, '15 -> 2015).
    """
    match = _YEAR_PATTERN.search(text)
    if match:
        return int(match.group(1))

    match = _SHORT_YEAR_PATTERN.search(text)
    if match:
        short_year = int(match.group(1))
        return (1900 if short_year >= CENTURY_PIVOT else 2000) + short_year

    return None


def extract_price(text: str) -> Optional[ParsedPrice]:
    """Extract the first currency-prefixed price, e.g. "$185" -> 185.00 USD."""
    match = _PRICE_PATTERN.search(text)
    if not match:
        return None
    try:
        amount = Decimal(match.group(2).replace(",", "")).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None
    return ParsedPrice(amount=amount, currency=CURRENCY_CODES[match.group(1)])


def remove_price(text: str) -> str:
    return _PRICE_PATTERN.sub(" ", text)


def remove_vintage(text: str) -> str:
    text = _YEAR_PATTERN.sub(" ", text)
    return _SHORT_YEAR_PATTERN.sub(" ", text)


def parse_wine_text(text: str) -> ParsedWineText:
    """
    Parse a candidate's text into vintage, price and match text.

    Price is removed before vintage extraction so "$2015" is never read as
    a year.
    """
    price = extract_price(text)
    without_price = remove_price(text)
    vintage = extract_vintage(without_price)
    match_text = remove_vintage(without_price)

    return ParsedWineText(
        original_text=text,
        normalized_text=normalize(match_text),
        vintage=vintage,
        price=price,
    )
