"""
Price Parser — receipt price tokens.

Validates and parses price-looking tokens ("£8.50", "12.00", "$ 79",
"1,234.50", "7") into a bounded Decimal. Anything outside
[PRICE_MIN, PRICE_MAX] is "not a price" and comes back as None.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Tuple

PRICE_MIN = Decimal("0.01")
PRICE_MAX = Decimal("9999.99")
CENT = Decimal("0.01")

CURRENCY_CHARS = "$£€"

# Whole-token shapes accepted as a price
CURRENCY_PREFIXED_RE = re.compile(r"^[$£€]\s*\d[\d,]*(?:\.\d{1,2})?$")
CURRENCY_SUFFIXED_RE = re.compile(r"^\d[\d,]*(?:\.\d{1,2})?\s*[$£€]$")
TWO_DECIMAL_RE = re.compile(r"^\d[\d,]*\.\d{2}$")
BARE_INT_RE = re.compile(r"^\d+$")

PRICE_SHAPES = (
    CURRENCY_PREFIXED_RE,
    CURRENCY_SUFFIXED_RE,
    TWO_DECIMAL_RE,
    BARE_INT_RE,
)

# Plain decimal digits once currency and separators are stripped
NUMERIC_RE = re.compile(r"^\d+(?:\.\d+)?$")

# A currency-prefixed price embedded anywhere in a line ("SISIG £6.00 1")
INLINE_PRICE_RE = re.compile(r"[$£€]\s*(\d[\d,]*(?:\.\d{1,2})?)")


def extract_price(text: Optional[str]) -> Optional[Decimal]:
    """Strip currency symbols + thousands separators and parse.

    Returns the value rounded to the cent, or None when the text is not a
    number or falls outside [0.01, 9999.99].
    """
    if text is None:
        return None
    cleaned = str(text).strip()
    for ch in CURRENCY_CHARS:
        cleaned = cleaned.replace(ch, "")
    cleaned = cleaned.replace(",", "").strip()
    if not NUMERIC_RE.match(cleaned):
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if value < PRICE_MIN or value > PRICE_MAX:
        return None
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def is_price_shaped(token: str) -> bool:
    """True when the whole token looks like a price and parses in range."""
    t = (token or "").strip()
    if not t:
        return False
    if not any(rx.match(t) for rx in PRICE_SHAPES):
        return False
    return extract_price(t) is not None


def split_trailing_price(line: str) -> Optional[Tuple[str, Decimal]]:
    """Split "FRIES £3.00" into ("FRIES", Decimal("3.00")).

    Requires at least two whitespace-separated tokens and a price-shaped
    final token; otherwise None.
    """
    tokens = (line or "").split()
    if len(tokens) < 2 or not is_price_shaped(tokens[-1]):
        return None
    price = extract_price(tokens[-1])
    if price is None:
        return None
    return " ".join(tokens[:-1]), price


def find_inline_price(line: str) -> Optional[Tuple[str, Decimal]]:
    """Return (text before the first currency price, price) for a line."""
    m = INLINE_PRICE_RE.search(line or "")
    if not m:
        return None
    price = extract_price(m.group(1))
    if price is None:
        return None
    return line[: m.start()].strip(), price


def to_float(price: Optional[Decimal]) -> float:
    return float(price) if price is not None else 0.0
