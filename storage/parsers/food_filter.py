# storage/parsers/food_filter.py
"""
Food-likelihood scoring for receipt candidates.

Two layers:
  - food_score(name): soft 0.0–1.0 score from keyword hits (0.3 per hit)
  - is_probable_food_item(name, price): hard accept/reject gate applied
    before output

The gate is deliberately permissive: when a name is ambiguous it is kept
(the user can delete a stray line, but cannot recover a dropped one).
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import List, Optional, Tuple

# ── Soft score vocabulary (lowercase substrings) ─────

SCORE_KEYWORDS: Tuple[str, ...] = (
    # proteins
    "chicken", "mutton", "beef", "pork", "fish", "squid", "prawn", "lamb",
    "duck", "turkey", "egg", "bacon",
    # staples / dishes
    "curry", "tandoori", "biryani", "dal", "samosa", "naan", "roti",
    "chapati", "dosa", "idli", "mee", "laksa", "satay", "rendang",
    "rice", "noodle", "soup", "salad", "sandwich", "burger", "pizza",
    "pasta", "bread", "toast", "butter", "cheese", "wrap", "cake",
    "dessert", "fries",
    # drinks
    "juice", "tea", "coffee", "water", "soda", "beer", "wine", "cocktail",
    "smoothie", "coke", "lime", "orange", "apple", "mango", "coconut",
    # vegetables
    "vegetable", "potato", "onion", "mushroom", "broccoli", "spinach",
    "carrot",
    # preparation
    "fried", "grilled", "roasted", "steamed", "baked", "boiled", "braised",
    "cutlet", "crispy", "spicy",
)

SCORE_PER_MATCH = 0.3

# ── Hard gate vocabulary (uppercase substrings) ──────

FOOD_KEYWORDS: Tuple[str, ...] = (
    "BURGER", "BURRITO", "TACO", "PIZZA", "PASTA", "SALAD", "SOUP", "SANDWICH",
    "CHICKEN", "BEEF", "PORK", "FISH", "SHRIMP", "TURKEY", "BACON", "SAUSAGE",
    "RICE", "NOODLES", "BREAD", "FRIES", "CHIPS", "NACHOS", "WINGS", "TOAST",
    "CURRY", "CHEESE", "EGG",
    "WATER", "COKE", "PEPSI", "SODA", "JUICE", "COFFEE", "TEA", "BEER", "WINE",
    "LEMONADE", "SMOOTHIE", "SHAKE", "MILK", "LATTE",
    "SISIG", "LUMPIA", "LECHON", "KAWALI", "ADOBO", "PANCIT",
    "EXTRA", "LARGE", "SMALL", "MEDIUM", "GRANDE", "MACHO", "SKINNY",
    "COMBO", "MEAL", "SPECIAL", "PLATTER", "BOWL", "WRAP", "SUB",
)

NON_FOOD_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"@"),                              # email-like
    re.compile(r"^[$£€]\d+"),                      # bare price string
    re.compile(r"^\d{10,}"),                       # phone / card numbers
    re.compile(r"RECEIPT|INVOICE|COPY"),
    re.compile(r"CUSTOMER|STAFF|DEVICE"),
    re.compile(r"THANK YOU|APPROVED"),
    re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}"),       # dates
    re.compile(r"^\d{1,2}:\d{2}"),                 # times
    re.compile(r"BATCH|TRACE|CODE"),
    re.compile(r"^[A-Z0-9]{10,}$"),                # long codes
    re.compile(r"\.COM|\.CO\.|WWW\."),             # domains
)

_SYMBOLS_ONLY_RE = re.compile(r"^[\W\d_]+$")
_QTY_PREFIXED_RE = re.compile(r"^\d+\s+[A-Z]{3,}")
_LETTER_RUN_RE = re.compile(r"[A-Z]{3,}")
_VOWEL_RE = re.compile(r"[AEIOU]")

NAME_MIN, NAME_MAX = 2, 50


def matched_keywords(name: str) -> List[str]:
    low = (name or "").lower()
    return [kw for kw in SCORE_KEYWORDS if kw in low]


def food_score(name: str) -> float:
    return min(1.0, len(matched_keywords(name)) * SCORE_PER_MATCH)


def rejection_reason(name: str, price: Optional[Decimal] = None) -> Optional[str]:
    """None when the candidate is accepted, else a short reason code."""
    up = (name or "").strip().upper()

    for rx in NON_FOOD_PATTERNS:
        if rx.search(up):
            return "non_food_pattern"
    if len(up) < NAME_MIN or len(up) > NAME_MAX:
        return "length"
    if _SYMBOLS_ONLY_RE.match(up):
        return "no_letters"

    if any(kw in up for kw in FOOD_KEYWORDS):
        return None
    if _QTY_PREFIXED_RE.match(up):
        return None
    if 3 <= len(up) <= 25 and _LETTER_RUN_RE.search(up):
        letters = re.sub(r"[^A-Z]", "", up)
        if _VOWEL_RE.search(letters):
            return None

    if (price is not None and price > 0) or 4 <= len(up) <= 20:
        return None
    return "ambiguous_unpriced"


def is_probable_food_item(name: str, price: Optional[Decimal] = None) -> bool:
    return rejection_reason(name, price) is None
