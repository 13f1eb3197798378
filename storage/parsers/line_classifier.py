# storage/parsers/line_classifier.py
"""
Receipt Line Classifier

Tags a single trimmed, upper-cased receipt line as one of
NOISE / PRICE / TOTAL / TAX / SERVICE / ITEM.

Rules are an ordered tuple of (tag, name, predicate); the first predicate
that fires wins and ITEM is the default. New rules are added by inserting
a LineRule at the right priority, each predicate is a plain function and
can be tested on its own.

Pure: no state across calls, no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Tuple

from ..ocr_types import (
    ClassifiedLine,
    ITEM,
    NOISE,
    PRICE,
    SERVICE,
    TAX,
    TOTAL,
    TextLine,
)
from .price_parser import is_price_shaped


# ── Noise vocabulary ─────────────────────────────────

# Whole-line boilerplate words (header/footer/column headings)
_BOILERPLATE_WORD_RE = re.compile(
    r"^(?:THANK|THANKS|YOU|PLEASE|CALL|AGAIN|VISIT|US|DATE|TIME|TOTAL|"
    r"CASH|CARD|CHANGE|PAYMENT|GST|TAX|SERVICE|CHARGE|TIP|SUBTOTAL|"
    r"RECEIPT|INVOICE|BILL|ORDER|TABLE|TEL|PHONE|FAX|EMAIL|RESTAURANT|"
    r"DESCRIPTION|PRICE|QTY|QUANTITY|GRAND|ITEM|AMOUNT|PRODUCT)[:.]?$"
)

# Boilerplate phrases anywhere in the line
_BOILERPLATE_PHRASE_RE = re.compile(
    r"^(?:THANK\s*YOU|THANKS\s+FOR|PLEASE\s|CALL\s+AGAIN|VISIT\s+US|"
    r"CHECK\s+OUT|STATION\b|SERVER\b|CASHIER\b|SERV\s*#)"
    r"|BATCH\s*#|APPR\s*CODE|APPRCODE|TRACE:|APPROVED|MASTERCARD|\bVISA\b|"
    r"\bDEBIT\b|CUSTOMER\s+COPY|MERCHANT\s+COPY|GRATUITY\s+NOT|"
    r"WWW\.|\.COM\b|\.CO\.|VAT\s+(?:NO|REG)|X{5,}"
)

_MONTHS = r"(?:JAN|FEB|MAR|APR|MAY|JUN|JUNE|JUL|AUG|SEP|SEPT|OCT|NOV|DEC)"
_DATE_RE = re.compile(
    r"\b\d{1,2}[/.-]\d{1,2}[/.-]\d{2,4}\b"
    r"|\b\d{4}-\d{2}-\d{2}\b"
    r"|\b\d{1,2}\s+" + _MONTHS + r"\w*\s+\d{4}\b"
)
_TIME_RE = re.compile(r"\b\d{1,2}:\d{2}(?::\d{2})?\s*(?:AM|PM)?\b")

_SHORT_ACRONYM_RE = re.compile(r"^[A-Z]{2,3}$")
_ACRONYM_WHITELIST = frozenset({"TEA"})

_ORDER_MARKER_RE = re.compile(r"^(?:#\s*\d+|(?:ORDER|ORD|CHECK|CHK)\s*(?:NO\.?|#)?\s*:?\s*\d+)$")
_PUNCT_ONLY_RE = re.compile(r"^[\W_]+$")


# ── Predicates ───────────────────────────────────────

def is_boilerplate(line: str) -> bool:
    return bool(_BOILERPLATE_WORD_RE.match(line) or _BOILERPLATE_PHRASE_RE.search(line))


def is_date_or_time(line: str) -> bool:
    return bool(_DATE_RE.search(line) or _TIME_RE.search(line))


def is_short_acronym(line: str) -> bool:
    """2-3 letter codes (GST, VAT, TBL); "TEA" is a drink, not a code."""
    return bool(_SHORT_ACRONYM_RE.match(line)) and line not in _ACRONYM_WHITELIST


def is_order_marker(line: str) -> bool:
    return bool(_ORDER_MARKER_RE.match(line))


def is_punctuation_only(line: str) -> bool:
    if len(line) < 2 and not line.isdigit():
        return True
    return bool(_PUNCT_ONLY_RE.match(line))


def is_price_line(line: str) -> bool:
    return is_price_shaped(line)


def is_total_line(line: str) -> bool:
    return "TOTAL" in line


def is_tax_line(line: str) -> bool:
    return "TAX" in line or "GST" in line


def is_service_line(line: str) -> bool:
    return "SERVICE" in line or "GRATUITY" in line


@dataclass(frozen=True)
class LineRule:
    tag: str
    name: str
    predicate: Callable[[str], bool]


LINE_RULES: Tuple[LineRule, ...] = (
    LineRule(NOISE, "punctuation", is_punctuation_only),
    LineRule(NOISE, "boilerplate", is_boilerplate),
    LineRule(NOISE, "date_time", is_date_or_time),
    LineRule(NOISE, "short_acronym", is_short_acronym),
    LineRule(NOISE, "order_marker", is_order_marker),
    LineRule(PRICE, "price", is_price_line),
    LineRule(TOTAL, "total", is_total_line),
    LineRule(TAX, "tax", is_tax_line),
    LineRule(SERVICE, "service", is_service_line),
)


def normalize_line(text: str) -> str:
    return " ".join((text or "").split()).upper()


def explain_line(line: str) -> Tuple[str, str]:
    """Return (tag, rule_name) for a line; ("ITEM", "default") if no rule fires."""
    norm = normalize_line(line)
    if not norm:
        return NOISE, "empty"
    for rule in LINE_RULES:
        if rule.predicate(norm):
            return rule.tag, rule.name
    return ITEM, "default"


def classify_line(line: str) -> str:
    return explain_line(line)[0]


def classify_lines(lines: Iterable[TextLine]) -> List[ClassifiedLine]:
    """Classify every line, keeping document order and source confidence."""
    out: List[ClassifiedLine] = []
    for idx, ln in enumerate(lines):
        text = normalize_line(ln.text)
        tag, rule = explain_line(text)
        out.append(ClassifiedLine(
            text=text,
            tag=tag,
            index=idx,
            confidence=ln.confidence,
            rule=rule,
        ))
    return out
