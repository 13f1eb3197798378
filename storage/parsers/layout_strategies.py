# storage/parsers/layout_strategies.py
"""
Item–Price Pairing — three receipt layouts behind one result type.

  - "line"   : free-form single-column receipts (default)
               name on one line, price on the next, or "NAME  £3.00" inline
  - "table"  : PRODUCT / PRICE / QTY / TOTAL grids
               "SISIG £6.00 1 £6.00" expands to one entry per unit
  - "column" : ITEM ... AMOUNT receipts where the names and the prices
               were read as two separate columns

Every strategy takes the classified lines and returns a LayoutResult:
ok=True with (name, price, quantity) triples plus any totals seen, or
ok=False with a reason ("no header found"). Strategies never raise.
The caller picks a chain with layout_chain() and walks it until one
succeeds.

Trace events replace debug printing: each strategy appends small dicts
to result.trace describing what it paired and why.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..ocr_types import (
    ClassifiedLine,
    ITEM,
    NOISE,
    PRICE,
    PricedName,
    SERVICE,
    TAX,
    TOTAL,
    TOTAL_TAGS,
)
from .line_classifier import classify_line
from .price_parser import (
    extract_price,
    find_inline_price,
    is_price_shaped,
    split_trailing_price,
)

LINE = "line"
TABLE = "table"
COLUMN = "column"

ZERO = Decimal("0.00")

_SUBTOTAL_RE = re.compile(r"SUB[\s-]*TOTAL")

# "SISIG £6.00 1 £6.00"  ->  name, unit price, qty, line total
_MONEY = r"(?:[$£€]\s*\d[\d,]*(?:\.\d{1,2})?|\d[\d,]*\.\d{2})"
_TABLE_ROW_RE = re.compile(rf"^(.+?)\s+({_MONEY})\s+(\d+)\s+({_MONEY})$")
_PRICE_QTY_TOTAL_RE = re.compile(rf"({_MONEY})\s+(\d+)\s+({_MONEY})")
_PRICE_QTY_ONLY_RE = re.compile(rf"^{_MONEY}\s+\d+\s*$")

# Names rescued in the ITEM column even when the classifier disagrees
COLUMN_FOOD_WHITELIST = (
    "SANDWITCH", "SANDWICH", "NOODLES", "BURGER", "PIZZA", "SALAD", "SOUP",
)
COLUMN_NAME_MIN = 3
MAX_QUANTITY = 99
COLUMN_NAME_MAX = 20


@dataclass
class LayoutResult:
    ok: bool
    strategy: str
    items: List[PricedName] = field(default_factory=list)
    totals: Dict[str, Optional[Decimal]] = field(default_factory=dict)
    reason: Optional[str] = None
    trace: List[Dict[str, Any]] = field(default_factory=list)


def empty_totals() -> Dict[str, Optional[Decimal]]:
    return {"total_amount": None, "tax_amount": None, "service_charge": None}


def _record_total(
    result: LayoutResult,
    line: ClassifiedLine,
    price: Optional[Decimal],
) -> None:
    """Route a TOTAL/TAX/SERVICE price into result.totals (subtotals ignored)."""
    if price is None:
        return
    if _SUBTOTAL_RE.search(line.text):
        result.trace.append({"stage": result.strategy, "event": "subtotal_skipped",
                             "line": line.index, "price": float(price)})
        return
    key = {TOTAL: "total_amount", TAX: "tax_amount", SERVICE: "service_charge"}.get(line.tag)
    if key is None:
        return
    result.totals[key] = price
    result.trace.append({"stage": result.strategy, "event": "total",
                         "line": line.index, "key": key, "price": float(price)})


def _line_price(text: str) -> Optional[Decimal]:
    """Price carried by a line: the whole line, its last token, or an inline £ price."""
    if is_price_shaped(text):
        return extract_price(text)
    split = split_trailing_price(text)
    if split:
        return split[1]
    inline = find_inline_price(text)
    return inline[1] if inline else None


def _emit(
    result: LayoutResult,
    name: str,
    price: Optional[Decimal],
    line: ClassifiedLine,
    event: str,
    quantity: int = 1,
) -> None:
    name = name.strip()
    if not name:
        return
    quantity = max(quantity, 1)
    if quantity > MAX_QUANTITY:
        result.trace.append({"stage": result.strategy, "event": "quantity_capped",
                             "line": line.index, "quantity": quantity, "cap": MAX_QUANTITY})
        quantity = MAX_QUANTITY
    # quantity is represented by repetition; every entry carries the unit price
    for _ in range(quantity):
        result.items.append(PricedName(
            name=name,
            price=price,
            quantity=1,
            line_index=line.index,
            confidence=line.confidence,
        ))
    result.trace.append({
        "stage": result.strategy,
        "event": event,
        "line": line.index,
        "name": name,
        "price": float(price) if price is not None else None,
        "quantity": quantity,
    })


# ── (a) line adjacency ──────────────────────────────

def parse_line_layout(lines: Sequence[ClassifiedLine]) -> LayoutResult:
    """Pair PRICE lines with the line above, and split "NAME PRICE" lines.

    Both checks run for every line and are not mutually exclusive, so a
    line like "FRIES £3.00" followed by "£3.00" yields two candidates.
    """
    result = LayoutResult(ok=True, strategy=LINE, totals=empty_totals())

    for i, ln in enumerate(lines):
        if ln.tag == PRICE and i > 0:
            prev = lines[i - 1]
            if prev.tag not in (NOISE, PRICE):
                price = extract_price(ln.text)
                if prev.tag in TOTAL_TAGS:
                    _record_total(result, prev, price)
                elif price is not None:
                    _emit(result, prev.text, price, prev, "pair_previous")

        if ln.tag == ITEM or ln.tag in TOTAL_TAGS:
            split = split_trailing_price(ln.text)
            if split is None:
                continue
            name, price = split
            if ln.tag in TOTAL_TAGS:
                _record_total(result, ln, price)
            else:
                _emit(result, name, price, ln, "pair_same_line")

    return result


# ── (b) table layout ────────────────────────────────

def _is_table_header(text: str) -> bool:
    return "PRODUCT" in text or ("PRICE" in text and "QTY" in text)


def parse_table_layout(lines: Sequence[ClassifiedLine]) -> LayoutResult:
    result = LayoutResult(ok=True, strategy=TABLE, totals=empty_totals())

    header_idx = next((i for i, ln in enumerate(lines) if _is_table_header(ln.text)), -1)
    if header_idx == -1:
        return LayoutResult(ok=False, strategy=TABLE, reason="no header found")
    result.trace.append({"stage": TABLE, "event": "header", "line": header_idx})

    i = header_idx + 1
    while i < len(lines):
        ln = lines[i]
        text = ln.text
        i += 1

        if not text or ln.tag == NOISE:
            continue

        if ln.tag in TOTAL_TAGS:
            _record_total(result, ln, _line_price(text))
            continue

        m = _TABLE_ROW_RE.match(text)
        if m:
            unit = extract_price(m.group(2))
            if unit is None:
                result.trace.append({"stage": TABLE, "event": "row_skipped", "line": ln.index})
                continue
            _emit(result, m.group(1), unit, ln, "row", quantity=int(m.group(3)))
            continue

        # Name on this line, "£price qty £total" on the next
        if ln.tag == ITEM and _line_price(text) is None and i < len(lines):
            nxt = _PRICE_QTY_TOTAL_RE.search(lines[i].text)
            if nxt:
                unit = extract_price(nxt.group(1))
                if unit is not None:
                    _emit(result, text, unit, ln, "row_split", quantity=int(nxt.group(2)))
                    i += 1
                    continue

        if _PRICE_QTY_ONLY_RE.match(text):
            continue

        inline = find_inline_price(text)
        if inline:
            name, price = inline
            if len(name) >= 3 and classify_line(name) != NOISE:
                _emit(result, name, price, ln, "inline")

    return result


# ── (c) column layout ───────────────────────────────

def parse_column_layout(lines: Sequence[ClassifiedLine]) -> LayoutResult:
    result = LayoutResult(ok=True, strategy=COLUMN, totals=empty_totals())

    item_idx = next((i for i, ln in enumerate(lines) if ln.text == "ITEM"), -1)
    amount_idx = next((i for i, ln in enumerate(lines) if ln.text == "AMOUNT"), -1)
    if item_idx == -1 or amount_idx == -1:
        return LayoutResult(ok=False, strategy=COLUMN, reason="no ITEM/AMOUNT markers found")

    # Item-name slots: names between ITEM and AMOUNT, totals keep their slot
    slots: List[ClassifiedLine] = []
    for ln in lines[item_idx + 1:]:
        text = ln.text
        if text == "AMOUNT":
            break
        if not text:
            continue
        known = any(k in text for k in COLUMN_FOOD_WHITELIST)
        if (ln.tag == ITEM or known) and _line_price(text) is None:
            if COLUMN_NAME_MIN <= len(text) <= COLUMN_NAME_MAX and not text[0].isdigit():
                slots.append(ln)
        elif ln.tag in TOTAL_TAGS:
            slots.append(ln)

    # Prices from the whole document; after-AMOUNT first, then document order
    priced: List[tuple] = []
    after_amount = False
    for ln in lines:
        if ln.text == "AMOUNT":
            after_amount = True
            continue
        if ln.tag == NOISE:
            continue
        price = _line_price(ln.text)
        if price is not None:
            priced.append((not after_amount, ln.index, price))
    priced.sort(key=lambda p: (p[0], p[1]))
    result.trace.append({"stage": COLUMN, "event": "columns",
                         "names": len(slots), "prices": len(priced)})

    cursor = 0
    for ln in slots:
        price = priced[cursor][2] if cursor < len(priced) else None
        if ln.tag in TOTAL_TAGS:
            if price is not None:
                _record_total(result, ln, price)
                cursor += 1
            continue
        if price is None:
            _emit(result, ln.text, ZERO, ln, "unpriced")
        else:
            _emit(result, ln.text, price, ln, "pair_position")
            cursor += 1

    return result


# ── Selection ───────────────────────────────────────

STRATEGIES: Dict[str, Callable[[Sequence[ClassifiedLine]], LayoutResult]] = {
    LINE: parse_line_layout,
    TABLE: parse_table_layout,
    COLUMN: parse_column_layout,
}


def layout_chain(lines: Sequence[ClassifiedLine]) -> List[str]:
    """Cheap structural probe: which strategies to try, most specific first."""
    texts = [ln.text for ln in lines]
    if "ITEM" in texts and "AMOUNT" in texts:
        return [COLUMN, TABLE, LINE]
    if any(_is_table_header(t) for t in texts):
        return [TABLE, LINE]
    return [LINE]


def parse_with_fallback(
    lines: Sequence[ClassifiedLine],
    chain: Optional[Sequence[str]] = None,
) -> LayoutResult:
    """Run strategies in order until one succeeds; failures stay in the trace."""
    trace: List[Dict[str, Any]] = []
    last: Optional[LayoutResult] = None
    for name in chain or layout_chain(lines):
        res = STRATEGIES[name](lines)
        trace.append({"stage": "layout", "event": "attempt", "strategy": name,
                      "ok": res.ok, "reason": res.reason})
        if res.ok:
            res.trace = trace + res.trace
            return res
        last = res
    if last is None:
        return LayoutResult(ok=False, strategy=LINE, reason="no strategy available", trace=trace)
    last.trace = trace + last.trace
    return last
