# storage/parsers/duplicate_names.py
"""
Duplicate-sequence collapsing for OCR item names.

OCR sometimes merges two stacked, identical receipt rows into one string:

    TOAST BREAD            ->   "TOAST BREAD TOAST BREAD"
    TOAST BREAD

clean_item_name() folds each immediately repeated token block back to a
single copy and reports whether it did so. expand_duplicates() turns one
priced candidate into the ParsedMenuItem records it stands for: the
cleaned item, plus an inferred twin when a repeat was folded. Both carry
the same per-unit price; the price is never divided.

This is the one implementation used by the receipt pipeline and by the
offline scan script.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, NamedTuple, Optional

from ..ocr_types import ParsedMenuItem


class CleanedName(NamedTuple):
    cleaned_name: str
    was_duplicate_removed: bool


def clean_item_name(name: Optional[str]) -> CleanedName:
    """Collapse adjacent repeated word blocks, smallest block first.

    >>> clean_item_name("TOAST BREAD TOAST BREAD BUTTER BUTTER")
    CleanedName(cleaned_name='TOAST BREAD BUTTER', was_duplicate_removed=True)
    """
    if not name:
        return CleanedName(name or "", False)

    tokens = name.split()
    if len(tokens) <= 1:
        return CleanedName(name, False)

    out: List[str] = []
    removed = False
    i = 0
    n = len(tokens)
    while i < n:
        block = 0
        for j in range(1, (n - i) // 2 + 1):
            if tokens[i:i + j] == tokens[i + j:i + 2 * j]:
                block = j
                break
        if block:
            out.extend(tokens[i:i + block])
            removed = True
            i += 2 * block
        else:
            out.append(tokens[i])
            i += 1

    if not removed:
        return CleanedName(name, False)
    return CleanedName(" ".join(out), True)


def expand_duplicates(name: str, price: Decimal) -> List[ParsedMenuItem]:
    """One candidate in, one or two ParsedMenuItems out."""
    cleaned, removed = clean_item_name(name)
    items = [ParsedMenuItem(name=cleaned, price=price, is_duplicate=False)]
    if removed:
        items.append(ParsedMenuItem(name=cleaned, price=price, is_duplicate=True))
    return items
