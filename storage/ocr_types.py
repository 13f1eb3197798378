"""
TabScan OCR Types — receipt extraction + synonym resolution.

TypedDicts describe the JSON contracts exchanged with the OCR and storage
collaborators (API surface). Dataclasses describe the transient records that
live only inside one parse / resolve call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, NotRequired, Optional, TypedDict


# ────────────────────────────────────────────────
# Line tags
# ────────────────────────────────────────────────

NOISE = "NOISE"
PRICE = "PRICE"
ITEM = "ITEM"
TOTAL = "TOTAL"
TAX = "TAX"
SERVICE = "SERVICE"

LINE_TAGS = (NOISE, PRICE, ITEM, TOTAL, TAX, SERVICE)
TOTAL_TAGS = frozenset({TOTAL, TAX, SERVICE})


# ────────────────────────────────────────────────
# OCR input contract (produced by the OCR collaborator)
# ────────────────────────────────────────────────

class Vertex(TypedDict):
    x: float
    y: float


class BoundingPoly(TypedDict):
    vertices: List[Vertex]


class RawDetection(TypedDict):
    text: str
    confidence: float           # 0.0–1.0
    boundingPoly: BoundingPoly


class OCRResult(TypedDict):
    text: str                   # newline-delimited full text
    detections: List[RawDetection]


# ────────────────────────────────────────────────
# Extraction output contract
# ────────────────────────────────────────────────

class MenuItemPayload(TypedDict):
    name: str
    price: float
    isDuplicate: bool


class ExtractionResult(TypedDict):
    success: bool
    menuItems: List[MenuItemPayload]
    reason: NotRequired[str]
    strategy: NotRequired[Optional[str]]
    totals: NotRequired[Dict[str, Optional[float]]]
    metadata: NotRequired[Dict[str, Any]]
    trace: NotRequired[List[Dict[str, Any]]]


# ────────────────────────────────────────────────
# Transient parse records
# ────────────────────────────────────────────────

@dataclass
class TextLine:
    """One physical receipt line before classification."""
    text: str
    confidence: float = 0.8
    y: float = 0.0


@dataclass
class ClassifiedLine:
    text: str
    tag: str
    index: int = 0
    confidence: float = 0.8
    rule: str = "default"


@dataclass
class PricedName:
    """A (name, price, quantity) triple emitted by a layout strategy."""
    name: str
    price: Optional[Decimal]
    quantity: int = 1
    line_index: int = -1
    confidence: float = 0.8


@dataclass
class CandidateItem:
    name: str
    price: Optional[Decimal]
    confidence: float = 0.8
    food_score: float = 0.0
    is_likely_menu_item: bool = False
    original_line: str = ""
    food_keywords: List[str] = field(default_factory=list)


@dataclass
class ParsedMenuItem:
    name: str
    price: Decimal
    is_duplicate: bool = False

    def to_dict(self) -> MenuItemPayload:
        return {
            "name": self.name,
            "price": float(self.price),
            "isDuplicate": self.is_duplicate,
        }


@dataclass
class SynonymMatch:
    menu_item_id: int
    name: str
    matched_synonym: str
    score: float
    tier: str = "fuzzy"     # prefix | substring | fuzzy

    def to_suggestion(self) -> Dict[str, Any]:
        return {"id": self.menu_item_id, "name": self.name}
