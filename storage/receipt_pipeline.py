# storage/receipt_pipeline.py
"""
Receipt Pipeline — OCR output → priced menu items.

Flow (one call, no shared state):

  1. OCR input (text and/or detections) → physical TextLines
  2. Line classifier (NOISE / PRICE / ITEM / TOTAL / TAX / SERVICE)
  3. Layout probe + strategy chain (column → table → line)
  4. Name cleanup (OCR misspellings, stray price tokens, trailing codes)
  5. Duplicate-sequence collapsing (may infer a hidden twin item)
  6. Food-likelihood gate
  7. Extraction output contract

Usage:
    from storage.receipt_pipeline import analyze_receipt

    result = analyze_receipt({"text": "BURGER\\n£8.50\\nFRIES £3.00", "detections": []})
    # {"success": True, "menuItems": [{"name": "BURGER", "price": 8.5, ...}, ...], ...}

Never raises for well-typed input: missing input and structural failures
come back as success=False with a reason.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .ocr_types import (
    CandidateItem,
    ExtractionResult,
    ParsedMenuItem,
    PricedName,
    TextLine,
)
from .parsers.duplicate_names import expand_duplicates
from .parsers.food_filter import food_score, matched_keywords, rejection_reason
from .parsers.layout_strategies import parse_with_fallback
from .parsers.line_classifier import classify_lines

log = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8          # text-only input
DEFAULT_DETECTION_CONFIDENCE = 0.9
LINE_Y_TOLERANCE = 10
LIKELY_CONFIDENCE = 0.8

MISSING_INPUT_REASON = "No text or detections provided"

# ---------------------------------------------------------------------------
# Name cleanup
# ---------------------------------------------------------------------------
_OCR_NAME_FIXES = (
    ("ROAST CHCK", "ROAST CHICKEN"),
    ("CHCKN", "CHICKEN"),
    ("TRKY", "TURKEY"),
    ("BRGR", "BURGER"),
    ("IL LEMONADE", "LEMONADE"),
)
_STRAY_CHARS_RE = re.compile(r'["%]')
_EMBEDDED_PRICE_RE = re.compile(r"[$£€]\d+\.?\d*\s*")
_TRAILING_CODE_RE = re.compile(r"\s+\d{3,}$")


def normalize_candidate_name(name: str) -> str:
    """Fix common OCR misspellings and strip price/code debris from a name."""
    cleaned = (name or "").upper()
    # CHCK% must be fixed before % is stripped
    cleaned = cleaned.replace("CHCK%", "CHICKEN")
    cleaned = _STRAY_CHARS_RE.sub("", cleaned)
    for wrong, right in _OCR_NAME_FIXES:
        cleaned = cleaned.replace(wrong, right)
    cleaned = _EMBEDDED_PRICE_RE.sub("", cleaned)
    cleaned = _TRAILING_CODE_RE.sub("", cleaned)
    return " ".join(cleaned.split())


# ---------------------------------------------------------------------------
# OCR input → lines
# ---------------------------------------------------------------------------
def _vertices(detection: Mapping[str, Any]) -> List[Dict[str, float]]:
    box = detection.get("boundingPoly") or detection.get("bounding_box") or detection.get("boundingBox")
    if isinstance(box, str):
        try:
            box = json.loads(box)
        except ValueError:
            log.warning("Unparseable bounding box on detection %r", detection.get("text"))
            return []
    if not isinstance(box, Mapping):
        return []
    return [v for v in (box.get("vertices") or []) if isinstance(v, Mapping)]


def _detection_text(detection: Mapping[str, Any]) -> str:
    return str(detection.get("text") or detection.get("description") or "").strip()


def _detection_confidence(detection: Mapping[str, Any], default: float) -> float:
    try:
        return float(detection.get("confidence"))
    except (TypeError, ValueError):
        return default


def _coord(vertex: Mapping[str, Any], axis: str) -> float:
    try:
        return float(vertex.get(axis) or 0)
    except (TypeError, ValueError):
        return 0.0


def _ys(detection: Mapping[str, Any]) -> List[float]:
    return [_coord(v, "y") for v in _vertices(detection)] or [0.0]


def _avg_x(detection: Mapping[str, Any]) -> float:
    xs = [_coord(v, "x") for v in _vertices(detection)] or [0.0]
    return sum(xs) / len(xs)


def group_detections_by_line(
    detections: Sequence[Mapping[str, Any]],
    tolerance: float = LINE_Y_TOLERANCE,
) -> List[TextLine]:
    """Group word detections that share a baseline into physical lines.

    A detection joins a group when its mean Y falls inside the group's
    [minY - tolerance, maxY + tolerance] band. Groups are ordered top to
    bottom and words left to right.
    """
    valid = [d for d in detections if isinstance(d, Mapping) and _detection_text(d)]
    used = set()
    groups: List[Dict[str, Any]] = []

    for idx, det in enumerate(valid):
        if idx in used:
            continue
        used.add(idx)
        ys = _ys(det)
        group = {
            "members": [det],
            "min_y": min(ys),
            "max_y": max(ys),
            "avg_y": sum(ys) / len(ys),
        }
        for jdx in range(idx + 1, len(valid)):
            if jdx in used:
                continue
            other = valid[jdx]
            oys = _ys(other)
            other_avg = sum(oys) / len(oys)
            if group["min_y"] - tolerance <= other_avg <= group["max_y"] + tolerance:
                group["members"].append(other)
                group["min_y"] = min(group["min_y"], min(oys))
                group["max_y"] = max(group["max_y"], max(oys))
                used.add(jdx)
        groups.append(group)

    lines: List[TextLine] = []
    for group in sorted(groups, key=lambda g: g["avg_y"]):
        members = sorted(group["members"], key=_avg_x)
        confs = [_detection_confidence(m, DEFAULT_DETECTION_CONFIDENCE) for m in members]
        lines.append(TextLine(
            text=" ".join(_detection_text(m) for m in members),
            confidence=sum(confs) / len(confs),
            y=group["avg_y"],
        ))
    return lines


def lines_from_ocr(ocr: Mapping[str, Any]) -> List[TextLine]:
    """Full text wins when present; otherwise rebuild lines from detections."""
    text = ocr.get("text") or ""
    detections = [d for d in (ocr.get("detections") or []) if isinstance(d, Mapping)]

    if text.strip():
        confs = [
            _detection_confidence(d, DEFAULT_CONFIDENCE)
            for d in detections
            if d.get("confidence") is not None
        ]
        conf = sum(confs) / len(confs) if confs else DEFAULT_CONFIDENCE
        return [TextLine(text=raw, confidence=conf, y=float(i))
                for i, raw in enumerate(text.splitlines())]

    return group_detections_by_line(detections)


# ---------------------------------------------------------------------------
# Candidates → output
# ---------------------------------------------------------------------------
def build_candidate(priced: PricedName, original_line: str = "") -> CandidateItem:
    name = normalize_candidate_name(priced.name)
    score = food_score(name)
    return CandidateItem(
        name=name,
        price=priced.price,
        confidence=priced.confidence,
        food_score=score,
        is_likely_menu_item=score > 0 or priced.confidence > LIKELY_CONFIDENCE,
        original_line=original_line or priced.name,
        food_keywords=matched_keywords(name),
    )


def _failure(reason: str, **extra: Any) -> ExtractionResult:
    out: ExtractionResult = {"success": False, "menuItems": [], "reason": reason}
    out.update(extra)  # type: ignore[typeddict-item]
    return out


def analyze_receipt(ocr: Optional[Mapping[str, Any]]) -> ExtractionResult:
    """Run the full extraction pipeline on one OCR result."""
    if not ocr or not isinstance(ocr, Mapping):
        return _failure(MISSING_INPUT_REASON)

    text = ocr.get("text") or ""
    detections = ocr.get("detections") or []
    if not text.strip() and not detections:
        return _failure(MISSING_INPUT_REASON)

    lines = lines_from_ocr(ocr)
    classified = classify_lines(lines)
    trace: List[Dict[str, Any]] = [{
        "stage": "classify",
        "event": "tags",
        "counts": dict(Counter(cl.tag for cl in classified)),
    }]

    layout = parse_with_fallback(classified)
    trace.extend(layout.trace)
    if not layout.ok:
        log.info("Receipt layout not recognised: %s", layout.reason)
        return _failure(layout.reason or "no layout matched", strategy=layout.strategy, trace=trace)

    source_text = {cl.index: cl.text for cl in classified}
    candidates = [
        build_candidate(p, source_text.get(p.line_index, ""))
        for p in layout.items
    ]

    parsed: List[ParsedMenuItem] = []
    duplicates = 0
    rejected = 0
    likely = 0
    for cand in candidates:
        if not cand.name or cand.price is None:
            continue
        if cand.is_likely_menu_item:
            likely += 1
        trace.append({
            "stage": "food_filter",
            "event": "candidate",
            "name": cand.name,
            "foodScore": cand.food_score,
            "foodKeywords": cand.food_keywords,
            "isLikelyMenuItem": cand.is_likely_menu_item,
            "confidence": cand.confidence,
            "originalLine": cand.original_line,
        })
        for item in expand_duplicates(cand.name, cand.price):
            reason = rejection_reason(item.name, item.price)
            if reason:
                rejected += 1
                trace.append({"stage": "food_filter", "event": "rejected",
                              "name": item.name, "reason": reason})
                continue
            if item.is_duplicate:
                duplicates += 1
                trace.append({"stage": "duplicates", "event": "twin_inferred",
                              "name": item.name, "price": float(item.price)})
            parsed.append(item)

    totals = {k: (float(v) if v is not None else None) for k, v in layout.totals.items()}
    metadata = {
        "totalDetections": len(detections),
        "lines": len(classified),
        "candidates": len(candidates),
        "likelyMenuItems": likely,
        "duplicatesInferred": duplicates,
        "rejected": rejected,
        "menuItemsFound": len(parsed),
    }
    log.debug(
        "Receipt parsed via %s: %d lines, %d candidates, %d items",
        layout.strategy, len(classified), len(candidates), len(parsed),
    )

    return {
        "success": True,
        "menuItems": [item.to_dict() for item in parsed],
        "strategy": layout.strategy,
        "totals": totals,
        "metadata": metadata,
        "trace": trace,
    }


def parse_receipt_text(text: str) -> ExtractionResult:
    """Convenience wrapper for newline-delimited OCR text."""
    return analyze_receipt({"text": text or "", "detections": []})
