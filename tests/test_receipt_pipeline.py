"""
Receipt pipeline -- OCR result in, extraction contract out.

Covers:
  End-to-end:
  - "BURGER\\n£8.50\\nFRIES £3.00" -> BURGER 8.50, FRIES 3.00
  - duplicate-sequence names produce an inferred twin at the same price
  - boilerplate / noise lines never become items
  - table and column receipts pick their strategy
  - totals come back as floats; metadata counts
  - rejected candidates are counted and traced
  - every candidate traced with food score, likelihood and source line

  Missing input:
  - None / {} / blank text without detections -> success False + reason

  Detections:
  - grouped into physical lines by Y band, words ordered by X
  - bounding_box JSON strings and "description" keys accepted
  - non-numeric vertex coordinates fall back to 0
  - full text wins over detections when both are present
  - line confidence from detections, defaults otherwise

  Name cleanup:
  - OCR misspellings, stray quotes / percent, embedded prices, trailing codes
"""

from __future__ import annotations

import json

import pytest

from storage.receipt_pipeline import (
    DEFAULT_CONFIDENCE,
    DEFAULT_DETECTION_CONFIDENCE,
    MISSING_INPUT_REASON,
    analyze_receipt,
    group_detections_by_line,
    lines_from_ocr,
    normalize_candidate_name,
    parse_receipt_text,
)


def _det(text, x, y, w=40, h=12, confidence=None, key="boundingPoly"):
    det = {
        "text": text,
        key: {"vertices": [
            {"x": x, "y": y}, {"x": x + w, "y": y},
            {"x": x + w, "y": y + h}, {"x": x, "y": y + h},
        ]},
    }
    if confidence is not None:
        det["confidence"] = confidence
    return det


def _names_prices(result):
    return [(i["name"], i["price"]) for i in result["menuItems"]]


# ===========================================================================
# End-to-end
# ===========================================================================

class TestEndToEnd:

    def test_burger_fries(self):
        result = parse_receipt_text("BURGER\n£8.50\nFRIES £3.00")
        assert result["success"] is True
        assert result["strategy"] == "line"
        assert _names_prices(result) == [("BURGER", 8.50), ("FRIES", 3.00)]
        assert all(i["isDuplicate"] is False for i in result["menuItems"])

    def test_duplicate_twin(self):
        result = parse_receipt_text("TOAST BREAD TOAST BREAD £4.00")
        assert result["menuItems"] == [
            {"name": "TOAST BREAD", "price": 4.0, "isDuplicate": False},
            {"name": "TOAST BREAD", "price": 4.0, "isDuplicate": True},
        ]
        assert result["metadata"]["duplicatesInferred"] == 1

    def test_noise_ignored(self):
        text = "\n".join([
            "THE GOOD DINER",
            "12/03/2024 14:35",
            "#1042",
            "BURGER £8.50",
            "TEA £2.00",
            "THANK YOU",
        ])
        result = parse_receipt_text(text)
        assert _names_prices(result) == [("BURGER", 8.50), ("TEA", 2.00)]

    def test_totals(self):
        result = parse_receipt_text("BURGER £8.50\nSUBTOTAL £8.50\nTAX £0.50\nTOTAL £9.00")
        assert _names_prices(result) == [("BURGER", 8.50)]
        assert result["totals"] == {
            "total_amount": 9.0,
            "tax_amount": 0.5,
            "service_charge": None,
        }

    def test_table_receipt(self):
        result = parse_receipt_text(
            "PRODUCT PRICE QTY TOTAL\nSISIG £6.00 1 £6.00\nRICE £1.50 2 £3.00\nTOTAL £9.00"
        )
        assert result["strategy"] == "table"
        assert _names_prices(result) == [("SISIG", 6.0), ("RICE", 1.5), ("RICE", 1.5)]

    def test_column_receipt(self):
        result = parse_receipt_text("ITEM\nBURGER\nFRIES\nAMOUNT\n8.50\n3.00")
        assert result["strategy"] == "column"
        assert _names_prices(result) == [("BURGER", 8.5), ("FRIES", 3.0)]

    def test_overlapping_candidates_preserved(self):
        result = parse_receipt_text("FRIES £3.00\n£3.00")
        assert _names_prices(result) == [("FRIES", 3.0), ("FRIES", 3.0)]

    def test_rejected_counted(self):
        result = parse_receipt_text("BURGER £8.50\nCUSTOMER 123 £5.00")
        assert _names_prices(result) == [("BURGER", 8.5)]
        assert result["metadata"]["rejected"] == 1
        rejected = [e for e in result["trace"] if e["event"] == "rejected"]
        assert rejected[0]["name"] == "CUSTOMER"

    def test_punctuation_name_rejected(self):
        result = parse_receipt_text("BURGER\n£8.50\n*** 3.00")
        assert _names_prices(result) == [("BURGER", 8.5)]
        assert result["metadata"]["rejected"] == 1

    def test_metadata(self):
        result = parse_receipt_text("BURGER\n£8.50\nFRIES £3.00")
        assert result["metadata"] == {
            "totalDetections": 0,
            "lines": 3,
            "candidates": 2,
            "likelyMenuItems": 2,
            "duplicatesInferred": 0,
            "rejected": 0,
            "menuItemsFound": 2,
        }

    def test_candidate_food_scores_traced(self):
        result = parse_receipt_text("BURGER\n£8.50\nQWRT £2.00")
        events = {e["name"]: e for e in result["trace"] if e["event"] == "candidate"}
        assert events["BURGER"] == {
            "stage": "food_filter",
            "event": "candidate",
            "name": "BURGER",
            "foodScore": 0.3,
            "foodKeywords": ["burger"],
            "isLikelyMenuItem": True,
            "confidence": DEFAULT_CONFIDENCE,
            "originalLine": "BURGER",
        }
        # no keyword hit and text confidence not above 0.8
        assert events["QWRT"]["foodScore"] == 0.0
        assert events["QWRT"]["isLikelyMenuItem"] is False
        assert events["QWRT"]["originalLine"] == "QWRT £2.00"
        assert result["metadata"]["likelyMenuItems"] == 1

    def test_high_confidence_makes_candidate_likely(self):
        dets = [_det("QWRT", 10, 10, confidence=0.95), _det("£2.00", 200, 11, confidence=0.95)]
        result = analyze_receipt({"text": "", "detections": dets})
        event = next(e for e in result["trace"] if e["event"] == "candidate")
        assert event["foodScore"] == 0.0
        assert event["isLikelyMenuItem"] is True

    def test_trace_starts_with_classification(self):
        result = parse_receipt_text("BURGER\n£8.50")
        assert result["trace"][0] == {
            "stage": "classify", "event": "tags", "counts": {"ITEM": 1, "PRICE": 1},
        }

    def test_no_items_is_still_success(self):
        result = parse_receipt_text("THANK YOU")
        assert result["success"] is True
        assert result["menuItems"] == []


# ===========================================================================
# Missing input
# ===========================================================================

class TestMissingInput:

    @pytest.mark.parametrize("ocr", [None, {}, {"text": "", "detections": []}, {"text": "   "}])
    def test_missing(self, ocr):
        result = analyze_receipt(ocr)
        assert result["success"] is False
        assert result["menuItems"] == []
        assert result["reason"] == MISSING_INPUT_REASON


# ===========================================================================
# Detections
# ===========================================================================

class TestDetections:

    def test_grouping_by_line(self):
        dets = [
            _det("£3.00", 200, 52),
            _det("BURGER", 10, 10, confidence=0.8),
            _det("FRIES", 10, 50),
            _det("£8.50", 200, 13, confidence=1.0),
        ]
        lines = group_detections_by_line(dets)
        assert [ln.text for ln in lines] == ["BURGER £8.50", "FRIES £3.00"]
        assert lines[0].confidence == pytest.approx(0.9)
        assert lines[1].confidence == pytest.approx(DEFAULT_DETECTION_CONFIDENCE)

    def test_detections_only_receipt(self):
        dets = [
            _det("BURGER", 10, 10, confidence=0.95),
            _det("£8.50", 200, 11, confidence=0.95),
            _det("FRIES", 10, 50, confidence=0.9),
            _det("£3.00", 200, 49, confidence=0.9),
        ]
        result = analyze_receipt({"text": "", "detections": dets})
        assert result["success"] is True
        assert _names_prices(result) == [("BURGER", 8.5), ("FRIES", 3.0)]
        assert result["metadata"]["totalDetections"] == 4

    def test_bounding_box_json_string(self):
        det = {
            "description": "COKE",
            "bounding_box": json.dumps({"vertices": [{"x": 0, "y": 0}, {"x": 10, "y": 10}]}),
        }
        lines = group_detections_by_line([det])
        assert [ln.text for ln in lines] == ["COKE"]

    def test_malformed_vertex_coordinates(self):
        det = {"text": "BURGER", "confidence": 0.9,
               "boundingPoly": {"vertices": [{"x": 1, "y": "top"}, {"x": None, "y": [2]}]}}
        lines = group_detections_by_line([det])
        assert [(ln.text, ln.y) for ln in lines] == [("BURGER", 0.0)]
        result = analyze_receipt({"text": "", "detections": [det]})
        assert result["success"] is True

    def test_blank_detections_dropped(self):
        lines = group_detections_by_line([_det("  ", 0, 0), _det("TEA", 0, 30)])
        assert [ln.text for ln in lines] == ["TEA"]

    def test_text_wins(self):
        lines = lines_from_ocr({"text": "A\nB", "detections": [_det("IGNORED", 0, 0, confidence=0.5)]})
        assert [ln.text for ln in lines] == ["A", "B"]
        assert all(ln.confidence == pytest.approx(0.5) for ln in lines)

    def test_text_default_confidence(self):
        lines = lines_from_ocr({"text": "A", "detections": []})
        assert lines[0].confidence == DEFAULT_CONFIDENCE


# ===========================================================================
# Name cleanup
# ===========================================================================

class TestNameCleanup:

    @pytest.mark.parametrize("raw,clean", [
        ("CHCKN RICE", "CHICKEN RICE"),
        ("ROAST CHCK%", "ROAST CHICKEN"),
        ("ROAST CHCK", "ROAST CHICKEN"),
        ("TRKY SANDWICH", "TURKEY SANDWICH"),
        ("BRGR", "BURGER"),
        ("IL LEMONADE", "LEMONADE"),
        ('"COKE"', "COKE"),
        ("FRIES £3.00", "FRIES"),
        ("FRIES 12345", "FRIES"),
        ("fries  large", "FRIES LARGE"),
        ("7UP 12", "7UP 12"),
    ])
    def test_normalize(self, raw, clean):
        assert normalize_candidate_name(raw) == clean

    def test_cleanup_applied_in_pipeline(self):
        result = parse_receipt_text("BRGR £4.00\nCHCKN RICE £5.00")
        assert _names_prices(result) == [("BURGER", 4.0), ("CHICKEN RICE", 5.0)]
