# portal/contracts.py
from __future__ import annotations
from typing import Any, Dict, Tuple

def _is_intlike(x: Any) -> bool:
    if isinstance(x, bool):
        return False
    try:
        int(x); return True
    except (TypeError, ValueError):
        return False

def validate_ocr_payload(payload: Any) -> Tuple[bool, str]:
    """Shape check for POST /api/receipt_scan/analyze bodies."""
    if not isinstance(payload, dict):
        return False, "body must be a JSON object"

    text = payload.get("text", "")
    if text is not None and not isinstance(text, str):
        return False, "text must be a string"

    detections = payload.get("detections", [])
    if detections is None:
        return True, ""
    if not isinstance(detections, list):
        return False, "detections must be a list"
    for i, det in enumerate(detections):
        if not isinstance(det, dict):
            return False, f"detections[{i}] must be an object"
        word = det.get("text", det.get("description", ""))
        if not isinstance(word, str):
            return False, f"detections[{i}].text must be a string"
        conf = det.get("confidence")
        if conf is not None and not isinstance(conf, (int, float)):
            return False, f"detections[{i}].confidence must be a number"
    return True, ""

def validate_map_synonym_payload(payload: Any) -> Tuple[bool, str]:
    if not isinstance(payload, dict):
        return False, "body must be a JSON object"
    synonym = payload.get("synonym")
    if synonym is not None and not isinstance(synonym, str):
        return False, "synonym must be a string"
    item_id = payload.get("menu_item_id")
    if item_id not in (None, "") and not _is_intlike(item_id):
        return False, "menu_item_id must be an integer"
    name = payload.get("new_item_name")
    if name is not None and not isinstance(name, str):
        return False, "new_item_name must be a string"
    return True, ""

def validate_search_log_payload(payload: Any) -> Tuple[bool, str]:
    if not isinstance(payload, dict):
        return False, "body must be a JSON object"
    if not isinstance(payload.get("user_input", ""), str):
        return False, "user_input must be a string"
    matched = payload.get("matched_menu_item_id")
    if matched is not None and not _is_intlike(matched):
        return False, "matched_menu_item_id must be an integer or null"
    return True, ""

def as_payload(x: Any) -> Dict[str, Any]:
    return x if isinstance(x, dict) else {}
