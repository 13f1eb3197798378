#!/usr/bin/env python3
"""
Run the receipt pipeline offline.

Accepts:
- an image (.jpg/.jpeg/.png/...) → Tesseract OCR → pipeline
- a text file (.txt) → one OCR line per text line
- a saved OCR result (.json) in {"text": ..., "detections": [...]} form

    python scripts/scan_receipt.py receipt.jpg
    python scripts/scan_receipt.py receipt.txt --trace
    python scripts/scan_receipt.py ocr.json --json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from storage.receipt_pipeline import analyze_receipt, parse_receipt_text  # noqa: E402

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp"}


def _load(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    if suffix == ".json":
        with path.open("r", encoding="utf-8") as f:
            return analyze_receipt(json.load(f))
    if suffix in IMAGE_SUFFIXES:
        from storage.ocr_facade import scan_receipt_image
        return scan_receipt_image(path)
    return parse_receipt_text(path.read_text(encoding="utf-8"))


def _print_summary(result: Dict[str, Any], show_trace: bool) -> None:
    if not result.get("success"):
        print(f"[FAIL] {result.get('reason')}")
        return
    print(f"[OK] strategy={result.get('strategy')} items={len(result['menuItems'])}")
    for item in result["menuItems"]:
        dup = "  (inferred twin)" if item["isDuplicate"] else ""
        print(f"  {item['name']:<30} {item['price']:>8.2f}{dup}")
    totals = {k: v for k, v in (result.get("totals") or {}).items() if v is not None}
    if totals:
        print("[TOTALS] " + ", ".join(f"{k}={v:.2f}" for k, v in totals.items()))
    if show_trace:
        for event in result.get("trace") or []:
            print(f"  · {event}")


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Extract priced menu items from a receipt.")
    ap.add_argument("path", type=str, help="Image, .txt or OCR .json file")
    ap.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    ap.add_argument("--trace", action="store_true", help="Print trace events")
    args = ap.parse_args(argv)

    path = Path(args.path)
    if not path.exists():
        print(f"[ERR] File not found: {path}", file=sys.stderr)
        return 1

    result = _load(path)
    if args.json:
        print(json.dumps(result, indent=2))
    else:
        _print_summary(result, args.trace)
    return 0 if result.get("success") else 2


if __name__ == "__main__":
    sys.exit(main())
