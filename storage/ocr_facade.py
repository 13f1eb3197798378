# storage/ocr_facade.py
"""
OCR façade — image → OCRResult for the receipt pipeline.

Public API:
- ocr_result_from_tesseract(data) -> OCRResult   (pure; pytesseract DICT → contract)
- run_ocr(image_path) -> OCRResult
- scan_receipt_image(image_path) -> ExtractionResult
- health() -> engine + versions

OCRResult shape:
{
  "text": "LINE ONE\\nLINE TWO",
  "detections": [
    {"text": "BURGER", "confidence": 0.93,
     "boundingPoly": {"vertices": [{"x": 10, "y": 5}, {"x": 70, "y": 5},
                                   {"x": 70, "y": 20}, {"x": 10, "y": 20}]}},
    ...
  ]
}
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pytesseract
from PIL import Image

from .ocr_types import ExtractionResult, OCRResult, RawDetection
from .receipt_pipeline import analyze_receipt

log = logging.getLogger(__name__)

TESSERACT_LANG = os.getenv("TESSERACT_LANG") or "eng"
TESSERACT_CONFIG = os.getenv("TESSERACT_CONFIG") or "--oem 1 --psm 6"


def _tesseract_cmd() -> str:
    """Locate the tesseract executable on disk."""
    env_cmd = os.getenv("TESSERACT_CMD") or ""
    if env_cmd and Path(env_cmd).exists():
        return env_cmd

    cmd = getattr(pytesseract.pytesseract, "tesseract_cmd", "") or ""
    if cmd and cmd != "tesseract":
        return cmd

    return shutil.which("tesseract") or shutil.which("tesseract.exe") or ""


def configure_tesseract() -> str:
    cmd = _tesseract_cmd()
    if cmd:
        pytesseract.pytesseract.tesseract_cmd = cmd
    return cmd


def health() -> Dict[str, Any]:
    cmd = configure_tesseract()
    version: Optional[str] = None
    error: Optional[str] = None
    if cmd:
        try:
            version = str(pytesseract.get_tesseract_version())
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            error = str(e)
    return {
        "engine": "tabscan-ocr",
        "tesseract": {
            "cmd": cmd,
            "version": version,
            "found_on_disk": bool(cmd and Path(cmd).exists()),
            "lang": TESSERACT_LANG,
            "config": TESSERACT_CONFIG,
            "error": error,
        },
    }


# -----------------------------
# pytesseract DICT → OCRResult
# -----------------------------

def _conf(raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return -1.0


def _box(left: int, top: int, width: int, height: int) -> Dict[str, Any]:
    right, bottom = left + width, top + height
    return {"vertices": [
        {"x": left, "y": top},
        {"x": right, "y": top},
        {"x": right, "y": bottom},
        {"x": left, "y": bottom},
    ]}


def ocr_result_from_tesseract(data: Mapping[str, List[Any]]) -> OCRResult:
    """Convert pytesseract.image_to_data(..., Output.DICT) into an OCRResult.

    Rows with conf == -1 (block/paragraph/line containers) and empty words are
    dropped. Tesseract reports confidence on 0–100; detections carry 0.0–1.0.
    Full text is rebuilt one line per (page, block, paragraph, line) key in
    reading order.
    """
    texts = list(data.get("text") or [])
    confs = list(data.get("conf") or [])
    n = len(texts)

    def col(name: str, i: int, default: int = 0) -> int:
        values = data.get(name) or []
        try:
            return int(values[i])
        except (IndexError, TypeError, ValueError):
            return default

    detections: List[RawDetection] = []
    line_order: List[Tuple[int, int, int, int]] = []
    line_words: Dict[Tuple[int, int, int, int], List[str]] = {}

    for i in range(n):
        word = str(texts[i] or "").strip()
        conf = _conf(confs[i] if i < len(confs) else None)
        if not word or conf < 0:
            continue
        detections.append({
            "text": word,
            "confidence": round(min(conf, 100.0) / 100.0, 4),
            "boundingPoly": _box(col("left", i), col("top", i), col("width", i), col("height", i)),
        })
        key = (col("page_num", i), col("block_num", i), col("par_num", i), col("line_num", i))
        if key not in line_words:
            line_words[key] = []
            line_order.append(key)
        line_words[key].append(word)

    text = "\n".join(" ".join(line_words[k]) for k in line_order)
    return {"text": text, "detections": detections}


def run_ocr(image_path: str | Path) -> OCRResult:
    """OCR one receipt image with Tesseract."""
    configure_tesseract()
    with Image.open(image_path) as im:
        im = im.convert("RGB")
        data = pytesseract.image_to_data(
            im,
            lang=TESSERACT_LANG,
            config=TESSERACT_CONFIG,
            output_type=pytesseract.Output.DICT,
        )
    result = ocr_result_from_tesseract(data)
    log.info("OCR %s: %d words", Path(image_path).name, len(result["detections"]))
    return result


def scan_receipt_image(image_path: str | Path) -> ExtractionResult:
    return analyze_receipt(run_ocr(image_path))
