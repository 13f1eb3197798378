# portal/app.py
from flask import Flask, jsonify, request

# --- Standard libs & typing ---
import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, Tuple

from dotenv import load_dotenv

# ------------------------
# Paths / env
# ------------------------
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env")   # must run before storage reads its env vars

from storage import menu_catalog
from storage.receipt_pipeline import analyze_receipt
from portal.contracts import (
    as_payload,
    validate_map_synonym_payload,
    validate_ocr_payload,
    validate_search_log_payload,
)

# ------------------------
# App & Config
# ------------------------
app = Flask(__name__)
app.config["SECRET_KEY"] = os.getenv("TABSCAN_SECRET_KEY") or "dev-secret-change-me"

logging.basicConfig(level=os.getenv("TABSCAN_LOG_LEVEL") or "INFO")

# storage error code -> HTTP status
_ERROR_STATUS: Dict[str, int] = {
    menu_catalog.MISSING_FIELDS: 400,
    menu_catalog.INVALID_FORMAT: 400,
    menu_catalog.ITEM_NOT_FOUND: 404,
    menu_catalog.SYNONYM_NOT_FOUND: 404,
    menu_catalog.ITEM_EXISTS: 409,
    menu_catalog.SYNONYM_EXISTS: 409,
}


def _bad_request(message: str) -> Tuple[Any, int]:
    return jsonify({"ok": False, "error": "INVALID_FORMAT", "message": message}), 400


def _server_error() -> Tuple[Any, int]:
    return jsonify({"ok": False, "error": "SERVER_ERROR", "message": "Internal server error"}), 500


def _respond(result: Dict[str, Any], ok_status: int = 200) -> Tuple[Any, int]:
    if result.get("ok"):
        return jsonify(result), ok_status
    return jsonify(result), _ERROR_STATUS.get(result.get("error", ""), 400)


def _json_body() -> Any:
    """Parsed JSON object or None when the body is missing / not JSON."""
    if not request.is_json:
        return None
    return request.get_json(silent=True)


# ------------------------
# Receipt scan
# ------------------------
@app.post("/api/receipt_scan/analyze")
def receipt_scan_analyze():
    payload = _json_body()
    if payload is None:
        return _bad_request("Expected JSON payload")
    ok, msg = validate_ocr_payload(payload)
    if not ok:
        return _bad_request(msg)
    return jsonify(analyze_receipt(payload)), 200


# ------------------------
# Guest search
# ------------------------
@app.get("/api/menu/search")
def menu_search():
    try:
        result = menu_catalog.search_menu_items(request.args.get("query", ""))
    except sqlite3.Error:
        app.logger.exception("Menu search failed")
        return _server_error()
    result.pop("matches", None)
    return jsonify(result), 200


@app.post("/api/menu/log-search")
def menu_log_search():
    payload = _json_body()
    if payload is None:
        return _bad_request("Expected JSON payload")
    ok, msg = validate_search_log_payload(payload)
    if not ok:
        return _bad_request(msg)
    try:
        result = menu_catalog.log_search(
            payload.get("user_input", ""),
            payload.get("guest_id"),
            payload.get("matched_menu_item_id"),
        )
    except sqlite3.Error:
        app.logger.exception("Search log insert failed")
        return _server_error()
    return _respond(result, 201)


# ------------------------
# Admin: canonical items
# ------------------------
@app.get("/api/menu-admin/items")
def admin_list_items():
    try:
        items = menu_catalog.list_menu_items()
    except sqlite3.Error:
        app.logger.exception("Listing menu items failed")
        return _server_error()
    return jsonify({"ok": True, "items": items}), 200


@app.post("/api/menu-admin/items")
def admin_create_item():
    payload = as_payload(_json_body())
    try:
        result = menu_catalog.create_menu_item(str(payload.get("name") or ""))
    except sqlite3.Error:
        app.logger.exception("Creating menu item failed")
        return _server_error()
    return _respond(result, 201)


@app.put("/api/menu-admin/items/<int:item_id>")
def admin_update_item(item_id: int):
    payload = as_payload(_json_body())
    try:
        result = menu_catalog.update_menu_item(item_id, str(payload.get("name") or ""))
    except sqlite3.Error:
        app.logger.exception("Updating menu item %s failed", item_id)
        return _server_error()
    return _respond(result)


@app.delete("/api/menu-admin/items/<int:item_id>")
def admin_delete_item(item_id: int):
    try:
        result = menu_catalog.delete_menu_item(item_id)
    except sqlite3.Error:
        app.logger.exception("Deleting menu item %s failed", item_id)
        return _server_error()
    return _respond(result)


# ------------------------
# Admin: synonyms per item
# ------------------------
@app.get("/api/menu-admin/items/<int:item_id>/synonyms")
def admin_list_synonyms(item_id: int):
    try:
        result = menu_catalog.list_synonyms(item_id)
    except sqlite3.Error:
        app.logger.exception("Listing synonyms for item %s failed", item_id)
        return _server_error()
    return _respond(result)


@app.post("/api/menu-admin/items/<int:item_id>/synonyms")
def admin_create_synonym(item_id: int):
    payload = as_payload(_json_body())
    try:
        result = menu_catalog.create_synonym(item_id, str(payload.get("synonym") or ""))
    except sqlite3.Error:
        app.logger.exception("Creating synonym for item %s failed", item_id)
        return _server_error()
    return _respond(result, 201)


@app.put("/api/menu-admin/items/<int:item_id>/synonyms/<int:synonym_id>")
def admin_update_synonym(item_id: int, synonym_id: int):
    payload = as_payload(_json_body())
    try:
        result = menu_catalog.update_synonym(
            item_id, synonym_id, str(payload.get("synonym") or "")
        )
    except sqlite3.Error:
        app.logger.exception("Updating synonym %s failed", synonym_id)
        return _server_error()
    return _respond(result)


@app.delete("/api/menu-admin/items/<int:item_id>/synonyms/<int:synonym_id>")
def admin_delete_synonym(item_id: int, synonym_id: int):
    try:
        result = menu_catalog.delete_synonym(item_id, synonym_id)
    except sqlite3.Error:
        app.logger.exception("Deleting synonym %s failed", synonym_id)
        return _server_error()
    return _respond(result)


# ------------------------
# Admin: exact lookup + mapping
# ------------------------
@app.get("/api/menu-admin/search-synonym")
def admin_search_synonym():
    query = request.args.get("query", "").strip()
    if not query:
        return jsonify({"ok": False, "error": "MISSING_FIELDS", "message": "Query is required"}), 400
    try:
        found = menu_catalog.find_synonym(query)
    except sqlite3.Error:
        app.logger.exception("Synonym lookup failed")
        return _server_error()
    return jsonify({"ok": True, "found": found is not None, "synonym": found}), 200


@app.post("/api/menu-admin/map-synonym")
def admin_map_synonym():
    payload = _json_body()
    if payload is None:
        return _bad_request("Expected JSON payload")
    ok, msg = validate_map_synonym_payload(payload)
    if not ok:
        return _bad_request(msg)
    try:
        result = menu_catalog.map_synonym(
            payload.get("synonym", ""),
            payload.get("menu_item_id"),
            create_new_item=bool(payload.get("create_new_item")),
            new_item_name=payload.get("new_item_name"),
        )
    except sqlite3.Error:
        app.logger.exception("map-synonym failed")
        return _server_error()
    return _respond(result)


# ------------------------
# Run
# ------------------------
if __name__ == "__main__":
    from storage.database import init_db

    init_db()
    app.run(host="0.0.0.0", port=int(os.getenv("PORT") or 5000), debug=os.getenv("FLASK_DEBUG") == "1")
