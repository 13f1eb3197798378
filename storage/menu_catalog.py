# storage/menu_catalog.py  — Canonical menu items, synonyms, search
from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from .database import db_connect, _now
from .parsers.trigram import SEARCH_LIMIT, rank_synonym_matches

log = logging.getLogger(__name__)


# ------------------------------------------------------------
# Constants
# ------------------------------------------------------------
MIN_QUERY_LEN = 3

MISSING_FIELDS = "MISSING_FIELDS"
INVALID_FORMAT = "INVALID_FORMAT"
ITEM_EXISTS = "ITEM_EXISTS"
ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
SYNONYM_EXISTS = "SYNONYM_EXISTS"
SYNONYM_NOT_FOUND = "SYNONYM_NOT_FOUND"

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_ALREADY_EXISTS = "already_exists"

_FULL_WORD_MESSAGE = "Only full words are allowed. No spaces or phrases."


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    return {k: row[k] for k in row.keys()}


def _reject(code: str, message: str) -> Dict[str, Any]:
    return {"ok": False, "error": code, "message": message}


def _as_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        ident = int(value)
    except (TypeError, ValueError):
        return None
    return ident if ident > 0 else None


def _clean_synonym(raw: Any) -> tuple:
    """Return (synonym, None) or (None, rejection) for a proposed synonym."""
    text = str(raw or "").strip()
    if not text:
        return None, _reject(MISSING_FIELDS, "Synonym is required")
    if any(ch.isspace() for ch in text):
        return None, _reject(INVALID_FORMAT, _FULL_WORD_MESSAGE)
    return text.upper(), None


def _begin_immediate(conn: sqlite3.Connection) -> None:
    # take the write lock up front so lookup + insert/update is one unit
    if not conn.in_transaction:
        conn.execute("BEGIN IMMEDIATE")


def _item_row(conn: sqlite3.Connection, item_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT id, name, created_at FROM menu_items WHERE id = ?", (item_id,)
    ).fetchone()


# ====================================================================
# Canonical menu items
# ====================================================================

def list_menu_items() -> List[Dict[str, Any]]:
    with db_connect() as conn:
        rows = conn.execute(
            "SELECT id, name, created_at FROM menu_items ORDER BY name ASC"
        ).fetchall()
        return [_row_to_dict(r) for r in rows]


def get_menu_item(item_id: int) -> Optional[Dict[str, Any]]:
    with db_connect() as conn:
        row = _item_row(conn, item_id)
        return _row_to_dict(row) if row else None


def find_menu_item_by_name(name: str) -> Optional[Dict[str, Any]]:
    """Case-insensitive name lookup."""
    with db_connect() as conn:
        row = conn.execute(
            "SELECT id, name, created_at FROM menu_items WHERE name = ? COLLATE NOCASE",
            ((name or "").strip(),),
        ).fetchone()
        return _row_to_dict(row) if row else None


def create_menu_item(name: str) -> Dict[str, Any]:
    clean = " ".join((name or "").split()).upper()
    if not clean:
        return _reject(MISSING_FIELDS, "Item name is required")
    with db_connect() as conn:
        _begin_immediate(conn)
        dup = conn.execute(
            "SELECT id FROM menu_items WHERE name = ? COLLATE NOCASE", (clean,)
        ).fetchone()
        if dup:
            conn.rollback()
            return _reject(ITEM_EXISTS, "Menu item already exists")
        now = _now()
        cur = conn.execute(
            "INSERT INTO menu_items (name, created_at) VALUES (?, ?)", (clean, now)
        )
        conn.commit()
        item = {"id": int(cur.lastrowid), "name": clean, "created_at": now}
    log.info("Created menu item %s (%s)", item["id"], clean)
    return {"ok": True, "item": item}


def update_menu_item(item_id: int, name: str) -> Dict[str, Any]:
    clean = " ".join((name or "").split()).upper()
    if not clean:
        return _reject(MISSING_FIELDS, "Item name is required")
    with db_connect() as conn:
        _begin_immediate(conn)
        clash = conn.execute(
            "SELECT id FROM menu_items WHERE name = ? COLLATE NOCASE AND id != ?",
            (clean, item_id),
        ).fetchone()
        if clash:
            conn.rollback()
            return _reject(ITEM_EXISTS, "Menu item with this name already exists")
        cur = conn.execute("UPDATE menu_items SET name = ? WHERE id = ?", (clean, item_id))
        if cur.rowcount == 0:
            conn.rollback()
            return _reject(ITEM_NOT_FOUND, "Menu item not found")
        conn.commit()
        row = _item_row(conn, item_id)
    return {"ok": True, "item": _row_to_dict(row)}


def delete_menu_item(item_id: int) -> Dict[str, Any]:
    """Delete an item and every synonym pointing at it, all or nothing."""
    with db_connect() as conn:
        _begin_immediate(conn)
        removed = conn.execute(
            "DELETE FROM menu_synonyms WHERE menu_item_id = ?", (item_id,)
        ).rowcount
        cur = conn.execute("DELETE FROM menu_items WHERE id = ?", (item_id,))
        if cur.rowcount == 0:
            conn.rollback()
            return _reject(ITEM_NOT_FOUND, "Menu item not found")
        conn.commit()
    log.info("Deleted menu item %s (%d synonyms)", item_id, removed)
    return {"ok": True, "deleted_synonyms": removed}


# ====================================================================
# Synonyms (per item)
# ====================================================================

def list_synonyms(item_id: int) -> Dict[str, Any]:
    with db_connect() as conn:
        item = _item_row(conn, item_id)
        if item is None:
            return _reject(ITEM_NOT_FOUND, "Menu item not found")
        rows = conn.execute(
            "SELECT id, synonym, created_at FROM menu_synonyms "
            "WHERE menu_item_id = ? ORDER BY synonym ASC",
            (item_id,),
        ).fetchall()
        return {
            "ok": True,
            "menu_item": {"id": item["id"], "name": item["name"]},
            "synonyms": [_row_to_dict(r) for r in rows],
        }


def create_synonym(item_id: int, synonym: str) -> Dict[str, Any]:
    text, err = _clean_synonym(synonym)
    if err:
        return err
    with db_connect() as conn:
        _begin_immediate(conn)
        if _item_row(conn, item_id) is None:
            conn.rollback()
            return _reject(ITEM_NOT_FOUND, "Menu item not found")
        if conn.execute(
            "SELECT id FROM menu_synonyms WHERE synonym = ?", (text,)
        ).fetchone():
            conn.rollback()
            return _reject(SYNONYM_EXISTS, "Synonym already exists")
        now = _now()
        cur = conn.execute(
            "INSERT INTO menu_synonyms (menu_item_id, synonym, created_at) VALUES (?, ?, ?)",
            (item_id, text, now),
        )
        conn.commit()
        return {
            "ok": True,
            "synonym": {"id": int(cur.lastrowid), "synonym": text, "created_at": now},
        }


def update_synonym(item_id: int, synonym_id: int, synonym: str) -> Dict[str, Any]:
    text, err = _clean_synonym(synonym)
    if err:
        return err
    with db_connect() as conn:
        _begin_immediate(conn)
        if conn.execute(
            "SELECT id FROM menu_synonyms WHERE synonym = ? AND id != ?",
            (text, synonym_id),
        ).fetchone():
            conn.rollback()
            return _reject(SYNONYM_EXISTS, "Synonym already exists")
        cur = conn.execute(
            "UPDATE menu_synonyms SET synonym = ? WHERE id = ? AND menu_item_id = ?",
            (text, synonym_id, item_id),
        )
        if cur.rowcount == 0:
            conn.rollback()
            return _reject(SYNONYM_NOT_FOUND, "Synonym not found")
        conn.commit()
        row = conn.execute(
            "SELECT id, synonym, created_at FROM menu_synonyms WHERE id = ?", (synonym_id,)
        ).fetchone()
        return {"ok": True, "synonym": _row_to_dict(row)}


def delete_synonym(item_id: int, synonym_id: int) -> Dict[str, Any]:
    with db_connect() as conn:
        cur = conn.execute(
            "DELETE FROM menu_synonyms WHERE id = ? AND menu_item_id = ?",
            (synonym_id, item_id),
        )
        if cur.rowcount == 0:
            conn.rollback()
            return _reject(SYNONYM_NOT_FOUND, "Synonym not found")
        conn.commit()
        return {"ok": True}


# ====================================================================
# Synonym resolution (guest search + admin exact lookup)
# ====================================================================

def search_menu_items(query: str, *, limit: int = SEARCH_LIMIT) -> Dict[str, Any]:
    """Ranked search: prefix, substring and trigram hits, best score first."""
    q = (query or "").strip()
    if len(q) < MIN_QUERY_LEN:
        return {
            "ok": True,
            "message": f"Query must be at least {MIN_QUERY_LEN} characters",
            "suggestions": [],
        }
    with db_connect() as conn:
        rows = conn.execute(
            """
            SELECT s.synonym, s.menu_item_id, m.name
            FROM menu_synonyms s
            JOIN menu_items m ON m.id = s.menu_item_id
            """
        ).fetchall()
    matches = rank_synonym_matches(q, rows, limit=limit)
    return {
        "ok": True,
        "message": "Search completed",
        "suggestions": [m.to_suggestion() for m in matches],
        "matches": [asdict(m) for m in matches],
    }


def find_synonym(query: str) -> Optional[Dict[str, Any]]:
    """Exact, case-insensitive synonym lookup; None when unmapped."""
    q = (query or "").strip()
    if not q:
        return None
    with db_connect() as conn:
        row = conn.execute(
            """
            SELECT s.id AS synonym_id, s.synonym, m.id AS menu_item_id,
                   m.name AS menu_item_name
            FROM menu_synonyms s
            JOIN menu_items m ON m.id = s.menu_item_id
            WHERE s.synonym = ?
            """,
            (q,),
        ).fetchone()
        return _row_to_dict(row) if row else None


# ====================================================================
# Synonym mapping (admin write path)
# ====================================================================

def map_synonym(
    synonym: str,
    menu_item_id: Any = None,
    *,
    create_new_item: bool = False,
    new_item_name: Optional[str] = None,
) -> Dict[str, Any]:
    """Point a synonym at a canonical item, creating either side as needed.

    Returns {"ok": True, "synonym": {...}, "action": created|updated|already_exists}
    or a rejection; rejected input never mutates anything. Lookup and
    write run inside one BEGIN IMMEDIATE transaction, and synonym text is
    UNIQUE in the schema, so concurrent callers cannot double-insert.
    """
    text, err = _clean_synonym(synonym)
    if err:
        log.warning("map_synonym rejected %r: %s", synonym, err["error"])
        return err

    with db_connect() as conn:
        _begin_immediate(conn)
        target = _as_id(menu_item_id)
        item_created = False

        new_name = " ".join((new_item_name or "").split())
        if create_new_item and new_name:
            row = conn.execute(
                "SELECT id FROM menu_items WHERE name = ? COLLATE NOCASE", (new_name,)
            ).fetchone()
            if row:
                target = int(row["id"])
            else:
                cur = conn.execute(
                    "INSERT INTO menu_items (name, created_at) VALUES (?, ?)",
                    (new_name.upper(), _now()),
                )
                target = int(cur.lastrowid)
                item_created = True

        if not target:
            conn.rollback()
            return _reject(MISSING_FIELDS, "Menu item ID is required")
        if _item_row(conn, target) is None:
            conn.rollback()
            return _reject(ITEM_NOT_FOUND, "Menu item not found")

        existing = conn.execute(
            "SELECT id, synonym, menu_item_id FROM menu_synonyms WHERE synonym = ?",
            (text,),
        ).fetchone()

        if existing is None:
            cur = conn.execute(
                "INSERT INTO menu_synonyms (menu_item_id, synonym, created_at) VALUES (?, ?, ?)",
                (target, text, _now()),
            )
            record = {"id": int(cur.lastrowid), "synonym": text}
            action = ACTION_CREATED
        elif int(existing["menu_item_id"]) == target:
            record = {"id": int(existing["id"]), "synonym": existing["synonym"]}
            action = ACTION_ALREADY_EXISTS
        else:
            conn.execute(
                "UPDATE menu_synonyms SET menu_item_id = ? WHERE id = ?",
                (target, existing["id"]),
            )
            record = {"id": int(existing["id"]), "synonym": existing["synonym"]}
            action = ACTION_UPDATED

        conn.commit()

    log.info("map_synonym %s -> item %s (%s)", text, target, action)
    return {
        "ok": True,
        "synonym": record,
        "menu_item_id": target,
        "item_created": item_created,
        "action": action,
    }


# ====================================================================
# Search log
# ====================================================================

def log_search(
    user_input: str,
    guest_id: Any,
    matched_menu_item_id: Any = None,
) -> Dict[str, Any]:
    text = (user_input or "").strip()
    guest = _as_id(guest_id)
    if not text or guest is None:
        return _reject(MISSING_FIELDS, "user_input and guest_id are required")
    matched_id = _as_id(matched_menu_item_id)
    with db_connect() as conn:
        cur = conn.execute(
            """
            INSERT INTO menu_search_log (user_input, matched_menu_item_id, guest_id,
                                         matched, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (text, matched_id, guest, 1 if matched_id else 0, _now()),
        )
        conn.commit()
        return {"ok": True, "id": int(cur.lastrowid)}
