# storage/database.py
from __future__ import annotations

import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

log = logging.getLogger(__name__)

# ------------------------------------------------------------
# Paths / DB
# ------------------------------------------------------------
ROOT = Path(__file__).resolve().parents[1]   # project root
DB_PATH = Path(os.getenv("TABSCAN_DB_PATH") or (ROOT / "storage" / "tabscan.db"))


def db_connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


# ------------------------------------------------------------
# Schema (idempotent; safe to call repeatedly)
# ------------------------------------------------------------
SCHEMA_STATEMENTS = (
    # canonical menu items: one row per dish/drink, names unique ignoring case
    """
    CREATE TABLE IF NOT EXISTS menu_items (
      id          INTEGER PRIMARY KEY AUTOINCREMENT,
      name        TEXT NOT NULL COLLATE NOCASE UNIQUE,
      created_at  TEXT NOT NULL
    )
    """,
    # synonyms: single-word aliases, each mapped to exactly one item
    """
    CREATE TABLE IF NOT EXISTS menu_synonyms (
      id            INTEGER PRIMARY KEY AUTOINCREMENT,
      menu_item_id  INTEGER NOT NULL,
      synonym       TEXT NOT NULL COLLATE NOCASE UNIQUE,
      created_at    TEXT NOT NULL,
      FOREIGN KEY (menu_item_id) REFERENCES menu_items(id) ON DELETE CASCADE
    )
    """,
    # guest search outcomes (feeds future synonym curation)
    """
    CREATE TABLE IF NOT EXISTS menu_search_log (
      id                    INTEGER PRIMARY KEY AUTOINCREMENT,
      user_input            TEXT NOT NULL,
      matched_menu_item_id  INTEGER,
      guest_id              INTEGER NOT NULL,
      matched               INTEGER NOT NULL DEFAULT 0,
      created_at            TEXT NOT NULL,
      FOREIGN KEY (matched_menu_item_id) REFERENCES menu_items(id) ON DELETE SET NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_menu_synonyms_item ON menu_synonyms(menu_item_id)",
    "CREATE INDEX IF NOT EXISTS idx_menu_search_log_guest ON menu_search_log(guest_id)",
)


def apply_schema(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    for stmt in SCHEMA_STATEMENTS:
        cur.execute(stmt)
    conn.commit()


def init_db() -> Path:
    """Create the DB file (if needed) and ensure every table exists."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    with db_connect() as conn:
        apply_schema(conn)
    log.info("Menu catalog DB ready at %s", DB_PATH)
    return DB_PATH
