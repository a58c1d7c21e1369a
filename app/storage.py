# app/storage.py
from typing import Optional

from .db import get_connection

CART_STORAGE_KEY = "chaosGuilCart"


class LocalStorage:
    """
    Durable key/value storage for client state (the cart), backed by SQLite.
    Mirrors the browser's localStorage: string keys, string values.
    """

    def __init__(self, db_path: str = "storefront-client.db") -> None:
        self.db_path = db_path
        conn = get_connection(self.db_path)
        cur = conn.cursor()
        cur.execute("""
            CREATE TABLE IF NOT EXISTS local_storage (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()
        conn.close()

    def get_item(self, key: str) -> Optional[str]:
        conn = get_connection(self.db_path)
        cur = conn.cursor()
        cur.execute("SELECT value FROM local_storage WHERE key = ?", (key,))
        row = cur.fetchone()
        conn.close()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        conn = get_connection(self.db_path)
        cur = conn.cursor()
        cur.execute("""
            INSERT INTO local_storage (key, value, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key)
            DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP
        """, (key, value))
        conn.commit()
        conn.close()

    def remove_item(self, key: str) -> None:
        conn = get_connection(self.db_path)
        cur = conn.cursor()
        cur.execute("DELETE FROM local_storage WHERE key = ?", (key,))
        conn.commit()
        conn.close()
