# app/db.py
import sqlite3

DB_PATH = "storefront.db"


def get_connection(db_path: str = DB_PATH):
    return sqlite3.connect(db_path)


def init_db(db_path: str = DB_PATH):
    conn = get_connection(db_path)
    cur = conn.cursor()

    # Fulfillment ledger: one row per confirmed Stripe session
    cur.execute("""
        CREATE TABLE IF NOT EXISTS fulfillment_orders (
            stripe_session_id TEXT PRIMARY KEY,
            status TEXT NOT NULL DEFAULT 'pending',
            payload TEXT NOT NULL,
            result TEXT,
            attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cur.execute("""
        CREATE INDEX IF NOT EXISTS idx_fulfillment_orders_status
        ON fulfillment_orders(status)
    """)

    conn.commit()
    conn.close()


def count_fulfillments(db_path: str = DB_PATH) -> dict:
    """
    Counts ledger rows grouped by status
    """
    conn = get_connection(db_path)
    cur = conn.cursor()

    cur.execute("""
        SELECT status, COUNT(*)
        FROM fulfillment_orders
        GROUP BY status
    """)

    counts = {status: count for status, count in cur.fetchall()}
    conn.close()

    return counts
