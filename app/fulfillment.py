"""Fulfillment ledger.

Stores every fulfillment order built after a confirmed payment, keyed by the
Stripe session id, so a payment whose Printful submission failed is never lost:
the row stays ``failed`` until :func:`retry_failed_fulfillments` (or a repeated
confirmation) submits it.

Only the caller that claims a row (``pending``/``failed`` -> ``submitting``)
may send it to Printful, so overlapping confirmations and retries submit a
paid order once.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from .db import get_connection, DB_PATH
from .schemas import FulfillmentRecord

logger = logging.getLogger(__name__)

# A row left in pending/submitting for longer than this is treated as abandoned
STALE_CLAIM_SECONDS = 300


def _row_to_record(row) -> FulfillmentRecord:
    session_id, status, payload, result, attempts, last_error, created_at, updated_at = row
    return FulfillmentRecord(
        session_id=session_id,
        status=status,
        payload=json.loads(payload),
        result=json.loads(result) if result else None,
        attempts=attempts,
        last_error=last_error,
        created_at=created_at,
        updated_at=updated_at,
    )


def _stale_modifier(stale_after_seconds: int) -> str:
    return f"-{int(stale_after_seconds)} seconds"


def get_fulfillment(session_id: str, db_path: str = DB_PATH) -> Optional[FulfillmentRecord]:
    conn = get_connection(db_path)
    cur = conn.cursor()

    cur.execute("""
        SELECT stripe_session_id, status, payload, result, attempts, last_error, created_at, updated_at
        FROM fulfillment_orders
        WHERE stripe_session_id = ?
    """, [session_id])

    row = cur.fetchone()
    conn.close()

    return _row_to_record(row) if row else None


def record_pending(session_id: str, payload: Dict[str, Any], db_path: str = DB_PATH) -> None:
    """
    Registers the order before it is submitted. An existing row that is not
    claimed or submitted keeps its attempt count but takes the new payload.
    """
    conn = get_connection(db_path)
    cur = conn.cursor()

    cur.execute("""
        INSERT INTO fulfillment_orders (stripe_session_id, status, payload)
        VALUES (?, 'pending', ?)
        ON CONFLICT(stripe_session_id)
        DO UPDATE SET
            payload = excluded.payload,
            updated_at = CURRENT_TIMESTAMP
        WHERE fulfillment_orders.status IN ('pending', 'failed')
    """, [session_id, json.dumps(payload)])

    conn.commit()
    conn.close()


def claim_fulfillment(session_id: str, db_path: str = DB_PATH, stale_after_seconds: Optional[int] = None) -> bool:
    """
    Moves a row to ``submitting`` in a single UPDATE. Returns True only for
    the caller whose UPDATE matched; everyone else must not submit.

    With ``stale_after_seconds`` the claim also takes over pending/submitting
    rows untouched for that long (a confirmation that never finished).
    """
    conn = get_connection(db_path)
    cur = conn.cursor()

    if stale_after_seconds is None:
        cur.execute("""
            UPDATE fulfillment_orders
            SET status = 'submitting',
                updated_at = CURRENT_TIMESTAMP
            WHERE stripe_session_id = ?
              AND status IN ('pending', 'failed')
        """, [session_id])
    else:
        cur.execute("""
            UPDATE fulfillment_orders
            SET status = 'submitting',
                updated_at = CURRENT_TIMESTAMP
            WHERE stripe_session_id = ?
              AND (
                status = 'failed'
                OR (status IN ('pending', 'submitting') AND updated_at <= datetime('now', ?))
              )
        """, [session_id, _stale_modifier(stale_after_seconds)])

    claimed = cur.rowcount == 1
    conn.commit()
    conn.close()

    return claimed


def mark_submitted(session_id: str, result: Dict[str, Any], db_path: str = DB_PATH) -> None:
    conn = get_connection(db_path)
    cur = conn.cursor()

    cur.execute("""
        UPDATE fulfillment_orders
        SET status = 'submitted',
            result = ?,
            attempts = attempts + 1,
            last_error = NULL,
            updated_at = CURRENT_TIMESTAMP
        WHERE stripe_session_id = ?
    """, [json.dumps(result), session_id])

    conn.commit()
    conn.close()


def mark_failed(session_id: str, error: str, db_path: str = DB_PATH) -> None:
    conn = get_connection(db_path)
    cur = conn.cursor()

    cur.execute("""
        UPDATE fulfillment_orders
        SET status = 'failed',
            attempts = attempts + 1,
            last_error = ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE stripe_session_id = ?
    """, [error, session_id])

    conn.commit()
    conn.close()


def list_retryable(db_path: str = DB_PATH, stale_after_seconds: int = STALE_CLAIM_SECONDS) -> List[FulfillmentRecord]:
    """
    Failed rows, plus pending/submitting rows older than the staleness cutoff.
    Rows claimed moments ago belong to a confirmation still in flight.
    """
    conn = get_connection(db_path)
    cur = conn.cursor()

    cur.execute("""
        SELECT stripe_session_id, status, payload, result, attempts, last_error, created_at, updated_at
        FROM fulfillment_orders
        WHERE status = 'failed'
           OR (status IN ('pending', 'submitting') AND updated_at <= datetime('now', ?))
        ORDER BY created_at ASC
    """, [_stale_modifier(stale_after_seconds)])

    records = [_row_to_record(row) for row in cur.fetchall()]
    conn.close()

    return records


async def submit_fulfillment(printful, session_id: str, payload: Dict[str, Any], db_path: str = DB_PATH) -> Dict[str, Any]:
    """
    Submits one claimed ledger entry to Printful and records the outcome.

    Raises whatever the Printful client raises after marking the row failed.
    """
    try:
        result = await printful.create_order(payload)
    except Exception as e:
        await run_in_threadpool(mark_failed, session_id, str(e), db_path)
        logger.error(f"🚨 [FULFILLMENT] Paid session {session_id} could not be fulfilled: {e}")
        raise

    await run_in_threadpool(mark_submitted, session_id, result, db_path)
    logger.info(f"✅ [FULFILLMENT] Session {session_id} submitted - Printful order {result.get('id')}")
    return result


async def retry_failed_fulfillments(
    printful,
    db_path: str = DB_PATH,
    stale_after_seconds: int = STALE_CLAIM_SECONDS,
) -> Dict[str, Any]:
    """
    Resubmits every failed or abandoned entry. One failure does not stop the rest;
    an entry claimed by someone else in the meantime is left alone.

    Returns:
        Dict with retried, submitted, failed counts and the failed session ids
    """
    records = await run_in_threadpool(list_retryable, db_path, stale_after_seconds)
    retried = 0
    submitted = 0
    failed_sessions: List[str] = []

    for record in records:
        claimed = await run_in_threadpool(claim_fulfillment, record.session_id, db_path, stale_after_seconds)
        if not claimed:
            logger.info(f"⏭️ [FULFILLMENT] Session {record.session_id} claimed elsewhere, skipping")
            continue

        retried += 1
        try:
            await submit_fulfillment(printful, record.session_id, record.payload, db_path)
            submitted += 1
        except Exception:
            failed_sessions.append(record.session_id)

    logger.info(
        f"🔁 [FULFILLMENT] Retry finished - "
        f"Retried: {retried}, Submitted: {submitted}, Failed: {len(failed_sessions)}"
    )

    return {
        "retried": retried,
        "submitted": submitted,
        "failed": len(failed_sessions),
        "failed_sessions": failed_sessions,
    }
