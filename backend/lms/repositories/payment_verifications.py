from __future__ import annotations

from typing import Any

from ..db import get_conn


async def get_payment_verification(payment_id: str) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT id,
                   student_id,
                   course_id,
                   subscription_plan_id,
                   amount,
                   status,
                   verified_at,
                   verified_by,
                   notes
              FROM app.payment_verifications
             WHERE id = %s
             LIMIT 1
            """,
            (payment_id,),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def mark_processed(
    payment_id: str, *, status: str, verified_by: str, notes: str | None
) -> dict[str, Any] | None:
    """Move a pending verification to its final status; None if it was already processed."""

    async with get_conn() as cur:
        await cur.execute(
            """
            UPDATE app.payment_verifications
               SET status = %s,
                   verified_at = now(),
                   verified_by = %s,
                   notes = COALESCE(%s, notes)
             WHERE id = %s
               AND status = 'pending'
            RETURNING id,
                      student_id,
                      course_id,
                      subscription_plan_id,
                      amount,
                      status,
                      verified_at,
                      verified_by,
                      notes
            """,
            (status, verified_by, notes, payment_id),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


__all__ = ["get_payment_verification", "mark_processed"]
