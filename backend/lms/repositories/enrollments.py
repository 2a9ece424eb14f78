from __future__ import annotations

from typing import Any

from ..db import get_conn


async def get_enrollment(student_id: str, course_id: str) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT student_id, course_id, enrollment_type
              FROM app.student_enrollments
             WHERE student_id = %s
               AND course_id = %s
             LIMIT 1
            """,
            (student_id, course_id),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def create_enrollment(
    student_id: str, course_id: str, enrollment_type: str
) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            """
            INSERT INTO app.student_enrollments (student_id, course_id, enrollment_type)
            VALUES (%s, %s, %s)
            ON CONFLICT (student_id, course_id) DO NOTHING
            RETURNING student_id, course_id, enrollment_type
            """,
            (student_id, course_id, enrollment_type),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def upsert_paid_enrollment(student_id: str, course_id: str) -> dict[str, Any]:
    async with get_conn() as cur:
        await cur.execute(
            """
            INSERT INTO app.student_enrollments (student_id, course_id, enrollment_type)
            VALUES (%s, %s, 'paid')
            ON CONFLICT (student_id, course_id)
            DO UPDATE SET enrollment_type = 'paid'
            RETURNING student_id, course_id, enrollment_type
            """,
            (student_id, course_id),
        )
        row = await cur.fetchone()
    return dict(row)


async def delete_demo_enrollment(student_id: str, course_id: str) -> int:
    async with get_conn() as cur:
        await cur.execute(
            """
            DELETE FROM app.student_enrollments
             WHERE student_id = %s
               AND course_id = %s
               AND enrollment_type = 'demo'
            """,
            (student_id, course_id),
        )
        return cur.rowcount


__all__ = [
    "create_enrollment",
    "delete_demo_enrollment",
    "get_enrollment",
    "upsert_paid_enrollment",
]
