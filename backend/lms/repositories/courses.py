from __future__ import annotations

from typing import Any

from ..db import get_conn


async def get_course(course_id: str) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT id, title
              FROM app.courses
             WHERE id = %s
             LIMIT 1
            """,
            (course_id,),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def is_teacher_assigned(teacher_id: str, course_id: str) -> bool:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT 1
              FROM app.teacher_courses
             WHERE teacher_id = %s
               AND course_id = %s
             LIMIT 1
            """,
            (teacher_id, course_id),
        )
        row = await cur.fetchone()
    return row is not None


__all__ = ["get_course", "is_teacher_assigned"]
