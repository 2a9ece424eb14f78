from __future__ import annotations

from typing import Any

from psycopg import Rollback
from psycopg.rows import dict_row

from ..db import get_conn, pool

_RECORDING_COLUMNS = """
    id,
    course_id,
    teacher_id,
    title,
    description,
    video_key,
    video_url,
    file_size,
    duration,
    is_published,
    is_demo,
    created_at
"""


async def get_recording(recording_id: str) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            f"""
            SELECT {_RECORDING_COLUMNS}
              FROM app.lecture_recordings
             WHERE id = %s
             LIMIT 1
            """,
            (recording_id,),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def get_recording_by_key(video_key: str) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            f"""
            SELECT {_RECORDING_COLUMNS}
              FROM app.lecture_recordings
             WHERE video_key = %s
             LIMIT 1
            """,
            (video_key,),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def get_first_published_recording_id(course_id: str) -> str | None:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT id
              FROM app.lecture_recordings
             WHERE course_id = %s
               AND is_published = true
             ORDER BY created_at ASC
             LIMIT 1
            """,
            (course_id,),
        )
        row = await cur.fetchone()
    return str(row["id"]) if row else None


async def create_recording(
    *,
    course_id: str,
    teacher_id: str,
    title: str,
    description: str | None,
    video_key: str,
    video_url: str | None,
    file_size: int,
    duration: int | None,
) -> dict[str, Any]:
    async with get_conn() as cur:
        await cur.execute(
            f"""
            INSERT INTO app.lecture_recordings (
                course_id,
                teacher_id,
                title,
                description,
                video_key,
                video_url,
                file_size,
                duration,
                is_published,
                is_demo
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, false, false)
            RETURNING {_RECORDING_COLUMNS}
            """,
            (
                course_id,
                teacher_id,
                title,
                description,
                video_key,
                video_url,
                file_size,
                duration,
            ),
        )
        row = await cur.fetchone()
    return dict(row)


async def set_demo_recording(course_id: str, recording_id: str) -> dict[str, Any] | None:
    """Make `recording_id` the only demo recording of `course_id`.

    Clearing and setting share one transaction; the partial unique index on
    (course_id) WHERE is_demo rejects a concurrent writer instead of leaving two flags set.
    Returns None (and rolls back) when the recording is not part of the course.
    """

    row = None
    async with pool.connection() as conn:
        async with conn.transaction() as tx:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    UPDATE app.lecture_recordings
                       SET is_demo = false
                     WHERE course_id = %s
                       AND is_demo = true
                       AND id <> %s
                    """,
                    (course_id, recording_id),
                )
                await cur.execute(
                    """
                    UPDATE app.lecture_recordings
                       SET is_demo = true
                     WHERE id = %s
                       AND course_id = %s
                    RETURNING id, course_id, is_demo
                    """,
                    (recording_id, course_id),
                )
                row = await cur.fetchone()
                if row is None:
                    raise Rollback(tx)
    return dict(row) if row else None


__all__ = [
    "create_recording",
    "get_first_published_recording_id",
    "get_recording",
    "get_recording_by_key",
    "set_demo_recording",
]
