from __future__ import annotations

from datetime import datetime
from typing import Any

from ..db import get_conn

_GRANT_COLUMNS = """
    id,
    user_id,
    course_id,
    access_type,
    resource_id,
    expires_at,
    used_at
"""


async def get_active_demo_access(
    user_id: str, course_id: str, access_type: str
) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            f"""
            SELECT {_GRANT_COLUMNS}
              FROM app.demo_access
             WHERE user_id = %s
               AND course_id = %s
               AND access_type = %s
               AND expires_at > now()
             LIMIT 1
            """,
            (user_id, course_id, access_type),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def list_demo_access_for_user(
    user_id: str, course_id: str, access_type: str | None = None
) -> list[dict[str, Any]]:
    query = f"""
        SELECT {_GRANT_COLUMNS}
          FROM app.demo_access
         WHERE user_id = %s
           AND course_id = %s
    """
    params: list[Any] = [user_id, course_id]
    if access_type:
        query += " AND access_type = %s"
        params.append(access_type)
    async with get_conn() as cur:
        await cur.execute(query, params)
        rows = await cur.fetchall()
    return [dict(row) for row in rows]


async def upsert_demo_access(
    *,
    user_id: str,
    course_id: str,
    access_type: str,
    expires_at: datetime,
    resource_id: str | None = None,
) -> dict[str, Any]:
    async with get_conn() as cur:
        await cur.execute(
            f"""
            INSERT INTO app.demo_access (
                user_id,
                course_id,
                access_type,
                resource_id,
                expires_at,
                used_at
            )
            VALUES (%s, %s, %s, %s, %s, now())
            ON CONFLICT (user_id, course_id, access_type)
            DO UPDATE SET
                expires_at = EXCLUDED.expires_at,
                used_at = EXCLUDED.used_at,
                resource_id = COALESCE(EXCLUDED.resource_id, app.demo_access.resource_id)
            RETURNING {_GRANT_COLUMNS}
            """,
            (user_id, course_id, access_type, resource_id, expires_at),
        )
        row = await cur.fetchone()
    return dict(row)


async def record_video_view(
    *, user_id: str, course_id: str, access_type: str, resource_id: str
) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            f"""
            UPDATE app.demo_access
               SET resource_id = %s,
                   used_at = now()
             WHERE user_id = %s
               AND course_id = %s
               AND access_type = %s
               AND expires_at > now()
            RETURNING {_GRANT_COLUMNS}
            """,
            (resource_id, user_id, course_id, access_type),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def list_watched_resources(
    user_id: str, course_id: str, access_type: str
) -> list[dict[str, Any]]:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT resource_id, used_at
              FROM app.demo_access
             WHERE user_id = %s
               AND course_id = %s
               AND access_type = %s
               AND resource_id IS NOT NULL
               AND expires_at > now()
             ORDER BY used_at ASC
            """,
            (user_id, course_id, access_type),
        )
        rows = await cur.fetchall()
    return [dict(row) for row in rows]


async def delete_demo_access(grant_id: str) -> bool:
    async with get_conn() as cur:
        await cur.execute(
            "DELETE FROM app.demo_access WHERE id = %s",
            (grant_id,),
        )
        return cur.rowcount > 0


async def list_demo_access(course_id: str | None = None) -> list[dict[str, Any]]:
    query = """
        SELECT d.id,
               d.user_id,
               d.course_id,
               d.access_type,
               d.resource_id,
               d.expires_at,
               d.used_at,
               u.full_name AS user_name,
               u.email AS user_email,
               c.title AS course_title
          FROM app.demo_access AS d
          LEFT JOIN app.users AS u ON u.id = d.user_id
          LEFT JOIN app.courses AS c ON c.id = d.course_id
    """
    params: list[Any] = []
    if course_id:
        query += " WHERE d.course_id = %s"
        params.append(course_id)
    query += " ORDER BY d.used_at DESC NULLS LAST"
    async with get_conn() as cur:
        await cur.execute(query, params)
        rows = await cur.fetchall()
    return [dict(row) for row in rows]


__all__ = [
    "delete_demo_access",
    "get_active_demo_access",
    "list_demo_access",
    "list_demo_access_for_user",
    "list_watched_resources",
    "record_video_view",
    "upsert_demo_access",
]
