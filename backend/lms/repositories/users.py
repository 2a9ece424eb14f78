from __future__ import annotations

from typing import Any

from ..db import get_conn


async def get_user(user_id: str) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT id,
                   email,
                   full_name,
                   role
              FROM app.users
             WHERE id = %s
             LIMIT 1
            """,
            (user_id,),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


__all__ = ["get_user"]
