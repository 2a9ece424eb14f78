from __future__ import annotations

from datetime import datetime
from typing import Any

from psycopg import errors

from ..db import get_conn
from ..roles import AccessType, covering_plan_types


async def get_active_subscription(
    user_id: str, course_id: str, access_type: AccessType
) -> dict[str, Any] | None:
    async with get_conn() as cur:
        try:
            await cur.execute(
                """
                SELECT s.id,
                       s.status,
                       s.expires_at,
                       p.name AS plan_name,
                       p.type AS plan_type
                  FROM app.user_subscriptions AS s
                  JOIN app.subscription_plans AS p ON p.id = s.subscription_plan_id
                 WHERE s.user_id = %s
                   AND s.course_id = %s
                   AND s.status = 'active'
                   AND s.expires_at > now()
                   AND p.type = ANY(%s)
                 ORDER BY s.expires_at DESC
                 LIMIT 1
                """,
                (user_id, course_id, covering_plan_types(access_type)),
            )
        except errors.UndefinedTable:
            return None
        row = await cur.fetchone()
    return dict(row) if row else None


async def get_plan(plan_id: str) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT id, name, type, price_pkr, duration_months, duration_until_date
              FROM app.subscription_plans
             WHERE id = %s
             LIMIT 1
            """,
            (plan_id,),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def find_active_plan_by_price(amount: Any) -> dict[str, Any] | None:
    async with get_conn() as cur:
        await cur.execute(
            """
            SELECT id, name, type, price_pkr, duration_months, duration_until_date
              FROM app.subscription_plans
             WHERE price_pkr = %s
               AND is_active = true
             ORDER BY price_pkr
             LIMIT 1
            """,
            (amount,),
        )
        row = await cur.fetchone()
    return dict(row) if row else None


async def create_subscription(
    *,
    user_id: str,
    course_id: str,
    plan_id: str,
    starts_at: datetime,
    expires_at: datetime,
) -> dict[str, Any]:
    async with get_conn() as cur:
        await cur.execute(
            """
            INSERT INTO app.user_subscriptions (
                user_id,
                course_id,
                subscription_plan_id,
                status,
                starts_at,
                expires_at
            )
            VALUES (%s, %s, %s, 'active', %s, %s)
            RETURNING id, user_id, course_id, subscription_plan_id, status, starts_at, expires_at
            """,
            (user_id, course_id, plan_id, starts_at, expires_at),
        )
        row = await cur.fetchone()
    return dict(row)


__all__ = [
    "create_subscription",
    "find_active_plan_by_price",
    "get_active_subscription",
    "get_plan",
]
